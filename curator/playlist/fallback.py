"""
Fallback candidates from a full-library scan.

Used when history alone cannot fill a playlist. Scans the library twice,
once by rating and once by play count, so that well-rated unplayed tracks
and heavily played unrated tracks are both represented.
"""
from __future__ import annotations

import logging
from typing import Dict, List

from curator.playlist.candidate import SOURCE_FALLBACK, CandidateTrack, TrackMetadata
from curator.playlist.candidate_builder import (
    BuildOptions,
    PlayStats,
    candidate_from_track,
    matches_filters,
    sort_by_score,
)

logger = logging.getLogger(__name__)

FALLBACK_FETCH_MULTIPLIER = 5
GENRE_FALLBACK_FETCH_MULTIPLIER = 10
FALLBACK_SORTS = ("user_rating:desc", "view_count:desc")


async def fetch_fallback_candidates(
    catalog,
    limit: int,
    options: BuildOptions = BuildOptions(),
    *,
    similarity=None,
) -> List[CandidateTrack]:
    """
    Score the top-rated and most-played library tracks.

    Args:
        catalog: Catalog client with search_tracks(sort, limit, genre)
        limit: Number of candidates wanted
        options: Scoring options; genre_filter narrows the scan
        similarity: Optional genre similarity oracle

    Returns:
        Up to `limit` candidates sorted by final_score descending
    """
    if limit <= 0:
        return []

    multiplier = GENRE_FALLBACK_FETCH_MULTIPLIER if options.genre_filter else FALLBACK_FETCH_MULTIPLIER
    search_limit = limit * multiplier

    tracks: Dict[str, TrackMetadata] = {}
    for sort in FALLBACK_SORTS:
        for track in catalog.search_tracks(sort=sort, limit=search_limit, genre=options.genre_filter):
            tracks.setdefault(track.track_id, track)

    candidates: List[CandidateTrack] = []
    for track in tracks.values():
        candidate = await candidate_from_track(
            track,
            PlayStats(
                play_count=track.view_count or 0,
                last_played_at=track.last_viewed_at,
                skip_count=track.skip_count,
            ),
            options,
            source=SOURCE_FALLBACK,
            similarity=similarity,
        )
        if not matches_filters(candidate, options):
            continue
        candidates.append(candidate)
        if options.genre_filter and len(candidates) >= limit * 2:
            break

    logger.debug(
        f"Fallback scan: {len(tracks)} library tracks -> {len(candidates)} candidates "
        f"(genre filter: {options.genre_filter or 'none'})"
    )
    return sort_by_score(candidates)[:limit]
