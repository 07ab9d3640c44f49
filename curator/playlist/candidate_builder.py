"""
Candidate Pool Builder.

Turns aggregated history and library tracks into scored CandidateTrack
records and merges candidate sets from different sources.

Catalog contract (duck-typed, see curator.local_library_client):
    fetch_tracks_by_ids(ids) -> {track_id: TrackMetadata}, missing ids omitted
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from curator.history.aggregate import AggregatedHistory
from curator.playlist.candidate import (
    SOURCE_HISTORY,
    UNKNOWN_ARTIST,
    UNTITLED_TRACK,
    CandidateTrack,
    TrackMetadata,
)
from curator.scoring.strategies import calculate_score
from curator.scoring.types import HourlyGenrePreference, ScoringContext, ScoringSettings
from curator.scoring.weights import genre_match_score

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildOptions:
    """
    Scoring and filtering options shared by every candidate source.

    Attributes:
        strategy: Scoring strategy identifier
        genre_filter: Case-insensitive substring matched against the primary genre
        genre_filters: Keep tracks with any genre containing any of these
        mood_filters: Keep tracks with any mood containing any of these
        target_genres: Genres the playlist aims for (genre match factor)
        target_mood_vector: Mood profile the playlist aims for
        time_window: Daily window name used by the time-of-day factor
        learned_patterns: Hourly genre preferences learned from history
        recent_artists: Recently heard artists (spacing penalty)
        recent_genres: Recently heard genres (spacing penalty)
        settings: Validated scoring constants
        now: Reference time, injectable for tests
    """
    strategy: str = "balanced"
    genre_filter: Optional[str] = None
    genre_filters: Tuple[str, ...] = ()
    mood_filters: Tuple[str, ...] = ()
    target_genres: Tuple[str, ...] = ()
    target_mood_vector: Optional[Mapping[str, float]] = None
    time_window: Optional[str] = None
    learned_patterns: Tuple[HourlyGenrePreference, ...] = ()
    recent_artists: Tuple[str, ...] = ()
    recent_genres: Tuple[str, ...] = ()
    settings: Optional[ScoringSettings] = None
    now: Optional[datetime] = None
    lookback_start: Optional[int] = None
    lookback_end: Optional[int] = None


@dataclass(frozen=True)
class PlayStats:
    """Play statistics fed into scoring alongside the catalog record."""
    play_count: int = 0
    last_played_at: Optional[datetime] = None
    skip_count: int = 0
    days_since_play: Optional[float] = None
    play_count_in_window: Optional[int] = None


def sort_by_score(candidates: Iterable[CandidateTrack]) -> List[CandidateTrack]:
    """Sort descending by final_score; equal scores keep their input order."""
    return sorted(candidates, key=lambda c: c.final_score, reverse=True)


def _star_rating(user_rating: Optional[float]) -> Optional[float]:
    """Catalog ratings are 0-10; scoring works on 0-5 stars."""
    return None if user_rating is None else user_rating / 2.0


def matches_filters(candidate: CandidateTrack, options: BuildOptions) -> bool:
    if options.genre_filter:
        primary = (candidate.genre or "").lower()
        if options.genre_filter.lower() not in primary:
            return False
    if options.genre_filters:
        genres = [g.lower() for g in candidate.genres]
        wanted = [g.lower() for g in options.genre_filters]
        if not any(w in g for w in wanted for g in genres):
            return False
    if options.mood_filters:
        moods = [m.lower() for m in candidate.moods]
        wanted = [m.lower() for m in options.mood_filters]
        if not any(w in m for w in wanted for m in moods):
            return False
    return True


async def candidate_from_track(
    track: TrackMetadata,
    stats: PlayStats,
    options: BuildOptions = BuildOptions(),
    *,
    source: str = SOURCE_HISTORY,
    similarity=None,
) -> CandidateTrack:
    """
    Score one catalog track.

    The genre match against options.target_genres is the only awaited step;
    everything else is computed synchronously by the strategy.
    """
    genre_match = None
    if options.target_genres:
        genre_match = await genre_match_score(track.genres, options.target_genres, similarity)

    play_count = track.view_count if track.view_count is not None else stats.play_count
    context = ScoringContext(
        user_rating=_star_rating(track.user_rating),
        play_count=max(play_count, 0),
        last_played_at=stats.last_played_at,
        skip_count=max(track.skip_count, stats.skip_count),
        days_since_play=stats.days_since_play,
        play_count_in_window=stats.play_count_in_window,
        lookback_start=options.lookback_start,
        lookback_end=options.lookback_end,
        now=options.now,
        artist=track.artist,
        genres=tuple(track.genres),
        moods=tuple(track.moods),
        mood_vector=track.mood_vector,
        target_mood_vector=options.target_mood_vector,
        energy=track.energy,
        tempo=track.tempo,
        time_window=options.time_window,
        learned_patterns=options.learned_patterns,
        recent_artists=options.recent_artists,
        recent_genres=options.recent_genres,
        added_at=track.added_at,
        genre_match=genre_match,
    )
    result = calculate_score(options.strategy, context, options.settings)
    components = result.components

    return CandidateTrack(
        track_id=track.track_id,
        title=track.title or UNTITLED_TRACK,
        artist=track.artist or UNKNOWN_ARTIST,
        album=track.album,
        genres=tuple(track.genres),
        moods=tuple(track.moods),
        play_count=max(stats.play_count, 0),
        last_played_at=stats.last_played_at,
        user_rating=track.user_rating,
        recency_weight=components.recency_weight,
        fallback_score=components.fallback_score,
        final_score=components.final_score,
        source=source,
        strategy=options.strategy,
        components=components,
    )


async def build_candidate_tracks(
    history: Sequence[AggregatedHistory],
    catalog,
    options: BuildOptions = BuildOptions(),
    *,
    similarity=None,
) -> List[CandidateTrack]:
    """
    Score aggregated history into a candidate pool.

    Args:
        history: One aggregated record per played track
        catalog: Catalog client used to resolve track metadata
        options: Strategy, filters and scoring context
        similarity: Optional genre similarity oracle

    Returns:
        Candidates sorted by final_score descending, ties in history order.
        Tracks the catalog cannot resolve are skipped.
    """
    if not history:
        return []

    tracks = catalog.fetch_tracks_by_ids([item.track_id for item in history])

    candidates: List[CandidateTrack] = []
    unresolved = 0
    filtered = 0
    for item in history:
        track = tracks.get(item.track_id)
        if track is None:
            unresolved += 1
            continue
        candidate = await candidate_from_track(
            track,
            PlayStats(
                play_count=item.play_count,
                last_played_at=item.last_played_at,
                skip_count=item.skip_count,
            ),
            options,
            source=SOURCE_HISTORY,
            similarity=similarity,
        )
        if not matches_filters(candidate, options):
            filtered += 1
            continue
        candidates.append(candidate)

    if unresolved:
        logger.debug(f"Skipped {unresolved} history tracks missing from the library")
    if filtered:
        logger.debug(f"Filtered out {filtered} candidates by genre/mood")
    logger.info(f"Built {len(candidates)} candidates from {len(history)} history tracks ({options.strategy})")
    return sort_by_score(candidates)


def merge_candidates(
    primary: Sequence[CandidateTrack],
    secondary: Sequence[CandidateTrack],
) -> List[CandidateTrack]:
    """
    Union of two candidate lists keyed by track_id.

    The first instance of a track wins, so primary entries always beat
    secondary ones. The result is sorted by final_score descending (stable).
    """
    seen = set()
    merged: List[CandidateTrack] = []
    for candidate in list(primary) + list(secondary):
        if candidate.track_id in seen:
            continue
        seen.add(candidate.track_id)
        merged.append(candidate)
    return sort_by_score(merged)
