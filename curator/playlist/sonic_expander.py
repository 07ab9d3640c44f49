"""Expand an under-filled selection with sonically similar library tracks."""
from __future__ import annotations

import logging
from typing import AbstractSet, List, Sequence

from curator.playlist.candidate import SOURCE_SONIC, CandidateTrack
from curator.playlist.candidate_builder import BuildOptions, PlayStats, candidate_from_track

logger = logging.getLogger(__name__)

DEFAULT_MAX_SEEDS = 10
DEFAULT_PER_SEED = 15
DEFAULT_MAX_DISTANCE = 0.25


async def expand_with_sonic_similarity(
    catalog,
    seeds: Sequence[CandidateTrack],
    exclude: AbstractSet[str],
    needed: int,
    options: BuildOptions = BuildOptions(),
    *,
    max_seeds: int = DEFAULT_MAX_SEEDS,
    per_seed: int = DEFAULT_PER_SEED,
    max_distance: float = DEFAULT_MAX_DISTANCE,
    similarity=None,
) -> List[CandidateTrack]:
    """
    Collect scored neighbours of the top seeds.

    Stops once 2 x needed candidates were gathered. A failing neighbour
    lookup for one seed is logged and skipped.

    Args:
        catalog: Catalog client with get_similar_tracks(seed_id, count, max_distance)
        seeds: Selected tracks to expand from, best first
        exclude: Track ids that must not be returned
        needed: Number of open playlist slots
    """
    if needed <= 0:
        return []

    results: List[CandidateTrack] = []
    seen = set()
    for seed in list(seeds)[:max_seeds]:
        try:
            neighbours = catalog.get_similar_tracks(seed.track_id, per_seed, max_distance)
        except Exception as e:
            logger.warning(f"Sonic neighbour lookup failed for seed {seed.track_id}, continuing: {e}")
            continue

        for track in neighbours:
            if track.track_id in exclude or track.track_id in seen:
                continue
            seen.add(track.track_id)
            results.append(await candidate_from_track(
                track,
                PlayStats(
                    play_count=track.view_count or 0,
                    last_played_at=track.last_viewed_at,
                    skip_count=track.skip_count,
                ),
                options,
                source=SOURCE_SONIC,
                similarity=similarity,
            ))
            if len(results) >= needed * 2:
                logger.debug(f"Sonic expansion gathered {len(results)} candidates")
                return results

    logger.debug(f"Sonic expansion gathered {len(results)} candidates from {min(len(seeds), max_seeds)} seeds")
    return results
