"""
Discovery candidates: good tracks that have not been played in a long time.

Scans the whole library in batches and scores each eligible track with the
discovery strategy.
"""
from __future__ import annotations

import dataclasses
import logging
from datetime import datetime
from typing import List, Optional

from curator.cancellation import CancellationToken, check_cancelled
from curator.exceptions import PlaylistGenerationError
from curator.playlist.candidate import SOURCE_DISCOVERY, CandidateTrack
from curator.playlist.candidate_builder import (
    BuildOptions,
    PlayStats,
    candidate_from_track,
    sort_by_score,
)
from curator.playlist.windows import DISCOVERY
from curator.scoring.weights import days_between

logger = logging.getLogger(__name__)

MIN_PLAYS_WHEN_UNRATED = 3
MIN_DISCOVERY_SCORE = 0.1
SCAN_BATCH_SIZE = 500


async def fetch_discovery_candidates(
    catalog,
    target_size: int,
    *,
    min_days_since_play: int = 90,
    options: BuildOptions = BuildOptions(strategy="discovery"),
    cancel_token: Optional[CancellationToken] = None,
    batch_size: int = SCAN_BATCH_SIZE,
) -> List[CandidateTrack]:
    """
    Find forgotten gems.

    A track is eligible when it was last played at least min_days_since_play
    days ago (or never), and it is either rated or played at least three
    times. Tracks scoring under 0.1 are dropped. Never-played tracks use the
    days since they were added to the library as their idle time.

    Raises:
        PlaylistGenerationError: no eligible track was found
        CancellationError: cancellation was requested between scan batches
    """
    options = dataclasses.replace(options, strategy="discovery")
    now = options.now or datetime.now()
    options = dataclasses.replace(options, now=now)

    candidates: List[CandidateTrack] = []
    scanned = 0
    for batch in catalog.iter_tracks(batch_size):
        check_cancelled(cancel_token, "discovery scan")
        for track in batch:
            scanned += 1
            plays = track.view_count or 0
            rated = bool(track.user_rating)
            if not rated and plays < MIN_PLAYS_WHEN_UNRATED:
                continue

            if track.last_viewed_at is not None:
                idle_days = max(days_between(now, track.last_viewed_at), 0)
            elif track.added_at is not None:
                idle_days = max(days_between(now, track.added_at), 0)
            else:
                idle_days = 0
            if track.last_viewed_at is not None and idle_days < min_days_since_play:
                continue

            candidate = await candidate_from_track(
                track,
                PlayStats(
                    play_count=plays,
                    last_played_at=track.last_viewed_at,
                    skip_count=track.skip_count,
                    days_since_play=idle_days,
                ),
                options,
                source=SOURCE_DISCOVERY,
            )
            if candidate.final_score < MIN_DISCOVERY_SCORE:
                continue
            candidates.append(candidate)

    if not candidates:
        raise PlaylistGenerationError(
            f"No discovery candidates among {scanned} library tracks "
            f"(need tracks unplayed for {min_days_since_play}+ days)",
            window=DISCOVERY,
        )

    ranked = sort_by_score(candidates)
    average = sum(c.final_score for c in ranked) / len(ranked)
    logger.info(
        f"Discovery scan: {scanned} tracks -> {len(ranked)} candidates "
        f"(target {target_size}, avg score {average:.3f})"
    )
    return ranked
