"""
Throwback candidates: tracks loved a few years ago and not played since.
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from curator.cancellation import CancellationToken, check_cancelled
from curator.exceptions import PlaylistGenerationError
from curator.history.aggregate import aggregate_history
from curator.playlist.candidate import SOURCE_THROWBACK, CandidateTrack
from curator.playlist.candidate_builder import (
    BuildOptions,
    PlayStats,
    candidate_from_track,
    sort_by_score,
)
from curator.playlist.windows import THROWBACK
from curator.scoring.types import validate_lookback

logger = logging.getLogger(__name__)

MIN_THROWBACK_SCORE = 0.05
MIN_HISTORY_DAYS = 90


@dataclass(frozen=True)
class LookbackWindow:
    """Play window [start, end] in days before now."""
    start: int
    end: int
    label: str = "2-5 years ago"


def determine_adaptive_lookback_window(history_depth_days: int) -> Optional[LookbackWindow]:
    """
    Shrink the lookback window to fit the available listening history.

    Returns None when there is less than 90 days of history.
    """
    depth = history_depth_days
    if depth >= 1825:
        return LookbackWindow(730, 1825, "2-5 years ago")
    if depth >= 1095:
        return LookbackWindow(365, 1095, "1-3 years ago")
    if depth >= 730:
        return LookbackWindow(180, 730, "6 months-2 years ago")
    if depth >= 180:
        return LookbackWindow(90, 180, "3-6 months ago")
    if depth < MIN_HISTORY_DAYS:
        return None
    end = max(depth - 30, MIN_HISTORY_DAYS)
    start = max(end // 2, 30)
    return LookbackWindow(start, end, f"{start}-{end} days ago")


def resolve_lookback_window(
    history_service,
    lookback_start: int,
    lookback_end: int,
    *,
    adaptive: bool = True,
    now: Optional[datetime] = None,
) -> LookbackWindow:
    """
    Pick the window to scan, adapting it when history is shallower than lookback_end.

    Raises:
        PlaylistGenerationError: fewer than 90 days of history
    """
    validate_lookback(lookback_start, lookback_end)
    window = LookbackWindow(lookback_start, lookback_end, f"{lookback_start}-{lookback_end} days ago")
    if not adaptive:
        return window

    depth = history_service.get_history_depth_days(now)
    if depth >= lookback_end:
        return window

    adapted = determine_adaptive_lookback_window(depth)
    if adapted is None:
        raise PlaylistGenerationError(
            f"Insufficient listening history for a throwback playlist: found {depth} days, "
            f"need at least {MIN_HISTORY_DAYS}",
            window=THROWBACK,
        )
    logger.info(
        f"Using adaptive throwback window {adapted.start}-{adapted.end} days "
        f"({adapted.label}); history depth is {depth} days"
    )
    return adapted


async def fetch_throwback_candidates(
    history_service,
    catalog,
    target_size: int,
    *,
    lookback_start: int = 730,
    lookback_end: int = 1825,
    recent_exclusion: int = 90,
    adaptive: bool = True,
    options: BuildOptions = BuildOptions(strategy="throwback"),
    cancel_token: Optional[CancellationToken] = None,
) -> List[CandidateTrack]:
    """
    Score tracks played inside the lookback window.

    Tracks played again within the last recent_exclusion days are skipped, as
    are tracks scoring under 0.05. Returns the best 2 x target_size.

    Raises:
        PlaylistGenerationError: insufficient history or no eligible track
    """
    now = options.now or datetime.now()
    window = resolve_lookback_window(
        history_service, lookback_start, lookback_end, adaptive=adaptive, now=now
    )
    options = dataclasses.replace(
        options,
        strategy="throwback",
        now=now,
        lookback_start=window.start,
        lookback_end=window.end,
    )

    window_entries = history_service.fetch_history_range(
        now - timedelta(days=window.end), now - timedelta(days=window.start)
    )
    recently_played = {
        entry.track_id
        for entry in history_service.fetch_history_range(now - timedelta(days=recent_exclusion), now)
    }
    aggregated = aggregate_history(window_entries)
    check_cancelled(cancel_token, "throwback scan")

    tracks = catalog.fetch_tracks_by_ids([item.track_id for item in aggregated])
    recent_threshold = now - timedelta(days=recent_exclusion)

    candidates: List[CandidateTrack] = []
    for item in aggregated:
        track = tracks.get(item.track_id)
        if track is None or item.track_id in recently_played:
            continue
        last_played = item.last_played_at
        if track.last_viewed_at is not None and (last_played is None or track.last_viewed_at > last_played):
            last_played = track.last_viewed_at
        if last_played is not None and last_played > recent_threshold:
            continue

        candidate = await candidate_from_track(
            dataclasses.replace(track, view_count=item.play_count),
            PlayStats(
                play_count=item.play_count,
                last_played_at=last_played,
                play_count_in_window=item.play_count,
            ),
            options,
            source=SOURCE_THROWBACK,
        )
        if candidate.final_score < MIN_THROWBACK_SCORE:
            continue
        candidates.append(candidate)

    if not candidates:
        raise PlaylistGenerationError(
            f"No throwback candidates played {window.label} "
            f"({len(aggregated)} tracks in window)",
            window=THROWBACK,
        )

    ranked = sort_by_score(candidates)[:target_size * 2]
    logger.info(
        f"Throwback window {window.label}: {len(window_entries)} plays, "
        f"{len(aggregated)} tracks -> {len(ranked)} candidates"
    )
    return ranked
