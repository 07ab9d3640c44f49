"""Collapse raw play events into one record per track."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional


@dataclass(frozen=True)
class HistoryEntry:
    """One play event."""
    track_id: str
    viewed_at: datetime
    skipped: bool = False


@dataclass(frozen=True)
class AggregatedHistory:
    track_id: str
    play_count: int
    last_played_at: Optional[datetime]
    skip_count: int = 0


def aggregate_history(entries: Iterable[HistoryEntry]) -> List[AggregatedHistory]:
    """
    Aggregate play events per track.

    Totals are independent of input order. Output is ordered by most recent
    play (newest first), then track_id, so repeated runs over the same events
    produce identical lists.
    """
    plays: Dict[str, int] = {}
    skips: Dict[str, int] = {}
    latest: Dict[str, datetime] = {}

    for entry in entries:
        plays[entry.track_id] = plays.get(entry.track_id, 0) + 1
        if entry.skipped:
            skips[entry.track_id] = skips.get(entry.track_id, 0) + 1
        current = latest.get(entry.track_id)
        if current is None or entry.viewed_at > current:
            latest[entry.track_id] = entry.viewed_at

    aggregated = [
        AggregatedHistory(
            track_id=track_id,
            play_count=count,
            last_played_at=latest.get(track_id),
            skip_count=skips.get(track_id, 0),
        )
        for track_id, count in plays.items()
    ]
    aggregated.sort(key=lambda item: item.track_id)
    aggregated.sort(key=lambda item: item.last_played_at or datetime.min, reverse=True)
    return aggregated
