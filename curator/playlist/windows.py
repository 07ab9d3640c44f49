"""Playlist windows: the three daily time-of-day slots plus the weekly specials."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

MORNING = "morning"
AFTERNOON = "afternoon"
EVENING = "evening"
DISCOVERY = "discovery"
THROWBACK = "throwback"


@dataclass(frozen=True)
class TimeWindow:
    """Inclusive hour range [start_hour, end_hour] of a daily playlist."""
    window: str
    start_hour: int
    end_hour: int

    def __post_init__(self):
        if not (0 <= self.start_hour <= 23 and 0 <= self.end_hour <= 23):
            raise ValueError(f"{self.window}: hours must be within 0-23")
        if self.start_hour > self.end_hour:
            raise ValueError(f"{self.window}: start_hour must not exceed end_hour")

    def contains(self, moment: datetime) -> bool:
        return self.start_hour <= moment.hour <= self.end_hour


DEFAULT_TIME_WINDOWS: List[TimeWindow] = [
    TimeWindow(MORNING, 6, 11),
    TimeWindow(AFTERNOON, 12, 17),
    TimeWindow(EVENING, 18, 23),
]

_WINDOW_LOOKUP: Dict[str, TimeWindow] = {w.window: w for w in DEFAULT_TIME_WINDOWS}

SPECIAL_WINDOWS = (DISCOVERY, THROWBACK)
ALL_WINDOWS = tuple(_WINDOW_LOOKUP) + SPECIAL_WINDOWS

_LABELS = {
    MORNING: "Morning Mix",
    AFTERNOON: "Afternoon Mix",
    EVENING: "Evening Mix",
    DISCOVERY: "Weekly Discovery",
    THROWBACK: "Weekly Throwback",
}


def get_time_window(window: str) -> Optional[TimeWindow]:
    return _WINDOW_LOOKUP.get(window)


def is_daily_window(window: str) -> bool:
    return window in _WINDOW_LOOKUP


def is_valid_window(window: str) -> bool:
    return window in ALL_WINDOWS


def window_for_hour(hour: int) -> Optional[str]:
    """Daily window covering the hour, None overnight."""
    for definition in DEFAULT_TIME_WINDOWS:
        if definition.start_hour <= hour <= definition.end_hour:
            return definition.window
    return None


def window_label(window: str) -> str:
    return _LABELS.get(window, window.replace("_", " ").title())


def playlist_type_for_window(window: str) -> str:
    """Playlist type used to pick the default scoring strategy."""
    if window in SPECIAL_WINDOWS:
        return window
    if is_daily_window(window):
        return "daily"
    return "custom"
