"""
Learned listening patterns.

Aggregates play history by hour of day and genre so the time-of-day boost can
follow what the user actually plays at a given hour instead of the static
window profiles.
"""
from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable, List, Mapping, Sequence

from curator.scoring.types import HourlyGenrePreference

logger = logging.getLogger(__name__)


def analyze_hourly_genre_preferences(
    history,
    track_genres: Mapping[str, Sequence[str]],
    *,
    min_plays: int = 2,
    max_genres_per_hour: int = 10,
) -> List[HourlyGenrePreference]:
    """
    Compute per-hour genre preference weights.

    weight = plays of the genre in that hour / all genre plays in that hour.
    Genre/hour pairs with fewer than min_plays are dropped, and each hour
    keeps its max_genres_per_hour most played genres.

    Args:
        history: Iterable of entries with track_id and viewed_at attributes
        track_genres: track_id -> genres
        min_plays: Minimum plays for a genre/hour pair to be kept
        max_genres_per_hour: Cap on genres kept per hour

    Returns:
        Preferences sorted by hour, then play count descending
    """
    counts: Counter = Counter()
    for entry in history:
        genres = track_genres.get(entry.track_id)
        if not genres:
            continue
        hour = entry.viewed_at.hour
        for genre in genres:
            normalized = genre.strip().lower()
            if normalized:
                counts[(hour, normalized)] += 1

    totals_by_hour: Counter = Counter()
    for (hour, _genre), plays in counts.items():
        totals_by_hour[hour] += plays

    preferences = [
        HourlyGenrePreference(
            hour=hour,
            genre=genre,
            weight=plays / totals_by_hour[hour],
            play_count=plays,
        )
        for (hour, genre), plays in counts.items()
        if plays >= min_plays
    ]
    preferences.sort(key=lambda p: (p.hour, -p.play_count, p.genre))

    kept: List[HourlyGenrePreference] = []
    per_hour: Counter = Counter()
    for pref in preferences:
        if per_hour[pref.hour] < max_genres_per_hour:
            kept.append(pref)
            per_hour[pref.hour] += 1

    logger.debug(
        f"Learned {len(kept)} hourly genre preferences across {len(per_hour)} hours"
    )
    return kept


def peak_listening_hours(history: Iterable, top_n: int = 5) -> List[int]:
    """Hours of day (0-23) with the most plays, busiest first."""
    plays_by_hour = Counter(entry.viewed_at.hour for entry in history)
    return [hour for hour, _count in plays_by_hour.most_common(top_n)]
