"""
History Service - play history queries over the local library database.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from curator.history.aggregate import HistoryEntry
from curator.library_db import load_json, parse_timestamp, to_timestamp
from curator.playlist.windows import get_time_window

logger = logging.getLogger(__name__)


def _row_to_entry(row: sqlite3.Row) -> HistoryEntry:
    return HistoryEntry(
        track_id=row["track_id"],
        viewed_at=parse_timestamp(row["viewed_at"]),
        skipped=bool(row["skipped"]),
    )


class HistoryService:
    """Reads and records play events."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def record_play(self, track_id: str, viewed_at: datetime, skipped: bool = False) -> None:
        self.conn.execute(
            "INSERT INTO play_history (track_id, viewed_at, skipped) VALUES (?, ?, ?)",
            (track_id, to_timestamp(viewed_at), int(skipped)),
        )
        self.conn.commit()

    def fetch_history_range(self, start: datetime, end: datetime) -> List[HistoryEntry]:
        """Plays with start <= viewed_at <= end, oldest first."""
        cursor = self.conn.execute(
            "SELECT track_id, viewed_at, skipped FROM play_history "
            "WHERE viewed_at >= ? AND viewed_at <= ? ORDER BY viewed_at, id",
            (to_timestamp(start), to_timestamp(end)),
        )
        return [_row_to_entry(row) for row in cursor.fetchall()]

    def fetch_history_for_window(
        self,
        window: str,
        days: int = 30,
        now: Optional[datetime] = None,
    ) -> List[HistoryEntry]:
        """
        Plays from the last `days` days.

        For daily windows only plays whose hour falls inside the window are
        kept; other windows get the whole slice.
        """
        now = now or datetime.now()
        entries = self.fetch_history_range(now - timedelta(days=days), now)
        definition = get_time_window(window)
        if definition is not None:
            entries = [e for e in entries if definition.contains(e.viewed_at)]
        logger.debug(f"Fetched {len(entries)} history entries for {window} ({days} days)")
        return entries

    def get_history_depth_days(self, now: Optional[datetime] = None) -> int:
        """Days between the oldest recorded play and now (0 with no history)."""
        row = self.conn.execute("SELECT MIN(viewed_at) FROM play_history").fetchone()
        oldest = parse_timestamp(row[0]) if row else None
        if oldest is None:
            return 0
        now = now or datetime.now()
        return max((now - oldest).days, 0)

    def fetch_recent_artists_and_genres(
        self,
        hours: int = 24,
        now: Optional[datetime] = None,
    ) -> Tuple[List[str], List[str]]:
        """Artists and genres heard in the last `hours`, most recent first, deduplicated."""
        now = now or datetime.now()
        cursor = self.conn.execute(
            """
            SELECT t.artist, t.genres
            FROM play_history h
            JOIN tracks t ON t.track_id = h.track_id
            WHERE h.viewed_at >= ?
            ORDER BY h.viewed_at DESC, h.id DESC
            """,
            (to_timestamp(now - timedelta(hours=hours)),),
        )
        artists: List[str] = []
        genres: List[str] = []
        for row in cursor.fetchall():
            if row["artist"] and row["artist"] not in artists:
                artists.append(row["artist"])
            for genre in load_json(row["genres"], []):
                if genre not in genres:
                    genres.append(genre)
        return artists, genres
