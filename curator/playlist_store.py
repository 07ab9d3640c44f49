"""
Playlist Store - persists generated playlists and answers exclusion queries.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta
from typing import List, Optional, Set

from curator.library_db import parse_timestamp, to_timestamp

logger = logging.getLogger(__name__)


class PlaylistStore:
    """Saved playlists in the library database."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def save_playlist(
        self,
        window: str,
        title: str,
        strategy: str,
        entries: List[dict],
        *,
        sources: Optional[List[str]] = None,
        passes: Optional[List[int]] = None,
        exploration_rate: Optional[float] = None,
        pool_size: int = 0,
        created_at: Optional[datetime] = None,
    ) -> int:
        """
        Store one playlist and its ordered tracks.

        Args:
            window: Playlist window name
            title: Display title
            strategy: Scoring strategy used
            entries: Ordered {track_id, final_score, position, ...} dicts

        Returns:
            New playlist id
        """
        created_at = created_at or datetime.now()
        cursor = self.conn.execute(
            "INSERT INTO playlists (playlist_window, title, strategy, created_at, exploration_rate, pool_size) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (window, title, strategy, to_timestamp(created_at), exploration_rate, pool_size),
        )
        playlist_id = cursor.lastrowid
        self.conn.executemany(
            "INSERT INTO playlist_tracks (playlist_id, position, track_id, final_score, source, pass_used) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            [
                (
                    playlist_id,
                    entry["position"],
                    entry["track_id"],
                    entry["final_score"],
                    sources[i] if sources else None,
                    passes[i] if passes else None,
                )
                for i, entry in enumerate(entries)
            ],
        )
        self.conn.commit()
        logger.info(f"Saved playlist {title!r} ({len(entries)} tracks) as id {playlist_id}")
        return playlist_id

    def fetch_recent_track_ids(
        self,
        days: int = 7,
        exclude_window: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Set[str]:
        """
        Track ids placed in playlists created within the last `days`.

        Playlists of exclude_window are ignored so a window can reuse its own
        previous tracks while staying distinct from its siblings.
        """
        since = (now or datetime.now()) - timedelta(days=days)
        query = (
            "SELECT DISTINCT pt.track_id FROM playlist_tracks pt "
            "JOIN playlists p ON p.id = pt.playlist_id WHERE p.created_at >= ?"
        )
        params: list = [to_timestamp(since)]
        if exclude_window:
            query += " AND p.playlist_window != ?"
            params.append(exclude_window)
        return {row[0] for row in self.conn.execute(query, params).fetchall()}

    def get_latest_playlist(self, window: str) -> Optional[dict]:
        """Most recent playlist for a window with its ordered tracks, or None."""
        row = self.conn.execute(
            "SELECT * FROM playlists WHERE playlist_window = ? ORDER BY created_at DESC, id DESC LIMIT 1",
            (window,),
        ).fetchone()
        if row is None:
            return None
        tracks = self.conn.execute(
            "SELECT position, track_id, final_score, source, pass_used FROM playlist_tracks "
            "WHERE playlist_id = ? ORDER BY position",
            (row["id"],),
        ).fetchall()
        return {
            "id": row["id"],
            "window": row["playlist_window"],
            "title": row["title"],
            "strategy": row["strategy"],
            "created_at": parse_timestamp(row["created_at"]),
            "exploration_rate": row["exploration_rate"],
            "pool_size": row["pool_size"],
            "tracks": [dict(track) for track in tracks],
        }
