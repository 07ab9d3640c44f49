"""Database helpers for the local library, play history and saved playlists."""
from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from typing import Any, Optional

_SCHEMA = {
    "tracks": """
        CREATE TABLE IF NOT EXISTS tracks (
            track_id TEXT PRIMARY KEY,
            title TEXT,
            artist TEXT,
            album TEXT,
            genres TEXT NOT NULL DEFAULT '[]',
            moods TEXT NOT NULL DEFAULT '[]',
            mood_vector TEXT,
            user_rating REAL,
            view_count INTEGER NOT NULL DEFAULT 0,
            skip_count INTEGER NOT NULL DEFAULT 0,
            last_viewed_at TEXT,
            added_at TEXT,
            energy REAL,
            tempo REAL,
            sonic_vector TEXT
        )
    """,
    "play_history": """
        CREATE TABLE IF NOT EXISTS play_history (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            track_id TEXT NOT NULL,
            viewed_at TEXT NOT NULL,
            skipped INTEGER NOT NULL DEFAULT 0
        )
    """,
    "playlists": """
        CREATE TABLE IF NOT EXISTS playlists (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            playlist_window TEXT NOT NULL,
            title TEXT NOT NULL,
            strategy TEXT NOT NULL,
            created_at TEXT NOT NULL,
            exploration_rate REAL,
            pool_size INTEGER NOT NULL DEFAULT 0
        )
    """,
    "playlist_tracks": """
        CREATE TABLE IF NOT EXISTS playlist_tracks (
            playlist_id INTEGER NOT NULL REFERENCES playlists(id) ON DELETE CASCADE,
            position INTEGER NOT NULL,
            track_id TEXT NOT NULL,
            final_score REAL NOT NULL,
            source TEXT,
            pass_used INTEGER,
            PRIMARY KEY (playlist_id, position)
        )
    """,
}

_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_play_history_viewed_at ON play_history(viewed_at)",
    "CREATE INDEX IF NOT EXISTS idx_play_history_track_id ON play_history(track_id)",
    "CREATE INDEX IF NOT EXISTS idx_playlists_window ON playlists(playlist_window, created_at)",
)


def _table_exists(conn: sqlite3.Connection, table_name: str) -> bool:
    cursor = conn.cursor()
    cursor.execute(
        "SELECT 1 FROM sqlite_master WHERE type='table' AND name=?",
        (table_name,),
    )
    return cursor.fetchone() is not None


def ensure_library_schema(
    conn: sqlite3.Connection,
    *,
    logger: Optional[logging.Logger] = None,
) -> None:
    """Create any missing tables and indexes."""
    log = logger or logging.getLogger(__name__)
    for table_name, ddl in _SCHEMA.items():
        if not _table_exists(conn, table_name):
            conn.execute(ddl)
            log.info(f"Created {table_name} table")
    for ddl in _INDEXES:
        conn.execute(ddl)
    conn.commit()


def connect(db_path: str) -> sqlite3.Connection:
    """Open a connection with sqlite3.Row rows and the schema in place."""
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    ensure_library_schema(conn)
    return conn


def to_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def load_json(value: Optional[str], default: Any) -> Any:
    if not value:
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        logging.getLogger(__name__).warning(f"Ignoring malformed JSON column value: {value[:40]!r}")
        return default
