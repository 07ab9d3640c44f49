"""
Local Library Client - catalog lookups backed by the local sqlite library.

Implements the catalog contract used by the candidate builders:
    fetch_tracks_by_ids(ids) -> {track_id: TrackMetadata}, missing ids omitted
    search_tracks(sort, limit, genre=None) -> [TrackMetadata]
    get_similar_tracks(seed_id, count, max_distance) -> [TrackMetadata]
    iter_tracks(batch_size) -> batches of TrackMetadata
    get_total_library_size() -> int
"""
from __future__ import annotations

import json
import logging
import sqlite3
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

import numpy as np

from curator.library_db import connect, load_json, parse_timestamp, to_timestamp
from curator.playlist.candidate import TrackMetadata

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "user_rating": "COALESCE(user_rating, 0)",
    "view_count": "view_count",
    "last_viewed_at": "COALESCE(last_viewed_at, '')",
    "added_at": "COALESCE(added_at, '')",
}

_SQLITE_MAX_PARAMS = 900


def _row_to_track(row: sqlite3.Row) -> TrackMetadata:
    mood_vector = load_json(row["mood_vector"], None)
    return TrackMetadata(
        track_id=row["track_id"],
        title=row["title"],
        artist=row["artist"],
        album=row["album"],
        genres=tuple(load_json(row["genres"], [])),
        moods=tuple(load_json(row["moods"], [])),
        mood_vector=mood_vector if isinstance(mood_vector, dict) else None,
        user_rating=row["user_rating"],
        view_count=row["view_count"],
        skip_count=row["skip_count"] or 0,
        last_viewed_at=parse_timestamp(row["last_viewed_at"]),
        added_at=parse_timestamp(row["added_at"]),
        energy=row["energy"],
        tempo=row["tempo"],
    )


def _parse_sort(sort: str):
    """Parse "column:desc" / "column:asc" into an ORDER BY clause."""
    column, _, direction = sort.partition(":")
    if column not in SORT_COLUMNS:
        raise ValueError(f"Unsupported sort column: {column!r}")
    direction = (direction or "desc").lower()
    if direction not in ("asc", "desc"):
        raise ValueError(f"Unsupported sort direction: {direction!r}")
    return f"{SORT_COLUMNS[column]} {direction.upper()}, track_id ASC"


class LocalLibraryClient:
    """Catalog client over the local library database."""

    def __init__(self, db_path: str = "data/library.db", conn: Optional[sqlite3.Connection] = None):
        """
        Args:
            db_path: Path to the library database
            conn: Existing connection to reuse (tests use an in-memory one)
        """
        self.db_path = db_path
        self.conn = conn if conn is not None else connect(db_path)
        logger.debug(f"Connected to library database: {db_path}")

    def close(self) -> None:
        self.conn.close()

    def fetch_tracks_by_ids(self, track_ids: Sequence[str]) -> Dict[str, TrackMetadata]:
        """Look up tracks by id. Unknown or deleted ids are omitted from the result."""
        unique_ids = list(dict.fromkeys(track_ids))
        tracks: Dict[str, TrackMetadata] = {}
        for start in range(0, len(unique_ids), _SQLITE_MAX_PARAMS):
            chunk = unique_ids[start:start + _SQLITE_MAX_PARAMS]
            placeholders = ",".join("?" for _ in chunk)
            cursor = self.conn.execute(
                f"SELECT * FROM tracks WHERE track_id IN ({placeholders})",
                chunk,
            )
            for row in cursor.fetchall():
                tracks[row["track_id"]] = _row_to_track(row)

        missing = len(unique_ids) - len(tracks)
        if missing:
            logger.debug(f"{missing} of {len(unique_ids)} requested tracks not found in library")
        return tracks

    def search_tracks(
        self,
        sort: str = "user_rating:desc",
        limit: int = 100,
        genre: Optional[str] = None,
    ) -> List[TrackMetadata]:
        """
        Scan the library in a given order.

        Args:
            sort: "column:direction", column one of SORT_COLUMNS
            limit: Maximum tracks returned
            genre: Optional case-insensitive substring matched against the genre list
        """
        order_by = _parse_sort(sort)
        if genre:
            cursor = self.conn.execute(
                f"SELECT * FROM tracks WHERE LOWER(genres) LIKE ? ORDER BY {order_by} LIMIT ?",
                (f"%{genre.lower()}%", limit),
            )
        else:
            cursor = self.conn.execute(
                f"SELECT * FROM tracks ORDER BY {order_by} LIMIT ?",
                (limit,),
            )
        return [_row_to_track(row) for row in cursor.fetchall()]

    def iter_tracks(self, batch_size: int = 500) -> Iterator[List[TrackMetadata]]:
        """Yield the whole library in track_id order, batch_size tracks at a time."""
        offset = 0
        while True:
            cursor = self.conn.execute(
                "SELECT * FROM tracks ORDER BY track_id LIMIT ? OFFSET ?",
                (batch_size, offset),
            )
            rows = cursor.fetchall()
            if not rows:
                return
            yield [_row_to_track(row) for row in rows]
            offset += len(rows)

    def get_similar_tracks(
        self,
        seed_id: str,
        count: int = 15,
        max_distance: float = 0.25,
    ) -> List[TrackMetadata]:
        """
        Nearest neighbours of a seed by cosine distance over sonic vectors.

        Returns an empty list when the seed has no sonic vector.
        """
        row = self.conn.execute(
            "SELECT sonic_vector FROM tracks WHERE track_id = ?", (seed_id,)
        ).fetchone()
        seed_vector = load_json(row["sonic_vector"], None) if row else None
        if not seed_vector:
            logger.debug(f"No sonic vector for seed {seed_id}")
            return []

        cursor = self.conn.execute(
            "SELECT track_id, sonic_vector FROM tracks "
            "WHERE sonic_vector IS NOT NULL AND track_id != ?",
            (seed_id,),
        )
        rows = cursor.fetchall()
        if not rows:
            return []

        seed = np.asarray(seed_vector, dtype=float)
        ids: List[str] = []
        vectors = []
        for other in rows:
            vector = load_json(other["sonic_vector"], None)
            if vector and len(vector) == len(seed):
                ids.append(other["track_id"])
                vectors.append(vector)
        if not vectors:
            return []

        matrix = np.asarray(vectors, dtype=float)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(seed)
        with np.errstate(divide="ignore", invalid="ignore"):
            similarity = np.where(norms > 0, matrix @ seed / norms, 0.0)
        distances = 1.0 - similarity

        order = np.argsort(distances, kind="stable")
        neighbour_ids = [
            ids[i] for i in order if distances[i] <= max_distance
        ][:count]
        found = self.fetch_tracks_by_ids(neighbour_ids)
        return [found[track_id] for track_id in neighbour_ids if track_id in found]

    def get_total_library_size(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM tracks").fetchone()[0]

    def upsert_tracks(self, tracks: Iterable[TrackMetadata], sonic_vectors: Optional[Dict[str, Sequence[float]]] = None) -> int:
        """Insert or replace library tracks. Returns the number written."""
        sonic_vectors = sonic_vectors or {}
        written = 0
        for track in tracks:
            vector = sonic_vectors.get(track.track_id)
            self.conn.execute(
                """
                INSERT OR REPLACE INTO tracks (
                    track_id, title, artist, album, genres, moods, mood_vector,
                    user_rating, view_count, skip_count, last_viewed_at, added_at,
                    energy, tempo, sonic_vector
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    track.track_id,
                    track.title,
                    track.artist,
                    track.album,
                    json.dumps(list(track.genres), ensure_ascii=False),
                    json.dumps(list(track.moods), ensure_ascii=False),
                    json.dumps(dict(track.mood_vector)) if track.mood_vector else None,
                    track.user_rating,
                    track.view_count or 0,
                    track.skip_count,
                    to_timestamp(track.last_viewed_at),
                    to_timestamp(track.added_at),
                    track.energy,
                    track.tempo,
                    json.dumps([float(x) for x in vector]) if vector is not None else None,
                ),
            )
            written += 1
        self.conn.commit()
        return written
