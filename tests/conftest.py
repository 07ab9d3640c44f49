"""Test configuration and fixtures."""

import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, Optional, Set, Tuple

import pytest

# Add repo root to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from curator.config_loader import Config
from curator.history.history_service import HistoryService
from curator.library_db import connect
from curator.local_library_client import LocalLibraryClient
from curator.playlist.candidate import CandidateTrack, TrackMetadata
from curator.playlist_store import PlaylistStore

NOW = datetime(2026, 6, 15, 9, 30)


class FakeSimilarity:
    """Genre oracle answering from a fixed set of related pairs."""

    def __init__(self, pairs: Iterable[Tuple[str, str]] = (), fail: bool = False):
        self.pairs: Set[frozenset] = {frozenset((a.lower(), b.lower())) for a, b in pairs}
        self.fail = fail
        self.calls = 0
        self.cleared = 0

    async def are_similar(self, genre_a: str, genre_b: str) -> bool:
        self.calls += 1
        if self.fail:
            raise RuntimeError("oracle unavailable")
        a, b = genre_a.lower(), genre_b.lower()
        if a == b:
            return False
        return frozenset((a, b)) in self.pairs


class FakeTracker:
    """Behavior tracker with canned answers."""

    def __init__(self, library_size: int = 1000, skip_rate: float = 0.1, fail: bool = False):
        self.library_size = library_size
        self.skip_rate = skip_rate
        self.fail = fail

    def get_total_library_size(self) -> int:
        if self.fail:
            raise RuntimeError("database locked")
        return self.library_size

    def get_recent_skip_rate(self, window_days: int = 7) -> float:
        if self.fail:
            raise RuntimeError("database locked")
        return self.skip_rate


def make_candidate(
    track_id: str,
    artist: str = "Artist",
    score: float = 0.5,
    genres: Tuple[str, ...] = ("rock",),
    source: str = "history",
    play_count: int = 0,
) -> CandidateTrack:
    return CandidateTrack(
        track_id=track_id,
        title=f"Song {track_id}",
        artist=artist,
        genres=genres,
        play_count=play_count,
        final_score=score,
        source=source,
    )


def make_track(track_id: str, **kwargs) -> TrackMetadata:
    defaults = {
        "title": f"Song {track_id}",
        "artist": "Artist",
        "genres": ("rock",),
        "user_rating": 8.0,
        "view_count": 5,
        "added_at": NOW - timedelta(days=400),
    }
    defaults.update(kwargs)
    return TrackMetadata(track_id=track_id, **defaults)


def make_config(db_path: str = ":memory:", **playlists) -> Config:
    data = {
        "library": {"database_path": db_path},
        "playlists": {
            "target_size": 10,
            "max_per_artist": 2,
            "max_genre_share": 0.4,
            "exploration_rate": 0.0,
            "random_seed": 7,
        },
        "genre": {"cache_file": None},
    }
    data["playlists"].update(playlists)
    return Config(data=data)


@pytest.fixture()
def library_conn():
    """In-memory library database with the schema in place."""
    conn = connect(":memory:")
    yield conn
    conn.close()


@pytest.fixture()
def catalog(library_conn):
    return LocalLibraryClient(":memory:", conn=library_conn)


@pytest.fixture()
def history_service(library_conn):
    return HistoryService(library_conn)


@pytest.fixture()
def store(library_conn):
    return PlaylistStore(library_conn)


@pytest.fixture()
def similarity():
    return FakeSimilarity([("rock", "indie rock"), ("indie rock", "alternative")])


def record_plays(history_service: HistoryService, track_id: str, times: Iterable[datetime], skipped: Optional[Set[datetime]] = None):
    skipped = skipped or set()
    for moment in times:
        history_service.record_play(track_id, moment, skipped=moment in skipped)
