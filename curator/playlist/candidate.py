"""
Candidate and catalog track records.

TrackMetadata is what the catalog returns for a library track. CandidateTrack
is a scored track under consideration for a playlist; its final_score is only
ever produced by a scoring strategy.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Optional, Tuple

from curator.scoring.types import ScoringComponents

UNKNOWN_ARTIST = "Unknown Artist"
UNTITLED_TRACK = "Untitled Track"

SOURCE_HISTORY = "history"
SOURCE_FALLBACK = "fallback"
SOURCE_SONIC = "sonic"
SOURCE_DISCOVERY = "discovery"
SOURCE_THROWBACK = "throwback"


@dataclass(frozen=True)
class TrackMetadata:
    """
    Library track as returned by the catalog.

    user_rating is on the 0-10 scale (half stars), None when unrated.
    """
    track_id: str
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    genres: Tuple[str, ...] = ()
    moods: Tuple[str, ...] = ()
    mood_vector: Optional[Mapping[str, float]] = None
    user_rating: Optional[float] = None
    view_count: Optional[int] = None
    skip_count: int = 0
    last_viewed_at: Optional[datetime] = None
    added_at: Optional[datetime] = None
    energy: Optional[float] = None
    tempo: Optional[float] = None


@dataclass(frozen=True)
class CandidateTrack:
    """A scored track eligible for selection."""
    track_id: str
    title: str = UNTITLED_TRACK
    artist: str = UNKNOWN_ARTIST
    album: Optional[str] = None
    genres: Tuple[str, ...] = ()
    moods: Tuple[str, ...] = ()
    play_count: int = 0
    last_played_at: Optional[datetime] = None
    user_rating: Optional[float] = None
    recency_weight: float = 0.0
    fallback_score: float = 0.0
    final_score: float = 0.0
    source: str = SOURCE_HISTORY
    strategy: str = "balanced"
    components: Optional[ScoringComponents] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        if self.play_count < 0:
            raise ValueError(f"play_count must be >= 0, got {self.play_count}")
        if self.user_rating is not None and not 0 <= self.user_rating <= 10:
            raise ValueError(f"user_rating must be in [0, 10], got {self.user_rating}")

    @property
    def genre(self) -> Optional[str]:
        """Primary genre, None when the track has no genres."""
        return self.genres[0] if self.genres else None
