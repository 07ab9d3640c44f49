"""
Scoring data types.

ScoringContext is the per-call input bundle, ScoringComponents the breakdown a
strategy produces, and ScoringSettings the validated numeric constants shared
by every strategy. Settings are validated once at construction so that the
weight functions never divide by zero at scoring time.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from curator.exceptions import ConfigurationError


@dataclass(frozen=True)
class ScoringSettings:
    """
    Numeric constants used by the weight functions and strategies.

    Attributes:
        half_life_days: Days after which recency credit halves
        play_count_saturation: Play count treated as "fully loved"
        max_skip_penalty: Largest multiplicative reduction from skips
        lookback_start: Default throwback window start (days ago)
        lookback_end: Default throwback window end (days ago)
    """
    half_life_days: float = 7.0
    play_count_saturation: int = 25
    max_skip_penalty: float = 0.5
    lookback_start: int = 730
    lookback_end: int = 1825

    def __post_init__(self):
        if not self.half_life_days > 0:
            raise ConfigurationError(f"half_life_days must be > 0, got {self.half_life_days}")
        if not self.play_count_saturation > 0:
            raise ConfigurationError(
                f"play_count_saturation must be > 0, got {self.play_count_saturation}"
            )
        if not 0.0 <= self.max_skip_penalty <= 1.0:
            raise ConfigurationError(
                f"max_skip_penalty must be in [0, 1], got {self.max_skip_penalty}"
            )
        validate_lookback(self.lookback_start, self.lookback_end)


def validate_lookback(start: int, end: int) -> None:
    """Raise ConfigurationError for a negative or zero-width lookback window."""
    if start < 0 or end <= start:
        raise ConfigurationError(
            f"lookback window must satisfy 0 <= start < end, got [{start}, {end}]"
        )


DEFAULT_SETTINGS = ScoringSettings()


@dataclass(frozen=True)
class HourlyGenrePreference:
    """Learned share of an hour's plays that went to one genre."""
    hour: int
    genre: str
    weight: float
    play_count: int


@dataclass(frozen=True)
class ScoringContext:
    """
    Inputs for a single scoring call.

    user_rating is on the 0-5 star scale. The contextual fields (genres onward)
    are optional; when any of them is supplied the balanced and quality
    strategies switch to the extended formula.
    """
    user_rating: Optional[float] = None
    play_count: int = 0
    last_played_at: Optional[datetime] = None
    skip_count: int = 0
    days_since_play: Optional[float] = None
    play_count_in_window: Optional[int] = None
    lookback_start: Optional[int] = None
    lookback_end: Optional[int] = None
    now: Optional[datetime] = None

    # Contextual inputs
    artist: Optional[str] = None
    genres: Tuple[str, ...] = ()
    moods: Tuple[str, ...] = ()
    mood_vector: Optional[Mapping[str, float]] = None
    target_mood_vector: Optional[Mapping[str, float]] = None
    energy: Optional[float] = None
    tempo: Optional[float] = None
    target_energy: Optional[float] = None
    target_tempo: Optional[float] = None
    time_window: Optional[str] = None
    learned_patterns: Tuple[HourlyGenrePreference, ...] = ()
    recent_artists: Tuple[str, ...] = ()
    recent_genres: Tuple[str, ...] = ()
    added_at: Optional[datetime] = None
    genre_match: Optional[float] = None

    def __post_init__(self):
        if self.play_count < 0:
            raise ValueError(f"play_count must be >= 0, got {self.play_count}")
        if self.lookback_start is not None and self.lookback_end is not None:
            validate_lookback(self.lookback_start, self.lookback_end)

    def has_contextual_inputs(self) -> bool:
        """True when any input used only by the extended formula is present."""
        return bool(
            self.genres
            or self.moods
            or self.mood_vector
            or self.energy is not None
            or self.tempo is not None
            or self.recent_artists
            or self.recent_genres
            or self.genre_match is not None
        )

    def resolved_now(self) -> datetime:
        return self.now if self.now is not None else datetime.now()


@dataclass(frozen=True)
class ScoringComponents:
    """Breakdown of one strategy evaluation. Unused factors stay None."""
    recency_weight: float
    rating_score: float
    play_count_score: float
    fallback_score: float
    final_score: float
    skip_penalty: float = 1.0
    formula: str = "baseline"

    # Extended formula factors
    genre_match: Optional[float] = None
    mood_similarity: Optional[float] = None
    time_of_day: Optional[float] = None
    energy_tempo: Optional[float] = None
    exploration: Optional[float] = None
    artist_spacing: Optional[float] = None
    genre_spacing: Optional[float] = None

    # Discovery / throwback factors
    quality_score: Optional[float] = None
    play_count_penalty: Optional[float] = None
    recency_penalty: Optional[float] = None
    nostalgia_weight: Optional[float] = None
    play_count_weight: Optional[float] = None

    def to_dict(self) -> Dict[str, object]:
        return {key: value for key, value in self.__dict__.items() if value is not None}


@dataclass(frozen=True)
class ScoringResult:
    strategy: str
    components: ScoringComponents

    @property
    def final_score(self) -> float:
        return self.components.final_score


@dataclass(frozen=True)
class ScoringWeights:
    """
    Immutable weight table for one strategy.

    recency/rating/play_count are the baseline weights. extended holds the
    per-factor weights of the 8-factor formula (summing to 1.0) and multipliers
    holds penalty amounts and fallback caps.
    """
    strategy: str
    recency: float = 0.0
    rating: float = 0.0
    play_count: float = 0.0
    extended: Mapping[str, float] = field(default_factory=dict)
    multipliers: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self):
        for name in ("recency", "rating", "play_count"):
            value = getattr(self, name)
            if value < 0 or math.isnan(value):
                raise ConfigurationError(f"{self.strategy}: weight {name} must be >= 0, got {value}")
        if self.extended:
            total = sum(self.extended.values())
            if abs(total - 1.0) > 1e-6:
                raise ConfigurationError(
                    f"{self.strategy}: extended weights must sum to 1.0, got {total:.4f}"
                )
        # Freeze the tables
        object.__setattr__(self, "extended", MappingProxyType(dict(self.extended)))
        object.__setattr__(self, "multipliers", MappingProxyType(dict(self.multipliers)))
