"""
Strategy registry: metadata, validation and parsing of strategy identifiers.

The registry is built once at import time and exposed read-only.
"""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import List, Optional

from curator.exceptions import ConfigurationError, UnknownStrategyError
from curator.scoring.strategies import DEFAULT_WEIGHTS, STRATEGY_FUNCTIONS
from curator.scoring.types import ScoringWeights

DEFAULT_STRATEGY = "balanced"


@dataclass(frozen=True)
class StrategyMetadata:
    """Human-readable description of a scoring strategy."""
    id: str
    name: str
    description: str
    weights: ScoringWeights
    best_for: str
    formula: str
    extended_formula: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "best_for": self.best_for,
            "formula": self.formula,
            "extended_formula": self.extended_formula,
            "weights": {
                "recency": self.weights.recency,
                "rating": self.weights.rating,
                "play_count": self.weights.play_count,
                "extended": dict(self.weights.extended),
                "multipliers": dict(self.weights.multipliers),
            },
        }


_EXTENDED_FORMULA = (
    "score = [R + P + G + M + T + E + D] x A, "
    "A = skip_penalty x artist_spacing x genre_spacing"
)

STRATEGY_REGISTRY = MappingProxyType({
    "balanced": StrategyMetadata(
        id="balanced",
        name="Recent Favorites",
        description="Favors tracks played recently, backed by rating and play count",
        weights=DEFAULT_WEIGHTS["balanced"],
        best_for="Daily time-based playlists (morning, afternoon, evening)",
        formula="finalScore = (0.6 x recency + 0.3 x rating + 0.1 x playCount) x skipPenalty",
        extended_formula=_EXTENDED_FORMULA,
    ),
    "quality": StrategyMetadata(
        id="quality",
        name="Top Rated",
        description="Favors highly rated and frequently played tracks over recency",
        weights=DEFAULT_WEIGHTS["quality"],
        best_for="Genre/mood playlists where quality matters more than recency",
        formula="finalScore = (0.6 x rating + 0.3 x playCount + 0.1 x recency) x skipPenalty",
        extended_formula=_EXTENDED_FORMULA,
    ),
    "discovery": StrategyMetadata(
        id="discovery",
        name="Rediscovery",
        description="Surfaces good tracks that were rarely played and long forgotten",
        weights=DEFAULT_WEIGHTS["discovery"],
        best_for="Weekly discovery playlist - rediscover forgotten gems",
        formula="discoveryScore = qualityScore x playCountPenalty x recencyPenalty",
    ),
    "throwback": StrategyMetadata(
        id="throwback",
        name="Nostalgia",
        description="Tracks you loved a few years ago and have not played since",
        weights=DEFAULT_WEIGHTS["throwback"],
        best_for="Weekly throwback playlist - nostalgic tracks from 2-5 years ago",
        formula="throwbackScore = nostalgiaWeight x playCountWeight x qualityScore",
    ),
})

_DEFAULT_BY_PLAYLIST_TYPE = MappingProxyType({
    "daily": "balanced",
    "custom": "quality",
    "discovery": "discovery",
    "throwback": "throwback",
})

if set(STRATEGY_REGISTRY) != set(STRATEGY_FUNCTIONS):
    raise ConfigurationError("Strategy registry and dispatch table are out of sync")


def get_all_strategies() -> List[StrategyMetadata]:
    return list(STRATEGY_REGISTRY.values())


def get_strategy_metadata(strategy: str) -> StrategyMetadata:
    try:
        return STRATEGY_REGISTRY[strategy]
    except KeyError:
        raise UnknownStrategyError(strategy) from None


def is_valid_strategy(strategy: Optional[str]) -> bool:
    return strategy in STRATEGY_REGISTRY


def parse_strategy(strategy: Optional[str], default: str = DEFAULT_STRATEGY) -> str:
    """
    Resolve a strategy identifier from user input.

    Empty or missing input resolves to the default. Identifiers are matched
    case-insensitively after trimming whitespace.

    Raises:
        UnknownStrategyError: the identifier is not registered
    """
    if strategy is None or not strategy.strip():
        return default
    key = strategy.strip().lower()
    if key not in STRATEGY_REGISTRY:
        raise UnknownStrategyError(strategy)
    return key


def get_default_strategy(playlist_type: str) -> str:
    """Recommended strategy for a playlist type (daily, custom, discovery, throwback)."""
    return _DEFAULT_BY_PLAYLIST_TYPE.get(playlist_type, DEFAULT_STRATEGY)
