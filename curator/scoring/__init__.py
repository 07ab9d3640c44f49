"""
Track scoring: weight functions, strategies and the strategy registry.
"""
from curator.scoring.registry import (
    STRATEGY_REGISTRY,
    get_all_strategies,
    get_default_strategy,
    get_strategy_metadata,
    is_valid_strategy,
    parse_strategy,
)
from curator.scoring.strategies import calculate_score
from curator.scoring.types import (
    HourlyGenrePreference,
    ScoringComponents,
    ScoringContext,
    ScoringResult,
    ScoringSettings,
    ScoringWeights,
)

__all__ = [
    "STRATEGY_REGISTRY",
    "HourlyGenrePreference",
    "ScoringComponents",
    "ScoringContext",
    "ScoringResult",
    "ScoringSettings",
    "ScoringWeights",
    "calculate_score",
    "get_all_strategies",
    "get_default_strategy",
    "get_strategy_metadata",
    "is_valid_strategy",
    "parse_strategy",
]
