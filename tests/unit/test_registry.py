import pytest

from curator.exceptions import UnknownStrategyError
from curator.scoring.registry import (
    STRATEGY_REGISTRY,
    get_all_strategies,
    get_default_strategy,
    get_strategy_metadata,
    is_valid_strategy,
    parse_strategy,
)
from curator.scoring.strategies import STRATEGY_FUNCTIONS


def test_registry_matches_dispatch_table():
    assert set(STRATEGY_REGISTRY) == set(STRATEGY_FUNCTIONS)
    assert [s.id for s in get_all_strategies()] == ["balanced", "quality", "discovery", "throwback"]


def test_metadata_names():
    assert get_strategy_metadata("balanced").name == "Recent Favorites"
    assert get_strategy_metadata("quality").name == "Top Rated"
    assert get_strategy_metadata("discovery").name == "Rediscovery"
    assert get_strategy_metadata("throwback").name == "Nostalgia"


def test_metadata_weights_and_formula():
    balanced = get_strategy_metadata("balanced")
    assert balanced.weights.recency == pytest.approx(0.6)
    assert "skipPenalty" in balanced.formula
    assert balanced.extended_formula is not None
    assert get_strategy_metadata("discovery").extended_formula is None


def test_metadata_to_dict():
    data = get_strategy_metadata("quality").to_dict()
    assert data["id"] == "quality"
    assert data["weights"]["rating"] == pytest.approx(0.6)
    assert data["weights"]["extended"]["genre_match"] == pytest.approx(0.15)


def test_unknown_metadata():
    with pytest.raises(UnknownStrategyError):
        get_strategy_metadata("vibes")


def test_is_valid_strategy():
    assert is_valid_strategy("balanced")
    assert not is_valid_strategy("Balanced")
    assert not is_valid_strategy(None)
    assert not is_valid_strategy("")


def test_parse_strategy():
    assert parse_strategy("  Quality ") == "quality"
    assert parse_strategy("THROWBACK") == "throwback"
    assert parse_strategy(None) == "balanced"
    assert parse_strategy("   ") == "balanced"
    assert parse_strategy(None, default="discovery") == "discovery"


def test_parse_strategy_rejects_unknown():
    with pytest.raises(UnknownStrategyError):
        parse_strategy("vibes")


def test_default_strategy_by_playlist_type():
    assert get_default_strategy("daily") == "balanced"
    assert get_default_strategy("custom") == "quality"
    assert get_default_strategy("discovery") == "discovery"
    assert get_default_strategy("throwback") == "throwback"
    assert get_default_strategy("something-else") == "balanced"


def test_registry_is_read_only():
    with pytest.raises(TypeError):
        STRATEGY_REGISTRY["vibes"] = STRATEGY_REGISTRY["balanced"]
