"""Tests for the scoring strategies and their dispatch table."""
import itertools
from datetime import timedelta

import pytest

from curator.exceptions import ConfigurationError, UnknownStrategyError
from curator.scoring.strategies import (
    DEFAULT_WEIGHTS,
    STRATEGY_FUNCTIONS,
    calculate_balanced_score,
    calculate_discovery_score,
    calculate_quality_score,
    calculate_score,
    calculate_throwback_score,
)
from curator.scoring.types import HourlyGenrePreference, ScoringContext, ScoringSettings, ScoringWeights
from conftest import NOW


EXTENDED_CONTEXTS = [
    pytest.param(
        dict(
            artist="Miles Davis",
            genres=("jazz", "bebop"),
            moods=("calm", "late night"),
            mood_vector={"calm": 0.9, "energetic": 0.1},
            target_mood_vector={"calm": 1.0},
            energy=0.3,
            tempo=96.0,
            time_window="morning",
            learned_patterns=(HourlyGenrePreference(hour=9, genre="jazz", weight=1.0, play_count=40),),
            recent_artists=("Miles Davis",),
            recent_genres=("jazz",),
            added_at=NOW - timedelta(days=3),
            genre_match=1.0,
        ),
        id="everything-matches",
    ),
    pytest.param(
        dict(
            artist="Slayer",
            genres=("thrash metal",),
            moods=("aggressive",),
            mood_vector={"calm": -1.0, "aggressive": 1.0},
            target_mood_vector={"calm": 1.0},
            energy=1.0,
            tempo=220.0,
            time_window="evening",
            learned_patterns=(HourlyGenrePreference(hour=21, genre="ambient", weight=0.8, play_count=12),),
            recent_artists=("Enya",),
            recent_genres=("ambient",),
            added_at=NOW - timedelta(days=900),
            genre_match=0.0,
        ),
        id="nothing-matches",
    ),
    pytest.param(
        dict(genres=("folk",), energy=0.0, tempo=0.0, time_window="afternoon", recent_genres=("FOLK",)),
        id="sparse",
    ),
]


# =============================================================================
# Baseline formulas
# =============================================================================

class TestBalanced:
    def test_perfect_never_played_track(self):
        components = calculate_balanced_score(ScoringContext(user_rating=5, play_count=25, now=NOW))
        assert components.final_score == pytest.approx(1.0)
        assert components.formula == "baseline"

    def test_unrated_unplayed_track(self):
        components = calculate_balanced_score(ScoringContext(now=NOW))
        assert components.final_score == pytest.approx(0.6 * 1.0 + 0.3 * 0.5)

    def test_skip_penalty_multiplies(self):
        context = ScoringContext(user_rating=5, play_count=10, skip_count=10, now=NOW)
        components = calculate_balanced_score(context)
        assert components.skip_penalty == pytest.approx(0.5)
        assert components.final_score == pytest.approx((0.6 + 0.3 + 0.1 * 0.4) * 0.5)

    def test_recent_play_beats_old_play(self):
        recent = calculate_balanced_score(
            ScoringContext(user_rating=3, play_count=5, last_played_at=NOW - timedelta(days=1), now=NOW)
        )
        old = calculate_balanced_score(
            ScoringContext(user_rating=3, play_count=5, last_played_at=NOW - timedelta(days=60), now=NOW)
        )
        assert recent.final_score > old.final_score


class TestQuality:
    def test_rating_dominates(self):
        context = ScoringContext(
            user_rating=5, play_count=25, last_played_at=NOW - timedelta(days=7), now=NOW
        )
        assert calculate_quality_score(context).final_score == pytest.approx(0.6 + 0.3 + 0.1 * 0.5)

    def test_low_rating_scores_lower_than_balanced_for_recent_track(self):
        context = ScoringContext(user_rating=1, play_count=2, last_played_at=NOW, now=NOW)
        assert calculate_quality_score(context).final_score < calculate_balanced_score(context).final_score


# =============================================================================
# Extended formula
# =============================================================================

class TestExtendedFormula:
    def test_contextual_inputs_switch_formula(self):
        components = calculate_balanced_score(ScoringContext(genres=("rock",), now=NOW))
        assert components.formula == "extended"
        assert components.genre_match == 0.5
        assert components.time_of_day == 0.0

    def test_neutral_context_value(self):
        components = calculate_balanced_score(ScoringContext(genre_match=0.5, now=NOW))
        expected = (
            0.35 * 1.0      # recency, never played
            + 0.15 * 0.5    # rating, unrated
            + 0.05 * 0.0    # play count
            + 0.10 * 0.5    # genre match
            + 0.10 * 0.5    # mood, unknown
            + 0.15 * 0.0    # no time window
            + 0.05 * 0.5    # energy/tempo, unknown
            + 0.05 * 0.75   # exploration, unplayed with no added date
        )
        assert components.final_score == pytest.approx(expected)

    def test_artist_spacing_multiplier(self):
        fresh = calculate_balanced_score(
            ScoringContext(artist="Low", genres=("slowcore",), recent_artists=("Other",), now=NOW)
        )
        repeat = calculate_balanced_score(
            ScoringContext(artist="Low", genres=("slowcore",), recent_artists=("low",), now=NOW)
        )
        assert repeat.artist_spacing == pytest.approx(0.7)
        assert repeat.final_score == pytest.approx(fresh.final_score * 0.7)

    def test_genre_spacing_multiplier(self):
        fresh = calculate_quality_score(
            ScoringContext(genres=("jazz",), recent_genres=("rock",), now=NOW)
        )
        repeat = calculate_quality_score(
            ScoringContext(genres=("jazz",), recent_genres=("Jazz",), now=NOW)
        )
        assert repeat.final_score == pytest.approx(fresh.final_score * 0.85)

    def test_time_window_targets_default_to_profile(self):
        on_target = calculate_balanced_score(
            ScoringContext(genres=("folk",), energy=0.4, tempo=120, time_window="morning", now=NOW)
        )
        assert on_target.energy_tempo == pytest.approx(1.0)
        assert on_target.time_of_day == pytest.approx(0.8)

    def test_extended_weights_sum_to_one(self):
        for strategy in ("balanced", "quality"):
            assert sum(DEFAULT_WEIGHTS[strategy].extended.values()) == pytest.approx(1.0)


# =============================================================================
# Discovery and throwback
# =============================================================================

class TestDiscovery:
    def test_forgotten_favorite(self):
        components = calculate_discovery_score(
            ScoringContext(user_rating=5, play_count=0, days_since_play=365, now=NOW)
        )
        assert components.final_score == pytest.approx(1.0)

    def test_partial_penalties(self):
        components = calculate_discovery_score(
            ScoringContext(user_rating=5, play_count=5, days_since_play=100, now=NOW)
        )
        assert components.play_count_penalty == pytest.approx(0.8)
        assert components.final_score == pytest.approx(0.8 * 100 / 365)

    def test_unrated_uses_capped_play_proxy(self):
        components = calculate_discovery_score(
            ScoringContext(play_count=10, days_since_play=400, now=NOW)
        )
        assert components.quality_score == pytest.approx(0.2)
        assert components.final_score == pytest.approx(0.2 * 0.6 * 1.0)

    def test_zero_star_rating_counts_as_unrated(self):
        components = calculate_discovery_score(
            ScoringContext(user_rating=0, play_count=0, days_since_play=400, now=NOW)
        )
        assert components.final_score == 0.0

    def test_days_derived_from_last_play(self):
        components = calculate_discovery_score(
            ScoringContext(user_rating=5, last_played_at=NOW - timedelta(days=730), now=NOW)
        )
        assert components.recency_penalty == pytest.approx(1.0)


class TestThrowback:
    def test_oldest_edge_of_window(self):
        components = calculate_throwback_score(
            ScoringContext(user_rating=5, play_count_in_window=25, days_since_play=1825, now=NOW)
        )
        assert components.nostalgia_weight == pytest.approx(1.0)
        assert components.final_score == pytest.approx(1.0)

    def test_recent_edge_of_window_scores_zero(self):
        components = calculate_throwback_score(
            ScoringContext(user_rating=5, play_count_in_window=25, days_since_play=730, now=NOW)
        )
        assert components.final_score == 0.0

    def test_unrated_track(self):
        components = calculate_throwback_score(
            ScoringContext(play_count_in_window=10, days_since_play=1825, now=NOW)
        )
        assert components.quality_score == pytest.approx(0.4 * 0.6)
        assert components.final_score == pytest.approx(1.0 * 0.4 * 0.24)

    def test_context_lookback_overrides_settings(self):
        components = calculate_throwback_score(
            ScoringContext(
                user_rating=5,
                play_count_in_window=25,
                days_since_play=135,
                lookback_start=90,
                lookback_end=180,
                now=NOW,
            )
        )
        assert components.nostalgia_weight == pytest.approx(0.5)

    def test_falls_back_to_total_plays(self):
        components = calculate_throwback_score(
            ScoringContext(user_rating=5, play_count=25, days_since_play=1825, now=NOW)
        )
        assert components.play_count_weight == pytest.approx(1.0)


# =============================================================================
# Dispatch and validation
# =============================================================================

class TestDispatch:
    def test_calculate_score_returns_strategy(self):
        result = calculate_score("quality", ScoringContext(user_rating=4, now=NOW))
        assert result.strategy == "quality"
        assert result.final_score == result.components.final_score

    def test_unknown_strategy(self):
        with pytest.raises(UnknownStrategyError) as excinfo:
            calculate_score("vibes", ScoringContext())
        assert excinfo.value.strategy_id == "vibes"

    def test_dispatch_table_is_read_only(self):
        with pytest.raises(TypeError):
            STRATEGY_FUNCTIONS["vibes"] = calculate_balanced_score

    def test_scores_stay_in_unit_interval(self):
        ratings = (None, 0, 2.5, 5, 9)
        plays = (0, 1, 25, 400)
        skips = (0, 3, 1000)
        last_played = (None, NOW - timedelta(days=2), NOW - timedelta(days=2000), NOW + timedelta(days=5))
        for strategy in STRATEGY_FUNCTIONS:
            for rating, count, skip, played in itertools.product(ratings, plays, skips, last_played):
                context = ScoringContext(
                    user_rating=rating, play_count=count, skip_count=skip, last_played_at=played, now=NOW
                )
                score = calculate_score(strategy, context).final_score
                assert 0.0 <= score <= 1.0, (strategy, context)

    @pytest.mark.parametrize("strategy", ["balanced", "quality"])
    @pytest.mark.parametrize("extras", EXTENDED_CONTEXTS)
    def test_extended_scores_stay_in_unit_interval(self, strategy, extras):
        ratings = (None, 0, 5, 9)
        plays = (0, 3, 400)
        skips = (0, 1000)
        last_played = (None, NOW - timedelta(days=1), NOW - timedelta(days=2000))
        for rating, count, skip, played in itertools.product(ratings, plays, skips, last_played):
            context = ScoringContext(
                user_rating=rating, play_count=count, skip_count=skip, last_played_at=played, now=NOW, **extras
            )
            components = calculate_score(strategy, context).components
            assert components.formula == "extended"
            assert 0.0 <= components.final_score <= 1.0, (strategy, context)

    def test_custom_settings(self):
        settings = ScoringSettings(half_life_days=1)
        context = ScoringContext(user_rating=5, play_count=25, last_played_at=NOW - timedelta(days=1), now=NOW)
        assert calculate_score("balanced", context, settings).components.recency_weight == pytest.approx(0.5)


class TestValidation:
    def test_negative_play_count(self):
        with pytest.raises(ValueError):
            ScoringContext(play_count=-1)

    def test_invalid_settings(self):
        with pytest.raises(ConfigurationError):
            ScoringSettings(half_life_days=0)
        with pytest.raises(ConfigurationError):
            ScoringSettings(play_count_saturation=0)
        with pytest.raises(ConfigurationError):
            ScoringSettings(lookback_start=500, lookback_end=500)

    def test_invalid_context_lookback(self):
        with pytest.raises(ConfigurationError):
            ScoringContext(lookback_start=-1, lookback_end=10)

    @pytest.mark.parametrize("bounds", [dict(lookback_start=2000), dict(lookback_end=730), dict(lookback_end=100)])
    def test_mixed_lookback_bounds_must_form_a_window(self, bounds):
        context = ScoringContext(user_rating=4, play_count=10, days_since_play=1000, now=NOW, **bounds)
        with pytest.raises(ConfigurationError):
            calculate_throwback_score(context)
        with pytest.raises(ConfigurationError):
            calculate_score("throwback", context)

    def test_weights_must_be_non_negative(self):
        with pytest.raises(ConfigurationError):
            ScoringWeights(strategy="bad", recency=-0.1)

    def test_extended_weights_must_sum_to_one(self):
        with pytest.raises(ConfigurationError):
            ScoringWeights(strategy="bad", extended={"recency": 0.5, "rating": 0.2})

    def test_weight_tables_are_frozen(self):
        with pytest.raises(TypeError):
            DEFAULT_WEIGHTS["balanced"].extended["recency"] = 1.0
