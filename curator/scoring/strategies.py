"""
Scoring strategies.

Each strategy is a pure function (ScoringContext, ScoringSettings) ->
ScoringComponents registered in an immutable dispatch table. balanced and
quality have two formula variants behind the same identifier:

    baseline:  weighted sum of recency, rating and play count, times skip penalty
    extended:  [R + P + G + M + T + E + D] x A, used when the context carries
               contextual inputs (genres, moods, energy, tempo, recent history)

discovery and throwback are multiplicative and have a single formula.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Callable, Dict, Optional

from curator.exceptions import UnknownStrategyError
from curator.scoring.types import (
    ScoringComponents,
    ScoringContext,
    ScoringResult,
    ScoringSettings,
    ScoringWeights,
    validate_lookback,
)
from curator.scoring.weights import (
    MAX_EXPLORATION_BOOST,
    MAX_TIME_OF_DAY_BOOST,
    TIME_PROFILES,
    artist_spacing_penalty,
    days_between,
    energy_alignment,
    exploration_boost,
    fallback_score,
    genre_spacing_penalty,
    mood_similarity,
    normalize_play_count,
    normalize_star_rating,
    recency_weight,
    resolve_settings,
    skip_penalty,
    tempo_match,
    time_of_day_boost,
)

DEFAULT_WEIGHTS: Dict[str, ScoringWeights] = {
    "balanced": ScoringWeights(
        strategy="balanced",
        recency=0.6,
        rating=0.3,
        play_count=0.1,
        extended={
            "recency": 0.35,
            "rating": 0.15,
            "play_count": 0.05,
            "genre_match": 0.10,
            "mood_similarity": 0.10,
            "time_of_day": 0.15,
            "energy_tempo": 0.05,
            "exploration": 0.05,
        },
        multipliers={
            "skip_penalty": 0.5,
            "artist_spacing": 0.30,
            "genre_spacing": 0.15,
        },
    ),
    "quality": ScoringWeights(
        strategy="quality",
        rating=0.6,
        play_count=0.3,
        recency=0.1,
        extended={
            "rating": 0.35,
            "play_count": 0.15,
            "recency": 0.05,
            "genre_match": 0.15,
            "mood_similarity": 0.15,
            "time_of_day": 0.05,
            "energy_tempo": 0.05,
            "exploration": 0.05,
        },
        multipliers={
            "skip_penalty": 0.5,
            "artist_spacing": 0.30,
            "genre_spacing": 0.15,
        },
    ),
    "discovery": ScoringWeights(
        strategy="discovery",
        rating=1.0,
        multipliers={
            "play_count_penalty": 1.0,
            "recency_penalty": 1.0,
            "unrated_fallback": 0.5,
        },
    ),
    "throwback": ScoringWeights(
        strategy="throwback",
        rating=1.0,
        multipliers={
            "nostalgia": 1.0,
            "play_count": 1.0,
            "unrated_fallback": 0.6,
        },
    ),
}


def _clamp01(value: float) -> float:
    return max(0.0, min(value, 1.0))


def _is_rated(context: ScoringContext) -> bool:
    return context.user_rating is not None and context.user_rating > 0


def _days_since_play(context: ScoringContext, floor_days: bool = False) -> float:
    if context.days_since_play is not None:
        return max(float(context.days_since_play), 0.0)
    if context.last_played_at is None:
        return 0.0
    now = context.resolved_now()
    if floor_days:
        return float(max(days_between(now, context.last_played_at), 0))
    return max((now - context.last_played_at).total_seconds() / 86400.0, 0.0)


def _base_components(context: ScoringContext, settings: ScoringSettings):
    now = context.resolved_now()
    recency = recency_weight(context.last_played_at, now, settings.half_life_days)
    rating = normalize_star_rating(context.user_rating)
    plays = normalize_play_count(context.play_count, settings.play_count_saturation)
    fallback = fallback_score(context.user_rating, context.play_count, settings.play_count_saturation)
    return recency, rating, plays, fallback


def _weighted_score(
    strategy: str,
    context: ScoringContext,
    settings: ScoringSettings,
) -> ScoringComponents:
    weights = DEFAULT_WEIGHTS[strategy]
    recency, rating, plays, fallback = _base_components(context, settings)
    penalty = skip_penalty(context.skip_count, context.play_count, settings.max_skip_penalty)

    if not context.has_contextual_inputs():
        base = weights.recency * recency + weights.rating * rating + weights.play_count * plays
        return ScoringComponents(
            recency_weight=recency,
            rating_score=rating,
            play_count_score=plays,
            fallback_score=fallback,
            final_score=_clamp01(base * penalty),
            skip_penalty=penalty,
        )

    now = context.resolved_now()
    profile = TIME_PROFILES.get(context.time_window or "")
    target_energy = context.target_energy
    target_tempo = context.target_tempo
    if profile is not None:
        target_energy = profile.energy_target if target_energy is None else target_energy
        target_tempo = profile.target_tempo if target_tempo is None else target_tempo

    genre = context.genre_match if context.genre_match is not None else 0.5
    mood = mood_similarity(context.mood_vector, context.target_mood_vector)
    time_fit = time_of_day_boost(
        context.genres,
        context.moods,
        context.energy,
        context.time_window,
        learned_patterns=context.learned_patterns,
        now=now,
    ) / MAX_TIME_OF_DAY_BOOST
    energy_tempo = (
        energy_alignment(context.energy, target_energy)
        + tempo_match(context.tempo, target_tempo)
    ) / 2.0
    exploration = exploration_boost(context.play_count, context.added_at, now) / MAX_EXPLORATION_BOOST
    artist_spacing = artist_spacing_penalty(
        context.artist, context.recent_artists, weights.multipliers["artist_spacing"]
    )
    genre_spacing = genre_spacing_penalty(
        context.genres, context.recent_genres, weights.multipliers["genre_spacing"]
    )

    factors = {
        "recency": recency,
        "rating": rating,
        "play_count": plays,
        "genre_match": genre,
        "mood_similarity": mood,
        "time_of_day": time_fit,
        "energy_tempo": energy_tempo,
        "exploration": exploration,
    }
    additive = sum(weights.extended[name] * value for name, value in factors.items())
    multiplier = penalty * artist_spacing * genre_spacing

    return ScoringComponents(
        recency_weight=recency,
        rating_score=rating,
        play_count_score=plays,
        fallback_score=fallback,
        final_score=_clamp01(additive * multiplier),
        skip_penalty=penalty,
        formula="extended",
        genre_match=genre,
        mood_similarity=mood,
        time_of_day=time_fit,
        energy_tempo=energy_tempo,
        exploration=exploration,
        artist_spacing=artist_spacing,
        genre_spacing=genre_spacing,
    )


def calculate_balanced_score(
    context: ScoringContext,
    settings: Optional[ScoringSettings] = None,
) -> ScoringComponents:
    """Recency-first score for time-of-day playlists."""
    return _weighted_score("balanced", context, resolve_settings(settings))


def calculate_quality_score(
    context: ScoringContext,
    settings: Optional[ScoringSettings] = None,
) -> ScoringComponents:
    """Rating-first score for curated genre and mood playlists."""
    return _weighted_score("quality", context, resolve_settings(settings))


def calculate_discovery_score(
    context: ScoringContext,
    settings: Optional[ScoringSettings] = None,
) -> ScoringComponents:
    """
    quality x play_count_penalty x recency_penalty.

    Rewards well-rated tracks that were rarely played and long forgotten.
    Unrated tracks use play count as a quality proxy capped at 0.5.
    """
    settings = resolve_settings(settings)
    saturation = settings.play_count_saturation
    unrated_cap = DEFAULT_WEIGHTS["discovery"].multipliers["unrated_fallback"]
    recency, rating, plays, fallback = _base_components(context, settings)

    play_count = max(context.play_count, 0)
    if _is_rated(context):
        quality = rating
    else:
        quality = min(play_count / saturation, 1.0) * unrated_cap
    play_count_penalty = 1.0 - min(play_count, saturation) / saturation
    recency_penalty = min(_days_since_play(context) / 365.0, 1.0)

    score = quality * play_count_penalty * recency_penalty
    return ScoringComponents(
        recency_weight=recency,
        rating_score=rating,
        play_count_score=plays,
        fallback_score=fallback,
        final_score=_clamp01(score),
        quality_score=quality,
        play_count_penalty=play_count_penalty,
        recency_penalty=recency_penalty,
    )


def calculate_throwback_score(
    context: ScoringContext,
    settings: Optional[ScoringSettings] = None,
) -> ScoringComponents:
    """
    nostalgia x play_count_weight x quality.

    Nostalgia rises linearly from the recent edge of the lookback window to
    its older edge. Unrated tracks use in-window plays capped at 0.6.
    """
    settings = resolve_settings(settings)
    saturation = settings.play_count_saturation
    unrated_cap = DEFAULT_WEIGHTS["throwback"].multipliers["unrated_fallback"]
    recency, rating, plays, fallback = _base_components(context, settings)

    start = context.lookback_start if context.lookback_start is not None else settings.lookback_start
    end = context.lookback_end if context.lookback_end is not None else settings.lookback_end
    in_window = context.play_count_in_window
    if in_window is None:
        in_window = context.play_count
    in_window = max(in_window, 0)

    validate_lookback(start, end)

    days = _days_since_play(context, floor_days=True)
    nostalgia = _clamp01((days - start) / (end - start))
    play_count_weight = min(in_window / saturation, 1.0)
    if _is_rated(context):
        quality = rating
    else:
        quality = min(in_window / saturation, 1.0) * unrated_cap

    score = nostalgia * play_count_weight * quality
    return ScoringComponents(
        recency_weight=recency,
        rating_score=rating,
        play_count_score=plays,
        fallback_score=fallback,
        final_score=_clamp01(score),
        quality_score=quality,
        nostalgia_weight=nostalgia,
        play_count_weight=play_count_weight,
    )


StrategyFunction = Callable[[ScoringContext, Optional[ScoringSettings]], ScoringComponents]

STRATEGY_FUNCTIONS = MappingProxyType({
    "balanced": calculate_balanced_score,
    "quality": calculate_quality_score,
    "discovery": calculate_discovery_score,
    "throwback": calculate_throwback_score,
})


def calculate_score(
    strategy: str,
    context: ScoringContext,
    settings: Optional[ScoringSettings] = None,
) -> ScoringResult:
    """
    Score one context with the named strategy.

    Raises:
        UnknownStrategyError: strategy is not registered
        ConfigurationError: the resolved throwback lookback window is empty or inverted
    """
    try:
        func = STRATEGY_FUNCTIONS[strategy]
    except KeyError:
        raise UnknownStrategyError(strategy) from None
    return ScoringResult(strategy=strategy, components=func(context, settings))
