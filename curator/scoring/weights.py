"""
Weight functions for track scoring.

Every function here is pure and total: missing inputs map to documented
neutral values and every result is clamped to its stated range. The only
awaitable is genre_match_score, which may consult a genre similarity oracle.

Oracle contract (duck-typed, see curator.genre.similarity):
    async are_similar(genre_a: str, genre_b: str) -> bool
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple

import numpy as np

from curator.scoring.types import DEFAULT_SETTINGS, HourlyGenrePreference, ScoringSettings

logger = logging.getLogger(__name__)

NEVER_PLAYED_BOOST = 0.15
LOW_PLAY_BOOST = 0.10
LOW_PLAY_THRESHOLD = 5
NEW_ADDITION_BOOST = 0.05
NEW_ADDITION_DAYS = 30
MAX_EXPLORATION_BOOST = NEVER_PLAYED_BOOST + NEW_ADDITION_BOOST

ARTIST_SPACING_PENALTY = 0.30
GENRE_SPACING_PENALTY = 0.15
ENERGY_BAND = 0.2
TEMPO_THRESHOLD_BPM = 10.0


@dataclass(frozen=True)
class TimeProfile:
    """Preferred genres, energy, tempo and moods for a time-of-day window."""
    preferred_genres: Tuple[str, ...]
    energy_target: float
    target_tempo: float
    mood_tags: Tuple[str, ...]
    boost: float


TIME_PROFILES: Dict[str, TimeProfile] = {
    "morning": TimeProfile(
        preferred_genres=("acoustic", "folk", "indie", "singer/songwriter", "pop", "jazz"),
        energy_target=0.4,
        target_tempo=120,
        mood_tags=("happy", "uplifting", "calm", "peaceful", "cheerful"),
        boost=0.15,
    ),
    "afternoon": TimeProfile(
        preferred_genres=("ambient", "electronic", "jazz", "classical", "instrumental", "chillout"),
        energy_target=0.5,
        target_tempo=100,
        mood_tags=("focused", "calm", "peaceful", "contemplative", "mellow"),
        boost=0.10,
    ),
    "evening": TimeProfile(
        preferred_genres=("rock", "electronic", "indie", "dance", "alternative", "hip-hop"),
        energy_target=0.7,
        target_tempo=130,
        mood_tags=("energetic", "party", "upbeat", "exciting", "passionate"),
        boost=0.15,
    ),
}

MAX_TIME_OF_DAY_BOOST = max(profile.boost for profile in TIME_PROFILES.values())


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(value, high))


def days_between(now: datetime, then: datetime) -> int:
    """Calendar days from then to now (negative when then is in the future)."""
    return (now.date() - then.date()).days


# =============================================================================
# Baseline components
# =============================================================================

def recency_weight(
    last_played: Optional[datetime],
    now: Optional[datetime] = None,
    half_life_days: Optional[float] = None,
) -> float:
    """
    Exponential recency decay.

    Args:
        last_played: Last play timestamp, None when never played
        now: Reference time (defaults to datetime.now())
        half_life_days: Decay half-life; defaults to the configured 7 days

    Returns:
        1.0 for never-played tracks, otherwise exp(-ln2 * days / half_life)
    """
    if last_played is None:
        return 1.0
    if now is None:
        now = datetime.now()
    half_life = DEFAULT_SETTINGS.half_life_days if half_life_days is None else half_life_days
    days = max(days_between(now, last_played), 0)
    if half_life <= 0:
        return 0.0 if days == 0 else 1.0
    return math.exp(-math.log(2) * days / half_life)


def normalize_star_rating(rating: Optional[float]) -> float:
    """Map a 0-5 star rating to [0, 1]; 0.5 when unrated."""
    if rating is None:
        return 0.5
    return _clamp(float(rating), 0.0, 5.0) / 5.0


def normalize_play_count(count: Optional[int], saturation: Optional[int] = None) -> float:
    """Map a play count to [0, 1], saturating at the configured count."""
    if not count or count <= 0:
        return 0.0
    if saturation is None:
        saturation = DEFAULT_SETTINGS.play_count_saturation
    saturation = max(saturation, 1)
    return min(count, saturation) / saturation


def fallback_score(
    rating: Optional[float],
    count: Optional[int],
    saturation: Optional[int] = None,
) -> float:
    return 0.6 * normalize_star_rating(rating) + 0.4 * normalize_play_count(count, saturation)


def skip_penalty(
    skip_count: Optional[int],
    play_count: Optional[int],
    max_penalty: float = 0.5,
) -> float:
    """
    Multiplier penalizing frequently skipped tracks.

    Examples:
        0 skips, 10 plays -> 1.0
        5 skips, 10 plays -> 0.75
        10 skips, 10 plays -> 0.5
    """
    if not skip_count or skip_count <= 0 or not play_count or play_count <= 0:
        return 1.0
    return 1.0 - min(skip_count / play_count, 1.0) * max_penalty


# =============================================================================
# Contextual components
# =============================================================================

def exploration_boost(
    view_count: Optional[int],
    added_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> float:
    """
    Additive boost in [0, 0.20] rewarding unplayed and newly added tracks.

    0 plays added today scores 0.20; 3 plays added 15 days ago scores 0.125;
    10 plays added two years ago scores 0.
    """
    boost = 0.0
    plays = view_count or 0
    if plays <= 0:
        boost += NEVER_PLAYED_BOOST
    elif plays <= LOW_PLAY_THRESHOLD:
        boost += LOW_PLAY_BOOST

    if added_at is not None:
        if now is None:
            now = datetime.now()
        age_days = max((now - added_at).total_seconds() / 86400.0, 0.0)
        if age_days <= NEW_ADDITION_DAYS:
            boost += NEW_ADDITION_BOOST * (1 - age_days / NEW_ADDITION_DAYS)

    return _clamp(boost, 0.0, MAX_EXPLORATION_BOOST)


def artist_spacing_penalty(
    artist: Optional[str],
    recent_artists: Sequence[str] = (),
    penalty: float = ARTIST_SPACING_PENALTY,
) -> float:
    if not artist or not recent_artists:
        return 1.0
    artist_lower = artist.lower()
    if any(recent.lower() == artist_lower for recent in recent_artists):
        return 1.0 - penalty
    return 1.0


def genre_spacing_penalty(
    genres: Sequence[str] = (),
    recent_genres: Sequence[str] = (),
    penalty: float = GENRE_SPACING_PENALTY,
) -> float:
    if not genres or not recent_genres:
        return 1.0
    recent = {g.lower() for g in recent_genres}
    if any(g.lower() in recent for g in genres):
        return 1.0 - penalty
    return 1.0


def genre_preferences_for_hour(
    hour: int,
    learned_patterns: Iterable[HourlyGenrePreference],
) -> Dict[str, float]:
    """Return genre (lowercased) -> learned weight for one hour of the day."""
    return {p.genre.lower(): p.weight for p in learned_patterns if p.hour == hour}


def _mood_overlap(moods: Sequence[str], mood_tags: Sequence[str]) -> bool:
    return any(tag in mood.lower() for mood in moods for tag in mood_tags)


def time_of_day_boost(
    genres: Sequence[str],
    moods: Sequence[str],
    energy: Optional[float],
    window: Optional[str],
    learned_patterns: Optional[Sequence[HourlyGenrePreference]] = None,
    now: Optional[datetime] = None,
) -> float:
    """
    Boost in [0, profile.boost] for tracks that fit the time-of-day window.

    With learned patterns for the current hour, 70% of the boost follows the
    strongest learned genre weight, 20% energy proximity and 10% mood overlap.
    Otherwise the static profile splits it 50/30/20 across genre membership,
    energy proximity and mood overlap.
    """
    profile = TIME_PROFILES.get(window or "")
    if profile is None:
        return 0.0

    if learned_patterns:
        genre_share, energy_share, mood_share = 0.7, 0.2, 0.1
        hour = (now or datetime.now()).hour
        weights = genre_preferences_for_hour(hour, learned_patterns)
        genre_fit = max((weights.get(g.lower(), 0.0) for g in genres), default=0.0)
    else:
        genre_share, energy_share, mood_share = 0.5, 0.3, 0.2
        genre_fit = 1.0 if any(
            preferred in g.lower() for g in genres for preferred in profile.preferred_genres
        ) else 0.0

    boost = profile.boost * genre_share * _clamp(genre_fit)

    if energy is not None:
        diff = abs(energy - profile.energy_target)
        if diff < ENERGY_BAND:
            boost += profile.boost * energy_share * (1 - diff / ENERGY_BAND)

    if _mood_overlap(moods, profile.mood_tags):
        boost += profile.boost * mood_share

    return _clamp(boost, 0.0, profile.boost)


def energy_alignment(track_energy: Optional[float], target_energy: Optional[float]) -> float:
    if track_energy is None or target_energy is None:
        return 0.5
    return 1.0 - min(abs(track_energy - target_energy), 1.0)


def tempo_match(
    track_tempo: Optional[float],
    target_tempo: Optional[float],
    threshold: float = TEMPO_THRESHOLD_BPM,
) -> float:
    """1.0 within threshold BPM, falling linearly to 0 at twice the threshold."""
    if not track_tempo or not target_tempo:
        return 0.5
    difference = abs(track_tempo - target_tempo)
    if difference <= threshold:
        return 1.0
    return max(0.0, 1.0 - (difference - threshold) / threshold)


def mood_similarity(
    track_vector: Optional[Mapping[str, float]],
    target_vector: Optional[Mapping[str, float]],
) -> float:
    """Cosine similarity of two mood vectors remapped to [0, 1]; 0.5 if unknown."""
    if not track_vector or not target_vector:
        return 0.5
    keys = sorted(set(track_vector) | set(target_vector))
    a = np.array([float(track_vector.get(k, 0.0)) for k in keys])
    b = np.array([float(target_vector.get(k, 0.0)) for k in keys])
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.5
    similarity = float(np.dot(a, b) / (norm_a * norm_b))
    return _clamp((similarity + 1.0) / 2.0)


async def genre_match_score(
    track_genres: Sequence[str],
    target_genres: Sequence[str],
    similarity=None,
) -> float:
    """
    Tiered genre match score.

    Exact matches score 0.7-1.0, substring overlaps 0.5-0.7, oracle-confirmed
    related genres 0.4-0.6 and no relation 0.3. Either list empty gives 0.5.

    Args:
        track_genres: Genres of the track being scored
        target_genres: Genres the playlist is aiming for
        similarity: Optional oracle with an async are_similar(a, b)
    """
    if not track_genres or not target_genres:
        return 0.5

    track_lower = [g.lower() for g in track_genres]
    target_lower = [g.lower() for g in target_genres]
    total = len(track_lower)

    exact = sum(1 for g in track_lower if g in target_lower)
    if exact:
        return 0.7 + 0.3 * min(exact / total, 1.0)

    partial = sum(
        1 for g in track_lower
        if any(g in t or t in g for t in target_lower)
    )
    if partial:
        return 0.5 + 0.2 * min(partial / total, 1.0)

    if similarity is not None:
        similar = 0
        for genre in track_lower:
            for target in target_lower:
                try:
                    related = await similarity.are_similar(genre, target)
                except Exception as e:
                    logger.warning(f"Genre similarity lookup failed for {genre!r}/{target!r}: {e}")
                    related = False
                if related:
                    similar += 1
                    break
        if similar:
            return 0.4 + 0.2 * min(similar / total, 1.0)

    return 0.3


def resolve_settings(settings: Optional[ScoringSettings]) -> ScoringSettings:
    return settings if settings is not None else DEFAULT_SETTINGS
