"""
Constrained playlist selection.

Selection runs in two phases:

1. Exploitation: target x (1 - exploration_rate) tracks are picked in score
   order over three passes that progressively relax the diversity rules:
     pass 1  artist cap and genre-family share cap
     pass 2  artist cap only
     pass 3  no constraints
   Artist and genre counts carry over from one pass to the next.

2. Exploration: the remaining slots are filled at random from unselected
   candidates, preferring tracks whose artist or genre family is not yet in
   the playlist. Randomness comes from a numpy Generator so runs are
   reproducible for a given seed.

An empty or short pool yields a short selection, never an error. Only
malformed constraints raise.
"""
from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from curator.exceptions import InvalidConstraintsError
from curator.playlist.candidate import CandidateTrack
from curator.playlist.candidate_builder import sort_by_score

logger = logging.getLogger(__name__)

PASS_DIVERSE = 1
PASS_ARTIST_CAP = 2
PASS_UNCONSTRAINED = 3
PASS_EXPLORATION = 4

DEFAULT_EXPLORATION_RATE = 0.15
MIN_EXPLORATION_RATE = 0.10
MAX_EXPLORATION_RATE = 0.20
EXPLORATION_STEP = 0.03
LARGE_LIBRARY_THRESHOLD = 10_000
HIGH_SKIP_RATE = 0.30
SKIP_RATE_WINDOW_DAYS = 7


@dataclass(frozen=True)
class SelectionConstraints:
    """
    Per-run selection parameters.

    Attributes:
        target_count: Desired playlist length
        max_per_artist: Artist cap enforced by passes 1 and 2
        genre_share_cap: Max share of the exploitation picks per genre family (pass 1)
        excluded_track_ids: Tracks that must never be selected
        exploration_rate: Optional override of the exploration rate
        genre_families: Optional lowercase genre -> family representative map
    """
    target_count: int
    max_per_artist: int = 2
    genre_share_cap: float = 0.4
    excluded_track_ids: FrozenSet[str] = frozenset()
    exploration_rate: Optional[float] = None
    genre_families: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "excluded_track_ids", frozenset(self.excluded_track_ids))
        validate_constraints(self)


def validate_constraints(constraints: SelectionConstraints) -> None:
    """Raise InvalidConstraintsError for out-of-range parameters."""
    if constraints.target_count < 0:
        raise InvalidConstraintsError(f"target_count must be >= 0, got {constraints.target_count}")
    if constraints.max_per_artist < 0:
        raise InvalidConstraintsError(f"max_per_artist must be >= 0, got {constraints.max_per_artist}")
    cap = constraints.genre_share_cap
    if cap is None or math.isnan(cap) or not 0.0 <= cap <= 1.0:
        raise InvalidConstraintsError(f"genre_share_cap must be within [0, 1], got {cap}")
    rate = constraints.exploration_rate
    if rate is not None and (math.isnan(rate) or not 0.0 <= rate <= 1.0):
        raise InvalidConstraintsError(f"exploration_rate must be within [0, 1], got {rate}")


@dataclass(frozen=True)
class SelectionResult:
    """
    Outcome of one selection run.

    passes[i] is the pass that admitted selected[i] (PASS_EXPLORATION for
    exploration picks).
    """
    selected: Tuple[CandidateTrack, ...]
    passes: Tuple[int, ...]
    exploration_count: int
    exploration_rate: float
    target_count: int
    remaining: Tuple[CandidateTrack, ...] = ()

    @property
    def under_filled(self) -> bool:
        return len(self.selected) < self.target_count

    @property
    def pass_counts(self) -> Dict[int, int]:
        return dict(Counter(self.passes))

    def to_playlist_entries(self) -> List[dict]:
        """Ordered entries handed to persistence, position starting at 1."""
        return [
            {
                "track_id": track.track_id,
                "title": track.title,
                "artist": track.artist,
                "album": track.album,
                "final_score": track.final_score,
                "position": position,
            }
            for position, track in enumerate(self.selected, start=1)
        ]


def _artist_key(candidate: CandidateTrack) -> str:
    return candidate.artist.strip().lower()


def genre_family(candidate: CandidateTrack, families: Mapping[str, str]) -> Optional[str]:
    """Family of the candidate's primary genre, None when it has no genre."""
    if not candidate.genre:
        return None
    genre = candidate.genre.strip().lower()
    return families.get(genre, genre)


def _genre_limit(exploit_target: int, cap: float) -> int:
    if cap <= 0:
        return 0
    return max(1, math.floor(exploit_target * cap))


def select_tracks(
    candidates: Iterable[CandidateTrack],
    constraints: SelectionConstraints,
    *,
    exploration_rate: Optional[float] = None,
    rng: Optional[np.random.Generator] = None,
    random_seed: Optional[int] = None,
) -> SelectionResult:
    """
    Select a diverse playlist from a scored candidate pool.

    Args:
        candidates: Scored candidates, in any order
        constraints: Target size, caps and exclusions
        exploration_rate: Rate used when constraints carry no override
            (defaults to 15%)
        rng: numpy Generator for the exploration phase
        random_seed: Seed used when rng is not supplied

    Returns:
        SelectionResult; short when the pool runs out

    Raises:
        InvalidConstraintsError: constraints out of range
    """
    validate_constraints(constraints)
    if constraints.exploration_rate is not None:
        rate = constraints.exploration_rate
    elif exploration_rate is not None:
        rate = exploration_rate
    else:
        rate = DEFAULT_EXPLORATION_RATE
    if math.isnan(rate) or not 0.0 <= rate <= 1.0:
        raise InvalidConstraintsError(f"exploration_rate must be within [0, 1], got {rate}")
    if rng is None:
        rng = np.random.default_rng(random_seed)

    target = constraints.target_count
    excluded = constraints.excluded_track_ids
    families = constraints.genre_families

    available: List[CandidateTrack] = []
    seen_ids = set()
    for candidate in sort_by_score(candidates):
        if candidate.track_id in excluded or candidate.track_id in seen_ids:
            continue
        seen_ids.add(candidate.track_id)
        available.append(candidate)

    exploration_slots = math.floor(target * rate)
    exploit_target = target - exploration_slots
    genre_limit = _genre_limit(exploit_target, constraints.genre_share_cap)

    selected: List[CandidateTrack] = []
    passes: List[int] = []
    selected_ids = set()
    artist_counts: Counter = Counter()
    family_counts: Counter = Counter()

    pass_rules = (
        (PASS_DIVERSE, True, True),
        (PASS_ARTIST_CAP, True, False),
        (PASS_UNCONSTRAINED, False, False),
    )
    for pass_number, enforce_artist, enforce_genre in pass_rules:
        if len(selected) >= exploit_target:
            break
        for candidate in available:
            if len(selected) >= exploit_target:
                break
            if candidate.track_id in selected_ids:
                continue
            artist = _artist_key(candidate)
            if enforce_artist and artist_counts[artist] >= constraints.max_per_artist:
                continue
            family = genre_family(candidate, families)
            if enforce_genre and family is not None and family_counts[family] >= genre_limit:
                continue

            selected.append(candidate)
            passes.append(pass_number)
            selected_ids.add(candidate.track_id)
            artist_counts[artist] += 1
            if family is not None:
                family_counts[family] += 1

    exploration = _select_exploration(
        [c for c in available if c.track_id not in selected_ids],
        selected,
        target - len(selected),
        families,
        rng,
    )
    for candidate in exploration:
        selected.append(candidate)
        passes.append(PASS_EXPLORATION)
        selected_ids.add(candidate.track_id)

    result = SelectionResult(
        selected=tuple(selected),
        passes=tuple(passes),
        exploration_count=len(exploration),
        exploration_rate=rate,
        target_count=target,
        remaining=tuple(c for c in available if c.track_id not in selected_ids),
    )

    counts = result.pass_counts
    logger.debug(
        f"Selected {len(selected)}/{target} from {len(available)} candidates "
        f"(pass1={counts.get(PASS_DIVERSE, 0)}, pass2={counts.get(PASS_ARTIST_CAP, 0)}, "
        f"pass3={counts.get(PASS_UNCONSTRAINED, 0)}, explore={len(exploration)}, rate={rate:.2f})"
    )
    return result


def _select_exploration(
    pool: List[CandidateTrack],
    already_selected: Sequence[CandidateTrack],
    slots: int,
    families: Mapping[str, str],
    rng: np.random.Generator,
) -> List[CandidateTrack]:
    """
    Two-tier random sampler.

    Each pick is uniform over candidates that bring a new artist or genre
    family; once none are left it is uniform over the rest.
    """
    if slots <= 0 or not pool:
        return []

    seen_artists = {_artist_key(c) for c in already_selected}
    seen_families = {genre_family(c, families) for c in already_selected} - {None}
    remaining = list(pool)
    picks: List[CandidateTrack] = []

    while len(picks) < slots and remaining:
        novel = [
            index for index, candidate in enumerate(remaining)
            if _artist_key(candidate) not in seen_artists
            or (genre_family(candidate, families) not in seen_families
                and genre_family(candidate, families) is not None)
        ]
        choices = novel if novel else list(range(len(remaining)))
        index = choices[int(rng.integers(len(choices)))]
        candidate = remaining.pop(index)
        picks.append(candidate)
        seen_artists.add(_artist_key(candidate))
        family = genre_family(candidate, families)
        if family is not None:
            seen_families.add(family)

    return picks


def calculate_exploration_rate(
    tracker=None,
    *,
    discovery_enabled: bool = False,
) -> float:
    """
    Exploration rate tuned to the listener, within [10%, 20%].

    Baseline 15%; +3 points for libraries over 10,000 tracks, +3 points for a
    7-day skip rate over 30%, -3 points when a discovery playlist is enabled.
    Falls back to 15% if the tracker is missing or fails.

    Args:
        tracker: Object with get_total_library_size() and
            get_recent_skip_rate(window_days)
        discovery_enabled: Whether a dedicated discovery playlist runs
    """
    if tracker is None:
        logger.debug("No behavior tracker, using baseline exploration rate")
        return DEFAULT_EXPLORATION_RATE

    try:
        library_size = tracker.get_total_library_size()
        skip_rate = tracker.get_recent_skip_rate(SKIP_RATE_WINDOW_DAYS)
    except Exception as e:
        logger.warning(f"Failed to calculate dynamic exploration rate, using baseline: {e}")
        return DEFAULT_EXPLORATION_RATE

    rate = DEFAULT_EXPLORATION_RATE
    if library_size > LARGE_LIBRARY_THRESHOLD:
        rate += EXPLORATION_STEP
    if skip_rate > HIGH_SKIP_RATE:
        rate += EXPLORATION_STEP
    if discovery_enabled:
        rate -= EXPLORATION_STEP
    rate = max(MIN_EXPLORATION_RATE, min(rate, MAX_EXPLORATION_RATE))

    logger.debug(
        f"Exploration rate {rate:.2f} (library={library_size}, skip_rate={skip_rate:.2f}, "
        f"discovery={discovery_enabled})"
    )
    return rate


def log_genre_distribution(result: SelectionResult, genre_share_cap: float, window: str = "") -> None:
    """Log the primary-genre mix of a selection and warn about genres over the cap."""
    if not result.selected:
        return
    counts = Counter(track.genre for track in result.selected if track.genre)
    total = len(result.selected)
    limit = math.floor(result.target_count * genre_share_cap)
    top = ", ".join(f"{genre} {count / total:.0%}" for genre, count in counts.most_common(5))
    logger.info(f"{window or 'playlist'} genre mix: {top or '(no genres)'}")
    over = [genre for genre, count in counts.items() if count > limit]
    if over:
        logger.warning(
            f"{window or 'playlist'}: genres over the {genre_share_cap:.0%} share cap: {', '.join(sorted(over))}"
        )
