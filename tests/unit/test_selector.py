"""Tests for constrained playlist selection."""
from collections import Counter

import numpy as np
import pytest

from curator.exceptions import InvalidConstraintsError
from curator.playlist.selector import (
    PASS_ARTIST_CAP,
    PASS_DIVERSE,
    PASS_EXPLORATION,
    PASS_UNCONSTRAINED,
    SelectionConstraints,
    genre_family,
    log_genre_distribution,
    select_tracks,
)
from conftest import make_candidate


def _pool(layout):
    """layout: iterable of (artist, genre, count); scores descend across the whole pool."""
    candidates = []
    index = 0
    for artist, genre, count in layout:
        for _ in range(count):
            candidates.append(make_candidate(f"t{index:03d}", artist=artist, genres=(genre,)))
            index += 1
    total = len(candidates)
    return [
        make_candidate(c.track_id, artist=c.artist, genres=c.genres, score=1.0 - i / (total + 1))
        for i, c in enumerate(candidates)
    ]


# =============================================================================
# Relaxation passes
# =============================================================================

class TestRelaxation:
    def test_single_artist_fills_through_pass_three(self):
        pool = _pool([("Solo", "rock", 5)])
        result = select_tracks(pool, SelectionConstraints(target_count=5, exploration_rate=0.0))
        assert len(result.selected) == 5
        assert result.passes == (PASS_DIVERSE, PASS_DIVERSE, PASS_UNCONSTRAINED,
                                 PASS_UNCONSTRAINED, PASS_UNCONSTRAINED)
        assert not result.under_filled

    def test_three_artists_relax_after_caps_are_exhausted(self):
        pool = _pool([("A", "rock", 20), ("B", "jazz", 20), ("C", "pop", 20)])
        result = select_tracks(pool, SelectionConstraints(target_count=10, exploration_rate=0.0))
        assert len(result.selected) == 10
        assert result.pass_counts == {PASS_DIVERSE: 6, PASS_UNCONSTRAINED: 4}

        first_pass = [t for t, p in zip(result.selected, result.passes) if p == PASS_DIVERSE]
        assert max(Counter(t.artist for t in first_pass).values()) <= 2
        # Pass 3 only starts once passes 1 and 2 found nothing more
        assert list(result.passes) == sorted(result.passes)

    def test_many_artists_never_need_pass_three(self):
        pool = _pool([(f"Artist {i}", f"genre {i % 5}", 2) for i in range(20)])
        result = select_tracks(pool, SelectionConstraints(target_count=10, exploration_rate=0.0))
        assert len(result.selected) == 10
        assert PASS_UNCONSTRAINED not in result.passes

    def test_genre_cap_relaxes_in_pass_two(self):
        pool = _pool([(f"R{i}", "rock", 1) for i in range(10)] + [(f"J{i}", "jazz", 1) for i in range(10)])
        result = select_tracks(pool, SelectionConstraints(target_count=10, exploration_rate=0.0))
        assert result.pass_counts == {PASS_DIVERSE: 8, PASS_ARTIST_CAP: 2}
        first_pass = [t for t, p in zip(result.selected, result.passes) if p == PASS_DIVERSE]
        assert Counter(t.genre for t in first_pass) == {"rock": 4, "jazz": 4}

    def test_genre_families_share_one_cap(self):
        pool = _pool(
            [(f"R{i}", "rock", 1) for i in range(5)]
            + [(f"I{i}", "indie rock", 1) for i in range(5)]
            + [(f"J{i}", "jazz", 1) for i in range(10)]
        )
        families = {"rock": "indie rock", "indie rock": "indie rock"}
        result = select_tracks(
            pool, SelectionConstraints(target_count=10, exploration_rate=0.0, genre_families=families)
        )
        first_pass = [t for t, p in zip(result.selected, result.passes) if p == PASS_DIVERSE]
        rockish = [t for t in first_pass if genre_family(t, families) == "indie rock"]
        assert len(rockish) == 4

    def test_artist_key_ignores_case_and_whitespace(self):
        pool = [
            make_candidate("a", artist="Low", score=0.9),
            make_candidate("b", artist=" low ", score=0.8),
            make_candidate("c", artist="LOW", score=0.7),
            make_candidate("d", artist="Other", score=0.1, genres=("jazz",)),
        ]
        result = select_tracks(
            pool, SelectionConstraints(target_count=3, exploration_rate=0.0, genre_share_cap=1.0)
        )
        assert [t.track_id for t in result.selected] == ["a", "b", "d"]

    def test_tracks_without_genre_ignore_the_cap(self):
        pool = [make_candidate(f"t{i}", artist=f"A{i}", genres=(), score=1 - i / 10) for i in range(5)]
        result = select_tracks(pool, SelectionConstraints(target_count=5, exploration_rate=0.0))
        assert set(result.passes) == {PASS_DIVERSE}


# =============================================================================
# Pool edge cases
# =============================================================================

class TestPoolEdgeCases:
    def test_empty_pool(self):
        result = select_tracks([], SelectionConstraints(target_count=10))
        assert result.selected == ()
        assert result.under_filled

    def test_zero_target(self):
        result = select_tracks(_pool([("A", "rock", 3)]), SelectionConstraints(target_count=0))
        assert result.selected == ()
        assert not result.under_filled

    def test_excluded_tracks_are_never_selected(self):
        pool = _pool([(f"A{i}", "rock", 1) for i in range(6)])
        excluded = {pool[0].track_id, pool[1].track_id}
        result = select_tracks(
            pool, SelectionConstraints(target_count=6, excluded_track_ids=excluded, exploration_rate=0.5)
        )
        assert not excluded & {t.track_id for t in result.selected}
        assert len(result.selected) == 4
        assert result.under_filled

    def test_duplicate_track_ids_selected_once(self):
        pool = [make_candidate("dup", artist="A", score=0.9), make_candidate("dup", artist="A", score=0.8)]
        result = select_tracks(pool, SelectionConstraints(target_count=2, exploration_rate=0.0))
        assert [t.track_id for t in result.selected] == ["dup"]

    def test_no_track_selected_twice(self):
        pool = _pool([("A", "rock", 8), ("B", "jazz", 8)])
        result = select_tracks(pool, SelectionConstraints(target_count=12), random_seed=3)
        ids = [t.track_id for t in result.selected]
        assert len(ids) == len(set(ids))

    def test_playlist_entries(self):
        pool = _pool([("A", "rock", 1), ("B", "jazz", 1)])
        result = select_tracks(pool, SelectionConstraints(target_count=2, exploration_rate=0.0))
        entries = result.to_playlist_entries()
        assert [e["position"] for e in entries] == [1, 2]
        assert entries[0]["track_id"] == pool[0].track_id
        assert set(entries[0]) == {"track_id", "title", "artist", "album", "final_score", "position"}


# =============================================================================
# Exploration
# =============================================================================

class TestExploration:
    def _pool(self):
        top = [
            make_candidate(f"top{i}", artist=f"a{i}", genres=(f"g{i}",), score=0.9 - i * 0.01)
            for i in range(8)
        ]
        tail = [make_candidate(f"x{i}", artist="a0", genres=("g0",), score=0.3) for i in range(3)]
        tail.append(make_candidate("n1", artist="newbie", genres=("g0",), score=0.1))
        return top + tail

    def test_slots_follow_rate(self):
        result = select_tracks(self._pool(), SelectionConstraints(target_count=10, max_per_artist=1),
                               exploration_rate=0.2, random_seed=1)
        assert result.exploration_count == 2
        assert result.pass_counts[PASS_EXPLORATION] == 2
        assert result.exploration_rate == pytest.approx(0.2)

    def test_novel_artist_is_preferred(self):
        for seed in range(5):
            result = select_tracks(self._pool(), SelectionConstraints(target_count=10, max_per_artist=1),
                                   exploration_rate=0.2, random_seed=seed)
            explored = [t.track_id for t, p in zip(result.selected, result.passes) if p == PASS_EXPLORATION]
            assert "n1" in explored

    def test_same_seed_same_playlist(self):
        pool = _pool([(f"A{i}", f"g{i % 4}", 3) for i in range(10)])
        constraints = SelectionConstraints(target_count=12, exploration_rate=0.25)
        first = select_tracks(pool, constraints, random_seed=42)
        second = select_tracks(pool, constraints, random_seed=42)
        assert [t.track_id for t in first.selected] == [t.track_id for t in second.selected]

    def test_explicit_generator(self):
        pool = _pool([(f"A{i}", "rock", 2) for i in range(10)])
        constraints = SelectionConstraints(target_count=10, exploration_rate=0.3)
        a = select_tracks(pool, constraints, rng=np.random.default_rng(5))
        b = select_tracks(pool, constraints, rng=np.random.default_rng(5))
        assert a.selected == b.selected

    def test_constraint_rate_overrides_argument(self):
        pool = _pool([(f"A{i}", "rock", 1) for i in range(10)])
        result = select_tracks(pool, SelectionConstraints(target_count=10, exploration_rate=0.0),
                               exploration_rate=0.5)
        assert result.exploration_count == 0

    def test_default_rate(self):
        pool = _pool([(f"A{i}", f"g{i}", 1) for i in range(30)])
        result = select_tracks(pool, SelectionConstraints(target_count=20), random_seed=0)
        assert result.exploration_rate == pytest.approx(0.15)
        assert result.exploration_count == 3


# =============================================================================
# Validation
# =============================================================================

class TestConstraintValidation:
    @pytest.mark.parametrize("kwargs", [
        {"target_count": -1},
        {"target_count": 5, "max_per_artist": -1},
        {"target_count": 5, "genre_share_cap": 1.5},
        {"target_count": 5, "genre_share_cap": float("nan")},
        {"target_count": 5, "exploration_rate": 2.0},
    ])
    def test_invalid_constraints(self, kwargs):
        with pytest.raises(InvalidConstraintsError):
            SelectionConstraints(**kwargs)

    def test_invalid_rate_argument(self):
        with pytest.raises(InvalidConstraintsError):
            select_tracks([], SelectionConstraints(target_count=5), exploration_rate=-0.1)


def test_log_genre_distribution_warns_over_cap(caplog):
    pool = _pool([(f"A{i}", "rock", 1) for i in range(5)])
    result = select_tracks(pool, SelectionConstraints(target_count=5, exploration_rate=0.0))
    with caplog.at_level("WARNING"):
        log_genre_distribution(result, 0.4, "morning")
    assert "rock" in caplog.text
