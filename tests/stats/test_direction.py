"""Tests for the comparison of trackway directions."""

from __future__ import annotations

import warnings

import numpy as np
import pytest

from ichnospatial import TrackwayCollection, TrackwayValidationError
from ichnospatial.stats import DirectionTestResult, test_direction
from ichnospatial.validation import InsufficientDataError


def _walk(headings: np.ndarray, origin=(0.0, 0.0)) -> np.ndarray:
    """Trajectory with unit steps along the given headings."""
    steps = np.column_stack([np.cos(headings), np.sin(headings)])
    return np.vstack([origin, np.asarray(origin) + np.cumsum(steps, axis=0)])


def _tracks(*bearings: float, n_steps: int = 20, sd: float = 0.15, seed: int = 0):
    rng = np.random.default_rng(seed)
    return TrackwayCollection.from_trajectories(
        [
            _walk(bearing + rng.normal(0.0, sd, n_steps), origin=(0.0, 3.0 * i))
            for i, bearing in enumerate(bearings)
        ]
    )


class TestWatsonWilliams:
    """Tests for the default parametric analysis."""

    def test_different_directions(self) -> None:
        result = test_direction(_tracks(0.0, np.pi / 2))
        assert isinstance(result, DirectionTestResult)
        assert result.analysis == "watson_williams"
        assert result.global_test.method == "Watson-Williams"
        assert result.is_significant

    def test_same_direction_not_significant(self) -> None:
        result = test_direction(_tracks(0.3, 0.3, 0.3, seed=1))
        assert result.global_test.p_value > 0.01

    def test_pairwise_table(self) -> None:
        result = test_direction(_tracks(0.0, 0.0, np.pi, seed=2))
        pairwise = result.pairwise
        assert list(pairwise.columns) == [
            "track1",
            "track2",
            "statistic",
            "p_value",
            "method",
            "p_adj",
        ]
        assert len(pairwise) == 3
        assert np.all(pairwise["p_adj"] >= pairwise["p_value"] - 1e-15)
        opposite = pairwise[pairwise["track2"] == "Track_03"]
        assert np.all(opposite["p_adj"] < 0.05)
        assert "pairs differ after Holm" in result.summary()

    def test_assumption_table(self) -> None:
        result = test_direction(_tracks(0.0, 1.0))
        assumptions = result.assumptions
        assert list(assumptions.index) == ["Track_01", "Track_02"]
        assert list(assumptions.columns) == ["n", "rayleigh_z", "rayleigh_p", "kappa"]
        assert np.all(assumptions["n"] == 20)
        assert result.kappa_range >= 0
        assert result.kappa_ratio >= 1

    def test_uniform_track_warns(self) -> None:
        rng = np.random.default_rng(3)
        tracks = TrackwayCollection.from_trajectories(
            [
                _walk(rng.normal(0.0, 0.1, 20)),
                _walk(np.linspace(-np.pi, np.pi, 20, endpoint=False)),
            ]
        )
        with pytest.warns(UserWarning, match="near-uniform directions"):
            test_direction(tracks)

    def test_heterogeneous_kappa_warns(self) -> None:
        rng = np.random.default_rng(4)
        tracks = TrackwayCollection.from_trajectories(
            [_walk(rng.normal(0.0, 0.05, 30)), _walk(rng.normal(0.0, 0.6, 30))]
        )
        with pytest.warns(UserWarning, match=r"heterogeneous.*ratio > 2"):
            test_direction(tracks)


class TestWatsonWheeler:
    """Tests for the rank-based analysis."""

    def test_alias_and_asymptotic(self) -> None:
        result = test_direction(
            _tracks(0.0, np.pi / 2, seed=5), analysis="Watson-Wheeler", permutation=False
        )
        assert result.analysis == "watson_wheeler"
        assert result.global_test.method == "Watson-Wheeler"
        assert result.global_test.df == (2.0,)
        assert result.is_significant

    def test_small_groups_use_permutation(self) -> None:
        tracks = _tracks(0.0, np.pi, n_steps=6, seed=6)
        with pytest.warns(UserWarning, match="some groups have n < 10"):
            result = test_direction(
                tracks, analysis="watson_wheeler", n_permutations=199, rng=0
            )
        assert result.global_test.method == "Watson-Wheeler (permutation, B=199)"
        # few labelings of two small groups are as extreme as the observed one
        assert 1 / 200 <= result.global_test.p_value < 0.05

    def test_ties_use_permutation(self) -> None:
        # straight walks: every heading of a trackway is identical
        tracks = TrackwayCollection.from_trajectories(
            [_walk(np.zeros(12)), _walk(np.full(12, 2.0), origin=(0.0, 5.0))]
        )
        with pytest.warns(UserWarning, match="Ties detected"):
            result = test_direction(
                tracks, analysis="watson_wheeler", n_permutations=99, rng=1
            )
        assert "permutation" in result.global_test.method

    def test_permutation_reproducible(self) -> None:
        tracks = _tracks(0.0, 0.5, n_steps=8, seed=7)
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", UserWarning)
            a = test_direction(tracks, analysis="watson_wheeler", rng=3, n_permutations=99)
            b = test_direction(tracks, analysis="watson_wheeler", rng=3, n_permutations=99)
        assert a.global_test.p_value == b.global_test.p_value


class TestInputHandling:
    """Tests for dropped trackways and invalid input."""

    def test_short_tracks_dropped(self) -> None:
        base = _tracks(0.0, 1.0, seed=8)
        tracks = TrackwayCollection.from_trajectories(
            [*base.trajectories, _walk(np.zeros(3))]
        )
        with pytest.warns(UserWarning, match="3 or fewer directions: Track_03"):
            result = test_direction(tracks)
        assert result.excluded == ("Track_03",)
        assert len(result.assumptions) == 2

    def test_not_enough_tracks(self) -> None:
        tracks = TrackwayCollection.from_trajectories(
            [_walk(np.zeros(10)), _walk(np.zeros(2))]
        )
        with (
            pytest.warns(UserWarning, match="removed from the analysis"),
            pytest.raises(InsufficientDataError, match="Not enough tracks"),
        ):
            test_direction(tracks)

    def test_unknown_analysis(self) -> None:
        with pytest.raises(TrackwayValidationError, match="analysis must be one of"):
            test_direction(_tracks(0.0, 1.0), analysis="rao")
