"""Tests for superposition and elastic trajectory distances."""

from __future__ import annotations

import numpy as np
import pytest
from hypothesis import given
from hypothesis import strategies as st
from hypothesis.extra.numpy import arrays
from numpy.testing import assert_allclose

from ichnospatial import TrackwayValidationError
from ichnospatial.similarity import dtw_distance, frechet_distance, superpose

coords = arrays(
    np.float64,
    st.tuples(st.integers(min_value=1, max_value=8), st.just(2)),
    elements=st.floats(min_value=-50, max_value=50),
)


class TestSuperpose:
    """Tests for superpose()."""

    def test_none_copies(self) -> None:
        traj = np.array([[1.0, 2.0], [3.0, 4.0]])
        result = superpose(traj, "none")
        assert_allclose(result, traj)
        result[0, 0] = 99.0
        assert traj[0, 0] == 1.0

    def test_centroid(self) -> None:
        result = superpose(np.array([[0.0, 0.0], [2.0, 4.0]]), "centroid")
        assert_allclose(result, [[-1.0, -2.0], [1.0, 2.0]])

    def test_origin(self) -> None:
        result = superpose(np.array([[5.0, 5.0], [6.0, 7.0]]), "origin")
        assert_allclose(result, [[0.0, 0.0], [1.0, 2.0]])

    def test_capitalized_alias(self) -> None:
        result = superpose(np.array([[5.0, 5.0], [6.0, 7.0]]), "Origin")
        assert_allclose(result[0], [0.0, 0.0])

    def test_unknown_method(self) -> None:
        with pytest.raises(TrackwayValidationError, match="superposition must be one of"):
            superpose(np.zeros((2, 2)), "procrustes")


class TestDTW:
    """Tests for dtw_distance()."""

    def test_identical_is_zero(self, zigzag_trajectory) -> None:
        assert dtw_distance(zigzag_trajectory, zigzag_trajectory) == 0.0

    def test_offset_line(self) -> None:
        a = np.column_stack([np.arange(4, dtype=np.float64), np.zeros(4)])
        assert_allclose(dtw_distance(a, a + [0.0, 2.0]), 8.0)

    def test_different_lengths(self) -> None:
        a = np.array([[0.0, 0.0], [1.0, 0.0], [2.0, 0.0]])
        b = np.array([[0.0, 0.0], [2.0, 0.0]])
        # optimal alignment: (0,0)-(0,0), (1,0)-either at cost 1, (2,0)-(2,0)
        assert_allclose(dtw_distance(a, b), 1.0)

    def test_missing_coordinates_give_nan(self) -> None:
        a = np.array([[0.0, 0.0], [np.nan, 1.0]])
        assert np.isnan(dtw_distance(a, np.zeros((2, 2))))
        assert np.isnan(dtw_distance(np.empty((0, 2)), np.zeros((2, 2))))

    @given(coords, coords)
    def test_symmetric_and_nonnegative(self, a, b) -> None:
        d_ab = dtw_distance(a, b)
        assert d_ab >= 0.0
        assert_allclose(d_ab, dtw_distance(b, a), rtol=1e-12, atol=1e-12)


class TestFrechet:
    """Tests for frechet_distance()."""

    def test_offset_line(self) -> None:
        a = np.column_stack([np.arange(4, dtype=np.float64), np.zeros(4)])
        assert_allclose(frechet_distance(a, a + [0.0, 2.0]), 2.0)

    def test_endpoints_bound(self) -> None:
        a = np.array([[0.0, 0.0], [1.0, 0.0]])
        b = np.array([[0.0, 0.0], [0.5, 0.0], [4.0, 0.0]])
        # the last points must be aligned
        assert_allclose(frechet_distance(a, b), 3.0)

    def test_missing_coordinates_give_nan(self) -> None:
        a = np.array([[0.0, 0.0], [np.nan, 1.0]])
        assert np.isnan(frechet_distance(a, np.zeros((2, 2))))

    @given(coords, coords)
    def test_not_larger_than_dtw(self, a, b) -> None:
        # the maximum cost along an alignment never exceeds its sum
        assert frechet_distance(a, b) <= dtw_distance(a, b) + 1e-9

    @given(coords, coords)
    def test_symmetric(self, a, b) -> None:
        assert_allclose(frechet_distance(a, b), frechet_distance(b, a))
