"""Tests for pairwise metric matrices."""

from __future__ import annotations

import numpy as np
import pandas as pd
from hypothesis import given, settings
from hypothesis import strategies as st
from numpy.testing import assert_allclose

from ichnospatial import TrackwayCollection
from ichnospatial.similarity import (
    dtw_distance,
    dtw_matrix,
    frechet_matrix,
    intersection_matrix,
    pairwise_matrix,
    upper_triangle_values,
)


class TestPairwiseMatrix:
    """Tests for pairwise_matrix() and upper_triangle_values()."""

    def test_labels_and_diagonal(self, wiggly_tracks) -> None:
        matrix = dtw_matrix(wiggly_tracks)
        assert isinstance(matrix, pd.DataFrame)
        assert list(matrix.index) == list(wiggly_tracks.names)
        assert list(matrix.columns) == list(wiggly_tracks.names)
        assert np.all(np.isnan(np.diag(matrix.to_numpy())))

    def test_metric_called_once_per_pair(self, wiggly_tracks) -> None:
        calls = []

        def metric(a, b):
            calls.append(1)
            return 1.0

        pairwise_matrix(wiggly_tracks.trajectories, metric)
        assert len(calls) == 3

    def test_default_names(self) -> None:
        matrix = pairwise_matrix([np.zeros((2, 2))] * 2, lambda a, b: 0.0)
        assert list(matrix.index) == ["Track_01", "Track_02"]

    def test_upper_triangle_order(self) -> None:
        values = np.arange(9, dtype=np.float64).reshape(3, 3)
        assert_allclose(upper_triangle_values(values), [1.0, 2.0, 5.0])

    @settings(deadline=None)
    @given(
        st.integers(min_value=2, max_value=5),
        st.integers(min_value=0, max_value=2**32 - 1),
    )
    def test_symmetric(self, n, seed) -> None:
        rng = np.random.default_rng(seed)
        trajectories = [rng.normal(size=(int(rng.integers(2, 6)), 2)) for _ in range(n)]
        values = pairwise_matrix(trajectories, dtw_distance).to_numpy()
        assert_allclose(values, values.T, equal_nan=True)


class TestCollectionMatrices:
    """Tests for dtw_matrix(), frechet_matrix() and intersection_matrix()."""

    def test_superposition_removes_offset(self, parallel_tracks) -> None:
        raw = dtw_matrix(parallel_tracks)
        aligned = dtw_matrix(parallel_tracks, superposition="origin")
        assert raw.iloc[0, 1] > 0
        assert_allclose(aligned.iloc[0, 1], 0.0, atol=1e-12)

    def test_frechet_parallel(self, parallel_tracks) -> None:
        assert_allclose(frechet_matrix(parallel_tracks).iloc[0, 1], 1.0)

    def test_intersection_counts(self, crossing_tracks, parallel_tracks) -> None:
        assert intersection_matrix(crossing_tracks).iloc[0, 1] == 1.0
        assert intersection_matrix(parallel_tracks).iloc[1, 0] == 0.0

    def test_three_tracks(self) -> None:
        tracks = TrackwayCollection.from_trajectories(
            [
                np.array([[0.0, 0.0], [4.0, 0.0]]),
                np.array([[1.0, -1.0], [1.0, 1.0]]),
                np.array([[3.0, -1.0], [3.0, 1.0]]),
            ]
        )
        matrix = intersection_matrix(tracks).to_numpy()
        assert_allclose(upper_triangle_values(matrix), [1.0, 1.0, 0.0])
