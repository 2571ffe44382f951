"""Tests for crossing points between trajectory polylines."""

from __future__ import annotations

import numpy as np
from numpy.testing import assert_allclose

from ichnospatial.similarity import count_intersections, intersection_points


class TestIntersectionPoints:
    """Tests for intersection_points() and count_intersections()."""

    def test_single_crossing(self, crossing_tracks) -> None:
        a, b = crossing_tracks.trajectories
        points = intersection_points(a, b)
        assert_allclose(points, [[1.5, 1.5]])

    def test_parallel_never_cross(self, parallel_tracks) -> None:
        a, b = parallel_tracks.trajectories
        assert count_intersections(a, b) == 0
        assert intersection_points(a, b).shape == (0, 2)

    def test_crossing_at_shared_vertex_counted_once(self) -> None:
        a = np.array([[0.0, 0.0], [1.0, 1.0], [2.0, 2.0]])
        b = np.array([[0.0, 2.0], [1.0, 1.0], [2.0, 0.0]])
        assert count_intersections(a, b) == 1

    def test_collinear_overlap_excluded(self) -> None:
        a = np.array([[0.0, 0.0], [2.0, 0.0]])
        b = np.array([[1.0, 0.0], [3.0, 0.0]])
        assert count_intersections(a, b) == 0

    def test_multiple_crossings(self) -> None:
        line = np.array([[0.0, 0.0], [10.0, 0.0]])
        zigzag = np.array([[1.0, 1.0], [2.0, -1.0], [3.0, 1.0], [4.0, -1.0]])
        assert_allclose(
            intersection_points(line, zigzag), [[1.5, 0.0], [2.5, 0.0], [3.5, 0.0]]
        )

    def test_touching_endpoint_counts(self) -> None:
        a = np.array([[0.0, 0.0], [2.0, 0.0]])
        b = np.array([[1.0, 0.0], [1.0, 2.0]])
        assert count_intersections(a, b) == 1

    def test_symmetric(self, crossing_tracks) -> None:
        a, b = crossing_tracks.trajectories
        assert count_intersections(a, b) == count_intersections(b, a)

    def test_short_or_missing(self) -> None:
        a = np.array([[0.0, 0.0], [2.0, 2.0]])
        assert count_intersections(a, np.array([[1.0, 1.0]])) == 0
        b = np.array([[0.0, 2.0], [np.nan, np.nan], [2.0, 0.0]])
        assert count_intersections(a, b) == 0
