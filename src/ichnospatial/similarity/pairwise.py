"""Pairwise metric matrices over a trackway collection.

Matrices are filled by iterating over the unordered pairs (i < j) once and
writing both ``[i, j]`` and ``[j, i]`` from the same value, so they are
symmetric by construction. The diagonal is NaN.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from itertools import combinations
from typing import Literal

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from ichnospatial.similarity.distance import (
    dtw_distance,
    frechet_distance,
    normalize_superposition,
    superpose,
)
from ichnospatial.similarity.intersection import count_intersections
from ichnospatial.trackway import TrackwayCollection, default_track_names

__all__ = [
    "dtw_matrix",
    "frechet_matrix",
    "intersection_matrix",
    "pairwise_matrix",
    "upper_triangle_values",
]

PairMetric = Callable[[NDArray[np.float64], NDArray[np.float64]], float]


def pairwise_matrix(
    trajectories: Sequence[NDArray[np.float64]],
    metric: PairMetric,
    names: Sequence[str] | None = None,
) -> pd.DataFrame:
    """
    Symmetric matrix of a pairwise metric.

    Parameters
    ----------
    trajectories : sequence of NDArray[np.float64]
        Trajectories to compare.
    metric : callable
        ``metric(a, b) -> float``; evaluated once per unordered pair.
    names : sequence of str, optional
        Row and column labels. Defaults to ``Track_01 ...``.

    Returns
    -------
    pd.DataFrame, shape (n, n)
        ``M[i, j] == M[j, i]`` and NaN diagonal.
    """
    n = len(trajectories)
    labels = list(names) if names is not None else list(default_track_names(n))
    values = np.full((n, n), np.nan)
    for i, j in combinations(range(n), 2):
        values[i, j] = values[j, i] = metric(trajectories[i], trajectories[j])
    return pd.DataFrame(values, index=labels, columns=labels)


def upper_triangle_values(matrix: pd.DataFrame | NDArray[np.float64]) -> NDArray[np.float64]:
    """Entries above the diagonal in row-major order, one per unordered pair."""
    values = np.asarray(matrix, dtype=np.float64)
    return values[np.triu_indices(values.shape[0], k=1)]


def _superposed(
    collection: TrackwayCollection, superposition: str
) -> list[NDArray[np.float64]]:
    method = normalize_superposition(superposition)
    return [superpose(t, method) for t in collection.trajectories]  # type: ignore[arg-type]


def dtw_matrix(
    collection: TrackwayCollection,
    *,
    superposition: Literal["none", "centroid", "origin"] = "none",
) -> pd.DataFrame:
    """Pairwise DTW distances after optional superposition."""
    return pairwise_matrix(
        _superposed(collection, superposition), dtw_distance, collection.names
    )


def frechet_matrix(
    collection: TrackwayCollection,
    *,
    superposition: Literal["none", "centroid", "origin"] = "none",
) -> pd.DataFrame:
    """Pairwise discrete Fréchet distances after optional superposition."""
    return pairwise_matrix(
        _superposed(collection, superposition), frechet_distance, collection.names
    )


def intersection_matrix(collection: TrackwayCollection) -> pd.DataFrame:
    """
    Pairwise counts of unique crossing points.

    Examples
    --------
    >>> import numpy as np
    >>> from ichnospatial import TrackwayCollection
    >>> tracks = TrackwayCollection.from_trajectories(
    ...     [
    ...         np.array([[0.0, 0.0], [3.0, 3.0]]),
    ...         np.array([[0.0, 3.0], [3.0, 0.0]]),
    ...     ]
    ... )
    >>> float(intersection_matrix(tracks).loc["Track_01", "Track_02"])
    1.0
    """
    return pairwise_matrix(
        collection.trajectories,
        lambda a, b: float(count_intersections(a, b)),
        collection.names,
    )
