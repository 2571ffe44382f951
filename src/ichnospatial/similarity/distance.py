"""Elastic distances between trajectories.

Both distances align two point sequences monotonically from start to end and
accept sequences of different lengths. Dynamic time warping sums the local
Euclidean costs along the optimal alignment; the discrete Fréchet distance
takes the largest local cost along the alignment that minimizes it.
Neither is normalized by length.
"""

from __future__ import annotations

from typing import Literal

import numpy as np
from numpy.typing import NDArray
from scipy.spatial.distance import cdist

from ichnospatial.validation import validate_choice, validate_trajectory

__all__ = [
    "SUPERPOSITIONS",
    "dtw_distance",
    "frechet_distance",
    "normalize_superposition",
    "superpose",
]

SUPERPOSITIONS = ("none", "centroid", "origin")

_SUPERPOSITION_ALIASES = {"None": "none", "Centroid": "centroid", "Origin": "origin"}


def normalize_superposition(method: str) -> str:
    """Map accepted spellings to ``"none"``, ``"centroid"`` or ``"origin"``."""
    return validate_choice(
        _SUPERPOSITION_ALIASES.get(method, method), "superposition", SUPERPOSITIONS
    )


def superpose(
    trajectory: NDArray[np.float64],
    method: Literal["none", "centroid", "origin"] = "none",
) -> NDArray[np.float64]:
    """
    Translate a trajectory before comparing shapes.

    Parameters
    ----------
    trajectory : NDArray[np.float64], shape (n_points, 2)
        Trajectory to translate.
    method : {"none", "centroid", "origin"}, default="none"
        ``"centroid"`` subtracts the mean point, ``"origin"`` subtracts the
        first point, ``"none"`` returns the coordinates unchanged.

    Returns
    -------
    NDArray[np.float64], shape (n_points, 2)
        A new array.

    Examples
    --------
    >>> import numpy as np
    >>> superpose(np.array([[2.0, 1.0], [4.0, 3.0]]), "origin")
    array([[0., 0.],
           [2., 2.]])
    """
    method = normalize_superposition(method)  # type: ignore[assignment]
    trajectory = np.array(trajectory, dtype=np.float64)
    if method == "none" or len(trajectory) == 0:
        return trajectory
    if method == "centroid":
        return trajectory - trajectory.mean(axis=0)
    return trajectory - trajectory[0]


def dtw_distance(seq1: NDArray[np.float64], seq2: NDArray[np.float64]) -> float:
    """Compute Dynamic Time Warping distance between two sequences.

    Uses the symmetric step pattern (insertion, deletion, match) with
    Euclidean local cost.

    Parameters
    ----------
    seq1 : NDArray[np.float64], shape (n1, 2)
        First sequence of positions.
    seq2 : NDArray[np.float64], shape (n2, 2)
        Second sequence of positions.

    Returns
    -------
    float
        Unnormalized DTW distance; NaN if either sequence is empty or has
        missing coordinates.

    Examples
    --------
    >>> import numpy as np
    >>> a = np.array([[0.0, 0.0], [1.0, 0.0], [2.0, 0.0]])
    >>> dtw_distance(a, a + [0.0, 1.0])
    3.0
    """
    seq1 = validate_trajectory(seq1, "seq1", min_points=0, allow_nan=True)
    seq2 = validate_trajectory(seq2, "seq2", min_points=0, allow_nan=True)
    if len(seq1) == 0 or len(seq2) == 0:
        return np.nan
    if np.any(np.isnan(seq1)) or np.any(np.isnan(seq2)):
        return np.nan

    cost = cdist(seq1, seq2)
    n1, n2 = cost.shape

    dtw_matrix = np.full((n1 + 1, n2 + 1), np.inf)
    dtw_matrix[0, 0] = 0.0
    for i in range(1, n1 + 1):
        for j in range(1, n2 + 1):
            dtw_matrix[i, j] = cost[i - 1, j - 1] + min(
                dtw_matrix[i - 1, j],  # insertion
                dtw_matrix[i, j - 1],  # deletion
                dtw_matrix[i - 1, j - 1],  # match
            )

    return float(dtw_matrix[n1, n2])


def frechet_distance(seq1: NDArray[np.float64], seq2: NDArray[np.float64]) -> float:
    """Discrete Fréchet distance between two sequences.

    The smallest, over monotonic alignments of the two sequences, of the
    largest Euclidean distance between aligned points (Eiter & Mannila,
    1994).

    Parameters
    ----------
    seq1 : NDArray[np.float64], shape (n1, 2)
    seq2 : NDArray[np.float64], shape (n2, 2)

    Returns
    -------
    float
        Fréchet distance; NaN if either sequence is empty or has missing
        coordinates.

    Examples
    --------
    >>> import numpy as np
    >>> a = np.array([[0.0, 0.0], [1.0, 0.0], [2.0, 0.0]])
    >>> frechet_distance(a, a + [0.0, 1.0])
    1.0
    """
    seq1 = validate_trajectory(seq1, "seq1", min_points=0, allow_nan=True)
    seq2 = validate_trajectory(seq2, "seq2", min_points=0, allow_nan=True)
    if len(seq1) == 0 or len(seq2) == 0:
        return np.nan
    if np.any(np.isnan(seq1)) or np.any(np.isnan(seq2)):
        return np.nan

    cost = cdist(seq1, seq2)
    n1, n2 = cost.shape

    coupling = np.empty_like(cost)
    coupling[0, 0] = cost[0, 0]
    for i in range(1, n1):
        coupling[i, 0] = max(coupling[i - 1, 0], cost[i, 0])
    for j in range(1, n2):
        coupling[0, j] = max(coupling[0, j - 1], cost[0, j])
    for i in range(1, n1):
        for j in range(1, n2):
            coupling[i, j] = max(
                min(coupling[i - 1, j], coupling[i, j - 1], coupling[i - 1, j - 1]),
                cost[i, j],
            )

    return float(coupling[n1 - 1, n2 - 1])
