"""Crossing points between trajectory polylines."""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from ichnospatial.validation import validate_trajectory

__all__ = ["count_intersections", "intersection_points"]

# |cross(r, s)| below this marks parallel or collinear segments
_PARALLEL_TOL = 1e-12
# Decimals kept when de-duplicating crossing points
_DEDUP_DECIMALS = 10


def intersection_points(
    traj1: NDArray[np.float64],
    traj2: NDArray[np.float64],
) -> NDArray[np.float64]:
    """
    Unique crossing points between two polylines.

    Every segment of ``traj1`` is tested against every segment of ``traj2``
    with the determinant test: for segments p + t r and q + u s the
    crossing parameters are t = (q - p) x s / (r x s) and
    u = (q - p) x r / (r x s), and the segments cross when both lie in
    [0, 1]. Parallel and collinear segment pairs (r x s = 0) are excluded.
    A crossing at a shared vertex is reported by several segment pairs and
    is kept once.

    Parameters
    ----------
    traj1, traj2 : NDArray[np.float64], shape (n, 2)
        Polylines. Segments with missing coordinates never cross.

    Returns
    -------
    NDArray[np.float64], shape (n_crossings, 2)
        Crossing points, sorted lexicographically.
    """
    a = validate_trajectory(traj1, "traj1", min_points=0, allow_nan=True)
    b = validate_trajectory(traj2, "traj2", min_points=0, allow_nan=True)
    if len(a) < 2 or len(b) < 2:
        return np.empty((0, 2), dtype=np.float64)

    p, r = a[:-1, None, :], np.diff(a, axis=0)[:, None, :]
    q, s = b[None, :-1, :], np.diff(b, axis=0)[None, :, :]

    denom = r[..., 0] * s[..., 1] - r[..., 1] * s[..., 0]
    qp = q - p
    with np.errstate(divide="ignore", invalid="ignore"):
        t = (qp[..., 0] * s[..., 1] - qp[..., 1] * s[..., 0]) / denom
        u = (qp[..., 0] * r[..., 1] - qp[..., 1] * r[..., 0]) / denom

    hit = (
        (np.abs(denom) > _PARALLEL_TOL)
        & (t >= 0.0)
        & (t <= 1.0)
        & (u >= 0.0)
        & (u <= 1.0)
    )
    if not np.any(hit):
        return np.empty((0, 2), dtype=np.float64)

    points = (p + t[..., None] * r)[hit]
    # adding 0.0 folds -0.0 into 0.0 before de-duplication
    return np.unique(np.round(points, _DEDUP_DECIMALS) + 0.0, axis=0)


def count_intersections(
    traj1: NDArray[np.float64],
    traj2: NDArray[np.float64],
) -> int:
    """
    Number of unique crossing points between two polylines.

    Examples
    --------
    >>> import numpy as np
    >>> a = np.array([[0.0, 0.0], [1.0, 1.0], [2.0, 2.0], [3.0, 3.0]])
    >>> b = np.array([[0.0, 3.0], [1.0, 2.0], [2.0, 1.0], [3.0, 0.0]])
    >>> count_intersections(a, b)
    1
    >>> count_intersections(a, a + [0.0, 1.0])
    0
    """
    return int(len(intersection_points(traj1, traj2)))
