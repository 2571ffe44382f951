"""Geometry kernel: movement parameters of trackways.

Every descriptor is a pure function of one medial trajectory and, for the
footprint-based ones, its footprint sequence. ``track_param`` evaluates all
of them for every trackway of a collection and ``parameter_table`` returns
the scalar summaries as a DataFrame for clustering and variance
partitioning.

Conventions
-----------
- Step headings ("turning angles" in the parameter record) are the
  directions of consecutive displacement vectors, measured
  counterclockwise from the positive x-axis.
- Relative turn angles are the changes of heading between consecutive
  steps, wrapped to (-pi, pi]. They drive sinuosity.
- Circular summaries are reported in degrees.

Missing data never aborts a batch: when footprint coordinates or side
labels are missing, the footprint-derived fields of that trackway are set
to NaN and a ``UserWarning`` names the trackway.

References
----------
Benhamou, S. (2004). How to reliably estimate the tortuosity of an animal's
    path: straightness, sinuosity, or fractal dimension? Journal of
    Theoretical Biology, 229(2), 209-220.
Batschelet, E. (1981). Circular Statistics in Biology. Academic Press.
"""

from __future__ import annotations

import warnings
from dataclasses import asdict, dataclass

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from ichnospatial.metrics.circular import circular_mean, circular_std, wrap_angle
from ichnospatial.trackway import Footprints, TrackwayCollection

__all__ = [
    "PARAMETER_COLUMNS",
    "TrackParameters",
    "beeline_length",
    "compute_track_parameters",
    "gauge",
    "pace_angulation",
    "pace_lengths",
    "parameter_table",
    "path_length",
    "principal_axis",
    "sinuosity",
    "step_angle",
    "step_headings",
    "step_lengths",
    "straightness",
    "stride_lengths",
    "track_param",
    "trackway_width",
    "turn_angles",
    "usable_footprints",
]

# 1 - mean cosine below this means the path never turns
_NO_TURN_TOL = 1e-12


def _mean(x: NDArray[np.float64]) -> float:
    return float(np.mean(x)) if x.size else np.nan


def _sd(x: NDArray[np.float64]) -> float:
    return float(np.std(x, ddof=1)) if x.size > 1 else np.nan


# =============================================================================
# Trajectory descriptors
# =============================================================================


def step_lengths(trajectory: NDArray[np.float64]) -> NDArray[np.float64]:
    """Euclidean length of every step, shape (n_points - 1,)."""
    trajectory = np.asarray(trajectory, dtype=np.float64)
    if len(trajectory) < 2:
        return np.array([], dtype=np.float64)
    return np.linalg.norm(np.diff(trajectory, axis=0), axis=1)


def step_headings(trajectory: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Direction of every step relative to the positive x-axis.

    Parameters
    ----------
    trajectory : NDArray[np.float64], shape (n_points, 2)
        Ordered trajectory points.

    Returns
    -------
    NDArray[np.float64], shape (n_points - 1,)
        Headings in radians in (-pi, pi], counterclockwise positive.

    Examples
    --------
    >>> import numpy as np
    >>> step_headings(np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0]]))
    array([0.        , 1.57079633])
    """
    trajectory = np.asarray(trajectory, dtype=np.float64)
    if len(trajectory) < 2:
        return np.array([], dtype=np.float64)
    d = np.diff(trajectory, axis=0)
    return np.arctan2(d[:, 1], d[:, 0])


def turn_angles(trajectory: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Signed change of heading between consecutive steps.

    A value of 0 means the path continues straight, positive values are
    left (counterclockwise) turns.

    Returns
    -------
    NDArray[np.float64], shape (n_points - 2,)
        Relative turn angles in radians, wrapped to (-pi, pi].
    """
    headings = step_headings(trajectory)
    if len(headings) < 2:
        return np.array([], dtype=np.float64)
    return np.asarray(wrap_angle(np.diff(headings)), dtype=np.float64)


def path_length(trajectory: NDArray[np.float64]) -> float:
    """Sum of step lengths (0.0 for fewer than two points)."""
    return float(np.sum(step_lengths(trajectory)))


def beeline_length(trajectory: NDArray[np.float64]) -> float:
    """Straight-line distance between the first and the last point."""
    trajectory = np.asarray(trajectory, dtype=np.float64)
    if len(trajectory) < 2:
        return np.nan
    return float(np.linalg.norm(trajectory[-1] - trajectory[0]))


def straightness(trajectory: NDArray[np.float64]) -> float:
    """
    Straightness index D / L.

    Ranges over (0, 1]; 1 for a straight path. NaN when the path has zero
    length or fewer than two points.
    """
    length = path_length(trajectory)
    if not np.isfinite(length) or length <= 0:
        return np.nan
    return float(beeline_length(trajectory) / length)


def sinuosity(trajectory: NDArray[np.float64]) -> float:
    """
    Sinuosity index of Benhamou (2004), corrected for variable step length.

    .. math::

        S = 2 \\left[ p \\left( \\frac{1 + c}{1 - c} + b^2 \\right)
            \\right]^{-1/2}

    where p is the mean step length, c the mean cosine of the relative turn
    angles and b the coefficient of variation of step length.

    Parameters
    ----------
    trajectory : NDArray[np.float64], shape (n_points, 2)
        Ordered trajectory points.

    Returns
    -------
    float
        Sinuosity. A path that never turns (c = 1, where the formula is
        undefined) returns 1.0. NaN when fewer than two steps exist or the
        mean step length is 0.
    """
    steps = step_lengths(trajectory)
    turns = turn_angles(trajectory)
    if len(turns) == 0:
        return np.nan
    p = float(np.mean(steps))
    if not np.isfinite(p) or p <= 0:
        return np.nan
    c = float(np.mean(np.cos(turns)))
    if not np.isfinite(c):
        return np.nan
    if 1.0 - c < _NO_TURN_TOL:
        return 1.0
    b = float(np.std(steps, ddof=1) / p)
    return float(2.0 * (p * ((1.0 + c) / (1.0 - c) + b**2)) ** -0.5)


def principal_axis(
    points: NDArray[np.float64],
) -> tuple[NDArray[np.float64], NDArray[np.float64]] | None:
    """
    Centroid and first principal direction of a 2D point cloud.

    Returns
    -------
    (center, direction) or None
        ``direction`` is a unit vector. None when fewer than two finite,
        distinct points are available.
    """
    points = np.asarray(points, dtype=np.float64)
    points = points[np.all(np.isfinite(points), axis=1)]
    if len(points) < 2:
        return None
    center = points.mean(axis=0)
    centered = points - center
    if not np.any(centered):
        return None
    _, _, vt = np.linalg.svd(centered, full_matrices=False)
    return center, vt[0]


# =============================================================================
# Footprint descriptors
# =============================================================================


def usable_footprints(footprints: Footprints) -> NDArray[np.bool_]:
    """
    Mask of footprints with finite coordinates and a side label.

    Footprint descriptors are computed from the usable footprints only, in
    trackway order.
    """
    ok = np.all(np.isfinite(footprints.xy), axis=1)
    if footprints.side is not None:
        ok &= footprints.side != ""
    return ok


def _footprint_arrays(
    footprints: Footprints,
) -> tuple[NDArray[np.float64], NDArray[np.str_]] | None:
    if footprints.side is None:
        return None
    ok = usable_footprints(footprints)
    return np.asarray(footprints.xy)[ok], np.asarray(footprints.side)[ok]


def stride_lengths(footprints: Footprints) -> NDArray[np.float64]:
    """
    Distances between consecutive same-side footprints (L to L, R to R).

    Returned in order of the first footprint of each stride. Empty when
    side labels are missing.
    """
    arrays = _footprint_arrays(footprints)
    if arrays is None:
        return np.array([], dtype=np.float64)
    xy, side = arrays
    out = []
    for i in range(len(xy)):
        later = np.flatnonzero(side[i + 1 :] == side[i])
        if later.size:
            out.append(np.linalg.norm(xy[i + 1 + later[0]] - xy[i]))
    return np.asarray(out, dtype=np.float64)


def pace_lengths(footprints: Footprints) -> NDArray[np.float64]:
    """Distances between consecutive opposite-side footprints."""
    arrays = _footprint_arrays(footprints)
    if arrays is None:
        return np.array([], dtype=np.float64)
    xy, side = arrays
    contralateral = side[:-1] != side[1:]
    return np.linalg.norm(np.diff(xy, axis=0), axis=1)[contralateral]


def trackway_width(
    footprints: Footprints,
    trajectory: NDArray[np.float64] | None = None,
) -> float:
    """
    Separation of left and right footprints across the direction of travel.

    Footprints are projected onto the normal of the first principal axis of
    the trajectory point cloud; the width is the absolute difference of the
    mean left and mean right offsets.

    Parameters
    ----------
    footprints : Footprints
        Footprints with side labels.
    trajectory : NDArray[np.float64], optional
        Medial trajectory. Defaults to the footprints' own medial line.

    Returns
    -------
    float
        Trackway width from the usable footprints; NaN without side labels,
        with fewer than two trajectory points, or with only one side present.
    """
    arrays = _footprint_arrays(footprints)
    if arrays is None:
        return np.nan
    xy, side = arrays
    if trajectory is None:
        trajectory = footprints.trajectory()
    axis = principal_axis(trajectory)
    if axis is None:
        return np.nan
    center, direction = axis
    normal = np.array([-direction[1], direction[0]])
    offsets = (xy - center) @ normal
    left, right = offsets[side == "L"], offsets[side == "R"]
    if left.size == 0 or right.size == 0:
        return np.nan
    return float(abs(left.mean() - right.mean()))


def pace_angulation(footprints: Footprints) -> float:
    """
    Mean interior angle at footprints flanked by opposite-side footprints.

    For every interior index k whose sides alternate across (k-1, k, k+1),
    the angle at footprint k between the segments to its two neighbours is
    measured. Values are in degrees in [0, 180]; a narrow-gauge walk
    approaches 180.

    Returns
    -------
    float
        Mean pace angulation; NaN when no alternating triplet exists.
    """
    arrays = _footprint_arrays(footprints)
    if arrays is None:
        return np.nan
    xy, side = arrays
    angles = []
    for k in range(1, len(xy) - 1):
        if side[k - 1] == side[k] or side[k + 1] == side[k]:
            continue
        a = xy[k - 1] - xy[k]
        b = xy[k + 1] - xy[k]
        norm = np.linalg.norm(a) * np.linalg.norm(b)
        if norm == 0:
            continue
        cos = np.clip(np.dot(a, b) / norm, -1.0, 1.0)
        angles.append(np.degrees(np.arccos(cos)))
    return _mean(np.asarray(angles, dtype=np.float64))


def step_angle(
    footprints: Footprints,
    trajectory: NDArray[np.float64] | None = None,
) -> float:
    """
    Mean absolute angle between contralateral steps and the trackway axis.

    The axis is the first principal direction of the trajectory. Angles are
    measured against the undirected axis, in degrees in [0, 90].
    """
    arrays = _footprint_arrays(footprints)
    if arrays is None:
        return np.nan
    xy, side = arrays
    if trajectory is None:
        trajectory = footprints.trajectory()
    axis = principal_axis(trajectory)
    if axis is None:
        return np.nan
    _, direction = axis
    vectors = np.diff(xy, axis=0)[side[:-1] != side[1:]]
    norms = np.linalg.norm(vectors, axis=1)
    vectors, norms = vectors[norms > 0], norms[norms > 0]
    if norms.size == 0:
        return np.nan
    cos = np.clip(np.abs(vectors @ direction) / norms, 0.0, 1.0)
    return float(np.degrees(np.arccos(cos)).mean())


def gauge(
    footprints: Footprints,
    trajectory: NDArray[np.float64] | None = None,
) -> float:
    """
    Trackway width normalized by mean pace length.

    Pace length stands in for limb size, so the ratio separates narrow- from
    wide-gauge trackways independently of the trackmaker's size. NaN when
    either quantity is undefined or the mean pace length is 0.
    """
    width = trackway_width(footprints, trajectory)
    pace = _mean(pace_lengths(footprints))
    if not np.isfinite(width) or not np.isfinite(pace) or pace == 0:
        return np.nan
    return float(width / pace)


# =============================================================================
# Parameter records
# =============================================================================


@dataclass(frozen=True)
class TrackParameters:
    """Movement parameters of one trackway.

    Angles are in degrees and lengths in the units of the coordinates.

    Attributes
    ----------
    name : str
        Trackway name.
    turning_angles : NDArray[np.float64]
        Step headings relative to the positive x-axis.
    mean_turning_angle, sd_turning_angle : float
        Circular mean and circular standard deviation of the headings.
    beeline_length, path_length : float
        Distance between the end points and total path length.
    step_lengths : NDArray[np.float64]
        Length of every trajectory step.
    mean_step_length, sd_step_length : float
        Mean and sample standard deviation of the step lengths.
    stride_lengths, pace_lengths : NDArray[np.float64]
        Same-side and opposite-side footprint distances.
    mean_stride_length, mean_pace_length : float
        Their means.
    sinuosity, straightness : float
        Tortuosity indices.
    trackway_width, gauge, pace_angulation, step_angle : float
        Footprint-based descriptors; NaN when footprints are unusable.
    """

    name: str
    turning_angles: NDArray[np.float64]
    mean_turning_angle: float
    sd_turning_angle: float
    beeline_length: float
    path_length: float
    step_lengths: NDArray[np.float64]
    mean_step_length: float
    sd_step_length: float
    stride_lengths: NDArray[np.float64]
    mean_stride_length: float
    pace_lengths: NDArray[np.float64]
    mean_pace_length: float
    sinuosity: float
    straightness: float
    trackway_width: float
    gauge: float
    pace_angulation: float
    step_angle: float

    def to_row(self) -> dict[str, float]:
        """Scalar summaries keyed by the short column names of ``parameter_table``."""
        return {
            "TurnAng": self.mean_turning_angle,
            "sdTurnAng": self.sd_turning_angle,
            "Distance": self.beeline_length,
            "Length": self.path_length,
            "StLength": self.mean_step_length,
            "sdStLength": self.sd_step_length,
            "Sinuosity": self.sinuosity,
            "Straightness": self.straightness,
            "TrackWidth": self.trackway_width,
            "PaceAng": self.pace_angulation,
            "Gauge": self.gauge,
            "StepAng": self.step_angle,
            "StrideLength": self.mean_stride_length,
            "PaceLength": self.mean_pace_length,
        }

    def as_dict(self) -> dict[str, object]:
        """All fields as a plain dictionary."""
        return asdict(self)


PARAMETER_COLUMNS: tuple[str, ...] = (
    "TurnAng",
    "sdTurnAng",
    "Distance",
    "Length",
    "StLength",
    "sdStLength",
    "Sinuosity",
    "Straightness",
    "TrackWidth",
    "PaceAng",
    "Gauge",
    "StepAng",
    "StrideLength",
    "PaceLength",
)


def _footprint_problem(footprints: Footprints | None) -> str | None:
    if footprints is None:
        return "no footprints available"
    if footprints.side is None:
        return "footprints missing side labels"
    return None


def compute_track_parameters(
    trajectory: NDArray[np.float64],
    footprints: Footprints | None = None,
    *,
    name: str = "track",
    warn: bool = True,
) -> TrackParameters:
    """
    Compute every movement parameter of one trackway.

    Parameters
    ----------
    trajectory : NDArray[np.float64], shape (n_points, 2)
        Medial trajectory.
    footprints : Footprints, optional
        Footprints of the trackway. Without usable footprints the
        footprint-derived fields are NaN.
    name : str, default="track"
        Trackway name, used in warnings.
    warn : bool, default=True
        Emit a warning when fields are set to NaN because of missing data.

    Returns
    -------
    TrackParameters
    """
    trajectory = np.asarray(trajectory, dtype=np.float64)
    if warn and len(trajectory) < 2:
        warnings.warn(
            f"{name}: trajectory has fewer than 2 points; movement parameters "
            f"set to NaN.",
            UserWarning,
            stacklevel=2,
        )

    headings = np.degrees(step_headings(trajectory))
    steps = step_lengths(trajectory)

    problem = _footprint_problem(footprints)
    if problem is not None:
        if warn:
            warnings.warn(
                f"{name}: {problem}; trackway width, gauge, pace angulation, "
                f"step angle, stride and pace lengths set to NaN.",
                UserWarning,
                stacklevel=2,
            )
        empty = np.array([], dtype=np.float64)
        strides, paces = empty, empty
        width = gauge_value = pace_ang = step_ang = np.nan
    else:
        assert footprints is not None
        skipped = np.flatnonzero(~usable_footprints(footprints))
        if warn and skipped.size:
            warnings.warn(
                f"{name}: footprints at indices {skipped.tolist()} lack coordinates "
                f"or a side label and were excluded from trackway width, gauge, "
                f"pace angulation, step angle, stride and pace lengths.",
                UserWarning,
                stacklevel=2,
            )
        strides = stride_lengths(footprints)
        paces = pace_lengths(footprints)
        width = trackway_width(footprints, trajectory)
        gauge_value = gauge(footprints, trajectory)
        pace_ang = pace_angulation(footprints)
        step_ang = step_angle(footprints, trajectory)

    return TrackParameters(
        name=name,
        turning_angles=headings,
        mean_turning_angle=circular_mean(headings, angle_unit="deg"),
        sd_turning_angle=circular_std(headings, angle_unit="deg"),
        beeline_length=beeline_length(trajectory),
        path_length=path_length(trajectory) if len(trajectory) >= 2 else np.nan,
        step_lengths=steps,
        mean_step_length=_mean(steps),
        sd_step_length=_sd(steps),
        stride_lengths=strides,
        mean_stride_length=_mean(strides),
        pace_lengths=paces,
        mean_pace_length=_mean(paces),
        sinuosity=sinuosity(trajectory),
        straightness=straightness(trajectory),
        trackway_width=width,
        gauge=gauge_value,
        pace_angulation=pace_ang,
        step_angle=step_ang,
    )


def track_param(collection: TrackwayCollection) -> dict[str, TrackParameters]:
    """
    Movement parameters of every trackway in a collection.

    Parameters
    ----------
    collection : TrackwayCollection
        Observed trackways.

    Returns
    -------
    dict of str to TrackParameters
        Keyed by trackway name, in collection order.

    Examples
    --------
    >>> import numpy as np
    >>> from ichnospatial import TrackwayCollection
    >>> xy = np.array([[0.0, 0.5], [1.0, -0.5], [2.0, 0.5], [3.0, -0.5]])
    >>> params = track_param(TrackwayCollection.from_footprints([xy]))
    >>> round(params["Track_01"].straightness, 6)
    1.0
    """
    return {
        name: compute_track_parameters(trajectory, footprints, name=name)
        for name, trajectory, footprints in collection
    }


def parameter_table(
    collection: TrackwayCollection,
    *,
    warn: bool = True,
) -> pd.DataFrame:
    """
    Scalar movement parameters as a table, one row per trackway.

    Columns are ``TurnAng, sdTurnAng`` (circular mean and sd of headings,
    degrees), ``Distance`` (beeline), ``Length`` (path), ``StLength,
    sdStLength``, ``Sinuosity, Straightness``, ``TrackWidth``, ``PaceAng``,
    ``Gauge``, ``StepAng``, ``StrideLength`` and ``PaceLength``.

    Returns
    -------
    pd.DataFrame
        Indexed by trackway name.
    """
    rows = [
        compute_track_parameters(trajectory, footprints, name=name, warn=warn).to_row()
        for name, trajectory, footprints in collection
    ]
    table = pd.DataFrame(rows, index=pd.Index(collection.names, name="track"))
    return table.reindex(columns=list(PARAMETER_COLUMNS))
