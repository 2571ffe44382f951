"""
Core circular statistics for trackway directions.

Step headings and turning angles are directional data: 359 degrees and
1 degree are neighbours, so arithmetic means and standard deviations are
meaningless for them. This module provides the resultant-vector statistics
used by the geometry kernel and the hypothesis tests used by
``ichnospatial.stats.direction``.

Which Function Should I Use?
----------------------------
**Average direction of a trackway?**
    Use ``circular_mean()``; its spread is ``circular_std()``.

**Does a trackway have a preferred direction at all?**
    Use ``rayleigh_test()``.

**Do several trackways share a mean direction?**
    Use ``watson_williams_test()`` when every sample is reasonably
    concentrated (von Mises with a common kappa), otherwise
    ``watson_wheeler_statistic()`` via ``ichnospatial.stats.direction``.

Angle Units
-----------
All functions accept an ``angle_unit`` parameter: ``'rad'`` (default) or
``'deg'``. Internally, all computations use radians. Angles returned by
``circular_mean()`` and ``circular_std()`` are in the input unit.

References
----------
Mardia, K.V. & Jupp, P.E. (2000). Directional Statistics. Wiley.
Fisher, N.I. (1993). Statistical Analysis of Circular Data. Cambridge
    University Press.
Zar, J.H. (2010). Biostatistical Analysis, 5th ed. Prentice Hall.
"""

from __future__ import annotations

import warnings
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

import numpy as np
from numpy.typing import NDArray
from scipy.stats import directional_stats, f, rankdata

__all__ = [
    "CircularTestResult",
    "circular_mean",
    "circular_std",
    "estimate_kappa",
    "mean_resultant_length",
    "rayleigh_test",
    "watson_wheeler_statistic",
    "watson_williams_test",
    "wrap_angle",
]

# R values this close to 1 are treated as perfectly concentrated
_R_ONE_TOL = 1e-12


# =============================================================================
# Internal Helper Functions
# =============================================================================


def _to_radians(
    angles: NDArray[np.float64],
    angle_unit: Literal["rad", "deg"],
) -> NDArray[np.float64]:
    """
    Convert angles to radians if needed.

    Parameters
    ----------
    angles : array
        Input angles.
    angle_unit : {'rad', 'deg'}
        Unit of input angles.

    Returns
    -------
    array
        Angles in radians.
    """
    if angle_unit == "deg":
        return np.radians(angles)
    if angle_unit != "rad":
        raise ValueError(f"angle_unit must be 'rad' or 'deg', got '{angle_unit}'")
    return angles


def _from_radians(value: float, angle_unit: Literal["rad", "deg"]) -> float:
    return float(np.degrees(value)) if angle_unit == "deg" else float(value)


def _mean_resultant_length(angles: NDArray[np.float64]) -> float:
    """
    Compute mean resultant length R in [0, 1].

    Uses ``scipy.stats.directional_stats`` on the unit vectors of the
    angles. Returns NaN for empty input.
    """
    if len(angles) == 0:
        return np.nan
    vectors = np.column_stack([np.cos(angles), np.sin(angles)])
    result = directional_stats(vectors)
    return float(np.clip(result.mean_resultant_length, 0.0, 1.0))


def _validate_circular_input(
    angles: NDArray[np.float64],
    name: str = "angles",
    *,
    min_samples: int = 1,
) -> NDArray[np.float64]:
    """
    Validate circular input array.

    NaN values are dropped with a warning; infinite values and too few
    samples raise.

    Parameters
    ----------
    angles : array
        Input angles to validate.
    name : str
        Name for error messages.
    min_samples : int
        Minimum required samples.

    Returns
    -------
    array
        Validated angles (NaN removed).

    Raises
    ------
    ValueError
        If validation fails with actionable error message.
    """
    angles = np.asarray(angles, dtype=np.float64).ravel()

    nan_mask = np.isnan(angles)
    n_nan = int(np.sum(nan_mask))
    if n_nan > 0:
        angles = angles[~nan_mask]
        warnings.warn(
            f"Removed {n_nan} NaN values from {name}. "
            f"Proceeding with {len(angles)} valid samples.",
            stacklevel=3,
        )

    if np.any(np.isinf(angles)):
        n_inf = int(np.sum(np.isinf(angles)))
        raise ValueError(
            f"{name} contains {n_inf} infinite values. "
            f"Cannot compute circular statistics.\n"
            f"Fix: Remove or replace infinite values before calling this function."
        )

    if len(angles) < min_samples:
        raise ValueError(
            f"Need at least {min_samples} samples for circular statistics. "
            f"Got {len(angles)} valid samples in {name}.\n"
            f"Fix: Provide more data points or use a different analysis method."
        )

    return angles


def _a1inv(r: float) -> float:
    """Inverse of A1(kappa) = I1(kappa) / I0(kappa) (Best & Fisher, 1981)."""
    if r < 0.53:
        return 2 * r + r**3 + 5 * r**5 / 6
    if r < 0.85:
        return -0.4 + 1.39 * r + 0.43 / (1 - r)
    denom = r**3 - 4 * r**2 + 3 * r
    if denom <= 0:
        return np.inf
    return 1 / denom


# =============================================================================
# Descriptive statistics
# =============================================================================


def wrap_angle(
    angles: NDArray[np.float64] | float,
    *,
    angle_unit: Literal["rad", "deg"] = "rad",
) -> NDArray[np.float64] | float:
    """Wrap angles to the half-open interval (-pi, pi] (or (-180, 180]).

    Examples
    --------
    >>> wrap_angle(270.0, angle_unit="deg")
    -90.0
    >>> wrap_angle(-180.0, angle_unit="deg")
    180.0
    """
    period = 360.0 if angle_unit == "deg" else 2 * np.pi
    half = period / 2
    wrapped = half - np.mod(half - np.asarray(angles, dtype=np.float64), period)
    if np.ndim(wrapped) == 0:
        return float(wrapped)
    return wrapped


def mean_resultant_length(
    angles: NDArray[np.float64],
    *,
    angle_unit: Literal["rad", "deg"] = "rad",
) -> float:
    """Mean resultant length R of a sample of angles.

    R is 1 when all angles coincide and near 0 for angles spread evenly
    around the circle. NaN values are dropped; an empty sample gives NaN.

    Examples
    --------
    >>> round(mean_resultant_length([10.0, 10.0, 10.0], angle_unit="deg"), 6)
    1.0
    """
    angles = _to_radians(np.asarray(angles, dtype=np.float64), angle_unit)
    angles = angles[~np.isnan(angles)]
    return _mean_resultant_length(angles)


def circular_mean(
    angles: NDArray[np.float64],
    *,
    angle_unit: Literal["rad", "deg"] = "rad",
) -> float:
    """Circular mean direction, atan2(mean sin, mean cos).

    Parameters
    ----------
    angles : array, shape (n,)
        Sample of angles. NaN values are ignored.
    angle_unit : {'rad', 'deg'}, default='rad'
        Unit of input and output.

    Returns
    -------
    float
        Mean direction in (-pi, pi] (or (-180, 180]); NaN for an empty
        sample.

    Examples
    --------
    >>> round(circular_mean([80.0, 100.0], angle_unit="deg"), 6)
    90.0
    """
    angles = _to_radians(np.asarray(angles, dtype=np.float64), angle_unit)
    angles = angles[~np.isnan(angles)]
    if len(angles) == 0:
        return np.nan
    mean = np.arctan2(np.mean(np.sin(angles)), np.mean(np.cos(angles)))
    return _from_radians(mean, angle_unit)


def circular_std(
    angles: NDArray[np.float64],
    *,
    angle_unit: Literal["rad", "deg"] = "rad",
) -> float:
    """Circular standard deviation, sqrt(-2 ln R).

    Parameters
    ----------
    angles : array, shape (n,)
        Sample of angles. NaN values are ignored.
    angle_unit : {'rad', 'deg'}, default='rad'
        Unit of input and output.

    Returns
    -------
    float
        Circular standard deviation. Exactly 0 when all angles coincide
        (R = 1), infinite when R = 0 and NaN for an empty sample.

    Examples
    --------
    >>> circular_std([45.0, 45.0, 45.0], angle_unit="deg")
    0.0
    """
    angles = _to_radians(np.asarray(angles, dtype=np.float64), angle_unit)
    angles = angles[~np.isnan(angles)]
    r = _mean_resultant_length(angles)
    if np.isnan(r):
        return np.nan
    if r >= 1.0 - _R_ONE_TOL:
        return 0.0
    if r == 0.0:
        return np.inf
    return _from_radians(np.sqrt(-2.0 * np.log(r)), angle_unit)


def estimate_kappa(
    angles: NDArray[np.float64],
    *,
    angle_unit: Literal["rad", "deg"] = "rad",
    bias_correction: bool = False,
) -> float:
    """Maximum-likelihood estimate of the von Mises concentration kappa.

    Uses the Best & Fisher (1981) approximation to the inverse of
    A1 = I1/I0. With ``bias_correction`` the small-sample correction of
    Fisher (1993, p. 88) is applied for n <= 15.

    Returns
    -------
    float
        Kappa in [0, inf]; infinite when every angle coincides, NaN for
        an empty sample.
    """
    angles = _to_radians(np.asarray(angles, dtype=np.float64), angle_unit)
    angles = angles[~np.isnan(angles)]
    n = len(angles)
    r = _mean_resultant_length(angles)
    if np.isnan(r):
        return np.nan
    kappa = _a1inv(r)
    if bias_correction and n <= 15 and np.isfinite(kappa):
        if kappa < 2:
            kappa = max(kappa - 2 / (n * kappa), 0.0) if kappa > 0 else 0.0
        else:
            kappa = (n - 1) ** 3 * kappa / (n**3 + n)
    return float(kappa)


# =============================================================================
# Hypothesis tests
# =============================================================================


@dataclass(frozen=True)
class CircularTestResult:
    """Result of a circular hypothesis test.

    Attributes
    ----------
    statistic : float
        Test statistic.
    p_value : float
        P-value in [0, 1].
    df : tuple of float
        Degrees of freedom of the reference distribution (empty for tests
        without one).
    method : str
        Name of the test.
    """

    statistic: float
    p_value: float
    df: tuple[float, ...]
    method: str

    @property
    def is_significant(self) -> bool:
        """Return True if p_value < 0.05."""
        return self.p_value < 0.05


def rayleigh_test(
    angles: NDArray[np.float64],
    *,
    angle_unit: Literal["rad", "deg"] = "rad",
) -> tuple[float, float]:
    """
    Rayleigh test for non-uniformity of circular data.

    Tests H0: angles are uniformly distributed on the circle.
    Rejection indicates a preferred direction exists.

    Parameters
    ----------
    angles : array, shape (n,)
        Sample of angles.
    angle_unit : {'rad', 'deg'}, default='rad'
        Unit of input angles.

    Returns
    -------
    z : float
        Rayleigh z-statistic (n * R^2 where R is mean resultant length).
    pval : float
        P-value from Rayleigh approximation with finite-sample correction.

    Raises
    ------
    ValueError
        If fewer than 3 valid angles remain.

    Notes
    -----
    Uses finite-sample correction from Mardia & Jupp (2000, Section 5.3.2,
    p. 94) for accurate p-values when n < 50.

    Examples
    --------
    >>> import numpy as np
    >>> uniform_angles = np.linspace(0, 2 * np.pi, 100, endpoint=False)
    >>> z, p = rayleigh_test(uniform_angles)
    >>> p > 0.5
    True
    """
    angles = _to_radians(np.asarray(angles, dtype=np.float64), angle_unit)
    angles = _validate_circular_input(angles, "angles", min_samples=3)

    n = float(len(angles))
    r_mean = _mean_resultant_length(angles)
    z = n * r_mean**2

    pval = float(np.exp(-z))
    if n < 50:
        term1 = (2 * z - z**2) / (4 * n)
        term2 = (24 * z - 132 * z**2 + 76 * z**3 - 9 * z**4) / (288 * n**2)
        pval = pval * (1 + term1 - term2)

    return float(z), float(np.clip(pval, 0.0, 1.0))


def watson_williams_test(
    samples: Sequence[NDArray[np.float64]],
    *,
    angle_unit: Literal["rad", "deg"] = "rad",
) -> CircularTestResult:
    """Watson-Williams test for equal mean directions of k samples.

    Parametric one-way ANOVA analogue for von Mises samples sharing a
    common concentration. The statistic carries the (1 + 3 / (8 kappa))
    correction and is referred to F(k - 1, N - k).

    Parameters
    ----------
    samples : sequence of arrays
        One array of angles per group; at least two groups.
    angle_unit : {'rad', 'deg'}, default='rad'
        Unit of input angles.

    Returns
    -------
    CircularTestResult

    Warns
    -----
    UserWarning
        When the pooled concentration is low (kappa < 1), where the F
        approximation is unreliable.
    """
    groups = [
        _validate_circular_input(
            _to_radians(np.asarray(s, dtype=np.float64), angle_unit),
            f"samples[{i}]",
            min_samples=2,
        )
        for i, s in enumerate(samples)
    ]
    k = len(groups)
    if k < 2:
        raise ValueError(f"watson_williams_test needs at least 2 samples, got {k}.")

    ns = np.array([len(g) for g in groups], dtype=np.float64)
    big_n = ns.sum()
    group_r = np.array(
        [np.hypot(np.sum(np.cos(g)), np.sum(np.sin(g))) for g in groups]
    )
    pooled = np.concatenate(groups)
    total_r = float(np.hypot(np.sum(np.cos(pooled)), np.sum(np.sin(pooled))))

    rbar = float(group_r.sum() / big_n)
    kappa = _a1inv(rbar)
    if kappa < 1:
        warnings.warn(
            f"Pooled concentration is low (kappa={kappa:.3f} < 1); the "
            f"Watson-Williams F approximation may be unreliable.",
            UserWarning,
            stacklevel=2,
        )

    numerator = (big_n - k) * (group_r.sum() - total_r)
    denominator = (k - 1) * (big_n - group_r.sum())
    correction = 1 + 3 / (8 * kappa) if np.isfinite(kappa) and kappa > 0 else 1.0
    df = (float(k - 1), float(big_n - k))

    if numerator <= 1e-12:
        statistic, p_value = 0.0, 1.0
    elif denominator <= 1e-12:
        statistic, p_value = np.inf, 0.0
    else:
        statistic = float(correction * numerator / denominator)
        p_value = float(f.sf(statistic, *df))

    return CircularTestResult(
        statistic=statistic,
        p_value=p_value,
        df=df,
        method="Watson-Williams",
    )


def watson_wheeler_statistic(
    angles: NDArray[np.float64],
    groups: NDArray[np.int64],
) -> float:
    """Mardia-Watson-Wheeler uniform-scores statistic W.

    Pooled angles are ranked, ranks are mapped to uniform scores
    ``2 pi rank / N`` and W = 2 * sum_i (C_i^2 + S_i^2) / n_i, where C_i and
    S_i are the cosine and sine sums of group i's scores. Under H0 of
    identical distributions W is approximately chi-square with 2(k - 1)
    degrees of freedom.

    Parameters
    ----------
    angles : array, shape (N,)
        Pooled angles in radians.
    groups : array of int, shape (N,)
        Group code of each angle.

    Returns
    -------
    float
        W statistic.
    """
    angles = np.mod(np.asarray(angles, dtype=np.float64), 2 * np.pi)
    groups = np.asarray(groups)
    big_n = len(angles)
    scores = 2 * np.pi * rankdata(angles, method="average") / big_n
    w = 0.0
    for code in np.unique(groups):
        mask = groups == code
        c = np.sum(np.cos(scores[mask]))
        s = np.sum(np.sin(scores[mask]))
        w += (c**2 + s**2) / mask.sum()
    return float(2 * w)
