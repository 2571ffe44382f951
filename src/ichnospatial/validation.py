"""Input validation utilities and exception types for ichnospatial.

Structural problems with caller input (mismatched collection lengths,
malformed coordinate arrays, invalid option strings) are raised eagerly as
``TrackwayValidationError`` before any computation runs. Data-quality
problems that only affect part of a batch (one short trackway, one unknown
variable) are reported with ``warnings.warn`` and the offending unit is
excluded; they escalate to ``InsufficientDataError`` only when too little
valid data remains.
"""

from __future__ import annotations

import warnings
from collections.abc import Iterable, Sequence

import numpy as np
from numpy.typing import NDArray


class TrackwayValidationError(ValueError):
    """Raised when trackway input violates a structural contract.

    The message always names the offending argument and the constraint
    that was violated.

    See Also
    --------
    validate_trajectory : Coordinate array validation
    validate_choice : Option-string validation
    """

    pass


class InsufficientDataError(TrackwayValidationError):
    """Raised when too few valid units remain after filtering.

    Trackways or variables that fail data-quality checks are dropped with a
    warning; this error is the escalation when the remaining subset is empty
    or smaller than the analysis requires.
    """

    pass


def validate_trajectory(
    trajectory: NDArray[np.float64],
    name: str = "trajectory",
    *,
    min_points: int = 1,
    allow_nan: bool = False,
) -> NDArray[np.float64]:
    """Validate a 2D point sequence and return it as a float array.

    Parameters
    ----------
    trajectory : array-like, shape (n_points, 2)
        Ordered 2D coordinates.
    name : str, default="trajectory"
        Name used in error messages.
    min_points : int, default=1
        Minimum number of points required.
    allow_nan : bool, default=False
        Whether NaN coordinates are accepted. Infinite values never are.

    Returns
    -------
    NDArray[np.float64], shape (n_points, 2)
        Validated coordinates.

    Raises
    ------
    TrackwayValidationError
        If the array is not (n, 2), has too few points, or holds
        non-finite values.

    Examples
    --------
    >>> validate_trajectory([[0, 0], [1, 1]]).shape
    (2, 2)
    """
    arr = np.asarray(trajectory, dtype=np.float64)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise TrackwayValidationError(
            f"{name} must have shape (n_points, 2), got {arr.shape}.\n"
            f"Fix: pass an array of (x, y) rows, one per point."
        )
    if arr.shape[0] < min_points:
        raise TrackwayValidationError(
            f"{name} needs at least {min_points} points, got {arr.shape[0]}."
        )
    if np.any(np.isinf(arr)):
        raise TrackwayValidationError(
            f"{name} contains {int(np.isinf(arr).sum())} infinite values."
        )
    if not allow_nan and np.any(np.isnan(arr)):
        raise TrackwayValidationError(
            f"{name} contains {int(np.isnan(arr).sum())} NaN values.\n"
            f"Fix: remove or interpolate missing points first."
        )
    return arr


def validate_choice(value: str, name: str, choices: Sequence[str]) -> str:
    """Check that ``value`` is one of ``choices``.

    Raises
    ------
    TrackwayValidationError
        If ``value`` is not an allowed option.
    """
    if value not in choices:
        raise TrackwayValidationError(
            f"{name} must be one of {list(choices)}, got {value!r}."
        )
    return value


def validate_positive_int(value: int, name: str, *, minimum: int = 1) -> int:
    """Check that ``value`` is an integer no smaller than ``minimum``."""
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise TrackwayValidationError(
            f"{name} must be an integer, got {type(value).__name__}."
        )
    if value < minimum:
        raise TrackwayValidationError(f"{name} must be >= {minimum}, got {value}.")
    return int(value)


def filter_known_names(
    requested: Iterable[str],
    known: Iterable[str],
    *,
    what: str = "variable",
) -> list[str]:
    """Keep the requested names that are known, warning about the rest.

    Parameters
    ----------
    requested : iterable of str
        Names asked for by the caller, in caller order.
    known : iterable of str
        Names the analysis understands.
    what : str, default="variable"
        Noun used in the warning and error messages.

    Returns
    -------
    list of str
        Known names in the order requested, without duplicates.

    Raises
    ------
    InsufficientDataError
        If none of the requested names is known.
    """
    requested = list(dict.fromkeys(requested))
    known_set = set(known)
    unknown = [name for name in requested if name not in known_set]
    if unknown:
        warnings.warn(
            f"Unknown {what} names ignored: {', '.join(unknown)}",
            UserWarning,
            stacklevel=3,
        )
    valid = [name for name in requested if name in known_set]
    if not valid:
        raise InsufficientDataError(
            f"No valid {what}s to analyze after filtering "
            f"(requested: {requested}, known: {sorted(known_set)})."
        )
    return valid
