"""Origin permutation of simulated trackways.

Simulated trajectories start where the observed ones start, so two
trackways that begin side by side stay side by side in every replicate.
Permuting origins relocates each simulated trajectory to a start point
drawn uniformly from a region, which changes the null hypothesis from
"independent walks from the observed origins" to "independent walks from
anywhere in the region".
"""

from __future__ import annotations

import logging
from typing import Literal

import numpy as np
import shapely
from numpy.typing import NDArray
from shapely.geometry import MultiPoint, Polygon
from shapely.geometry.base import BaseGeometry

from ichnospatial.simulation.trajectory import _ensure_rng
from ichnospatial.trackway import TrackwayCollection
from ichnospatial.validation import TrackwayValidationError, validate_choice

logger = logging.getLogger(__name__)

__all__ = ["ORIGIN_REGIONS", "origin_region", "permute_origins", "sample_in_region"]

ORIGIN_REGIONS = ("none", "min_box", "conv_hull", "custom")

# Aliases accepted for the region names used in published analyses
_REGION_ALIASES = {
    "None": "none",
    "Min.Box": "min_box",
    "Conv.Hull": "conv_hull",
    "Custom": "custom",
}

# Candidate points drawn per rejection-sampling round
_BATCH = 64


def _normalize_region(region: str) -> str:
    return validate_choice(_REGION_ALIASES.get(region, region), "region", ORIGIN_REGIONS)


def _custom_polygon(custom_polygon: object) -> Polygon:
    if isinstance(custom_polygon, Polygon):
        if not custom_polygon.area > 0:
            raise TrackwayValidationError(
                "custom_polygon must enclose a positive area."
            )
        return custom_polygon
    if hasattr(custom_polygon, "to_numpy"):
        custom_polygon = custom_polygon.to_numpy()
    if not isinstance(custom_polygon, (np.ndarray, list, tuple)):
        raise TrackwayValidationError(
            "custom_polygon must be a shapely Polygon, an array or a DataFrame, "
            f"got {type(custom_polygon).__name__}."
        )
    try:
        coords = np.asarray(custom_polygon, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise TrackwayValidationError(
            "custom_polygon must hold numeric (x, y) vertices."
        ) from exc
    if coords.ndim != 2 or coords.shape[1] != 2:
        raise TrackwayValidationError(
            f"custom_polygon must have exactly two columns, got shape {coords.shape}."
        )
    if len(coords) < 3 or not np.all(np.isfinite(coords)):
        raise TrackwayValidationError(
            "custom_polygon needs at least 3 finite vertices."
        )
    polygon = Polygon(coords)
    if not polygon.area > 0:
        raise TrackwayValidationError("custom_polygon must enclose a positive area.")
    return polygon


def origin_region(
    observed: TrackwayCollection,
    region: Literal["min_box", "conv_hull", "custom"],
    custom_polygon: Polygon | NDArray[np.float64] | None = None,
) -> BaseGeometry:
    """
    Region from which permuted origins are drawn.

    Parameters
    ----------
    observed : TrackwayCollection
        Observed trackways; their first points define the data-driven
        regions.
    region : {"min_box", "conv_hull", "custom"}
        ``"min_box"`` is the minimum-area rotated rectangle around the
        observed origins, ``"conv_hull"`` their convex hull and ``"custom"``
        the caller's polygon.
    custom_polygon : Polygon or array-like of shape (k, 2), optional
        Required when ``region="custom"``.

    Returns
    -------
    shapely geometry
        A polygon, or a line or point when the origins are collinear or
        coincident.
    """
    region = _normalize_region(region)
    if region == "custom":
        if custom_polygon is None:
            raise TrackwayValidationError(
                "custom_polygon must be provided when region is 'custom'."
            )
        return _custom_polygon(custom_polygon)

    origins = [
        t[0] for t in observed.trajectories if len(t) and np.all(np.isfinite(t[0]))
    ]
    if not origins:
        raise TrackwayValidationError(
            "observed trackways have no finite starting points to build an "
            "origin region from."
        )
    points = MultiPoint(origins)
    if region == "min_box":
        return shapely.oriented_envelope(points)
    return points.convex_hull


def sample_in_region(
    geometry: BaseGeometry,
    size: int,
    rng: np.random.Generator,
) -> NDArray[np.float64]:
    """
    Draw points uniformly from a polygon, a line or a point.

    Polygons are sampled by rejection within their bounding box, lines
    uniformly along their length.

    Returns
    -------
    NDArray[np.float64], shape (size, 2)
    """
    if geometry.area > 0:
        minx, miny, maxx, maxy = geometry.bounds
        accepted: list[NDArray[np.float64]] = []
        n_accepted = 0
        while n_accepted < size:
            x = rng.uniform(minx, maxx, _BATCH)
            y = rng.uniform(miny, maxy, _BATCH)
            inside = shapely.contains_xy(geometry, x, y)
            batch = np.column_stack([x[inside], y[inside]])
            accepted.append(batch)
            n_accepted += len(batch)
        return np.vstack(accepted)[:size]
    if geometry.length > 0:
        distances = rng.uniform(0.0, geometry.length, size)
        return np.array([[p.x, p.y] for p in (geometry.interpolate(d) for d in distances)])
    point = np.asarray(geometry.representative_point().coords[0], dtype=np.float64)
    return np.tile(point, (size, 1))


def permute_origins(
    ensemble: list[TrackwayCollection],
    observed: TrackwayCollection,
    *,
    region: Literal["none", "min_box", "conv_hull", "custom"] = "none",
    custom_polygon: Polygon | NDArray[np.float64] | None = None,
    rng: np.random.Generator | int | None = None,
) -> list[TrackwayCollection]:
    """
    Translate every simulated trajectory to a random starting point.

    Parameters
    ----------
    ensemble : list of TrackwayCollection
        Simulated collections.
    observed : TrackwayCollection
        Observed collection defining the region.
    region : {"none", "min_box", "conv_hull", "custom"}, default="none"
        Region of new origins. ``"none"`` returns the ensemble unchanged.
        The aliases ``"None"``, ``"Min.Box"``, ``"Conv.Hull"`` and
        ``"Custom"`` are accepted.
    custom_polygon : Polygon or array-like of shape (k, 2), optional
        Polygon vertices, required for ``region="custom"``.
    rng : np.random.Generator | int | None, default=None
        Random number generator for reproducibility.

    Returns
    -------
    list of TrackwayCollection
        New collections whose trajectories have the simulated shapes and
        start inside the region.
    """
    region = _normalize_region(region)
    if region == "none":
        return list(ensemble)
    geometry = origin_region(observed, region, custom_polygon)  # type: ignore[arg-type]
    generator = _ensure_rng(rng)

    permuted = []
    for replicate in ensemble:
        starts = sample_in_region(geometry, len(replicate), generator)
        moved = [
            trajectory - trajectory[0] + start if len(trajectory) else trajectory
            for trajectory, start in zip(replicate.trajectories, starts, strict=True)
        ]
        permuted.append(replicate.with_trajectories(moved))
    logger.debug(
        "Permuted origins of %d replicates within a %s region", len(ensemble), region
    )
    return permuted
