"""How much of a movement parameter is footprint placement noise?

Footprint landmarks are uncertain by roughly the size of the digit
impressions. ``anatomical_error_partitioning`` perturbs every footprint
within a disk of that radius, rebuilds the medial trajectory, recomputes the
movement parameters, and repeats ``n_sim`` times. By the law of total
variance the spread of each parameter then splits into

- a between-track (biological) component: variance of the per-track
  simulation means, and
- a within-track (anatomical) component: mean of the per-track simulation
  variances.

Circular parameters (``TurnAng``, ``PaceAng``) are decomposed on their sine
and cosine and the two decompositions are averaged.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace
from typing import Literal

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike, NDArray
from tqdm.auto import tqdm

from ichnospatial.metrics.geometry import compute_track_parameters
from ichnospatial.simulation.trajectory import _ensure_rng
from ichnospatial.trackway import Footprints, TrackwayCollection, medial_trajectory
from ichnospatial.validation import (
    TrackwayValidationError,
    validate_choice,
    validate_positive_int,
)
from ichnospatial.variance._partition import (
    CIRCULAR_VARIABLES,
    DEFAULT_VARIABLES,
    ErrorPartitioningResult,
    build_tables,
    component_rows,
    select_variables,
    snr_row,
)

logger = logging.getLogger(__name__)

__all__ = ["anatomical_error_partitioning", "jitter_footprints"]

JITTER_DISTRIBUTIONS = ("uniform", "gaussian")


def jitter_footprints(
    xy: NDArray[np.float64],
    radius: float,
    rng: np.random.Generator,
    distribution: Literal["uniform", "gaussian"] = "uniform",
) -> NDArray[np.float64]:
    """
    Displace every footprint within a disk.

    Parameters
    ----------
    xy : NDArray[np.float64], shape (n, 2)
        Footprint coordinates.
    radius : float
        Error radius.
    rng : np.random.Generator
        Random number generator.
    distribution : {"uniform", "gaussian"}, default="uniform"
        ``"uniform"`` draws uniformly over the disk area. ``"gaussian"``
        draws each axis from N(0, (radius / 2)^2) truncated at 3 sd.

    Returns
    -------
    NDArray[np.float64], shape (n, 2)
        Displaced coordinates.
    """
    n = len(xy)
    if distribution == "uniform":
        angle = rng.uniform(0.0, 2 * np.pi, n)
        # sqrt makes the draw uniform in area rather than in radius
        dist = np.sqrt(rng.uniform(0.0, 1.0, n)) * radius
        offset = np.column_stack([dist * np.cos(angle), dist * np.sin(angle)])
    else:
        sd = radius / 2
        offset = np.clip(rng.normal(0.0, 1.0, (n, 2)) * sd, -3 * sd, 3 * sd)
    return xy + offset


def _radii(error_radius: float | ArrayLike, n_tracks: int) -> NDArray[np.float64]:
    radii = np.atleast_1d(np.asarray(error_radius, dtype=np.float64))
    if radii.ndim != 1:
        raise TrackwayValidationError("error_radius must be a scalar or a 1D sequence.")
    if len(radii) == 1:
        radii = np.repeat(radii, n_tracks)
    elif len(radii) != n_tracks:
        raise TrackwayValidationError(
            f"error_radius must have length 1 or the number of tracks "
            f"({n_tracks}), got {len(radii)}."
        )
    if np.any(~np.isfinite(radii) | (radii < 0)):
        raise TrackwayValidationError("error_radius values must be finite and >= 0.")
    return radii


def _decompose(table: pd.DataFrame, variable: str) -> dict[str, float]:
    sub = table[["track", variable]].rename(columns={variable: "value"})
    sub = sub[np.isfinite(sub["value"].to_numpy(dtype=np.float64))]

    if variable in CIRCULAR_VARIABLES:
        theta = np.radians(sub["value"].to_numpy(dtype=np.float64))
        parts = [
            sub.assign(value=np.sin(theta)),
            sub.assign(value=np.cos(theta)),
        ]
    else:
        parts = [sub]

    within, between = [], []
    for part in parts:
        grouped = part.groupby("track", sort=False)["value"]
        within.append(grouped.var(ddof=1).mean())
        between.append(grouped.mean().var(ddof=1))
    return {
        "track": float(np.nanmean(between)) if np.any(np.isfinite(between)) else np.nan,
        "anatomical": float(np.nanmean(within)) if np.any(np.isfinite(within)) else np.nan,
        "Residual": 0.0,
    }


def anatomical_error_partitioning(
    collection: TrackwayCollection,
    error_radius: float | ArrayLike,
    *,
    variables: Sequence[str] = DEFAULT_VARIABLES,
    n_sim: int = 200,
    distribution: Literal["uniform", "gaussian"] = "uniform",
    rng: np.random.Generator | int | None = None,
    show_progress: bool = False,
) -> ErrorPartitioningResult:
    """
    Partition parameter variance into biological and anatomical components.

    Parameters
    ----------
    collection : TrackwayCollection
        Trackways with footprints (at least 2 per trackway).
    error_radius : float or array-like of float
        Landmark error radius, one value for all trackways or one per
        trackway. Finite and >= 0.
    variables : sequence of str, default=DEFAULT_VARIABLES
        Parameters to decompose. Unknown names are warned about and
        ignored.
    n_sim : int, default=200
        Number of jittered replicates.
    distribution : {"uniform", "gaussian"}, default="uniform"
        Jitter distribution (see ``jitter_footprints``).
    rng : np.random.Generator | int | None, default=None
        Random number generator for reproducibility.
    show_progress : bool, default=False
        Show a progress bar over replicates.

    Returns
    -------
    ErrorPartitioningResult
        Components ``track``, ``anatomical`` and ``Residual`` (always 0).
        ``analysis_table`` has one row per trackway and replicate.

    Raises
    ------
    TrackwayValidationError
        If a trackway lacks footprints, ``error_radius`` is malformed, or
        an option is invalid.
    InsufficientDataError
        If none of ``variables`` is known.

    Examples
    --------
    >>> import numpy as np
    >>> from ichnospatial import TrackwayCollection
    >>> xy = np.array([[0.0, 0.5], [1.0, -0.5], [2.0, 0.6], [3.0, -0.4], [4.0, 0.5]])
    >>> tracks = TrackwayCollection.from_footprints([xy, xy * 1.5])
    >>> result = anatomical_error_partitioning(
    ...     tracks, 0.0, variables=["Length"], n_sim=5, rng=0
    ... )
    >>> anatomical = result.summary.query("component == 'anatomical'")
    >>> bool(abs(anatomical["variance"].iloc[0]) < 1e-12)
    True
    """
    n_sim = validate_positive_int(n_sim, "n_sim")
    validate_choice(distribution, "distribution", JITTER_DISTRIBUTIONS)
    variables = select_variables(variables)
    radii = _radii(error_radius, len(collection))

    missing = [name for name, _, fp in collection if fp is None or len(fp) < 2]
    if missing:
        raise TrackwayValidationError(
            f"Every trackway needs at least 2 footprints to rebuild its "
            f"trajectory; missing or too short: {missing}."
        )

    generator = _ensure_rng(rng)
    rows = []
    for s in tqdm(range(n_sim), desc="Jittering footprints", disable=not show_progress):
        label = f"sim{s + 1:03d}"
        for (name, _, fp), radius in zip(collection, radii, strict=True):
            assert fp is not None
            xy = jitter_footprints(fp.xy, radius, generator, distribution)
            jittered: Footprints = replace(fp, xy=xy)
            params = compute_track_parameters(
                medial_trajectory(xy), jittered, name=name, warn=False
            ).to_row()
            rows.append(
                {"track": name, "anatomical": label, **{v: params[v] for v in variables}}
            )
        logger.debug("Replicate %d/%d: parameters recomputed", s + 1, n_sim)
    analysis_table = pd.DataFrame(rows, columns=["track", "anatomical", *variables])

    summary_rows, snr_rows = [], []
    for variable in variables:
        components = _decompose(analysis_table, variable)
        total = float(np.nansum(list(components.values())))
        r2_c = components["track"] / total if np.isfinite(total) and total > 0 else np.nan
        summary_rows.extend(component_rows(variable, components, r2_c))
        snr_rows.append(snr_row(variable, components))

    summary, snr, qc = build_tables(
        summary_rows,
        snr_rows,
        observer_estimable=dict.fromkeys(variables, "no (anatomical-only, sim-based)"),
        singular=dict.fromkeys(variables, False),
    )
    logger.info(
        "Anatomical error partitioning of %d variables over %d replicates",
        len(variables),
        n_sim,
    )
    return ErrorPartitioningResult(
        summary=summary,
        snr=snr,
        qc=qc,
        analysis_table=analysis_table,
        track_names=tuple(collection.names),
    )
