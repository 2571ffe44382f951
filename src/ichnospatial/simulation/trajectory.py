"""Random-walk ensembles of trackways under alternative movement models.

Each simulated trajectory keeps the point count and the first point of the
observed trajectory it replaces and reuses that trajectory's own step
lengths and angles, so the ensemble answers "how similar would these
trackways be if their makers had moved independently with the same gait?".

Models
------
unconstrained
    Correlated random walk: step lengths and relative turn angles resampled
    with replacement from the observed trajectory, initial heading uniform
    on the circle.
directed
    Every step heading is a fixed target bearing plus a deviation resampled
    from the observed headings' deviations about their circular mean. The
    angular spread is that of the observed trackway around a common target.
constrained
    Correlated random walk that starts along the observed initial heading
    and must stay inside a corridor around the observed path. Steps that
    would leave the corridor are redrawn, then clipped to the corridor.
"""

from __future__ import annotations

import logging
import warnings
from typing import Literal

import numpy as np
import shapely
from numpy.typing import NDArray
from shapely.geometry import LineString, Point
from shapely.ops import nearest_points
from tqdm.auto import tqdm

from ichnospatial.metrics.circular import circular_mean, wrap_angle
from ichnospatial.metrics.geometry import step_headings, step_lengths, turn_angles
from ichnospatial.trackway import TrackwayCollection
from ichnospatial.validation import (
    TrackwayValidationError,
    validate_choice,
    validate_positive_int,
)

logger = logging.getLogger(__name__)

__all__ = ["MOVEMENT_MODELS", "simulate_trackway", "simulate_trackways"]

MOVEMENT_MODELS = ("unconstrained", "directed", "constrained")

# Redraws of a step that leaves the corridor before it is clipped
_MAX_CORRIDOR_TRIES = 100


def _ensure_rng(
    rng: np.random.Generator | int | None,
) -> np.random.Generator:
    """Convert rng parameter to a Generator instance.

    Parameters
    ----------
    rng : np.random.Generator | int | None
        Random number generator, seed, or None.

    Returns
    -------
    np.random.Generator
        A random number generator instance.
    """
    if rng is None:
        return np.random.default_rng()
    if isinstance(rng, np.random.Generator):
        return rng
    return np.random.default_rng(rng)


def _integrate(
    start: NDArray[np.float64],
    headings: NDArray[np.float64],
    lengths: NDArray[np.float64],
) -> NDArray[np.float64]:
    steps = lengths[:, None] * np.column_stack([np.cos(headings), np.sin(headings)])
    return np.vstack([start, start + np.cumsum(steps, axis=0)])


def _is_simulable(trajectory: NDArray[np.float64]) -> bool:
    return len(trajectory) >= 2 and bool(np.all(np.isfinite(trajectory)))


def _unconstrained(
    trajectory: NDArray[np.float64], rng: np.random.Generator
) -> NDArray[np.float64]:
    n_steps = len(trajectory) - 1
    lengths = rng.choice(step_lengths(trajectory), size=n_steps, replace=True)
    turns = turn_angles(trajectory)
    relative = rng.choice(turns, size=n_steps - 1, replace=True) if turns.size else []
    heading0 = rng.uniform(-np.pi, np.pi)
    headings = heading0 + np.concatenate([[0.0], np.cumsum(relative)])
    return _integrate(trajectory[0], headings, lengths)


def _directed(
    trajectory: NDArray[np.float64],
    rng: np.random.Generator,
    target: float | None,
) -> NDArray[np.float64]:
    n_steps = len(trajectory) - 1
    lengths = rng.choice(step_lengths(trajectory), size=n_steps, replace=True)
    observed = step_headings(trajectory)
    deviations = np.asarray(wrap_angle(observed - circular_mean(observed)))
    if target is None:
        d = trajectory[-1] - trajectory[0]
        target = float(np.arctan2(d[1], d[0]))
    headings = target + rng.choice(deviations, size=n_steps, replace=True)
    return _integrate(trajectory[0], headings, lengths)


def _constrained(
    trajectory: NDArray[np.float64],
    rng: np.random.Generator,
    corridor_width: float | None,
) -> NDArray[np.float64]:
    lengths_pool = step_lengths(trajectory)
    turns = turn_angles(trajectory)
    width = float(np.mean(lengths_pool)) if corridor_width is None else corridor_width
    if width <= 0:
        return trajectory.copy()

    reference = LineString(trajectory) if np.sum(lengths_pool) > 0 else Point(trajectory[0])
    corridor = reference.buffer(width)

    out = np.empty_like(trajectory)
    out[0] = trajectory[0]
    heading = float(step_headings(trajectory)[0])
    for i in range(1, len(trajectory)):
        for _ in range(_MAX_CORRIDOR_TRIES):
            turn = rng.choice(turns) if (turns.size and i > 1) else 0.0
            length = rng.choice(lengths_pool)
            proposed_heading = heading + turn
            proposal = out[i - 1] + length * np.array(
                [np.cos(proposed_heading), np.sin(proposed_heading)]
            )
            if shapely.contains_xy(corridor, proposal[0], proposal[1]):
                break
        else:
            nearest = nearest_points(corridor, Point(proposal))[0]
            proposal = np.array([nearest.x, nearest.y])
        move = proposal - out[i - 1]
        if np.any(move):
            heading = float(np.arctan2(move[1], move[0]))
        out[i] = proposal
    return out


def simulate_trackway(
    trajectory: NDArray[np.float64],
    *,
    model: Literal["unconstrained", "directed", "constrained"] = "unconstrained",
    target_bearing: float | None = None,
    corridor_width: float | None = None,
    rng: np.random.Generator | int | None = None,
) -> NDArray[np.float64]:
    """
    Simulate one trajectory from an observed one.

    Parameters
    ----------
    trajectory : NDArray[np.float64], shape (n_points, 2)
        Observed trajectory with at least two finite points.
    model : {"unconstrained", "directed", "constrained"}, default="unconstrained"
        Movement model (see module docstring).
    target_bearing : float, optional
        Target bearing in degrees, counterclockwise from +x, for the
        directed model. Defaults to the bearing from the first to the last
        observed point.
    corridor_width : float, optional
        Half-width of the corridor of the constrained model. Defaults to
        the mean observed step length.
    rng : np.random.Generator | int | None, default=None
        Random number generator for reproducibility.

    Returns
    -------
    NDArray[np.float64], shape (n_points, 2)
        Simulated trajectory starting at ``trajectory[0]``.
    """
    validate_choice(model, "model", MOVEMENT_MODELS)
    trajectory = np.asarray(trajectory, dtype=np.float64)
    if not _is_simulable(trajectory):
        raise TrackwayValidationError(
            "trajectory must have at least 2 points, all finite, to be simulated."
        )
    generator = _ensure_rng(rng)
    if model == "unconstrained":
        return _unconstrained(trajectory, generator)
    if model == "directed":
        target = None if target_bearing is None else float(np.radians(target_bearing))
        return _directed(trajectory, generator, target)
    return _constrained(trajectory, generator, corridor_width)


def simulate_trackways(
    collection: TrackwayCollection,
    nsim: int = 1000,
    *,
    model: Literal["unconstrained", "directed", "constrained"] = "unconstrained",
    target_bearing: float | None = None,
    corridor_width: float | None = None,
    rng: np.random.Generator | int | None = None,
    show_progress: bool = False,
) -> list[TrackwayCollection]:
    """
    Generate an ensemble of simulated trackway collections.

    Parameters
    ----------
    collection : TrackwayCollection
        Observed trackways.
    nsim : int, default=1000
        Number of replicate collections.
    model : {"unconstrained", "directed", "constrained"}, default="unconstrained"
        Movement model applied to every trajectory.
    target_bearing : float, optional
        Common target bearing in degrees for the directed model. By default
        each trajectory walks toward its own observed end-to-end bearing.
    corridor_width : float, optional
        Corridor half-width for the constrained model, applied to every
        trajectory. Defaults to each trajectory's mean step length.
    rng : np.random.Generator | int | None, default=None
        Random number generator for reproducibility. A single generator is
        consumed sequentially, so a fixed seed reproduces the ensemble.
    show_progress : bool, default=False
        Show a progress bar over replicates.

    Returns
    -------
    list of TrackwayCollection
        ``nsim`` collections with the observed names, point counts and
        starting points, and no footprints.

    Warns
    -----
    UserWarning
        When a trajectory has fewer than 2 points or missing coordinates;
        it is copied unchanged into every replicate.

    Examples
    --------
    >>> import numpy as np
    >>> from ichnospatial import TrackwayCollection
    >>> tracks = TrackwayCollection.from_trajectories(
    ...     [np.array([[0.0, 0.0], [1.0, 0.2], [2.0, 0.1], [3.0, 0.4]])]
    ... )
    >>> sims = simulate_trackways(tracks, nsim=5, rng=42)
    >>> len(sims), sims[0].trajectories[0].shape
    (5, (4, 2))
    """
    nsim = validate_positive_int(nsim, "nsim")
    validate_choice(model, "model", MOVEMENT_MODELS)
    if corridor_width is not None and not corridor_width > 0:
        raise TrackwayValidationError(
            f"corridor_width must be positive, got {corridor_width}."
        )
    generator = _ensure_rng(rng)

    fixed = [
        name
        for name, trajectory, _ in collection
        if not _is_simulable(trajectory)
    ]
    if fixed:
        warnings.warn(
            f"Trajectories with fewer than 2 points or missing coordinates are "
            f"copied unchanged into every simulation: {', '.join(fixed)}",
            UserWarning,
            stacklevel=2,
        )

    ensemble = []
    for i in tqdm(range(nsim), desc="Simulating trackways", disable=not show_progress):
        simulated = [
            trajectory.copy()
            if name in fixed
            else simulate_trackway(
                trajectory,
                model=model,
                target_bearing=target_bearing,
                corridor_width=corridor_width,
                rng=generator,
            )
            for name, trajectory, _ in collection
        ]
        ensemble.append(collection.with_trajectories(simulated))
        logger.debug("Simulated replicate %d/%d (%s model)", i + 1, nsim, model)

    logger.info(
        "Simulated %d replicates of %d trackways under the %s model",
        nsim,
        len(collection),
        model,
    )
    return ensemble
