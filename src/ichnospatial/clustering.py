"""Cluster trackways by their movement parameters.

``cluster_track`` builds a trackway-by-variable table from the geometry
kernel (and, optionally, caller-supplied velocity summaries), turns it into
a working matrix suited to distance computations, and runs one of two
backends:

- ``"hclust"``: agglomerative clustering on a pairwise dissimilarity
  matrix, optionally cut into ``k`` groups.
- ``"mclust"``: Gaussian mixture models over a grid of component counts
  and covariance structures, selected by BIC, with posterior membership
  probabilities.

Working matrix
--------------
1. Circular variables (``TurnAng``, ``sdTurnAng``) become ``_sin`` and
   ``_cos`` columns so that 359 and 1 degrees are neighbours.
2. ``transform=True`` applies monotone transforms matched to each
   variable's support: logit for ``Straightness``, log for ``Sinuosity``
   (bounded below by 1) and a shifted log for lengths, widths, pace angles
   and velocities.
3. ``scale=True`` centers and scales every column; a constant column maps
   to zeros.

Examples
--------
>>> import numpy as np
>>> from ichnospatial import TrackwayCollection
>>> rng = np.random.default_rng(0)
>>> tracks = TrackwayCollection.from_trajectories(
...     [np.cumsum(rng.normal(1.0, s, (8, 2)), axis=0) for s in (0.1, 0.1, 1.0, 1.0)]
... )
>>> result = cluster_track(tracks, ["Sinuosity", "StLength"], k=2)
>>> sorted(result.labels.unique().tolist())
[1, 2]
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

import numpy as np
import pandas as pd
from numpy.typing import NDArray
from scipy.cluster.hierarchy import fcluster, linkage
from scipy.spatial.distance import pdist
from sklearn.mixture import GaussianMixture

from ichnospatial.metrics.geometry import parameter_table
from ichnospatial.simulation.trajectory import _ensure_rng
from ichnospatial.trackway import TrackwayCollection
from ichnospatial.validation import (
    InsufficientDataError,
    TrackwayValidationError,
    filter_known_names,
    validate_choice,
    validate_positive_int,
)

logger = logging.getLogger(__name__)

__all__ = [
    "CLUSTER_VARIABLES",
    "ClusterResult",
    "VELOCITY_VARIABLES",
    "build_working_matrix",
    "cluster_track",
]

VELOCITY_VARIABLES: tuple[str, ...] = (
    "Velocity",
    "sdVelocity",
    "MaxVelocity",
    "MinVelocity",
)

CLUSTER_VARIABLES: tuple[str, ...] = (
    "TurnAng",
    "sdTurnAng",
    "Distance",
    "Length",
    "StLength",
    "sdStLength",
    "Sinuosity",
    "Straightness",
    *VELOCITY_VARIABLES,
    "TrackWidth",
    "PaceAng",
)

_CIRCULAR = ("TurnAng", "sdTurnAng")
_SHIFTED_LOG = (
    "Distance",
    "Length",
    "StLength",
    "sdStLength",
    *VELOCITY_VARIABLES,
    "TrackWidth",
    "PaceAng",
)
_EPS = 1e-8
_MIN_POINTS = 4

# dist_method names to scipy.spatial.distance metrics
_DISTANCES = {
    "euclidean": "euclidean",
    "manhattan": "cityblock",
    "maximum": "chebyshev",
    "canberra": "canberra",
    "minkowski": "minkowski",
    "binary": "jaccard",
}

# linkage_method names to scipy.cluster.hierarchy methods
_LINKAGES = {
    "complete": "complete",
    "single": "single",
    "average": "average",
    "mcquitty": "weighted",
    "median": "median",
    "centroid": "centroid",
    "ward": "ward",
    "ward.D2": "ward",
}

_COVARIANCE_TYPES = ("spherical", "diag", "tied", "full")
# One variable: equal variance ("tied") or variable variance ("diag")
_COVARIANCE_TYPES_1D = ("tied", "diag")


@dataclass(frozen=True)
class ClusterResult:
    """Result of ``cluster_track``.

    Attributes
    ----------
    matrix : pd.DataFrame
        Movement parameters of the retained trackways on their original
        scale, one column per entry of ``CLUSTER_VARIABLES``.
    working : pd.DataFrame
        Matrix the backend was run on (expanded, transformed, scaled).
    analysis : str
        ``"hclust"`` or ``"mclust"``.
    linkage : NDArray[np.float64] or None
        scipy linkage matrix (hclust).
    distances : NDArray[np.float64] or None
        Condensed dissimilarity matrix (hclust).
    k : int or None
        Number of groups the tree was cut into (hclust) or selected
        number of mixture components (mclust).
    labels : pd.Series or None
        Cluster of every trackway, starting at 1. None when the tree was
        left uncut.
    probabilities : pd.DataFrame or None
        Posterior membership probabilities (mclust).
    uncertainty : pd.Series or None
        One minus the largest posterior probability (mclust).
    bic : pd.DataFrame or None
        BIC of every fitted model, components by covariance type; lower is
        better, failed fits are NaN (mclust).
    model_name : str or None
        Covariance type of the selected mixture.
    n_components : int or None
        Components of the selected mixture.
    clustered : bool
        False when too few trackways remained to cluster.
    """

    matrix: pd.DataFrame
    working: pd.DataFrame
    analysis: str
    linkage: NDArray[np.float64] | None = None
    distances: NDArray[np.float64] | None = None
    k: int | None = None
    labels: pd.Series | None = None
    probabilities: pd.DataFrame | None = None
    uncertainty: pd.Series | None = None
    bic: pd.DataFrame | None = None
    model_name: str | None = None
    n_components: int | None = None
    clustered: bool = True

    @property
    def n_clusters(self) -> int:
        """Number of distinct labels (0 without labels)."""
        return 0 if self.labels is None else int(self.labels.nunique())


# =============================================================================
# Working matrix
# =============================================================================


def _logit(x: NDArray[np.float64]) -> NDArray[np.float64]:
    x = np.clip(x, _EPS, 1 - _EPS)
    return np.log(x / (1 - x))


def _shifted_log(x: NDArray[np.float64]) -> NDArray[np.float64]:
    finite = x[np.isfinite(x)]
    shift = _EPS - finite.min() + _EPS if finite.size and np.any(finite <= 0) else 0.0
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.log(x + shift)


def _transform(name: str, x: NDArray[np.float64]) -> NDArray[np.float64]:
    if name.endswith(("_sin", "_cos")):
        return x
    if name == "Straightness":
        return _logit(x)
    if name == "Sinuosity":
        return np.log(np.maximum(x, 1 + _EPS))
    if name in _SHIFTED_LOG:
        return _shifted_log(x)
    return x


def build_working_matrix(
    matrix: pd.DataFrame,
    variables: Sequence[str],
    *,
    transform: bool = True,
    scale: bool = True,
) -> pd.DataFrame:
    """
    Expand, transform and scale the selected variables.

    Parameters
    ----------
    matrix : pd.DataFrame
        Movement parameters, one row per trackway.
    variables : sequence of str
        Columns of ``matrix`` to use, in order.
    transform : bool, default=True
        Apply support-matched transforms (see module docstring).
    scale : bool, default=True
        Center and scale every working column with NaN-aware mean and
        sample standard deviation; constant columns become zeros.

    Returns
    -------
    pd.DataFrame
        Same index as ``matrix``. Circular variables contribute
        ``{name}_sin`` and ``{name}_cos`` columns.

    Examples
    --------
    >>> import pandas as pd
    >>> m = pd.DataFrame({"TurnAng": [0.0, 90.0], "Length": [2.0, 2.0]})
    >>> build_working_matrix(m, ["TurnAng", "Length"], scale=False).columns.tolist()
    ['TurnAng_sin', 'TurnAng_cos', 'Length']
    """
    missing = [v for v in variables if v not in matrix.columns]
    if missing:
        raise TrackwayValidationError(f"Variables not in matrix: {missing}.")

    work = pd.DataFrame(index=matrix.index)
    for name in variables:
        values = matrix[name].to_numpy(dtype=np.float64)
        if name in _CIRCULAR:
            radians = np.radians(values)
            with np.errstate(invalid="ignore"):
                work[f"{name}_sin"] = np.sin(radians)
                work[f"{name}_cos"] = np.cos(radians)
        else:
            work[name] = values

    if transform:
        for name in work.columns:
            work[name] = _transform(name, work[name].to_numpy(dtype=np.float64))

    if scale:
        for name in work.columns:
            v = work[name].to_numpy(dtype=np.float64)
            finite = v[np.isfinite(v)]
            sd = float(np.std(finite, ddof=1)) if finite.size > 1 else np.nan
            if not np.isfinite(sd) or sd == 0:
                work[name] = np.where(np.isfinite(v), 0.0, v)
            else:
                work[name] = (v - finite.mean()) / sd
    return work


# =============================================================================
# Backends
# =============================================================================


def _hclust(
    xmat: NDArray[np.float64],
    index: pd.Index,
    *,
    k: int | None,
    dist_method: str,
    linkage_method: str,
) -> dict[str, object]:
    if dist_method == "binary":
        distances = pdist(xmat != 0, metric="jaccard")
        distances = np.nan_to_num(distances, nan=0.0)
    else:
        distances = pdist(xmat, metric=_DISTANCES[dist_method])
    tree = linkage(distances, method=_LINKAGES[linkage_method])

    labels = None
    if k is not None:
        k = min(k, len(xmat))
        labels = pd.Series(
            fcluster(tree, t=k, criterion="maxclust").astype(int),
            index=index,
            name="cluster",
        )
    return {"linkage": tree, "distances": distances, "k": k, "labels": labels}


def _fit_mixture(
    xmat: NDArray[np.float64], n_components: int, covariance_type: str, seed: int
) -> GaussianMixture | None:
    model = GaussianMixture(
        n_components=n_components, covariance_type=covariance_type, random_state=seed
    )
    try:
        model.fit(xmat)
    except (ValueError, np.linalg.LinAlgError) as err:
        logger.debug(
            "Mixture with %d components (%s) failed: %s", n_components, covariance_type, err
        )
        return None
    return model


def _mclust(
    xmat: NDArray[np.float64],
    index: pd.Index,
    *,
    max_clusters: int | None,
    rng: np.random.Generator,
) -> dict[str, object]:
    n_obs = len(xmat)
    if max_clusters is None:
        max_clusters = min(9, n_obs)
    else:
        max_clusters = min(validate_positive_int(max_clusters, "max_clusters"), n_obs)
    covariance_types = _COVARIANCE_TYPES_1D if xmat.shape[1] == 1 else _COVARIANCE_TYPES
    seed = int(rng.integers(2**31 - 1))

    components = range(1, max_clusters + 1)
    bic = pd.DataFrame(
        np.nan, index=pd.Index(components, name="n_components"), columns=list(covariance_types)
    )
    best: GaussianMixture | None = None
    best_key: tuple[int, str] | None = None
    best_score = np.inf
    for g in components:
        for covariance_type in covariance_types:
            model = _fit_mixture(xmat, g, covariance_type, seed)
            if model is None:
                continue
            score = float(model.bic(xmat))
            bic.loc[g, covariance_type] = score
            if score < best_score:
                best, best_key, best_score = model, (g, covariance_type), score

    if best is None or best_key is None:
        raise InsufficientDataError(
            "No Gaussian mixture could be fitted to the working matrix."
        )

    probabilities = best.predict_proba(xmat)
    labels = pd.Series(np.argmax(probabilities, axis=1) + 1, index=index, name="cluster")
    prob_frame = pd.DataFrame(
        probabilities,
        index=index,
        columns=[f"cluster_{i + 1}" for i in range(probabilities.shape[1])],
    )
    return {
        "k": best_key[0],
        "labels": labels,
        "probabilities": prob_frame,
        "uncertainty": pd.Series(
            1.0 - probabilities.max(axis=1), index=index, name="uncertainty"
        ),
        "bic": bic,
        "model_name": best_key[1],
        "n_components": best_key[0],
    }


# =============================================================================
# Public API
# =============================================================================


def cluster_track(
    collection: TrackwayCollection,
    variables: Sequence[str],
    *,
    velocities: pd.DataFrame | None = None,
    analysis: Literal["hclust", "mclust"] = "hclust",
    k: int | None = 2,
    dist_method: str = "euclidean",
    linkage_method: str = "complete",
    transform: bool = True,
    scale: bool = True,
    max_clusters: int | None = None,
    rng: np.random.Generator | int | None = None,
) -> ClusterResult:
    """
    Cluster trackways by selected movement parameters.

    Parameters
    ----------
    collection : TrackwayCollection
        Trackways to cluster. Trajectories with fewer than 4 points are
        discarded with a warning.
    variables : sequence of str
        Names from ``CLUSTER_VARIABLES``. Unknown names are warned about
        and ignored.
    velocities : pd.DataFrame, optional
        Velocity summaries indexed by trackway name with columns
        ``Velocity``, ``sdVelocity``, ``MaxVelocity`` and ``MinVelocity``.
        Required when a velocity variable is selected.
    analysis : {"hclust", "mclust"}, default="hclust"
        Clustering backend.
    k : int or None, default=2
        Groups to cut the tree into (hclust); None leaves it uncut. Capped
        at the number of trackways.
    dist_method : str, default="euclidean"
        ``euclidean``, ``manhattan``, ``maximum``, ``canberra``,
        ``minkowski`` or ``binary``.
    linkage_method : str, default="complete"
        ``complete``, ``single``, ``average``, ``mcquitty``, ``median``,
        ``centroid``, ``ward`` or ``ward.D2``.
    transform, scale : bool, default=True
        See ``build_working_matrix``.
    max_clusters : int, optional
        Largest number of mixture components (mclust). Defaults to
        ``min(9, n_trackways)``.
    rng : np.random.Generator | int | None, default=None
        Seeds the mixture initialization.

    Returns
    -------
    ClusterResult
        ``clustered`` is False, with a warning, when fewer than 2
        trackways remain.

    Raises
    ------
    TrackwayValidationError
        For an empty collection or variable list, an unknown option, a
        non-positive ``k``, or velocity variables without ``velocities``.
    InsufficientDataError
        If none of the requested variables is known.
    """
    if len(collection) == 0:
        raise TrackwayValidationError(
            "No tracks available for clustering. Please check the input data."
        )
    if len(variables) == 0:
        raise TrackwayValidationError(
            "No movement parameters specified for clustering.\n"
            f"Fix: pass a subset of {list(CLUSTER_VARIABLES)}."
        )
    validate_choice(analysis, "analysis", ("hclust", "mclust"))
    validate_choice(dist_method, "dist_method", tuple(_DISTANCES))
    validate_choice(linkage_method, "linkage_method", tuple(_LINKAGES))
    if k is not None:
        k = validate_positive_int(k, "k")
    variables = filter_known_names(variables, CLUSTER_VARIABLES)

    needs_velocity = [v for v in variables if v in VELOCITY_VARIABLES]
    if needs_velocity and velocities is None:
        raise TrackwayValidationError(
            f"velocities must be provided to cluster on {needs_velocity}."
        )

    short = [i for i, t in enumerate(collection.trajectories) if len(t) < _MIN_POINTS]
    if short:
        warnings.warn(
            f"{len(short)} tracks were discarded for having fewer than "
            f"{_MIN_POINTS} points. Discarded track indices: "
            f"{', '.join(str(i) for i in short)}",
            UserWarning,
            stacklevel=2,
        )
    kept = collection.subset([i for i in range(len(collection)) if i not in short])

    matrix = parameter_table(kept, warn=False) if len(kept) else pd.DataFrame(
        columns=list(CLUSTER_VARIABLES), index=pd.Index([], name="track")
    )
    if velocities is not None:
        vel = velocities.reindex(index=matrix.index, columns=list(VELOCITY_VARIABLES))
        for column in VELOCITY_VARIABLES:
            matrix[column] = vel[column].to_numpy(dtype=np.float64)
    else:
        for column in VELOCITY_VARIABLES:
            matrix[column] = np.nan
    matrix = matrix.reindex(columns=list(CLUSTER_VARIABLES)).astype(np.float64)

    working = build_working_matrix(matrix, variables, transform=transform, scale=scale)
    finite = np.all(np.isfinite(working.to_numpy(dtype=np.float64)), axis=1)
    if not np.all(finite):
        dropped = working.index[~finite].tolist()
        warnings.warn(
            f"Tracks with missing or non-finite values in the selected "
            f"variables were excluded: {', '.join(map(str, dropped))}",
            UserWarning,
            stacklevel=2,
        )
        working = working.loc[finite]

    if len(working) < 2:
        warnings.warn(
            "Fewer than 2 valid tracks after filtering; returning without clustering.",
            UserWarning,
            stacklevel=2,
        )
        return ClusterResult(
            matrix=matrix, working=working, analysis=analysis, clustered=False
        )

    xmat = working.to_numpy(dtype=np.float64)
    if analysis == "hclust":
        fitted = _hclust(
            xmat,
            working.index,
            k=k,
            dist_method=dist_method,
            linkage_method=linkage_method,
        )
    else:
        fitted = _mclust(
            xmat, working.index, max_clusters=max_clusters, rng=_ensure_rng(rng)
        )

    logger.info(
        "Clustered %d trackways on %d working columns with %s",
        len(working),
        working.shape[1],
        analysis,
    )
    return ClusterResult(
        matrix=matrix, working=working, analysis=analysis, **fitted  # type: ignore[arg-type]
    )
