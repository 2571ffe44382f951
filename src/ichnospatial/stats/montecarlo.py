"""Monte Carlo significance tests of trackway similarity and intersection.

An observed pairwise metric matrix is compared with the same matrix
computed on every replicate of a simulated ensemble
(``ichnospatial.simulation.simulate_trackways``). Each unordered pair gets
a Monte Carlo p-value with the Phipson-Smyth correction, the set of
pairwise p-values is adjusted with Benjamini-Hochberg over the unique
pairs only, and a global p-value asks whether all pairs are extreme at
once.

Direction of the test
---------------------
| Metric | Extreme replicate | Hypothesis |
|--------|-------------------|------------|
| DTW, Fréchet | simulated <= observed | trackways more similar than random |
| Intersections, ``alternative="lower"`` | simulated <= observed | fewer crossings (parallel, coordinated movement) |
| Intersections, ``alternative="higher"`` | simulated >= observed | more crossings (pursuit) |

Distance metrics always use the lower tail; only intersection counts let
the caller choose, because both directions are biologically meaningful.

Imports
-------
>>> from ichnospatial.stats.montecarlo import simil_dtw_metric, combined_prob
>>> from ichnospatial.stats.montecarlo import compute_mc_pvalue
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Literal

import numpy as np
import pandas as pd
from numpy.typing import NDArray
from shapely.geometry import Polygon
from statsmodels.stats.multitest import multipletests
from tqdm.auto import tqdm

from ichnospatial.similarity.distance import normalize_superposition
from ichnospatial.similarity.pairwise import (
    dtw_matrix,
    frechet_matrix,
    intersection_matrix,
)
from ichnospatial.simulation.origins import (
    _custom_polygon,
    _normalize_region,
    permute_origins,
)
from ichnospatial.trackway import TrackwayCollection
from ichnospatial.validation import (
    TrackwayValidationError,
    validate_choice,
    validate_positive_int,
)

logger = logging.getLogger(__name__)

__all__ = [
    "CombinedTestResult",
    "MetricTestResult",
    "adjust_pvalues",
    "adjust_pvalues_bh",
    "combined_prob",
    "compute_mc_pvalue",
    "global_pvalue",
    "pairwise_pvalues",
    "simil_dtw_metric",
    "simil_frechet_metric",
    "track_intersection",
]

Tail = Literal["less", "greater"]

_ALTERNATIVES = {"lower": "less", "higher": "greater"}


# =============================================================================
# I. P-values
# =============================================================================


def compute_mc_pvalue(
    observed: float,
    null_scores: NDArray[np.float64],
    *,
    tail: Literal["greater", "less", "two-sided"] = "less",
) -> float:
    """Compute Monte Carlo p-value with Phipson-Smyth correction.

    Computes the probability of observing a score at least as extreme as
    the observed value under the null distribution using the formula
    (k + 1) / (n + 1), which provides an unbiased estimate and avoids
    p-values of exactly zero.

    Parameters
    ----------
    observed : float
        The observed statistic.
    null_scores : NDArray[np.float64]
        Statistics of the simulated replicates. NaN replicates never count
        as extreme but still count towards n.
    tail : {"greater", "less", "two-sided"}, default="less"
        Direction of the test:

        - "less": counts null <= observed (distance metrics, fewer
          intersections).
        - "greater": counts null >= observed (more intersections).
        - "two-sided": 2 * min(p_greater, p_less), capped at 1.0.

    Returns
    -------
    float
        The Monte Carlo p-value in the range (0, 1]; NaN if ``observed``
        is NaN.

    References
    ----------
    .. [1] Phipson, B., & Smyth, G. K. (2010). Permutation P-values should
           never be zero: calculating exact P-values when permutations are
           randomly drawn. Statistical Applications in Genetics and Molecular
           Biology, 9(1).

    Examples
    --------
    >>> import numpy as np
    >>> null = np.arange(1.0, 11.0)
    >>> round(compute_mc_pvalue(0.5, null, tail="less"), 4)
    0.0909
    """
    null_scores = np.asarray(null_scores, dtype=np.float64)
    n = len(null_scores)
    if np.isnan(observed):
        return np.nan

    if tail == "greater":
        k = int(np.sum(null_scores >= observed))
        return float((k + 1) / (n + 1))

    elif tail == "less":
        k = int(np.sum(null_scores <= observed))
        return float((k + 1) / (n + 1))

    elif tail == "two-sided":
        k_greater = int(np.sum(null_scores >= observed))
        k_less = int(np.sum(null_scores <= observed))
        p_greater = (k_greater + 1) / (n + 1)
        p_less = (k_less + 1) / (n + 1)
        return float(min(2 * min(p_greater, p_less), 1.0))

    else:
        raise ValueError(
            f"tail must be 'greater', 'less', or 'two-sided', got '{tail}'"
        )


def _stack(simulations: Sequence[pd.DataFrame]) -> NDArray[np.float64]:
    return np.stack([np.asarray(m, dtype=np.float64) for m in simulations])


def _extreme(
    simulated: NDArray[np.float64], observed: NDArray[np.float64], tail: Tail
) -> NDArray[np.bool_]:
    # NaN comparisons are False, so undefined replicates never count
    if tail == "less":
        return simulated <= observed
    return simulated >= observed


def _symmetric_frame(
    upper: NDArray[np.float64], n: int, labels: Sequence[str]
) -> pd.DataFrame:
    values = np.full((n, n), np.nan)
    iu = np.triu_indices(n, k=1)
    values[iu] = upper
    values[(iu[1], iu[0])] = upper
    return pd.DataFrame(values, index=list(labels), columns=list(labels))


def pairwise_pvalues(
    observed: pd.DataFrame,
    simulations: Sequence[pd.DataFrame],
    *,
    tail: Tail = "less",
) -> pd.DataFrame:
    """
    Monte Carlo p-value of every unordered pair.

    Parameters
    ----------
    observed : pd.DataFrame, shape (n, n)
        Observed metric matrix.
    simulations : sequence of pd.DataFrame
        One metric matrix per replicate, same shape as ``observed``.
    tail : {"less", "greater"}, default="less"
        Direction of extremeness.

    Returns
    -------
    pd.DataFrame, shape (n, n)
        Symmetric p-values with NaN diagonal; NaN where the observed
        metric is undefined.
    """
    validate_choice(tail, "tail", ("less", "greater"))
    obs = np.asarray(observed, dtype=np.float64)
    sims = _stack(simulations)
    if sims.shape[1:] != obs.shape:
        raise TrackwayValidationError(
            f"simulated matrices must have the observed shape {obs.shape}, "
            f"got {sims.shape[1:]}."
        )
    n = obs.shape[0]
    iu = np.triu_indices(n, k=1)
    upper = np.array(
        [compute_mc_pvalue(obs[i, j], sims[:, i, j], tail=tail) for i, j in zip(*iu)],
        dtype=np.float64,
    )
    return _symmetric_frame(upper, n, observed.index)


def adjust_pvalues(
    pvalues: pd.DataFrame,
    *,
    method: str = "fdr_bh",
) -> pd.DataFrame:
    """
    Multiple-comparison adjustment over the unique pairs of a p-value matrix.

    Only the entries above the diagonal enter the adjustment, so each
    unordered pair is counted once; the result is mirrored back. NaN
    entries are left out of the family and stay NaN.

    Parameters
    ----------
    pvalues : pd.DataFrame, shape (n, n)
        Symmetric p-value matrix.
    method : str, default="fdr_bh"
        Any method of ``statsmodels.stats.multitest.multipletests``.

    Returns
    -------
    pd.DataFrame, shape (n, n)
        Adjusted p-values with NaN diagonal.
    """
    values = np.asarray(pvalues, dtype=np.float64)
    n = values.shape[0]
    upper = values[np.triu_indices(n, k=1)]
    adjusted = np.full_like(upper, np.nan)
    keep = np.isfinite(upper)
    if np.any(keep):
        adjusted[keep] = multipletests(upper[keep], method=method)[1]
    return _symmetric_frame(adjusted, n, pvalues.index)


def adjust_pvalues_bh(pvalues: pd.DataFrame) -> pd.DataFrame:
    """Benjamini-Hochberg FDR adjustment over the unique pairs."""
    return adjust_pvalues(pvalues, method="fdr_bh")


def _replicate_hits(
    observed: Sequence[NDArray[np.float64]],
    simulated: Sequence[NDArray[np.float64]],
    tails: Sequence[Tail],
) -> tuple[NDArray[np.bool_], NDArray[np.bool_]]:
    """Per-replicate, per-pair AND of extremeness across metrics.

    Returns the (nsim, n_pairs) hit array and the mask of pairs whose
    observed value is defined for every metric.
    """
    n = observed[0].shape[0]
    iu = np.triu_indices(n, k=1)
    valid = np.ones(len(iu[0]), dtype=bool)
    hits = None
    for obs, sims, tail in zip(observed, simulated, tails, strict=True):
        obs_u = obs[iu]
        sims_u = sims[:, iu[0], iu[1]]
        valid &= np.isfinite(obs_u)
        extreme = _extreme(sims_u, obs_u[None, :], tail)
        hits = extreme if hits is None else hits & extreme
    assert hits is not None
    return hits, valid


def global_pvalue(
    observed: pd.DataFrame,
    simulations: Sequence[pd.DataFrame],
    *,
    tail: Tail = "less",
) -> float:
    """
    Global p-value: every pair extreme in the same replicate.

    A replicate is a hit only if all unique pairs with a defined observed
    value are simultaneously at least as extreme as observed.
    p = (1 + hits) / (nsim + 1).
    """
    hits, valid = _replicate_hits(
        [np.asarray(observed, dtype=np.float64)], [_stack(simulations)], [tail]
    )
    return _and_pvalue(hits, valid)


def _and_pvalue(hits: NDArray[np.bool_], valid: NDArray[np.bool_]) -> float:
    nsim = hits.shape[0]
    if not np.any(valid):
        return np.nan
    n_hits = int(np.sum(np.all(hits[:, valid], axis=1)))
    return float((1 + n_hits) / (nsim + 1))


# =============================================================================
# II. Result containers
# =============================================================================


@dataclass(frozen=True)
class MetricTestResult:
    """Observed pairwise metric and its Monte Carlo test.

    Parameters
    ----------
    metric : str
        ``"dtw"``, ``"frechet"`` or ``"intersection"``.
    tail : {"less", "greater"}
        Direction of extremeness used for the test.
    observed : pd.DataFrame
        Observed symmetric metric matrix with NaN diagonal.
    p_values : pd.DataFrame or None
        Pairwise Monte Carlo p-values; None without simulations.
    p_values_bh : pd.DataFrame or None
        Benjamini-Hochberg adjusted p-values.
    p_value_global : float or None
        Probability that all pairs are jointly as extreme as observed.
    simulations : list of pd.DataFrame
        Metric matrix of every replicate.

    Attributes
    ----------
    n_simulations : int
        Number of replicates.
    tested : bool
        True when simulations were supplied.
    """

    metric: str
    tail: Tail
    observed: pd.DataFrame
    p_values: pd.DataFrame | None = None
    p_values_bh: pd.DataFrame | None = None
    p_value_global: float | None = None
    simulations: list[pd.DataFrame] = field(default_factory=list)

    @property
    def n_simulations(self) -> int:
        """Number of simulated replicates."""
        return len(self.simulations)

    @property
    def tested(self) -> bool:
        """True when p-values were computed."""
        return self.p_values is not None

    def significant_pairs(self, alpha: float = 0.05) -> list[tuple[str, str]]:
        """Pairs whose BH-adjusted p-value is below ``alpha``.

        Returns
        -------
        list of (str, str)
            Trackway name pairs in row-major order of the upper triangle.
        """
        if self.p_values_bh is None:
            return []
        names = list(self.p_values_bh.index)
        values = self.p_values_bh.to_numpy()
        return [
            (names[i], names[j])
            for i, j in zip(*np.triu_indices(len(names), k=1))
            if values[i, j] < alpha
        ]

    def summary(self) -> str:
        """Human-readable summary for printing."""
        n = len(self.observed)
        if not self.tested:
            return f"{self.metric}: {n} trackways, {n * (n - 1) // 2} pairs (untested)"
        return (
            f"{self.metric}: {n} trackways, {self.n_simulations} simulations, "
            f"{len(self.significant_pairs())} significant pairs after BH, "
            f"global p = {self.p_value_global:.4f}"
        )


@dataclass(frozen=True)
class CombinedTestResult:
    """Joint significance of several metrics.

    Parameters
    ----------
    metrics : tuple of str
        Names of the combined metrics.
    p_values : pd.DataFrame
        Pairwise combined p-values: a replicate hits a pair when every
        metric is simultaneously as extreme as observed for that pair.
    p_values_bh : pd.DataFrame
        Benjamini-Hochberg adjusted combined p-values.
    p_value_global : float
        Replicate hits only when every metric and every pair is extreme.
    n_simulations : int
        Number of replicates shared by the metrics.
    """

    metrics: tuple[str, ...]
    p_values: pd.DataFrame
    p_values_bh: pd.DataFrame
    p_value_global: float
    n_simulations: int

    @property
    def is_significant(self) -> bool:
        """Return True if the global p-value is below 0.05."""
        return bool(self.p_value_global < 0.05)


# =============================================================================
# III. Metric tests
# =============================================================================


def _check_ensemble(
    collection: TrackwayCollection, sim: Sequence[TrackwayCollection]
) -> None:
    if len(sim) == 0:
        raise TrackwayValidationError("sim must contain at least one replicate.")
    bad = [i for i, replicate in enumerate(sim) if len(replicate) != len(collection)]
    if bad:
        raise TrackwayValidationError(
            f"sim must have the same number of trajectories as collection "
            f"({len(collection)}); replicates {bad} differ."
        )


def _metric_ensemble(
    sim: Sequence[TrackwayCollection],
    matrix_fn: Callable[[TrackwayCollection], pd.DataFrame],
    *,
    metric: str,
    n_workers: int,
    show_progress: bool,
) -> list[pd.DataFrame]:
    """Metric matrix of every replicate, in replicate order."""
    n_workers = validate_positive_int(n_workers, "n_workers")
    desc = f"{metric} simulations"

    def evaluate(item: tuple[int, TrackwayCollection]) -> pd.DataFrame:
        i, replicate = item
        matrix = matrix_fn(replicate)
        logger.debug("Replicate %d/%d: %s metric computed", i + 1, len(sim), metric)
        return matrix

    items = list(enumerate(sim))
    if n_workers == 1:
        return [evaluate(item) for item in tqdm(items, desc=desc, disable=not show_progress)]
    with ThreadPoolExecutor(max_workers=n_workers) as executor:
        return list(
            tqdm(
                executor.map(evaluate, items),
                total=len(items),
                desc=desc,
                disable=not show_progress,
            )
        )


def _run_test(
    metric: str,
    collection: TrackwayCollection,
    sim: Sequence[TrackwayCollection] | None,
    matrix_fn: Callable[[TrackwayCollection], pd.DataFrame],
    *,
    tail: Tail,
    n_workers: int,
    show_progress: bool,
) -> MetricTestResult:
    observed = matrix_fn(collection)
    if sim is None:
        return MetricTestResult(metric=metric, tail=tail, observed=observed)

    _check_ensemble(collection, sim)
    simulations = _metric_ensemble(
        sim, matrix_fn, metric=metric, n_workers=n_workers, show_progress=show_progress
    )
    p_values = pairwise_pvalues(observed, simulations, tail=tail)
    result = MetricTestResult(
        metric=metric,
        tail=tail,
        observed=observed,
        p_values=p_values,
        p_values_bh=adjust_pvalues_bh(p_values),
        p_value_global=global_pvalue(observed, simulations, tail=tail),
        simulations=simulations,
    )
    logger.info("%s analysis completed over %d simulations", metric, len(sim))
    return result


def simil_dtw_metric(
    collection: TrackwayCollection,
    sim: Sequence[TrackwayCollection] | None = None,
    *,
    superposition: Literal["none", "centroid", "origin"] = "none",
    n_workers: int = 1,
    show_progress: bool = False,
) -> MetricTestResult:
    """
    Pairwise DTW distances, tested against simulated trackways.

    Parameters
    ----------
    collection : TrackwayCollection
        Observed trackways.
    sim : list of TrackwayCollection, optional
        Simulated ensemble with the same number of trajectories. Without it
        only the observed matrix is returned.
    superposition : {"none", "centroid", "origin"}, default="none"
        Translation applied to every observed and simulated trajectory
        before comparison. ``"None"``, ``"Centroid"`` and ``"Origin"`` are
        accepted too.
    n_workers : int, default=1
        Threads evaluating replicates concurrently.
    show_progress : bool, default=False
        Show a progress bar over replicates.

    Returns
    -------
    MetricTestResult
        Lower-tail test: small p-values mean the trackways are more
        similar than simulated ones.

    Examples
    --------
    >>> import numpy as np
    >>> from ichnospatial import TrackwayCollection
    >>> from ichnospatial.simulation import simulate_trackways
    >>> tracks = TrackwayCollection.from_trajectories(
    ...     [
    ...         np.array([[0.0, 0.0], [1.0, 0.1], [2.0, 0.0], [3.0, 0.2]]),
    ...         np.array([[0.0, 1.0], [1.0, 1.1], [2.0, 1.0], [3.0, 1.2]]),
    ...     ]
    ... )
    >>> sim = simulate_trackways(tracks, nsim=20, rng=1)
    >>> result = simil_dtw_metric(tracks, sim, superposition="origin")
    >>> 0 < result.p_value_global <= 1
    True
    """
    method = normalize_superposition(superposition)
    return _run_test(
        "dtw",
        collection,
        sim,
        lambda c: dtw_matrix(c, superposition=method),  # type: ignore[arg-type]
        tail="less",
        n_workers=n_workers,
        show_progress=show_progress,
    )


def simil_frechet_metric(
    collection: TrackwayCollection,
    sim: Sequence[TrackwayCollection] | None = None,
    *,
    superposition: Literal["none", "centroid", "origin"] = "none",
    n_workers: int = 1,
    show_progress: bool = False,
) -> MetricTestResult:
    """
    Pairwise discrete Fréchet distances, tested against simulated trackways.

    Same parameters and lower-tail semantics as ``simil_dtw_metric``.
    """
    method = normalize_superposition(superposition)
    return _run_test(
        "frechet",
        collection,
        sim,
        lambda c: frechet_matrix(c, superposition=method),  # type: ignore[arg-type]
        tail="less",
        n_workers=n_workers,
        show_progress=show_progress,
    )


def track_intersection(
    collection: TrackwayCollection,
    sim: Sequence[TrackwayCollection] | None = None,
    *,
    alternative: Literal["lower", "higher"] = "lower",
    origin_permutation: Literal["none", "min_box", "conv_hull", "custom"] = "none",
    custom_polygon: Polygon | NDArray[np.float64] | None = None,
    rng: np.random.Generator | int | None = None,
    n_workers: int = 1,
    show_progress: bool = False,
) -> MetricTestResult:
    """
    Pairwise intersection counts, tested against simulated trackways.

    Parameters
    ----------
    collection : TrackwayCollection
        Observed trackways.
    sim : list of TrackwayCollection, optional
        Simulated ensemble. Without it only the observed counts are
        returned.
    alternative : {"lower", "higher"}, default="lower"
        ``"lower"`` tests for fewer crossings than random (coordinated,
        parallel movement); ``"higher"`` for more crossings (pursuit).
        ``"Lower"`` and ``"Higher"`` are accepted too.
    origin_permutation : {"none", "min_box", "conv_hull", "custom"}, default="none"
        Relocate simulated trajectories to random origins before counting
        (see ``ichnospatial.simulation.permute_origins``).
    custom_polygon : Polygon or array-like of shape (k, 2), optional
        Origin region for ``origin_permutation="custom"``.
    rng : np.random.Generator | int | None, default=None
        Random number generator for origin permutation.
    n_workers : int, default=1
        Threads evaluating replicates concurrently.
    show_progress : bool, default=False
        Show a progress bar over replicates.

    Returns
    -------
    MetricTestResult
    """
    key = alternative.lower() if isinstance(alternative, str) else alternative
    validate_choice(key, "alternative", tuple(_ALTERNATIVES))
    tail: Tail = _ALTERNATIVES[key]  # type: ignore[assignment]
    region = _normalize_region(origin_permutation)
    if region == "custom":
        if custom_polygon is None:
            raise TrackwayValidationError(
                "custom_polygon must be provided when origin_permutation is 'custom'."
            )
        custom_polygon = _custom_polygon(custom_polygon)

    if sim is not None:
        _check_ensemble(collection, sim)
        sim = permute_origins(
            list(sim),
            collection,
            region=region,
            custom_polygon=custom_polygon,
            rng=rng,
        )
    return _run_test(
        "intersection",
        collection,
        sim,
        intersection_matrix,
        tail=tail,
        n_workers=n_workers,
        show_progress=show_progress,
    )


# =============================================================================
# IV. Combining metrics
# =============================================================================


def combined_prob(
    collection: TrackwayCollection,
    metrics: Sequence[MetricTestResult],
) -> CombinedTestResult:
    """
    Joint significance of several tested metrics.

    Parameters
    ----------
    collection : TrackwayCollection
        Observed trackways the metrics were computed on.
    metrics : sequence of MetricTestResult
        Tested results sharing the same simulations count and trackway
        names, e.g. DTW, Fréchet and intersection tests run on one ensemble.

    Returns
    -------
    CombinedTestResult

    Raises
    ------
    TrackwayValidationError
        If no metric is given, a metric was not tested, the simulation
        counts differ, or the trackway names do not match ``collection``.

    Notes
    -----
    Each metric is judged in its own direction. For a pair, a replicate is
    a hit when every metric is at least as extreme as observed;
    p = (1 + hits) / (nsim + 1). The global p-value requires every metric
    and every pair to be extreme in the same replicate.

    The global rule is an AND over all pairs and metrics and is therefore
    very conservative: with many trackways the chance that a replicate is
    extreme everywhere at once shrinks quickly, so the global p-value tends
    to its minimum 1 / (nsim + 1) even under weak joint signal, and its
    behaviour with many pairs has not been characterized. Prefer the
    pairwise combined p-values for inference on individual pairs.
    """
    if len(metrics) == 0:
        raise TrackwayValidationError("metrics must contain at least one result.")
    untested = [m.metric for m in metrics if not m.tested]
    if untested:
        raise TrackwayValidationError(
            f"metrics must be tested against simulations; untested: {untested}."
        )
    counts = [m.n_simulations for m in metrics]
    if len(set(counts)) != 1:
        raise TrackwayValidationError(
            f"All metrics must share the same number of simulations, got "
            f"{[(m.metric, m.n_simulations) for m in metrics]}."
        )
    names = list(collection.names)
    mismatched = [m.metric for m in metrics if list(m.observed.index) != names]
    if mismatched:
        raise TrackwayValidationError(
            f"metrics {mismatched} were computed on different trackways than "
            f"collection ({names})."
        )

    nsim = counts[0]
    observed = [np.asarray(m.observed, dtype=np.float64) for m in metrics]
    simulated = [_stack(m.simulations) for m in metrics]
    tails = [m.tail for m in metrics]
    hits, valid = _replicate_hits(observed, simulated, tails)

    upper = (1 + hits.sum(axis=0)) / (nsim + 1)
    upper = np.where(valid, upper, np.nan)
    p_values = _symmetric_frame(upper, len(names), names)

    return CombinedTestResult(
        metrics=tuple(m.metric for m in metrics),
        p_values=p_values,
        p_values_bh=adjust_pvalues_bh(p_values),
        p_value_global=_and_pvalue(hits, valid),
        n_simulations=nsim,
    )
