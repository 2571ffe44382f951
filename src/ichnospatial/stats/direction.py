"""Do trackways share a direction of travel?

The step headings of each trackway form one circular sample. After
per-trackway assumption checks (Rayleigh test for a preferred direction,
von Mises concentration kappa), the samples are compared with either the
parametric Watson-Williams test or the rank-based Mardia-Watson-Wheeler
uniform-scores test, globally and for every pair of trackways.

Which Analysis Should I Use?
----------------------------
**Every trackway is well concentrated with similar kappa?**
    ``analysis="watson_williams"`` (default).

**Some trackways are near-uniform, kappas differ, or samples are small?**
    ``analysis="watson_wheeler"``. Its p-value switches to a permutation
    estimate automatically when a trackway has fewer than 10 steps or
    headings are tied.

Examples
--------
>>> import numpy as np
>>> from ichnospatial import TrackwayCollection
>>> rng = np.random.default_rng(0)
>>> def walk(bearing):
...     steps = np.column_stack(
...         [np.cos(bearing + rng.normal(0, 0.1, 12)), np.sin(bearing + rng.normal(0, 0.1, 12))]
...     )
...     return np.vstack([[0.0, 0.0], np.cumsum(steps, axis=0)])
>>> tracks = TrackwayCollection.from_trajectories([walk(0.0), walk(np.pi / 2)])
>>> result = test_direction(tracks)
>>> result.is_significant
True
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from itertools import combinations
from typing import Literal

import numpy as np
import pandas as pd
from numpy.typing import NDArray
from scipy.stats import chi2
from statsmodels.stats.multitest import multipletests

from ichnospatial.metrics.circular import (
    CircularTestResult,
    estimate_kappa,
    rayleigh_test,
    watson_wheeler_statistic,
    watson_williams_test,
)
from ichnospatial.metrics.geometry import step_headings
from ichnospatial.simulation.trajectory import _ensure_rng
from ichnospatial.trackway import TrackwayCollection
from ichnospatial.validation import (
    InsufficientDataError,
    validate_choice,
    validate_positive_int,
)

logger = logging.getLogger(__name__)

__all__ = ["DirectionTestResult", "test_direction"]

DIRECTION_ANALYSES = ("watson_williams", "watson_wheeler")

# Trackways need more than this many headings to be compared
_MIN_DIRECTIONS = 3
# Groups smaller than this get a permutation p-value in Watson-Wheeler
_SMALL_GROUP = 10
# Half-width (radians) of the uniform jitter that breaks tied headings
_TIE_JITTER = 1e-6


@dataclass(frozen=True)
class DirectionTestResult:
    """Result of ``test_direction``.

    Attributes
    ----------
    analysis : str
        ``"watson_williams"`` or ``"watson_wheeler"``.
    assumptions : pd.DataFrame
        One row per analyzed trackway with columns ``n``, ``rayleigh_z``,
        ``rayleigh_p`` and ``kappa`` (NaN when unstable).
    kappa_range : float
        Largest minus smallest finite kappa.
    kappa_ratio : float
        Largest over smallest positive kappa; NaN when undefined.
    global_test : CircularTestResult
        k-sample test over all analyzed trackways.
    pairwise : pd.DataFrame
        Columns ``track1``, ``track2``, ``statistic``, ``p_value``,
        ``method`` and ``p_adj`` (Holm).
    excluded : tuple of str
        Trackways dropped for having too few headings.
    """

    analysis: str
    assumptions: pd.DataFrame
    kappa_range: float
    kappa_ratio: float
    global_test: CircularTestResult
    pairwise: pd.DataFrame
    excluded: tuple[str, ...] = ()

    @property
    def is_significant(self) -> bool:
        """Return True if the global test rejects equal directions at 0.05."""
        return self.global_test.is_significant

    def summary(self) -> str:
        """Human-readable summary for printing."""
        n_sig = int((self.pairwise["p_adj"] < 0.05).sum()) if len(self.pairwise) else 0
        return (
            f"{self.global_test.method}: statistic = {self.global_test.statistic:.3f}, "
            f"p = {self.global_test.p_value:.4f} over {len(self.assumptions)} "
            f"trackways; {n_sig} of {len(self.pairwise)} pairs differ after Holm"
        )


# =============================================================================
# Helpers
# =============================================================================


def _normalize_analysis(analysis: str) -> str:
    key = analysis.lower().replace("-", "_") if isinstance(analysis, str) else analysis
    return validate_choice(key, "analysis", DIRECTION_ANALYSES)


def _has_ties(samples: list[NDArray[np.float64]]) -> bool:
    for sample in samples:
        rounded = np.round(np.mod(sample, 2 * np.pi), 12)
        if len(np.unique(rounded)) < len(rounded):
            return True
    return False


def _jitter(
    samples: list[NDArray[np.float64]], rng: np.random.Generator
) -> list[NDArray[np.float64]]:
    return [s + rng.uniform(-_TIE_JITTER, _TIE_JITTER, size=len(s)) for s in samples]


def _pooled(
    samples: list[NDArray[np.float64]],
) -> tuple[NDArray[np.float64], NDArray[np.int64]]:
    angles = np.concatenate(samples)
    groups = np.repeat(np.arange(len(samples)), [len(s) for s in samples])
    return angles, groups


def _watson_wheeler(
    samples: list[NDArray[np.float64]],
    *,
    use_permutation: bool,
    n_permutations: int,
    rng: np.random.Generator,
) -> CircularTestResult:
    angles, groups = _pooled(samples)
    w_obs = watson_wheeler_statistic(angles, groups)
    df = 2.0 * (len(samples) - 1)
    if not use_permutation:
        return CircularTestResult(
            statistic=w_obs,
            p_value=float(chi2.sf(w_obs, df)),
            df=(df,),
            method="Watson-Wheeler",
        )

    w_perm = np.empty(n_permutations)
    for b in range(n_permutations):
        w_perm[b] = watson_wheeler_statistic(angles, rng.permutation(groups))
    p_value = (np.sum(w_perm >= w_obs) + 1) / (n_permutations + 1)
    return CircularTestResult(
        statistic=w_obs,
        p_value=float(p_value),
        df=(df,),
        method=f"Watson-Wheeler (permutation, B={n_permutations})",
    )


def _assumption_table(
    samples: dict[str, NDArray[np.float64]],
) -> tuple[pd.DataFrame, float, float]:
    rows = []
    for name, sample in samples.items():
        z, p = rayleigh_test(sample)
        kappa = estimate_kappa(sample)
        rows.append(
            {
                "track": name,
                "n": len(sample),
                "rayleigh_z": z,
                "rayleigh_p": p,
                "kappa": kappa if np.isfinite(kappa) else np.nan,
            }
        )
    table = pd.DataFrame(rows).set_index("track")

    kappas = table["kappa"].to_numpy()
    finite = kappas[np.isfinite(kappas)]
    kappa_range = float(finite.max() - finite.min()) if finite.size else np.nan
    positive = finite[finite > 0]
    kappa_ratio = (
        float(finite.max() / positive.min())
        if positive.size and finite.min() > 0
        else np.nan
    )

    if np.any(table["rayleigh_p"] > 0.05):
        warnings.warn(
            "One or more tracks show near-uniform directions (Rayleigh p > 0.05). "
            "Parametric assumptions (von Mises) may be questionable; consider "
            "analysis='watson_wheeler'.",
            UserWarning,
            stacklevel=3,
        )
    if np.any(np.isnan(kappas)):
        warnings.warn(
            "Some tracks have unstable concentration (kappa) estimates; "
            "Watson-Williams assumptions may not hold. Consider "
            "analysis='watson_wheeler'.",
            UserWarning,
            stacklevel=3,
        )
    elif np.isfinite(kappa_ratio) and kappa_ratio > 2:
        warnings.warn(
            "Estimated concentration (kappa) appears heterogeneous across tracks "
            "(ratio > 2). Watson-Williams assumes similar concentration; "
            "consider analysis='watson_wheeler'.",
            UserWarning,
            stacklevel=3,
        )
    return table, kappa_range, kappa_ratio


# =============================================================================
# Public API
# =============================================================================


def test_direction(
    collection: TrackwayCollection,
    *,
    analysis: Literal["watson_williams", "watson_wheeler"] = "watson_williams",
    permutation: bool | None = None,
    n_permutations: int = 1000,
    rng: np.random.Generator | int | None = None,
) -> DirectionTestResult:
    """
    Compare the step headings of trackways.

    Parameters
    ----------
    collection : TrackwayCollection
        Trackways to compare. Each contributes its step headings.
    analysis : {"watson_williams", "watson_wheeler"}, default="watson_williams"
        Test used globally and for every pair. ``"Watson-Williams"`` and
        ``"Watson-Wheeler"`` are accepted too.
    permutation : bool, optional
        Watson-Wheeler only. None decides per test: a permutation p-value
        is used when some group has fewer than 10 headings or headings are
        tied. True or False forces the choice.
    n_permutations : int, default=1000
        Number of label permutations.
    rng : np.random.Generator | int | None, default=None
        Random number generator for jitter and permutations.

    Returns
    -------
    DirectionTestResult

    Raises
    ------
    TrackwayValidationError
        If ``analysis`` is unknown.
    InsufficientDataError
        If fewer than two trackways have more than 3 headings.

    Warns
    -----
    UserWarning
        When trackways are dropped, when a trackway looks near-uniform or
        its kappa is unstable or heterogeneous, and when Watson-Wheeler
        switches to permutation p-values.

    Notes
    -----
    Tied headings are broken by a uniform jitter of +/- 1e-6 radians before
    ranking. The permutation p-value is (#{W_perm >= W_obs} + 1) / (B + 1).
    """
    analysis = _normalize_analysis(analysis)
    n_permutations = validate_positive_int(n_permutations, "n_permutations")
    generator = _ensure_rng(rng)

    samples: dict[str, NDArray[np.float64]] = {}
    excluded = []
    for name, trajectory, _ in collection:
        headings = step_headings(trajectory)
        headings = headings[np.isfinite(headings)]
        if len(headings) > _MIN_DIRECTIONS:
            samples[name] = headings
        else:
            excluded.append(name)

    if excluded:
        warnings.warn(
            f"The following tracks were removed from the analysis due to having "
            f"{_MIN_DIRECTIONS} or fewer directions: {', '.join(excluded)}.",
            UserWarning,
            stacklevel=2,
        )
    if len(samples) < 2:
        raise InsufficientDataError(
            f"Not enough tracks with more than {_MIN_DIRECTIONS} directions for "
            f"meaningful analysis (got {len(samples)}).\n"
            f"Fix: provide at least two trackways with 5 or more points."
        )

    assumptions, kappa_range, kappa_ratio = _assumption_table(samples)

    names = list(samples)
    all_samples = [samples[n] for n in names]

    def run(group: list[NDArray[np.float64]], *, announce: bool) -> CircularTestResult:
        if analysis == "watson_williams":
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", UserWarning)
                return watson_williams_test(group)

        small = any(len(g) < _SMALL_GROUP for g in group)
        ties = _has_ties(group)
        if ties:
            group = _jitter(group, generator)
        use_permutation = (small or ties) if permutation is None else bool(permutation)
        if announce and use_permutation:
            if small:
                warnings.warn(
                    "Using permutation p-value for Watson-Wheeler because some "
                    "groups have n < 10.",
                    UserWarning,
                    stacklevel=3,
                )
            if ties and permutation is None:
                warnings.warn(
                    "Ties detected. Using permutation p-value for Watson-Wheeler.",
                    UserWarning,
                    stacklevel=3,
                )
        return _watson_wheeler(
            group,
            use_permutation=use_permutation,
            n_permutations=n_permutations,
            rng=generator,
        )

    global_test = run(all_samples, announce=True)

    rows = []
    for a, b in combinations(names, 2):
        pair = run([samples[a], samples[b]], announce=False)
        rows.append(
            {
                "track1": a,
                "track2": b,
                "statistic": pair.statistic,
                "p_value": pair.p_value,
                "method": pair.method,
            }
        )
    pairwise = pd.DataFrame(
        rows, columns=["track1", "track2", "statistic", "p_value", "method"]
    )
    pairwise["p_adj"] = multipletests(pairwise["p_value"].to_numpy(), method="holm")[1]

    logger.info(
        "%s direction test over %d trackways: p = %.4g",
        global_test.method,
        len(names),
        global_test.p_value,
    )
    return DirectionTestResult(
        analysis=analysis,
        assumptions=assumptions,
        kappa_range=kappa_range,
        kappa_ratio=kappa_ratio,
        global_test=global_test,
        pairwise=pairwise,
        excluded=tuple(excluded),
    )


# keep pytest from collecting the public function as a test
test_direction.__test__ = False  # type: ignore[attr-defined]
