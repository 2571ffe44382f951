"""Do trackmakers differ in speed?

Velocities are estimated outside this package (for example from footprint
spacing and inferred hip height) and passed in as one array per trackway.
``test_velocity`` checks normality (Shapiro-Wilk per trackway) and
homogeneity of variance (Brown-Forsythe variant of Levene's test), then runs
one of three comparisons:

| analysis | Global test | Pairwise comparisons |
|----------|-------------|----------------------|
| ``"anova"`` | one-way ANOVA | Tukey HSD |
| ``"kruskal_wallis"`` | Kruskal-Wallis H | Dunn's z-test, Holm adjusted |
| ``"glm"`` | Gaussian GLM, Wald tests | Tukey HSD |

ANOVA is skipped with a warning when any normality p-value or the Levene
p-value is at most 0.05.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Mapping
from dataclasses import dataclass
from itertools import combinations
from typing import Any, Literal

import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf
from numpy.typing import ArrayLike
from scipy.stats import kruskal, levene, norm, rankdata, shapiro
from statsmodels.stats.multicomp import pairwise_tukeyhsd
from statsmodels.stats.multitest import multipletests

from ichnospatial.validation import InsufficientDataError, validate_choice

logger = logging.getLogger(__name__)

__all__ = ["VelocityTestResult", "dunn_test", "test_velocity"]

VELOCITY_ANALYSES = ("anova", "kruskal_wallis", "glm")

_MIN_VELOCITIES = 3


@dataclass(frozen=True)
class VelocityTestResult:
    """Result of ``test_velocity``.

    Attributes
    ----------
    analysis : str
        Analysis that was requested.
    normality : pd.Series
        Shapiro-Wilk p-value per trackway.
    homogeneity : pd.Series
        Levene ``statistic`` and ``p_value``.
    global_test : pd.DataFrame or None
        ANOVA table, Kruskal-Wallis statistic, or GLM coefficient table.
        None when ANOVA was skipped.
    pairwise : pd.DataFrame or None
        Pairwise comparisons with columns ``group1``, ``group2``,
        ``p_adj`` and test-specific statistics.
    model : object or None
        Fitted statsmodels results for ``"anova"`` and ``"glm"``.
    excluded : tuple of str
        Trackways dropped for having too few velocities.
    """

    analysis: str
    normality: pd.Series
    homogeneity: pd.Series
    global_test: pd.DataFrame | None
    pairwise: pd.DataFrame | None
    model: Any = None
    excluded: tuple[str, ...] = ()

    @property
    def assumptions_met(self) -> bool:
        """True when every Shapiro-Wilk and the Levene p-value exceed 0.05."""
        return bool(
            np.all(self.normality.to_numpy() > 0.05)
            and self.homogeneity["p_value"] > 0.05
        )


def _normalize_analysis(analysis: str) -> str:
    key = analysis.lower().replace("-", "_") if isinstance(analysis, str) else analysis
    return validate_choice(key, "analysis", VELOCITY_ANALYSES)


def _tukey_table(data: pd.DataFrame) -> pd.DataFrame:
    tukey = pairwise_tukeyhsd(data["vel"].to_numpy(), data["track"].to_numpy())
    header, *rows = tukey.summary().data
    table = pd.DataFrame(rows, columns=header)
    return table.rename(columns={"p-adj": "p_adj"})


def dunn_test(data: pd.DataFrame) -> pd.DataFrame:
    """
    Dunn's pairwise rank test with Holm adjustment.

    Ranks are computed on the pooled sample with average ranks for ties, and
    the variance carries the tie correction. P-values are two-sided.

    Parameters
    ----------
    data : pd.DataFrame
        Long table with columns ``vel`` and ``track``.

    Returns
    -------
    pd.DataFrame
        Columns ``group1``, ``group2``, ``z``, ``p_value`` and ``p_adj``.
    """
    values = data["vel"].to_numpy(dtype=np.float64)
    ranks = rankdata(values)
    n = len(values)
    _, tie_counts = np.unique(values, return_counts=True)
    tie_term = np.sum(tie_counts**3 - tie_counts) / (12.0 * (n - 1))
    base_var = n * (n + 1) / 12.0 - tie_term

    groups = list(dict.fromkeys(data["track"]))
    labels = data["track"].to_numpy()
    mean_rank = {g: ranks[labels == g].mean() for g in groups}
    size = {g: int(np.sum(labels == g)) for g in groups}

    rows = []
    for a, b in combinations(groups, 2):
        se = np.sqrt(base_var * (1.0 / size[a] + 1.0 / size[b]))
        z = (mean_rank[a] - mean_rank[b]) / se if se > 0 else 0.0
        rows.append(
            {"group1": a, "group2": b, "z": z, "p_value": 2 * norm.sf(abs(z))}
        )
    table = pd.DataFrame(rows, columns=["group1", "group2", "z", "p_value"])
    table["p_adj"] = multipletests(table["p_value"].to_numpy(), method="holm")[1]
    return table


def test_velocity(
    velocities: Mapping[str, ArrayLike],
    *,
    analysis: Literal["anova", "kruskal_wallis", "glm"] = "anova",
) -> VelocityTestResult:
    """
    Compare velocities among trackways.

    Parameters
    ----------
    velocities : mapping of str to array-like
        Velocity estimates per trackway, e.g. one value per step. NaN values
        are ignored.
    analysis : {"anova", "kruskal_wallis", "glm"}, default="anova"
        Comparison to run. ``"ANOVA"``, ``"Kruskal-Wallis"`` and ``"GLM"``
        are accepted too.

    Returns
    -------
    VelocityTestResult

    Raises
    ------
    TrackwayValidationError
        If ``analysis`` is unknown.
    InsufficientDataError
        If fewer than two trackways have more than 3 velocities.

    Warns
    -----
    UserWarning
        When trackways are dropped, and when ANOVA assumptions fail (the
        ANOVA is then skipped; consider Kruskal-Wallis or GLM).

    Examples
    --------
    >>> import numpy as np
    >>> rng = np.random.default_rng(0)
    >>> result = test_velocity(
    ...     {"A": rng.normal(1.0, 0.1, 20), "B": rng.normal(2.0, 0.1, 20)},
    ...     analysis="kruskal_wallis",
    ... )
    >>> float(result.pairwise["p_adj"].iloc[0]) < 0.05
    True
    """
    analysis = _normalize_analysis(analysis)

    frames = []
    excluded = []
    for name, values in velocities.items():
        v = np.asarray(values, dtype=np.float64).ravel()
        v = v[np.isfinite(v)]
        if len(v) > _MIN_VELOCITIES:
            frames.append(pd.DataFrame({"vel": v, "track": str(name)}))
        else:
            excluded.append(str(name))
    if excluded:
        warnings.warn(
            f"The following tracks were removed from the analysis due to having "
            f"{_MIN_VELOCITIES} or fewer velocities: {', '.join(excluded)}",
            UserWarning,
            stacklevel=2,
        )
    if len(frames) < 2:
        raise InsufficientDataError(
            f"Not enough tracks with more than {_MIN_VELOCITIES} velocities for "
            f"meaningful analysis (got {len(frames)})."
        )
    data = pd.concat(frames, ignore_index=True)
    groups = [frame["vel"].to_numpy() for frame in frames]
    names = [str(frame["track"].iloc[0]) for frame in frames]

    with warnings.catch_warnings():
        # constant samples make Shapiro-Wilk warn and return p = 1
        warnings.simplefilter("ignore", UserWarning)
        normality = pd.Series(
            [shapiro(g).pvalue for g in groups], index=names, name="shapiro_p"
        )
    lev = levene(*groups, center="median")
    homogeneity = pd.Series(
        {"statistic": float(lev.statistic), "p_value": float(lev.pvalue)}
    )

    global_test: pd.DataFrame | None = None
    pairwise: pd.DataFrame | None = None
    model = None

    if analysis == "anova":
        if np.all(normality > 0.05) and homogeneity["p_value"] > 0.05:
            model = smf.ols("vel ~ C(track)", data=data).fit()
            global_test = sm.stats.anova_lm(model, typ=2)
            pairwise = _tukey_table(data)
        else:
            warnings.warn(
                "Assumptions for ANOVA are not met. Consider using "
                "analysis='kruskal_wallis' or analysis='glm'.",
                UserWarning,
                stacklevel=2,
            )
    elif analysis == "kruskal_wallis":
        h = kruskal(*groups)
        global_test = pd.DataFrame(
            {
                "statistic": [float(h.statistic)],
                "df": [len(groups) - 1],
                "p_value": [float(h.pvalue)],
            },
            index=["Kruskal-Wallis"],
        )
        pairwise = dunn_test(data)
    else:
        model = smf.glm("vel ~ C(track)", data=data, family=sm.families.Gaussian()).fit()
        global_test = model.summary2().tables[1]
        pairwise = _tukey_table(data)

    logger.info("Velocity %s over %d trackways", analysis, len(groups))
    return VelocityTestResult(
        analysis=analysis,
        normality=normality,
        homogeneity=homogeneity,
        global_test=global_test,
        pairwise=pairwise,
        model=model,
        excluded=tuple(excluded),
    )


test_velocity.__test__ = False  # type: ignore[attr-defined]
