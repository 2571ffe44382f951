"""How much of a movement parameter depends on who digitized the trackway?

When the same trackways are digitized independently by several observers,
possibly several times each, ``observer_error_partitioning`` fits one
linear mixed model per movement parameter with crossed random intercepts
for ``track``, ``observer`` and their interaction, and reports the fitted
variance components.

Model
-----
``value ~ 1`` with variance components

| Component | Included when |
|-----------|---------------|
| ``track`` | more than one track |
| ``observer`` | more than one observer |
| ``observer:track`` | both of the above, and some observer-track cell has at least 2 replicas |
| ``Residual`` | always |

Crossed effects are expressed as variance components of a single group
(``statsmodels.regression.mixed_linear_model.MixedLM`` with
``vc_formula``) and fitted by REML. Small or unbalanced designs often put a
component on the boundary (variance 0); such fits are kept and flagged as
``singular`` in the QC table.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Sequence

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from ichnospatial.metrics.geometry import parameter_table
from ichnospatial.trackway import TrackwayCollection
from ichnospatial.validation import TrackwayValidationError
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

__all__ = ["observer_error_partitioning"]

METADATA_COLUMNS = ("track", "observer", "replica")

# Variance components below this fraction of the total count as zero
_SINGULAR_TOL = 1e-8

_COMPONENT_LABELS = {
    "track": "track",
    "observer": "observer",
    "observer_track": "observer:track",
}


def _random_terms(data: pd.DataFrame) -> dict[str, str]:
    n_track = data["track"].nunique()
    n_observer = data["observer"].nunique()
    cell_sizes = data.groupby(["observer", "track"]).size()

    terms = {}
    if n_track > 1:
        terms["track"] = "0 + C(track)"
    if n_observer > 1:
        terms["observer"] = "0 + C(observer)"
    if n_track > 1 and n_observer > 1 and len(cell_sizes) > 1 and np.any(cell_sizes >= 2):
        terms["observer_track"] = "0 + C(observer_track)"
    return terms


def _fit(
    data: pd.DataFrame, values: np.ndarray, vc_formula: dict[str, str], label: str
) -> tuple[dict[str, float], object | None, bool]:
    """Fit one REML model; return components, the fit and a singular flag."""
    frame = data.assign(value=values)
    frame = frame[np.isfinite(frame["value"].to_numpy(dtype=np.float64))]
    nan_components = {_COMPONENT_LABELS[k]: np.nan for k in vc_formula}
    nan_components["Residual"] = np.nan
    if len(frame) < 3:
        warnings.warn(
            f"{label}: fewer than 3 finite values; variance components set to NaN.",
            UserWarning,
            stacklevel=3,
        )
        return nan_components, None, True

    model = smf.mixedlm(
        "value ~ 1", frame, groups="group", re_formula="0", vc_formula=vc_formula
    )
    fit = None
    failure: Exception | None = None
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        try:
            fit = model.fit(reml=True)
        except (np.linalg.LinAlgError, ValueError) as err:
            failure = err
    for w in caught:
        logger.debug("%s: %s", label, w.message)
    if fit is None:
        warnings.warn(
            f"{label}: mixed model could not be fitted ({failure}); variance "
            f"components set to NaN.",
            UserWarning,
            stacklevel=3,
        )
        return nan_components, None, True

    components = {
        _COMPONENT_LABELS[name]: float(value)
        for name, value in zip(model.exog_vc.names, fit.vcomp, strict=True)
    }
    # keep the component order of the design table
    components = {
        _COMPONENT_LABELS[k]: components[_COMPONENT_LABELS[k]] for k in vc_formula
    }
    components["Residual"] = float(fit.scale)

    total = sum(v for v in components.values() if np.isfinite(v))
    converged = bool(getattr(fit, "converged", True)) and not any(
        issubclass(w.category, ConvergenceWarning) for w in caught
    )
    singular = (not converged) or any(
        v <= _SINGULAR_TOL * max(total, np.finfo(float).tiny)
        for v in components.values()
    )
    return components, fit, singular


def observer_error_partitioning(
    collection: TrackwayCollection,
    metadata: pd.DataFrame,
    *,
    variables: Sequence[str] = DEFAULT_VARIABLES,
) -> ErrorPartitioningResult:
    """
    Partition parameter variance into track, observer and residual components.

    Parameters
    ----------
    collection : TrackwayCollection
        Digitizations, one trackway per observer, track and replica.
    metadata : pd.DataFrame
        One row per trackway of ``collection``, in the same order, with
        columns ``track`` (physical trackway), ``observer`` and ``replica``.
    variables : sequence of str, default=DEFAULT_VARIABLES
        Parameters to decompose. Unknown names are warned about and
        ignored.

    Returns
    -------
    ErrorPartitioningResult
        ``models`` maps every variable to its fitted model, or to a
        ``{"sin": ..., "cos": ...}`` pair for circular variables.

    Raises
    ------
    TrackwayValidationError
        If ``metadata`` lacks a required column or its length differs from
        the collection, or no random effect has more than one level.
    InsufficientDataError
        If none of ``variables`` is known.

    Warns
    -----
    UserWarning
        Naming the trackways whose value of a variable is not finite; those
        rows are left out of that variable's model. A variable with fewer
        than 3 finite values, or whose model fails to fit, gets NaN
        components and is flagged singular.

    Notes
    -----
    Circular parameters are fitted on their sine and cosine; the reported
    components are the averages of the two fits. ``R2_c`` is the
    conditional R-squared of the intercept-only model, i.e. the share of
    the total variance carried by the random effects.
    """
    missing = [c for c in METADATA_COLUMNS if c not in metadata.columns]
    if missing:
        raise TrackwayValidationError(
            f"metadata must include columns {list(METADATA_COLUMNS)}; missing {missing}."
        )
    if len(metadata) != len(collection):
        raise TrackwayValidationError(
            f"metadata must have one row per trackway ({len(collection)}), in "
            f"collection order; got {len(metadata)} rows."
        )
    variables = select_variables(variables)

    params = parameter_table(collection, warn=False)
    design = metadata.loc[:, list(METADATA_COLUMNS)].astype(str).reset_index(drop=True)
    design["observer_track"] = design["observer"] + ":" + design["track"]
    design["group"] = 1
    analysis_table = pd.concat(
        [
            pd.DataFrame({"name": list(collection.names)}),
            params[variables].reset_index(drop=True),
            design[list(METADATA_COLUMNS)],
        ],
        axis=1,
    )

    vc_formula = _random_terms(design)
    if not vc_formula:
        raise TrackwayValidationError(
            "No random effect has > 1 level; cannot partition variance."
        )
    logger.debug("Random effects: %s", list(vc_formula))

    summary_rows, snr_rows = [], []
    models: dict[str, object] = {}
    singular: dict[str, bool] = {}
    for variable in variables:
        values = params[variable].to_numpy(dtype=np.float64)
        excluded = [
            name
            for name, value in zip(collection.names, values, strict=True)
            if not np.isfinite(value)
        ]
        if excluded:
            warnings.warn(
                f"{variable}: trackways with non-finite values excluded from the "
                f"mixed model: {', '.join(excluded)}",
                UserWarning,
                stacklevel=2,
            )
        if variable in CIRCULAR_VARIABLES:
            theta = np.radians(values)
            sin_comp, sin_fit, sin_singular = _fit(
                design, np.sin(theta), vc_formula, f"{variable} (sin)"
            )
            cos_comp, cos_fit, cos_singular = _fit(
                design, np.cos(theta), vc_formula, f"{variable} (cos)"
            )
            components = {k: (sin_comp[k] + cos_comp[k]) / 2 for k in sin_comp}
            models[variable] = {"sin": sin_fit, "cos": cos_fit}
            singular[variable] = sin_singular or cos_singular
        else:
            components, fit, singular[variable] = _fit(
                design, values, vc_formula, variable
            )
            models[variable] = fit

        random_var = sum(v for k, v in components.items() if k != "Residual")
        total = random_var + components["Residual"]
        r2_c = random_var / total if np.isfinite(total) and total > 0 else np.nan
        summary_rows.extend(component_rows(variable, components, r2_c))
        snr_rows.append(snr_row(variable, components))

    estimable = "yes" if "observer" in vc_formula else "no (1 level)"
    summary, snr, qc = build_tables(
        summary_rows,
        snr_rows,
        observer_estimable=dict.fromkeys(variables, estimable),
        singular=singular,
    )
    logger.info(
        "Observer error partitioning of %d variables with components %s",
        len(variables),
        ", ".join(_COMPONENT_LABELS[k] for k in vc_formula),
    )
    return ErrorPartitioningResult(
        summary=summary,
        snr=snr,
        qc=qc,
        analysis_table=analysis_table,
        models=models,
        track_names=tuple(collection.names),
    )
