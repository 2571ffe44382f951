"""Shared output schema of the error-partitioning analyses."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from ichnospatial.validation import filter_known_names

__all__ = [
    "CIRCULAR_VARIABLES",
    "DEFAULT_VARIABLES",
    "ErrorPartitioningResult",
    "build_tables",
    "component_rows",
    "select_variables",
    "snr_rating",
    "snr_row",
]

DEFAULT_VARIABLES: tuple[str, ...] = (
    "TurnAng",
    "sdTurnAng",
    "Distance",
    "Length",
    "StLength",
    "sdStLength",
    "Sinuosity",
    "Straightness",
    "TrackWidth",
    "PaceAng",
)

# Decomposed on sine and cosine, then averaged
CIRCULAR_VARIABLES: tuple[str, ...] = ("TurnAng", "PaceAng")

BIO_COMPONENT = "track"


@dataclass(frozen=True)
class ErrorPartitioningResult:
    """Variance decomposition of movement parameters.

    Attributes
    ----------
    summary : pd.DataFrame
        Columns ``variable``, ``component``, ``variance``, ``percent`` and
        ``R2_c``; one row per variance component of every variable.
    snr : pd.DataFrame
        Columns ``variable``, ``bio_component``, ``bio_var``, ``error_var``
        and ``SNR`` (biological over error variance).
    qc : pd.DataFrame
        Columns ``variable``, ``SNR``, ``SNR_rating``, ``top_component``,
        ``top_percent``, ``R2_c``, ``observer_estimable`` and ``singular``.
    analysis_table : pd.DataFrame
        Long table the decomposition was computed from.
    models : dict
        Fitted models per variable (observer mode); empty for the
        simulation-based anatomical mode.
    track_names : tuple of str
        Trackway names in collection order.
    """

    summary: pd.DataFrame
    snr: pd.DataFrame
    qc: pd.DataFrame
    analysis_table: pd.DataFrame
    models: dict[str, object] = field(default_factory=dict)
    track_names: tuple[str, ...] = ()

    def summary_text(self) -> str:
        """One line per variable with its SNR and rating."""
        lines = [
            f"{row.variable}: SNR = {row.SNR:.3g} ({row.SNR_rating}), "
            f"top component {row.top_component} ({row.top_percent:.1f}%)"
            for row in self.qc.itertuples()
        ]
        return "\n".join(lines)


def snr_rating(snr: float) -> str:
    """
    Qualitative rating of a signal-to-noise ratio.

    Examples
    --------
    >>> snr_rating(0.5), snr_rating(1.5), snr_rating(3.0), snr_rating(float("nan"))
    ('weak (error > bio)', 'moderate', 'strong', 'NA')
    """
    if snr is None or not np.isfinite(snr):
        return "NA"
    if snr < 1:
        return "weak (error > bio)"
    if snr < 2:
        return "moderate"
    return "strong"


def select_variables(variables: Sequence[str]) -> list[str]:
    return filter_known_names(variables, DEFAULT_VARIABLES)


def component_rows(
    variable: str, components: Mapping[str, float], r2_c: float
) -> list[dict[str, object]]:
    """Summary rows of one variable; percents are NaN when the total is not positive."""
    total = float(np.nansum(list(components.values())))
    valid_total = np.isfinite(total) and total > 0
    return [
        {
            "variable": variable,
            "component": name,
            "variance": float(value),
            "percent": 100.0 * value / total if valid_total else np.nan,
            "R2_c": r2_c,
        }
        for name, value in components.items()
    ]


def snr_row(variable: str, components: Mapping[str, float]) -> dict[str, object]:
    bio = float(components.get(BIO_COMPONENT, 0.0))
    error = float(
        np.nansum([v for k, v in components.items() if k != BIO_COMPONENT])
    )
    snr = bio / error if np.isfinite(error) and error > 0 else np.nan
    return {
        "variable": variable,
        "bio_component": BIO_COMPONENT,
        "bio_var": bio,
        "error_var": error,
        "SNR": snr,
    }


def build_tables(
    summary_rows: list[dict[str, object]],
    snr_rows: list[dict[str, object]],
    *,
    observer_estimable: Mapping[str, str],
    singular: Mapping[str, bool],
) -> tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    """Assemble the summary, SNR and QC tables."""
    summary = pd.DataFrame(
        summary_rows, columns=["variable", "component", "variance", "percent", "R2_c"]
    )
    snr = pd.DataFrame(
        snr_rows, columns=["variable", "bio_component", "bio_var", "error_var", "SNR"]
    )

    qc_rows = []
    for variable, table in summary.groupby("variable", sort=False):
        value = float(snr.loc[snr["variable"] == variable, "SNR"].iloc[0])
        percents = table["percent"].to_numpy(dtype=np.float64)
        if np.all(np.isnan(percents)):
            top_component, top_percent = table["component"].iloc[0], np.nan
        else:
            top = int(np.nanargmax(percents))
            top_component, top_percent = table["component"].iloc[top], percents[top]
        qc_rows.append(
            {
                "variable": variable,
                "SNR": value,
                "SNR_rating": snr_rating(value),
                "top_component": top_component,
                "top_percent": top_percent,
                "R2_c": table["R2_c"].iloc[0],
                "observer_estimable": observer_estimable[variable],
                "singular": bool(singular[variable]),
            }
        )
    qc = pd.DataFrame(
        qc_rows,
        columns=[
            "variable",
            "SNR",
            "SNR_rating",
            "top_component",
            "top_percent",
            "R2_c",
            "observer_estimable",
            "singular",
        ],
    )
    return summary, snr, qc
