"""
Movement metrics for trackways.

Modules
-------
geometry
    Geometry kernel: headings, step/stride/pace lengths, sinuosity,
    straightness, trackway width, gauge, pace angulation and step angle.
circular
    Circular statistics (mean, standard deviation, kappa, Rayleigh,
    Watson-Williams, Watson-Wheeler).
"""

from __future__ import annotations

from ichnospatial.metrics.circular import (
    circular_mean,
    circular_std,
    estimate_kappa,
    mean_resultant_length,
    rayleigh_test,
    wrap_angle,
)
from ichnospatial.metrics.geometry import (
    TrackParameters,
    compute_track_parameters,
    parameter_table,
    sinuosity,
    straightness,
    track_param,
)

__all__ = [
    "TrackParameters",
    "circular_mean",
    "circular_std",
    "compute_track_parameters",
    "estimate_kappa",
    "mean_resultant_length",
    "parameter_table",
    "rayleigh_test",
    "sinuosity",
    "straightness",
    "track_param",
    "wrap_angle",
]
