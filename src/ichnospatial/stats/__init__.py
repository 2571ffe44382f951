"""
Hypothesis tests for trackway assemblages.

Modules
-------
montecarlo
    Simulation-based tests of pairwise similarity (DTW, Fréchet) and
    intersection counts, Benjamini-Hochberg adjustment, combined p-values.
direction
    Watson-Williams and Watson-Wheeler comparisons of step headings.
velocity
    ANOVA, Kruskal-Wallis and GLM comparisons of velocities.

Imports
-------
>>> from ichnospatial.stats import simil_dtw_metric, combined_prob
>>> from ichnospatial.stats import test_direction
"""

from __future__ import annotations

from ichnospatial.stats.direction import DirectionTestResult, test_direction
from ichnospatial.stats.montecarlo import (
    CombinedTestResult,
    MetricTestResult,
    adjust_pvalues,
    adjust_pvalues_bh,
    combined_prob,
    compute_mc_pvalue,
    global_pvalue,
    pairwise_pvalues,
    simil_dtw_metric,
    simil_frechet_metric,
    track_intersection,
)
from ichnospatial.stats.velocity import VelocityTestResult, dunn_test, test_velocity

__all__ = [
    "CombinedTestResult",
    "DirectionTestResult",
    "MetricTestResult",
    "VelocityTestResult",
    "adjust_pvalues",
    "adjust_pvalues_bh",
    "combined_prob",
    "compute_mc_pvalue",
    "dunn_test",
    "global_pvalue",
    "pairwise_pvalues",
    "simil_dtw_metric",
    "simil_frechet_metric",
    "test_direction",
    "test_velocity",
]
