"""Quantitative analysis of fossil trackways.

**ichnospatial** derives movement parameters from digitized footprint
sequences, tests trackway similarity and intersection against simulated
random-walk ensembles, clusters trackways by movement signature, and
partitions metric variance into biological and measurement-error
components.

Core Classes (Top-Level Exports)
--------------------------------
Footprints : Footprint records of one trackway
    Coordinates, side labels and provenance.
TrackwayCollection : Aligned trajectories, footprints and names
    Input of every analysis. Factory methods: from_footprints,
    from_trajectories.
TrackwayValidationError : Exception for structural input errors
    Raised before any computation starts.

Submodule Organization
----------------------
All other functionality is accessed via explicit submodule imports.

metrics : Geometry kernel and circular statistics

    >>> from ichnospatial.metrics.geometry import track_param, parameter_table

simulation : Random-walk ensembles and origin permutation

    >>> from ichnospatial.simulation import simulate_trackways, permute_origins

similarity : DTW, Fréchet and intersection-count matrices

    >>> from ichnospatial.similarity import dtw_matrix, intersection_matrix

stats : Monte Carlo inference, direction and velocity tests

    >>> from ichnospatial.stats.montecarlo import simil_dtw_metric, combined_prob

clustering : Hierarchical and Gaussian mixture clustering

    >>> from ichnospatial.clustering import cluster_track

variance : Anatomical and observer error partitioning

    >>> from ichnospatial.variance import anatomical_error_partitioning
"""

import logging

from ichnospatial.trackway import Footprints, TrackwayCollection
from ichnospatial.validation import TrackwayValidationError

__all__ = [
    "Footprints",
    "TrackwayCollection",
    "TrackwayValidationError",
]

# Add NullHandler to prevent "No handler found" warnings if user doesn't configure logging
logging.getLogger(__name__).addHandler(logging.NullHandler())
