"""
Measurement-error partitioning of movement parameters.

Modules
-------
anatomical
    Footprint jitter Monte Carlo: biological vs. anatomical variance.
observer
    Mixed models on repeated digitizations: track vs. observer variance.

Both analyses return an ``ErrorPartitioningResult`` with the same
``summary``, ``snr`` and ``qc`` tables, so their signal-to-noise ratios
can be compared directly.

Imports
-------
>>> from ichnospatial.variance import anatomical_error_partitioning
>>> from ichnospatial.variance import observer_error_partitioning
"""

from __future__ import annotations

from ichnospatial.variance._partition import (
    CIRCULAR_VARIABLES,
    DEFAULT_VARIABLES,
    ErrorPartitioningResult,
    snr_rating,
)
from ichnospatial.variance.anatomical import (
    anatomical_error_partitioning,
    jitter_footprints,
)
from ichnospatial.variance.observer import observer_error_partitioning

__all__ = [
    "CIRCULAR_VARIABLES",
    "DEFAULT_VARIABLES",
    "ErrorPartitioningResult",
    "anatomical_error_partitioning",
    "jitter_footprints",
    "observer_error_partitioning",
    "snr_rating",
]
