"""Simulation subpackage for generating null ensembles of trackways.

This subpackage provides tools for:
- Random-walk simulation of trackway collections (unconstrained, directed,
  constrained-corridor models)
- Origin permutation of simulated trackways within a region

Examples
--------
>>> import numpy as np
>>> from ichnospatial import TrackwayCollection
>>> from ichnospatial.simulation import simulate_trackways, permute_origins
>>> tracks = TrackwayCollection.from_trajectories(
...     [
...         np.array([[0.0, 0.0], [1.0, 0.1], [2.0, 0.0], [3.0, 0.2]]),
...         np.array([[0.0, 2.0], [1.0, 2.1], [2.0, 2.3], [3.0, 2.2]]),
...     ]
... )
>>> sims = simulate_trackways(tracks, nsim=10, model="directed", rng=0)
>>> moved = permute_origins(sims, tracks, region="conv_hull", rng=0)
>>> len(moved)
10
"""

from ichnospatial.simulation.origins import (
    ORIGIN_REGIONS,
    origin_region,
    permute_origins,
    sample_in_region,
)
from ichnospatial.simulation.trajectory import (
    MOVEMENT_MODELS,
    simulate_trackway,
    simulate_trackways,
)

__all__ = [
    "MOVEMENT_MODELS",
    "ORIGIN_REGIONS",
    "origin_region",
    "permute_origins",
    "sample_in_region",
    "simulate_trackway",
    "simulate_trackways",
]
