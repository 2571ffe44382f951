"""Pairwise trajectory similarity and intersection metrics.

Submodules
----------
distance : Superposition, DTW and discrete Fréchet distances
intersection : Unique crossing points between polylines
pairwise : Symmetric metric matrices over a collection

Imports
-------
>>> from ichnospatial.similarity import dtw_matrix, intersection_matrix
>>> from ichnospatial.similarity.distance import dtw_distance
"""

from ichnospatial.similarity.distance import (
    SUPERPOSITIONS,
    dtw_distance,
    frechet_distance,
    superpose,
)
from ichnospatial.similarity.intersection import (
    count_intersections,
    intersection_points,
)
from ichnospatial.similarity.pairwise import (
    dtw_matrix,
    frechet_matrix,
    intersection_matrix,
    pairwise_matrix,
    upper_triangle_values,
)

__all__ = [
    "SUPERPOSITIONS",
    "count_intersections",
    "dtw_distance",
    "dtw_matrix",
    "frechet_distance",
    "frechet_matrix",
    "intersection_matrix",
    "intersection_points",
    "pairwise_matrix",
    "superpose",
    "upper_triangle_values",
]
