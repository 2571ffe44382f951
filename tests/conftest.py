"""Shared test fixtures for the ichnospatial test suite.

Fixture Naming Convention
=========================

**Trajectory fixtures** return bare ``(n, 2)`` arrays:
    straight_trajectory, zigzag_trajectory

**Collection fixtures** return a ``TrackwayCollection``:
    {layout}_tracks (e.g., parallel_tracks, crossing_tracks)

Collections built from footprints carry alternating L/R side labels; the
ones built from trajectories have no footprints.
"""

import os

import numpy as np
import pytest
from hypothesis import Phase, Verbosity, settings
from numpy.typing import NDArray

from ichnospatial import Footprints, TrackwayCollection

# =============================================================================
# Hypothesis Configuration for Performance
# =============================================================================
# Register Hypothesis profiles for different testing scenarios:
# - "ci": Fast profile for CI pipelines (fewer examples, no deadline)
# - "dev": Standard development profile (moderate examples)
# - "thorough": Full property testing (many examples, for pre-release)

settings.register_profile(
    "ci",
    max_examples=10,
    deadline=None,  # Disable deadline in CI (variable performance)
    suppress_health_check=[],
    phases=[Phase.explicit, Phase.reuse, Phase.generate],
    verbosity=Verbosity.quiet,
)

settings.register_profile(
    "dev",
    max_examples=25,
    deadline=5000,  # 5 second deadline
    verbosity=Verbosity.normal,
)

settings.register_profile(
    "thorough",
    max_examples=100,
    deadline=None,
    verbosity=Verbosity.verbose,
)

# Load profile based on environment variable (default to "dev")
# Set HYPOTHESIS_PROFILE=ci in CI environments for faster tests
_profile = os.environ.get("HYPOTHESIS_PROFILE", "dev")
settings.load_profile(_profile)

# =============================================================================
# Test Configuration Constants
# =============================================================================

DEFAULT_SEED = 42


def zigzag_footprints(
    n: int = 8,
    *,
    pace: float = 1.0,
    width: float = 0.5,
    origin: tuple[float, float] = (0.0, 0.0),
    heading: float = 0.0,
) -> NDArray[np.float64]:
    """Alternating left/right footprints along a straight line.

    Footprint ``i`` sits ``i * pace`` along ``heading`` and ``width / 2``
    to the left (even ``i``) or right (odd ``i``) of the midline.
    """
    along = np.arange(n) * pace
    across = np.where(np.arange(n) % 2 == 0, width / 2, -width / 2)
    c, s = np.cos(heading), np.sin(heading)
    x = origin[0] + along * c - across * s
    y = origin[1] + along * s + across * c
    return np.column_stack([x, y])


# =============================================================================
# Trajectory Fixtures
# =============================================================================


@pytest.fixture
def straight_trajectory() -> NDArray[np.float64]:
    """Five equally spaced collinear points along +x."""
    return np.column_stack([np.arange(5, dtype=np.float64), np.zeros(5)])


@pytest.fixture
def zigzag_trajectory() -> NDArray[np.float64]:
    """Path alternating 45 degree turns left and right."""
    return np.array(
        [[0.0, 0.0], [1.0, 1.0], [2.0, 0.0], [3.0, 1.0], [4.0, 0.0], [5.0, 1.0]]
    )


# =============================================================================
# Collection Fixtures
# =============================================================================


@pytest.fixture
def footprint_tracks() -> TrackwayCollection:
    """Three straight trackways with side labels and different headings."""
    return TrackwayCollection.from_footprints(
        [
            Footprints.from_coordinates(zigzag_footprints(10)),
            Footprints.from_coordinates(
                zigzag_footprints(10, origin=(0.0, 3.0), pace=1.2, width=0.6)
            ),
            Footprints.from_coordinates(
                zigzag_footprints(10, origin=(0.0, -3.0), heading=0.3)
            ),
        ]
    )


@pytest.fixture
def parallel_tracks() -> TrackwayCollection:
    """Two parallel, non-crossing four-point trajectories."""
    return TrackwayCollection.from_trajectories(
        [
            np.array([[0.0, 0.0], [1.0, 0.1], [2.0, 0.0], [3.0, 0.1]]),
            np.array([[0.0, 1.0], [1.0, 1.1], [2.0, 1.0], [3.0, 1.1]]),
        ]
    )


@pytest.fixture
def crossing_tracks() -> TrackwayCollection:
    """Two four-point trajectories forming an X (one crossing)."""
    return TrackwayCollection.from_trajectories(
        [
            np.array([[0.0, 0.0], [1.0, 1.0], [2.0, 2.0], [3.0, 3.0]]),
            np.array([[0.0, 3.0], [1.0, 2.0], [2.0, 1.0], [3.0, 0.0]]),
        ]
    )


@pytest.fixture
def wiggly_tracks() -> TrackwayCollection:
    """Three noisy eastward walks of ten points each."""
    rng = np.random.default_rng(DEFAULT_SEED)
    trajectories = []
    for offset in (0.0, 2.0, 4.0):
        steps = np.column_stack([np.ones(9), rng.normal(0.0, 0.3, 9)])
        points = np.vstack([[0.0, offset], [0.0, offset] + np.cumsum(steps, axis=0)])
        trajectories.append(points)
    return TrackwayCollection.from_trajectories(trajectories)


@pytest.fixture
def make_zigzag():
    """Factory fixture returning ``zigzag_footprints`` for custom layouts."""
    return zigzag_footprints
