"""
Tests for random-walk trackway simulation.

Each model must preserve the observed point count and starting point, a
fixed seed must reproduce the ensemble, and degenerate trajectories are
carried through unchanged with a warning.
"""

from __future__ import annotations

import numpy as np
import pytest
import shapely
from numpy.testing import assert_allclose, assert_array_equal
from shapely.geometry import LineString

from ichnospatial import TrackwayCollection, TrackwayValidationError
from ichnospatial.metrics.geometry import step_headings, step_lengths
from ichnospatial.simulation import (
    MOVEMENT_MODELS,
    simulate_trackway,
    simulate_trackways,
)


class TestSimulateTrackway:
    """Tests for single-trajectory simulation."""

    @pytest.mark.parametrize("model", MOVEMENT_MODELS)
    def test_shape_and_origin_preserved(self, wiggly_tracks, model) -> None:
        observed = wiggly_tracks.trajectories[0]
        simulated = simulate_trackway(observed, model=model, rng=0)
        assert simulated.shape == observed.shape
        assert_allclose(simulated[0], observed[0])
        assert np.all(np.isfinite(simulated))

    def test_unconstrained_reuses_step_lengths(self, wiggly_tracks) -> None:
        observed = wiggly_tracks.trajectories[1]
        simulated = simulate_trackway(observed, rng=3)
        pool = step_lengths(observed)
        for length in step_lengths(simulated):
            assert np.min(np.abs(pool - length)) < 1e-9

    def test_directed_follows_target_bearing(self) -> None:
        # a perfectly straight path has zero heading deviation
        observed = np.column_stack([np.arange(6, dtype=np.float64), np.zeros(6)])
        simulated = simulate_trackway(
            observed, model="directed", target_bearing=90.0, rng=1
        )
        assert_allclose(step_headings(simulated), np.pi / 2, atol=1e-12)

    def test_directed_default_bearing_is_end_to_end(self) -> None:
        observed = np.array([[0.0, 0.0], [1.0, 1.0], [2.0, 2.0]])
        simulated = simulate_trackway(observed, model="directed", rng=1)
        assert_allclose(step_headings(simulated), np.pi / 4, atol=1e-12)

    def test_constrained_stays_in_corridor(self, wiggly_tracks) -> None:
        observed = wiggly_tracks.trajectories[0]
        corridor = LineString(observed).buffer(0.5)
        for seed in range(5):
            simulated = simulate_trackway(
                observed, model="constrained", corridor_width=0.5, rng=seed
            )
            inside = shapely.intersects_xy(
                corridor.buffer(1e-9), simulated[:, 0], simulated[:, 1]
            )
            assert np.all(inside)

    def test_constrained_starts_along_observed_heading(self) -> None:
        observed = np.column_stack([np.zeros(5), np.arange(5, dtype=np.float64)])
        simulated = simulate_trackway(observed, model="constrained", rng=2)
        assert_allclose(step_headings(simulated)[0], np.pi / 2, atol=1e-12)

    def test_unknown_model_raises(self, straight_trajectory) -> None:
        with pytest.raises(TrackwayValidationError, match="model must be one of"):
            simulate_trackway(straight_trajectory, model="levy")

    def test_degenerate_trajectory_raises(self) -> None:
        with pytest.raises(TrackwayValidationError, match="at least 2 points"):
            simulate_trackway(np.array([[0.0, 0.0]]))


class TestSimulateTrackways:
    """Tests for ensemble generation."""

    def test_ensemble_structure(self, wiggly_tracks) -> None:
        sims = simulate_trackways(wiggly_tracks, nsim=4, rng=0)
        assert len(sims) == 4
        for replicate in sims:
            assert isinstance(replicate, TrackwayCollection)
            assert replicate.names == wiggly_tracks.names
            assert all(fp is None for fp in replicate.footprints)
            for sim, obs in zip(
                replicate.trajectories, wiggly_tracks.trajectories, strict=True
            ):
                assert sim.shape == obs.shape
                assert_allclose(sim[0], obs[0])

    def test_seed_reproducible(self, wiggly_tracks) -> None:
        a = simulate_trackways(wiggly_tracks, nsim=3, model="constrained", rng=11)
        b = simulate_trackways(wiggly_tracks, nsim=3, model="constrained", rng=11)
        for ra, rb in zip(a, b, strict=True):
            for ta, tb in zip(ra.trajectories, rb.trajectories, strict=True):
                assert_array_equal(ta, tb)

    def test_replicates_differ(self, wiggly_tracks) -> None:
        a, b = simulate_trackways(wiggly_tracks, nsim=2, rng=5)
        assert not np.allclose(a.trajectories[0], b.trajectories[0])

    def test_short_trajectory_copied_with_warning(self, wiggly_tracks) -> None:
        tracks = TrackwayCollection.from_trajectories(
            [wiggly_tracks.trajectories[0], np.array([[5.0, 5.0]])],
            names=["long", "dot"],
        )
        with pytest.warns(UserWarning, match="copied unchanged.*dot"):
            sims = simulate_trackways(tracks, nsim=2, rng=0)
        for replicate in sims:
            assert_array_equal(replicate.trajectories[1], [[5.0, 5.0]])

    @pytest.mark.parametrize("nsim", [0, -1])
    def test_invalid_nsim_raises(self, wiggly_tracks, nsim) -> None:
        with pytest.raises(TrackwayValidationError, match="nsim"):
            simulate_trackways(wiggly_tracks, nsim=nsim)

    def test_invalid_corridor_raises(self, wiggly_tracks) -> None:
        with pytest.raises(TrackwayValidationError, match="corridor_width"):
            simulate_trackways(
                wiggly_tracks, nsim=1, model="constrained", corridor_width=0.0
            )
