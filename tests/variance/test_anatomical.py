"""Tests for anatomical (footprint jitter) error partitioning."""

from __future__ import annotations

import numpy as np
import pytest
from numpy.testing import assert_allclose

from ichnospatial import Footprints, TrackwayCollection, TrackwayValidationError
from ichnospatial.variance import (
    ErrorPartitioningResult,
    anatomical_error_partitioning,
    jitter_footprints,
    snr_rating,
)


@pytest.fixture
def identical_tracks(make_zigzag) -> TrackwayCollection:
    """Three copies of the same trackway at different places."""
    return TrackwayCollection.from_footprints(
        [make_zigzag(10, origin=(0.0, 5.0 * i)) for i in range(3)]
    )


class TestJitterFootprints:
    """Tests for jitter_footprints()."""

    def test_uniform_within_radius(self) -> None:
        xy = np.zeros((500, 2))
        out = jitter_footprints(xy, 0.3, np.random.default_rng(0))
        assert np.all(np.linalg.norm(out, axis=1) <= 0.3 + 1e-12)
        # uniform in area: about a quarter of the points fall within r / 2
        inner = np.mean(np.linalg.norm(out, axis=1) <= 0.15)
        assert 0.15 < inner < 0.35

    def test_gaussian_truncated(self) -> None:
        xy = np.zeros((500, 2))
        out = jitter_footprints(xy, 0.4, np.random.default_rng(1), "gaussian")
        assert np.all(np.abs(out) <= 3 * 0.2 + 1e-12)
        assert_allclose(out.std(axis=0), 0.2, rtol=0.2)

    def test_zero_radius_is_identity(self, make_zigzag) -> None:
        xy = make_zigzag(6)
        assert_allclose(jitter_footprints(xy, 0.0, np.random.default_rng(2)), xy)


class TestAnatomicalPartitioning:
    """Tests for anatomical_error_partitioning()."""

    def test_zero_radius_has_no_anatomical_variance(self, footprint_tracks) -> None:
        result = anatomical_error_partitioning(
            footprint_tracks, 0.0, variables=["Length", "StLength"], n_sim=4, rng=0
        )
        assert isinstance(result, ErrorPartitioningResult)
        summary = result.summary.set_index(["variable", "component"])
        assert_allclose(summary.loc[("Length", "anatomical"), "variance"], 0.0, atol=1e-20)
        assert summary.loc[("StLength", "track"), "variance"] > 0
        assert_allclose(summary.loc[("Length", "Residual"), "variance"], 0.0)

    def test_identical_tracks_dominated_by_jitter(self, identical_tracks) -> None:
        result = anatomical_error_partitioning(
            identical_tracks, 0.1, variables=["StLength"], n_sim=60, rng=1
        )
        summary = result.summary.set_index("component")
        assert summary.loc["track", "variance"] < summary.loc["anatomical", "variance"]
        snr = result.snr.iloc[0]
        assert snr["SNR"] < 1
        assert result.qc.iloc[0]["SNR_rating"] == "weak (error > bio)"
        assert result.qc.iloc[0]["top_component"] == "anatomical"

    def test_percent_sums_to_100(self, footprint_tracks) -> None:
        result = anatomical_error_partitioning(
            footprint_tracks, 0.05, variables=["Length", "PaceAng"], n_sim=10, rng=2
        )
        totals = result.summary.groupby("variable")["percent"].sum()
        assert_allclose(totals.to_numpy(), 100.0)
        assert list(result.summary["component"].unique()) == [
            "track",
            "anatomical",
            "Residual",
        ]

    def test_tables(self, footprint_tracks) -> None:
        result = anatomical_error_partitioning(
            footprint_tracks, 0.05, variables=["TrackWidth"], n_sim=3, rng=3
        )
        table = result.analysis_table
        assert list(table.columns) == ["track", "anatomical", "TrackWidth"]
        assert len(table) == 3 * len(footprint_tracks)
        assert table["anatomical"].iloc[0] == "sim001"
        qc = result.qc.iloc[0]
        assert qc["observer_estimable"] == "no (anatomical-only, sim-based)"
        assert not qc["singular"]
        assert result.models == {}
        assert result.track_names == footprint_tracks.names
        assert "TrackWidth: SNR" in result.summary_text()

    def test_reproducible(self, footprint_tracks) -> None:
        a = anatomical_error_partitioning(
            footprint_tracks, 0.1, variables=["Sinuosity"], n_sim=5, rng=9
        )
        b = anatomical_error_partitioning(
            footprint_tracks, 0.1, variables=["Sinuosity"], n_sim=5, rng=9
        )
        assert_allclose(a.summary["variance"], b.summary["variance"])

    def test_per_track_radii(self, footprint_tracks) -> None:
        result = anatomical_error_partitioning(
            footprint_tracks,
            [0.0, 0.0, 0.2],
            variables=["StLength"],
            n_sim=5,
            rng=4,
            distribution="gaussian",
        )
        by_track = result.analysis_table.groupby("track")["StLength"].var()
        assert_allclose(by_track["Track_01"], 0.0, atol=1e-20)
        assert by_track["Track_03"] > 0

    def test_radius_length_mismatch(self, footprint_tracks) -> None:
        with pytest.raises(TrackwayValidationError, match="length 1 or the number"):
            anatomical_error_partitioning(footprint_tracks, [0.1, 0.2], n_sim=2)

    def test_negative_radius(self, footprint_tracks) -> None:
        with pytest.raises(TrackwayValidationError, match="finite and >= 0"):
            anatomical_error_partitioning(footprint_tracks, -0.1, n_sim=2)

    def test_requires_footprints(self, parallel_tracks) -> None:
        with pytest.raises(TrackwayValidationError, match="at least 2 footprints"):
            anatomical_error_partitioning(parallel_tracks, 0.1, n_sim=2)

    def test_single_footprint_rejected(self, footprint_tracks) -> None:
        tracks = TrackwayCollection.from_footprints(
            [*footprint_tracks.footprints, Footprints.from_coordinates([[0.0, 0.0]])]
        )
        with pytest.raises(TrackwayValidationError, match="Track_04"):
            anatomical_error_partitioning(tracks, 0.1, n_sim=2)

    def test_unknown_variable(self, footprint_tracks) -> None:
        with pytest.warns(UserWarning, match="Unknown variable names ignored: Gauge"):
            result = anatomical_error_partitioning(
                footprint_tracks, 0.1, variables=["Length", "Gauge"], n_sim=2, rng=0
            )
        assert result.snr["variable"].tolist() == ["Length"]


class TestSnrRating:
    """Tests for snr_rating()."""

    @pytest.mark.parametrize(
        ("snr", "expected"),
        [
            (0.2, "weak (error > bio)"),
            (1.0, "moderate"),
            (2.0, "strong"),
            (np.inf, "NA"),
            (np.nan, "NA"),
        ],
    )
    def test_thresholds(self, snr, expected) -> None:
        assert snr_rating(snr) == expected
