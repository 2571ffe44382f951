"""Tests for the comparison of trackway velocities."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest
from numpy.testing import assert_allclose
from scipy.stats import norm

from ichnospatial import TrackwayValidationError
from ichnospatial.stats import VelocityTestResult, dunn_test, test_velocity
from ichnospatial.validation import InsufficientDataError


def _normal_sample(mean: float, sd: float, n: int = 30) -> np.ndarray:
    """Exact normal quantiles, so normality checks always pass."""
    return mean + sd * norm.ppf((np.arange(1, n + 1) - 0.5) / n)


@pytest.fixture
def equal_spread() -> dict[str, np.ndarray]:
    return {
        "A": _normal_sample(1.0, 0.2),
        "B": _normal_sample(1.05, 0.2),
        "C": _normal_sample(2.0, 0.2),
    }


class TestAnova:
    """Tests for analysis="anova"."""

    def test_assumptions_met(self, equal_spread) -> None:
        result = test_velocity(equal_spread)
        assert isinstance(result, VelocityTestResult)
        assert result.assumptions_met
        assert list(result.normality.index) == ["A", "B", "C"]
        assert "C(track)" in result.global_test.index
        assert result.global_test.loc["C(track)", "PR(>F)"] < 1e-6
        assert result.model is not None

    def test_tukey_pairwise(self, equal_spread) -> None:
        pairwise = test_velocity(equal_spread).pairwise
        assert {"group1", "group2", "p_adj"} <= set(pairwise.columns)
        assert len(pairwise) == 3
        ab = pairwise[(pairwise["group1"] == "A") & (pairwise["group2"] == "B")]
        ac = pairwise[(pairwise["group1"] == "A") & (pairwise["group2"] == "C")]
        assert float(ab["p_adj"].iloc[0]) > 0.05
        assert float(ac["p_adj"].iloc[0]) < 0.05

    def test_unequal_variance_skips_anova(self) -> None:
        velocities = {"A": _normal_sample(1.0, 0.01), "B": _normal_sample(1.0, 2.0)}
        with pytest.warns(UserWarning, match="Assumptions for ANOVA are not met"):
            result = test_velocity(velocities, analysis="ANOVA")
        assert not result.assumptions_met
        assert result.homogeneity["p_value"] <= 0.05
        assert result.global_test is None
        assert result.pairwise is None


class TestKruskalWallis:
    """Tests for analysis="kruskal_wallis" and Dunn's test."""

    def test_global_and_pairwise(self, equal_spread) -> None:
        result = test_velocity(equal_spread, analysis="Kruskal-Wallis")
        assert result.analysis == "kruskal_wallis"
        row = result.global_test.loc["Kruskal-Wallis"]
        assert row["df"] == 2
        assert row["p_value"] < 1e-6
        assert list(result.pairwise.columns) == ["group1", "group2", "z", "p_value", "p_adj"]
        assert result.model is None

    def test_dunn_separated_groups(self) -> None:
        data = pd.DataFrame(
            {"vel": [1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0], "track": ["a"] * 4 + ["b"] * 4}
        )
        table = dunn_test(data)
        # mean ranks 2.5 and 6.5, variance N(N + 1) / 12 = 6
        expected_z = -4.0 / np.sqrt(6.0 * 0.5)
        assert_allclose(table["z"].iloc[0], expected_z)
        assert_allclose(table["p_value"].iloc[0], 2 * norm.sf(abs(expected_z)))
        assert_allclose(table["p_adj"].iloc[0], table["p_value"].iloc[0])

    def test_dunn_holm_adjustment(self, equal_spread) -> None:
        data = pd.concat(
            [pd.DataFrame({"vel": v, "track": k}) for k, v in equal_spread.items()],
            ignore_index=True,
        )
        table = dunn_test(data)
        assert np.all(table["p_adj"] >= table["p_value"])
        assert np.all(table["p_adj"] <= 1.0)


class TestGLM:
    """Tests for analysis="glm"."""

    def test_coefficient_table(self, equal_spread) -> None:
        result = test_velocity(equal_spread, analysis="glm")
        coef = result.global_test
        assert "Intercept" in coef.index
        assert_allclose(coef.loc["Intercept", "Coef."], 1.0, atol=1e-9)
        assert_allclose(coef.loc["C(track)[T.C]", "Coef."], 1.0, atol=1e-9)
        assert result.pairwise is not None


class TestInputHandling:
    """Tests for dropped trackways and invalid input."""

    def test_short_tracks_dropped(self, equal_spread) -> None:
        velocities = {**equal_spread, "D": [1.0, 2.0, np.nan, 3.0]}
        with pytest.warns(UserWarning, match="3 or fewer velocities: D"):
            result = test_velocity(velocities, analysis="kruskal_wallis")
        assert result.excluded == ("D",)
        assert "D" not in result.normality.index

    def test_not_enough_tracks(self) -> None:
        with pytest.raises(InsufficientDataError, match="Not enough tracks"):
            test_velocity({"A": _normal_sample(1.0, 0.1)})

    def test_unknown_analysis(self, equal_spread) -> None:
        with pytest.raises(TrackwayValidationError, match="analysis must be one of"):
            test_velocity(equal_spread, analysis="t-test")
