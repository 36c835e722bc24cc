"""
Tests for Monte Carlo sampling and the investment risk metrics.
"""
import math

import numpy as np
import pytest

from options_engine.errors import InvalidInputError
from investment.metrics import (
    CVAR_Z_SCORE,
    VAR_Z_SCORE,
    adjust_for_inflation,
    conditional_value_at_risk,
    confidence_interval,
    diversification_benefit,
    estimate_max_drawdown,
    median,
    sharpe_ratio,
    value_at_risk,
)
from investment.montecarlo import box_muller, simulate_investment


class ZeroRandom:
    """Generator stand-in whose uniforms are all 0.0, giving z == 0."""

    def random(self, size=None):
        return np.zeros(size)


# ---------------------------------------------------------------------------
# Box-Muller / simulate_investment
# ---------------------------------------------------------------------------

class TestBoxMuller:

    def test_standard_normal_moments(self):
        z = box_muller(np.random.default_rng(11), 50_000)
        assert z.mean() == pytest.approx(0.0, abs=0.03)
        assert z.std() == pytest.approx(1.0, abs=0.03)

    def test_finite_when_uniform_is_zero(self):
        # Generator.random() can return 0.0; the (0, 1] flip keeps ln(u) finite
        z = box_muller(ZeroRandom(), 3)
        np.testing.assert_array_equal(z, [0.0, 0.0, 0.0])


class TestSimulateInvestment:

    def test_sorted_ascending(self):
        outcomes = simulate_investment(10_000, 0.08, 0.2, 1000, np.random.default_rng(1))
        assert len(outcomes) == 1000
        assert np.all(np.diff(outcomes) >= 0)

    def test_mean_and_spread(self):
        outcomes = simulate_investment(10_000, 0.08, 0.2, 20_000, np.random.default_rng(2))
        # standard error of the mean is ~14
        assert outcomes.mean() == pytest.approx(10_800, abs=100)
        assert outcomes.std() == pytest.approx(2_000, rel=0.05)

    def test_reproducible_with_seed(self):
        first = simulate_investment(5_000, 0.05, 0.1, 500, np.random.default_rng(99))
        second = simulate_investment(5_000, 0.05, 0.1, 500, np.random.default_rng(99))
        np.testing.assert_array_equal(first, second)

    def test_zero_volatility_is_deterministic(self):
        outcomes = simulate_investment(10_000, 0.08, 0.0, 100, np.random.default_rng(3))
        np.testing.assert_allclose(outcomes, 10_800.0)

    def test_zero_draws(self):
        outcomes = simulate_investment(1_000, 0.10, 0.30, 4, ZeroRandom())
        np.testing.assert_allclose(outcomes, 1_100.0)

    def test_zero_amount(self):
        outcomes = simulate_investment(0, 0.08, 0.2, 10, np.random.default_rng(4))
        np.testing.assert_array_equal(outcomes, np.zeros(10))

    def test_single_iteration(self):
        assert simulate_investment(100, 0.0, 0.1, 1, np.random.default_rng(5)).shape == (1,)

    def test_default_rng(self):
        assert len(simulate_investment(100, 0.0, 0.1, 10)) == 10

    @pytest.mark.parametrize("kwargs, message", [
        ({"initial_amount": -1.0}, "initial_amount must not be negative"),
        ({"volatility": -0.1}, "volatility must not be negative"),
        ({"iterations": 0}, "iterations must be a positive integer"),
        ({"iterations": 2.5}, "iterations must be a positive integer"),
        ({"iterations": True}, "iterations must be a positive integer"),
    ])
    def test_invalid_inputs(self, kwargs, message):
        params = dict(initial_amount=100.0, expected_return=0.05, volatility=0.2, iterations=10)
        params.update(kwargs)
        with pytest.raises(InvalidInputError, match=message):
            simulate_investment(**params)


# ---------------------------------------------------------------------------
# Confidence interval / median
# ---------------------------------------------------------------------------

class TestConfidenceInterval:

    def test_percentile_indices(self):
        # n=10, level 0.5: indices floor(2.5)=2 and floor(7.5)=7
        assert confidence_interval(np.arange(10.0), 0.5) == (2.0, 7.0)

    def test_wide_level(self):
        assert confidence_interval(np.arange(10.0), 0.99) == (0.0, 9.0)

    def test_single_outcome(self):
        assert confidence_interval([42.0], 0.95) == (42.0, 42.0)

    def test_lower_never_above_upper(self):
        outcomes = np.sort(np.random.default_rng(8).normal(size=257))
        for level in (0.1, 0.5, 0.8, 0.95):
            lower, upper = confidence_interval(outcomes, level)
            assert lower <= upper

    @pytest.mark.parametrize("level", [0.0, 1.0, -0.5, 1.5])
    def test_level_out_of_range(self, level):
        with pytest.raises(InvalidInputError, match="confidence level"):
            confidence_interval([1.0, 2.0], level)

    def test_empty_outcomes(self):
        with pytest.raises(InvalidInputError, match="non-empty"):
            confidence_interval([], 0.5)


class TestMedian:

    def test_odd(self):
        assert median([1.0, 2.0, 10.0]) == 2.0

    def test_even(self):
        assert median([1.0, 2.0, 4.0, 10.0]) == 3.0

    def test_empty(self):
        with pytest.raises(InvalidInputError):
            median([])


# ---------------------------------------------------------------------------
# Closed-form metrics
# ---------------------------------------------------------------------------

class TestValueAtRisk:

    def test_var_reference(self):
        # 10000 * (1 + 0.08 - 1.645 * 0.2) - 10000
        assert value_at_risk(10_000, 0.08, 0.2) == pytest.approx(-2490.0)

    def test_cvar_reference(self):
        assert conditional_value_at_risk(10_000, 0.08, 0.2) == pytest.approx(-3324.0)

    def test_cvar_worse_than_var(self):
        assert conditional_value_at_risk(5_000, 0.1, 0.3) < value_at_risk(5_000, 0.1, 0.3)

    def test_custom_z_score(self):
        assert value_at_risk(1_000, 0.0, 0.1, z_score=-1.0) == pytest.approx(-100.0)

    def test_z_scores(self):
        assert VAR_Z_SCORE == -1.645
        assert CVAR_Z_SCORE == -2.062

    def test_can_be_positive(self):
        assert value_at_risk(1_000, 0.5, 0.1) > 0


class TestOtherMetrics:

    def test_max_drawdown(self):
        assert estimate_max_drawdown(0.2, 4.0) == pytest.approx(0.8)

    def test_sharpe(self):
        assert sharpe_ratio(0.1, 0.2) == pytest.approx(0.5)

    def test_sharpe_zero_volatility(self):
        assert sharpe_ratio(0.1, 0.0) == 0.0

    def test_inflation(self):
        assert adjust_for_inflation(1_025.0, 1.0) == pytest.approx(1_000.0)
        assert adjust_for_inflation(1_000.0, 0.0) == 1_000.0

    @pytest.mark.parametrize("n, expected", [
        (0, 0.0),
        (1, 0.0),
        (2, 0.05 * math.log(2)),
        (10, 0.05 * math.log(10)),
        (100, 0.15),
    ])
    def test_diversification(self, n, expected):
        assert diversification_benefit(n) == pytest.approx(expected)
