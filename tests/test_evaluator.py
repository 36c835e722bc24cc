"""
Tests for the generic strategy evaluator.

Reference positions are small enough to verify by hand:
  - Bull call spread: buy 100C @ 5.00, sell 110C @ 2.00 (net debit 3.00)
  - Long straddle: buy 100C @ 3.00, buy 100P @ 2.00 (net debit 5.00)
  - Iron condor: 90P/95P/105C/110C, credit 2.00
"""
import math

import numpy as np
import pytest

from options_engine.errors import InvalidInputError
from options_engine.evaluator import (
    MAX_SWEEP_POINTS,
    SweepConfig,
    analyze_strategy,
    evaluate_strategy,
    find_breakevens,
    leg_pnl,
    max_profit_loss,
    probability_of_profit,
    sweep_prices,
    terminal_slope,
    total_pnl,
)
from options_engine.models import StrategyLeg
from options_engine.strategy import build_strategy


def _leg(instrument, action, quantity=1, **kwargs):
    return StrategyLeg(instrument=instrument, action=action, quantity=quantity, **kwargs)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def bull_call_spread():
    return [
        _leg("call", "buy", strike=100.0, premium=5.0),
        _leg("call", "sell", strike=110.0, premium=2.0),
    ]


@pytest.fixture
def long_straddle():
    return [
        _leg("call", "buy", strike=100.0, premium=3.0),
        _leg("put", "buy", strike=100.0, premium=2.0),
    ]


@pytest.fixture
def iron_condor():
    return [
        _leg("put", "buy", strike=90.0, premium=0.5),
        _leg("put", "sell", strike=95.0, premium=1.5),
        _leg("call", "sell", strike=105.0, premium=1.5),
        _leg("call", "buy", strike=110.0, premium=0.5),
    ]


@pytest.fixture
def covered_call():
    return [
        _leg("stock", "buy", 100, entry_price=100.0),
        _leg("call", "sell", strike=105.0, premium=2.0),
    ]


# ---------------------------------------------------------------------------
# Leg P&L
# ---------------------------------------------------------------------------

class TestLegPnL:

    def test_long_stock_uses_current_price_as_entry(self):
        leg = _leg("stock", "buy", 10)
        np.testing.assert_allclose(leg_pnl(leg, [90.0, 100.0, 110.0], 100.0), [-100.0, 0.0, 100.0])

    def test_short_stock_with_entry(self):
        leg = _leg("stock", "sell", 5, entry_price=50.0)
        np.testing.assert_allclose(leg_pnl(leg, [40.0, 60.0], 55.0), [50.0, -50.0])

    def test_long_call_per_contract(self):
        leg = _leg("call", "buy", 2, strike=100.0, premium=4.0)
        # (intrinsic - premium) * qty * 100
        np.testing.assert_allclose(leg_pnl(leg, [90.0, 104.0, 110.0], 100.0), [-800.0, 0.0, 1200.0])

    def test_short_put(self):
        leg = _leg("put", "sell", strike=100.0, premium=3.0)
        np.testing.assert_allclose(leg_pnl(leg, [80.0, 100.0], 100.0), [-1700.0, 300.0])

    def test_option_without_premium_raises(self):
        leg = _leg("call", "buy", strike=100.0)
        with pytest.raises(InvalidInputError, match="has no premium"):
            leg_pnl(leg, [100.0], 100.0)

    def test_total_is_sum_of_legs(self, bull_call_spread):
        prices = [95.0, 105.0, 120.0]
        expected = sum(leg_pnl(leg, prices, 100.0) for leg in bull_call_spread)
        np.testing.assert_allclose(total_pnl(bull_call_spread, prices, 100.0), expected)


# ---------------------------------------------------------------------------
# Sweep
# ---------------------------------------------------------------------------

class TestSweep:

    def test_default_range(self, bull_call_spread):
        prices = sweep_prices(bull_call_spread, 100.0)
        assert prices[0] == pytest.approx(50.0)
        assert prices[-1] == pytest.approx(150.0)
        assert np.all(np.diff(prices) > 0)

    def test_strikes_and_spot_always_included(self):
        legs = [_leg("call", "buy", strike=101.3, premium=1.0)]
        prices = sweep_prices(legs, 99.7, SweepConfig(points=5))
        assert 101.3 in prices
        assert 99.7 in prices

    def test_strikes_outside_range_excluded(self):
        legs = [_leg("call", "buy", strike=300.0, premium=1.0)]
        prices = sweep_prices(legs, 100.0, SweepConfig(points=3))
        assert prices.max() == pytest.approx(150.0)

    def test_fixed_step(self, bull_call_spread):
        prices = sweep_prices(bull_call_spread, 100.0, SweepConfig(step=1.0))
        assert len(prices) == 101

    def test_step_appends_upper_bound(self, bull_call_spread):
        sweep = SweepConfig(step=7.0, lower=80.0, upper=120.0)
        prices = sweep_prices(bull_call_spread, 100.0, sweep)
        assert prices[-1] == pytest.approx(120.0)
        assert 87.0 in prices

    def test_lower_bound_floored_at_zero(self, bull_call_spread):
        lower, upper = SweepConfig(range_pct=2.0).bounds(100.0)
        assert lower == 0.0
        assert upper == pytest.approx(300.0)

    def test_too_many_points(self, bull_call_spread):
        with pytest.raises(InvalidInputError, match="max {}".format(MAX_SWEEP_POINTS)):
            sweep_prices(bull_call_spread, 100.0, SweepConfig(step=1e-4))

    @pytest.mark.parametrize("kwargs", [
        {"range_pct": 0.0},
        {"range_pct": -0.5},
        {"step": 0.0},
        {"step": -1.0},
        {"points": 1},
    ])
    def test_invalid_config(self, kwargs):
        with pytest.raises(InvalidInputError):
            SweepConfig(**kwargs)

    @pytest.mark.parametrize("points", [2.5, "201", True, 10 ** 12, MAX_SWEEP_POINTS + 1])
    def test_invalid_points(self, points):
        with pytest.raises(InvalidInputError, match="points must be"):
            SweepConfig(points=points)

    def test_points_at_limit(self):
        assert SweepConfig(points=MAX_SWEEP_POINTS).points == MAX_SWEEP_POINTS

    def test_empty_range(self):
        with pytest.raises(InvalidInputError, match="Empty sweep range"):
            SweepConfig(lower=120.0, upper=110.0).bounds(100.0)


# ---------------------------------------------------------------------------
# Breakevens
# ---------------------------------------------------------------------------

class TestFindBreakevens:

    def test_linear_interpolation(self):
        assert find_breakevens([0.0, 1.0], [-1.0, 3.0]) == [pytest.approx(0.25)]

    def test_exact_zero_sample(self):
        assert find_breakevens([0.0, 1.0, 2.0], [-1.0, 0.0, 1.0]) == [1.0]

    def test_flat_zero_run_reports_first_zero(self):
        assert find_breakevens([0.0, 1.0, 2.0, 3.0], [-1.0, 0.0, 0.0, 1.0]) == [1.0]

    def test_touch_without_crossing(self):
        assert find_breakevens([0.0, 1.0, 2.0], [-1.0, 0.0, -1.0]) == []

    def test_no_crossing(self):
        assert find_breakevens([0.0, 1.0], [1.0, 2.0]) == []

    def test_float_noise_treated_as_zero(self):
        assert find_breakevens([0.0, 1.0, 2.0], [-1.0, 1e-12, 1.0]) == [1.0]

    def test_shape_mismatch(self):
        with pytest.raises(InvalidInputError, match="same length"):
            find_breakevens([0.0, 1.0], [1.0])


# ---------------------------------------------------------------------------
# Max profit / loss
# ---------------------------------------------------------------------------

class TestMaxProfitLoss:

    def test_bull_call_spread(self, bull_call_spread):
        assert max_profit_loss(bull_call_spread, 100.0) == (pytest.approx(700.0), pytest.approx(-300.0))

    def test_straddle_unbounded_profit(self, long_straddle):
        max_profit, max_loss = max_profit_loss(long_straddle, 100.0)
        assert max_profit == math.inf
        assert max_loss == pytest.approx(-500.0)

    def test_naked_short_call_unbounded_loss(self):
        legs = [_leg("call", "sell", strike=100.0, premium=4.0)]
        max_profit, max_loss = max_profit_loss(legs, 100.0)
        assert max_profit == pytest.approx(400.0)
        assert max_loss == -math.inf

    def test_covered_call_is_bounded(self, covered_call):
        # Stock slope +100 cancels the short call's -100 above the strike
        assert terminal_slope(covered_call) == 0
        max_profit, max_loss = max_profit_loss(covered_call, 100.0)
        assert max_profit == pytest.approx(700.0)
        assert max_loss == pytest.approx(-9800.0)

    def test_long_put_profit_capped_at_zero_price(self):
        legs = [_leg("put", "buy", strike=100.0, premium=3.0)]
        assert max_profit_loss(legs, 100.0) == (pytest.approx(9700.0), pytest.approx(-300.0))

    def test_iron_condor(self, iron_condor):
        assert max_profit_loss(iron_condor, 100.0) == (pytest.approx(200.0), pytest.approx(-300.0))

    def test_extremes_outside_sweep_still_found(self, bull_call_spread):
        # The sweep only covers 95..105 but the extremes sit at 100 and 110
        analysis = evaluate_strategy(
            bull_call_spread, 100.0, SweepConfig(lower=95.0, upper=105.0),
        )
        assert analysis.max_profit == pytest.approx(700.0)
        assert analysis.curve.pnls.max() < 700.0


# ---------------------------------------------------------------------------
# Probability of profit
# ---------------------------------------------------------------------------

class TestProbabilityOfProfit:

    def test_long_stock_matches_closed_form(self):
        # P(S_T > S) = N(-(r - sigma^2/2) sqrt(T) / sigma) = N(-0.1) with r = 0
        legs = [_leg("stock", "buy", 100)]
        pop = probability_of_profit(legs, 100.0, sigma=0.20, dte_years=1.0, risk_free_rate=0.0)
        assert pop == pytest.approx(0.460172, abs=1e-5)

    def test_short_stock_is_complement(self):
        long_pop = probability_of_profit([_leg("stock", "buy", 1)], 100.0, 0.3, 0.5, 0.02)
        short_pop = probability_of_profit([_leg("stock", "sell", 1)], 100.0, 0.3, 0.5, 0.02)
        assert long_pop + short_pop == pytest.approx(1.0, abs=1e-9)

    def test_iron_condor_between_breakevens(self, iron_condor):
        from scipy.stats import lognorm

        pop = probability_of_profit(iron_condor, 100.0, 0.25, 30 / 365, 0.0)
        dist = lognorm(s=0.25 * math.sqrt(30 / 365), scale=100.0 * math.exp(-0.5 * 0.25 ** 2 * 30 / 365))
        assert pop == pytest.approx(dist.cdf(107.0) - dist.cdf(93.0), abs=1e-6)

    def test_flat_zero_region_not_profitable(self):
        # Zero-cost 100/110 call spread: flat at zero below 100, profitable above
        legs = [
            _leg("call", "buy", strike=100.0, premium=5.0),
            _leg("call", "sell", strike=110.0, premium=5.0),
        ]
        pop = probability_of_profit(legs, 100.0, 0.25, 0.25, 0.0)
        # P(S_T > 100) = N(-(sigma^2/2) T / (sigma sqrt T)) = N(-0.0625)
        assert pop == pytest.approx(0.4750823309707526, abs=1e-6)

    def test_loss_then_flat_then_profit(self):
        legs = [
            _leg("put", "sell", strike=90.0, premium=0.0),
            _leg("call", "buy", strike=100.0, premium=0.0),
        ]
        pop = probability_of_profit(legs, 100.0, 0.25, 0.25, 0.0)
        assert pop == pytest.approx(0.4750823309707526, abs=1e-6)

    def test_zero_everywhere_is_never_profitable(self):
        legs = [_leg("stock", "buy", 10), _leg("stock", "sell", 10)]
        assert probability_of_profit(legs, 100.0, 0.3, 0.5, 0.0) == 0.0

    def test_higher_vol_helps_straddle(self, long_straddle):
        low = probability_of_profit(long_straddle, 100.0, 0.10, 0.25, 0.0)
        high = probability_of_profit(long_straddle, 100.0, 0.60, 0.25, 0.0)
        assert 0.0 <= low < high <= 1.0

    def test_expired_position(self):
        legs = [_leg("call", "buy", strike=100.0, premium=2.0)]
        assert probability_of_profit(legs, 105.0, 0.2, 0.0) == 1.0
        assert probability_of_profit(legs, 101.0, 0.2, 0.0) == 0.0

    def test_invalid_sigma(self, long_straddle):
        with pytest.raises(InvalidInputError):
            probability_of_profit(long_straddle, 100.0, 0.0, 0.5)


# ---------------------------------------------------------------------------
# evaluate_strategy
# ---------------------------------------------------------------------------

class TestEvaluateStrategy:

    def test_bull_call_spread(self, bull_call_spread):
        analysis = evaluate_strategy(bull_call_spread, 100.0)
        assert analysis.breakevens == [pytest.approx(103.0)]
        assert analysis.curve.pnl_at(105.0) == pytest.approx(200.0)
        assert analysis.curve.pnl_at(104.0) == pytest.approx(100.0)
        assert analysis.max_profit == pytest.approx(700.0)
        assert analysis.max_loss == pytest.approx(-300.0)
        assert analysis.probability_of_profit is None

    def test_straddle_breakevens(self, long_straddle):
        analysis = evaluate_strategy(long_straddle, 100.0)
        assert analysis.breakevens == [pytest.approx(95.0), pytest.approx(105.0)]

    def test_iron_condor_breakevens(self, iron_condor):
        analysis = evaluate_strategy(iron_condor, 100.0)
        assert analysis.breakevens == [pytest.approx(93.0), pytest.approx(107.0)]

    def test_covered_call_breakeven(self, covered_call):
        assert evaluate_strategy(covered_call, 100.0).breakevens == [pytest.approx(98.0)]

    def test_breakeven_between_grid_points(self):
        legs = [_leg("call", "buy", strike=100.0, premium=3.33)]
        analysis = evaluate_strategy(legs, 100.0, SweepConfig(step=1.0))
        assert analysis.breakevens == [pytest.approx(103.33)]

    def test_probability_when_vol_and_time_given(self, bull_call_spread):
        analysis = evaluate_strategy(bull_call_spread, 100.0, sigma=0.3, dte_years=0.25)
        assert 0.0 < analysis.probability_of_profit < 1.0

    def test_accepts_strategy(self):
        strategy = build_strategy("straddle", 100.0, 30 / 365, 0.25, 0.05)
        analysis = evaluate_strategy(strategy, 100.0)
        assert len(analysis.legs) == 2
        assert len(analysis.breakevens) == 2

    def test_unbounded_serialised(self, long_straddle):
        data = evaluate_strategy(long_straddle, 100.0).to_dict()
        assert data["max_profit"] == "unbounded"
        assert data["max_loss"] == pytest.approx(-500.0)
        assert data["curve"][0].keys() == {"price", "pnl"}

    def test_empty_legs(self):
        with pytest.raises(InvalidInputError, match="At least one leg"):
            evaluate_strategy([], 100.0)

    @pytest.mark.parametrize("price", [0.0, -1.0, float("nan")])
    def test_invalid_price(self, bull_call_spread, price):
        with pytest.raises(InvalidInputError, match="current_price must be positive"):
            evaluate_strategy(bull_call_spread, price)

    def test_missing_premium(self):
        legs = [_leg("put", "buy", strike=100.0)]
        with pytest.raises(InvalidInputError, match="analyze_strategy"):
            evaluate_strategy(legs, 100.0)


# ---------------------------------------------------------------------------
# analyze_strategy
# ---------------------------------------------------------------------------

class TestAnalyzeStrategy:

    def test_prices_missing_premiums(self):
        from options_engine.pricing import bs_price

        legs = [_leg("call", "buy", strike=100.0)]
        analysis = analyze_strategy(legs, 100.0, 0.5, 0.05, default_iv=0.25)
        expected = round(bs_price(100.0, 100.0, 0.5, 0.05, 0.25, "call"), 2)
        assert analysis.legs[0].premium == expected
        assert analysis.legs[0].implied_vol == 0.25

    def test_keeps_given_premium(self, bull_call_spread):
        analysis = analyze_strategy(bull_call_spread, 100.0, 0.25)
        assert [leg.premium for leg in analysis.legs] == [5.0, 2.0]
        assert analysis.max_loss == pytest.approx(-300.0)

    def test_leg_vol_overrides_default(self):
        legs = [_leg("put", "buy", strike=100.0, implied_vol=0.4)]
        analysis = analyze_strategy(legs, 100.0, 0.5, default_iv=0.2)
        assert analysis.leg_greeks[0].iv == 0.4

    def test_long_straddle_greek_signs(self):
        legs = [_leg("call", "buy", strike=100.0), _leg("put", "buy", strike=100.0)]
        greeks = analyze_strategy(legs, 100.0, 0.25).position_greeks
        assert greeks.gamma > 0
        assert greeks.vega > 0
        assert greeks.theta < 0
        assert abs(greeks.delta) < 30

    def test_short_call_greek_signs(self):
        legs = [_leg("call", "sell", 2, strike=100.0)]
        analysis = analyze_strategy(legs, 100.0, 0.25)
        single = analysis.leg_greeks[0]
        assert analysis.position_greeks.delta == pytest.approx(-200.0 * single.delta)
        assert analysis.position_greeks.theta > 0

    def test_covered_call_delta(self):
        legs = [_leg("stock", "buy", 100), _leg("call", "sell", strike=105.0)]
        analysis = analyze_strategy(legs, 100.0, 30 / 365)
        assert analysis.leg_greeks[0] is None
        assert 0 < analysis.position_greeks.delta < 100
        assert analysis.position_greeks.gamma < 0

    def test_probability_of_profit_present(self):
        legs = [_leg("call", "buy", strike=100.0)]
        pop = analyze_strategy(legs, 100.0, 0.25).probability_of_profit
        assert 0.0 < pop < 0.5

    def test_to_dict_includes_leg_greeks(self, covered_call):
        data = analyze_strategy(covered_call, 100.0, 0.1).to_dict()
        assert data["legs"][0]["greeks"] is None
        assert set(data["legs"][1]["greeks"]) == {"delta", "gamma", "theta", "vega", "rho", "iv"}
        assert set(data["position_greeks"]) == {"delta", "gamma", "theta", "vega", "rho"}
