"""
Meridian 1.0 -- Strategy P&L evaluation.

A single generic evaluator for any list of legs (stock, calls, puts;
long or short; any quantity).  Computes, at expiry:

  - **P&L curve** over a sweep of underlying prices
  - **Breakevens** by scanning the curve for sign changes and linearly
    interpolating between adjacent samples
  - **Max profit / max loss** exactly over ``[0, inf)``
  - **Probability of profit** under a log-normal terminal price

Leg P&L::

    stock:  (p - entry) * qty               (buy)   / reversed for sell
    option: (intrinsic(p) - premium) * qty * 100   (buy)   / reversed for sell

Expiry P&L is piecewise linear with kinks only at the option strikes.  The
sweep always includes every strike inside its range, so linear
interpolation between samples is exact and the extremes over ``[0, inf)``
sit at ``0``, at a strike, or at infinity (decided by the terminal slope).
"""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.stats import lognorm

from options_engine.config import DEFAULT_RISK_FREE_RATE
from options_engine.errors import InvalidInputError
from options_engine.greeks import compute_all_greeks
from options_engine.models import (
    CONTRACT_MULTIPLIER,
    InstrumentKind,
    OptionGreeks,
    PnLCurve,
    PnLPoint,
    PositionGreeks,
    Strategy,
    StrategyAnalysis,
    StrategyLeg,
)
from options_engine.pricing import bs_price, intrinsic_value, validate_inputs
from options_engine.utils import get_logger, round_price

logger = get_logger(__name__)

LegsLike = Union[Strategy, Sequence[StrategyLeg]]

# |P&L| at or below this is treated as exactly zero (float noise)
ZERO_TOLERANCE = 1e-9

# Upper limit on swept samples to keep a bad step from exhausting memory
MAX_SWEEP_POINTS = 100_000

# Probability-of-profit grid: quantile span and resolution
PROB_TAIL = 1e-6
PROB_GRID_POINTS = 2001


# ---------------------------------------------------------------------------
# Sweep configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SweepConfig:
    """Range and resolution of the underlying-price sweep.

    Attributes:
        range_pct: Half-width of the sweep as a fraction of the current
            price (0.5 means +/- 50 %).  Ignored for a bound given
            explicitly via *lower* / *upper*.
        step: Price increment between samples.  ``None`` means
            ``points`` evenly spaced samples.
        points: Number of evenly spaced samples when *step* is ``None``.
        lower: Explicit lower bound (floored at zero).
        upper: Explicit upper bound.
    """

    range_pct: float = 0.5
    step: Optional[float] = None
    points: int = 201
    lower: Optional[float] = None
    upper: Optional[float] = None

    def __post_init__(self):
        if not self.range_pct > 0:
            raise InvalidInputError("range_pct must be positive")
        if self.step is not None and not self.step > 0:
            raise InvalidInputError("step must be positive")
        if not isinstance(self.points, numbers.Integral) or isinstance(self.points, bool):
            raise InvalidInputError(f"points must be an integer, got {self.points!r}")
        if not 2 <= self.points <= MAX_SWEEP_POINTS:
            raise InvalidInputError(f"points must be between 2 and {MAX_SWEEP_POINTS}, got {self.points}")

    def bounds(self, current_price: float) -> Tuple[float, float]:
        lower = self.lower if self.lower is not None else current_price * (1 - self.range_pct)
        upper = self.upper if self.upper is not None else current_price * (1 + self.range_pct)
        lower = max(lower, 0.0)
        if upper <= lower:
            raise InvalidInputError(f"Empty sweep range [{lower}, {upper}]")
        return lower, upper


# ---------------------------------------------------------------------------
# Leg P&L
# ---------------------------------------------------------------------------

def _as_legs(legs: LegsLike) -> List[StrategyLeg]:
    if isinstance(legs, Strategy):
        return list(legs.legs)
    result = list(legs)
    if not result:
        raise InvalidInputError("At least one leg is required")
    return result


def leg_pnl(leg: StrategyLeg, prices, current_price: float) -> np.ndarray:
    """P&L at expiry of one leg for each price in *prices*.

    Raises:
        InvalidInputError: If an option leg has no premium.
    """
    prices = np.asarray(prices, dtype=float)
    if not leg.is_option:
        entry = leg.entry_price if leg.entry_price is not None else current_price
        return leg.sign * (prices - entry) * leg.quantity

    if leg.premium is None:
        raise InvalidInputError(
            f"{leg.instrument.value} leg at strike {leg.strike} has no premium; "
            f"use analyze_strategy() to price it"
        )
    intrinsic = intrinsic_value(prices, leg.strike, leg.option_kind)
    return leg.sign * (intrinsic - leg.premium) * leg.quantity * CONTRACT_MULTIPLIER


def total_pnl(legs: LegsLike, prices, current_price: float) -> np.ndarray:
    """Sum of :func:`leg_pnl` over all legs."""
    prices = np.asarray(prices, dtype=float)
    total = np.zeros_like(prices)
    for leg in _as_legs(legs):
        total = total + leg_pnl(leg, prices, current_price)
    return total


def _kink_prices(legs: Sequence[StrategyLeg], current_price: float) -> List[float]:
    points = [current_price]
    for leg in legs:
        if leg.is_option:
            points.append(leg.strike)
        elif leg.entry_price is not None:
            points.append(leg.entry_price)
    return points


def sweep_prices(
    legs: LegsLike,
    current_price: float,
    sweep: Optional[SweepConfig] = None,
) -> np.ndarray:
    """Sorted, de-duplicated sample prices for the P&L curve.

    The regular grid is merged with every strike, stock entry price and
    the current price that fall inside the range.
    """
    sweep = sweep or SweepConfig()
    legs = _as_legs(legs)
    lower, upper = sweep.bounds(current_price)

    if sweep.step is not None:
        count = int(math.floor((upper - lower) / sweep.step)) + 1
        if count > MAX_SWEEP_POINTS:
            raise InvalidInputError(
                f"Sweep step {sweep.step} gives {count} points (max {MAX_SWEEP_POINTS})"
            )
        grid = lower + sweep.step * np.arange(count)
        if grid[-1] < upper:
            grid = np.append(grid, upper)
    else:
        grid = np.linspace(lower, upper, sweep.points)

    extras = [p for p in _kink_prices(legs, current_price) if lower <= p <= upper]
    return np.unique(np.concatenate([grid, np.asarray(extras, dtype=float)]))


def pnl_curve(
    legs: LegsLike,
    current_price: float,
    sweep: Optional[SweepConfig] = None,
) -> PnLCurve:
    """Evaluate total P&L at expiry over the configured sweep."""
    prices = sweep_prices(legs, current_price, sweep)
    pnls = total_pnl(legs, prices, current_price)
    return PnLCurve(points=tuple(
        PnLPoint(float(p), float(v)) for p, v in zip(prices, pnls)
    ))


# ---------------------------------------------------------------------------
# Summary metrics
# ---------------------------------------------------------------------------

def find_breakevens(prices, pnls) -> List[float]:
    """Find the prices where a sampled P&L curve crosses zero.

    Adjacent samples of opposite sign are interpolated linearly.  When the
    sign change spans samples that are exactly zero, the first zero sample
    is the breakeven.  Touching zero without crossing is not a breakeven.

    Args:
        prices: Ascending sample prices.
        pnls: P&L at each sample.

    Returns:
        Breakeven prices in ascending order.
    """
    prices = np.asarray(prices, dtype=float)
    pnls = np.asarray(pnls, dtype=float)
    if prices.shape != pnls.shape:
        raise InvalidInputError("prices and pnls must have the same length")

    signs = np.sign(np.where(np.abs(pnls) <= ZERO_TOLERANCE, 0.0, pnls))
    signed = np.flatnonzero(signs)

    breakevens: List[float] = []
    for a, b in zip(signed[:-1], signed[1:]):
        if signs[a] == signs[b]:
            continue
        if b == a + 1:
            root = prices[a] - pnls[a] * (prices[b] - prices[a]) / (pnls[b] - pnls[a])
        else:
            root = prices[a + 1]
        breakevens.append(float(root))
    return breakevens


def terminal_slope(legs: LegsLike) -> float:
    """d(P&L)/dS once the underlying is above every strike."""
    slope = 0.0
    for leg in _as_legs(legs):
        if leg.instrument is InstrumentKind.STOCK:
            slope += leg.sign * leg.quantity
        elif leg.instrument is InstrumentKind.CALL:
            slope += leg.sign * leg.quantity * CONTRACT_MULTIPLIER
    return slope


def max_profit_loss(legs: LegsLike, current_price: float) -> Tuple[float, float]:
    """Exact maximum profit and maximum loss at expiry over ``[0, inf)``.

    Returns:
        ``(max_profit, max_loss)`` as P&L values: ``max_loss`` is the
        smallest P&L (negative for a loss).  ``inf`` / ``-inf`` mark
        unbounded profit / loss.
    """
    legs = _as_legs(legs)
    kinks = sorted({0.0} | {leg.strike for leg in legs if leg.is_option})
    values = total_pnl(legs, kinks, current_price)
    slope = terminal_slope(legs)

    max_profit = math.inf if slope > 0 else float(np.max(values))
    max_loss = -math.inf if slope < 0 else float(np.min(values))
    return max_profit, max_loss


def probability_of_profit(
    legs: LegsLike,
    current_price: float,
    sigma: float,
    dte_years: float,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> float:
    """Probability that the position finishes with P&L > 0.

    The terminal price is log-normal under the risk-neutral drift::

        ln S_T ~ N(ln S + (r - sigma^2/2) T, sigma^2 T)

    P&L is sampled on a grid spanning the distribution's
    ``1e-6 .. 1 - 1e-6`` quantiles with every strike merged in, so it is
    linear between neighbouring samples.  Each segment contributes the
    CDF mass of the part where P&L is strictly positive: all of it, none
    of it, or the side of the interpolated zero crossing that is in
    profit.  Flat zero stretches therefore count as not profitable.  The
    two tails beyond the grid take the sign of the P&L at its ends.
    """
    legs = _as_legs(legs)
    validate_inputs(current_price, current_price, dte_years, risk_free_rate, sigma)

    if dte_years == 0:
        return 1.0 if float(total_pnl(legs, [current_price], current_price)[0]) > ZERO_TOLERANCE else 0.0

    dist = lognorm(
        s=sigma * math.sqrt(dte_years),
        scale=current_price * math.exp((risk_free_rate - 0.5 * sigma ** 2) * dte_years),
    )
    lo, hi = float(dist.ppf(PROB_TAIL)), float(dist.isf(PROB_TAIL))

    grid = np.linspace(lo, hi, PROB_GRID_POINTS)
    extras = [p for p in _kink_prices(legs, current_price) if lo <= p <= hi]
    grid = np.unique(np.concatenate([grid, np.asarray(extras, dtype=float)]))
    values = total_pnl(legs, grid, current_price)
    positive = values > ZERO_TOLERANCE
    cdf = dist.cdf(grid)

    left, right = positive[:-1], positive[1:]
    mass = np.where(left & right, cdf[1:] - cdf[:-1], 0.0)

    # Segments that cross zero: only the profitable side of the root counts
    crossing = np.flatnonzero(left != right)
    if crossing.size:
        x0, x1 = grid[crossing], grid[crossing + 1]
        y0, y1 = values[crossing], values[crossing + 1]
        root_cdf = dist.cdf(x0 - y0 * (x1 - x0) / (y1 - y0))
        mass[crossing] = np.where(
            right[crossing], cdf[crossing + 1] - root_cdf, root_cdf - cdf[crossing]
        )

    probability = float(mass.sum())
    if positive[0]:
        probability += float(cdf[0])
    if positive[-1]:
        probability += float(dist.sf(grid[-1]))
    return min(max(probability, 0.0), 1.0)


# ---------------------------------------------------------------------------
# Main entry points
# ---------------------------------------------------------------------------

def evaluate_strategy(
    legs: LegsLike,
    current_price: float,
    sweep: Optional[SweepConfig] = None,
    sigma: Optional[float] = None,
    dte_years: Optional[float] = None,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> StrategyAnalysis:
    """Evaluate a position at expiry.

    Args:
        legs: A :class:`Strategy` or a sequence of legs.  Option legs must
            carry a premium.
        current_price: Current underlying price (entry price for stock legs
            without an explicit one).
        sweep: Sweep range / resolution (defaults to +/- 50 %, 201 points).
        sigma: Volatility for the probability of profit.
        dte_years: Time to expiry for the probability of profit.
        risk_free_rate: Drift for the probability of profit.

    Returns:
        :class:`StrategyAnalysis`.  ``probability_of_profit`` is ``None``
        unless both *sigma* and *dte_years* are given.

    Raises:
        InvalidInputError: For a non-positive price, empty leg list, a bad
            sweep or an option leg without a premium.
    """
    legs = _as_legs(legs)
    if not isinstance(current_price, (int, float)) or not math.isfinite(current_price) or current_price <= 0:
        raise InvalidInputError("current_price must be positive")

    curve = pnl_curve(legs, current_price, sweep)
    breakevens = find_breakevens(curve.prices, curve.pnls)
    max_profit, max_loss = max_profit_loss(legs, current_price)

    pop = None
    if sigma is not None and dte_years is not None:
        pop = probability_of_profit(legs, current_price, sigma, dte_years, risk_free_rate)

    logger.debug(
        "Evaluated %d legs at S=%.2f: %d points, breakevens=%s, max_profit=%s, max_loss=%s",
        len(legs), current_price, len(curve), breakevens, max_profit, max_loss,
    )
    return StrategyAnalysis(
        curve=curve,
        breakevens=breakevens,
        max_profit=max_profit,
        max_loss=max_loss,
        probability_of_profit=pop,
        legs=legs,
    )


def analyze_strategy(
    legs: LegsLike,
    current_price: float,
    dte_years: float,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
    default_iv: float = 0.25,
    sweep: Optional[SweepConfig] = None,
) -> StrategyAnalysis:
    """Price, risk and evaluate a position.

    Option legs without a premium are priced with Black-Scholes (rounded to
    the cent) using their own ``implied_vol`` or *default_iv*.  Per-leg
    Greeks are computed and aggregated into position Greeks scaled by the
    signed share count.  The probability of profit uses the mean implied
    volatility of the option legs (or *default_iv* for stock-only
    positions).
    """
    legs = _as_legs(legs)
    priced: List[StrategyLeg] = []
    leg_greeks: List[Optional[OptionGreeks]] = []
    totals = dict(delta=0.0, gamma=0.0, theta=0.0, vega=0.0, rho=0.0)
    vols: List[float] = []

    for leg in legs:
        if not leg.is_option:
            priced.append(leg)
            leg_greeks.append(None)
            totals["delta"] += leg.sign * leg.quantity
            continue

        iv = leg.implied_vol if leg.implied_vol is not None else default_iv
        kind = leg.option_kind
        greeks = compute_all_greeks(current_price, leg.strike, dte_years, risk_free_rate, iv, kind)
        premium = leg.premium
        if premium is None:
            premium = round_price(
                bs_price(current_price, leg.strike, dte_years, risk_free_rate, iv, kind)
            )
        priced.append(replace(leg, premium=premium, implied_vol=iv))
        leg_greeks.append(greeks)
        vols.append(iv)

        shares = leg.sign * leg.quantity * CONTRACT_MULTIPLIER
        totals["delta"] += shares * greeks.delta
        totals["gamma"] += shares * greeks.gamma
        totals["theta"] += shares * greeks.theta
        totals["vega"] += shares * greeks.vega
        totals["rho"] += shares * greeks.rho

    sigma = sum(vols) / len(vols) if vols else default_iv
    analysis = evaluate_strategy(
        priced, current_price, sweep,
        sigma=sigma, dte_years=dte_years, risk_free_rate=risk_free_rate,
    )
    analysis.leg_greeks = leg_greeks
    analysis.position_greeks = PositionGreeks(**totals)
    return analysis
