"""
Meridian 1.0 -- Investment simulator.

High-level projections built on :func:`simulate_investment`:

  1. **Future investment** -- Monte Carlo terminal values for one ticker
     over a horizon in days, summarised by a confidence interval.
  2. **Portfolio** -- per-holding simulations plus portfolio-level
     return, volatility (no correlations) and parametric VaR / CVaR.
  3. **Historical what-if** -- a single simulated path for money invested
     *days_ago* days ago, with bull / bear / crash scenarios.

Annual figures are scaled to the horizon as ``er * T`` and
``vol * sqrt(T)`` with ``T = days / 365``.

Usage::

    sim = Simulator(rng=np.random.default_rng(42))
    result = sim.simulate_future_investment(10_000, "AAPL", days=365)
    print(generate_report(result))
"""

from __future__ import annotations

import math
from datetime import date, timedelta
from typing import List, Mapping, Optional

import numpy as np

from investment.metrics import (
    adjust_for_inflation,
    confidence_interval,
    conditional_value_at_risk,
    diversification_benefit,
    estimate_max_drawdown,
    median,
    sharpe_ratio,
    value_at_risk,
)
from investment.models import (
    HistoricalScenario,
    HistoricalWhatIf,
    InvestmentProfile,
    PortfolioPosition,
    PortfolioSimulation,
    SimulationResult,
)
from investment.montecarlo import box_muller, simulate_investment
from investment.profiles import BENCHMARK_SYMBOL, ProfileSource
from options_engine.errors import InvalidInputError
from options_engine.utils import DAYS_PER_YEAR, get_logger

logger = get_logger(__name__)

# Allocations must add up to 100 % within this tolerance
ALLOCATION_TOLERANCE = 0.01

CRASH_RETURN = -0.30

# Extra return noise for look-backs longer than a year
MARKET_CYCLE_VOLATILITY = 0.05


class Simulator:
    """Monte Carlo investment projections.

    Args:
        profiles: Ticker / bucket profile lookup.
        rng: Random generator shared by all runs (unseeded if ``None``).
        iterations: Monte Carlo samples per simulation.
    """

    def __init__(
        self,
        profiles: Optional[ProfileSource] = None,
        rng: Optional[np.random.Generator] = None,
        iterations: int = 10_000,
    ) -> None:
        self.profiles = profiles or ProfileSource()
        self.rng = rng if rng is not None else np.random.default_rng()
        self.iterations = iterations

    # ------------------------------------------------------------------
    # Future investment
    # ------------------------------------------------------------------

    def simulate_future_investment(
        self,
        amount: float,
        symbol: str,
        days: int,
        confidence_level: float = 0.68,
    ) -> SimulationResult:
        """Project the value of *amount* invested in *symbol* after *days*."""
        _check_amount(amount)
        _check_days(days, "days")
        profile = self.profiles.get(symbol)
        return self._simulate(amount, symbol, days, confidence_level, profile)

    def _simulate(
        self,
        amount: float,
        symbol: str,
        days: int,
        confidence_level: float,
        profile: InvestmentProfile,
    ) -> SimulationResult:
        years = days / DAYS_PER_YEAR
        er = profile.expected_return * years
        vol = profile.volatility * math.sqrt(years)

        outcomes = simulate_investment(amount, er, vol, self.iterations, self.rng)
        lower, upper = confidence_interval(outcomes, confidence_level)

        logger.debug(
            "Simulated %s: amount=%.2f days=%d er=%.4f vol=%.4f CI=[%.2f, %.2f]",
            symbol, amount, days, er, vol, lower, upper,
        )

        def pct_change(value: float) -> float:
            return (value - amount) / amount * 100

        return SimulationResult(
            initial_amount=amount,
            symbol=symbol,
            days=days,
            confidence_level=confidence_level,
            iterations=self.iterations,
            expected_value=amount * (1 + er),
            best_value=upper,
            worst_value=lower,
            median_value=median(outcomes),
            expected_return_pct=er * 100,
            best_case_pct=pct_change(upper),
            worst_case_pct=pct_change(lower),
            volatility_pct=vol * 100,
            max_drawdown=estimate_max_drawdown(profile.volatility, years),
            sharpe_ratio=sharpe_ratio(er, vol),
            bull_value=amount * (1 + er + vol),
            bear_value=amount * (1 + er - vol),
            neutral_value=amount * (1 + er),
        )

    # ------------------------------------------------------------------
    # Portfolio
    # ------------------------------------------------------------------

    def simulate_portfolio(
        self,
        allocations: Mapping[str, float],
        total_amount: float,
        days: int,
        confidence_level: float = 0.68,
    ) -> PortfolioSimulation:
        """Simulate a portfolio given ``{symbol: percent}`` allocations.

        Raises:
            InvalidInputError: If allocations are empty, not positive, or do
                not sum to 100 (+/- 0.01).
        """
        _check_amount(total_amount)
        _check_days(days, "days")
        if not allocations:
            raise InvalidInputError("Portfolio needs at least one allocation")
        if any(pct <= 0 for pct in allocations.values()):
            raise InvalidInputError("Allocations must be positive")
        total_pct = sum(allocations.values())
        if abs(total_pct - 100.0) > ALLOCATION_TOLERANCE:
            raise InvalidInputError(f"Allocations must sum to 100%, got {total_pct:.4f}%")

        years = days / DAYS_PER_YEAR
        positions = []
        annual_return = 0.0
        variance = 0.0
        for symbol, pct in allocations.items():
            profile = self.profiles.get(symbol)
            weight = pct / 100.0
            amount = total_amount * weight
            positions.append(PortfolioPosition(
                symbol=symbol,
                allocation_pct=pct,
                amount=amount,
                simulation=self._simulate(amount, symbol, days, confidence_level, profile),
            ))
            annual_return += profile.expected_return * weight
            variance += (profile.volatility * weight) ** 2

        # Annual volatility; correlations are ignored
        portfolio_vol = math.sqrt(variance)
        er = annual_return * years

        logger.info(
            "Portfolio simulated: %d holdings, total=%.2f, days=%d",
            len(positions), total_amount, days,
        )
        return PortfolioSimulation(
            total_amount=total_amount,
            days=days,
            positions=positions,
            expected_value=total_amount * (1 + er),
            expected_return_pct=er * 100,
            volatility_pct=portfolio_vol * 100,
            sharpe_ratio=sharpe_ratio(er, portfolio_vol),
            diversification_benefit=diversification_benefit(len(allocations)),
            value_at_risk=value_at_risk(total_amount, er, portfolio_vol),
            conditional_value_at_risk=conditional_value_at_risk(total_amount, er, portfolio_vol),
        )

    # ------------------------------------------------------------------
    # Historical what-if
    # ------------------------------------------------------------------

    def _historical_return(self, profile: InvestmentProfile, years: float) -> float:
        base = profile.expected_return * years
        noise = box_muller(self.rng, 1)[0] * profile.volatility * math.sqrt(years)
        cycle = 0.0
        if years > 1:
            cycle = box_muller(self.rng, 1)[0] * MARKET_CYCLE_VOLATILITY
        return float(base + noise + cycle)

    def historical_what_if(
        self,
        amount: float,
        symbol: str,
        days_ago: int,
        today: Optional[date] = None,
    ) -> HistoricalWhatIf:
        """Simulate what *amount* invested *days_ago* days ago is worth now.

        No historical prices are fetched: the realised return is one draw
        from the symbol's profile.
        """
        _check_amount(amount)
        _check_days(days_ago, "days_ago")
        today = today or date.today()
        profile = self.profiles.get(symbol)
        years = days_ago / DAYS_PER_YEAR

        realised = self._historical_return(profile, years)
        current_value = amount * (1 + realised)
        if current_value > 0:
            annualized = ((current_value / amount) ** (1 / years) - 1) * 100
        else:
            annualized = -100.0

        drift = profile.expected_return * years
        swing = profile.volatility * math.sqrt(years)
        scenarios = [
            HistoricalScenario("Bull Market Scenario", (drift + swing) * 100, amount * (1 + drift + swing)),
            HistoricalScenario("Bear Market Scenario", (drift - swing) * 100, amount * (1 + drift - swing)),
            HistoricalScenario("Market Crash Scenario", CRASH_RETURN * 100, amount * (1 + CRASH_RETURN)),
        ]
        benchmark = self._historical_return(self.profiles.get(BENCHMARK_SYMBOL), years)

        logger.debug("What-if %s: amount=%.2f days_ago=%d return=%.4f", symbol, amount, days_ago, realised)
        return HistoricalWhatIf(
            initial_amount=amount,
            symbol=symbol,
            days_ago=days_ago,
            investment_date=(today - timedelta(days=days_ago)).isoformat(),
            current_value=current_value,
            total_return=current_value - amount,
            percentage_return=(current_value - amount) / amount * 100,
            annualized_return=annualized,
            benchmark_return_pct=benchmark * 100,
            inflation_adjusted_value=adjust_for_inflation(current_value, years),
            scenarios=scenarios,
            market_events=market_events(days_ago),
        )


def market_events(days_ago: int) -> List[str]:
    """Qualitative notes for long look-back periods."""
    events = []
    if days_ago > 365:
        events.append("Potential market cycles experienced")
    if days_ago > 730:
        events.append("Multiple economic cycles")
    if days_ago > 1095:
        events.append("Long-term compound growth period")
    return events


def _check_amount(amount: float) -> None:
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) or not math.isfinite(amount):
        raise InvalidInputError(f"amount must be a finite number, got {amount!r}")
    if amount <= 0:
        raise InvalidInputError("amount must be positive")


def _check_days(days: int, name: str) -> None:
    if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
        raise InvalidInputError(f"{name} must be a positive integer, got {days!r}")
