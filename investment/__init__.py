"""
Meridian 1.0 -- Monte Carlo investment simulator.

Projects the future value of an investment from an expected return and
volatility, and derives risk summaries from the simulated outcomes.

Supports:
  - Box-Muller normal sampling from an injected numpy Generator
  - Percentile confidence intervals and median
  - Parametric Value at Risk and Conditional VaR
  - Single-ticker, portfolio and historical what-if projections
  - Built-in profiles for common tickers and risk buckets
  - In-memory portfolio tracking valued from a price source

Quick start::

    import numpy as np
    from investment import Simulator, generate_report

    sim = Simulator(rng=np.random.default_rng(7))
    result = sim.simulate_future_investment(10_000, "SPY", days=365)
    print(generate_report(result))
"""

from investment.models import (
    InvestmentProfile,
    SimulationResult,
    PortfolioPosition,
    PortfolioSimulation,
    HistoricalScenario,
    HistoricalWhatIf,
    Position,
    Portfolio,
    PortfolioPerformance,
    AssetAllocation,
    PortfolioSummary,
)
from investment.montecarlo import box_muller, simulate_investment
from investment.metrics import (
    confidence_interval,
    median,
    value_at_risk,
    conditional_value_at_risk,
    estimate_max_drawdown,
    sharpe_ratio,
    adjust_for_inflation,
    diversification_benefit,
)
from investment.profiles import ProfileSource, DEFAULT_PROFILE
from investment.simulator import Simulator
from investment.portfolio import PortfolioBook
from investment.report import generate_report

__all__ = [
    "InvestmentProfile",
    "SimulationResult",
    "PortfolioPosition",
    "PortfolioSimulation",
    "HistoricalScenario",
    "HistoricalWhatIf",
    "Position",
    "Portfolio",
    "PortfolioPerformance",
    "AssetAllocation",
    "PortfolioSummary",
    "box_muller",
    "simulate_investment",
    "confidence_interval",
    "median",
    "value_at_risk",
    "conditional_value_at_risk",
    "estimate_max_drawdown",
    "sharpe_ratio",
    "adjust_for_inflation",
    "diversification_benefit",
    "ProfileSource",
    "DEFAULT_PROFILE",
    "Simulator",
    "PortfolioBook",
    "generate_report",
]
