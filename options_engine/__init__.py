"""
Meridian 1.0 -- Options analytics engine.

Black-Scholes pricing, Greeks, implied volatility and multi-leg strategy
evaluation for European options.

Supports:
  - Black-Scholes prices with a closed-form normal CDF approximation
  - Analytic Greeks (theta per day, vega / rho per 1 % move)
  - Newton-Raphson implied volatility with an explicit convergence flag
  - Strategy templates (covered call, spreads, condors, straddles, ...)
  - Expiry P&L curves, breakevens, exact max profit / loss and
    log-normal probability of profit for any list of legs
  - Simulated chains, expiration calendars and unusual activity

Quick start::

    from options_engine import bs_price, compute_all_greeks, evaluate_strategy
    from options_engine import StrategyLeg

    price = bs_price(100, 100, 1.0, 0.05, 0.20, "call")      # ~10.45
    greeks = compute_all_greeks(100, 100, 1.0, 0.05, 0.20, "call")

    legs = [
        StrategyLeg("call", "buy", 1, strike=100, premium=3.0),
        StrategyLeg("call", "sell", 1, strike=110, premium=1.0),
    ]
    analysis = evaluate_strategy(legs, current_price=100)
    print(analysis.breakevens, analysis.max_profit, analysis.max_loss)
"""

from options_engine.errors import (
    PricingError,
    InvalidInputError,
    NumericInstabilityError,
    NonConvergenceError,
    UnknownStrategyError,
    UnknownSymbolError,
)
from options_engine.models import (
    CONTRACT_MULTIPLIER,
    OptionKind,
    InstrumentKind,
    Action,
    OptionGreeks,
    PositionGreeks,
    IVResult,
    StrategyLeg,
    Strategy,
    PnLPoint,
    PnLCurve,
    StrategyAnalysis,
)
from options_engine.config import EngineSettings, load_settings
from options_engine.pricing import bs_price, intrinsic_value, normal_cdf, normal_pdf
from options_engine.greeks import (
    OptionQuote,
    compute_delta,
    compute_gamma,
    compute_theta,
    compute_vega,
    compute_rho,
    compute_all_greeks,
    implied_volatility,
)
from options_engine.strategy import (
    StrategyKind,
    StrategyTemplate,
    STRATEGY_TEMPLATES,
    get_strategy,
    list_strategies,
    build_strategy,
)
from options_engine.evaluator import (
    SweepConfig,
    leg_pnl,
    pnl_curve,
    find_breakevens,
    max_profit_loss,
    probability_of_profit,
    evaluate_strategy,
    analyze_strategy,
)
from options_engine.market import PriceSource, StaticPriceSource

__all__ = [
    "PricingError",
    "InvalidInputError",
    "NumericInstabilityError",
    "NonConvergenceError",
    "UnknownStrategyError",
    "UnknownSymbolError",
    "CONTRACT_MULTIPLIER",
    "OptionKind",
    "InstrumentKind",
    "Action",
    "OptionGreeks",
    "PositionGreeks",
    "IVResult",
    "StrategyLeg",
    "Strategy",
    "PnLPoint",
    "PnLCurve",
    "StrategyAnalysis",
    "EngineSettings",
    "load_settings",
    "bs_price",
    "intrinsic_value",
    "normal_cdf",
    "normal_pdf",
    "OptionQuote",
    "compute_delta",
    "compute_gamma",
    "compute_theta",
    "compute_vega",
    "compute_rho",
    "compute_all_greeks",
    "implied_volatility",
    "StrategyKind",
    "StrategyTemplate",
    "STRATEGY_TEMPLATES",
    "get_strategy",
    "list_strategies",
    "build_strategy",
    "SweepConfig",
    "leg_pnl",
    "pnl_curve",
    "find_breakevens",
    "max_profit_loss",
    "probability_of_profit",
    "evaluate_strategy",
    "analyze_strategy",
    "PriceSource",
    "StaticPriceSource",
]
