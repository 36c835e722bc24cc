"""
Meridian 1.0 -- Investment risk metrics.

Summary statistics over Monte Carlo outcomes and closed-form risk
approximations:

  - **Confidence interval** by percentile index into sorted outcomes
  - **Median**
  - **Value at Risk** (parametric, 95 %: z = -1.645)
  - **Conditional VaR** (parametric, z = -2.062)
  - **Max drawdown** rule of thumb (2 * vol * sqrt(T))
  - **Sharpe ratio**, inflation adjustment, diversification benefit

VaR and CVaR are *signed* dollar changes: a loss is negative.  They are
parametric approximations from the mean and volatility, not empirical
quantiles of the simulated outcomes.
"""

from __future__ import annotations

import math
from typing import Sequence, Tuple

import numpy as np

from options_engine.errors import InvalidInputError


VAR_Z_SCORE = -1.645
CVAR_Z_SCORE = -2.062
INFLATION_RATE = 0.025

# Diversification benefit: 0.05 * ln(n), capped at 15 %
DIVERSIFICATION_SCALE = 0.05
DIVERSIFICATION_CAP = 0.15


def _sorted_array(outcomes: Sequence[float]) -> np.ndarray:
    values = np.asarray(outcomes, dtype=float)
    if values.ndim != 1 or values.size == 0:
        raise InvalidInputError("outcomes must be a non-empty 1-D sequence")
    return values


def confidence_interval(sorted_outcomes: Sequence[float], level: float) -> Tuple[float, float]:
    """Return ``(lower, upper)`` outcomes bracketing *level* of the mass.

    Indices are ``floor(n * (1 - level) / 2)`` and
    ``floor(n * (1 - (1 - level) / 2))``, the upper one clamped to
    ``n - 1``.  *sorted_outcomes* must already be sorted ascending.
    """
    if not 0 < level < 1:
        raise InvalidInputError(f"confidence level must be in (0, 1), got {level}")
    values = _sorted_array(sorted_outcomes)
    n = values.size
    alpha = 1.0 - level
    lower = int(math.floor(n * (alpha / 2)))
    upper = min(int(math.floor(n * (1 - alpha / 2))), n - 1)
    return float(values[lower]), float(values[upper])


def median(sorted_outcomes: Sequence[float]) -> float:
    """Median of ascending outcomes (mean of the middle pair for even n)."""
    values = _sorted_array(sorted_outcomes)
    n = values.size
    mid = n // 2
    if n % 2:
        return float(values[mid])
    return float((values[mid - 1] + values[mid]) / 2)


def value_at_risk(
    amount: float,
    expected_return: float,
    volatility: float,
    z_score: float = VAR_Z_SCORE,
) -> float:
    """Parametric VaR: ``amount * (1 + er + z * vol) - amount``.

    *expected_return* and *volatility* are for the horizon, not annual.
    """
    return amount * (1 + expected_return + z_score * volatility) - amount


def conditional_value_at_risk(
    amount: float,
    expected_return: float,
    volatility: float,
) -> float:
    """Parametric CVaR using the 95 % tail z-score of -2.062."""
    return value_at_risk(amount, expected_return, volatility, z_score=CVAR_Z_SCORE)


def estimate_max_drawdown(annual_volatility: float, years: float) -> float:
    """Rough peak-to-trough estimate: ``2 * vol * sqrt(T)`` (a fraction)."""
    return annual_volatility * math.sqrt(years) * 2


def sharpe_ratio(expected_return: float, volatility: float) -> float:
    """Return per unit of risk over the horizon (0.0 when volatility is 0)."""
    if volatility == 0:
        return 0.0
    return expected_return / volatility


def adjust_for_inflation(amount: float, years: float, rate: float = INFLATION_RATE) -> float:
    """Deflate *amount* to today's dollars at a constant annual *rate*."""
    return amount / (1 + rate) ** years


def diversification_benefit(num_assets: int) -> float:
    """Heuristic risk reduction from holding *num_assets* positions."""
    if num_assets <= 1:
        return 0.0
    return min(DIVERSIFICATION_CAP, DIVERSIFICATION_SCALE * math.log(num_assets))
