"""
Meridian 1.0 -- Black-Scholes pricing and normal-distribution helpers.

Provides:
  - Standard normal CDF (Abramowitz & Stegun 7.1.26 approximation)
  - Standard normal PDF
  - European-style Black-Scholes option pricing
  - Input validation shared with the Greeks calculator

Formulas:
    d1 = (ln(S/K) + (r + sigma^2/2)*T) / (sigma*sqrt(T))
    d2 = d1 - sigma*sqrt(T)

    Call = S*N(d1) - K*e^(-rT)*N(d2)
    Put  = K*e^(-rT)*N(-d2) - S*N(-d1)

At T = 0 the formula is undefined (division by zero) and the option is
worth its intrinsic value.

The CDF approximation has a maximum absolute error of about 7.5e-8, which
is well below a cent on any realistic notional.  It is symmetric
(N(x) + N(-x) == 1 for every x != 0), so put-call parity holds to
floating-point precision.
"""

import math
import numbers
from typing import Union

import numpy as np

from options_engine.errors import InvalidInputError
from options_engine.models import OptionKind

ArrayLike = Union[float, np.ndarray]


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Abramowitz & Stegun 7.1.26 coefficients
_A1 = 0.254829592
_A2 = -0.284496736
_A3 = 1.421413741
_A4 = -1.453152027
_A5 = 1.061405429
_P = 0.3275911

_SQRT_2 = math.sqrt(2.0)
_SQRT_2PI = math.sqrt(2.0 * math.pi)


# ---------------------------------------------------------------------------
# Normal distribution
# ---------------------------------------------------------------------------

def normal_cdf(x: ArrayLike) -> ArrayLike:
    """Approximate the standard normal cumulative distribution function.

    Accepts a scalar or a numpy array and returns the same shape.
    """
    values = np.asarray(x, dtype=float)
    sign = np.where(values < 0, -1.0, 1.0)
    z = np.abs(values) / _SQRT_2
    t = 1.0 / (1.0 + _P * z)
    poly = ((((_A5 * t + _A4) * t + _A3) * t + _A2) * t + _A1) * t
    y = 1.0 - poly * np.exp(-z * z)
    result = 0.5 * (1.0 + sign * y)
    if result.ndim == 0:
        return float(result)
    return result


def normal_pdf(x: ArrayLike) -> ArrayLike:
    """Standard normal probability density function."""
    values = np.asarray(x, dtype=float)
    result = np.exp(-0.5 * values * values) / _SQRT_2PI
    if result.ndim == 0:
        return float(result)
    return result


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_inputs(
    underlying_price: float,
    strike: float,
    dte_years: float,
    risk_free_rate: float,
    sigma: float,
    option_type: Union[str, OptionKind, None] = None,
) -> None:
    """Fail fast on inputs that would make the formula produce NaN.

    Raises:
        InvalidInputError: For non-finite values, non-positive price,
            strike or volatility, negative time, or an unknown option type.
    """
    for name, value in (
        ("underlying_price", underlying_price),
        ("strike", strike),
        ("dte_years", dte_years),
        ("risk_free_rate", risk_free_rate),
        ("sigma", sigma),
    ):
        if not isinstance(value, numbers.Real) or isinstance(value, bool):
            raise InvalidInputError(f"{name} must be a number, got {value!r}")
        if not math.isfinite(value):
            raise InvalidInputError(f"{name} must be finite, got {value}")
    if underlying_price <= 0:
        raise InvalidInputError("underlying_price must be positive")
    if strike <= 0:
        raise InvalidInputError("strike must be positive")
    if dte_years < 0:
        raise InvalidInputError("dte_years must not be negative")
    if sigma <= 0:
        raise InvalidInputError("sigma must be positive")
    if option_type is not None:
        OptionKind.parse(option_type)


# ---------------------------------------------------------------------------
# Black-Scholes terms
# ---------------------------------------------------------------------------

def d1(
    underlying_price: float,
    strike: float,
    dte_years: float,
    risk_free_rate: float,
    sigma: float,
) -> float:
    """Compute the d1 term of the Black-Scholes formula (requires T > 0)."""
    numerator = (
        math.log(underlying_price / strike)
        + (risk_free_rate + 0.5 * sigma ** 2) * dte_years
    )
    denominator = sigma * math.sqrt(dte_years)
    return numerator / denominator


def d2(d1_value: float, sigma: float, dte_years: float) -> float:
    """Compute the d2 term from a previously computed d1."""
    return d1_value - sigma * math.sqrt(dte_years)


def intrinsic_value(
    underlying_price: ArrayLike,
    strike: float,
    option_type: Union[str, OptionKind],
) -> ArrayLike:
    """Exercise value: ``max(0, S-K)`` for calls, ``max(0, K-S)`` for puts."""
    kind = OptionKind.parse(option_type)
    if kind is OptionKind.CALL:
        value = np.maximum(np.asarray(underlying_price, dtype=float) - strike, 0.0)
    else:
        value = np.maximum(strike - np.asarray(underlying_price, dtype=float), 0.0)
    if value.ndim == 0:
        return float(value)
    return value


def bs_price(
    underlying_price: float,
    strike: float,
    dte_years: float,
    risk_free_rate: float,
    sigma: float,
    option_type: Union[str, OptionKind],
) -> float:
    """Compute the Black-Scholes theoretical price for a European option.

    Args:
        underlying_price: Current price of the underlying asset (S).
        strike: Option strike price (K).
        dte_years: Time to expiration in years (T).  Zero returns the
            intrinsic value.
        risk_free_rate: Annualized risk-free interest rate (r).
        sigma: Annualized volatility (sigma).  Must be > 0.
        option_type: ``"call"`` or ``"put"``.

    Returns:
        Theoretical option price per share.

    Raises:
        InvalidInputError: If any input is outside the model's domain.
    """
    validate_inputs(underlying_price, strike, dte_years, risk_free_rate, sigma, option_type)
    kind = OptionKind.parse(option_type)

    if dte_years == 0:
        return intrinsic_value(underlying_price, strike, kind)

    d1_val = d1(underlying_price, strike, dte_years, risk_free_rate, sigma)
    d2_val = d2(d1_val, sigma, dte_years)
    discount = math.exp(-risk_free_rate * dte_years)

    if kind is OptionKind.CALL:
        return (
            underlying_price * normal_cdf(d1_val)
            - strike * discount * normal_cdf(d2_val)
        )
    else:
        return (
            strike * discount * normal_cdf(-d2_val)
            - underlying_price * normal_cdf(-d1_val)
        )
