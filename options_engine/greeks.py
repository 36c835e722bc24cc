"""
Meridian 1.0 -- Black-Scholes Greeks and implied volatility solver.

Provides:
  - Greeks: Delta, Gamma, Theta (per day), Vega (per 1% IV move),
    Rho (per 1% rate move)
  - Implied volatility solver: bracketed Newton-Raphson with a bisection
    fallback and a convergence flag
  - :class:`OptionQuote`, a validated bundle of pricing inputs

Greeks are computed analytically everywhere in Meridian.  There is no
finite-difference path in the library, so every caller sees the same
numbers for the same inputs.

Formulas:
    Delta_call = N(d1)              Delta_put = N(d1) - 1
    Gamma      = phi(d1) / (S*sigma*sqrt(T))
    Theta_call = -(S*phi(d1)*sigma)/(2*sqrt(T)) - r*K*e^(-rT)*N(d2)
    Theta_put  = -(S*phi(d1)*sigma)/(2*sqrt(T)) + r*K*e^(-rT)*N(-d2)
    Vega       = S*phi(d1)*sqrt(T)
    Rho_call   = K*T*e^(-rT)*N(d2)   Rho_put = -K*T*e^(-rT)*N(-d2)

Where N() is the standard normal CDF and phi() is the standard normal PDF.

At expiry (T = 0) the option is a step function of S.  The boundary
Greeks are returned: delta 1 / 0 for an in / out of the money call
(0.5 exactly at the money, put delta = call delta - 1) and zero for all
other sensitivities.
"""

import math
import numbers
from dataclasses import dataclass
from typing import Union

from options_engine.config import DEFAULT_RISK_FREE_RATE
from options_engine.errors import InvalidInputError
from options_engine.models import IVResult, OptionGreeks, OptionKind
from options_engine.pricing import (
    bs_price,
    d1 as _d1,
    d2 as _d2,
    intrinsic_value,
    normal_cdf,
    normal_pdf,
    validate_inputs,
)
from options_engine.utils import get_logger

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# IV solver settings (annualized volatility)
IV_INITIAL_GUESS = 0.20
IV_TOLERANCE = 1e-4
IV_MAX_ITERATIONS = 100
IV_LOWER_BOUND = 0.001
IV_UPPER_BOUND = 5.0

# Below this raw vega a Newton step would divide by (almost) zero
IV_MIN_VEGA = 1e-10

# Bracket width at which the solver gives up on a price it cannot reach
IV_MIN_BRACKET = 1e-10


# ---------------------------------------------------------------------------
# Expiry boundary
# ---------------------------------------------------------------------------

def _expiry_delta(underlying_price: float, strike: float, kind: OptionKind) -> float:
    if underlying_price > strike:
        call_delta = 1.0
    elif underlying_price < strike:
        call_delta = 0.0
    else:
        call_delta = 0.5
    return call_delta if kind is OptionKind.CALL else call_delta - 1.0


# ---------------------------------------------------------------------------
# Greeks computation (pure functions)
# ---------------------------------------------------------------------------

def compute_delta(
    underlying_price: float,
    strike: float,
    dte_years: float,
    risk_free_rate: float,
    sigma: float,
    option_type: Union[str, OptionKind],
) -> float:
    """Compute option delta.

    Returns:
        Delta value. Calls: [0, 1], Puts: [-1, 0].
    """
    validate_inputs(underlying_price, strike, dte_years, risk_free_rate, sigma, option_type)
    kind = OptionKind.parse(option_type)
    if dte_years == 0:
        return _expiry_delta(underlying_price, strike, kind)

    d1_val = _d1(underlying_price, strike, dte_years, risk_free_rate, sigma)
    if kind is OptionKind.CALL:
        return normal_cdf(d1_val)
    else:
        return normal_cdf(d1_val) - 1.0


def compute_gamma(
    underlying_price: float,
    strike: float,
    dte_years: float,
    risk_free_rate: float,
    sigma: float,
) -> float:
    """Compute option gamma (same for calls and puts)."""
    validate_inputs(underlying_price, strike, dte_years, risk_free_rate, sigma)
    if dte_years == 0:
        return 0.0
    d1_val = _d1(underlying_price, strike, dte_years, risk_free_rate, sigma)
    return normal_pdf(d1_val) / (underlying_price * sigma * math.sqrt(dte_years))


def compute_theta(
    underlying_price: float,
    strike: float,
    dte_years: float,
    risk_free_rate: float,
    sigma: float,
    option_type: Union[str, OptionKind],
) -> float:
    """Compute option theta per calendar day.

    The raw Black-Scholes theta is annualized; this function divides
    by 365 to return the per-day value.

    Returns:
        Theta per calendar day (typically negative for long options).
    """
    validate_inputs(underlying_price, strike, dte_years, risk_free_rate, sigma, option_type)
    kind = OptionKind.parse(option_type)
    if dte_years == 0:
        return 0.0

    d1_val = _d1(underlying_price, strike, dte_years, risk_free_rate, sigma)
    d2_val = _d2(d1_val, sigma, dte_years)
    discount = math.exp(-risk_free_rate * dte_years)
    sqrt_t = math.sqrt(dte_years)

    common_term = -(underlying_price * normal_pdf(d1_val) * sigma) / (2.0 * sqrt_t)

    if kind is OptionKind.CALL:
        theta_annual = common_term - risk_free_rate * strike * discount * normal_cdf(d2_val)
    else:
        theta_annual = common_term + risk_free_rate * strike * discount * normal_cdf(-d2_val)

    # Convert from per-year to per-calendar-day
    return theta_annual / 365.0


def _raw_vega(
    underlying_price: float,
    strike: float,
    dte_years: float,
    risk_free_rate: float,
    sigma: float,
) -> float:
    """Vega per 1.0 (100 %) move in volatility.  Inputs must already be valid."""
    if dte_years == 0:
        return 0.0
    d1_val = _d1(underlying_price, strike, dte_years, risk_free_rate, sigma)
    return underlying_price * normal_pdf(d1_val) * math.sqrt(dte_years)


def compute_vega(
    underlying_price: float,
    strike: float,
    dte_years: float,
    risk_free_rate: float,
    sigma: float,
) -> float:
    """Compute option vega per 1% move in implied volatility.

    The raw Black-Scholes vega is per 1.0 (100%) move in IV.  This
    function scales it by 0.01 so the result represents the price
    change for a 1 percentage-point move in IV.

    Returns:
        Vega per 1% IV move (same for calls and puts).
    """
    validate_inputs(underlying_price, strike, dte_years, risk_free_rate, sigma)
    return _raw_vega(underlying_price, strike, dte_years, risk_free_rate, sigma) * 0.01


def compute_rho(
    underlying_price: float,
    strike: float,
    dte_years: float,
    risk_free_rate: float,
    sigma: float,
    option_type: Union[str, OptionKind],
) -> float:
    """Compute option rho per 1% move in the risk-free rate."""
    validate_inputs(underlying_price, strike, dte_years, risk_free_rate, sigma, option_type)
    kind = OptionKind.parse(option_type)
    if dte_years == 0:
        return 0.0

    d1_val = _d1(underlying_price, strike, dte_years, risk_free_rate, sigma)
    d2_val = _d2(d1_val, sigma, dte_years)
    discounted_strike = strike * dte_years * math.exp(-risk_free_rate * dte_years)

    if kind is OptionKind.CALL:
        rho_raw = discounted_strike * normal_cdf(d2_val)
    else:
        rho_raw = -discounted_strike * normal_cdf(-d2_val)
    return rho_raw * 0.01


def compute_all_greeks(
    underlying_price: float,
    strike: float,
    dte_years: float,
    risk_free_rate: float,
    sigma: float,
    option_type: Union[str, OptionKind],
) -> OptionGreeks:
    """Compute all Greeks for an option in a single call.

    This is more efficient than calling individual greek functions because
    it computes the shared d1/d2 terms only once.

    Args:
        underlying_price: Current price of the underlying (S).
        strike: Option strike price (K).
        dte_years: Time to expiration in years (T).  Zero gives the
            expiry boundary values.
        risk_free_rate: Annualized risk-free rate (r).
        sigma: Annualized volatility. Must be > 0.
        option_type: ``"call"`` or ``"put"``.

    Returns:
        :class:`OptionGreeks` with all computed values.

    Raises:
        InvalidInputError: If any input is outside the model's domain.
    """
    validate_inputs(underlying_price, strike, dte_years, risk_free_rate, sigma, option_type)
    kind = OptionKind.parse(option_type)

    if dte_years == 0:
        return OptionGreeks(
            delta=_expiry_delta(underlying_price, strike, kind),
            gamma=0.0,
            theta=0.0,
            vega=0.0,
            rho=0.0,
            iv=sigma,
        )

    d1_val = _d1(underlying_price, strike, dte_years, risk_free_rate, sigma)
    d2_val = _d2(d1_val, sigma, dte_years)
    discount = math.exp(-risk_free_rate * dte_years)
    sqrt_t = math.sqrt(dte_years)
    pdf_d1 = normal_pdf(d1_val)

    # Delta
    if kind is OptionKind.CALL:
        delta = normal_cdf(d1_val)
    else:
        delta = normal_cdf(d1_val) - 1.0

    # Gamma (same for calls and puts)
    gamma = pdf_d1 / (underlying_price * sigma * sqrt_t)

    # Theta (per calendar day) and rho (per 1% rate move)
    common_term = -(underlying_price * pdf_d1 * sigma) / (2.0 * sqrt_t)
    if kind is OptionKind.CALL:
        theta_annual = common_term - risk_free_rate * strike * discount * normal_cdf(d2_val)
        rho_raw = strike * dte_years * discount * normal_cdf(d2_val)
    else:
        theta_annual = common_term + risk_free_rate * strike * discount * normal_cdf(-d2_val)
        rho_raw = -strike * dte_years * discount * normal_cdf(-d2_val)

    # Vega (per 1% IV move)
    vega = underlying_price * pdf_d1 * sqrt_t * 0.01

    return OptionGreeks(
        delta=delta,
        gamma=gamma,
        theta=theta_annual / 365.0,
        vega=vega,
        rho=rho_raw * 0.01,
        iv=sigma,
    )


# ---------------------------------------------------------------------------
# Implied volatility solver
# ---------------------------------------------------------------------------

def implied_volatility(
    market_price: float,
    underlying_price: float,
    strike: float,
    dte_years: float,
    risk_free_rate: float,
    option_type: Union[str, OptionKind],
) -> IVResult:
    """Solve for the implied volatility that matches the observed market price.

    Newton-Raphson from ``sigma = 0.20``, safeguarded by a bracket that
    starts as ``[0.001, 5.0]``.  The option price rises with sigma, so
    every evaluation tightens the bracket from one side.  A Newton step
    ``(theoretical - market) / vega`` is taken only when vega is usable
    and the step lands strictly inside the bracket; otherwise the
    solver bisects.  Stops when the price error is below ``1e-4``.

    A failed solve ends once the bracket has collapsed onto a single
    volatility (the market price is outside what ``[0.001, 5.0]`` can
    reproduce) or after 100 iterations.  The reason is
    ``numeric_instability`` when the price no longer responds to sigma
    at that point (vega below ``1e-10``) and ``non_convergence``
    otherwise.

    The solver never raises for a failed solve.  It returns the best
    estimate seen with ``converged=False`` and a reason; call
    :meth:`IVResult.raise_for_status` to turn that into an exception.

    Args:
        market_price: Observed market price of the option.
        underlying_price: Current price of the underlying (S).
        strike: Option strike price (K).
        dte_years: Time to expiration in years (T). Must be > 0.
        risk_free_rate: Annualized risk-free rate (r).
        option_type: ``"call"`` or ``"put"``.

    Returns:
        :class:`IVResult`.

    Raises:
        InvalidInputError: If the market price is not a positive number,
            the time is zero, or any other input is outside the model's
            domain.
    """
    validate_inputs(underlying_price, strike, dte_years, risk_free_rate, IV_INITIAL_GUESS, option_type)
    kind = OptionKind.parse(option_type)
    if not isinstance(market_price, numbers.Real) or isinstance(market_price, bool):
        raise InvalidInputError(
            f"market_price must be a number, got {type(market_price).__name__}"
        )
    if not math.isfinite(market_price) or market_price <= 0:
        raise InvalidInputError("market_price must be positive")
    if dte_years == 0:
        raise InvalidInputError("dte_years must be positive to solve for volatility")

    sigma = IV_INITIAL_GUESS
    lower, upper = IV_LOWER_BOUND, IV_UPPER_BOUND
    best_sigma, best_error = sigma, math.inf

    for iteration in range(1, IV_MAX_ITERATIONS + 1):
        diff = bs_price(underlying_price, strike, dte_years, risk_free_rate, sigma, kind) - market_price
        error = abs(diff)
        if error < best_error:
            best_sigma, best_error = sigma, error
        if error < IV_TOLERANCE:
            return IVResult(sigma=sigma, converged=True, iterations=iteration, error=error)

        if diff > 0:
            upper = sigma
        else:
            lower = sigma

        vega = _raw_vega(underlying_price, strike, dte_years, risk_free_rate, sigma)
        if upper - lower < IV_MIN_BRACKET:
            reason = "numeric_instability" if vega < IV_MIN_VEGA else "non_convergence"
            logger.warning(
                "IV solver bracket collapsed at sigma=%.4f without converging "
                "(vega=%.3e error=%.3e market=%.4f S=%.2f K=%.2f T=%.4f %s)",
                sigma, vega, best_error, market_price, underlying_price, strike,
                dte_years, kind.value,
            )
            return IVResult(
                sigma=best_sigma,
                converged=False,
                iterations=iteration,
                error=best_error,
                reason=reason,
            )

        step = sigma - diff / vega if vega >= IV_MIN_VEGA else math.nan
        sigma = step if lower < step < upper else 0.5 * (lower + upper)

    logger.warning(
        "IV solver hit %d iterations without converging "
        "(best sigma=%.4f error=%.3e market=%.4f S=%.2f K=%.2f %s)",
        IV_MAX_ITERATIONS, best_sigma, best_error, market_price,
        underlying_price, strike, kind.value,
    )
    return IVResult(
        sigma=best_sigma,
        converged=False,
        iterations=IV_MAX_ITERATIONS,
        error=best_error,
        reason="non_convergence",
    )


# ---------------------------------------------------------------------------
# Quote object
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OptionQuote:
    """Validated inputs for pricing a single European option."""

    underlying_price: float
    strike: float
    dte_years: float
    sigma: float
    option_type: OptionKind
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE

    def __post_init__(self):
        object.__setattr__(self, "option_type", OptionKind.parse(self.option_type))
        validate_inputs(self.underlying_price, self.strike, self.dte_years, self.risk_free_rate, self.sigma)

    def price(self) -> float:
        return bs_price(
            self.underlying_price, self.strike, self.dte_years,
            self.risk_free_rate, self.sigma, self.option_type,
        )

    def greeks(self) -> OptionGreeks:
        return compute_all_greeks(
            self.underlying_price, self.strike, self.dte_years,
            self.risk_free_rate, self.sigma, self.option_type,
        )

    def intrinsic(self) -> float:
        return intrinsic_value(self.underlying_price, self.strike, self.option_type)

    def implied_volatility(self, market_price: float) -> IVResult:
        """Solve for the volatility that reproduces *market_price*."""
        return implied_volatility(
            market_price, self.underlying_price, self.strike, self.dte_years,
            self.risk_free_rate, self.option_type,
        )
