"""
Meridian 1.0 -- Options engine data models.

Enumerations, legs, strategies and result containers shared by the
pricer, the Greeks calculator and the strategy evaluator.  Everything
here is immutable once built except :class:`StrategyAnalysis`, which is
assembled by the evaluator and then handed to the caller.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Tuple, Union

import numpy as np

from options_engine.errors import (
    InvalidInputError,
    NonConvergenceError,
    NumericInstabilityError,
)

# 1 option contract = 100 shares of the underlying
CONTRACT_MULTIPLIER = 100


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class _ParsableEnum(Enum):
    """Enum that parses its lowercase string value and rejects anything else."""

    @classmethod
    def parse(cls, value: Union[str, "_ParsableEnum"]):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            expected = ", ".join(f"'{m.value}'" for m in cls)
            raise InvalidInputError(
                f"Invalid {cls.__name__} '{value}': expected one of {expected}"
            )


class OptionKind(_ParsableEnum):
    """European option type."""
    CALL = "call"
    PUT = "put"


class InstrumentKind(_ParsableEnum):
    """What a strategy leg holds."""
    STOCK = "stock"
    CALL = "call"
    PUT = "put"


class Action(_ParsableEnum):
    """Direction of a strategy leg."""
    BUY = "buy"
    SELL = "sell"


# ---------------------------------------------------------------------------
# Greeks & implied volatility
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OptionGreeks:
    """Computed Greeks for a single option.

    Attributes:
        delta: Rate of change of price w.r.t. the underlying.
        gamma: Rate of change of delta w.r.t. the underlying.
        theta: Time decay per calendar day.
        vega: Price change per 1 percentage-point move in volatility.
        rho: Price change per 1 percentage-point move in the rate.
        iv: Volatility the Greeks were computed with (annualised).
    """

    delta: float
    gamma: float
    theta: float   # per day, not per year
    vega: float    # per 1% move in IV
    rho: float     # per 1% move in rate
    iv: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "delta": self.delta,
            "gamma": self.gamma,
            "theta": self.theta,
            "vega": self.vega,
            "rho": self.rho,
            "iv": self.iv,
        }


@dataclass(frozen=True)
class PositionGreeks:
    """Greeks of a whole position, in dollars per unit move.

    Each leg's per-share Greeks are multiplied by its signed share count
    (``quantity * 100`` for options, ``quantity`` for stock) and summed.
    """

    delta: float = 0.0
    gamma: float = 0.0
    theta: float = 0.0
    vega: float = 0.0
    rho: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "delta": self.delta,
            "gamma": self.gamma,
            "theta": self.theta,
            "vega": self.vega,
            "rho": self.rho,
        }


@dataclass(frozen=True)
class IVResult:
    """Outcome of the implied volatility solver.

    ``sigma`` is always the best available estimate.  When ``converged``
    is false, ``reason`` says why (``"non_convergence"`` or
    ``"numeric_instability"``) and :meth:`raise_for_status` raises the
    matching typed error.
    """

    sigma: float
    converged: bool
    iterations: int
    error: float
    reason: Optional[str] = None

    def raise_for_status(self) -> None:
        """Raise the typed failure if the solver did not converge."""
        if self.converged:
            return
        message = (
            f"Implied volatility did not converge after {self.iterations} "
            f"iterations (sigma={self.sigma:.6f}, error={self.error:.3e})"
        )
        if self.reason == NumericInstabilityError.kind:
            raise NumericInstabilityError(message)
        raise NonConvergenceError(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sigma": self.sigma,
            "converged": self.converged,
            "iterations": self.iterations,
            "error": self.error,
            "reason": self.reason,
        }


# ---------------------------------------------------------------------------
# Strategy legs
# ---------------------------------------------------------------------------

def _optional_float(value: Any, name: str) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidInputError(f"Invalid {name} value: {value!r}")


@dataclass(frozen=True)
class StrategyLeg:
    """One component of a multi-leg position.

    Attributes:
        instrument: Stock, call or put.
        action: Buy (long) or sell (short).
        quantity: Shares for stock legs, contracts (x100) for option legs.
        strike: Option strike.  Required for option legs.
        premium: Premium paid / received per share.  ``None`` means
            "price it with Black-Scholes" during analysis.
        entry_price: Stock purchase / sale price.  ``None`` means the
            current underlying price.
        implied_vol: Volatility used to price / risk this option leg.
    """

    instrument: InstrumentKind
    action: Action
    quantity: int
    strike: Optional[float] = None
    premium: Optional[float] = None
    entry_price: Optional[float] = None
    implied_vol: Optional[float] = None

    def __post_init__(self):
        # Frozen dataclass: normalise string inputs in place
        object.__setattr__(self, "instrument", InstrumentKind.parse(self.instrument))
        object.__setattr__(self, "action", Action.parse(self.action))

        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            if isinstance(self.quantity, float) and self.quantity.is_integer():
                object.__setattr__(self, "quantity", int(self.quantity))
            else:
                raise InvalidInputError(f"quantity must be a positive integer, got {self.quantity!r}")
        if self.quantity <= 0:
            raise InvalidInputError(f"quantity must be a positive integer, got {self.quantity}")

        if self.is_option:
            if self.strike is None or not math.isfinite(self.strike) or self.strike <= 0:
                raise InvalidInputError(f"{self.instrument.value} leg requires a positive strike")
            if self.premium is not None and (not math.isfinite(self.premium) or self.premium < 0):
                raise InvalidInputError(f"premium must be non-negative, got {self.premium}")
            if self.implied_vol is not None and self.implied_vol <= 0:
                raise InvalidInputError(f"implied_vol must be positive, got {self.implied_vol}")
        elif self.entry_price is not None and self.entry_price <= 0:
            raise InvalidInputError(f"entry_price must be positive, got {self.entry_price}")

    @property
    def is_option(self) -> bool:
        return self.instrument is not InstrumentKind.STOCK

    @property
    def option_kind(self) -> OptionKind:
        if not self.is_option:
            raise InvalidInputError("Stock legs have no option kind")
        return OptionKind(self.instrument.value)

    @property
    def sign(self) -> int:
        """+1 for long legs, -1 for short legs."""
        return 1 if self.action is Action.BUY else -1

    @property
    def multiplier(self) -> int:
        return CONTRACT_MULTIPLIER if self.is_option else 1

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StrategyLeg":
        """Build a leg from a JSON-style dict.

        Accepts ``{"type": "call", ...}`` as well as the older
        ``{"type": "option", "optionType": "put", ...}`` shape.
        """
        if not isinstance(data, dict):
            raise InvalidInputError(f"Leg must be an object, got {type(data).__name__}")
        instrument = data.get("instrument") or data.get("type")
        if instrument == "option":
            instrument = data.get("option_type") or data.get("optionType")
        if instrument is None:
            raise InvalidInputError("Leg is missing 'type'")
        quantity = data.get("quantity", 1)
        try:
            quantity = int(quantity)
        except (TypeError, ValueError):
            raise InvalidInputError(f"Invalid quantity value: {quantity!r}")
        return cls(
            instrument=instrument,
            action=data.get("action", "buy"),
            quantity=quantity,
            strike=_optional_float(data.get("strike"), "strike"),
            premium=_optional_float(data.get("premium"), "premium"),
            entry_price=_optional_float(
                data.get("entry_price", data.get("entryPrice")), "entry_price"
            ),
            implied_vol=_optional_float(
                data.get("implied_vol", data.get("impliedVolatility")), "implied_vol"
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.instrument.value,
            "action": self.action.value,
            "quantity": self.quantity,
            "strike": self.strike,
            "premium": self.premium,
            "entry_price": self.entry_price,
            "implied_vol": self.implied_vol,
        }


@dataclass(frozen=True)
class Strategy:
    """A named, ordered collection of legs.

    ``kind`` is set when the strategy was instantiated from a template and
    left as ``None`` for ad-hoc constructions.
    """

    name: str
    legs: Tuple[StrategyLeg, ...]
    kind: Optional[str] = None
    outlook: str = ""

    def __post_init__(self):
        object.__setattr__(self, "legs", tuple(self.legs))
        if not self.legs:
            raise InvalidInputError("A strategy needs at least one leg")


# ---------------------------------------------------------------------------
# Evaluation results
# ---------------------------------------------------------------------------

class PnLPoint(NamedTuple):
    price: float
    pnl: float


@dataclass(frozen=True)
class PnLCurve:
    """Profit / loss at expiry over a sweep of underlying prices."""

    points: Tuple[PnLPoint, ...]

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[PnLPoint]:
        return iter(self.points)

    @property
    def prices(self) -> np.ndarray:
        return np.array([p.price for p in self.points], dtype=float)

    @property
    def pnls(self) -> np.ndarray:
        return np.array([p.pnl for p in self.points], dtype=float)

    def pnl_at(self, price: float) -> float:
        """Linearly interpolate the curve at *price* (clamped to its ends)."""
        return float(np.interp(price, self.prices, self.pnls))

    def to_list(self) -> List[Dict[str, float]]:
        return [{"price": p.price, "pnl": p.pnl} for p in self.points]


def _json_bound(value: float) -> Union[float, str]:
    """JSON has no infinity; report unbounded extremes as a sentinel."""
    return "unbounded" if math.isinf(value) else value


@dataclass
class StrategyAnalysis:
    """Output of :func:`options_engine.evaluator.evaluate_strategy`.

    Attributes:
        curve: P&L at expiry over the swept prices.
        breakevens: Underlying prices where P&L crosses zero (ascending).
        max_profit: Largest P&L over ``[0, inf)``; ``inf`` if unbounded.
        max_loss: Smallest P&L over ``[0, inf)`` (negative for a loss);
            ``-inf`` if unbounded.
        probability_of_profit: Log-normal probability that P&L > 0 at
            expiry, or ``None`` when no volatility / horizon was given.
        legs: Legs as evaluated (premiums filled in where they were priced).
        position_greeks: Aggregated Greeks, when computed.
    """

    curve: PnLCurve
    breakevens: List[float]
    max_profit: float
    max_loss: float
    probability_of_profit: Optional[float] = None
    legs: List[StrategyLeg] = field(default_factory=list)
    position_greeks: Optional[PositionGreeks] = None
    leg_greeks: List[Optional[OptionGreeks]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "curve": self.curve.to_list(),
            "breakevens": list(self.breakevens),
            "max_profit": _json_bound(self.max_profit),
            "max_loss": _json_bound(self.max_loss),
            "probability_of_profit": self.probability_of_profit,
            "legs": [
                dict(leg.to_dict(), greeks=g.to_dict() if g is not None else None)
                for leg, g in zip(self.legs, self.leg_greeks or [None] * len(self.legs))
            ],
            "position_greeks": (
                self.position_greeks.to_dict() if self.position_greeks else None
            ),
        }
