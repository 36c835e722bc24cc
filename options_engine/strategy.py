"""
Meridian 1.0 -- Strategy templates.

Each registered template has:
  - A :class:`StrategyKind` tag and display name
  - Leg blueprints (instrument, action, quantity, strike role)
  - Descriptive metadata (max profit / loss text, directional outlook)

Templates are static and read-only.  :func:`build_strategy` turns one into
a concrete :class:`Strategy` by picking strikes around the spot price and
pricing the option legs with Black-Scholes.  Evaluation itself is generic
(see :mod:`options_engine.evaluator`); nothing here branches per kind.

Add new templates by extending :data:`STRATEGY_TEMPLATES`.

Extension points:
  - Calendar / diagonal spreads (needs per-leg expirations)
  - Delta-targeted strike selection instead of fixed widths
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Tuple, Union

from options_engine.errors import InvalidInputError, UnknownStrategyError
from options_engine.models import Action, InstrumentKind, OptionKind, Strategy, StrategyLeg
from options_engine.pricing import bs_price, validate_inputs
from options_engine.utils import round_price


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

class StrategyKind(Enum):
    """Built-in strategy templates."""
    COVERED_CALL = "covered_call"
    CASH_SECURED_PUT = "cash_secured_put"
    BULL_CALL_SPREAD = "bull_call_spread"
    IRON_CONDOR = "iron_condor"
    STRADDLE = "straddle"
    STRANGLE = "strangle"


# Strike role -> number of strike widths away from the at-the-money strike
STRIKE_OFFSETS: Dict[str, int] = {
    "lowest": -2,
    "low": -1,
    "lower": -1,
    "atm": 0,
    "high": 1,
    "higher": 1,
    "highest": 2,
}


@dataclass(frozen=True)
class LegBlueprint:
    """A template leg whose strike is expressed as a role, not a price."""

    instrument: InstrumentKind
    action: Action
    quantity: int
    strike_role: str = "atm"


@dataclass(frozen=True)
class StrategyTemplate:
    """Immutable definition of a named multi-leg strategy."""

    kind: StrategyKind
    name: str
    legs: Tuple[LegBlueprint, ...]
    description: str
    max_profit: str
    max_loss: str
    outlook: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "kind": self.kind.value,
            "name": self.name,
            "legs": [
                {
                    "type": leg.instrument.value,
                    "action": leg.action.value,
                    "quantity": leg.quantity,
                    "strike": leg.strike_role,
                }
                for leg in self.legs
            ],
            "description": self.description,
            "max_profit": self.max_profit,
            "max_loss": self.max_loss,
            "outlook": self.outlook,
        }


def _leg(instrument: str, action: str, quantity: int = 1, role: str = "atm") -> LegBlueprint:
    return LegBlueprint(InstrumentKind(instrument), Action(action), quantity, role)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

STRATEGY_TEMPLATES: Dict[StrategyKind, StrategyTemplate] = {
    StrategyKind.COVERED_CALL: StrategyTemplate(
        kind=StrategyKind.COVERED_CALL,
        name="Covered Call",
        legs=(_leg("stock", "buy", 100), _leg("call", "sell", 1, "high")),
        description="Hold long stock position and sell call option",
        max_profit="Limited to strike + premium",
        max_loss="Stock price can go to zero minus premium collected",
        outlook="Neutral to slightly bullish",
    ),
    StrategyKind.CASH_SECURED_PUT: StrategyTemplate(
        kind=StrategyKind.CASH_SECURED_PUT,
        name="Cash Secured Put",
        legs=(_leg("put", "sell", 1, "low"),),
        description="Sell put option while holding cash to buy stock if assigned",
        max_profit="Premium collected",
        max_loss="Strike price minus premium",
        outlook="Neutral to bullish",
    ),
    StrategyKind.BULL_CALL_SPREAD: StrategyTemplate(
        kind=StrategyKind.BULL_CALL_SPREAD,
        name="Bull Call Spread",
        legs=(_leg("call", "buy", 1, "lower"), _leg("call", "sell", 1, "higher")),
        description="Buy call at lower strike, sell call at higher strike",
        max_profit="Difference in strikes minus net premium paid",
        max_loss="Net premium paid",
        outlook="Moderately bullish",
    ),
    StrategyKind.IRON_CONDOR: StrategyTemplate(
        kind=StrategyKind.IRON_CONDOR,
        name="Iron Condor",
        legs=(
            _leg("put", "buy", 1, "lowest"),
            _leg("put", "sell", 1, "low"),
            _leg("call", "sell", 1, "high"),
            _leg("call", "buy", 1, "highest"),
        ),
        description="Neutral strategy that profits from low volatility",
        max_profit="Net premium collected",
        max_loss="Strike width minus net premium",
        outlook="Neutral",
    ),
    StrategyKind.STRADDLE: StrategyTemplate(
        kind=StrategyKind.STRADDLE,
        name="Long Straddle",
        legs=(_leg("call", "buy"), _leg("put", "buy")),
        description="Buy call and put at same strike and expiration",
        max_profit="Unlimited",
        max_loss="Total premium paid",
        outlook="High volatility expected",
    ),
    StrategyKind.STRANGLE: StrategyTemplate(
        kind=StrategyKind.STRANGLE,
        name="Long Strangle",
        legs=(_leg("call", "buy", 1, "higher"), _leg("put", "buy", 1, "lower")),
        description="Buy call and put at different strikes",
        max_profit="Unlimited",
        max_loss="Total premium paid",
        outlook="High volatility expected",
    ),
    # -----------------------------------------------------------
    # Extension point: add new templates here.
    # -----------------------------------------------------------
}


def list_strategies() -> List[StrategyTemplate]:
    """Return all registered templates in declaration order."""
    return list(STRATEGY_TEMPLATES.values())


def get_strategy(name: Union[str, StrategyKind]) -> StrategyTemplate:
    """Look up a template by kind or by its string key.

    Raises:
        UnknownStrategyError: If the template is not registered.
    """
    try:
        kind = name if isinstance(name, StrategyKind) else StrategyKind(str(name).strip().lower())
    except ValueError:
        kind = None
    template = STRATEGY_TEMPLATES.get(kind) if kind is not None else None
    if template is None:
        known = ", ".join(sorted(k.value for k in STRATEGY_TEMPLATES))
        raise UnknownStrategyError(
            f"Unknown strategy '{name}'. Registered strategies: {known}"
        )
    return template


# ---------------------------------------------------------------------------
# Instantiation
# ---------------------------------------------------------------------------

def select_strike(underlying_price: float, role: str, strike_width: float) -> float:
    """Map a strike role to a concrete strike on a ``strike_width`` grid.

    The at-the-money strike is the underlying rounded to the nearest
    multiple of *strike_width*; other roles step whole widths away from it.
    """
    if role not in STRIKE_OFFSETS:
        raise InvalidInputError(f"Unknown strike role '{role}'")
    atm = round(underlying_price / strike_width) * strike_width
    return atm + STRIKE_OFFSETS[role] * strike_width


def build_strategy(
    kind: Union[str, StrategyKind],
    underlying_price: float,
    dte_years: float,
    sigma: float,
    risk_free_rate: float,
    strike_width: float = 5.0,
) -> Strategy:
    """Instantiate a template into concrete, priced legs.

    Args:
        kind: Template kind or its string key.
        underlying_price: Current spot.
        dte_years: Time to expiration used to price option legs.
        sigma: Volatility used to price option legs.
        risk_free_rate: Annualized risk-free rate.
        strike_width: Spacing between adjacent strikes.

    Returns:
        A :class:`Strategy` whose option legs carry Black-Scholes premiums
        rounded to the cent and whose stock legs are entered at spot.

    Raises:
        UnknownStrategyError: For an unregistered kind.
        InvalidInputError: If pricing inputs are invalid or a strike would
            be non-positive (spot too low for the requested width).
    """
    template = get_strategy(kind)
    validate_inputs(underlying_price, underlying_price, dte_years, risk_free_rate, sigma)
    if strike_width <= 0:
        raise InvalidInputError("strike_width must be positive")

    legs = []
    for blueprint in template.legs:
        if blueprint.instrument is InstrumentKind.STOCK:
            legs.append(StrategyLeg(
                instrument=blueprint.instrument,
                action=blueprint.action,
                quantity=blueprint.quantity,
                entry_price=underlying_price,
            ))
            continue

        strike = select_strike(underlying_price, blueprint.strike_role, strike_width)
        if strike <= 0:
            raise InvalidInputError(
                f"Strike for role '{blueprint.strike_role}' would be {strike}; "
                f"reduce strike_width"
            )
        premium = bs_price(
            underlying_price, strike, dte_years, risk_free_rate, sigma,
            OptionKind(blueprint.instrument.value),
        )
        legs.append(StrategyLeg(
            instrument=blueprint.instrument,
            action=blueprint.action,
            quantity=blueprint.quantity,
            strike=strike,
            premium=round_price(premium),
            implied_vol=sigma,
        ))

    return Strategy(
        name=template.name,
        legs=tuple(legs),
        kind=template.kind.value,
        outlook=template.outlook,
    )
