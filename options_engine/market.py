"""
Meridian 1.0 -- Simulated market data.

Provides:
  - :class:`PriceSource` protocol and a static, table-backed implementation
  - Standard expiration schedule (weekly Fridays + monthly third Fridays)
  - Mock options chains priced with Black-Scholes
  - Mock expiration calendar and unusual-activity feed

Every generator takes an explicit ``numpy.random.Generator`` so output is
reproducible under a fixed seed.  Unknown symbols raise
:class:`UnknownSymbolError` unless the price source was built with an
explicit fallback; nothing here silently invents a price on its own.

Extension points:
  - A live price source backed by a market-data API
  - Volatility smile / skew instead of flat per-expiration IV
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

import numpy as np

from options_engine.config import DEFAULT_RISK_FREE_RATE
from options_engine.errors import UnknownSymbolError
from options_engine.greeks import compute_all_greeks
from options_engine.models import OptionKind
from options_engine.pricing import bs_price, intrinsic_value
from options_engine.utils import days_to_expiration, round_price, years_to_expiry


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_PRICES: Dict[str, float] = {
    "AAPL": 185.20,
    "MSFT": 378.45,
    "GOOGL": 142.30,
    "AMZN": 152.50,
    "TSLA": 248.50,
    "META": 485.20,
    "NVDA": 485.20,
    "SPY": 445.20,
    "QQQ": 378.45,
}

# Symbols sampled by the unusual-activity feed
ACTIVITY_SYMBOLS = ["AAPL", "MSFT", "GOOGL", "AMZN", "TSLA", "META", "NVDA"]

WEEKLY_EXPIRATIONS = 8
MONTHLY_EXPIRATIONS = 6

CHAIN_STRIKES_EACH_SIDE = 10
CHAIN_STRIKE_WIDTH = 5.0

_FRIDAY = 4  # date.weekday()
_QUARTERLY_MONTHS = (3, 6, 9, 12)


# ---------------------------------------------------------------------------
# Price sources
# ---------------------------------------------------------------------------

class PriceSource(Protocol):
    """Anything that can quote a current underlying price."""

    def get_price(self, symbol: str) -> float:
        ...


class StaticPriceSource:
    """Price source backed by a fixed symbol -> price table.

    Args:
        prices: Symbol table (defaults to :data:`DEFAULT_PRICES`).
        fallback: Optional callable producing a price for symbols missing
            from the table.  Without one, unknown symbols raise
            :class:`UnknownSymbolError`.
    """

    def __init__(
        self,
        prices: Optional[Mapping[str, float]] = None,
        fallback: Optional[Callable[[str], float]] = None,
    ):
        table = DEFAULT_PRICES if prices is None else prices
        self._prices = {k.upper(): float(v) for k, v in table.items()}
        self._fallback = fallback

    @property
    def symbols(self) -> List[str]:
        return sorted(self._prices)

    def get_price(self, symbol: str) -> float:
        key = symbol.strip().upper()
        if key in self._prices:
            return self._prices[key]
        if self._fallback is not None:
            return float(self._fallback(key))
        raise UnknownSymbolError(f"No price available for symbol '{symbol}'")


def random_price_fallback(rng: np.random.Generator) -> Callable[[str], float]:
    """Fallback that quotes an unknown symbol uniformly in [150, 250)."""
    def _quote(symbol: str) -> float:
        return round_price(150.0 + rng.random() * 100.0)
    return _quote


# ---------------------------------------------------------------------------
# Expiration schedule
# ---------------------------------------------------------------------------

def third_friday(year: int, month: int) -> date:
    """Standard monthly expiration: the third Friday of the month."""
    first = date(year, month, 1)
    offset = (_FRIDAY - first.weekday()) % 7
    return first + timedelta(days=offset + 14)


def generate_expiration_dates(today: Optional[date] = None) -> List[str]:
    """Upcoming expirations as sorted, unique ``YYYY-MM-DD`` strings.

    The next :data:`WEEKLY_EXPIRATIONS` Fridays (today counts when it is a
    Friday) plus the third Friday of each of the next
    :data:`MONTHLY_EXPIRATIONS` months.
    """
    today = today or date.today()
    next_friday = today + timedelta(days=(_FRIDAY - today.weekday()) % 7)
    dates = {next_friday + timedelta(weeks=i) for i in range(WEEKLY_EXPIRATIONS)}

    for i in range(1, MONTHLY_EXPIRATIONS + 1):
        month_index = today.month - 1 + i
        dates.add(third_friday(today.year + month_index // 12, month_index % 12 + 1))

    return [d.isoformat() for d in sorted(dates)]


# ---------------------------------------------------------------------------
# Options chain
# ---------------------------------------------------------------------------

def chain_strikes(underlying_price: float, width: float = CHAIN_STRIKE_WIDTH) -> List[float]:
    """Strikes centred on the spot rounded to *width*, skipping non-positive ones."""
    base = round(underlying_price / width) * width
    strikes = [
        base + i * width
        for i in range(-CHAIN_STRIKES_EACH_SIDE, CHAIN_STRIKES_EACH_SIDE + 1)
    ]
    return [k for k in strikes if k > 0]


def _quote_rows(
    strikes: List[float],
    underlying_price: float,
    dte_years: float,
    kind: OptionKind,
    rng: np.random.Generator,
    risk_free_rate: float,
) -> List[Dict[str, Any]]:
    base_vol = 0.25 + rng.random() * 0.15
    rows = []
    for strike in strikes:
        vol = base_vol + (rng.random() - 0.5) * 0.1
        theo = bs_price(underlying_price, strike, dte_years, risk_free_rate, vol, kind)
        bid = max(0.01, theo * (0.95 + rng.random() * 0.05))
        ask = max(bid, theo * (1.05 + rng.random() * 0.05))
        last = (bid + ask) / 2
        intrinsic = intrinsic_value(underlying_price, strike, kind)
        greeks = compute_all_greeks(underlying_price, strike, dte_years, risk_free_rate, vol, kind)
        rows.append({
            "strike": strike,
            "bid": round_price(bid),
            "ask": round_price(ask),
            "last": round_price(last),
            "volume": int(rng.integers(0, 1000)),
            "open_interest": int(rng.integers(0, 5000)),
            "implied_volatility": round(vol, 4),
            "delta": greeks.delta,
            "gamma": greeks.gamma,
            "theta": greeks.theta,
            "vega": greeks.vega,
            "rho": greeks.rho,
            "intrinsic_value": round_price(intrinsic),
            "time_value": round_price(last - intrinsic),
            "in_the_money": intrinsic > 0,
        })
    return rows


def build_options_chain(
    symbol: str,
    price_source: PriceSource,
    rng: np.random.Generator,
    expiration: Optional[str] = None,
    today: Optional[date] = None,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> Dict[str, Any]:
    """Build a mock chain of calls and puts for one or all expirations.

    Each expiration draws a base IV in 25-40 % and perturbs it per strike by
    up to +/- 5 points.  Theoretical prices come from Black-Scholes; the bid
    sits 0-5 % below and the ask 5-10 % above it.

    Raises:
        UnknownSymbolError: If *price_source* has no quote for *symbol*.
        ValueError: If *expiration* is not a ``YYYY-MM-DD`` date.
    """
    today = today or date.today()
    underlying_price = price_source.get_price(symbol)
    strikes = chain_strikes(underlying_price)
    expirations = [expiration] if expiration else generate_expiration_dates(today)

    chain = []
    for exp in expirations:
        dte_years = years_to_expiry(exp, today)
        chain.append({
            "date": exp,
            "days_to_expiry": days_to_expiration(exp, today),
            "calls": _quote_rows(strikes, underlying_price, dte_years, OptionKind.CALL, rng, risk_free_rate),
            "puts": _quote_rows(strikes, underlying_price, dte_years, OptionKind.PUT, rng, risk_free_rate),
        })

    return {
        "symbol": symbol.upper(),
        "stock_price": underlying_price,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "expirations": chain,
    }


# ---------------------------------------------------------------------------
# Calendar and activity
# ---------------------------------------------------------------------------

def _events(rng: np.random.Generator) -> List[str]:
    events = []
    if rng.random() > 0.7:
        events.append("Earnings")
    if rng.random() > 0.9:
        events.append("FOMC")
    return events


def build_expiration_calendar(
    symbol: Optional[str],
    rng: np.random.Generator,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Mock expiration calendar with volume, open interest and events."""
    today = today or date.today()
    entries = []
    for exp in generate_expiration_dates(today):
        expiry = date.fromisoformat(exp)
        days = days_to_expiration(expiry, today)
        entries.append({
            "date": exp,
            "days_to_expiry": days,
            "is_weekly": expiry != third_friday(expiry.year, expiry.month),
            "is_monthly": expiry == third_friday(expiry.year, expiry.month),
            "is_quarterly": expiry.month in _QUARTERLY_MONTHS,
            "total_volume": int(rng.integers(10_000, 110_000)),
            "total_open_interest": int(rng.integers(50_000, 550_000)),
            "earnings": bool(rng.random() > 0.8),
            "events": _events(rng),
        })
    return {
        "symbol": symbol.upper() if symbol else None,
        "expirations": entries,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def build_unusual_activity(
    price_source: PriceSource,
    rng: np.random.Generator,
    count: int = 15,
    today: Optional[date] = None,
    min_volume_ratio: Optional[float] = None,
) -> Dict[str, Any]:
    """Mock unusual options activity, sorted by volume ratio (highest first).

    Args:
        price_source: Quotes for :data:`ACTIVITY_SYMBOLS`.
        rng: Random generator.
        count: Number of records to generate before filtering.
        today: Reference date for expirations.
        min_volume_ratio: Drop records below this volume / average ratio.
    """
    today = today or date.today()
    near_expirations = generate_expiration_dates(today)[:5]
    now = datetime.now(timezone.utc)

    activities = []
    for _ in range(count):
        symbol = ACTIVITY_SYMBOLS[int(rng.integers(0, len(ACTIVITY_SYMBOLS)))]
        spot = price_source.get_price(symbol)
        is_call = bool(rng.random() > 0.5)
        strike = spot + (rng.random() - 0.5) * spot * 0.2
        activities.append({
            "symbol": symbol,
            "option_type": "call" if is_call else "put",
            "strike": int(round(strike)),
            "expiration": near_expirations[int(rng.integers(0, len(near_expirations)))],
            "volume": int(rng.integers(1000, 11_000)),
            "average_volume": int(rng.integers(500, 2500)),
            "volume_ratio": round(float(rng.random() * 10 + 1), 1),
            "price": round_price(float(rng.random() * 20 + 0.5)),
            "implied_volatility": round(float(0.2 + rng.random() * 0.3), 3),
            "delta": round(float(rng.random() * (1 if is_call else -1)), 3),
            "premium": int(rng.integers(50_000, 550_000)),
            "timestamp": (now - timedelta(seconds=float(rng.random() * 3600))).isoformat(),
            "unusual": True,
        })

    if min_volume_ratio is not None:
        activities = [a for a in activities if a["volume_ratio"] >= min_volume_ratio]
    activities.sort(key=lambda a: a["volume_ratio"], reverse=True)
    return {"activities": activities, "timestamp": now.isoformat()}
