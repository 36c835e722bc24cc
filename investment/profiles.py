"""
Meridian 1.0 -- Investment profiles.

Typical annual return / volatility for well-known tickers and generic
risk buckets.  Unknown symbols get :data:`DEFAULT_PROFILE` (8 % / 20 %).
"""

from typing import Dict, Mapping, Optional

from investment.models import InvestmentProfile


STOCK_PROFILES: Dict[str, InvestmentProfile] = {
    "AAPL": InvestmentProfile(0.11, 0.24, "tech"),
    "MSFT": InvestmentProfile(0.10, 0.22, "tech"),
    "GOOGL": InvestmentProfile(0.12, 0.26, "tech"),
    "AMZN": InvestmentProfile(0.13, 0.30, "tech"),
    "TSLA": InvestmentProfile(0.18, 0.65, "growth"),
    "META": InvestmentProfile(0.14, 0.35, "tech"),
    "NVDA": InvestmentProfile(0.16, 0.45, "tech"),
    "SPY": InvestmentProfile(0.09, 0.16, "index"),
    "QQQ": InvestmentProfile(0.11, 0.20, "index"),
}

RISK_PROFILES: Dict[str, InvestmentProfile] = {
    "conservative": InvestmentProfile(0.06, 0.08, "conservative"),
    "moderate": InvestmentProfile(0.10, 0.15, "moderate"),
    "aggressive": InvestmentProfile(0.12, 0.25, "aggressive"),
    "crypto": InvestmentProfile(0.20, 0.80, "crypto"),
}

DEFAULT_PROFILE = InvestmentProfile(0.08, 0.20, "unknown")

BENCHMARK_SYMBOL = "SPY"


class ProfileSource:
    """Looks up an :class:`InvestmentProfile` by ticker or risk bucket.

    Tickers match case-insensitively against *stocks*; anything else is
    tried (lower-cased) against *buckets* before falling back to
    *default*.
    """

    def __init__(
        self,
        stocks: Optional[Mapping[str, InvestmentProfile]] = None,
        buckets: Optional[Mapping[str, InvestmentProfile]] = None,
        default: InvestmentProfile = DEFAULT_PROFILE,
    ):
        self._stocks = {k.upper(): v for k, v in (stocks if stocks is not None else STOCK_PROFILES).items()}
        self._buckets = {k.lower(): v for k, v in (buckets if buckets is not None else RISK_PROFILES).items()}
        self._default = default

    def get(self, symbol: str) -> InvestmentProfile:
        key = symbol.strip()
        if key.upper() in self._stocks:
            return self._stocks[key.upper()]
        if key.lower() in self._buckets:
            return self._buckets[key.lower()]
        return self._default
