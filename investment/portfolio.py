"""
Meridian 1.0 -- In-memory portfolio tracker.

Keeps named portfolios of stock positions and values them against the
injected :class:`~options_engine.market.PriceSource`:

  - **Positions** -- add (merging repeat buys at average cost), update
    and remove holdings
  - **Performance** -- market value, cost basis and gain / loss per
    position and in total, with each position's weight
  - **Allocation** -- value and weight grouped by asset type, sector and
    symbol
  - **Summary** -- portfolio details, performance and allocation together

Nothing is persisted; a :class:`PortfolioBook` lives as long as the
process.  Every book starts with an empty ``"default"`` portfolio.

Usage::

    book = PortfolioBook(StaticPriceSource())
    book.add_position("AAPL", 10, 150.0)
    print(book.summary().to_dict())
"""

from __future__ import annotations

import math
import uuid
from datetime import date, datetime, timezone
from typing import Callable, Dict, List, Optional

from investment.models import (
    AllocationBucket,
    AssetAllocation,
    Portfolio,
    PortfolioPerformance,
    PortfolioSummary,
    Position,
    PositionPerformance,
)
from options_engine.errors import InvalidInputError, NotFoundError, UnknownSymbolError
from options_engine.market import PriceSource
from options_engine.utils import get_logger

logger = get_logger(__name__)

DEFAULT_PORTFOLIO_ID = "default"
DEFAULT_PORTFOLIO_NAME = "My Portfolio"

SECTORS: Dict[str, str] = {
    "AAPL": "Technology",
    "MSFT": "Technology",
    "GOOGL": "Technology",
    "META": "Technology",
    "NVDA": "Technology",
    "AMD": "Technology",
    "ADBE": "Technology",
    "CRM": "Technology",
    "ORCL": "Technology",
    "INTC": "Technology",
    "CSCO": "Technology",
    "IBM": "Technology",
    "AMZN": "Consumer Discretionary",
    "TSLA": "Consumer Discretionary",
    "NFLX": "Communication Services",
}

ASSET_TYPES: Dict[str, str] = {
    "SPY": "ETF",
    "QQQ": "ETF",
}

UNKNOWN_SECTOR = "Unknown"
DEFAULT_ASSET_TYPE = "Stock"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PortfolioBook:
    """Named portfolios held in memory and valued from a price source.

    Args:
        prices: Source of current prices.  Symbols it cannot quote are
            valued at their purchase price and flagged ``priced=False``.
        clock: Returns the current time; drives timestamps and the
            default purchase date.
    """

    def __init__(
        self,
        prices: PriceSource,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.prices = prices
        self.clock = clock
        now = self._timestamp()
        self._portfolios: Dict[str, Portfolio] = {
            DEFAULT_PORTFOLIO_ID: Portfolio(DEFAULT_PORTFOLIO_ID, DEFAULT_PORTFOLIO_NAME, now, now),
        }

    # ------------------------------------------------------------------
    # Portfolios
    # ------------------------------------------------------------------

    def get_portfolio(self, portfolio_id: str = DEFAULT_PORTFOLIO_ID) -> Portfolio:
        try:
            return self._portfolios[portfolio_id]
        except KeyError:
            raise NotFoundError(f"Portfolio '{portfolio_id}' not found")

    def list_portfolios(self) -> List[Portfolio]:
        return list(self._portfolios.values())

    def create_portfolio(self, name: str) -> Portfolio:
        if not isinstance(name, str) or not name.strip():
            raise InvalidInputError("Portfolio name must be a non-empty string")
        now = self._timestamp()
        portfolio = Portfolio(f"portfolio_{uuid.uuid4().hex[:12]}", name.strip(), now, now)
        self._portfolios[portfolio.id] = portfolio
        logger.info("Created portfolio %s (%s)", portfolio.id, portfolio.name)
        return portfolio

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    def add_position(
        self,
        symbol: str,
        quantity: float,
        purchase_price: float,
        purchase_date: Optional[str] = None,
        asset_type: Optional[str] = None,
        sector: Optional[str] = None,
        portfolio_id: str = DEFAULT_PORTFOLIO_ID,
    ) -> Portfolio:
        """Buy *quantity* shares of *symbol* at *purchase_price*.

        A symbol already in the portfolio is merged: quantities add and
        the purchase price becomes the quantity-weighted average.
        """
        portfolio = self.get_portfolio(portfolio_id)
        if not isinstance(symbol, str) or not symbol.strip():
            raise InvalidInputError("symbol must be a non-empty string")
        _check_positive(quantity, "quantity")
        _check_positive(purchase_price, "purchase_price")
        key = symbol.strip().upper()
        now = self._timestamp()

        existing = next((p for p in portfolio.positions if p.symbol == key), None)
        if existing is not None:
            total_cost = existing.cost_basis + quantity * purchase_price
            existing.quantity += quantity
            existing.purchase_price = total_cost / existing.quantity
            existing.updated_at = now
            logger.debug("Merged %s into %s: qty=%s avg=%.4f", key, existing.id,
                         existing.quantity, existing.purchase_price)
        else:
            portfolio.positions.append(Position(
                id=f"pos_{uuid.uuid4().hex[:12]}",
                symbol=key,
                quantity=float(quantity),
                purchase_price=float(purchase_price),
                purchase_date=_parse_date(purchase_date) if purchase_date else self.clock().date().isoformat(),
                asset_type=asset_type or ASSET_TYPES.get(key, DEFAULT_ASSET_TYPE),
                sector=sector or SECTORS.get(key, UNKNOWN_SECTOR),
                created_at=now,
                updated_at=now,
            ))
        portfolio.updated_at = now
        return portfolio

    def update_position(
        self,
        position_id: str,
        quantity: Optional[float] = None,
        purchase_price: Optional[float] = None,
        asset_type: Optional[str] = None,
        sector: Optional[str] = None,
        portfolio_id: str = DEFAULT_PORTFOLIO_ID,
    ) -> Portfolio:
        """Overwrite the given fields of a position; ``None`` leaves one unchanged."""
        portfolio = self.get_portfolio(portfolio_id)
        position = self._find_position(portfolio, position_id)
        if quantity is not None:
            _check_positive(quantity, "quantity")
        if purchase_price is not None:
            _check_positive(purchase_price, "purchase_price")

        if quantity is not None:
            position.quantity = float(quantity)
        if purchase_price is not None:
            position.purchase_price = float(purchase_price)
        if asset_type is not None:
            position.asset_type = asset_type
        if sector is not None:
            position.sector = sector
        position.updated_at = portfolio.updated_at = self._timestamp()
        return portfolio

    def remove_position(self, position_id: str, portfolio_id: str = DEFAULT_PORTFOLIO_ID) -> Portfolio:
        portfolio = self.get_portfolio(portfolio_id)
        portfolio.positions.remove(self._find_position(portfolio, position_id))
        portfolio.updated_at = self._timestamp()
        return portfolio

    # ------------------------------------------------------------------
    # Valuation
    # ------------------------------------------------------------------

    def performance(self, portfolio_id: str = DEFAULT_PORTFOLIO_ID) -> PortfolioPerformance:
        """Mark every position to market and total the gains and losses."""
        portfolio = self.get_portfolio(portfolio_id)
        rows = [self._mark(position) for position in portfolio.positions]

        total_value = sum(row.market_value for row in rows)
        total_cost = sum(row.position.cost_basis for row in rows)
        for row in rows:
            row.weight_pct = row.market_value / total_value * 100 if total_value > 0 else 0.0

        total_gain_loss = total_value - total_cost
        return PortfolioPerformance(
            total_value=total_value,
            total_cost=total_cost,
            total_gain_loss=total_gain_loss,
            total_gain_loss_pct=total_gain_loss / total_cost * 100 if total_cost > 0 else 0.0,
            positions=rows,
        )

    def allocation(self, portfolio_id: str = DEFAULT_PORTFOLIO_ID) -> AssetAllocation:
        return _allocate(self.performance(portfolio_id))

    def summary(self, portfolio_id: str = DEFAULT_PORTFOLIO_ID) -> PortfolioSummary:
        portfolio = self.get_portfolio(portfolio_id)
        performance = self.performance(portfolio_id)
        return PortfolioSummary(portfolio, performance, _allocate(performance))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _mark(self, position: Position) -> PositionPerformance:
        try:
            price, priced = float(self.prices.get_price(position.symbol)), True
        except UnknownSymbolError:
            logger.warning("No price for %s, valuing at purchase price", position.symbol)
            price, priced = position.purchase_price, False

        market_value = position.quantity * price
        gain_loss = market_value - position.cost_basis
        return PositionPerformance(
            position=position,
            current_price=price,
            market_value=market_value,
            gain_loss=gain_loss,
            gain_loss_pct=gain_loss / position.cost_basis * 100 if position.cost_basis > 0 else 0.0,
            priced=priced,
        )

    def _timestamp(self) -> str:
        return self.clock().isoformat()

    @staticmethod
    def _find_position(portfolio: Portfolio, position_id: str) -> Position:
        for position in portfolio.positions:
            if position.id == position_id:
                return position
        raise NotFoundError(f"Position '{position_id}' not found in portfolio '{portfolio.id}'")


def _allocate(performance: PortfolioPerformance) -> AssetAllocation:
    allocation = AssetAllocation(total_value=performance.total_value)
    for row in performance.positions:
        for table, key in (
            (allocation.by_asset_type, row.position.asset_type or DEFAULT_ASSET_TYPE),
            (allocation.by_sector, row.position.sector or UNKNOWN_SECTOR),
            (allocation.by_symbol, row.position.symbol),
        ):
            bucket = table.setdefault(key, AllocationBucket())
            bucket.value += row.market_value
            bucket.weight_pct += row.weight_pct
            bucket.positions += 1
    return allocation


def _check_positive(value: float, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise InvalidInputError(f"{name} must be a finite number, got {value!r}")
    if value <= 0:
        raise InvalidInputError(f"{name} must be positive")


def _parse_date(value: str) -> str:
    try:
        return date.fromisoformat(str(value)).isoformat()
    except ValueError:
        raise InvalidInputError(f"purchase_date must be YYYY-MM-DD, got {value!r}")
