"""
Tests for the in-memory portfolio tracker.
"""
from datetime import datetime, timezone

import pytest

from options_engine.errors import InvalidInputError, NotFoundError
from options_engine.market import StaticPriceSource
from investment.portfolio import DEFAULT_PORTFOLIO_ID, PortfolioBook


NOW = datetime(2024, 3, 15, 14, 30, tzinfo=timezone.utc)


class OfflinePriceSource:
    def get_price(self, symbol):
        raise RuntimeError("feed offline")


@pytest.fixture
def book():
    prices = StaticPriceSource({"AAPL": 200.0, "SPY": 500.0, "TSLA": 180.0})
    return PortfolioBook(prices, clock=lambda: NOW)


@pytest.fixture
def holdings(book):
    book.add_position("AAPL", 10, 150.0)
    book.add_position("SPY", 4, 400.0)
    return book


# ---------------------------------------------------------------------------
# Portfolios
# ---------------------------------------------------------------------------

class TestPortfolios:

    def test_default_portfolio(self, book):
        portfolio = book.get_portfolio()
        assert portfolio.id == DEFAULT_PORTFOLIO_ID
        assert portfolio.name == "My Portfolio"
        assert portfolio.positions == []
        assert portfolio.created_at == NOW.isoformat()

    def test_create(self, book):
        portfolio = book.create_portfolio("  Retirement ")
        assert portfolio.name == "Retirement"
        assert portfolio.id.startswith("portfolio_")
        assert book.get_portfolio(portfolio.id) is portfolio
        assert len(book.list_portfolios()) == 2

    @pytest.mark.parametrize("name", ["", "   ", None, 42])
    def test_create_needs_name(self, book, name):
        with pytest.raises(InvalidInputError, match="name"):
            book.create_portfolio(name)

    def test_unknown_portfolio(self, book):
        with pytest.raises(NotFoundError, match="Portfolio 'nope' not found"):
            book.get_portfolio("nope")

    def test_portfolios_are_independent(self, book):
        other = book.create_portfolio("Other")
        book.add_position("AAPL", 1, 100.0, portfolio_id=other.id)
        assert book.get_portfolio().positions == []
        assert len(other.positions) == 1


# ---------------------------------------------------------------------------
# Positions
# ---------------------------------------------------------------------------

class TestPositions:

    def test_add(self, book):
        portfolio = book.add_position("aapl", 10, 150.0)
        position = portfolio.positions[0]
        assert position.symbol == "AAPL"
        assert position.quantity == 10.0
        assert position.purchase_price == 150.0
        assert position.purchase_date == "2024-03-15"
        assert position.sector == "Technology"
        assert position.asset_type == "Stock"
        assert position.id.startswith("pos_")

    def test_defaults_for_etf_and_unknown_symbol(self, book):
        book.add_position("SPY", 1, 400.0)
        book.add_position("XYZ", 1, 10.0)
        spy, xyz = book.get_portfolio().positions
        assert spy.asset_type == "ETF"
        assert xyz.sector == "Unknown"
        assert xyz.asset_type == "Stock"

    def test_explicit_fields(self, book):
        position = book.add_position(
            "BND", 5, 72.0, purchase_date="2023-11-01", asset_type="Bond", sector="Fixed Income",
        ).positions[0]
        assert position.purchase_date == "2023-11-01"
        assert position.asset_type == "Bond"
        assert position.sector == "Fixed Income"

    def test_repeat_buy_averages_cost(self, book):
        book.add_position("AAPL", 10, 150.0)
        portfolio = book.add_position("aapl", 30, 250.0)
        assert len(portfolio.positions) == 1
        assert portfolio.positions[0].quantity == 40.0
        assert portfolio.positions[0].purchase_price == pytest.approx(225.0)

    @pytest.mark.parametrize("quantity, price, message", [
        (0, 100.0, "quantity must be positive"),
        (-1, 100.0, "quantity must be positive"),
        (1, 0.0, "purchase_price must be positive"),
        (float("nan"), 100.0, "quantity must be a finite number"),
        (1, "100", "purchase_price must be a finite number"),
        (True, 100.0, "quantity must be a finite number"),
    ])
    def test_invalid_numbers(self, book, quantity, price, message):
        with pytest.raises(InvalidInputError, match=message):
            book.add_position("AAPL", quantity, price)

    def test_blank_symbol(self, book):
        with pytest.raises(InvalidInputError, match="symbol"):
            book.add_position(" ", 1, 1.0)

    def test_bad_purchase_date(self, book):
        with pytest.raises(InvalidInputError, match="purchase_date must be YYYY-MM-DD"):
            book.add_position("AAPL", 1, 1.0, purchase_date="03/15/2024")

    def test_update(self, holdings):
        position_id = holdings.get_portfolio().positions[0].id
        holdings.update_position(position_id, quantity=12, sector="Hardware")
        position = holdings.get_portfolio().positions[0]
        assert position.quantity == 12.0
        assert position.purchase_price == 150.0
        assert position.sector == "Hardware"

    def test_update_rejects_bad_quantity(self, holdings):
        position = holdings.get_portfolio().positions[0]
        with pytest.raises(InvalidInputError):
            holdings.update_position(position.id, quantity=-5, sector="Hardware")
        assert position.quantity == 10.0
        assert position.sector == "Technology"

    def test_remove(self, holdings):
        position_id = holdings.get_portfolio().positions[0].id
        portfolio = holdings.remove_position(position_id)
        assert [p.symbol for p in portfolio.positions] == ["SPY"]

    def test_unknown_position(self, holdings):
        with pytest.raises(NotFoundError, match="Position 'pos_missing' not found"):
            holdings.remove_position("pos_missing")
        with pytest.raises(NotFoundError):
            holdings.update_position("pos_missing", quantity=1)


# ---------------------------------------------------------------------------
# Valuation
# ---------------------------------------------------------------------------

class TestPerformance:

    def test_empty(self, book):
        performance = book.performance()
        assert performance.total_value == 0.0
        assert performance.total_gain_loss_pct == 0.0
        assert performance.positions == []

    def test_marked_to_market(self, holdings):
        performance = holdings.performance()
        aapl, spy = performance.positions
        assert aapl.market_value == pytest.approx(2_000.0)
        assert aapl.gain_loss == pytest.approx(500.0)
        assert aapl.gain_loss_pct == pytest.approx(100 / 3)
        assert spy.gain_loss_pct == pytest.approx(25.0)
        assert aapl.weight_pct == pytest.approx(50.0)
        assert performance.total_value == pytest.approx(4_000.0)
        assert performance.total_cost == pytest.approx(3_100.0)
        assert performance.total_gain_loss == pytest.approx(900.0)
        assert performance.total_gain_loss_pct == pytest.approx(900 / 3_100 * 100)

    def test_unquoted_symbol_valued_at_cost(self, holdings, caplog):
        holdings.add_position("ZZZZ", 5, 10.0)
        row = holdings.performance().positions[-1]
        assert row.priced is False
        assert row.current_price == 10.0
        assert row.gain_loss == 0.0
        assert "No price for ZZZZ" in caplog.text

    def test_price_source_failure_propagates(self):
        book = PortfolioBook(OfflinePriceSource(), clock=lambda: NOW)
        book.add_position("AAPL", 1, 100.0)
        with pytest.raises(RuntimeError, match="feed offline"):
            book.performance()

    def test_to_dict(self, holdings):
        row = holdings.performance().to_dict()["positions"][0]
        assert row["symbol"] == "AAPL"
        assert row["cost_basis"] == pytest.approx(1_500.0)
        assert row["gain_loss_percent"] == pytest.approx(100 / 3)
        assert row["priced"] is True


class TestAllocation:

    def test_groupings(self, holdings):
        holdings.add_position("TSLA", 10, 200.0)
        allocation = holdings.allocation()
        assert allocation.total_value == pytest.approx(5_800.0)
        assert set(allocation.by_sector) == {"Technology", "Unknown", "Consumer Discretionary"}
        assert allocation.by_asset_type["Stock"].positions == 2
        assert allocation.by_asset_type["Stock"].value == pytest.approx(3_800.0)
        assert allocation.by_asset_type["ETF"].weight_pct == pytest.approx(2_000 / 5_800 * 100)
        assert sum(b.weight_pct for b in allocation.by_symbol.values()) == pytest.approx(100.0)

    def test_summary(self, holdings):
        data = holdings.summary().to_dict()
        assert data["portfolio"]["positions_count"] == 2
        assert data["portfolio"]["name"] == "My Portfolio"
        assert data["performance"]["total_value"] == pytest.approx(4_000.0)
        assert data["allocation"]["by_symbol"]["SPY"]["weight"] == pytest.approx(50.0)
