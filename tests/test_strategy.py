"""
Tests for the strategy template registry and template instantiation.
"""
import pytest

from options_engine.errors import InvalidInputError, UnknownStrategyError
from options_engine.models import Action, InstrumentKind
from options_engine.pricing import bs_price
from options_engine.strategy import (
    STRATEGY_TEMPLATES,
    StrategyKind,
    build_strategy,
    get_strategy,
    list_strategies,
    select_strike,
)


def _strikes(strategy):
    return [leg.strike for leg in strategy.legs]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class TestRegistry:

    def test_all_kinds_registered(self):
        assert set(STRATEGY_TEMPLATES) == set(StrategyKind)

    def test_list_preserves_declaration_order(self):
        names = [t.kind.value for t in list_strategies()]
        assert names == [
            "covered_call",
            "cash_secured_put",
            "bull_call_spread",
            "iron_condor",
            "straddle",
            "strangle",
        ]

    @pytest.mark.parametrize("name", ["iron_condor", "IRON_CONDOR", "  Iron_Condor "])
    def test_lookup_is_case_insensitive(self, name):
        assert get_strategy(name).kind is StrategyKind.IRON_CONDOR

    def test_lookup_by_enum(self):
        assert get_strategy(StrategyKind.STRADDLE).name == "Long Straddle"

    def test_unknown_strategy(self):
        with pytest.raises(UnknownStrategyError, match="Unknown strategy 'butterfly'"):
            get_strategy("butterfly")

    def test_unknown_strategy_lists_known(self):
        with pytest.raises(UnknownStrategyError, match="covered_call"):
            get_strategy("")

    def test_iron_condor_shape(self):
        template = get_strategy("iron_condor")
        assert [(leg.instrument, leg.action) for leg in template.legs] == [
            (InstrumentKind.PUT, Action.BUY),
            (InstrumentKind.PUT, Action.SELL),
            (InstrumentKind.CALL, Action.SELL),
            (InstrumentKind.CALL, Action.BUY),
        ]

    def test_template_to_dict(self):
        data = get_strategy("covered_call").to_dict()
        assert data["kind"] == "covered_call"
        assert data["name"] == "Covered Call"
        assert data["legs"][0] == {"type": "stock", "action": "buy", "quantity": 100, "strike": "atm"}
        assert data["legs"][1] == {"type": "call", "action": "sell", "quantity": 1, "strike": "high"}
        assert data["outlook"] == "Neutral to slightly bullish"

    def test_templates_are_immutable(self):
        template = get_strategy("straddle")
        with pytest.raises(AttributeError):
            template.name = "Short Straddle"


# ---------------------------------------------------------------------------
# Strike selection
# ---------------------------------------------------------------------------

class TestSelectStrike:

    @pytest.mark.parametrize("spot, role, expected", [
        (100.0, "atm", 100.0),
        (102.4, "atm", 100.0),
        (103.0, "atm", 105.0),
        (100.0, "low", 95.0),
        (100.0, "highest", 110.0),
        (100.0, "lowest", 90.0),
    ])
    def test_roles(self, spot, role, expected):
        assert select_strike(spot, role, 5.0) == pytest.approx(expected)

    def test_custom_width(self):
        assert select_strike(251.0, "high", 10.0) == pytest.approx(260.0)

    def test_unknown_role(self):
        with pytest.raises(InvalidInputError, match="Unknown strike role 'middle'"):
            select_strike(100.0, "middle", 5.0)


# ---------------------------------------------------------------------------
# Instantiation
# ---------------------------------------------------------------------------

class TestBuildStrategy:

    @pytest.fixture
    def market(self):
        return {"underlying_price": 100.0, "dte_years": 30 / 365, "sigma": 0.25, "risk_free_rate": 0.05}

    @pytest.mark.parametrize("kind, strikes", [
        ("cash_secured_put", [95.0]),
        ("bull_call_spread", [95.0, 105.0]),
        ("iron_condor", [90.0, 95.0, 105.0, 110.0]),
        ("straddle", [100.0, 100.0]),
        ("strangle", [105.0, 95.0]),
    ])
    def test_strikes(self, market, kind, strikes):
        assert _strikes(build_strategy(kind, **market)) == strikes

    def test_covered_call_legs(self, market):
        strategy = build_strategy("covered_call", **market)
        stock, call = strategy.legs
        assert stock.instrument is InstrumentKind.STOCK
        assert stock.quantity == 100
        assert stock.entry_price == 100.0
        assert stock.premium is None
        assert call.action is Action.SELL
        assert call.strike == 105.0

    def test_premiums_are_black_scholes_to_the_cent(self, market):
        strategy = build_strategy("bull_call_spread", **market)
        for leg in strategy.legs:
            expected = bs_price(100.0, leg.strike, 30 / 365, 0.05, 0.25, "call")
            assert leg.premium == pytest.approx(expected, abs=0.005)
            assert leg.premium == round(leg.premium, 2)
            assert leg.implied_vol == 0.25

    def test_lower_strike_call_costs_more(self, market):
        long_call, short_call = build_strategy("bull_call_spread", **market).legs
        assert long_call.premium > short_call.premium

    def test_metadata(self, market):
        strategy = build_strategy(StrategyKind.IRON_CONDOR, **market)
        assert strategy.kind == "iron_condor"
        assert strategy.name == "Iron Condor"
        assert strategy.outlook == "Neutral"

    def test_strike_width(self, market):
        strategy = build_strategy("iron_condor", strike_width=10.0, **market)
        assert _strikes(strategy) == [80.0, 90.0, 110.0, 120.0]

    def test_unknown_kind(self, market):
        with pytest.raises(UnknownStrategyError):
            build_strategy("collar", **market)

    def test_invalid_sigma(self, market):
        with pytest.raises(InvalidInputError, match="sigma must be positive"):
            build_strategy("straddle", **dict(market, sigma=0.0))

    def test_zero_width(self, market):
        with pytest.raises(InvalidInputError, match="strike_width must be positive"):
            build_strategy("straddle", strike_width=0.0, **market)

    def test_non_positive_strike(self, market):
        with pytest.raises(InvalidInputError, match="reduce strike_width"):
            build_strategy("iron_condor", **dict(market, underlying_price=5.0))

    def test_expired_legs_priced_at_intrinsic(self, market):
        strategy = build_strategy("straddle", **dict(market, dte_years=0.0, underlying_price=102.0))
        call, put = strategy.legs
        assert call.premium == pytest.approx(2.0)
        assert put.premium == 0.0
