"""
Meridian 1.0 -- Dashboard Flask application.

Local JSON API over the options engine, the investment simulator and
the in-memory portfolio tracker.

Usage:
    python dashboard/app.py
    -> Serves http://localhost:5050 (port from DASHBOARD_PORT)

Every response is ``{"status": "ok", ...}`` or
``{"status": "error", "kind": ..., "message": ..., "correlation_id": ...}``.
Engine errors map to HTTP status codes in one place (:func:`_error_status`).
"""

import functools
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np
from dotenv import load_dotenv
from flask import Blueprint, Flask, current_app, jsonify, request

from options_engine.config import EngineSettings, load_settings
from options_engine.errors import (
    InvalidInputError,
    NonConvergenceError,
    NotFoundError,
    NumericInstabilityError,
    PricingError,
    UnknownStrategyError,
    UnknownSymbolError,
)
from options_engine.evaluator import SweepConfig, analyze_strategy, evaluate_strategy
from options_engine.greeks import OptionQuote, implied_volatility
from options_engine.market import (
    PriceSource,
    StaticPriceSource,
    build_expiration_calendar,
    build_options_chain,
    build_unusual_activity,
    random_price_fallback,
)
from options_engine.models import StrategyLeg
from options_engine.strategy import build_strategy, list_strategies
from options_engine.utils import (
    DAYS_PER_YEAR,
    generate_correlation_id,
    get_logger,
    log_structured,
    years_to_expiry,
)
from investment import PortfolioBook, Simulator, generate_report

# Load .env from repo root
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path)

logger = get_logger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")


# ======================================================================
# Error handling
# ======================================================================

def _error_status(error: Exception) -> int:
    """HTTP status for an exception raised while serving a request."""
    if isinstance(error, (InvalidInputError, UnknownStrategyError)):
        return 400
    if isinstance(error, (UnknownSymbolError, NotFoundError)):
        return 404
    if isinstance(error, (NumericInstabilityError, NonConvergenceError)):
        return 422
    return 500


def _error_response(error: Exception, correlation_id: str, **extra: Any):
    status = _error_status(error)
    kind = error.kind if status != 500 else "internal_error"
    body = {
        "status": "error",
        "kind": kind,
        "message": str(error) if status != 500 else f"Internal error: {error}",
        "correlation_id": correlation_id,
    }
    body.update(extra)
    return jsonify(body), status


def api_endpoint(view):
    """Run *view* with a correlation ID and map any exception to JSON."""
    @functools.wraps(view)
    def wrapper(*args, **kwargs):
        correlation_id = generate_correlation_id()
        log_structured(
            logger, logging.INFO, "Request received", correlation_id,
            method=request.method, path=request.path,
        )
        try:
            return view(correlation_id, *args, **kwargs)
        except PricingError as e:
            log_structured(
                logger, logging.WARNING, f"Request rejected: {e}", correlation_id,
                kind=e.kind,
            )
            return _error_response(e, correlation_id)
        except Exception as e:
            logger.exception("[%s] Internal error", correlation_id)
            return _error_response(e, correlation_id)
    return wrapper


# ======================================================================
# Request parsing helpers
# ======================================================================

def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        raise InvalidInputError("No data provided")
    return data


def _first(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _number(data: Dict[str, Any], *keys: str, default: Optional[float] = None) -> float:
    """Read a float stored under the first present key in *keys*."""
    value = _first(data, *keys)
    if value is None:
        if default is None:
            raise InvalidInputError(f"'{keys[0]}' is required")
        return default
    if isinstance(value, bool):
        raise InvalidInputError(f"'{keys[0]}' must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidInputError(f"'{keys[0]}' must be a number, got {value!r}")


def _integer(data: Dict[str, Any], *keys: str) -> int:
    value = _number(data, *keys)
    if not value.is_integer():
        raise InvalidInputError(f"'{keys[0]}' must be a whole number, got {value}")
    return int(value)


def _time_to_expiry(data: Dict[str, Any], required: bool = True) -> Optional[float]:
    """Years to expiry from ``time_to_expiry``, ``days_to_expiry`` or ``expiration``."""
    if _first(data, "time_to_expiry", "timeToExpiry") is not None:
        return _number(data, "time_to_expiry", "timeToExpiry")
    if _first(data, "days_to_expiry", "daysToExpiry") is not None:
        return _number(data, "days_to_expiry", "daysToExpiry") / DAYS_PER_YEAR
    if data.get("expiration"):
        try:
            return years_to_expiry(str(data["expiration"]))
        except ValueError as e:
            raise InvalidInputError(str(e))
    if required:
        raise InvalidInputError("One of 'time_to_expiry', 'days_to_expiry' or 'expiration' is required")
    return None


def _sweep(data: Dict[str, Any]) -> SweepConfig:
    settings = _settings()
    raw = data.get("sweep") or {}
    if not isinstance(raw, dict):
        raise InvalidInputError("'sweep' must be an object")
    step = raw.get("step")
    points = raw.get("points")
    return SweepConfig(
        range_pct=_number(raw, "range_pct", default=settings.sweep_range_pct),
        step=None if step is None else _number(raw, "step"),
        points=settings.sweep_points if points is None else _integer(raw, "points"),
    )


def _settings() -> EngineSettings:
    return current_app.config["ENGINE_SETTINGS"]


def _prices() -> PriceSource:
    return current_app.config["PRICE_SOURCE"]


def _rng() -> np.random.Generator:
    return current_app.config["RNG"]


def _simulator() -> Simulator:
    return Simulator(rng=_rng(), iterations=_settings().mc_iterations)


def _portfolios() -> PortfolioBook:
    return current_app.config["PORTFOLIO_BOOK"]


# ======================================================================
# Health
# ======================================================================

@api.route("/health", methods=["GET"])
@api_endpoint
def api_health(correlation_id):
    """Liveness check; also echoes the effective settings."""
    return jsonify({"status": "ok", "settings": asdict(_settings())})


# ======================================================================
# Options routes
# ======================================================================

@api.route("/options/price", methods=["POST"])
@api_endpoint
def api_option_price(correlation_id):
    """Black-Scholes price and Greeks for a single option.

    Expected JSON body::

        {
            "underlying_price": 100,
            "strike": 105,
            "days_to_expiry": 30,        // or time_to_expiry (years) / expiration
            "volatility": 0.25,
            "option_type": "call",
            "risk_free_rate": 0.05       // optional
        }
    """
    data = _json_body()
    quote = OptionQuote(
        underlying_price=_number(data, "underlying_price", "stock_price", "stockPrice"),
        strike=_number(data, "strike"),
        dte_years=_time_to_expiry(data),
        sigma=_number(data, "volatility", "sigma", default=_settings().default_implied_vol),
        option_type=_first(data, "option_type", "optionType") or "",
        risk_free_rate=_number(data, "risk_free_rate", "interestRate", default=_settings().risk_free_rate),
    )
    price = quote.price()
    log_structured(
        logger, logging.INFO, "Option priced", correlation_id,
        strike=quote.strike, kind=quote.option_type.value, price=round(price, 4),
    )
    return jsonify({
        "status": "ok",
        "price": price,
        "intrinsic_value": quote.intrinsic(),
        "greeks": quote.greeks().to_dict(),
    })


@api.route("/options/implied-volatility", methods=["POST"])
@api_endpoint
def api_implied_volatility(correlation_id):
    """Solve for the volatility that reproduces a market price.

    A solve that does not converge answers 422 with the best estimate
    under ``result``.
    """
    data = _json_body()
    result = implied_volatility(
        market_price=_number(data, "option_price", "market_price", "optionPrice"),
        underlying_price=_number(data, "underlying_price", "stock_price", "stockPrice"),
        strike=_number(data, "strike"),
        dte_years=_time_to_expiry(data),
        risk_free_rate=_number(data, "risk_free_rate", "interestRate", default=_settings().risk_free_rate),
        option_type=_first(data, "option_type", "optionType") or "",
    )
    try:
        result.raise_for_status()
    except (NumericInstabilityError, NonConvergenceError) as e:
        log_structured(
            logger, logging.WARNING, f"IV solve failed: {e}", correlation_id,
            iterations=result.iterations,
        )
        return _error_response(e, correlation_id, result=result.to_dict())
    return jsonify({"status": "ok", "result": result.to_dict()})


@api.route("/options/greeks/<symbol>/<strike>/<expiration>/<option_type>", methods=["GET"])
@api_endpoint
def api_greeks(correlation_id, symbol, strike, expiration, option_type):
    """Greeks for a listed contract using the mock spot price.

    Query parameters: ``volatility`` (defaults to DEFAULT_IMPLIED_VOL).
    """
    settings = _settings()
    spot = _prices().get_price(symbol)
    params = dict(request.args)
    params["strike"] = strike
    params["expiration"] = expiration
    quote = OptionQuote(
        underlying_price=spot,
        strike=_number(params, "strike"),
        dte_years=_time_to_expiry(params),
        sigma=_number(params, "volatility", default=settings.default_implied_vol),
        option_type=option_type,
        risk_free_rate=settings.risk_free_rate,
    )
    return jsonify({
        "status": "ok",
        "symbol": symbol.upper(),
        "stock_price": spot,
        "strike": quote.strike,
        "expiration": expiration,
        "option_type": quote.option_type.value,
        "price": quote.price(),
        "greeks": quote.greeks().to_dict(),
    })


@api.route("/options/chain/<symbol>", methods=["GET"])
@api_endpoint
def api_options_chain(correlation_id, symbol):
    """Mock options chain; ``?expiration=YYYY-MM-DD`` limits it to one date."""
    expiration = request.args.get("expiration") or None
    if expiration:
        _time_to_expiry({"expiration": expiration})
    chain = build_options_chain(
        symbol, _prices(), _rng(), expiration=expiration,
        risk_free_rate=_settings().risk_free_rate,
    )
    log_structured(
        logger, logging.INFO, "Chain built", correlation_id,
        symbol=chain["symbol"], expirations=len(chain["expirations"]),
    )
    return jsonify(dict(chain, status="ok"))


@api.route("/options/expirations", methods=["GET"])
@api_endpoint
def api_expirations(correlation_id):
    """Mock expiration calendar (``?symbol=`` is echoed back)."""
    calendar = build_expiration_calendar(request.args.get("symbol"), _rng())
    return jsonify(dict(calendar, status="ok"))


@api.route("/options/unusual-activity", methods=["GET"])
@api_endpoint
def api_unusual_activity(correlation_id):
    """Mock unusual activity; ``?min_volume_ratio=`` filters the feed."""
    args = dict(request.args)
    ratio = _first(args, "min_volume_ratio", "volumeThreshold")
    activity = build_unusual_activity(
        _prices(), _rng(),
        min_volume_ratio=None if ratio is None else _number(args, "min_volume_ratio", "volumeThreshold"),
    )
    return jsonify(dict(activity, status="ok"))


@api.route("/options/strategies", methods=["GET"])
@api_endpoint
def api_strategies(correlation_id):
    """Return the registered strategy templates."""
    return jsonify({
        "status": "ok",
        "strategies": [t.to_dict() for t in list_strategies()],
    })


@api.route("/options/strategy", methods=["POST"])
@api_endpoint
def api_strategy(correlation_id):
    """Evaluate a template or an ad-hoc list of legs.

    Template body::

        {"strategy": "iron_condor", "symbol": "AAPL",   // or underlying_price
         "days_to_expiry": 30, "volatility": 0.25}

    Ad-hoc body::

        {"legs": [{"type": "call", "action": "buy", "quantity": 1,
                   "strike": 100, "premium": 3.0}, ...],
         "underlying_price": 100,
         "days_to_expiry": 30}                            // optional

    An optional ``sweep`` object sets ``range_pct`` / ``step`` / ``points``.
    """
    settings = _settings()
    data = _json_body()
    sweep = _sweep(data)
    rate = _number(data, "risk_free_rate", "interestRate", default=settings.risk_free_rate)
    sigma = _number(data, "volatility", "sigma", default=settings.default_implied_vol)

    if _first(data, "underlying_price", "current_price", "currentPrice", "stock_price") is not None:
        spot = _number(data, "underlying_price", "current_price", "currentPrice", "stock_price")
    elif data.get("symbol"):
        spot = _prices().get_price(str(data["symbol"]))
    else:
        raise InvalidInputError("'underlying_price' or 'symbol' is required")

    template_name = _first(data, "strategy", "strategy_type", "strategyType")
    if template_name is not None:
        dte_years = _time_to_expiry(data)
        strategy = build_strategy(
            str(template_name), spot, dte_years, sigma, rate,
            strike_width=_number(data, "strike_width", default=settings.strike_width),
        )
        analysis = analyze_strategy(strategy, spot, dte_years, rate, default_iv=sigma, sweep=sweep)
        name, kind = strategy.name, strategy.kind
    else:
        raw_legs = data.get("legs")
        if not isinstance(raw_legs, list) or not raw_legs:
            raise InvalidInputError("'legs' must be a non-empty list (or give 'strategy')")
        legs = [StrategyLeg.from_dict(leg) for leg in raw_legs]
        dte_years = _time_to_expiry(data, required=False)
        if dte_years is None:
            analysis = evaluate_strategy(legs, spot, sweep)
        else:
            analysis = analyze_strategy(legs, spot, dte_years, rate, default_iv=sigma, sweep=sweep)
        name, kind = data.get("name", "Custom"), None

    log_structured(
        logger, logging.INFO, "Strategy evaluated", correlation_id,
        kind=kind, legs=len(analysis.legs), breakevens=len(analysis.breakevens),
    )
    return jsonify(dict(
        analysis.to_dict(),
        status="ok", name=name, kind=kind, underlying_price=spot,
    ))


# ======================================================================
# Investment simulation routes
# ======================================================================

@api.route("/simulate/investment", methods=["POST"])
@api_endpoint
def api_simulate_investment(correlation_id):
    """Monte Carlo projection of one investment.

    Body: ``{"amount": 10000, "symbol": "AAPL", "days": 365,
    "confidence_level": 0.68}``.
    """
    data = _json_body()
    result = _simulator().simulate_future_investment(
        amount=_number(data, "amount", "initialAmount"),
        symbol=str(data.get("symbol") or "").strip() or "unknown",
        days=_integer(data, "days"),
        confidence_level=_number(data, "confidence_level", "confidenceLevel",
                                 default=_settings().mc_confidence_level),
    )
    log_structured(
        logger, logging.INFO, "Investment simulated", correlation_id,
        symbol=result.symbol, days=result.days, iterations=result.iterations,
    )
    return jsonify({"status": "ok", "result": result.to_dict(), "report": generate_report(result)})


@api.route("/simulate/portfolio", methods=["POST"])
@api_endpoint
def api_simulate_portfolio(correlation_id):
    """Portfolio projection; allocations are percentages summing to 100."""
    data = _json_body()
    allocations = _first(data, "allocations", "portfolio")
    if not isinstance(allocations, dict) or not allocations:
        raise InvalidInputError("'allocations' must be a non-empty object of symbol -> percent")
    parsed = {str(symbol): _number(allocations, symbol) for symbol in allocations}
    result = _simulator().simulate_portfolio(
        parsed,
        total_amount=_number(data, "total_amount", "totalAmount", "amount"),
        days=_integer(data, "days"),
    )
    return jsonify({"status": "ok", "result": result.to_dict(), "report": generate_report(result)})


@api.route("/simulate/historical", methods=["POST"])
@api_endpoint
def api_simulate_historical(correlation_id):
    """Simulated what-if for money invested ``days_ago`` days ago."""
    data = _json_body()
    result = _simulator().historical_what_if(
        amount=_number(data, "amount", "initialAmount"),
        symbol=str(data.get("symbol") or "").strip() or "unknown",
        days_ago=_integer(data, "days_ago", "daysAgo"),
    )
    return jsonify({"status": "ok", "result": result.to_dict(), "report": generate_report(result)})


# ======================================================================
# Portfolio tracker routes
# ======================================================================

@api.route("/portfolios", methods=["GET"])
@api_endpoint
def api_list_portfolios(correlation_id):
    return jsonify({
        "status": "ok",
        "portfolios": [p.to_dict() for p in _portfolios().list_portfolios()],
    })


@api.route("/portfolios", methods=["POST"])
@api_endpoint
def api_create_portfolio(correlation_id):
    """Create an empty portfolio.  Body: ``{"name": "Retirement"}``."""
    data = _json_body()
    portfolio = _portfolios().create_portfolio(data.get("name"))
    log_structured(
        logger, logging.INFO, "Portfolio created", correlation_id,
        portfolio_id=portfolio.id,
    )
    return jsonify({"status": "ok", "portfolio": portfolio.to_dict()})


@api.route("/portfolios/<portfolio_id>", methods=["GET"])
@api_endpoint
def api_get_portfolio(correlation_id, portfolio_id):
    return jsonify({"status": "ok", "portfolio": _portfolios().get_portfolio(portfolio_id).to_dict()})


@api.route("/portfolios/<portfolio_id>/positions", methods=["POST"])
@api_endpoint
def api_add_position(correlation_id, portfolio_id):
    """Buy into a position; repeat buys of a symbol average the cost.

    Expected JSON body::

        {
            "symbol": "AAPL",
            "quantity": 10,
            "purchase_price": 150.0,
            "purchase_date": "2024-01-15",   // optional, defaults to today
            "asset_type": "Stock",           // optional
            "sector": "Technology"           // optional
        }
    """
    data = _json_body()
    portfolio = _portfolios().add_position(
        symbol=str(data.get("symbol") or ""),
        quantity=_number(data, "quantity"),
        purchase_price=_number(data, "purchase_price", "purchasePrice"),
        purchase_date=_first(data, "purchase_date", "purchaseDate"),
        asset_type=_first(data, "asset_type", "assetType"),
        sector=data.get("sector"),
        portfolio_id=portfolio_id,
    )
    log_structured(
        logger, logging.INFO, "Position added", correlation_id,
        portfolio_id=portfolio_id, symbol=str(data.get("symbol")).upper(),
    )
    return jsonify({"status": "ok", "portfolio": portfolio.to_dict()})


@api.route("/portfolios/<portfolio_id>/positions/<position_id>", methods=["PUT"])
@api_endpoint
def api_update_position(correlation_id, portfolio_id, position_id):
    """Update ``quantity``, ``purchase_price``, ``asset_type`` or ``sector``."""
    data = _json_body()
    portfolio = _portfolios().update_position(
        position_id,
        quantity=None if data.get("quantity") is None else _number(data, "quantity"),
        purchase_price=(
            None if _first(data, "purchase_price", "purchasePrice") is None
            else _number(data, "purchase_price", "purchasePrice")
        ),
        asset_type=_first(data, "asset_type", "assetType"),
        sector=data.get("sector"),
        portfolio_id=portfolio_id,
    )
    return jsonify({"status": "ok", "portfolio": portfolio.to_dict()})


@api.route("/portfolios/<portfolio_id>/positions/<position_id>", methods=["DELETE"])
@api_endpoint
def api_remove_position(correlation_id, portfolio_id, position_id):
    portfolio = _portfolios().remove_position(position_id, portfolio_id=portfolio_id)
    log_structured(
        logger, logging.INFO, "Position removed", correlation_id,
        portfolio_id=portfolio_id, position_id=position_id,
    )
    return jsonify({"status": "ok", "portfolio": portfolio.to_dict()})


@api.route("/portfolios/<portfolio_id>/performance", methods=["GET"])
@api_endpoint
def api_portfolio_performance(correlation_id, portfolio_id):
    performance = _portfolios().performance(portfolio_id)
    return jsonify({"status": "ok", "performance": performance.to_dict()})


@api.route("/portfolios/<portfolio_id>/allocation", methods=["GET"])
@api_endpoint
def api_portfolio_allocation(correlation_id, portfolio_id):
    allocation = _portfolios().allocation(portfolio_id)
    return jsonify({"status": "ok", "allocation": allocation.to_dict()})


@api.route("/portfolios/<portfolio_id>/summary", methods=["GET"])
@api_endpoint
def api_portfolio_summary(correlation_id, portfolio_id):
    """Portfolio details, mark-to-market performance and allocation."""
    summary = _portfolios().summary(portfolio_id)
    return jsonify({"status": "ok", "summary": summary.to_dict()})


# ======================================================================
# Application factory
# ======================================================================

def create_app(
    settings: Optional[EngineSettings] = None,
    price_source: Optional[PriceSource] = None,
    rng: Optional[np.random.Generator] = None,
) -> Flask:
    """Build the Flask app.

    Args:
        settings: Engine settings (read from the environment if ``None``).
        price_source: Spot-price source.  Defaults to the static table,
            with a random fallback for unknown symbols only when
            ``MOCK_PRICE_FALLBACK`` is enabled.
        rng: Random generator for mock data and simulations (seeded from
            ``RANDOM_SEED`` if ``None``).
    """
    settings = settings or load_settings()
    rng = rng if rng is not None else np.random.default_rng(settings.random_seed)
    if price_source is None:
        fallback = random_price_fallback(rng) if settings.mock_price_fallback else None
        price_source = StaticPriceSource(fallback=fallback)

    flask_app = Flask(__name__)
    flask_app.config["ENGINE_SETTINGS"] = settings
    flask_app.config["PRICE_SOURCE"] = price_source
    flask_app.config["RNG"] = rng
    flask_app.config["PORTFOLIO_BOOK"] = PortfolioBook(price_source)
    flask_app.register_blueprint(api)
    return flask_app


# ======================================================================
# Entry point
# ======================================================================

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    app = create_app()
    port = app.config["ENGINE_SETTINGS"].dashboard_port
    print("=" * 50)
    print("  Meridian 1.0 Dashboard API")
    print(f"  http://localhost:{port}")
    print("=" * 50)
    app.run(host="127.0.0.1", port=port, debug=False)
