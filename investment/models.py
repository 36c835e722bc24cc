"""
Meridian 1.0 -- Investment simulator data models.

Profiles and result containers for the Monte Carlo simulator, plus the
holdings and valuations of tracked portfolios.  Results are plain
dataclasses with ``to_dict`` helpers for the JSON API.
Percentages are stored as percent (``12.5`` means 12.5 %); dollar values
as dollars.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(frozen=True)
class InvestmentProfile:
    """Annualised return / risk characteristics of a ticker or risk bucket.

    Attributes:
        expected_return: Expected annual return (0.08 = 8 %).
        volatility: Annual volatility (0.20 = 20 %).
        category: Free-form grouping (``"tech"``, ``"index"``, ...).
    """
    expected_return: float
    volatility: float
    category: str = "unknown"


@dataclass
class SimulationResult:
    """Outcome of a single-asset future-value simulation."""
    initial_amount: float
    symbol: str
    days: int
    confidence_level: float
    iterations: int

    # Projected value
    expected_value: float = 0.0
    best_value: float = 0.0
    worst_value: float = 0.0
    median_value: float = 0.0

    # Returns (%)
    expected_return_pct: float = 0.0
    best_case_pct: float = 0.0
    worst_case_pct: float = 0.0

    # Risk
    volatility_pct: float = 0.0
    max_drawdown: float = 0.0
    sharpe_ratio: float = 0.0

    # One-sigma scenarios ($)
    bull_value: float = 0.0
    bear_value: float = 0.0
    neutral_value: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "initial_amount": self.initial_amount,
            "symbol": self.symbol,
            "days": self.days,
            "confidence_level": self.confidence_level,
            "iterations": self.iterations,
            "projected_value": {
                "expected": self.expected_value,
                "best": self.best_value,
                "worst": self.worst_value,
                "median": self.median_value,
            },
            "returns": {
                "expected": self.expected_return_pct,
                "best_case": self.best_case_pct,
                "worst_case": self.worst_case_pct,
            },
            "risk_metrics": {
                "volatility": self.volatility_pct,
                "max_drawdown": self.max_drawdown,
                "sharpe_ratio": self.sharpe_ratio,
            },
            "scenarios": {
                "bull": self.bull_value,
                "bear": self.bear_value,
                "neutral": self.neutral_value,
            },
        }


@dataclass
class PortfolioPosition:
    """One holding of a simulated portfolio."""
    symbol: str
    allocation_pct: float
    amount: float
    simulation: SimulationResult


@dataclass
class PortfolioSimulation:
    """Outcome of a multi-asset portfolio simulation.

    Portfolio volatility ignores correlations:
    ``sqrt(sum((w_i * vol_i)^2))``.
    """
    total_amount: float
    days: int
    positions: List[PortfolioPosition] = field(default_factory=list)
    expected_value: float = 0.0
    expected_return_pct: float = 0.0
    volatility_pct: float = 0.0
    sharpe_ratio: float = 0.0
    diversification_benefit: float = 0.0
    value_at_risk: float = 0.0
    conditional_value_at_risk: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_amount": self.total_amount,
            "days": self.days,
            "portfolio": {
                p.symbol: {
                    "allocation": p.allocation_pct,
                    "amount": p.amount,
                    "simulation": p.simulation.to_dict(),
                }
                for p in self.positions
            },
            "portfolio_metrics": {
                "expected_value": self.expected_value,
                "expected_return": self.expected_return_pct,
                "volatility": self.volatility_pct,
                "sharpe_ratio": self.sharpe_ratio,
                "diversification_benefit": self.diversification_benefit,
            },
            "risk_analysis": {
                "value_at_risk": self.value_at_risk,
                "conditional_value_at_risk": self.conditional_value_at_risk,
            },
        }


@dataclass
class HistoricalScenario:
    name: str
    return_pct: float
    value: float


@dataclass
class HistoricalWhatIf:
    """Simulated value today of an investment made *days_ago* days ago."""
    initial_amount: float
    symbol: str
    days_ago: int
    investment_date: str
    current_value: float
    total_return: float
    percentage_return: float
    annualized_return: float
    benchmark_return_pct: float
    inflation_adjusted_value: float
    scenarios: List[HistoricalScenario] = field(default_factory=list)
    market_events: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "initial_amount": self.initial_amount,
            "symbol": self.symbol,
            "days_ago": self.days_ago,
            "investment_date": self.investment_date,
            "current_value": self.current_value,
            "total_return": self.total_return,
            "percentage_return": self.percentage_return,
            "annualized_return": self.annualized_return,
            "scenarios": [
                {"name": s.name, "return": s.return_pct, "value": s.value}
                for s in self.scenarios
            ],
            "market_events": list(self.market_events),
            "comparison": {
                "spy_return": self.benchmark_return_pct,
                "inflation_adjusted": self.inflation_adjusted_value,
            },
        }


# ---------------------------------------------------------------------------
# Tracked portfolios
# ---------------------------------------------------------------------------

@dataclass
class Position:
    """A holding in a tracked portfolio.

    Adding a symbol that is already held merges into the existing
    position at the quantity-weighted average purchase price.
    """
    id: str
    symbol: str
    quantity: float
    purchase_price: float
    purchase_date: str
    asset_type: str
    sector: str
    created_at: str
    updated_at: str

    @property
    def cost_basis(self) -> float:
        return self.quantity * self.purchase_price

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "quantity": self.quantity,
            "purchase_price": self.purchase_price,
            "purchase_date": self.purchase_date,
            "asset_type": self.asset_type,
            "sector": self.sector,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class Portfolio:
    id: str
    name: str
    created_at: str
    updated_at: str
    positions: List[Position] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "positions": [p.to_dict() for p in self.positions],
            "positions_count": len(self.positions),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class PositionPerformance:
    """Mark-to-market view of one position.

    ``priced`` is False when the price source had no quote and the
    purchase price stood in for the current price.
    """
    position: Position
    current_price: float
    market_value: float
    gain_loss: float
    gain_loss_pct: float
    weight_pct: float = 0.0
    priced: bool = True

    def to_dict(self) -> Dict[str, Any]:
        data = self.position.to_dict()
        data.update({
            "current_price": self.current_price,
            "market_value": self.market_value,
            "cost_basis": self.position.cost_basis,
            "gain_loss": self.gain_loss,
            "gain_loss_percent": self.gain_loss_pct,
            "weight": self.weight_pct,
            "priced": self.priced,
        })
        return data


@dataclass
class PortfolioPerformance:
    total_value: float = 0.0
    total_cost: float = 0.0
    total_gain_loss: float = 0.0
    total_gain_loss_pct: float = 0.0
    positions: List[PositionPerformance] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_value": self.total_value,
            "total_cost": self.total_cost,
            "total_gain_loss": self.total_gain_loss,
            "total_gain_loss_percent": self.total_gain_loss_pct,
            "positions": [p.to_dict() for p in self.positions],
        }


@dataclass
class AllocationBucket:
    value: float = 0.0
    weight_pct: float = 0.0
    positions: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "weight": self.weight_pct, "positions": self.positions}


@dataclass
class AssetAllocation:
    """Market value and weight grouped by asset type, sector and symbol."""
    total_value: float
    by_asset_type: Dict[str, AllocationBucket] = field(default_factory=dict)
    by_sector: Dict[str, AllocationBucket] = field(default_factory=dict)
    by_symbol: Dict[str, AllocationBucket] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_value": self.total_value,
            "by_asset_type": {k: v.to_dict() for k, v in self.by_asset_type.items()},
            "by_sector": {k: v.to_dict() for k, v in self.by_sector.items()},
            "by_symbol": {k: v.to_dict() for k, v in self.by_symbol.items()},
        }


@dataclass
class PortfolioSummary:
    portfolio: Portfolio
    performance: PortfolioPerformance
    allocation: AssetAllocation

    def to_dict(self) -> Dict[str, Any]:
        return {
            "portfolio": {
                "id": self.portfolio.id,
                "name": self.portfolio.name,
                "positions_count": len(self.portfolio.positions),
                "created_at": self.portfolio.created_at,
                "updated_at": self.portfolio.updated_at,
            },
            "performance": self.performance.to_dict(),
            "allocation": self.allocation.to_dict(),
        }
