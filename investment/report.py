"""
Meridian 1.0 -- Investment simulation reports.

Produces a human-readable text report from simulator results.
Designed for terminal output; can also be written to a file.
"""

from __future__ import annotations

from typing import Union

from investment.models import HistoricalWhatIf, PortfolioSimulation, SimulationResult

W = 60  # column width for the divider


def _header(lines: list[str], title: str) -> None:
    lines.append("=" * W)
    lines.append(f"MERIDIAN 1.0 -- {title}")
    lines.append("=" * W)


def _section(lines: list[str], title: str) -> None:
    lines.append("-" * W)
    lines.append(title)
    lines.append("-" * W)


def _footer(lines: list[str]) -> None:
    lines.append("=" * W)
    lines.append("END OF REPORT")
    lines.append("=" * W)


def _simulation_body(lines: list[str], result: SimulationResult) -> None:
    lines.append(f"Symbol:           {result.symbol}")
    lines.append(f"Initial amount:   ${result.initial_amount:>14,.2f}")
    lines.append(f"Horizon:          {result.days:>10} days")
    lines.append(f"Iterations:       {result.iterations:>14,}")
    lines.append(f"Confidence:       {result.confidence_level * 100:>13.1f}%")
    lines.append("")

    _section(lines, "PROJECTED VALUE")
    lines.append(f"Expected:         ${result.expected_value:>14,.2f}")
    lines.append(f"Median:           ${result.median_value:>14,.2f}")
    lines.append(f"Best case:        ${result.best_value:>14,.2f}")
    lines.append(f"Worst case:       ${result.worst_value:>14,.2f}")
    lines.append("")

    _section(lines, "RETURNS")
    lines.append(f"Expected return:  {result.expected_return_pct:>13.2f}%")
    lines.append(f"Best case:        {result.best_case_pct:>13.2f}%")
    lines.append(f"Worst case:       {result.worst_case_pct:>13.2f}%")
    lines.append("")

    _section(lines, "RISK METRICS")
    lines.append(f"Volatility:       {result.volatility_pct:>13.2f}%")
    lines.append(f"Max drawdown est: {result.max_drawdown * 100:>13.2f}%")
    lines.append(f"Sharpe ratio:     {result.sharpe_ratio:>14.3f}")
    lines.append("")

    _section(lines, "SCENARIOS")
    lines.append(f"Bull (+1 sd):     ${result.bull_value:>14,.2f}")
    lines.append(f"Neutral:          ${result.neutral_value:>14,.2f}")
    lines.append(f"Bear (-1 sd):     ${result.bear_value:>14,.2f}")
    lines.append("")


def _portfolio_body(lines: list[str], result: PortfolioSimulation) -> None:
    lines.append(f"Total amount:     ${result.total_amount:>14,.2f}")
    lines.append(f"Horizon:          {result.days:>10} days")
    lines.append(f"Holdings:         {len(result.positions):>14}")
    lines.append("")

    _section(lines, "PORTFOLIO METRICS")
    lines.append(f"Expected value:   ${result.expected_value:>14,.2f}")
    lines.append(f"Expected return:  {result.expected_return_pct:>13.2f}%")
    lines.append(f"Volatility:       {result.volatility_pct:>13.2f}%")
    lines.append(f"Sharpe ratio:     {result.sharpe_ratio:>14.3f}")
    lines.append(f"Diversification:  {result.diversification_benefit * 100:>13.2f}%")
    lines.append("")

    _section(lines, "RISK ANALYSIS")
    lines.append(f"VaR (95%):        ${result.value_at_risk:>14,.2f}")
    lines.append(f"CVaR (95%):       ${result.conditional_value_at_risk:>14,.2f}")
    lines.append("")

    _section(lines, "HOLDINGS")
    for pos in result.positions:
        sim = pos.simulation
        lines.append(f"  {pos.symbol}")
        lines.append(f"    Allocation:   {pos.allocation_pct:>9.2f}%")
        lines.append(f"    Amount:       ${pos.amount:>10,.2f}")
        lines.append(f"    Expected:     ${sim.expected_value:>10,.2f}")
        lines.append(f"    Range:        ${sim.worst_value:,.2f} .. ${sim.best_value:,.2f}")
        lines.append("")


def _historical_body(lines: list[str], result: HistoricalWhatIf) -> None:
    lines.append(f"Symbol:           {result.symbol}")
    lines.append(f"Invested on:      {result.investment_date}")
    lines.append(f"Initial amount:   ${result.initial_amount:>14,.2f}")
    lines.append("")

    _section(lines, "OUTCOME")
    lines.append(f"Current value:    ${result.current_value:>14,.2f}")
    lines.append(f"Total return:     ${result.total_return:>14,.2f}")
    lines.append(f"Return:           {result.percentage_return:>13.2f}%")
    lines.append(f"Annualised:       {result.annualized_return:>13.2f}%")
    lines.append(f"Benchmark (SPY):  {result.benchmark_return_pct:>13.2f}%")
    lines.append(f"Inflation adj.:   ${result.inflation_adjusted_value:>14,.2f}")
    lines.append("")

    _section(lines, "SCENARIOS")
    for scenario in result.scenarios:
        lines.append(f"  {scenario.name:<24} {scenario.return_pct:>8.2f}%  ${scenario.value:>12,.2f}")
    lines.append("")

    if result.market_events:
        _section(lines, "MARKET EVENTS")
        for event in result.market_events:
            lines.append(f"  - {event}")
        lines.append("")


def generate_report(
    result: Union[SimulationResult, PortfolioSimulation, HistoricalWhatIf],
) -> str:
    """Generate a text summary report from a simulator result.

    Args:
        result: Any result returned by :class:`Simulator`.

    Returns:
        A formatted multi-line string.

    Raises:
        TypeError: For an unsupported result type.
    """
    lines: list[str] = []

    if isinstance(result, SimulationResult):
        _header(lines, "INVESTMENT SIMULATION")
        _simulation_body(lines, result)
    elif isinstance(result, PortfolioSimulation):
        _header(lines, "PORTFOLIO SIMULATION")
        _portfolio_body(lines, result)
    elif isinstance(result, HistoricalWhatIf):
        _header(lines, "HISTORICAL WHAT-IF")
        _historical_body(lines, result)
    else:
        raise TypeError(f"Cannot report on {type(result).__name__}")

    _footer(lines)
    return "\n".join(lines)
