"""
Contains functions for generating Plotly visualizations from projection results.
"""

import plotly.graph_objects as go
from plotly.subplots import make_subplots
import logging
from typing import List

from spvsim.core.ranges import ScenarioRange
from spvsim.core.simulation import ModelResult
from spvsim.core.utils import simulation_error_handler

logger = logging.getLogger(__name__)

VALUE_COLOR = "#1f77b4"
DEBT_COLOR = "#d62728"
EQUITY_COLOR = "#2ca02c"
BAND_FILL = "rgba(44, 160, 44, 0.15)"


def _year_labels(result: ModelResult) -> List[str]:
    return [f"Y{y}" for y in range(result.years + 1)]


@simulation_error_handler
def plot_portfolio_value(scenario_range: ScenarioRange) -> go.Figure:
    """
    Market value, debt and equity of the base run, with the min/max equity band when available.

    Args:
        scenario_range: Bundle returned by run_scenario_range.

    Returns:
        A Plotly Figure object.
    """
    base = scenario_range.base
    years = _year_labels(base)
    fig = go.Figure()

    if scenario_range.min is not None and scenario_range.max is not None:
        fig.add_trace(go.Scatter(x=years, y=scenario_range.max.equity, mode="lines", line=dict(width=0),
                                 name="Equity (max)", showlegend=False, hoverinfo="skip"))
        fig.add_trace(go.Scatter(x=years, y=scenario_range.min.equity, mode="lines", line=dict(width=0),
                                 fill="tonexty", fillcolor=BAND_FILL, name="Equity range"))

    fig.add_trace(go.Scatter(x=years, y=base.value, mode="lines", name="Market Value", line=dict(color=VALUE_COLOR)))
    fig.add_trace(go.Scatter(x=years, y=base.debt, mode="lines", name="Debt", line=dict(color=DEBT_COLOR)))
    fig.add_trace(go.Scatter(x=years, y=base.equity, mode="lines", name="Equity", line=dict(color=EQUITY_COLOR, width=3)))
    fig.update_layout(title="Portfolio Value, Debt & Equity", xaxis_title="Year", yaxis_title="EUR",
                      hovermode="x unified", legend=dict(orientation="h", y=-0.2))
    return fig


@simulation_error_handler
def plot_cash_reserve(result: ModelResult) -> go.Figure:
    """Cash reserve per year; negative years highlighted in red."""
    years = _year_labels(result)
    colors = ["#d62728" if v < 0 else "#1f77b4" for v in result.cash_reserve]
    fig = go.Figure(go.Bar(x=years, y=result.cash_reserve, marker_color=colors, name="Cash Reserve"))
    fig.add_hline(y=0, line=dict(color="grey", dash="dash", width=1))
    fig.update_layout(title="SPV Cash Reserve", xaxis_title="Year", yaxis_title="EUR")
    return fig


@simulation_error_handler
def plot_income(result: ModelResult) -> go.Figure:
    """Rent, cash flow and net dividends; LTV on a secondary axis."""
    years = _year_labels(result)
    fig = make_subplots(specs=[[{"secondary_y": True}]])
    fig.add_trace(go.Bar(x=years, y=result.rent, name="Rent", opacity=0.6), secondary_y=False)
    fig.add_trace(go.Scatter(x=years, y=result.cashflow, mode="lines+markers", name="Cash Flow"), secondary_y=False)
    fig.add_trace(go.Scatter(x=years, y=result.dividends, mode="lines+markers", name="Net Dividends"), secondary_y=False)
    fig.add_trace(go.Scatter(x=years, y=result.ltv, mode="lines", name="LTV (%)", line=dict(dash="dot")),
                  secondary_y=True)
    fig.update_layout(title="Income & Distributions", hovermode="x unified", legend=dict(orientation="h", y=-0.2))
    fig.update_yaxes(title_text="EUR", secondary_y=False)
    fig.update_yaxes(title_text="LTV (%)", secondary_y=True)
    return fig


@simulation_error_handler
def plot_tax_components(result: ModelResult) -> go.Figure:
    """Stacked IMI, AIMI and corporate tax per year with the depreciation deduction as a line."""
    years = _year_labels(result)
    fig = go.Figure()
    fig.add_trace(go.Bar(x=years, y=result.imi, name="IMI"))
    fig.add_trace(go.Bar(x=years, y=result.aimi, name="AIMI"))
    fig.add_trace(go.Bar(x=years, y=result.corporate_tax, name="Corporate Tax"))
    fig.add_trace(go.Scatter(x=years, y=result.building_depreciation, mode="lines", name="Depreciation (deductible)",
                             line=dict(dash="dash")))
    fig.update_layout(barmode="stack", title="Tax Components", xaxis_title="Year", yaxis_title="EUR",
                      legend=dict(orientation="h", y=-0.2))
    return fig
