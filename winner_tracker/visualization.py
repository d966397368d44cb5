"""Plotly visualisation helpers for the Winner tracker.

Each function takes an aggregate produced by the ledger, the work-session
tracker or the safe-to-spend engine and returns a Plotly figure that
Streamlit renders with ``st.plotly_chart``. Empty input gives an empty
figure titled "No data to display" rather than an error.
"""

from __future__ import annotations

from typing import Dict, Mapping

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from .work_sessions import PaceProjection


def _empty_figure() -> go.Figure:
    fig = go.Figure()
    fig.update_layout(title="No data to display")
    return fig


def create_monthly_totals_chart(totals: pd.DataFrame, title: str | None = None) -> go.Figure:
    """Bar chart of spending per month.

    Parameters
    ----------
    totals : pandas.DataFrame
        Output of :meth:`ExpenseLedger.monthly_totals` with ``month``,
        ``label`` and ``total`` columns in chronological order.
    title : str, optional
        Chart title.

    Returns
    -------
    plotly.graph_objects.Figure
        Bar chart with one bar per month.
    """
    if totals.empty:
        return _empty_figure()
    fig = px.bar(totals, x="label", y="total")
    fig.update_layout(
        title=title or "Monthly spending",
        xaxis_title="Month",
        yaxis_title="Total (£)",
    )
    return fig


def create_category_pie_chart(category_totals: Mapping[str, float], title: str | None = None) -> go.Figure:
    """Pie chart of the month's spending by category.

    Parameters
    ----------
    category_totals : mapping
        Category name to total, as returned by
        :meth:`ExpenseLedger.category_totals`.
    title : str, optional
        Chart title.

    Returns
    -------
    plotly.graph_objects.Figure
        Pie chart.
    """
    positive = {name: value for name, value in category_totals.items() if value > 0}
    if not positive:
        return _empty_figure()
    df = pd.DataFrame({"Category": list(positive.keys()), "Value": list(positive.values())})
    fig = px.pie(df, names="Category", values="Value")
    fig.update_layout(title=title or "Spending by category")
    return fig


def create_pace_projection_chart(projection: PaceProjection, title: str | None = None) -> go.Figure:
    """Bar chart of projected earnings for the day, week and month."""
    df = pd.DataFrame({
        "Period": ["Day", "Week", "Month"],
        "Projected": [projection.day, projection.week, projection.month],
    })
    if not df["Projected"].any():
        return _empty_figure()
    fig = px.bar(df, x="Period", y="Projected", text="Projected")
    fig.update_traces(texttemplate="£%{text:.2f}", textposition="outside")
    fig.update_layout(title=title or "If you keep this pace", yaxis_title="Earnings (£)")
    return fig


def create_bills_vs_spending_chart(overview: Dict[str, float], title: str | None = None) -> go.Figure:
    """Bar chart comparing the month's bills with everyday spending."""
    bills = overview.get("bills", 0.0)
    spending = overview.get("spending", 0.0)
    if not bills and not spending:
        return _empty_figure()
    fig = go.Figure(go.Bar(x=["Bills", "Spending"], y=[bills, spending]))
    fig.update_layout(title=title or "Bills vs spending", yaxis_title="Total (£)")
    return fig
