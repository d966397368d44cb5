"""Streamlit app for the Winner tracker.

The page is a thin surface over :class:`FinanceController`: every number
shown comes from :class:`DerivedValues`, and every button calls one
controller component. The controller lives in ``st.session_state`` so it
survives Streamlit reruns; async component calls are driven with
``asyncio.run``.

To run the dashboard from the command line::

    streamlit run winner_tracker/dashboard.py

or use ``run_dashboard.py`` at the repository root.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from datetime import date

import pandas as pd
import streamlit as st

if __package__:
    from . import visualization as viz
    from .controller import FinanceController
    from .db import SqliteRepository
    from .errors import UNAVAILABLE_HINT, StorageError, StorageUnavailable, ValidationError, WinnerTrackerError
    from .formatting import format_currency, month_label
    from .models import BillSchedule, ExpenseKind
else:
    CURRENT_DIR = os.path.dirname(os.path.abspath(__file__))
    PARENT_DIR = os.path.dirname(CURRENT_DIR)
    if PARENT_DIR not in sys.path:
        sys.path.insert(0, PARENT_DIR)
    from winner_tracker import visualization as viz  # type: ignore
    from winner_tracker.controller import FinanceController  # type: ignore
    from winner_tracker.db import SqliteRepository  # type: ignore
    from winner_tracker.errors import (  # type: ignore
        UNAVAILABLE_HINT,
        StorageError,
        StorageUnavailable,
        ValidationError,
        WinnerTrackerError,
    )
    from winner_tracker.formatting import format_currency, month_label  # type: ignore
    from winner_tracker.models import BillSchedule, ExpenseKind  # type: ignore

CATEGORIES = ["Food", "Transport", "Housing", "Utilities", "Entertainment", "Health", "Shopping", "other"]


def get_controller() -> FinanceController:
    if "controller" not in st.session_state:
        repository = SqliteRepository()
        repository.ensure_base_collections()
        controller = FinanceController(repository)
        asyncio.run(controller.start())
        st.session_state["controller"] = controller
    return st.session_state["controller"]


def run_action(coro, success: str | None = None) -> bool:
    """Await a controller call and report the outcome inline."""
    try:
        asyncio.run(coro)
    except ValidationError as exc:
        st.warning(str(exc))
        return False
    except StorageError as exc:
        st.error(exc.user_message())
        return False
    except StorageUnavailable:  # pragma: no cover - UI display only
        st.error(UNAVAILABLE_HINT)
        return False
    except WinnerTrackerError as exc:
        st.warning(str(exc))
        return False
    if success:
        st.success(success)
    return True


def render_summary(controller: FinanceController) -> None:
    values = controller.snapshot()
    if not values.online:
        st.info("Offline: showing locally saved expenses.")
    col1, col2, col3 = st.columns(3)
    col1.metric("Today", format_currency(values.today_earnings))
    col2.metric("This week", format_currency(values.week_earnings))
    col3.metric("Suggested to save today", format_currency(values.suggested_savings))
    st.subheader(f"Safe to spend today {format_currency(values.safe_to_spend)}")
    st.caption(values.safe_to_spend_message)
    st.caption(values.savings_message)
    st.caption(
        f"Daily bills {format_currency(values.daily_bills)} · "
        f"Recurring bills {format_currency(values.recurring_bills_total)}"
    )
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Total income", format_currency(values.total_income))
    col2.metric("Total expenses", format_currency(values.total_expenses))
    col3.metric("Net balance", format_currency(values.net_balance))
    col4.metric("Net this month", format_currency(values.monthly_net))
    pace = values.pace_projection
    st.write(
        f"If you keep this pace: {format_currency(pace.day)} today, "
        f"{format_currency(pace.week)} week, {format_currency(pace.month)} month"
    )
    st.plotly_chart(viz.create_pace_projection_chart(pace))


def render_timer(controller: FinanceController) -> None:
    tracker = controller.tracker
    st.header("Work timer")
    st.metric("Elapsed", tracker.elapsed_display())
    status = tracker.status.value
    col1, col2, col3 = st.columns(3)
    if status == "idle":
        if col1.button("Start"):
            run_action(tracker.start())
            st.rerun()
        return
    if status == "running" and col1.button("Pause"):
        tracker.pause()
        st.rerun()
    if status == "paused" and col1.button("Resume"):
        tracker.resume()
        st.rerun()
    with col2:
        break_value = st.number_input("Break", min_value=0.0, value=0.0, step=5.0)
        unit = st.radio("Unit", ["minutes", "hours"], horizontal=True)
    if col3.button("Stop"):
        if run_action(tracker.stop(break_value, unit), "Session saved"):
            st.rerun()


def render_expense_form(controller: FinanceController) -> None:
    st.header("Add expense")
    with st.form("add_expense", clear_on_submit=True):
        note = st.text_input("Name")
        amount = st.number_input("Amount", min_value=0.0, step=1.0)
        when = st.date_input("Date", value=date.today())
        category = st.selectbox("Category", CATEGORIES)
        kind = st.radio("Type", [k.value for k in ExpenseKind], horizontal=True)
        schedule = st.radio("Bill schedule", [s.value for s in BillSchedule], horizontal=True)
        if st.form_submit_button("Save"):
            run_action(controller.ledger.add(note, amount, when, category, kind, schedule), "Expense saved")


def render_expenses(controller: FinanceController) -> None:
    ledger = controller.ledger
    st.header("Expenses")
    months = ledger.month_keys()
    options = ["All"] + months
    selected = st.selectbox("Month", options, format_func=lambda key: key if key == "All" else month_label(key))
    month = None if selected == "All" else selected
    query = st.text_input("Search")

    col1, col2 = st.columns(2)
    col1.metric("Monthly total", format_currency(ledger.monthly_total(month)))
    col2.metric("Biggest category", ledger.biggest_category(month))
    st.plotly_chart(viz.create_category_pie_chart(ledger.category_totals(month)))
    st.plotly_chart(viz.create_bills_vs_spending_chart(ledger.monthly_overview(month)))
    st.plotly_chart(viz.create_monthly_totals_chart(ledger.monthly_totals()))

    rows = [
        {
            "key": expense.key,
            "Name": expense.note,
            "Amount": expense.amount,
            "Date": expense.date,
            "Category": expense.category,
            "Type": expense.kind.value,
            "Schedule": expense.bill_schedule.value,
            "Saved": not expense.is_pending,
        }
        for expense in ledger.search(query)
        if month is None or expense.month_key == month
    ]
    if not rows:
        st.info("No expenses yet.")
        return
    table = pd.DataFrame(rows)
    st.dataframe(table.drop(columns=["key"]))
    to_delete = st.selectbox(
        "Delete expense",
        [""] + table["key"].tolist(),
        format_func=lambda key: "" if not key else table.loc[table["key"] == key, "Name"].iloc[0],
    )
    if to_delete and st.button("Delete"):
        if run_action(ledger.remove(to_delete), "Expense deleted"):
            st.rerun()


def render_settings(controller: FinanceController) -> None:
    settings = controller.state.settings
    st.sidebar.header("Settings")
    with st.sidebar.form("settings"):
        rate = st.number_input("Hourly rate (£)", min_value=0.0, value=float(settings.hourly_rate), step=0.5)
        percent = st.number_input(
            "Savings (%)", min_value=0.0, max_value=100.0, value=float(settings.savings_percent), step=1.0
        )
        if st.form_submit_button("Save settings"):
            run_action(controller.save_preferences(rate, percent), "Settings saved")
    if controller.state.saving_goals:
        st.sidebar.header("Saving goals")
        for goal in controller.state.saving_goals:
            st.sidebar.progress(int(goal.progress), text=goal.label)
    if st.sidebar.button("Refresh"):
        asyncio.run(controller.refresh())


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    st.set_page_config(page_title="Winner", layout="wide")
    st.title("Winner")
    controller = get_controller()
    render_settings(controller)
    render_summary(controller)
    render_timer(controller)
    render_expense_form(controller)
    render_expenses(controller)


if __name__ == "__main__":  # pragma: no cover
    main()
