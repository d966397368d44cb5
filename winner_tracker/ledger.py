"""Expense ledger: the expense working set, its store writes and aggregates.

The ledger keeps ``AppState.expenses`` and ``AppState.recurring_bills`` in
step with the store. Mutations are optimistic: the in-memory working set
changes first, then the store call is issued, and a rejected write
(:class:`StorageError`) puts the previous value back before the error is
re-raised. When the store cannot be reached at all the change is kept
locally and written to the JSON mirror only.

Every ``Bill`` expense with a ``recurring`` schedule has a matching
RecurringBill record pointing back at it. The pair is written with two
sequential calls, so a failure between them leaves the expense unlinked;
such expenses are remembered in ``AppState.repair_candidates`` and
:meth:`ExpenseLedger.repair_invariants` puts the link right.

The aggregate helpers build a :class:`pandas.DataFrame` from the working
set and never raise; malformed amounts count as zero.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from .errors import (
    PERMISSION_HINT,
    LinkRepairFailure,
    StorageError,
    StorageUnavailable,
    ValidationError,
)
from .formatting import as_number, month_label, round2
from .local_mirror import load_mirror, save_mirror
from .models import (
    BillSchedule,
    Expense,
    ExpenseKind,
    RecurringBill,
    normalize_kind,
    normalize_schedule,
    parse_date,
)
from .repository import DELETE_FIELD, RecordKind, RecordRepository
from .state import AppState

logger = logging.getLogger(__name__)

EXPENSE_COLUMNS = ['key', 'note', 'amount', 'date', 'month', 'category', 'categorised', 'kind', 'recurring']


@dataclass
class RepairReport:
    """What one :meth:`ExpenseLedger.repair_invariants` pass changed."""

    linked: List[str] = field(default_factory=list)
    relinked: List[str] = field(default_factory=list)
    unlinked: List[str] = field(default_factory=list)
    removed_bills: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.linked or self.relinked or self.unlinked or self.removed_bills)


def validate_expense_fields(note: Any, amount: Any, when: Any, category: Any) -> Tuple[str, float, date, str]:
    """Check user input for an expense and return the cleaned values.

    Raises:
        ValidationError: naming the first offending field.
    """
    note_text = str(note).strip() if note is not None else ""
    if not note_text:
        raise ValidationError("Please enter an expense name", field='note')
    number = as_number(amount)
    if number is None or number <= 0:
        raise ValidationError("Please enter a valid amount greater than 0", field='amount')
    parsed = parse_date(when)
    if parsed is None:
        raise ValidationError("Please select a date", field='date')
    category_text = str(category).strip() if category is not None else ""
    if not category_text:
        raise ValidationError("Please select a category", field='category')
    return note_text, number, parsed, category_text


def expenses_frame(expenses: Iterable[Expense]) -> pd.DataFrame:
    """Tabulate expenses for aggregation, one row per expense in list order."""
    rows = [
        {
            'key': expense.key,
            'note': expense.note,
            'amount': expense.amount,
            'date': expense.date,
            'month': expense.month_key,
            'category': expense.category or "other",
            'categorised': bool(expense.category),
            'kind': expense.kind.value,
            'recurring': expense.is_recurring_bill,
        }
        for expense in expenses
    ]
    frame = pd.DataFrame(rows, columns=EXPENSE_COLUMNS)
    frame['amount'] = pd.to_numeric(frame['amount'], errors='coerce').fillna(0.0)
    frame['recurring'] = frame['recurring'].astype(bool)
    frame['categorised'] = frame['categorised'].astype(bool)
    return frame


class ExpenseLedger:
    """Owns the expense working set and its recurring-bill mirrors.

    Args:
        repository: Store gateway.
        state: Shared application state; ``expenses``, ``recurring_bills``
            and ``repair_candidates`` are written here.
        mirror_path: JSON file the working set is mirrored to. ``None``
            disables mirroring.
    """

    def __init__(self, repository: RecordRepository, state: AppState, mirror_path: Optional[Path] = None):
        self.repository = repository
        self.state = state
        self.mirror_path = mirror_path
        self._repair_lock = asyncio.Lock()

    # -- lookup -------------------------------------------------------------------

    def find(self, key: Optional[str]) -> Optional[Expense]:
        """Find an expense by store id or provisional local id."""
        if not key:
            return None
        for expense in self.state.expenses:
            if expense.id == key or expense.local_id == key:
                return expense
        return None

    def _require(self, key: str) -> Expense:
        expense = self.find(key)
        if expense is None:
            raise ValidationError("Expense not found. It may have been deleted.", field='id')
        return expense

    def _swap(self, old: Expense, new: Expense) -> None:
        for index, expense in enumerate(self.state.expenses):
            if expense.local_id == old.local_id:
                self.state.expenses[index] = new
                return
        self.state.expenses.append(new)

    def _drop(self, target: Expense) -> None:
        self.state.expenses = [e for e in self.state.expenses if e.local_id != target.local_id]

    def _drop_bills(self, bill_id: Optional[str] = None, expense_id: Optional[str] = None) -> None:
        self.state.recurring_bills = [
            bill for bill in self.state.recurring_bills
            if not ((bill_id and bill.id == bill_id) or (expense_id and bill.expense_id == expense_id))
        ]

    # -- mirror -------------------------------------------------------------------

    def _write_mirror(self) -> None:
        if self.mirror_path is None:
            return
        try:
            save_mirror([e.to_record(include_id=True) for e in self.state.expenses], self.mirror_path)
        except OSError as exc:
            logger.warning("Could not write expense mirror %s: %s", self.mirror_path, exc)

    def _read_mirror(self) -> List[Expense]:
        if self.mirror_path is None:
            return []
        return [Expense.from_record(record) for record in load_mirror(self.mirror_path)]

    @staticmethod
    def _rejected(action: str, exc: StorageError) -> StorageError:
        hint = exc.hint
        if hint is None and "permission" in str(exc).lower():
            hint = PERMISSION_HINT
        return StorageError(f"{action}: {exc}", hint=hint)

    # -- loading and repair ---------------------------------------------------------

    def use_local_copy(self) -> List[Expense]:
        """Switch to offline mode, filling an empty working set from the mirror."""
        self.state.online = False
        if not self.state.expenses:
            self.state.expenses = self._read_mirror()
            logger.info("Loaded %d expenses from the local mirror", len(self.state.expenses))
        return self.state.expenses

    async def load(self, repair: bool = True) -> List[Expense]:
        """Replace the working set with the store's expenses and recurring bills.

        Expenses kept locally while the store was unreachable are pushed
        once the store answers. When the store cannot be read the working
        set comes from the local mirror instead (or is left as it is, if
        already populated).
        """
        pending = [expense for expense in self.state.expenses if expense.is_pending]
        try:
            expense_records = await self.repository.list_all(RecordKind.EXPENSE)
            bill_records = await self.repository.list_all(RecordKind.RECURRING_BILL)
        except (StorageUnavailable, StorageError) as exc:
            logger.warning("Could not load expenses from the store (%s); using local data", exc)
            return self.use_local_copy()

        self.state.online = True
        self.state.expenses = [Expense.from_record(record) for record in expense_records]
        self.state.recurring_bills = [RecurringBill.from_record(record) for record in bill_records]
        logger.info(
            "Loaded %d expenses and %d recurring bills",
            len(self.state.expenses), len(self.state.recurring_bills),
        )
        if pending:
            await self._push_pending(pending)
        self._write_mirror()
        if repair:
            await self.repair_invariants()
        return self.state.expenses

    async def _push_pending(self, pending: List[Expense]) -> None:
        for expense in pending:
            try:
                record_id = await self.repository.create(RecordKind.EXPENSE, expense.to_record())
            except (StorageUnavailable, StorageError) as exc:
                logger.warning("Pending expense %s still not saved: %s", expense.local_id, exc)
                self.state.expenses.append(expense)
                continue
            saved = replace(expense, id=record_id, recurring_bill_id=None)
            self.state.expenses.append(saved)
            logger.info("Saved pending expense %s as %s", expense.local_id, record_id)
            if saved.is_recurring_bill:
                await self._link_or_flag(saved)

    async def repair_invariants(self) -> RepairReport:
        """Bring recurring-bill links back in line with the expenses.

        * a recurring-bill expense without a valid link is linked to an
          existing RecurringBill that already points at it, or gets a new one
        * any other expense that still carries a link has it torn down
        * RecurringBills whose expense is gone, is no longer a recurring
          bill, or already has a different link are deleted

        Failures are logged and reported; they never raise.
        """
        report = RepairReport()
        async with self._repair_lock:
            if not self.state.online:
                return report
            bill_ids = {bill.id for bill in self.state.recurring_bills if bill.id}
            bills_by_expense: Dict[str, RecurringBill] = {}
            for bill in self.state.recurring_bills:
                if bill.expense_id and bill.id:
                    bills_by_expense.setdefault(bill.expense_id, bill)

            for expense in list(self.state.expenses):
                if expense.is_pending:
                    continue
                if expense.is_recurring_bill:
                    if expense.recurring_bill_id in bill_ids:
                        self.state.repair_candidates.discard(expense.id)
                        continue
                    await self._repair_link(expense, bills_by_expense.get(expense.id), report)
                elif expense.recurring_bill_id:
                    await self._tear_down_link(expense, report)

            canonical = {
                expense.id: expense.recurring_bill_id
                for expense in self.state.expenses
                if expense.id and expense.is_recurring_bill
            }
            for bill in list(self.state.recurring_bills):
                if not bill.id or not bill.expense_id:
                    continue
                if bill.expense_id in canonical:
                    keep = canonical[bill.expense_id]
                    if keep is None or keep == bill.id:
                        continue
                try:
                    await self.repository.delete(RecordKind.RECURRING_BILL, bill.id)
                except (StorageUnavailable, StorageError) as exc:
                    logger.warning("Could not delete stray recurring bill %s: %s", bill.id, exc)
                    report.failed.append(bill.id)
                    continue
                self._drop_bills(bill_id=bill.id)
                report.removed_bills.append(bill.id)

        if report.changed:
            logger.info(
                "Recurring bill repair: %d linked, %d relinked, %d unlinked, %d removed",
                len(report.linked), len(report.relinked), len(report.unlinked), len(report.removed_bills),
            )
            self._write_mirror()
        return report

    async def _repair_link(self, expense: Expense, existing: Optional[RecurringBill], report: RepairReport) -> None:
        try:
            if existing is not None:
                await self.repository.update(RecordKind.EXPENSE, expense.id, {'recurringBillId': existing.id})
                fixed = replace(expense, recurring_bill_id=existing.id)
                report.relinked.append(expense.id)
            else:
                fixed = await self._link_recurring_bill(replace(expense, recurring_bill_id=None))
                report.linked.append(expense.id)
        except (LinkRepairFailure, StorageUnavailable, StorageError) as exc:
            logger.warning("Could not repair recurring bill link for %s: %s", expense.id, exc)
            self.state.repair_candidates.add(expense.id)
            report.failed.append(expense.id)
            return
        self._swap(expense, fixed)
        self.state.repair_candidates.discard(expense.id)

    async def _tear_down_link(self, expense: Expense, report: RepairReport) -> None:
        try:
            await self.repository.delete(RecordKind.RECURRING_BILL, expense.recurring_bill_id)
            await self.repository.update(RecordKind.EXPENSE, expense.id, {'recurringBillId': DELETE_FIELD})
        except (StorageUnavailable, StorageError) as exc:
            logger.warning("Could not remove stale recurring bill link for %s: %s", expense.id, exc)
            report.failed.append(expense.id)
            return
        self._drop_bills(bill_id=expense.recurring_bill_id)
        self._swap(expense, replace(expense, recurring_bill_id=None))
        self.state.repair_candidates.discard(expense.id)
        report.unlinked.append(expense.id)

    async def _link_recurring_bill(self, expense: Expense) -> Expense:
        """Create the RecurringBill mirror of ``expense`` and point the expense at it.

        Raises:
            LinkRepairFailure: if either write fails.
        """
        bill = RecurringBill.mirror_of(expense)
        try:
            bill_id = await self.repository.create(RecordKind.RECURRING_BILL, bill.to_record())
        except (StorageUnavailable, StorageError) as exc:
            raise LinkRepairFailure(
                f"Could not create recurring bill for expense {expense.id}: {exc}", expense_id=expense.id
            ) from exc
        self.state.recurring_bills.append(replace(bill, id=bill_id))
        try:
            await self.repository.update(RecordKind.EXPENSE, expense.id, {'recurringBillId': bill_id})
        except (StorageUnavailable, StorageError) as exc:
            raise LinkRepairFailure(
                f"Could not link recurring bill {bill_id} to expense {expense.id}: {exc}", expense_id=expense.id
            ) from exc
        linked = replace(expense, recurring_bill_id=bill_id)
        self._swap(expense, linked)
        return linked

    async def _link_or_flag(self, expense: Expense) -> Expense:
        try:
            return await self._link_recurring_bill(expense)
        except LinkRepairFailure as exc:
            logger.warning("%s; will retry on next load", exc)
            self.state.repair_candidates.add(expense.id)
            return expense

    # -- mutations ------------------------------------------------------------------

    async def add(
        self,
        note: Any,
        amount: Any,
        date: Any,
        category: Any,
        kind: Any = ExpenseKind.SPENDING,
        bill_schedule: Any = BillSchedule.SINGLE,
    ) -> Expense:
        """Validate and save a new expense.

        Returns the expense as held in the working set: with a store id
        when the write succeeded, or pending (``id is None``) when the store
        could not be reached.

        Raises:
            ValidationError: before anything changes.
            StorageError: the store rejected the write; nothing is kept.
        """
        note, amount, day, category = validate_expense_fields(note, amount, date, category)
        kind_value = normalize_kind(kind)
        expense = Expense(
            note=note,
            amount=amount,
            date=day,
            category=category,
            kind=kind_value,
            bill_schedule=normalize_schedule(kind_value, bill_schedule),
        )
        self.state.expenses.append(expense)

        try:
            record_id = await self.repository.create(RecordKind.EXPENSE, expense.to_record())
        except StorageUnavailable as exc:
            logger.warning("Store unreachable, keeping expense %s locally: %s", expense.local_id, exc)
            self.state.online = False
            self._write_mirror()
            return expense
        except StorageError as exc:
            self._drop(expense)
            raise self._rejected("Could not save expense", exc) from exc

        saved = replace(expense, id=record_id)
        self._swap(expense, saved)
        logger.debug("Saved expense %s", record_id)
        if saved.is_recurring_bill:
            saved = await self._link_or_flag(saved)
        self._write_mirror()
        return saved

    async def edit(
        self,
        key: str,
        note: Any = None,
        amount: Any = None,
        date: Any = None,
        category: Any = None,
        kind: Any = None,
        bill_schedule: Any = None,
    ) -> Expense:
        """Change an expense; fields left as ``None`` keep their current value.

        The recurring-bill link follows the new kind/schedule: it is created,
        updated (amount and label) or torn down as needed.
        """
        current = self._require(key)
        note, amount, day, category = validate_expense_fields(
            current.note if note is None else note,
            current.amount if amount is None else amount,
            current.date if date is None else date,
            current.category if category is None else category,
        )
        kind_value = normalize_kind(current.kind if kind is None else kind)
        schedule = normalize_schedule(kind_value, current.bill_schedule if bill_schedule is None else bill_schedule)
        updated = replace(
            current,
            note=note,
            amount=amount,
            date=day,
            category=category,
            kind=kind_value,
            bill_schedule=schedule,
        )
        self._swap(current, updated)

        if current.is_pending:
            self._write_mirror()
            return updated

        fields = updated.to_record()
        fields.pop('recurringBillId', None)
        try:
            await self.repository.update(RecordKind.EXPENSE, current.id, fields)
        except StorageUnavailable as exc:
            logger.warning("Store unreachable, expense %s edited locally only: %s", current.id, exc)
            self.state.online = False
            self._write_mirror()
            return updated
        except StorageError as exc:
            self._swap(updated, current)
            raise self._rejected("Could not update expense", exc) from exc

        logger.debug("Updated expense %s", current.id)
        updated = await self._reconcile_link(updated)
        self._write_mirror()
        return updated

    async def _reconcile_link(self, expense: Expense) -> Expense:
        link = expense.recurring_bill_id
        try:
            if link and not expense.is_recurring_bill:
                await self.repository.delete(RecordKind.RECURRING_BILL, link)
                self._drop_bills(bill_id=link)
                await self.repository.update(RecordKind.EXPENSE, expense.id, {'recurringBillId': DELETE_FIELD})
                unlinked = replace(expense, recurring_bill_id=None)
                self._swap(expense, unlinked)
                return unlinked
            if link:
                bill = RecurringBill(amount=expense.amount, label=expense.note, expense_id=expense.id, id=link)
                await self.repository.update(RecordKind.RECURRING_BILL, link, bill.to_record())
                self._drop_bills(bill_id=link)
                self.state.recurring_bills.append(bill)
                return expense
            if expense.is_recurring_bill:
                return await self._link_recurring_bill(expense)
        except (LinkRepairFailure, StorageUnavailable, StorageError) as exc:
            logger.warning("Recurring bill link for expense %s not reconciled: %s", expense.id, exc)
            self.state.repair_candidates.add(expense.id)
        return self.find(expense.key) or expense

    async def remove(self, key: str) -> Expense:
        """Delete an expense and every RecurringBill linked to it.

        Raises:
            StorageError / StorageUnavailable: the expense itself could not
                be deleted. It stays in the working set; if its recurring
                bills were already deleted it loses its link and is queued
                for repair.
        """
        expense = self._require(key)
        if not expense.is_pending:
            cascaded = False
            try:
                if expense.recurring_bill_id:
                    await self.repository.delete(RecordKind.RECURRING_BILL, expense.recurring_bill_id)
                await self.repository.delete_where(RecordKind.RECURRING_BILL, 'expenseId', expense.id)
                cascaded = True
            except (StorageUnavailable, StorageError) as exc:
                logger.warning("Could not delete recurring bill for expense %s: %s", expense.id, exc)
            try:
                await self.repository.delete(RecordKind.EXPENSE, expense.id)
            except (StorageUnavailable, StorageError) as exc:
                if cascaded:
                    self._orphaned_by_failed_remove(expense)
                if isinstance(exc, StorageError):
                    raise self._rejected("Could not delete expense", exc) from exc
                raise
            self._drop_bills(bill_id=expense.recurring_bill_id, expense_id=expense.id)
            self.state.repair_candidates.discard(expense.id)
            logger.debug("Deleted expense %s", expense.id)
        self._drop(expense)
        self._write_mirror()
        return expense

    def _orphaned_by_failed_remove(self, expense: Expense) -> None:
        # the bills are already gone from the store but the expense stays
        self._drop_bills(bill_id=expense.recurring_bill_id, expense_id=expense.id)
        if expense.recurring_bill_id:
            self._swap(expense, replace(expense, recurring_bill_id=None))
        if expense.is_recurring_bill:
            self.state.repair_candidates.add(expense.id)
        self._write_mirror()

    async def clear_all(self) -> int:
        """Remove every expense; returns how many were removed."""
        removed = 0
        for expense in list(self.state.expenses):
            await self.remove(expense.key)
            removed += 1
        logger.info("Cleared %d expenses", removed)
        return removed

    # -- aggregates -----------------------------------------------------------------

    def _frame(self, month: Optional[str] = None, exclude_recurring: bool = True) -> pd.DataFrame:
        frame = expenses_frame(self.state.expenses)
        frame = frame[frame['month'] != ""]
        if exclude_recurring:
            frame = frame[~frame['recurring']]
        if month:
            frame = frame[frame['month'] == month]
        return frame

    def total_expenses(self) -> float:
        """All-time total of every expense except recurring bills, dated or not."""
        frame = expenses_frame(self.state.expenses)
        return round2(float(frame.loc[~frame['recurring'], 'amount'].sum()))

    def monthly_total(self, month: Optional[str] = None) -> float:
        """Sum of dated expenses in ``month`` (all months if ``None``).

        Recurring bills are left out; they are counted once through
        :meth:`recurring_bills_total`.
        """
        return round2(float(self._frame(month)['amount'].sum()))

    def category_totals(self, month: Optional[str] = None) -> Dict[str, float]:
        """Per-category sums, in the order each category first appears.

        Expenses without a category are summed under ``"other"``.
        """
        return self._category_sums(self._frame(month))

    @staticmethod
    def _category_sums(frame: pd.DataFrame) -> Dict[str, float]:
        if frame.empty:
            return {}
        grouped = frame.groupby('category', sort=False)['amount'].sum()
        return {str(category): round2(total) for category, total in grouped.items()}

    def biggest_category(self, month: Optional[str] = None) -> str:
        """Category with the largest total; uncategorised expenses never win."""
        frame = self._frame(month)
        top = "-"
        top_total = 0.0
        for category, total in self._category_sums(frame[frame['categorised']]).items():
            if total > top_total:
                top, top_total = category, total
        return top

    def recurring_bill_items(self) -> List[RecurringBill]:
        """Recurring bills counted once per linked expense."""
        seen = set()
        items = []
        for bill in self.state.recurring_bills:
            if bill.expense_id:
                if bill.expense_id in seen:
                    continue
                seen.add(bill.expense_id)
            items.append(bill)
        return items

    def recurring_bills_total(self) -> float:
        return round2(sum(bill.amount for bill in self.recurring_bill_items()))

    def monthly_bill_total(self, month: Optional[str] = None) -> float:
        """Every bill-type expense dated in ``month``, whatever its schedule.

        ``None`` covers every month.
        """
        frame = self._frame(month, exclude_recurring=False)
        return round2(float(frame.loc[frame['kind'] == ExpenseKind.BILL.value, 'amount'].sum()))

    def monthly_spending_total(self, month: Optional[str] = None) -> float:
        frame = self._frame(month, exclude_recurring=False)
        return round2(float(frame.loc[frame['kind'] == ExpenseKind.SPENDING.value, 'amount'].sum()))

    def monthly_overview(self, month: Optional[str] = None) -> Dict[str, float]:
        """Bills (single bills in the period plus recurring) against spending.

        Covers the same period as :meth:`monthly_total`: one month, or every
        month when ``month`` is ``None``.
        """
        frame = self._frame(month)
        single_bills = float(frame.loc[frame['kind'] == ExpenseKind.BILL.value, 'amount'].sum())
        return {
            'bills': round2(single_bills + self.recurring_bills_total()),
            'spending': self.monthly_spending_total(month),
        }

    def average_daily_spend(self, month: Optional[str] = None) -> float:
        frame = self._frame(month)
        days = frame['date'].nunique()
        if not days:
            return 0.0
        return round2(float(frame['amount'].sum()) / days)

    def monthly_totals(self) -> pd.DataFrame:
        """Chronological month series with ``month``, ``label`` and ``total`` columns."""
        frame = self._frame()
        if frame.empty:
            return pd.DataFrame(columns=['month', 'label', 'total'])
        totals = frame.groupby('month')['amount'].sum().sort_index().reset_index()
        totals.columns = ['month', 'total']
        totals['total'] = totals['total'].map(round2)
        totals.insert(1, 'label', totals['month'].map(month_label))
        return totals

    def month_keys(self) -> List[str]:
        return sorted({expense.month_key for expense in self.state.expenses if expense.month_key})

    def group_by_month(self) -> Dict[str, List[Expense]]:
        groups: Dict[str, List[Expense]] = {}
        for expense in self.state.expenses:
            if expense.month_key:
                groups.setdefault(expense.month_key, []).append(expense)
        return groups

    def search(self, query: Any) -> List[Expense]:
        """Case-insensitive match against note, category, amount and month."""
        needle = str(query or "").strip().lower()
        if not needle:
            return list(self.state.expenses)
        matches = []
        for expense in self.state.expenses:
            haystack = " ".join([
                expense.note,
                expense.category,
                f"{expense.amount:.2f}",
                str(month_label(expense.month_key)),
            ]).lower()
            if needle in haystack:
                matches.append(expense)
        return matches
