from datetime import date, datetime

from winner_tracker.models import (
    BillSchedule,
    Expense,
    ExpenseKind,
    RecurringBill,
    SavingGoal,
    UserSettings,
    WorkSession,
)


def test_expense_from_malformed_record_defaults_everything():
    expense = Expense.from_record({
        'id': 'e1',
        'notes': 'Legacy note',
        'amount': 'NaN',
        'date': 'not a date',
        'type': 'gift',
        'billSchedule': 'weekly',
        'recurringBillId': 42,
    })

    assert expense.note == 'Legacy note'
    assert expense.amount == 0.0
    assert expense.date is None
    assert expense.kind is ExpenseKind.SPENDING
    assert expense.bill_schedule is BillSchedule.SINGLE
    assert expense.recurring_bill_id is None
    assert expense.key == 'e1'


def test_schedule_is_single_unless_kind_is_bill():
    spending = Expense.from_record({'type': 'spending', 'billSchedule': 'recurring'})
    bill = Expense.from_record({'type': 'bill', 'billSchedule': 'recurring', 'date': '2024-03-01'})

    assert spending.bill_schedule is BillSchedule.SINGLE
    assert bill.is_recurring_bill
    assert bill.month_key == '2024-03'
    assert spending.is_pending


def test_expense_to_record_uses_store_field_names():
    expense = Expense(
        note='Rent', amount=500.0, date=date(2024, 1, 1), category='Housing',
        kind=ExpenseKind.BILL, bill_schedule=BillSchedule.RECURRING, id='e1', recurring_bill_id='rb1',
    )

    assert expense.to_record(include_id=True) == {
        'id': 'e1', 'note': 'Rent', 'amount': 500.0, 'date': '2024-01-01', 'category': 'Housing',
        'type': 'bill', 'billSchedule': 'recurring', 'recurringBillId': 'rb1',
    }
    assert 'recurringBillId' not in Expense.from_record({'note': 'x'}).to_record()


def test_recurring_bill_label_fallbacks_and_mirror():
    assert RecurringBill.from_record({'amount': 9}).label == 'Bill'
    assert RecurringBill.from_record({'label': 'Gym', 'amount': 30}).label == 'Gym'

    expense = Expense(note='Phone', amount=20.0, date=date(2024, 1, 2), category='Bills', id='e9')
    mirror = RecurringBill.mirror_of(expense)
    assert mirror.to_record() == {'amount': 20.0, 'note': 'Phone', 'name': 'Phone', 'expenseId': 'e9'}


def test_work_session_sums_legacy_breaks():
    session = WorkSession.from_record({
        'startTime': '2024-01-01T09:00:00',
        'breaks': [{'startMs': 0, 'endMs': 600000}, {'startMs': 0, 'endMs': 300000}, 'junk'],
    })

    assert session.break_minutes == 15
    assert session.is_active
    assert session.sort_key == datetime(2024, 1, 1, 9, 0)


def test_work_session_sort_key_falls_back_to_end_time():
    session = WorkSession.from_record({'endTime': '2024-01-01T17:00:00', 'totalMinutes': 120})

    assert not session.is_active
    assert session.sort_key == datetime(2024, 1, 1, 17, 0)
    assert session.worked_hours == 2


def test_user_settings_out_of_range_values_load_as_zero():
    assert UserSettings.from_record(None) == UserSettings(0.0, 0.0)
    assert UserSettings.from_record({'hourlyRate': -4, 'savingsPercent': 150}) == UserSettings(0.0, 0.0)
    assert UserSettings.from_record({'hourlyRate': '15', 'savingsPercent': 10}) == UserSettings(15.0, 10.0)


def test_saving_goal_accepts_legacy_field_names():
    goal = SavingGoal.from_record({'title': 'Holiday', 'targetAmount': 200, 'saved': 50})

    assert goal.label == 'Holiday'
    assert goal.progress == 25.0
    assert SavingGoal.from_record({'goalAmount': 0, 'current': 10}).progress == 0.0
    assert SavingGoal.from_record({'target': 10, 'current': 30}).progress == 100.0


def test_negative_amounts_from_the_store_load_as_zero():
    assert Expense.from_record({'note': 'Refund', 'amount': -12.5}).amount == 0.0
    assert RecurringBill.from_record({'amount': '-30'}).amount == 0.0
    assert Expense.from_record({'note': 'Tea', 'amount': '2.40'}).amount == 2.4
