import math
from datetime import date, datetime

import pandas as pd
import pytest

from winner_tracker.formatting import (
    as_number,
    format_break_label,
    format_currency,
    format_duration_minutes,
    format_elapsed,
    format_session_date,
    month_key,
    month_label,
    round2,
    split_break_minutes,
    to_datetime_local,
    working_days_in_month,
)


@pytest.mark.parametrize(
    "minutes, expected",
    [
        (0, "0m"),
        (59.4, "59m"),
        (59.6, "1h"),
        (60, "1h"),
        (90, "1h 30m"),
        (125, "2h 5m"),
    ],
)
def test_format_duration_minutes_boundaries(minutes, expected):
    assert format_duration_minutes(minutes) == expected


@pytest.mark.parametrize("bad", [None, -1, float("nan"), "abc", math.inf])
def test_format_duration_minutes_invalid_input_shows_dash(bad):
    assert format_duration_minutes(bad) == "—"


def test_format_elapsed_floors_each_component():
    assert format_elapsed(59.9) == "00:00:59"
    assert format_elapsed(3661) == "01:01:01"
    assert format_elapsed(-5) == "00:00:00"
    assert format_elapsed("nope") == "00:00:00"


def test_round2_half_away_from_zero_and_idempotent():
    assert round2(22.499) == 22.5
    assert round2(-0.125) == -0.13
    assert round2(0.125) == 0.13
    for value in [0.1, 2.675, 10 / 3, -7.777]:
        assert round2(round2(value)) == round2(value)


@pytest.mark.parametrize("bad", [None, "x", float("nan"), float("inf"), True])
def test_round2_invalid_is_zero(bad):
    assert round2(bad) == 0.0


def test_as_number_rejects_bools_and_non_finite():
    assert as_number("12.5") == 12.5
    assert as_number(False) is None
    assert as_number(float("nan")) is None


def test_month_key_accepts_many_date_shapes():
    assert month_key("2024-01-15") == "2024-01"
    assert month_key(date(2024, 12, 1)) == "2024-12"
    assert month_key(datetime(2023, 2, 28, 23, 59)) == "2023-02"
    assert month_key(pd.Timestamp("2022-07-04")) == "2022-07"
    assert month_key("not a date") == ""
    assert month_key(None) == ""


def test_month_label_passes_through_unparseable_keys():
    assert month_label("2024-01") == "January 2024"
    assert month_label("2024-13") == "2024-13"
    assert month_label("garbage") == "garbage"
    assert month_label(None) is None


def test_break_label_and_split():
    assert format_break_label(0) == "0 min"
    assert format_break_label(25) == "25 min"
    assert format_break_label(90) == "1h 30m"
    assert split_break_minutes(90) == (1, 30)
    assert split_break_minutes(59.7) == (1, 0)
    assert split_break_minutes(-3) == (0, 0)


def test_session_date_and_datetime_local():
    assert format_session_date("2024-01-05T09:30:00") == "5 Jan 2024"
    assert format_session_date(None) == "—"
    assert to_datetime_local(datetime(2024, 3, 9, 7, 5)) == "2024-03-09T07:05"
    assert to_datetime_local("") == ""


def test_working_days_in_month_counts_weekdays():
    # January 2024 starts on a Monday: 23 weekdays
    assert working_days_in_month(date(2024, 1, 17)) == 23
    # February 2024 (leap year): 21 weekdays
    assert working_days_in_month("2024-02-01") == 21
    assert working_days_in_month(None) == 0


def test_format_currency_sign_and_symbol():
    assert format_currency(5) == "£5.00"
    assert format_currency(-5) == "-£5.00"
    assert format_currency(1234.5) == "£1,234.50"
    assert format_currency(1234.5, include_sign=False) == "1,234.50"
