"""Formatting utilities for money and time display.

Every helper here is total: invalid input yields a default value rather
than an exception, since these back every displayed money/time figure.
"""

from __future__ import annotations

import calendar
import math
from datetime import date, datetime
from typing import Any, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .config import CURRENCY_SYMBOL

EMPTY_VALUE = "—"


def as_number(value: Any) -> Optional[float]:
    """Coerce ``value`` to a finite float, or ``None`` when it is not one."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def to_timestamp(value: Any) -> Optional[pd.Timestamp]:
    """Parse dates, datetimes, ISO strings and Timestamps; ``None`` if invalid."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        return None
    try:
        ts = pd.to_datetime(value, errors='coerce')
    except (TypeError, ValueError, OverflowError):
        return None
    if ts is None or pd.isna(ts):
        return None
    return ts


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves moving away from zero."""
    scaled = math.floor(abs(value) + 0.5)
    return -scaled if value < 0 else scaled


def round2(value: Any) -> float:
    """Round a currency value to 2 decimal places.

    Halves are rounded away from zero on ``value * 100``. Non-numeric or
    non-finite input returns ``0.0``.

    Example:
        >>> round2(22.499)
        22.5
        >>> round2(-0.125)
        -0.13
    """
    number = as_number(value)
    if number is None:
        return 0.0
    scaled = math.floor(abs(number) * 100 + 0.5)
    result = scaled / 100
    return -result if number < 0 and scaled else result


def format_elapsed(seconds: Any) -> str:
    """Format a running timer as ``HH:MM:SS``.

    Each component is floored, so 59.9 seconds is still ``00:00:59``.
    Negative or invalid input shows ``00:00:00``.
    """
    number = as_number(seconds)
    if number is None or number < 0:
        number = 0.0
    total = int(number)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_duration_minutes(total_minutes: Any) -> str:
    """Format a minute count as ``"Xh Ym"``, ``"Xh"`` or ``"Ym"``.

    Minutes are rounded to the nearest integer; when rounding reaches 60
    it carries into the hour. ``None``, NaN, negative and non-numeric
    input returns ``"—"``.

    Example:
        >>> format_duration_minutes(90)
        '1h 30m'
        >>> format_duration_minutes(59.6)
        '1h'
    """
    number = as_number(total_minutes)
    if number is None or number < 0:
        return EMPTY_VALUE
    hours = int(number // 60)
    minutes = round_half_up(number - hours * 60)
    if minutes >= 60:
        hours += 1
        minutes = 0
    if hours > 0 and minutes > 0:
        return f"{hours}h {minutes}m"
    if hours > 0:
        return f"{hours}h"
    return f"{minutes}m"


def format_break_label(break_minutes: Any) -> str:
    number = as_number(break_minutes)
    if number is None or number <= 0:
        return "0 min"
    if number >= 60:
        return format_duration_minutes(number)
    return f"{round_half_up(number)} min"


def split_break_minutes(total_minutes: Any) -> Tuple[int, int]:
    """Split a break length into ``(hours, minutes)`` for edit forms."""
    number = as_number(total_minutes)
    if number is None or number < 0:
        return 0, 0
    hours = int(number // 60)
    minutes = round_half_up(number - hours * 60)
    if minutes >= 60:
        hours += 1
        minutes = 0
    return hours, minutes


def month_key(value: Any) -> str:
    """Return the ``YYYY-MM`` key for a date-like value, or ``""``."""
    ts = to_timestamp(value)
    if ts is None:
        return ""
    return f"{ts.year:04d}-{ts.month:02d}"


def current_month_key(now: Optional[datetime] = None) -> str:
    return month_key(now or datetime.now())


def month_label(key: Any) -> Any:
    """Turn ``"2024-01"`` into ``"January 2024"``.

    Month names come from :mod:`calendar`, which follows the active
    locale. Keys that do not parse are returned unchanged.
    """
    if not isinstance(key, str):
        return key
    parts = key.split('-')
    if len(parts) < 2:
        return key
    try:
        year = int(parts[0])
        month = int(parts[1])
    except ValueError:
        return key
    if not 1 <= month <= 12:
        return key
    return f"{calendar.month_name[month]} {year}"


def format_session_date(value: Any) -> str:
    ts = to_timestamp(value)
    if ts is None:
        return EMPTY_VALUE
    return f"{ts.day} {ts.strftime('%b')} {ts.year}"


def to_datetime_local(value: Any) -> str:
    """Format a timestamp for a ``datetime-local`` input (``YYYY-MM-DDTHH:MM``)."""
    ts = to_timestamp(value)
    if ts is None:
        return ""
    return ts.strftime('%Y-%m-%dT%H:%M')


def working_days_in_month(value: Union[date, datetime, str, None]) -> int:
    """Count Monday–Friday days in the month containing ``value``."""
    ts = to_timestamp(value)
    if ts is None:
        return 0
    first = date(ts.year, ts.month, 1)
    if ts.month == 12:
        following = date(ts.year + 1, 1, 1)
    else:
        following = date(ts.year, ts.month + 1, 1)
    return int(np.busday_count(first, following))


def format_currency(amount: Any, include_sign: bool = True, symbol: str = CURRENCY_SYMBOL) -> str:
    """Format a currency amount with thousands separators.

    Args:
        amount: The amount to format
        include_sign: Whether to prefix the currency symbol
        symbol: Currency symbol to use

    Returns:
        Formatted currency string (e.g., "£1,234.56" or "1,234.56")

    Example:
        >>> format_currency(1234.56)
        '£1,234.56'
        >>> format_currency(-5)
        '-£5.00'
    """
    number = round2(amount)
    formatted = f"{abs(number):,.2f}"
    sign = "-" if number < 0 else ""
    return f"{sign}{symbol}{formatted}" if include_sign else f"{sign}{formatted}"
