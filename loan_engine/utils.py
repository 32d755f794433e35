"""Utility functions for the loan engine.

This module provides helpers for calendar arithmetic (adding months and weeks,
month boundaries, day counts), for normalizing dates to day granularity and for
money handling with ``Decimal``. All amounts shown to users are rounded to the
cent using round-half-up, which is what borrowers see on statements.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, getcontext
from typing import Any, Optional

getcontext().prec = 28  # increase decimal precision to avoid rounding errors

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_date(value: Any) -> Optional[date]:
    """Normalize ``value`` to a ``date`` (day granularity, no time component).

    Accepts ``date``, ``datetime`` and ISO strings (``YYYY-MM-DD`` optionally
    followed by a time part). ``None`` and empty strings yield ``None``.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text[:10])
        except ValueError as exc:
            raise ValueError(f"Invalid date string: {value}") from exc
    raise ValueError(f"Cannot interpret {value!r} as a date")


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def add_weeks(dt: date, weeks: int) -> date:
    return dt + timedelta(weeks=weeks)


def advance_period(dt: date, periods: int, weekly: bool = False) -> date:
    """Step ``periods`` repayment periods forward from ``dt``.

    Always pass the loan's start date as ``dt``; chaining single steps would
    lose the original day of month after a clamp (Jan 31 -> Feb 28 -> Mar 28).
    """
    if weekly:
        return add_weeks(dt, periods)
    return add_months(dt, periods)


def start_of_month(dt: date) -> date:
    return dt.replace(day=1)


def end_of_month(dt: date) -> date:
    return dt.replace(day=calendar.monthrange(dt.year, dt.month)[1])


def days_between(start: date, end: date) -> int:
    """Whole days from ``start`` to ``end`` (negative if ``end`` is earlier)."""
    return (end - start).days


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """Convert numbers and numeric strings into ``Decimal``.

    ``None`` and empty strings map to ``default``. Floats go through ``str``
    so that ``0.1`` becomes ``Decimal("0.1")`` rather than its binary
    expansion.
    """
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid numeric value: {value}")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    return decimal_from_str(str(value))


def decimal_from_str(value: str) -> Decimal:
    """Convert a numeric string into a ``Decimal``.

    The function strips any commas and handles both integer and float-like
    strings. It raises ``ValueError`` if conversion fails.
    """
    try:
        cleaned = value.replace(",", "").strip()
        return Decimal(cleaned)
    except (InvalidOperation, AttributeError) as exc:
        raise ValueError(f"Invalid numeric value: {value}") from exc


def round_money(amount: Decimal) -> Decimal:
    """Round to the cent, half-up."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def clamp_money(amount: Decimal) -> Decimal:
    """Round to the cent and clamp negatives to zero."""
    return max(ZERO, round_money(amount))
