from datetime import date, datetime
from decimal import Decimal

import pytest

from loan_engine.utils import (
    add_months,
    add_weeks,
    advance_period,
    clamp_money,
    decimal_from_str,
    end_of_month,
    round_money,
    to_date,
    to_decimal,
)


def test_add_months_clamps_to_month_end():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
    assert add_months(date(2023, 11, 30), 3) == date(2024, 2, 29)


def test_advance_period_counts_from_origin_not_chained():
    start = date(2023, 1, 31)
    assert [advance_period(start, i) for i in (1, 2, 3)] == [
        date(2023, 2, 28),
        date(2023, 3, 31),
        date(2023, 4, 30),
    ]
    # chaining would drift to the 28th
    assert add_months(add_months(start, 1), 1) == date(2023, 3, 28)


def test_weekly_steps():
    assert add_weeks(date(2024, 2, 26), 1) == date(2024, 3, 4)
    assert advance_period(date(2024, 1, 1), 2, weekly=True) == date(2024, 1, 15)


def test_end_of_month_handles_leap_years():
    assert end_of_month(date(2024, 2, 10)) == date(2024, 2, 29)
    assert end_of_month(date(2023, 2, 10)) == date(2023, 2, 28)


def test_to_date_drops_time_component():
    assert to_date("2024-03-05T10:30:00") == date(2024, 3, 5)
    assert to_date(datetime(2024, 3, 5, 23, 59)) == date(2024, 3, 5)
    assert to_date("") is None
    with pytest.raises(ValueError):
        to_date("05/03/2024")


def test_money_helpers_round_half_up():
    assert round_money(Decimal("2.345")) == Decimal("2.35")
    assert round_money(Decimal("2.344")) == Decimal("2.34")
    assert clamp_money(Decimal("-3.10")) == Decimal("0")


def test_to_decimal_conversions():
    assert to_decimal(0.1) == Decimal("0.1")
    assert to_decimal(None) == Decimal("0")
    assert to_decimal("1,250.50") == Decimal("1250.50")
    with pytest.raises(ValueError):
        to_decimal(True)
    with pytest.raises(ValueError):
        decimal_from_str("abc")
