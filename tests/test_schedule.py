from datetime import date
from decimal import Decimal

import pytest

from factories import repayment
from loan_engine.config import EngineSettings
from loan_engine.data_models import InterestAlignment, InterestType, RepaymentPeriod, RowStatus
from loan_engine.schedule import annuity_payment, calculate_roll_up_amount, generate_schedule


def test_reducing_balance_first_row(make_terms):
    rows = generate_schedule(make_terms())

    assert len(rows) == 12
    first = rows[0]
    assert first.due_date == date(2024, 2, 15)
    assert first.interest_amount == Decimal("100.00")
    assert first.principal_amount == Decimal("788.49")
    assert first.total_due == Decimal("888.49")
    assert all(r.status is RowStatus.PENDING for r in rows)
    assert all(r.principal_paid == 0 and r.interest_paid == 0 for r in rows)


def test_reducing_principal_sums_to_loan(make_terms):
    rows = generate_schedule(make_terms(principal=Decimal("25000"), rate=Decimal("7.5"), duration=36))

    assert sum(r.principal_amount for r in rows) == Decimal("25000")
    assert rows[-1].balance == 0
    assert all(r.total_due == r.principal_amount + r.interest_amount for r in rows)
    assert [r.installment_number for r in rows] == list(range(1, 37))
    assert rows == sorted(rows, key=lambda r: r.due_date)


def test_generation_is_idempotent(make_terms):
    terms = make_terms(interest_type=InterestType.FLAT)
    assert generate_schedule(terms) == generate_schedule(terms)


def test_recorded_principal_reduces_basis(make_terms):
    terms = make_terms(transactions=[repayment(date(2024, 2, 20), principal="2000")])
    rows = generate_schedule(terms)

    assert rows[1].calculation_principal_start == Decimal("8000.00")
    assert rows[1].interest_amount == Decimal("80.00")
    assert rows[-1].balance == 0


def test_flat_interest_is_even(make_terms):
    rows = generate_schedule(
        make_terms(principal=Decimal("5000"), rate=Decimal("10"), duration=6, interest_type=InterestType.FLAT)
    )

    assert len(rows) == 6
    assert all(r.interest_amount == Decimal("41.67") for r in rows)
    assert abs(sum(r.interest_amount for r in rows) - Decimal("250")) <= Decimal("0.03")
    assert all(r.principal_amount == Decimal("833.33") for r in rows[:-1])
    assert rows[-1].principal_amount == Decimal("833.35")
    assert rows[0].balance == Decimal("4166.67")
    assert rows[-1].balance == 0


def test_flat_principal_sums_to_loan(make_terms):
    rows = generate_schedule(make_terms(principal=Decimal("1000"), duration=3, interest_type=InterestType.FLAT))

    assert sum(r.principal_amount for r in rows) == Decimal("1000")
    assert [r.principal_amount for r in rows] == [Decimal("333.33"), Decimal("333.33"), Decimal("333.34")]
    assert [r.balance for r in rows] == [Decimal("666.67"), Decimal("333.34"), Decimal("0.00")]
    assert all(r.total_due == r.principal_amount + r.interest_amount for r in rows)


def test_weekly_flat(make_terms):
    rows = generate_schedule(
        make_terms(
            principal=Decimal("5200"),
            rate=Decimal("10"),
            duration=52,
            interest_type=InterestType.FLAT,
            period=RepaymentPeriod.WEEKLY,
            start_date=date(2024, 1, 1),
        )
    )

    assert len(rows) == 52
    assert rows[0].due_date == date(2024, 1, 8)
    assert rows[0].interest_amount == Decimal("10.00")
    assert rows[0].principal_amount == Decimal("100.00")


def test_interest_only_balloon(make_terms):
    rows = generate_schedule(
        make_terms(principal=Decimal("12000"), rate=Decimal("6"), interest_type=InterestType.INTEREST_ONLY)
    )

    assert all(r.interest_amount == Decimal("60.00") for r in rows)
    assert all(r.principal_amount == 0 for r in rows[:-1])
    assert rows[-1].principal_amount == Decimal("12000.00")
    assert rows[-1].total_due == Decimal("12060.00")
    assert rows[-2].balance == Decimal("12000.00")
    assert rows[-1].balance == 0


def test_interest_only_then_amortizing(make_terms):
    rows = generate_schedule(
        make_terms(
            principal=Decimal("12000"),
            rate=Decimal("6"),
            duration=6,
            interest_only_period=3,
            interest_type=InterestType.INTEREST_ONLY,
        )
    )

    assert [r.principal_amount for r in rows[:3]] == [0, 0, 0]
    assert all(r.principal_amount > 0 for r in rows[3:])
    assert sum(r.principal_amount for r in rows) == Decimal("12000")


def test_rolled_up_single_maturity_row_then_extensions(make_terms):
    rows = generate_schedule(
        make_terms(
            principal=Decimal("1000"),
            rate=Decimal("12"),
            duration=1,
            interest_type=InterestType.ROLLED_UP,
            start_date=date(2024, 1, 1),
        )
    )

    maturity = rows[0]
    assert maturity.due_date == date(2024, 2, 1)
    assert float(maturity.interest_amount) == pytest.approx(1000 * ((1 + 0.12 / 365) ** 31 - 1), abs=0.01)
    assert maturity.total_due == maturity.principal_amount + maturity.interest_amount
    assert not maturity.is_extension_period

    extensions = rows[1:]
    assert len(extensions) == 12
    assert all(r.is_extension_period and r.principal_amount == 0 for r in extensions)
    assert extensions[0].due_date == date(2024, 3, 1)
    assert extensions[0].interest_amount == Decimal("9.53")


def test_rolled_up_extension_count_is_configurable(make_terms):
    terms = make_terms(interest_type=InterestType.ROLLED_UP, duration=3)
    rows = generate_schedule(terms, EngineSettings(rolled_up_extension_periods=2))
    assert len(rows) == 3


def test_roll_up_amount_uses_average_month():
    assert calculate_roll_up_amount(Decimal("100000"), Decimal("12"), 6) == Decimal("6004.60")
    assert calculate_roll_up_amount(Decimal("100000"), Decimal("0"), 6) == 0


def test_roll_up_and_serviced(make_terms):
    rows = generate_schedule(
        make_terms(
            principal=Decimal("100000"),
            rate=Decimal("12"),
            duration=12,
            roll_up_length=6,
            interest_type=InterestType.ROLL_UP_SERVICED,
            start_date=date(2024, 1, 1),
        )
    )

    assert len(rows) == 7
    roll_up = rows[0]
    assert roll_up.is_roll_up_period
    assert roll_up.due_date == date(2024, 7, 1)
    assert roll_up.interest_amount == Decimal("6004.60")
    assert roll_up.principal_amount == 0

    serviced = rows[1:]
    assert all(r.is_serviced_period for r in serviced)
    assert serviced[0].due_date == date(2024, 8, 1)
    assert serviced[0].interest_amount == Decimal("1080.38")
    assert serviced[-1].principal_amount == Decimal("100000.00")
    assert serviced[-1].balance == 0
    assert all(r.principal_amount == 0 for r in serviced[:-1])


def test_roll_up_override_and_no_serviced_periods(make_terms):
    rows = generate_schedule(
        make_terms(
            principal=Decimal("50000"),
            duration=6,
            roll_up_length=6,
            roll_up_amount=Decimal("5000"),
            interest_type=InterestType.ROLL_UP_SERVICED,
        )
    )

    assert len(rows) == 1
    assert rows[0].interest_amount == Decimal("5000.00")
    assert rows[0].principal_amount == Decimal("50000.00")
    assert rows[0].total_due == Decimal("55000.00")
    assert rows[0].balance == 0


def test_fixed_charge_rows(make_terms):
    rows = generate_schedule(
        make_terms(interest_type=InterestType.FIXED_CHARGE, duration=3, monthly_charge=Decimal("250"))
    )

    assert len(rows) == 3
    assert all(r.charge_amount == Decimal("250.00") and r.total_due == Decimal("250.00") for r in rows)
    assert all(r.principal_amount == 0 and r.interest_amount == 0 for r in rows)


def test_irregular_income_has_no_schedule(make_terms):
    assert generate_schedule(make_terms(interest_type=InterestType.IRREGULAR_INCOME, duration=None)) == []


def test_missing_duration_yields_empty_schedule(make_terms):
    assert generate_schedule(make_terms(duration=None)) == []


def test_zero_rate_reducing(make_terms):
    rows = generate_schedule(make_terms(principal=Decimal("1200"), rate=Decimal("0")))
    assert all(r.principal_amount == Decimal("100.00") and r.interest_amount == 0 for r in rows)


def test_annuity_payment_guards():
    assert annuity_payment(Decimal("1000"), Decimal("0.01"), 0) == 0
    assert annuity_payment(Decimal("1200"), Decimal("0"), 12) == Decimal("100")


def test_monthly_first_alignment(make_terms):
    rows = generate_schedule(
        make_terms(
            principal=Decimal("12000"),
            duration=3,
            interest_alignment=InterestAlignment.MONTHLY_FIRST,
        )
    )

    assert [r.due_date for r in rows] == [date(2024, 1, 15), date(2024, 2, 1), date(2024, 3, 1), date(2024, 4, 1)]
    first = rows[0]
    assert first.calculation_days == 17
    assert first.interest_amount == Decimal("67.07")
    assert first.principal_amount == 0
    assert rows[-1].calculation_days == 14
    assert sum(r.principal_amount for r in rows) == Decimal("12000")


def test_monthly_first_extend_for_full_period(make_terms):
    rows = generate_schedule(
        make_terms(
            principal=Decimal("12000"),
            duration=3,
            interest_alignment=InterestAlignment.MONTHLY_FIRST,
            extend_for_full_period=True,
        )
    )
    assert rows[-1].calculation_days == 30


def test_advance_timing_shifts_due_dates(make_terms):
    rows = generate_schedule(make_terms(duration=3, interest_paid_in_advance=True))
    assert [r.due_date for r in rows] == [date(2024, 1, 15), date(2024, 2, 15), date(2024, 3, 15)]


def test_month_end_start_dates(make_terms):
    rows = generate_schedule(make_terms(duration=3, start_date=date(2023, 1, 31)))
    assert [r.due_date for r in rows] == [date(2023, 2, 28), date(2023, 3, 31), date(2023, 4, 30)]
