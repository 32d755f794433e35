from datetime import date
from decimal import Decimal

import pytest

from factories import repayment
from loan_engine.accrual import (
    calculate_accrued_interest,
    calculate_accrued_interest_with_transactions,
    calculate_live_interest_outstanding,
)
from loan_engine.data_models import InterestType, LoanTerms
from loan_engine.observability import EngineObserver
from loan_engine.reconciler import calculate_loan_interest_balance
from loan_engine.schedule import generate_schedule

THIRTY_DAYS = date(2024, 1, 30)


class RecordingObserver(EngineObserver):
    def __init__(self):
        self.fallbacks = []

    def fallback_accrual(self, interest_type):
        self.fallbacks.append(interest_type)


def test_interest_only_accrues_per_average_period(make_loan):
    loan = make_loan(principal_amount=Decimal("12000"), interest_type="Interest-Only")
    assert calculate_accrued_interest(loan, THIRTY_DAYS) == Decimal("118.35")


def test_penalty_days_charged_at_penalty_rate(make_loan):
    loan = make_loan(
        principal_amount=Decimal("12000"),
        interest_type="Interest-Only",
        penalty_rate=Decimal("24"),
        penalty_rate_from=date(2024, 1, 16),
    )
    assert calculate_accrued_interest(loan, THIRTY_DAYS) == Decimal("177.53")


def test_penalty_from_start_date_uses_penalty_rate_throughout(make_loan):
    loan = make_loan(
        principal_amount=Decimal("12000"),
        interest_type="Interest-Only",
        penalty_rate=Decimal("24"),
        penalty_rate_from=date(2024, 1, 1),
    )
    assert calculate_accrued_interest(loan, THIRTY_DAYS) == Decimal("236.71")


def test_rolled_up_compounds_daily(make_loan):
    loan = make_loan(principal_amount=Decimal("1000"), interest_type="Rolled-Up")
    accrued = calculate_accrued_interest(loan, THIRTY_DAYS)
    assert float(accrued) == pytest.approx(1000 * ((1 + 0.12 / 365) ** 30 - 1), abs=0.01)


def test_flat_accrual_is_capped_at_total_interest(make_loan):
    loan = make_loan(interest_type="Flat", total_interest=Decimal("1200"))
    assert calculate_accrued_interest(loan, date(2026, 1, 1)) == Decimal("1200.00")


def test_fixed_charge_accrues_nothing(make_loan):
    loan = make_loan(interest_type="Fixed Charge")
    assert calculate_accrued_interest(loan, THIRTY_DAYS) == 0


def test_unknown_type_falls_back_and_reports(make_loan):
    observer = RecordingObserver()
    loan = make_loan(principal_amount=Decimal("12000"), interest_type="Balloon Special")

    accrued = calculate_accrued_interest(loan, THIRTY_DAYS, observer)

    assert accrued == Decimal("118.36")
    assert observer.fallbacks == ["Balloon Special"]


def test_pending_and_undated_loans_accrue_nothing(make_loan):
    assert calculate_accrued_interest(make_loan(status="Pending"), THIRTY_DAYS) == 0
    assert calculate_accrued_interest(make_loan(start_date=None), THIRTY_DAYS) == 0


def test_live_outstanding_can_go_negative(make_loan):
    loan = make_loan(principal_amount=Decimal("12000"), interest_type="Interest-Only")
    assert calculate_live_interest_outstanding(loan, Decimal("200"), THIRTY_DAYS) == Decimal("-81.65")


def test_ledger_path_without_schedule(make_loan):
    loan = make_loan()
    transactions = [repayment(date(2024, 1, 15), principal="1000", interest="20")]

    accrued = calculate_accrued_interest_with_transactions(loan, transactions, THIRTY_DAYS)

    assert accrued.interest_accrued == Decimal("93.37")
    assert accrued.interest_paid == Decimal("20.00")
    assert accrued.interest_remaining == Decimal("73.37")
    assert accrued.principal_remaining == Decimal("9000")


def test_schedule_path_matches_reconciler(make_loan):
    loan = make_loan(principal_amount=Decimal("12000"), interest_type="Interest-Only")
    schedule = generate_schedule(
        LoanTerms(
            principal=loan.principal_amount,
            rate=loan.interest_rate,
            interest_type=InterestType.INTEREST_ONLY,
            start_date=loan.start_date,
            duration=3,
        )
    )
    transactions = [repayment(date(2024, 2, 1), interest="120")]
    as_of = date(2024, 3, 15)

    accrued = calculate_accrued_interest_with_transactions(loan, transactions, as_of, schedule)
    balance = calculate_loan_interest_balance(loan, schedule, transactions, as_of)

    assert accrued.interest_accrued == balance.total_interest_due == Decimal("236.71")
    assert accrued.interest_remaining == balance.interest_balance == Decimal("116.71")
