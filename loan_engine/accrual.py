"""Accrued interest for settlement figures and live balances.

``calculate_accrued_interest`` is the quick, schedule-free estimate used for
settlement quotes: it only needs the loan record and counts the as-of day
itself. ``calculate_accrued_interest_with_transactions`` is the accurate
figure; it reconciles against the schedule when there is one and otherwise
walks the capital-event ledger from the start date.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from .config import DAYS_PER_YEAR, DEFAULT_SETTINGS, EngineSettings
from .data_models import AccruedInterest, InterestType, Loan, RepaymentPeriod, ScheduleRow, Transaction, TransactionType
from .ledger import build_capital_events, calculate_interest_from_ledger
from .observability import NULL_OBSERVER, EngineObserver
from .reconciler import calculate_loan_interest_balance, principal_remaining_from_transactions
from .schedule import annuity_payment
from .utils import ZERO, days_between, round_money

# average period lengths for the settlement estimate
DAYS_PER_PERIOD = {
    RepaymentPeriod.MONTHLY: Decimal("30.417"),
    RepaymentPeriod.WEEKLY: Decimal(7),
}


def _penalty_split(loan: Loan, days_elapsed: int, as_of: date) -> Tuple[int, int]:
    """Split elapsed days into (days at base rate, days at penalty rate)."""
    if loan.penalty_rate is None or loan.penalty_rate_from is None:
        return days_elapsed, 0
    if loan.penalty_rate_from <= loan.start_date:
        return 0, days_elapsed
    if loan.penalty_rate_from <= as_of:
        before = days_between(loan.start_date, loan.penalty_rate_from)
        return before, days_elapsed - before
    return days_elapsed, 0


def _daily(principal: Decimal, annual: Decimal, days: int) -> Decimal:
    return principal * annual / DAYS_PER_YEAR * Decimal(days)


def _flat(loan: Loan, days: int, base: int, penalty: int, annual: Decimal, penalty_annual: Decimal) -> Decimal:
    if penalty > 0:
        return _daily(loan.principal_amount, annual, base) + _daily(loan.principal_amount, penalty_annual, penalty)
    duration = loan.duration or 0
    if duration <= 0:
        return _daily(loan.principal_amount, annual, days)
    total = loan.total_interest
    if total is None:
        total = loan.principal_amount * annual * Decimal(duration) / Decimal(loan.period.periods_per_year)
    per_day = total / (Decimal(duration) * DAYS_PER_PERIOD[loan.period])
    return min(per_day * Decimal(days), total)


def _reducing(loan: Loan, days: int, base: int, penalty: int, annual: Decimal, penalty_annual: Decimal) -> Decimal:
    duration = loan.duration or 0
    if duration <= 0:
        return _daily(loan.principal_amount, annual, days)
    per_period_days = DAYS_PER_PERIOD[loan.period]
    periods_elapsed = Decimal(days) / per_period_days
    completed = min(int(periods_elapsed), duration)
    ppy = Decimal(loan.period.periods_per_year)
    rate = annual / ppy
    penalty_rate = penalty_annual / ppy
    payment = annuity_payment(loan.principal_amount, rate, duration)
    balance = loan.principal_amount
    accrued = ZERO
    for i in range(completed):
        period_end_day = Decimal(i + 1) * per_period_days
        use_penalty = penalty > 0 and Decimal(base) < period_end_day
        accrued += balance * (penalty_rate if use_penalty else rate)
        balance -= payment - balance * rate
    if periods_elapsed > completed and balance > 0:
        partial_days = Decimal(days) - Decimal(completed) * per_period_days
        accrued += balance * (penalty_annual if penalty > 0 else annual) / DAYS_PER_YEAR * partial_days
    return accrued


def _interest_only(loan: Loan, days: int, base: int, penalty: int, annual: Decimal, penalty_annual: Decimal) -> Decimal:
    if penalty > 0:
        return _daily(loan.principal_amount, annual, base) + _daily(loan.principal_amount, penalty_annual, penalty)
    per_period = loan.principal_amount * annual / Decimal(loan.period.periods_per_year)
    return per_period * Decimal(days) / DAYS_PER_PERIOD[loan.period]


def _rolled_up(loan: Loan, days: int, base: int, penalty: int, annual: Decimal, penalty_annual: Decimal) -> Decimal:
    principal = loan.principal_amount
    amount = principal * (1 + annual / DAYS_PER_YEAR) ** base
    if penalty > 0:
        amount *= (1 + penalty_annual / DAYS_PER_YEAR) ** penalty
    return amount - principal


def _simple_daily(loan: Loan, days: int, base: int, penalty: int, annual: Decimal, penalty_annual: Decimal) -> Decimal:
    return _daily(loan.principal_amount, annual, base) + _daily(loan.principal_amount, penalty_annual, penalty)


def _no_interest(loan: Loan, days: int, base: int, penalty: int, annual: Decimal, penalty_annual: Decimal) -> Decimal:
    return ZERO


def _straight_line(loan: Loan, days: int, base: int, penalty: int, annual: Decimal, penalty_annual: Decimal) -> Decimal:
    """Fallback for unrecognised interest types."""
    if penalty > 0 or loan.total_interest is None or not loan.duration:
        return _simple_daily(loan, days, base, penalty, annual, penalty_annual)
    total_days = Decimal(loan.duration) * DAYS_PER_PERIOD[loan.period]
    return min(loan.total_interest / total_days * Decimal(days), loan.total_interest)


_ACCRUERS = {
    InterestType.FLAT: _flat,
    InterestType.REDUCING: _reducing,
    InterestType.INTEREST_ONLY: _interest_only,
    InterestType.ROLLED_UP: _rolled_up,
    InterestType.ROLL_UP_SERVICED: _simple_daily,
    InterestType.FIXED_CHARGE: _no_interest,
    InterestType.IRREGULAR_INCOME: _simple_daily,
}


def calculate_accrued_interest(
    loan: Loan,
    as_of: date,
    observer: EngineObserver = NULL_OBSERVER,
) -> Decimal:
    """Settlement-style interest accrued from the start date through ``as_of``.

    The as-of day itself is included. Pending loans and loans without a
    start date accrue nothing. When a penalty rate takes effect within the
    range, days before and after the cutover are charged at their own rates.
    """
    if loan.is_pending or loan.start_date is None:
        return ZERO
    days = max(0, days_between(loan.start_date, as_of) + 1)
    base, penalty = _penalty_split(loan, days, as_of)
    annual = loan.interest_rate / Decimal(100)
    penalty_annual = (loan.penalty_rate if loan.penalty_rate is not None else loan.interest_rate) / Decimal(100)
    variant = loan.variant
    if variant is None:
        observer.fallback_accrual(loan.interest_type)
        accruer = _straight_line
    else:
        accruer = _ACCRUERS[variant]
    return round_money(accruer(loan, days, base, penalty, annual, penalty_annual))


def calculate_live_interest_outstanding(
    loan: Loan,
    interest_paid: Decimal,
    as_of: date,
    observer: EngineObserver = NULL_OBSERVER,
) -> Decimal:
    """Accrued interest less interest paid; negative when overpaid."""
    return round_money(calculate_accrued_interest(loan, as_of, observer) - interest_paid)


def calculate_accrued_interest_with_transactions(
    loan: Loan,
    transactions: List[Transaction],
    as_of: date,
    schedule: Optional[List[ScheduleRow]] = None,
    settings: EngineSettings = DEFAULT_SETTINGS,
    observer: EngineObserver = NULL_OBSERVER,
) -> AccruedInterest:
    """Accrued, paid and remaining interest plus principal outstanding.

    With a schedule the figures come from period reconciliation. Without one
    interest is charged through the ledger from the start date up to and
    including ``as_of``.
    """
    if loan.is_pending or loan.start_date is None:
        return AccruedInterest(ZERO, ZERO, ZERO, loan.principal_amount)

    if schedule:
        balance = calculate_loan_interest_balance(loan, schedule, transactions, as_of, settings, observer)
        return AccruedInterest(
            interest_accrued=balance.total_interest_due,
            interest_paid=balance.total_interest_paid,
            interest_remaining=balance.interest_balance,
            principal_remaining=balance.principal_remaining,
        )

    live = [tx for tx in transactions if not tx.is_deleted and tx.date <= as_of]
    events = build_capital_events(loan, live)
    ledger = calculate_interest_from_ledger(loan, events, loan.start_date, as_of + timedelta(days=1), observer)
    paid = round_money(
        sum((tx.interest_applied for tx in live if tx.type is TransactionType.REPAYMENT), ZERO)
    )
    return AccruedInterest(
        interest_accrued=ledger.total_interest,
        interest_paid=paid,
        interest_remaining=ledger.total_interest - paid,
        principal_remaining=principal_remaining_from_transactions(loan, live),
    )
