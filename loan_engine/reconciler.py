"""Reconciliation of recorded transactions against schedule periods.

Repayments are first matched to the period whose due date is closest, then
spread out so that a period holding several payments gives one away to a
nearby empty period. With payments assigned, each period that has fallen
due is re-priced through the capital-event ledger, which yields the live
interest due, interest paid and principal outstanding as of a date.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import List, Tuple

from .config import DEFAULT_SETTINGS, EngineSettings
from .data_models import InterestBalance, Loan, PeriodBreakdown, ScheduleRow, Transaction, TransactionType
from .ledger import build_capital_events, calculate_interest_from_ledger, principal_at
from .observability import NULL_OBSERVER, EngineObserver
from .utils import ZERO, clamp_money, days_between, round_money


def _distance(tx: Transaction, due: date) -> int:
    return abs(days_between(tx.date, due))


def _payment_order(tx: Transaction) -> Tuple[date, str]:
    return tx.date, tx.id or ""


def assign_transactions_to_periods(
    schedule: List[ScheduleRow],
    repayments: List[Transaction],
    window_days: int = DEFAULT_SETTINGS.redistribution_window_days,
    observer: EngineObserver = NULL_OBSERVER,
) -> List[List[Transaction]]:
    """Assign each repayment to one schedule period.

    Returns one list of transactions per schedule row, index-aligned with
    ``schedule``.

    Repayments are taken oldest first, ties broken by id, so the result does
    not depend on input order. Pass one puts every repayment in the period
    with the nearest due date (the earlier period wins a tie). Pass two
    repeatedly visits crowded
    periods in schedule order and moves the payment furthest from that
    period's due date into the nearest empty period, by schedule position,
    whose due date lies within ``window_days`` of the payment. Equidistant
    empty periods resolve to the earliest one. Passes repeat until nothing
    moves.
    """
    buckets: List[List[Transaction]] = [[] for _ in schedule]
    if not schedule:
        return buckets

    for tx in sorted(repayments, key=_payment_order):
        best = 0
        best_distance = _distance(tx, schedule[0].due_date)
        for idx in range(1, len(schedule)):
            distance = _distance(tx, schedule[idx].due_date)
            if distance < best_distance:
                best, best_distance = idx, distance
        buckets[best].append(tx)

    moved = True
    while moved:
        moved = False
        for idx, assigned in enumerate(buckets):
            if len(assigned) <= 1:
                continue
            empty = [j for j, b in enumerate(buckets) if not b]
            if not empty:
                return buckets
            due = schedule[idx].due_date
            furthest = max(assigned, key=lambda t: _distance(t, due))
            candidates = [j for j in empty if _distance(furthest, schedule[j].due_date) <= window_days]
            if not candidates:
                continue
            target = min(candidates, key=lambda j: (abs(j - idx), j))
            assigned.remove(furthest)
            buckets[target].append(furthest)
            observer.transaction_moved(furthest.id, idx, target)
            moved = True
    return buckets


def is_interest_in_advance(loan: Loan, schedule: List[ScheduleRow]) -> bool:
    """Explicit timing flag if the loan has one, else first due date == start date."""
    if loan.interest_paid_in_advance is not None:
        return bool(loan.interest_paid_in_advance)
    if not schedule or loan.start_date is None:
        return False
    return min(r.due_date for r in schedule) == loan.start_date


def principal_remaining_from_transactions(loan: Loan, transactions: List[Transaction]) -> Decimal:
    principal = loan.principal_amount
    for event in build_capital_events(loan, transactions):
        if event.principal_change > 0:
            principal += event.principal_change
    for tx in transactions:
        if tx.type is TransactionType.REPAYMENT:
            principal -= tx.principal_applied
    return clamp_money(principal)


def calculate_loan_interest_balance(
    loan: Loan,
    schedule: List[ScheduleRow],
    transactions: List[Transaction],
    as_of: date,
    settings: EngineSettings = DEFAULT_SETTINGS,
    observer: EngineObserver = NULL_OBSERVER,
) -> InterestBalance:
    """Live interest and principal position of ``loan`` as of ``as_of``.

    Only periods whose due date has arrived are priced, each through the
    ledger so that mid-period advances, repayments and penalty cutovers are
    charged exactly. Arrears periods run from the previous due date (or the
    start date) to their own due date; advance periods run from their due
    date to the next one, and the last runs for its own calculation days.
    """
    if loan.is_pending or loan.start_date is None:
        return InterestBalance(ZERO, ZERO, ZERO, loan.principal_amount)

    live = [tx for tx in transactions if not tx.is_deleted and tx.date <= as_of]
    principal_remaining = principal_remaining_from_transactions(loan, live)
    if not schedule:
        return InterestBalance(ZERO, ZERO, ZERO, principal_remaining)

    rows = sorted(schedule, key=lambda r: r.due_date)
    repayments = sorted((tx for tx in live if tx.type is TransactionType.REPAYMENT), key=_payment_order)
    events = build_capital_events(loan, live)
    advance = is_interest_in_advance(loan, rows)
    buckets = assign_transactions_to_periods(rows, repayments, settings.redistribution_window_days, observer)

    periods: List[PeriodBreakdown] = []
    total_due = ZERO
    total_paid = ZERO
    for idx, row in enumerate(rows):
        if row.due_date > as_of:
            break
        if advance:
            start = row.due_date
            if idx + 1 < len(rows):
                end = rows[idx + 1].due_date
            else:
                final_days = row.calculation_days or settings.advance_final_period_days
                end = row.due_date + timedelta(days=final_days)
        else:
            start = rows[idx - 1].due_date if idx else loan.start_date
            end = row.due_date
        ledger = calculate_interest_from_ledger(loan, events, start, end, observer)
        interest_paid = sum((tx.interest_applied for tx in buckets[idx]), ZERO)
        principal_paid = sum((tx.principal_applied for tx in buckets[idx]), ZERO)
        total_due += ledger.total_interest
        total_paid += interest_paid
        observer.period_reconciled(row.installment_number, ledger.total_interest, interest_paid)
        periods.append(
            PeriodBreakdown(
                installment_number=row.installment_number,
                due_date=row.due_date,
                period_start=start,
                period_end=end,
                days=ledger.days,
                principal_at_period_start=principal_at(loan, events, start),
                expected_interest=ledger.total_interest,
                interest_paid=interest_paid,
                principal_paid=principal_paid,
                had_capital_changes=any(start < e.date < end for e in events),
                transaction_ids=[tx.id for tx in buckets[idx]],
                segments=ledger.segments,
            )
        )

    total_due = round_money(total_due)
    total_paid = round_money(total_paid)
    return InterestBalance(
        total_interest_due=total_due,
        total_interest_paid=total_paid,
        interest_balance=total_due - total_paid,
        principal_remaining=principal_remaining,
        periods=periods,
    )

