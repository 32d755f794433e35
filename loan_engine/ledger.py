"""Capital-event ledger and ledger-based interest accrual.

Capital events are derived from transactions on demand: principal repaid
reduces the balance, later advances increase it. ``calculate_interest_from_ledger``
is the canonical interest calculation. It splits a date range into segments
during which both principal and rate are constant and charges simple daily
interest on each; every other view of interest (reconciled balances,
settlement figures) is expected to agree with it.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from itertools import groupby
from typing import Iterable, List

from .config import DAYS_PER_YEAR
from .data_models import CapitalEvent, LedgerResult, LedgerSegment, Loan, Transaction, TransactionType
from .observability import NULL_OBSERVER, EngineObserver
from .utils import ZERO, days_between, round_money


def build_capital_events(loan: Loan, transactions: Iterable[Transaction]) -> List[CapitalEvent]:
    """Return the principal-changing events of a loan, oldest first.

    Repayments with principal applied become negative events. Disbursements
    become positive events at their gross amount, except the one dated on
    the loan's start date, which is the initial principal itself. Deleted
    transactions are ignored. Events on the same day keep their input order.
    """
    events: List[CapitalEvent] = []
    for tx in transactions:
        if tx.is_deleted:
            continue
        if tx.type is TransactionType.REPAYMENT:
            if tx.principal_applied > 0:
                events.append(
                    CapitalEvent(
                        date=tx.date,
                        principal_change=-tx.principal_applied,
                        description="Principal repayment",
                        transaction_id=tx.id,
                    )
                )
        elif tx.type is TransactionType.DISBURSEMENT:
            if loan.start_date is not None and tx.date == loan.start_date:
                continue
            events.append(
                CapitalEvent(
                    date=tx.date,
                    principal_change=tx.capital_amount,
                    description="Further advance",
                    transaction_id=tx.id,
                )
            )
    events.sort(key=lambda e: e.date)
    return events


def effective_rate(loan: Loan, on: date) -> Decimal:
    """Annual rate in force on ``on``: the penalty rate once it applies."""
    if loan.penalty_rate is not None and loan.penalty_rate_from is not None and on >= loan.penalty_rate_from:
        return loan.penalty_rate
    return loan.interest_rate


def principal_at(loan: Loan, events: Iterable[CapitalEvent], on: date) -> Decimal:
    """Principal outstanding on ``on`` after every event dated on or before it."""
    principal = loan.principal_amount
    for event in events:
        if event.date <= on:
            principal += event.principal_change
    return max(ZERO, principal)


def calculate_interest_from_ledger(
    loan: Loan,
    events: List[CapitalEvent],
    from_date: date,
    to_date: date,
    observer: EngineObserver = NULL_OBSERVER,
) -> LedgerResult:
    """Interest due on ``loan`` for ``[from_date, to_date)``.

    Parameters
    ----------
    loan: Loan
        Supplies the opening principal, base rate and penalty rate.
    events: List[CapitalEvent]
        Output of ``build_capital_events``. Events dated on or before
        ``from_date`` are folded into the opening principal; later events
        take effect from their own date.
    from_date, to_date: date
        Range to charge; an empty or inverted range yields zero.

    Returns
    -------
    LedgerResult
        Rounded total, the contiguous segments (interest unrounded) and the
        day count, which equals the sum of the segment days.
    """
    if from_date >= to_date:
        return LedgerResult(total_interest=ZERO, segments=[], days=0)

    principal = principal_at(loan, events, from_date)
    inside = sorted((e for e in events if from_date < e.date < to_date), key=lambda e: e.date)
    changes = {day: sum((e.principal_change for e in group), ZERO) for day, group in groupby(inside, key=lambda e: e.date)}
    boundaries = set(changes)
    if loan.penalty_rate is not None and loan.penalty_rate_from is not None:
        if from_date < loan.penalty_rate_from < to_date:
            boundaries.add(loan.penalty_rate_from)

    segments: List[LedgerSegment] = []
    total = ZERO
    start = from_date
    for end in sorted(boundaries) + [to_date]:
        rate = effective_rate(loan, start)
        daily = rate / Decimal(100) / DAYS_PER_YEAR
        days = days_between(start, end)
        interest = principal * daily * Decimal(days)
        segments.append(
            LedgerSegment(
                start_date=start,
                end_date=end,
                days=days,
                principal=principal,
                rate=rate,
                daily_rate=daily,
                interest=interest,
            )
        )
        observer.ledger_segment(start, end, principal, rate, interest)
        total += interest
        if end in changes:
            principal = max(ZERO, principal + changes[end])
        start = end

    return LedgerResult(
        total_interest=round_money(total),
        segments=segments,
        days=days_between(from_date, to_date),
    )
