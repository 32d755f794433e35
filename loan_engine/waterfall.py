"""Payment waterfall allocation.

A payment is applied to unpaid schedule rows oldest first: interest before
principal within each row. Money left once every row is settled is either
kept as credit for the next payment or, with the ``reduce_principal``
option, used to pay down principal on later rows. Fixed charges are settled
together with interest.

The functions do not modify the rows they are given; they return the new
paid figures as ``RowUpdate`` records for the caller to persist.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from .config import DEFAULT_SETTINGS, EngineSettings
from .data_models import OverpaymentOption, RowStatus, RowUpdate, ScheduleRow, WaterfallResult
from .utils import ZERO, round_money


@dataclass
class _RowState:
    row: ScheduleRow
    interest_paid: Decimal
    principal_paid: Decimal
    interest_applied: Decimal = ZERO
    principal_applied: Decimal = ZERO

    @property
    def interest_due(self) -> Decimal:
        return max(ZERO, self.row.interest_amount + self.row.charge_amount - self.interest_paid)

    @property
    def principal_due(self) -> Decimal:
        return max(ZERO, self.row.principal_amount - self.principal_paid)

    @property
    def touched(self) -> bool:
        return self.interest_applied > 0 or self.principal_applied > 0

    def status(self, tolerance: Decimal) -> RowStatus:
        paid = self.interest_paid + self.principal_paid
        if paid >= self.row.total_due - tolerance:
            return RowStatus.PAID
        if paid > 0:
            return RowStatus.PARTIAL
        return self.row.status

    def pay_interest(self, funds: Decimal) -> Decimal:
        amount = min(funds, self.interest_due)
        self.interest_paid += amount
        self.interest_applied += amount
        return amount

    def pay_principal(self, funds: Decimal) -> Decimal:
        amount = min(funds, self.principal_due)
        self.principal_paid += amount
        self.principal_applied += amount
        return amount


def _open_rows(rows: List[ScheduleRow]) -> List[_RowState]:
    ordered = sorted(rows, key=lambda r: r.due_date)
    return [
        _RowState(row=r, interest_paid=r.interest_paid, principal_paid=r.principal_paid)
        for r in ordered
        if r.status is not RowStatus.PAID
    ]


def _in_first_pass(state: _RowState, due_by: Optional[date]) -> bool:
    return due_by is None or state.row.due_date <= due_by


def _handle_overpayment(
    states: List[_RowState],
    funds: Decimal,
    option: OverpaymentOption,
) -> Decimal:
    """Spend ``funds`` on outstanding principal of later rows. Returns the amount used."""
    if option is not OverpaymentOption.REDUCE_PRINCIPAL:
        return ZERO
    used = ZERO
    for state in states:
        if funds <= 0:
            break
        paid = state.pay_principal(funds)
        funds -= paid
        used += paid
    return used


def _result(states: List[_RowState], leftover: Decimal, reduction: Decimal, tolerance: Decimal) -> WaterfallResult:
    updates: List[RowUpdate] = []
    for state in states:
        if not state.touched:
            continue
        updates.append(
            RowUpdate(
                id=state.row.id,
                installment_number=state.row.installment_number,
                interest_paid=round_money(state.interest_paid),
                principal_paid=round_money(state.principal_paid),
                status=state.status(tolerance),
                interest_applied=round_money(state.interest_applied),
                principal_applied=round_money(state.principal_applied),
            )
        )
    leftover = round_money(max(ZERO, leftover))
    return WaterfallResult(
        updates=updates,
        remaining_payment=leftover,
        principal_reduction=round_money(reduction),
        credit_amount=leftover,
    )


def apply_payment_waterfall(
    payment: Decimal,
    rows: List[ScheduleRow],
    existing_credit: Decimal = ZERO,
    option: OverpaymentOption = OverpaymentOption.CREDIT,
    due_by: Optional[date] = None,
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> WaterfallResult:
    """Apply a lump-sum ``payment`` (plus any existing credit) to ``rows``.

    Parameters
    ----------
    payment: Decimal
        Cash received.
    rows: List[ScheduleRow]
        Schedule rows in any order; ``Paid`` rows are skipped.
    existing_credit: Decimal
        Credit carried over from earlier payments, spent first.
    option: OverpaymentOption
        What to do with money left after the regular pass.
    due_by: Optional[date]
        When given, the regular pass only settles rows due on or before this
        date. Later rows are reachable only through ``reduce_principal``.

    Returns
    -------
    WaterfallResult
        One update per row that received money, the money left over
        (never negative), the principal reduction from the overpayment pass
        and the credit to carry forward.
    """
    funds = payment + existing_credit
    states = _open_rows(rows)
    for state in states:
        if funds <= 0:
            break
        if not _in_first_pass(state, due_by):
            continue
        funds -= state.pay_interest(funds)
        funds -= state.pay_principal(funds)
    reduction = ZERO
    if funds > 0:
        reduction = _handle_overpayment(states, funds, option)
        funds -= reduction
    return _result(states, funds, reduction, settings.paid_tolerance)


def apply_manual_payment(
    interest_amount: Decimal,
    principal_amount: Decimal,
    rows: List[ScheduleRow],
    existing_credit: Decimal = ZERO,
    option: OverpaymentOption = OverpaymentOption.CREDIT,
    due_by: Optional[date] = None,
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> WaterfallResult:
    """Apply a payment whose interest/principal split was chosen by hand.

    Interest goes to the oldest unpaid interest, then principal plus any
    existing credit to the oldest unpaid principal. Interest that finds no
    row to pay joins the principal leftover and follows ``option``.
    """
    states = _open_rows(rows)
    interest_funds = interest_amount
    for state in states:
        if interest_funds <= 0:
            break
        if _in_first_pass(state, due_by):
            interest_funds -= state.pay_interest(interest_funds)
    principal_funds = principal_amount + existing_credit
    for state in states:
        if principal_funds <= 0:
            break
        if _in_first_pass(state, due_by):
            principal_funds -= state.pay_principal(principal_funds)
    funds = principal_funds + interest_funds
    reduction = ZERO
    if funds > 0:
        reduction = _handle_overpayment(states, funds, option)
        funds -= reduction
    return _result(states, funds, reduction, settings.paid_tolerance)


def apply_updates(rows: List[ScheduleRow], updates: List[RowUpdate]) -> List[ScheduleRow]:
    """Return copies of ``rows`` with ``updates`` applied, matched by installment number."""
    by_number: Dict[int, RowUpdate] = {u.installment_number: u for u in updates}
    result = []
    for row in rows:
        update = by_number.get(row.installment_number)
        if update is None:
            result.append(row)
            continue
        result.append(
            replace(
                row,
                interest_paid=update.interest_paid,
                principal_paid=update.principal_paid,
                status=update.status,
            )
        )
    return result
