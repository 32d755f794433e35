"""Repayment schedule generation.

This module turns ``LoanTerms`` into a list of ``ScheduleRow`` objects, one
per installment. Each interest type has its own generator; the public entry
point ``generate_schedule`` dispatches on the ``InterestType`` enum so that a
new variant without a generator fails loudly instead of falling into the
wrong branch.

Every amount is rounded to the cent when its row is created and running
balances never drop below zero. Generators are pure: the same terms always
produce the same rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from .config import DAYS_PER_YEAR, DEFAULT_SETTINGS, EngineSettings
from .data_models import (
    InterestAlignment,
    InterestType,
    LoanTerms,
    RepaymentPeriod,
    ScheduleRow,
    Transaction,
    TransactionType,
)
from .observability import NULL_OBSERVER, EngineObserver
from .utils import (
    ZERO,
    add_months,
    advance_period,
    clamp_money,
    days_between,
    end_of_month,
    round_money,
    start_of_month,
)


def period_rate(rate: Decimal, period: RepaymentPeriod) -> Decimal:
    """Per-period rate as a fraction (12% monthly -> 0.01)."""
    return rate / Decimal(100) / Decimal(period.periods_per_year)


def daily_rate(rate: Decimal) -> Decimal:
    return rate / Decimal(100) / DAYS_PER_YEAR


def annuity_payment(principal: Decimal, rate_per_period: Decimal, periods: int) -> Decimal:
    """Return the equal installment that repays ``principal`` over ``periods``.

    The formula is:

        payment = P * (i * (1 + i)^n) / ((1 + i)^n - 1)

    With a zero rate the payment is ``P / n``; with no periods left it is
    zero.
    """
    if periods <= 0 or principal <= 0:
        return ZERO
    if rate_per_period == 0:
        return principal / Decimal(periods)
    factor = (1 + rate_per_period) ** periods
    return principal * (rate_per_period * factor) / (factor - 1)


def calculate_roll_up_amount(
    principal: Decimal,
    rate: Decimal,
    roll_up_length: int,
    month_days: Decimal = DEFAULT_SETTINGS.roll_up_month_days,
) -> Decimal:
    """Interest rolled up over ``roll_up_length`` months, rounded to the cent.

    Months are converted to days with an average month length so the figure
    does not depend on which calendar months the roll-up spans.
    """
    if principal <= 0 or rate <= 0 or roll_up_length <= 0:
        return ZERO
    return round_money(principal * daily_rate(rate) * Decimal(roll_up_length) * month_days)


def principal_paid_before(transactions: List[Transaction], on: date) -> Decimal:
    """Sum of principal applied by repayments dated strictly before ``on``."""
    total = ZERO
    for tx in transactions:
        if tx.is_deleted or tx.type is not TransactionType.REPAYMENT:
            continue
        if tx.date < on and tx.principal_applied > 0:
            total += tx.principal_applied
    return total


@dataclass
class _Slot:
    """A due date together with how its interest is charged.

    ``days`` is ``None`` for a full period charged at the periodic rate;
    otherwise interest is charged daily for that many days. Non-amortizing
    slots carry interest only.
    """

    due_date: date
    calculation_days: int
    days: Optional[int] = None
    amortizing: bool = True


def _period_slots(terms: LoanTerms, periods: int) -> List[_Slot]:
    weekly = terms.period is RepaymentPeriod.WEEKLY
    shift = 1 if terms.interest_paid_in_advance else 0
    slots = []
    for i in range(1, periods + 1):
        period_start = advance_period(terms.start_date, i - 1, weekly)
        period_end = advance_period(terms.start_date, i, weekly)
        slots.append(
            _Slot(
                due_date=advance_period(terms.start_date, i - shift, weekly),
                calculation_days=days_between(period_start, period_end),
            )
        )
    return slots


def _monthly_first_slots(terms: LoanTerms, periods: int) -> List[_Slot]:
    """Slots aligned to the 1st of each month.

    The first row falls due on the start date and covers the rest of that
    calendar month. Later rows fall due on the 1st of each month until the
    natural end date (start + duration months). Unless the loan is extended
    for a full period, a final month cut short by the end date is charged for
    its actual days only.
    """
    start = terms.start_date
    first_days = days_between(start, end_of_month(start)) + 1
    slots = [_Slot(due_date=start, calculation_days=first_days, days=first_days, amortizing=False)]
    natural_end = add_months(start, periods)
    month_start = start_of_month(start)
    k = 1
    due = add_months(month_start, k)
    while due < natural_end:
        next_due = add_months(month_start, k + 1)
        if not terms.extend_for_full_period and natural_end < next_due:
            days = days_between(due, natural_end)
            slots.append(_Slot(due_date=due, calculation_days=days, days=days))
        else:
            slots.append(_Slot(due_date=due, calculation_days=days_between(due, next_due)))
        k += 1
        due = add_months(month_start, k)
    if len(slots) == 1:
        slots[0].amortizing = True
    return slots


def _build_slots(terms: LoanTerms) -> List[_Slot]:
    periods = terms.duration or 0
    if periods <= 0:
        return []
    if terms.interest_alignment is InterestAlignment.MONTHLY_FIRST and terms.period is RepaymentPeriod.MONTHLY:
        return _monthly_first_slots(terms, periods)
    return _period_slots(terms, periods)


def _slot_interest(basis: Decimal, slot: _Slot, terms: LoanTerms) -> Decimal:
    if slot.days is not None:
        return basis * daily_rate(terms.rate) * Decimal(slot.days)
    return basis * period_rate(terms.rate, terms.period)


def _flat_rows(terms: LoanTerms, settings: EngineSettings) -> List[ScheduleRow]:
    """Flat rate: interest on the original principal every period.

    Total interest is ``P * rate * n / periods_per_year`` split evenly; the
    principal is split evenly across amortizing rows, the last of which
    absorbs the rounding so principal sums to the loan.
    """
    slots = _build_slots(terms)
    amortizing = [s for s in slots if s.amortizing]
    if not amortizing:
        return []
    principal = terms.principal
    principal_each = round_money(principal / Decimal(len(amortizing)))
    last_amortizing = amortizing[-1]
    rows: List[ScheduleRow] = []
    repaid = ZERO
    for number, slot in enumerate(slots, start=1):
        interest = round_money(_slot_interest(principal, slot, terms))
        if slot is last_amortizing:
            # last row takes the rounding remainder
            principal_part = clamp_money(principal - repaid)
        elif slot.amortizing:
            principal_part = principal_each
        else:
            principal_part = ZERO
        repaid += principal_part
        rows.append(
            ScheduleRow(
                installment_number=number,
                due_date=slot.due_date,
                principal_amount=principal_part,
                interest_amount=interest,
                total_due=principal_part + interest,
                balance=clamp_money(principal - repaid),
                calculation_days=slot.calculation_days,
                calculation_principal_start=principal,
            )
        )
    return rows


def _amortizing_rows(terms: LoanTerms, slots: List[_Slot], interest_only_count: int) -> List[ScheduleRow]:
    """Shared generator for Reducing and Interest-Only loans.

    The first ``interest_only_count`` amortizing rows pay interest only; the
    rest amortize the outstanding basis with a payment recomputed every row
    over the rows that remain. The basis is the principal less whichever is
    larger: principal scheduled so far or principal actually recorded as paid
    before the row's due date. The last row always clears the basis, which
    is the balloon for a loan that never leaves its interest-only phase.
    """
    amortizing_total = sum(1 for s in slots if s.amortizing)
    if amortizing_total == 0:
        return []
    rate = period_rate(terms.rate, terms.period)
    rows: List[ScheduleRow] = []
    scheduled = ZERO
    index = 0
    for number, slot in enumerate(slots, start=1):
        recorded = principal_paid_before(terms.transactions, slot.due_date)
        basis = clamp_money(terms.principal - max(scheduled, recorded))
        interest = round_money(_slot_interest(basis, slot, terms))
        if not slot.amortizing:
            principal_part = ZERO
        else:
            index += 1
            remaining = amortizing_total - index + 1
            if remaining == 1:
                principal_part = basis
            elif index <= interest_only_count:
                principal_part = ZERO
            else:
                payment = annuity_payment(basis, rate, remaining)
                principal_part = min(basis, clamp_money(payment - basis * rate))
        scheduled = max(scheduled, recorded) + principal_part
        rows.append(
            ScheduleRow(
                installment_number=number,
                due_date=slot.due_date,
                principal_amount=principal_part,
                interest_amount=interest,
                total_due=principal_part + interest,
                balance=clamp_money(basis - principal_part),
                calculation_days=slot.calculation_days,
                calculation_principal_start=basis,
            )
        )
    return rows


def _reducing_rows(terms: LoanTerms, settings: EngineSettings) -> List[ScheduleRow]:
    return _amortizing_rows(terms, _build_slots(terms), interest_only_count=0)


def _interest_only_rows(terms: LoanTerms, settings: EngineSettings) -> List[ScheduleRow]:
    slots = _build_slots(terms)
    amortizing = sum(1 for s in slots if s.amortizing)
    count = terms.interest_only_period if terms.interest_only_period > 0 else amortizing
    return _amortizing_rows(terms, slots, interest_only_count=count)


def _rolled_up_rows(terms: LoanTerms, settings: EngineSettings) -> List[ScheduleRow]:
    """Rolled-Up: no payments until maturity, interest compounding daily.

    One maturity row carries the final principal and all rolled-up interest.
    It is followed by monthly interest-only extension rows showing the
    exposure if the loan runs past maturity.
    """
    periods = terms.duration or 0
    if periods <= 0:
        return []
    weekly = terms.period is RepaymentPeriod.WEEKLY
    step = Decimal(1) + daily_rate(terms.rate)
    accumulated = ZERO
    final_principal = terms.principal
    for i in range(1, periods + 1):
        period_start = advance_period(terms.start_date, i - 1, weekly)
        period_end = advance_period(terms.start_date, i, weekly)
        final_principal = clamp_money(terms.principal - principal_paid_before(terms.transactions, period_start))
        days = days_between(period_start, period_end)
        accumulated += (final_principal + accumulated) * (step ** days - 1)
    maturity = advance_period(terms.start_date, periods, weekly)
    interest = round_money(accumulated)
    rows = [
        ScheduleRow(
            installment_number=1,
            due_date=maturity,
            principal_amount=final_principal,
            interest_amount=interest,
            total_due=final_principal + interest,
            balance=final_principal,
            calculation_days=days_between(terms.start_date, maturity),
            calculation_principal_start=terms.principal,
        )
    ]
    daily = daily_rate(terms.rate)
    for k in range(1, settings.rolled_up_extension_periods + 1):
        period_start = add_months(maturity, k - 1)
        due = add_months(maturity, k)
        days = days_between(period_start, due)
        ext_interest = round_money(final_principal * daily * Decimal(days))
        rows.append(
            ScheduleRow(
                installment_number=1 + k,
                due_date=due,
                principal_amount=ZERO,
                interest_amount=ext_interest,
                total_due=ext_interest,
                balance=final_principal,
                is_extension_period=True,
                calculation_days=days,
                calculation_principal_start=final_principal,
            )
        )
    return rows


def _roll_up_serviced_rows(terms: LoanTerms, settings: EngineSettings) -> List[ScheduleRow]:
    """Roll-Up & Serviced: one roll-up row, then serviced interest-only rows.

    Serviced interest is charged on principal plus the rolled-up figure. The
    final serviced row repays the principal; with no serviced rows the
    roll-up row repays it instead.
    """
    length = terms.roll_up_length if terms.roll_up_length > 0 else 6
    if terms.roll_up_amount is not None:
        roll_up = round_money(terms.roll_up_amount)
    else:
        roll_up = calculate_roll_up_amount(terms.principal, terms.rate, length, settings.roll_up_month_days)
    roll_up_due = add_months(terms.start_date, length)
    outstanding = clamp_money(terms.principal - principal_paid_before(terms.transactions, roll_up_due))
    rows = [
        ScheduleRow(
            installment_number=1,
            due_date=roll_up_due,
            principal_amount=ZERO,
            interest_amount=roll_up,
            total_due=roll_up,
            balance=outstanding,
            is_roll_up_period=True,
            calculation_days=days_between(terms.start_date, roll_up_due),
            calculation_principal_start=terms.principal,
        )
    ]
    serviced = max(0, (terms.duration or length) - length)
    daily = daily_rate(terms.rate)
    for i in range(1, serviced + 1):
        period_start = add_months(roll_up_due, i - 1)
        due = add_months(roll_up_due, i)
        days = days_between(period_start, due)
        principal_at_start = clamp_money(terms.principal - principal_paid_before(terms.transactions, period_start))
        base = principal_at_start + roll_up
        interest = round_money(base * daily * Decimal(days))
        final = i == serviced
        principal_part = principal_at_start if final else ZERO
        rows.append(
            ScheduleRow(
                installment_number=1 + i,
                due_date=due,
                principal_amount=principal_part,
                interest_amount=interest,
                total_due=principal_part + interest,
                balance=ZERO if final else principal_at_start,
                is_serviced_period=True,
                calculation_days=days,
                calculation_principal_start=base,
            )
        )
    if serviced == 0:
        head = rows[0]
        head.principal_amount = outstanding
        head.total_due = head.principal_amount + head.interest_amount
        head.balance = ZERO
    return rows


def _fixed_charge_rows(terms: LoanTerms, settings: EngineSettings) -> List[ScheduleRow]:
    periods = terms.duration or 0
    charge = round_money(terms.monthly_charge)
    rows = []
    for i in range(1, periods + 1):
        due = add_months(terms.start_date, i)
        rows.append(
            ScheduleRow(
                installment_number=i,
                due_date=due,
                principal_amount=ZERO,
                interest_amount=ZERO,
                charge_amount=charge,
                total_due=charge,
                balance=ZERO,
                calculation_days=days_between(add_months(terms.start_date, i - 1), due),
            )
        )
    return rows


def _irregular_income_rows(terms: LoanTerms, settings: EngineSettings) -> List[ScheduleRow]:
    return []


_GENERATORS: Dict[InterestType, Callable[[LoanTerms, EngineSettings], List[ScheduleRow]]] = {
    InterestType.FLAT: _flat_rows,
    InterestType.REDUCING: _reducing_rows,
    InterestType.INTEREST_ONLY: _interest_only_rows,
    InterestType.ROLLED_UP: _rolled_up_rows,
    InterestType.ROLL_UP_SERVICED: _roll_up_serviced_rows,
    InterestType.FIXED_CHARGE: _fixed_charge_rows,
    InterestType.IRREGULAR_INCOME: _irregular_income_rows,
}


def generate_schedule(
    terms: LoanTerms,
    settings: EngineSettings = DEFAULT_SETTINGS,
    observer: EngineObserver = NULL_OBSERVER,
) -> List[ScheduleRow]:
    """Build the repayment schedule for ``terms``.

    Parameters
    ----------
    terms: LoanTerms
        Loan terms. Recorded repayments in ``terms.transactions`` shrink the
        amortization basis of later rows.
    settings: EngineSettings
        Tunable constants (extension rows, roll-up month length).
    observer: EngineObserver
        Receives a ``schedule_generated`` notification.

    Returns
    -------
    List[ScheduleRow]
        Rows sorted by due date, all ``Pending`` with nothing paid.
    """
    try:
        generator = _GENERATORS[terms.interest_type]
    except KeyError as exc:
        raise ValueError(f"No schedule generator for interest type {terms.interest_type!r}") from exc
    rows = generator(terms, settings)
    observer.schedule_generated(terms.interest_type.value, len(rows))
    return rows
