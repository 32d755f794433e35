"""Schedule totals."""

from __future__ import annotations

from decimal import Decimal
from typing import List

from .data_models import ScheduleRow, Summary
from .utils import ZERO, round_money


def summarize(schedule: List[ScheduleRow]) -> Summary:
    """Aggregate a schedule into totals.

    The installment amount is the first row's ``total_due``, which is what
    a borrower is quoted as their regular payment.
    """
    def total(field: str) -> Decimal:
        return round_money(sum((getattr(row, field) for row in schedule), ZERO))

    return Summary(
        total_principal=total("principal_amount"),
        total_interest=total("interest_amount"),
        total_charges=total("charge_amount"),
        total_repayable=total("total_due"),
        installment_amount=schedule[0].total_due if schedule else ZERO,
        number_of_installments=len(schedule),
    )
