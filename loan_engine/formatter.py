"""Output helpers for the loan engine CLI.

Schedules, summaries and balances are rendered as plain tab-separated
tables with built-in printing and string formatting.
"""

from __future__ import annotations

from typing import Iterable

from .data_models import InterestBalance, LedgerResult, ScheduleRow, Summary, WaterfallResult


def print_summary(summary: Summary) -> None:
    """Print schedule totals in a human-readable format."""
    print("Summary")
    print("-" * 72)
    print(f"Total principal    : {summary.total_principal:.2f}")
    print(f"Total interest     : {summary.total_interest:.2f}")
    if summary.total_charges:
        print(f"Total charges      : {summary.total_charges:.2f}")
    print(f"Total repayable    : {summary.total_repayable:.2f}")
    print(f"Installment amount : {summary.installment_amount:.2f}")
    print(f"Installments       : {summary.number_of_installments}")
    print("-" * 72)


def _flags(row: ScheduleRow) -> str:
    flags = []
    if row.is_roll_up_period:
        flags.append("roll-up")
    if row.is_serviced_period:
        flags.append("serviced")
    if row.is_extension_period:
        flags.append("extension")
    return ",".join(flags)


def print_schedule(schedule: Iterable[ScheduleRow], show_charges: bool = False) -> None:
    """Print a repayment schedule as a simple table.

    Parameters
    ----------
    schedule: Iterable[ScheduleRow]
        The rows to print.
    show_charges: bool
        Whether to include the ``Charge`` column, which is only non-zero for
        fixed-charge facilities.
    """
    headers = ["No", "Due", "Principal", "Interest"]
    if show_charges:
        headers.append("Charge")
    headers += ["Total", "Balance", "Status", "Flags"]
    print("\t".join(headers))
    for row in schedule:
        cells = [
            str(row.installment_number),
            row.due_date.isoformat(),
            f"{row.principal_amount:.2f}",
            f"{row.interest_amount:.2f}",
        ]
        if show_charges:
            cells.append(f"{row.charge_amount:.2f}")
        cells += [
            f"{row.total_due:.2f}",
            f"{row.balance:.2f}",
            row.status.value,
            _flags(row),
        ]
        print("\t".join(cells))


def print_ledger(result: LedgerResult) -> None:
    """Print ledger segments followed by the total."""
    print("\t".join(["From", "To", "Days", "Principal", "Rate", "Interest"]))
    for seg in result.segments:
        print(
            "\t".join(
                [
                    seg.start_date.isoformat(),
                    seg.end_date.isoformat(),
                    str(seg.days),
                    f"{seg.principal:.2f}",
                    f"{seg.rate}%",
                    f"{seg.interest:.4f}",
                ]
            )
        )
    print(f"Total interest over {result.days} days: {result.total_interest:.2f}")


def print_balance(balance: InterestBalance) -> None:
    print("Interest balance")
    print("-" * 72)
    print(f"Interest due       : {balance.total_interest_due:.2f}")
    print(f"Interest paid      : {balance.total_interest_paid:.2f}")
    print(f"Interest balance   : {balance.interest_balance:.2f}")
    print(f"Principal remaining: {balance.principal_remaining:.2f}")
    print("-" * 72)
    if balance.periods:
        print("\t".join(["No", "From", "To", "Days", "Expected", "Paid", "Capital"]))
        for p in balance.periods:
            print(
                "\t".join(
                    [
                        str(p.installment_number),
                        p.period_start.isoformat(),
                        p.period_end.isoformat(),
                        str(p.days),
                        f"{p.expected_interest:.2f}",
                        f"{p.interest_paid:.2f}",
                        "Yes" if p.had_capital_changes else "No",
                    ]
                )
            )


def print_waterfall(result: WaterfallResult) -> None:
    print("\t".join(["No", "InterestPaid", "PrincipalPaid", "Status"]))
    for u in result.updates:
        print("\t".join([str(u.installment_number), f"{u.interest_paid:.2f}", f"{u.principal_paid:.2f}", u.status.value]))
    print(f"Principal reduction: {result.principal_reduction:.2f}")
    print(f"Remaining payment  : {result.remaining_payment:.2f}")
    print(f"Credit carried     : {result.credit_amount:.2f}")
