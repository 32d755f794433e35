"""Command-line interface for the loan engine.

This module uses the ``click`` library to implement a multi-command
interface. Users can preview repayment schedules and their totals from loan
terms, price interest over a date range from the capital-event ledger,
reconcile a loan's live balance, apply a payment to a schedule and
recompute cached balances for a whole loan book. Loans, transactions and
schedules are read from JSON files; results can be printed to the terminal
or exported to JSON/CSV files.
"""

from __future__ import annotations

import csv
import json
import logging
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import click

from .batch import recompute_loan_balances
from .config import EngineSettings, load_settings
from .data_models import (
    BalanceSnapshot,
    InterestAlignment,
    InterestType,
    Loan,
    LoanTerms,
    OverpaymentOption,
    RepaymentPeriod,
    ScheduleRow,
    Transaction,
)
from .formatter import print_balance, print_ledger, print_schedule, print_summary, print_waterfall
from .ledger import build_capital_events, calculate_interest_from_ledger
from .observability import NULL_OBSERVER, EngineObserver, LoggingObserver
from .reconciler import calculate_loan_interest_balance
from .schedule import generate_schedule
from .summary import summarize
from .utils import decimal_from_str, to_date
from .waterfall import apply_manual_payment, apply_payment_waterfall


def parse_amount(value: str) -> Decimal:
    """Parse a money string with optional suffixes.

    Accepts plain numbers ("250000") and shorthand with ``k``/``m`` suffixes
    (e.g., "250k" meaning 250_000).
    """
    value = value.strip().lower().replace(",", "")
    factor = Decimal(1)
    if value.endswith("k"):
        factor = Decimal(1_000)
        value = value[:-1]
    elif value.endswith("m"):
        factor = Decimal(1_000_000)
        value = value[:-1]
    try:
        return decimal_from_str(value) * factor
    except ValueError:
        raise click.BadParameter(f"Invalid amount: {value}")


def parse_date(value: str) -> date:
    try:
        parsed = to_date(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc))
    if parsed is None:
        raise click.BadParameter("A date is required (YYYY-MM-DD)")
    return parsed


def parse_interest_type(value: str) -> InterestType:
    parsed = InterestType.parse(value)
    if parsed is None:
        choices = ", ".join(t.value for t in InterestType)
        raise click.BadParameter(f"Unknown interest type '{value}'; expected one of: {choices}")
    return parsed


def load_json(path: str) -> Any:
    try:
        with Path(path).open("r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise click.BadParameter(f"Cannot read {path}: {exc}")


def load_loan_file(path: str) -> Tuple[Loan, List[Transaction], List[ScheduleRow]]:
    """Read ``{"loan": ..., "transactions": [...], "schedule": [...]}`` from a file."""
    data = load_json(path)
    if not isinstance(data, dict) or "loan" not in data:
        raise click.BadParameter(f"{path} must contain a 'loan' object")
    try:
        loan = Loan.from_dict(data["loan"])
        transactions = [Transaction.from_dict(t) for t in data.get("transactions", [])]
        schedule = [ScheduleRow.from_dict(r) for r in data.get("schedule", [])]
    except (KeyError, ValueError) as exc:
        raise click.BadParameter(f"Invalid loan file {path}: {exc}")
    return loan, transactions, schedule


def build_terms_from_options(
    principal: str,
    rate: str,
    duration: Optional[int],
    interest_type: str,
    period: str,
    start_date: str,
    interest_only_period: int,
    alignment: str,
    advance: bool,
    extend_full_period: bool,
    roll_up_length: int,
    roll_up_amount: Optional[str],
    monthly_charge: Optional[str],
) -> LoanTerms:
    return LoanTerms(
        principal=parse_amount(principal),
        rate=parse_amount(rate),
        interest_type=parse_interest_type(interest_type),
        start_date=parse_date(start_date),
        duration=duration,
        period=RepaymentPeriod.parse(period),
        interest_only_period=interest_only_period,
        interest_alignment=InterestAlignment.parse(alignment),
        interest_paid_in_advance=advance,
        extend_for_full_period=extend_full_period,
        roll_up_length=roll_up_length,
        roll_up_amount=parse_amount(roll_up_amount) if roll_up_amount else None,
        monthly_charge=parse_amount(monthly_charge) if monthly_charge else Decimal(0),
    )


def terms_options(func: Callable) -> Callable:
    """Attach the loan-terms options shared by ``schedule`` and ``summary``."""
    options = [
        click.option("--principal", "-p", "principal", required=True, help="Loan amount"),
        click.option("--rate", "-r", "rate", required=True, help="Annual interest rate (percent)"),
        click.option("--duration", "-t", "duration", type=int, help="Number of repayment periods"),
        click.option("--type", "interest_type", default="Reducing", help="Interest type, e.g. Flat, Reducing, Interest-Only"),
        click.option("--period", "period", type=click.Choice(["Monthly", "Weekly"]), default="Monthly", help="Repayment period"),
        click.option("--start-date", "-s", "start_date", required=True, help="Loan start date (YYYY-MM-DD)"),
        click.option("--interest-only-period", "interest_only_period", type=int, default=0, help="Interest-only periods before amortization"),
        click.option("--alignment", "alignment", type=click.Choice(["period_based", "monthly_first"]), default="period_based", help="Interest alignment"),
        click.option("--advance", "advance", is_flag=True, help="Interest paid in advance"),
        click.option("--extend-full-period", "extend_full_period", is_flag=True, help="Charge the final monthly-first period in full"),
        click.option("--roll-up-length", "roll_up_length", type=int, default=6, help="Roll-up months (Roll-Up & Serviced)"),
        click.option("--roll-up-amount", "roll_up_amount", help="Override the calculated roll-up interest"),
        click.option("--monthly-charge", "monthly_charge", help="Monthly charge (Fixed Charge)"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def export_to_json(path: Path, data: Dict[str, Any]) -> None:
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def export_to_csv(path: Path, schedule: List[ScheduleRow]) -> None:
    """Export schedule rows to a CSV file."""
    header = [
        "Installment",
        "Due_Date",
        "Principal",
        "Interest",
        "Charge",
        "Total_Due",
        "Balance",
        "Status",
        "Roll_Up",
        "Serviced",
        "Extension",
    ]
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for row in schedule:
            writer.writerow(
                [
                    row.installment_number,
                    row.due_date.isoformat(),
                    str(row.principal_amount),
                    str(row.interest_amount),
                    str(row.charge_amount),
                    str(row.total_due),
                    str(row.balance),
                    row.status.value,
                    row.is_roll_up_period,
                    row.is_serviced_period,
                    row.is_extension_period,
                ]
            )


def _settings(ctx: click.Context) -> EngineSettings:
    return ctx.obj["settings"]


def _observer(ctx: click.Context) -> EngineObserver:
    return ctx.obj["observer"]


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log calculation details to stderr")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Loan servicing engine: schedules, interest, balances and payments."""
    try:
        settings = load_settings()
    except ValueError as exc:
        raise click.UsageError(str(exc))
    observer: EngineObserver = NULL_OBSERVER
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s %(message)s")
        observer = LoggingObserver()
    ctx.obj = {"settings": settings, "observer": observer}


@cli.command()
@terms_options
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
@click.pass_context
def schedule(ctx: click.Context, output: Optional[str], **options: Any) -> None:
    """Generate and print a repayment schedule."""
    terms = build_terms_from_options(**options)
    rows = generate_schedule(terms, _settings(ctx), _observer(ctx))
    totals = summarize(rows)
    if output:
        path = Path(output)
        if path.suffix.lower() == ".json":
            export_to_json(path, {"summary": totals.to_dict(), "schedule": [r.to_dict() for r in rows]})
            click.echo(f"Schedule exported to {path}")
        elif path.suffix.lower() == ".csv":
            export_to_csv(path, rows)
            click.echo(f"Schedule exported to {path}")
        else:
            raise click.BadParameter("Unsupported output format; use .json or .csv")
    else:
        print_summary(totals)
        print_schedule(rows, show_charges=terms.interest_type is InterestType.FIXED_CHARGE)


@cli.command()
@terms_options
@click.option("--output", "output", type=str, help="Output file path (.json)")
@click.pass_context
def summary(ctx: click.Context, output: Optional[str], **options: Any) -> None:
    """Print only the totals of a repayment schedule."""
    terms = build_terms_from_options(**options)
    totals = summarize(generate_schedule(terms, _settings(ctx), _observer(ctx)))
    if output:
        path = Path(output)
        if path.suffix.lower() != ".json":
            raise click.BadParameter("Summary export must use .json extension")
        export_to_json(path, {"summary": totals.to_dict()})
        click.echo(f"Summary exported to {path}")
    else:
        print_summary(totals)


@cli.command()
@click.option("--loan", "loan_file", required=True, help="JSON file with loan and transactions")
@click.option("--from", "from_date", required=True, help="Start of range (YYYY-MM-DD)")
@click.option("--to", "to_date", required=True, help="End of range, exclusive (YYYY-MM-DD)")
@click.option("--output", "output", type=str, help="Output file path (.json)")
@click.pass_context
def interest(ctx: click.Context, loan_file: str, from_date: str, to_date: str, output: Optional[str]) -> None:
    """Price interest over a date range from the capital-event ledger."""
    loan, transactions, _ = load_loan_file(loan_file)
    events = build_capital_events(loan, transactions)
    result = calculate_interest_from_ledger(loan, events, parse_date(from_date), parse_date(to_date), _observer(ctx))
    if output:
        export_to_json(Path(output), {"events": [e.to_dict() for e in events], "interest": result.to_dict()})
        click.echo(f"Interest exported to {output}")
    else:
        print_ledger(result)


@cli.command()
@click.option("--loan", "loan_file", required=True, help="JSON file with loan, transactions and schedule")
@click.option("--as-of", "as_of", required=True, help="Balance date (YYYY-MM-DD)")
@click.option("--output", "output", type=str, help="Output file path (.json)")
@click.pass_context
def balance(ctx: click.Context, loan_file: str, as_of: str, output: Optional[str]) -> None:
    """Reconcile a loan's interest and principal position as of a date."""
    loan, transactions, rows = load_loan_file(loan_file)
    result = calculate_loan_interest_balance(loan, rows, transactions, parse_date(as_of), _settings(ctx), _observer(ctx))
    if output:
        export_to_json(Path(output), {"balance": result.to_dict()})
        click.echo(f"Balance exported to {output}")
    else:
        print_balance(result)


@cli.command()
@click.option("--schedule", "schedule_file", required=True, help="JSON file with schedule rows")
@click.option("--amount", "amount", help="Payment amount applied interest first")
@click.option("--interest", "interest_amount", help="Manual split: amount for interest")
@click.option("--principal", "principal_amount", help="Manual split: amount for principal")
@click.option("--credit", "credit", default="0", help="Existing credit to spend first")
@click.option("--option", "option", type=click.Choice(["credit", "reduce_principal"]), default="credit", help="What to do with an overpayment")
@click.option("--due-by", "due_by", help="Only settle rows due on or before this date")
@click.option("--output", "output", type=str, help="Output file path (.json)")
@click.pass_context
def waterfall(
    ctx: click.Context,
    schedule_file: str,
    amount: Optional[str],
    interest_amount: Optional[str],
    principal_amount: Optional[str],
    credit: str,
    option: str,
    due_by: Optional[str],
    output: Optional[str],
) -> None:
    """Apply a payment to the oldest unpaid schedule rows."""
    data = load_json(schedule_file)
    raw_rows = data.get("schedule", []) if isinstance(data, dict) else data
    try:
        rows = [ScheduleRow.from_dict(r) for r in raw_rows]
    except (KeyError, ValueError) as exc:
        raise click.BadParameter(f"Invalid schedule file {schedule_file}: {exc}")
    overpayment = OverpaymentOption.parse(option)
    cutoff = parse_date(due_by) if due_by else None
    if amount is not None:
        if interest_amount is not None or principal_amount is not None:
            raise click.BadParameter("Use either --amount or --interest/--principal, not both")
        result = apply_payment_waterfall(
            parse_amount(amount), rows, parse_amount(credit), overpayment, cutoff, _settings(ctx)
        )
    elif interest_amount is not None or principal_amount is not None:
        result = apply_manual_payment(
            parse_amount(interest_amount or "0"),
            parse_amount(principal_amount or "0"),
            rows,
            parse_amount(credit),
            overpayment,
            cutoff,
            _settings(ctx),
        )
    else:
        raise click.BadParameter("A payment is required: --amount or --interest/--principal")
    if output:
        export_to_json(Path(output), {"waterfall": result.to_dict()})
        click.echo(f"Waterfall exported to {output}")
    else:
        print_waterfall(result)


class _CollectingSink:
    def __init__(self) -> None:
        self.snapshots: List[BalanceSnapshot] = []

    def write(self, snapshot: BalanceSnapshot) -> None:
        self.snapshots.append(snapshot)


@cli.command()
@click.option("--loans", "loans_file", required=True, help="JSON list of {loan, transactions, schedule} entries")
@click.option("--as-of", "as_of", required=True, help="Balance date (YYYY-MM-DD)")
@click.option("--workers", "workers", type=int, help="Parallel workers")
@click.option("--output", "output", type=str, help="Output file path (.json)")
@click.pass_context
def recompute(ctx: click.Context, loans_file: str, as_of: str, workers: Optional[int], output: Optional[str]) -> None:
    """Recompute live balances for every loan in a file."""
    entries = load_json(loans_file)
    if not isinstance(entries, list):
        raise click.BadParameter(f"{loans_file} must contain a list of loans")
    loans: List[Loan] = []
    data: Dict[int, Tuple[List[Transaction], List[ScheduleRow]]] = {}
    try:
        for entry in entries:
            loan = Loan.from_dict(entry["loan"])
            loans.append(loan)
            data[id(loan)] = (
                [Transaction.from_dict(t) for t in entry.get("transactions", [])],
                [ScheduleRow.from_dict(r) for r in entry.get("schedule", [])],
            )
    except (KeyError, ValueError, TypeError) as exc:
        raise click.BadParameter(f"Invalid loans file {loans_file}: {exc}")

    sink = _CollectingSink()
    result = recompute_loan_balances(
        loans,
        lambda loan: data[id(loan)],
        sink,
        parse_date(as_of),
        max_workers=workers,
        settings=_settings(ctx),
        observer=_observer(ctx),
    )
    snapshots = sorted(sink.snapshots, key=lambda s: s.loan_id)
    if output:
        export_to_json(Path(output), {"result": result.to_dict(), "balances": [s.to_dict() for s in snapshots]})
        click.echo(f"Balances exported to {output}")
        return
    click.echo("\t".join(["Loan", "Principal", "Interest"]))
    for s in snapshots:
        click.echo(f"{s.loan_id}\t{s.principal_remaining:.2f}\t{s.interest_remaining:.2f}")
    for loan_id, error in sorted(result.failed.items()):
        click.echo(f"{loan_id}\tFAILED: {error}")


if __name__ == "__main__":
    cli()
