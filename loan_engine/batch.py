"""Batch recomputation of cached loan balances.

Each loan is an independent unit of work: its transactions and schedule are
loaded, its live balance is reconciled and the result is written to that
loan's own cache entry in a single ``sink.write`` call. Loans run in a
thread pool with no ordering between them. A cancelled run stops handing out
loans; loans already written stay written and no loan is half-written.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from .accrual import calculate_accrued_interest_with_transactions
from .config import DEFAULT_SETTINGS, EngineSettings
from .data_models import BalanceSnapshot, Loan, ScheduleRow, Transaction
from .observability import NULL_OBSERVER, EngineObserver

LoanData = Tuple[List[Transaction], List[ScheduleRow]]


class BalanceSink(Protocol):
    def write(self, snapshot: BalanceSnapshot) -> None:
        ...


@dataclass
class BatchProgress:
    current: int
    total: int
    loan_id: str
    percent: float


@dataclass
class BatchResult:
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    cancelled: bool = False

    @property
    def processed(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def to_dict(self) -> Dict[str, object]:
        return {
            "succeeded": list(self.succeeded),
            "failed": dict(self.failed),
            "cancelled": self.cancelled,
        }


def _loan_key(loan: Loan) -> str:
    return loan.id or loan.loan_number or ""


def recompute_loan_balance(
    loan: Loan,
    transactions: List[Transaction],
    schedule: List[ScheduleRow],
    as_of: date,
    settings: EngineSettings = DEFAULT_SETTINGS,
    observer: EngineObserver = NULL_OBSERVER,
) -> BalanceSnapshot:
    """Live balance of one loan as a snapshot ready to cache."""
    accrued = calculate_accrued_interest_with_transactions(loan, transactions, as_of, schedule, settings, observer)
    return BalanceSnapshot(
        loan_id=_loan_key(loan),
        principal_remaining=accrued.principal_remaining,
        interest_remaining=accrued.interest_remaining,
        interest_accrued=accrued.interest_accrued,
        interest_paid=accrued.interest_paid,
        as_of=as_of,
        balance_updated_at=datetime.now(timezone.utc),
    )


def recompute_loan_balances(
    loans: List[Loan],
    load_loan_data: Callable[[Loan], LoanData],
    sink: BalanceSink,
    as_of: date,
    progress: Optional[Callable[[BatchProgress], None]] = None,
    cancel_event: Optional[threading.Event] = None,
    max_workers: Optional[int] = None,
    settings: EngineSettings = DEFAULT_SETTINGS,
    observer: EngineObserver = NULL_OBSERVER,
) -> BatchResult:
    """Recompute and store the balance of every loan in ``loans``.

    Parameters
    ----------
    loans: List[Loan]
        Loans to process.
    load_loan_data: Callable
        Returns ``(transactions, schedule)`` for a loan.
    sink: BalanceSink
        Receives one ``BalanceSnapshot`` per successful loan.
    as_of: date
        Balance date.
    progress: Optional[Callable]
        Called after each loan completes, from the calling thread.
    cancel_event: Optional[threading.Event]
        When set, loans not yet started are skipped and the result is marked
        cancelled.
    max_workers: Optional[int]
        Thread pool size; defaults to ``settings.max_workers``.

    Returns
    -------
    BatchResult
        Loan ids that were written, loan ids that failed with the error
        message, and whether the run was cancelled.
    """
    result = BatchResult()
    total = len(loans)
    cancel = cancel_event or threading.Event()

    def work(loan: Loan) -> Optional[BalanceSnapshot]:
        if cancel.is_set():
            return None
        transactions, schedule = load_loan_data(loan)
        snapshot = recompute_loan_balance(loan, transactions, schedule, as_of, settings, observer)
        sink.write(snapshot)
        return snapshot

    workers = max_workers if max_workers is not None else settings.max_workers
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {pool.submit(work, loan): loan for loan in loans}
        for future in as_completed(futures):
            loan = futures[future]
            key = _loan_key(loan)
            try:
                snapshot = future.result()
            except Exception as exc:
                result.failed[key] = str(exc)
                observer.loan_failed(key, exc)
            else:
                if snapshot is None:
                    continue
                result.succeeded.append(key)
                observer.loan_recomputed(key, snapshot.principal_remaining, snapshot.interest_remaining)
            if progress is not None:
                done = result.processed
                progress(BatchProgress(current=done, total=total, loan_id=key, percent=100.0 * done / total))

    if cancel.is_set() and result.processed < total:
        result.cancelled = True
        observer.batch_cancelled(result.processed, total)
    return result
