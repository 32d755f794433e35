"""Observer hooks for the calculation pipeline.

Calculation functions accept an optional ``observer``. The base class does
nothing, so callers that do not care about diagnostics pay nothing for them.
``LoggingObserver`` forwards each hook to the ``loan_engine`` logger with a
structured ``extra`` payload.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

logger = logging.getLogger("loan_engine")


class EngineObserver:
    """No-op base observer. Subclass and override the hooks you need."""

    def schedule_generated(self, interest_type: str, rows: int) -> None:
        pass

    def ledger_segment(self, start: date, end: date, principal: Decimal, rate: Decimal, interest: Decimal) -> None:
        pass

    def transaction_moved(self, transaction_id: Optional[str], from_index: int, to_index: int) -> None:
        pass

    def period_reconciled(self, installment_number: int, expected: Decimal, paid: Decimal) -> None:
        pass

    def fallback_accrual(self, interest_type: str) -> None:
        pass

    def loan_recomputed(self, loan_id: str, principal_remaining: Decimal, interest_remaining: Decimal) -> None:
        pass

    def loan_failed(self, loan_id: str, error: BaseException) -> None:
        pass

    def batch_cancelled(self, processed: int, total: int) -> None:
        pass


NULL_OBSERVER = EngineObserver()


class LoggingObserver(EngineObserver):
    """Emit every hook as a log record on the ``loan_engine`` logger."""

    def __init__(self, log: Optional[logging.Logger] = None, level: int = logging.DEBUG):
        self.log = log or logger
        self.level = level

    def _emit(self, event: str, level: Optional[int] = None, **fields: Any) -> None:
        payload: Dict[str, Any] = {"event": event}
        payload.update({k: str(v) if isinstance(v, (Decimal, date)) else v for k, v in fields.items()})
        self.log.log(self.level if level is None else level, event, extra={"loan_engine": payload})

    def schedule_generated(self, interest_type, rows):
        self._emit("schedule_generated", interest_type=interest_type, rows=rows)

    def ledger_segment(self, start, end, principal, rate, interest):
        self._emit("ledger_segment", start=start, end=end, principal=principal, rate=rate, interest=interest)

    def transaction_moved(self, transaction_id, from_index, to_index):
        self._emit("transaction_moved", transaction_id=transaction_id, from_index=from_index, to_index=to_index)

    def period_reconciled(self, installment_number, expected, paid):
        self._emit("period_reconciled", installment_number=installment_number, expected=expected, paid=paid)

    def fallback_accrual(self, interest_type):
        self._emit("fallback_accrual", level=logging.WARNING, interest_type=interest_type)

    def loan_recomputed(self, loan_id, principal_remaining, interest_remaining):
        self._emit(
            "loan_recomputed",
            level=logging.INFO,
            loan_id=loan_id,
            principal_remaining=principal_remaining,
            interest_remaining=interest_remaining,
        )

    def loan_failed(self, loan_id, error):
        self._emit("loan_failed", level=logging.ERROR, loan_id=loan_id, error=repr(error))

    def batch_cancelled(self, processed, total):
        self._emit("batch_cancelled", level=logging.WARNING, processed=processed, total=total)
