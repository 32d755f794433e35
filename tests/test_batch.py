import threading
from datetime import date
from decimal import Decimal

from factories import repayment
from loan_engine.batch import recompute_loan_balance, recompute_loan_balances

AS_OF = date(2024, 1, 30)


class ListSink:
    def __init__(self):
        self.snapshots = []

    def write(self, snapshot):
        self.snapshots.append(snapshot)


def test_recompute_single_loan(make_loan):
    loan = make_loan()
    snapshot = recompute_loan_balance(loan, [repayment(date(2024, 1, 15), principal="1000")], [], AS_OF)

    assert snapshot.loan_id == "L1"
    assert snapshot.principal_remaining == Decimal("9000")
    assert snapshot.interest_accrued == Decimal("93.37")
    assert snapshot.as_of == AS_OF
    assert snapshot.balance_updated_at.tzinfo is not None


def test_batch_writes_every_loan_and_reports_progress(make_loan):
    loans = [make_loan(id=f"L{i}") for i in range(1, 6)]
    sink = ListSink()
    progress = []

    result = recompute_loan_balances(loans, lambda loan: ([], []), sink, AS_OF, progress=progress.append)

    assert sorted(result.succeeded) == ["L1", "L2", "L3", "L4", "L5"]
    assert result.failed == {}
    assert not result.cancelled
    assert sorted(s.loan_id for s in sink.snapshots) == sorted(result.succeeded)
    assert [p.current for p in progress] == [1, 2, 3, 4, 5]
    assert progress[-1].percent == 100.0


def test_one_failing_loan_does_not_stop_the_batch(make_loan):
    loans = [make_loan(id="ok"), make_loan(id="bad")]

    def load(loan):
        if loan.id == "bad":
            raise RuntimeError("ledger unavailable")
        return [], []

    sink = ListSink()
    result = recompute_loan_balances(loans, load, sink, AS_OF, max_workers=2)

    assert result.succeeded == ["ok"]
    assert result.failed == {"bad": "ledger unavailable"}
    assert [s.loan_id for s in sink.snapshots] == ["ok"]


def test_cancel_stops_remaining_loans(make_loan):
    loans = [make_loan(id=f"L{i}") for i in range(1, 4)]
    cancel = threading.Event()

    def load(loan):
        cancel.set()
        return [], []

    sink = ListSink()
    result = recompute_loan_balances(loans, load, sink, AS_OF, cancel_event=cancel, max_workers=1)

    assert result.succeeded == ["L1"]
    assert result.cancelled
    assert [s.loan_id for s in sink.snapshots] == ["L1"]


def test_cancelled_before_start_writes_nothing(make_loan):
    cancel = threading.Event()
    cancel.set()
    sink = ListSink()

    result = recompute_loan_balances([make_loan()], lambda loan: ([], []), sink, AS_OF, cancel_event=cancel)

    assert result.processed == 0
    assert result.cancelled
    assert sink.snapshots == []
