from datetime import date
from decimal import Decimal

from factories import disbursement, repayment
from loan_engine.ledger import build_capital_events, calculate_interest_from_ledger, effective_rate, principal_at


def test_single_segment_without_events(make_loan):
    loan = make_loan()
    result = calculate_interest_from_ledger(loan, [], date(2024, 1, 1), date(2024, 1, 31))

    assert len(result.segments) == 1
    assert result.days == 30
    assert result.total_interest == Decimal("98.63")
    assert result.segments[0].principal == Decimal("10000")


def test_build_capital_events(make_loan):
    loan = make_loan()
    transactions = [
        disbursement(date(2024, 1, 1), "10000", id="d0"),
        disbursement(date(2024, 2, 10), "4800", gross="5000", id="d1"),
        repayment(date(2024, 1, 20), principal="1000", interest="50", id="r1"),
        repayment(date(2024, 1, 25), principal="300", id="r2", is_deleted=True),
        repayment(date(2024, 1, 28), interest="40", id="r3"),
    ]

    events = build_capital_events(loan, transactions)

    assert [(e.date, e.principal_change, e.transaction_id) for e in events] == [
        (date(2024, 1, 20), Decimal("-1000"), "r1"),
        (date(2024, 2, 10), Decimal("5000"), "d1"),
    ]


def test_legacy_disbursement_falls_back_to_amount(make_loan):
    events = build_capital_events(make_loan(), [disbursement(date(2024, 3, 1), "2500")])
    assert events[0].principal_change == Decimal("2500")


def test_segments_split_on_capital_events(make_loan):
    loan = make_loan()
    events = build_capital_events(
        loan,
        [
            repayment(date(2024, 1, 20), principal="1000"),
            disbursement(date(2024, 2, 10), "5000", gross="5000"),
        ],
    )

    result = calculate_interest_from_ledger(loan, events, date(2024, 1, 1), date(2024, 3, 1))

    assert [(s.start_date, s.end_date, s.days, s.principal) for s in result.segments] == [
        (date(2024, 1, 1), date(2024, 1, 20), 19, Decimal("10000")),
        (date(2024, 1, 20), date(2024, 2, 10), 21, Decimal("9000")),
        (date(2024, 2, 10), date(2024, 3, 1), 20, Decimal("14000")),
    ]
    assert sum(s.days for s in result.segments) == result.days == 60
    for prev, nxt in zip(result.segments, result.segments[1:]):
        assert prev.end_date == nxt.start_date
    assert result.total_interest == Decimal("216.66")


def test_penalty_rate_cutover_splits_segment(make_loan):
    loan = make_loan(penalty_rate=Decimal("24"), penalty_rate_from=date(2024, 1, 16))

    result = calculate_interest_from_ledger(loan, [], date(2024, 1, 1), date(2024, 1, 31))

    assert [(s.days, s.rate) for s in result.segments] == [(15, Decimal("12")), (15, Decimal("24"))]
    assert result.total_interest == Decimal("147.95")
    assert effective_rate(loan, date(2024, 1, 15)) == Decimal("12")
    assert effective_rate(loan, date(2024, 1, 16)) == Decimal("24")


def test_empty_or_inverted_range(make_loan):
    loan = make_loan()
    for start, end in [(date(2024, 2, 1), date(2024, 2, 1)), (date(2024, 3, 1), date(2024, 2, 1))]:
        result = calculate_interest_from_ledger(loan, [], start, end)
        assert result.total_interest == 0
        assert result.segments == []
        assert result.days == 0


def test_events_on_or_before_range_start_fold_into_opening_principal(make_loan):
    loan = make_loan()
    events = build_capital_events(loan, [repayment(date(2024, 1, 20), principal="1000")])

    result = calculate_interest_from_ledger(loan, events, date(2024, 1, 20), date(2024, 2, 1))

    assert len(result.segments) == 1
    assert result.segments[0].principal == Decimal("9000")
    assert principal_at(loan, events, date(2024, 1, 19)) == Decimal("10000")


def test_principal_never_negative(make_loan):
    loan = make_loan()
    events = build_capital_events(loan, [repayment(date(2024, 1, 10), principal="12000")])

    result = calculate_interest_from_ledger(loan, events, date(2024, 1, 1), date(2024, 2, 1))

    assert result.segments[-1].principal == 0
    assert result.segments[-1].interest == 0
