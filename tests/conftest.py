from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from loan_engine.data_models import InterestType, Loan, LoanTerms


@pytest.fixture
def make_terms():
    def _make(**overrides) -> LoanTerms:
        values = dict(
            principal=Decimal("10000"),
            rate=Decimal("12"),
            interest_type=InterestType.REDUCING,
            start_date=date(2024, 1, 15),
            duration=12,
        )
        values.update(overrides)
        return LoanTerms(**values)

    return _make


@pytest.fixture
def make_loan():
    def _make(**overrides) -> Loan:
        values = dict(
            principal_amount=Decimal("10000"),
            interest_rate=Decimal("12"),
            start_date=date(2024, 1, 1),
            interest_type="Reducing",
            duration=12,
            id="L1",
        )
        values.update(overrides)
        return Loan(**values)

    return _make

