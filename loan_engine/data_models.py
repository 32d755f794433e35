"""Data models for the loan engine.

This module defines the enumerations and dataclasses exchanged between the
engine and its collaborators: loan terms used to build a schedule, the loan
and transaction records supplied by the servicing layer, schedule rows, and
the derived ledger structures (capital events and segments). Using
dataclasses makes it easy to construct, inspect and serialize these
structures; each record has ``from_dict``/``to_dict`` helpers for the JSON
surfaces (CLI files and the web API).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from .utils import ZERO, to_date, to_decimal


class InterestType(Enum):
    FLAT = "Flat"
    REDUCING = "Reducing"
    INTEREST_ONLY = "Interest-Only"
    ROLLED_UP = "Rolled-Up"
    ROLL_UP_SERVICED = "Roll-Up & Serviced"
    FIXED_CHARGE = "Fixed Charge"
    IRREGULAR_INCOME = "Irregular Income"

    @classmethod
    def parse(cls, value: Any) -> Optional["InterestType"]:
        """Map a stored label onto a member, or ``None`` if unrecognised.

        Matching ignores case, spaces, hyphens, underscores and ampersands, so
        ``"interest_only"``, ``"Interest-Only"`` and ``"INTEREST ONLY"`` are the
        same variant.
        """
        if isinstance(value, cls):
            return value
        if not value:
            return None
        key = _label_key(str(value))
        for member in cls:
            if key in (_label_key(member.value), _label_key(member.name)):
                return member
        return _INTEREST_TYPE_ALIASES.get(key)


def _label_key(label: str) -> str:
    return "".join(ch for ch in label.lower() if ch.isalnum())


_INTEREST_TYPE_ALIASES = {
    "rollupandserviced": InterestType.ROLL_UP_SERVICED,
    "rollupserviced": InterestType.ROLL_UP_SERVICED,
    "rolledup": InterestType.ROLLED_UP,
    "io": InterestType.INTEREST_ONLY,
}


class RepaymentPeriod(Enum):
    MONTHLY = "Monthly"
    WEEKLY = "Weekly"

    @property
    def periods_per_year(self) -> int:
        return 12 if self is RepaymentPeriod.MONTHLY else 52

    @classmethod
    def parse(cls, value: Any) -> "RepaymentPeriod":
        if isinstance(value, cls):
            return value
        if not value:
            return cls.MONTHLY
        text = str(value).strip().lower()
        for member in cls:
            if text in (member.value.lower(), member.name.lower()):
                return member
        raise ValueError(f"Unknown repayment period: {value}")


class InterestAlignment(Enum):
    PERIOD_BASED = "period_based"
    MONTHLY_FIRST = "monthly_first"

    @classmethod
    def parse(cls, value: Any) -> "InterestAlignment":
        if isinstance(value, cls):
            return value
        if not value:
            return cls.PERIOD_BASED
        text = str(value).strip().lower()
        for member in cls:
            if text == member.value:
                return member
        raise ValueError(f"Unknown interest alignment: {value}")


class RowStatus(Enum):
    PENDING = "Pending"
    PARTIAL = "Partial"
    PAID = "Paid"

    @classmethod
    def parse(cls, value: Any) -> "RowStatus":
        if isinstance(value, cls):
            return value
        if not value:
            return cls.PENDING
        for member in cls:
            if str(value).strip().lower() == member.value.lower():
                return member
        raise ValueError(f"Unknown schedule row status: {value}")


class TransactionType(Enum):
    DISBURSEMENT = "Disbursement"
    REPAYMENT = "Repayment"

    @classmethod
    def parse(cls, value: Any) -> "TransactionType":
        if isinstance(value, cls):
            return value
        for member in cls:
            if str(value).strip().lower() == member.value.lower():
                return member
        raise ValueError(f"Unknown transaction type: {value}")


class OverpaymentOption(Enum):
    CREDIT = "credit"
    REDUCE_PRINCIPAL = "reduce_principal"

    @classmethod
    def parse(cls, value: Any) -> "OverpaymentOption":
        if isinstance(value, cls):
            return value
        if not value:
            return cls.CREDIT
        for member in cls:
            if str(value).strip().lower() == member.value:
                return member
        raise ValueError(f"Unknown overpayment option: {value}")


def _opt_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return to_decimal(value)


def _opt_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def _money_str(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


def _date_str(value: Optional[date]) -> Optional[str]:
    return None if value is None else value.isoformat()


@dataclass
class Transaction:
    """A cash movement recorded against a loan.

    Attributes
    ----------
    type: TransactionType
        ``DISBURSEMENT`` (money out to the borrower) or ``REPAYMENT``.
    amount: Decimal
        Raw cash amount. For disbursements this is the net amount paid out.
    gross_amount: Optional[Decimal]
        Gross amount the borrower owes for a disbursement. Legacy records do
        not carry it, in which case ``amount`` is used.
    principal_applied / interest_applied / fees_applied: Decimal
        How a repayment was split between the obligation types.
    is_deleted: bool
        Soft-deleted transactions are ignored by every calculation.
    """

    type: TransactionType
    date: date
    amount: Decimal = ZERO
    gross_amount: Optional[Decimal] = None
    principal_applied: Decimal = ZERO
    interest_applied: Decimal = ZERO
    fees_applied: Decimal = ZERO
    is_deleted: bool = False
    id: Optional[str] = None

    @property
    def capital_amount(self) -> Decimal:
        """Principal a disbursement adds to the loan (gross, else raw amount)."""
        return self.gross_amount if self.gross_amount is not None else self.amount

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transaction":
        return cls(
            type=TransactionType.parse(data["type"]),
            date=to_date(data["date"]),
            amount=to_decimal(data.get("amount")),
            gross_amount=_opt_decimal(data.get("gross_amount")),
            principal_applied=to_decimal(data.get("principal_applied")),
            interest_applied=to_decimal(data.get("interest_applied")),
            fees_applied=to_decimal(data.get("fees_applied")),
            is_deleted=bool(data.get("is_deleted", False)),
            id=None if data.get("id") is None else str(data["id"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "date": self.date.isoformat(),
            "amount": str(self.amount),
            "gross_amount": _money_str(self.gross_amount),
            "principal_applied": str(self.principal_applied),
            "interest_applied": str(self.interest_applied),
            "fees_applied": str(self.fees_applied),
            "is_deleted": self.is_deleted,
        }


@dataclass
class LoanTerms:
    """Everything needed to build a repayment schedule.

    ``duration`` may be ``None`` for open-ended variants (Irregular Income).
    ``transactions`` holds recorded payments; principal already paid before a
    period shrinks the amortization basis of that period.
    """

    principal: Decimal
    rate: Decimal  # annual nominal interest rate in percent
    interest_type: InterestType
    start_date: date
    duration: Optional[int] = None
    period: RepaymentPeriod = RepaymentPeriod.MONTHLY
    interest_only_period: int = 0
    interest_alignment: InterestAlignment = InterestAlignment.PERIOD_BASED
    interest_paid_in_advance: bool = False
    extend_for_full_period: bool = False
    penalty_rate: Optional[Decimal] = None
    penalty_rate_from: Optional[date] = None
    roll_up_length: int = 6  # months
    roll_up_amount: Optional[Decimal] = None  # manual override of the roll-up figure
    monthly_charge: Decimal = ZERO
    transactions: List[Transaction] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoanTerms":
        interest_type = InterestType.parse(data.get("interest_type"))
        if interest_type is None:
            raise ValueError(f"Unknown interest type: {data.get('interest_type')}")
        return cls(
            principal=to_decimal(data.get("principal", data.get("principal_amount"))),
            rate=to_decimal(data.get("rate", data.get("interest_rate"))),
            interest_type=interest_type,
            start_date=to_date(data["start_date"]),
            duration=_opt_int(data.get("duration")),
            period=RepaymentPeriod.parse(data.get("period")),
            interest_only_period=int(data.get("interest_only_period") or 0),
            interest_alignment=InterestAlignment.parse(data.get("interest_alignment")),
            interest_paid_in_advance=bool(data.get("interest_paid_in_advance", False)),
            extend_for_full_period=bool(data.get("extend_for_full_period", False)),
            penalty_rate=_opt_decimal(data.get("penalty_rate")),
            penalty_rate_from=to_date(data.get("penalty_rate_from")),
            roll_up_length=int(data.get("roll_up_length") or 6),
            roll_up_amount=_opt_decimal(data.get("roll_up_amount")),
            monthly_charge=to_decimal(data.get("monthly_charge")),
            transactions=[Transaction.from_dict(t) for t in data.get("transactions", [])],
        )


@dataclass
class Loan:
    """A loan record as supplied by the servicing layer.

    ``interest_type`` keeps the raw stored label; unknown labels are allowed
    and make accrual fall back to a straight-line approximation.
    ``interest_paid_in_advance`` is optional: when ``None`` the timing mode is
    detected from the schedule (first due date on the start date).
    """

    principal_amount: Decimal
    interest_rate: Decimal
    start_date: Optional[date]
    interest_type: str = InterestType.REDUCING.value
    period: RepaymentPeriod = RepaymentPeriod.MONTHLY
    duration: Optional[int] = None
    status: str = "Live"
    penalty_rate: Optional[Decimal] = None
    penalty_rate_from: Optional[date] = None
    total_interest: Optional[Decimal] = None
    interest_paid_in_advance: Optional[bool] = None
    id: Optional[str] = None
    loan_number: Optional[str] = None

    @property
    def variant(self) -> Optional[InterestType]:
        return InterestType.parse(self.interest_type)

    @property
    def is_pending(self) -> bool:
        return (self.status or "").strip().lower() == "pending"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Loan":
        return cls(
            principal_amount=to_decimal(data.get("principal_amount")),
            interest_rate=to_decimal(data.get("interest_rate")),
            start_date=to_date(data.get("start_date")),
            interest_type=str(data.get("interest_type") or InterestType.REDUCING.value),
            period=RepaymentPeriod.parse(data.get("period")),
            duration=_opt_int(data.get("duration")),
            status=str(data.get("status") or "Live"),
            penalty_rate=_opt_decimal(data.get("penalty_rate")),
            penalty_rate_from=to_date(data.get("penalty_rate_from")),
            total_interest=_opt_decimal(data.get("total_interest")),
            interest_paid_in_advance=data.get("interest_paid_in_advance"),
            id=None if data.get("id") is None else str(data["id"]),
            loan_number=None if data.get("loan_number") is None else str(data["loan_number"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "loan_number": self.loan_number,
            "principal_amount": str(self.principal_amount),
            "interest_rate": str(self.interest_rate),
            "start_date": _date_str(self.start_date),
            "interest_type": self.interest_type,
            "period": self.period.value,
            "duration": self.duration,
            "status": self.status,
            "penalty_rate": _money_str(self.penalty_rate),
            "penalty_rate_from": _date_str(self.penalty_rate_from),
            "total_interest": _money_str(self.total_interest),
            "interest_paid_in_advance": self.interest_paid_in_advance,
        }


@dataclass
class ScheduleRow:
    """One installment of a repayment schedule.

    ``installment_number`` is 1-based and never changes once created. Only the
    paid amounts and ``status`` are amended after creation.
    """

    installment_number: int
    due_date: date
    principal_amount: Decimal
    interest_amount: Decimal
    total_due: Decimal
    balance: Decimal
    charge_amount: Decimal = ZERO
    principal_paid: Decimal = ZERO
    interest_paid: Decimal = ZERO
    status: RowStatus = RowStatus.PENDING
    is_roll_up_period: bool = False
    is_serviced_period: bool = False
    is_extension_period: bool = False
    calculation_days: Optional[int] = None
    calculation_principal_start: Optional[Decimal] = None
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScheduleRow":
        principal = to_decimal(data.get("principal_amount"))
        interest = to_decimal(data.get("interest_amount"))
        charge = to_decimal(data.get("charge_amount"))
        total = data.get("total_due")
        return cls(
            installment_number=int(data.get("installment_number") or 0),
            due_date=to_date(data["due_date"]),
            principal_amount=principal,
            interest_amount=interest,
            total_due=principal + interest + charge if total in (None, "") else to_decimal(total),
            balance=to_decimal(data.get("balance")),
            charge_amount=charge,
            principal_paid=to_decimal(data.get("principal_paid")),
            interest_paid=to_decimal(data.get("interest_paid")),
            status=RowStatus.parse(data.get("status")),
            is_roll_up_period=bool(data.get("is_roll_up_period", False)),
            is_serviced_period=bool(data.get("is_serviced_period", False)),
            is_extension_period=bool(data.get("is_extension_period", False)),
            calculation_days=_opt_int(data.get("calculation_days")),
            calculation_principal_start=_opt_decimal(data.get("calculation_principal_start")),
            id=None if data.get("id") is None else str(data["id"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "installment_number": self.installment_number,
            "due_date": self.due_date.isoformat(),
            "principal_amount": str(self.principal_amount),
            "interest_amount": str(self.interest_amount),
            "charge_amount": str(self.charge_amount),
            "total_due": str(self.total_due),
            "balance": str(self.balance),
            "principal_paid": str(self.principal_paid),
            "interest_paid": str(self.interest_paid),
            "status": self.status.value,
            "is_roll_up_period": self.is_roll_up_period,
            "is_serviced_period": self.is_serviced_period,
            "is_extension_period": self.is_extension_period,
            "calculation_days": self.calculation_days,
            "calculation_principal_start": _money_str(self.calculation_principal_start),
        }


@dataclass
class CapitalEvent:
    """A change in outstanding principal: positive for advances, negative for repayments."""

    date: date
    principal_change: Decimal
    description: str = ""
    transaction_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "principal_change": str(self.principal_change),
            "description": self.description,
            "transaction_id": self.transaction_id,
        }


@dataclass
class LedgerSegment:
    """A ``[start_date, end_date)`` range with constant principal and rate."""

    start_date: date
    end_date: date
    days: int
    principal: Decimal
    rate: Decimal
    daily_rate: Decimal
    interest: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "days": self.days,
            "principal": str(self.principal),
            "rate": str(self.rate),
            "daily_rate": str(self.daily_rate),
            "interest": str(self.interest),
        }


@dataclass
class LedgerResult:
    total_interest: Decimal
    segments: List[LedgerSegment]
    days: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_interest": str(self.total_interest),
            "days": self.days,
            "segments": [s.to_dict() for s in self.segments],
        }


@dataclass
class PeriodBreakdown:
    """Reconciled view of one schedule period up to the as-of date."""

    installment_number: int
    due_date: date
    period_start: date
    period_end: date
    days: int
    principal_at_period_start: Decimal
    expected_interest: Decimal
    interest_paid: Decimal
    principal_paid: Decimal
    had_capital_changes: bool
    transaction_ids: List[Optional[str]] = field(default_factory=list)
    segments: List[LedgerSegment] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "installment_number": self.installment_number,
            "due_date": self.due_date.isoformat(),
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "days": self.days,
            "principal_at_period_start": str(self.principal_at_period_start),
            "expected_interest": str(self.expected_interest),
            "interest_paid": str(self.interest_paid),
            "principal_paid": str(self.principal_paid),
            "had_capital_changes": self.had_capital_changes,
            "transaction_ids": list(self.transaction_ids),
        }


@dataclass
class InterestBalance:
    total_interest_due: Decimal
    total_interest_paid: Decimal
    interest_balance: Decimal
    principal_remaining: Decimal
    periods: List[PeriodBreakdown] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_interest_due": str(self.total_interest_due),
            "total_interest_paid": str(self.total_interest_paid),
            "interest_balance": str(self.interest_balance),
            "principal_remaining": str(self.principal_remaining),
            "periods": [p.to_dict() for p in self.periods],
        }


@dataclass
class AccruedInterest:
    interest_accrued: Decimal
    interest_paid: Decimal
    interest_remaining: Decimal
    principal_remaining: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "interest_accrued": str(self.interest_accrued),
            "interest_paid": str(self.interest_paid),
            "interest_remaining": str(self.interest_remaining),
            "principal_remaining": str(self.principal_remaining),
        }


@dataclass
class Summary:
    total_principal: Decimal
    total_interest: Decimal
    total_charges: Decimal
    total_repayable: Decimal
    installment_amount: Decimal
    number_of_installments: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_principal": str(self.total_principal),
            "total_interest": str(self.total_interest),
            "total_charges": str(self.total_charges),
            "total_repayable": str(self.total_repayable),
            "installment_amount": str(self.installment_amount),
            "number_of_installments": self.number_of_installments,
        }


@dataclass
class RowUpdate:
    """New paid figures for one schedule row after a payment is applied."""

    id: Optional[str]
    installment_number: int
    interest_paid: Decimal
    principal_paid: Decimal
    status: RowStatus
    interest_applied: Decimal = ZERO
    principal_applied: Decimal = ZERO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "installment_number": self.installment_number,
            "interest_paid": str(self.interest_paid),
            "principal_paid": str(self.principal_paid),
            "status": self.status.value,
            "interest_applied": str(self.interest_applied),
            "principal_applied": str(self.principal_applied),
        }


@dataclass
class WaterfallResult:
    updates: List[RowUpdate]
    remaining_payment: Decimal
    principal_reduction: Decimal
    credit_amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "updates": [u.to_dict() for u in self.updates],
            "remaining_payment": str(self.remaining_payment),
            "principal_reduction": str(self.principal_reduction),
            "credit_amount": str(self.credit_amount),
        }


@dataclass
class BalanceSnapshot:
    """Cached balance figures for one loan, as written by the batch job."""

    loan_id: str
    principal_remaining: Decimal
    interest_remaining: Decimal
    interest_accrued: Decimal
    interest_paid: Decimal
    as_of: date
    balance_updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "loan_id": self.loan_id,
            "principal_remaining": str(self.principal_remaining),
            "interest_remaining": str(self.interest_remaining),
            "interest_accrued": str(self.interest_accrued),
            "interest_paid": str(self.interest_paid),
            "as_of": self.as_of.isoformat(),
            "balance_updated_at": self.balance_updated_at.isoformat(),
        }
