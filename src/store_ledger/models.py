"""Domain model for the online cash ledger.

Transactions are immutable value objects forming a tagged union. Derived
structures (ledger deltas, daily entries, balance results) are produced by the
engine on every request and never persisted. The exception hierarchy shared by
every layer lives here as well so the engine modules do not depend on the
business logic layer.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Tuple, Union

from .constants import (
    ZERO,
    ApprovalStatus,
    DiscrepancyType,
    ExpenseCategory,
    LedgerCategory,
    PaymentMethodKind,
    Severity,
)


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced record or anchor is unknown."""


class AmbiguousAnchorError(BusinessRuleViolation):
    """Raised when a store has several active anchors for one billing month."""


class InvalidAnchorError(BusinessRuleViolation):
    """Raised when an anchor date does not fall inside its billing month."""


class InvalidStateTransition(BusinessRuleViolation):
    """Raised when an approval transition is not allowed from the current state."""


class ConcurrentModificationError(InvalidStateTransition):
    """Raised when a record changed between read and settlement."""


class MalformedBalanceError(BusinessRuleViolation, ValueError):
    """Raised when a counted balance cannot be interpreted unambiguously."""


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------


def parse_billing_month(value: str) -> Tuple[int, int]:
    """Split a ``YYYY-MM`` billing month into ``(year, month)``.

    Raises:
        ValueError: If ``value`` is not a valid ``YYYY-MM`` string.
    """
    try:
        year_text, month_text = value.strip().split("-")
        year, month = int(year_text), int(month_text)
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Billing month must look like YYYY-MM: {value!r}") from exc
    if not 1 <= month <= 12:
        raise ValueError(f"Billing month out of range: {value!r}")
    return year, month


def billing_month_of(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def first_day_of_month(billing_month: str) -> date:
    year, month = parse_billing_month(billing_month)
    return date(year, month, 1)


def last_day_of_month(billing_month: str) -> date:
    """Return the last calendar day of ``billing_month``."""
    year, month = parse_billing_month(billing_month)
    return date(year, month, calendar.monthrange(year, month)[1])


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PaymentMethod:
    """How an expense or commission was settled.

    ``Split`` carries both portions; the other kinds carry no amounts.
    ``LegacyUnspecified`` marks rows recorded before the payment method was
    captured. It is resolved per transaction type by the classifier.
    """

    kind: PaymentMethodKind
    cash_amount: Optional[Decimal] = None
    online_amount: Optional[Decimal] = None

    @classmethod
    def cash(cls) -> "PaymentMethod":
        return cls(PaymentMethodKind.CASH)

    @classmethod
    def online(cls) -> "PaymentMethod":
        return cls(PaymentMethodKind.ONLINE)

    @classmethod
    def split(cls, cash_amount: Decimal, online_amount: Decimal) -> "PaymentMethod":
        return cls(PaymentMethodKind.SPLIT, cash_amount=cash_amount, online_amount=online_amount)

    @classmethod
    def legacy(cls) -> "PaymentMethod":
        return cls(PaymentMethodKind.LEGACY_UNSPECIFIED)


@dataclass(frozen=True)
class SalesReceipt:
    """Counter takings for a day, split by how customers paid."""

    store_id: str
    date: date
    paytm_received: Decimal
    cash_received: Decimal
    transaction_id: Optional[str] = None


@dataclass(frozen=True)
class AggregatorPayout:
    """Money an aggregator actually deposited into the online wallet."""

    store_id: str
    date: date
    swiggy_amount: Decimal
    zomato_amount: Decimal
    transaction_id: Optional[str] = None


@dataclass(frozen=True)
class ExpensePayment:
    """Inventory, overhead, or fixed-cost spend tagged with its payment method."""

    store_id: str
    date: date
    category: ExpenseCategory
    total_amount: Decimal
    payment_method: PaymentMethod
    transaction_id: Optional[str] = None


@dataclass(frozen=True)
class CommissionCharge:
    """Aggregator commission for a whole billing month."""

    store_id: str
    date: date
    amount: Decimal
    payment_method: PaymentMethod
    billing_month: str
    transaction_id: Optional[str] = None


@dataclass(frozen=True)
class EmployeePayout:
    """Salary or advance paid to an employee from the online wallet."""

    store_id: str
    date: date
    amount: Decimal
    employee_id: Optional[str] = None
    transaction_id: Optional[str] = None


@dataclass(frozen=True)
class LoanDisbursement:
    store_id: str
    date: date
    amount: Decimal
    loan_id: Optional[str] = None
    transaction_id: Optional[str] = None


@dataclass(frozen=True)
class LoanRepayment:
    store_id: str
    date: date
    amount: Decimal
    loan_id: Optional[str] = None
    transaction_id: Optional[str] = None


Transaction = Union[
    SalesReceipt,
    AggregatorPayout,
    ExpensePayment,
    CommissionCharge,
    EmployeePayout,
    LoanDisbursement,
    LoanRepayment,
]

LoanMovement = Union[LoanDisbursement, LoanRepayment]


# ---------------------------------------------------------------------------
# Anchors and derived ledger structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RecalibrationAnchor:
    """Human-counted online wallet balance that pins the ledger on a date."""

    store_id: str
    billing_month: str
    anchor_date: date
    counted_balance: Decimal
    anchor_id: Optional[str] = None
    system_balance: Optional[Decimal] = None
    difference: Optional[Decimal] = None
    discrepancy_type: DiscrepancyType = DiscrepancyType.NONE
    loan_amount: Optional[Decimal] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    is_active: bool = True


@dataclass(frozen=True)
class LedgerDelta:
    """Signed impact of one transaction on a ledger."""

    category: LedgerCategory
    amount: Decimal
    sign: int

    @property
    def signed_amount(self) -> Decimal:
        return self.amount * self.sign

    @classmethod
    def none(cls) -> "LedgerDelta":
        return cls(LedgerCategory.NO_IMPACT, ZERO, 0)


@dataclass(frozen=True)
class DailyInflows:
    paytm: Decimal = ZERO
    payouts: Decimal = ZERO
    loans: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.paytm + self.payouts + self.loans


@dataclass(frozen=True)
class DailyOutflows:
    expenses_online: Decimal = ZERO
    commission: Decimal = ZERO
    employee_payouts: Decimal = ZERO
    loan_repayments: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.expenses_online + self.commission + self.employee_payouts + self.loan_repayments


@dataclass(frozen=True)
class DailyLedgerEntry:
    """One row of the online wallet breakdown table."""

    date: date
    inflows: DailyInflows
    outflows: DailyOutflows
    net_change: Decimal
    running_balance: Decimal
    derived_from_missing_data: bool = False
    is_anchor: bool = False


@dataclass(frozen=True)
class BalanceResult:
    """Projected balance plus the flags callers must surface as warnings."""

    store_id: str
    target_date: date
    balance: Decimal
    anchor: Optional[RecalibrationAnchor] = None
    derived_from_missing_data: bool = False

    @property
    def negative_balance(self) -> bool:
        return self.balance < ZERO


@dataclass(frozen=True)
class Discrepancy:
    delta: Decimal
    severity: Severity

    @property
    def requires_approval(self) -> bool:
        return self.severity is Severity.MAJOR


@dataclass(frozen=True)
class ApprovalState:
    """Approval lifecycle position of a day's reconciliation record."""

    status: ApprovalStatus = ApprovalStatus.DRAFT
    by: Optional[str] = None
    at: Optional[datetime] = None
    reason: Optional[str] = None

    @property
    def is_settled(self) -> bool:
        return self.status in (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED)


@dataclass(frozen=True)
class DailySalesRecord:
    """Persisted daily cash and online reconciliation for one store."""

    record_id: str
    store_id: str
    date: date
    expected_cash: Decimal
    actual_cash: Decimal
    cash_discrepancy: Decimal
    expected_online: Decimal
    actual_online: Decimal
    online_discrepancy: Decimal
    approval: ApprovalState = field(default_factory=ApprovalState)
    submitted_by: Optional[str] = None
    version: int = 1


__all__ = [
    "BusinessRuleViolation",
    "MissingReferenceError",
    "AmbiguousAnchorError",
    "InvalidAnchorError",
    "InvalidStateTransition",
    "ConcurrentModificationError",
    "MalformedBalanceError",
    "parse_billing_month",
    "billing_month_of",
    "first_day_of_month",
    "last_day_of_month",
    "PaymentMethod",
    "SalesReceipt",
    "AggregatorPayout",
    "ExpensePayment",
    "CommissionCharge",
    "EmployeePayout",
    "LoanDisbursement",
    "LoanRepayment",
    "Transaction",
    "LoanMovement",
    "RecalibrationAnchor",
    "LedgerDelta",
    "DailyInflows",
    "DailyOutflows",
    "DailyLedgerEntry",
    "BalanceResult",
    "Discrepancy",
    "ApprovalState",
    "DailySalesRecord",
]
