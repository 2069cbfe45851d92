"""Enumerations shared across the store ledger modules.

Centralises domain constants so that the data access layer (DAL), the
reconciliation engine, and the command-line front-end rely on a single source
of truth for persisted identifiers.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Absolute discrepancy (currency units) above which a day needs escalation.
DEFAULT_DISCREPANCY_THRESHOLD = Decimal("500")

DEFAULT_BUSINESS_TIMEZONE = "Asia/Kolkata"

ZERO = Decimal("0")


class ExpenseCategory(str, Enum):
    """Enumerate the expense families that can be paid from either ledger."""

    INVENTORY = "Inventory"
    OVERHEAD = "Overhead"
    FIXED_COST = "FixedCost"


class PaymentMethodKind(str, Enum):
    """Enumerate how an expense or commission was paid."""

    CASH = "Cash"
    ONLINE = "Online"
    SPLIT = "Split"
    LEGACY_UNSPECIFIED = "LegacyUnspecified"


class LoanKind(str, Enum):
    """Distinguish the two directions of an online loan movement."""

    DISBURSEMENT = "DISBURSEMENT"
    REPAYMENT = "REPAYMENT"


class LedgerCategory(str, Enum):
    """Tag attached to every classified ledger delta."""

    PAYTM = "paytm"
    PAYOUTS = "payouts"
    LOANS = "loans"
    EXPENSES_ONLINE = "expenses_online"
    COMMISSION = "commission"
    EMPLOYEE_PAYOUTS = "employee_payouts"
    LOAN_REPAYMENTS = "loan_repayments"
    CASH_SALES = "cash_sales"
    EXPENSES_CASH = "expenses_cash"
    COMMISSION_CASH = "commission_cash"
    NO_IMPACT = "no_impact"


class Severity(str, Enum):
    """Classify how far a counted balance strays from the projection."""

    NONE = "None"
    MINOR = "Minor"
    MAJOR = "Major"


class ApprovalStatus(str, Enum):
    """Lifecycle states of a day's reconciliation record."""

    DRAFT = "Draft"
    PENDING_APPROVAL = "PendingApproval"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class DiscrepancyType(str, Enum):
    """Explanation recorded with a recalibration difference."""

    NONE = "none"
    MISTAKE = "mistake"
    LOAN = "loan"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    SALES = "Sales"
    PAYOUTS = "Payouts"
    EXPENSES = "Expenses"
    COMMISSIONS = "Commissions"
    EMPLOYEE_PAYOUTS = "EmployeePayouts"
    LOANS = "Loans"
    RECALIBRATIONS = "Recalibrations"
    DAILY_RECORDS = "DailyRecords"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "DEFAULT_DISCREPANCY_THRESHOLD",
    "DEFAULT_BUSINESS_TIMEZONE",
    "ZERO",
    "ExpenseCategory",
    "PaymentMethodKind",
    "LoanKind",
    "LedgerCategory",
    "Severity",
    "ApprovalStatus",
    "DiscrepancyType",
    "SheetName",
]
