"""Transaction classification rules for the online wallet and the cash drawer.

Every raw transaction is normalized into a signed :class:`LedgerDelta`. The
online wallet view (:func:`classify`) feeds the balance projector; the cash
view (:func:`classify_cash`) feeds the expected physical cash figure used by
the daily reconciliation.

Legacy rows recorded before the payment-method column existed carry
``LegacyUnspecified``. Their default is resolved per transaction type in
:func:`resolve_payment_method` and nowhere else: commissions were always
deducted by the aggregator from the wallet, whereas expenses were paid from
the drawer.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from .constants import ZERO, LedgerCategory, PaymentMethodKind
from .models import (
    AggregatorPayout,
    CommissionCharge,
    EmployeePayout,
    ExpensePayment,
    LedgerDelta,
    LoanDisbursement,
    LoanRepayment,
    PaymentMethod,
    SalesReceipt,
    Transaction,
    last_day_of_month,
)


_LEGACY_DEFAULTS = {
    CommissionCharge: PaymentMethod.online(),
    ExpensePayment: PaymentMethod.cash(),
}


def resolve_payment_method(tx: ExpensePayment | CommissionCharge) -> PaymentMethod:
    """Return the effective payment method of an expense or commission.

    ``LegacyUnspecified`` is replaced by the default registered for the
    transaction's own type. Any other method is returned unchanged.

    Raises:
        TypeError: If ``tx`` is not a type with a payment method.
    """
    method = tx.payment_method
    if method.kind is not PaymentMethodKind.LEGACY_UNSPECIFIED:
        return method
    try:
        return _LEGACY_DEFAULTS[type(tx)]
    except KeyError as exc:
        raise TypeError(f"No legacy payment default for {type(tx).__name__}") from exc


def _portions(tx: ExpensePayment | CommissionCharge) -> tuple[Decimal, Decimal]:
    """Split the paid amount into ``(cash, online)`` portions."""
    method = resolve_payment_method(tx)
    total = tx.total_amount if isinstance(tx, ExpensePayment) else tx.amount
    if method.kind is PaymentMethodKind.ONLINE:
        return ZERO, total
    if method.kind is PaymentMethodKind.SPLIT:
        return method.cash_amount or ZERO, method.online_amount or ZERO
    return total, ZERO


def effective_date(tx: Transaction) -> date:
    """Return the day on which ``tx`` affects the ledgers.

    Commissions apply on the last calendar day of their billing month; every
    other transaction applies on its own date (a loan repayment on its
    repayment date).
    """
    if isinstance(tx, CommissionCharge):
        return last_day_of_month(tx.billing_month)
    return tx.date


def _outflow(category: LedgerCategory, amount: Decimal) -> LedgerDelta:
    if amount == ZERO:
        return LedgerDelta.none()
    return LedgerDelta(category, amount, -1)


def _inflow(category: LedgerCategory, amount: Decimal) -> LedgerDelta:
    if amount == ZERO:
        return LedgerDelta.none()
    return LedgerDelta(category, amount, 1)


def classify(tx: Transaction, on_date: Optional[date] = None) -> LedgerDelta:
    """Classify the online wallet impact of ``tx`` as seen on ``on_date``.

    Args:
        tx (Transaction): Raw transaction from the source.
        on_date (date | None): Ledger day being summed. Defaults to the
            transaction's effective date. A commission only contributes on the
            last day of its billing month and yields a zero delta otherwise.

    Returns:
        LedgerDelta: Category, magnitude and sign of the wallet movement. A
            transaction with no wallet impact yields ``LedgerDelta.none()``.
    """
    if on_date is not None and on_date != effective_date(tx):
        return LedgerDelta.none()

    if isinstance(tx, SalesReceipt):
        return _inflow(LedgerCategory.PAYTM, tx.paytm_received)
    if isinstance(tx, AggregatorPayout):
        return _inflow(LedgerCategory.PAYOUTS, tx.swiggy_amount + tx.zomato_amount)
    if isinstance(tx, LoanDisbursement):
        return _inflow(LedgerCategory.LOANS, tx.amount)
    if isinstance(tx, LoanRepayment):
        return _outflow(LedgerCategory.LOAN_REPAYMENTS, tx.amount)
    if isinstance(tx, EmployeePayout):
        # Payroll always leaves from the wallet, whatever the payroll row says.
        return _outflow(LedgerCategory.EMPLOYEE_PAYOUTS, tx.amount)
    if isinstance(tx, ExpensePayment):
        return _outflow(LedgerCategory.EXPENSES_ONLINE, _portions(tx)[1])
    if isinstance(tx, CommissionCharge):
        return _outflow(LedgerCategory.COMMISSION, _portions(tx)[1])
    raise TypeError(f"Unsupported transaction type: {type(tx).__name__}")


def classify_cash(tx: Transaction) -> LedgerDelta:
    """Classify the physical cash drawer impact of ``tx``.

    Only counter cash, cash-paid expenses and cash-paid commissions touch the
    drawer. Employee payouts and loans never do.
    """
    if isinstance(tx, SalesReceipt):
        return _inflow(LedgerCategory.CASH_SALES, tx.cash_received)
    if isinstance(tx, ExpensePayment):
        return _outflow(LedgerCategory.EXPENSES_CASH, _portions(tx)[0])
    if isinstance(tx, CommissionCharge):
        return _outflow(LedgerCategory.COMMISSION_CASH, _portions(tx)[0])
    if isinstance(tx, (AggregatorPayout, EmployeePayout, LoanDisbursement, LoanRepayment)):
        return LedgerDelta.none()
    raise TypeError(f"Unsupported transaction type: {type(tx).__name__}")


def sum_online(transactions: Iterable[Transaction], on_date: date) -> Decimal:
    """Net online wallet movement of ``transactions`` effective on ``on_date``."""
    return sum((classify(tx, on_date).signed_amount for tx in transactions), ZERO)


def sum_cash(transactions: Iterable[Transaction], on_date: date) -> Decimal:
    """Net cash drawer movement of ``transactions`` effective on ``on_date``."""
    return sum(
        (classify_cash(tx).signed_amount for tx in transactions if effective_date(tx) == on_date),
        ZERO,
    )
