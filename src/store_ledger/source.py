"""Read side of the ledger: transaction sources and consistent snapshots.

The engine never queries a source mid-computation. Every request reads one
:class:`TransactionSnapshot` holding all six transaction kinds plus the
store's anchors, and every later step works from that snapshot only.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple, TypeVar

from openpyxl.workbook import Workbook

from . import data_manager, log
from .anchors import resolve_anchor
from .models import (
    AggregatorPayout,
    CommissionCharge,
    EmployeePayout,
    ExpensePayment,
    LoanMovement,
    RecalibrationAnchor,
    SalesReceipt,
    Transaction,
    last_day_of_month,
)


class TransactionSource(Protocol):
    """Read-only collaborator supplying transactions for a store.

    Date ranges are inclusive on both ends; ``start=None`` means the range is
    unbounded toward the past.
    """

    def list_sales(self, store_id: str, start: Optional[date], end: date) -> List[SalesReceipt]: ...

    def list_payouts(self, store_id: str, start: Optional[date], end: date) -> List[AggregatorPayout]: ...

    def list_expenses(self, store_id: str, start: Optional[date], end: date) -> List[ExpensePayment]: ...

    def list_commissions(self, store_id: str, start: Optional[date], end: date) -> List[CommissionCharge]: ...

    def list_employee_payouts(self, store_id: str, start: Optional[date], end: date) -> List[EmployeePayout]: ...

    def list_loans(self, store_id: str, start: Optional[date], end: date) -> List[LoanMovement]: ...

    def list_anchors(self, store_id: str) -> List[RecalibrationAnchor]: ...

    def get_latest_anchor(self, store_id: str, on_or_before: date) -> Optional[RecalibrationAnchor]: ...

    def snapshot_version(self) -> str: ...


@dataclass(frozen=True)
class TransactionSnapshot:
    """Everything the engine needs for one store and date range.

    ``anchors`` holds every anchor of the store, active or not. Resolution
    rules live in :mod:`store_ledger.anchors`.
    """

    store_id: str
    start: Optional[date]
    end: date
    transactions: Tuple[Transaction, ...]
    anchors: Tuple[RecalibrationAnchor, ...]
    version: str


_R = TypeVar("_R", bound=Transaction)


def _in_range(day: date, start: Optional[date], end: date) -> bool:
    return (start is None or day >= start) and day <= end


def _filter(records: Iterable[_R], store_id: str, start: Optional[date], end: date) -> List[_R]:
    return [record for record in records if record.store_id == store_id and _in_range(record.date, start, end)]


class WorkbookTransactionSource:
    """:class:`TransactionSource` backed by the ledger workbook.

    The workbook is held in memory for the lifetime of a runtime context, so
    every list call observes the same state. ``snapshot_version`` reports a
    counter that advances whenever the owning context writes to the workbook.
    """

    def __init__(self, workbook: Workbook, *, version: str = "0") -> None:
        self._workbook = workbook
        self._version = version

    def list_sales(self, store_id: str, start: Optional[date], end: date) -> List[SalesReceipt]:
        return _filter(data_manager.iter_sales(self._workbook), store_id, start, end)

    def list_payouts(self, store_id: str, start: Optional[date], end: date) -> List[AggregatorPayout]:
        return _filter(data_manager.iter_payouts(self._workbook), store_id, start, end)

    def list_expenses(self, store_id: str, start: Optional[date], end: date) -> List[ExpensePayment]:
        return _filter(data_manager.iter_expenses(self._workbook), store_id, start, end)

    def list_commissions(self, store_id: str, start: Optional[date], end: date) -> List[CommissionCharge]:
        """Return commissions whose billing month closes inside the range.

        A commission applies on the last day of its billing month, so the
        range test uses that day rather than the row's own date.
        """
        return [
            record
            for record in data_manager.iter_commissions(self._workbook)
            if record.store_id == store_id and _in_range(last_day_of_month(record.billing_month), start, end)
        ]

    def list_employee_payouts(self, store_id: str, start: Optional[date], end: date) -> List[EmployeePayout]:
        return _filter(data_manager.iter_employee_payouts(self._workbook), store_id, start, end)

    def list_loans(self, store_id: str, start: Optional[date], end: date) -> List[LoanMovement]:
        return _filter(data_manager.iter_loans(self._workbook), store_id, start, end)

    def list_anchors(self, store_id: str) -> List[RecalibrationAnchor]:
        return [anchor for anchor in data_manager.iter_recalibrations(self._workbook) if anchor.store_id == store_id]

    def get_latest_anchor(self, store_id: str, on_or_before: date) -> Optional[RecalibrationAnchor]:
        return resolve_anchor(self.list_anchors(store_id), store_id, on_or_before)

    def snapshot_version(self) -> str:
        return self._version


def load_snapshot(
    source: TransactionSource,
    store_id: str,
    start: Optional[date],
    end: date,
    *,
    version: Optional[str] = None,
) -> TransactionSnapshot:
    """Read every transaction kind for ``store_id`` in one pass.

    Args:
        source (TransactionSource): Collaborator to read from.
        store_id (str): Store whose ledger is requested.
        start (date | None): First date to include, ``None`` for unbounded.
        end (date): Last date to include.
        version (str | None): Snapshot label supplied by the caller when the
            source cannot guarantee consistency on its own. Defaults to the
            source's :meth:`TransactionSource.snapshot_version`. A label that
            differs from the source's current version is logged as stale.

    Returns:
        TransactionSnapshot: Immutable bundle used for the whole computation.
    """
    if start is not None and start > end:
        raise ValueError(f"Snapshot start {start} is after end {end}")

    current_version = source.snapshot_version()
    if version is not None and version != current_version:
        log.warning(
            "Snapshot for store '%s' pinned to version %s but the source is at %s",
            store_id,
            version,
            current_version,
        )
    resolved_version = version if version is not None else current_version
    groups: Sequence[Sequence[Transaction]] = (
        source.list_sales(store_id, start, end),
        source.list_payouts(store_id, start, end),
        source.list_expenses(store_id, start, end),
        source.list_commissions(store_id, start, end),
        source.list_employee_payouts(store_id, start, end),
        source.list_loans(store_id, start, end),
    )
    transactions = tuple(tx for group in groups for tx in group)
    anchors = tuple(source.list_anchors(store_id))
    log.debug(
        "Loaded snapshot %s for store '%s' (%s..%s): %d transactions, %d anchors",
        resolved_version,
        store_id,
        start,
        end,
        len(transactions),
        len(anchors),
    )
    return TransactionSnapshot(
        store_id=store_id,
        start=start,
        end=end,
        transactions=transactions,
        anchors=anchors,
        version=resolved_version,
    )
