"""Online wallet balance projection.

The balance on a date is the governing anchor's counted balance plus every
classified wallet movement strictly after the anchor date and up to the
requested date. A display window is rendered from the same data by pinning the
anchor rows it contains and walking forward and backward from them.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from . import log
from .anchors import resolve_anchor
from .classifier import classify, effective_date
from .constants import ZERO, LedgerCategory
from .models import (
    BalanceResult,
    DailyInflows,
    DailyLedgerEntry,
    DailyOutflows,
    RecalibrationAnchor,
    SalesReceipt,
    Transaction,
)
from .source import TransactionSource, load_snapshot


_INFLOW_FIELDS = {
    LedgerCategory.PAYTM: "paytm",
    LedgerCategory.PAYOUTS: "payouts",
    LedgerCategory.LOANS: "loans",
}

_OUTFLOW_FIELDS = {
    LedgerCategory.EXPENSES_ONLINE: "expenses_online",
    LedgerCategory.COMMISSION: "commission",
    LedgerCategory.EMPLOYEE_PAYOUTS: "employee_payouts",
    LedgerCategory.LOAN_REPAYMENTS: "loan_repayments",
}


def _online_delta(tx: Transaction) -> Decimal:
    return classify(tx, effective_date(tx)).signed_amount


def _after_base(day: date, anchor: Optional[RecalibrationAnchor]) -> bool:
    return anchor is None or day > anchor.anchor_date


def project_balance(
    transactions: Iterable[Transaction],
    anchor: Optional[RecalibrationAnchor],
    target_date: date,
    *,
    store_id: Optional[str] = None,
    in_flight_delta: Optional[Decimal] = None,
) -> BalanceResult:
    """Project the online wallet balance at the end of ``target_date``.

    Args:
        transactions (Iterable[Transaction]): Persisted transactions of one
            store. Entries outside ``(anchor_date, target_date]`` are ignored.
        anchor (RecalibrationAnchor | None): Governing anchor, or ``None`` for a
            zero baseline from an unbounded epoch.
        target_date (date): Day whose closing balance is requested.
        store_id (str | None): Store label for the result. Defaults to the
            anchor's store.
        in_flight_delta (Decimal | None): Online movement of the form being
            entered for ``target_date``. When supplied, persisted sales
            receipts of ``target_date`` are replaced by it; other persisted
            transactions of that day still count.

    Returns:
        BalanceResult: Balance plus the missing-data and negative flags.
    """
    if anchor is not None and anchor.anchor_date > target_date:
        raise ValueError(f"Anchor {anchor.anchor_date} is after target date {target_date}")

    balance = anchor.counted_balance if anchor is not None else ZERO
    for tx in transactions:
        day = effective_date(tx)
        if day > target_date or not _after_base(day, anchor):
            continue
        if in_flight_delta is not None and day == target_date and isinstance(tx, SalesReceipt):
            continue
        balance += _online_delta(tx)

    if in_flight_delta is not None and _after_base(target_date, anchor):
        balance += in_flight_delta

    result = BalanceResult(
        store_id=store_id if store_id is not None else (anchor.store_id if anchor else ""),
        target_date=target_date,
        balance=balance,
        anchor=anchor,
        derived_from_missing_data=anchor is None,
    )
    if result.negative_balance:
        log.warning(
            "Projected online balance for store '%s' on %s is negative: %s",
            result.store_id,
            target_date,
            balance,
        )
    return result


def _daily_totals(transactions: Iterable[Transaction], dates: Sequence[date]):
    """Aggregate inflow and outflow columns for each date in ``dates``."""
    wanted = set(dates)
    inflows: Dict[date, Dict[str, Decimal]] = defaultdict(lambda: defaultdict(lambda: ZERO))
    outflows: Dict[date, Dict[str, Decimal]] = defaultdict(lambda: defaultdict(lambda: ZERO))
    for tx in transactions:
        day = effective_date(tx)
        if day not in wanted:
            continue
        delta = classify(tx, day)
        if delta.category in _INFLOW_FIELDS:
            inflows[day][_INFLOW_FIELDS[delta.category]] += delta.amount
        elif delta.category in _OUTFLOW_FIELDS:
            outflows[day][_OUTFLOW_FIELDS[delta.category]] += delta.amount
    return (
        {day: DailyInflows(**inflows[day]) for day in dates},
        {day: DailyOutflows(**outflows[day]) for day in dates},
    )


def _pinned_anchors(
    anchor: Optional[RecalibrationAnchor],
    others: Iterable[RecalibrationAnchor],
    window_start: date,
    window_end: date,
) -> Dict[date, RecalibrationAnchor]:
    """Active anchors dated inside the window, keyed by anchor date."""
    pinned: Dict[date, RecalibrationAnchor] = {}
    for candidate in others:
        if candidate.is_active and window_start <= candidate.anchor_date <= window_end:
            pinned[candidate.anchor_date] = candidate
    if anchor is not None and anchor.anchor_date >= window_start:
        pinned[anchor.anchor_date] = anchor
    return pinned


def build_breakdown(
    transactions: Sequence[Transaction],
    anchor: Optional[RecalibrationAnchor],
    window_start: date,
    window_end: date,
    *,
    anchors: Iterable[RecalibrationAnchor] = (),
) -> List[DailyLedgerEntry]:
    """Render one ledger row per active date of ``[window_start, window_end]``.

    Rows exist for every date carrying at least one transaction, plus every
    anchor date inside the window.

    * Anchors inside the window: each anchor row is pinned to its counted
      balance and later rows accumulate forward until the next anchor. Rows
      before the first anchor are recovered backward with
      ``running[i] = running[i + 1] - net[i + 1]``.
    * Anchor before the window: the anchor balance plus every movement between
      the anchor and the window seeds a forward pass.
    * No anchor: movements before the window seed a forward pass from zero,
      and every row is flagged ``derived_from_missing_data``.

    Args:
        transactions (Sequence[Transaction]): Persisted transactions of one
            store up to ``window_end``.
        anchor (RecalibrationAnchor | None): Latest active anchor on or before
            ``window_end``.
        window_start (date): First day of the window.
        window_end (date): Last day of the window.
        anchors (Iterable[RecalibrationAnchor]): Further anchors of the store.
            Active ones dated inside the window are pinned as well.

    Raises:
        ValueError: If the window is empty or the anchor lies after it.
    """
    if window_start > window_end:
        raise ValueError(f"Window start {window_start} is after window end {window_end}")
    if anchor is not None and anchor.anchor_date > window_end:
        raise ValueError(f"Anchor {anchor.anchor_date} is after window end {window_end}")

    pinned = _pinned_anchors(anchor, anchors, window_start, window_end)
    active = {effective_date(tx) for tx in transactions}
    dates = sorted({day for day in active if window_start <= day <= window_end} | set(pinned))

    inflows, outflows = _daily_totals(transactions, dates)
    net = [inflows[day].total - outflows[day].total for day in dates]
    running: List[Decimal] = [ZERO] * len(dates)

    if pinned:
        first = dates.index(min(pinned))
        for index in range(first, len(dates)):
            day = dates[index]
            if day in pinned:
                running[index] = pinned[day].counted_balance
            else:
                running[index] = running[index - 1] + net[index]
        for index in range(first - 1, -1, -1):
            running[index] = running[index + 1] - net[index + 1]
    else:
        seed = anchor.counted_balance if anchor is not None else ZERO
        for tx in transactions:
            day = effective_date(tx)
            if day < window_start and _after_base(day, anchor):
                seed += _online_delta(tx)
        previous = seed
        for index in range(len(dates)):
            previous = previous + net[index]
            running[index] = previous

    missing = anchor is None
    if missing:
        log.warning(
            "Breakdown %s..%s has no governing anchor; balances start from zero",
            window_start,
            window_end,
        )
    return [
        DailyLedgerEntry(
            date=day,
            inflows=inflows[day],
            outflows=outflows[day],
            net_change=net[index],
            running_balance=running[index],
            derived_from_missing_data=missing,
            is_anchor=day in pinned,
        )
        for index, day in enumerate(dates)
    ]


class BalanceProjector:
    """Projects balances for a store from one snapshot per call.

    Args:
        source (TransactionSource): Collaborator the snapshots are read from.
    """

    def __init__(self, source: TransactionSource) -> None:
        self._source = source

    def project_details(
        self,
        store_id: str,
        target_date: date,
        in_flight_delta: Optional[Decimal] = None,
        snapshot_version: Optional[str] = None,
    ) -> BalanceResult:
        snapshot = load_snapshot(self._source, store_id, None, target_date, version=snapshot_version)
        anchor = resolve_anchor(snapshot.anchors, store_id, target_date)
        return project_balance(
            snapshot.transactions,
            anchor,
            target_date,
            store_id=store_id,
            in_flight_delta=in_flight_delta,
        )

    def project(
        self,
        store_id: str,
        target_date: date,
        in_flight_delta: Optional[Decimal] = None,
        snapshot_version: Optional[str] = None,
    ) -> Decimal:
        return self.project_details(store_id, target_date, in_flight_delta, snapshot_version).balance

    def breakdown(
        self,
        store_id: str,
        window_start: date,
        window_end: date,
        snapshot_version: Optional[str] = None,
    ) -> List[DailyLedgerEntry]:
        snapshot = load_snapshot(self._source, store_id, None, window_end, version=snapshot_version)
        anchor = resolve_anchor(snapshot.anchors, store_id, window_end)
        return build_breakdown(
            snapshot.transactions,
            anchor,
            window_start,
            window_end,
            anchors=snapshot.anchors,
        )
