"""Business logic layer for the store ledger.

This module orchestrates the reconciliation engine on top of the Data Access
Layer (DAL). Read operations project balances and breakdowns from one
transaction snapshot per call. Write operations (daily closes, approval
transitions and recalibrations) mutate the in-memory workbook only; callers
persist the result with :func:`persist_context`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from openpyxl.workbook import Workbook

from . import data_manager, log
from .anchors import ensure_unambiguous, resolve_anchor, validate_anchor
from .approval import approve as approve_state
from .approval import initial_state
from .approval import reject as reject_state
from .approval import request_approval as request_approval_state
from .classifier import sum_cash
from .constants import EXPECTED_SCHEMA_VERSION, ZERO, ApprovalStatus, DiscrepancyType, Severity
from .discrepancy import combine_severity, evaluate, parse_counted_balance
from .models import (
    AmbiguousAnchorError,
    ApprovalState,
    BalanceResult,
    BusinessRuleViolation,
    ConcurrentModificationError,
    DailyLedgerEntry,
    DailySalesRecord,
    Discrepancy,
    InvalidAnchorError,
    InvalidStateTransition,
    MalformedBalanceError,
    MissingReferenceError,
    RecalibrationAnchor,
)
from .projector import BalanceProjector, project_balance
from .source import WorkbookTransactionSource, load_snapshot

MoneyInput = Union[Decimal, str, int, None]


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and workbook references used by the BLL."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    _cache: Dict[str, Dict[str, Any]] = field(default_factory=dict, repr=False, compare=False)


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` or the current UTC time when it is ``None``."""

    return candidate if candidate is not None else datetime.now(UTC)


def _get_cache_bucket(context: RuntimeContext, name: str) -> Dict[str, Any]:
    """Return the mutable cache bucket called ``name``, creating it on demand."""

    bucket = context._cache.get(name)
    if bucket is None:
        log.debug("Initializing cache bucket '%s'", name)
        bucket = {}
        context._cache[name] = bucket
    return bucket


def _invalidate_cache(context: RuntimeContext, *names: str) -> None:
    """Evict cache buckets after a write and advance the snapshot counter.

    Every write passes through here, so the counter doubles as the version
    label of the snapshots handed to the projector.
    """

    if not names:
        return

    log.debug("Invalidating cache buckets: %s", ", ".join(names))

    for name in names:
        context._cache.pop(name, None)
    meta = _get_cache_bucket(context, "snapshot")
    meta["version"] = meta.get("version", 0) + 1


def _ensure_daily_records_cache(context: RuntimeContext) -> Dict[str, Any]:
    bucket = _get_cache_bucket(context, "daily_records")
    if "all" not in bucket:
        records = list(data_manager.iter_daily_records(context.workbook))
        bucket["all"] = records
        bucket["by_id"] = {record.record_id: record for record in records}
        bucket["by_day"] = {(record.store_id, record.date): record for record in records}
        log.debug("Populated daily records cache with %d entries", len(records))
    return bucket


def _ensure_anchors_cache(context: RuntimeContext) -> Dict[str, Any]:
    bucket = _get_cache_bucket(context, "anchors")
    if "all" not in bucket:
        anchors = list(data_manager.iter_recalibrations(context.workbook))
        bucket["all"] = anchors
        bucket["by_id"] = {anchor.anchor_id: anchor for anchor in anchors if anchor.anchor_id}
        log.debug("Populated anchors cache with %d entries", len(anchors))
    return bucket


def snapshot_version(context: RuntimeContext) -> str:
    """Return the label of the workbook state the next snapshot will observe."""

    return str(_get_cache_bucket(context, "snapshot").get("version", 0))


def get_source(context: RuntimeContext) -> WorkbookTransactionSource:
    """Return a transaction source reading the context's workbook."""

    return WorkbookTransactionSource(context.workbook, version=snapshot_version(context))


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and a live workbook for the BLL.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Fully populated context ready for orchestration
            functions.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return RuntimeContext(settings=settings, workbook=workbook)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION`` or the workbook lacks one of
            the ledger sheets.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    absent = data_manager.missing_sheets(context.workbook)
    if absent:
        log.error("Workbook is missing sheets: %s", ", ".join(absent))
        raise RuntimeError(f"Workbook is missing sheets: {', '.join(absent)}")

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def generate_record_id(*, prefix: str = "D", when: Optional[datetime] = None) -> str:
    """Generate a sortable identifier such as ``D20250115093000123456``.

    Microseconds are included so that two writes within one second do not
    collide. Passing ``when`` yields deterministic identifiers for tests.
    """
    when = when or _resolve_timestamp(None)
    return f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}"


# ---------------------------------------------------------------------------
# Balances and breakdowns
# ---------------------------------------------------------------------------


def compute_online_balance_details(
    context: RuntimeContext,
    store_id: str,
    target_date: date,
    in_flight_delta: Optional[Decimal] = None,
    *,
    snapshot_version: Optional[str] = None,
) -> BalanceResult:
    """Project the online wallet balance of ``store_id`` at ``target_date``.

    Args:
        context (RuntimeContext): Runtime context providing workbook access.
        store_id (str): Store whose wallet is projected.
        target_date (date): Business date of the requested closing balance.
        in_flight_delta (Decimal | None): Online movement of a day still being
            entered. It replaces the persisted sales receipts of
            ``target_date`` instead of being added on top of them.
        snapshot_version (str | None): Explicit snapshot label, used when the
            caller pins the read to a known workbook state.

    Returns:
        BalanceResult: Balance, governing anchor and warning flags.

    Raises:
        AmbiguousAnchorError: If the store has duplicate active anchors.
    """
    projector = BalanceProjector(get_source(context))
    result = projector.project_details(store_id, target_date, in_flight_delta, snapshot_version)
    if result.derived_from_missing_data:
        log.warning(
            "Online balance for store '%s' on %s has no anchor and may understate history",
            store_id,
            target_date,
        )
    return result


def compute_online_balance(
    context: RuntimeContext,
    store_id: str,
    target_date: date,
    in_flight_delta: Optional[Decimal] = None,
    *,
    snapshot_version: Optional[str] = None,
) -> Decimal:
    """Return only the projected balance of :func:`compute_online_balance_details`."""

    return compute_online_balance_details(
        context,
        store_id,
        target_date,
        in_flight_delta,
        snapshot_version=snapshot_version,
    ).balance


def compute_daily_breakdown(
    context: RuntimeContext,
    store_id: str,
    window_start: date,
    window_end: date,
    *,
    snapshot_version: Optional[str] = None,
) -> List[DailyLedgerEntry]:
    """Render the per-day online wallet ledger for a display window."""

    entries = BalanceProjector(get_source(context)).breakdown(store_id, window_start, window_end, snapshot_version)
    log.debug(
        "Built breakdown for store '%s' (%s..%s) with %d rows",
        store_id,
        window_start,
        window_end,
        len(entries),
    )
    return entries


def compute_expected_cash(context: RuntimeContext, store_id: str, target_date: date) -> BalanceResult:
    """Derive the cash the drawer should hold at the close of ``target_date``.

    The opening figure is the cash counted at the previous day's close. Cash
    takings of the day are added and cash-paid expenses and commissions are
    subtracted. When the previous day has no counted figure the opening is
    zero and the result is flagged ``derived_from_missing_data``.
    """
    previous_day = target_date - timedelta(days=1)
    previous = _ensure_daily_records_cache(context)["by_day"].get((store_id, previous_day))
    opening = previous.actual_cash if previous is not None else ZERO
    missing = previous is None or previous.actual_cash == ZERO

    snapshot = load_snapshot(get_source(context), store_id, target_date, target_date)
    expected = opening + sum_cash(snapshot.transactions, target_date)
    if missing:
        log.warning(
            "No counted cash for store '%s' on %s; expected cash starts from zero",
            store_id,
            previous_day,
        )
    return BalanceResult(
        store_id=store_id,
        target_date=target_date,
        balance=expected,
        derived_from_missing_data=missing,
    )


def evaluate_discrepancy(
    expected: Decimal,
    actual: Decimal,
    threshold: Optional[Decimal] = None,
) -> Discrepancy:
    """Evaluate ``actual - expected`` against the approval threshold."""

    return evaluate(expected, actual, threshold)


# ---------------------------------------------------------------------------
# Daily records and approvals
# ---------------------------------------------------------------------------


def list_daily_records(context: RuntimeContext, store_id: Optional[str] = None) -> List[DailySalesRecord]:
    records = _ensure_daily_records_cache(context)["all"]
    if store_id is None:
        return list(records)
    return [record for record in records if record.store_id == store_id]


def get_daily_record(context: RuntimeContext, record_id: str) -> DailySalesRecord:
    """Resolve a daily record by identifier.

    Raises:
        MissingReferenceError: If ``record_id`` is absent from the workbook.
    """
    cache = _ensure_daily_records_cache(context)
    try:
        return cache["by_id"][record_id]
    except KeyError as exc:
        log.warning("Daily record lookup failed for id '%s'", record_id)
        raise MissingReferenceError(f"Unknown daily record id: {record_id}") from exc


def _record_severity(record: DailySalesRecord, threshold: Decimal) -> Severity:
    return combine_severity(
        evaluate(record.expected_cash, record.actual_cash, threshold).severity,
        evaluate(record.expected_online, record.actual_online, threshold).severity,
    )


def _check_version(record: DailySalesRecord, expected_version: Optional[int]) -> None:
    if expected_version is not None and record.version != expected_version:
        log.warning(
            "Daily record '%s' changed concurrently: expected version %s, found %s",
            record.record_id,
            expected_version,
            record.version,
        )
        raise ConcurrentModificationError(
            f"Daily record '{record.record_id}' is at version {record.version}, not {expected_version}"
        )


def _track_unsaved(context: RuntimeContext, record: DailySalesRecord, loaded_version: Optional[int]) -> None:
    """Remember the version a record had when this context first changed it.

    ``None`` marks a record created by this context.
    """
    unsaved = _get_cache_bucket(context, "unsaved_records")
    unsaved.setdefault(record.record_id, (record.store_id, record.date, loaded_version))


def _write_record(context: RuntimeContext, current: DailySalesRecord, updated: DailySalesRecord) -> DailySalesRecord:
    """Store ``updated`` over ``current`` in the in-memory workbook."""

    _track_unsaved(context, current, current.version)
    data_manager.update_daily_record(context.workbook, current.record_id, updated)
    _invalidate_cache(context, "daily_records")
    return updated


def _verify_unsaved_records(context: RuntimeContext) -> None:
    """Refuse to save over daily records another writer changed on disk.

    Every record changed by ``context`` must still carry, in the data file,
    the version it was loaded with. A record created by ``context`` must not
    have been created for the same store and day by someone else.

    Raises:
        ConcurrentModificationError: If the data file moved underneath a
            record changed by this context.
    """
    unsaved = context._cache.get("unsaved_records")
    data_file = Path(context.settings.data_file)
    if not unsaved or not data_file.exists():
        return

    on_disk = list(data_manager.iter_daily_records(data_manager.open_workbook(data_file)))
    by_id = {record.record_id: record for record in on_disk}
    by_day = {(record.store_id, record.date): record for record in on_disk}
    for record_id, (store_id, day, loaded_version) in unsaved.items():
        if loaded_version is None:
            conflict = (store_id, day) in by_day
        else:
            stored = by_id.get(record_id)
            conflict = stored is None or stored.version != loaded_version
        if conflict:
            log.error(
                "Daily record '%s' for store '%s' on %s changed in '%s' since it was loaded",
                record_id,
                store_id,
                day,
                data_file,
            )
            raise ConcurrentModificationError(
                f"Daily record '{record_id}' was changed by another writer; reload and retry"
            )


def save_daily_record(
    context: RuntimeContext,
    store_id: str,
    target_date: date,
    actual_cash: MoneyInput,
    actual_online: MoneyInput,
    submitted_by: Optional[str],
    *,
    expected_cash: Optional[Decimal] = None,
    expected_online: Optional[Decimal] = None,
    in_flight_delta: Optional[Decimal] = None,
    expected_version: Optional[int] = None,
    timestamp: Optional[datetime] = None,
) -> DailySalesRecord:
    """Create or update the reconciliation record of one store and day.

    Expected figures default to :func:`compute_expected_cash` and
    :func:`compute_online_balance`. A new record with a minor discrepancy is
    approved by its submitter straight away; any other record starts as a
    draft. Re-saving an unsettled record re-evaluates it from scratch. Re-saving
    a settled record refreshes the expected and counted figures but keeps the
    locked discrepancies and the approval decision.

    Returns:
        DailySalesRecord: The stored record.

    Raises:
        MalformedBalanceError: If a counted figure is not numeric.
        ConcurrentModificationError: If ``expected_version`` is stale.
    """
    threshold = context.settings.discrepancy_threshold
    counted_cash = parse_counted_balance(actual_cash)
    counted_online = parse_counted_balance(actual_online)
    if expected_cash is None:
        expected_cash = compute_expected_cash(context, store_id, target_date).balance
    if expected_online is None:
        expected_online = compute_online_balance(context, store_id, target_date, in_flight_delta)

    cash = evaluate(expected_cash, counted_cash, threshold)
    online = evaluate(expected_online, counted_online, threshold)
    severity = combine_severity(cash.severity, online.severity)
    at = _resolve_timestamp(timestamp)

    existing = _ensure_daily_records_cache(context)["by_day"].get((store_id, target_date))
    if existing is None:
        record = DailySalesRecord(
            record_id=generate_record_id(when=at),
            store_id=store_id,
            date=target_date,
            expected_cash=expected_cash,
            actual_cash=counted_cash,
            cash_discrepancy=cash.delta,
            expected_online=expected_online,
            actual_online=counted_online,
            online_discrepancy=online.delta,
            approval=initial_state(severity, submitted_by, at),
            submitted_by=submitted_by,
        )
        data_manager.append_daily_record(context.workbook, record)
        _track_unsaved(context, record, None)
        _invalidate_cache(context, "daily_records")
        log.info(
            "Saved daily record '%s' for store '%s' on %s (%s, %s)",
            record.record_id,
            store_id,
            target_date,
            severity.value,
            record.approval.status.value,
        )
        return record

    _check_version(existing, expected_version)
    if existing.approval.is_settled:
        updated = replace(
            existing,
            expected_cash=expected_cash,
            actual_cash=counted_cash,
            expected_online=expected_online,
            actual_online=counted_online,
            version=existing.version + 1,
        )
        log.info(
            "Updated figures of settled record '%s'; discrepancies stay locked",
            existing.record_id,
        )
    else:
        updated = replace(
            existing,
            expected_cash=expected_cash,
            actual_cash=counted_cash,
            cash_discrepancy=cash.delta,
            expected_online=expected_online,
            actual_online=counted_online,
            online_discrepancy=online.delta,
            approval=initial_state(severity, submitted_by, at),
            submitted_by=submitted_by,
            version=existing.version + 1,
        )
        log.info(
            "Re-evaluated daily record '%s' (%s, %s)",
            existing.record_id,
            severity.value,
            updated.approval.status.value,
        )
    return _write_record(context, existing, updated)


def request_approval(
    context: RuntimeContext,
    record_id: str,
    expected_version: Optional[int] = None,
) -> ApprovalState:
    """Move a draft record with a major discrepancy to the approval queue.

    Raises:
        MissingReferenceError: If ``record_id`` is unknown.
        InvalidStateTransition: If the record is not an escalatable draft.
        ConcurrentModificationError: If ``expected_version`` is stale.
    """
    record = get_daily_record(context, record_id)
    _check_version(record, expected_version)
    severity = _record_severity(record, context.settings.discrepancy_threshold)
    state = request_approval_state(record.approval, severity)
    _write_record(context, record, replace(record, approval=state, version=record.version + 1))
    log.info("Daily record '%s' is pending approval", record_id)
    return state


def approve(
    context: RuntimeContext,
    record_id: str,
    approver: str,
    expected_version: Optional[int] = None,
    *,
    timestamp: Optional[datetime] = None,
) -> ApprovalState:
    """Approve a pending record, locking its discrepancies.

    Raises:
        MissingReferenceError: If ``record_id`` is unknown.
        InvalidStateTransition: If the record is not pending approval.
        ConcurrentModificationError: If ``expected_version`` is stale.
    """
    record = get_daily_record(context, record_id)
    _check_version(record, expected_version)
    state = approve_state(record.approval, approver, _resolve_timestamp(timestamp))
    _write_record(context, record, replace(record, approval=state, version=record.version + 1))
    log.info(
        "Daily record '%s' approved by '%s' (cash %s, online %s locked)",
        record_id,
        state.by,
        record.cash_discrepancy,
        record.online_discrepancy,
    )
    return state


def reject(
    context: RuntimeContext,
    record_id: str,
    approver: str,
    reason: str,
    expected_version: Optional[int] = None,
    *,
    timestamp: Optional[datetime] = None,
) -> ApprovalState:
    """Reject a pending record with a mandatory reason, locking its discrepancies.

    Raises:
        MissingReferenceError: If ``record_id`` is unknown.
        InvalidStateTransition: If the record is not pending approval or the
            reason is blank.
        ConcurrentModificationError: If ``expected_version`` is stale.
    """
    record = get_daily_record(context, record_id)
    _check_version(record, expected_version)
    state = reject_state(record.approval, approver, _resolve_timestamp(timestamp), reason)
    _write_record(context, record, replace(record, approval=state, version=record.version + 1))
    log.info("Daily record '%s' rejected by '%s': %s", record_id, state.by, state.reason)
    return state


def list_pending_approvals(context: RuntimeContext, store_id: Optional[str] = None) -> List[DailySalesRecord]:
    """Return records awaiting a decision, oldest first."""

    pending = [
        record
        for record in list_daily_records(context, store_id)
        if record.approval.status is ApprovalStatus.PENDING_APPROVAL
    ]
    return sorted(pending, key=lambda record: (record.date, record.store_id))


# ---------------------------------------------------------------------------
# Recalibration anchors
# ---------------------------------------------------------------------------


def list_recalibrations(context: RuntimeContext, store_id: Optional[str] = None) -> List[RecalibrationAnchor]:
    anchors = _ensure_anchors_cache(context)["all"]
    if store_id is None:
        return list(anchors)
    return [anchor for anchor in anchors if anchor.store_id == store_id]


def get_recalibration(context: RuntimeContext, anchor_id: str) -> RecalibrationAnchor:
    """Resolve an anchor by identifier.

    Raises:
        MissingReferenceError: If ``anchor_id`` is absent from the workbook.
    """
    cache = _ensure_anchors_cache(context)
    try:
        return cache["by_id"][anchor_id]
    except KeyError as exc:
        log.warning("Recalibration lookup failed for id '%s'", anchor_id)
        raise MissingReferenceError(f"Unknown recalibration id: {anchor_id}") from exc


def submit_recalibration(
    context: RuntimeContext,
    store_id: str,
    billing_month: str,
    anchor_date: date,
    counted_balance: MoneyInput,
    *,
    discrepancy_type: DiscrepancyType = DiscrepancyType.NONE,
    loan_amount: MoneyInput = None,
    notes: Optional[str] = None,
    created_by: Optional[str] = None,
    confirm_zero: bool = False,
    timestamp: Optional[datetime] = None,
) -> RecalibrationAnchor:
    """Record a counted online wallet balance for a billing month.

    The system balance stored alongside the count is the projection on
    ``anchor_date`` that ignores the month's own anchor, so re-submitting a
    month compares against the ledger rather than the previous count. A month
    that already has an active anchor has that anchor updated in place.

    Args:
        context (RuntimeContext): Runtime context providing workbook access.
        store_id (str): Store whose wallet was counted.
        billing_month (str): ``YYYY-MM`` month the count belongs to.
        anchor_date (date): Day of the count, inside ``billing_month``.
        counted_balance (Decimal | str | int | None): Counted balance.
        discrepancy_type (DiscrepancyType): Explanation of the difference.
        loan_amount (Decimal | str | int | None): Required when the
            difference is explained by a loan.
        notes (str | None): Free-text remark.
        created_by (str | None): User submitting the count.
        confirm_zero (bool): Must be set to record a genuine zero balance,
            because zero also means "not counted".
        timestamp (datetime | None): Submission time, defaults to now.

    Returns:
        RecalibrationAnchor: The stored anchor.

    Raises:
        MalformedBalanceError: If the count is not numeric, or is zero without
            ``confirm_zero``.
        InvalidAnchorError: If ``anchor_date`` is outside ``billing_month``.
        AmbiguousAnchorError: If the store already holds duplicate active
            anchors.
        BusinessRuleViolation: If a loan explanation lacks a loan amount.
    """
    counted = parse_counted_balance(counted_balance)
    if counted == ZERO and not confirm_zero:
        log.warning("Zero recalibration for store '%s' refused without confirmation", store_id)
        raise MalformedBalanceError(
            "A counted balance of zero is indistinguishable from 'not counted'; pass confirm_zero to record it"
        )

    loan: Optional[Decimal] = None
    if discrepancy_type is DiscrepancyType.LOAN:
        loan = parse_counted_balance(loan_amount)
        if loan <= ZERO:
            log.warning("Loan recalibration for store '%s' without a loan amount", store_id)
            raise BusinessRuleViolation("A loan explanation requires a positive loan amount")

    at = _resolve_timestamp(timestamp)
    candidate = RecalibrationAnchor(
        store_id=store_id,
        billing_month=billing_month,
        anchor_date=anchor_date,
        counted_balance=counted,
        discrepancy_type=discrepancy_type,
        loan_amount=loan,
        notes=notes,
        created_by=created_by,
        created_at=at,
    )
    validate_anchor(candidate)

    snapshot = load_snapshot(get_source(context), store_id, None, anchor_date)
    ensure_unambiguous(snapshot.anchors)
    current = next(
        (
            anchor
            for anchor in snapshot.anchors
            if anchor.is_active and anchor.billing_month == billing_month
        ),
        None,
    )
    others = [anchor for anchor in snapshot.anchors if anchor is not current]
    system = project_balance(
        snapshot.transactions,
        resolve_anchor(others, store_id, anchor_date),
        anchor_date,
        store_id=store_id,
    ).balance

    anchor = replace(
        candidate,
        anchor_id=current.anchor_id if current is not None else generate_record_id(prefix="R", when=at),
        system_balance=system,
        difference=counted - system,
    )
    if current is not None:
        data_manager.update_recalibration(context.workbook, current.anchor_id, anchor)
        action = "Updated"
    else:
        data_manager.append_recalibration(context.workbook, anchor)
        action = "Recorded"
    _invalidate_cache(context, "anchors")
    log.info(
        "%s recalibration '%s' for store '%s' on %s: counted=%s system=%s difference=%s",
        action,
        anchor.anchor_id,
        store_id,
        anchor_date,
        counted,
        system,
        anchor.difference,
    )
    return anchor


def delete_recalibration(context: RuntimeContext, anchor_id: str) -> RecalibrationAnchor:
    """Deactivate an anchor so projections fall back to earlier anchors.

    Raises:
        MissingReferenceError: If ``anchor_id`` is unknown.
        BusinessRuleViolation: If the anchor is already inactive.
    """
    anchor = get_recalibration(context, anchor_id)
    if not anchor.is_active:
        log.warning("Recalibration '%s' is already inactive", anchor_id)
        raise BusinessRuleViolation(f"Recalibration '{anchor_id}' is already inactive")
    deactivated = replace(anchor, is_active=False)
    data_manager.update_recalibration(context.workbook, anchor_id, deactivated)
    _invalidate_cache(context, "anchors")
    log.info("Deactivated recalibration '%s' for store '%s'", anchor_id, anchor.store_id)
    return deactivated


def persist_context(context: RuntimeContext) -> None:
    """Persist any in-memory workbook changes to the configured data file.

    Raises:
        ConcurrentModificationError: If a daily record changed by this context
            was changed in the data file by another writer since it was
            loaded. Nothing is saved in that case.
    """
    _verify_unsaved_records(context)
    data_manager.save_workbook(
        context.workbook,
        destination=context.settings.data_file,
    )
    context._cache.pop("unsaved_records", None)
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook to discard unsaved modifications.

    Returns:
        RuntimeContext: Fresh context containing a newly opened workbook and
            an empty cache.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, workbook=workbook)


__all__ = [
    "AmbiguousAnchorError",
    "BusinessRuleViolation",
    "ConcurrentModificationError",
    "InvalidAnchorError",
    "InvalidStateTransition",
    "MalformedBalanceError",
    "MissingReferenceError",
    "RuntimeContext",
    "approve",
    "compute_daily_breakdown",
    "compute_expected_cash",
    "compute_online_balance",
    "compute_online_balance_details",
    "delete_recalibration",
    "ensure_schema_version",
    "evaluate_discrepancy",
    "generate_record_id",
    "get_daily_record",
    "get_recalibration",
    "get_source",
    "list_daily_records",
    "list_pending_approvals",
    "list_recalibrations",
    "load_runtime_context",
    "persist_context",
    "refresh_context",
    "reject",
    "request_approval",
    "save_daily_record",
    "snapshot_version",
    "submit_recalibration",
]
