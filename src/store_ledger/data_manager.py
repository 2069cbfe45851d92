"""Data access layer for the store ledger.

This module provides low-level helpers that read from and write to the ledger
workbook. Reconciliation rules belong elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, validating, and persisting the Excel file.
3. Sheet operations: loading typed records and appending or updating
   individual rows.

Monetary cells are written as decimal text rather than numbers so that the
exact figures survive a save and reload without passing through binary
floating point.
"""


from __future__ import annotations

import configparser
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Iterable, Iterator, Mapping, Optional, Sequence, TypeVar
from zoneinfo import ZoneInfo

from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import (
    DEFAULT_BUSINESS_TIMEZONE,
    DEFAULT_DISCREPANCY_THRESHOLD,
    ZERO,
    ApprovalStatus,
    DiscrepancyType,
    ExpenseCategory,
    LoanKind,
    PaymentMethodKind,
    SheetName,
)
from .models import (
    AggregatorPayout,
    ApprovalState,
    CommissionCharge,
    DailySalesRecord,
    EmployeePayout,
    ExpensePayment,
    LoanDisbursement,
    LoanMovement,
    LoanRepayment,
    PaymentMethod,
    RecalibrationAnchor,
    SalesReceipt,
)


CONFIG_FILE_NAME = "config.ini"

SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    SheetName.SALES.value: ["TransactionID", "StoreID", "Date", "PaytmReceived", "CashReceived"],
    SheetName.PAYOUTS.value: ["TransactionID", "StoreID", "Date", "SwiggyAmount", "ZomatoAmount"],
    SheetName.EXPENSES.value: [
        "TransactionID",
        "StoreID",
        "Date",
        "Category",
        "TotalAmount",
        "PaymentMethod",
        "CashAmount",
        "OnlineAmount",
    ],
    SheetName.COMMISSIONS.value: [
        "TransactionID",
        "StoreID",
        "Date",
        "BillingMonth",
        "Amount",
        "PaymentMethod",
        "CashAmount",
        "OnlineAmount",
    ],
    SheetName.EMPLOYEE_PAYOUTS.value: ["TransactionID", "StoreID", "Date", "EmployeeID", "Amount"],
    SheetName.LOANS.value: ["TransactionID", "StoreID", "Date", "LoanKind", "LoanID", "Amount"],
    SheetName.RECALIBRATIONS.value: [
        "AnchorID",
        "StoreID",
        "BillingMonth",
        "AnchorDate",
        "CountedBalance",
        "SystemBalance",
        "Difference",
        "DiscrepancyType",
        "LoanAmount",
        "Notes",
        "CreatedBy",
        "CreatedAt",
        "IsActive",
    ],
    SheetName.DAILY_RECORDS.value: [
        "RecordID",
        "StoreID",
        "Date",
        "ExpectedCash",
        "ActualCash",
        "CashDiscrepancy",
        "ExpectedOnline",
        "ActualOnline",
        "OnlineDiscrepancy",
        "ApprovalStatus",
        "DecidedBy",
        "DecidedAt",
        "RejectionReason",
        "SubmittedBy",
        "Version",
    ],
}

_T = TypeVar("_T")


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    business_name: str
    schema_version: str
    discrepancy_threshold: Decimal = DEFAULT_DISCREPANCY_THRESHOLD
    business_timezone: str = DEFAULT_BUSINESS_TIMEZONE


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification, which allows the caller to deliberately target a
    non-standard location. When no explicit path is given the function walks up
    from the current working directory toward the filesystem root looking for a
    file named ``CONFIG_FILE_NAME``. The first match that exists on disk is
    considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search. May be relative to the current working directory.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute.

    Returns:
        configparser.ConfigParser: Initialized parser containing the raw
            configuration data. Validation of required entries happens in
            :func:`parse_settings`.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System]`` entries are mandatory. The ``[Reconciliation]`` section is
    optional and falls back to the package defaults for the escalation
    threshold and the business timezone. Relative ``DataFile`` entries are
    expanded against ``base_path`` (or the current working directory).

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory to use as the anchor for relative
            ``DataFile`` entries.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If one of the required sections or options is missing.
        ValueError: If ``DiscrepancyThreshold`` is not a nonnegative number.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        business_name = parser.get("System", "BusinessName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    threshold_raw = parser.get(
        "Reconciliation", "DiscrepancyThreshold", fallback=str(DEFAULT_DISCREPANCY_THRESHOLD)
    )
    try:
        threshold = Decimal(threshold_raw.strip())
    except InvalidOperation as exc:
        raise ValueError(f"Invalid DiscrepancyThreshold: {threshold_raw!r}") from exc
    if threshold < ZERO:
        raise ValueError(f"DiscrepancyThreshold must be nonnegative: {threshold_raw!r}")
    timezone_name = parser.get("Reconciliation", "BusinessTimezone", fallback=DEFAULT_BUSINESS_TIMEZONE)

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        business_name=business_name,
        schema_version=schema_version,
        discrepancy_threshold=threshold,
        business_timezone=timezone_name.strip(),
    )


def business_today(settings: ConfigSettings, *, now: Optional[datetime] = None) -> date:
    """Return the current calendar date in the configured business timezone.

    This is the single place where wall-clock time becomes a ledger date.
    """

    zone = ZoneInfo(settings.business_timezone)
    moment = now.astimezone(zone) if now is not None else datetime.now(zone)
    return moment.date()


def open_workbook(data_file: Path) -> Workbook:
    """Open the ledger workbook and return a live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    wb = openpyxl.load_workbook(data_file)
    return wb


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to disk at an explicitly provided destination.

    Parent directories are created on demand.
    """

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


def missing_sheets(workbook: Workbook) -> list[str]:
    """List the expected sheets that the workbook does not contain."""

    return [name for name in SHEET_COLUMNS if name not in workbook.sheetnames]


# ---------------------------------------------------------------------------
# Sheet iteration
# ---------------------------------------------------------------------------


def _iter_sheet(workbook: Workbook, sheet: SheetName, deserializer: Callable[[Sequence[object]], _T]) -> Iterator[_T]:
    """Yield typed records for every non-empty data row of ``sheet``."""

    worksheet = workbook[sheet.value]
    width = len(SHEET_COLUMNS[sheet.value])
    for raw in worksheet.iter_rows(min_row=2, max_col=width, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield deserializer(raw)


def iter_sales(workbook: Workbook) -> Iterable[SalesReceipt]:
    """Iterate over sales receipts stored on the ``Sales`` worksheet."""

    return _iter_sheet(workbook, SheetName.SALES, deserialize_sales_receipt)


def iter_payouts(workbook: Workbook) -> Iterable[AggregatorPayout]:
    """Iterate over aggregator payouts stored on the ``Payouts`` worksheet."""

    return _iter_sheet(workbook, SheetName.PAYOUTS, deserialize_payout)


def iter_expenses(workbook: Workbook) -> Iterable[ExpensePayment]:
    """Iterate over expense payments stored on the ``Expenses`` worksheet.

    Rows with a blank ``PaymentMethod`` cell predate the column and are
    surfaced as ``LegacyUnspecified`` so the classifier can apply the
    expense-specific default.
    """

    return _iter_sheet(workbook, SheetName.EXPENSES, deserialize_expense)


def iter_commissions(workbook: Workbook) -> Iterable[CommissionCharge]:
    """Iterate over commission charges stored on the ``Commissions`` worksheet."""

    return _iter_sheet(workbook, SheetName.COMMISSIONS, deserialize_commission)


def iter_employee_payouts(workbook: Workbook) -> Iterable[EmployeePayout]:
    """Iterate over employee payouts stored on the ``EmployeePayouts`` worksheet."""

    return _iter_sheet(workbook, SheetName.EMPLOYEE_PAYOUTS, deserialize_employee_payout)


def iter_loans(workbook: Workbook) -> Iterable[LoanMovement]:
    """Iterate over loan disbursements and repayments on the ``Loans`` worksheet."""

    return _iter_sheet(workbook, SheetName.LOANS, deserialize_loan)


def iter_recalibrations(workbook: Workbook) -> Iterable[RecalibrationAnchor]:
    """Iterate over every recalibration anchor, active or not."""

    return _iter_sheet(workbook, SheetName.RECALIBRATIONS, deserialize_recalibration)


def iter_daily_records(workbook: Workbook) -> Iterable[DailySalesRecord]:
    """Iterate over the persisted daily reconciliation records."""

    return _iter_sheet(workbook, SheetName.DAILY_RECORDS, deserialize_daily_record)


# ---------------------------------------------------------------------------
# Appends and updates
# ---------------------------------------------------------------------------


def append_sales_receipt(workbook: Workbook, record: SalesReceipt) -> None:
    workbook[SheetName.SALES.value].append(serialize_sales_receipt(record))


def append_payout(workbook: Workbook, record: AggregatorPayout) -> None:
    workbook[SheetName.PAYOUTS.value].append(serialize_payout(record))


def append_expense(workbook: Workbook, record: ExpensePayment) -> None:
    workbook[SheetName.EXPENSES.value].append(serialize_expense(record))


def append_commission(workbook: Workbook, record: CommissionCharge) -> None:
    workbook[SheetName.COMMISSIONS.value].append(serialize_commission(record))


def append_employee_payout(workbook: Workbook, record: EmployeePayout) -> None:
    workbook[SheetName.EMPLOYEE_PAYOUTS.value].append(serialize_employee_payout(record))


def append_loan(workbook: Workbook, record: LoanMovement) -> None:
    workbook[SheetName.LOANS.value].append(serialize_loan(record))


def append_recalibration(workbook: Workbook, record: RecalibrationAnchor) -> None:
    """Append a recalibration anchor to the ``Recalibrations`` worksheet.

    Args:
        workbook (Workbook): Workbook containing the recalibration sheet.
        record (RecalibrationAnchor): Anchor to persist. ``anchor_id`` must be
            populated so that later updates can locate the row.
    """

    workbook[SheetName.RECALIBRATIONS.value].append(serialize_recalibration(record))


def append_daily_record(workbook: Workbook, record: DailySalesRecord) -> None:
    """Append a daily reconciliation record to the ``DailyRecords`` worksheet."""

    workbook[SheetName.DAILY_RECORDS.value].append(serialize_daily_record(record))


def update_recalibration(workbook: Workbook, anchor_id: str, record: RecalibrationAnchor) -> None:
    """Overwrite the row of an existing anchor with ``record``.

    Raises:
        KeyError: If no row carries ``anchor_id``.
    """

    _replace_row(workbook, SheetName.RECALIBRATIONS, "AnchorID", anchor_id, serialize_recalibration(record))


def update_daily_record(workbook: Workbook, record_id: str, record: DailySalesRecord) -> None:
    """Overwrite the row of an existing daily record with ``record``.

    Raises:
        KeyError: If no row carries ``record_id``.
    """

    _replace_row(workbook, SheetName.DAILY_RECORDS, "RecordID", record_id, serialize_daily_record(record))


def _replace_row(workbook: Workbook, sheet: SheetName, key_column: str, key_value: str, values: Sequence[object]) -> None:
    row_index = locate_row(workbook, sheet.value, key_column, key_value)
    if row_index is None:
        raise KeyError(f"{sheet.value} row not found: {key_value}")

    worksheet = workbook[sheet.value]
    for column_index, value in enumerate(values, start=1):
        # cell(value=None) leaves the old content in place.
        worksheet.cell(row=row_index, column=column_index).value = value
    log.debug("Rewrote %s row %d for key '%s'", sheet.value, row_index, key_value)


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> Optional[int]:
    """Find a row by matching a key value within the specified worksheet.

    Args:
        workbook (Workbook): Workbook providing access to ``sheet_name``.
        sheet_name (str): Name of the worksheet to search.
        key_column (str): Header title identifying the column that stores the
            lookup key.
        key_value (str): Value to match within the key column.

    Returns:
        int | None: 1-based Excel row index when a match is found, otherwise
            ``None``.

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    sheet = workbook[sheet_name]
    header_cells = list(sheet[1])
    header_map = {cell.value: idx + 1 for idx, cell in enumerate(header_cells)}
    if key_column not in header_map:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = header_map[key_column]

    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        cell_value = row[key_col_index - 1]
        if cell_value is not None and str(cell_value) == key_value:
            return row_idx

    return None


# ---------------------------------------------------------------------------
# Cell conversions
# ---------------------------------------------------------------------------


def _money_text(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


def _parse_money(raw: object, default: Optional[Decimal] = ZERO) -> Optional[Decimal]:
    """Normalize a monetary cell into a :class:`~decimal.Decimal`.

    Blank cells yield ``default``. Numeric cells written by other tools are
    routed through ``str`` so that Excel floats keep their displayed digits.
    """

    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return default
    try:
        return Decimal(str(raw).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Invalid monetary value in workbook: {raw!r}") from exc


def _parse_date(raw: object) -> date:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if raw is None:
        raise ValueError("Missing date value in workbook")
    return date.fromisoformat(str(raw).strip()[:10])


def _parse_datetime(raw: object) -> Optional[datetime]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw
    return datetime.fromisoformat(str(raw).strip())


def _optional_text(raw: object) -> Optional[str]:
    if raw is None:
        return None
    text = str(raw)
    return text if text.strip() else None


def _parse_bool(raw: object) -> bool:
    if isinstance(raw, str):
        return raw.strip().lower() in {"true", "1", "yes", "y"}
    return bool(raw)


def _serialize_payment_method(method: PaymentMethod) -> list[object]:
    if method.kind is PaymentMethodKind.LEGACY_UNSPECIFIED:
        return [None, None, None]
    return [method.kind.value, _money_text(method.cash_amount), _money_text(method.online_amount)]


def _deserialize_payment_method(kind_raw: object, cash_raw: object, online_raw: object) -> PaymentMethod:
    kind_text = _optional_text(kind_raw)
    if kind_text is None:
        return PaymentMethod.legacy()
    kind = PaymentMethodKind(kind_text.strip())
    if kind is PaymentMethodKind.SPLIT:
        return PaymentMethod.split(_parse_money(cash_raw), _parse_money(online_raw))
    return PaymentMethod(kind)


# ---------------------------------------------------------------------------
# Serializers
# ---------------------------------------------------------------------------


def serialize_sales_receipt(record: SalesReceipt) -> list[object]:
    return [
        record.transaction_id,
        record.store_id,
        record.date.isoformat(),
        _money_text(record.paytm_received),
        _money_text(record.cash_received),
    ]


def deserialize_sales_receipt(raw_row: Sequence[object]) -> SalesReceipt:
    transaction_id, store_id, day, paytm, cash = raw_row
    return SalesReceipt(
        store_id=str(store_id),
        date=_parse_date(day),
        paytm_received=_parse_money(paytm),
        cash_received=_parse_money(cash),
        transaction_id=_optional_text(transaction_id),
    )


def serialize_payout(record: AggregatorPayout) -> list[object]:
    return [
        record.transaction_id,
        record.store_id,
        record.date.isoformat(),
        _money_text(record.swiggy_amount),
        _money_text(record.zomato_amount),
    ]


def deserialize_payout(raw_row: Sequence[object]) -> AggregatorPayout:
    transaction_id, store_id, day, swiggy, zomato = raw_row
    return AggregatorPayout(
        store_id=str(store_id),
        date=_parse_date(day),
        swiggy_amount=_parse_money(swiggy),
        zomato_amount=_parse_money(zomato),
        transaction_id=_optional_text(transaction_id),
    )


def serialize_expense(record: ExpensePayment) -> list[object]:
    return [
        record.transaction_id,
        record.store_id,
        record.date.isoformat(),
        record.category.value,
        _money_text(record.total_amount),
        *_serialize_payment_method(record.payment_method),
    ]


def deserialize_expense(raw_row: Sequence[object]) -> ExpensePayment:
    transaction_id, store_id, day, category, total, method, cash, online = raw_row
    return ExpensePayment(
        store_id=str(store_id),
        date=_parse_date(day),
        category=ExpenseCategory(str(category).strip()),
        total_amount=_parse_money(total),
        payment_method=_deserialize_payment_method(method, cash, online),
        transaction_id=_optional_text(transaction_id),
    )


def serialize_commission(record: CommissionCharge) -> list[object]:
    return [
        record.transaction_id,
        record.store_id,
        record.date.isoformat(),
        record.billing_month,
        _money_text(record.amount),
        *_serialize_payment_method(record.payment_method),
    ]


def deserialize_commission(raw_row: Sequence[object]) -> CommissionCharge:
    transaction_id, store_id, day, billing_month, amount, method, cash, online = raw_row
    return CommissionCharge(
        store_id=str(store_id),
        date=_parse_date(day),
        amount=_parse_money(amount),
        payment_method=_deserialize_payment_method(method, cash, online),
        billing_month=str(billing_month).strip(),
        transaction_id=_optional_text(transaction_id),
    )


def serialize_employee_payout(record: EmployeePayout) -> list[object]:
    return [
        record.transaction_id,
        record.store_id,
        record.date.isoformat(),
        record.employee_id,
        _money_text(record.amount),
    ]


def deserialize_employee_payout(raw_row: Sequence[object]) -> EmployeePayout:
    transaction_id, store_id, day, employee_id, amount = raw_row
    return EmployeePayout(
        store_id=str(store_id),
        date=_parse_date(day),
        amount=_parse_money(amount),
        employee_id=_optional_text(employee_id),
        transaction_id=_optional_text(transaction_id),
    )


def serialize_loan(record: LoanMovement) -> list[object]:
    kind = LoanKind.REPAYMENT if isinstance(record, LoanRepayment) else LoanKind.DISBURSEMENT
    return [
        record.transaction_id,
        record.store_id,
        record.date.isoformat(),
        kind.value,
        record.loan_id,
        _money_text(record.amount),
    ]


def deserialize_loan(raw_row: Sequence[object]) -> LoanMovement:
    """Convert a ``Loans`` row into the matching disbursement or repayment."""

    transaction_id, store_id, day, kind_raw, loan_id, amount = raw_row
    kind = LoanKind(str(kind_raw).strip().upper())
    model = LoanRepayment if kind is LoanKind.REPAYMENT else LoanDisbursement
    return model(
        store_id=str(store_id),
        date=_parse_date(day),
        amount=_parse_money(amount),
        loan_id=_optional_text(loan_id),
        transaction_id=_optional_text(transaction_id),
    )


def serialize_recalibration(record: RecalibrationAnchor) -> list[object]:
    return [
        record.anchor_id,
        record.store_id,
        record.billing_month,
        record.anchor_date.isoformat(),
        _money_text(record.counted_balance),
        _money_text(record.system_balance),
        _money_text(record.difference),
        record.discrepancy_type.value,
        _money_text(record.loan_amount),
        record.notes,
        record.created_by,
        record.created_at.isoformat() if record.created_at is not None else None,
        record.is_active,
    ]


def deserialize_recalibration(raw_row: Sequence[object]) -> RecalibrationAnchor:
    """Convert a ``Recalibrations`` row into a :class:`RecalibrationAnchor`.

    The counted balance keeps the exact decimal text stored in the sheet, which
    is what lets a projection on the anchor date reproduce it exactly.
    """

    (
        anchor_id,
        store_id,
        billing_month,
        anchor_date,
        counted,
        system,
        difference,
        discrepancy_type,
        loan_amount,
        notes,
        created_by,
        created_at,
        is_active,
    ) = raw_row

    discrepancy_text = _optional_text(discrepancy_type)
    return RecalibrationAnchor(
        store_id=str(store_id),
        billing_month=str(billing_month).strip(),
        anchor_date=_parse_date(anchor_date),
        counted_balance=_parse_money(counted),
        anchor_id=_optional_text(anchor_id),
        system_balance=_parse_money(system, default=None),
        difference=_parse_money(difference, default=None),
        discrepancy_type=DiscrepancyType(discrepancy_text.strip()) if discrepancy_text else DiscrepancyType.NONE,
        loan_amount=_parse_money(loan_amount, default=None),
        notes=_optional_text(notes),
        created_by=_optional_text(created_by),
        created_at=_parse_datetime(created_at),
        is_active=True if is_active is None else _parse_bool(is_active),
    )


def serialize_daily_record(record: DailySalesRecord) -> list[object]:
    approval = record.approval
    return [
        record.record_id,
        record.store_id,
        record.date.isoformat(),
        _money_text(record.expected_cash),
        _money_text(record.actual_cash),
        _money_text(record.cash_discrepancy),
        _money_text(record.expected_online),
        _money_text(record.actual_online),
        _money_text(record.online_discrepancy),
        approval.status.value,
        approval.by,
        approval.at.isoformat() if approval.at is not None else None,
        approval.reason,
        record.submitted_by,
        record.version,
    ]


def deserialize_daily_record(raw_row: Sequence[object]) -> DailySalesRecord:
    (
        record_id,
        store_id,
        day,
        expected_cash,
        actual_cash,
        cash_discrepancy,
        expected_online,
        actual_online,
        online_discrepancy,
        status,
        decided_by,
        decided_at,
        reason,
        submitted_by,
        version,
    ) = raw_row

    status_text = _optional_text(status)
    approval = ApprovalState(
        status=ApprovalStatus(status_text.strip()) if status_text else ApprovalStatus.DRAFT,
        by=_optional_text(decided_by),
        at=_parse_datetime(decided_at),
        reason=_optional_text(reason),
    )
    return DailySalesRecord(
        record_id=str(record_id),
        store_id=str(store_id),
        date=_parse_date(day),
        expected_cash=_parse_money(expected_cash),
        actual_cash=_parse_money(actual_cash),
        cash_discrepancy=_parse_money(cash_discrepancy),
        expected_online=_parse_money(expected_online),
        actual_online=_parse_money(actual_online),
        online_discrepancy=_parse_money(online_discrepancy),
        approval=approval,
        submitted_by=_optional_text(submitted_by),
        version=int(version) if version not in (None, "") else 1,
    )

