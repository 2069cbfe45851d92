"""Unit tests documenting the expected behavior of the data access layer."""

from __future__ import annotations

import configparser
from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path

import openpyxl
from openpyxl.workbook import Workbook as OpenpyxlWorkbook
import pytest

from store_ledger import constants, data_manager
from store_ledger.constants import ApprovalStatus, DiscrepancyType, ExpenseCategory, PaymentMethodKind, SheetName
from store_ledger.models import (
    ApprovalState,
    CommissionCharge,
    DailySalesRecord,
    ExpensePayment,
    LoanDisbursement,
    LoanRepayment,
    PaymentMethod,
    RecalibrationAnchor,
    SalesReceipt,
)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_find_config_file_respects_explicit_path(config_file: Path):
    """Supplying an explicit path should be treated as the winning answer."""

    assert data_manager.find_config_file(config_file) == config_file


def test_find_config_file_discovers_in_parent(tmp_path, monkeypatch):
    """Auto-discovery walks up from the working directory."""

    config_file = tmp_path / "config.ini"
    config_file.write_text("[System]\nDataFile=ledger.xlsx")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    assert data_manager.find_config_file() == config_file


def test_find_config_file_raises_when_missing(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(FileNotFoundError):
        data_manager.find_config_file()


def test_read_config_loads_sections(config_file: Path):
    parser = data_manager.read_config(config_file)

    assert parser.get("System", "BusinessName") == "Test Store"
    assert parser.get("Reconciliation", "DiscrepancyThreshold") == "500"


def test_parse_settings_resolves_relative_paths(config_factory):
    """Relative DataFile entries should be anchored to the config location."""

    bundle = config_factory(make_relative=True, threshold="250.50", timezone="UTC")
    parser = data_manager.read_config(bundle.config_path)

    settings = data_manager.parse_settings(parser, base_path=bundle.config_path.parent)

    assert settings.data_file == (bundle.config_path.parent / bundle.workbook_path.name).resolve()
    assert settings.discrepancy_threshold == Decimal("250.50")
    assert settings.business_timezone == "UTC"


def test_parse_settings_defaults_reconciliation_section(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string("[System]\nDataFile=ledger.xlsx\nBusinessName=Shop\nSchemaVersion=1.0.0\n")

    settings = data_manager.parse_settings(parser, base_path=tmp_path)

    assert settings.discrepancy_threshold == constants.DEFAULT_DISCREPANCY_THRESHOLD
    assert settings.business_timezone == constants.DEFAULT_BUSINESS_TIMEZONE


def test_parse_settings_requires_system_section(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string("[Other]\nvalue=1")
    with pytest.raises(KeyError):
        data_manager.parse_settings(parser, base_path=tmp_path)


@pytest.mark.parametrize("threshold", ["lots", "-1"])
def test_parse_settings_rejects_bad_threshold(tmp_path, threshold):
    parser = configparser.ConfigParser()
    parser.read_string(
        "[System]\nDataFile=ledger.xlsx\nBusinessName=Shop\nSchemaVersion=1.0.0\n"
        f"[Reconciliation]\nDiscrepancyThreshold={threshold}\n"
    )
    with pytest.raises(ValueError):
        data_manager.parse_settings(parser, base_path=tmp_path)


def test_business_today_uses_configured_timezone(settings):
    """22:00 UTC is already the next day in India."""

    moment = datetime(2025, 1, 15, 22, 0, tzinfo=UTC)

    assert data_manager.business_today(settings, now=moment) == date(2025, 1, 16)


# ---------------------------------------------------------------------------
# Workbook lifecycle
# ---------------------------------------------------------------------------


def test_open_workbook_returns_openpyxl_instance(workbook_factory):
    workbook = data_manager.open_workbook(workbook_factory())

    assert isinstance(workbook, OpenpyxlWorkbook)
    assert data_manager.missing_sheets(workbook) == []


def test_open_workbook_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.open_workbook(tmp_path / "missing.xlsx")


def test_missing_sheets_lists_absent_tabs():
    workbook = openpyxl.Workbook()

    assert set(data_manager.missing_sheets(workbook)) == set(data_manager.SHEET_COLUMNS)


def test_save_and_refresh_round_trip_keeps_exact_money(workbook_factory):
    """Money written as text survives a save without float drift."""

    path = workbook_factory()
    workbook = data_manager.open_workbook(path)
    data_manager.append_sales_receipt(
        workbook,
        SalesReceipt("S1", date(2025, 1, 16), Decimal("0.10"), Decimal("1234.567"), transaction_id="T1"),
    )
    data_manager.save_workbook(workbook, path)

    reloaded = data_manager.refresh_workbook(path)
    (receipt,) = list(data_manager.iter_sales(reloaded))
    assert receipt.paytm_received == Decimal("0.10")
    assert receipt.cash_received == Decimal("1234.567")
    assert receipt.transaction_id == "T1"


# ---------------------------------------------------------------------------
# Sheet conversions
# ---------------------------------------------------------------------------


def test_blank_payment_method_reads_as_legacy(ledger_workbook):
    ledger_workbook[SheetName.COMMISSIONS.value].append(
        ["C1", "S1", "2025-01-31", "2025-01", "900", None, None, None]
    )

    (commission,) = list(data_manager.iter_commissions(ledger_workbook))

    assert commission.payment_method.kind is PaymentMethodKind.LEGACY_UNSPECIFIED
    assert commission.billing_month == "2025-01"


def test_split_expense_round_trip(ledger_workbook):
    expense = ExpensePayment(
        "S1",
        date(2025, 1, 10),
        ExpenseCategory.FIXED_COST,
        Decimal("1000"),
        PaymentMethod.split(Decimal("600"), Decimal("400")),
        transaction_id="E1",
    )
    data_manager.append_expense(ledger_workbook, expense)

    assert list(data_manager.iter_expenses(ledger_workbook)) == [expense]


def test_loans_deserialize_by_kind(ledger_workbook):
    data_manager.append_loan(ledger_workbook, LoanDisbursement("S1", date(2025, 1, 5), Decimal("5000"), "L1", "T1"))
    data_manager.append_loan(ledger_workbook, LoanRepayment("S1", date(2025, 2, 5), Decimal("1000"), "L1", "T2"))

    loans = list(data_manager.iter_loans(ledger_workbook))

    assert [type(loan) for loan in loans] == [LoanDisbursement, LoanRepayment]


def test_excel_numeric_cells_are_read_through_text(ledger_workbook):
    ledger_workbook[SheetName.SALES.value].append(["T9", "S1", datetime(2025, 1, 3), 0.1, 20])

    (receipt,) = list(data_manager.iter_sales(ledger_workbook))

    assert receipt.paytm_received == Decimal("0.1")
    assert receipt.date == date(2025, 1, 3)


def test_empty_rows_are_skipped(ledger_workbook):
    sheet = ledger_workbook[SheetName.SALES.value]
    sheet.append([None, None, None, None, None])
    sheet.append(["T1", "S1", "2025-01-03", "10", "0"])

    assert len(list(data_manager.iter_sales(ledger_workbook))) == 1


def test_invalid_money_cell_raises(ledger_workbook):
    ledger_workbook[SheetName.SALES.value].append(["T1", "S1", "2025-01-03", "ten", "0"])

    with pytest.raises(ValueError):
        list(data_manager.iter_sales(ledger_workbook))


def test_update_recalibration_rewrites_row(ledger_workbook):
    anchor = RecalibrationAnchor(
        "S1",
        "2025-01",
        date(2025, 1, 15),
        Decimal("10000"),
        anchor_id="R1",
        system_balance=Decimal("9800"),
        difference=Decimal("200"),
        discrepancy_type=DiscrepancyType.MISTAKE,
        created_at=datetime(2025, 1, 15, 9, 0, tzinfo=UTC),
    )
    data_manager.append_recalibration(ledger_workbook, anchor)
    updated = RecalibrationAnchor("S1", "2025-01", date(2025, 1, 15), Decimal("10000"), anchor_id="R1", is_active=False)

    data_manager.update_recalibration(ledger_workbook, "R1", updated)

    (stored,) = list(data_manager.iter_recalibrations(ledger_workbook))
    assert stored.is_active is False
    assert stored.system_balance is None


def test_recalibration_round_trip_keeps_metadata(ledger_workbook):
    anchor = RecalibrationAnchor(
        "S1",
        "2025-01",
        date(2025, 1, 15),
        Decimal("10000.25"),
        anchor_id="R1",
        system_balance=Decimal("9000"),
        difference=Decimal("1000.25"),
        discrepancy_type=DiscrepancyType.LOAN,
        loan_amount=Decimal("1000"),
        notes="Owner top-up",
        created_by="manager-1",
        created_at=datetime(2025, 1, 15, 9, 0, tzinfo=UTC),
    )
    data_manager.append_recalibration(ledger_workbook, anchor)

    assert list(data_manager.iter_recalibrations(ledger_workbook)) == [anchor]


def test_update_missing_row_raises(ledger_workbook):
    record = DailySalesRecord(
        "D404", "S1", date(2025, 1, 1), Decimal("0"), Decimal("0"), Decimal("0"), Decimal("0"), Decimal("0"), Decimal("0")
    )
    with pytest.raises(KeyError):
        data_manager.update_daily_record(ledger_workbook, "D404", record)


def test_daily_record_round_trip(ledger_workbook):
    record = DailySalesRecord(
        record_id="D1",
        store_id="S1",
        date=date(2025, 1, 16),
        expected_cash=Decimal("1500"),
        actual_cash=Decimal("900"),
        cash_discrepancy=Decimal("-600"),
        expected_online=Decimal("11500"),
        actual_online=Decimal("11500"),
        online_discrepancy=Decimal("0"),
        approval=ApprovalState(
            status=ApprovalStatus.REJECTED,
            by="cluster-head",
            at=datetime(2025, 1, 17, 10, 0, tzinfo=UTC),
            reason="Missing receipts",
        ),
        submitted_by="manager-1",
        version=3,
    )
    data_manager.append_daily_record(ledger_workbook, record)

    assert list(data_manager.iter_daily_records(ledger_workbook)) == [record]


def test_locate_row_unknown_column_raises(ledger_workbook):
    with pytest.raises(KeyError):
        data_manager.locate_row(ledger_workbook, SheetName.SALES.value, "Nope", "x")


def test_commission_row_keeps_date_and_month(ledger_workbook):
    charge = CommissionCharge("S1", date(2025, 2, 28), Decimal("700"), PaymentMethod.cash(), "2025-02", "C7")
    data_manager.append_commission(ledger_workbook, charge)

    assert list(data_manager.iter_commissions(ledger_workbook)) == [charge]
