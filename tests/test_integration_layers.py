"""Integration tests describing end-to-end store ledger workflows.

These scenarios exercise the data access, business logic and CLI layers
together against real workbooks on disk, persisting and reloading between
steps the way the production application does.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import openpyxl
import pytest

from store_ledger import cli, core_logic, data_manager, setup_excel
from store_ledger.constants import ApprovalStatus, Severity
from store_ledger.models import CommissionCharge, EmployeePayout, PaymentMethod, SalesReceipt

STORE = "S1"


def _seed_january(workbook) -> None:
    """Sales around mid-January and a salary paid online on the 16th."""

    data_manager.append_sales_receipt(workbook, SalesReceipt(STORE, date(2025, 1, 14), Decimal("120"), Decimal("0")))
    data_manager.append_sales_receipt(workbook, SalesReceipt(STORE, date(2025, 1, 15), Decimal("300"), Decimal("0")))
    data_manager.append_sales_receipt(
        workbook, SalesReceipt(STORE, date(2025, 1, 16), Decimal("2000"), Decimal("1500"))
    )
    data_manager.append_employee_payout(workbook, EmployeePayout(STORE, date(2025, 1, 16), Decimal("500")))


def _reload(context: core_logic.RuntimeContext) -> core_logic.RuntimeContext:
    core_logic.persist_context(context)
    return core_logic.refresh_context(context)


def test_daily_close_and_approval_flow(runtime_context):
    """Recalibrate, close a day with a major shortage and settle it."""

    context = runtime_context
    _seed_january(context.workbook)
    context = _reload(context)

    anchor = core_logic.submit_recalibration(
        context, STORE, "2025-01", date(2025, 1, 15), "10,000", created_by="manager-1"
    )
    assert anchor.system_balance == Decimal("420")
    assert anchor.difference == Decimal("9580")
    context = _reload(context)

    assert core_logic.compute_online_balance(context, STORE, date(2025, 1, 16)) == Decimal("11500")

    record = core_logic.save_daily_record(context, STORE, date(2025, 1, 16), "900", "11500", "manager-1")
    assert record.expected_cash == Decimal("1500")
    assert record.cash_discrepancy == Decimal("-600")
    assert record.approval.status is ApprovalStatus.DRAFT
    context = _reload(context)

    core_logic.request_approval(context, record.record_id, expected_version=1)
    context = _reload(context)
    assert [pending.record_id for pending in core_logic.list_pending_approvals(context)] == [record.record_id]

    core_logic.approve(context, record.record_id, "cluster-head", expected_version=2)
    context = _reload(context)

    settled = core_logic.get_daily_record(context, record.record_id)
    assert settled.approval.status is ApprovalStatus.APPROVED
    assert settled.approval.by == "cluster-head"
    assert core_logic.list_pending_approvals(context) == []

    # A later correction of the counted cash keeps the approved discrepancy.
    corrected = core_logic.save_daily_record(context, STORE, date(2025, 1, 16), "1500", "11500", "manager-1")
    context = _reload(context)
    stored = core_logic.get_daily_record(context, record.record_id)
    assert corrected.version == 4
    assert stored.actual_cash == Decimal("1500")
    assert stored.cash_discrepancy == Decimal("-600")
    assert stored.approval.status is ApprovalStatus.APPROVED


def test_next_day_expected_cash_uses_counted_drawer(runtime_context):
    context = runtime_context
    _seed_january(context.workbook)
    data_manager.append_sales_receipt(
        context.workbook, SalesReceipt(STORE, date(2025, 1, 17), Decimal("0"), Decimal("700"))
    )
    context = _reload(context)

    core_logic.save_daily_record(
        context, STORE, date(2025, 1, 16), "1450", "0", "manager-1", expected_online=Decimal("0")
    )
    context = _reload(context)

    result = core_logic.compute_expected_cash(context, STORE, date(2025, 1, 17))
    assert result.balance == Decimal("2150")
    assert result.derived_from_missing_data is False


def test_commission_and_anchor_removal_flow(runtime_context):
    """Month-end commission lands once, and removing an anchor restores the projection."""

    context = runtime_context
    _seed_january(context.workbook)
    data_manager.append_commission(
        context.workbook,
        CommissionCharge(STORE, date(2025, 1, 31), Decimal("900"), PaymentMethod.legacy(), "2025-01"),
    )
    context = _reload(context)
    core_logic.submit_recalibration(context, STORE, "2025-01", date(2025, 1, 15), "10000")
    context = _reload(context)

    assert core_logic.compute_online_balance(context, STORE, date(2025, 1, 30)) == Decimal("11500")
    assert core_logic.compute_online_balance(context, STORE, date(2025, 2, 1)) == Decimal("10600")

    february = core_logic.submit_recalibration(context, STORE, "2025-02", date(2025, 2, 10), "10500")
    assert february.difference == Decimal("-100")
    context = _reload(context)
    assert core_logic.compute_online_balance(context, STORE, date(2025, 2, 10)) == Decimal("10500")

    core_logic.delete_recalibration(context, february.anchor_id)
    context = _reload(context)
    assert core_logic.compute_online_balance(context, STORE, date(2025, 2, 10)) == Decimal("10600")

    entries = core_logic.compute_daily_breakdown(context, STORE, date(2025, 1, 1), date(2025, 1, 31))
    assert entries[0].running_balance == Decimal("9700")
    assert entries[-1].date == date(2025, 1, 31)
    assert entries[-1].outflows.commission == Decimal("900")
    assert entries[-1].running_balance == Decimal("10600")


def test_cli_close_day_and_approval_flow(config_factory, capsys):
    """Drive a full month close through the CLI entry point."""

    bundle = config_factory()
    workbook = openpyxl.load_workbook(bundle.workbook_path)
    _seed_january(workbook)
    workbook.save(bundle.workbook_path)
    base = ["--config", str(bundle.config_path)]

    assert (
        cli.main(
            [*base, "recalibrate", "--store-id", STORE, "--month", "2025-01", "--date", "2025-01-15", "--counted", "10000"]
        )
        == 0
    )
    assert "difference 9,580.00" in capsys.readouterr().out

    assert cli.main([*base, "balance", "--store-id", STORE, "--date", "2025-01-16"]) == 0
    assert "11,500.00" in capsys.readouterr().out

    close_args = [
        *base,
        "close-day",
        "--store-id",
        STORE,
        "--date",
        "2025-01-16",
        "--actual-cash",
        "900",
        "--actual-online",
        "11500",
        "--by",
        "manager-1",
    ]
    assert cli.main(close_args) == 0
    capsys.readouterr()

    context = core_logic.load_runtime_context(bundle.config_path)
    (record,) = core_logic.list_daily_records(context, STORE)
    assert record.approval.status is ApprovalStatus.DRAFT

    # Rejecting a draft is refused with a business-rule exit code.
    assert cli.main([*base, "reject", "--record-id", record.record_id, "--approver", "head", "--reason", "x"]) == 2

    assert cli.main([*base, "request-approval", "--record-id", record.record_id]) == 0
    assert cli.main([*base, "pending"]) == 0
    assert record.record_id in capsys.readouterr().out

    assert cli.main([*base, "approve", "--record-id", record.record_id, "--approver", "head"]) == 0
    capsys.readouterr()

    reloaded = core_logic.load_runtime_context(bundle.config_path)
    settled = core_logic.get_daily_record(reloaded, record.record_id)
    assert settled.approval.status is ApprovalStatus.APPROVED
    assert settled.version == 3

    assert cli.main([*base, "evaluate", "--expected", "1500", "--actual", "900"]) == 0
    assert Severity.MAJOR.value in capsys.readouterr().out


def test_cli_refuses_writes_on_schema_mismatch(config_factory):
    bundle = config_factory(schema_version="0.9.0")
    base = ["--config", str(bundle.config_path)]

    exit_code = cli.main(
        [*base, "recalibrate", "--store-id", STORE, "--month", "2025-01", "--date", "2025-01-15", "--counted", "1"]
    )

    assert exit_code == 1
    context = core_logic.load_runtime_context(bundle.config_path)
    assert core_logic.list_recalibrations(context) == []
    assert cli.main([*base, "balance", "--store-id", STORE, "--date", "2025-01-16"]) == 0


def test_setup_script_bootstraps_a_usable_ledger(tmp_path, capsys):
    config_path = tmp_path / "config.ini"

    assert setup_excel.main(["--config", str(config_path), "--write-config", "ledger.xlsx"]) == 0
    assert "[SUCCESS]" in capsys.readouterr().out
    assert (tmp_path / "ledger.xlsx").exists()

    context = core_logic.load_runtime_context(config_path)
    core_logic.ensure_schema_version(context)
    assert context.settings.discrepancy_threshold == Decimal("500")

    assert setup_excel.main(["--config", str(config_path), "--write-config", "ledger.xlsx"]) == 1
    assert "--force" in capsys.readouterr().out


def test_two_heads_settling_the_same_record(runtime_context, config_file):
    """Only the first of two concurrent settlements reaches the data file."""

    context = runtime_context
    _seed_january(context.workbook)
    context = _reload(context)
    core_logic.submit_recalibration(context, STORE, "2025-01", date(2025, 1, 15), "10000")
    record = core_logic.save_daily_record(context, STORE, date(2025, 1, 16), "900", "11500", "manager-1")
    core_logic.request_approval(context, record.record_id)
    core_logic.persist_context(context)

    head_a = core_logic.load_runtime_context(config_file)
    head_b = core_logic.load_runtime_context(config_file)
    core_logic.approve(head_a, record.record_id, "head-a")
    core_logic.reject(head_b, record.record_id, "head-b", "cash short")

    core_logic.persist_context(head_a)
    with pytest.raises(core_logic.ConcurrentModificationError):
        core_logic.persist_context(head_b)

    head_b = core_logic.load_runtime_context(config_file)
    settled = core_logic.get_daily_record(head_b, record.record_id)
    assert settled.approval.status is ApprovalStatus.APPROVED
    assert settled.approval.by == "head-a"
    assert settled.version == 3

    with pytest.raises(core_logic.InvalidStateTransition):
        core_logic.reject(head_b, record.record_id, "head-b", "cash short")
