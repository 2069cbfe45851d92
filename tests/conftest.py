"""Shared pytest fixtures and utilities for store ledger tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence
from unittest.mock import Mock

import openpyxl
import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from store_ledger import cli, constants, core_logic, data_manager  # noqa: E402
from store_ledger.anchors import resolve_anchor  # noqa: E402
from store_ledger.models import (  # noqa: E402
    AggregatorPayout,
    CommissionCharge,
    EmployeePayout,
    ExpensePayment,
    LoanDisbursement,
    LoanRepayment,
    RecalibrationAnchor,
    SalesReceipt,
    Transaction,
    last_day_of_month,
)
from store_ledger.setup_excel import create_master_workbook, render_config  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    schema_version: str
    business_name: str


@dataclass
class ListSource:
    """In-memory :class:`TransactionSource` used by engine tests."""

    transactions: List[Transaction] = field(default_factory=list)
    anchors: List[RecalibrationAnchor] = field(default_factory=list)
    version: str = "test"
    calls: List[str] = field(default_factory=list)

    def _select(self, kinds: tuple, store_id: str, start: Optional[date], end: date) -> list:
        self.calls.append(kinds[0].__name__)
        selected = []
        for tx in self.transactions:
            if not isinstance(tx, kinds) or tx.store_id != store_id:
                continue
            day = last_day_of_month(tx.billing_month) if isinstance(tx, CommissionCharge) else tx.date
            if (start is None or day >= start) and day <= end:
                selected.append(tx)
        return selected

    def list_sales(self, store_id, start, end):
        return self._select((SalesReceipt,), store_id, start, end)

    def list_payouts(self, store_id, start, end):
        return self._select((AggregatorPayout,), store_id, start, end)

    def list_expenses(self, store_id, start, end):
        return self._select((ExpensePayment,), store_id, start, end)

    def list_commissions(self, store_id, start, end):
        return self._select((CommissionCharge,), store_id, start, end)

    def list_employee_payouts(self, store_id, start, end):
        return self._select((EmployeePayout,), store_id, start, end)

    def list_loans(self, store_id, start, end):
        return self._select((LoanDisbursement, LoanRepayment), store_id, start, end)

    def list_anchors(self, store_id):
        self.calls.append("anchors")
        return [anchor for anchor in self.anchors if anchor.store_id == store_id]

    def get_latest_anchor(self, store_id, on_or_before):
        return resolve_anchor(self.list_anchors(store_id), store_id, on_or_before)

    def snapshot_version(self):
        return self.version


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized ledger workbook in a temp folder."""

    def _create_workbook(*, subdir: str | None = None, filename: str = "ledger.xlsx") -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_master_workbook(workbook_path, overwrite=True)
        return workbook_path

    return _create_workbook


@pytest.fixture
def ledger_workbook(workbook_factory: Callable[..., Path]) -> openpyxl.Workbook:
    """Return a freshly bootstrapped workbook loaded in memory."""

    return openpyxl.load_workbook(workbook_factory(subdir=f"workbook_{uuid.uuid4().hex}"))


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        business_name: str = "Test Store",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        threshold: str = "500",
        timezone: str = "Asia/Kolkata",
    ) -> ConfigBundle:
        bundle_id = uuid.uuid4().hex
        bundle_dir = tmp_path / f"bundle_{bundle_id}"
        bundle_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = workbook_factory(subdir=f"bundle_{bundle_id}")
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_text = render_config(
            data_file_entry,
            business_name=business_name,
            threshold=threshold,
            timezone=timezone,
        )
        if schema_version != DEFAULT_SCHEMA_VERSION:
            config_text = config_text.replace(DEFAULT_SCHEMA_VERSION, schema_version)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(config_text)
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            schema_version=schema_version,
            business_name=business_name,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


@pytest.fixture
def source_factory() -> Callable[..., ListSource]:
    """Build in-memory transaction sources."""

    def _create(
        transactions: Sequence[Transaction] = (),
        anchors: Sequence[RecalibrationAnchor] = (),
    ) -> ListSource:
        return ListSource(transactions=list(transactions), anchors=list(anchors))

    return _create


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="store-ledger", description="Store ledger CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]


# ---------------------------------------------------------------------------
# Core logic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide default configuration settings for runtime context tests."""

    return data_manager.ConfigSettings(
        data_file=tmp_path / "ledger.xlsx",
        business_name="Test Store",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
    )


@pytest.fixture
def workbook() -> Mock:
    """Return a mock workbook object for business logic tests."""

    return Mock(name="workbook")


@pytest.fixture
def context(settings: data_manager.ConfigSettings, workbook: Mock) -> core_logic.RuntimeContext:
    """Assemble a runtime context from injected settings and workbook mocks."""

    return core_logic.RuntimeContext(settings=settings, workbook=workbook)


@pytest.fixture
def memory_context(
    settings: data_manager.ConfigSettings,
    ledger_workbook: openpyxl.Workbook,
) -> core_logic.RuntimeContext:
    """Runtime context over a real, empty, in-memory workbook."""

    return core_logic.RuntimeContext(settings=settings, workbook=ledger_workbook)


@pytest.fixture
def set_fixed_datetime(monkeypatch: pytest.MonkeyPatch) -> Callable[[datetime], datetime]:
    """Patch ``core_logic.datetime`` to return a predetermined moment."""

    def _apply(moment: datetime) -> datetime:
        class _FixedDateTime:
            @staticmethod
            def now(tz=None):
                assert tz is UTC
                return moment

        monkeypatch.setattr(core_logic, "datetime", _FixedDateTime)
        return moment

    return _apply
