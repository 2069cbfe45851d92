"""Command-line entry points for the store ledger.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into business layer calls and printing the results.
Keeping the CLI thin lets tests or any other front-end reuse the same parser
configuration.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, data_manager, log
from .constants import DiscrepancyType
from .models import first_day_of_month, last_day_of_month


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    writes: bool = False


def _decimal(raw: str) -> Decimal:
    try:
        return Decimal(raw)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"not a decimal amount: {raw!r}") from exc


def _date(raw: str) -> date:
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an ISO date: {raw!r}") from exc


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="store-ledger",
        description="Online and cash ledger reconciliation for the store workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to ./config.ini).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare commands that change the workbook."""
    specs = {
        "recalibrate": register_recalibrate_command(subparsers),
        "delete-recalibration": register_delete_recalibration_command(subparsers),
        "close-day": register_close_day_command(subparsers),
        "request-approval": register_request_approval_command(subparsers),
        "approve": register_approve_command(subparsers),
        "reject": register_reject_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only reporting commands."""
    specs = {
        "balance": register_balance_command(subparsers),
        "breakdown": register_breakdown_command(subparsers),
        "expected-cash": register_expected_cash_command(subparsers),
        "evaluate": register_evaluate_command(subparsers),
        "pending": register_pending_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_recalibrate_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``recalibrate``."""
    name = "recalibrate"
    help_text = "Record a counted online wallet balance for a billing month."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--store-id", required=True)
        parser.add_argument("--month", required=True, help="Billing month as YYYY-MM.")
        parser.add_argument("--date", type=_date, default=None, help="Count date (defaults to today).")
        parser.add_argument("--counted", required=True, help="Counted wallet balance.")
        parser.add_argument(
            "--discrepancy-type",
            choices=[kind.value for kind in DiscrepancyType],
            default=DiscrepancyType.NONE.value,
        )
        parser.add_argument("--loan-amount", default=None)
        parser.add_argument("--notes", default=None)
        parser.add_argument("--by", dest="created_by", default=None)
        parser.add_argument("--confirm-zero", action="store_true", help="Record a genuine zero balance.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_recalibrate, writes=True)


def register_delete_recalibration_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-recalibration``."""
    name = "delete-recalibration"
    help_text = "Deactivate a recalibration anchor."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--anchor-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(
        name=name,
        help_text=help_text,
        register=registrar,
        execute=run_delete_recalibration,
        writes=True,
    )


def register_close_day_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``close-day``."""
    name = "close-day"
    help_text = "Save the counted cash and online balance of a day."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--store-id", required=True)
        parser.add_argument("--date", type=_date, default=None, help="Business date (defaults to today).")
        parser.add_argument("--actual-cash", required=True)
        parser.add_argument("--actual-online", required=True)
        parser.add_argument("--by", dest="submitted_by", required=True)
        parser.add_argument("--expected-version", type=int, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_close_day, writes=True)


def register_request_approval_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``request-approval``."""
    name = "request-approval"
    help_text = "Escalate a draft day with a major discrepancy."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--record-id", required=True)
        parser.add_argument("--expected-version", type=int, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(
        name=name,
        help_text=help_text,
        register=registrar,
        execute=run_request_approval,
        writes=True,
    )


def register_approve_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``approve``."""
    name = "approve"
    help_text = "Approve a pending day and lock its discrepancies."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--record-id", required=True)
        parser.add_argument("--approver", required=True)
        parser.add_argument("--expected-version", type=int, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_approve, writes=True)


def register_reject_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``reject``."""
    name = "reject"
    help_text = "Reject a pending day with a reason and lock its discrepancies."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--record-id", required=True)
        parser.add_argument("--approver", required=True)
        parser.add_argument("--reason", required=True)
        parser.add_argument("--expected-version", type=int, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_reject, writes=True)


def register_balance_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``balance``."""
    name = "balance"
    help_text = "Display the projected online wallet balance."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--store-id", required=True)
        parser.add_argument("--date", type=_date, default=None, help="Business date (defaults to today).")
        parser.add_argument(
            "--in-flight-delta",
            type=_decimal,
            default=None,
            help="Online movement of the day still being entered.",
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_balance)


def register_breakdown_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``breakdown``."""
    name = "breakdown"
    help_text = "Display the per-day online wallet ledger."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--store-id", required=True)
        window = parser.add_mutually_exclusive_group(required=True)
        window.add_argument("--month", help="Whole billing month as YYYY-MM.")
        window.add_argument("--start", type=_date, help="First day of the window.")
        parser.add_argument("--end", type=_date, default=None, help="Last day of the window.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_breakdown)


def register_expected_cash_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``expected-cash``."""
    name = "expected-cash"
    help_text = "Display the cash the drawer should hold at the close of a day."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--store-id", required=True)
        parser.add_argument("--date", type=_date, default=None, help="Business date (defaults to today).")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_expected_cash)


def register_evaluate_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``evaluate``."""
    name = "evaluate"
    help_text = "Classify the discrepancy between an expected and a counted figure."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--expected", type=_decimal, required=True)
        parser.add_argument("--actual", type=_decimal, required=True)
        parser.add_argument("--threshold", type=_decimal, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_evaluate)


def register_pending_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``pending``."""
    name = "pending"
    help_text = "List days awaiting approval."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--store-id", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_pending)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    target = Path(config_path) if config_path is not None else Path.cwd() / data_manager.CONFIG_FILE_NAME
    return core_logic.load_runtime_context(target)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    if spec.writes:
        core_logic.ensure_schema_version(context)
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def _target_date(context: core_logic.RuntimeContext, args: argparse.Namespace) -> date:
    explicit = getattr(args, "date", None)
    return explicit if explicit is not None else data_manager.business_today(context.settings)


def translate_recalibrate(context: core_logic.RuntimeContext, args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into ``submit_recalibration`` keyword arguments."""
    return {
        "store_id": args.store_id,
        "billing_month": args.month,
        "anchor_date": _target_date(context, args),
        "counted_balance": args.counted,
        "discrepancy_type": DiscrepancyType(args.discrepancy_type),
        "loan_amount": args.loan_amount,
        "notes": args.notes,
        "created_by": args.created_by,
        "confirm_zero": args.confirm_zero,
    }


def translate_close_day(context: core_logic.RuntimeContext, args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into ``save_daily_record`` keyword arguments."""
    return {
        "store_id": args.store_id,
        "target_date": _target_date(context, args),
        "actual_cash": args.actual_cash,
        "actual_online": args.actual_online,
        "submitted_by": args.submitted_by,
        "expected_version": args.expected_version,
    }


def translate_breakdown_window(args: argparse.Namespace) -> tuple[date, date]:
    """Resolve ``--month`` or ``--start``/``--end`` into an inclusive window."""
    if args.month:
        return first_day_of_month(args.month), last_day_of_month(args.month)
    end = args.end if args.end is not None else args.start
    return args.start, end


def _money(value: Optional[Decimal]) -> str:
    return "-" if value is None else f"{value:,.2f}"


def _flags(missing: bool, negative: bool) -> str:
    notes = []
    if missing:
        notes.append("no anchor, may understate history")
    if negative:
        notes.append("negative balance")
    return f"  [{'; '.join(notes)}]" if notes else ""


def run_recalibrate(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the recalibration workflow via the BLL."""
    anchor = core_logic.submit_recalibration(context, **translate_recalibrate(context, args))
    print(
        f"Recalibration {anchor.anchor_id}: counted {_money(anchor.counted_balance)}, "
        f"system {_money(anchor.system_balance)}, difference {_money(anchor.difference)}"
    )
    return 0


def run_delete_recalibration(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the recalibration removal workflow via the BLL."""
    anchor = core_logic.delete_recalibration(context, args.anchor_id)
    print(f"Recalibration {anchor.anchor_id} for {anchor.billing_month} deactivated")
    return 0


def run_close_day(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the daily close workflow via the BLL."""
    record = core_logic.save_daily_record(context, **translate_close_day(context, args))
    print(
        f"Record {record.record_id} ({record.approval.status.value}, version {record.version}): "
        f"cash {_money(record.cash_discrepancy)}, online {_money(record.online_discrepancy)}"
    )
    return 0


def run_request_approval(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    state = core_logic.request_approval(context, args.record_id, args.expected_version)
    print(f"Record {args.record_id} is {state.status.value}")
    return 0


def run_approve(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    state = core_logic.approve(context, args.record_id, args.approver, args.expected_version)
    print(f"Record {args.record_id} {state.status.value} by {state.by}")
    return 0


def run_reject(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    state = core_logic.reject(context, args.record_id, args.approver, args.reason, args.expected_version)
    print(f"Record {args.record_id} {state.status.value} by {state.by}: {state.reason}")
    return 0


def run_balance(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the online balance report."""
    target = _target_date(context, args)
    result = core_logic.compute_online_balance_details(context, args.store_id, target, args.in_flight_delta)
    print(
        f"{result.store_id} {target}: {_money(result.balance)}"
        f"{_flags(result.derived_from_missing_data, result.negative_balance)}"
    )
    return 0


def run_breakdown(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the per-day ledger report."""
    start, end = translate_breakdown_window(args)
    entries = core_logic.compute_daily_breakdown(context, args.store_id, start, end)
    print(f"{'Date':<12}{'Inflows':>14}{'Outflows':>14}{'Net':>14}{'Balance':>14}")
    for entry in entries:
        marker = " *" if entry.is_anchor else ""
        print(
            f"{entry.date.isoformat():<12}{_money(entry.inflows.total):>14}{_money(entry.outflows.total):>14}"
            f"{_money(entry.net_change):>14}{_money(entry.running_balance):>14}{marker}"
        )
    if entries and entries[0].derived_from_missing_data:
        print("No recalibration governs this window; balances start from zero.")
    return 0


def run_expected_cash(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the expected cash report."""
    target = _target_date(context, args)
    result = core_logic.compute_expected_cash(context, args.store_id, target)
    suffix = "  [previous day not counted]" if result.derived_from_missing_data else ""
    print(f"{result.store_id} {target}: {_money(result.balance)}{suffix}")
    return 0


def run_evaluate(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute a one-off discrepancy evaluation."""
    threshold = args.threshold if args.threshold is not None else context.settings.discrepancy_threshold
    result = core_logic.evaluate_discrepancy(args.expected, args.actual, threshold)
    print(f"delta {_money(result.delta)}: {result.severity.value}")
    return 0


def run_pending(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the pending approvals report."""
    records = core_logic.list_pending_approvals(context, args.store_id)
    if not records:
        print("No days awaiting approval.")
    for record in records:
        print(
            f"{record.record_id} {record.store_id} {record.date.isoformat()} "
            f"cash {_money(record.cash_discrepancy)} online {_money(record.online_discrepancy)} "
            f"(version {record.version})"
        )
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        spec = command_table[args.command]
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0 and spec.writes:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
