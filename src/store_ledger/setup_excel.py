"""Utility for initializing the store ledger workbook.

The module doubles as a script (``python -m store_ledger.setup_excel``) and as
a library used by tests or other tooling.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Mapping, Sequence
import sys

import openpyxl
from openpyxl.styles import Font

from . import data_manager
from .constants import (
    DEFAULT_BUSINESS_TIMEZONE,
    DEFAULT_DISCREPANCY_THRESHOLD,
    EXPECTED_SCHEMA_VERSION,
)

CONFIG_TEMPLATE = """[System]
DataFile = {data_file}
BusinessName = {business_name}
SchemaVersion = {schema_version}

[Reconciliation]
DiscrepancyThreshold = {threshold}
BusinessTimezone = {timezone}
"""


def render_config(
    data_file: str,
    *,
    business_name: str = "Store Ledger",
    threshold: str = str(DEFAULT_DISCREPANCY_THRESHOLD),
    timezone: str = DEFAULT_BUSINESS_TIMEZONE,
) -> str:
    """Return the text of a ``config.ini`` pointing at ``data_file``."""

    return CONFIG_TEMPLATE.format(
        data_file=data_file,
        business_name=business_name,
        schema_version=EXPECTED_SCHEMA_VERSION,
        threshold=threshold,
        timezone=timezone,
    )


def create_master_workbook(
    destination: Path,
    *,
    sheet_columns: Mapping[str, Sequence[str]] = data_manager.SHEET_COLUMNS,
    overwrite: bool = False,
) -> Path:
    """Create an empty ledger workbook with one header row per sheet.

    When ``overwrite`` is ``False`` (the default) this function raises
    ``FileExistsError`` if the target already exists.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing ledger workbook: {destination}")

    destination.parent.mkdir(parents=True, exist_ok=True)

    workbook = openpyxl.Workbook()

    # Drop the default sheet openpyxl generates so ours come first.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)

    for sheet_name, columns in sheet_columns.items():
        worksheet = workbook.create_sheet(title=sheet_name)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font

    workbook.save(destination)
    return destination


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Create the workbook named by the ``DataFile`` entry of ``config_path``."""

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    parser = data_manager.read_config(config_path)
    settings = data_manager.parse_settings(parser, base_path=config_path.parent)
    return create_master_workbook(settings.data_file, overwrite=overwrite)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Initialize the store ledger workbook")
    parser.add_argument(
        "--config",
        default=data_manager.CONFIG_FILE_NAME,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    parser.add_argument(
        "--write-config",
        metavar="DATA_FILE",
        help="Write a default configuration pointing at DATA_FILE before creating the workbook.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Store Ledger Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        if args.write_config:
            if config_path.exists() and not args.force:
                raise FileExistsError(f"Refusing to overwrite existing configuration: {config_path}")
            config_path.parent.mkdir(parents=True, exist_ok=True)
            config_path.write_text(render_config(args.write_config), encoding="utf-8")
            print(f"Wrote configuration '{config_path}'.")
        output_path = run_from_config(config_path, overwrite=args.force)
    except (FileNotFoundError, KeyError, ValueError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except OSError as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created ledger workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
