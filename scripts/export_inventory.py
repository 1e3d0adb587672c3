#!/usr/bin/env python
from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import sys
from datetime import date
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from inventory.client.api import ApiRequestError, InventoryClient
from inventory.client.exports import (
    ExportError,
    employee_export_rows,
    export_filename,
    pc_export_rows,
    rows_to_xlsx_bytes,
    to_csv,
    warranty_report_rows,
)
from inventory.client.filters import FilterState, filter_pcs

REPORTS = ("pcs", "employees", "warranty")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export inventory reports as CSV or XLSX.")
    parser.add_argument("--base-url", default="http://127.0.0.1:8000")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", help="Prompted for when omitted.")
    parser.add_argument("--report", choices=REPORTS, default="pcs")
    parser.add_argument("--format", choices=("csv", "xlsx"), default="csv")
    parser.add_argument("--output-dir", type=Path, default=Path("."))
    parser.add_argument("--search", default="")
    parser.add_argument("--status", choices=("active", "maintenance", "retired"))
    parser.add_argument("--unassigned", action="store_true")
    parser.add_argument("--warranty-expiring", action="store_true")
    return parser.parse_args(argv)


async def _collect_rows(client: InventoryClient, args: argparse.Namespace, today: date) -> list[dict]:
    pcs = await client.list_pcs()
    state = FilterState(
        search=args.search,
        status=args.status,
        assignment_status="unassigned" if args.unassigned else None,
        warranty_expiring=args.warranty_expiring,
    )
    filtered = filter_pcs(pcs, state, today)
    if args.report == "employees":
        return employee_export_rows(await client.list_employees(), pcs)
    if args.report == "warranty":
        return warranty_report_rows(filtered, today)
    return pc_export_rows(filtered)


async def run(args: argparse.Namespace) -> Path:
    today = date.today()
    password = args.password or getpass.getpass("Password: ")
    async with InventoryClient(args.base_url) as client:
        await client.login(args.email, password)
        try:
            rows = await _collect_rows(client, args, today)
        finally:
            await client.logout()

    args.output_dir.mkdir(parents=True, exist_ok=True)
    filename = export_filename(f"{args.report}_report", today)
    if args.format == "xlsx":
        target = args.output_dir / filename.replace(".csv", ".xlsx")
        target.write_bytes(rows_to_xlsx_bytes(rows, sheet_title=args.report))
    else:
        target = args.output_dir / filename
        target.write_text(to_csv(rows), encoding="utf-8")
    return target


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        target = asyncio.run(run(args))
    except (ApiRequestError, ExportError) as exc:
        print(json.dumps({"ok": False, "error": str(exc)}))
        return 1
    print(json.dumps({"ok": True, "path": str(target)}))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
