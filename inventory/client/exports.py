from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date, datetime
from io import BytesIO
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from inventory.client.filters import as_date

Row = Mapping[str, Any]

CSV_SPECIAL_CHARS = (",", '"', "\n", "\r")
STATUS_LABELS = {"active": "Active", "maintenance": "Maintenance", "retired": "Retired"}

HEADER_FILL = PatternFill(fill_type="solid", fgColor="0B4F73")
ZEBRA_FILL = PatternFill(fill_type="solid", fgColor="F7FBFE")
WARNING_FILL = PatternFill(fill_type="solid", fgColor="FFF3CD")
ALERT_FILL = PatternFill(fill_type="solid", fgColor="FDE2E4")
HEADER_FONT = Font(bold=True, color="FFFFFF")
THIN_SIDE = Side(style="thin", color="D0DCE5")
THIN_BORDER = Border(left=THIN_SIDE, right=THIN_SIDE, top=THIN_SIDE, bottom=THIN_SIDE)


class ExportError(ValueError):
    pass


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _escape(value: Any) -> str:
    text = _cell_text(value)
    if any(char in text for char in CSV_SPECIAL_CHARS):
        return '"' + text.replace('"', '""') + '"'
    return text


def to_csv(rows: Sequence[Row]) -> str:
    """Serialize ``rows`` using the first row's keys as the header, lines joined by ``\\n``."""
    if not rows:
        raise ExportError("No data to export")
    headers = list(rows[0].keys())
    lines = [",".join(_escape(header) for header in headers)]
    for row in rows:
        lines.append(",".join(_escape(row.get(header)) for header in headers))
    return "\n".join(lines)


def export_filename(report: str, today: date | None = None) -> str:
    return f"{report}_{(today or date.today()).isoformat()}.csv"


def _date_label(value: Any) -> str:
    parsed = as_date(value)
    return parsed.isoformat() if parsed else ""


def pc_export_rows(pcs: Sequence[Row]) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for pc in pcs:
        employee = pc.get("employee") if isinstance(pc.get("employee"), Mapping) else None
        rows.append(
            {
                "Asset tag": pc.get("pc_id"),
                "Brand": pc.get("brand") or "N/A",
                "Model": pc.get("model") or "N/A",
                "CPU": pc.get("cpu") or "N/A",
                "RAM (GB)": pc.get("ram"),
                "Storage": pc.get("storage") or "N/A",
                "Operating system": pc.get("operating_system") or "N/A",
                "Serial number": pc.get("serial_number") or "N/A",
                "Purchase date": _date_label(pc.get("purchase_date")),
                "Warranty expiry": _date_label(pc.get("warranty_expiry")),
                "Status": STATUS_LABELS.get(str(pc.get("status")), str(pc.get("status"))),
                "Assigned to": employee.get("name") if employee else "",
                "Notes": pc.get("notes") or "",
                "Created": _date_label(pc.get("created_at")),
                "Updated": _date_label(pc.get("updated_at")),
            }
        )
    return rows


def employee_export_rows(employees: Sequence[Row], pcs: Sequence[Row]) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for employee in employees:
        assigned = [str(pc.get("pc_id")) for pc in pcs if pc.get("employee_id") == employee.get("id")]
        rows.append(
            {
                "Name": employee.get("name"),
                "Email": employee.get("email"),
                "Department": employee.get("department"),
                "Position": employee.get("position") or "",
                "Registered": _date_label(employee.get("created_at")),
                "Assigned PCs": "; ".join(assigned) or "None",
            }
        )
    return rows


def _warranty_status(days_left: int) -> str:
    if days_left < 0:
        return "Expired"
    if days_left <= 30:
        return "Expires within 30 days"
    if days_left <= 90:
        return "Expires within 90 days"
    return "Valid"


def warranty_report_rows(pcs: Sequence[Row], today: date | None = None) -> list[dict[str, Any]]:
    """One row per PC with a warranty expiry, soonest expiry first."""
    today = today or date.today()
    rows: list[dict[str, Any]] = []
    for pc in pcs:
        expiry = as_date(pc.get("warranty_expiry"))
        if expiry is None:
            continue
        days_left = (expiry - today).days
        rows.append(
            {
                "Asset tag": pc.get("pc_id"),
                "Brand": pc.get("brand") or "N/A",
                "Model": pc.get("model") or "N/A",
                "Purchase date": _date_label(pc.get("purchase_date")),
                "Warranty expiry": expiry.isoformat(),
                "Days left": days_left,
                "Warranty status": _warranty_status(days_left),
                "PC status": STATUS_LABELS.get(str(pc.get("status")), str(pc.get("status"))),
            }
        )
    rows.sort(key=lambda row: row["Days left"])
    return rows


def _style_header(ws: Worksheet, row: int = 1) -> None:
    for cell in ws[row]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        cell.border = THIN_BORDER


def _auto_width(ws: Worksheet) -> None:
    for column_cells in ws.iter_cols(min_row=1, max_row=ws.max_row, min_col=1, max_col=ws.max_column):
        max_len = 0
        col_letter = get_column_letter(column_cells[0].column)
        for cell in column_cells:
            value = "" if cell.value is None else str(cell.value)
            max_len = max(max_len, len(value))
        ws.column_dimensions[col_letter].width = min(max_len + 2, 45)


def _style_body(ws: Worksheet, *, data_end_row: int) -> None:
    if data_end_row < 2:
        ws.freeze_panes = "A2"
        return
    ws.auto_filter.ref = f"A1:{get_column_letter(ws.max_column)}{data_end_row}"
    ws.freeze_panes = "A2"

    status_col = None
    for col_idx in range(1, ws.max_column + 1):
        if ws.cell(row=1, column=col_idx).value in {"Status", "Warranty status"}:
            status_col = col_idx
            break

    for row_idx in range(2, data_end_row + 1):
        status_value = ws.cell(row=row_idx, column=status_col).value if status_col else None
        if status_value in {"Maintenance", "Expires within 30 days"}:
            row_fill = WARNING_FILL
        elif status_value in {"Retired", "Expired"}:
            row_fill = ALERT_FILL
        elif row_idx % 2 == 0:
            row_fill = ZEBRA_FILL
        else:
            row_fill = None

        for col_idx in range(1, ws.max_column + 1):
            cell = ws.cell(row=row_idx, column=col_idx)
            cell.border = THIN_BORDER
            if row_fill is not None:
                cell.fill = row_fill
            if isinstance(cell.value, (int, float)):
                cell.alignment = Alignment(horizontal="center", vertical="center")
            else:
                cell.alignment = Alignment(horizontal="left", vertical="center")


def _safe_sheet_title(title: str, fallback: str) -> str:
    cleaned = "".join(ch for ch in title if ch not in ['\\', '/', '*', '?', ':', '[', ']']).strip()
    if not cleaned:
        cleaned = fallback
    return cleaned[:31]


def rows_to_xlsx_bytes(rows: Sequence[Row], *, sheet_title: str = "Inventory") -> bytes:
    if not rows:
        raise ExportError("No data to export")
    headers = list(rows[0].keys())

    wb = Workbook()
    ws = wb.active
    ws.title = _safe_sheet_title(sheet_title, "Inventory")
    ws.append(headers)
    for row in rows:
        ws.append([row.get(header) for header in headers])

    _style_header(ws)
    _style_body(ws, data_end_row=len(rows) + 1)
    _auto_width(ws)

    stream = BytesIO()
    wb.save(stream)
    return stream.getvalue()
