"""
Bulk pass failure report export (CSV and XLSX).

Takes a ``BulkPassResult`` (or its ``to_dict()``) and renders the per-item
failures with a summary, for download from the bulk pass job endpoints.
"""

import csv
import io
import logging
from datetime import datetime, timezone

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

logger = logging.getLogger(__name__)

FAILURE_COLUMNS = ["progress_id", "student_id", "reason", "message"]

_SLATE = "354A5F"
_ROSE = "FDECEA"
_THIN = Side(style="thin")

HEADER_FILL = PatternFill(fill_type="solid", start_color=_SLATE, end_color=_SLATE)
HEADER_FONT = Font(bold=True, color="FFFFFF", size=11)
FAILURE_FILL = PatternFill(fill_type="solid", start_color=_ROSE, end_color=_ROSE)
CELL_BORDER = Border(left=_THIN, right=_THIN, top=_THIN, bottom=_THIN)

# Column width bounds, in characters.
MIN_WIDTH, MAX_WIDTH = 12, 64


def _as_dict(result) -> dict:
    return result if isinstance(result, dict) else result.to_dict()


def _style_header_row(ws) -> None:
    centered = Alignment(horizontal="center", vertical="center", wrap_text=True)
    for cell in ws[1]:
        cell.fill, cell.font, cell.border, cell.alignment = HEADER_FILL, HEADER_FONT, CELL_BORDER, centered


def _fit_columns(ws) -> None:
    for idx, column in enumerate(ws.iter_cols(values_only=True), 1):
        longest = max((len(str(v)) for v in column if v not in (None, "")), default=0)
        ws.column_dimensions[get_column_letter(idx)].width = min(max(longest + 4, MIN_WIDTH), MAX_WIDTH)
def _failure_values(failure: dict) -> list:
    return [failure.get(col) for col in FAILURE_COLUMNS]


def generate_failures_csv(result) -> str:
    """One row per failed item. Returns CSV content as a string."""
    data = _as_dict(result)
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(FAILURE_COLUMNS)
    for failure in data.get("failures", []):
        progress_id, student_id, reason, message = _failure_values(failure)
        writer.writerow([
            progress_id,
            "" if student_id is None else student_id,
            reason or "",
            (message or "").replace("\n", " "),
        ])
    return buf.getvalue()


def generate_failures_xlsx(result) -> bytes:
    """Workbook with a Summary sheet and a Failures sheet."""
    data = _as_dict(result)
    wb = Workbook()

    ws = wb.active
    ws.title = "Summary"
    ws["A1"] = "Bulk Pass Report"
    ws["A1"].font = Font(size=16, bold=True)
    ws["A2"] = f"Generated: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}"
    ws["A2"].font = Font(size=10, italic=True, color="666666")

    rows = [
        ("Total", data.get("total", 0)),
        ("Succeeded", data.get("success_count", 0)),
        ("Failed", data.get("failure_count", 0)),
        ("Cancelled", "yes" if data.get("cancelled") else "no"),
    ]
    for offset, (label, value) in enumerate(rows):
        ws.cell(row=4 + offset, column=1, value=label).font = Font(bold=True)
        ws.cell(row=4 + offset, column=2, value=value)
    _fit_columns(ws)

    ws2 = wb.create_sheet("Failures")
    ws2.append(FAILURE_COLUMNS)
    _style_header_row(ws2)

    for row, failure in enumerate(data.get("failures", []), 2):
        for col, value in enumerate(_failure_values(failure), 1):
            cell = ws2.cell(row=row, column=col, value=value)
            cell.border = CELL_BORDER
            cell.fill = FAILURE_FILL
    ws2.freeze_panes = "A2"
    _fit_columns(ws2)

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    logger.debug("Generated bulk pass failure workbook (%d failures)", len(data.get("failures", [])))
    return buf.getvalue()
