# services/api/core/report_excel.py
"""
Tabular exports of observation rows: .xlsx (openpyxl) and CSV.

Both are text only; photos appear as their stored URLs. Use the PDF report
for embedded images.
"""
from __future__ import annotations

import csv
import io
from typing import List

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from models import ObservationRow

EXPORT_COLUMNS = [
    ("SR No", "srno", 10),
    ("Part Name", "part_name", 24),
    ("Operation Number", "op_number", 18),
    ("Observation", "observation", 48),
    ("Before Photo", "before_photo_url", 40),
    ("After Photo", "after_photo_url", 40),
    ("Action Plan", "action_plan", 40),
    ("Responsibility", "responsibility", 20),
    ("Remarks", "remarks", 32),
    ("Status", "status", 12),
]

IMAGES_OMITTED_WARNING = "Excel format does not support images. Use PDF export to include images."


def _values(row: ObservationRow) -> List[str]:
    return [getattr(row, attr) or "" for _, attr, _ in EXPORT_COLUMNS]


def generate_report_excel(rows: List[ObservationRow], project_name: str = "") -> bytes:
    """One sheet, header row plus one row per entry."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Observations"

    ws.append([header for header, _, _ in EXPORT_COLUMNS])
    header_fill = PatternFill(start_color="FFD9E1F2", end_color="FFD9E1F2", fill_type="solid")
    for cell in ws[1]:
        cell.font = Font(bold=True)
        cell.fill = header_fill
        cell.alignment = Alignment(vertical="center")

    for r in rows:
        ws.append(_values(r))

    for idx, (_, _, width) in enumerate(EXPORT_COLUMNS, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = width
    for row in ws.iter_rows(min_row=2):
        for cell in row:
            cell.alignment = Alignment(wrap_text=True, vertical="top")
    ws.freeze_panes = "A2"

    if project_name:
        wb.properties.title = project_name

    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()


def generate_report_csv(rows: List[ObservationRow]) -> bytes:
    """Same columns as the workbook; UTF-8 with a BOM so Excel detects the encoding."""
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow([header for header, _, _ in EXPORT_COLUMNS])
    for r in rows:
        writer.writerow(_values(r))
    return buf.getvalue().encode("utf-8-sig")
