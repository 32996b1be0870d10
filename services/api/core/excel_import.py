# services/api/core/excel_import.py
"""
Spreadsheet import and template workbook.

Layout (first sheet, first row is a header and is skipped):

    A srno | B part name | C op number | D observation | E before photo |
    F after photo | G action plan | H responsibility | I remarks

Photo columns are ignored. Rows with neither srno nor part name are dropped.
"""
from __future__ import annotations

import logging
import zipfile
from io import BytesIO
from typing import Any, List, Optional, Sequence

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException

from models import ObservationRow

logger = logging.getLogger(__name__)

TEMPLATE_HEADERS = [
    "SR No",
    "Part Name",
    "Operation Number",
    "Observation",
    "Before Photo",
    "After Photo",
    "Action Plan",
    "Responsibility",
    "Remarks",
]

TEMPLATE_SAMPLE_ROWS = [
    ["001", "Sample Part", "OP-100", "Sample observation text", "", "", "Sample action plan", "John Doe", "Sample remarks"],
    ["002", "Another Part", "OP-200", "Another observation", "", "", "Another action plan", "Jane Smith", "More remarks"],
]

# column index -> row field (photo columns 4 and 5 are skipped)
_COLUMN_FIELDS = {
    0: "srno",
    1: "part_name",
    2: "op_number",
    3: "observation",
    6: "action_plan",
    7: "responsibility",
    8: "remarks",
}


class SpreadsheetImportError(ValueError):
    """The uploaded file is not a readable workbook."""


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    # whole-number floats come back from numeric cells (e.g. srno 1 -> 1.0)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def row_from_cells(cells: Sequence[Any]) -> Optional[ObservationRow]:
    """Map one spreadsheet row to a fresh pending row, or None if it is dropped."""
    values = {}
    for idx, field in _COLUMN_FIELDS.items():
        values[field] = _cell_text(cells[idx]) if idx < len(cells) else ""

    if not values["srno"] and not values["part_name"]:
        return None
    return ObservationRow(**values, status="pending")


def parse_workbook(data: bytes) -> List[ObservationRow]:
    """
    Parse an .xlsx payload into new rows (fresh ids, status pending).

    Raises:
        SpreadsheetImportError: if the payload is not a workbook openpyxl can read
    """
    try:
        wb = load_workbook(BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
        logger.warning(f"Rejected spreadsheet upload: {e}")
        raise SpreadsheetImportError("Failed to process Excel file. Please check the format.") from e

    try:
        ws = wb.worksheets[0]
        rows: List[ObservationRow] = []
        dropped = 0
        for cells in ws.iter_rows(min_row=2, values_only=True):
            row = row_from_cells(cells)
            if row is None:
                dropped += 1
                continue
            rows.append(row)
    finally:
        wb.close()

    logger.info(f"Parsed spreadsheet: {len(rows)} rows imported, {dropped} dropped")
    return rows


def build_template() -> bytes:
    """Workbook with the expected header row and two sample rows."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Observation Template"

    ws.append(TEMPLATE_HEADERS)
    for r in TEMPLATE_SAMPLE_ROWS:
        ws.append(r)

    header_fill = PatternFill(start_color="FFD9E1F2", end_color="FFD9E1F2", fill_type="solid")
    for cell in ws[1]:
        cell.font = Font(bold=True)
        cell.fill = header_fill
        cell.alignment = Alignment(vertical="center")

    # width = longest value + 2, clamped to [10, 50]
    all_rows = [TEMPLATE_HEADERS] + TEMPLATE_SAMPLE_ROWS
    for col_idx in range(len(TEMPLATE_HEADERS)):
        longest = max(len(str(r[col_idx] or "")) for r in all_rows)
        ws.column_dimensions[get_column_letter(col_idx + 1)].width = min(max(longest + 2, 10), 50)

    out = BytesIO()
    wb.save(out)
    return out.getvalue()
