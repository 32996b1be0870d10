# services/api/routers/imports.py
from __future__ import annotations

import io
import logging

from fastapi import APIRouter, File, HTTPException, UploadFile
from fastapi.responses import StreamingResponse

from core.excel_import import SpreadsheetImportError, build_template, parse_workbook
from routers.sessions import CurrentSession, session_out

logger = logging.getLogger(__name__)

router = APIRouter(tags=["imports"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.post("/sessions/{session_id}/import")
async def import_spreadsheet(session: CurrentSession, file: UploadFile = File(...)):
    """
    Append rows from an uploaded workbook (see GET /imports/template).
    Imported rows are new: fresh ids, status pending.
    """
    name = (file.filename or "").lower()
    if name.endswith(".xls"):
        raise HTTPException(status_code=400, detail="Legacy .xls files are not supported; save the workbook as .xlsx")
    if not name.endswith(".xlsx"):
        raise HTTPException(status_code=400, detail="Please upload an Excel file (.xlsx)")

    data = await file.read()
    try:
        rows = parse_workbook(data)
    except SpreadsheetImportError as e:
        raise HTTPException(status_code=400, detail=str(e))

    added = session.editor.extend(rows)
    logger.info(f"[{session.project.id}] imported {added} rows from {file.filename}")

    out = session_out(session)
    return {
        "imported": added,
        "message": f"Added {added} entries from Excel file",
        "session": out,
    }


@router.get("/imports/template")
async def download_template():
    return StreamingResponse(
        io.BytesIO(build_template()),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="observation_template.xlsx"'}
    )
