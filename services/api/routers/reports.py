# services/api/routers/reports.py
from __future__ import annotations

import io
import logging
import re
from datetime import datetime

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse

from core.report_excel import IMAGES_OMITTED_WARNING, generate_report_csv, generate_report_excel
from core.report_pdf import generate_report_pdf
from routers.sessions import CurrentSession
from settings import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions/{session_id}", tags=["reports"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _filename(project_name: str, ext: str) -> str:
    slug = re.sub(r"[^A-Za-z0-9_-]+", "_", project_name).strip("_") or "observations"
    return f"{slug}_{datetime.now().strftime('%Y-%m-%d')}.{ext}"


@router.get("/export/{fmt}")
async def export_rows(fmt: str, session: CurrentSession):
    """
    Export the session's meaningful rows as pdf, xlsx or csv.
    Exports are read-only: neither the editor nor the cache changes.
    """
    if fmt not in ("pdf", "xlsx", "csv"):
        raise HTTPException(status_code=400, detail="format must be one of pdf, xlsx, csv")

    rows = session.editor.meaningful()
    if not rows:
        raise HTTPException(status_code=400, detail="No entries with data to export")

    settings = get_settings()
    max_rows = settings.max_rows_per_report
    total = len(rows)
    warnings = []
    if total > max_rows:
        logger.warning(f"Trimming rows for export: {total} → {max_rows} (max_rows_per_report)")
        rows = rows[:max_rows]
        warnings.append(f"Export limited to {max_rows} of {total} entries")

    project_name = session.project.name
    headers = {
        "Content-Disposition": f'attachment; filename="{_filename(project_name, fmt)}"',
        "X-Export-Total": str(total),
        "X-Export-Included": str(len(rows)),
    }
    if warnings:
        headers["X-Export-Warning"] = "; ".join(warnings)

    if fmt == "pdf":
        from main import resolve_local_blob

        pdf_bytes = await generate_report_pdf(
            rows=rows,
            project_name=project_name,
            image_timeout=settings.image_fetch_timeout,
            resolve_local=resolve_local_blob,
        )
        return StreamingResponse(io.BytesIO(pdf_bytes), media_type="application/pdf", headers=headers)

    if fmt == "xlsx":
        excel_bytes = generate_report_excel(rows, project_name=project_name)
        headers["X-Export-Warning"] = "; ".join(warnings + [IMAGES_OMITTED_WARNING])
        return StreamingResponse(io.BytesIO(excel_bytes), media_type=XLSX_MEDIA_TYPE, headers=headers)

    headers["X-Export-Warning"] = "; ".join(warnings + [IMAGES_OMITTED_WARNING])
    return StreamingResponse(
        io.BytesIO(generate_report_csv(rows)),
        media_type="text/csv; charset=utf-8",
        headers=headers,
    )
