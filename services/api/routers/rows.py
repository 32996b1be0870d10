# services/api/routers/rows.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status

from core.photos import PHOTO_SLOTS, attach_photo
from core.validation import raise_for_notice, validate_field_name, validate_filter, validate_reorder
from models import ObservationRow
from routers.sessions import CurrentSession, session_out
from schemas import NoticeOut, ReorderBody, RowCreate, RowOut, RowsPage, RowUpdate, SummaryOut, row_out
from settings import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions/{session_id}", tags=["rows"])

ROW_STATUSES = ("pending", "completed")


def get_suggestions():
    from main import get_suggestion_index
    return get_suggestion_index()


def _check_slot(slot: str) -> str:
    if slot not in PHOTO_SLOTS:
        raise HTTPException(status_code=400, detail=f"slot must be one of {list(PHOTO_SLOTS)}")
    return slot


@router.get("/rows", response_model=RowsPage)
async def list_rows(
    session: CurrentSession,
    search: str = Query("", description="Case-insensitive substring over the text fields"),
    status_filter: str = Query("all", alias="status"),
    responsibility: str = Query("all"),
):
    editor = session.editor
    st = validate_filter(status_filter, ROW_STATUSES, "status")
    rows = editor.filtered(search, st, responsibility or "all")
    return RowsPage(
        rows=[row_out(r) for r in rows],
        total=len(editor),
        filtered=len(rows),
        responsibilities=editor.responsibilities(),
    )


@router.post("/rows", response_model=RowOut, status_code=status.HTTP_201_CREATED)
async def add_row(session: CurrentSession, body: Optional[RowCreate] = None):
    """Append a row (empty unless fields are given)."""
    row = ObservationRow(**body.model_dump()) if body else ObservationRow()
    return row_out(session.editor.add(row))


@router.patch("/rows/{row_id}", response_model=RowOut)
async def update_row(row_id: str, body: RowUpdate, session: CurrentSession):
    field = validate_field_name(body.field)
    value = body.value
    if field == "status":
        if value not in ROW_STATUSES:
            raise HTTPException(status_code=400, detail=f"status must be one of {list(ROW_STATUSES)}")
    try:
        return row_out(session.editor.update(row_id, field, value))
    except KeyError:
        raise HTTPException(status_code=404, detail="Row not found")


@router.delete("/rows/{row_id}", response_model=NoticeOut)
async def delete_row(
    row_id: str,
    session: CurrentSession,
    remote: bool = Query(False, description="Also delete the stored entry"),
):
    result = await session.engine.delete_row(row_id, remote=remote)
    raise_for_notice(result)
    return NoticeOut(**result.to_dict())


@router.post("/rows/reorder", response_model=RowsPage)
async def reorder_rows(body: ReorderBody, session: CurrentSession):
    editor = session.editor
    validate_reorder(body.from_index, body.to_index, len(editor))
    editor.reorder(body.from_index, body.to_index)
    rows = editor.rows
    return RowsPage(
        rows=[row_out(r) for r in rows],
        total=len(rows),
        filtered=len(rows),
        responsibilities=editor.responsibilities(),
    )


@router.post("/rows/clear")
async def clear_rows(session: CurrentSession):
    """Reset to one empty row and drop every unsynced cached row."""
    session.engine.clear_all()
    return session_out(session)


@router.post("/rows/{row_id}/save", response_model=NoticeOut)
async def save_row(row_id: str, session: CurrentSession, suggestions=Depends(get_suggestions)):
    """Save one row straight to the remote store."""
    result = await session.engine.save_row(row_id)
    raise_for_notice(result)
    suggestions.invalidate(session.project.id)
    return NoticeOut(**result.to_dict())


@router.post("/rows/{row_id}/photos/{slot}", response_model=NoticeOut)
async def upload_photo(
    row_id: str,
    slot: str,
    session: CurrentSession,
    file: UploadFile = File(...),
):
    _check_slot(slot)
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Empty file")

    try:
        result = await attach_photo(
            session.context,
            session.editor,
            row_id,
            slot,
            filename=file.filename or "",
            data=data,
            content_type=file.content_type,
            preview_dir=get_settings().preview_dir,
        )
    except KeyError:
        raise HTTPException(status_code=404, detail="Row not found")

    raise_for_notice(result)
    return NoticeOut(**result.to_dict())


@router.delete("/rows/{row_id}/photos/{slot}", response_model=RowOut)
async def remove_photo(row_id: str, slot: str, session: CurrentSession):
    _check_slot(slot)
    try:
        return row_out(session.editor.set_photo(row_id, slot, None))
    except KeyError:
        raise HTTPException(status_code=404, detail="Row not found")


@router.get("/summary", response_model=SummaryOut)
async def data_summary(session: CurrentSession):
    return SummaryOut.from_counts(session.editor.summary(), session.engine.unsynced_count)
