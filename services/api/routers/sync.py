# services/api/routers/sync.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from core.validation import raise_for_notice
from routers.sessions import CurrentSession, session_out
from schemas import SessionOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions/{session_id}", tags=["sync"])


def get_suggestions():
    from main import get_suggestion_index
    return get_suggestion_index()


@router.post("/sync", response_model=SessionOut)
async def sync_session(session: CurrentSession, suggestions=Depends(get_suggestions)):
    """
    Push every cached row of this session's project to the remote store.

    - 200 with notice.status = synced | nothing_to_sync | no_valid_data
    - 409 if a sync for this session is already running
    - 502 if the remote store rejected the batch (cache left untouched)
    """
    result = await session.engine.sync()
    raise_for_notice(result)
    if result.status == "synced":
        suggestions.invalidate(session.project.id)
    return session_out(session, result)
