# services/api/routers/suggestions.py
from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from adapters.base import RemoteStoreError
from core.suggestions import SUGGESTION_FIELDS, SuggestionIndex
from routers.sessions import CurrentSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions/{session_id}", tags=["suggestions"])


def get_index() -> SuggestionIndex:
    from main import get_suggestion_index
    return get_suggestion_index()


@router.get("/suggestions/{field}", response_model=List[str])
async def get_suggestions(
    field: str,
    session: CurrentSession,
    q: str = Query("", description="Text typed so far"),
    index: SuggestionIndex = Depends(get_index),
):
    """
    Autocomplete values for one field, learned from the project's stored
    entries: exact match first, then prefix, then substring (max 10).
    """
    if field not in SUGGESTION_FIELDS:
        raise HTTPException(status_code=400, detail=f"field must be one of {list(SUGGESTION_FIELDS)}")

    pid = session.project.id
    if index.get(pid) is None:
        try:
            entries = await session.context.remote.select_rows(pid)
        except RemoteStoreError as e:
            logger.error(f"[{pid}] loading suggestions failed: {e.detail}")
            raise HTTPException(status_code=502, detail="Failed to load suggestions")
        index.put(pid, entries)

    return index.lookup(pid, field, q)
