# services/api/routers/sessions.py
from __future__ import annotations

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, status

from core.projects import InvalidPassword, ProjectNotFound
from core.sessions import Session, SessionManager
from core.sync_engine import SyncResult
from core.validation import raise_for_notice, require_password
from schemas import NoticeOut, ProjectOut, SessionCreate, SessionOut, SyncStatusOut, row_out

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


def get_sessions() -> SessionManager:
    """
    Consistent DI wrapper so all routers share the same session manager.
    """
    from main import get_session_manager
    return get_session_manager()


def get_registry():
    from main import get_project_registry
    return get_project_registry()


def get_session(
    session_id: str = Path(..., description="Session id returned by POST /sessions"),
    sessions: SessionManager = Depends(get_sessions),
) -> Session:
    try:
        return sessions.get(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Session not found")


CurrentSession = Annotated[Session, Depends(get_session)]


def session_out(session: Session, notice: Optional[SyncResult] = None, include_rows: bool = True) -> SessionOut:
    return SessionOut(
        session_id=session.id,
        client_id=session.client_id,
        project=ProjectOut(**session.project.public()),
        sync=SyncStatusOut(**session.engine.status()),
        rows=[row_out(r) for r in session.editor.rows] if include_rows else [],
        notice=NoticeOut(**notice.to_dict()) if notice else None,
    )


@router.post("", response_model=SessionOut, status_code=status.HTTP_201_CREATED)
async def open_session(
    body: SessionCreate,
    sessions: SessionManager = Depends(get_sessions),
    registry=Depends(get_registry),
):
    """
    Verify the project password, then open an editing session: remote rows
    are loaded and unsynced rows from this client's cache are restored.
    """
    require_password(body.password)
    try:
        project = await registry.verify(body.project_id, body.password)
    except ProjectNotFound:
        raise HTTPException(status_code=404, detail="Project not found")
    except InvalidPassword:
        raise HTTPException(status_code=401, detail="Invalid password")

    try:
        session, result = await sessions.open(project, client_id=body.client_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return session_out(session, result)


@router.get("/{session_id}", response_model=SessionOut)
async def get_session_state(session: CurrentSession):
    return session_out(session)


@router.post("/{session_id}/reload", response_model=SessionOut)
async def reload_session(session: CurrentSession):
    """Re-read the project's rows from the remote store (409 while a sync is running)."""
    result = await session.engine.load_from_remote()
    raise_for_notice(result)
    return session_out(session, result)


@router.post("/{session_id}/before-unload")
async def before_unload(session: CurrentSession):
    """
    The client is closing. With unsynced rows a best-effort sync is started
    in the background and `prompt` tells the client to warn the user.
    """
    prompt = session.engine.before_unload()
    return {
        "prompt": prompt,
        "unsynced_count": session.engine.unsynced_count,
        "message": "You have unsaved changes. Are you sure you want to leave?" if prompt else "",
    }


@router.delete("/{session_id}")
async def close_session(session: CurrentSession, sessions: SessionManager = Depends(get_sessions)):
    sessions.close(session.id)
    return {"ok": True, "session_id": session.id}
