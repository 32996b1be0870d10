"""
Pydantic schemas for editing sessions and sync notices.
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .project import ProjectOut
from .row import RowOut


class SessionCreate(BaseModel):
    """Open a project: the password is checked before anything is loaded."""
    project_id: str = Field(..., min_length=1)
    password: str = ""
    client_id: str = Field(
        "default",
        min_length=1,
        max_length=64,
        description="Identifies the client whose local cache this session uses",
    )


class SyncStatusOut(BaseModel):
    project_id: Optional[str] = None
    state: str
    unsynced_count: int = 0


class NoticeOut(BaseModel):
    """User-facing outcome of a sync-engine operation."""
    model_config = ConfigDict(extra="allow")

    status: str
    ok: bool
    message: str
    count: int = 0


class SessionOut(BaseModel):
    session_id: str
    client_id: str
    project: ProjectOut
    sync: SyncStatusOut
    rows: List[RowOut] = Field(default_factory=list)
    notice: Optional[NoticeOut] = None
