"""
Pydantic schemas for API request/response validation.
"""
from .project import PasswordChange, PasswordCheck, ProjectCreate, ProjectOut
from .row import (
    ReorderBody,
    RowCreate,
    RowOut,
    RowsPage,
    RowUpdate,
    SummaryOut,
    row_out,
)
from .session import NoticeOut, SessionCreate, SessionOut, SyncStatusOut

__all__ = [
    "NoticeOut",
    "PasswordChange",
    "PasswordCheck",
    "ProjectCreate",
    "ProjectOut",
    "ReorderBody",
    "RowCreate",
    "RowOut",
    "RowsPage",
    "RowUpdate",
    "SessionCreate",
    "SessionOut",
    "SummaryOut",
    "SyncStatusOut",
    "row_out",
]
