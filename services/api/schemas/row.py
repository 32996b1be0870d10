"""
Pydantic schemas for observation rows.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from models import ObservationRow, PhotoSlot, RowStatus


class RowOut(BaseModel):
    """A row as the client renders it, with derived photo fields."""
    id: str
    srno: str = ""
    part_name: str = ""
    op_number: str = ""
    observation: str = ""
    action_plan: str = ""
    responsibility: str = ""
    remarks: str = ""
    status: RowStatus = "pending"

    before_photo: Optional[PhotoSlot] = None
    after_photo: Optional[PhotoSlot] = None
    before_photo_url: Optional[str] = None
    after_photo_url: Optional[str] = None
    before_photo_preview: str = ""
    after_photo_preview: str = ""

    meaningful: bool = False


def row_out(row: ObservationRow) -> RowOut:
    return RowOut(
        **row.model_dump(),
        before_photo_url=row.before_photo_url,
        after_photo_url=row.after_photo_url,
        before_photo_preview=row.before_photo_preview,
        after_photo_preview=row.after_photo_preview,
        meaningful=row.is_meaningful(),
    )


class RowCreate(BaseModel):
    """New row; every field optional (an empty row is allowed)."""
    srno: str = ""
    part_name: str = ""
    op_number: str = ""
    observation: str = ""
    action_plan: str = ""
    responsibility: str = ""
    remarks: str = ""
    status: RowStatus = "pending"


class RowUpdate(BaseModel):
    """Replace one editable field of one row."""
    field: str = Field(..., min_length=1, description="Field name, e.g. part_name or status")
    value: str = Field("", description="New value")


class ReorderBody(BaseModel):
    from_index: int = Field(..., ge=0)
    to_index: int = Field(..., ge=0)


class RowsPage(BaseModel):
    rows: List[RowOut]
    total: int = Field(..., description="Rows in the editor before filtering")
    filtered: int = Field(..., description="Rows returned after filtering")
    responsibilities: List[str] = Field(default_factory=list)


class SummaryOut(BaseModel):
    total_entries: int
    with_data: int
    with_photos: int
    with_action_plans: int
    with_remarks: int
    completed: int
    pending: int
    unsynced_count: int = 0

    @field_validator("*")
    @classmethod
    def non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("counts cannot be negative")
        return v

    @classmethod
    def from_counts(cls, counts: Dict[str, int], unsynced_count: int = 0) -> "SummaryOut":
        return cls(**counts, unsynced_count=unsynced_count)
