from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .row import ROW_TEXT_FIELDS, new_row_id

RowStatus = Literal["pending", "completed"]
PhotoSlotName = Literal["before", "after"]


# ---------- Photo slots ----------
# One field per slot instead of the old photo/photoPreview string pair.


class LocalPhoto(BaseModel):
    """Picked locally, never uploaded (or the upload failed)."""
    kind: Literal["local"] = "local"
    blob_ref: str


class UploadingPhoto(BaseModel):
    """Upload in flight; only the local preview is available."""
    kind: Literal["uploading"] = "uploading"
    blob_ref: str


class RemotePhoto(BaseModel):
    """Stored remotely; `blob_ref` keeps the local preview when we still have it."""
    kind: Literal["remote"] = "remote"
    url: str
    blob_ref: Optional[str] = None


PhotoSlot = Annotated[
    Union[LocalPhoto, UploadingPhoto, RemotePhoto],
    Field(discriminator="kind"),
]


def photo_url(photo: Optional[PhotoSlot]) -> Optional[str]:
    """Durable URL of a slot: only set once the upload has completed."""
    if isinstance(photo, RemotePhoto):
        return photo.url or None
    return None


def photo_preview(photo: Optional[PhotoSlot]) -> str:
    if photo is None:
        return ""
    if photo.blob_ref:
        return photo.blob_ref
    return getattr(photo, "url", "") or ""


# ---------- Rows ----------


class ObservationRow(BaseModel):
    """
    Domain model for one observation record (an `entries` row once synced).
    """
    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=new_row_id)

    srno: str = ""
    part_name: str = ""
    op_number: str = ""
    observation: str = ""
    action_plan: str = ""
    responsibility: str = ""
    remarks: str = ""

    before_photo: Optional[PhotoSlot] = None
    after_photo: Optional[PhotoSlot] = None

    status: RowStatus = "pending"

    @property
    def before_photo_url(self) -> Optional[str]:
        return photo_url(self.before_photo)

    @property
    def after_photo_url(self) -> Optional[str]:
        return photo_url(self.after_photo)

    @property
    def before_photo_preview(self) -> str:
        return photo_preview(self.before_photo)

    @property
    def after_photo_preview(self) -> str:
        return photo_preview(self.after_photo)

    def is_meaningful(self) -> bool:
        """
        A row is worth persisting if any text field (op_number excluded)
        or any durable photo URL is non-empty.
        """
        for name in ROW_TEXT_FIELDS:
            if name == "op_number":
                continue
            if (getattr(self, name) or "").strip():
                return True
        return bool(self.before_photo_url or self.after_photo_url)


class CachedRow(ObservationRow):
    """
    A row as stored in the local cache.
    """
    last_modified: str = ""
    project_id: Optional[str] = None


class CacheEnvelope(BaseModel):
    """
    The single JSON document written by the local cache.
    Keys are camelCase on disk: {entries, projectId, lastUpdated}.
    """
    model_config = ConfigDict(populate_by_name=True)

    entries: list[CachedRow] = Field(default_factory=list)
    project_id: Optional[str] = Field(default=None, alias="projectId")
    last_updated: Optional[str] = Field(default=None, alias="lastUpdated")


# ---------- Projects ----------


class Project(BaseModel):
    """
    Domain model for a `projects` row. The password hash never leaves the
    server; use `public()` for API responses.
    """
    id: str
    name: str
    description: str = ""
    password_hash: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def public(self) -> dict:
        return self.model_dump(exclude={"password_hash"})
