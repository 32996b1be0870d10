# services/api/core/photos.py
"""
Before/after photo uploads with an optimistic local preview.

    1. write the bytes to the preview dir  -> slot = UploadingPhoto(preview)
    2. upload to the remote store          -> slot = RemotePhoto(url, preview)
       upload failed                       -> slot = LocalPhoto(preview)

The preview is only a display aid; a row counts as having a photo once the
slot holds a RemotePhoto.
"""
from __future__ import annotations

import logging
import mimetypes
import time
from pathlib import Path
from typing import Optional, Union
from uuid import uuid4

from adapters.base import RemoteStoreError
from core.row_editor import RowEditor
from core.sync_engine import SyncContext, SyncResult
from models import LocalPhoto, RemotePhoto, UploadingPhoto

logger = logging.getLogger(__name__)

PHOTO_SLOTS = ("before", "after")


def file_extension(filename: str, default: str = "jpg") -> str:
    name = (filename or "").strip()
    if "." not in name:
        return default
    ext = name.rsplit(".", 1)[1].lower()
    return ext or default


def photo_path(project_id: str, slot: str, filename: str, timestamp_ms: Optional[int] = None) -> str:
    """Remote object key: {projectId}/{before|after}/{timestamp}.{ext}"""
    ts = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    return f"{project_id}/{slot}/{ts}.{file_extension(filename)}"


def guess_content_type(filename: str, declared: Optional[str] = None) -> str:
    if declared:
        return declared
    guessed, _ = mimetypes.guess_type(filename or "")
    return guessed or "application/octet-stream"


def write_preview(
    preview_dir: Union[str, Path],
    project_id: str,
    row_id: str,
    slot: str,
    filename: str,
    data: bytes,
) -> str:
    """
    Store the local preview copy and return its path. If the disk write
    fails, a placeholder reference is returned so the slot still has one.
    """
    target = Path(preview_dir) / project_id / f"{row_id}-{slot}-{uuid4().hex[:8]}.{file_extension(filename)}"
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
    except OSError as e:
        logger.warning(f"Could not write photo preview {target}: {e}")
        return f"preview:{uuid4().hex}"
    return str(target)


async def attach_photo(
    context: SyncContext,
    editor: RowEditor,
    row_id: str,
    slot: str,
    *,
    filename: str,
    data: bytes,
    content_type: Optional[str] = None,
    preview_dir: Union[str, Path] = "data/previews",
) -> SyncResult:
    """
    Attach a photo to one slot of one row, uploading it to the remote store.

    Raises:
        KeyError: unknown row id
        ValueError: unknown slot
    """
    if slot not in PHOTO_SLOTS:
        raise ValueError(f"Unknown photo slot '{slot}'")
    editor.get(row_id)

    pid = context.active_project_id
    if not pid:
        return SyncResult("no_project", "Please select a project first.")

    preview = write_preview(preview_dir, pid, row_id, slot, filename, data)
    editor.set_photo(row_id, slot, UploadingPhoto(blob_ref=preview))

    path = photo_path(pid, slot, filename)
    try:
        url = await context.remote.upload_blob(data, path, guess_content_type(filename, content_type))
    except RemoteStoreError as e:
        logger.error(f"[{pid}] {slot} photo upload for {row_id} failed: {e.detail}")
        _settle(editor, row_id, slot, LocalPhoto(blob_ref=preview))
        return SyncResult(
            "failed",
            f"Failed to upload {slot} photo",
            details={"error": e.detail, "slot": slot},
        )

    if not _settle(editor, row_id, slot, RemotePhoto(url=url, blob_ref=preview)):
        return SyncResult(
            "not_found",
            "Photo uploaded but the row was removed meanwhile",
            details={"url": url, "slot": slot},
        )

    logger.info(f"[{pid}] {slot} photo for {row_id} stored at {path}")
    return SyncResult(
        "saved",
        f"{slot.capitalize()} photo uploaded successfully",
        count=1,
        details={"url": url, "slot": slot},
    )


def _settle(editor: RowEditor, row_id: str, slot: str, photo) -> bool:
    # the row may have been deleted while the upload was in flight
    try:
        editor.set_photo(row_id, slot, photo)
    except KeyError:
        return False
    return True
