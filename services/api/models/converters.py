from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from . import CachedRow, ObservationRow, Project, RemotePhoto


def utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _text(v: Any) -> str:
    if v is None:
        return ""
    return str(v)


def _status(v: Any) -> str:
    s = _text(v).strip().lower()
    return s if s in ("pending", "completed") else "pending"


def row_to_remote(row: ObservationRow, project_id: str) -> Dict[str, Any]:
    """
    Map a row to the `entries` upsert shape.

    The row id is kept as the conflict key. Text columns default to "" and
    never to None; only the photo URLs may be null.
    """
    return {
        "id": row.id,
        "project_id": project_id,
        "srno": row.srno or "",
        "part_name": row.part_name or "",
        "op_number": row.op_number or "",
        "observation": row.observation or "",
        "before_photo_url": row.before_photo_url,
        "after_photo_url": row.after_photo_url,
        "action_plan": row.action_plan or "",
        "responsibility": row.responsibility or "",
        "remarks": row.remarks or "",
        "status": row.status or "pending",
    }


def row_from_remote(entry: Dict[str, Any]) -> ObservationRow:
    """
    Convert a raw `entries` dict into a row. Photo URLs become RemotePhoto
    slots whose preview is the URL itself.
    """
    before = entry.get("before_photo_url") or None
    after = entry.get("after_photo_url") or None
    return ObservationRow(
        id=_text(entry.get("id")),
        srno=_text(entry.get("srno")),
        part_name=_text(entry.get("part_name")),
        op_number=_text(entry.get("op_number")),
        observation=_text(entry.get("observation")),
        action_plan=_text(entry.get("action_plan")),
        responsibility=_text(entry.get("responsibility")),
        remarks=_text(entry.get("remarks")),
        before_photo=RemotePhoto(url=before) if before else None,
        after_photo=RemotePhoto(url=after) if after else None,
        status=_status(entry.get("status")),
    )


def cached_from_row(
    row: ObservationRow,
    project_id: str,
    last_modified: Optional[str] = None,
) -> CachedRow:
    return CachedRow(
        **row.model_dump(exclude={"last_modified", "project_id"}),
        last_modified=last_modified or utc_iso(),
        project_id=project_id,
    )


def row_from_cached(cached: CachedRow) -> ObservationRow:
    return ObservationRow(**cached.model_dump(exclude={"last_modified", "project_id"}))


def project_from_remote(row: Dict[str, Any]) -> Project:
    return Project(
        id=_text(row.get("id")),
        name=_text(row.get("name")),
        description=_text(row.get("description")),
        password_hash=_text(row.get("password_hash")),
        created_at=_text(row.get("created_at")) or None,
        updated_at=_text(row.get("updated_at")) or None,
    )
