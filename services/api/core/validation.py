"""
Validation utilities for the Observation Tracker.
Ensures data integrity and provides clear error messages.
"""
from typing import Iterable, List, Optional

from fastapi import HTTPException

from models import ObservationRow
from models.row import EDITABLE_FIELDS


def meaningful_rows(rows: Iterable[ObservationRow]) -> List[ObservationRow]:
    """
    Keep only rows worth persisting (see ObservationRow.is_meaningful).
    Order is preserved.
    """
    return [r for r in rows if r.is_meaningful()]


def validate_field_name(field: str) -> str:
    """
    Ensure `field` is a user-editable row column.

    Photo slots are not editable through this path; they go through the
    upload flow.

    Raises:
        HTTPException: 400 if the field is unknown or read-only
    """
    name = (field or "").strip()
    if name not in EDITABLE_FIELDS:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown or read-only field '{field}'. Editable: {', '.join(EDITABLE_FIELDS)}"
        )
    return name


def validate_filter(value: Optional[str], allowed: Iterable[str], name: str) -> str:
    """
    Normalize an optional filter value; "all" (or empty) disables the filter.

    Raises:
        HTTPException: 400 if `value` is not "all" and not in `allowed`
    """
    v = (value or "all").strip()
    if v == "all":
        return v
    if v not in allowed:
        raise HTTPException(
            status_code=400,
            detail=f"{name} must be 'all' or one of {sorted(allowed)}, got '{value}'"
        )
    return v


def require_password(password: Optional[str]) -> str:
    """
    Passwords are mandatory for creating, opening and deleting projects.

    Raises:
        HTTPException: 400 if the password is missing or blank
    """
    if password is None or not password.strip():
        raise HTTPException(status_code=400, detail="Password is required")
    return password


def validate_reorder(from_index: int, to_index: int, length: int) -> None:
    """
    Both indices must address an existing row.

    Raises:
        HTTPException: 400 if either index is out of range
    """
    for name, idx in (("from_index", from_index), ("to_index", to_index)):
        if not (0 <= idx < length):
            raise HTTPException(
                status_code=400,
                detail=f"{name} must be in range [0, {length - 1}], got {idx}"
            )


# engine outcome -> HTTP status for outcomes that are errors, not notices
_NOTICE_ERRORS = {
    "in_progress": 409,
    "failed": 502,
    "not_found": 404,
    "no_data": 400,
    "no_project": 400,
}


def raise_for_notice(result) -> None:
    """
    Turn an error-class SyncResult into an HTTPException.

    Notices such as "nothing_to_sync" or "no_valid_data" are returned to
    the client as-is.

    Raises:
        HTTPException: 409 sync in progress, 502 remote failure,
            404 unknown row, 400 nothing worth saving / no project
    """
    code = _NOTICE_ERRORS.get(result.status)
    if code is None:
        return
    detail = {"status": result.status, "message": result.message}
    if "error" in result.details:
        detail["error"] = result.details["error"]
    raise HTTPException(status_code=code, detail=detail)
