# services/api/core/row_editor.py
"""
In-memory, ordered set of editable observation rows for one session.

The editor is the single source of truth for what the client displays.
It never talks to the remote store; the sync engine subscribes to change
notifications and decides what to mirror into the local cache.
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Optional

from models import ObservationRow, PhotoSlot
from models.row import EDITABLE_FIELDS, SEARCHABLE_FIELDS

logger = logging.getLogger(__name__)

ChangeListener = Callable[[List[ObservationRow]], None]


def matches(
    row: ObservationRow,
    search_term: str = "",
    status_filter: str = "all",
    responsibility_filter: str = "all",
) -> bool:
    """
    Free-text term is a case-insensitive substring of any searchable field,
    AND status matches, AND responsibility matches exactly.
    """
    term = (search_term or "").lower()
    if term:
        if not any(term in (getattr(row, f) or "").lower() for f in SEARCHABLE_FIELDS):
            return False
    if status_filter != "all" and row.status != status_filter:
        return False
    if responsibility_filter != "all" and row.responsibility != responsibility_filter:
        return False
    return True


class RowEditor:
    def __init__(self, rows: Optional[Iterable[ObservationRow]] = None):
        self._rows: List[ObservationRow] = list(rows or [])
        self._listeners: List[ChangeListener] = []
        self._ensure_placeholder()

    # ---------- observation ----------

    def subscribe(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        snapshot = self.rows
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                # a broken listener must not break editing
                logger.exception("Row change listener failed")

    def _ensure_placeholder(self) -> None:
        if not self._rows:
            self._rows.append(ObservationRow())

    # ---------- reads ----------

    @property
    def rows(self) -> List[ObservationRow]:
        return list(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def get(self, row_id: str) -> ObservationRow:
        for r in self._rows:
            if r.id == row_id:
                return r
        raise KeyError(row_id)

    def index_of(self, row_id: str) -> int:
        for i, r in enumerate(self._rows):
            if r.id == row_id:
                return i
        raise KeyError(row_id)

    def meaningful(self) -> List[ObservationRow]:
        return [r for r in self._rows if r.is_meaningful()]

    def filtered(
        self,
        search_term: str = "",
        status_filter: str = "all",
        responsibility_filter: str = "all",
    ) -> List[ObservationRow]:
        return [
            r for r in self._rows
            if matches(r, search_term, status_filter, responsibility_filter)
        ]

    def responsibilities(self) -> List[str]:
        """Distinct non-empty responsibilities, first-seen order (filter dropdown)."""
        seen: Dict[str, None] = {}
        for r in self._rows:
            if r.responsibility:
                seen.setdefault(r.responsibility, None)
        return list(seen)

    def summary(self) -> Dict[str, int]:
        rows = self._rows
        completed = sum(1 for r in rows if r.status == "completed")
        return {
            "total_entries": len(rows),
            "with_data": sum(1 for r in rows if r.is_meaningful()),
            "with_photos": sum(1 for r in rows if r.before_photo_url or r.after_photo_url),
            "with_action_plans": sum(1 for r in rows if r.action_plan.strip()),
            "with_remarks": sum(1 for r in rows if r.remarks.strip()),
            "completed": completed,
            "pending": len(rows) - completed,
        }

    # ---------- mutations ----------

    def add(self, row: Optional[ObservationRow] = None) -> ObservationRow:
        new_row = row or ObservationRow()
        if any(r.id == new_row.id for r in self._rows):
            raise ValueError(f"Duplicate row id {new_row.id}")
        self._rows.append(new_row)
        self._notify()
        return new_row

    def extend(self, rows: Iterable[ObservationRow]) -> int:
        """Append many rows with a single change notification."""
        incoming = list(rows)
        if not incoming:
            return 0
        self._rows.extend(incoming)
        self._notify()
        return len(incoming)

    def update(self, row_id: str, field: str, value: str) -> ObservationRow:
        if field not in EDITABLE_FIELDS:
            raise ValueError(f"Field '{field}' is not editable")
        idx = self.index_of(row_id)
        updated = self._rows[idx].model_copy(update={field: value})
        # model_copy skips validation; re-validate the single changed value
        self._rows[idx] = ObservationRow.model_validate(updated.model_dump())
        self._notify()
        return self._rows[idx]

    def set_photo(self, row_id: str, slot: str, photo: Optional[PhotoSlot]) -> ObservationRow:
        if slot not in ("before", "after"):
            raise ValueError(f"Unknown photo slot '{slot}'")
        idx = self.index_of(row_id)
        data = self._rows[idx].model_dump()
        data[f"{slot}_photo"] = photo.model_dump() if photo is not None else None
        self._rows[idx] = ObservationRow.model_validate(data)
        self._notify()
        return self._rows[idx]

    def delete(self, row_id: str) -> ObservationRow:
        idx = self.index_of(row_id)
        removed = self._rows.pop(idx)
        self._ensure_placeholder()
        self._notify()
        return removed

    def reorder(self, from_index: int, to_index: int) -> None:
        """
        Move one row to a new position. Order lives only in this session.
        """
        n = len(self._rows)
        if not (0 <= from_index < n) or not (0 <= to_index < n):
            raise IndexError(f"reorder indices out of range: {from_index} -> {to_index} (n={n})")
        if from_index == to_index:
            return
        row = self._rows.pop(from_index)
        self._rows.insert(to_index, row)
        self._notify()

    def replace_all(self, rows: Iterable[ObservationRow]) -> None:
        self._rows = list(rows)
        self._ensure_placeholder()
        self._notify()

    def clear(self) -> None:
        self._rows = []
        self._ensure_placeholder()
        self._notify()
