# services/api/core/local_cache.py
"""
Durable local cache of unsynced rows.

One JSON document per client (the analogue of a browser's local storage):

    {"entries": [...CachedRow], "projectId": "...", "lastUpdated": "..."}

The document holds exactly one project scope at a time and is overwritten
wholesale on every save. Nothing here ever raises into the caller: disk and
serialization failures are logged and treated as a cache miss, so the app
degrades to remote-only behaviour.

NOTE: load-mutate-save helpers are not atomic across processes. Only one
session is expected to own a client's cache at a time (last write wins).
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Union

from pydantic import ValidationError

from models import CacheEnvelope, CachedRow, ObservationRow
from models.converters import cached_from_row, utc_iso

logger = logging.getLogger(__name__)

CACHE_FILE_NAME = "entries.json"
CURRENT_PROJECT_FILE_NAME = "current_project.json"


class LocalCache:
    """
    File-backed cache scoped by project id.

    Args:
        cache_dir: directory holding this client's cache files
    """

    def __init__(self, cache_dir: Union[str, Path]):
        self.cache_dir = Path(cache_dir)
        self.cache_file = self.cache_dir / CACHE_FILE_NAME
        self.current_project_file = self.cache_dir / CURRENT_PROJECT_FILE_NAME

    # ---------- file helpers ----------

    def _read_envelope(self) -> Optional[CacheEnvelope]:
        """Read and parse the cache document; None when absent or unreadable."""
        try:
            with open(self.cache_file, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Local cache unreadable ({self.cache_file}): {e}")
            return None

        try:
            return CacheEnvelope.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Local cache has invalid shape, ignoring: {e}")
            return None

    def _write_json(self, filepath: Path, payload) -> bool:
        """Write JSON atomically (temp file + rename). Returns False on failure."""
        try:
            filepath.parent.mkdir(parents=True, exist_ok=True)
            tmp_file = filepath.with_suffix(".tmp")
            with open(tmp_file, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            tmp_file.replace(filepath)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.exception(f"Error saving to local cache ({filepath}): {e}")
            return False

    # ---------- public API ----------

    def save(self, rows: Iterable[ObservationRow], project_id: str) -> bool:
        """
        Overwrite the stored set with `rows` for `project_id`.

        Plain rows are stamped with a fresh last_modified; CachedRow inputs
        keep their own stamp. Returns False if the write failed.
        """
        now = utc_iso()
        cached: List[CachedRow] = []
        for row in rows:
            stamp = row.last_modified if isinstance(row, CachedRow) and row.last_modified else now
            cached.append(cached_from_row(row, project_id, last_modified=stamp))

        envelope = CacheEnvelope(entries=cached, project_id=project_id, last_updated=now)
        return self._write_json(self.cache_file, envelope.model_dump(mode="json", by_alias=True))

    def load(self, project_id: str) -> List[CachedRow]:
        """
        Return the cached rows for `project_id`, or [] when nothing is stored
        or the stored scope belongs to another project.
        """
        envelope = self._read_envelope()
        if envelope is None or envelope.project_id != project_id:
            return []
        return list(envelope.entries)

    def upsert_one(self, row: ObservationRow, project_id: str) -> bool:
        existing = [r for r in self.load(project_id) if r.id != row.id]
        existing.append(cached_from_row(row, project_id))
        return self.save(existing, project_id)

    def remove_one(self, row_id: str, project_id: str) -> bool:
        """
        Drop one cached row. Missing rows (or a missing cache) are fine.
        """
        existing = self.load(project_id)
        remaining = [r for r in existing if r.id != row_id]
        if len(remaining) == len(existing):
            return True
        return self.save(remaining, project_id)

    def clear(self, project_id: str) -> bool:
        return self.save([], project_id)

    def unsynced_count(self, project_id: str) -> int:
        return len(self.load(project_id))

    def has_unsynced(self, project_id: str) -> bool:
        return self.unsynced_count(project_id) > 0

    # ---------- last active project ----------

    def set_current_project(self, project_id: Optional[str]) -> None:
        if project_id is None:
            try:
                self.current_project_file.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not forget current project: {e}")
            return
        self._write_json(self.current_project_file, {"projectId": project_id})

    def get_current_project(self) -> Optional[str]:
        try:
            with open(self.current_project_file, "r", encoding="utf-8") as f:
                return (json.load(f) or {}).get("projectId")
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError, AttributeError) as e:
            logger.warning(f"Error loading current project from local cache: {e}")
            return None
