# services/api/core/sync_engine.py
"""
Local-first synchronization engine.

Reconciles the session's RowEditor, its LocalCache and the RemoteStore.

State machine:

    IDLE ──activate/reload──▶ LOADING_FROM_REMOTE ──(quiet period)──▶ IDLE
    IDLE ──sync()──▶ SYNCING_TO_REMOTE ──ok──▶ SYNC_COOLDOWN ──(cooldown)──▶ IDLE
                                       └─fail─▶ IDLE

Only IDLE lets row changes reach the local cache. Rows loaded from the
remote store keep propagating for a moment after a load, so the return to
IDLE is delayed by a timer instead of happening when the load returns.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from pydantic import ValidationError

from adapters.base import RemoteStore, RemoteStoreError
from core.local_cache import LocalCache
from core.row_editor import RowEditor
from core.validation import meaningful_rows
from models import ObservationRow
from models.converters import row_from_cached, row_from_remote, row_to_remote

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    IDLE = "idle"
    LOADING_FROM_REMOTE = "loading_from_remote"
    SYNCING_TO_REMOTE = "syncing_to_remote"
    SYNC_COOLDOWN = "sync_cooldown"


@dataclass
class SyncContext:
    """Everything an engine operation needs; passed in, never looked up globally."""
    active_project_id: Optional[str]
    cache: LocalCache
    remote: RemoteStore


@dataclass
class SyncResult:
    """
    Outcome of an engine operation, shaped as a user-facing notice.

    status values:
      loaded | synced | saved | nothing_to_sync | no_valid_data | no_data |
      in_progress | not_found | no_project | failed
    """
    status: str
    message: str
    count: int = 0
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status in ("loaded", "synced", "saved", "nothing_to_sync")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "ok": self.ok,
            "message": self.message,
            "count": self.count,
            **self.details,
        }


class SyncEngine:
    def __init__(
        self,
        context: SyncContext,
        editor: RowEditor,
        *,
        load_quiet_period: float = 2.0,
        sync_cooldown: float = 5.0,
    ):
        self.context = context
        self.editor = editor
        self.load_quiet_period = load_quiet_period
        self.sync_cooldown = sync_cooldown

        self.state = SyncState.IDLE
        self.unsynced_count = 0
        pid = context.active_project_id
        if pid:
            self.unsynced_count = context.cache.unsynced_count(pid)

        self._idle_timer: Optional[asyncio.TimerHandle] = None
        self._background: Set[asyncio.Task] = set()

        editor.subscribe(self._on_rows_changed)

    # ---------- helpers ----------

    @property
    def project_id(self) -> Optional[str]:
        return self.context.active_project_id

    def _cancel_idle_timer(self) -> None:
        if self._idle_timer is not None:
            self._idle_timer.cancel()
            self._idle_timer = None

    def _return_to_idle(self) -> None:
        self._idle_timer = None
        if self.state in (SyncState.LOADING_FROM_REMOTE, SyncState.SYNC_COOLDOWN):
            logger.debug(f"[{self.project_id}] {self.state.value} -> idle")
            self.state = SyncState.IDLE

    def _schedule_idle(self, delay: float) -> None:
        self._cancel_idle_timer()
        if delay <= 0:
            self._return_to_idle()
            return
        loop = asyncio.get_running_loop()
        self._idle_timer = loop.call_later(delay, self._return_to_idle)

    def status(self) -> Dict[str, Any]:
        return {
            "project_id": self.project_id,
            "state": self.state.value,
            "unsynced_count": self.unsynced_count,
        }

    # ---------- auto-cache ----------

    def _on_rows_changed(self, rows: List[ObservationRow]) -> None:
        """
        Mirror meaningful rows into the local cache.

        The state check happens here, synchronously, before anything else
        can interleave; this is the only writer of the cache during editing.
        """
        pid = self.project_id
        if not pid or self.state is not SyncState.IDLE:
            return

        subset = meaningful_rows(rows)
        cache = self.context.cache
        if not subset:
            cache.clear(pid)
            self.unsynced_count = 0
            return

        if cache.save(subset, pid):
            self.unsynced_count = len(subset)

    # ---------- remote load ----------

    async def activate(self) -> SyncResult:
        """
        Load the project's rows and restore unsynced edits from the cache.
        """
        if not self.project_id:
            return SyncResult("no_project", "Please select a project first.")
        self.context.cache.set_current_project(self.project_id)
        return await self._load(merge_cache=True, window=self.load_quiet_period)

    async def load_from_remote(self) -> SyncResult:
        if not self.project_id:
            return SyncResult("no_project", "Please select a project first.")
        return await self._load(merge_cache=False, window=self.load_quiet_period)

    async def _load(self, *, merge_cache: bool, window: float) -> SyncResult:
        pid = self.project_id
        if self.state is SyncState.SYNCING_TO_REMOTE:
            # only the running sync may end SYNCING_TO_REMOTE
            return SyncResult("in_progress", "Please wait for the current sync to complete.")
        self._cancel_idle_timer()
        # post-sync reloads stay in SYNC_COOLDOWN; both states suppress auto-cache
        if self.state is not SyncState.SYNC_COOLDOWN:
            self.state = SyncState.LOADING_FROM_REMOTE

        try:
            raw = await self.context.remote.select_rows(pid)
            rows = [row_from_remote(e) for e in raw]

            restored = 0
            if merge_cache:
                rows, restored = self._merge_cached(rows)
                self.unsynced_count = self.context.cache.unsynced_count(pid)

            if rows:
                self.editor.replace_all(rows)

            logger.info(f"[{pid}] loaded {len(raw)} rows from remote ({restored} restored from cache)")
            return SyncResult(
                "loaded",
                f"Loaded {len(raw)} entries",
                count=len(rows),
                details={"restored_from_cache": restored},
            )
        except RemoteStoreError as e:
            logger.error(f"[{pid}] loading entries failed: {e.detail}")
            return SyncResult("failed", "Failed to load existing entries", details={"error": e.detail})
        except ValidationError as e:
            logger.error(f"[{pid}] remote returned malformed entries: {e}")
            return SyncResult("failed", "Failed to load existing entries", details={"error": str(e)})
        finally:
            self._schedule_idle(window)

    def _merge_cached(self, remote_rows: List[ObservationRow]):
        cached = self.context.cache.load(self.project_id)
        if not cached:
            return remote_rows, 0

        by_id = {c.id: row_from_cached(c) for c in cached}
        merged = [by_id.pop(r.id, r) for r in remote_rows]
        # cache-only rows were never synced; keep the order they were cached in
        merged.extend(row_from_cached(c) for c in cached if c.id in by_id)
        return merged, len(cached)

    # ---------- explicit sync ----------

    async def sync(self) -> SyncResult:
        """
        Drain the local cache into the remote store with one batched upsert.
        """
        if self.state is SyncState.SYNCING_TO_REMOTE:
            return SyncResult("in_progress", "Please wait for the current sync to complete.")

        pid = self.project_id
        if not pid:
            return SyncResult("no_project", "Please select a project before syncing.")

        cached = self.context.cache.load(pid)
        if not cached:
            return SyncResult("nothing_to_sync", "No unsaved entries found in local cache.")

        to_save = meaningful_rows(cached)
        if not to_save:
            return SyncResult("no_valid_data", "No entries with meaningful data found to save.")

        payload = [row_to_remote(r, pid) for r in to_save]

        self._cancel_idle_timer()
        self.state = SyncState.SYNCING_TO_REMOTE
        try:
            await self.context.remote.upsert_rows(payload, on_conflict="id")
        except RemoteStoreError as e:
            self.state = SyncState.IDLE
            logger.error(f"[{pid}] sync of {len(payload)} entries failed: {e.detail}")
            return SyncResult(
                "failed",
                "Failed to sync entries. Data remains in local cache.",
                details={"error": e.detail},
            )

        self.context.cache.clear(pid)
        self.unsynced_count = 0
        self.state = SyncState.SYNC_COOLDOWN
        logger.info(f"[{pid}] synced {len(payload)} entries, local cache cleared")

        reload = await self._load(merge_cache=False, window=self.sync_cooldown)
        details: Dict[str, Any] = {}
        if not reload.ok:
            details["reload_error"] = reload.details.get("error", reload.message)

        return SyncResult(
            "synced",
            f"Successfully synced {len(payload)} entries",
            count=len(payload),
            details=details,
        )

    # ---------- per-row save ----------

    async def save_row(self, row_id: str) -> SyncResult:
        """
        Upsert one row straight to the remote store, bypassing the cache.
        """
        pid = self.project_id
        if not pid:
            return SyncResult("no_project", "Please select a project before saving.")

        try:
            row = self.editor.get(row_id)
        except KeyError:
            return SyncResult("not_found", f"Row {row_id} not found")

        if not row.is_meaningful():
            return SyncResult("no_data", "Please add some data to this row before saving.")

        try:
            await self.context.remote.upsert_rows([row_to_remote(row, pid)], on_conflict="id")
        except RemoteStoreError as e:
            logger.error(f"[{pid}] saving row {row_id} failed: {e.detail}")
            return SyncResult("failed", "Failed to save this entry. Please try again.", details={"error": e.detail})

        cache = self.context.cache
        was_cached = any(c.id == row_id for c in cache.load(pid))
        cache.remove_one(row_id, pid)
        if was_cached:
            self.unsynced_count = max(0, self.unsynced_count - 1)

        return SyncResult("saved", "Entry saved to database successfully", count=1)

    # ---------- deletes / clear ----------

    async def delete_row(self, row_id: str, *, remote: bool = False) -> SyncResult:
        """
        Remove a row from the editor and (best-effort) from the cache.
        With remote=True the stored entry is deleted as well.
        """
        pid = self.project_id
        try:
            self.editor.delete(row_id)
        except KeyError:
            return SyncResult("not_found", f"Row {row_id} not found")

        if pid:
            cache = self.context.cache
            if any(c.id == row_id for c in cache.load(pid)):
                cache.remove_one(row_id, pid)
                self.unsynced_count = max(0, self.unsynced_count - 1)

        if remote:
            try:
                await self.context.remote.delete_row(row_id)
            except RemoteStoreError as e:
                logger.error(f"[{pid}] remote delete of {row_id} failed: {e.detail}")
                return SyncResult(
                    "failed",
                    "Row removed locally but the stored entry could not be deleted.",
                    details={"error": e.detail},
                )

        return SyncResult("saved", "Entry removed successfully", count=1)

    def clear_all(self) -> None:
        """Reset the editor to one empty row and drop all cached rows."""
        self.editor.clear()
        if self.project_id:
            self.context.cache.clear(self.project_id)
        self.unsynced_count = 0

    # ---------- page unload ----------

    def before_unload(self) -> bool:
        """
        Called when the client is about to go away.

        With unsynced rows, fires a best-effort sync (nobody waits for it)
        and returns True so the client shows its "unsaved changes" prompt.
        """
        if self.unsynced_count <= 0:
            return False

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"[{self.project_id}] no running loop, skipping unload sync")
            return True

        task = loop.create_task(self.sync())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return True

    def close(self) -> None:
        self._cancel_idle_timer()
