"""
Shared fixtures: an in-memory remote store and engine wiring.
"""
import asyncio
import os
import sys
from typing import Any, Dict, List, Optional
from uuid import uuid4

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from adapters.base import RemoteStoreError
from core.local_cache import LocalCache
from core.row_editor import RowEditor
from core.sync_engine import SyncContext, SyncEngine


class FakeRemoteStore:
    """
    In-memory RemoteStore. Records every call so tests can assert on
    network traffic; failures and stalls are switched on per test.
    """

    def __init__(self):
        self.entries: Dict[str, Dict[str, Any]] = {}
        self.projects: Dict[str, Dict[str, Any]] = {}
        self.blobs: Dict[str, bytes] = {}

        self.select_calls: List[str] = []
        self.upsert_calls: List[List[Dict[str, Any]]] = []
        self.delete_calls: List[str] = []
        self.upload_calls: List[str] = []

        self.fail_select = False
        self.fail_upsert = False
        self.fail_upload = False
        # when set, upsert_rows blocks until the event is set
        self.upsert_gate: Optional[asyncio.Event] = None

        self._seq = 0

    def _next_seq(self) -> int:
        self._seq += 1
        return self._seq

    async def select_rows(self, project_id: str) -> List[Dict[str, Any]]:
        self.select_calls.append(project_id)
        if self.fail_select:
            raise RemoteStoreError("select failed")
        rows = [e for e in self.entries.values() if e["project_id"] == project_id]
        rows.sort(key=lambda e: e["_seq"], reverse=True)
        return [{k: v for k, v in e.items() if k != "_seq"} for e in rows]

    async def upsert_rows(self, rows: List[Dict[str, Any]], on_conflict: str = "id") -> None:
        self.upsert_calls.append([dict(r) for r in rows])
        if self.upsert_gate is not None:
            await self.upsert_gate.wait()
        if self.fail_upsert:
            raise RemoteStoreError("upsert failed")
        for r in rows:
            existing = self.entries.get(r["id"])
            seq = existing["_seq"] if existing else self._next_seq()
            self.entries[r["id"]] = {**r, "_seq": seq}

    async def delete_row(self, row_id: str) -> None:
        self.delete_calls.append(row_id)
        self.entries.pop(row_id, None)

    async def upload_blob(self, data: bytes, path: str, content_type: Optional[str] = None) -> str:
        self.upload_calls.append(path)
        if self.fail_upload:
            raise RemoteStoreError("upload failed")
        self.blobs[path] = data
        return f"https://blobs.test/{path}"

    async def create_project(self, name: str, description: str, password_hash: str) -> Dict[str, Any]:
        pid = str(uuid4())
        row = {
            "id": pid,
            "name": name,
            "description": description,
            "password_hash": password_hash,
            "created_at": "2024-01-01T00:00:00",
            "updated_at": "2024-01-01T00:00:00",
        }
        self.projects[pid] = row
        return dict(row)

    async def list_projects(self) -> List[Dict[str, Any]]:
        return [dict(p) for p in reversed(list(self.projects.values()))]

    async def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        p = self.projects.get(project_id)
        return dict(p) if p else None

    async def update_project(self, project_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        if project_id not in self.projects:
            raise RemoteStoreError("Project not found", status_code=404)
        self.projects[project_id].update(updates)
        return dict(self.projects[project_id])

    async def delete_project(self, project_id: str) -> None:
        self.projects.pop(project_id, None)
        for rid in [k for k, e in self.entries.items() if e["project_id"] == project_id]:
            del self.entries[rid]

    async def ping(self) -> None:
        return None

    async def aclose(self) -> None:
        return None

    def project_entries(self, project_id: str) -> List[Dict[str, Any]]:
        return [e for e in self.entries.values() if e["project_id"] == project_id]


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def cache(tmp_path):
    return LocalCache(tmp_path / "cache")


@pytest.fixture
def make_engine(remote, cache):
    """
    Build (engine, editor) for a project. Timers default to 0 so the engine
    returns to IDLE as soon as a load finishes.
    """
    created = []

    def _make(project_id: str = "proj-1", load_quiet_period: float = 0, sync_cooldown: float = 0):
        editor = RowEditor()
        ctx = SyncContext(active_project_id=project_id, cache=cache, remote=remote)
        engine = SyncEngine(
            ctx,
            editor,
            load_quiet_period=load_quiet_period,
            sync_cooldown=sync_cooldown,
        )
        created.append(engine)
        return engine, editor

    yield _make

    for engine in created:
        engine.close()
