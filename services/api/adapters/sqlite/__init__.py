# services/api/adapters/sqlite/__init__.py
from __future__ import annotations

import logging
import os
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    delete,
    event,
    insert,
    select,
    update,
    text,
)
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from fastapi.concurrency import run_in_threadpool
from datetime import datetime
from uuid import uuid4

from adapters.base import RemoteStoreError

logger = logging.getLogger(__name__)

# ---- Engine (SQLite) with WAL & pragmas -------------------------------------

def _ensure_dir(path: str):
    d = os.path.dirname(path)
    if d and not os.path.isdir(d):
        os.makedirs(d, exist_ok=True)

def make_engine(db_url: str) -> Engine:
    # Create data dir if sqlite file
    if db_url.startswith("sqlite:///"):
        file_path = db_url.replace("sqlite:///", "", 1)
        _ensure_dir(file_path)

    # connections are used from threadpool workers
    connect_args = {"check_same_thread": False} if db_url.startswith("sqlite") else {}
    engine = create_engine(db_url, future=True, pool_pre_ping=True, connect_args=connect_args)

    # Apply pragmas per-connection
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):  # type: ignore
        if isinstance(dbapi_connection, sqlite3.Connection):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.execute("PRAGMA synchronous=NORMAL;")
            cursor.execute("PRAGMA foreign_keys=ON;")
            cursor.close()

    return engine

# ---- Schema via SQLAlchemy Core ---------------------------------------------

metadata = MetaData()

projects = Table(
    "projects",
    metadata,
    Column("id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("description", Text, nullable=False, default=""),
    Column("password_hash", String, nullable=False),
    Column("created_at", DateTime, nullable=False, default=datetime.utcnow),
    Column("updated_at", DateTime, nullable=False, default=datetime.utcnow),
)

entries = Table(
    "entries",
    metadata,
    Column("id", String, primary_key=True),
    Column("project_id", String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
    Column("srno", String, nullable=False, default=""),
    Column("part_name", String, nullable=False, default=""),
    Column("op_number", String, nullable=False, default=""),
    Column("observation", Text, nullable=False, default=""),
    Column("before_photo_url", Text, nullable=True),
    Column("after_photo_url", Text, nullable=True),
    Column("action_plan", Text, nullable=False, default=""),
    Column("responsibility", String, nullable=False, default=""),
    Column("remarks", Text, nullable=False, default=""),
    Column("status", String, nullable=False, default="pending"),
    Column("created_at", DateTime, nullable=False, default=datetime.utcnow),
)

Index("idx_entries_project", entries.c.project_id)
Index("idx_entries_created", entries.c.project_id, entries.c.created_at)

# Columns an upsert may overwrite on conflict (id, project_id and created_at stay as first written)
_UPDATE_COLUMNS = (
    "srno",
    "part_name",
    "op_number",
    "observation",
    "before_photo_url",
    "after_photo_url",
    "action_plan",
    "responsibility",
    "remarks",
    "status",
)


def _iso(v: Any) -> Any:
    return v.isoformat() if isinstance(v, datetime) else v


def _row_dict(row) -> Dict[str, Any]:
    return {k: _iso(v) for k, v in dict(row).items()}

# ---- Adapter implementation --------------------------------------------------

@dataclass(frozen=True)
class SqliteRemoteStore:
    """
    Remote store backed by a local SQLite file.

    Each operation is a plain synchronous method (`_select_rows`, ...); the
    async RemoteStore methods run it in the threadpool so database and disk
    work never blocks the event loop.

    Blobs are written under `blob_dir` and addressed as
    `<public_base_url>/<path>`; main.py serves that directory.
    """
    engine: Engine
    blob_dir: Path
    public_base_url: str

    @classmethod
    def from_url(
        cls,
        db_url: str = "sqlite:///data/observations.db",
        blob_dir: str = "data/blobs",
        public_base_url: str = "http://localhost:8000/blobs",
    ) -> "SqliteRemoteStore":
        eng = make_engine(db_url)
        metadata.create_all(eng)
        bdir = Path(blob_dir)
        bdir.mkdir(parents=True, exist_ok=True)
        return cls(engine=eng, blob_dir=bdir, public_base_url=public_base_url.rstrip("/"))

    # Entries
    def _select_rows(self, project_id: str) -> List[Dict[str, Any]]:
        try:
            with self.engine.begin() as conn:
                q = (
                    select(entries)
                    .where(entries.c.project_id == project_id)
                    .order_by(entries.c.created_at.desc(), text("rowid DESC"))
                )
                rows = conn.execute(q).mappings().all()
                return [_row_dict(r) for r in rows]
        except SQLAlchemyError as e:
            logger.error(f"select_rows failed for project {project_id}: {e}")
            raise RemoteStoreError(f"select failed: {e}") from e

    def _upsert_rows(self, rows: List[Dict[str, Any]], on_conflict: str) -> None:
        if not rows:
            return
        if on_conflict != "id":
            raise RemoteStoreError(f"Unsupported conflict key: {on_conflict}", status_code=400)

        now = datetime.utcnow()
        values = []
        for r in rows:
            v = {k: r.get(k) for k in ("id", "project_id") + _UPDATE_COLUMNS}
            v["created_at"] = now
            values.append(v)

        stmt = sqlite_insert(entries).values(values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[entries.c.id],
            set_={name: stmt.excluded[name] for name in _UPDATE_COLUMNS},
            # an id that already belongs to another project is left untouched
            where=entries.c.project_id == stmt.excluded.project_id,
        )
        try:
            # single transaction: all rows or none
            with self.engine.begin() as conn:
                conn.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(f"upsert_rows failed ({len(rows)} rows): {e}")
            raise RemoteStoreError(f"upsert failed: {e}") from e

    def _delete_row(self, row_id: str) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(delete(entries).where(entries.c.id == row_id))
        except SQLAlchemyError as e:
            raise RemoteStoreError(f"delete failed: {e}") from e

    async def select_rows(self, project_id: str) -> List[Dict[str, Any]]:
        return await run_in_threadpool(self._select_rows, project_id)

    async def upsert_rows(self, rows: List[Dict[str, Any]], on_conflict: str = "id") -> None:
        await run_in_threadpool(self._upsert_rows, rows, on_conflict)

    async def delete_row(self, row_id: str) -> None:
        await run_in_threadpool(self._delete_row, row_id)

    # Blobs
    def _upload_blob(self, data: bytes, path: str) -> str:
        rel = Path(path)
        if rel.is_absolute() or ".." in rel.parts:
            raise RemoteStoreError(f"Invalid blob path: {path}", status_code=400)
        target = self.blob_dir / rel
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            logger.error(f"upload_blob failed for {path}: {e}")
            raise RemoteStoreError(f"upload failed: {e}") from e
        return f"{self.public_base_url}/{rel.as_posix()}"

    async def upload_blob(self, data: bytes, path: str, content_type: Optional[str] = None) -> str:
        return await run_in_threadpool(self._upload_blob, data, path)

    # Projects
    def _create_project(self, name: str, description: str, password_hash: str) -> Dict[str, Any]:
        project_id = str(uuid4())
        now = datetime.utcnow()
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    insert(projects).values(
                        id=project_id,
                        name=name,
                        description=description or "",
                        password_hash=password_hash,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except SQLAlchemyError as e:
            raise RemoteStoreError(f"create project failed: {e}") from e
        return {
            "id": project_id,
            "name": name,
            "description": description or "",
            "password_hash": password_hash,
            "created_at": now.isoformat(),
            "updated_at": now.isoformat(),
        }

    def _list_projects(self) -> List[Dict[str, Any]]:
        try:
            with self.engine.begin() as conn:
                rows = conn.execute(
                    select(projects).order_by(projects.c.created_at.desc())
                ).mappings().all()
                return [_row_dict(r) for r in rows]
        except SQLAlchemyError as e:
            raise RemoteStoreError(f"list projects failed: {e}") from e

    def _get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        try:
            with self.engine.begin() as conn:
                row = conn.execute(
                    select(projects).where(projects.c.id == project_id)
                ).mappings().first()
                return _row_dict(row) if row else None
        except SQLAlchemyError as e:
            raise RemoteStoreError(f"get project failed: {e}") from e

    def _update_project(self, project_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        allowed = {k: v for k, v in updates.items() if k in {"name", "description", "password_hash"}}
        allowed["updated_at"] = datetime.utcnow()
        try:
            with self.engine.begin() as conn:
                res = conn.execute(
                    update(projects).where(projects.c.id == project_id).values(**allowed)
                )
                if res.rowcount == 0:
                    raise RemoteStoreError("Project not found", status_code=404)
                row = conn.execute(
                    select(projects).where(projects.c.id == project_id)
                ).mappings().first()
                return _row_dict(row)
        except SQLAlchemyError as e:
            raise RemoteStoreError(f"update project failed: {e}") from e

    def _delete_project(self, project_id: str) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(delete(entries).where(entries.c.project_id == project_id))
                conn.execute(delete(projects).where(projects.c.id == project_id))
        except SQLAlchemyError as e:
            raise RemoteStoreError(f"delete project failed: {e}") from e

    async def create_project(self, name: str, description: str, password_hash: str) -> Dict[str, Any]:
        return await run_in_threadpool(self._create_project, name, description, password_hash)

    async def list_projects(self) -> List[Dict[str, Any]]:
        return await run_in_threadpool(self._list_projects)

    async def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        return await run_in_threadpool(self._get_project, project_id)

    async def update_project(self, project_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        return await run_in_threadpool(self._update_project, project_id, updates)

    async def delete_project(self, project_id: str) -> None:
        await run_in_threadpool(self._delete_project, project_id)

    # Lifecycle
    def _ping(self) -> None:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise RemoteStoreError(f"database unreachable: {e}", status_code=503) from e

    async def ping(self) -> None:
        await run_in_threadpool(self._ping)

    async def aclose(self) -> None:
        self.engine.dispose()
