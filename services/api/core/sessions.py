# services/api/core/sessions.py
"""
Editing sessions: one per open client tab.

A session binds a verified project to its own RowEditor and SyncEngine.
Sessions of the same client share that client's cache directory, so two
tabs on one client behave like two browser tabs on one origin (last
write wins).
"""
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple
from uuid import uuid4

from adapters.base import RemoteStore
from core.local_cache import LocalCache
from core.row_editor import RowEditor
from core.sync_engine import SyncContext, SyncEngine, SyncResult
from models import Project

logger = logging.getLogger(__name__)

_CLIENT_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


@dataclass
class Session:
    id: str
    project: Project
    client_id: str
    context: SyncContext
    editor: RowEditor
    engine: SyncEngine
    created_at: float = field(default_factory=time.time)


class SessionManager:
    def __init__(
        self,
        remote: RemoteStore,
        *,
        cache_dir: str = "data/cache",
        load_quiet_period: float = 2.0,
        sync_cooldown: float = 5.0,
    ):
        self.remote = remote
        self.cache_dir = Path(cache_dir)
        self.load_quiet_period = load_quiet_period
        self.sync_cooldown = sync_cooldown
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def cache_for(self, client_id: str) -> LocalCache:
        if not _CLIENT_ID_RE.match(client_id or ""):
            raise ValueError("client_id may only contain letters, digits, '-' and '_'")
        return LocalCache(self.cache_dir / client_id)

    async def open(self, project: Project, client_id: str = "default") -> Tuple[Session, SyncResult]:
        """
        Create a session for an already-verified project and load its rows.
        A failed initial load still yields a usable session.
        """
        cache = self.cache_for(client_id)
        context = SyncContext(active_project_id=project.id, cache=cache, remote=self.remote)
        editor = RowEditor()
        engine = SyncEngine(
            context,
            editor,
            load_quiet_period=self.load_quiet_period,
            sync_cooldown=self.sync_cooldown,
        )
        session = Session(
            id=uuid4().hex,
            project=project,
            client_id=client_id,
            context=context,
            editor=editor,
            engine=engine,
        )
        self._sessions[session.id] = session

        result = await engine.activate()
        logger.info(f"Session {session.id} opened for project {project.id} (client {client_id}): {result.status}")
        return session, result

    def get(self, session_id: str) -> Session:
        return self._sessions[session_id]

    def for_project(self, project_id: str) -> List[Session]:
        return [s for s in self._sessions.values() if s.project.id == project_id]

    def close(self, session_id: str) -> Session:
        session = self._sessions.pop(session_id)
        session.engine.close()
        logger.info(f"Session {session_id} closed")
        return session

    def close_project(self, project_id: str) -> int:
        closed = [s.id for s in self.for_project(project_id)]
        for sid in closed:
            self.close(sid)
        return len(closed)

    def close_all(self) -> None:
        for sid in list(self._sessions):
            self.close(sid)
