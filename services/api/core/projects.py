# services/api/core/projects.py
"""
Project registry: password-gated project CRUD on top of the remote store.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi.concurrency import run_in_threadpool

from adapters.base import RemoteStore
from core.security import check_project_password, get_password_hash, needs_rehash
from models import Project
from models.converters import project_from_remote

logger = logging.getLogger(__name__)


class ProjectNotFound(LookupError):
    pass


class InvalidPassword(Exception):
    pass


class ProjectRegistry:
    def __init__(
        self,
        remote: RemoteStore,
        *,
        universal_password: Optional[str] = None,
        bcrypt_rounds: int = 12,
    ):
        self.remote = remote
        self.universal_password = universal_password
        self.bcrypt_rounds = bcrypt_rounds

    # hashing and checks run in the threadpool
    async def _hash(self, password: str) -> str:
        return await run_in_threadpool(get_password_hash, password, self.bcrypt_rounds)

    async def _check(self, password: str, password_hash: str) -> bool:
        return await run_in_threadpool(
            check_project_password, password, password_hash, self.universal_password
        )

    async def create(self, name: str, description: str, password: str) -> Project:
        raw = await self.remote.create_project(
            name.strip(),
            (description or "").strip(),
            await self._hash(password),
        )
        project = project_from_remote(raw)
        logger.info(f"Created project {project.id} ({project.name})")
        return project

    async def list(self) -> List[Project]:
        return [project_from_remote(p) for p in await self.remote.list_projects()]

    async def get(self, project_id: str) -> Project:
        raw = await self.remote.get_project(project_id)
        if not raw:
            raise ProjectNotFound(project_id)
        return project_from_remote(raw)

    async def verify(self, project_id: str, password: str) -> Project:
        """
        Return the project if `password` opens it.

        Raises:
            ProjectNotFound: unknown id
            InvalidPassword: wrong password (no lockout)
        """
        project = await self.get(project_id)
        if not await self._check(password, project.password_hash):
            logger.warning(f"Wrong password for project {project_id}")
            raise InvalidPassword(project_id)

        # legacy hashes are upgraded once the project's own password is seen
        if needs_rehash(project.password_hash) and password != self.universal_password:
            await self.remote.update_project(
                project_id,
                {"password_hash": await self._hash(password)},
            )
            logger.info(f"Upgraded password hash for project {project_id}")
        return project

    async def change_password(self, project_id: str, current_password: str, new_password: str) -> Project:
        await self.verify(project_id, current_password)
        raw = await self.remote.update_project(
            project_id,
            {"password_hash": await self._hash(new_password)},
        )
        logger.info(f"Password changed for project {project_id}")
        return project_from_remote(raw)

    async def delete(self, project_id: str, password: str) -> None:
        await self.verify(project_id, password)
        await self.remote.delete_project(project_id)
        logger.info(f"Deleted project {project_id}")
