# services/api/routers/projects.py
from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from core.projects import InvalidPassword, ProjectNotFound, ProjectRegistry
from core.validation import require_password
from schemas import PasswordChange, PasswordCheck, ProjectCreate, ProjectOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["projects"])


def get_registry() -> ProjectRegistry:
    from main import get_project_registry
    return get_project_registry()


def get_sessions():
    from main import get_session_manager
    return get_session_manager()


async def _verified(registry: ProjectRegistry, project_id: str, password: str):
    require_password(password)
    try:
        return await registry.verify(project_id, password)
    except ProjectNotFound:
        raise HTTPException(status_code=404, detail="Project not found")
    except InvalidPassword:
        raise HTTPException(status_code=401, detail="Invalid password")


@router.post("", response_model=ProjectOut, status_code=status.HTTP_201_CREATED)
async def create_project(body: ProjectCreate, registry: ProjectRegistry = Depends(get_registry)):
    """Create a password-protected project."""
    require_password(body.password)
    project = await registry.create(body.name, body.description, body.password)
    return ProjectOut(**project.public())


@router.get("", response_model=List[ProjectOut])
async def list_projects(registry: ProjectRegistry = Depends(get_registry)):
    return [ProjectOut(**p.public()) for p in await registry.list()]


@router.get("/{project_id}", response_model=ProjectOut)
async def get_project(project_id: str, registry: ProjectRegistry = Depends(get_registry)):
    try:
        project = await registry.get(project_id)
    except ProjectNotFound:
        raise HTTPException(status_code=404, detail="Project not found")
    return ProjectOut(**project.public())


@router.post("/{project_id}/verify")
async def verify_project_password(
    project_id: str,
    body: PasswordCheck,
    registry: ProjectRegistry = Depends(get_registry),
):
    """Check a project password without opening a session."""
    project = await _verified(registry, project_id, body.password)
    return {"ok": True, "project": ProjectOut(**project.public())}


@router.post("/{project_id}/password", response_model=ProjectOut)
async def change_project_password(
    project_id: str,
    body: PasswordChange,
    registry: ProjectRegistry = Depends(get_registry),
):
    await _verified(registry, project_id, body.current_password)
    require_password(body.new_password)
    project = await registry.change_password(project_id, body.current_password, body.new_password)
    return ProjectOut(**project.public())


@router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    body: PasswordCheck,
    registry: ProjectRegistry = Depends(get_registry),
    sessions=Depends(get_sessions),
):
    """Delete a project and all its entries (password required)."""
    await _verified(registry, project_id, body.password)
    await registry.delete(project_id, body.password)
    closed = sessions.close_project(project_id)
    return {"ok": True, "project_id": project_id, "closed_sessions": closed}
