"""Project management API endpoints."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from .identity import Requester, require_user
from .image_store import image_store
from .project_store import project_store
from .schemas import ProjectCreate

router = APIRouter(prefix="/projects", tags=["projects"])


class ProjectPinUpdate(BaseModel):
    is_pinned: bool


def _with_thumbnails(project) -> dict:
    data = project.model_dump()
    data["original_thumbnail_url"] = image_store.get_thumbnail_url(project.original_image_public_id)
    if project.redesigned_image_public_id:
        data["redesigned_thumbnail_url"] = image_store.get_thumbnail_url(
            project.redesigned_image_public_id
        )
    return data


@router.get("")
async def list_projects(requester: Requester = Depends(require_user)):
    """List the caller's projects, newest first."""
    projects = await asyncio.to_thread(project_store.list_user_projects, requester.user_id)
    return {"projects": [_with_thumbnails(p) for p in projects], "total": len(projects)}


@router.post("")
async def create_project(body: ProjectCreate, requester: Requester = Depends(require_user)):
    """Create a project for an already-uploaded image."""
    project_id = await asyncio.to_thread(
        project_store.create_project,
        user_id=requester.user_id,
        original_image=body.original_image,
        styles=body.styles,
        allow_structural_changes=body.allow_structural_changes,
        climate_zone=body.climate_zone,
        redesign_density=body.redesign_density,
        title=body.title,
    )
    return {"project_id": project_id}


@router.get("/{project_id}")
async def get_project(project_id: str, requester: Requester = Depends(require_user)):
    project = await asyncio.to_thread(project_store.get_project, project_id, requester.user_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return _with_thumbnails(project)


@router.put("/{project_id}/pin")
async def pin_project(
    project_id: str,
    body: ProjectPinUpdate,
    requester: Requester = Depends(require_user),
):
    """Pin or unpin a project."""
    project = await asyncio.to_thread(
        project_store.toggle_project_pin, project_id, requester.user_id, body.is_pinned
    )
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return {"success": True, "project_id": project_id, "is_pinned": project.is_pinned}


@router.delete("/{project_id}")
async def delete_project(project_id: str, requester: Requester = Depends(require_user)):
    """Delete a project."""
    if not await asyncio.to_thread(project_store.delete_project, project_id, requester.user_id):
        raise HTTPException(status_code=404, detail="Project not found")
    return {"success": True, "project_id": project_id}
