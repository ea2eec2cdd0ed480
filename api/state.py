"""Designer session and navigation state API endpoints."""

from __future__ import annotations

import asyncio
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from .identity import Requester, get_requester
from .project_store import project_store
from .session_store import DesignerSession, app_states, session_store

router = APIRouter(prefix="/state", tags=["state"])


class NavigateRequest(BaseModel):
    page: str
    trigger_confetti: bool = False


class ModalRequest(BaseModel):
    image_url: str


class LoadItemRequest(BaseModel):
    project_id: str


# ============= Designer session =============


@router.get("/session")
async def get_session(requester: Requester = Depends(get_requester)):
    """Restore the in-progress designer inputs."""
    return await asyncio.to_thread(session_store.load, requester.session_key)


@router.put("/session")
async def replace_session(body: Dict[str, Any], requester: Requester = Depends(get_requester)):
    """Replace the stored designer inputs."""
    return await asyncio.to_thread(
        session_store.save, requester.session_key, DesignerSession.from_raw(body)
    )


@router.patch("/session")
async def update_session(body: Dict[str, Any], requester: Requester = Depends(get_requester)):
    """Merge changes into the stored designer inputs."""
    return await asyncio.to_thread(session_store.update, requester.session_key, body)


@router.delete("/session")
async def clear_session(requester: Requester = Depends(get_requester)):
    await asyncio.to_thread(session_store.clear, requester.session_key)
    return {"success": True}


# ============= App state =============


@router.get("/app")
async def get_app_state(requester: Requester = Depends(get_requester)):
    return app_states.peek(requester.session_key).to_dict()


@router.post("/app/navigate")
async def navigate(body: NavigateRequest, requester: Requester = Depends(get_requester)):
    state = app_states.get(requester.session_key)
    try:
        state.navigate_to(body.page, trigger_confetti=body.trigger_confetti)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return state.to_dict()


@router.post("/app/modal")
async def open_modal(body: ModalRequest, requester: Requester = Depends(get_requester)):
    state = app_states.get(requester.session_key)
    state.open_modal(body.image_url)
    return state.to_dict()


@router.delete("/app/modal")
async def close_modal(requester: Requester = Depends(get_requester)):
    state = app_states.get(requester.session_key)
    state.close_modal()
    return state.to_dict()


@router.post("/app/confetti-triggered")
async def confetti_triggered(requester: Requester = Depends(get_requester)):
    state = app_states.get(requester.session_key)
    state.on_confetti_triggered()
    return state.to_dict()


@router.post("/app/load-item")
async def load_item(body: LoadItemRequest, requester: Requester = Depends(get_requester)):
    """Queue a saved project for the designer and restore its inputs."""
    project = None
    if requester.is_authenticated:
        project = await asyncio.to_thread(project_store.get_project, body.project_id, requester.user_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")

    state = app_states.get(requester.session_key)
    state.load_item(project.model_dump())
    await asyncio.to_thread(
        session_store.save, requester.session_key, DesignerSession.from_project(project)
    )
    return state.to_dict()


@router.post("/app/item-loaded")
async def item_loaded(requester: Requester = Depends(get_requester)):
    state = app_states.get(requester.session_key)
    state.on_item_loaded()
    return state.to_dict()

