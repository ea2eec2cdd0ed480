"""Usage and rate-limit API endpoints."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends

from .identity import Requester, get_requester
from .usage_ledger import usage_ledger

router = APIRouter(prefix="/usage", tags=["usage"])


@router.get("/status")
async def get_usage_status(
    is_subscribed: bool = False,
    requester: Requester = Depends(get_requester),
):
    """Remaining free redesigns for the caller."""
    return await asyncio.to_thread(usage_ledger.check_redesign_limit, requester, is_subscribed)


@router.get("/rate-limit")
async def get_rate_limit(action: str = "redesign", requester: Requester = Depends(get_requester)):
    """Attempts left in the current rate-limit window."""
    return await asyncio.to_thread(usage_ledger.check_rate_limit, requester.rate_limit_key, action)


@router.post("/device-session")
async def touch_device_session(requester: Requester = Depends(get_requester)):
    """Register or refresh the caller's device session."""
    await asyncio.to_thread(usage_ledger.update_device_session, requester)
    return {"success": True, "device_id": requester.device_id}
