"""
Checkout through the Polar payments API.

Plans map to price ids through ``POLAR_<PLAN>_<CYCLE>_PRICE_ID`` settings.
The hosted checkout redirects back to the app's success page, which calls
``POST /api/checkout/success`` to activate the subscription.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import httpx
from fastapi import APIRouter, Depends

from .app_config import app_config
from .errors import CheckoutError
from .identity import Requester, require_user
from .schemas import CheckoutRequest, CheckoutSuccessRequest
from .shared.logger import get_logger
from .subscriptions import subscription_store

logger = get_logger(__name__)

router = APIRouter(prefix="/checkout", tags=["checkout"])

POLAR_SERVERS = {
    "sandbox": "https://sandbox-api.polar.sh",
    "production": "https://api.polar.sh",
}
CHECKOUT_SOURCE = "ai-landscape-designer"


def price_env_key(plan_name: str, billing_cycle: str) -> str:
    return f"POLAR_{plan_name.upper()}_{billing_cycle.upper()}_PRICE_ID"


def get_price_id(plan_name: str, billing_cycle: str) -> str:
    """Resolve the configured price id for a plan and billing cycle.

    Raises:
        CheckoutError: No price id is configured.
    """
    key = price_env_key(plan_name, billing_cycle)
    price_id = app_config.lookup(key)
    if not price_id:
        raise CheckoutError(
            f"Price ID not found for {plan_name} {billing_cycle}. Check environment variable: {key}"
        )
    return price_id


class PolarClient:
    """Minimal async client for the Polar REST API."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    def use_transport(self, transport: Optional[httpx.AsyncBaseTransport]) -> None:
        """Route requests through a custom transport (tests use MockTransport)."""
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        settings = app_config.settings
        base_url = POLAR_SERVERS.get(settings.polar_server, POLAR_SERVERS["sandbox"])
        return httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {settings.polar_access_token}"},
            timeout=30.0,
            transport=self._transport,
        )

    async def create_checkout_session(
        self,
        plan_name: str,
        billing_cycle: str,
        user_id: str,
        user_email: Optional[str] = None,
    ) -> str:
        """Create a hosted checkout and return its URL."""
        price_id = get_price_id(plan_name, billing_cycle)
        base_url = app_config.settings.app_base_url.rstrip("/")
        payload: Dict[str, Any] = {
            "products": [price_id],
            "success_url": f"{base_url}/?page=success&session_id={{CHECKOUT_SESSION_ID}}&plan={plan_name}",
            "metadata": {
                "userId": user_id,
                "planName": plan_name,
                "billingCycle": billing_cycle,
                "source": CHECKOUT_SOURCE,
            },
        }
        if user_email:
            payload["customer_email"] = user_email

        try:
            async with self._client() as client:
                response = await client.post("/v1/checkouts/", json=payload)
                response.raise_for_status()
                url = response.json()["url"]
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error("Failed to create checkout session for %s: %s", user_id, e)
            raise CheckoutError("Failed to create checkout session") from e

        logger.info("Checkout session created for %s (%s/%s)", user_id, plan_name, billing_cycle)
        return url

    async def list_products(self) -> List[Dict[str, Any]]:
        """Products currently offered (not archived)."""
        try:
            async with self._client() as client:
                response = await client.get("/v1/products/", params={"is_archived": "false"})
                response.raise_for_status()
                return response.json().get("items", [])
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Failed to list products: %s", e)
            raise CheckoutError("Failed to load products") from e


# Global instance
polar_client = PolarClient()


# ============= Routes =============


@router.post("/session")
async def create_checkout(body: CheckoutRequest, requester: Requester = Depends(require_user)):
    """Start a hosted checkout for the signed-in user."""
    url = await polar_client.create_checkout_session(
        body.plan, body.billing_cycle, requester.user_id, body.email
    )
    return {"url": url}


@router.post("/success")
async def checkout_success(body: CheckoutSuccessRequest, requester: Requester = Depends(require_user)):
    """Activate the subscription after the checkout redirect."""
    subscription = await asyncio.to_thread(
        subscription_store.handle_successful_payment, body.session_id, requester.user_id, body.plan
    )
    return {"success": True, "subscription": subscription}


@router.get("/products")
async def list_products():
    return {"products": await polar_client.list_products()}


@router.get("/subscription")
async def get_subscription(requester: Requester = Depends(require_user)):
    """The caller's active subscription, if any."""
    subscription = await asyncio.to_thread(subscription_store.get_active_subscription, requester.user_id)
    return {"subscription": subscription, "is_subscribed": subscription is not None}
