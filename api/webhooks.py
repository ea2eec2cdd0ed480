"""
Polar webhook endpoint.

Events are dispatched on their ``type`` to small handlers that patch the
subscription record and the usage ledger's subscribed flag. When
``POLAR_WEBHOOK_SECRET`` is set, deliveries must carry a valid
Standard-Webhooks signature.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import hashlib
import hmac
import json
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from .app_config import app_config
from .shared.logger import get_logger
from .subscriptions import ACTIVE, CANCELED, subscription_store
from .usage_ledger import usage_ledger

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SIGNATURE_TOLERANCE_SECONDS = 5 * 60


class InvalidSignature(Exception):
    """The delivery's signature headers do not verify."""


# ============= Signature verification =============


def _secret_bytes(secret: str) -> bytes:
    if secret.startswith("whsec_"):
        try:
            return base64.b64decode(secret[len("whsec_"):])
        except (binascii.Error, ValueError) as e:
            raise InvalidSignature("Malformed webhook secret") from e
    return secret.encode("utf-8")


def sign_payload(secret: str, msg_id: str, timestamp: str, body: bytes) -> str:
    """Compute the ``v1,<base64>`` signature for a delivery."""
    signed = f"{msg_id}.{timestamp}.".encode("utf-8") + body
    digest = hmac.new(_secret_bytes(secret), signed, hashlib.sha256).digest()
    return "v1," + base64.b64encode(digest).decode("ascii")


def verify_signature(
    secret: str,
    headers: Dict[str, str],
    body: bytes,
    now: Optional[float] = None,
) -> None:
    """Verify Standard-Webhooks headers.

    Raises:
        InvalidSignature: Headers missing, stale timestamp, or no matching signature.
    """
    msg_id = headers.get("webhook-id")
    timestamp = headers.get("webhook-timestamp")
    signatures = headers.get("webhook-signature")
    if not (msg_id and timestamp and signatures):
        raise InvalidSignature("Missing signature headers")
    try:
        ts = int(timestamp)
    except ValueError as e:
        raise InvalidSignature("Invalid timestamp") from e
    now = time.time() if now is None else now
    if abs(now - ts) > SIGNATURE_TOLERANCE_SECONDS:
        raise InvalidSignature("Timestamp outside tolerance")

    expected = sign_payload(secret, msg_id, timestamp, body)
    for candidate in signatures.split():
        if hmac.compare_digest(candidate, expected):
            return
    raise InvalidSignature("No matching signature")


# ============= Event handlers =============


def to_epoch_ms(value: Any) -> Optional[int]:
    """Polar timestamps: numeric seconds or ISO-8601 strings."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return int(value * 1000)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable timestamp in webhook: %r", value)
        return None
    return int(parsed.timestamp() * 1000)


def handle_subscription_update(data: Dict[str, Any]) -> None:
    metadata = data.get("metadata") or {}
    user_id = metadata.get("userId")
    if not user_id:
        logger.warning("Subscription %s has no userId in metadata, skipping", data.get("id"))
        return
    status = data.get("status") or ""
    subscription_store.create_or_update(
        user_id,
        polar_subscription_id=data.get("id"),
        polar_customer_id=data.get("customer_id"),
        status=status,
        plan_name=metadata.get("planName") or "Unknown",
        billing_cycle=metadata.get("billingCycle"),
        current_period_start=to_epoch_ms(data.get("current_period_start")),
        current_period_end=to_epoch_ms(data.get("current_period_end")),
        cancel_at_period_end=bool(data.get("cancel_at_period_end")),
    )
    usage_ledger.update_subscription_status(user_id, status == ACTIVE)


def handle_subscription_cancellation(data: Dict[str, Any]) -> None:
    subscription = subscription_store.update_status_by_polar_id(
        data.get("id"), CANCELED, cancel_at_period_end=True
    )
    if subscription is not None:
        logger.info("Subscription canceled for %s", subscription.user_id)


def handle_payment_success(data: Dict[str, Any]) -> None:
    logger.info("Payment succeeded: %s", data.get("id"))


def handle_payment_failure(data: Dict[str, Any]) -> None:
    logger.warning("Payment failed: %s", data.get("id"))


def _log_event(label: str) -> Callable[[Dict[str, Any]], None]:
    def handler(data: Dict[str, Any]) -> None:
        logger.info("%s: %s", label, data.get("id"))
    return handler


EVENT_HANDLERS: Dict[str, Callable[[Dict[str, Any]], None]] = {
    "checkout.updated": _log_event("Checkout updated"),
    "order.created": _log_event("Order created"),
    "subscription.created": handle_subscription_update,
    "subscription.updated": handle_subscription_update,
    "subscription.canceled": handle_subscription_cancellation,
    "invoice.payment_succeeded": handle_payment_success,
    "invoice.payment_failed": handle_payment_failure,
}


def dispatch_event(event: Dict[str, Any]) -> None:
    event_type = event.get("type")
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info("Unhandled webhook event: %s", event_type)
        return
    handler(event.get("data") or {})


# ============= Routes =============


@router.get("/polar")
async def polar_webhook_status():
    return {"status": "Webhook endpoint active"}


@router.post("/polar")
async def polar_webhook(request: Request):
    """Receive a Polar event."""
    body = await request.body()

    secret = app_config.settings.polar_webhook_secret
    if secret:
        try:
            verify_signature(secret, dict(request.headers), body)
        except InvalidSignature as e:
            logger.warning("Rejected webhook delivery: %s", e)
            return JSONResponse(status_code=401, content={"error": "Invalid signature"})

    try:
        event = json.loads(body)
    except json.JSONDecodeError:
        return JSONResponse(status_code=400, content={"error": "Invalid payload"})

    try:
        await asyncio.to_thread(dispatch_event, event)
    except Exception as e:
        logger.error("Webhook error: %s", e)
        return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})
    return {"received": True}
