"""
Subscription records mirrored from the payments platform.

Records are keyed by user id (one subscription per user) and can also be
looked up by the platform's subscription id when a webhook only carries that.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

from .constants import SUBSCRIPTION_PERIOD_MS
from .database import SUBSCRIPTIONS, db_manager
from .schemas import Subscription
from .shared.logger import get_logger
from .usage_ledger import usage_ledger

logger = get_logger(__name__)

ACTIVE = "active"
CANCELED = "canceled"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _to_subscription(doc: Optional[Dict[str, Any]]) -> Optional[Subscription]:
    if not doc:
        return None
    doc = {k: v for k, v in doc.items() if k != "_id"}
    return Subscription.model_validate(doc)


class SubscriptionStore:
    """Reads and upserts the ``subscriptions`` collection."""

    @property
    def _subscriptions(self):
        return db_manager.collection(SUBSCRIPTIONS)

    def create_or_update(self, user_id: str, **fields: Any) -> Subscription:
        """Upsert the user's subscription with the given fields."""
        now = _now_ms()
        self._subscriptions.update_one(
            {"user_id": user_id},
            {
                "$set": {**fields, "user_id": user_id, "updated_at": now},
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
        )
        logger.info("Subscription for %s set to %s", user_id, fields.get("status"))
        return self.get_subscription(user_id)

    def get_subscription(self, user_id: str) -> Optional[Subscription]:
        return _to_subscription(self._subscriptions.find_one({"user_id": user_id}))

    def get_active_subscription(self, user_id: str) -> Optional[Subscription]:
        return _to_subscription(
            self._subscriptions.find_one({"user_id": user_id, "status": ACTIVE})
        )

    def is_user_subscribed(self, user_id: str) -> bool:
        return self.get_active_subscription(user_id) is not None

    def update_status_by_polar_id(
        self,
        polar_subscription_id: str,
        status: str,
        cancel_at_period_end: Optional[bool] = None,
    ) -> Optional[Subscription]:
        """Patch status by the platform's subscription id; None if unknown."""
        update: Dict[str, Any] = {"status": status, "updated_at": _now_ms()}
        if cancel_at_period_end is not None:
            update["cancel_at_period_end"] = cancel_at_period_end
        doc = self._subscriptions.find_one_and_update(
            {"polar_subscription_id": polar_subscription_id},
            {"$set": update},
        )
        if doc is None:
            logger.warning("No subscription found for Polar id %s", polar_subscription_id)
            return None
        return self.get_subscription(doc["user_id"])

    def handle_successful_payment(self, session_id: str, user_id: str, plan_name: str) -> Subscription:
        """Record an active subscription after a completed checkout.

        The checkout session id stands in for the subscription id until the
        ``subscription.created`` webhook replaces it.
        """
        now = _now_ms()
        subscription = self.create_or_update(
            user_id,
            polar_subscription_id=session_id,
            status=ACTIVE,
            plan_name=plan_name,
            current_period_start=now,
            current_period_end=now + SUBSCRIPTION_PERIOD_MS,
            cancel_at_period_end=False,
        )
        usage_ledger.update_subscription_status(user_id, True)
        return subscription


# Global instance
subscription_store = SubscriptionStore()
