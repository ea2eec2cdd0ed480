"""
Free-tier usage and burst rate limiting.

Two independent gates guard every redesign:

- the redesign allowance: ``FREE_REDESIGN_LIMIT`` redesigns per account (or per
  device fingerprint for anonymous users) until the user subscribes;
- the rate limit: at most ``MAX_ATTEMPTS_PER_WINDOW`` attempts per
  ``(user_id, action)`` inside a ``RATE_LIMIT_WINDOW_MS`` window.

Counters live in MongoDB (``usage_tracking``, ``device_sessions``,
``rate_limiting``).
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional

from .constants import (
    FREE_REDESIGN_LIMIT,
    MAX_ATTEMPTS_PER_WINDOW,
    RATE_LIMIT_WINDOW_MS,
    UNLIMITED,
)
from .database import DEVICE_SESSIONS, RATE_LIMITING, USAGE_TRACKING, db_manager
from .errors import RateLimitExceeded, UsageLimitExceeded
from .identity import Requester
from .schemas import RateLimitStatus, UsageStatus
from .shared.logger import get_logger

logger = get_logger(__name__)

SUBSCRIBE_MESSAGE = "Redesign limit reached. Please subscribe to continue."
SIGN_UP_MESSAGE = "Redesign limit reached. Please sign up to continue."


def _now_ms() -> int:
    return int(time.time() * 1000)


def usage_status(count: int, is_subscribed: bool) -> UsageStatus:
    """Derive the public status from a stored count."""
    return UsageStatus(
        can_redesign=is_subscribed or count < FREE_REDESIGN_LIMIT,
        redesign_count=count,
        remaining_redesigns=UNLIMITED if is_subscribed else max(0, FREE_REDESIGN_LIMIT - count),
        is_subscribed=is_subscribed,
    )


class UsageLedger:
    """Reads and updates the usage counters."""

    def __init__(self, clock: Optional[Callable[[], int]] = None):
        self._clock = clock or _now_ms

    def now(self) -> int:
        return self._clock()

    @property
    def _usage(self):
        return db_manager.collection(USAGE_TRACKING)

    @property
    def _devices(self):
        return db_manager.collection(DEVICE_SESSIONS)

    @property
    def _rates(self):
        return db_manager.collection(RATE_LIMITING)

    def _fingerprint_total(self, fingerprint: str) -> int:
        sessions = self._devices.find({"device_fingerprint": fingerprint}, {"redesign_count": 1})
        return sum(int(s.get("redesign_count", 0)) for s in sessions)

    # ============================================================================
    # Redesign allowance
    # ============================================================================

    def check_redesign_limit(self, requester: Requester, is_subscribed: bool = False) -> UsageStatus:
        """Current allowance for the requester.

        Args:
            requester: Resolved caller identity.
            is_subscribed: Subscription state known to the caller; OR-ed with
                the stored flag for signed-in users.
        """
        if requester.is_authenticated:
            record = self._usage.find_one({"user_id": requester.user_id})
            if record:
                subscribed = bool(record.get("is_subscribed")) or is_subscribed
                return usage_status(int(record.get("redesign_count", 0)), subscribed)
            return usage_status(0, is_subscribed)

        if requester.device_fingerprint:
            return usage_status(self._fingerprint_total(requester.device_fingerprint), False)

        return usage_status(0, False)

    def increment_redesign_count(self, requester: Requester, is_subscribed: bool = False) -> None:
        """Count one completed redesign.

        Raises:
            UsageLimitExceeded: The allowance is already used up.
        """
        now = self.now()
        if requester.is_authenticated:
            self._increment_user(requester, is_subscribed, now)
        else:
            self._increment_device(requester, now)

    def _increment_user(self, requester: Requester, is_subscribed: bool, now: int) -> None:
        query: Dict[str, Any] = {"user_id": requester.user_id}
        if not is_subscribed:
            # Unsubscribed counts never move past the limit
            query["$or"] = [
                {"is_subscribed": True},
                {"redesign_count": {"$lt": FREE_REDESIGN_LIMIT}},
            ]
        result = self._usage.update_one(
            query,
            {
                "$inc": {"redesign_count": 1},
                "$set": {
                    "last_redesign_at": now,
                    "updated_at": now,
                    "device_id": requester.device_id,
                    "device_fingerprint": requester.device_fingerprint,
                    "ip_address": requester.ip_address,
                    "user_agent": requester.user_agent,
                },
            },
        )
        if result.matched_count:
            return

        if self._usage.find_one({"user_id": requester.user_id}, {"_id": 1}):
            status = self.check_redesign_limit(requester, is_subscribed)
            logger.info("Redesign refused for %s: limit reached", requester.user_id)
            raise UsageLimitExceeded(SUBSCRIBE_MESSAGE, usage=status.model_dump())

        self._usage.insert_one({
            "user_id": requester.user_id,
            "device_id": requester.device_id,
            "device_fingerprint": requester.device_fingerprint,
            "is_authenticated": True,
            "redesign_count": 1,
            "last_redesign_at": now,
            "is_subscribed": is_subscribed,
            "ip_address": requester.ip_address,
            "user_agent": requester.user_agent,
            "created_at": now,
            "updated_at": now,
        })

    def _increment_device(self, requester: Requester, now: int) -> None:
        total = self._fingerprint_total(requester.device_fingerprint)
        if total >= FREE_REDESIGN_LIMIT:
            logger.info("Anonymous redesign refused for fingerprint %s", requester.device_fingerprint)
            raise UsageLimitExceeded(SIGN_UP_MESSAGE, usage=usage_status(total, False).model_dump())

        result = self._devices.update_one(
            {"device_id": requester.device_id},
            {
                "$inc": {"redesign_count": 1},
                "$set": {
                    "last_seen_at": now,
                    "ip_address": requester.ip_address,
                    "user_agent": requester.user_agent,
                },
            },
        )
        if result.matched_count:
            return
        self._devices.insert_one({
            "device_id": requester.device_id,
            "device_fingerprint": requester.device_fingerprint,
            "user_id": requester.user_id,
            "is_authenticated": False,
            "redesign_count": 1,
            "ip_address": requester.ip_address,
            "user_agent": requester.user_agent,
            "last_seen_at": now,
            "created_at": now,
        })

    def update_device_session(self, requester: Requester) -> None:
        """Touch the device session, creating it with a zero count."""
        now = self.now()
        result = self._devices.update_one(
            {"device_id": requester.device_id},
            {"$set": {
                "last_seen_at": now,
                "ip_address": requester.ip_address,
                "user_agent": requester.user_agent,
            }},
        )
        if result.matched_count:
            return
        self._devices.insert_one({
            "device_id": requester.device_id,
            "device_fingerprint": requester.device_fingerprint,
            "user_id": requester.user_id,
            "is_authenticated": requester.is_authenticated,
            "redesign_count": 0,
            "ip_address": requester.ip_address,
            "user_agent": requester.user_agent,
            "last_seen_at": now,
            "created_at": now,
        })

    def update_subscription_status(self, user_id: str, is_subscribed: bool) -> None:
        """Set the subscribed flag on the user's usage record."""
        now = self.now()
        result = self._usage.update_one(
            {"user_id": user_id},
            {"$set": {"is_subscribed": is_subscribed, "updated_at": now}},
        )
        if result.matched_count:
            return
        self._usage.insert_one({
            "user_id": user_id,
            "device_id": "",
            "device_fingerprint": "",
            "is_authenticated": True,
            "redesign_count": 0,
            "is_subscribed": is_subscribed,
            "created_at": now,
            "updated_at": now,
        })

    # ============================================================================
    # Rate limiting
    # ============================================================================

    def check_rate_limit(self, user_id: str, action: str) -> RateLimitStatus:
        record = self._rates.find_one({"user_id": user_id, "action": action})
        if not record or self.now() - record["window_start"] > RATE_LIMIT_WINDOW_MS:
            return RateLimitStatus(allowed=True, attempts_remaining=MAX_ATTEMPTS_PER_WINDOW)
        attempts = int(record.get("attempts", 0))
        return RateLimitStatus(
            allowed=attempts < MAX_ATTEMPTS_PER_WINDOW,
            attempts_remaining=max(0, MAX_ATTEMPTS_PER_WINDOW - attempts),
        )

    def enforce_rate_limit(self, user_id: str, action: str) -> RateLimitStatus:
        """Like check_rate_limit, but raise when the window is exhausted."""
        status = self.check_rate_limit(user_id, action)
        if not status.allowed:
            logger.warning("Rate limit reached for %s/%s", user_id, action)
            raise RateLimitExceeded(attempts_remaining=status.attempts_remaining)
        return status

    def increment_rate_limit(self, user_id: str, action: str) -> None:
        now = self.now()
        record = self._rates.find_one({"user_id": user_id, "action": action})
        if record is None:
            self._rates.insert_one({
                "user_id": user_id,
                "action": action,
                "attempts": 1,
                "window_start": now,
                "last_attempt_at": now,
            })
        elif now - record["window_start"] > RATE_LIMIT_WINDOW_MS:
            self._rates.update_one(
                {"_id": record["_id"]},
                {"$set": {"attempts": 1, "window_start": now, "last_attempt_at": now}},
            )
        else:
            self._rates.update_one(
                {"_id": record["_id"]},
                {"$inc": {"attempts": 1}, "$set": {"last_attempt_at": now}},
            )


# Global instance
usage_ledger = UsageLedger()
