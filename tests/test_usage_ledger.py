"""
Tests for the redesign allowance and the burst rate limiter.

Run with: pytest tests/test_usage_ledger.py -v
"""

import asyncio
from unittest.mock import patch

import pytest

from api.constants import FREE_REDESIGN_LIMIT, RATE_LIMIT_WINDOW_MS, UNLIMITED
from api.errors import RateLimitExceeded, UsageLimitExceeded
from api.identity import Requester
from api.usage_ledger import SIGN_UP_MESSAGE, SUBSCRIBE_MESSAGE, UsageLedger, usage_ledger, usage_status


class FakeClock:
    def __init__(self, now=1_700_000_000_000):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger(clock):
    return UsageLedger(clock=clock)


@pytest.fixture
def user():
    return Requester(user_id="user-1", is_authenticated=True, device_id="dev-1", device_fingerprint="fp-1")


def _anon(device_id, fingerprint="fp-shared"):
    return Requester(user_id=f"anon_{device_id}", is_authenticated=False, device_id=device_id, device_fingerprint=fingerprint)


class TestUsageStatus:
    def test_free_tier(self):
        status = usage_status(1, False)
        assert status.can_redesign
        assert status.remaining_redesigns == 2

    def test_exhausted(self):
        status = usage_status(FREE_REDESIGN_LIMIT, False)
        assert not status.can_redesign
        assert status.remaining_redesigns == 0

    def test_never_negative(self):
        assert usage_status(7, False).remaining_redesigns == 0

    def test_subscribed_is_unlimited(self):
        status = usage_status(50, True)
        assert status.can_redesign
        assert status.remaining_redesigns == UNLIMITED


class TestSignedInAllowance:
    def test_new_user_has_full_allowance(self, ledger, user):
        status = ledger.check_redesign_limit(user)
        assert status.redesign_count == 0
        assert status.remaining_redesigns == FREE_REDESIGN_LIMIT

    def test_increment_creates_then_updates(self, ledger, user, mongo_db):
        ledger.increment_redesign_count(user)
        ledger.increment_redesign_count(user)

        record = mongo_db.usage_tracking.find_one({"user_id": "user-1"})
        assert record["redesign_count"] == 2
        assert record["device_fingerprint"] == "fp-1"
        assert ledger.check_redesign_limit(user).remaining_redesigns == 1

    def test_fourth_redesign_is_refused(self, ledger, user, mongo_db):
        for _ in range(FREE_REDESIGN_LIMIT):
            ledger.increment_redesign_count(user)

        with pytest.raises(UsageLimitExceeded) as exc_info:
            ledger.increment_redesign_count(user)

        assert exc_info.value.message == SUBSCRIBE_MESSAGE
        assert exc_info.value.status_code == 402
        assert mongo_db.usage_tracking.find_one({"user_id": "user-1"})["redesign_count"] == FREE_REDESIGN_LIMIT

    def test_stored_subscription_flag_lifts_limit(self, ledger, user, mongo_db):
        mongo_db.usage_tracking.insert_one({"user_id": "user-1", "redesign_count": 10, "is_subscribed": True})

        assert ledger.check_redesign_limit(user).can_redesign
        ledger.increment_redesign_count(user)
        assert mongo_db.usage_tracking.find_one({"user_id": "user-1"})["redesign_count"] == 11

    def test_caller_subscription_flag_lifts_limit(self, ledger, user, mongo_db):
        mongo_db.usage_tracking.insert_one({"user_id": "user-1", "redesign_count": 3, "is_subscribed": False})

        assert ledger.check_redesign_limit(user, is_subscribed=True).can_redesign
        ledger.increment_redesign_count(user, is_subscribed=True)
        assert mongo_db.usage_tracking.find_one({"user_id": "user-1"})["redesign_count"] == 4

    def test_update_subscription_status(self, ledger, user, mongo_db):
        ledger.update_subscription_status("user-1", True)
        assert ledger.check_redesign_limit(user).is_subscribed

        ledger.update_subscription_status("user-1", False)
        assert not ledger.check_redesign_limit(user).is_subscribed
        assert mongo_db.usage_tracking.count_documents({"user_id": "user-1"}) == 1


class TestAnonymousAllowance:
    def test_counts_are_shared_across_devices_with_same_fingerprint(self, ledger):
        ledger.increment_redesign_count(_anon("dev-a"))
        ledger.increment_redesign_count(_anon("dev-b"))
        ledger.increment_redesign_count(_anon("dev-a"))

        status = ledger.check_redesign_limit(_anon("dev-c"))
        assert status.redesign_count == 3
        assert not status.can_redesign

        with pytest.raises(UsageLimitExceeded) as exc_info:
            ledger.increment_redesign_count(_anon("dev-c"))
        assert exc_info.value.message == SIGN_UP_MESSAGE

    def test_other_fingerprints_are_unaffected(self, ledger):
        for _ in range(3):
            ledger.increment_redesign_count(_anon("dev-a"))
        assert ledger.check_redesign_limit(_anon("dev-z", fingerprint="fp-other")).can_redesign

    def test_device_session_touch_starts_at_zero(self, ledger, mongo_db):
        ledger.update_device_session(_anon("dev-a"))
        ledger.update_device_session(_anon("dev-a"))

        sessions = list(mongo_db.device_sessions.find({"device_id": "dev-a"}))
        assert len(sessions) == 1
        assert sessions[0]["redesign_count"] == 0


class TestRateLimit:
    def test_fresh_window(self, ledger):
        status = ledger.check_rate_limit("user-1", "redesign")
        assert status.allowed
        assert status.attempts_remaining == 5

    def test_remaining_attempts(self, ledger):
        for _ in range(3):
            ledger.increment_rate_limit("user-1", "redesign")
        status = ledger.check_rate_limit("user-1", "redesign")
        assert status.allowed
        assert status.attempts_remaining == 2

    def test_sixth_attempt_refused(self, ledger):
        for _ in range(5):
            ledger.enforce_rate_limit("user-1", "redesign")
            ledger.increment_rate_limit("user-1", "redesign")

        with pytest.raises(RateLimitExceeded) as exc_info:
            ledger.enforce_rate_limit("user-1", "redesign")
        assert exc_info.value.status_code == 429
        assert exc_info.value.attempts_remaining == 0

    def test_window_resets(self, ledger, clock, mongo_db):
        for _ in range(5):
            ledger.increment_rate_limit("user-1", "redesign")
        clock.now += RATE_LIMIT_WINDOW_MS + 1

        assert ledger.check_rate_limit("user-1", "redesign").allowed
        ledger.increment_rate_limit("user-1", "redesign")
        record = mongo_db.rate_limiting.find_one({"user_id": "user-1", "action": "redesign"})
        assert record["attempts"] == 1
        assert record["window_start"] == clock.now

    def test_window_boundary_still_refuses(self, ledger, clock):
        for _ in range(5):
            ledger.increment_rate_limit("user-1", "redesign")

        clock.now += RATE_LIMIT_WINDOW_MS
        status = ledger.check_rate_limit("user-1", "redesign")
        assert not status.allowed
        with pytest.raises(RateLimitExceeded):
            ledger.enforce_rate_limit("user-1", "redesign")

        clock.now += 1
        assert ledger.check_rate_limit("user-1", "redesign").allowed

    def test_actions_are_independent(self, ledger):
        for _ in range(5):
            ledger.increment_rate_limit("user-1", "redesign")
        assert ledger.check_rate_limit("user-1", "refine").allowed


class TestUsageApi:
    def test_status_for_new_device(self, client, anon_headers):
        data = client.get("/api/usage/status", headers=anon_headers).json()
        assert data == {"can_redesign": True, "redesign_count": 0, "remaining_redesigns": 3, "is_subscribed": False}

    def test_status_counts_fingerprint(self, client, anon_headers, mongo_db):
        mongo_db.device_sessions.insert_one({"device_id": "x", "device_fingerprint": "fp-anon", "redesign_count": 2})
        assert client.get("/api/usage/status", headers=anon_headers).json()["remaining_redesigns"] == 1

    def test_rate_limit(self, client, user_headers):
        data = client.get("/api/usage/rate-limit", headers=user_headers).json()
        assert data == {"allowed": True, "attempts_remaining": 5}

    def test_device_session(self, client, anon_headers, mongo_db):
        resp = client.post("/api/usage/device-session", headers=anon_headers)
        assert resp.json() == {"success": True, "device_id": "device-anon"}
        assert mongo_db.device_sessions.find_one({"device_id": "device-anon"})["redesign_count"] == 0

    def test_ledger_runs_off_the_event_loop(self, client, anon_headers):
        calls = []

        def record(requester, is_subscribed=False):
            try:
                asyncio.get_running_loop()
                calls.append("event loop")
            except RuntimeError:
                calls.append("worker thread")
            return usage_status(0, False)

        with patch.object(usage_ledger, "check_redesign_limit", side_effect=record):
            assert client.get("/api/usage/status", headers=anon_headers).status_code == 200

        assert calls == ["worker thread"]
