"""
Tests for requester identity resolution.

Run with: pytest tests/test_identity.py -v
"""

import re

import pytest
from starlette.requests import Request

from api.identity import (
    fingerprint_from_parts,
    generate_anonymous_id,
    generate_device_id,
    resolve_requester,
    string_hash,
    to_base36,
)


def _request(headers):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": ("203.0.113.7", 5000),
    }
    return Request(scope)


class TestHashing:
    def test_base36(self):
        assert to_base36(0) == "0"
        assert to_base36(35) == "z"
        assert to_base36(36) == "10"

    def test_base36_rejects_negative(self):
        with pytest.raises(ValueError):
            to_base36(-1)

    def test_string_hash_small_values(self):
        assert string_hash("") == 0
        assert string_hash("a") == 97
        assert string_hash("ab") == 97 * 31 + 98

    def test_string_hash_wraps_to_signed_32_bit(self):
        assert string_hash("hello") == 99162322
        assert string_hash("polygenelubricants") == -2147483648

    def test_fingerprint_uses_absolute_hash(self):
        assert fingerprint_from_parts("polygenelubricants") == "zik0zk"

    def test_fingerprint_is_stable(self):
        a = fingerprint_from_parts("Mozilla/5.0", "en-US", 1920, 1080)
        b = fingerprint_from_parts("Mozilla/5.0", "en-US", 1920, 1080)
        assert a == b
        assert a != fingerprint_from_parts("Mozilla/5.0", "fr-FR", 1920, 1080)


class TestGeneratedIds:
    def test_anonymous_id_format(self):
        anon = generate_anonymous_id(now_ms=1700000000000)
        assert re.fullmatch(r"anon_1700000000000_[0-9a-z]{9}", anon)

    def test_device_id_format(self):
        device = generate_device_id("abc123", now_ms=36)
        assert re.fullmatch(r"abc123_10_[0-9a-z]{5}", device)


class TestResolveRequester:
    def test_signed_in_user(self):
        requester = resolve_requester(_request({
            "X-User-Id": "user-42",
            "X-Device-Id": "dev-1",
            "X-Device-Fingerprint": "fp",
            "User-Agent": "pytest",
        }))
        assert requester.is_authenticated
        assert requester.user_id == "user-42"
        assert requester.device_id == "dev-1"
        assert requester.device_fingerprint == "fp"
        assert requester.ip_address == "203.0.113.7"
        assert requester.user_agent == "pytest"

    def test_anonymous_reuses_issued_id(self):
        requester = resolve_requester(_request({"X-Anonymous-Id": "anon_1_xyz"}))
        assert not requester.is_authenticated
        assert requester.user_id == "anon_1_xyz"

    def test_missing_ids_are_generated(self):
        requester = resolve_requester(_request({"User-Agent": "pytest", "Accept-Language": "en"}))
        assert requester.user_id.startswith("anon_")
        assert requester.device_fingerprint == fingerprint_from_parts("pytest", "en")
        assert requester.device_id.startswith(requester.device_fingerprint + "_")
        assert requester.anonymous_id_issued
        assert requester.device_id_issued


class TestRateLimitKey:
    def test_signed_in_user_keyed_by_user_id(self):
        requester = resolve_requester(_request({"X-User-Id": "user-42"}))
        assert requester.rate_limit_key == "user-42"

    def test_sent_anonymous_id_is_used(self):
        requester = resolve_requester(_request({"X-Anonymous-Id": "anon_1_xyz"}))
        assert requester.rate_limit_key == "anon_1_xyz"

    def test_issued_anonymous_id_falls_back_to_device(self):
        requester = resolve_requester(_request({"X-Device-Id": "dev-9"}))
        assert requester.rate_limit_key == "device:dev-9"

    def test_issued_ids_fall_back_to_fingerprint(self):
        headers = {"X-Device-Fingerprint": "fp-9"}
        first = resolve_requester(_request(headers))
        second = resolve_requester(_request(headers))
        assert first.user_id != second.user_id
        assert first.rate_limit_key == second.rate_limit_key == "fingerprint:fp-9"


class TestIdentityHeaders:
    def test_generated_ids_are_echoed(self, client):
        resp = client.get("/api/usage/status")
        assert resp.status_code == 200
        assert resp.headers["X-Anonymous-Id"].startswith("anon_")
        assert resp.headers["X-Device-Id"]
        assert resp.headers["X-Device-Fingerprint"]

    def test_signed_in_requests_do_not_get_anonymous_id(self, client, user_headers):
        resp = client.get("/api/usage/status", headers=user_headers)
        assert "X-Anonymous-Id" not in resp.headers
        assert resp.headers["X-Device-Id"] == "device-1"
