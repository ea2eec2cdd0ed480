"""
Requester identity resolved from request headers.

The auth provider sits in front of this service and forwards the signed-in
user's id as ``X-User-Id``. Browsers without an account send the ids they
were issued earlier (``X-Anonymous-Id``, ``X-Device-Id``) and a device
fingerprint. Ids that are missing are generated here and echoed back in the
response headers so the client can persist them.
"""

from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request, Response

USER_ID_HEADER = "X-User-Id"
ANONYMOUS_ID_HEADER = "X-Anonymous-Id"
DEVICE_ID_HEADER = "X-Device-Id"
FINGERPRINT_HEADER = "X-Device-Fingerprint"

_BASE36 = string.digits + string.ascii_lowercase


def to_base36(value: int) -> str:
    """Render a non-negative integer in base 36 (lower-case digits)."""
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def _random_base36(length: int) -> str:
    return "".join(random.choice(_BASE36) for _ in range(length))


def string_hash(text: str) -> int:
    """32-bit rolling hash (``h * 31 + code``) over UTF-16 code units, signed."""
    h = 0
    encoded = text.encode("utf-16-le")
    for i in range(0, len(encoded), 2):
        code = encoded[i] | (encoded[i + 1] << 8)
        h = (h * 31 + code) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def fingerprint_from_parts(*parts: object) -> str:
    """Join the parts with ``|`` and hash them into a short base36 id."""
    joined = "|".join("" if p is None else str(p) for p in parts)
    return to_base36(abs(string_hash(joined)))


def generate_anonymous_id(now_ms: Optional[int] = None) -> str:
    """``anon_<epoch ms>_<9 base36 chars>``."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"anon_{now_ms}_{_random_base36(9)}"


def generate_device_id(fingerprint: str, now_ms: Optional[int] = None) -> str:
    """``<fingerprint>_<base36 epoch ms>_<5 base36 chars>``."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{fingerprint}_{to_base36(now_ms)}_{_random_base36(5)}"


@dataclass
class Requester:
    """Who is calling: a signed-in user or an anonymous device."""

    user_id: str
    is_authenticated: bool
    device_id: str
    device_fingerprint: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    # Set when the id was generated for this request rather than sent by the client
    anonymous_id_issued: bool = False
    device_id_issued: bool = False

    @property
    def session_key(self) -> str:
        """Key for per-requester persisted state."""
        return self.user_id

    @property
    def rate_limit_key(self) -> str:
        """Stable key for the burst limiter.

        An issued anonymous id is new on every request; such callers are keyed
        by the device id they sent, else by their fingerprint.
        """
        if not self.anonymous_id_issued:
            return self.user_id
        if not self.device_id_issued:
            return f"device:{self.device_id}"
        return f"fingerprint:{self.device_fingerprint}"


def resolve_requester(request: Request) -> Requester:
    """Build a Requester from headers, generating ids that are missing."""
    headers = request.headers
    user_agent = headers.get("user-agent")
    fingerprint = headers.get(FINGERPRINT_HEADER) or fingerprint_from_parts(
        user_agent or "", headers.get("accept-language", "")
    )
    device_id = headers.get(DEVICE_ID_HEADER)
    device_id_issued = not device_id
    if device_id_issued:
        device_id = generate_device_id(fingerprint)

    user_id = headers.get(USER_ID_HEADER)
    is_authenticated = bool(user_id)
    anonymous_id_issued = False
    if not user_id:
        user_id = headers.get(ANONYMOUS_ID_HEADER)
        if not user_id:
            user_id = generate_anonymous_id()
            anonymous_id_issued = True

    return Requester(
        user_id=user_id,
        is_authenticated=is_authenticated,
        device_id=device_id,
        device_fingerprint=fingerprint,
        ip_address=request.client.host if request.client else None,
        user_agent=user_agent,
        anonymous_id_issued=anonymous_id_issued,
        device_id_issued=device_id_issued,
    )


async def get_requester(request: Request, response: Response) -> Requester:
    """FastAPI dependency: resolve the requester and echo generated ids."""
    requester = resolve_requester(request)
    if not requester.is_authenticated:
        response.headers[ANONYMOUS_ID_HEADER] = requester.user_id
    response.headers[DEVICE_ID_HEADER] = requester.device_id
    response.headers[FINGERPRINT_HEADER] = requester.device_fingerprint
    return requester


async def require_user(request: Request) -> Requester:
    """FastAPI dependency for endpoints that need a signed-in user."""
    requester = resolve_requester(request)
    if not requester.is_authenticated:
        raise HTTPException(status_code=401, detail="Sign in required")
    return requester
