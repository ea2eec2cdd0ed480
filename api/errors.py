"""
Exception taxonomy for the landscape designer backend.

Three families, matching how failures are surfaced to the user:

- ValidationError: bad input rejected before any network call (400)
- External-service errors: model, image store and checkout failures,
  wrapped with a human-readable message (502)
- LimitExceeded: usage or rate limits that short-circuit before an
  external call is spent (402 / 429)

``main.py`` maps each class to its HTTP status.
"""

from typing import Any, Dict, Optional


class LandscapeError(Exception):
    """Base class for all domain errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message}


# ============= Validation =============


class ValidationError(LandscapeError):
    """Input rejected before any external call."""

    status_code = 400


# ============= External services =============


class GenerationError(LandscapeError):
    """The generative model call failed."""

    status_code = 502


class SafetyBlockError(GenerationError):
    """The request was blocked by the model's safety filters."""

    def __init__(self, reason: str, details: str = ""):
        super().__init__(
            f"Request blocked by AI safety filters: {reason}. "
            "Please modify the image or request."
        )
        self.reason = reason
        self.details = details


class EmptyResponseError(GenerationError):
    """The model returned no candidates."""


class MissingImageError(GenerationError):
    """The model answered without an image part."""


class ModelTransportError(GenerationError):
    """Transport or SDK failure while talking to the model."""


class ImageStoreError(LandscapeError):
    """Upload to or download from the object store failed."""

    status_code = 502


class CheckoutError(LandscapeError):
    """Creating a checkout session or resolving a price failed."""

    status_code = 502


# ============= Limits =============


class LimitExceeded(LandscapeError):
    """A usage gate refused the action."""


class UsageLimitExceeded(LimitExceeded):
    """The free-tier redesign allowance is used up."""

    status_code = 402

    def __init__(self, message: str, usage: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.usage = usage

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "upgrade_required": True, "usage": self.usage}


class RateLimitExceeded(LimitExceeded):
    """Too many attempts inside the rate-limit window."""

    status_code = 429

    def __init__(
        self,
        message: str = "Too many requests. Please wait a moment before trying again.",
        attempts_remaining: int = 0,
    ):
        super().__init__(message)
        self.attempts_remaining = attempts_remaining

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "attempts_remaining": self.attempts_remaining}
