"""
Centralized logging for the landscape designer backend.

All modules log through Python's built-in logging module so that model
failures, ledger refusals and webhook events end up in one stream.

Usage:
    from api.shared.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Redesign completed for %s", user_id)
    logger.warning("Rate limit reached for %s/%s", user_id, action)
    logger.error("Gemini API error: %s", err)
"""

import logging
import os
import sys

_configured = False

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str | None = None) -> None:
    """Configure root logging for the backend.

    Call once at startup (main.py). Subsequent calls are no-ops.

    Args:
        level: Level name. Falls back to ``LANDSCAPE_LOG_LEVEL`` then INFO.
    """
    global _configured
    if _configured:
        return

    level = level or os.environ.get("LANDSCAPE_LOG_LEVEL", "INFO")
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
    # The Google and HTTP client libraries are chatty at INFO
    for noisy in ("httpx", "httpcore", "google_genai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger scoped to the calling module.

    Args:
        name: Module name (typically ``__name__``).
    """
    return logging.getLogger(name)
