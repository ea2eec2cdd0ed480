"""
System API routes for the landscape designer backend.

Health, environment info, service configuration status and a bounded
in-memory log of recent server errors.
"""

import asyncio
import platform
import sys
import traceback
from collections import deque
from datetime import datetime
from importlib import metadata
from typing import Any, Deque, Dict, Optional

from fastapi import APIRouter

from .app_config import app_config
from .database import db_manager
from .shared.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

MAX_ERROR_LOG = 100

_error_log: Deque[Dict[str, Any]] = deque(maxlen=MAX_ERROR_LOG)

# Set by the startup event; reported by /health
_startup_complete = False


def mark_startup_complete() -> None:
    global _startup_complete
    _startup_complete = True


def log_error(
    endpoint: str,
    message: str,
    level: str = "error",
    details: Optional[str] = None,
    exc: Optional[BaseException] = None,
) -> Dict[str, Any]:
    """Record a server error for /system/errors and write it to the log."""
    entry = {
        "timestamp": datetime.now().isoformat(),
        "endpoint": endpoint,
        "message": message,
        "level": level,
        "details": details,
        "traceback": None,
    }
    if exc is not None:
        entry["traceback"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    _error_log.append(entry)

    log = logger.critical if level == "critical" else logger.error
    log("%s: %s%s", endpoint, message, f" ({details})" if details else "")
    return entry


def _get_package_versions() -> Dict[str, str]:
    """Get versions of key packages."""
    packages = {}
    package_names = [
        "fastapi",
        "uvicorn",
        "pydantic",
        "google-genai",
        "pymongo",
        "cloudinary",
        "httpx",
        "Pillow",
    ]
    for name in package_names:
        try:
            packages[name] = metadata.version(name)
        except metadata.PackageNotFoundError:
            pass
    return packages


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "ready": _startup_complete,
        "message": "landscape designer backend is running",
    }


@router.get("/system/info")
async def system_info():
    """Get system and environment information."""
    return {
        "python": {
            "version": sys.version,
            "platform": sys.platform,
        },
        "system": {
            "os": platform.system(),
            "release": platform.release(),
            "machine": platform.machine(),
        },
        "packages": _get_package_versions(),
    }


@router.get("/system/status")
async def system_status():
    """Which external services are configured, and whether the database answers."""
    services = {
        name: app_config.is_configured(name)
        for name in ("gemini", "cloudinary", "polar")
    }
    return {
        "status": {
            "services": services,
            "database": await asyncio.to_thread(db_manager.ping),
            "data_dir": str(app_config.data_dir),
        },
    }


@router.get("/system/errors")
async def recent_errors(limit: int = 50):
    """Most recent server errors, newest first."""
    entries = list(_error_log)[-limit:] if limit > 0 else []
    return {"errors": list(reversed(entries)), "total": len(_error_log)}


@router.delete("/system/errors")
async def clear_errors():
    _error_log.clear()
    return {"success": True}
