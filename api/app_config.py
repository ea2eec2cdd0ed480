"""
Global configuration manager for the landscape designer backend.

Settings are resolved from (in order of priority):
1. Process environment variables (a ``.env`` file in the working directory
   is loaded first, without overriding variables that are already set)
2. ``app_settings.json`` in the config folder
3. Built-in defaults

The config folder location is:
1. LANDSCAPE_CONFIG environment variable
2. Default platform-specific location (platformdirs user config dir)

Persisted designer sessions live under the data folder:
1. LANDSCAPE_DATA_DIR environment variable
2. Default platform-specific location (platformdirs user data dir)
"""

import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import platformdirs
from dotenv import load_dotenv

from .shared.logger import get_logger

logger = get_logger(__name__)

APP_NAME = "landscape-designer"
APP_AUTHOR = "landscape-designer"
_SETTINGS_FILE_NAME = "app_settings.json"


@dataclass
class AppSettings:
    """Resolved service settings."""

    # Generative model
    gemini_api_key: str = ""
    design_model: str = "gemini-2.5-flash-image"
    text_model: str = "gemini-2.5-flash"
    element_image_model: str = "imagen-4.0-generate-001"

    # Object storage
    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""
    cloudinary_folder: str = "ai-landscape-designer"

    # Document database
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "landscape_designer"

    # Payments
    polar_access_token: str = ""
    polar_server: str = "sandbox"
    polar_webhook_secret: str = ""

    # Web
    app_base_url: str = "http://localhost:5173"
    max_upload_mb: int = 10
    log_level: str = "INFO"

    def to_dict(self, redact: bool = True) -> Dict[str, Any]:
        data = asdict(self)
        if redact:
            for key in _SECRET_FIELDS:
                if data.get(key):
                    data[key] = "***"
        return data


# Field name -> environment variable
_ENV_VARS = {
    "gemini_api_key": "GEMINI_API_KEY",
    "design_model": "LANDSCAPE_DESIGN_MODEL",
    "text_model": "LANDSCAPE_TEXT_MODEL",
    "element_image_model": "LANDSCAPE_ELEMENT_IMAGE_MODEL",
    "cloudinary_cloud_name": "CLOUDINARY_CLOUD_NAME",
    "cloudinary_api_key": "CLOUDINARY_API_KEY",
    "cloudinary_api_secret": "CLOUDINARY_API_SECRET",
    "cloudinary_folder": "CLOUDINARY_FOLDER",
    "database_url": "DATABASE_URL",
    "database_name": "DATABASE_NAME",
    "polar_access_token": "POLAR_ACCESS_TOKEN",
    "polar_server": "POLAR_SERVER",
    "polar_webhook_secret": "POLAR_WEBHOOK_SECRET",
    "app_base_url": "APP_BASE_URL",
    "max_upload_mb": "LANDSCAPE_MAX_UPLOAD_MB",
    "log_level": "LANDSCAPE_LOG_LEVEL",
}

_SECRET_FIELDS = (
    "gemini_api_key",
    "cloudinary_api_secret",
    "polar_access_token",
    "polar_webhook_secret",
)

# Services and the settings each one needs
_REQUIRED_BY_SERVICE = {
    "gemini": ("gemini_api_key",),
    "cloudinary": ("cloudinary_cloud_name", "cloudinary_api_key", "cloudinary_api_secret"),
    "polar": ("polar_access_token",),
}


class AppConfigManager:
    """Loads and caches service settings.

    The manager also answers free-form lookups (``lookup``) for keys that are
    not part of :class:`AppSettings`, such as per-plan checkout price ids.
    """

    def __init__(self):
        load_dotenv(override=False)
        self._config_dir = self._get_config_dir()
        self._settings_path = self._config_dir / _SETTINGS_FILE_NAME
        self._data_dir = self._get_data_dir()
        self._file_values: Dict[str, Any] = {}
        self._settings = self._load()

    def _get_config_dir(self) -> Path:
        env_config = os.environ.get("LANDSCAPE_CONFIG")
        if env_config:
            return Path(env_config)
        return Path(platformdirs.user_config_dir(APP_NAME, APP_AUTHOR))

    def _get_data_dir(self) -> Path:
        env_data = os.environ.get("LANDSCAPE_DATA_DIR")
        if env_data:
            return Path(env_data)
        return Path(platformdirs.user_data_dir(APP_NAME, APP_AUTHOR))

    def _read_settings_file(self) -> Dict[str, Any]:
        """Load app_settings.json, returning an empty dict when absent or unreadable."""
        if not self._settings_path.exists():
            return {}
        try:
            with open(self._settings_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if isinstance(data, dict):
                return data
            logger.warning("Ignoring %s: top-level value is not an object", self._settings_path)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to load app settings from %s: %s", self._settings_path, e)
        return {}

    def _load(self) -> AppSettings:
        self._file_values = self._read_settings_file()
        values: Dict[str, Any] = {}
        for f in fields(AppSettings):
            raw = os.environ.get(_ENV_VARS[f.name])
            if raw is None:
                raw = self._file_values.get(f.name)
            if raw is None:
                continue
            if f.type in (int, "int"):
                try:
                    values[f.name] = int(raw)
                except (TypeError, ValueError):
                    logger.warning("Invalid integer for %s: %r, using default", f.name, raw)
                continue
            values[f.name] = str(raw)
        return AppSettings(**values)

    # ============================================================================
    # Accessors
    # ============================================================================

    @property
    def settings(self) -> AppSettings:
        return self._settings

    @property
    def config_dir(self) -> Path:
        return self._config_dir

    @property
    def data_dir(self) -> Path:
        """Data folder, created on first access."""
        self._data_dir.mkdir(parents=True, exist_ok=True)
        return self._data_dir

    def reload(self) -> AppSettings:
        """Re-read environment and settings file."""
        self._config_dir = self._get_config_dir()
        self._settings_path = self._config_dir / _SETTINGS_FILE_NAME
        self._data_dir = self._get_data_dir()
        self._settings = self._load()
        return self._settings

    def lookup(self, key: str) -> Optional[str]:
        """Look up a free-form setting by its environment variable name.

        The environment wins over ``app_settings.json``; the file may hold the
        key either verbatim or lower-cased.
        """
        value = os.environ.get(key)
        if value:
            return value
        value = self._file_values.get(key) or self._file_values.get(key.lower())
        return str(value) if value else None

    def is_configured(self, service: str) -> bool:
        """Whether every setting a service needs is present."""
        required = _REQUIRED_BY_SERVICE.get(service)
        if required is None:
            raise ValueError(f"Unknown service: {service}")
        return all(getattr(self._settings, name) for name in required)


# Global instance
app_config = AppConfigManager()
