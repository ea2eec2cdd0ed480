"""
MongoDB handle shared by the ledger, project and subscription stores.

The client is created lazily from ``DATABASE_URL`` / ``DATABASE_NAME`` so that
importing the API never opens a connection. Tests install an in-memory
database with :meth:`DatabaseManager.use`.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from .app_config import app_config
from .shared.logger import get_logger

logger = get_logger(__name__)

PROJECTS = "projects"
USAGE_TRACKING = "usage_tracking"
DEVICE_SESSIONS = "device_sessions"
RATE_LIMITING = "rate_limiting"
SUBSCRIPTIONS = "subscriptions"

# collection -> [(index name, keys)]
INDEXES = {
    PROJECTS: [
        ("by_user", [("user_id", ASCENDING)]),
        ("by_user_created", [("user_id", ASCENDING), ("created_at", DESCENDING)]),
    ],
    USAGE_TRACKING: [
        ("by_user", [("user_id", ASCENDING)]),
    ],
    DEVICE_SESSIONS: [
        ("by_device", [("device_id", ASCENDING)]),
        ("by_fingerprint", [("device_fingerprint", ASCENDING)]),
    ],
    RATE_LIMITING: [
        ("by_user_action", [("user_id", ASCENDING), ("action", ASCENDING)]),
    ],
    SUBSCRIPTIONS: [
        ("by_user", [("user_id", ASCENDING)]),
        ("by_polar_id", [("polar_subscription_id", ASCENDING)]),
    ],
}


class DatabaseManager:
    """Lazily connected MongoDB database."""

    def __init__(self):
        self._client: Optional[MongoClient] = None
        self._db: Optional[Database] = None

    @property
    def db(self) -> Database:
        if self._db is None:
            settings = app_config.settings
            logger.info("Connecting to MongoDB database '%s'", settings.database_name)
            self._client = MongoClient(settings.database_url, tz_aware=True)
            self._db = self._client[settings.database_name]
        return self._db

    def use(self, db: Database) -> None:
        """Swap in an already-open database (used by tests)."""
        self.close()
        self._db = db

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
        self._client = None
        self._db = None

    def collection(self, name: str):
        return self.db[name]

    def ensure_indexes(self) -> None:
        """Create the lookup indexes every store relies on."""
        for collection, indexes in INDEXES.items():
            for name, keys in indexes:
                self.db[collection].create_index(keys, name=name)
        logger.info("Database indexes ensured")

    def ping(self) -> bool:
        try:
            self.db.command("ping")
            return True
        except Exception as e:
            logger.warning("Database ping failed: %s", e)
            return False


def to_object_id(value: str) -> Optional[ObjectId]:
    """Parse a document id, returning None for malformed ids."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def serialize_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Replace Mongo's ``_id`` with a string ``id``."""
    out = dict(doc)
    oid = out.pop("_id", None)
    if oid is not None:
        out["id"] = str(oid)
    return out


# Global instance
db_manager = DatabaseManager()
