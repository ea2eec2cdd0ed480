"""
Per-requester UI state.

Two containers:

- DesignerSession: the in-progress designer inputs, persisted as one JSON
  file per requester under the data folder so a reload restores them.
- AppState: navigation, modal, history-load and confetti flags, kept in memory.
"""

from __future__ import annotations

import hashlib
import json
import threading
from collections import OrderedDict
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from .app_config import app_config
from .constants import DEFAULT_STYLE, DENSITIES
from .schemas import ImageFile, Project
from .shared.logger import get_logger

logger = get_logger(__name__)

PAGES = (
    "main",
    "history",
    "pricing",
    "contact",
    "terms",
    "privacy",
    "profile",
    "fairuse",
    "success",
)

MAX_APP_STATES = 10_000


# ============================================================================
# Designer session
# ============================================================================


class DesignerSession(BaseModel):
    original_image: Optional[ImageFile] = None
    selected_styles: List[str] = Field(default_factory=lambda: [DEFAULT_STYLE])
    allow_structural_changes: bool = False
    climate_zone: str = ""
    lock_aspect_ratio: bool = True
    redesign_density: str = "default"

    @classmethod
    def from_raw(cls, data: Any) -> "DesignerSession":
        """Build a session from a stored blob, migrating old layouts.

        A legacy single ``selected_style`` becomes ``selected_styles``; an
        empty style list falls back to the default style; unknown densities
        fall back to ``default``.
        """
        if not isinstance(data, dict):
            return cls()
        data = dict(data)
        legacy = data.pop("selected_style", None)
        if legacy and not data.get("selected_styles"):
            data["selected_styles"] = [legacy]
        if not data.get("selected_styles"):
            data["selected_styles"] = [DEFAULT_STYLE]
        if data.get("redesign_density") not in DENSITIES:
            data["redesign_density"] = "default"
        if data.get("lock_aspect_ratio") is None:
            data["lock_aspect_ratio"] = True
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            logger.warning("Discarding invalid designer session: %s", e)
            return cls()

    @classmethod
    def from_project(cls, project: Project) -> "DesignerSession":
        """Designer inputs reloaded from a saved project."""
        return cls(
            original_image=ImageFile(
                name=project.title or "project",
                url=project.original_image_url,
                public_id=project.original_image_public_id,
            ),
            selected_styles=list(project.styles) or [DEFAULT_STYLE],
            allow_structural_changes=project.allow_structural_changes,
            climate_zone=project.climate_zone,
            lock_aspect_ratio=True,
            redesign_density=project.redesign_density,
        )


class SessionStore:
    """JSON-file persistence for designer sessions."""

    def __init__(self, base_dir: Optional[Path] = None):
        self._base_dir = base_dir
        self._lock = threading.Lock()

    @property
    def base_dir(self) -> Path:
        path = self._base_dir or (app_config.data_dir / "sessions")
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _path(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]
        return self.base_dir / f"{digest}.json"

    def load(self, key: str) -> DesignerSession:
        """Load a session; missing or corrupted files give the defaults."""
        path = self._path(key)
        if not path.exists():
            return DesignerSession()
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to parse designer session %s: %s", path.name, e)
            return DesignerSession()
        return DesignerSession.from_raw(raw)

    def save(self, key: str, session: DesignerSession) -> DesignerSession:
        path = self._path(key)
        with self._lock:
            tmp = path.with_suffix(".tmp")
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(session.model_dump(), f)
            tmp.replace(path)
        return session

    def update(self, key: str, changes: Dict[str, Any]) -> DesignerSession:
        """Merge changes into the stored session."""
        merged = {**self.load(key).model_dump(), **changes}
        return self.save(key, DesignerSession.from_raw(merged))

    def clear(self, key: str) -> None:
        with self._lock:
            self._path(key).unlink(missing_ok=True)


# ============================================================================
# Application state
# ============================================================================


@dataclass
class AppState:
    page: str = "main"
    is_modal_open: bool = False
    modal_image: Optional[str] = None
    item_to_load: Optional[Dict[str, Any]] = None
    should_trigger_confetti: bool = False

    def navigate_to(self, page: str, trigger_confetti: bool = False) -> None:
        if page not in PAGES:
            raise ValueError(f"Unknown page: {page}")
        self.page = page
        if trigger_confetti:
            self.should_trigger_confetti = True

    def on_confetti_triggered(self) -> None:
        self.should_trigger_confetti = False

    def open_modal(self, image_url: str) -> None:
        self.modal_image = image_url
        self.is_modal_open = True

    def close_modal(self) -> None:
        self.is_modal_open = False
        self.modal_image = None

    def load_item(self, item: Dict[str, Any]) -> None:
        self.item_to_load = item
        self.navigate_to("main")

    def on_item_loaded(self) -> None:
        self.item_to_load = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AppStateRegistry:
    """In-memory AppState per requester, least recently used evicted first."""

    def __init__(self, max_entries: int = MAX_APP_STATES):
        self.max_entries = max_entries
        self._states: "OrderedDict[str, AppState]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> AppState:
        """State for ``key``, created and retained if missing."""
        with self._lock:
            state = self._states.get(key)
            if state is None:
                state = self._states[key] = AppState()
                while len(self._states) > self.max_entries:
                    self._states.popitem(last=False)
            else:
                self._states.move_to_end(key)
            return state

    def peek(self, key: str) -> AppState:
        """State for ``key`` without registering a new entry."""
        with self._lock:
            state = self._states.get(key)
        return state if state is not None else AppState()

    def __len__(self) -> int:
        return len(self._states)

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._states.clear()
            else:
                self._states.pop(key, None)


# Global instances
session_store = SessionStore()
app_states = AppStateRegistry()
