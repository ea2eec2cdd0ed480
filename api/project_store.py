"""
Design project persistence.

Images are uploaded to the image store first; only their URL and public id
are saved on the project document. Every per-project call checks ownership
and reports a foreign or missing project the same way (``None`` / False).
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING

from .database import PROJECTS, db_manager, serialize_doc, to_object_id
from .errors import ValidationError
from .image_store import image_store
from .schemas import DesignCatalog, GeneratedImage, ImageFile, Project, catalog_to_dict
from .shared.logger import get_logger

logger = get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class ProjectStore:
    """CRUD over the ``projects`` collection."""

    @property
    def _projects(self):
        return db_manager.collection(PROJECTS)

    def _owned(self, project_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(project_id)
        if oid is None:
            return None
        return self._projects.find_one({"_id": oid, "user_id": user_id})

    def create_project(
        self,
        user_id: str,
        original_image: ImageFile,
        styles: List[str],
        allow_structural_changes: bool,
        climate_zone: str,
        redesign_density: str,
        title: Optional[str] = None,
    ) -> str:
        """Insert a project for an already-uploaded original image.

        Raises:
            ValidationError: The original image has no store url/public id.
        """
        if not original_image.url or not original_image.public_id:
            raise ValidationError("Original image must be uploaded to Cloudinary first")
        now = _now_ms()
        doc = {
            "user_id": user_id,
            "title": title,
            "original_image_url": original_image.url,
            "original_image_public_id": original_image.public_id,
            "styles": list(styles),
            "allow_structural_changes": allow_structural_changes,
            "climate_zone": climate_zone,
            "redesign_density": redesign_density,
            "is_pinned": False,
            "created_at": now,
            "updated_at": now,
        }
        project_id = str(self._projects.insert_one(doc).inserted_id)
        logger.info("Created project %s for %s", project_id, user_id)
        return project_id

    async def update_project_with_redesign(
        self,
        project_id: str,
        user_id: str,
        result: GeneratedImage,
        catalog: Optional[DesignCatalog] = None,
    ) -> Optional[Project]:
        """Upload the redesigned image and attach it (and the catalog) to the project."""
        if await asyncio.to_thread(self._owned, project_id, user_id) is None:
            return None
        uploaded = await image_store.upload_base64(
            result.image_base64, result.mime_type, folder=image_store.redesign_folder
        )
        update: Dict[str, Any] = {
            "redesigned_image_url": uploaded.secure_url,
            "redesigned_image_public_id": uploaded.public_id,
            "updated_at": _now_ms(),
        }
        if catalog is not None:
            update["catalog"] = catalog_to_dict(catalog)
        await asyncio.to_thread(
            self._projects.update_one, {"_id": to_object_id(project_id)}, {"$set": update}
        )
        return await asyncio.to_thread(self.get_project, project_id, user_id)

    def list_user_projects(self, user_id: str) -> List[Project]:
        """All of the user's projects, newest first."""
        cursor = self._projects.find({"user_id": user_id}).sort("created_at", DESCENDING)
        return [Project.model_validate(serialize_doc(d)) for d in cursor]

    def get_project(self, project_id: str, user_id: str) -> Optional[Project]:
        doc = self._owned(project_id, user_id)
        return Project.model_validate(serialize_doc(doc)) if doc else None

    def toggle_project_pin(self, project_id: str, user_id: str, is_pinned: bool) -> Optional[Project]:
        if self._owned(project_id, user_id) is None:
            return None
        self._projects.update_one(
            {"_id": to_object_id(project_id)},
            {"$set": {"is_pinned": is_pinned, "updated_at": _now_ms()}},
        )
        return self.get_project(project_id, user_id)

    def delete_project(self, project_id: str, user_id: str) -> bool:
        oid = to_object_id(project_id)
        if oid is None:
            return False
        result = self._projects.delete_one({"_id": oid, "user_id": user_id})
        if result.deleted_count:
            logger.info("Deleted project %s", project_id)
        return bool(result.deleted_count)


# Global instance
project_store = ProjectStore()
