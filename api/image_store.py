"""
Cloudinary-backed image store.

Uploads go through the Cloudinary SDK; delivery URLs are plain string
templates over the public id, so building them needs no network call.
"""

from __future__ import annotations

import asyncio
import base64
import io
from typing import Optional, Tuple

import cloudinary
import cloudinary.uploader
import httpx

from .app_config import app_config
from .constants import REDESIGN_SUBFOLDER
from .errors import ImageStoreError
from .schemas import UploadedImage
from .shared.logger import get_logger

logger = get_logger(__name__)

DELIVERY_BASE = "https://res.cloudinary.com"


class ImageStore:
    """Thin wrapper over the Cloudinary upload API."""

    def __init__(self):
        self._configured_for: Optional[Tuple[str, str, str]] = None

    def _configure(self) -> None:
        settings = app_config.settings
        creds = (
            settings.cloudinary_cloud_name,
            settings.cloudinary_api_key,
            settings.cloudinary_api_secret,
        )
        if self._configured_for == creds:
            return
        if not app_config.is_configured("cloudinary"):
            raise ImageStoreError("Image storage is not configured")
        cloudinary.config(
            cloud_name=creds[0],
            api_key=creds[1],
            api_secret=creds[2],
            secure=True,
        )
        self._configured_for = creds

    @property
    def root_folder(self) -> str:
        return app_config.settings.cloudinary_folder

    @property
    def redesign_folder(self) -> str:
        return f"{self.root_folder}/{REDESIGN_SUBFOLDER}"

    # ============================================================================
    # Uploads
    # ============================================================================

    def _upload_sync(self, data: bytes, folder: str) -> dict:
        self._configure()
        return cloudinary.uploader.upload(
            io.BytesIO(data),
            folder=folder,
            resource_type="image",
            unique_filename=True,
        )

    async def upload_image(
        self,
        data: bytes,
        mime_type: str = "image/png",
        folder: Optional[str] = None,
    ) -> UploadedImage:
        """Upload raw image bytes.

        Args:
            data: Encoded image bytes.
            mime_type: Content type, used for logging only; Cloudinary sniffs
                the format itself.
            folder: Target folder. Defaults to the root upload folder.

        Raises:
            ImageStoreError: If the store is unconfigured or the upload fails.
        """
        folder = folder or self.root_folder
        try:
            result = await asyncio.to_thread(self._upload_sync, data, folder)
        except ImageStoreError:
            raise
        except Exception as e:
            logger.error("Upload of %s (%d bytes) to %s failed: %s", mime_type, len(data), folder, e)
            raise ImageStoreError("Failed to upload image to Cloudinary") from e

        logger.info("Uploaded image %s", result.get("public_id"))
        return UploadedImage(
            public_id=result["public_id"],
            secure_url=result["secure_url"],
            width=result.get("width") or 0,
            height=result.get("height") or 0,
            format=result.get("format") or "",
        )

    async def upload_base64(
        self,
        image_base64: str,
        mime_type: str = "image/png",
        folder: Optional[str] = None,
    ) -> UploadedImage:
        return await self.upload_image(base64.b64decode(image_base64), mime_type, folder)

    # ============================================================================
    # Delivery URLs
    # ============================================================================

    def get_optimized_image_url(
        self,
        public_id: str,
        width: int = 800,
        height: int = 600,
        quality: str = "auto",
        format: str = "auto",
    ) -> str:
        cloud = app_config.settings.cloudinary_cloud_name
        return (
            f"{DELIVERY_BASE}/{cloud}/image/upload/"
            f"w_{width},h_{height},c_fill,q_{quality},f_{format}/{public_id}"
        )

    def get_thumbnail_url(self, public_id: str) -> str:
        return self.get_optimized_image_url(public_id, width=300, height=200)

    # ============================================================================
    # Downloads
    # ============================================================================

    async def fetch_image_as_base64(self, url: str) -> Tuple[str, str]:
        """Download a stored image and return ``(base64, mime_type)``."""
        try:
            async with httpx.AsyncClient(timeout=30.0, follow_redirects=True) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Failed to fetch image %s: %s", url, e)
            raise ImageStoreError("Failed to load the stored image") from e

        mime_type = response.headers.get("content-type", "image/jpeg").split(";")[0].strip()
        return base64.b64encode(response.content).decode("ascii"), mime_type


# Global instance
image_store = ImageStore()
