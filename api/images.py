"""Image upload endpoints.

Uploads are validated (type, size, aspect ratio) before they reach the
image store, so rejected photos never cost a network round trip.
"""

from fastapi import APIRouter, File, UploadFile

from .app_config import app_config
from .image_store import image_store
from .schemas import ImageFile
from .shared.image_validation import validate_image_bytes
from .shared.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/images", tags=["images"])


async def _read_validated(file: UploadFile):
    data = await file.read()
    return validate_image_bytes(
        data,
        file.content_type or "",
        app_config.settings.max_upload_mb * 1024 * 1024,
    )


@router.post("/validate")
async def validate_upload(file: UploadFile = File(...)):
    """Check an image without storing it."""
    validated = await _read_validated(file)
    return {
        "valid": True,
        "mime_type": validated.mime_type,
        "width": validated.width,
        "height": validated.height,
        "aspect_ratio": round(validated.aspect_ratio, 3),
    }


@router.post("/upload", response_model=ImageFile)
async def upload(file: UploadFile = File(...)):
    """Validate and store an image; returns the ImageFile the designer sends back."""
    validated = await _read_validated(file)
    uploaded = await image_store.upload_image(validated.data, validated.mime_type)
    logger.info("Stored upload %s (%dx%d)", uploaded.public_id, validated.width, validated.height)
    return ImageFile(
        name=file.filename or uploaded.public_id,
        type=validated.mime_type,
        base64=validated.to_base64(),
        url=uploaded.secure_url,
        public_id=uploaded.public_id,
        width=validated.width,
        height=validated.height,
    )
