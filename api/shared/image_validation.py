"""
Upload validation for source photos and layout masks.

Every check runs locally, before the image store or the model is called.
"""

from __future__ import annotations

import base64
import binascii
import io
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from ..constants import MAX_ASPECT_RATIO, MAX_FILE_SIZE_MB, MIN_ASPECT_RATIO
from ..errors import ValidationError

MAX_FILE_SIZE_BYTES = MAX_FILE_SIZE_MB * 1024 * 1024

INVALID_TYPE_MESSAGE = "Please select a valid image file (PNG, JPG, WEBP)."
TOO_LARGE_MESSAGE = f"Image size must not exceed {MAX_FILE_SIZE_MB}MB."
BAD_RATIO_MESSAGE = (
    "Image aspect ratio is too extreme. Please crop it to a more standard "
    "ratio (e.g., 4:3, 16:9) and try again."
)
CORRUPT_MESSAGE = "Could not load the image file. It might be corrupted."


@dataclass
class ValidatedImage:
    """Decoded upload with its measured dimensions."""

    data: bytes
    mime_type: str
    width: int
    height: int

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


def check_aspect_ratio(width: int, height: int) -> None:
    """Raise ValidationError when width:height falls outside [1/3, 3]."""
    if width <= 0 or height <= 0:
        raise ValidationError(CORRUPT_MESSAGE)
    ratio = width / height
    if ratio < MIN_ASPECT_RATIO or ratio > MAX_ASPECT_RATIO:
        raise ValidationError(BAD_RATIO_MESSAGE)


def measure_image(data: bytes) -> Tuple[int, int]:
    """Return (width, height) without decoding the full raster."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.size
    except (UnidentifiedImageError, OSError) as e:
        raise ValidationError(CORRUPT_MESSAGE) from e


def validate_image_bytes(
    data: bytes,
    mime_type: Optional[str],
    max_bytes: int = MAX_FILE_SIZE_BYTES,
) -> ValidatedImage:
    """Validate raw upload bytes: type, size, then aspect ratio.

    Args:
        data: Raw file contents.
        mime_type: Declared content type; must start with ``image/``.
        max_bytes: Size ceiling in bytes.

    Returns:
        ValidatedImage with measured dimensions.

    Raises:
        ValidationError: On the first failed check.
    """
    if not mime_type or not mime_type.startswith("image/"):
        raise ValidationError(INVALID_TYPE_MESSAGE)
    if len(data) > max_bytes:
        raise ValidationError(TOO_LARGE_MESSAGE)
    if not data:
        raise ValidationError("Could not read the image file.")

    width, height = measure_image(data)
    check_aspect_ratio(width, height)
    return ValidatedImage(data=data, mime_type=mime_type, width=width, height=height)


def decode_base64_image(payload: str) -> bytes:
    """Decode a bare base64 string or the payload of a data URL."""
    if payload.startswith("data:"):
        _, _, payload = payload.partition(",")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("There was an error processing the image.") from e


def validate_base64_image(
    payload: str,
    mime_type: Optional[str],
    max_bytes: int = MAX_FILE_SIZE_BYTES,
) -> ValidatedImage:
    """Decode then validate an inline image."""
    return validate_image_bytes(decode_base64_image(payload), mime_type, max_bytes)


def split_data_url(data_url: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Split ``data:<mime>;base64,<payload>`` into (payload, mime).

    A missing or empty payload yields ``(None, None)``. The mime type falls
    back to ``image/png`` when the header does not name one.
    """
    if not data_url:
        return None, None
    header, sep, payload = data_url.partition(",")
    if not sep or not payload:
        return None, None
    mime = "image/png"
    if header.startswith("data:"):
        declared = header[5:].split(";", 1)[0]
        if declared:
            mime = declared
    return payload, mime
