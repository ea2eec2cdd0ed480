"""
Shared utilities for the landscape designer API.

This module contains helpers used across multiple API endpoints.
"""
from .image_validation import (
    ValidatedImage,
    check_aspect_ratio,
    decode_base64_image,
    split_data_url,
    validate_base64_image,
    validate_image_bytes,
)

__all__ = [
    "ValidatedImage",
    "check_aspect_ratio",
    "decode_base64_image",
    "split_data_url",
    "validate_base64_image",
    "validate_image_bytes",
]
