"""
Tests for upload validation (type, size, aspect ratio) and data URL handling.

Run with: pytest tests/test_image_validation.py -v
"""

import base64

import pytest

from api.errors import ValidationError
from api.shared.image_validation import (
    BAD_RATIO_MESSAGE,
    CORRUPT_MESSAGE,
    INVALID_TYPE_MESSAGE,
    TOO_LARGE_MESSAGE,
    check_aspect_ratio,
    decode_base64_image,
    split_data_url,
    validate_base64_image,
    validate_image_bytes,
)

from conftest import make_png


class TestAspectRatio:
    @pytest.mark.parametrize("width,height", [(1000, 1000), (3000, 1000), (1000, 3000), (1600, 900)])
    def test_accepted_ratios(self, width, height):
        check_aspect_ratio(width, height)

    @pytest.mark.parametrize("width,height", [(4000, 1000), (1000, 4000), (3001, 1000)])
    def test_extreme_ratios_rejected(self, width, height):
        with pytest.raises(ValidationError) as exc_info:
            check_aspect_ratio(width, height)
        assert exc_info.value.message == BAD_RATIO_MESSAGE

    def test_zero_dimension_is_corrupt(self):
        with pytest.raises(ValidationError) as exc_info:
            check_aspect_ratio(0, 100)
        assert exc_info.value.message == CORRUPT_MESSAGE


class TestValidateImageBytes:
    def test_valid_png(self, png_bytes):
        validated = validate_image_bytes(png_bytes, "image/png")
        assert (validated.width, validated.height) == (400, 300)
        assert validated.aspect_ratio == pytest.approx(4 / 3)
        assert base64.b64decode(validated.to_base64()) == png_bytes

    def test_type_checked_first(self):
        # Oversized non-image: the type message wins
        with pytest.raises(ValidationError) as exc_info:
            validate_image_bytes(b"x" * 100, "application/pdf", max_bytes=10)
        assert exc_info.value.message == INVALID_TYPE_MESSAGE

    def test_size_limit(self, png_bytes):
        with pytest.raises(ValidationError) as exc_info:
            validate_image_bytes(png_bytes, "image/png", max_bytes=len(png_bytes) - 1)
        assert exc_info.value.message == TOO_LARGE_MESSAGE

    def test_corrupt_bytes(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_image_bytes(b"not an image", "image/jpeg")
        assert exc_info.value.message == CORRUPT_MESSAGE

    def test_extreme_ratio(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_image_bytes(make_png(4000, 1000), "image/png")
        assert exc_info.value.message == BAD_RATIO_MESSAGE

    def test_status_code(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_image_bytes(b"", None)
        assert exc_info.value.status_code == 400


class TestBase64:
    def test_decode_data_url(self, png_bytes, png_base64):
        assert decode_base64_image(f"data:image/png;base64,{png_base64}") == png_bytes

    def test_decode_invalid(self):
        with pytest.raises(ValidationError):
            decode_base64_image("***not base64***")

    def test_validate_base64_image(self, png_base64):
        validated = validate_base64_image(png_base64, "image/png")
        assert validated.width == 400


class TestSplitDataUrl:
    def test_split(self):
        assert split_data_url("data:image/jpeg;base64,QUJD") == ("QUJD", "image/jpeg")

    def test_missing_mime_defaults_to_png(self):
        assert split_data_url("data:;base64,QUJD") == ("QUJD", "image/png")

    @pytest.mark.parametrize("value", [None, "", "data:image/png;base64,", "no-comma"])
    def test_empty_payload(self, value):
        assert split_data_url(value) == (None, None)
