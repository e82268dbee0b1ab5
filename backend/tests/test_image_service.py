"""
ClimbApp Backend — Image Service Unit Tests
===========================================

What:  Tests for base64 decoding and image validation.
How:   Real images generated with Pillow; no files or network.

What we test:
    ✅ Plain base64 and data URLs decode
    ✅ Malformed base64 is rejected with field="image"
    ✅ Empty and oversized images are rejected
    ✅ Formats outside the allowed set are rejected
"""

import base64
import io

import pytest
from PIL import Image

from climbapp.exceptions import ValidationError
from climbapp.services.image_service import ImageService


def encode_image(image_format: str) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), color=(0, 120, 255)).save(buffer, format=image_format)
    return buffer.getvalue()


class TestBase64Decoding:

    def setup_method(self):
        self.service = ImageService()

    def test_decode_plain_base64(self, sample_image_bytes, sample_image_base64):
        assert self.service.decode_base64(sample_image_base64) == sample_image_bytes

    def test_decode_data_url(self, sample_image_bytes, sample_image_base64):
        data_url = f"data:image/png;base64,{sample_image_base64}"
        assert self.service.decode_base64(data_url) == sample_image_bytes

    def test_decode_strips_surrounding_whitespace(self, sample_image_bytes, sample_image_base64):
        assert self.service.decode_base64(f"  {sample_image_base64}\n") == sample_image_bytes

    def test_invalid_base64_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            self.service.decode_base64("this is not base64!")
        assert exc_info.value.field == "image"

    def test_non_base64_data_url_rejected(self):
        with pytest.raises(ValidationError, match="base64-encoded data URLs"):
            self.service.decode_base64("data:image/png,rawbytes")


class TestImageValidation:

    def setup_method(self):
        self.service = ImageService()

    def test_png_accepted(self, sample_image_bytes):
        assert self.service.validate(sample_image_bytes) == "image/png"

    def test_jpeg_accepted(self):
        assert self.service.validate(encode_image("JPEG")) == "image/jpeg"

    def test_empty_image_rejected(self):
        with pytest.raises(ValidationError, match="empty"):
            self.service.validate(b"")

    def test_oversized_image_rejected(self, sample_image_bytes):
        service = ImageService(max_image_size=10)
        with pytest.raises(ValidationError) as exc_info:
            service.validate(sample_image_bytes)
        assert exc_info.value.context["actual_size"] == len(sample_image_bytes)

    def test_unreadable_content_rejected(self):
        with pytest.raises(ValidationError, match="could not be read"):
            self.service.validate(b"definitely not an image")

    def test_unsupported_format_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            self.service.validate(encode_image("TIFF"))
        assert exc_info.value.context["detected_format"] == "TIFF"


class TestDecodeAndValidate:

    def test_returns_bytes_and_mime_type(self, sample_image_bytes, sample_image_base64):
        content, mime_type = ImageService().decode_and_validate(sample_image_base64)
        assert content == sample_image_bytes
        assert mime_type == "image/png"

    def test_base64_of_non_image_rejected(self):
        payload = base64.b64encode(b"hello climbers").decode("ascii")
        with pytest.raises(ValidationError):
            ImageService().decode_and_validate(payload)
