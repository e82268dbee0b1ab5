"""
ClimbApp Backend — Image Decoding & Validation Service
======================================================

What:  Decodes inline base64 images and checks them before they are sent to
       Google Cloud (product search queries, new reference images).
How:   base64 decoding with strict alphabet validation, size limits from
       settings, format detection by parsing the header with Pillow.
Who:   Called by the query, route and target flows.

Validation order (cheapest first):
    1. Base64 decoding  — rejects malformed payloads
    2. Size check       — empty or larger than max_image_size
    3. Format check     — Pillow identifies the image from its header bytes
"""

import base64
import binascii
import io
import logging
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from climbapp.config import settings
from climbapp.exceptions import ValidationError

logger = logging.getLogger(__name__)

# Pillow format name → MIME type; the formats Vision Product Search accepts
ALLOWED_FORMATS = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "BMP": "image/bmp",
    "WEBP": "image/webp",
}

DATA_URL_PREFIX = "data:"


class ImageService:
    """Turns client-supplied image payloads into validated bytes."""

    def __init__(self, max_image_size: Optional[int] = None):
        self.max_image_size = max_image_size or settings.max_image_size

    def decode_base64(self, data: str) -> bytes:
        """
        Decode a base64 string or a `data:<mime>;base64,<payload>` URL.

        Raises:
            ValidationError if the payload is not valid base64.
        """
        payload = data.strip()
        if payload.startswith(DATA_URL_PREFIX):
            header, _, payload = payload.partition(",")
            if not header.endswith(";base64"):
                raise ValidationError(
                    message="Only base64-encoded data URLs are supported.",
                    field="image",
                )

        try:
            return base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValidationError(
                message="Image is not valid base64.",
                field="image",
                context={"error": str(e)},
            )

    def validate_size(self, content: bytes) -> None:
        """Rejects empty images and images above the configured maximum."""
        if not content:
            raise ValidationError(message="Image is empty.", field="image")

        if len(content) > self.max_image_size:
            max_mb = self.max_image_size / (1024 * 1024)
            raise ValidationError(
                message=(
                    f"Image size ({len(content) / (1024 * 1024):.1f}MB) exceeds "
                    f"maximum of {max_mb:.0f}MB."
                ),
                field="image",
                context={"max_size_mb": max_mb, "actual_size": len(content)},
            )

    def validate_format(self, content: bytes) -> str:
        """
        Identify the image format from its content.

        Returns:
            MIME type of the image (e.g. "image/jpeg").

        Raises:
            ValidationError if the bytes are not an image in ALLOWED_FORMATS.
        """
        try:
            with Image.open(io.BytesIO(content)) as img:
                image_format = img.format
        except (UnidentifiedImageError, OSError) as e:
            raise ValidationError(
                message="Image content could not be read. Upload a JPEG or PNG photo.",
                field="image",
                context={"error": str(e)},
            )

        if image_format not in ALLOWED_FORMATS:
            raise ValidationError(
                message=(
                    f"Image format '{image_format}' is not supported. "
                    f"Allowed: {', '.join(sorted(ALLOWED_FORMATS))}"
                ),
                field="image",
                context={"detected_format": image_format},
            )

        return ALLOWED_FORMATS[image_format]

    def validate(self, content: bytes) -> str:
        """Size and format checks; returns the MIME type."""
        self.validate_size(content)
        return self.validate_format(content)

    def decode_and_validate(self, data: str) -> Tuple[bytes, str]:
        """
        Complete pipeline for an inline image.

        Returns:
            Tuple of (image_bytes, mime_type).
        """
        content = self.decode_base64(data)
        mime_type = self.validate(content)
        logger.debug("Decoded %s image (%d bytes)", mime_type, len(content))
        return content, mime_type


image_service = ImageService()
