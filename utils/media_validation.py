"""Validation helpers for uploaded images."""

import io
from typing import Optional

from PIL import Image, UnidentifiedImageError

from models.errors import ValidationError

# Vector formats Pillow cannot decode; accepted on the declared type alone.
UNSNIFFABLE_IMAGE_TYPES = {
    "image/svg+xml",
}


def normalize_content_type(content_type: Optional[str]) -> str:
    """Lower-case media type without parameters (`image/PNG; q=1` -> `image/png`)."""
    if not content_type:
        return ""
    return content_type.lower().split(";", 1)[0].strip()


def sniff_image_format(data: bytes) -> Optional[str]:
    """Return the Pillow format name for `data`, or None if it is not a readable image."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
            img.verify()
            return fmt
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return None


def validate_image_upload(data: Optional[bytes], content_type: Optional[str], max_bytes: int) -> str:
    """Check an upload before anything is written and return its normalized media type.

    Args:
        data: Raw upload bytes (None when no file was sent).
        content_type: Media type declared by the client.
        max_bytes: Size ceiling.

    Raises:
        ValidationError: If the file is missing, empty, too large, not declared
            as an image, or does not decode as one.
    """
    if data is None:
        raise ValidationError("No file uploaded")
    if not data:
        raise ValidationError("Uploaded file is empty")
    if len(data) > max_bytes:
        raise ValidationError(f"File exceeds the {max_bytes} byte limit")

    media_type = normalize_content_type(content_type)
    if not media_type.startswith("image/"):
        raise ValidationError("Only image files are allowed")

    if media_type not in UNSNIFFABLE_IMAGE_TYPES and sniff_image_format(data) is None:
        raise ValidationError("Uploaded file is not a readable image")
    return media_type
