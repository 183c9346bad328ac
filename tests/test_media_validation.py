import pytest

from models.errors import ValidationError
from utils.media_validation import normalize_content_type, sniff_image_format, validate_image_upload


def test_normalize_content_type():
    assert normalize_content_type("Image/PNG; charset=binary") == "image/png"
    assert normalize_content_type(None) == ""


def test_valid_png_is_accepted(png_bytes):
    assert sniff_image_format(png_bytes) == "PNG"
    assert validate_image_upload(png_bytes, "image/png", 1024 * 1024) == "image/png"


@pytest.mark.parametrize(
    "data, content_type, message",
    [
        (None, "image/png", "No file uploaded"),
        (b"", "image/png", "empty"),
        (b"plain text", "text/plain", "Only image files"),
        (b"not really a png", "image/png", "not a readable image"),
    ],
)
def test_invalid_uploads_are_rejected(data, content_type, message):
    with pytest.raises(ValidationError, match=message):
        validate_image_upload(data, content_type, 1024)


def test_oversize_upload_is_rejected(png_bytes):
    with pytest.raises(ValidationError, match="byte limit"):
        validate_image_upload(png_bytes, "image/png", len(png_bytes) - 1)


def test_svg_is_accepted_on_declared_type():
    svg = b'<svg xmlns="http://www.w3.org/2000/svg" width="1" height="1"/>'
    assert validate_image_upload(svg, "image/svg+xml", 1024) == "image/svg+xml"
