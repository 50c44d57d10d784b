import io
import logging
from typing import Optional

from PIL import Image, UnidentifiedImageError

from shelf_catalog.config import MAX_IMAGE_BYTES
from shelf_catalog.errors import ImageValidationError

logger = logging.getLogger(__name__)

_SIGNATURES = (
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


def detect_mime_type(data: bytes) -> Optional[str]:
    """Sniff the image type from its magic bytes."""
    if not data:
        return None
    for magic, mime in _SIGNATURES:
        if data.startswith(magic):
            return mime
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def validate_image(data: bytes, max_bytes: int = MAX_IMAGE_BYTES) -> str:
    """Check an uploaded image before any external call is made.

    Returns the detected MIME type, or raises ImageValidationError with one of
    INVALID_IMAGE, IMAGE_TOO_LARGE or CORRUPT_IMAGE.
    """
    if not data:
        raise ImageValidationError("INVALID_IMAGE", "Image is empty")
    if len(data) > max_bytes:
        raise ImageValidationError("IMAGE_TOO_LARGE")
    mime = detect_mime_type(data)
    if mime is None:
        raise ImageValidationError("INVALID_IMAGE")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        logger.info("Image failed verification: %s", exc)
        raise ImageValidationError("CORRUPT_IMAGE") from exc
    return mime
