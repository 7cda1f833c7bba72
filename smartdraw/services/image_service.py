import io
import base64
import binascii
import logging

from PIL import Image, UnidentifiedImageError

from smartdraw.core.config import settings
from smartdraw.schemas.diagram import ImageAttachment

logger = logging.getLogger(__name__)

SUPPORTED_IMAGE_TYPES = {
    "image/jpeg": "JPEG",
    "image/jpg": "JPEG",
    "image/png": "PNG",
    "image/webp": "WEBP",
    "image/gif": "GIF",
}


def validate_image(content: bytes, mime_type: str) -> None:
    """
    Image validation before anything is sent to a provider:
    1. MIME type must be one of the supported types
    2. Must not be empty or exceed the size limit
    3. Pillow must recognise it, as the declared format
    Raises ValueError with a user-facing message.
    """
    mime_type = (mime_type or "").lower()
    if mime_type not in SUPPORTED_IMAGE_TYPES:
        allowed = ", ".join(sorted({t.split("/")[1] for t in SUPPORTED_IMAGE_TYPES}))
        raise ValueError(f"Unsupported image format '{mime_type}'. Supported: {allowed}")

    if len(content) == 0:
        raise ValueError("Image is empty.")

    max_bytes = settings.MAX_IMAGE_SIZE_MB * 1024 * 1024
    if len(content) > max_bytes:
        raise ValueError(
            f"Image too large ({len(content) / (1024 * 1024):.1f} MB). "
            f"Maximum is {settings.MAX_IMAGE_SIZE_MB} MB."
        )

    try:
        with Image.open(io.BytesIO(content)) as image:
            image.verify()
            detected = image.format
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValueError(f"File is not a readable image: {e}")

    if detected != SUPPORTED_IMAGE_TYPES[mime_type]:
        raise ValueError(f"Image content is {detected}, but was declared as {mime_type}.")


def load_image_attachment(attachment: ImageAttachment) -> ImageAttachment:
    """Decode, validate and return the attachment with a normalised MIME type."""
    data = attachment.data
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]

    # base64 carries 3 bytes per 4 chars; reject before decoding
    if len(data) * 3 // 4 > settings.MAX_IMAGE_SIZE_MB * 1024 * 1024 + 2:
        raise ValueError(f"Image too large. Maximum is {settings.MAX_IMAGE_SIZE_MB} MB.")

    try:
        content = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise ValueError("Image data is not valid base64.")

    mime_type = attachment.mime_type.lower()
    if mime_type == "image/jpg":
        mime_type = "image/jpeg"
    validate_image(content, mime_type)
    logger.info(f"[IMAGE] ✓ Accepted {mime_type} ({len(content)} bytes)")
    return ImageAttachment(data=data, mime_type=mime_type)
