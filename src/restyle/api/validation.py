"""Validation of image uploads and edit inputs.

Images travel through the API as ``data:`` URIs, exactly as a browser
``FileReader`` produces them.  Uploads are rejected here, before any
gateway call or disk write, when they are not images or exceed the size
limit.
"""

import base64
import binascii
import io
import logging
import re
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

_DATA_URI_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$", re.DOTALL)

# Pillow format name -> file extension for stored blobs.
_EXTENSIONS = {
    "PNG": "png",
    "JPEG": "jpg",
    "WEBP": "webp",
    "GIF": "gif",
    "BMP": "bmp",
}


class ValidationError(Exception):
    """User-friendly validation error.

    The message is intended to be displayed directly to the user.
    """

    pass


@dataclass
class DecodedImage:
    """An uploaded image that passed validation."""

    data: bytes
    mime_type: str
    extension: str
    width: int
    height: int


def validate_prompt(prompt: str | None) -> str:
    """Return the stripped prompt, rejecting blank input."""
    if not prompt or not prompt.strip():
        raise ValidationError("Please provide a description of the new clothing")
    return prompt.strip()


def validate_image_reference(image: str | None) -> str:
    """Check that an image reference is a ``data:image`` URI or an http(s) URL."""
    if not image or not image.strip():
        raise ValidationError("Please upload an image")
    image = image.strip()
    if image.startswith("data:"):
        if not image.startswith("data:image/"):
            raise ValidationError("Please upload an image file")
    elif not image.startswith(("http://", "https://")):
        raise ValidationError("Image must be a data URI or an http(s) URL")
    return image


def decode_image_data_uri(uri: str, max_bytes: int) -> DecodedImage:
    """Decode and verify a ``data:image/...;base64,...`` upload.

    Args:
        uri: The data URI.
        max_bytes: Largest accepted decoded size.

    Returns:
        The verified :class:`DecodedImage`.

    Raises:
        ValidationError: If the URI is malformed, not an image, too large,
            or not decodable by Pillow.
    """
    match = _DATA_URI_PATTERN.match(uri or "")
    if not match:
        raise ValidationError("Image must be a base64 data URI")

    mime_type = match.group("mime").lower()
    if not mime_type.startswith("image/"):
        raise ValidationError("Please upload an image file")

    try:
        data = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Invalid base64 image data: {e}") from e

    if len(data) > max_bytes:
        raise ValidationError(
            f"Image is too large ({len(data)} bytes, limit {max_bytes} bytes)"
        )

    try:
        with Image.open(io.BytesIO(data)) as image:
            image_format = image.format
            width, height = image.size
            image.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        logger.warning(f"Rejected undecodable upload ({mime_type}): {e}")
        raise ValidationError("File is not a readable image") from e

    extension = _EXTENSIONS.get(image_format or "")
    if extension is None:
        raise ValidationError(f"Unsupported image format: {image_format}")

    return DecodedImage(
        data=data,
        mime_type=mime_type,
        extension=extension,
        width=width,
        height=height,
    )
