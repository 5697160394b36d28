"""Interpretation of gateway chat-completion responses.

Gateway responses arrive in several shapes depending on the upstream
model.  A generated image may be an ``image_url`` object, a bare string in
``message.images``, or a ``data:`` URI embedded in the text content.  Each
shape is handled by one extractor; :data:`IMAGE_EXTRACTORS` lists them in
priority order and :func:`extract_image` returns the first hit.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any

CONTENT_FILTER_FINISH_REASON = "content_filter"
PROHIBITED_NATIVE_FINISH_REASON = "PROHIBITED_CONTENT"

_REFUSAL_PATTERN = re.compile(r"cannot\s+fulfill|refus", re.IGNORECASE)
_DATA_URI_PATTERN = re.compile(r"data:image/[a-zA-Z+]+;base64,[A-Za-z0-9+/=]+")


def first_choice(payload: Any) -> dict:
    """Return ``choices[0]`` of a response body, or an empty dict."""
    if not isinstance(payload, dict):
        return {}
    choices = payload.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        return choices[0]
    return {}


def choice_message(choice: dict) -> dict:
    message = choice.get("message")
    return message if isinstance(message, dict) else {}


def is_content_filtered(choice: dict) -> bool:
    """Whether the model stopped because of its content-safety filter."""
    return (
        choice.get("finish_reason") == CONTENT_FILTER_FINISH_REASON
        or choice.get("native_finish_reason") == PROHIBITED_NATIVE_FINISH_REASON
    )


def is_refusal(message: dict) -> bool:
    """Whether the message carries a refusal field or refusal wording."""
    if message.get("refusal"):
        return True
    content = message.get("content")
    return isinstance(content, str) and bool(_REFUSAL_PATTERN.search(content))


# ---------------------------------------------------------------------------
# Image extractors.  Each takes the response message and returns an image
# URI or None.
# ---------------------------------------------------------------------------


def _first_image(message: dict) -> Any:
    images = message.get("images")
    if isinstance(images, list) and images:
        return images[0]
    return None


def image_url_object(message: dict) -> str | None:
    """``message.images[0].image_url.url``"""
    image = _first_image(message)
    if isinstance(image, dict):
        image_url = image.get("image_url")
        if isinstance(image_url, dict) and isinstance(image_url.get("url"), str):
            return image_url["url"] or None
    return None


def direct_image_string(message: dict) -> str | None:
    """``message.images[0]`` when it is already a URI string."""
    image = _first_image(message)
    if isinstance(image, str):
        return image or None
    return None


def data_uri_in_content(message: dict) -> str | None:
    """A ``data:image/...;base64,...`` URI inside text content."""
    content = message.get("content")
    if not isinstance(content, str):
        return None
    match = _DATA_URI_PATTERN.search(content)
    return match.group(0) if match else None


IMAGE_EXTRACTORS: tuple[Callable[[dict], str | None], ...] = (
    image_url_object,
    direct_image_string,
    data_uri_in_content,
)


def extract_image(message: dict) -> str | None:
    """Run the extractors in order and return the first image found."""
    for extractor in IMAGE_EXTRACTORS:
        image = extractor(message)
        if image:
            return image
    return None


def message_text(payload: Any) -> str:
    """Return the string content of the first choice, or ``""``."""
    content = choice_message(first_choice(payload)).get("content")
    return content if isinstance(content, str) else ""
