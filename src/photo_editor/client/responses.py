"""Classify non-streaming completion bodies into known shapes."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Optional, Union

from ..errors import UnrecognizedResponseShape

_INLINE_IMAGE_RE = re.compile(r"data:image/[^;\s]+;base64,[^\s\"')]+")


@dataclass(frozen=True)
class TextCompletion:
    text: str


@dataclass(frozen=True)
class ImageCompletion:
    image_url: str
    text: Optional[str] = None


CompletionResult = Union[TextCompletion, ImageCompletion]


def classify_completion(body: Any) -> CompletionResult:
    """Map ``choices[0].message`` onto one of the supported result types.

    Recognized shapes, in order:

    * ``message.images[*].image_url.url`` (or ``.url``): image
    * ``message.content`` as a list with an ``image_url`` part: image
    * ``message.content`` as a string embedding a base64 data URI: image
    * ``message.content`` as a non-empty string or text parts: text

    Anything else raises ``UnrecognizedResponseShape``.
    """

    message = _first_message(body)
    text = _message_text(message.get("content"))

    image_url = _image_from_images(message.get("images"))
    if image_url is None:
        image_url = _image_from_parts(message.get("content"))
    if image_url is None and text:
        match = _INLINE_IMAGE_RE.search(text)
        if match:
            image_url = match.group(0)

    if image_url is not None:
        return ImageCompletion(image_url=image_url, text=text or None)
    if text:
        return TextCompletion(text=text)
    raise UnrecognizedResponseShape("The response contained no text or image", body)


def require_image(result: CompletionResult, what: str = "image") -> str:
    if isinstance(result, ImageCompletion):
        return result.image_url
    raise UnrecognizedResponseShape(f"No {what} found in the API response", result)


def require_text(result: CompletionResult, what: str = "text") -> str:
    if isinstance(result, TextCompletion):
        return result.text
    if isinstance(result, ImageCompletion) and result.text:
        return result.text
    raise UnrecognizedResponseShape(f"No {what} found in the API response", result)


def _first_message(body: Any) -> Mapping[str, Any]:
    if not isinstance(body, Mapping):
        raise UnrecognizedResponseShape("Response body is not an object", body)
    choices = body.get("choices")
    if not isinstance(choices, Sequence) or isinstance(choices, str) or not choices:
        raise UnrecognizedResponseShape("Response is missing choices", body)
    container = choices[0]
    if not isinstance(container, Mapping):
        raise UnrecognizedResponseShape("Response is missing a message", body)
    message = container.get("message")
    if not isinstance(message, Mapping):
        raise UnrecognizedResponseShape("Response is missing a message", body)
    return message


def _message_text(content: Any) -> str:
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, Sequence):
        fragments: list[str] = []
        for item in content:
            if not isinstance(item, Mapping):
                continue
            if item.get("type") == "text" and isinstance(item.get("text"), str):
                fragments.append(item["text"])
        return "".join(fragments).strip()
    return ""


def _image_from_images(images: Any) -> Optional[str]:
    if not isinstance(images, Sequence) or isinstance(images, str):
        return None
    for item in images:
        if not isinstance(item, Mapping):
            continue
        url = _url_of(item.get("image_url")) or _url_of(item.get("url"))
        if url:
            return url
    return None


def _image_from_parts(content: Any) -> Optional[str]:
    if not isinstance(content, Sequence) or isinstance(content, str):
        return None
    for part in content:
        if isinstance(part, Mapping) and part.get("type") == "image_url":
            url = _url_of(part.get("image_url"))
            if url:
                return url
    return None


def _url_of(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    if isinstance(value, Mapping):
        url = value.get("url")
        if isinstance(url, str) and url:
            return url
    return None


__all__ = [
    "CompletionResult",
    "ImageCompletion",
    "TextCompletion",
    "classify_completion",
    "require_image",
    "require_text",
]
