"""Error taxonomy shared by the client core and the proxy."""

from __future__ import annotations

import logging
import math
from typing import Any

logger = logging.getLogger(__name__)


class PhotoEditorError(Exception):
    """Base class for every failure surfaced to the UI layer."""


class InvalidInput(PhotoEditorError):
    """Raised for empty or malformed prompts, images or model ids."""


class RateLimitExceeded(PhotoEditorError):
    """Raised when the sliding window has no free slot."""

    def __init__(self, wait_ms: float):
        self.wait_ms = max(0.0, float(wait_ms))
        super().__init__(
            "Rate limit exceeded. Please wait "
            f"{self.wait_seconds} seconds before making another request."
        )

    @property
    def wait_seconds(self) -> int:
        return math.ceil(self.wait_ms / 1000)


class ImageTooLarge(PhotoEditorError):
    """Raised when an image cannot be brought under the byte ceiling."""

    def __init__(self, max_bytes: int, smallest_bytes: int | None = None):
        self.max_bytes = max_bytes
        self.smallest_bytes = smallest_bytes
        detail = f"Image could not be reduced below {max_bytes} bytes"
        if smallest_bytes is not None:
            detail += f" (smallest attempt was {smallest_bytes} bytes)"
        super().__init__(detail)


class StreamUpstreamError(PhotoEditorError):
    """Raised when the upstream signals an error in the middle of a stream."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NetworkFailure(PhotoEditorError):
    """Transport-level failure without a structured response."""


class UpstreamHttpError(PhotoEditorError):
    """Non-2xx response carrying a structured error body."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}")


class UnrecognizedResponseShape(PhotoEditorError):
    """Raised when a completion body matches none of the known shapes."""

    def __init__(self, message: str, payload: Any = None):
        self.payload = payload
        super().__init__(message)


_STATUS_MESSAGES: dict[int, str] = {
    400: "The request was rejected. Please check your prompt and image.",
    401: "The service is not authorized. Please contact the administrator.",
    402: "The service has run out of credits. Please try again later.",
    403: "This request was blocked by the content policy.",
    404: "The selected model is not available.",
    413: "The image is too large to upload.",
    429: "Too many requests. Please wait a moment and try again.",
}


def user_friendly_message(exc: BaseException) -> str:
    """Translate any failure into a message suitable for the end user.

    Raw diagnostics are logged here and never returned.
    """

    if isinstance(exc, RateLimitExceeded):
        return str(exc)
    if isinstance(exc, InvalidInput):
        return str(exc) or "Invalid input provided."
    if isinstance(exc, ImageTooLarge):
        return (
            "The image is too large to process. "
            "Please try a smaller or lower resolution image."
        )
    if isinstance(exc, NetworkFailure):
        logger.debug("Network failure detail: %s", exc)
        return "Network error. Please check your connection and try again."
    if isinstance(exc, UpstreamHttpError):
        logger.debug("Upstream HTTP error detail: %s", exc)
        if exc.status_code in _STATUS_MESSAGES:
            return _STATUS_MESSAGES[exc.status_code]
        if exc.status_code >= 500:
            return "The AI service is temporarily unavailable. Please try again later."
        return exc.message or "The request failed. Please try again."
    if isinstance(exc, StreamUpstreamError):
        logger.debug("Stream error detail: %s", exc.message)
        return f"The AI service reported an error: {exc.message}"
    if isinstance(exc, UnrecognizedResponseShape):
        logger.debug("Unrecognized response: %r", exc.payload)
        return str(exc)
    logger.error("Unexpected error: %s", exc, exc_info=exc)
    return "An unexpected error occurred. Please try again."


__all__ = [
    "ImageTooLarge",
    "InvalidInput",
    "NetworkFailure",
    "PhotoEditorError",
    "RateLimitExceeded",
    "StreamUpstreamError",
    "UnrecognizedResponseShape",
    "UpstreamHttpError",
    "user_friendly_message",
]
