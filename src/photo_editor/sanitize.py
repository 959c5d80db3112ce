"""Text clean-up applied to prompts on both sides of the proxy."""

from __future__ import annotations

import re
from typing import Any

from .errors import InvalidInput

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")


def sanitize_prompt(value: Any, max_length: int = 2000) -> str:
    """Strip control characters, cap the length and trim whitespace.

    Returns an empty string for anything that is not a string.
    """

    if not isinstance(value, str):
        return ""
    return _CONTROL_CHARS_RE.sub("", value)[:max_length].strip()


def require_prompt(value: Any, max_length: int = 2000, *, what: str = "prompt") -> str:
    sanitized = sanitize_prompt(value, max_length)
    if not sanitized:
        raise InvalidInput(f"Invalid {what} provided")
    return sanitized


__all__ = ["require_prompt", "sanitize_prompt"]
