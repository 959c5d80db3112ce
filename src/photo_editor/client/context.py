"""Per-session state threaded through every client operation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from ..config import Settings
from ..model_registry import CHAT_MODELS, IMAGE_GENERATION_MODELS
from .conversation import ConversationState
from .images import ImagePreparer
from .rate_limiter import SlidingWindowRateLimiter, monotonic_ms


@dataclass
class EditorContext:
    """Session state shared by every client operation, built once per session."""

    settings: Settings
    rate_limiter: SlidingWindowRateLimiter
    image_preparer: ImagePreparer
    chat_model: str
    edit_model: str
    generation_model: str
    conversation: ConversationState = field(default_factory=ConversationState)
    web_search: bool = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        clock: Callable[[], float] = monotonic_ms,
    ) -> "EditorContext":
        return cls(
            settings=settings,
            rate_limiter=SlidingWindowRateLimiter(
                settings.rate_limit_max_calls,
                settings.rate_limit_window_ms,
                clock=clock,
            ),
            image_preparer=ImagePreparer(
                settings.image_max_bytes,
                max_dimension=settings.image_max_dimension,
                min_dimension=settings.image_min_dimension,
                quality_steps=settings.image_quality_steps,
                scale_step=settings.image_scale_step,
            ),
            chat_model=CHAT_MODELS.validate(settings.default_chat_model),
            edit_model=IMAGE_GENERATION_MODELS.validate(settings.default_edit_model),
            generation_model=IMAGE_GENERATION_MODELS.validate(
                settings.default_generation_model
            ),
        )


__all__ = ["EditorContext"]
