"""Static tables of the models offered for image and chat operations."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from .errors import InvalidInput


@dataclass(frozen=True)
class ModelInfo:
    name: str
    description: str

    def asdict(self) -> dict[str, str]:
        return {"name": self.name, "description": self.description}


class ModelRegistry(Mapping[str, ModelInfo]):
    """Read-only mapping from model id to display metadata."""

    def __init__(self, kind: str, models: Mapping[str, ModelInfo]):
        self.kind = kind
        self._models = MappingProxyType(dict(models))

    def __getitem__(self, model_id: str) -> ModelInfo:
        return self._models[model_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._models)

    def __len__(self) -> int:
        return len(self._models)

    def validate(self, model_id: object) -> str:
        """Return ``model_id`` if it is registered, else raise ``InvalidInput``."""

        if not isinstance(model_id, str) or model_id not in self._models:
            raise InvalidInput(f"Unknown {self.kind} model: {model_id!r}")
        return model_id

    def asdict(self) -> dict[str, dict[str, str]]:
        return {model_id: info.asdict() for model_id, info in self._models.items()}


IMAGE_GENERATION_MODELS = ModelRegistry(
    "image",
    {
        "black-forest-labs/flux.2-pro": ModelInfo(
            "FLUX.2 Pro",
            "A high-end image generation and editing model focused on frontier-level "
            "visual quality and reliability. Strong prompt adherence, stable lighting, "
            "sharp textures.",
        ),
        "black-forest-labs/flux.2-flex": ModelInfo(
            "FLUX.2 Flex",
            "Excels at rendering complex text, typography, and fine details. Supports "
            "multi-reference editing in the same unified architecture.",
        ),
        "google/gemini-3-pro-image-preview": ModelInfo(
            "Gemini 3 Pro Image",
            "Google's latest multimodal model with advanced image generation "
            "capabilities and excellent prompt understanding.",
        ),
        "openai/gpt-5-image-mini": ModelInfo(
            "GPT-5 Image Mini",
            "OpenAI's compact image generation model. Fast and efficient with great "
            "quality for most use cases.",
        ),
        "openai/gpt-5-image": ModelInfo(
            "GPT-5 Image",
            "OpenAI's flagship image generation model. Best-in-class quality and "
            "creativity.",
        ),
        "google/gemini-2.5-flash-image": ModelInfo(
            "Gemini 2.5 Flash Image",
            "Google's fast image generation model. Optimized for speed while "
            "maintaining good quality.",
        ),
    },
)

CHAT_MODELS = ModelRegistry(
    "chat",
    {
        "anthropic/claude-sonnet-4.5": ModelInfo(
            "Claude Sonnet 4.5",
            "Anthropic's balanced model. Excellent reasoning with fast response times.",
        ),
        "anthropic/claude-opus-4.5": ModelInfo(
            "Claude Opus 4.5",
            "Anthropic's most capable model. Best for complex analysis and nuanced tasks.",
        ),
        "anthropic/claude-haiku-4.5": ModelInfo(
            "Claude Haiku 4.5",
            "Anthropic's fastest model. Lightning quick responses for simple tasks.",
        ),
        "openai/gpt-5.1": ModelInfo(
            "GPT-5.1",
            "OpenAI's flagship model. State-of-the-art reasoning and knowledge.",
        ),
        "openai/gpt-5.1-chat": ModelInfo(
            "GPT-5.1 Chat",
            "OpenAI's conversational model. Optimized for natural dialogue.",
        ),
        "openai/gpt-5-image-mini": ModelInfo(
            "GPT-5 Image Mini",
            "OpenAI's multimodal model. Can understand and discuss images.",
        ),
        "openai/gpt-4.1": ModelInfo(
            "GPT-4.1",
            "OpenAI's reliable workhorse. Great balance of speed and capability.",
        ),
        "x-ai/grok-4.1-fast": ModelInfo(
            "Grok 4.1 Fast",
            "xAI's fast model. Quick responses with real-time knowledge.",
        ),
        "google/gemini-3-pro-preview": ModelInfo(
            "Gemini 3 Pro",
            "Google's advanced model. Excellent multimodal understanding.",
        ),
        "google/gemini-2.5-pro": ModelInfo(
            "Gemini 2.5 Pro",
            "Google's professional model. Great for detailed analysis.",
        ),
        "google/gemini-2.5-flash": ModelInfo(
            "Gemini 2.5 Flash",
            "Google's fast model. Quick responses with good quality.",
        ),
        "google/gemini-2.5-flash-lite-preview-09-2025": ModelInfo(
            "Gemini 2.5 Flash Lite",
            "Google's lightweight model. Fastest responses for simple queries.",
        ),
    },
)


__all__ = ["CHAT_MODELS", "IMAGE_GENERATION_MODELS", "ModelInfo", "ModelRegistry"]
