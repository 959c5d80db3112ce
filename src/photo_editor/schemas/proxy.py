"""Pydantic models for the proxy endpoints and their OpenRouter payloads."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..config import Settings
from ..errors import InvalidInput
from ..model_registry import CHAT_MODELS, IMAGE_GENERATION_MODELS
from ..sanitize import require_prompt, sanitize_prompt

ENHANCE_SYSTEM_PROMPT = (
    "You are an expert at writing prompts for AI image editing. Your task is to take "
    "a user's simple image editing request and enhance it into a more detailed, "
    "effective prompt that will produce better results. If an image is provided, "
    "tailor your enhanced prompt to make sense for that specific image. Keep the "
    "enhanced prompt concise but specific. Include details about style, quality, and "
    "technique where appropriate. Only respond with the enhanced prompt text "
    "directly - no quotes, no explanations, no additional text."
)

WEB_SEARCH_PLUGIN: Dict[str, Any] = {
    "id": "web",
    "max_results": 5,
    "search_prompt": "Search for relevant and up-to-date information",
}


def _require_image(image: Any) -> str:
    if not isinstance(image, str) or not image.startswith("data:image/"):
        raise InvalidInput("Invalid image provided")
    return image


def _user_content(text: str, image: Optional[str]) -> Any:
    if image is None:
        return text
    return [
        {"type": "text", "text": text},
        {"type": "image_url", "image_url": {"url": image}},
    ]


class ChatTurnPayload(BaseModel):
    """One conversation turn as sent by the client."""

    role: str
    content: Any = None

    model_config = ConfigDict(extra="ignore")


class ChatProxyRequest(BaseModel):
    """Body of ``POST /api/chat``."""

    messages: List[ChatTurnPayload] = Field(default_factory=list)
    model: Optional[str] = None
    stream: bool = True
    web_search: bool = Field(default=False, alias="webSearch")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_openrouter_payload(self, settings: Settings) -> Dict[str, Any]:
        """Sanitize the conversation and build the upstream request body."""

        if not self.messages:
            raise InvalidInput("Invalid messages provided")
        if not self.model:
            raise InvalidInput("Invalid model provided")
        model = CHAT_MODELS.validate(self.model)

        messages: List[Dict[str, str]] = []
        for turn in self.messages:
            content = sanitize_prompt(turn.content, settings.message_max_length)
            if not content:
                continue
            role = "user" if turn.role == "user" else "assistant"
            messages.append({"role": role, "content": content})
        if not messages:
            raise InvalidInput("No valid messages provided")

        payload: Dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": settings.chat_system_prompt},
                *messages,
            ],
            "stream": self.stream,
            "max_tokens": settings.chat_max_tokens,
        }
        if self.web_search:
            payload["plugins"] = [dict(WEB_SEARCH_PLUGIN)]
        return payload


class ImageProxyRequest(BaseModel):
    """Body shared by the edit, enhance, generate and analyze endpoints."""

    prompt: Optional[str] = None
    image: Optional[str] = None
    model: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    def _prompt(self, settings: Settings) -> str:
        return require_prompt(self.prompt, settings.prompt_max_length)

    def _image_model(self, default: str) -> str:
        return IMAGE_GENERATION_MODELS.validate(self.model) if self.model else default

    def edit_payload(self, settings: Settings) -> Dict[str, Any]:
        prompt = self._prompt(settings)
        image = _require_image(self.image)
        return {
            "model": self._image_model(settings.default_edit_model),
            "messages": [{"role": "user", "content": _user_content(prompt, image)}],
            "modalities": ["image", "text"],
        }

    def generate_payload(self, settings: Settings) -> Dict[str, Any]:
        prompt = self._prompt(settings)
        return {
            "model": self._image_model(settings.default_generation_model),
            "messages": [{"role": "user", "content": prompt}],
            "modalities": ["image", "text"],
        }

    def enhance_payload(self, settings: Settings) -> Dict[str, Any]:
        prompt = self._prompt(settings)
        image: Optional[str] = None
        if isinstance(self.image, str) and self.image.startswith("data:image/"):
            image = self.image
        if image is not None:
            text = (
                "Enhance this image editing prompt to be more effective for the "
                f"provided image: {prompt}"
            )
        else:
            text = f"Enhance this image editing prompt to be more effective: {prompt}"
        return {
            "model": settings.enhance_model,
            "messages": [
                {"role": "system", "content": ENHANCE_SYSTEM_PROMPT},
                {"role": "user", "content": _user_content(text, image)},
            ],
        }

    def analyze_payload(self, settings: Settings) -> Dict[str, Any]:
        prompt = self._prompt(settings)
        image = _require_image(self.image)
        return {
            "model": settings.analyze_model,
            "messages": [{"role": "user", "content": _user_content(prompt, image)}],
        }


__all__ = [
    "ChatProxyRequest",
    "ChatTurnPayload",
    "ENHANCE_SYSTEM_PROMPT",
    "ImageProxyRequest",
    "WEB_SEARCH_PLUGIN",
]
