"""Client for the photo editor proxy endpoints."""

from __future__ import annotations

import json
import logging
from contextlib import aclosing
from typing import Any, AsyncGenerator, Callable, Optional

import httpx

from ..errors import (
    InvalidInput,
    NetworkFailure,
    PhotoEditorError,
    StreamUpstreamError,
    UnrecognizedResponseShape,
    UpstreamHttpError,
)
from ..model_registry import CHAT_MODELS, IMAGE_GENERATION_MODELS, ModelRegistry
from ..sanitize import require_prompt
from .context import EditorContext
from .conversation import ConversationTurn
from .images import ImagePayload
from .rate_limiter import RateLimitStatus
from .responses import classify_completion, require_image, require_text
from .stream_decoder import decode_stream

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str, str], None]

DEFAULT_ANALYSIS_PROMPT = "Analyze this image and describe its content and quality"


class PhotoEditorClient:
    """Rate-limited access to chat, edit, enhance and generate operations."""

    def __init__(
        self,
        context: EditorContext,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._context = context
        self._http_client = http_client
        self._owns_client = http_client is None
        self._exchange_active = False

    @property
    def context(self) -> EditorContext:
        return self._context

    async def __aenter__(self) -> "PhotoEditorClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            settings = self._context.settings
            self._http_client = httpx.AsyncClient(
                base_url=str(settings.proxy_url).rstrip("/"),
                timeout=httpx.Timeout(settings.request_timeout, connect=10.0),
            )
        return self._http_client

    # ------------------------------------------------------------------
    # Model selection and session state
    # ------------------------------------------------------------------

    @staticmethod
    def available_models() -> ModelRegistry:
        return IMAGE_GENERATION_MODELS

    @staticmethod
    def available_chat_models() -> ModelRegistry:
        return CHAT_MODELS

    def set_generation_model(self, model_id: str) -> None:
        self._context.generation_model = IMAGE_GENERATION_MODELS.validate(model_id)

    def set_edit_model(self, model_id: str) -> None:
        self._context.edit_model = IMAGE_GENERATION_MODELS.validate(model_id)

    def set_chat_model(self, model_id: str) -> None:
        self._context.chat_model = CHAT_MODELS.validate(model_id)

    def set_web_search(self, enabled: bool) -> None:
        self._context.web_search = bool(enabled)

    def toggle_web_search(self) -> bool:
        self._context.web_search = not self._context.web_search
        return self._context.web_search

    def chat_history(self) -> tuple[ConversationTurn, ...]:
        return self._context.conversation.snapshot()

    def clear_chat_history(self) -> None:
        self._context.conversation.clear()

    def rate_limit_status(self) -> RateLimitStatus:
        return self._context.rate_limiter.status()

    # ------------------------------------------------------------------
    # Image operations
    # ------------------------------------------------------------------

    async def analyze_image(
        self,
        image: ImagePayload | str,
        prompt: str = DEFAULT_ANALYSIS_PROMPT,
    ) -> str:
        """Return the model's description of ``image``."""

        text = self._prompt(prompt)
        payload = _coerce_image(image)
        self._context.rate_limiter.acquire()
        try:
            prepared = await self._context.image_preparer.prepare(payload)
            body = await self._post_json(
                "/api/analyze",
                {"prompt": text, "image": prepared.to_data_uri()},
            )
            return require_text(classify_completion(body), "analysis")
        except PhotoEditorError as exc:
            logger.error("Error analyzing image: %s", exc)
            raise

    async def edit_image(
        self,
        image: ImagePayload | str,
        prompt: str,
        model: Optional[str] = None,
    ) -> str:
        """Apply ``prompt`` to ``image`` and return the edited image as a data URI."""

        text = self._prompt(prompt)
        selected = (
            IMAGE_GENERATION_MODELS.validate(model)
            if model
            else self._context.edit_model
        )
        payload = _coerce_image(image)
        self._context.rate_limiter.acquire()
        try:
            prepared = await self._context.image_preparer.prepare(payload)
            body = await self._post_json(
                "/api/edit",
                {
                    "prompt": text,
                    "image": prepared.to_data_uri(),
                    "model": selected,
                },
            )
            return require_image(classify_completion(body), "edited image")
        except PhotoEditorError as exc:
            logger.error("Error editing image: %s", exc)
            raise

    async def enhance_prompt(
        self,
        prompt: str,
        image: ImagePayload | str | None = None,
    ) -> str:
        """Rewrite ``prompt`` into a more detailed editing instruction."""

        text = self._prompt(prompt)
        payload = _coerce_image(image) if image is not None else None
        self._context.rate_limiter.acquire()
        try:
            request_body: dict[str, Any] = {"prompt": text}
            if payload is not None:
                prepared = await self._context.image_preparer.prepare(payload)
                request_body["image"] = prepared.to_data_uri()
            body = await self._post_json("/api/enhance", request_body)
            enhanced = require_text(classify_completion(body), "enhanced prompt")
        except PhotoEditorError as exc:
            logger.error("Error enhancing prompt: %s", exc)
            raise
        return _strip_quotes(enhanced)

    async def generate_image(self, prompt: str, model: Optional[str] = None) -> str:
        """Generate an image from ``prompt`` and return it as a data URI."""

        text = self._prompt(prompt)
        selected = (
            IMAGE_GENERATION_MODELS.validate(model)
            if model
            else self._context.generation_model
        )
        self._context.rate_limiter.acquire()
        try:
            body = await self._post_json(
                "/api/generate",
                {"prompt": text, "model": selected},
            )
            return require_image(classify_completion(body), "generated image")
        except PhotoEditorError as exc:
            logger.error("Error generating image: %s", exc)
            raise

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def stream_chat(
        self, message: str, model: Optional[str] = None
    ) -> AsyncGenerator[str, None]:
        """Send ``message`` and yield the assistant reply as it streams in.

        The user turn is appended before the request and the assistant turn
        only after the stream completes. Any failure, or the caller closing
        the generator early, rolls the user turn back.
        """

        settings = self._context.settings
        text = require_prompt(message, settings.message_max_length, what="message")
        selected = CHAT_MODELS.validate(model) if model else self._context.chat_model
        self._context.rate_limiter.acquire()

        if self._exchange_active:
            logger.warning(
                "Chat exchange started while another is in flight; "
                "conversation turns may interleave"
            )
        self._exchange_active = True

        conversation = self._context.conversation
        conversation.append_user(text)
        request_body = {
            "messages": conversation.to_messages(),
            "model": selected,
            "stream": True,
            "webSearch": self._context.web_search,
        }

        fragments: list[str] = []
        completed = False
        try:
            client = self._get_http_client()
            async with client.stream(
                "POST",
                "/api/chat",
                json=request_body,
                headers={"Accept": "text/event-stream"},
            ) as response:
                if response.status_code >= 400:
                    raw = await response.aread()
                    raise UpstreamHttpError(
                        response.status_code,
                        _extract_error_detail(raw, response.status_code),
                    )
                async with aclosing(decode_stream(response.aiter_bytes())) as deltas:
                    async for delta in deltas:
                        fragments.append(delta)
                        yield delta

            full_content = "".join(fragments)
            if not full_content:
                raise StreamUpstreamError("No response received")
            conversation.append_assistant(full_content)
            completed = True
        except httpx.HTTPError as exc:
            logger.error("Error sending chat message: %s", exc)
            raise NetworkFailure(str(exc)) from exc
        except PhotoEditorError as exc:
            logger.error("Error sending chat message: %s", exc)
            raise
        finally:
            self._exchange_active = False
            if not completed:
                conversation.rollback_last_user()

    async def send_chat_message(
        self,
        message: str,
        on_chunk: Optional[ChunkCallback] = None,
        model: Optional[str] = None,
    ) -> str:
        """Run a full chat exchange, reporting ``(delta, full_text)`` to ``on_chunk``."""

        full_content = ""
        async with aclosing(self.stream_chat(message, model)) as deltas:
            async for delta in deltas:
                full_content += delta
                if on_chunk is not None:
                    on_chunk(delta, full_content)
        return full_content

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _prompt(self, prompt: Any) -> str:
        return require_prompt(prompt, self._context.settings.prompt_max_length)

    async def _post_json(self, path: str, body: dict[str, Any]) -> Any:
        client = self._get_http_client()
        try:
            response = await client.post(path, json=body)
        except httpx.HTTPError as exc:
            raise NetworkFailure(str(exc)) from exc

        if response.status_code >= 400:
            detail = _extract_error_detail(response.content, response.status_code)
            raise UpstreamHttpError(response.status_code, detail)

        try:
            return response.json()
        except ValueError as exc:
            raise UnrecognizedResponseShape(
                "Response body is not valid JSON", response.text
            ) from exc


def _coerce_image(image: ImagePayload | str) -> ImagePayload:
    if isinstance(image, ImagePayload):
        return image
    if isinstance(image, str):
        return ImagePayload.from_data_uri(image)
    raise InvalidInput("Invalid image provided")


def _strip_quotes(text: str) -> str:
    enhanced = text.strip()
    if len(enhanced) >= 2 and enhanced[0] == enhanced[-1] and enhanced[0] in "\"'":
        enhanced = enhanced[1:-1]
    return enhanced


def _extract_error_detail(raw: bytes, status_code: int) -> str:
    fallback = f"API request failed with status {status_code}"
    if not raw:
        return fallback
    text = raw.decode("utf-8", errors="ignore")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return text.strip() or fallback
    if isinstance(payload, dict):
        for key in ("error", "detail"):
            value = payload.get(key)
            if isinstance(value, dict):
                value = value.get("message")
            if isinstance(value, str) and value:
                return value
    return fallback


__all__ = ["ChunkCallback", "DEFAULT_ANALYSIS_PROMPT", "PhotoEditorClient"]
