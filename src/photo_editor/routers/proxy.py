"""Proxy routes forwarding editor requests to OpenRouter."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from ..config import Settings, get_settings
from ..errors import InvalidInput
from ..model_registry import CHAT_MODELS, IMAGE_GENERATION_MODELS
from ..openrouter import OpenRouterClient, OpenRouterError
from ..schemas.proxy import ChatProxyRequest, ImageProxyRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["proxy"])


def get_openrouter_client(
    settings: Settings = Depends(get_settings),
) -> OpenRouterClient:
    return OpenRouterClient(settings)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.get("/models")
async def list_models() -> Dict[str, Any]:
    return {
        "image": IMAGE_GENERATION_MODELS.asdict(),
        "chat": CHAT_MODELS.asdict(),
    }


@router.post("/chat", response_model=None)
async def chat(
    payload: ChatProxyRequest,
    settings: Settings = Depends(get_settings),
    client: OpenRouterClient = Depends(get_openrouter_client),
) -> Any:
    """Relay a chat completion, streaming it as Server-Sent Events when asked."""

    if not client.configured:
        logger.error("OPENROUTER_API_KEY environment variable is not set")
        return _error(500, "Server configuration error")
    try:
        body = payload.to_openrouter_payload(settings)
    except InvalidInput as exc:
        return _error(400, str(exc))

    if not payload.stream:
        return await _complete(client, body, "Failed to process chat message")

    stream = client.stream_chat_raw(body)
    try:
        # Pull the first event here so upstream HTTP errors become real statuses.
        first_event = await stream.__anext__()
    except StopAsyncIteration:
        first_event = None
    except OpenRouterError as exc:
        await stream.aclose()
        return _error(exc.status_code, exc.message)

    async def event_publisher():
        try:
            if first_event is not None:
                yield first_event
            async for event in stream:
                yield event
        except OpenRouterError as exc:
            logger.error("Stream error: %s", exc.message)
            yield {"event": "message", "data": json.dumps({"error": {"message": exc.message}})}
        finally:
            await stream.aclose()

    return EventSourceResponse(event_publisher())


@router.post("/edit", response_model=None)
async def edit(
    payload: ImageProxyRequest,
    settings: Settings = Depends(get_settings),
    client: OpenRouterClient = Depends(get_openrouter_client),
) -> Any:
    return await _forward(client, settings, payload.edit_payload, "Failed to edit image")


@router.post("/enhance", response_model=None)
async def enhance(
    payload: ImageProxyRequest,
    settings: Settings = Depends(get_settings),
    client: OpenRouterClient = Depends(get_openrouter_client),
) -> Any:
    return await _forward(
        client, settings, payload.enhance_payload, "Failed to enhance prompt"
    )


@router.post("/generate", response_model=None)
async def generate(
    payload: ImageProxyRequest,
    settings: Settings = Depends(get_settings),
    client: OpenRouterClient = Depends(get_openrouter_client),
) -> Any:
    return await _forward(
        client, settings, payload.generate_payload, "Failed to generate image"
    )


@router.post("/analyze", response_model=None)
async def analyze(
    payload: ImageProxyRequest,
    settings: Settings = Depends(get_settings),
    client: OpenRouterClient = Depends(get_openrouter_client),
) -> Any:
    return await _forward(
        client, settings, payload.analyze_payload, "Failed to analyze image"
    )


async def _forward(
    client: OpenRouterClient,
    settings: Settings,
    build: Callable[[Settings], Dict[str, Any]],
    failure_message: str,
) -> Any:
    if not client.configured:
        logger.error("OPENROUTER_API_KEY environment variable is not set")
        return _error(500, "Server configuration error")
    try:
        body = build(settings)
    except InvalidInput as exc:
        return _error(400, str(exc))
    return await _complete(client, body, failure_message)


async def _complete(
    client: OpenRouterClient, body: Dict[str, Any], failure_message: str
) -> Any:
    try:
        return await client.complete(body)
    except OpenRouterError as exc:
        return _error(exc.status_code, exc.message)
    except Exception:  # pragma: no cover - unexpected failure
        logger.exception(failure_message)
        return _error(500, failure_message)


__all__ = ["get_openrouter_client", "router"]
