"""OpenRouter client used by the proxy endpoints."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Iterable, Optional

import httpx
from fastapi import status

from .config import Settings

logger = logging.getLogger(__name__)


class OpenRouterError(Exception):
    """Wrap transport or API failures when communicating with OpenRouter."""

    def __init__(self, status_code: int, detail: Any):
        super().__init__(str(detail))
        self.status_code = status_code
        self.detail = detail

    @property
    def message(self) -> str:
        detail = self.detail
        if isinstance(detail, dict):
            message = detail.get("message")
            if isinstance(message, str) and message:
                return message
            return json.dumps(detail)
        if isinstance(detail, str) and detail:
            return detail
        return f"API request failed with status {self.status_code}"


@dataclass
class ServerSentEvent:
    """Represents a parsed Server-Sent Event."""

    data: str
    event: str = "message"
    event_id: Optional[str] = None

    def asdict(self) -> dict[str, Optional[str]]:
        payload: dict[str, Optional[str]] = {"event": self.event, "data": self.data}
        if self.event_id is not None:
            payload["id"] = self.event_id
        return payload


class OpenRouterClient:
    """Forward chat-completion payloads to OpenRouter with the server credential."""

    _client_lock: asyncio.Lock = asyncio.Lock()
    _client_pool: dict[tuple[str, float], httpx.AsyncClient] = {}

    def __init__(
        self,
        settings: Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._settings = settings
        self._transport = transport

    def _client_key(self) -> tuple[str, float]:
        return (self._base_url, float(self._settings.request_timeout))

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._transport is not None:
            # Injected transports are never pooled.
            return httpx.AsyncClient(
                transport=self._transport,
                timeout=self._settings.request_timeout,
            )

        key = self._client_key()
        client = self.__class__._client_pool.get(key)
        if client is not None:
            return client

        async with self.__class__._client_lock:
            client = self.__class__._client_pool.get(key)
            if client is None:
                timeout = httpx.Timeout(self._settings.request_timeout, connect=10.0)
                limits = httpx.Limits(
                    max_connections=50,
                    max_keepalive_connections=20,
                )
                client = httpx.AsyncClient(
                    timeout=timeout,
                    limits=limits,
                    http2=True,
                )
                self.__class__._client_pool[key] = client
        return client

    @property
    def configured(self) -> bool:
        key = self._settings.openrouter_api_key
        return key is not None and bool(key.get_secret_value())

    @property
    def _headers(self) -> dict[str, str]:
        api_key = self._settings.openrouter_api_key
        if api_key is None:
            raise OpenRouterError(
                status.HTTP_500_INTERNAL_SERVER_ERROR, "Server configuration error"
            )
        headers = {
            "Authorization": f"Bearer {api_key.get_secret_value()}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self._settings.openrouter_app_url:
            headers["HTTP-Referer"] = str(self._settings.openrouter_app_url)
        if self._settings.openrouter_app_name:
            headers["X-Title"] = self._settings.openrouter_app_name
        return headers

    @property
    def _base_url(self) -> str:
        """Return the OpenRouter API base URL without a trailing slash."""

        return str(self._settings.openrouter_base_url).rstrip("/")

    async def complete(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Run a non-streaming chat completion and return the raw body."""

        url = f"{self._base_url}/chat/completions"
        headers = self._headers
        body = dict(payload)
        body["stream"] = False

        client = await self._get_http_client()
        try:
            response = await client.post(url, headers=headers, json=body)
        except httpx.HTTPError as exc:
            raise OpenRouterError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc
        finally:
            if self._transport is not None:
                await client.aclose()

        if response.status_code >= 400:
            detail = self._extract_error_detail(response.content)
            logger.error("OpenRouter API error %s: %s", response.status_code, detail)
            raise OpenRouterError(response.status_code, detail)

        try:
            return response.json()
        except ValueError as exc:  # pragma: no cover - unexpected payload
            raise OpenRouterError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

    async def stream_chat_raw(
        self, payload: dict[str, Any]
    ) -> AsyncGenerator[dict[str, Optional[str]], None]:
        """Stream a chat completion back as SSE payload dictionaries."""

        url = f"{self._base_url}/chat/completions"
        headers = dict(self._headers)
        headers["Accept"] = "text/event-stream"
        body = dict(payload)
        body["stream"] = True

        client = await self._get_http_client()
        try:
            async with client.stream(
                "POST",
                url,
                headers=headers,
                json=body,
            ) as response:
                if response.status_code >= 400:
                    raw = await response.aread()
                    detail = self._extract_error_detail(raw)
                    logger.error(
                        "OpenRouter API error %s: %s", response.status_code, detail
                    )
                    raise OpenRouterError(response.status_code, detail)

                async for event in self._iter_events(response):
                    yield event.asdict()
        except httpx.HTTPError as exc:
            raise OpenRouterError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc
        finally:
            if self._transport is not None:
                await client.aclose()

    @classmethod
    async def aclose_shared(cls) -> None:
        async with cls._client_lock:
            clients = list(cls._client_pool.values())
            cls._client_pool.clear()
        for client in clients:
            try:
                await client.aclose()
            except Exception:  # pragma: no cover - best effort cleanup
                logger.debug("Failed to close pooled HTTP client", exc_info=True)

    async def _iter_events(
        self, response: httpx.Response
    ) -> AsyncGenerator[ServerSentEvent, None]:
        buffer: list[str] = []
        async for line in response.aiter_lines():
            if not line:
                if buffer:
                    yield self._parse_event(buffer)
                    buffer.clear()
                continue
            if line.startswith(":"):
                continue
            buffer.append(line)
        if buffer:
            yield self._parse_event(buffer)

    def _parse_event(self, lines: Iterable[str]) -> ServerSentEvent:
        event_name: Optional[str] = None
        event_id: Optional[str] = None
        data_lines: list[str] = []

        for line in lines:
            field, _, value = line.partition(":")
            value = value.lstrip(" ")
            if field == "event":
                event_name = value or None
            elif field == "data":
                data_lines.append(value)
            elif field == "id":
                event_id = value or None

        data = "\n".join(data_lines)
        return ServerSentEvent(
            data=data, event=event_name or "message", event_id=event_id
        )

    @staticmethod
    def _extract_error_detail(raw: bytes) -> Any:
        if not raw:
            return "OpenRouter returned an empty error response."
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            text = raw.decode("utf-8", errors="ignore")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            return text
        if isinstance(payload, dict):
            return payload.get("error") or payload
        return payload


__all__ = ["OpenRouterClient", "OpenRouterError", "ServerSentEvent"]
