from __future__ import annotations

import json
from contextlib import aclosing
from typing import Any, AsyncIterator, Callable

import httpx
import pytest

from helpers import make_settings, noise_image_bytes, solid_png_bytes
from photo_editor.client import EditorContext, ImagePayload, PhotoEditorClient
from photo_editor.client.conversation import ConversationTurn
from photo_editor.errors import (
    InvalidInput,
    NetworkFailure,
    RateLimitExceeded,
    StreamUpstreamError,
    UnrecognizedResponseShape,
    UpstreamHttpError,
)

IMAGE_URI = "data:image/png;base64,iVBORw0KGgo="

Handler = Callable[[httpx.Request], httpx.Response]


class RecordingHandler:
    def __init__(self, respond: Handler) -> None:
        self._respond = respond
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._respond(request)

    def json_bodies(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]


def make_client(
    respond: Handler, **settings_overrides: Any
) -> tuple[PhotoEditorClient, RecordingHandler, list[float]]:
    now = [0.0]
    context = EditorContext.from_settings(
        make_settings(**settings_overrides), clock=lambda: now[0]
    )
    handler = RecordingHandler(respond)
    http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://proxy.test"
    )
    return PhotoEditorClient(context, http_client=http_client), handler, now


def sse(*contents: str, done: bool = True) -> bytes:
    frames = [
        f"data: {json.dumps({'choices': [{'delta': {'content': text}}]})}\n\n"
        for text in contents
    ]
    if done:
        frames.append("data: [DONE]\n\n")
    return "".join(frames).encode("utf-8")


def stream_response(body: bytes) -> httpx.Response:
    return httpx.Response(
        200, content=body, headers={"Content-Type": "text/event-stream"}
    )


def completion(message: dict[str, Any]) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": message}]})


class TestChat:
    @pytest.mark.anyio
    async def test_successful_exchange_appends_both_turns(self):
        client, handler, _ = make_client(lambda request: stream_response(sse("Hel", "lo")))
        chunks: list[tuple[str, str]] = []

        reply = await client.send_chat_message(
            "hi", on_chunk=lambda delta, full: chunks.append((delta, full))
        )

        assert reply == "Hello"
        assert chunks == [("Hel", "Hel"), ("lo", "Hello")]
        assert client.chat_history() == (
            ConversationTurn("user", "hi"),
            ConversationTurn("assistant", "Hello"),
        )
        sent = handler.json_bodies()[0]
        assert handler.requests[0].url.path == "/api/chat"
        assert sent["messages"] == [{"role": "user", "content": "hi"}]
        assert sent["stream"] is True
        assert sent["webSearch"] is False
        assert sent["model"] == client.context.chat_model

    @pytest.mark.anyio
    async def test_history_is_sent_with_follow_up(self):
        client, handler, _ = make_client(lambda request: stream_response(sse("ok")))

        await client.send_chat_message("one")
        client.toggle_web_search()
        await client.send_chat_message("two", model="openai/gpt-4.1")

        sent = handler.json_bodies()[1]
        assert [m["content"] for m in sent["messages"]] == ["one", "ok", "two"]
        assert sent["webSearch"] is True
        assert sent["model"] == "openai/gpt-4.1"

    @pytest.mark.anyio
    async def test_http_error_rolls_back_user_turn(self):
        responses = [
            stream_response(sse("ok")),
            httpx.Response(429, json={"error": "Too many requests"}),
        ]
        client, _, _ = make_client(lambda request: responses.pop(0))
        await client.send_chat_message("first")
        before = client.chat_history()

        with pytest.raises(UpstreamHttpError) as excinfo:
            await client.send_chat_message("second")

        assert excinfo.value.status_code == 429
        assert excinfo.value.message == "Too many requests"
        assert client.chat_history() == before

    @pytest.mark.anyio
    async def test_mid_stream_error_rolls_back(self):
        body = sse("partial", done=False) + b'data: {"error":{"message":"boom"}}\n\n'
        client, _, _ = make_client(lambda request: stream_response(body))
        chunks: list[tuple[str, str]] = []

        with pytest.raises(StreamUpstreamError, match="boom"):
            await client.send_chat_message(
                "hi", on_chunk=lambda delta, full: chunks.append((delta, full))
            )

        assert chunks == [("partial", "partial")]
        assert client.chat_history() == ()

    @pytest.mark.anyio
    async def test_transport_failure_becomes_network_failure(self):
        def fail(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client, _, _ = make_client(fail)

        with pytest.raises(NetworkFailure):
            await client.send_chat_message("hi")

        assert client.chat_history() == ()

    @pytest.mark.anyio
    async def test_empty_reply_is_not_recorded(self):
        client, _, _ = make_client(lambda request: stream_response(b"data: [DONE]\n\n"))

        with pytest.raises(StreamUpstreamError, match="No response received"):
            await client.send_chat_message("hi")

        assert client.chat_history() == ()

    @pytest.mark.anyio
    async def test_closing_stream_early_rolls_back(self):
        client, _, _ = make_client(lambda request: stream_response(sse("a", "b", "c")))

        async with aclosing(client.stream_chat("hi")) as deltas:
            async for delta in deltas:
                assert delta == "a"
                break

        assert client.chat_history() == ()

    @pytest.mark.anyio
    async def test_chunked_upstream_is_streamed_incrementally(self):
        async def body() -> AsyncIterator[bytes]:
            yield b'data: {"choices":[{"delta":{"content":"He'
            yield b'llo"}}]}\n\n'
            yield b"data: [DONE]\n\n"

        client, _, _ = make_client(
            lambda request: httpx.Response(200, content=body())
        )

        deltas = [delta async for delta in client.stream_chat("hi")]

        assert deltas == ["Hello"]
        assert client.chat_history()[-1] == ConversationTurn("assistant", "Hello")

    @pytest.mark.anyio
    async def test_invalid_message_is_rejected_before_network(self):
        client, handler, _ = make_client(lambda request: stream_response(sse("x")))

        with pytest.raises(InvalidInput):
            await client.send_chat_message("  \x00\x01 ")

        assert handler.requests == []
        assert client.rate_limit_status().remaining == 10

    @pytest.mark.anyio
    async def test_unknown_model_is_rejected(self):
        client, handler, _ = make_client(lambda request: stream_response(sse("x")))

        with pytest.raises(InvalidInput):
            await client.send_chat_message("hi", model="nobody/unknown")

        assert handler.requests == []

    @pytest.mark.anyio
    async def test_rate_limit_blocks_before_any_state_change(self):
        client, handler, now = make_client(
            lambda request: stream_response(sse("ok")), rate_limit_max_calls=1
        )
        await client.send_chat_message("first")
        before = client.chat_history()

        now[0] = 1_000.0
        with pytest.raises(RateLimitExceeded) as excinfo:
            await client.send_chat_message("second")

        assert excinfo.value.wait_seconds == 59
        assert client.chat_history() == before
        assert len(handler.requests) == 1

        now[0] = 60_000.0
        assert await client.send_chat_message("third") == "ok"


class TestImageOperations:
    @pytest.mark.anyio
    async def test_edit_image_returns_image_from_response(self):
        client, handler, _ = make_client(
            lambda request: completion(
                {"content": "", "images": [{"image_url": {"url": IMAGE_URI}}]}
            )
        )
        source = ImagePayload(data=solid_png_bytes(), mime_type="image/png")

        result = await client.edit_image(source, "make it blue")

        assert result == IMAGE_URI
        sent = handler.json_bodies()[0]
        assert handler.requests[0].url.path == "/api/edit"
        assert sent["prompt"] == "make it blue"
        assert sent["image"] == source.to_data_uri()
        assert sent["model"] == client.context.edit_model

    @pytest.mark.anyio
    async def test_edit_image_shrinks_oversized_upload(self):
        client, handler, _ = make_client(
            lambda request: completion({"images": [{"url": IMAGE_URI}]}),
            image_max_bytes=40_000,
            image_min_dimension=32,
        )
        source = ImagePayload(data=noise_image_bytes((256, 256)), mime_type="image/png")

        await client.edit_image(source.to_data_uri(), "sharpen", model="openai/gpt-5-image")

        sent = handler.json_bodies()[0]
        assert sent["image"].startswith("data:image/jpeg;base64,")
        assert len(sent["image"]) <= 40_000
        assert sent["model"] == "openai/gpt-5-image"

    @pytest.mark.anyio
    async def test_edit_without_image_in_response_fails(self):
        client, _, _ = make_client(
            lambda request: completion({"content": "I cannot edit images."})
        )
        source = ImagePayload(data=solid_png_bytes(), mime_type="image/png")

        with pytest.raises(UnrecognizedResponseShape, match="No edited image"):
            await client.edit_image(source, "make it blue")

    @pytest.mark.anyio
    async def test_generate_image_uses_selected_model(self):
        client, handler, _ = make_client(
            lambda request: completion(
                {"content": [{"type": "image_url", "image_url": {"url": IMAGE_URI}}]}
            )
        )
        client.set_generation_model("google/gemini-2.5-flash-image")

        assert await client.generate_image("a red fox") == IMAGE_URI
        sent = handler.json_bodies()[0]
        assert sent == {"prompt": "a red fox", "model": "google/gemini-2.5-flash-image"}

    @pytest.mark.anyio
    async def test_enhance_prompt_strips_quotes(self):
        client, handler, _ = make_client(
            lambda request: completion({"content": '"A vivid, detailed sunset"'})
        )

        enhanced = await client.enhance_prompt("sunset")

        assert enhanced == "A vivid, detailed sunset"
        assert handler.json_bodies()[0] == {"prompt": "sunset"}

    @pytest.mark.anyio
    async def test_enhance_prompt_includes_image_when_given(self):
        client, handler, _ = make_client(
            lambda request: completion({"content": "Brighter sky"})
        )
        source = ImagePayload(data=solid_png_bytes(), mime_type="image/png")

        await client.enhance_prompt("brighter", image=source)

        assert handler.json_bodies()[0]["image"] == source.to_data_uri()

    @pytest.mark.anyio
    async def test_analyze_image_returns_text(self):
        client, handler, _ = make_client(
            lambda request: completion({"content": "A red square."})
        )
        source = ImagePayload(data=solid_png_bytes(), mime_type="image/png")

        assert await client.analyze_image(source) == "A red square."
        assert handler.requests[0].url.path == "/api/analyze"

    @pytest.mark.anyio
    async def test_server_error_body_is_surfaced(self):
        client, _, _ = make_client(
            lambda request: httpx.Response(400, json={"error": "Invalid image provided"})
        )

        with pytest.raises(UpstreamHttpError) as excinfo:
            await client.generate_image("anything")

        assert excinfo.value.status_code == 400
        assert excinfo.value.message == "Invalid image provided"

    @pytest.mark.anyio
    async def test_non_json_body_is_unrecognized(self):
        client, _, _ = make_client(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(UnrecognizedResponseShape):
            await client.generate_image("anything")

    @pytest.mark.anyio
    async def test_each_operation_consumes_a_slot(self):
        client, _, _ = make_client(
            lambda request: completion({"content": "text"}), rate_limit_max_calls=2
        )

        await client.enhance_prompt("a")
        await client.enhance_prompt("b")

        status = client.rate_limit_status()
        assert status.remaining == 0
        assert status.wait_seconds == 60
        with pytest.raises(RateLimitExceeded):
            await client.enhance_prompt("c")


def test_model_setters_validate_ids():
    client, _, _ = make_client(lambda request: httpx.Response(500))

    client.set_chat_model("google/gemini-2.5-pro")
    assert client.context.chat_model == "google/gemini-2.5-pro"
    with pytest.raises(InvalidInput):
        client.set_edit_model("anthropic/claude-opus-4.5")
    with pytest.raises(InvalidInput):
        client.set_chat_model("")
