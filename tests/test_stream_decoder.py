"""Tests for incremental SSE decoding."""

from __future__ import annotations

import json
from typing import AsyncIterator

import pytest

from photo_editor.client.stream_decoder import (
    DecoderState,
    StreamDecoder,
    decode_stream,
)
from photo_editor.errors import StreamUpstreamError


def frame(content: str) -> bytes:
    payload = {"choices": [{"delta": {"content": content}}]}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode("utf-8")


class TestFeed:
    def test_reassembles_frame_split_across_chunks(self):
        decoder = StreamDecoder()

        first = decoder.feed(b'data: {"choices":[{"delta":{"content":"He')
        second = decoder.feed(b'llo"}}]}\n\n')

        assert first == []
        assert decoder.state is DecoderState.BUFFERING
        assert second == ["Hello"]

    def test_output_is_independent_of_chunk_boundaries(self):
        stream = frame("Hel") + frame("lo, ") + frame("wörld") + b"data: [DONE]\n\n"

        whole = StreamDecoder().feed(stream)
        bytewise_decoder = StreamDecoder()
        bytewise: list[str] = []
        for index in range(len(stream)):
            bytewise.extend(bytewise_decoder.feed(stream[index : index + 1]))

        assert whole == ["Hel", "lo, ", "wörld"]
        assert bytewise == whole

    def test_multibyte_character_split_between_chunks(self):
        data = frame("é")
        split = data.index("é".encode("utf-8")) + 1
        decoder = StreamDecoder()

        assert decoder.feed(data[:split]) == []
        assert decoder.feed(data[split:]) == ["é"]

    def test_ignores_comments_blank_lines_and_other_fields(self):
        decoder = StreamDecoder()
        chunk = (
            b": OPENROUTER PROCESSING\r\n"
            b"\r\n"
            b"event: message\r\n"
            b"id: 42\r\n"
            b'data: {"choices":[{"delta":{"content":"ok"}}]}\r\n'
            b"\r\n"
        )

        assert decoder.feed(chunk) == ["ok"]

    def test_accepts_data_field_without_space(self):
        decoder = StreamDecoder()
        assert decoder.feed(b'data:{"choices":[{"delta":{"content":"x"}}]}\n') == ["x"]

    def test_skips_frames_without_text(self):
        decoder = StreamDecoder()
        chunk = (
            b'data: {"choices":[{"delta":{"role":"assistant"}}]}\n'
            b'data: {"choices":[{"delta":{"content":""}}]}\n'
            b'data: {"choices":[]}\n'
            b'data: {"usage":{"total_tokens":3}}\n'
            b"data: 42\n"
        )

        assert decoder.feed(chunk) == []
        assert decoder.state is DecoderState.BUFFERING

    def test_malformed_json_is_not_fatal(self):
        decoder = StreamDecoder()
        chunk = b"data: {not json\n" + frame("still here")

        assert decoder.feed(chunk) == ["still here"]

    def test_sink_receives_each_delta_immediately(self):
        received: list[str] = []
        decoder = StreamDecoder(sink=received.append)

        decoder.feed(frame("a"))
        assert received == ["a"]
        decoder.feed(frame("b"))
        assert received == ["a", "b"]


class TestTermination:
    def test_sentinel_ends_production(self):
        decoder = StreamDecoder()

        deltas = decoder.feed(frame("one") + b"data: [DONE]\n\n" + frame("two"))

        assert deltas == ["one"]
        assert decoder.state is DecoderState.DONE
        assert decoder.finished

    def test_bytes_after_sentinel_are_ignored(self):
        received: list[str] = []
        decoder = StreamDecoder(sink=received.append)
        decoder.feed(b"data: [DONE]\n")

        assert decoder.feed(frame("late")) == []
        assert decoder.close() == []
        assert received == []
        assert decoder.state is DecoderState.DONE

    def test_close_flushes_unterminated_last_line(self):
        decoder = StreamDecoder()
        assert decoder.feed(b'data: {"choices":[{"delta":{"content":"tail"}}]}') == []

        assert decoder.close() == ["tail"]
        assert decoder.state is DecoderState.DONE

    def test_deltas_before_error_frame_are_kept(self):
        received: list[str] = []
        decoder = StreamDecoder(sink=received.append)

        deltas = decoder.feed(
            frame("partial")
            + b'data: {"error":{"message":"model overloaded","code":502}}\n'
            + frame("never")
        )

        assert deltas == ["partial"]
        assert received == ["partial"]
        assert decoder.state is DecoderState.ERRORED
        assert decoder.error is not None

        with pytest.raises(StreamUpstreamError) as excinfo:
            decoder.feed(frame("more"))

        assert excinfo.value.message == "model overloaded"
        assert decoder.feed(frame("more")) == []

    def test_error_without_message_uses_generic_text(self):
        decoder = StreamDecoder()
        assert decoder.feed(b'data: {"error":{"code":500}}\n') == []

        with pytest.raises(StreamUpstreamError, match="Stream error"):
            decoder.close()

    def test_error_in_unterminated_last_line_is_raised(self):
        decoder = StreamDecoder()
        decoder.feed(b'data: {"error":"bad gateway"}')

        assert decoder.close() == []
        with pytest.raises(StreamUpstreamError, match="bad gateway"):
            decoder.raise_for_error()

    def test_abort_prevents_completion(self):
        decoder = StreamDecoder()
        decoder.feed(b'data: {"choices":[{"delta":{"content":"par')

        decoder.abort()

        assert decoder.state is DecoderState.ERRORED
        assert not decoder.finished
        assert decoder.feed(b'tial"}}]}\n') == []


async def _chunks(parts: list[bytes], consumed: list[int]) -> AsyncIterator[bytes]:
    for part in parts:
        consumed.append(len(part))
        yield part


@pytest.mark.anyio
async def test_decode_stream_yields_lazily_and_stops_at_sentinel():
    consumed: list[int] = []
    parts = [frame("a"), frame("b"), b"data: [DONE]\n\n", frame("never")]

    deltas = [delta async for delta in decode_stream(_chunks(parts, consumed))]

    assert deltas == ["a", "b"]
    assert len(consumed) == 3


@pytest.mark.anyio
async def test_decode_stream_finishes_when_connection_closes():
    consumed: list[int] = []
    decoder = StreamDecoder()

    deltas = [
        delta
        async for delta in decode_stream(_chunks([frame("x"), frame("y")], consumed), decoder)
    ]

    assert deltas == ["x", "y"]
    assert decoder.finished


@pytest.mark.anyio
async def test_decode_stream_aborts_when_consumer_stops_early():
    consumed: list[int] = []
    decoder = StreamDecoder()
    stream = decode_stream(_chunks([frame("x"), frame("y")], consumed), decoder)

    async for _ in stream:
        break
    await stream.aclose()

    assert decoder.state is DecoderState.ERRORED
    assert not decoder.finished


@pytest.mark.anyio
async def test_decode_stream_yields_content_before_raising_upstream_error():
    consumed: list[int] = []
    chunk = frame("partial") + b'data: {"error":{"message":"boom"}}\n\n'
    decoder = StreamDecoder()
    deltas: list[str] = []

    with pytest.raises(StreamUpstreamError, match="boom"):
        async for delta in decode_stream(_chunks([chunk, frame("late")], consumed), decoder):
            deltas.append(delta)

    assert deltas == ["partial"]
    assert len(consumed) == 1
    assert decoder.state is DecoderState.ERRORED
