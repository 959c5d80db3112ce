"""Incremental decoding of chat-completion Server-Sent Event streams."""

from __future__ import annotations

import codecs
import enum
import json
import logging
from typing import Any, AsyncGenerator, AsyncIterable, Callable, Optional

from ..errors import StreamUpstreamError

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"

DeltaSink = Callable[[str], None]


class DecoderState(enum.Enum):
    BUFFERING = "buffering"
    DISPATCHING = "dispatching"
    DONE = "done"
    ERRORED = "errored"


class StreamDecoder:
    """Turn raw SSE bytes into text deltas, one request per instance.

    Bytes are buffered until a full line is available; every line is then
    classified. Blank lines, comments (``:``) and non-``data`` fields are
    dropped. A ``data`` line equal to ``[DONE]`` ends production. Other data
    lines are parsed as JSON and ``choices[0].delta.content`` is emitted to
    the sink as soon as it is seen. Unparseable lines are logged and
    skipped; a payload carrying an ``error`` object ends the stream and
    ``StreamUpstreamError`` is raised once the deltas before it are handed
    out.
    """

    def __init__(self, sink: Optional[DeltaSink] = None) -> None:
        self._sink = sink
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._state = DecoderState.BUFFERING
        self._ignored_after_done = False
        self._error: Optional[StreamUpstreamError] = None

    @property
    def state(self) -> DecoderState:
        return self._state

    @property
    def error(self) -> Optional[StreamUpstreamError]:
        return self._error

    @property
    def finished(self) -> bool:
        return self._state is DecoderState.DONE

    @property
    def terminated(self) -> bool:
        return self._state in (DecoderState.DONE, DecoderState.ERRORED)

    def feed(self, chunk: bytes | str) -> list[str]:
        """Consume one network chunk and return the deltas it completed.

        Deltas that precede an upstream error frame in the same chunk are
        still returned; the error itself is raised by the next ``feed``,
        ``close`` or ``raise_for_error`` call.
        """

        if self.terminated:
            self.raise_for_error()
            if chunk and not self._ignored_after_done:
                logger.warning(
                    "Ignoring %d bytes received after stream %s",
                    len(chunk),
                    self._state.value,
                )
                self._ignored_after_done = True
            return []

        text = chunk if isinstance(chunk, str) else self._utf8.decode(chunk)
        self._buffer += text
        return self._drain()

    def close(self) -> list[str]:
        """Signal that the connection closed; flush any unterminated line."""

        if self.terminated:
            self.raise_for_error()
            return []
        self._buffer += self._utf8.decode(b"", final=True)
        deltas: list[str] = []
        if self._buffer:
            self._buffer += "\n"
            deltas = self._drain()
        if not self.terminated:
            self._state = DecoderState.DONE
        return deltas

    def raise_for_error(self) -> None:
        """Raise the upstream error seen in the stream, once."""

        error, self._error = self._error, None
        if error is not None:
            raise error

    def abort(self) -> None:
        """Stop emitting; the stream will not be reported as completed."""

        if not self.terminated:
            logger.debug("Stream decoding aborted with %d buffered chars", len(self._buffer))
            self._state = DecoderState.ERRORED
        self._buffer = ""

    def _drain(self) -> list[str]:
        deltas: list[str] = []
        while not self.terminated:
            line_end = self._buffer.find("\n")
            if line_end == -1:
                self._state = DecoderState.BUFFERING
                break
            line = self._buffer[:line_end]
            self._buffer = self._buffer[line_end + 1 :]
            self._state = DecoderState.DISPATCHING
            try:
                delta = self._dispatch(line.strip())
            except StreamUpstreamError as exc:
                self._error = exc
                break
            if delta:
                deltas.append(delta)
                if self._sink is not None:
                    self._sink(delta)
        if self.terminated:
            self._buffer = ""
        return deltas

    def _dispatch(self, line: str) -> Optional[str]:
        if not line or line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if field != "data":
            return None
        data = value[1:] if value.startswith(" ") else value

        if data == DONE_SENTINEL:
            self._state = DecoderState.DONE
            return None

        try:
            payload = json.loads(data)
        except json.JSONDecodeError as exc:
            logger.debug("Skipping malformed stream frame (non-fatal): %s", exc)
            return None

        if not isinstance(payload, dict):
            return None

        error = payload.get("error")
        if error:
            self._state = DecoderState.ERRORED
            raise StreamUpstreamError(_error_message(error))

        return _extract_delta(payload)


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
    elif isinstance(error, str) and error:
        return error
    return "Stream error"


def _extract_delta(payload: dict[str, Any]) -> Optional[str]:
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    if isinstance(content, str) and content:
        return content
    return None


async def decode_stream(
    chunks: AsyncIterable[bytes],
    decoder: Optional[StreamDecoder] = None,
) -> AsyncGenerator[str, None]:
    """Lazily yield text deltas from an async byte stream.

    Stops at the terminal sentinel without reading further. Deltas read
    before an upstream error frame are yielded before the error is raised.
    If the consumer stops early or the read fails, the decoder is aborted.
    """

    decoder = decoder or StreamDecoder()
    completed = False
    try:
        async for chunk in chunks:
            for delta in decoder.feed(chunk):
                yield delta
            if decoder.terminated:
                break
        else:
            for delta in decoder.close():
                yield delta
        decoder.raise_for_error()
        completed = decoder.finished
    finally:
        if not completed:
            decoder.abort()


__all__ = [
    "DONE_SENTINEL",
    "DecoderState",
    "DeltaSink",
    "StreamDecoder",
    "decode_stream",
]
