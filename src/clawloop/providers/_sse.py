"""Server-Sent-Events decoding for the Anthropic Messages stream.

The decoder is a small state machine: the current named event, the
``Response`` being accumulated, and one tool-call accumulator per open
``tool_use`` content block. Each ``data:`` line is dispatched on the most
recent ``event:`` name (falling back to the payload's ``type`` field).
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
from typing import TYPE_CHECKING, Any

from clawloop._http import DEFAULT_MAX_LINE_BYTES
from clawloop.errors import ParseError, StreamError
from clawloop.providers.models import (
    Response,
    StreamEvent,
    ToolCall,
    Usage,
    parse_arguments,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator, Callable

logger = logging.getLogger(__name__)


@dataclass
class _ToolAccumulator:
    id: str
    name: str
    fragments: list[str] = field(default_factory=list)


class SSEDecoder:
    """Fold Anthropic SSE lines into a ``Response``, emitting ``StreamEvent``s."""

    def __init__(
        self,
        on_event: Callable[[StreamEvent], None] | None = None,
        *,
        provider: str = "anthropic",
    ) -> None:
        self._on_event = on_event
        self._provider = provider
        self._event_name = ""
        self._text: list[str] = []
        self._open: dict[int, _ToolAccumulator] = {}
        self._finished: list[tuple[int, ToolCall]] = []
        self._prompt_tokens = 0
        self._completion_tokens = 0
        self._stop_reason: str | None = None
        self._handlers: dict[str, Callable[[dict[str, Any]], None]] = {
            "message_start": self._on_message_start,
            "content_block_start": self._on_block_start,
            "content_block_delta": self._on_block_delta,
            "content_block_stop": self._on_block_stop,
            "message_delta": self._on_message_delta,
            "message_stop": self._on_message_stop,
            "error": self._on_error,
        }

    def feed_line(self, line: str) -> None:
        """Consume one SSE line (without its trailing newline)."""
        if not line:
            self._event_name = ""
            return
        if line.startswith(":"):
            return
        if line.startswith("event:"):
            self._event_name = line[len("event:") :].strip()
            return
        if not line.startswith("data:"):
            return

        data = line[len("data:") :].lstrip()
        try:
            payload = json.loads(data)
        except ValueError:
            if self._event_name == "error":
                self._fail(data)
            logger.debug("Skipping undecodable SSE data for event %r", self._event_name)
            return
        if not isinstance(payload, dict):
            return

        name = self._event_name or payload.get("type", "")
        handler = self._handlers.get(name)
        if handler is None:
            # ping and future protocol additions
            logger.debug("Ignoring SSE event %r", name)
            return
        handler(payload)

    def finish(self) -> Response:
        """Return the accumulated response, tool calls in block-index order."""
        calls = [call for _, call in sorted(self._finished, key=lambda item: item[0])]
        return Response(
            text="".join(self._text),
            tool_calls=calls,
            usage=self._usage(),
            stop_reason=self._stop_reason,
        )

    def _emit(self, event: StreamEvent) -> None:
        if self._on_event is not None:
            self._on_event(event)

    def _usage(self) -> Usage:
        return Usage(
            prompt_tokens=self._prompt_tokens,
            completion_tokens=self._completion_tokens,
            total_tokens=self._prompt_tokens + self._completion_tokens,
        )

    def _on_message_start(self, payload: dict[str, Any]) -> None:
        usage = (payload.get("message") or {}).get("usage") or {}
        self._prompt_tokens = int(usage.get("input_tokens") or 0)

    def _on_block_start(self, payload: dict[str, Any]) -> None:
        block = payload.get("content_block") or {}
        if block.get("type") != "tool_use":
            return
        index = int(payload.get("index", 0))
        acc = _ToolAccumulator(id=str(block.get("id", "")), name=str(block.get("name", "")))
        self._open[index] = acc
        self._emit(StreamEvent.tool_start(acc.id, acc.name))

    def _on_block_delta(self, payload: dict[str, Any]) -> None:
        delta = payload.get("delta") or {}
        kind = delta.get("type")
        if kind == "text_delta":
            text = str(delta.get("text", ""))
            self._text.append(text)
            self._emit(StreamEvent.text_delta(text))
        elif kind == "input_json_delta":
            fragment = str(delta.get("partial_json", ""))
            acc = self._open.get(int(payload.get("index", 0)))
            if acc is not None:
                acc.fragments.append(fragment)
            self._emit(StreamEvent.tool_delta(fragment, acc.id if acc else None))

    def _on_block_stop(self, payload: dict[str, Any]) -> None:
        index = int(payload.get("index", 0))
        acc = self._open.pop(index, None)
        if acc is None:
            return
        raw = "".join(acc.fragments)
        call = ToolCall(
            id=acc.id, name=acc.name, arguments=parse_arguments(raw), raw_arguments=raw
        )
        self._finished.append((index, call))
        self._emit(StreamEvent.tool_end(acc.id, acc.name))

    def _on_message_delta(self, payload: dict[str, Any]) -> None:
        delta = payload.get("delta") or {}
        stop_reason = delta.get("stop_reason")
        if isinstance(stop_reason, str):
            self._stop_reason = stop_reason
        usage = payload.get("usage") or {}
        self._completion_tokens = int(usage.get("output_tokens") or 0)

    def _on_message_stop(self, payload: dict[str, Any]) -> None:
        del payload
        self._emit(StreamEvent.done(self._usage()))

    def _on_error(self, payload: dict[str, Any]) -> None:
        error = payload.get("error") or {}
        self._fail(f"{error.get('type')}: {error.get('message')}", error.get("type"))

    def _fail(self, message: str, error_type: str | None = None) -> None:
        self._emit(StreamEvent.failed(message))
        raise StreamError(
            f"{self._provider} stream error: {message}",
            error_type=error_type,
            provider=self._provider,
        )


async def iter_sse_lines(
    chunks: AsyncIterable[bytes], *, max_line_bytes: int = DEFAULT_MAX_LINE_BYTES
) -> AsyncIterator[str]:
    """Split a byte stream into text lines, allowing lines up to *max_line_bytes*."""
    buffer = bytearray()
    async for chunk in chunks:
        buffer.extend(chunk)
        while True:
            newline = buffer.find(b"\n")
            if newline < 0:
                break
            if newline > max_line_bytes:
                raise _line_too_long(max_line_bytes)
            raw = bytes(buffer[:newline])
            del buffer[: newline + 1]
            yield raw.rstrip(b"\r").decode("utf-8", "replace")
        if len(buffer) > max_line_bytes:
            raise _line_too_long(max_line_bytes)
    if buffer:
        yield bytes(buffer).rstrip(b"\r").decode("utf-8", "replace")


def _line_too_long(limit: int) -> ParseError:
    return ParseError(
        f"SSE line exceeds {limit} bytes",
        hint="Raise Config.max_sse_line_bytes for very large tool payloads.",
    )


async def decode_stream(
    lines: AsyncIterable[str],
    on_event: Callable[[StreamEvent], None] | None = None,
    *,
    provider: str = "anthropic",
) -> Response:
    """Decode a full SSE line stream into a ``Response``.

    The read loop ends with the transport, not with ``message_stop``. A
    vendor ``error`` event raises ``StreamError`` and discards partial
    content.
    """
    decoder = SSEDecoder(on_event, provider=provider)
    async for line in lines:
        decoder.feed_line(line)
    return decoder.finish()
