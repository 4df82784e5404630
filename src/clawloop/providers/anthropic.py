"""Anthropic Messages API provider (raw HTTP + SSE streaming)."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import httpx

from clawloop._cancel import run_cancellable
from clawloop._http import DEFAULT_MAX_LINE_BYTES, DEFAULT_TIMEOUT_S
from clawloop.errors import APIError, ParseError
from clawloop.providers._errors import error_from_response, wrap_transport_error
from clawloop.providers._sse import decode_stream, iter_sse_lines
from clawloop.providers.models import (
    ChatOptions,
    Message,
    Response,
    ToolCall,
    ToolDefinition,
    Usage,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from clawloop.providers.base import StreamCallback

logger = logging.getLogger(__name__)

ANTHROPIC_DEFAULT_BASE_URL = "https://api.anthropic.com"
ANTHROPIC_MESSAGES_PATH = "/v1/messages"
ANTHROPIC_API_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 8192
DEFAULT_TEMPERATURE = 0.7


class AnthropicProvider:
    """Anthropic Messages API provider."""

    def __init__(
        self,
        api_key: str,
        api_base: str | None = None,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize with an API key and an optional base URL (no path)."""
        base = (api_base or ANTHROPIC_DEFAULT_BASE_URL).rstrip("/")
        self.api_key = api_key
        self.endpoint = base + ANTHROPIC_MESSAGES_PATH
        self.timeout_s = timeout_s
        self.max_line_bytes = max_line_bytes
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def name(self) -> str:
        return "anthropic"

    def _get_client(self) -> httpx.AsyncClient:
        """Lazily initialize and return the shared async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout_s, transport=self._transport
            )
        return self._client

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_API_VERSION,
        }

    async def chat(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        model: str,
        options: ChatOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> Response:
        """Send a non-streaming Messages request."""
        body = build_request_body(messages, tools, model, options)
        return await run_cancellable(self._post(body), cancel)

    async def chat_stream(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        model: str,
        options: ChatOptions | None = None,
        on_event: StreamCallback | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> Response:
        """Send a streaming Messages request and decode its SSE body."""
        body = build_request_body(messages, tools, model, options, stream=True)
        return await run_cancellable(self._post_stream(body, on_event), cancel)

    async def _post(self, body: dict[str, Any]) -> Response:
        client = self._get_client()
        logger.debug("POST %s model=%s messages=%d", self.endpoint, body["model"], len(body["messages"]))
        try:
            resp = await client.post(self.endpoint, json=body, headers=self._headers())
        except asyncio.CancelledError:
            raise
        except httpx.HTTPError as e:
            raise wrap_transport_error(e, provider=self.name) from e

        if resp.status_code != httpx.codes.OK:
            raise error_from_response(
                resp.status_code, resp.content, provider=self.name, headers=resp.headers
            )
        try:
            payload = resp.json()
        except ValueError as e:
            raise ParseError(
                f"failed to parse anthropic response: {e}", provider=self.name
            ) from e
        return parse_response(payload)

    async def _post_stream(
        self, body: dict[str, Any], on_event: StreamCallback | None
    ) -> Response:
        client = self._get_client()
        logger.debug("POST %s (stream) model=%s", self.endpoint, body["model"])
        try:
            async with client.stream(
                "POST", self.endpoint, json=body, headers=self._headers()
            ) as resp:
                if resp.status_code != httpx.codes.OK:
                    raw = await resp.aread()
                    raise error_from_response(
                        resp.status_code, raw, provider=self.name, headers=resp.headers
                    )
                lines = iter_sse_lines(
                    resp.aiter_bytes(), max_line_bytes=self.max_line_bytes
                )
                return await decode_stream(lines, on_event, provider=self.name)
        except asyncio.CancelledError:
            raise
        except APIError:
            raise
        except httpx.HTTPError as e:
            raise wrap_transport_error(e, provider=self.name) from e

    async def aclose(self) -> None:
        """Close underlying async client resources."""
        client = self._client
        if client is None:
            return
        self._client = None
        await client.aclose()


def build_request_body(
    messages: Sequence[Message],
    tools: Sequence[ToolDefinition],
    model: str,
    options: ChatOptions | None = None,
    *,
    stream: bool = False,
) -> dict[str, Any]:
    """Translate neutral messages into an Anthropic Messages request body.

    ``system`` messages are routed to the top-level ``system`` field and never
    appear in the turn array.
    """
    system_parts: list[str] = []
    wire: list[dict[str, Any]] = []

    for msg in messages:
        if msg.role == "system":
            if msg.content:
                system_parts.append(msg.content)
            continue

        if msg.role == "tool":
            _append_message(
                wire,
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "tool_result",
                            "tool_use_id": msg.tool_call_id or "",
                            "content": msg.content,
                        }
                    ],
                },
            )
            continue

        if msg.role == "assistant" and msg.tool_calls:
            blocks: list[dict[str, Any]] = []
            if msg.content:
                blocks.append({"type": "text", "text": msg.content})
            for tc in msg.tool_calls:
                blocks.append(
                    {"type": "tool_use", "id": tc.id, "name": tc.name, "input": tc.arguments}
                )
            _append_message(wire, {"role": "assistant", "content": blocks})
            continue

        _append_message(wire, {"role": msg.role, "content": msg.content})

    opts = options or ChatOptions()
    body: dict[str, Any] = {
        "model": model,
        "max_tokens": opts.max_tokens if opts.max_tokens is not None else DEFAULT_MAX_TOKENS,
        "messages": wire,
        "temperature": (
            opts.temperature if opts.temperature is not None else DEFAULT_TEMPERATURE
        ),
    }
    if system_parts:
        body["system"] = "\n\n".join(system_parts)
    if tools:
        body["tools"] = [t.to_anthropic() for t in tools]
    if stream:
        body["stream"] = True
    return body


def parse_response(payload: Any) -> Response:
    """Parse a decoded Messages response body into ``Response``."""
    if not isinstance(payload, dict):
        raise ParseError("anthropic response is not a JSON object", provider="anthropic")

    text_parts: list[str] = []
    tool_calls: list[ToolCall] = []
    for block in payload.get("content") or []:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "text":
            text_parts.append(str(block.get("text", "")))
        elif block_type == "tool_use":
            tool_calls.append(
                ToolCall.from_raw(
                    str(block.get("id", "")), str(block.get("name", "")), block.get("input")
                )
            )

    usage_raw = payload.get("usage") or {}
    input_tokens = int(usage_raw.get("input_tokens") or 0)
    output_tokens = int(usage_raw.get("output_tokens") or 0)
    stop_reason = payload.get("stop_reason")
    return Response(
        text="".join(text_parts),
        tool_calls=tool_calls,
        usage=Usage(
            prompt_tokens=input_tokens,
            completion_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
        ),
        stop_reason=stop_reason if isinstance(stop_reason, str) else None,
    )


def _append_message(messages: list[dict[str, Any]], msg: dict[str, Any]) -> None:
    """Append *msg*, merging into the previous message when roles match.

    Anthropic requires user/assistant alternation. Several tool results in a
    row (one per call of the same assistant turn) become one user message
    with several ``tool_result`` blocks.
    """
    if messages and messages[-1]["role"] == msg["role"]:
        prev = messages[-1]
        prev_content = prev["content"]
        new_content = msg["content"]
        if isinstance(prev_content, str):
            prev_content = [{"type": "text", "text": prev_content}]
        if isinstance(new_content, str):
            new_content = [{"type": "text", "text": new_content}]
        prev["content"] = prev_content + new_content
    else:
        messages.append(msg)

