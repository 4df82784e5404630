"""OpenRouter provider (OpenAI-compatible chat completions, non-streaming)."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import httpx

from clawloop._cancel import run_cancellable
from clawloop._http import DEFAULT_TIMEOUT_S
from clawloop.errors import ParseError
from clawloop.providers._errors import (
    error_from_payload,
    error_from_response,
    wrap_transport_error,
)
from clawloop.providers.models import (
    ChatOptions,
    Message,
    Response,
    StreamEvent,
    ToolCall,
    ToolDefinition,
    Usage,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from clawloop.providers.base import StreamCallback

logger = logging.getLogger(__name__)

OPENROUTER_API_URL = "https://openrouter.ai/api/v1/chat/completions"
OPENROUTER_REFERER = "https://github.com/clawloop/clawloop"
OPENROUTER_TITLE = "clawloop"
DEFAULT_MAX_TOKENS = 8192
DEFAULT_TEMPERATURE = 0.7


class OpenRouterProvider:
    """OpenRouter chat-completions provider."""

    def __init__(
        self,
        api_key: str,
        api_url: str | None = None,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize with an API key and an optional full endpoint URL."""
        self.api_key = api_key
        self.endpoint = api_url or OPENROUTER_API_URL
        self.timeout_s = timeout_s
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def name(self) -> str:
        return "openrouter"

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
            "Authorization": f"Bearer {self.api_key}",
            "HTTP-Referer": OPENROUTER_REFERER,
            "X-Title": OPENROUTER_TITLE,
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
        """Send a chat-completions request."""
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
        """Run ``chat`` and replay the result as stream events.

        The wire exchange is not streamed; events are synthesized in the
        order a streaming vendor would deliver them.
        """
        response = await self.chat(messages, tools, model, options, cancel=cancel)
        if on_event is not None:
            for event in replay_events(response):
                on_event(event)
        return response

    async def _post(self, body: dict[str, Any]) -> Response:
        client = self._get_client()
        logger.debug("POST %s model=%s messages=%d", self.endpoint, body["model"], len(body["messages"]))
        try:
            resp = await client.post(self.endpoint, json=body, headers=self._headers())
        except asyncio.CancelledError:
            raise
        except httpx.HTTPError as e:
            raise wrap_transport_error(e, provider=self.name) from e

        if resp.status_code >= 400:
            raise error_from_response(
                resp.status_code, resp.content, provider=self.name, headers=resp.headers
            )
        try:
            payload = resp.json()
        except ValueError as e:
            raise ParseError(
                f"failed to parse openrouter response: {e}", provider=self.name
            ) from e
        # OpenRouter reports some upstream failures inside a 200 body.
        err = error_from_payload(payload, provider=self.name, status_code=resp.status_code)
        if err is not None:
            raise err
        return parse_response(payload)

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
) -> dict[str, Any]:
    """Translate neutral messages into an OpenAI-compatible request body."""
    wire: list[dict[str, Any]] = []
    for msg in messages:
        item: dict[str, Any] = {"role": msg.role, "content": msg.content}
        if msg.role == "tool" and msg.tool_call_id:
            item["tool_call_id"] = msg.tool_call_id
        if msg.tool_calls:
            item["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": tc.arguments_json()},
                }
                for tc in msg.tool_calls
            ]
        wire.append(item)

    opts = options or ChatOptions()
    body: dict[str, Any] = {
        "model": model,
        "messages": wire,
        "max_tokens": opts.max_tokens if opts.max_tokens is not None else DEFAULT_MAX_TOKENS,
        "temperature": (
            opts.temperature if opts.temperature is not None else DEFAULT_TEMPERATURE
        ),
    }
    if tools:
        body["tools"] = [t.to_openai() for t in tools]
    return body


def parse_response(payload: Any) -> Response:
    """Parse a decoded chat-completions body into ``Response``."""
    if not isinstance(payload, dict):
        raise ParseError("openrouter response is not a JSON object", provider="openrouter")
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        raise ParseError("no choices in response", provider="openrouter")

    choice = choices[0] if isinstance(choices[0], dict) else {}
    message = choice.get("message") or {}
    content = message.get("content")

    tool_calls: list[ToolCall] = []
    for tc in message.get("tool_calls") or []:
        if not isinstance(tc, dict):
            continue
        function = tc.get("function") or {}
        tool_calls.append(
            ToolCall.from_raw(
                str(tc.get("id", "")),
                str(function.get("name", "")),
                function.get("arguments"),
            )
        )

    usage_raw = payload.get("usage") or {}
    prompt_tokens = int(usage_raw.get("prompt_tokens") or 0)
    completion_tokens = int(usage_raw.get("completion_tokens") or 0)
    total_tokens = int(usage_raw.get("total_tokens") or prompt_tokens + completion_tokens)
    finish_reason = choice.get("finish_reason")
    return Response(
        text=content if isinstance(content, str) else "",
        tool_calls=tool_calls,
        usage=Usage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
        ),
        stop_reason=finish_reason if isinstance(finish_reason, str) else None,
    )


def replay_events(response: Response) -> list[StreamEvent]:
    """Synthesize the stream events equivalent to a complete response."""
    events: list[StreamEvent] = []
    if response.text:
        events.append(StreamEvent.text_delta(response.text))
    for tc in response.tool_calls:
        events.append(StreamEvent.tool_start(tc.id, tc.name))
        events.append(StreamEvent.tool_delta(tc.arguments_json(), tc.id))
        events.append(StreamEvent.tool_end(tc.id, tc.name))
    events.append(StreamEvent.done(response.usage))
    return events
