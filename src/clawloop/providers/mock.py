"""Mock provider for offline runs and smoke tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

from clawloop.providers.models import Response, StreamEvent, Usage

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Sequence

    from clawloop.providers.base import StreamCallback
    from clawloop.providers.models import ChatOptions, Message, ToolDefinition


class MockProvider:
    """Provider that never calls a network API.

    Echoes the latest user message and never requests tools, so a loop
    driven by it completes in one iteration.
    """

    @property
    def name(self) -> str:
        return "mock"

    async def chat(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],  # noqa: ARG002
        model: str,  # noqa: ARG002
        options: ChatOptions | None = None,  # noqa: ARG002
        *,
        cancel: asyncio.Event | None = None,  # noqa: ARG002
    ) -> Response:
        """Return a deterministic echo of the last user message."""
        text = next((m.content for m in reversed(messages) if m.role == "user"), "")
        return Response(
            text=f"echo: {text[:100]}",
            usage=Usage(prompt_tokens=10, completion_tokens=10, total_tokens=20),
            stop_reason="end_turn",
        )

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
        response = await self.chat(messages, tools, model, options, cancel=cancel)
        if on_event is not None:
            on_event(StreamEvent.text_delta(response.text))
            on_event(StreamEvent.done(response.usage))
        return response

    async def aclose(self) -> None:
        return None
