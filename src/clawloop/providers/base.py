"""Provider protocol: minimal interface for model vendors."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Callable, Sequence

    from clawloop.providers.models import (
        ChatOptions,
        Message,
        Response,
        StreamEvent,
        ToolDefinition,
    )

    StreamCallback = Callable[[StreamEvent], None]


@runtime_checkable
class Provider(Protocol):
    """Minimal provider protocol: chat, chat_stream, name.

    Both calls accept a cancellation event. Setting it aborts the in-flight
    exchange and the call raises ``asyncio.CancelledError``.
    """

    @property
    def name(self) -> str:
        """Short vendor identifier used in logs and errors."""
        ...

    async def chat(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        model: str,
        options: ChatOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> Response:
        """Send one request and return the complete response."""
        ...

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
        """Stream one request, invoking *on_event* in wire order before returning."""
        ...

    async def aclose(self) -> None:
        """Release HTTP resources."""
        ...
