"""Test helpers (small, reusable doubles).

Keep this file tiny and purpose-built: it exists to prevent test suites from
growing lots of one-off provider and tool classes as coverage expands.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from clawloop.providers.models import (
    Message,
    Response,
    StreamEvent,
    ToolCall,
    Usage,
)


def tool_response(*calls: tuple[str, dict[str, Any]], text: str = "") -> Response:
    """Response requesting *calls*, given as ``(name, arguments)`` pairs."""
    return Response(
        text=text,
        tool_calls=[
            ToolCall(id=f"call_{i}", name=name, arguments=args)
            for i, (name, args) in enumerate(calls)
        ],
        usage=Usage(prompt_tokens=1, completion_tokens=1, total_tokens=2),
    )


def text_response(text: str) -> Response:
    return Response(
        text=text, usage=Usage(prompt_tokens=1, completion_tokens=1, total_tokens=2)
    )


@dataclass
class ScriptedProvider:
    """Provider double returning a scripted sequence of responses/exceptions.

    Records a snapshot of the messages of every call. When the script runs
    out it answers ``"done"`` with no tool calls.
    """

    script: list[Response | BaseException] = field(default_factory=list)
    calls: list[list[Message]] = field(default_factory=list)
    stream_calls: int = 0
    closed: bool = False

    @property
    def name(self) -> str:
        return "scripted"

    async def chat(self, messages, tools, model, options=None, *, cancel=None) -> Response:
        del tools, model, options, cancel
        self.calls.append(list(messages))
        if not self.script:
            return text_response("done")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def chat_stream(
        self, messages, tools, model, options=None, on_event=None, *, cancel=None
    ) -> Response:
        self.stream_calls += 1
        response = await self.chat(messages, tools, model, options, cancel=cancel)
        if on_event is not None:
            if response.text:
                on_event(StreamEvent.text_delta(response.text))
            on_event(StreamEvent.done(response.usage))
        return response

    async def aclose(self) -> None:
        self.closed = True


@dataclass
class BlockingProvider:
    """Provider double that blocks until its cancel event fires."""

    started: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def name(self) -> str:
        return "blocking"

    async def chat(self, messages, tools, model, options=None, *, cancel=None) -> Response:
        del messages, tools, model, options
        self.started.set()
        assert cancel is not None
        await cancel.wait()
        raise asyncio.CancelledError("cancelled by caller")

    async def chat_stream(
        self, messages, tools, model, options=None, on_event=None, *, cancel=None
    ) -> Response:
        del on_event
        return await self.chat(messages, tools, model, options, cancel=cancel)

    async def aclose(self) -> None:
        return None


@dataclass
class RecordingMemory:
    """In-memory ``Memory`` double that records every write."""

    context: str = ""
    resume_prompt: str = ""
    pending: bool = False
    fail_writes: bool = False
    triggers: list[tuple[str, str]] = field(default_factory=list)
    prompts: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    cleared: int = 0

    def get_context(self, days: int) -> str:
        del days
        return self.context

    def has_pending_resume(self) -> bool:
        return self.pending

    def read_resume_prompt(self) -> str:
        return self.resume_prompt

    def write_resume_trigger(self, session_id: str, reason: str) -> None:
        if self.fail_writes:
            raise OSError("disk full")
        self.triggers.append((session_id, reason))
        self.pending = True

    def write_resume_prompt(self, text: str) -> None:
        if self.fail_writes:
            raise OSError("disk full")
        self.prompts.append(text)
        self.resume_prompt = text

    def clear_resume_trigger(self) -> None:
        self.cleared += 1
        self.pending = False

    def append_daily_note(self, text: str) -> None:
        if self.fail_writes:
            raise OSError("disk full")
        self.notes.append(text)


@dataclass
class FakeTool:
    """Tool double returning fixed text or raising a fixed exception."""

    name: str = "fake"
    description: str = "A fake tool"
    parameters: dict[str, Any] = field(default_factory=lambda: {"type": "object"})
    result: str = "ok"
    error: BaseException | None = None
    calls: list[dict[str, Any]] = field(default_factory=list)

    async def execute(self, ctx, args: dict[str, Any]) -> str:
        del ctx
        self.calls.append(args)
        if self.error is not None:
            raise self.error
        return self.result
