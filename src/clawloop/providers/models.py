"""Vendor-neutral domain models for the provider transport layer."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
import json
from typing import Any, Literal

Role = Literal["system", "user", "assistant", "tool"]
StreamEventKind = Literal["text", "tool_start", "tool_delta", "tool_end", "done", "error"]


@dataclass(frozen=True)
class ToolCall:
    """A tool call requested by the model.

    ``arguments`` is the structured form; ``raw_arguments`` keeps the JSON
    text as it arrived so adapters can replay it without re-encoding. The raw
    text is excluded from equality: whitespace differs between wire paths.
    """

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    raw_arguments: str = field(default="", compare=False)

    @classmethod
    def from_raw(cls, id: str, name: str, raw: Any) -> ToolCall:  # noqa: A002
        """Build a call from structured or string-encoded arguments."""
        if isinstance(raw, dict):
            return cls(id=id, name=name, arguments=dict(raw), raw_arguments=json.dumps(raw))
        text = raw if isinstance(raw, str) else ""
        return cls(id=id, name=name, arguments=parse_arguments(text), raw_arguments=text)

    def with_name(self, name: str) -> ToolCall:
        """Return a copy carrying *name* (used to record canonical names)."""
        if name == self.name:
            return self
        return replace(self, name=name)

    def arguments_json(self) -> str:
        """Return the JSON text for the arguments, preferring the raw form."""
        if self.raw_arguments:
            return self.raw_arguments
        return json.dumps(self.arguments)


@dataclass(frozen=True)
class Message:
    """A single conversation turn."""

    role: Role
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role="user", content=content)

    @classmethod
    def assistant(
        cls, content: str = "", tool_calls: list[ToolCall] | tuple[ToolCall, ...] = ()
    ) -> Message:
        return cls(role="assistant", content=content, tool_calls=tuple(tool_calls))

    @classmethod
    def tool(cls, tool_call_id: str, content: str) -> Message:
        return cls(role="tool", content=content, tool_call_id=tool_call_id)


@dataclass(frozen=True)
class ToolDefinition:
    """Tool schema exported to the model."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=lambda: {"type": "object"})

    def to_anthropic(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameters,
        }

    def to_openai(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass(frozen=True)
class Usage:
    """Token accounting for one exchange."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: Usage) -> Usage:
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


@dataclass(frozen=True)
class ChatOptions:
    """Per-call sampling options; ``None`` means the adapter default."""

    max_tokens: int | None = None
    temperature: float | None = None


@dataclass
class Response:
    """The unit returned by both the synchronous and the streaming call path."""

    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    stop_reason: str | None = None


@dataclass(frozen=True)
class StreamEvent:
    """One decoded streaming event, in wire arrival order.

    Only the fields relevant to ``kind`` are populated.
    """

    kind: StreamEventKind
    text: str = ""
    tool_id: str | None = None
    name: str | None = None
    partial_json: str = ""
    usage: Usage | None = None
    error: str | None = None

    @classmethod
    def text_delta(cls, text: str) -> StreamEvent:
        return cls(kind="text", text=text)

    @classmethod
    def tool_start(cls, tool_id: str, name: str) -> StreamEvent:
        return cls(kind="tool_start", tool_id=tool_id, name=name)

    @classmethod
    def tool_delta(cls, partial_json: str, tool_id: str | None = None) -> StreamEvent:
        return cls(kind="tool_delta", tool_id=tool_id, partial_json=partial_json)

    @classmethod
    def tool_end(cls, tool_id: str, name: str) -> StreamEvent:
        return cls(kind="tool_end", tool_id=tool_id, name=name)

    @classmethod
    def done(cls, usage: Usage) -> StreamEvent:
        return cls(kind="done", usage=usage)

    @classmethod
    def failed(cls, error: str) -> StreamEvent:
        return cls(kind="error", error=error)


def parse_arguments(raw: str) -> dict[str, Any]:
    """Parse tool-call argument JSON, best-effort.

    Anything that is not a JSON object (including an empty string) yields an
    empty mapping rather than an error.
    """
    if not raw.strip():
        return {}
    try:
        value = json.loads(raw)
    except ValueError:
        return {}
    return value if isinstance(value, dict) else {}
