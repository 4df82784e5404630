"""Exception hierarchy for clawloop."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ClawloopError(Exception):
    """Base exception for all clawloop errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(ClawloopError):
    """Configuration validation or resolution failed."""


class LoopBusyError(ClawloopError):
    """A run was requested while the same loop instance is already running."""


class APIError(ClawloopError):
    """Model API call failed.

    Adapters attach the vendor's own error type and the HTTP status so the
    loop can classify failures from structured data before falling back to
    message markers. ``retry_after_s`` is the vendor's Retry-After hint and
    floors the loop's backoff delay.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        error_type: str | None = None,
        status_code: int | None = None,
        retry_after_s: float | None = None,
        provider: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.error_type = error_type
        self.status_code = status_code
        self.retry_after_s = retry_after_s
        self.provider = provider


class RateLimitError(APIError):
    """Rate limit exceeded (HTTP 429 or vendor rate_limit_error)."""


class NetworkError(APIError):
    """Transport-level failure (connect, read, timeout)."""


class ParseError(APIError):
    """A wire payload could not be decoded."""


class StreamError(ParseError):
    """The vendor reported an error event in the middle of a stream."""


class ContextOverflowError(APIError):
    """The model context window was exhausted; a resume trigger was written."""

    def __init__(
        self,
        message: str,
        *,
        session_id: str | None = None,
        hint: str | None = None,
        provider: str | None = None,
    ) -> None:
        super().__init__(
            message, hint=hint, error_type="context_overflow", provider=provider
        )
        self.session_id = session_id


class ToolError(ClawloopError):
    """A tool call could not produce a result."""

    def __init__(
        self, message: str, *, tool_name: str, hint: str | None = None
    ) -> None:
        super().__init__(message, hint=hint)
        self.tool_name = tool_name


class ToolNotFoundError(ToolError):
    """The requested tool name did not resolve to a registered tool."""

    def __init__(self, tool_name: str, available: Sequence[str]) -> None:
        self.available = list(available)
        super().__init__(
            f"tool not found: {tool_name}. Available tools: "
            + ", ".join(self.available),
            tool_name=tool_name,
        )


class ToolExecutionError(ToolError):
    """A registered tool raised while executing."""


def walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
