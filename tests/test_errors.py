from __future__ import annotations

import pytest

from clawloop.errors import (
    APIError,
    ClawloopError,
    ContextOverflowError,
    NetworkError,
    ParseError,
    RateLimitError,
    StreamError,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
    walk_exception_chain,
)

pytestmark = pytest.mark.unit


def test_api_error_structured_metadata() -> None:
    err = APIError(
        "boom",
        hint="do this",
        error_type="overloaded_error",
        status_code=529,
        retry_after_s=2.0,
        provider="anthropic",
    )

    assert str(err) == "boom"
    assert err.hint == "do this"
    assert err.error_type == "overloaded_error"
    assert err.status_code == 529
    assert err.retry_after_s == 2.0
    assert err.provider == "anthropic"


def test_api_error_defaults_to_none() -> None:
    err = APIError("fail")
    assert err.hint is None
    assert err.error_type is None
    assert err.status_code is None
    assert err.retry_after_s is None
    assert err.provider is None


def test_subclass_hierarchy() -> None:
    for cls in (RateLimitError, NetworkError, ParseError, StreamError):
        err = cls("x")
        assert isinstance(err, APIError)
        assert isinstance(err, ClawloopError)
    assert issubclass(StreamError, ParseError)
    assert issubclass(ToolNotFoundError, ToolError)
    assert issubclass(ToolExecutionError, ToolError)


def test_context_overflow_error_carries_session_and_type() -> None:
    err = ContextOverflowError("overflow", session_id="session_1")

    assert isinstance(err, APIError)
    assert err.session_id == "session_1"
    assert err.error_type == "context_overflow"


def test_tool_not_found_lists_available_tools() -> None:
    err = ToolNotFoundError("Grep", ["exec", "read_file"])

    assert str(err) == "tool not found: Grep. Available tools: exec, read_file"
    assert err.tool_name == "Grep"
    assert err.available == ["exec", "read_file"]


def test_walk_exception_chain_follows_cause_and_context_once() -> None:
    root = ValueError("root")
    try:
        try:
            raise root
        except ValueError as e:
            raise APIError("wrapped") from e
    except APIError as outer:
        chain = list(walk_exception_chain(outer))

    assert chain[0] is outer
    assert root in chain
    assert len(chain) == len({id(e) for e in chain})
