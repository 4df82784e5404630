"""Failure classification and backoff policy."""

from __future__ import annotations

import asyncio

import pytest

from clawloop.errors import APIError, ContextOverflowError, NetworkError, RateLimitError
from clawloop.retry import ErrorSignatures, RetryPolicy, classify_failure

pytestmark = pytest.mark.unit


def test_policy_backoff_is_linear_in_attempt() -> None:
    policy = RetryPolicy(max_attempts=3, backoff_base_s=2.0)

    assert [policy.delay_for(n) for n in (1, 2, 3)] == [2.0, 4.0, 6.0]


@pytest.mark.parametrize(
    "kwargs", [{"max_attempts": 0}, {"backoff_base_s": -1.0}]
)
def test_policy_rejects_invalid_values(kwargs) -> None:
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


@pytest.mark.parametrize(
    "exc",
    [
        RateLimitError("slow down", status_code=429),
        APIError("anything", status_code=429),
        APIError("quota", error_type="rate_limit_exceeded"),
        RuntimeError("Error 429: Too Many Requests"),
        RuntimeError("upstream returned HTTP 429"),
        RuntimeError("rate_limit hit"),
    ],
)
def test_rate_limit_detection(exc) -> None:
    assert classify_failure(exc) == "rate_limit"


@pytest.mark.parametrize(
    "exc",
    [
        APIError("bad", error_type="context_length_exceeded"),
        ContextOverflowError("overflow"),
        RuntimeError("This model's maximum context length is 200000 tokens"),
        RuntimeError("prompt exceeds token limit"),
        RuntimeError("Too many tokens in request"),
    ],
)
def test_context_overflow_detection(exc) -> None:
    assert classify_failure(exc) == "context_overflow"


def test_bare_429_digits_in_a_message_are_not_a_rate_limit() -> None:
    assert classify_failure(RuntimeError("request req_84291 failed: wrote 14290 bytes")) is None


def test_structured_rate_limit_wins_over_overflow_markers() -> None:
    err = APIError("token limit per minute reached", status_code=429)

    assert classify_failure(err) == "rate_limit"


def test_markers_are_searched_through_the_exception_chain() -> None:
    try:
        try:
            raise RuntimeError("maximum context length exceeded")
        except RuntimeError as e:
            raise NetworkError("request failed") from e
    except NetworkError as outer:
        assert classify_failure(outer) == "context_overflow"


def test_unclassified_failures_and_cancellation() -> None:
    assert classify_failure(APIError("invalid model", status_code=400)) is None
    assert classify_failure(NetworkError("connect failed")) is None
    assert classify_failure(asyncio.CancelledError()) is None


def test_signatures_are_configurable() -> None:
    signatures = ErrorSignatures(rate_limit=("slow down",), context_overflow=("window full",))

    assert classify_failure(RuntimeError("Please SLOW DOWN"), signatures) == "rate_limit"
    assert classify_failure(RuntimeError("Window full"), signatures) == "context_overflow"
    assert classify_failure(RuntimeError("rate_limit"), signatures) is None
