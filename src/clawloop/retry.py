"""Failure classification and backoff for model calls.

Classification consults structured data first (HTTP status, vendor error
type/code carried on ``APIError``) and only then falls back to
case-insensitive substring markers over the exception chain's messages.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from clawloop._http import RATE_LIMIT_STATUS_CODE
from clawloop.errors import APIError, ContextOverflowError, walk_exception_chain

if TYPE_CHECKING:
    from collections.abc import Iterable

RATE_LIMIT_ERROR_TYPES: frozenset[str] = frozenset({"rate_limit_error", "rate_limit_exceeded"})
CONTEXT_OVERFLOW_ERROR_TYPES: frozenset[str] = frozenset(
    {"context_length_exceeded", "context_overflow"}
)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry for rate-limited model calls, with linear backoff."""

    max_attempts: int = 3
    backoff_base_s: float = 2.0

    def __post_init__(self) -> None:
        """Validate invariants to keep retry behavior predictable."""
        if self.max_attempts < 1:
            raise ValueError("RetryPolicy.max_attempts must be >= 1")
        if self.backoff_base_s < 0:
            raise ValueError("RetryPolicy.backoff_base_s must be >= 0")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed *attempt* (1-based): ``base * attempt``."""
        return self.backoff_base_s * max(attempt, 1)


@dataclass(frozen=True)
class ErrorSignatures:
    """Lower-case message markers used when an error carries no structured code."""

    rate_limit: tuple[str, ...] = ("rate_limit", "too many", "status 429", "http 429")
    context_overflow: tuple[str, ...] = (
        "context_length_exceeded",
        "maximum context length",
        "token limit",
        "too many tokens",
    )


DEFAULT_SIGNATURES = ErrorSignatures()


def _messages(exc: BaseException) -> Iterable[str]:
    for e in walk_exception_chain(exc):
        yield str(e).lower()


def _matches(exc: BaseException, markers: Iterable[str]) -> bool:
    lowered = [m.lower() for m in markers]
    return any(marker in msg for msg in _messages(exc) for marker in lowered)


FailureKind = Literal["context_overflow", "rate_limit"]


def classify_failure(
    exc: BaseException, signatures: ErrorSignatures = DEFAULT_SIGNATURES
) -> FailureKind | None:
    """Classify a failed model call as overflow, rate limit, or neither.

    Precedence: structured overflow, structured rate limit, overflow
    markers, rate-limit markers. Overflow markers are checked before
    rate-limit markers because "too many tokens" contains "too many".
    """
    if isinstance(exc, asyncio.CancelledError):
        return None
    if isinstance(exc, ContextOverflowError):
        return "context_overflow"

    api_errors = [e for e in walk_exception_chain(exc) if isinstance(e, APIError)]
    if any(e.error_type in CONTEXT_OVERFLOW_ERROR_TYPES for e in api_errors):
        return "context_overflow"
    if any(
        e.status_code == RATE_LIMIT_STATUS_CODE or e.error_type in RATE_LIMIT_ERROR_TYPES
        for e in api_errors
    ):
        return "rate_limit"

    if _matches(exc, signatures.context_overflow):
        return "context_overflow"
    if _matches(exc, signatures.rate_limit):
        return "rate_limit"
    return None
