"""Shared provider-side error helpers.

Adapters decode vendor error bodies into ``APIError`` with the vendor's own
error type and HTTP status attached, so the loop can classify failures from
structured data first.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx

from clawloop._http import RATE_LIMIT_STATUS_CODE
from clawloop.errors import APIError, NetworkError, RateLimitError

_RATE_LIMIT_ERROR_TYPES = frozenset({"rate_limit_error", "rate_limit_exceeded"})
_BODY_SNIPPET_CHARS = 500


def extract_retry_after_s(headers: httpx.Headers | dict[str, str] | None) -> float | None:
    """Return the Retry-After header as seconds, when present and numeric."""
    if headers is None:
        return None
    raw = headers.get("retry-after") or headers.get("Retry-After")
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        seconds = float(raw)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def _vendor_error(payload: Any) -> tuple[str | None, str | None]:
    """Pull ``(error_type, message)`` out of a decoded vendor error body.

    Handles both ``{"type": "error", "error": {"type", "message"}}`` and the
    OpenAI-compatible ``{"error": {"message", "type", "code"}}`` shapes.
    """
    if not isinstance(payload, dict):
        return None, None
    error = payload.get("error")
    if not isinstance(error, dict):
        return None, None
    message = error.get("message")
    code = error.get("code")
    error_type = code if isinstance(code, str) and code else error.get("type")
    return (
        error_type if isinstance(error_type, str) else None,
        message if isinstance(message, str) else None,
    )


def error_from_payload(
    payload: Any,
    *,
    provider: str,
    status_code: int | None = None,
    headers: httpx.Headers | dict[str, str] | None = None,
) -> APIError | None:
    """Build an ``APIError`` from a decoded vendor error object, if it is one."""
    error_type, message = _vendor_error(payload)
    if error_type is None and message is None:
        return None
    return _build_error(
        f"{provider} API error: {error_type} - {message}",
        provider=provider,
        error_type=error_type,
        status_code=status_code,
        headers=headers,
    )


def error_from_response(
    status_code: int,
    body: bytes,
    *,
    provider: str,
    headers: httpx.Headers | dict[str, str] | None = None,
) -> APIError:
    """Decode a non-2xx HTTP response into ``APIError``.

    Uses the vendor's structured error when the body carries one, else a
    generic status error with a body snippet.
    """
    text = body.decode("utf-8", "replace")
    try:
        payload = json.loads(text) if text.strip() else None
    except ValueError:
        payload = None

    err = error_from_payload(
        payload, provider=provider, status_code=status_code, headers=headers
    )
    if err is not None:
        return err
    return _build_error(
        f"{provider} API error: status {status_code} - {text[:_BODY_SNIPPET_CHARS]}",
        provider=provider,
        error_type=None,
        status_code=status_code,
        headers=headers,
    )


def _build_error(
    message: str,
    *,
    provider: str,
    error_type: str | None,
    status_code: int | None,
    headers: httpx.Headers | dict[str, str] | None,
) -> APIError:
    retry_after_s = extract_retry_after_s(headers)
    err_cls: type[APIError] = APIError
    if status_code == RATE_LIMIT_STATUS_CODE or error_type in _RATE_LIMIT_ERROR_TYPES:
        err_cls = RateLimitError
    return err_cls(
        message,
        hint=_auth_hint(provider, status_code),
        error_type=error_type,
        status_code=status_code,
        retry_after_s=retry_after_s,
        provider=provider,
    )


def _auth_hint(provider: str, status_code: int | None) -> str | None:
    """Name the env var to check on credential failures."""
    if status_code not in {401, 403}:
        return None
    env_var = "ANTHROPIC_API_KEY" if provider == "anthropic" else "OPENROUTER_API_KEY"
    return f"Check credentials/permissions (try setting {env_var} or Config.api_key)."


def wrap_transport_error(exc: BaseException, *, provider: str) -> APIError:
    """Map an ``httpx`` transport exception into ``NetworkError``."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc
    if isinstance(exc, APIError):
        if exc.provider is None:
            exc.provider = provider
        return exc

    kind = "timed out" if isinstance(exc, httpx.TimeoutException) else "failed"
    return NetworkError(
        f"{provider} request {kind}: {type(exc).__name__}: {exc}",
        provider=provider,
    )
