"""Small HTTP-related constants shared across clawloop.

This module is intentionally tiny to avoid circular imports and drift.
"""

from __future__ import annotations

RATE_LIMIT_STATUS_CODE = 429

DEFAULT_TIMEOUT_S = 120.0

# Large tool payloads arrive as a single SSE data line.
DEFAULT_MAX_LINE_BYTES = 1024 * 1024
