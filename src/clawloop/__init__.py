"""clawloop: an autonomous tool-using agent loop.

Public API:
    - AgentLoop: the turn loop (run, run_continue, resume, stop)
    - Config / load_config / create_provider: configuration and wiring
    - default_registry: built-in tools with model-friendly aliases
    - MemoryStore: file-backed memory and resume bookkeeping
"""

from __future__ import annotations

import logging

from clawloop.config import BoundaryScan, Config, create_provider, load_config
from clawloop.errors import (
    APIError,
    ClawloopError,
    ConfigurationError,
    ContextOverflowError,
    LoopBusyError,
    NetworkError,
    ParseError,
    RateLimitError,
    StreamError,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
)
from clawloop.loop import AgentLoop, LoopState, RunResult
from clawloop.memory import Memory, MemoryStore
from clawloop.retry import ErrorSignatures, RetryPolicy
from clawloop.tools import ToolContext, ToolRegistry, ToolResult, default_registry

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("clawloop")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("clawloop").addHandler(logging.NullHandler())

__all__ = [
    "APIError",
    "AgentLoop",
    "BoundaryScan",
    "ClawloopError",
    "Config",
    "ConfigurationError",
    "ContextOverflowError",
    "ErrorSignatures",
    "LoopBusyError",
    "LoopState",
    "Memory",
    "MemoryStore",
    "NetworkError",
    "ParseError",
    "RateLimitError",
    "RetryPolicy",
    "RunResult",
    "StreamError",
    "ToolContext",
    "ToolError",
    "ToolExecutionError",
    "ToolNotFoundError",
    "ToolRegistry",
    "ToolResult",
    "create_provider",
    "default_registry",
    "load_config",
]
