"""Argument coercion shared by the built-in tools."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from clawloop.errors import ToolExecutionError


def require_str(args: dict[str, Any], key: str, *, tool: str) -> str:
    value = args.get(key)
    if not isinstance(value, str):
        raise ToolExecutionError(f"{key} must be a string", tool_name=tool)
    return value


def optional_str(args: dict[str, Any], key: str, *, tool: str) -> str | None:
    value = args.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ToolExecutionError(f"{key} must be a string", tool_name=tool)
    return value


def ensure_within(path: Path, workspace: Path, *, tool: str) -> Path:
    """Return the resolved *path*, rejecting anything outside *workspace*."""
    resolved = path.resolve()
    root = workspace.resolve()
    if resolved != root and root not in resolved.parents:
        raise ToolExecutionError("path must be within workspace", tool_name=tool)
    return resolved
