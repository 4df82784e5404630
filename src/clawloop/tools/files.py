"""File-system tools: read_file, write_file, list_dir."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from clawloop.errors import ToolExecutionError
from clawloop.tools._args import ensure_within, require_str

if TYPE_CHECKING:
    from clawloop.tools.registry import ToolContext

_PATH_SCHEMA = {"type": "string", "description": "Path, relative to the workspace"}


class ReadFileTool:
    name = "read_file"
    description = "Read the contents of a file at the given path. Returns the file content as text."
    parameters: dict[str, Any] = {
        "type": "object",
        "properties": {"path": _PATH_SCHEMA},
        "required": ["path"],
    }

    async def execute(self, ctx: ToolContext, args: dict[str, Any]) -> str:
        path = ctx.resolve_path(require_str(args, "path", tool=self.name))
        try:
            return path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise ToolExecutionError(
                f"failed to read file: {e}", tool_name=self.name
            ) from e


class WriteFileTool:
    name = "write_file"
    description = (
        "Write content to a file at the given path. Creates the file (and parent "
        "directories) if it doesn't exist, overwrites if it does."
    )
    parameters: dict[str, Any] = {
        "type": "object",
        "properties": {
            "path": _PATH_SCHEMA,
            "content": {"type": "string", "description": "Content to write"},
        },
        "required": ["path", "content"],
    }

    async def execute(self, ctx: ToolContext, args: dict[str, Any]) -> str:
        raw_path = require_str(args, "path", tool=self.name)
        content = require_str(args, "content", tool=self.name)
        path = ensure_within(ctx.resolve_path(raw_path), ctx.workspace, tool=self.name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise ToolExecutionError(
                f"failed to write file: {e}", tool_name=self.name
            ) from e
        return f"Successfully wrote {len(content.encode('utf-8'))} bytes to {raw_path}"


class ListDirTool:
    name = "list_dir"
    description = "List the contents of a directory. Returns a list of files and subdirectories."
    parameters: dict[str, Any] = {
        "type": "object",
        "properties": {"path": _PATH_SCHEMA},
        "required": ["path"],
    }

    async def execute(self, ctx: ToolContext, args: dict[str, Any]) -> str:
        path = ctx.resolve_path(require_str(args, "path", tool=self.name))
        try:
            entries = sorted(path.iterdir(), key=lambda p: p.name)
        except OSError as e:
            raise ToolExecutionError(
                f"failed to read directory: {e}", tool_name=self.name
            ) from e
        lines = [f"{e.name}/" if e.is_dir() else e.name for e in entries]
        return "\n".join(lines)
