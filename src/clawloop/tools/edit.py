"""Exact-match string replacement tool."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from clawloop.errors import ToolExecutionError
from clawloop.tools._args import ensure_within, require_str

if TYPE_CHECKING:
    from clawloop.tools.registry import ToolContext


class EditFileTool:
    """Replace ``old_string`` with ``new_string`` in a workspace file.

    The match is exact, whitespace included. More than one match is an
    error unless ``replace_all`` is set.
    """

    name = "edit_file"
    description = (
        "Perform exact string replacement in a file. The old_string must match "
        "exactly (including whitespace and indentation). If replace_all is true, "
        "all occurrences will be replaced."
    )
    parameters: dict[str, Any] = {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "The path to the file to edit"},
            "old_string": {"type": "string", "description": "The exact string to find and replace"},
            "new_string": {"type": "string", "description": "The string to replace it with"},
            "replace_all": {
                "type": "boolean",
                "description": "If true, replace all occurrences (default: false)",
            },
        },
        "required": ["path", "old_string", "new_string"],
    }

    async def execute(self, ctx: ToolContext, args: dict[str, Any]) -> str:
        raw_path = require_str(args, "path", tool=self.name)
        old = require_str(args, "old_string", tool=self.name)
        new = require_str(args, "new_string", tool=self.name)
        replace_all = args.get("replace_all") is True

        if not old:
            raise ToolExecutionError("old_string must not be empty", tool_name=self.name)

        path = ensure_within(ctx.resolve_path(raw_path), ctx.workspace, tool=self.name)
        try:
            original = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ToolExecutionError(
                f"failed to read file: {e}", tool_name=self.name
            ) from e

        count = original.count(old)
        if count == 0:
            raise ToolExecutionError("old_string not found in file", tool_name=self.name)
        if count > 1 and not replace_all:
            raise ToolExecutionError(
                f"old_string found {count} times. Use replace_all=true to replace all, "
                "or provide more context to make it unique",
                tool_name=self.name,
            )

        updated = original.replace(old, new) if replace_all else original.replace(old, new, 1)
        try:
            path.write_text(updated, encoding="utf-8")
        except OSError as e:
            raise ToolExecutionError(
                f"failed to write file: {e}", tool_name=self.name
            ) from e

        if replace_all and count > 1:
            return f"Successfully replaced {count} occurrences in {raw_path}"
        return f"Successfully edited {raw_path}"
