"""Built-in tools and the registry they plug into."""

from __future__ import annotations

from .edit import EditFileTool
from .files import ListDirTool, ReadFileTool, WriteFileTool
from .registry import Tool, ToolContext, ToolRegistry, ToolResult
from .search import GlobTool, GrepTool
from .shell import ExecTool

#: Names some models were trained on, mapped to the canonical tool names.
DEFAULT_ALIASES: dict[str, str] = {
    "Bash": "exec",
    "Read": "read_file",
    "Write": "write_file",
    "Edit": "edit_file",
    "LS": "list_dir",
    "Glob": "glob",
    "Grep": "grep",
}


def default_registry(*, exec_timeout_s: float | None = None) -> ToolRegistry:
    """Return a registry with every built-in tool and the default aliases."""
    registry = ToolRegistry()
    registry.register(ReadFileTool())
    registry.register(WriteFileTool())
    registry.register(ListDirTool())
    registry.register(EditFileTool())
    registry.register(GlobTool())
    registry.register(GrepTool())
    registry.register(
        ExecTool() if exec_timeout_s is None else ExecTool(timeout_s=exec_timeout_s)
    )
    for alias, canonical in DEFAULT_ALIASES.items():
        registry.register_alias(alias, canonical)
    return registry


__all__ = [
    "DEFAULT_ALIASES",
    "EditFileTool",
    "ExecTool",
    "GlobTool",
    "GrepTool",
    "ListDirTool",
    "ReadFileTool",
    "Tool",
    "ToolContext",
    "ToolRegistry",
    "ToolResult",
    "WriteFileTool",
    "default_registry",
]
