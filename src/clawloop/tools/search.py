"""Search tools: glob (file names) and grep (file contents)."""

from __future__ import annotations

from fnmatch import fnmatchcase
import os
from pathlib import Path
import re
from typing import TYPE_CHECKING, Any

from clawloop.errors import ToolExecutionError
from clawloop.tools._args import optional_str, require_str

if TYPE_CHECKING:
    from collections.abc import Iterator

    from clawloop.tools.registry import ToolContext

MAX_RESULTS = 100
MAX_LINE_CHARS = 200
MAX_FILE_BYTES = 1024 * 1024
SKIPPED_DIRS = frozenset({"node_modules", "vendor", "__pycache__"})

_BASE_SCHEMA = {
    "type": "string",
    "description": "Base directory to search in (defaults to workspace)",
}


def _base_dir(ctx: ToolContext, args: dict[str, Any], tool: str) -> Path:
    raw = optional_str(args, "path", tool=tool)
    return ctx.workspace if raw is None else ctx.resolve_path(raw)


class GlobTool:
    name = "glob"
    description = (
        "Search for files matching a glob pattern. Supports patterns like:\n"
        '- "**/*.py" - All Python files\n'
        '- "src/**/*.ts" - TypeScript files in src\n'
        '- "*.md" - Markdown files in the base directory\n'
        "Returns matching file paths sorted by modification time (newest first)."
    )
    parameters: dict[str, Any] = {
        "type": "object",
        "properties": {
            "pattern": {
                "type": "string",
                "description": "Glob pattern to match files (e.g., '**/*.py', 'src/**/*.ts')",
            },
            "path": _BASE_SCHEMA,
        },
        "required": ["pattern"],
    }

    async def execute(self, ctx: ToolContext, args: dict[str, Any]) -> str:
        pattern = require_str(args, "pattern", tool=self.name)
        base = _base_dir(ctx, args, self.name)
        try:
            found = [(p, p.stat().st_mtime) for p in base.glob(pattern) if p.is_file()]
        except (ValueError, NotImplementedError) as e:
            raise ToolExecutionError(
                f"invalid glob pattern: {e}", tool_name=self.name
            ) from e
        except OSError as e:
            raise ToolExecutionError(f"failed to search: {e}", tool_name=self.name) from e

        found.sort(key=lambda item: item[1], reverse=True)
        lines = [f"Found {len(found)} files:", ""]
        lines.extend(str(p) for p, _ in found[:MAX_RESULTS])
        if len(found) > MAX_RESULTS:
            lines.append(f"... and {len(found) - MAX_RESULTS} more files")
        return "\n".join(lines)


def expand_braces(pattern: str) -> list[str]:
    """Expand a single ``{a,b}`` group: ``*.{ts,tsx}`` -> ``*.ts``, ``*.tsx``."""
    start, end = pattern.find("{"), pattern.find("}")
    if start == -1 or end < start:
        return [pattern]
    prefix, suffix = pattern[:start], pattern[end + 1 :]
    return [prefix + option + suffix for option in pattern[start + 1 : end].split(",")]


def _walk_files(base: Path) -> Iterator[Path]:
    for root, dirs, files in os.walk(base):
        dirs[:] = sorted(d for d in dirs if not d.startswith(".") and d not in SKIPPED_DIRS)
        for name in sorted(files):
            yield Path(root) / name


def _truncate(line: str) -> str:
    if len(line) > MAX_LINE_CHARS:
        line = line[: MAX_LINE_CHARS - 3] + "..."
    return line.strip()


class GrepTool:
    name = "grep"
    description = (
        "Search file contents using a regular expression pattern.\n"
        "Returns matching lines with file paths and line numbers.\n"
        'Supports Python regex syntax (e.g., "log.*Error", "def\\s+\\w+").'
    )
    parameters: dict[str, Any] = {
        "type": "object",
        "properties": {
            "pattern": {
                "type": "string",
                "description": "Regular expression pattern to search for",
            },
            "path": _BASE_SCHEMA,
            "include": {
                "type": "string",
                "description": "File pattern to include (e.g., '*.py', '*.{ts,tsx}')",
            },
        },
        "required": ["pattern"],
    }

    async def execute(self, ctx: ToolContext, args: dict[str, Any]) -> str:
        pattern = require_str(args, "pattern", tool=self.name)
        try:
            regex = re.compile(pattern)
        except re.error as e:
            raise ToolExecutionError(
                f"invalid regex pattern: {e}", tool_name=self.name
            ) from e
        base = _base_dir(ctx, args, self.name)
        include = optional_str(args, "include", tool=self.name)
        includes = expand_braces(include) if include else None

        matches: list[str] = []
        truncated = False
        for path in _walk_files(base):
            if includes and not any(fnmatchcase(path.name, p) for p in includes):
                continue
            try:
                if path.stat().st_size > MAX_FILE_BYTES:
                    continue
                data = path.read_bytes()
            except OSError:
                continue
            if b"\0" in data[:8192]:
                continue
            text = data.decode("utf-8", errors="replace")
            for lineno, line in enumerate(text.splitlines(), start=1):
                if regex.search(line):
                    matches.append(f"{path}:{lineno}: {_truncate(line)}")
                    if len(matches) >= MAX_RESULTS:
                        truncated = True
                        break
            if truncated:
                break

        lines = [f"Found {len(matches)} matches:", "", *matches]
        if truncated:
            lines.append("... (results truncated)")
        return "\n".join(lines)
