"""Tool registry: name/alias resolution and failure-isolating execution.

The registry is shared between loops. Registration normally happens at
construction; lookups and executions may then run from any number of
loops (or threads) concurrently.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
from pathlib import Path
import threading
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from clawloop.errors import ToolError, ToolExecutionError, ToolNotFoundError
from clawloop.providers.models import ToolDefinition

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolContext:
    """Per-execution context handed to a tool."""

    workspace: Path = field(default_factory=Path.cwd)
    cancel: asyncio.Event | None = None

    def resolve_path(self, path: str) -> Path:
        """Resolve *path* against the workspace (absolute paths pass through)."""
        p = Path(path).expanduser()
        return p if p.is_absolute() else self.workspace / p


@runtime_checkable
class Tool(Protocol):
    """A capability the model can invoke by name."""

    @property
    def name(self) -> str: ...

    @property
    def description(self) -> str: ...

    @property
    def parameters(self) -> dict[str, Any]:
        """JSON Schema object describing the arguments."""
        ...

    async def execute(self, ctx: ToolContext, args: dict[str, Any]) -> str:
        """Run the tool; raise on failure."""
        ...


@dataclass(frozen=True)
class ToolResult:
    """Outcome of ``ToolRegistry.execute``: text on success, error otherwise."""

    text: str = ""
    error: ToolError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_message_content(self) -> str:
        """Render as the content of a ``tool`` transcript message."""
        if self.error is not None:
            return f"Error: {self.error}"
        return self.text


class ToolRegistry:
    """Canonical-name tool table with case-insensitive aliases."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}
        self._aliases: dict[str, str] = {}
        self._lock = threading.RLock()

    def register(self, tool: Tool) -> None:
        """Add *tool* under its canonical name, replacing any previous one."""
        with self._lock:
            if tool.name in self._tools:
                logger.debug("Replacing registered tool %r", tool.name)
            self._tools[tool.name] = tool

    def register_alias(self, alias: str, canonical: str) -> None:
        """Map *alias* (matched case-insensitively) to *canonical*."""
        with self._lock:
            self._aliases[alias.lower()] = canonical

    def resolve_name(self, name: str) -> str:
        """Return the canonical name for *name*, or *name* itself."""
        with self._lock:
            return self._aliases.get(name.lower(), name)

    def get(self, name: str) -> Tool | None:
        with self._lock:
            return self._tools.get(self._aliases.get(name.lower(), name))

    def list(self) -> list[str]:
        """Registered canonical names, sorted."""
        with self._lock:
            return sorted(self._tools)

    def get_definitions(self) -> list[ToolDefinition]:
        with self._lock:
            tools = [self._tools[name] for name in sorted(self._tools)]
        return [
            ToolDefinition(name=t.name, description=t.description, parameters=t.parameters)
            for t in tools
        ]

    async def execute(
        self, ctx: ToolContext, name: str, args: Mapping[str, Any] | None = None
    ) -> ToolResult:
        """Execute the tool *name* resolves to.

        Never raises for tool-level problems: an unknown name or an exception
        inside the tool is returned as ``ToolResult.error``. Cancellation is
        not absorbed.
        """
        tool = self.get(name)
        if tool is None:
            return ToolResult(error=ToolNotFoundError(name, self.list()))

        try:
            text = await tool.execute(ctx, dict(args or {}))
        except asyncio.CancelledError:
            raise
        except ToolError as e:
            return ToolResult(error=e)
        except Exception as e:
            err = ToolExecutionError(str(e) or type(e).__name__, tool_name=tool.name)
            err.__cause__ = e
            logger.debug("Tool %s failed: %s", tool.name, e)
            return ToolResult(error=err)
        return ToolResult(text=text)
