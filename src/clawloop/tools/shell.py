"""Shell command tool (``exec``)."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from clawloop._cancel import run_cancellable
from clawloop.errors import ToolExecutionError
from clawloop.tools._args import optional_str, require_str

if TYPE_CHECKING:
    from clawloop.tools.registry import ToolContext

logger = logging.getLogger(__name__)

DEFAULT_EXEC_TIMEOUT_S = 120.0

DANGEROUS_PATTERNS: tuple[str, ...] = (
    "rm -rf /",
    "rm -rf /*",
    "rm -rf ~",
    "rm -rf $home",
    "mkfs.",
    "dd if=",
    ":(){:|:&};:",
    "> /dev/sda",
    "chmod -r 777 /",
    "chown -r",
)


def blocked_pattern(command: str) -> str | None:
    """Return the dangerous pattern *command* contains, if any."""
    lowered = command.lower()
    for pattern in DANGEROUS_PATTERNS:
        if pattern in lowered:
            return pattern
    return None


def format_output(stdout: bytes, stderr: bytes) -> str:
    out = stdout.decode("utf-8", "replace")
    err = stderr.decode("utf-8", "replace")
    if not err:
        return out
    prefix = out + "\n" if out else ""
    return prefix + "stderr:\n" + err


class ExecTool:
    """Run a command through ``sh -c`` in the workspace.

    The process is killed when its timeout elapses or when the loop's
    cancellation event is set.
    """

    name = "exec"
    description = (
        "Execute a shell command and return its output. Use for running build "
        "commands, git operations, etc."
    )
    parameters: dict[str, Any] = {
        "type": "object",
        "properties": {
            "command": {"type": "string", "description": "The shell command to execute"},
            "workdir": {
                "type": "string",
                "description": "Working directory for the command (optional)",
            },
        },
        "required": ["command"],
    }

    def __init__(self, timeout_s: float = DEFAULT_EXEC_TIMEOUT_S) -> None:
        self.timeout_s = timeout_s

    async def execute(self, ctx: ToolContext, args: dict[str, Any]) -> str:
        command = require_str(args, "command", tool=self.name)
        pattern = blocked_pattern(command)
        if pattern is not None:
            raise ToolExecutionError(
                f"dangerous command blocked: {pattern}", tool_name=self.name
            )

        workdir = optional_str(args, "workdir", tool=self.name)
        cwd = ctx.resolve_path(workdir) if workdir else ctx.workspace

        proc = await asyncio.create_subprocess_exec(
            "sh",
            "-c",
            command,
            cwd=str(cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                run_cancellable(proc.communicate(), ctx.cancel), timeout=self.timeout_s
            )
        except asyncio.TimeoutError as e:
            await _kill(proc)
            raise ToolExecutionError(
                f"command timed out after {self.timeout_s:g}s", tool_name=self.name
            ) from e
        except asyncio.CancelledError:
            await _kill(proc)
            raise

        output = format_output(stdout, stderr)
        if proc.returncode != 0:
            raise ToolExecutionError(
                f"command failed: exit status {proc.returncode}\n{output}".rstrip(),
                tool_name=self.name,
            )
        return output


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.kill()
    except ProcessLookupError:
        return
    await proc.wait()
    logger.debug("Killed shell process pid=%s", proc.pid)
