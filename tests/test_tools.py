"""Built-in tools against a temporary workspace."""

from __future__ import annotations

import asyncio
import os
import sys

import pytest

from clawloop.errors import ToolExecutionError
from clawloop.tools import (
    EditFileTool,
    ExecTool,
    GlobTool,
    GrepTool,
    ListDirTool,
    ReadFileTool,
    ToolContext,
    WriteFileTool,
)
from clawloop.tools.search import expand_braces
from clawloop.tools.shell import blocked_pattern, format_output

pytestmark = pytest.mark.unit

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="needs sh")


@pytest.fixture
def ctx(workspace) -> ToolContext:
    return ToolContext(workspace=workspace)


# =============================================================================
# Files
# =============================================================================


@pytest.mark.asyncio
async def test_write_then_read_relative_path_creates_parents(ctx, workspace) -> None:
    msg = await WriteFileTool().execute(ctx, {"path": "notes/a.txt", "content": "héllo"})

    assert msg == "Successfully wrote 6 bytes to notes/a.txt"
    assert (workspace / "notes" / "a.txt").read_text(encoding="utf-8") == "héllo"
    assert await ReadFileTool().execute(ctx, {"path": "notes/a.txt"}) == "héllo"


@pytest.mark.asyncio
async def test_write_outside_workspace_is_rejected(ctx, tmp_path) -> None:
    with pytest.raises(ToolExecutionError, match="within workspace"):
        await WriteFileTool().execute(ctx, {"path": str(tmp_path / "x.txt"), "content": ""})


@pytest.mark.asyncio
async def test_read_missing_file_raises(ctx) -> None:
    with pytest.raises(ToolExecutionError, match="failed to read file"):
        await ReadFileTool().execute(ctx, {"path": "nope.txt"})


@pytest.mark.asyncio
async def test_non_string_argument_is_rejected(ctx) -> None:
    with pytest.raises(ToolExecutionError, match="path must be a string"):
        await ReadFileTool().execute(ctx, {"path": 3})


@pytest.mark.asyncio
async def test_list_dir_marks_directories(ctx, workspace) -> None:
    (workspace / "b.txt").write_text("")
    (workspace / "a_dir").mkdir()

    assert await ListDirTool().execute(ctx, {"path": "."}) == "a_dir/\nb.txt"


# =============================================================================
# Edit
# =============================================================================


@pytest.mark.asyncio
async def test_edit_replaces_unique_match(ctx, workspace) -> None:
    (workspace / "f.py").write_text("x = 1\ny = 2\n")

    msg = await EditFileTool().execute(
        ctx, {"path": "f.py", "old_string": "y = 2", "new_string": "y = 3"}
    )

    assert msg == "Successfully edited f.py"
    assert (workspace / "f.py").read_text() == "x = 1\ny = 3\n"


@pytest.mark.asyncio
async def test_edit_ambiguous_match_requires_replace_all(ctx, workspace) -> None:
    (workspace / "f.txt").write_text("a a a")
    tool = EditFileTool()

    with pytest.raises(ToolExecutionError, match="found 3 times"):
        await tool.execute(ctx, {"path": "f.txt", "old_string": "a", "new_string": "b"})

    msg = await tool.execute(
        ctx, {"path": "f.txt", "old_string": "a", "new_string": "b", "replace_all": True}
    )
    assert msg == "Successfully replaced 3 occurrences in f.txt"
    assert (workspace / "f.txt").read_text() == "b b b"


@pytest.mark.asyncio
async def test_edit_missing_match_is_an_error(ctx, workspace) -> None:
    (workspace / "f.txt").write_text("abc")

    with pytest.raises(ToolExecutionError, match="not found"):
        await EditFileTool().execute(
            ctx, {"path": "f.txt", "old_string": "zzz", "new_string": "y"}
        )


# =============================================================================
# Exec
# =============================================================================


def test_dangerous_patterns_are_detected_case_insensitively() -> None:
    assert blocked_pattern("sudo RM -RF / --no-preserve-root") == "rm -rf /"
    assert blocked_pattern("dd if=/dev/zero of=x") == "dd if="
    assert blocked_pattern("ls -la") is None


def test_format_output_appends_stderr_section() -> None:
    assert format_output(b"out\n", b"") == "out\n"
    assert format_output(b"out", b"warn\n") == "out\nstderr:\nwarn\n"
    assert format_output(b"", b"warn") == "stderr:\nwarn"


@pytest.mark.asyncio
async def test_exec_blocks_dangerous_command(ctx) -> None:
    with pytest.raises(ToolExecutionError, match="dangerous command blocked"):
        await ExecTool().execute(ctx, {"command": "rm -rf ~"})


@posix_only
@pytest.mark.asyncio
async def test_exec_runs_in_workspace(ctx, workspace) -> None:
    (workspace / "marker.txt").write_text("")

    out = await ExecTool().execute(ctx, {"command": "ls"})

    assert "marker.txt" in out


@posix_only
@pytest.mark.asyncio
async def test_exec_nonzero_exit_is_an_error_with_output(ctx) -> None:
    with pytest.raises(ToolExecutionError) as excinfo:
        await ExecTool().execute(ctx, {"command": "echo oops >&2; exit 3"})

    assert "exit status 3" in str(excinfo.value)
    assert "stderr:\noops" in str(excinfo.value)


@posix_only
@pytest.mark.asyncio
async def test_exec_timeout_kills_process(ctx) -> None:
    with pytest.raises(ToolExecutionError, match="timed out"):
        await ExecTool(timeout_s=0.2).execute(ctx, {"command": "sleep 5"})


@posix_only
@pytest.mark.asyncio
async def test_exec_honors_cancel_event(workspace) -> None:
    cancel = asyncio.Event()
    ctx = ToolContext(workspace=workspace, cancel=cancel)
    task = asyncio.create_task(ExecTool().execute(ctx, {"command": "sleep 5"}))
    await asyncio.sleep(0.1)
    cancel.set()

    with pytest.raises(asyncio.CancelledError):
        await asyncio.wait_for(task, timeout=2)


# =============================================================================
# Search
# =============================================================================


@pytest.mark.asyncio
async def test_glob_recursive_pattern_lists_newest_first(ctx, workspace) -> None:
    (workspace / "pkg" / "sub").mkdir(parents=True)
    old = workspace / "top.py"
    new = workspace / "pkg" / "sub" / "deep.py"
    old.write_text("")
    new.write_text("")
    (workspace / "notes.md").write_text("")
    os.utime(old, (1_000_000, 1_000_000))
    os.utime(new, (2_000_000, 2_000_000))

    out = await GlobTool().execute(ctx, {"pattern": "**/*.py"})

    assert out.splitlines() == ["Found 2 files:", "", str(new), str(old)]


@pytest.mark.asyncio
async def test_glob_respects_base_path_and_skips_directories(ctx, workspace) -> None:
    (workspace / "src" / "a.txt").parent.mkdir()
    (workspace / "src" / "a.txt").write_text("")
    (workspace / "src" / "dir.txt").mkdir()
    (workspace / "b.txt").write_text("")

    out = await GlobTool().execute(ctx, {"pattern": "*.txt", "path": "src"})

    assert out.splitlines() == ["Found 1 files:", "", str(workspace / "src" / "a.txt")]


@pytest.mark.asyncio
async def test_glob_rejects_empty_pattern(ctx) -> None:
    with pytest.raises(ToolExecutionError, match="invalid glob pattern"):
        await GlobTool().execute(ctx, {"pattern": ""})


@pytest.mark.asyncio
async def test_grep_reports_file_line_and_stripped_content(ctx, workspace) -> None:
    (workspace / "a.py").write_text("import os\n    def run(self):\n        pass\n")
    (workspace / "b.txt").write_text("def not_python\n")

    out = await GrepTool().execute(ctx, {"pattern": r"def\s+\w+", "include": "*.py"})

    assert out.splitlines() == ["Found 1 matches:", "", f"{workspace / 'a.py'}:2: def run(self):"]


@pytest.mark.asyncio
async def test_grep_skips_hidden_and_vendored_directories(ctx, workspace) -> None:
    for d in (".git", "node_modules", "src"):
        (workspace / d).mkdir()
        (workspace / d / "f.txt").write_text("needle\n")

    out = await GrepTool().execute(ctx, {"pattern": "needle"})

    assert out.splitlines()[0] == "Found 1 matches:"
    assert str(workspace / "src" / "f.txt") in out


@pytest.mark.asyncio
async def test_grep_truncates_long_lines_and_result_count(ctx, workspace) -> None:
    (workspace / "long.txt").write_text("x" * 300 + "\n")
    (workspace / "many.txt").write_text("hit\n" * 150)

    long_out = await GrepTool().execute(ctx, {"pattern": "x+", "include": "long.txt"})
    many_out = await GrepTool().execute(ctx, {"pattern": "hit"})

    assert long_out.splitlines()[2].endswith(": " + "x" * 197 + "...")
    assert many_out.splitlines()[0] == "Found 100 matches:"
    assert many_out.endswith("... (results truncated)")


@pytest.mark.asyncio
async def test_grep_invalid_regex_is_an_error(ctx) -> None:
    with pytest.raises(ToolExecutionError, match="invalid regex pattern"):
        await GrepTool().execute(ctx, {"pattern": "("})


def test_expand_braces() -> None:
    assert expand_braces("*.{ts,tsx}") == ["*.ts", "*.tsx"]
    assert expand_braces("*.py") == ["*.py"]
