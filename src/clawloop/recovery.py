"""Context-overflow recovery and task-boundary notes.

Recovery never retries the failed call. It leaves a resume trigger and a
gap-analysis prompt behind so a fresh session can pick the task up.
"""

from __future__ import annotations

from datetime import datetime
import logging
import time
from typing import TYPE_CHECKING

from clawloop.errors import ContextOverflowError

if TYPE_CHECKING:
    from clawloop.memory import Memory

logger = logging.getLogger(__name__)

OVERFLOW_REASON = "context_overflow"
RESUME_COMMAND = "AgentLoop.resume()"

GAP_ANALYSIS_TEMPLATE = """# Session Recovery - Gap Analysis

You are resuming from a context overflow. Before continuing:

1. **Review Memory Context** below
2. **Identify Knowledge Gaps** - What information might be missing?
3. **Read Relevant Files** - Use file tools to recover context
4. **Continue the Task** - Resume where you left off

## Important
- Do NOT make assumptions about previous work
- Verify file states before making changes
- Check git status if applicable

---

{memory_context}

---

Please perform gap analysis and then continue the task.
"""


def new_session_id(now: float | None = None) -> str:
    return f"session_{int(time.time() if now is None else now)}"


def gap_analysis_prompt(memory_context: str) -> str:
    """Build the prompt a resumed session starts from."""
    return GAP_ANALYSIS_TEMPLATE.format(memory_context=memory_context)


def handle_context_overflow(
    memory: Memory | None, *, days: int, provider: str | None = None
) -> ContextOverflowError:
    """Persist resume state and return the error the loop should raise.

    Each memory write is attempted independently; failures are logged and
    do not prevent the others or change the returned error.
    """
    session_id = new_session_id()
    logger.warning("Context overflow detected, initiating recovery (%s)", session_id)

    if memory is not None:
        try:
            memory.write_resume_trigger(session_id, OVERFLOW_REASON)
        except Exception as e:
            logger.error("Failed to write resume trigger: %s", e)

        try:
            context = memory.get_context(days)
            memory.write_resume_prompt(gap_analysis_prompt(context))
        except Exception as e:
            logger.error("Failed to write resume prompt: %s", e)

        note = (
            "## Context Overflow Recovery\n\n"
            f"Time: {datetime.now().strftime('%H:%M:%S')}\n"
            f"Session: {session_id}\n\n"
            "Context overflow detected. Resume trigger created.\n"
            f"Run resume ({RESUME_COMMAND}) to continue.\n"
        )
        try:
            memory.append_daily_note(note)
        except Exception as e:
            logger.error("Failed to append overflow note: %s", e)

    return ContextOverflowError(
        f"context overflow - run resume ({RESUME_COMMAND}) to continue",
        session_id=session_id,
        hint="A gap-analysis resume prompt was saved to memory.",
        provider=provider,
    )


def record_boundary(memory: Memory | None, pattern: str) -> None:
    """Note a detected task boundary in today's daily note."""
    logger.info("Strategic boundary detected: %s", pattern)
    if memory is None:
        return
    try:
        memory.append_daily_note(
            f"## Strategic Boundary: {pattern}\n\n"
            f"Detected at {datetime.now().strftime('%H:%M:%S')}\n"
        )
    except Exception as e:
        logger.error("Failed to record boundary note: %s", e)
