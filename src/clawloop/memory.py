"""File-backed memory collaborator.

Layout under the workspace::

    MEMORY.md                 long-term memory
    resume-prompt.md          gap-analysis prompt for the next session
    resume-trigger.json       present while a resume is pending
    memory/YYYYMM/YYYYMMDD.md daily notes
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
import json
import logging
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

LONG_TERM_FILE = "MEMORY.md"
RESUME_PROMPT_FILE = "resume-prompt.md"
RESUME_TRIGGER_FILE = "resume-trigger.json"
DAILY_NOTES_DIR = "memory"
SECTION_SEPARATOR = "\n\n---\n\n"


@runtime_checkable
class Memory(Protocol):
    """What the turn loop needs from a memory collaborator."""

    def get_context(self, days: int) -> str: ...

    def has_pending_resume(self) -> bool: ...

    def read_resume_prompt(self) -> str: ...

    def write_resume_trigger(self, session_id: str, reason: str) -> None: ...

    def write_resume_prompt(self, text: str) -> None: ...

    def clear_resume_trigger(self) -> None: ...

    def append_daily_note(self, text: str) -> None: ...


@dataclass(frozen=True)
class DailyNote:
    day: date
    content: str


class MemoryStore:
    """Plain-file implementation of ``Memory``."""

    def __init__(self, workspace: str | Path) -> None:
        self.workspace = Path(workspace).expanduser()
        self.memory_dir = self.workspace / DAILY_NOTES_DIR
        self.long_term_path = self.workspace / LONG_TERM_FILE
        self.resume_prompt_path = self.workspace / RESUME_PROMPT_FILE
        self.resume_trigger_path = self.workspace / RESUME_TRIGGER_FILE
        self.memory_dir.mkdir(parents=True, exist_ok=True)

    def daily_note_path(self, day: date) -> Path:
        return self.memory_dir / day.strftime("%Y%m") / f"{day.strftime('%Y%m%d')}.md"

    # --- Long-term memory ---
    def read_long_term(self) -> str:
        return _read(self.long_term_path)

    def write_long_term(self, content: str) -> None:
        _write(self.long_term_path, content)

    def append_long_term(self, content: str) -> None:
        existing = self.read_long_term()
        if existing and not existing.endswith("\n"):
            existing += "\n"
        self.write_long_term(existing + content)

    # --- Daily notes ---
    def read_today(self) -> str:
        return _read(self.daily_note_path(date.today()))

    def append_daily_note(self, text: str) -> None:
        """Append to today's note, creating it with a date header."""
        today = date.today()
        path = self.daily_note_path(today)
        existing = _read(path)
        if not existing:
            content = f"# {today.strftime('%Y-%m-%d %A')}\n\n{text}"
        else:
            if not existing.endswith("\n"):
                existing += "\n"
            content = existing + "\n" + text
        _write(path, content)

    def recent_daily_notes(self, days: int) -> list[DailyNote]:
        """Non-empty notes from the last *days* days, newest first."""
        today = date.today()
        notes: list[DailyNote] = []
        for offset in range(max(days, 0)):
            day = today - timedelta(days=offset)
            content = _read(self.daily_note_path(day))
            if content:
                notes.append(DailyNote(day=day, content=content))
        return notes

    def get_context(self, days: int) -> str:
        """Render memory for injection into a prompt ("" when there is none)."""
        parts: list[str] = []
        long_term = self.read_long_term()
        if long_term:
            parts.append("## Long-term Memory\n\n" + long_term)
        notes = self.recent_daily_notes(days)
        if notes:
            joined = SECTION_SEPARATOR.join(n.content for n in notes)
            parts.append("## Recent Daily Notes\n\n" + joined)
        if not parts:
            return ""
        return "# Memory\n\n" + SECTION_SEPARATOR.join(parts)

    # --- Resume protocol ---
    def write_resume_prompt(self, text: str) -> None:
        _write(self.resume_prompt_path, text)

    def read_resume_prompt(self) -> str:
        return _read(self.resume_prompt_path)

    def clear_resume_prompt(self) -> None:
        self.resume_prompt_path.unlink(missing_ok=True)

    def write_resume_trigger(self, session_id: str, reason: str) -> None:
        payload = {
            "timestamp": datetime.now().astimezone().isoformat(timespec="seconds"),
            "session_id": session_id,
            "reason": reason,
            "workspace": str(self.workspace),
        }
        _write(self.resume_trigger_path, json.dumps(payload, indent=2) + "\n")

    def read_resume_trigger(self) -> dict[str, Any] | None:
        """Return the pending trigger, or None when absent or unreadable."""
        raw = _read(self.resume_trigger_path)
        if not raw:
            return None
        try:
            value = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring malformed resume trigger at %s", self.resume_trigger_path)
            return None
        return value if isinstance(value, dict) else None

    def clear_resume_trigger(self) -> None:
        self.resume_trigger_path.unlink(missing_ok=True)

    def has_pending_resume(self) -> bool:
        return self.resume_trigger_path.is_file()


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return ""


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
