"""
Cross-Session Context Log
=========================

Project-wide ``context.md`` with two parts:

    # TURING Context

    ## Threads

    - [ ] Wire the restore hook into CI
    - [x] Decide index format

    ## Journal

    | Date | Session | Files | Summary |
    |------|---------|-------|---------|
    | 2026-01-12 14:03 | abc12345 | 3 | Caching transcripts |

Threads are open work items carried between sessions; only open ones are
restored and at most five are retained. The journal records one row per
capture, newest first, and is never replayed.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

CONTEXT_FILENAME = "context.md"
OPEN_THREAD_LIMIT = 5
JOURNAL_LIMIT = 50
NO_THREADS = "_No open threads._"
DEFAULT_SUMMARY = "Session compacted"

JOURNAL_HEADER = "| Date | Session | Files | Summary |"
JOURNAL_RULE = "|------|---------|-------|---------|"

_THREADS_RE = re.compile(r"## Threads\n(.*?)(?=\n## |\Z)", re.DOTALL)
_JOURNAL_RE = re.compile(
    r"\| Date \| Session \| Files \| Summary \|\n\|[-|]+\|\n(.*?)(?=\n\n|\Z)",
    re.DOTALL,
)


@dataclass
class Thread:
    text: str
    done: bool = False

    def to_line(self) -> str:
        return f"- [{'x' if self.done else ' '}] {self.text}"

    @classmethod
    def from_line(cls, line: str) -> Optional["Thread"]:
        line = line.strip()
        if line.startswith("- [ ]"):
            return cls(line[5:].strip(), done=False)
        if line[:5].lower() == "- [x]":
            return cls(line[5:].strip(), done=True)
        return None


class ContextLog:
    """
    Reads and writes ``context.md``.

    Args:
        path: Path to context.md
        open_limit: Open threads retained
        journal_limit: Journal rows retained
    """

    def __init__(
        self,
        path: Path,
        open_limit: int = OPEN_THREAD_LIMIT,
        journal_limit: int = JOURNAL_LIMIT,
    ):
        self.path = Path(path)
        self.open_limit = open_limit
        self.journal_limit = journal_limit
        self.threads: list[Thread] = []
        self.journal: list[str] = []

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> "ContextLog":
        """Parse the file. Missing or unreadable files load empty."""
        self.threads = []
        self.journal = []
        try:
            content = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return self

        threads_match = _THREADS_RE.search(content)
        if threads_match:
            for line in threads_match.group(1).strip().split("\n"):
                thread = Thread.from_line(line)
                if thread is not None:
                    self.threads.append(thread)

        journal_match = _JOURNAL_RE.search(content)
        if journal_match:
            for line in journal_match.group(1).strip().split("\n"):
                if line.startswith("|") and not line.startswith("|---"):
                    self.journal.append(line)

        return self

    def open_threads(self, limit: Optional[int] = None) -> list[Thread]:
        """The most recent open threads, oldest first."""
        limit = self.open_limit if limit is None else limit
        open_ = [t for t in self.threads if not t.done]
        return open_[-limit:] if limit > 0 else []

    def prune(self) -> None:
        """Drop completed threads and the oldest open ones beyond the limit."""
        self.threads = self.open_threads()

    def add_thread(self, text: str) -> Thread:
        thread = Thread(text.strip())
        self.threads.append(thread)
        open_ = [t for t in self.threads if not t.done]
        while len(open_) > self.open_limit:
            oldest = open_.pop(0)
            self.threads.remove(oldest)
        return thread

    def complete_thread(self, match: str) -> Optional[Thread]:
        """Mark the first open thread containing ``match`` (case-insensitive) as done."""
        needle = match.strip().lower()
        for thread in self.threads:
            if not thread.done and needle in thread.text.lower():
                thread.done = True
                return thread
        return None

    def record_capture(
        self,
        session_id: str,
        files: int,
        summary: Optional[str],
        now: Optional[datetime] = None,
    ) -> str:
        """Prune threads and prepend a journal row. Returns the new row."""
        self.prune()
        now = now or datetime.now()
        summary = (summary or DEFAULT_SUMMARY).replace("|", "/").replace("\n", " ")[:50]
        row = f"| {now.strftime('%Y-%m-%d %H:%M')} | {session_id[:8]} | {files} | {summary} |"
        self.journal = [row] + self.journal
        self.journal = self.journal[:self.journal_limit]
        return row

    def render(self) -> str:
        lines = ["# TURING Context", "", "## Threads", ""]
        if self.threads:
            lines.extend(t.to_line() for t in self.threads)
        else:
            lines.append(NO_THREADS)
        lines.extend(["", "## Journal", "", JOURNAL_HEADER, JOURNAL_RULE])
        lines.extend(self.journal[:self.journal_limit])
        return "\n".join(lines) + "\n"

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(self.render(), encoding="utf-8")
