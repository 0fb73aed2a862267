"""
Status Reporting
================

Read-only views of recorded state:

- ``project_status``: sessions of one project plus details of the latest
- ``workstation_status``: projects with recorded sessions under well-known
  parent directories

The workstation scan is a bounded breadth-first walk and is best-effort:
unreadable directories are skipped and projects reached through several
paths (symlinks, case-insensitive filesystems) are counted once.
"""

import logging
import os
from collections import deque
from dataclasses import dataclass, field, asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional

from turing.config import DEFAULT_STATE_DIR, TuringConfig
from turing.context_log import CONTEXT_FILENAME, ContextLog
from turing.discovery import load_entries
from turing.index import IndexEntry, JsonIndexStore, LatestMarker, open_index_store
from turing.session_state import SessionRecordStore, utc_now

logger = logging.getLogger(__name__)

SKIP_DIRS = {"node_modules", "__pycache__", "venv", "site-packages"}


def format_age(captured: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Human readable age: 5m ago, 3h ago, 2d ago."""
    if captured is None:
        return "unknown"
    now = now or utc_now()
    seconds = max(0, int((now - captured).total_seconds()))
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"


@dataclass
class SessionRow:
    session_id: str
    tty: str
    age: str
    last_captured_at: str
    compaction_count: int
    tokens: int


@dataclass
class LatestSession:
    session_id: str
    created_at: Optional[str] = None
    last_captured_at: Optional[str] = None
    tty: str = "unknown"
    compaction_count: int = 0
    tokens: dict[str, Any] = field(default_factory=dict)
    validation: dict[str, Any] = field(default_factory=dict)
    auto_decisions_extracted: int = 0
    token_history: list[dict[str, Any]] = field(default_factory=list)
    archive_count: int = 0
    adr_titles: list[str] = field(default_factory=list)
    adr_count: int = 0


@dataclass
class ProjectStatus:
    project_dir: str
    project_name: str
    has_sessions: bool = False
    from_index: bool = False
    sessions: list[SessionRow] = field(default_factory=list)
    total_tokens: int = 0
    total_bytes: int = 0
    last_updated: Optional[str] = None
    latest: Optional[LatestSession] = None
    open_threads: list[str] = field(default_factory=list)
    journal_count: int = 0

    @property
    def total_kb(self) -> float:
        return self.total_bytes / 1024

    def to_dict(self) -> dict:
        data = asdict(self)
        data["total_kb"] = round(self.total_kb, 1)
        return data


def project_status(config: TuringConfig, now: Optional[datetime] = None) -> ProjectStatus:
    """
    Collect the status of one project.

    Sessions come from the index; without one, session metadata records
    are scanned.
    """
    project_dir = Path(config.project_dir)
    sessions_dir = config.sessions_dir
    status = ProjectStatus(project_dir=str(project_dir), project_name=project_dir.name)
    if not sessions_dir.is_dir():
        return status
    status.has_sessions = True

    index = open_index_store(config)
    status.from_index = index.exists()
    entries = load_entries(sessions_dir, index)
    status.last_updated = index.last_updated() if status.from_index else None

    now = now or utc_now()
    for entry in sorted(entries, key=lambda e: e.last_captured_at, reverse=True):
        status.sessions.append(SessionRow(
            session_id=entry.session_id,
            tty=entry.tty,
            age=format_age(entry.captured_at, now),
            last_captured_at=entry.last_captured_at,
            compaction_count=entry.compaction_count,
            tokens=entry.tokens,
        ))
        status.total_tokens += entry.tokens
        state_path = SessionRecordStore(sessions_dir, entry.session_id).state_path
        if state_path.is_file():
            status.total_bytes += state_path.stat().st_size

    latest_id = LatestMarker(sessions_dir).read()
    if latest_id is None and status.sessions:
        latest_id = status.sessions[0].session_id
    if latest_id:
        status.latest = _latest_session(SessionRecordStore(sessions_dir, latest_id), config)

    context = ContextLog(sessions_dir / CONTEXT_FILENAME, open_limit=config.open_thread_limit)
    if context.exists():
        context.load()
        status.open_threads = [t.text for t in context.open_threads()]
        status.journal_count = len(context.journal)

    return status


def _latest_session(store: SessionRecordStore, config: TuringConfig) -> LatestSession:
    latest = LatestSession(session_id=store.session_id)
    metadata = store.load_metadata()
    if metadata is not None:
        latest.created_at = metadata.created_at
        latest.last_captured_at = metadata.last_captured_at
        latest.tty = metadata.tty
        latest.compaction_count = metadata.compaction_count
        latest.tokens = dict(metadata.tokens)
        latest.validation = dict(metadata.validation)
        latest.auto_decisions_extracted = metadata.auto_decisions_extracted
        latest.token_history = list(metadata.token_history)
    latest.archive_count = store.archive_count()

    log = store.decision_log(metadata)
    records = log.records
    latest.adr_count = len(records)
    latest.adr_titles = [r.title_line() for r in records[:config.adr_display_limit]]
    return latest


# =============================================================================
# Workstation scan
# =============================================================================

@dataclass
class ProjectSummary:
    name: str
    path: str
    sessions: int
    tokens: int


@dataclass
class WorkstationStatus:
    projects: list[ProjectSummary] = field(default_factory=list)
    searched: list[str] = field(default_factory=list)

    @property
    def total_sessions(self) -> int:
        return sum(p.sessions for p in self.projects)

    @property
    def total_tokens(self) -> int:
        return sum(p.tokens for p in self.projects)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["total_projects"] = len(self.projects)
        data["total_sessions"] = self.total_sessions
        data["total_tokens"] = self.total_tokens
        return data


def _summarize_sessions(sessions_dir: Path) -> tuple[int, int]:
    """(session count, token total) from the index, else from state files."""
    entries: list[IndexEntry] = JsonIndexStore(sessions_dir).list_all()
    if entries:
        return len(entries), sum(e.tokens for e in entries)

    count = 0
    tokens = 0
    for child in sessions_dir.iterdir():
        if not child.is_dir() or child.name.startswith("."):
            continue
        state = child / "state.md"
        if state.is_file():
            count += 1
            tokens += state.stat().st_size // 4
    return count, tokens


def _is_duplicate(path: str, seen: list[str]) -> bool:
    for other in seen:
        if path == other:
            return True
        try:
            if os.path.samefile(path, other):
                return True
        except OSError:
            continue
    return False


def find_session_dirs(roots: Iterable[Path], max_depth: int = 5) -> list[Path]:
    """
    Breadth-first search for project directories holding recorded sessions.

    Args:
        roots: Directories to search
        max_depth: Levels below each root to descend

    Returns:
        Resolved project directories, each once
    """
    found: list[str] = []
    visited: set[str] = set()
    seen_roots: list[str] = []

    for root in roots:
        root = Path(root).expanduser()
        if not root.is_dir():
            continue
        real_root = os.path.realpath(root)
        if _is_duplicate(real_root, seen_roots):
            continue
        seen_roots.append(real_root)

        queue = deque([(Path(real_root), 0)])
        while queue:
            directory, depth = queue.popleft()
            real = os.path.realpath(directory)
            if real in visited:
                continue
            visited.add(real)

            if (directory / DEFAULT_STATE_DIR).is_dir() and not _is_duplicate(real, found):
                found.append(real)

            if depth >= max_depth:
                continue
            try:
                children = sorted(directory.iterdir())
            except OSError:
                continue
            for child in children:
                if child.name.startswith(".") or child.name in SKIP_DIRS:
                    continue
                try:
                    if child.is_dir():
                        queue.append((child, depth + 1))
                except OSError:
                    continue

    return [Path(p) for p in found]


def workstation_status(search_paths: Iterable[str], max_depth: int = 5) -> WorkstationStatus:
    """Aggregate recorded sessions for every project found under the search paths."""
    roots = [Path(p).expanduser() for p in search_paths]
    status = WorkstationStatus(searched=[str(r) for r in roots if r.is_dir()])

    for project_dir in find_session_dirs(roots, max_depth=max_depth):
        try:
            sessions, tokens = _summarize_sessions(project_dir / DEFAULT_STATE_DIR)
        except OSError as e:
            logger.debug("Skipping %s: %s", project_dir, e)
            continue
        if sessions:
            status.projects.append(ProjectSummary(
                name=project_dir.name,
                path=str(project_dir),
                sessions=sessions,
                tokens=tokens,
            ))

    status.projects.sort(key=lambda p: p.sessions, reverse=True)
    return status
