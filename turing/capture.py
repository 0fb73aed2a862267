"""
Capture Engine
==============

Builds a new session record before the host compacts its context:

1. Load prior metadata and bump the compaction count
2. Archive the previous state document and summarize it
3. Extract candidate decisions from the transcript tail
4. Assemble the priority-tagged document
5. Write it, then patch checksum and token estimate into the header
6. Account for the tokens the host will inject
7. Update session metadata
8. Update the index and the ``.latest`` marker
9. Update the project context log

Every step is independent: a failing step is logged, recorded on the
result and skipped, so a partial record is always written and reported.
Capture output is never filtered; filtering happens on restore.
"""

import json
import logging
import tomllib
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

from turing.config import TuringConfig
from turing.context_log import CONTEXT_FILENAME, ContextLog
from turing.document import (
    FORMAT_VERSION,
    PENDING,
    Priority,
    Section,
    StateDocument,
    estimate_tokens,
    parse_document,
)
from turing.extraction import DecisionExtractor, RegexDecisionExtractor, read_transcript_tail
from turing.git_state import RepoStatus, query_repo_status
from turing.index import IndexEntry, IndexStore, LatestMarker, open_index_store
from turing.prompts import load_template
from turing.session_state import (
    SessionEvent,
    SessionMetadata,
    SessionPhase,
    SessionRecordStore,
    SideEffect,
    WrittenState,
    format_timestamp,
    transition,
    utc_now,
)

logger = logging.getLogger(__name__)

ACTIVE_FOCUS = "Active Focus"
KEY_DECISIONS = "Key Decisions"
FOCUS_PLACEHOLDER = "_Focus will be set during compaction. Use /turing-save to set it manually._"
NO_ADRS = "_No formal ADRs recorded. Use `turing adr add` for important decisions._"
PREVIOUS_FOCUS = "Previous focus: "
PREVIOUS_DECISIONS = "Previous decisions: "

PORCELAIN_LIMIT = 20
PREVIOUS_DECISION_LIMIT = 3
SMALL_STATE_BYTES = 100
MARKER_FILES = ("CLAUDE.md", "README.md")


def focus_line(section: Optional[Section]) -> Optional[str]:
    """First meaningful line of an Active Focus section, prefix stripped."""
    if section is None:
        return None
    for line in section.content.split("\n"):
        text = line.strip()
        if not text or text.startswith(("#", "_", PREVIOUS_DECISIONS, "---", "**")):
            continue
        if text.startswith(PREVIOUS_FOCUS):
            text = text[len(PREVIOUS_FOCUS):].strip()
        if text:
            return text
    return None


def decision_titles(section: Optional[Section], limit: int = PREVIOUS_DECISION_LIMIT) -> list[str]:
    """Bullet items of a Key Decisions section."""
    if section is None:
        return []
    titles = []
    for line in section.content.split("\n"):
        text = line.strip()
        if text.startswith("- ") and len(text) > 2:
            titles.append(text[2:].strip())
    return titles[:limit]


def summarize_previous(document: StateDocument) -> list[str]:
    """Seed lines for the new Active Focus section from the previous document."""
    lines = []
    focus = focus_line(document.find_section(ACTIVE_FOCUS))
    if focus:
        lines.append(f"{PREVIOUS_FOCUS}{focus[:100]}")
    titles = decision_titles(document.find_section(KEY_DECISIONS))
    if titles:
        lines.append(f"{PREVIOUS_DECISIONS}{'; '.join(titles)}")
    return lines


def detect_package_name(project_dir: Path) -> Optional[str]:
    """Package name from package.json or pyproject.toml, if either declares one."""
    package_json = project_dir / "package.json"
    if package_json.is_file():
        try:
            with open(package_json, "r", encoding="utf-8") as f:
                name = json.load(f).get("name")
            if name:
                return str(name)
        except (OSError, ValueError, AttributeError):
            pass

    pyproject = project_dir / "pyproject.toml"
    if pyproject.is_file():
        try:
            with open(pyproject, "rb") as f:
                data = tomllib.load(f)
        except (OSError, ValueError):
            return None
        name = data.get("project", {}).get("name") or data.get("tool", {}).get("poetry", {}).get("name")
        if name:
            return str(name)
    return None


def next_compaction_count(prior: Optional[SessionMetadata]) -> int:
    if prior is None:
        return 1
    return max(int(prior.compaction_count), 0) + 1


@dataclass
class CaptureRequest:
    """Inputs of one capture run."""
    session_id: str
    project_dir: Path
    tty: str = "pipe"
    transcript_path: Optional[str] = None
    trigger: str = "unknown"

    @classmethod
    def from_hook_input(
        cls,
        payload: dict[str, Any],
        project_dir: Path,
        tty: str,
        now: Optional[datetime] = None,
    ) -> "CaptureRequest":
        """Build a request from the hook's JSON object, filling in defaults."""
        now = now or utc_now()
        session_id = str(payload.get("session_id") or "").strip()
        if not session_id:
            session_id = f"unknown-{int(now.timestamp())}"
        transcript = payload.get("transcript_path") or None
        trigger = str(payload.get("trigger") or "unknown")
        return cls(
            session_id=session_id,
            project_dir=Path(project_dir),
            tty=tty,
            transcript_path=str(transcript) if transcript else None,
            trigger=trigger,
        )


@dataclass
class CaptureResult:
    """What a capture produced, for the banner and for callers."""
    session_id: str
    tty: str
    compaction_count: int = 0
    phase_from: SessionPhase = SessionPhase.ACTIVE
    phase_to: SessionPhase = SessionPhase.COMPACTING
    state_text: str = ""
    template_text: str = ""
    validation: dict[str, Any] = field(default_factory=dict)
    tokens: dict[str, Any] = field(default_factory=dict)
    auto_decisions: list[str] = field(default_factory=list)
    archived: Optional[Path] = None
    warnings: list[str] = field(default_factory=list)

    @property
    def token_status(self) -> str:
        return self.tokens.get("status", "unknown")

    def render(self) -> str:
        """Status banner, the full document and the instructional template."""
        lines = [
            f"# [TURING] State Preserved (v{FORMAT_VERSION})",
            "",
            f"**Session**: {self.session_id}",
            f"**TTY**: {self.tty}",
            f"**Compaction**: #{self.compaction_count}",
            f"**M-configuration**: {self.phase_from.value} → {self.phase_to.value}",
            "",
        ]

        status = self.validation.get("status", "unknown")
        if status == "success":
            lines.append(
                f"**Validation**: OK ({self.validation.get('state_lines', 0)} lines, "
                f"{self.validation.get('state_bytes', 0)} bytes)"
            )
        else:
            lines.append(f"**Validation**: {status}")

        total = self.tokens.get("total", 0)
        if self.token_status == "ok":
            lines.append(
                f"**Tokens**: ~{total} (state: {self.tokens.get('state', 0)}, "
                f"template: {self.tokens.get('template', 0)})"
            )
        else:
            lines.append(f"**Tokens**: ~{total} - WARNING: Large context")
            lines.append("  Consider running /turing-save to archive decisions and trim state")

        if self.auto_decisions:
            lines.append(f"**Auto-Decisions**: {len(self.auto_decisions)} extracted from transcript")

        if self.warnings:
            lines.append(f"**Warnings**: {len(self.warnings)} capture step(s) failed")
            lines.extend(f"  - {w}" for w in self.warnings)

        lines.extend(["", "---", "", self.state_text.rstrip("\n"), "", "---", ""])
        if self.template_text:
            lines.append(self.template_text.rstrip("\n"))
        return "\n".join(lines) + "\n"


class CaptureEngine:
    """
    Writes session records.

    Args:
        config: Project configuration
        extractor: Decision extraction strategy (default: regex patterns)
        index: Index store (default: the configured backend)
    """

    def __init__(
        self,
        config: TuringConfig,
        extractor: Optional[DecisionExtractor] = None,
        index: Optional[IndexStore] = None,
    ):
        self.config = config
        self.extractor = extractor or RegexDecisionExtractor(max_results=config.max_auto_decisions)
        self.index = index if index is not None else open_index_store(config)

    def _step(self, result: CaptureResult, name: str, func: Callable, *args, default=None):
        try:
            return func(*args)
        except Exception as e:
            logger.warning("Capture step '%s' failed: %s", name, e)
            result.warnings.append(f"{name}: {e}")
            return default

    def capture(self, request: CaptureRequest, now: Optional[datetime] = None) -> CaptureResult:
        """
        Run a capture.

        Raises:
            StateDirectoryError: If the session directory cannot be created
        """
        now = now or utc_now()
        timestamp = format_timestamp(now)
        store = SessionRecordStore(self.config.sessions_dir, request.session_id)
        store.ensure_dir()

        result = CaptureResult(session_id=request.session_id, tty=request.tty)

        prior: Optional[SessionMetadata] = self._step(result, "load metadata", store.load_metadata)
        result.compaction_count = self._step(
            result, "count compactions", next_compaction_count, prior, default=1,
        )
        result.phase_from = prior.session_phase if prior else SessionPhase.ACTIVE
        result.phase_to, effects = transition(result.phase_from, SessionEvent.CAPTURE)

        previous_summary: list[str] = []
        if SideEffect.ARCHIVE_PRIOR in effects and store.has_state() and result.compaction_count > 1:
            result.archived = self._step(result, "archive previous state", store.archive_state, now)
            previous_summary = self._step(
                result, "summarize previous state", self._summarize_previous, store, default=[],
            )

        transcript = self._step(
            result, "read transcript", read_transcript_tail,
            request.transcript_path, self.config.transcript_tail_lines, default="",
        )
        decisions = self._step(
            result, "extract decisions", self.extractor.extract_candidates, transcript, default=[],
        )
        result.auto_decisions = list(decisions)[:self.config.max_auto_decisions]

        repo = self._step(
            result, "query repository", query_repo_status, request.project_dir, default=RepoStatus(),
        )
        log = store.decision_log(prior)
        adr_lines = self._step(result, "read decision log", log.summary_lines, default=[])
        archive_count = self._step(result, "count archives", store.archive_count, default=0)

        document = self.build_document(
            request, result, prior, previous_summary, adr_lines, repo, archive_count, timestamp,
        )

        written: Optional[WrittenState] = None
        if SideEffect.WRITE_STATE in effects:
            written = self._step(result, "write state", store.write_state, document)
        if written is not None:
            self._step(result, "write checksum", store.write_checksum, written.checksum)
        result.state_text = store.read_state_text() or document.to_text()

        result.validation = self._validate(written)
        result.template_text = self._step(result, "load template", self._load_template, default="")
        result.tokens = self._step(
            result, "account tokens", self._account_tokens, written, result.template_text,
            default={},
        )
        adr_high = self._step(result, "read decision sequence", lambda: log.highest_number, default=0)

        self._step(result, "update metadata", self._update_metadata,
                   store, prior, request, result, adr_high, timestamp)

        if SideEffect.UPDATE_INDEX in effects:
            entry = IndexEntry(
                session_id=request.session_id,
                last_captured_at=timestamp,
                tty=request.tty,
                compaction_count=result.compaction_count,
                tokens=result.tokens.get("state", 0),
            )
            self._step(result, "update index", self.index.put, request.session_id, entry)
            self._step(result, "update latest marker",
                       LatestMarker(self.config.sessions_dir).write, request.session_id)

        if SideEffect.UPDATE_CONTEXT_LOG in effects:
            self._step(result, "update context log", self._update_context_log,
                       request, repo, document, now)

        return result

    # -- steps ----------------------------------------------------------------

    def _summarize_previous(self, store: SessionRecordStore) -> list[str]:
        text = store.read_state_text()
        if not text:
            return []
        return summarize_previous(parse_document(text))

    def build_document(
        self,
        request: CaptureRequest,
        result: CaptureResult,
        prior: Optional[SessionMetadata],
        previous_summary: list[str],
        adr_lines: list[str],
        repo: RepoStatus,
        archive_count: int,
        timestamp: str,
    ) -> StateDocument:
        """Assemble the five sections in their fixed order."""
        project_dir = Path(request.project_dir)
        header = {
            "version": FORMAT_VERSION,
            "session_id": request.session_id,
            "tty": request.tty,
            "captured_at": timestamp,
            "compaction_count": str(result.compaction_count),
            "trigger": request.trigger,
            "project": project_dir.name,
            "checksum": PENDING,
            "token_estimate": PENDING,
        }

        # Active Focus
        focus = [f"## {ACTIVE_FOCUS}", ""]
        if previous_summary:
            focus.extend(previous_summary)
            focus.append("")
        focus.extend([FOCUS_PLACEHOLDER, ""])

        # Key Decisions
        decisions = [f"## {KEY_DECISIONS} (This Session)", ""]
        if result.auto_decisions:
            decisions.append("### Auto-Extracted")
            decisions.extend(f"- {d}" for d in result.auto_decisions)
            decisions.append("")
        if adr_lines:
            decisions.append(f"### Recorded ADRs ({len(adr_lines)})")
            decisions.extend(f"- {line}" for line in adr_lines)
        else:
            decisions.append(NO_ADRS)
        decisions.append("")

        # Modified Files
        files = ["## Modified Files", ""]
        if repo.is_repo:
            files.append(f"- **Branch**: {repo.branch}")
            files.append(f"- **Uncommitted**: {repo.uncommitted} files")
            files.append("")
            if repo.porcelain:
                files.append("```")
                files.extend(repo.porcelain[:PORCELAIN_LIMIT])
                if repo.uncommitted > PORCELAIN_LIMIT:
                    files.append(f"... and {repo.uncommitted - PORCELAIN_LIMIT} more files")
                files.extend(["```", ""])
            if repo.recent_commits:
                files.extend(["### Recent Commits", "```"])
                files.extend(repo.recent_commits)
                files.extend(["```", ""])
        else:
            files.extend(["_Not a git repository._", ""])

        # Project Context
        context = [
            "## Project Context",
            "",
            f"- **Directory**: {project_dir}",
            f"- **Name**: {project_dir.name}",
        ]
        package = detect_package_name(project_dir)
        if package:
            context.append(f"- **Package**: {package}")
        for marker in MARKER_FILES:
            if (project_dir / marker).is_file():
                context.append(f"- **{marker}**: Present")
        context.append("")

        # Session History
        started = prior.created_at if prior and prior.created_at else timestamp
        history = [
            "## Session History",
            "",
            f"- **Compaction Count**: {result.compaction_count}",
            f"- **Session Started**: {started}",
        ]
        if archive_count:
            history.append(f"- **Archived States**: {archive_count}")
        history.extend([
            "",
            "---",
            f"**M-configuration**: {result.phase_from.value} → {result.phase_to.value}",
            "",
        ])

        return StateDocument(header=header, sections=[
            Section(Priority.CRITICAL.value, "\n".join(focus)),
            Section(Priority.HIGH.value, "\n".join(decisions)),
            Section(Priority.MEDIUM.value, "\n".join(files)),
            Section(Priority.LOW.value, "\n".join(context)),
            Section(Priority.ARCHIVE.value, "\n".join(history)),
        ])

    def _validate(self, written: Optional[WrittenState]) -> dict[str, Any]:
        if written is None:
            return {"status": "error:missing", "state_bytes": 0, "state_lines": 0, "checksum": "unavailable"}
        status = "warning:small" if written.size_bytes < SMALL_STATE_BYTES else "success"
        return {
            "status": status,
            "state_bytes": written.size_bytes,
            "state_lines": written.line_count,
            "checksum": written.checksum,
        }

    def _load_template(self) -> str:
        return load_template(self.config.resolve_template_path())

    def _account_tokens(self, written: Optional[WrittenState], template: str) -> dict[str, Any]:
        state_tokens = written.token_estimate if written else 0
        template_tokens = estimate_tokens(template) if template else 0
        total = state_tokens + template_tokens
        status = "warning:large" if total > self.config.token_warning_threshold else "ok"
        return {"state": state_tokens, "template": template_tokens, "total": total, "status": status}

    def _update_metadata(
        self,
        store: SessionRecordStore,
        prior: Optional[SessionMetadata],
        request: CaptureRequest,
        result: CaptureResult,
        adr_high: int,
        timestamp: str,
    ) -> None:
        metadata = prior or SessionMetadata(session_id=request.session_id)
        metadata.session_id = request.session_id
        if not metadata.created_at:
            metadata.created_at = timestamp
        metadata.last_captured_at = timestamp
        metadata.tty = request.tty
        metadata.project_dir = str(request.project_dir)
        metadata.project_name = Path(request.project_dir).name
        metadata.compaction_count = result.compaction_count
        metadata.phase = result.phase_to.value
        metadata.adr_sequence = max(metadata.adr_sequence, adr_high)
        metadata.validation = result.validation
        metadata.tokens = result.tokens
        metadata.token_history.append({
            "timestamp": timestamp,
            "tokens": result.tokens.get("state", 0),
            "compaction": result.compaction_count,
        })
        metadata.token_history = metadata.token_history[-self.config.token_history_limit:]
        metadata.auto_decisions_extracted = len(result.auto_decisions)
        store.save_metadata(metadata)

    def _update_context_log(
        self,
        request: CaptureRequest,
        repo: RepoStatus,
        document: StateDocument,
        now: datetime,
    ) -> None:
        context = ContextLog(
            self.config.sessions_dir / CONTEXT_FILENAME,
            open_limit=self.config.open_thread_limit,
            journal_limit=self.config.journal_limit,
        ).load()
        summary = focus_line(document.find_section(ACTIVE_FOCUS))
        context.record_capture(request.session_id, repo.uncommitted, summary, now.astimezone())
        context.save()
