"""
Restore Engine
==============

Replays a stored session record after the host starts or resumes a
session. The restore source selects how much of the document is replayed:

    startup          CRITICAL + HIGH       (fresh context, minimal tokens)
    resume, compact  up to MEDIUM          (continuity)
    --full           ALL                   (explicit request)

Startup always runs session discovery. Resume and compact restore the
caller's own record and fall back to discovery, labelled as such, when it
has no state document. Every path produces output; missing state is
reported with a banner, never an error.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from turing.config import TuringConfig
from turing.context_log import CONTEXT_FILENAME, ContextLog
from turing.discovery import DiscoveryResult, discover_session
from turing.document import ALL, FilterResult, Priority, filter_document, verify_checksum
from turing.git_state import query_repo_status
from turing.index import IndexStore, open_index_store
from turing.session_state import SessionEvent, SessionPhase, SessionRecordStore, transition

logger = logging.getLogger(__name__)

STARTUP = "startup"
RESUME = "resume"
COMPACT = "compact"

SOURCE_THRESHOLDS = {
    STARTUP: Priority.HIGH.value,
    RESUME: Priority.MEDIUM.value,
    COMPACT: Priority.MEDIUM.value,
}

_FILTER_NOTES = {
    STARTUP: "startup mode - minimal context",
    RESUME: "continuity mode - extended context",
    COMPACT: "continuity mode - extended context",
}


class Outcome:
    """Banner kinds a restore can end in."""
    PREVIOUS_SESSION = "previous_session"
    RESTORED = "restored"
    FALLBACK = "fallback"
    FRESH_START = "fresh_start"
    NO_STATE = "no_state"
    UNKNOWN_SOURCE = "unknown_source"


@dataclass
class RestoreRequest:
    """Inputs of one restore run."""
    session_id: str
    project_dir: Path
    source: str = STARTUP
    tty: str = "pipe"
    full: bool = False

    @classmethod
    def from_hook_input(
        cls,
        payload: dict[str, Any],
        project_dir: Path,
        tty: str,
        full: bool = False,
    ) -> "RestoreRequest":
        return cls(
            session_id=str(payload.get("session_id") or "").strip(),
            project_dir=Path(project_dir),
            source=str(payload.get("source") or STARTUP).strip(),
            tty=tty,
            full=full,
        )

    @property
    def threshold(self) -> Optional[str]:
        """Priority threshold for this request; None for an unknown source."""
        if self.full:
            return ALL
        return SOURCE_THRESHOLDS.get(self.source)


@dataclass
class RestoreResult:
    """What a restore resolved and the text it produced."""
    outcome: str
    text: str
    session_id: Optional[str] = None
    threshold: Optional[str] = None
    discovery: Optional[DiscoveryResult] = None
    filter_result: Optional[FilterResult] = None
    warnings: list[str] = field(default_factory=list)

    def render(self) -> str:
        return self.text


class RestoreEngine:
    """
    Produces restore output for a project.

    Args:
        config: Project configuration
        index: Index store (default: the configured backend)
    """

    def __init__(self, config: TuringConfig, index: Optional[IndexStore] = None):
        self.config = config
        self.index = index if index is not None else open_index_store(config)

    def restore(self, request: RestoreRequest, now: Optional[datetime] = None) -> RestoreResult:
        threshold = request.threshold
        if threshold is None:
            lines = self._unknown_source(request)
            result = RestoreResult(Outcome.UNKNOWN_SOURCE, "")
        elif request.source == STARTUP and not request.full:
            result, lines = self._restore_startup(request, threshold, now)
        else:
            result, lines = self._restore_continuing(request, threshold, now)

        if result.session_id and result.outcome != Outcome.FRESH_START:
            lines.extend(self._adr_section(result, request))
        lines.extend(self._threads_section())
        lines.extend(self._git_section(request.project_dir))

        result.text = "\n".join(lines).rstrip("\n") + "\n"
        return result

    # -- resolution ------------------------------------------------------------

    def _discover(self, request: RestoreRequest, now: Optional[datetime]) -> DiscoveryResult:
        return discover_session(
            self.config.sessions_dir,
            request.tty,
            index=self.index,
            now=now,
            window_hours=self.config.recent_window_hours,
        )

    def _store(self, session_id: str) -> SessionRecordStore:
        return SessionRecordStore(self.config.sessions_dir, session_id)

    def _restore_startup(
        self,
        request: RestoreRequest,
        threshold: str,
        now: Optional[datetime],
    ) -> tuple[RestoreResult, list[str]]:
        found = self._discover(request, now)
        if not found.found:
            result = RestoreResult(Outcome.FRESH_START, "", threshold=threshold, discovery=found)
            return result, self._fresh_start(request, "No previous session state found. Fresh tape.")

        store = self._store(found.session_id)
        if not store.has_state():
            result = RestoreResult(Outcome.FRESH_START, "", threshold=threshold, discovery=found)
            return result, self._fresh_start(
                request, "Previous session marker found but state file missing. Starting fresh.",
            )

        metadata = store.load_metadata()
        lines = [
            "# [TURING] Previous Session Detected",
            "",
            f"**Current Session**: {request.session_id or 'unknown'} (new)",
            f"**Previous Session**: {found.session_id}",
            f"**Discovery**: {found.rule.label}",
            f"**Current TTY**: {request.tty}",
        ]
        if metadata is not None:
            lines.append(self._terminal_note(request.tty, metadata.tty))
            if metadata.compaction_count > 1:
                lines.append(f"**Previous Compactions**: {metadata.compaction_count}")
        lines.extend([
            f"**M-configuration**: {SessionPhase.RESTORED.value} (from previous)",
            f"**Priority Filter**: {threshold} ({_FILTER_NOTES[STARTUP]})",
            "",
            "---",
            "",
            "## Previous Session State (CRITICAL + HIGH priorities)",
            "",
        ])

        result = RestoreResult(
            Outcome.PREVIOUS_SESSION, "",
            session_id=found.session_id, threshold=threshold, discovery=found,
        )
        lines.extend(self._filtered_state(store, result))
        return result, lines

    def _restore_continuing(
        self,
        request: RestoreRequest,
        threshold: str,
        now: Optional[datetime],
    ) -> tuple[RestoreResult, list[str]]:
        note = "full restore" if request.full else _FILTER_NOTES.get(request.source, "")

        store = self._store(request.session_id) if request.session_id else None
        if store is not None and store.has_state():
            lines = [
                "# [TURING] State Restored",
                "",
                f"**Session ID**: {request.session_id}",
                f"**Source**: {request.source}",
                f"**TTY**: {request.tty}",
                f"**M-configuration**: {SessionPhase.RESTORED.value}",
                f"**Priority Filter**: {threshold} ({note})",
                "",
                "---",
                "",
            ]
            result = RestoreResult(
                Outcome.RESTORED, "", session_id=request.session_id, threshold=threshold,
            )
            lines.extend(self._filtered_state(store, result))
            self._mark_restored(store, result)
            return result, lines

        found = self._discover(request, now)
        fallback = self._store(found.session_id) if found.found else None
        if fallback is None or not fallback.has_state():
            result = RestoreResult(Outcome.NO_STATE, "", threshold=threshold, discovery=found)
            return result, [
                "# [TURING] No State Found",
                "",
                f"**Session ID**: {request.session_id or 'unknown'}",
                f"**Source**: {request.source}",
                f"**TTY**: {request.tty}",
                f"**M-configuration**: {SessionPhase.ACTIVE.value}",
                "",
                "No state file found for this session.",
            ]

        metadata = fallback.load_metadata()
        lines = [
            "# [TURING] State Restored (Fallback)",
            "",
            f"**Current Session**: {request.session_id or 'unknown'}",
            f"**Restored From**: {found.session_id}",
            f"**Discovery**: {found.rule.label}",
            f"**Source**: {request.source}",
            f"**TTY**: {request.tty}",
        ]
        if metadata is not None:
            lines.append(self._terminal_note(request.tty, metadata.tty))
        lines.extend([
            f"**M-configuration**: {SessionPhase.RESTORED.value}",
            f"**Priority Filter**: {threshold} (fallback {note})",
            "",
            "---",
            "",
        ])
        result = RestoreResult(
            Outcome.FALLBACK, "", session_id=found.session_id, threshold=threshold, discovery=found,
        )
        lines.extend(self._filtered_state(fallback, result))
        return result, lines

    def _mark_restored(self, store: SessionRecordStore, result: RestoreResult) -> None:
        try:
            metadata = store.load_metadata()
            if metadata is None:
                return
            phase, _ = transition(metadata.session_phase, SessionEvent.RESTORE)
            store.set_phase(phase)
        except Exception as e:
            logger.warning("Could not record restored phase: %s", e)
            result.warnings.append(str(e))

    # -- rendering -------------------------------------------------------------

    @staticmethod
    def _terminal_note(current: str, previous: str) -> str:
        if previous == current:
            return "**TTY Match**: Yes (same terminal)"
        return f"**TTY Match**: No (different terminal, was: {previous})"

    def _fresh_start(self, request: RestoreRequest, message: str) -> list[str]:
        return [
            "# [TURING] Fresh Start",
            "",
            f"**Session ID**: {request.session_id or 'unknown'}",
            f"**TTY**: {request.tty}",
            f"**M-configuration**: {SessionPhase.ACTIVE.value}",
            "",
            message,
        ]

    @staticmethod
    def _unknown_source(request: RestoreRequest) -> list[str]:
        return [
            "# [TURING] Unknown Source",
            "",
            f"**Session ID**: {request.session_id or 'unknown'}",
            f"**Source**: {request.source} (unexpected)",
            f"**TTY**: {request.tty}",
        ]

    def _filtered_state(self, store: SessionRecordStore, result: RestoreResult) -> list[str]:
        """Filtered body plus the Restore Metadata footer."""
        document = store.load_state()
        if document is None:
            return ["_State document could not be read._", ""]

        filtered = filter_document(document, result.threshold)
        result.filter_result = filtered
        header = document.header

        lines = [
            filtered.render(),
            "",
            "---",
            "",
            "## Restore Metadata",
            "",
            f"- **State Version**: {header.get('version', 'unknown')}",
            f"- **Token Estimate**: {header.get('token_estimate', 'unknown')}",
            f"- **Compaction Count**: {header.get('compaction_count', '1')}",
            f"- **Priority Filter**: {result.threshold}",
            f"- **Included Priorities**: {', '.join(sorted(filtered.included)) or 'none'}",
        ]
        if filtered.excluded:
            lines.append(
                f"- **Excluded Priorities**: {', '.join(sorted(filtered.excluded))} "
                "(use `/turing-full` for complete state)"
            )
        lines.append(f"- **Checksum**: {verify_checksum(document, store.read_checksum())}")
        lines.append("")
        return lines

    def _adr_section(self, result: RestoreResult, request: RestoreRequest) -> list[str]:
        store = self._store(result.session_id)
        log = store.decision_log()
        if not log.exists():
            return []
        records = log.records
        label = "Current Session" if result.session_id == request.session_id else "Previous Session"

        lines = [
            "---",
            "",
            f"## Architecture Decision Records ({label})",
            "",
            f"- **Location**: {log.path}",
            f"- **Total Entries**: {len(records)}",
            "",
        ]
        if records:
            lines.extend(["### TL;DR Summary", ""])
            for record in records[:self.config.adr_display_limit]:
                line = f"- **{record.adr_id}: {record.title}**"
                if record.summary:
                    line += f" — {record.summary}"
                lines.append(line)
            if len(records) > self.config.adr_display_limit:
                lines.append(f"- _... and {len(records) - self.config.adr_display_limit} more_")
            lines.append("")
        lines.extend([f"Use `cat {log.path}` to review full ADR history.", ""])
        return lines

    def _threads_section(self) -> list[str]:
        context = ContextLog(
            self.config.sessions_dir / CONTEXT_FILENAME,
            open_limit=self.config.open_thread_limit,
        )
        if not context.exists():
            return []
        threads = context.load().open_threads()
        if not threads:
            return []
        lines = ["", "---", "", "## Open Threads", ""]
        lines.extend(t.to_line() for t in threads)
        lines.extend(["", f"_Mark completed with `turing thread done` or `- [x]` in `{context.path}`_"])
        return lines

    @staticmethod
    def _git_section(project_dir: Path) -> list[str]:
        repo = query_repo_status(project_dir)
        if not repo.is_repo:
            return []
        return [
            "",
            "---",
            "",
            "## Current Git State",
            "",
            f"- **Branch**: {repo.branch}",
            f"- **Last Commit**: {repo.last_commit or 'none'}",
            f"- **Uncommitted Changes**: {repo.uncommitted} files",
        ]
