"""
Session State Persistence
=========================

On-disk record of one session under ``<sessions_dir>/<session_id>/``:

    state.md          priority-tagged state document
    metadata.json     SessionMetadata
    adrs.md           decision log
    .state-checksum   checksum of the last written document
    archive/          superseded state documents, one file per capture

The session phase is modelled as an explicit state machine. ``transition``
is a pure function from (phase, event) to (next phase, side effects); the
engines perform the effects and persist the resulting phase in metadata.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from turing.decision import DecisionLog
from turing.document import (
    content_checksum,
    estimate_tokens,
    load_document,
    patch_pending,
    split_body,
    StateDocument,
)
from turing.errors import InvalidTransitionError, StateDirectoryError

logger = logging.getLogger(__name__)

STATE_FILENAME = "state.md"
METADATA_FILENAME = "metadata.json"
ADR_FILENAME = "adrs.md"
CHECKSUM_FILENAME = ".state-checksum"
ARCHIVE_DIRNAME = "archive"

_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def safe_session_id(session_id: str) -> str:
    """Directory name for a session id; never leaves the sessions directory."""
    name = _UNSAFE_ID_CHARS.sub("_", session_id or "").lstrip(".")
    return name or "unknown"


# =============================================================================
# Timestamps
# =============================================================================

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """ISO-8601 UTC with a trailing Z."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp; naive values are treated as UTC."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1]
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# =============================================================================
# Phase state machine
# =============================================================================

class SessionPhase(Enum):
    """Where a session is in its compaction lifecycle."""
    ACTIVE = "ACTIVE"
    COMPACTING = "COMPACTING"
    RESTORED = "RESTORED"


class SessionEvent(Enum):
    """Lifecycle events delivered by the host hooks."""
    CAPTURE = "capture"
    RESTORE = "restore"


class SideEffect(Enum):
    """Work an engine must perform for a transition."""
    ARCHIVE_PRIOR = "archive_prior"
    WRITE_STATE = "write_state"
    UPDATE_INDEX = "update_index"
    UPDATE_CONTEXT_LOG = "update_context_log"
    FILTER_STATE = "filter_state"
    EMIT_CONTEXT = "emit_context"


_CAPTURE_EFFECTS = (
    SideEffect.ARCHIVE_PRIOR,
    SideEffect.WRITE_STATE,
    SideEffect.UPDATE_INDEX,
    SideEffect.UPDATE_CONTEXT_LOG,
)
_RESTORE_EFFECTS = (SideEffect.FILTER_STATE, SideEffect.EMIT_CONTEXT)

TRANSITIONS: dict[tuple[SessionPhase, SessionEvent], tuple[SessionPhase, tuple[SideEffect, ...]]] = {
    (SessionPhase.ACTIVE, SessionEvent.CAPTURE): (SessionPhase.COMPACTING, _CAPTURE_EFFECTS),
    (SessionPhase.RESTORED, SessionEvent.CAPTURE): (SessionPhase.COMPACTING, _CAPTURE_EFFECTS),
    (SessionPhase.COMPACTING, SessionEvent.CAPTURE): (SessionPhase.COMPACTING, _CAPTURE_EFFECTS),
    (SessionPhase.ACTIVE, SessionEvent.RESTORE): (SessionPhase.RESTORED, _RESTORE_EFFECTS),
    (SessionPhase.COMPACTING, SessionEvent.RESTORE): (SessionPhase.RESTORED, _RESTORE_EFFECTS),
    (SessionPhase.RESTORED, SessionEvent.RESTORE): (SessionPhase.RESTORED, _RESTORE_EFFECTS),
}


def transition(
    phase: SessionPhase | str,
    event: SessionEvent | str,
) -> tuple[SessionPhase, tuple[SideEffect, ...]]:
    """
    Compute the next phase and the side effects for an event.

    Raises:
        InvalidTransitionError: If the phase or event is not recognized
    """
    try:
        phase = SessionPhase(phase)
        event = SessionEvent(event)
    except ValueError as e:
        raise InvalidTransitionError(str(e)) from e

    try:
        return TRANSITIONS[(phase, event)]
    except KeyError:
        raise InvalidTransitionError(f"{phase.value} does not accept {event.value}") from None


# =============================================================================
# Metadata
# =============================================================================

_INT_FIELDS = ("compaction_count", "adr_sequence", "auto_decisions_extracted")
_DICT_FIELDS = ("validation", "tokens")
_STR_FIELDS = ("session_id", "tty", "project_dir", "project_name", "phase")
_TIMESTAMP_FIELDS = ("created_at", "last_captured_at")


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


@dataclass
class SessionMetadata:
    """
    Per-session metadata record.

    Unknown keys found on disk are kept in ``extra`` and written back so
    fields added by other tools survive a capture.
    """
    session_id: str
    created_at: Optional[str] = None
    last_captured_at: Optional[str] = None
    tty: str = "unknown"
    project_dir: str = ""
    project_name: str = ""
    compaction_count: int = 0
    phase: str = SessionPhase.ACTIVE.value
    adr_sequence: int = 0
    validation: dict[str, Any] = field(default_factory=dict)
    tokens: dict[str, Any] = field(default_factory=dict)
    token_history: list[dict[str, Any]] = field(default_factory=list)
    auto_decisions_extracted: int = 0
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = asdict(self)
        extra = data.pop("extra")
        return {**extra, **data}

    @classmethod
    def from_dict(cls, data: dict, session_id: Optional[str] = None) -> "SessionMetadata":
        data = dict(data)
        # Older records used last_compacted_at
        legacy = data.pop("last_compacted_at", None)
        data.setdefault("last_captured_at", legacy)

        known = {f for f in cls.__dataclass_fields__ if f != "extra"}
        kwargs = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known and k != "extra"}

        # Hand-edited or foreign records: wrong types fall back to defaults
        for name in _INT_FIELDS:
            if name in kwargs:
                kwargs[name] = _as_int(kwargs[name])
        for name in _DICT_FIELDS:
            if name in kwargs and not isinstance(kwargs[name], dict):
                kwargs[name] = {}
        history = kwargs.get("token_history", [])
        kwargs["token_history"] = [h for h in history if isinstance(h, dict)] if isinstance(history, list) else []
        for name in _STR_FIELDS:
            if name in kwargs and not isinstance(kwargs[name], str):
                kwargs.pop(name)
        for name in _TIMESTAMP_FIELDS:
            if not isinstance(kwargs.get(name), str):
                kwargs[name] = None
        kwargs.setdefault("session_id", session_id or "")

        metadata = cls(**kwargs)
        metadata.extra = extra
        return metadata

    @property
    def captured_at(self) -> Optional[datetime]:
        return parse_timestamp(self.last_captured_at)

    @property
    def session_phase(self) -> SessionPhase:
        try:
            return SessionPhase(self.phase)
        except ValueError:
            return SessionPhase.ACTIVE


def _write_json_atomic(path: Path, data: dict) -> None:
    tmp = path.with_name(path.name + ".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, default=str)
    os.replace(tmp, path)


def read_metadata_file(path: Path) -> Optional[SessionMetadata]:
    """Load a metadata file; None when missing or corrupt."""
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
        logger.warning("Corrupted session metadata %s: %s", path, e)
        return None
    if not isinstance(data, dict):
        logger.warning("Ignoring session metadata %s: not a JSON object", path)
        return None
    return SessionMetadata.from_dict(data, session_id=path.parent.name)


def scan_session_metadata(sessions_dir: Path) -> list[SessionMetadata]:
    """Read ``*/metadata.json`` under a sessions directory, skipping bad records."""
    sessions_dir = Path(sessions_dir)
    if not sessions_dir.is_dir():
        return []
    found = []
    for child in sorted(sessions_dir.iterdir()):
        if not child.is_dir() or child.name.startswith("."):
            continue
        metadata = read_metadata_file(child / METADATA_FILENAME)
        if metadata is not None:
            found.append(metadata)
    return found


# =============================================================================
# Session record store
# =============================================================================

@dataclass
class WrittenState:
    """Facts about a freshly written state document."""
    checksum: str
    token_estimate: int
    size_bytes: int
    line_count: int


class SessionRecordStore:
    """
    Reads and writes the files of one session record.

    Nothing is created on construction; call ``ensure_dir`` before writing.
    """

    def __init__(self, sessions_dir: Path, session_id: str):
        self.sessions_dir = Path(sessions_dir)
        self.session_id = session_id
        self.session_dir = self.sessions_dir / safe_session_id(session_id)
        self.state_path = self.session_dir / STATE_FILENAME
        self.metadata_path = self.session_dir / METADATA_FILENAME
        self.adr_path = self.session_dir / ADR_FILENAME
        self.checksum_path = self.session_dir / CHECKSUM_FILENAME
        self.archive_dir = self.session_dir / ARCHIVE_DIRNAME

    def ensure_dir(self) -> None:
        """
        Create the session directory.

        Raises:
            StateDirectoryError: If the directory cannot be created
        """
        try:
            self.session_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StateDirectoryError(f"Cannot create directory {self.session_dir}: {e}") from e

    def exists(self) -> bool:
        return self.session_dir.is_dir()

    # -- metadata -----------------------------------------------------------

    def load_metadata(self) -> Optional[SessionMetadata]:
        metadata = read_metadata_file(self.metadata_path)
        if metadata is not None and not metadata.session_id:
            metadata.session_id = self.session_id
        return metadata

    def save_metadata(self, metadata: SessionMetadata) -> None:
        self.ensure_dir()
        _write_json_atomic(self.metadata_path, metadata.to_dict())

    def set_phase(self, phase: SessionPhase) -> bool:
        """Persist a new phase on existing metadata. Returns False if there is none."""
        metadata = self.load_metadata()
        if metadata is None:
            return False
        metadata.phase = phase.value
        self.save_metadata(metadata)
        return True

    # -- state document -------------------------------------------------------

    def has_state(self) -> bool:
        return self.state_path.is_file()

    def read_state_text(self) -> Optional[str]:
        try:
            return self.state_path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return None

    def load_state(self) -> Optional[StateDocument]:
        return load_document(self.state_path)

    def write_state(self, document: StateDocument) -> WrittenState:
        """
        Write a document whose header still holds PENDING placeholders, then
        compute the checksum and token estimate from the body as written and
        patch them into the header.
        """
        self.ensure_dir()
        self.state_path.write_text(document.to_text(), encoding="utf-8")

        written = self.state_path.read_text(encoding="utf-8")
        body = split_body(written)
        checksum = content_checksum(body)
        tokens = estimate_tokens(body)

        final = patch_pending(written, checksum, tokens)
        self.state_path.write_text(final, encoding="utf-8")

        raw = final.encode("utf-8")
        return WrittenState(
            checksum=checksum,
            token_estimate=tokens,
            size_bytes=len(raw),
            line_count=final.count("\n"),
        )

    def write_checksum(self, checksum: str) -> None:
        self.checksum_path.write_text(checksum + "\n", encoding="utf-8")

    def read_checksum(self) -> Optional[str]:
        try:
            return self.checksum_path.read_text(encoding="utf-8").strip() or None
        except OSError:
            return None

    # -- archive --------------------------------------------------------------

    def archive_state(self, now: Optional[datetime] = None) -> Optional[Path]:
        """
        Copy the current state document into the archive.

        Archive names carry the capture timestamp. An existing archive is
        never overwritten; a numeric suffix is added on collision.

        Returns:
            Path of the new archive file, or None if there was nothing to archive
        """
        content = self.read_state_text()
        if content is None:
            return None

        now = now or utc_now()
        self.archive_dir.mkdir(parents=True, exist_ok=True)
        stamp = now.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")

        suffix = 0
        while True:
            name = f"state-{stamp}.md" if suffix == 0 else f"state-{stamp}-{suffix}.md"
            target = self.archive_dir / name
            try:
                with open(target, "x", encoding="utf-8") as f:
                    f.write(content)
                return target
            except FileExistsError:
                suffix += 1

    def archived_states(self) -> list[Path]:
        if not self.archive_dir.is_dir():
            return []
        return sorted(p for p in self.archive_dir.iterdir() if p.is_file())

    def archive_count(self) -> int:
        return len(self.archived_states())

    # -- decisions ------------------------------------------------------------

    def decision_log(self, metadata: Optional[SessionMetadata] = None) -> DecisionLog:
        if metadata is None:
            metadata = self.load_metadata()
        floor = metadata.adr_sequence if metadata else 0
        return DecisionLog(self.adr_path, sequence_floor=floor)
