"""
Session Index
=============

Cross-session cache of capture summaries, used for discovery without
opening every session record. Two backends implement the same store
interface:

- ``JsonIndexStore``: ``index.json``, overwritten whole on every put
- ``SqliteIndexStore``: ``index.db`` through SQLAlchemy

Both are last-writer-wins and read a missing or malformed store as empty.
The ``.latest`` marker holds the id of the most recently captured session.
"""

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from turing.config import TuringConfig
from turing.db import INDEX_DB_FILENAME, IndexState, SessionIndexEntry, init_db
from turing.session_state import format_timestamp, parse_timestamp, utc_now

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.json"
LATEST_FILENAME = ".latest"


@dataclass
class IndexEntry:
    """Summary of one session as stored in the index."""
    session_id: str
    last_captured_at: str = ""
    tty: str = "unknown"
    compaction_count: int = 0
    tokens: int = 0

    @property
    def captured_at(self) -> Optional[datetime]:
        return parse_timestamp(self.last_captured_at)

    def to_dict(self) -> dict:
        return {
            "last_captured_at": self.last_captured_at,
            "tty": self.tty,
            "compaction_count": self.compaction_count,
            "tokens": self.tokens,
        }

    @classmethod
    def from_dict(cls, session_id: str, data: dict[str, Any]) -> "IndexEntry":
        captured = data.get("last_captured_at") or data.get("last_compacted_at") or ""

        def as_int(value: Any) -> int:
            try:
                return int(value)
            except (TypeError, ValueError):
                return 0

        return cls(
            session_id=session_id,
            last_captured_at=str(captured),
            tty=str(data.get("tty", "unknown")),
            compaction_count=as_int(data.get("compaction_count", 0)),
            tokens=as_int(data.get("tokens", 0)),
        )


class IndexStore(Protocol):
    """Keyed store of IndexEntry values."""

    def get(self, session_id: str) -> Optional[IndexEntry]:
        ...

    def put(self, session_id: str, entry: IndexEntry) -> None:
        ...

    def list_all(self) -> list[IndexEntry]:
        ...

    def last_updated(self) -> Optional[str]:
        ...

    def exists(self) -> bool:
        ...


class JsonIndexStore:
    """Index kept in ``<sessions_dir>/index.json``."""

    def __init__(self, sessions_dir: Path):
        self.path = Path(sessions_dir) / INDEX_FILENAME

    def exists(self) -> bool:
        return self.path.exists()

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {"sessions": {}}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.warning("Unreadable session index %s: %s", self.path, e)
            return {"sessions": {}}
        if not isinstance(data, dict) or not isinstance(data.get("sessions"), dict):
            logger.warning("Malformed session index %s", self.path)
            return {"sessions": {}}
        return data

    def get(self, session_id: str) -> Optional[IndexEntry]:
        data = self._read()["sessions"].get(session_id)
        if not isinstance(data, dict):
            return None
        return IndexEntry.from_dict(session_id, data)

    def put(self, session_id: str, entry: IndexEntry) -> None:
        index = self._read()
        index["sessions"][session_id] = entry.to_dict()
        index["last_updated"] = format_timestamp(utc_now())

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(index, f, indent=2)
        os.replace(tmp, self.path)

    def list_all(self) -> list[IndexEntry]:
        sessions = self._read()["sessions"]
        return [
            IndexEntry.from_dict(sid, data)
            for sid, data in sessions.items()
            if isinstance(data, dict)
        ]

    def last_updated(self) -> Optional[str]:
        value = self._read().get("last_updated")
        return str(value) if value else None


class SqliteIndexStore:
    """Index kept in ``<sessions_dir>/index.db``."""

    def __init__(self, sessions_dir: Path):
        self.sessions_dir = Path(sessions_dir)
        self.path = self.sessions_dir / INDEX_DB_FILENAME
        self._maker = None

    def exists(self) -> bool:
        return self.path.exists()

    def _session(self):
        if self._maker is None:
            self._maker = init_db(self.sessions_dir)
        return self._maker()

    @staticmethod
    def _to_entry(row: SessionIndexEntry) -> IndexEntry:
        return IndexEntry(
            session_id=row.session_id,
            last_captured_at=row.last_captured_at or "",
            tty=row.tty or "unknown",
            compaction_count=row.compaction_count or 0,
            tokens=row.tokens or 0,
        )

    def get(self, session_id: str) -> Optional[IndexEntry]:
        if not self.exists():
            return None
        try:
            with self._session() as session:
                row = session.get(SessionIndexEntry, session_id)
                return self._to_entry(row) if row else None
        except SQLAlchemyError as e:
            logger.warning("Unreadable session index %s: %s", self.path, e)
            return None

    def put(self, session_id: str, entry: IndexEntry) -> None:
        with self._session() as session:
            session.merge(SessionIndexEntry(
                session_id=session_id,
                last_captured_at=entry.last_captured_at,
                tty=entry.tty,
                compaction_count=entry.compaction_count,
                tokens=entry.tokens,
            ))
            session.merge(IndexState(key="last_updated", value=format_timestamp(utc_now())))
            session.commit()

    def list_all(self) -> list[IndexEntry]:
        if not self.exists():
            return []
        try:
            with self._session() as session:
                rows = session.scalars(select(SessionIndexEntry)).all()
                return [self._to_entry(row) for row in rows]
        except SQLAlchemyError as e:
            logger.warning("Unreadable session index %s: %s", self.path, e)
            return []

    def last_updated(self) -> Optional[str]:
        if not self.exists():
            return None
        try:
            with self._session() as session:
                row = session.get(IndexState, "last_updated")
                return row.value if row else None
        except SQLAlchemyError as e:
            logger.warning("Unreadable session index %s: %s", self.path, e)
            return None


class LatestMarker:
    """The ``.latest`` file: a bare session id."""

    def __init__(self, sessions_dir: Path):
        self.path = Path(sessions_dir) / LATEST_FILENAME

    def read(self) -> Optional[str]:
        try:
            value = self.path.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError):
            return None
        return value or None

    def write(self, session_id: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(session_id + "\n", encoding="utf-8")


def open_index_store(config: TuringConfig) -> IndexStore:
    """Return the index backend selected by configuration."""
    if config.index_backend == "sqlite":
        return SqliteIndexStore(config.sessions_dir)
    return JsonIndexStore(config.sessions_dir)
