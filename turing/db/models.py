"""
Database Models for the Session Index
=====================================

SQLAlchemy model used by the SQLite index backend.
"""

from sqlalchemy import Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class SessionIndexEntry(Base):
    """Summary of one captured session, keyed by host session id."""
    __tablename__ = "session_index"

    session_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    # ISO-8601 UTC, sortable as text
    last_captured_at: Mapped[str] = mapped_column(String(40), default="")
    tty: Mapped[str] = mapped_column(String(255), default="unknown")
    compaction_count: Mapped[int] = mapped_column(Integer, default=0)
    tokens: Mapped[int] = mapped_column(Integer, default=0)


class IndexState(Base):
    """Single-row table holding index-wide values."""
    __tablename__ = "index_state"

    key: Mapped[str] = mapped_column(String(50), primary_key=True)
    value: Mapped[str] = mapped_column(String(255), default="")
