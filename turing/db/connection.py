"""
Database Connection Manager
===========================

Handles the connection to the project's SQLite session index.
"""

from pathlib import Path
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from turing.db.models import Base

INDEX_DB_FILENAME = "index.db"

# Global session maker
_session_maker: Optional[sessionmaker[Session]] = None
_engine: Optional[Engine] = None


def init_db(sessions_dir: Path) -> sessionmaker[Session]:
    """
    Initialize the database connection and create tables if they don't exist.
    The database file is stored as index.db within the sessions directory.
    """
    global _session_maker, _engine

    sessions_dir = Path(sessions_dir)
    sessions_dir.mkdir(parents=True, exist_ok=True)

    db_path = sessions_dir / INDEX_DB_FILENAME
    db_url = f"sqlite:///{db_path}"

    if _engine is not None:
        _engine.dispose()
    _engine = create_engine(db_url, echo=False)

    # Create tables
    Base.metadata.create_all(_engine)

    _session_maker = sessionmaker(_engine, expire_on_commit=False)

    return _session_maker


def get_session_maker() -> sessionmaker[Session]:
    """Get the configured session maker."""
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_maker


def close_db() -> None:
    """Dispose of the engine so the database file is released."""
    global _session_maker, _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_maker = None
