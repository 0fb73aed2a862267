"""
Database Package
================

Exports key database components.
"""

from turing.db.models import Base, SessionIndexEntry, IndexState
from turing.db.connection import init_db, get_session_maker, close_db, INDEX_DB_FILENAME
