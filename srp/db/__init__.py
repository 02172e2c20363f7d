"""Local SQL result store."""

from srp.db.database import get_engine, get_session_factory, init_db, session_scope
from srp.db.models import Base, StoredObject

__all__ = [
    "Base",
    "StoredObject",
    "get_engine",
    "get_session_factory",
    "init_db",
    "session_scope",
]
