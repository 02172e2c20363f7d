"""
Key-value object stores for result documents.

The ingest side only needs three operations:
- put(key, value, if_absent=True) -> bool   (False if the key already exists)
- head(key) -> ObjectHead | None
- get(key) -> str | None
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from srp.db.database import get_engine, get_session_factory, init_db, session_scope
from srp.db.models import StoredObject

JSON_CONTENT_TYPE = "application/json"


@dataclass(frozen=True)
class ObjectHead:
    """Metadata of a stored object."""

    key: str
    size: int
    stored_at: datetime | None
    content_type: str = JSON_CONTENT_TYPE


class ObjectStore(Protocol):
    """Write-once key-value store."""

    def put(self, key: str, value: str, *, if_absent: bool = True,
            content_type: str = JSON_CONTENT_TYPE) -> bool:
        """Store value under key. With if_absent, never replaces an existing key."""
        ...

    def head(self, key: str) -> ObjectHead | None:
        ...

    def get(self, key: str) -> str | None:
        ...


class MemoryObjectStore:
    """Dict-backed store for tests and throwaway runs."""

    def __init__(self) -> None:
        self._objects: dict[str, tuple[str, ObjectHead]] = {}

    def put(self, key: str, value: str, *, if_absent: bool = True,
            content_type: str = JSON_CONTENT_TYPE) -> bool:
        if if_absent and key in self._objects:
            return False
        head = ObjectHead(
            key=key,
            size=len(value.encode("utf-8")),
            stored_at=datetime.now(timezone.utc),
            content_type=content_type,
        )
        self._objects[key] = (value, head)
        return True

    def head(self, key: str) -> ObjectHead | None:
        entry = self._objects.get(key)
        return entry[1] if entry else None

    def get(self, key: str) -> str | None:
        entry = self._objects.get(key)
        return entry[0] if entry else None

    def keys(self) -> list[str]:
        return sorted(self._objects)

    def __len__(self) -> int:
        return len(self._objects)


class SqlObjectStore:
    """SQLAlchemy-backed store (SQLite by default)."""

    def __init__(self, database_url: str):
        self.engine = get_engine(database_url)
        self._factory = get_session_factory(self.engine)
        init_db(self.engine)

    def put(self, key: str, value: str, *, if_absent: bool = True,
            content_type: str = JSON_CONTENT_TYPE) -> bool:
        row = StoredObject(
            key=key,
            body=value,
            content_type=content_type,
            size=len(value.encode("utf-8")),
            stored_at=datetime.now(timezone.utc),
        )
        try:
            with session_scope(self._factory) as session:
                if if_absent:
                    session.add(row)
                else:
                    session.merge(row)
        except IntegrityError:
            logger.debug("Key {} already stored", key)
            return False
        return True

    def head(self, key: str) -> ObjectHead | None:
        with session_scope(self._factory) as session:
            row = session.get(StoredObject, key)
            if row is None:
                return None
            return ObjectHead(
                key=row.key,
                size=row.size,
                stored_at=row.stored_at,
                content_type=row.content_type,
            )

    def get(self, key: str) -> str | None:
        with session_scope(self._factory) as session:
            return session.scalar(select(StoredObject.body).where(StoredObject.key == key))

    def keys(self) -> list[str]:
        with session_scope(self._factory) as session:
            return list(session.scalars(select(StoredObject.key).order_by(StoredObject.key)))
