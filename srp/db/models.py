"""
SQLAlchemy models for the local result store.

The store is a plain key-value table: one row per stored object, never
updated once written (first attempts are write-once).
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class StoredObject(Base):
    """A stored result document."""

    __tablename__ = "stored_objects"

    key: Mapped[str] = mapped_column(String(512), primary_key=True)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    content_type: Mapped[str] = mapped_column(String(100), default="application/json")
    size: Mapped[int] = mapped_column(Integer, default=0)
    stored_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<StoredObject {self.key} ({self.size} bytes)>"
