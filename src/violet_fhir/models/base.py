"""Base model classes for database models."""

import threading
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .db_types import UUID

_clock_lock = threading.Lock()
_last_timestamp = datetime.min.replace(tzinfo=timezone.utc)


def utcnow() -> datetime:
    """Return the current UTC time, strictly increasing within the process.

    Newest-first listings order on ``created_at``; two writes landing in the same
    clock tick would otherwise tie.
    """
    global _last_timestamp  # pylint: disable=global-statement
    with _clock_lock:
        now = datetime.now(timezone.utc)
        if now <= _last_timestamp:
            now = _last_timestamp + timedelta(microseconds=1)
        _last_timestamp = now
        return now


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Base(DeclarativeBase):
    """Declarative base for all tables."""


class TimestampMixin:
    """Mixin for adding timestamp fields to models."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class BaseModel(Base, TimestampMixin):
    """Base model class with common fields."""

    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(), primary_key=True, default=uuid.uuid4, nullable=False
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<{self.__class__.__name__}(id={self.id})>"
