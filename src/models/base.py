"""
Declarative base, shared mixins and column types for all ORM models.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Integer, func
from sqlalchemy.types import TypeDecorator
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always round-trips as UTC.

    PostgreSQL returns aware datetimes for ``timestamptz``; SQLite returns
    naive ones. Normalising here keeps every comparison against ``now`` in
    the services aware-vs-aware.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: Optional[datetime], dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    pass


class IntegerPrimaryKeyMixin:
    """Auto-incrementing numeric primary key."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """``created_at`` / ``updated_at`` columns.

    Defaults are generated in Python so that flushed instances never carry
    expired server-generated attributes (an async session cannot lazy-load
    them back).
    """

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False,
    )
