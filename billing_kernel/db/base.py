"""
Module: billing_kernel.db.base
Responsibility: Declarative bases and the two custom column types every
    billing table shares: string-stored UUID keys and UTC timestamps.
Architecture position: Kernel > DB.  The bottom of the persistence layer;
    imported by models/, imports nothing from the project.

Invariants enforced:
    - Primary keys are UUIDs stored as 36-character strings, so the same
      schema works on SQLite and PostgreSQL.
    - Timestamps are written as UTC and always read back timezone-aware.
      SQLite drops tzinfo on storage; values are re-tagged UTC on load.
    - A naive datetime never reaches the database.

Failure modes:
    - ValueError when a naive datetime is bound to a UTCDateTime column.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """uuid.UUID in Python, VARCHAR(36) in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(UUID(str(value)))

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class UTCDateTime(TypeDecorator):
    """Aware datetime in Python, UTC in the database."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)


class Base(DeclarativeBase):
    """
    Base for every billing table.

    Annotation map: ``int`` -> BIGINT (minor units, counters),
    ``Decimal`` -> NUMERIC(9, 4) (tax rates), ``datetime`` -> UTCDateTime,
    ``UUID`` -> UUIDString.
    """

    type_annotation_map: ClassVar[dict] = {
        int: BigInteger,
        Decimal: Numeric(9, 4),
        datetime: UTCDateTime(),
        UUID: UUIDString(),
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds row timestamps and the acting user.

    ``created_at`` is normally the service clock's time, copied from the
    domain object; the server default covers direct inserts.
    ``updated_by_id`` is the actor bound in LogContext when the row last
    changed.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False,
    )
    created_by_id: Mapped[str | None] = mapped_column(String(100))
    updated_by_id: Mapped[str | None] = mapped_column(String(100))
