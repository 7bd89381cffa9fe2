"""
Module: invoicing_kernel.db.base
Responsibility: Declarative bases shared by every invoicing table.
Architecture position: Kernel > DB.  Imported by models/ only; imports
    nothing from the rest of the kernel.

Invariants enforced:
    - Primary keys are uuid4 values kept in a 36-char string column, so the
      schema is identical on SQLite and PostgreSQL.
    - Amounts annotated as Decimal are Numeric(38, 9); no float columns.
    - Timestamps are timezone-aware.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    A UUID column stored as text.

    Binds accept a ``UUID`` or its string form (call logs and history rows
    receive ids that crossed a DTO boundary as strings); a malformed string
    fails at bind time.  Reads always return ``UUID``.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, UUID):
            value = UUID(str(value))
        return str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    """Declarative base: uuid4 ``id`` plus the annotation-to-column map."""

    type_annotation_map: ClassVar[dict] = {
        UUID: UUIDString(),
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        int: Integer,
        dict[str, Any]: JSON,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Base for mutable tables (invoices, store configuration).

    ``created_at`` is filled by the database on insert; ``updated_at`` is
    refreshed on every update, which is the one column still allowed to
    change on an issued invoice.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )
