"""
Module: invoicing_kernel.models.invoice_event
Responsibility: Append-only history of invoice lifecycle actions.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are never updated or deleted (db/immutability.py).
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from invoicing_kernel.db.base import Base, UUIDString


class InvoiceAction(str, Enum):
    """Lifecycle actions recorded in invoice_events."""

    QUEUED = "QUEUED"
    REQUEUED = "REQUEUED"
    ISSUED = "ISSUED"
    FAILED = "FAILED"
    RETRIED = "RETRIED"
    ORDER_INVOICED = "ORDER_INVOICED"
    REFUND_ISSUED = "REFUND_ISSUED"


class InvoiceEvent(Base):
    """One lifecycle action on one invoice."""

    __tablename__ = "invoice_events"

    __table_args__ = (
        Index("idx_invoice_event_invoice", "invoice_id"),
        Index("idx_invoice_event_order", "order_id"),
    )

    invoice_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    order_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    to_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    detail: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<InvoiceEvent {self.action} invoice={self.invoice_id}>"
