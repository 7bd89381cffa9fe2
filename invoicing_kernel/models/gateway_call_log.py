"""
Module: invoicing_kernel.models.gateway_call_log
Responsibility: Append-only record of every outbound call to the fiscal
    gateway, successful or not.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are never updated or deleted (db/immutability.py).
    - Secrets are redacted by the gateway client before a row is built.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from invoicing_kernel.db.base import Base, UUIDString


class GatewayCallType:
    """Call type labels recorded in gateway_call_logs.call_type."""

    LOGIN = "LOGIN"
    CREATE_INVOICE = "CREATE_INVOICE"
    CREATE_BULK_INVOICE = "CREATE_BULK_INVOICE"
    CREATE_REFUND_VOUCHER = "CREATE_REFUND_VOUCHER"
    CHECK_RECIPIENT = "CHECK_RECIPIENT"
    UPSERT_CUSTOMER_PARTY = "UPSERT_CUSTOMER_PARTY"
    VIEW_DOCUMENT = "VIEW_DOCUMENT"


class GatewayCallLog(Base):
    """One outbound gateway call."""

    __tablename__ = "gateway_call_logs"

    __table_args__ = (
        Index("idx_gateway_call_type", "call_type"),
        Index("idx_gateway_call_invoice", "invoice_id"),
        Index("idx_gateway_call_created", "created_at"),
    )

    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    call_type: Mapped[str] = mapped_column(String(50), nullable=False)
    endpoint: Mapped[str] = mapped_column(String(500), nullable=False)
    method: Mapped[str] = mapped_column(String(10), nullable=False)
    request_body: Mapped[Any | None] = mapped_column(JSON, nullable=True)
    response_body: Mapped[Any | None] = mapped_column(JSON, nullable=True)
    status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    invoice_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    order_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        outcome = "ok" if self.is_success else "failed"
        return f"<GatewayCallLog {self.call_type} {self.status_code} {outcome}>"
