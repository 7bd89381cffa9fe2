"""
InvoiceHistoryService -- append-only invoice event writer.

Rows are immutable once flushed (db/immutability.py).  The caller owns the
transaction; the lifecycle manager writes history in its own short
transaction so a history failure cannot revert an issued invoice.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from invoicing_kernel.logging_config import get_logger
from invoicing_kernel.models.invoice_event import InvoiceAction, InvoiceEvent
from invoicing_kernel.services.base import BaseService

logger = get_logger("services.invoice_history")


class InvoiceHistoryService(BaseService):
    """Flush-only writer for InvoiceEvent rows."""

    def record(
        self,
        *,
        action: InvoiceAction,
        order_id: str,
        occurred_at: datetime,
        invoice_id: UUID | None = None,
        from_status: str | None = None,
        to_status: str | None = None,
        detail: dict[str, Any] | None = None,
        actor_id: str | None = None,
    ) -> InvoiceEvent:
        event = InvoiceEvent(
            invoice_id=invoice_id,
            order_id=order_id,
            action=action.value,
            from_status=from_status,
            to_status=to_status,
            detail=detail,
            actor_id=actor_id,
            occurred_at=occurred_at,
        )
        self.session.add(event)
        self.session.flush()
        logger.debug(
            "invoice_event_recorded",
            extra={"action": action.value, "invoice_id": invoice_id, "order_id": order_id},
        )
        return event
