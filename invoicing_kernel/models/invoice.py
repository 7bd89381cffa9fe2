"""
Module: invoicing_kernel.models.invoice
Responsibility: ORM persistence for fiscal document attempts (sales invoices
    and return-driven expense vouchers).
Architecture position: Kernel > Models.  May import from db/ and domain/dtos.

Invariants enforced:
    - One live invoice per order slot (UNIQUE on slot_key, which is
      ``sale:{order_id}`` or ``refund:{return_id}``).  An ERROR invoice is
      deleted before its replacement is inserted and a PENDING one is reused,
      so the constraint also caps SUCCESS invoices at one per order.
    - Document numbers are unique across all series (UNIQUE on
      document_number); this backstops the allocator's series lock.
    - Status moves follow VALID_TRANSITIONS.  SUCCESS is terminal and the
      row is frozen by db/immutability.py.

Failure modes:
    - IntegrityError on a duplicate slot_key (concurrent queue) or a
      duplicate document_number.
    - InvalidInvoiceTransitionError on a status move not in VALID_TRANSITIONS.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Boolean, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from invoicing_kernel.db.base import TrackedBase
from invoicing_kernel.domain.dtos import InvoiceRecord
from invoicing_kernel.exceptions import InvalidInvoiceTransitionError


class InvoiceStatus(str, Enum):
    """
    Status of an invoice.

    State machine:
        PENDING -> SUCCESS | ERROR
        ERROR   -> SUCCESS | ERROR   (retry outcome)
        SUCCESS: terminal
    """

    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


VALID_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.PENDING: frozenset({InvoiceStatus.SUCCESS, InvoiceStatus.ERROR}),
    InvoiceStatus.ERROR: frozenset({InvoiceStatus.SUCCESS, InvoiceStatus.ERROR}),
    InvoiceStatus.SUCCESS: frozenset(),
}


def sale_slot_key(order_id: str) -> str:
    return f"sale:{order_id}"


def refund_slot_key(return_id: str) -> str:
    return f"refund:{return_id}"


class Invoice(TrackedBase):
    """
    One fiscal document attempt for one order (or one return).

    Guarantees:
        - customer_* and total_amount are a snapshot taken when the number
          is allocated; retries reuse it rather than re-reading the order.
        - request_payload / response_payload hold the last exchange with the
          gateway verbatim.
    """

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("slot_key", name="uq_invoice_slot"),
        UniqueConstraint("document_number", name="uq_invoice_document_number"),
        Index("idx_invoice_order_id", "order_id"),
        Index("idx_invoice_order_number", "order_number"),
        Index("idx_invoice_status", "status"),
        Index("idx_invoice_store", "store_id"),
    )

    __mapper_args__ = {"eager_defaults": True}

    slot_key: Mapped[str] = mapped_column(String(128), nullable=False)

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=InvoiceStatus.PENDING.value,
    )

    document_kind: Mapped[str] = mapped_column(String(16), nullable=False)

    # Order linkage
    order_id: Mapped[str] = mapped_column(String(64), nullable=False)
    order_number: Mapped[str] = mapped_column(String(64), nullable=False)
    store_id: Mapped[str] = mapped_column(String(64), nullable=False)
    return_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Numbering
    document_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    serial_prefix: Mapped[str | None] = mapped_column(String(16), nullable=True)

    # Classification
    document_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    party_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    account_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    customer_party_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tax_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    is_export_exempt: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    issued_in_bulk: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Header codes
    company_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    branch_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    transaction_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    cost_center_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    warehouse_code: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Customer snapshot
    customer_first_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_last_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    total_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)

    # Gateway outcome
    external_document_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    transaction_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
    request_payload: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    response_payload: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )
    issued_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def status_enum(self) -> InvoiceStatus:
        """Return status as InvoiceStatus (normalizes raw DB strings)."""
        return InvoiceStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.status_enum == InvoiceStatus.SUCCESS

    @property
    def is_retriable(self) -> bool:
        return self.status_enum == InvoiceStatus.ERROR

    @property
    def voucher_number(self) -> str | None:
        """Document number with the serial prefix stripped."""
        if not self.document_number or not self.serial_prefix:
            return None
        return self.document_number[len(self.serial_prefix):]

    def validate_transition(self, target: InvoiceStatus) -> None:
        """Raise InvalidInvoiceTransitionError unless target is allowed."""
        allowed = VALID_TRANSITIONS.get(self.status_enum, frozenset())
        if target not in allowed:
            raise InvalidInvoiceTransitionError(
                invoice_id=str(self.id),
                from_status=self.status,
                to_status=target.value,
            )

    def transition_to(self, target: InvoiceStatus) -> None:
        self.validate_transition(target)
        self.status = target.value

    def __repr__(self) -> str:
        return f"<Invoice {self.document_number or self.id} {self.status} order={self.order_id}>"

    def to_dto(self) -> InvoiceRecord:
        return InvoiceRecord(
            id=self.id,
            status=self.status,
            document_kind=self.document_kind,
            slot_key=self.slot_key,
            order_id=self.order_id,
            order_number=self.order_number,
            store_id=self.store_id,
            document_number=self.document_number,
            serial_prefix=self.serial_prefix,
            document_type=self.document_type,
            party_code=self.party_code,
            account_code=self.account_code,
            customer_party_code=self.customer_party_code,
            tax_id=self.tax_id,
            is_export_exempt=bool(self.is_export_exempt),
            issued_in_bulk=bool(self.issued_in_bulk),
            return_id=self.return_id,
            external_document_id=self.external_document_id,
            transaction_reference=self.transaction_reference,
            total_amount=self.total_amount,
            currency=self.currency,
            error_message=self.error_message,
            retry_count=self.retry_count or 0,
            request_payload=self.request_payload,
            response_payload=self.response_payload,
            issued_at=self.issued_at,
            created_at=self.created_at,
        )
