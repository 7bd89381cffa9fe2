"""
DTOs -- Pure domain data transfer objects for invoice issuance.

Responsibility:
    Defines the immutable data structures that flow through issuance:
    OrderSnapshot / ReturnSnapshot (input from the order collaborator),
    StoreConfigSnapshot (per-store fiscal settings), FiscalProfile (resolver
    output), DocumentHeader (payload header codes), and the InvoiceRecord /
    BulkIssueResult / PendingRunSummary outputs of the lifecycle manager.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  ``from_model()``
    converters live on the ORM side (``to_dto``) and are only invoked from
    the service layer.

Invariants enforced:
    - All DTOs are ``frozen=True``.
    - All monetary fields are ``Decimal`` -- NEVER ``float``.

Data flow:
    OrderSnapshot + StoreConfigSnapshot -> FiscalProfile -> payload -> InvoiceRecord
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class DocumentType(str, Enum):
    """Fiscal document tier chosen by the fiscal profile resolver."""

    STANDARD_INVOICE = "STANDARD_INVOICE"
    SIMPLIFIED_RECEIPT = "SIMPLIFIED_RECEIPT"
    EXPORT_EXEMPT = "EXPORT_EXEMPT"


class DocumentKind(str, Enum):
    """Sales document vs. return-driven expense voucher."""

    SALE = "SALE"
    REFUND = "REFUND"


# ---------------------------------------------------------------------------
# Order collaborator input
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CustomerSnapshot:
    """Customer fields as read from the order at issuance time."""

    first_name: str = ""
    last_name: str = ""
    email: str = ""
    national_id: str = ""
    tax_number: str = ""
    tax_office: str = ""
    company_name: str = ""
    address: str = ""
    city: str = ""
    district: str = ""
    phone: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class OrderLineSnapshot:
    """One order line. ``unit_price`` is gross (VAT inclusive)."""

    sku: str
    name: str
    quantity: int
    unit_price: Decimal
    vat_rate: Decimal = Decimal("20")
    origin_country: str = ""

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError(f"Line {self.sku} quantity must be positive")
        if self.unit_price < 0:
            raise ValueError(f"Line {self.sku} unit price cannot be negative")

    @property
    def line_gross(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class OrderSnapshot:
    """
    Read-only view of an order supplied by the order collaborator.

    ``gross_total`` is the sum of line gross amounts; ``total_discount`` is
    the order-level discount spread across lines by the document builder.
    """

    order_id: str
    order_number: str
    store_id: str
    customer: CustomerSnapshot
    lines: tuple[OrderLineSnapshot, ...]
    total_discount: Decimal = Decimal("0")
    currency: str = "TRY"
    payment_method: str = ""
    is_export: bool = False
    destination_country: str = ""
    order_date: datetime | None = None
    shipment_date: datetime | None = None
    cargo_tracking_number: str = ""
    status: str = ""

    def __post_init__(self):
        if self.total_discount < 0:
            raise ValueError("total_discount cannot be negative")

    @property
    def gross_total(self) -> Decimal:
        return sum((line.line_gross for line in self.lines), Decimal("0"))

    @property
    def net_total(self) -> Decimal:
        return self.gross_total - self.total_discount


@dataclass(frozen=True)
class ReturnLineSnapshot:
    """One returned line. ``unit_price`` is gross (VAT inclusive)."""

    sku: str
    name: str
    quantity: int
    unit_price: Decimal
    vat_rate: Decimal = Decimal("20")


@dataclass(frozen=True)
class ReturnSnapshot:
    """A processed customer return that needs an expense voucher."""

    return_id: str
    order_id: str
    order_number: str
    store_id: str
    customer: CustomerSnapshot
    lines: tuple[ReturnLineSnapshot, ...]
    currency: str = "TRY"
    cargo_tracking_number: str = ""

    @property
    def total_amount(self) -> Decimal:
        return sum((line.unit_price * line.quantity for line in self.lines), Decimal("0"))


# ---------------------------------------------------------------------------
# Store configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SerialSet:
    """Serial prefixes for one document tier."""

    single: str
    bulk: str | None = None
    refund: str | None = None

    def pick(self, bulk: bool) -> str:
        if bulk and self.bulk:
            return self.bulk
        return self.single


@dataclass(frozen=True)
class PartyCodes:
    """Counterpart party/account codes, with the bank-transfer override."""

    party_code: str | None = None
    account_code: str | None = None
    transfer_party_code: str | None = None
    transfer_account_code: str | None = None

    def pick(self, bank_transfer: bool) -> tuple[str | None, str | None]:
        if bank_transfer:
            return (
                self.transfer_party_code or self.party_code,
                self.transfer_account_code or self.account_code,
            )
        return self.party_code, self.account_code


@dataclass(frozen=True)
class StoreConfigSnapshot:
    """Per-store fiscal settings read at the start of an issuance."""

    store_id: str
    channel: str
    invoice_enabled: bool
    company_code: str
    branch_code: str
    transaction_code: str
    cost_center_code: str | None
    warehouse_code: str | None
    invoice_serials: SerialSet
    receipt_serials: SerialSet
    export_serials: SerialSet | None
    invoice_parties: PartyCodes
    receipt_parties: PartyCodes
    export_parties: PartyCodes
    export_party_codes: dict[str, str] = field(default_factory=dict)
    export_transaction_code: str | None = None
    supports_export_exempt: bool = False
    export_exempt_enabled: bool = False
    customer_party_prefix: str = "120"
    next_customer_party_seq: int = 1

    @property
    def next_customer_party_code(self) -> str:
        return f"{self.customer_party_prefix}{self.next_customer_party_seq}"


# ---------------------------------------------------------------------------
# Resolver output and payload header
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FiscalProfile:
    """Resolved document tier and counterpart codes for one issuance."""

    document_type: DocumentType
    serial_prefix: str
    party_code: str | None
    account_code: str | None
    is_export_exempt: bool
    tax_id: str
    customer_party_code: str | None = None

    @property
    def is_standard(self) -> bool:
        return self.document_type == DocumentType.STANDARD_INVOICE


@dataclass(frozen=True)
class DocumentHeader:
    """Header codes copied onto every document of one invoice."""

    company_code: str
    branch_code: str
    transaction_code: str
    cost_center_code: str | None = None
    warehouse_code: str | None = None


@dataclass(frozen=True)
class CustomerParty:
    """Customer party record upserted at the fiscal platform."""

    card_code: str
    name: str
    tax_id: str
    tax_office: str = ""
    email: str = ""
    address: str = ""
    city: str = ""
    district: str = ""
    phone: str = ""


# ---------------------------------------------------------------------------
# Lifecycle outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IssueOptions:
    """Caller options for queue / issue / bulk issue."""

    actor_id: str | None = None
    update_order_status: bool = True
    notify_marketplace: bool = True


@dataclass(frozen=True)
class InvoiceRecord:
    """Detached, immutable view of a persisted invoice."""

    id: UUID
    status: str
    document_kind: str
    slot_key: str
    order_id: str
    order_number: str
    store_id: str
    document_number: str | None
    serial_prefix: str | None
    document_type: str | None
    party_code: str | None
    account_code: str | None
    customer_party_code: str | None
    tax_id: str | None
    is_export_exempt: bool
    issued_in_bulk: bool
    return_id: str | None
    external_document_id: str | None
    transaction_reference: str | None
    total_amount: Decimal | None
    currency: str | None
    error_message: str | None
    retry_count: int
    request_payload: dict[str, Any] | None
    response_payload: dict[str, Any] | None
    issued_at: datetime | None
    created_at: datetime | None

    @property
    def voucher_number(self) -> str | None:
        if not self.document_number or not self.serial_prefix:
            return None
        return self.document_number[len(self.serial_prefix):]


@dataclass(frozen=True)
class BulkFailure:
    """One order that could not be issued in a bulk run."""

    order_id: str
    error_code: str
    message: str
    invoice_id: UUID | None = None


@dataclass(frozen=True)
class BulkIssueResult:
    """Per-order outcome of a bulk issuance. Partial success is normal."""

    succeeded: tuple[InvoiceRecord, ...] = ()
    failed: tuple[BulkFailure, ...] = ()

    @property
    def all_succeeded(self) -> bool:
        return not self.failed


@dataclass(frozen=True)
class PendingRunSummary:
    """Result of one pending-invoice processing run."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: bool = False


@dataclass(frozen=True)
class GatewayIssueResult:
    """
    Outcome of submitting one document to the fiscal gateway.

    ``success`` False with ``error_message`` set is a per-item rejection
    (bulk responses); transport-level failures raise GatewayError instead.
    """

    document_number: str
    success: bool
    external_document_id: str | None = None
    transaction_reference: str | None = None
    response: dict[str, Any] | None = None
    error_message: str | None = None
    status_code: int | None = None


@dataclass(frozen=True)
class GatewayCall:
    """One outbound gateway call, ready for the append-only call log."""

    provider: str
    call_type: str
    endpoint: str
    method: str
    request_body: Any
    response_body: Any
    status_code: int | None
    is_success: bool
    error_message: str | None
    duration_ms: int
    occurred_at: datetime
    invoice_id: UUID | None = None
    order_id: str | None = None
