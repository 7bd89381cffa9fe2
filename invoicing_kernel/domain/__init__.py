"""
Pure domain layer.

Data transfer objects and issuance rules with NO dependencies on the
database, the network or the wall clock.  All domain objects are immutable
and deterministic.
"""

from invoicing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from invoicing_kernel.domain.document_builder import (
    allocate_line_discounts,
    build_invoice_payload,
    build_refund_payload,
    price_lines,
)
from invoicing_kernel.domain.dtos import (
    BulkFailure,
    BulkIssueResult,
    CustomerParty,
    CustomerSnapshot,
    DocumentHeader,
    DocumentKind,
    DocumentType,
    FiscalProfile,
    GatewayCall,
    GatewayIssueResult,
    InvoiceRecord,
    IssueOptions,
    OrderLineSnapshot,
    OrderSnapshot,
    PartyCodes,
    PendingRunSummary,
    ReturnLineSnapshot,
    ReturnSnapshot,
    SerialSet,
    StoreConfigSnapshot,
)
from invoicing_kernel.domain.fiscal_profile import FiscalRules

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "allocate_line_discounts",
    "build_invoice_payload",
    "build_refund_payload",
    "price_lines",
    "BulkFailure",
    "BulkIssueResult",
    "CustomerParty",
    "CustomerSnapshot",
    "DocumentHeader",
    "DocumentKind",
    "DocumentType",
    "FiscalProfile",
    "FiscalRules",
    "GatewayCall",
    "GatewayIssueResult",
    "InvoiceRecord",
    "IssueOptions",
    "OrderLineSnapshot",
    "OrderSnapshot",
    "PartyCodes",
    "PendingRunSummary",
    "ReturnLineSnapshot",
    "ReturnSnapshot",
    "SerialSet",
    "StoreConfigSnapshot",
]
