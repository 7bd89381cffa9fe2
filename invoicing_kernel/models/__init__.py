"""Persistence models for the invoicing kernel."""

from invoicing_kernel.models.document_series import DocumentSeries, series_key
from invoicing_kernel.models.gateway_call_log import GatewayCallLog, GatewayCallType
from invoicing_kernel.models.invoice import (
    VALID_TRANSITIONS,
    Invoice,
    InvoiceStatus,
    refund_slot_key,
    sale_slot_key,
)
from invoicing_kernel.models.invoice_event import InvoiceAction, InvoiceEvent
from invoicing_kernel.models.store_fiscal_config import StoreFiscalConfig

__all__ = [
    "DocumentSeries",
    "series_key",
    "GatewayCallLog",
    "GatewayCallType",
    "Invoice",
    "InvoiceStatus",
    "VALID_TRANSITIONS",
    "sale_slot_key",
    "refund_slot_key",
    "InvoiceAction",
    "InvoiceEvent",
    "StoreFiscalConfig",
]
