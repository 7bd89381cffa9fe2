"""Services for the invoicing kernel (write side)."""

from invoicing_kernel.services.fiscal_profile_resolver import (
    FiscalProfileResolver,
    is_registered_recipient,
)
from invoicing_kernel.services.gateway_call_recorder import GatewayCallRecorder
from invoicing_kernel.services.invoice_history import InvoiceHistoryService
from invoicing_kernel.services.invoice_lifecycle import InvoiceLifecycleManager
from invoicing_kernel.services.refund_voucher_service import RefundVoucherService
from invoicing_kernel.services.sequence_allocator import SequenceAllocator
from invoicing_kernel.services.store_config_service import StoreConfigService

__all__ = [
    "FiscalProfileResolver",
    "GatewayCallRecorder",
    "InvoiceHistoryService",
    "InvoiceLifecycleManager",
    "RefundVoucherService",
    "SequenceAllocator",
    "StoreConfigService",
    "is_registered_recipient",
]
