"""Read-only query selectors for the invoicing kernel."""

from invoicing_kernel.selectors.invoice_selector import InvoiceSelector
from invoicing_kernel.selectors.store_config_selector import StoreConfigSelector

__all__ = ["InvoiceSelector", "StoreConfigSelector"]
