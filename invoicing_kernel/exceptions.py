"""
Typed Exception Hierarchy for the Invoicing Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from InvoicingError:

    InvoicingError (base)
    |
    +-- InvoiceValidationError
    |   +-- OrderNotFoundError
    |   +-- StoreConfigNotFoundError
    |   +-- InvoicingDisabledError
    |   +-- DuplicateInvoiceError
    |   +-- InvoiceNotFoundError
    |   +-- RetryNotAllowedError
    |   +-- InvalidInvoiceTransitionError
    |
    +-- AllocationFailure
    |
    +-- GatewayError
    |   +-- GatewayAuthenticationError
    |   +-- GatewayTransportError
    |   |   +-- GatewayTimeoutError
    |   +-- GatewayResponseError
    |   +-- InvoiceSubmissionError
    |
    +-- RegistryLookupError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | ORDER_NOT_FOUND             | Order source has no such order
                | STORE_CONFIG_NOT_FOUND      | Store has no fiscal configuration
                | INVOICING_DISABLED          | Store has invoicing switched off
                | DUPLICATE_INVOICE           | SUCCESS invoice already exists
                | INVOICE_NOT_FOUND           | Invoice id / order id unknown
                | RETRY_NOT_ALLOWED           | Retry from non-ERROR or limit reached
                | INVALID_INVOICE_TRANSITION  | Status move not in VALID_TRANSITIONS
----------------|-----------------------------|-----------------------------------------
Allocation      | ALLOCATION_FAILURE          | Series lock timeout / tx aborted
----------------|-----------------------------|-----------------------------------------
Gateway         | GATEWAY_AUTHENTICATION      | Missing/invalid credentials or token
                | GATEWAY_TRANSPORT           | Connection error or non-2xx status
                | GATEWAY_TIMEOUT             | Request exceeded its timeout
                | GATEWAY_RESPONSE            | Malformed / unexpected response body
                | INVOICE_SUBMISSION_FAILED   | Invoice persisted as ERROR
----------------|-----------------------------|-----------------------------------------
Registry        | REGISTRY_LOOKUP_FAILED      | Recipient lookup failed (absorbed)
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying an issued invoice / audit row

===============================================================================
PROPAGATION
===============================================================================

Only InvoiceValidationError and GatewayError subclasses reach the calling
layer as explicit failures. AllocationFailure aborts an issuance before
anything is persisted and is surfaced as-is. RegistryLookupError is always
collapsed to "not registered" by the fiscal profile resolver.

    try:
        invoice = manager.issue_invoice(order_id)
    except DuplicateInvoiceError as e:
        return {"error": e.code, "invoice_id": e.existing_invoice_id}
    except GatewayError as e:
        # The invoice is persisted as ERROR and can be retried.
        return {"error": e.code, "invoice_id": getattr(e, "invoice_id", None)}
===============================================================================
"""

from typing import Any


class InvoicingError(Exception):
    """
    Base exception for all invoicing kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVOICING_ERROR"


# Validation exceptions


class InvoiceValidationError(InvoicingError):
    """Base exception for synchronous rejections. No state is mutated."""

    code: str = "INVOICE_VALIDATION_ERROR"


class OrderNotFoundError(InvoiceValidationError):
    """Order source returned nothing for the given order id."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class StoreConfigNotFoundError(InvoiceValidationError):
    """Store has no fiscal configuration."""

    code: str = "STORE_CONFIG_NOT_FOUND"

    def __init__(self, store_id: str):
        self.store_id = store_id
        super().__init__(f"Fiscal configuration not found for store: {store_id}")


class InvoicingDisabledError(InvoiceValidationError):
    """Store has invoicing switched off."""

    code: str = "INVOICING_DISABLED"

    def __init__(self, store_id: str):
        self.store_id = store_id
        super().__init__(f"Invoicing is disabled for store: {store_id}")


class DuplicateInvoiceError(InvoiceValidationError):
    """A SUCCESS invoice already exists for the order (or return)."""

    code: str = "DUPLICATE_INVOICE"

    def __init__(
        self,
        order_id: str,
        existing_invoice_id: str,
        document_number: str | None = None,
        matched_on: str = "order_id",
    ):
        self.order_id = order_id
        self.existing_invoice_id = existing_invoice_id
        self.document_number = document_number
        self.matched_on = matched_on
        super().__init__(
            f"Order {order_id} already has an issued invoice "
            f"{document_number or existing_invoice_id} (matched on {matched_on})"
        )


class InvoiceNotFoundError(InvoiceValidationError):
    """No invoice exists for the given invoice id or order id."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, lookup: str):
        self.lookup = lookup
        super().__init__(f"Invoice not found: {lookup}")


class RetryNotAllowedError(InvoiceValidationError):
    """Retry requested for an invoice that is not retriable."""

    code: str = "RETRY_NOT_ALLOWED"

    def __init__(self, invoice_id: str, status: str, reason: str):
        self.invoice_id = invoice_id
        self.status = status
        self.reason = reason
        super().__init__(
            f"Cannot retry invoice {invoice_id} (status={status}): {reason}"
        )


class InvalidInvoiceTransitionError(InvoiceValidationError):
    """Status change not permitted by the invoice state machine."""

    code: str = "INVALID_INVOICE_TRANSITION"

    def __init__(self, invoice_id: str, from_status: str, to_status: str):
        self.invoice_id = invoice_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid invoice transition {from_status} -> {to_status} "
            f"for invoice {invoice_id}"
        )


# Allocation exceptions


class AllocationFailure(InvoicingError):
    """
    Document number could not be allocated.

    Raised on series lock timeout or an aborted transaction. The caller
    rolls back, so no invoice is left holding an unconsumed number.
    """

    code: str = "ALLOCATION_FAILURE"

    def __init__(self, series_key: str, reason: str):
        self.series_key = series_key
        self.reason = reason
        super().__init__(f"Could not allocate a number in series {series_key}: {reason}")


# Gateway exceptions


class GatewayError(InvoicingError):
    """Base exception for fiscal gateway failures."""

    code: str = "GATEWAY_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: Any = None,
    ):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message)


class GatewayAuthenticationError(GatewayError):
    """Credentials missing or rejected. Never retried by the client."""

    code: str = "GATEWAY_AUTHENTICATION"


class GatewayTransportError(GatewayError):
    """Connection failure or non-2xx response."""

    code: str = "GATEWAY_TRANSPORT"


class GatewayTimeoutError(GatewayTransportError):
    """Request exceeded its configured timeout."""

    code: str = "GATEWAY_TIMEOUT"


class GatewayResponseError(GatewayError):
    """Response body was not JSON or did not have the expected shape."""

    code: str = "GATEWAY_RESPONSE"


class InvoiceSubmissionError(GatewayError):
    """
    Gateway rejected or failed an invoice submission.

    The invoice has been persisted as ERROR with its request payload,
    response payload and error text, and can be retried.
    """

    code: str = "INVOICE_SUBMISSION_FAILED"

    def __init__(
        self,
        invoice_id: str,
        document_number: str | None,
        reason: str,
        status_code: int | None = None,
        response_body: Any = None,
    ):
        self.invoice_id = invoice_id
        self.document_number = document_number
        self.reason = reason
        super().__init__(
            f"Invoice {document_number or invoice_id} submission failed: {reason}",
            status_code=status_code,
            response_body=response_body,
        )


# Registry exceptions


class RegistryLookupError(InvoicingError):
    """Registered-recipient lookup failed. Always absorbed by the resolver."""

    code: str = "REGISTRY_LOOKUP_FAILED"

    def __init__(self, tax_id: str, reason: str):
        self.tax_id = tax_id
        self.reason = reason
        super().__init__(f"Registry lookup failed for {tax_id}: {reason}")


# Immutability exceptions


class ImmutabilityViolationError(InvoicingError):
    """
    Attempted to modify or delete an immutable record.

    Issued (SUCCESS) invoices, gateway call logs and invoice events are
    immutable after creation.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
