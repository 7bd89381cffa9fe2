"""
Collaborator contracts consumed by the invoicing kernel.

The kernel reads orders from, and reports status back to, an order layer it
does not own, and asks the fiscal platform whether a tax id belongs to a
registered invoice recipient.  These are structural Protocols so any
object with the right methods plugs in; tests use in-memory fakes.
"""

from typing import Any, Protocol, runtime_checkable

from invoicing_kernel.domain.dtos import (
    CustomerParty,
    GatewayIssueResult,
    InvoiceRecord,
    OrderSnapshot,
)

ORDER_STATUS_INVOICED = "INVOICED"


@runtime_checkable
class OrderSource(Protocol):
    """Read access to orders plus the one status write-back."""

    def get_order(self, order_id: str) -> OrderSnapshot | None: ...

    def update_order_status(self, order_id: str, status: str) -> None: ...


@runtime_checkable
class MarketplaceNotifier(Protocol):
    """Tells the originating marketplace an order has been invoiced."""

    def notify_invoiced(self, order: OrderSnapshot, invoice: InvoiceRecord) -> None: ...


@runtime_checkable
class RegistryClient(Protocol):
    """
    Registered-recipient lookup.

    ``is_registered`` may raise; callers collapse any exception into
    ``False`` (see ``services.fiscal_profile_resolver.is_registered_recipient``).
    """

    def is_registered(self, tax_id: str) -> bool: ...


@runtime_checkable
class PartyRegistrar(Protocol):
    """Creates customer party records at the fiscal platform."""

    def upsert_customer_party(self, party: CustomerParty) -> str: ...


@runtime_checkable
class DocumentGateway(Protocol):
    """Submission side of the fiscal platform."""

    def issue_document(
        self,
        payload: dict[str, Any],
        *,
        refund: bool = False,
        invoice_id: Any = None,
        order_id: str | None = None,
    ) -> GatewayIssueResult: ...

    def issue_bulk(self, payloads: list[dict[str, Any]]) -> list[GatewayIssueResult]: ...

    def fetch_document_view(
        self,
        document_number: str,
        *,
        external_document_id: str | None = None,
        transaction_reference: str | None = None,
    ) -> str: ...


class NullNotifier:
    """MarketplaceNotifier that does nothing."""

    def notify_invoiced(self, order: OrderSnapshot, invoice: InvoiceRecord) -> None:
        return None
