"""Invoice queries shared by the lifecycle manager and refund service."""

from uuid import UUID

from sqlalchemy import select

from invoicing_kernel.domain.dtos import DocumentKind
from invoicing_kernel.models.invoice import (
    Invoice,
    InvoiceStatus,
    refund_slot_key,
    sale_slot_key,
)
from invoicing_kernel.selectors.base import BaseSelector


class InvoiceSelector(BaseSelector):
    """Read-only access to invoices."""

    def get(self, invoice_id: UUID, for_update: bool = False) -> Invoice | None:
        stmt = select(Invoice).where(Invoice.id == invoice_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def by_slot(self, slot_key: str, for_update: bool = False) -> Invoice | None:
        stmt = select(Invoice).where(Invoice.slot_key == slot_key)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def sale_for_order(self, order_id: str, for_update: bool = False) -> Invoice | None:
        return self.by_slot(sale_slot_key(order_id), for_update=for_update)

    def refund_for_return(self, return_id: str, for_update: bool = False) -> Invoice | None:
        return self.by_slot(refund_slot_key(return_id), for_update=for_update)

    def issued_sale_by_order_number(self, order_number: str) -> Invoice | None:
        """SUCCESS sale invoice for an order number, whatever its order id."""
        return self.session.execute(
            select(Invoice)
            .where(
                Invoice.order_number == order_number,
                Invoice.document_kind == DocumentKind.SALE.value,
                Invoice.status == InvoiceStatus.SUCCESS.value,
            )
            .order_by(Invoice.issued_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    def issued_sale_for_order(self, order_id: str, order_number: str | None = None) -> Invoice | None:
        """SUCCESS sale invoice for the order, by id first and then by number."""
        invoice = self.sale_for_order(order_id)
        if invoice is not None and invoice.status == InvoiceStatus.SUCCESS.value:
            return invoice
        if order_number:
            return self.issued_sale_by_order_number(order_number)
        return None

    def pending_sales(self, limit: int) -> list[Invoice]:
        """PENDING sale invoices, oldest first."""
        return list(
            self.session.execute(
                select(Invoice)
                .where(
                    Invoice.status == InvoiceStatus.PENDING.value,
                    Invoice.document_kind == DocumentKind.SALE.value,
                )
                .order_by(Invoice.created_at.asc(), Invoice.order_number.asc())
                .limit(limit)
            ).scalars()
        )
