"""
RefundVoucherService -- expense vouchers for processed customer returns.

Responsibility:
    Issues one fiscal expense voucher per return.  The voucher carries the
    same recipient classification as the order's issued sales invoice when
    there is one; otherwise the order is classified afresh.  The serial is
    the store's refund serial for that tier.

Invariants enforced:
    - One voucher per return (``slot_key = refund:{return_id}``).
    - A SUCCESS voucher for the return rejects the call; an ERROR or
      PENDING voucher is resubmitted under the number it already has, up
      to the same retry limit sales invoices observe.
"""

from dataclasses import replace
from typing import Any

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from invoicing_kernel.db.engine import session_scope
from invoicing_kernel.domain.clock import Clock
from invoicing_kernel.domain.document_builder import build_refund_payload
from invoicing_kernel.domain.dtos import (
    DocumentKind,
    DocumentType,
    FiscalProfile,
    InvoiceRecord,
    IssueOptions,
    OrderLineSnapshot,
    OrderSnapshot,
    ReturnSnapshot,
    StoreConfigSnapshot,
)
from invoicing_kernel.domain.fiscal_profile import refund_serial_for
from invoicing_kernel.exceptions import (
    AllocationFailure,
    DuplicateInvoiceError,
    RetryNotAllowedError,
    StoreConfigNotFoundError,
)
from invoicing_kernel.logging_config import LogContext, get_logger
from invoicing_kernel.models.invoice import Invoice, InvoiceStatus, refund_slot_key
from invoicing_kernel.models.invoice_event import InvoiceAction
from invoicing_kernel.ports import DocumentGateway, OrderSource
from invoicing_kernel.selectors.invoice_selector import InvoiceSelector
from invoicing_kernel.selectors.store_config_selector import StoreConfigSelector
from invoicing_kernel.services.fiscal_profile_resolver import FiscalProfileResolver
from invoicing_kernel.services.issuance_base import (
    IssuanceBase,
    apply_profile,
    header_for,
    stored_customer,
    stored_header,
    stored_profile,
)
from invoicing_kernel.services.sequence_allocator import SequenceAllocator

logger = get_logger("services.refund_voucher")


def inherited_profile(original: Invoice, config: StoreConfigSnapshot) -> FiscalProfile:
    """Voucher profile copied from an issued sales invoice."""
    document_type = DocumentType(original.document_type)
    return FiscalProfile(
        document_type=document_type,
        serial_prefix=refund_serial_for(document_type, config),
        party_code=original.party_code,
        account_code=original.account_code,
        is_export_exempt=bool(original.is_export_exempt),
        tax_id=original.tax_id or "",
        customer_party_code=original.customer_party_code,
    )


def order_from_return(returned: ReturnSnapshot) -> OrderSnapshot:
    """Stand-in order for classification when the order itself is gone."""
    return OrderSnapshot(
        order_id=returned.order_id,
        order_number=returned.order_number,
        store_id=returned.store_id,
        customer=returned.customer,
        lines=tuple(
            OrderLineSnapshot(
                sku=line.sku,
                name=line.name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                vat_rate=line.vat_rate,
            )
            for line in returned.lines
        ),
        currency=returned.currency,
    )


class RefundVoucherService(IssuanceBase):
    """Issues return-driven expense vouchers."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        order_source: OrderSource,
        gateway: DocumentGateway,
        resolver: FiscalProfileResolver,
        clock: Clock | None = None,
        lock_timeout_ms: int = 5000,
        max_retries: int = 10,
    ):
        super().__init__(session_factory, gateway, clock, lock_timeout_ms)
        self._orders = order_source
        self._resolver = resolver
        self._max_retries = max_retries

    def issue_refund_voucher(
        self,
        returned: ReturnSnapshot,
        options: IssueOptions | None = None,
    ) -> InvoiceRecord:
        """
        Issue the expense voucher for ``returned``.

        Raises:
            StoreConfigNotFoundError, DuplicateInvoiceError, RetryNotAllowedError,
            AllocationFailure, InvoiceSubmissionError, GatewayAuthenticationError.
        """
        options = options or IssueOptions()
        if not returned.lines:
            raise ValueError(f"Return {returned.return_id} has no lines")

        with LogContext.bind(order_id=returned.order_id, actor_id=options.actor_id):
            config, numbered, inherited = self._inspect(returned)
            profile = None
            if not numbered:
                profile = inherited or self._derive_profile(returned, config)

            prepared, payload = self._prepare(returned, config, profile)
            with LogContext.bind(invoice_id=prepared.id):
                logger.info(
                    "refund_voucher_prepared",
                    extra={
                        "return_id": returned.return_id,
                        "document_number": prepared.document_number,
                        "inherited": inherited is not None,
                    },
                )
                issued = self._submit(
                    prepared,
                    payload,
                    refund=True,
                    success_action=InvoiceAction.REFUND_ISSUED,
                )
                self._advance_party_seq(issued)
        return issued

    def _inspect(
        self,
        returned: ReturnSnapshot,
    ) -> tuple[StoreConfigSnapshot, bool, FiscalProfile | None]:
        """Store config, whether a numbered voucher exists, and the inherited profile."""
        with session_scope(self._session_factory) as session:
            config = StoreConfigSelector(session).get(returned.store_id)
            if config is None:
                raise StoreConfigNotFoundError(returned.store_id)

            selector = InvoiceSelector(session)
            existing = selector.refund_for_return(returned.return_id)
            if existing is not None and existing.status == InvoiceStatus.SUCCESS.value:
                raise DuplicateInvoiceError(
                    returned.order_id, str(existing.id), existing.document_number, "return_id"
                )
            numbered = existing is not None and existing.document_number is not None

            original = selector.issued_sale_for_order(returned.order_id, returned.order_number)
            inherited = inherited_profile(original, config) if original is not None else None
        return config, numbered, inherited

    def _derive_profile(self, returned: ReturnSnapshot, config: StoreConfigSnapshot) -> FiscalProfile:
        order = self._orders.get_order(returned.order_id) or order_from_return(returned)
        resolved = self._resolver.resolve(order, config, bulk=False)
        return replace(resolved, serial_prefix=refund_serial_for(resolved.document_type, config))

    def _prepare(
        self,
        returned: ReturnSnapshot,
        config: StoreConfigSnapshot,
        profile: FiscalProfile | None,
    ) -> tuple[InvoiceRecord, dict[str, Any]]:
        series_hint = profile.serial_prefix if profile else ""
        try:
            try:
                return self._prepare_once(returned, config, profile)
            except IntegrityError:
                logger.info("refund_voucher_slot_race", extra={"return_id": returned.return_id})
            return self._prepare_once(returned, config, profile)
        except DBAPIError as exc:
            raise AllocationFailure(series_hint, str(exc.orig or exc)) from exc

    def _prepare_once(
        self,
        returned: ReturnSnapshot,
        config: StoreConfigSnapshot,
        profile: FiscalProfile | None,
    ) -> tuple[InvoiceRecord, dict[str, Any]]:
        with session_scope(self._session_factory) as session:
            invoice = InvoiceSelector(session).refund_for_return(returned.return_id, for_update=True)
            if invoice is None:
                invoice = Invoice(
                    slot_key=refund_slot_key(returned.return_id),
                    status=InvoiceStatus.PENDING.value,
                    document_kind=DocumentKind.REFUND.value,
                    order_id=returned.order_id,
                    order_number=returned.order_number,
                    store_id=returned.store_id,
                    return_id=returned.return_id,
                )
                session.add(invoice)
                session.flush()
            elif invoice.status == InvoiceStatus.SUCCESS.value:
                raise DuplicateInvoiceError(
                    returned.order_id, str(invoice.id), invoice.document_number, "return_id"
                )
            elif invoice.status == InvoiceStatus.ERROR.value:
                if (invoice.retry_count or 0) >= self._max_retries:
                    raise RetryNotAllowedError(
                        str(invoice.id),
                        invoice.status,
                        f"retry limit of {self._max_retries} reached",
                    )
                invoice.retry_count = (invoice.retry_count or 0) + 1

            if invoice.document_number is None:
                allocator = SequenceAllocator(session, self._clock, self._lock_timeout_ms)
                invoice.document_number = allocator.allocate(profile.serial_prefix)
                apply_profile(invoice, profile, header_for(config, profile), returned.customer)
                invoice.total_amount = returned.total_amount
                invoice.currency = returned.currency

            snapshot = replace(returned, customer=stored_customer(invoice, returned.customer))
            payload = build_refund_payload(
                snapshot,
                stored_profile(invoice),
                stored_header(invoice),
                invoice.document_number,
                self._clock.now(),
            )
            invoice.request_payload = payload
            session.flush()
            record = invoice.to_dto()
        return record, payload
