"""
InvoiceLifecycleManager -- the public entry point for sales invoicing.

Responsibility:
    Drives an order from "needs an invoice" to an issued fiscal document:
    queue, classify, number, build, submit, record, and the follow-up side
    effects.  Also hosts retries, bulk issuance, the pending-invoice sweep
    and the read accessors callers need.

Architecture position:
    Kernel > Services.  Owns transaction boundaries: one short
    ``session_scope`` per phase, commit on success and rollback on failure.
    Profile resolution and every gateway call happen between transactions.

Phases of one issuance:
    1. queue      (tx)  one PENDING invoice per order slot
    2. resolve    (--)  registry lookup and party upsert, network only
    3. prepare    (tx)  lock invoice, allocate a number if it has none,
                        write profile, header codes and customer snapshot
    4. submit     (--)  gateway call
    5. record     (tx)  SUCCESS or ERROR with payloads and error text
    6. follow-up  (tx each, best effort)  party counter, history, order
                        status, marketplace notification

Invariants enforced:
    - At most one SUCCESS sale invoice per order id and per order number.
    - A number, once written on an invoice, is reused by every later
      attempt on that invoice.
    - Side-effect failures never revert a SUCCESS.

Failure modes:
    - InvoiceValidationError subclasses: nothing mutated.
    - AllocationFailure: prepare rolled back; the invoice stays PENDING
      without a number.
    - GatewayError subclasses: invoice persisted as ERROR first.
"""

import threading
from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import Any
from uuid import UUID

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from invoicing_kernel.db.engine import session_scope
from invoicing_kernel.domain.clock import Clock
from invoicing_kernel.domain.document_builder import build_invoice_payload
from invoicing_kernel.domain.dtos import (
    BulkFailure,
    BulkIssueResult,
    DocumentKind,
    FiscalProfile,
    GatewayIssueResult,
    InvoiceRecord,
    IssueOptions,
    OrderSnapshot,
    PendingRunSummary,
    ReturnSnapshot,
    StoreConfigSnapshot,
)
from invoicing_kernel.domain.fiscal_profile import DEFAULT_RULES, FiscalRules
from invoicing_kernel.domain.tax_identity import lookup_candidate
from invoicing_kernel.exceptions import (
    AllocationFailure,
    DuplicateInvoiceError,
    GatewayError,
    InvoiceNotFoundError,
    InvoicingDisabledError,
    InvoicingError,
    OrderNotFoundError,
    RetryNotAllowedError,
    StoreConfigNotFoundError,
)
from invoicing_kernel.logging_config import LogContext, get_logger
from invoicing_kernel.models.invoice import Invoice, InvoiceStatus, sale_slot_key
from invoicing_kernel.models.invoice_event import InvoiceAction
from invoicing_kernel.ports import (
    ORDER_STATUS_INVOICED,
    DocumentGateway,
    MarketplaceNotifier,
    NullNotifier,
    OrderSource,
    PartyRegistrar,
    RegistryClient,
)
from invoicing_kernel.selectors.invoice_selector import InvoiceSelector
from invoicing_kernel.selectors.store_config_selector import StoreConfigSelector
from invoicing_kernel.services.fiscal_profile_resolver import FiscalProfileResolver
from invoicing_kernel.services.invoice_history import InvoiceHistoryService
from invoicing_kernel.services.issuance_base import (
    IssuanceBase,
    apply_profile,
    header_for,
    numbering_of,
    stored_customer,
    stored_header,
    stored_profile,
)
from invoicing_kernel.services.refund_voucher_service import RefundVoucherService
from invoicing_kernel.services.sequence_allocator import SequenceAllocator

logger = get_logger("services.invoice_lifecycle")


@dataclass(frozen=True)
class _StagedOrder:
    """A bulk item that passed queue and resolve."""

    order: OrderSnapshot
    record: InvoiceRecord
    config: StoreConfigSnapshot
    profile: FiscalProfile | None

    @property
    def serial_prefix(self) -> str:
        if self.record.document_number:
            return self.record.serial_prefix
        return self.profile.serial_prefix


@dataclass(frozen=True)
class _PreparedDocument:
    staged: _StagedOrder
    record: InvoiceRecord
    payload: dict[str, Any]


class InvoiceLifecycleManager(IssuanceBase):
    """
    Queue, issue, retry and bulk-issue sales invoices.

    Contract:
        Every public method returns detached ``InvoiceRecord`` values and
        leaves no open transaction behind.

    Guarantees:
        - ``queue_invoice`` is idempotent; concurrent calls for one order
          converge on one PENDING row.
        - ``retry_invoice`` never re-enters queue and never allocates a
          second number for an invoice that already has one.
        - ``process_pending`` runs at most once at a time per manager.

    Non-goals:
        - Serializing concurrent ``issue_invoice`` calls for one order; the
          caller owns that.
    """

    MAX_RETRIES = 10

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        order_source: OrderSource,
        gateway: DocumentGateway,
        registry: RegistryClient | None = None,
        notifier: MarketplaceNotifier | None = None,
        clock: Clock | None = None,
        *,
        party_registrar: PartyRegistrar | None = None,
        rules: FiscalRules = DEFAULT_RULES,
        resolver: FiscalProfileResolver | None = None,
        lock_timeout_ms: int = 5000,
        max_retries: int = MAX_RETRIES,
    ):
        super().__init__(session_factory, gateway, clock, lock_timeout_ms)
        self._orders = order_source
        self._notifier = notifier or NullNotifier()
        self._resolver = resolver or FiscalProfileResolver(registry, party_registrar, rules)
        self._max_retries = max_retries
        self._pending_lock = threading.Lock()
        self._refunds = RefundVoucherService(
            session_factory,
            order_source,
            gateway,
            self._resolver,
            clock=self._clock,
            lock_timeout_ms=lock_timeout_ms,
            max_retries=max_retries,
        )

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    def queue_invoice(self, order_id: str, options: IssueOptions | None = None) -> InvoiceRecord:
        """
        Ensure a PENDING invoice exists for ``order_id``.

        Raises:
            OrderNotFoundError, StoreConfigNotFoundError,
            InvoicingDisabledError, DuplicateInvoiceError.
        """
        options = options or IssueOptions()
        with LogContext.bind(order_id=order_id, actor_id=options.actor_id):
            order = self._load_order(order_id)
            record, _ = self._queue(order, options)
        return record

    def _queue(
        self,
        order: OrderSnapshot,
        options: IssueOptions,
    ) -> tuple[InvoiceRecord, StoreConfigSnapshot]:
        try:
            return self._queue_once(order, options)
        except (IntegrityError, StaleDataError):
            # Lost the slot to a concurrent queue; the second pass reads
            # the winner's row.
            logger.info("invoice_queue_race", extra={"order_id": order.order_id})
        return self._queue_once(order, options)

    def _queue_once(
        self,
        order: OrderSnapshot,
        options: IssueOptions,
    ) -> tuple[InvoiceRecord, StoreConfigSnapshot]:
        with session_scope(self._session_factory) as session:
            config = StoreConfigSelector(session).get(order.store_id)
            if config is None:
                raise StoreConfigNotFoundError(order.store_id)
            if not config.invoice_enabled:
                raise InvoicingDisabledError(order.store_id)

            selector = InvoiceSelector(session)
            existing = selector.sale_for_order(order.order_id, for_update=True)
            if existing is not None and existing.status == InvoiceStatus.SUCCESS.value:
                raise DuplicateInvoiceError(
                    order.order_id, str(existing.id), existing.document_number, "order_id"
                )
            issued = selector.issued_sale_by_order_number(order.order_number)
            if issued is not None:
                raise DuplicateInvoiceError(
                    order.order_id, str(issued.id), issued.document_number, "order_number"
                )

            if existing is not None and existing.status == InvoiceStatus.PENDING.value:
                logger.debug("invoice_queue_reused", extra={"invoice_id": existing.id})
                return existing.to_dto(), config

            action = InvoiceAction.QUEUED
            carried: dict[str, Any] = {}
            detail = None
            if existing is not None:
                # The ERROR row's number may already be on file at the
                # gateway; it moves to the replacement and is never released.
                carried = numbering_of(existing)
                detail = {
                    "replaced_invoice_id": str(existing.id),
                    "document_number": existing.document_number,
                }
                session.delete(existing)
                session.flush()
                action = InvoiceAction.REQUEUED

            invoice = Invoice(
                slot_key=sale_slot_key(order.order_id),
                status=InvoiceStatus.PENDING.value,
                document_kind=DocumentKind.SALE.value,
                order_id=order.order_id,
                order_number=order.order_number,
                store_id=order.store_id,
                total_amount=order.net_total,
                currency=order.currency,
                **carried,
            )
            session.add(invoice)
            session.flush()

            InvoiceHistoryService(session).record(
                action=action,
                order_id=order.order_id,
                invoice_id=invoice.id,
                to_status=invoice.status,
                detail=detail,
                actor_id=options.actor_id,
                occurred_at=self._clock.now(),
            )
            record = invoice.to_dto()

        logger.info(
            "invoice_queued",
            extra={"invoice_id": record.id, "order_id": order.order_id, "action": action.value},
        )
        return record, config

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue_invoice(self, order_id: str, options: IssueOptions | None = None) -> InvoiceRecord:
        """
        Issue the sales invoice for ``order_id``.

        Returns:
            The SUCCESS invoice.

        Raises:
            InvoiceValidationError subclasses before anything is written.
            AllocationFailure when no number could be allocated.
            InvoiceSubmissionError / GatewayAuthenticationError after the
            invoice has been persisted as ERROR.
        """
        options = options or IssueOptions()
        with LogContext.bind(order_id=order_id, actor_id=options.actor_id):
            order = self._load_order(order_id)
            queued, config = self._queue(order, options)
            profile = None
            if queued.document_number is None:
                profile = self._resolver.resolve(order, config, bulk=False)

            prepared, payload = self._prepare(queued, order, profile, config)
            with LogContext.bind(invoice_id=prepared.id):
                issued = self._submit(prepared, payload)
                self._after_success(order, issued, options)
        return issued

    def _prepare(
        self,
        current: InvoiceRecord,
        order: OrderSnapshot,
        profile: FiscalProfile | None,
        config: StoreConfigSnapshot | None,
        *,
        retry: bool = False,
    ) -> tuple[InvoiceRecord, dict[str, Any]]:
        """
        Number the invoice (if needed) and store the request payload.

        ``profile`` and ``config`` are only consulted when the invoice has
        no number yet; numbers are never removed from a row.
        """
        series_hint = current.serial_prefix or (profile.serial_prefix if profile else "")
        try:
            with session_scope(self._session_factory) as session:
                invoice = self._locked_invoice(session, current.id)
                if invoice.status == InvoiceStatus.SUCCESS.value:
                    raise DuplicateInvoiceError(
                        invoice.order_id, str(invoice.id), invoice.document_number
                    )
                self._check_order_number_free(session, invoice)
                if retry:
                    self._check_retriable(invoice)
                    invoice.retry_count = (invoice.retry_count or 0) + 1

                if invoice.document_number is None:
                    allocator = SequenceAllocator(session, self._clock, self._lock_timeout_ms)
                    number = allocator.allocate(profile.serial_prefix)
                    self._assign(invoice, number, profile, config, order, bulk=False)

                payload = self._payload_for(invoice, order)
                invoice.request_payload = payload
                session.flush()
                record = invoice.to_dto()
        except DBAPIError as exc:
            raise AllocationFailure(series_hint, str(exc.orig or exc)) from exc
        return record, payload

    def _check_order_number_free(self, session: Session, invoice: Invoice) -> None:
        """Re-check under the invoice lock: another order id may have issued this order number."""
        issued = InvoiceSelector(session).issued_sale_by_order_number(invoice.order_number)
        if issued is not None and issued.id != invoice.id:
            raise DuplicateInvoiceError(
                invoice.order_id, str(issued.id), issued.document_number, "order_number"
            )

    def _assign(
        self,
        invoice: Invoice,
        number: str,
        profile: FiscalProfile,
        config: StoreConfigSnapshot,
        order: OrderSnapshot,
        bulk: bool,
    ) -> None:
        invoice.document_number = number
        apply_profile(invoice, profile, header_for(config, profile), order.customer)
        invoice.total_amount = order.net_total
        invoice.currency = order.currency
        invoice.issued_in_bulk = bulk

    def _payload_for(self, invoice: Invoice, order: OrderSnapshot) -> dict[str, Any]:
        """Build from the current order lines and the stored snapshot."""
        snapshot = replace(order, customer=stored_customer(invoice, order.customer))
        return build_invoice_payload(
            snapshot,
            stored_profile(invoice),
            stored_header(invoice),
            invoice.document_number,
            self._clock.now(),
        )

    def _after_success(
        self,
        order: OrderSnapshot,
        record: InvoiceRecord,
        options: IssueOptions,
    ) -> None:
        self._advance_party_seq(record)

        if options.update_order_status:
            updated = self._best_effort(
                "order_status",
                record,
                lambda: self._orders.update_order_status(order.order_id, ORDER_STATUS_INVOICED),
            )
            if updated:
                self._record_event(
                    InvoiceAction.ORDER_INVOICED,
                    record,
                    from_status=record.status,
                    actor_id=options.actor_id,
                )

        if options.notify_marketplace:
            self._best_effort(
                "marketplace_notification",
                record,
                lambda: self._notifier.notify_invoiced(order, record),
            )

    # ------------------------------------------------------------------
    # Retry
    # ------------------------------------------------------------------

    def retry_invoice(self, invoice_id: UUID, options: IssueOptions | None = None) -> InvoiceRecord:
        """
        Resubmit an ERROR invoice under its existing number.

        Raises:
            InvoiceNotFoundError, RetryNotAllowedError, OrderNotFoundError,
            and the submission errors of ``issue_invoice``.
        """
        options = options or IssueOptions()
        with session_scope(self._session_factory) as session:
            invoice = InvoiceSelector(session).get(invoice_id)
            if invoice is None:
                raise InvoiceNotFoundError(str(invoice_id))
            self._check_retriable(invoice)
            current = invoice.to_dto()

        with LogContext.bind(
            invoice_id=current.id, order_id=current.order_id, actor_id=options.actor_id
        ):
            if current.document_kind == DocumentKind.REFUND.value:
                return self._retry_stored_payload(current, options)

            order = self._load_order(current.order_id)
            profile = config = None
            if current.document_number is None:
                config = self._load_config(order.store_id)
                profile = self._resolver.resolve(order, config, bulk=False)

            prepared, payload = self._prepare(current, order, profile, config, retry=True)
            self._record_event(
                InvoiceAction.RETRIED,
                prepared,
                from_status=InvoiceStatus.ERROR.value,
                detail={"retry_count": prepared.retry_count},
                actor_id=options.actor_id,
            )
            logger.info(
                "invoice_retry_started",
                extra={"document_number": prepared.document_number, "retry_count": prepared.retry_count},
            )
            issued = self._submit(prepared, payload)
            self._after_success(order, issued, options)
        return issued

    def _retry_stored_payload(self, current: InvoiceRecord, options: IssueOptions) -> InvoiceRecord:
        """Refund vouchers are resent exactly as they were first built."""
        with session_scope(self._session_factory) as session:
            invoice = self._locked_invoice(session, current.id)
            self._check_retriable(invoice)
            if not invoice.request_payload:
                raise RetryNotAllowedError(
                    str(invoice.id), invoice.status, "no stored request payload"
                )
            invoice.retry_count = (invoice.retry_count or 0) + 1
            session.flush()
            prepared = invoice.to_dto()
            payload = dict(invoice.request_payload)

        self._record_event(
            InvoiceAction.RETRIED,
            prepared,
            from_status=InvoiceStatus.ERROR.value,
            detail={"retry_count": prepared.retry_count},
            actor_id=options.actor_id,
        )
        issued = self._submit(
            prepared, payload, refund=True, success_action=InvoiceAction.REFUND_ISSUED
        )
        self._advance_party_seq(issued)
        return issued

    def _check_retriable(self, invoice: Invoice) -> None:
        if invoice.status != InvoiceStatus.ERROR.value:
            raise RetryNotAllowedError(
                str(invoice.id), invoice.status, "only ERROR invoices can be retried"
            )
        if (invoice.retry_count or 0) >= self._max_retries:
            raise RetryNotAllowedError(
                str(invoice.id),
                invoice.status,
                f"retry limit of {self._max_retries} reached",
            )

    # ------------------------------------------------------------------
    # Bulk
    # ------------------------------------------------------------------

    def issue_bulk(
        self,
        order_ids: Iterable[str],
        options: IssueOptions | None = None,
    ) -> BulkIssueResult:
        """
        Issue invoices for many orders with one gateway submission.

        Numbers are allocated per serial prefix in one transaction each,
        consecutively and in input order.  Every order is reconciled on its
        own; a failure of one never fails the others.
        """
        options = options or IssueOptions()
        failed: list[BulkFailure] = []
        staged: list[_StagedOrder] = []
        seen: set[str] = set()
        # order_number -> the batch item that claimed it first
        claimed: dict[str, InvoiceRecord] = {}

        for order_id in order_ids:
            if order_id in seen:
                continue
            seen.add(order_id)
            try:
                with LogContext.bind(order_id=order_id, actor_id=options.actor_id):
                    order = self._load_order(order_id)
                    first = claimed.get(order.order_number)
                    if first is not None:
                        raise DuplicateInvoiceError(
                            order_id, str(first.id), first.document_number, "order_number"
                        )
                    record, config = self._queue(order, options)
                    profile = None
                    if record.document_number is None:
                        profile = self._resolver.resolve(order, config, bulk=True)
            except InvoicingError as exc:
                failed.append(BulkFailure(order_id, exc.code, str(exc)))
                continue
            claimed[order.order_number] = record
            staged.append(_StagedOrder(order, record, config, profile))

        groups: dict[str, list[_StagedOrder]] = {}
        for item in staged:
            groups.setdefault(item.serial_prefix, []).append(item)

        prepared: list[_PreparedDocument] = []
        for prefix, group in groups.items():
            try:
                ready, skipped = self._prepare_block(prefix, group)
            except InvoicingError as exc:
                failed.extend(
                    BulkFailure(item.order.order_id, exc.code, str(exc), item.record.id)
                    for item in group
                )
                continue
            prepared.extend(ready)
            failed.extend(skipped)

        if not prepared:
            return self._bulk_result([], failed)

        try:
            results = self._gateway.issue_bulk([doc.payload for doc in prepared])
        except GatewayError as exc:
            logger.warning(
                "bulk_submission_failed",
                extra={"documents": len(prepared), "error_code": exc.code, "error": str(exc)},
            )
            for doc in prepared:
                self._record_failure(doc.record.id, str(exc), exc.response_body)
                failed.append(
                    BulkFailure(doc.staged.order.order_id, exc.code, str(exc), doc.record.id)
                )
            return self._bulk_result([], failed)

        by_number = {result.document_number: result for result in results}
        succeeded: list[InvoiceRecord] = []
        for doc in prepared:
            result = by_number.get(doc.record.document_number) or GatewayIssueResult(
                document_number=doc.record.document_number,
                success=False,
                error_message="Document missing from bulk response",
            )
            with LogContext.bind(invoice_id=doc.record.id, order_id=doc.record.order_id):
                try:
                    issued = self._apply_result(doc.record, result)
                except InvoicingError as exc:
                    failed.append(
                        BulkFailure(doc.staged.order.order_id, exc.code, str(exc), doc.record.id)
                    )
                    continue
                succeeded.append(issued)
                self._after_success(doc.staged.order, issued, options)

        return self._bulk_result(succeeded, failed)

    def _prepare_block(
        self,
        prefix: str,
        group: list[_StagedOrder],
    ) -> tuple[list[_PreparedDocument], list[BulkFailure]]:
        """Lock the group's invoices and number the unnumbered ones in input order."""
        prepared: list[_PreparedDocument] = []
        skipped: list[BulkFailure] = []
        try:
            with session_scope(self._session_factory) as session:
                locked = {
                    item.record.id: self._locked_invoice(session, item.record.id)
                    for item in sorted(group, key=lambda item: str(item.record.id))
                }

                live: list[_StagedOrder] = []
                for item in group:
                    invoice = locked[item.record.id]
                    try:
                        if invoice.status == InvoiceStatus.SUCCESS.value:
                            raise DuplicateInvoiceError(
                                invoice.order_id, str(invoice.id), invoice.document_number
                            )
                        self._check_order_number_free(session, invoice)
                    except DuplicateInvoiceError as exc:
                        skipped.append(
                            BulkFailure(item.order.order_id, exc.code, str(exc), invoice.id)
                        )
                        continue
                    live.append(item)

                fresh = [item for item in live if locked[item.record.id].document_number is None]
                if fresh:
                    allocator = SequenceAllocator(session, self._clock, self._lock_timeout_ms)
                    numbers = allocator.allocate_block(prefix, len(fresh))
                    for item, number in zip(fresh, numbers):
                        self._assign(
                            locked[item.record.id],
                            number,
                            item.profile,
                            item.config,
                            item.order,
                            bulk=True,
                        )

                payloads = []
                for item in live:
                    invoice = locked[item.record.id]
                    invoice.request_payload = self._payload_for(invoice, item.order)
                    payloads.append((item, invoice))
                session.flush()
                prepared = [
                    _PreparedDocument(item, invoice.to_dto(), invoice.request_payload)
                    for item, invoice in payloads
                ]
        except DBAPIError as exc:
            raise AllocationFailure(prefix, str(exc.orig or exc)) from exc

        logger.info(
            "bulk_block_prepared",
            extra={"serial_prefix": prefix, "documents": len(prepared), "skipped": len(skipped)},
        )
        return prepared, skipped

    def _bulk_result(
        self,
        succeeded: list[InvoiceRecord],
        failed: list[BulkFailure],
    ) -> BulkIssueResult:
        logger.info(
            "bulk_issue_completed",
            extra={"succeeded": len(succeeded), "failed": len(failed)},
        )
        return BulkIssueResult(succeeded=tuple(succeeded), failed=tuple(failed))

    # ------------------------------------------------------------------
    # Refunds
    # ------------------------------------------------------------------

    def issue_refund_voucher(
        self,
        returned: ReturnSnapshot,
        options: IssueOptions | None = None,
    ) -> InvoiceRecord:
        return self._refunds.issue_refund_voucher(returned, options)

    # ------------------------------------------------------------------
    # Pending sweep
    # ------------------------------------------------------------------

    def process_pending(
        self,
        limit: int = 50,
        options: IssueOptions | None = None,
    ) -> PendingRunSummary:
        """
        Issue queued PENDING sale invoices, oldest first.

        Returns a skipped summary when a run is already in progress.
        """
        if not self._pending_lock.acquire(blocking=False):
            logger.info("pending_run_skipped")
            return PendingRunSummary(skipped=True)

        try:
            with session_scope(self._session_factory) as session:
                order_ids = [
                    invoice.order_id for invoice in InvoiceSelector(session).pending_sales(limit)
                ]

            succeeded = failed = 0
            for order_id in order_ids:
                try:
                    self.issue_invoice(order_id, options)
                    succeeded += 1
                except InvoicingError as exc:
                    failed += 1
                    logger.warning(
                        "pending_invoice_failed",
                        extra={"order_id": order_id, "error_code": exc.code, "error": str(exc)},
                    )

            summary = PendingRunSummary(
                processed=len(order_ids), succeeded=succeeded, failed=failed
            )
            logger.info(
                "pending_run_completed",
                extra={"processed": summary.processed, "succeeded": succeeded, "failed": failed},
            )
            return summary
        finally:
            self._pending_lock.release()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_invoice(self, invoice_id: UUID) -> InvoiceRecord:
        with session_scope(self._session_factory) as session:
            invoice = InvoiceSelector(session).get(invoice_id)
            if invoice is None:
                raise InvoiceNotFoundError(str(invoice_id))
            return invoice.to_dto()

    def get_invoice_for_order(self, order_id: str) -> InvoiceRecord:
        with session_scope(self._session_factory) as session:
            invoice = InvoiceSelector(session).sale_for_order(order_id)
            if invoice is None:
                raise InvoiceNotFoundError(f"order {order_id}")
            return invoice.to_dto()

    def get_document_view(self, invoice_id: UUID) -> str:
        """Rendered view of an issued document, fetched from the gateway."""
        record = self.get_invoice(invoice_id)
        if record.status != InvoiceStatus.SUCCESS.value or not record.document_number:
            raise InvoiceNotFoundError(f"issued invoice {invoice_id}")
        return self._gateway.fetch_document_view(
            record.document_number,
            external_document_id=record.external_document_id,
            transaction_reference=record.transaction_reference,
        )

    def is_registered_recipient(self, tax_id: str | None) -> bool:
        """Fail-open registry check; dummy and short ids are never looked up."""
        candidate = lookup_candidate(tax_id, None)
        if candidate is None:
            return False
        return self._resolver.is_registered_recipient(candidate)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_order(self, order_id: str) -> OrderSnapshot:
        order = self._orders.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def _load_config(self, store_id: str) -> StoreConfigSnapshot:
        with session_scope(self._session_factory) as session:
            config = StoreConfigSelector(session).get(store_id)
        if config is None:
            raise StoreConfigNotFoundError(store_id)
        return config
