"""
IssuanceBase -- transaction phases shared by sales and refund issuance.

Responsibility:
    Owns the parts of an issuance that do not depend on the document kind:
    applying a fiscal profile and customer snapshot to an invoice row,
    submitting a payload through the gateway OUTSIDE any transaction,
    persisting the SUCCESS / ERROR outcome in a short transaction of its
    own, and running best-effort side effects.

Architecture position:
    Kernel > Services.  Base of InvoiceLifecycleManager and
    RefundVoucherService, which own commit/rollback through session_scope.

Invariants enforced:
    - No database lock is held across a gateway call.
    - Every gateway failure is persisted as ERROR (payload, response and
      error text kept) before it is surfaced as a GatewayError.
    - Side effects after SUCCESS never raise and never touch the invoice.
"""

from collections.abc import Callable
from dataclasses import replace
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from invoicing_kernel.db.engine import session_scope
from invoicing_kernel.domain.clock import Clock, SystemClock
from invoicing_kernel.domain.dtos import (
    CustomerSnapshot,
    DocumentHeader,
    DocumentType,
    FiscalProfile,
    GatewayIssueResult,
    InvoiceRecord,
    StoreConfigSnapshot,
)
from invoicing_kernel.domain.document_builder import format_address
from invoicing_kernel.exceptions import (
    GatewayAuthenticationError,
    GatewayError,
    InvoiceNotFoundError,
    InvoiceSubmissionError,
)
from invoicing_kernel.logging_config import get_logger
from invoicing_kernel.models.invoice import Invoice, InvoiceStatus
from invoicing_kernel.models.invoice_event import InvoiceAction
from invoicing_kernel.ports import DocumentGateway
from invoicing_kernel.selectors.invoice_selector import InvoiceSelector
from invoicing_kernel.services.invoice_history import InvoiceHistoryService
from invoicing_kernel.services.store_config_service import StoreConfigService

logger = get_logger("services.issuance")

_ERROR_TEXT_LIMIT = 4000

# Written together with the document number.  A replacement row for an
# ERROR invoice inherits all of them, so a number that already reached the
# gateway stays with its order.
NUMBERING_COLUMNS = (
    "document_number",
    "serial_prefix",
    "document_type",
    "party_code",
    "account_code",
    "customer_party_code",
    "tax_id",
    "is_export_exempt",
    "issued_in_bulk",
    "company_code",
    "branch_code",
    "transaction_code",
    "cost_center_code",
    "warehouse_code",
    "customer_first_name",
    "customer_last_name",
    "customer_email",
    "customer_address",
    "retry_count",
)


def numbering_of(invoice: Invoice) -> dict[str, Any]:
    return {column: getattr(invoice, column) for column in NUMBERING_COLUMNS}


def header_for(config: StoreConfigSnapshot, profile: FiscalProfile) -> DocumentHeader:
    """Header codes for a new document; export documents use their own transaction code."""
    transaction_code = config.transaction_code
    if profile.document_type == DocumentType.EXPORT_EXEMPT and config.export_transaction_code:
        transaction_code = config.export_transaction_code
    return DocumentHeader(
        company_code=config.company_code,
        branch_code=config.branch_code,
        transaction_code=transaction_code,
        cost_center_code=config.cost_center_code,
        warehouse_code=config.warehouse_code,
    )


def stored_header(invoice: Invoice) -> DocumentHeader:
    return DocumentHeader(
        company_code=invoice.company_code or "",
        branch_code=invoice.branch_code or "",
        transaction_code=invoice.transaction_code or "",
        cost_center_code=invoice.cost_center_code,
        warehouse_code=invoice.warehouse_code,
    )


def stored_profile(invoice: Invoice) -> FiscalProfile:
    """The classification an invoice was numbered under."""
    return FiscalProfile(
        document_type=DocumentType(invoice.document_type),
        serial_prefix=invoice.serial_prefix,
        party_code=invoice.party_code,
        account_code=invoice.account_code,
        is_export_exempt=bool(invoice.is_export_exempt),
        tax_id=invoice.tax_id or "",
        customer_party_code=invoice.customer_party_code,
    )


def stored_customer(invoice: Invoice, current: CustomerSnapshot) -> CustomerSnapshot:
    """Overlay the issuance-time snapshot on the order's current customer."""
    return replace(
        current,
        first_name=invoice.customer_first_name or "",
        last_name=invoice.customer_last_name or "",
        email=invoice.customer_email or "",
        address=invoice.customer_address or "",
        city="",
        district="",
    )


def apply_profile(
    invoice: Invoice,
    profile: FiscalProfile,
    header: DocumentHeader,
    customer: CustomerSnapshot,
) -> None:
    """Write classification, header codes and the customer snapshot."""
    invoice.serial_prefix = profile.serial_prefix
    invoice.document_type = profile.document_type.value
    invoice.party_code = profile.party_code
    invoice.account_code = profile.account_code
    invoice.customer_party_code = profile.customer_party_code
    invoice.tax_id = profile.tax_id
    invoice.is_export_exempt = profile.is_export_exempt
    invoice.company_code = header.company_code
    invoice.branch_code = header.branch_code
    invoice.transaction_code = header.transaction_code
    invoice.cost_center_code = header.cost_center_code
    invoice.warehouse_code = header.warehouse_code
    invoice.customer_first_name = customer.first_name
    invoice.customer_last_name = customer.last_name
    invoice.customer_email = customer.email
    invoice.customer_address = format_address(customer)


def _as_json_body(body: Any) -> dict[str, Any] | None:
    if body is None or isinstance(body, dict):
        return body
    return {"raw": body if isinstance(body, (list, str, int, float, bool)) else str(body)}


class IssuanceBase:
    """Shared collaborators and transaction phases."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        gateway: DocumentGateway,
        clock: Clock | None = None,
        lock_timeout_ms: int = 5000,
    ):
        self._session_factory = session_factory
        self._gateway = gateway
        self._clock = clock or SystemClock()
        self._lock_timeout_ms = lock_timeout_ms

    # ------------------------------------------------------------------
    # Submission and outcome
    # ------------------------------------------------------------------

    def _submit(
        self,
        record: InvoiceRecord,
        payload: dict[str, Any],
        *,
        refund: bool = False,
        success_action: InvoiceAction = InvoiceAction.ISSUED,
    ) -> InvoiceRecord:
        """
        Send ``payload`` and persist the outcome.

        Raises:
            GatewayAuthenticationError: credentials missing or rejected
                (invoice persisted as ERROR first).
            InvoiceSubmissionError: any other gateway failure or rejection
                (invoice persisted as ERROR first).
        """
        try:
            result = self._gateway.issue_document(
                payload,
                refund=refund,
                invoice_id=record.id,
                order_id=record.order_id,
            )
        except GatewayAuthenticationError as exc:
            self._record_failure(record.id, str(exc), exc.response_body)
            raise
        except GatewayError as exc:
            failed = self._record_failure(record.id, str(exc), exc.response_body)
            raise InvoiceSubmissionError(
                invoice_id=str(record.id),
                document_number=failed.document_number,
                reason=str(exc),
                status_code=exc.status_code,
                response_body=exc.response_body,
            ) from exc

        return self._apply_result(record, result, success_action)

    def _apply_result(
        self,
        record: InvoiceRecord,
        result: GatewayIssueResult,
        success_action: InvoiceAction = InvoiceAction.ISSUED,
    ) -> InvoiceRecord:
        """Persist a per-document gateway verdict; raise on rejection."""
        if result.success:
            return self._record_success(record.id, result, success_action)

        reason = result.error_message or "Gateway rejected the document"
        failed = self._record_failure(record.id, reason, result.response)
        raise InvoiceSubmissionError(
            invoice_id=str(record.id),
            document_number=failed.document_number,
            reason=reason,
            status_code=result.status_code,
            response_body=result.response,
        )

    def _record_success(
        self,
        invoice_id: UUID,
        result: GatewayIssueResult,
        action: InvoiceAction = InvoiceAction.ISSUED,
    ) -> InvoiceRecord:
        with session_scope(self._session_factory) as session:
            invoice = self._locked_invoice(session, invoice_id)
            from_status = invoice.status
            invoice.transition_to(InvoiceStatus.SUCCESS)
            invoice.external_document_id = result.external_document_id
            invoice.transaction_reference = result.transaction_reference
            invoice.response_payload = _as_json_body(result.response)
            invoice.error_message = None
            invoice.issued_at = self._clock.now()
            session.flush()
            record = invoice.to_dto()

        logger.info(
            "invoice_issued",
            extra={
                "invoice_id": record.id,
                "document_number": record.document_number,
                "document_type": record.document_type,
                "external_document_id": record.external_document_id,
            },
        )
        self._record_event(
            action,
            record,
            from_status=from_status,
            detail={"document_number": record.document_number},
        )
        return record

    def _record_failure(self, invoice_id: UUID, message: str, response_body: Any) -> InvoiceRecord:
        with session_scope(self._session_factory) as session:
            invoice = self._locked_invoice(session, invoice_id)
            from_status = invoice.status
            invoice.transition_to(InvoiceStatus.ERROR)
            invoice.error_message = (message or "Unknown error")[:_ERROR_TEXT_LIMIT]
            invoice.response_payload = _as_json_body(response_body)
            session.flush()
            record = invoice.to_dto()

        logger.warning(
            "invoice_submission_failed",
            extra={
                "invoice_id": record.id,
                "document_number": record.document_number,
                "error": record.error_message,
            },
        )
        self._record_event(
            InvoiceAction.FAILED,
            record,
            from_status=from_status,
            detail={"error": record.error_message},
        )
        return record

    def _locked_invoice(self, session: Session, invoice_id: UUID) -> Invoice:
        invoice = InvoiceSelector(session).get(invoice_id, for_update=True)
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return invoice

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    def _best_effort(self, step: str, record: InvoiceRecord, fn: Callable[[], Any]) -> bool:
        """Run a non-fatal side effect; failures are logged and absorbed."""
        try:
            fn()
            return True
        except Exception:
            logger.warning(
                "invoice_side_effect_failed",
                extra={"step": step, "invoice_id": record.id, "order_id": record.order_id},
                exc_info=True,
            )
            return False

    def _record_event(
        self,
        action: InvoiceAction,
        record: InvoiceRecord,
        *,
        from_status: str | None = None,
        detail: dict[str, Any] | None = None,
        actor_id: str | None = None,
    ) -> bool:
        def write():
            with session_scope(self._session_factory) as session:
                InvoiceHistoryService(session).record(
                    action=action,
                    order_id=record.order_id,
                    invoice_id=record.id,
                    from_status=from_status,
                    to_status=record.status,
                    detail=detail,
                    actor_id=actor_id,
                    occurred_at=self._clock.now(),
                )

        return self._best_effort(f"history_{action.value.lower()}", record, write)

    def _advance_party_seq(self, record: InvoiceRecord) -> bool:
        """Move the store's customer party counter past the code this document used."""
        if record.document_type != DocumentType.STANDARD_INVOICE.value or not record.customer_party_code:
            return False

        def advance():
            with session_scope(self._session_factory) as session:
                StoreConfigService(session).advance_customer_party_seq(
                    record.store_id, record.customer_party_code
                )

        return self._best_effort("customer_party_seq", record, advance)
