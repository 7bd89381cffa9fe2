"""
Append-only persistence tests.

Verifies:
- An issued (SUCCESS) invoice cannot be updated or deleted
- PENDING and ERROR invoices stay editable
- InvoiceEvent and GatewayCallLog rows are always immutable
- Gateway calls are recorded in their own transaction
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from invoicing_kernel.db.engine import session_scope
from invoicing_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from invoicing_kernel.domain.dtos import GatewayCall
from invoicing_kernel.exceptions import ImmutabilityViolationError
from invoicing_kernel.models.gateway_call_log import GatewayCallLog
from invoicing_kernel.models.invoice import Invoice, InvoiceStatus
from invoicing_kernel.models.invoice_event import InvoiceAction, InvoiceEvent
from invoicing_kernel.services.gateway_call_recorder import GatewayCallRecorder
from invoicing_kernel.services.invoice_history import InvoiceHistoryService

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def gateway_call(**overrides):
    values = dict(
        provider="uyumsoft",
        call_type="CREATE_INVOICE",
        endpoint="https://erp.example.test/UyumApi/v1/PSM/InsertInvoice",
        method="POST",
        request_body={"value": {"edocNo": "EAR2026000000001"}},
        response_body={"success": True},
        status_code=200,
        is_success=True,
        error_message=None,
        duration_ms=42,
        occurred_at=NOW,
        order_id="o-1",
    )
    values.update(overrides)
    return GatewayCall(**values)


class TestIssuedInvoiceImmutability:
    def test_update_rejected(self, session_factory, insert_numbered_invoice):
        issued = insert_numbered_invoice("EAR2026000000001", "EAR")

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            with session_scope(session_factory) as session:
                invoice = session.get(Invoice, issued.id)
                invoice.document_number = "EAR2026000000099"

        assert exc_info.value.entity_type == "Invoice"
        assert "document_number" in exc_info.value.reason

    def test_status_rollback_rejected(self, session_factory, insert_numbered_invoice):
        issued = insert_numbered_invoice("EAR2026000000001", "EAR")

        with pytest.raises(ImmutabilityViolationError):
            with session_scope(session_factory) as session:
                session.get(Invoice, issued.id).status = InvoiceStatus.ERROR.value

    def test_delete_rejected(self, session_factory, insert_numbered_invoice):
        issued = insert_numbered_invoice("EAR2026000000001", "EAR")

        with pytest.raises(ImmutabilityViolationError):
            with session_scope(session_factory) as session:
                session.delete(session.get(Invoice, issued.id))

        with session_scope(session_factory) as session:
            assert session.get(Invoice, issued.id) is not None

    @pytest.mark.parametrize("status", [InvoiceStatus.PENDING.value, InvoiceStatus.ERROR.value])
    def test_unissued_invoice_editable(self, session_factory, insert_numbered_invoice, status):
        draft = insert_numbered_invoice("EAR2026000000001", "EAR", status=status)

        with session_scope(session_factory) as session:
            session.get(Invoice, draft.id).error_message = "edited"
        with session_scope(session_factory) as session:
            session.delete(session.get(Invoice, draft.id))

    def test_listeners_can_be_disabled(self, session_factory, insert_numbered_invoice):
        issued = insert_numbered_invoice("EAR2026000000001", "EAR")
        unregister_immutability_listeners()
        try:
            with session_scope(session_factory) as session:
                session.get(Invoice, issued.id).error_message = "maintenance"
        finally:
            register_immutability_listeners()


class TestInvoiceEventImmutability:
    def _event(self, session_factory):
        with session_scope(session_factory) as session:
            event = InvoiceHistoryService(session).record(
                action=InvoiceAction.QUEUED, order_id="o-1", occurred_at=NOW, to_status="PENDING"
            )
        return event.id

    def test_update_rejected(self, session_factory):
        event_id = self._event(session_factory)

        with pytest.raises(ImmutabilityViolationError):
            with session_scope(session_factory) as session:
                session.get(InvoiceEvent, event_id).action = "ISSUED"

    def test_delete_rejected(self, session_factory):
        event_id = self._event(session_factory)

        with pytest.raises(ImmutabilityViolationError):
            with session_scope(session_factory) as session:
                session.delete(session.get(InvoiceEvent, event_id))


class TestGatewayCallLog:
    def test_recorder_writes_one_row(self, session_factory):
        GatewayCallRecorder(session_factory)(gateway_call())

        with session_scope(session_factory) as session:
            row = session.execute(select(GatewayCallLog)).scalar_one()
            assert row.call_type == "CREATE_INVOICE"
            assert row.request_body == {"value": {"edocNo": "EAR2026000000001"}}
            assert row.status_code == 200
            assert row.is_success
            assert row.order_id == "o-1"

    def test_rows_are_append_only(self, session_factory):
        GatewayCallRecorder(session_factory)(gateway_call())

        with pytest.raises(ImmutabilityViolationError):
            with session_scope(session_factory) as session:
                session.execute(select(GatewayCallLog)).scalar_one().status_code = 500
        with pytest.raises(ImmutabilityViolationError):
            with session_scope(session_factory) as session:
                session.delete(session.execute(select(GatewayCallLog)).scalar_one())

    def test_recorder_failure_is_logged_not_raised(self, session_factory, captured_logs):
        GatewayCallRecorder(session_factory)(gateway_call(request_body={"unserializable": object()}))

        assert any(r["message"] == "gateway_call_record_failed" for r in captured_logs())
        with session_scope(session_factory) as session:
            assert session.execute(select(GatewayCallLog)).scalars().all() == []

    def test_each_call_is_its_own_row(self, session_factory):
        recorder = GatewayCallRecorder(session_factory)
        recorder(gateway_call(call_type="LOGIN", request_body={"userName": "u", "password": "[REDACTED]"}))
        recorder(gateway_call())

        with session_scope(session_factory) as session:
            types = sorted(session.execute(select(GatewayCallLog.call_type)).scalars())
        assert types == ["CREATE_INVOICE", "LOGIN"]
