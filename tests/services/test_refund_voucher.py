"""
Tests for return-driven expense vouchers.

Covers profile inheritance from the issued sales invoice, classification
when no sale exists, one voucher per return, and resubmission under the
number already allocated.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from invoicing_kernel.db.engine import session_scope
from invoicing_kernel.exceptions import (
    DuplicateInvoiceError,
    GatewayTransportError,
    InvoiceSubmissionError,
    RetryNotAllowedError,
    StoreConfigNotFoundError,
)
from invoicing_kernel.models.invoice_event import InvoiceEvent
from invoicing_kernel.models.store_fiscal_config import StoreFiscalConfig
from invoicing_kernel.services.invoice_lifecycle import InvoiceLifecycleManager
from tests.conftest import REGISTERED_TAX_ID, make_customer, make_order, make_return


def party_seq(session_factory):
    with session_scope(session_factory) as session:
        return session.execute(select(StoreFiscalConfig)).scalar_one().next_customer_party_seq


class TestInheritedProfile:
    def test_voucher_follows_receipt_sale(self, manager, orders, gateway):
        orders.add(make_order())
        manager.issue_invoice("o-1")

        voucher = manager.issue_refund_voucher(make_return())

        assert voucher.status == "SUCCESS"
        assert voucher.document_kind == "REFUND"
        assert voucher.document_number == "ERA2026000000001"
        assert voucher.document_type == "SIMPLIFIED_RECEIPT"
        assert voucher.return_id == "r-1"
        assert voucher.slot_key == "refund:r-1"
        assert voucher.party_code == "120.90"
        assert voucher.total_amount == Decimal("54.00")
        assert gateway.refund_flags == [False, True]

    def test_voucher_follows_standard_sale(self, manager, orders, session_factory):
        customer = make_customer(national_id=REGISTERED_TAX_ID, company_name="Acme Ltd")
        orders.add(make_order(customer=customer))
        sale = manager.issue_invoice("o-1")

        voucher = manager.issue_refund_voucher(make_return(customer=customer))

        assert voucher.document_number == "EIA2026000000001"
        assert voucher.document_type == "STANDARD_INVOICE"
        assert voucher.customer_party_code == sale.customer_party_code
        assert voucher.request_payload["value"]["cardCode"] == "120.C.1"
        # The sale already moved the counter past 120.C.1.
        assert party_seq(session_factory) == 2

    def test_payload_references_return(self, manager, orders):
        orders.add(make_order())
        manager.issue_invoice("o-1")

        voucher = manager.issue_refund_voucher(make_return())

        value = voucher.request_payload["value"]
        assert value["gnlNote3"] == "RETURN r-1"
        assert value["voucherSerial"] == "ERA"
        assert [d["unitPrice"] for d in value["details"]] == ["54.00"]

    def test_history_records_refund(self, manager, orders, session_factory):
        orders.add(make_order())
        manager.issue_invoice("o-1")

        voucher = manager.issue_refund_voucher(make_return())

        with session_scope(session_factory) as session:
            actions = session.execute(
                select(InvoiceEvent.action).where(InvoiceEvent.invoice_id == voucher.id)
            ).scalars().all()
        assert actions == ["REFUND_ISSUED"]


class TestWithoutSale:
    def test_registered_customer_classified_afresh(self, manager, party_registrar, session_factory):
        returned = make_return(customer=make_customer(national_id=REGISTERED_TAX_ID, company_name="Acme Ltd"))

        voucher = manager.issue_refund_voucher(returned)

        assert voucher.document_number == "EIA2026000000001"
        assert voucher.document_type == "STANDARD_INVOICE"
        assert [p.card_code for p in party_registrar.parties] == ["120.C.1"]
        assert party_seq(session_factory) == 2

    def test_unregistered_customer_gets_receipt_refund_serial(self, manager):
        voucher = manager.issue_refund_voucher(make_return())

        assert voucher.document_number == "ERA2026000000001"

    def test_uses_current_order_when_available(self, manager, orders, registry):
        orders.add(make_order(customer=make_customer(national_id=REGISTERED_TAX_ID)))

        voucher = manager.issue_refund_voucher(make_return())

        assert voucher.document_type == "STANDARD_INVOICE"
        assert registry.lookups == [REGISTERED_TAX_ID]


class TestOneVoucherPerReturn:
    def test_duplicate_return_rejected(self, manager, gateway):
        manager.issue_refund_voucher(make_return())

        with pytest.raises(DuplicateInvoiceError) as exc_info:
            manager.issue_refund_voucher(make_return())

        assert exc_info.value.matched_on == "return_id"
        assert len(gateway.issued) == 1

    def test_separate_returns_get_separate_vouchers(self, manager):
        first = manager.issue_refund_voucher(make_return("r-1"))
        second = manager.issue_refund_voucher(make_return("r-2"))

        assert (first.document_number, second.document_number) == (
            "ERA2026000000001",
            "ERA2026000000002",
        )

    def test_failed_voucher_reissued_under_same_number(self, manager, gateway):
        gateway.script.append(GatewayTransportError("HTTP 500: boom", status_code=500))
        with pytest.raises(InvoiceSubmissionError) as exc_info:
            manager.issue_refund_voucher(make_return())
        assert exc_info.value.document_number == "ERA2026000000001"

        voucher = manager.issue_refund_voucher(make_return())

        assert voucher.status == "SUCCESS"
        assert voucher.document_number == "ERA2026000000001"
        assert voucher.retry_count == 1
        assert gateway.issued_numbers == ["ERA2026000000001", "ERA2026000000001"]

    def test_reissue_stops_at_retry_limit(self, session_factory, orders, gateway, registry, clock, store):
        manager = InvoiceLifecycleManager(session_factory, orders, gateway, registry, clock=clock, max_retries=1)
        for _ in range(2):
            gateway.script.append(GatewayTransportError("HTTP 500: boom", status_code=500))
            with pytest.raises(InvoiceSubmissionError):
                manager.issue_refund_voucher(make_return())

        with pytest.raises(RetryNotAllowedError) as exc_info:
            manager.issue_refund_voucher(make_return())

        assert "retry limit" in exc_info.value.reason
        assert gateway.issued_numbers == ["ERA2026000000001", "ERA2026000000001"]
        failed = manager.get_invoice(exc_info.value.invoice_id)
        assert failed.status == "ERROR"
        assert failed.retry_count == 1

    def test_retry_resends_stored_payload(self, manager, gateway):
        gateway.script.append(GatewayTransportError("HTTP 500: boom", status_code=500))
        with pytest.raises(InvoiceSubmissionError) as exc_info:
            manager.issue_refund_voucher(make_return())
        failed = manager.get_invoice(exc_info.value.invoice_id)

        voucher = manager.retry_invoice(failed.id)

        assert voucher.status == "SUCCESS"
        assert gateway.issued[-1] == failed.request_payload
        assert gateway.refund_flags == [True, True]


class TestRejections:
    def test_store_without_config(self, manager, gateway):
        with pytest.raises(StoreConfigNotFoundError):
            manager.issue_refund_voucher(make_return(store_id="store-unknown"))
        assert gateway.issued == []

    def test_return_without_lines(self, manager):
        with pytest.raises(ValueError):
            manager.issue_refund_voucher(make_return(lines=()))
