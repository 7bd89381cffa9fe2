"""
Tests for InvoiceLifecycleManager.issue_bulk.

A bulk run numbers each serial group as one consecutive block in input
order, submits a single request, and reconciles every order on its own.
"""

from unittest.mock import patch

from invoicing_kernel.exceptions import GatewayTransportError
from invoicing_kernel.services.invoice_lifecycle import InvoiceLifecycleManager
from tests.conftest import REGISTERED_TAX_ID, FakeGateway, make_customer, make_order


def add_orders(orders, *order_ids, **overrides):
    for order_id in order_ids:
        orders.add(make_order(order_id, **overrides))


def issuing_first_on_resolve(manager, order_id):
    """Patch the resolver so its first call issues ``order_id`` before classifying."""
    original = manager._resolver.resolve
    fired = []

    def resolve(order, config, bulk=False):
        if not fired:
            fired.append(order.order_id)
            manager.issue_invoice(order_id)
        return original(order, config, bulk)

    return patch.object(manager._resolver, "resolve", side_effect=resolve)


class TestBulkNumbering:
    def test_consecutive_numbers_in_input_order(self, manager, orders, gateway):
        add_orders(orders, "o-3", "o-1", "o-2")

        result = manager.issue_bulk(["o-3", "o-1", "o-2"])

        assert result.all_succeeded
        assert [(r.order_id, r.document_number) for r in result.succeeded] == [
            ("o-3", "EEA2026000000001"),
            ("o-1", "EEA2026000000002"),
            ("o-2", "EEA2026000000003"),
        ]
        assert all(r.issued_in_bulk for r in result.succeeded)
        assert len(gateway.bulk_batches) == 1
        assert gateway.issued == []

    def test_tiers_numbered_in_their_own_series(self, manager, orders, gateway):
        add_orders(orders, "o-1", "o-3")
        orders.add(make_order("o-2", customer=make_customer(national_id=REGISTERED_TAX_ID)))

        result = manager.issue_bulk(["o-1", "o-2", "o-3"])

        numbers = {r.order_id: r.document_number for r in result.succeeded}
        assert numbers == {
            "o-1": "EEA2026000000001",
            "o-2": "EMB2026000000001",
            "o-3": "EEA2026000000002",
        }
        assert len(gateway.bulk_batches[0]) == 3

    def test_continues_after_single_issues(self, manager, orders):
        add_orders(orders, "o-1", "o-2", "o-3")
        manager.issue_bulk(["o-1"])

        result = manager.issue_bulk(["o-2", "o-3"])

        assert [r.document_number for r in result.succeeded] == ["EEA2026000000002", "EEA2026000000003"]


class TestBulkReconciliation:
    """Partial success is a normal outcome."""

    def test_partial_rejection(self, manager, orders, gateway):
        add_orders(orders, "o-1", "o-2", "o-3")
        gateway.bulk_rejections = {"EEA2026000000002"}

        result = manager.issue_bulk(["o-1", "o-2", "o-3"])

        assert [r.order_id for r in result.succeeded] == ["o-1", "o-3"]
        assert len(result.failed) == 1
        failure = result.failed[0]
        assert failure.order_id == "o-2"
        assert failure.error_code == "INVOICE_SUBMISSION_FAILED"
        rejected = manager.get_invoice(failure.invoice_id)
        assert rejected.status == "ERROR"
        assert rejected.document_number == "EEA2026000000002"
        assert rejected.error_message == "Invalid tax number"

    def test_rejected_item_can_be_retried(self, manager, orders, gateway):
        add_orders(orders, "o-1", "o-2")
        gateway.bulk_rejections = {"EEA2026000000002"}
        failure = manager.issue_bulk(["o-1", "o-2"]).failed[0]

        issued = manager.retry_invoice(failure.invoice_id)

        assert issued.status == "SUCCESS"
        assert issued.document_number == "EEA2026000000002"
        assert gateway.issued_numbers == ["EEA2026000000002"]

    def test_missing_order_fails_alone(self, manager, orders):
        add_orders(orders, "o-1")

        result = manager.issue_bulk(["o-1", "o-404"])

        assert [r.order_id for r in result.succeeded] == ["o-1"]
        assert [(f.order_id, f.error_code) for f in result.failed] == [("o-404", "ORDER_NOT_FOUND")]

    def test_already_invoiced_order_reported_as_duplicate(self, manager, orders):
        add_orders(orders, "o-1", "o-2")
        manager.issue_invoice("o-1")

        result = manager.issue_bulk(["o-1", "o-2"])

        assert [(f.order_id, f.error_code) for f in result.failed] == [("o-1", "DUPLICATE_INVOICE")]
        assert [r.document_number for r in result.succeeded] == ["EEA2026000000001"]

    def test_repeated_ids_submitted_once(self, manager, orders, gateway):
        add_orders(orders, "o-1", "o-2")

        result = manager.issue_bulk(["o-1", "o-1", "o-2"])

        assert len(result.succeeded) == 2
        assert len(gateway.bulk_batches[0]) == 2

    def test_shared_order_number_submitted_once(self, manager, orders, gateway):
        orders.add(make_order("o-1"))
        orders.add(make_order("o-1-reimported", order_number="N-o-1"))

        result = manager.issue_bulk(["o-1", "o-1-reimported"])

        assert [r.order_id for r in result.succeeded] == ["o-1"]
        assert [(f.order_id, f.error_code) for f in result.failed] == [
            ("o-1-reimported", "DUPLICATE_INVOICE")
        ]
        assert len(gateway.bulk_batches[0]) == 1

    def test_order_number_issued_after_staging_is_skipped(self, manager, orders, gateway):
        orders.add(make_order("o-1"))
        orders.add(make_order("o-1-reimported", order_number="N-o-1"))

        with issuing_first_on_resolve(manager, "o-1"):
            result = manager.issue_bulk(["o-1-reimported"])

        assert result.succeeded == ()
        assert [(f.order_id, f.error_code) for f in result.failed] == [
            ("o-1-reimported", "DUPLICATE_INVOICE")
        ]
        assert gateway.bulk_batches == []
        assert manager.get_invoice_for_order("o-1-reimported").document_number is None

    def test_gateway_failure_fails_every_document(self, manager, orders, gateway):
        add_orders(orders, "o-1", "o-2")
        gateway.bulk_error = GatewayTransportError("HTTP 503: maintenance", status_code=503)

        result = manager.issue_bulk(["o-1", "o-2"])

        assert result.succeeded == ()
        assert [(f.order_id, f.error_code) for f in result.failed] == [
            ("o-1", "GATEWAY_TRANSPORT"),
            ("o-2", "GATEWAY_TRANSPORT"),
        ]
        for failure in result.failed:
            record = manager.get_invoice(failure.invoice_id)
            assert record.status == "ERROR"
            assert record.document_number is not None
            assert "503" in record.error_message

    def test_document_missing_from_response(self, session_factory, orders, registry, clock, store):
        class DroppingGateway(FakeGateway):
            def issue_bulk(self, payloads):
                return super().issue_bulk(payloads)[:-1]

        manager = InvoiceLifecycleManager(session_factory, orders, DroppingGateway(), registry, clock=clock)
        add_orders(orders, "o-1", "o-2")

        result = manager.issue_bulk(["o-1", "o-2"])

        assert [r.order_id for r in result.succeeded] == ["o-1"]
        assert result.failed[0].order_id == "o-2"
        assert manager.get_invoice(result.failed[0].invoice_id).error_message == (
            "Document missing from bulk response"
        )

    def test_side_effects_per_success(self, manager, orders, notifier):
        add_orders(orders, "o-1", "o-2")

        manager.issue_bulk(["o-1", "o-2"])

        assert [order_id for order_id, _ in orders.status_updates] == ["o-1", "o-2"]
        assert [order_id for order_id, _ in notifier.notified] == ["o-1", "o-2"]

    def test_nothing_to_submit(self, manager, gateway):
        result = manager.issue_bulk(["o-404"])

        assert result.succeeded == ()
        assert gateway.bulk_batches == []
