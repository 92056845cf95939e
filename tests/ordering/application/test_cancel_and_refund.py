"""Tests for customer/admin cancellation, refunds and fulfillment transitions."""

import json

import pytest
from inventory.ledger.records import TransactionType
from inventory.reservation.reservation import ReservationStatus
from ordering.order.order import OrderStatus
from ordering.order.payment import RecordPayment
from payments.payment.payment import PaymentStatus
from protean.utils.globals import current_domain
from shared.errors import InvalidTransitionError, OrderNotFoundError, RefundRequiredError


@pytest.fixture()
def order(saga, stocked):
    return saga.place_order("user-001", "key-001", items=[{"product_id": "prod-001", "quantity": 2}])


@pytest.fixture()
def confirmed(saga, order, deliver_webhook):
    deliver_webhook(order)
    return saga.get_order(str(order.id))


def _capture_without_confirming(saga, order, gateway):
    """Capture the payment and record it on the order, stopping at PAID."""
    raw = json.dumps({"payment_id": str(order.payment_id), "status": "SUCCESS", "provider_transaction_id": "txn-001"})
    saga.payments.handle_webhook(raw, gateway.sign(raw))
    current_domain.process(
        RecordPayment(
            order_id=str(order.id),
            payment_id=str(order.payment_id),
            provider_transaction_id="txn-001",
            amount=order.total_amount,
        ),
        asynchronous=False,
    )
    return saga.get_order(str(order.id))


class TestCancelBeforePayment:
    def test_cancel_paying_order(self, saga, order, coordinator, stocked):
        cancelled = saga.cancel_order(str(order.id), reason="changed mind")

        assert cancelled.status == OrderStatus.CANCELLED.value
        assert cancelled.cancelled_by == "Customer"
        assert coordinator.get(str(order.reservation_id)).status == ReservationStatus.RELEASED
        assert stocked.get_stock("prod-001").available_quantity == 10

    def test_pending_payment_is_cancelled(self, saga, order, gateway):
        saga.cancel_order(str(order.id), reason="changed mind")
        assert saga.payments.get(str(order.payment_id)).status == PaymentStatus.CANCELLED.value
        assert len(gateway.calls_to("cancel_payment_intent")) == 1

    def test_admin_cancellation_records_actor(self, saga, order):
        cancelled = saga.cancel_order(str(order.id), reason="fraud check", cancelled_by="Admin")
        assert cancelled.cancelled_by == "Admin"
        assert cancelled.cancellation_reason == "fraud check"

    def test_cancel_twice_rejected(self, saga, order):
        saga.cancel_order(str(order.id), reason="changed mind")
        with pytest.raises(InvalidTransitionError):
            saga.cancel_order(str(order.id), reason="again")

    def test_cancel_unknown_order(self, saga):
        with pytest.raises(OrderNotFoundError):
            saga.cancel_order("missing", reason="nope")


class TestCancelAfterPayment:
    def test_confirmed_order_is_refunded_and_restocked(self, saga, confirmed, gateway, stocked):
        cancelled = saga.cancel_order(str(confirmed.id), reason="changed mind")

        assert cancelled.status == OrderStatus.CANCELLED.value
        assert saga.payments.get(str(confirmed.payment_id)).status == PaymentStatus.REFUNDED.value
        record = stocked.get_stock("prod-001")
        assert (record.available_quantity, record.reserved_quantity) == (10, 0)
        restocks = stocked.transactions(product_id="prod-001", reference_id=str(confirmed.id))
        assert [t.type for t in restocks] == [TransactionType.RESTOCK]

    def test_shipped_order_is_refunded_without_restock(self, saga, confirmed, stocked):
        saga.ship_order(str(confirmed.id))

        cancelled = saga.cancel_order(str(confirmed.id), reason="returned")

        assert cancelled.status == OrderStatus.CANCELLED.value
        assert saga.payments.get(str(confirmed.payment_id)).status == PaymentStatus.REFUNDED.value
        assert stocked.get_stock("prod-001").available_quantity == 8

    def test_delivered_order_cannot_be_cancelled(self, saga, confirmed):
        saga.ship_order(str(confirmed.id))
        saga.deliver_order(str(confirmed.id))
        with pytest.raises(InvalidTransitionError):
            saga.cancel_order(str(confirmed.id), reason="too late")

    def test_paid_order_needs_refund(self, saga, order, gateway):
        _capture_without_confirming(saga, order, gateway)

        with pytest.raises(RefundRequiredError):
            saga.cancel_order(str(order.id), reason="changed mind")


class TestRefundOrder:
    def test_refund_paid_order(self, saga, order, gateway, coordinator, stocked):
        paid = _capture_without_confirming(saga, order, gateway)
        assert paid.status == OrderStatus.PAID.value

        refunded = saga.refund_order(str(order.id), reason="customer request")

        assert refunded.status == OrderStatus.REFUNDED.value
        assert refunded.refund_reason == "customer request"
        assert saga.payments.get(str(order.payment_id)).status == PaymentStatus.REFUNDED.value
        assert coordinator.get(str(order.reservation_id)).status == ReservationStatus.RELEASED
        assert stocked.get_stock("prod-001").available_quantity == 10

    def test_refund_only_from_paid(self, saga, confirmed):
        with pytest.raises(InvalidTransitionError):
            saga.refund_order(str(confirmed.id), reason="customer request")


class TestFulfillment:
    def test_ship_and_deliver(self, saga, confirmed):
        assert saga.ship_order(str(confirmed.id)).status == OrderStatus.SHIPPED.value
        assert saga.deliver_order(str(confirmed.id)).status == OrderStatus.DELIVERED.value

    def test_cannot_ship_unpaid_order(self, saga, order):
        with pytest.raises(InvalidTransitionError):
            saga.ship_order(str(order.id))
        assert saga.get_order(str(order.id)).status == OrderStatus.PAYING.value

    def test_cannot_deliver_before_shipping(self, saga, confirmed):
        with pytest.raises(InvalidTransitionError):
            saga.deliver_order(str(confirmed.id))
