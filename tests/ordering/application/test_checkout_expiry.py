"""Tests for the checkout hold timeout and its race with late payments."""

from datetime import UTC, datetime, timedelta

import pytest
from inventory.reservation.reservation import ReservationStatus
from ordering.checkout.expiry import CheckoutSweeper
from ordering.order.order import OrderStatus
from payments.payment.payment import PaymentStatus


@pytest.fixture()
def order(saga, stocked):
    return saga.place_order("user-001", "key-001", items=[{"product_id": "prod-001", "quantity": 2}])


@pytest.fixture()
def sweeper(saga):
    return CheckoutSweeper(saga)


def _minutes_from_now(minutes):
    return datetime.now(UTC) + timedelta(minutes=minutes)


class TestHoldTimeout:
    def test_live_order_untouched(self, saga, order, sweeper):
        result = sweeper.run(_minutes_from_now(5))
        assert result.cancelled_orders == []
        assert saga.get_order(str(order.id)).status == OrderStatus.PAYING.value

    def test_expired_order_cancelled(self, saga, order, sweeper, coordinator, stocked):
        result = sweeper.run(_minutes_from_now(16))

        assert result.cancelled_orders == [str(order.id)]
        expired = saga.get_order(str(order.id))
        assert expired.status == OrderStatus.CANCELLED.value
        assert expired.cancellation_reason == "reservation_expired"
        assert expired.cancelled_by == "System"
        reservation = coordinator.get(str(order.reservation_id))
        assert reservation.status == ReservationStatus.RELEASED
        assert reservation.release_reason == "timeout"
        assert stocked.get_stock("prod-001").available_quantity == 10

    def test_pending_payment_cancelled_with_provider(self, saga, order, sweeper, gateway):
        sweeper.run(_minutes_from_now(16))
        assert saga.payments.get(str(order.payment_id)).status == PaymentStatus.CANCELLED.value
        assert len(gateway.calls_to("cancel_payment_intent")) == 1

    def test_confirmed_order_never_expires(self, saga, order, sweeper, deliver_webhook):
        deliver_webhook(order)
        result = sweeper.run(_minutes_from_now(60))
        assert result.cancelled_orders == []
        assert saga.get_order(str(order.id)).status == OrderStatus.CONFIRMED.value

    def test_result_serializes(self, order, sweeper):
        data = sweeper.run(_minutes_from_now(16)).to_dict()
        assert data["cancelled_orders"] == [str(order.id)]
        assert data["released"] == [str(order.reservation_id)]
        assert data["settled"] == []


class TestLatePaymentRace:
    def test_payment_at_minute_21_is_refunded(self, saga, order, sweeper, deliver_webhook, stocked):
        sweeper.run(_minutes_from_now(16))

        result = deliver_webhook(order)

        assert result["action"] == "refunded_late_capture"
        assert saga.get_order(str(order.id)).status == OrderStatus.CANCELLED.value
        assert saga.payments.get(str(order.payment_id)).status == PaymentStatus.REFUNDED.value
        record = stocked.get_stock("prod-001")
        assert (record.available_quantity, record.reserved_quantity) == (10, 0)

    def test_payment_before_sweep_wins(self, saga, order, sweeper, deliver_webhook, stocked):
        deliver_webhook(order)

        result = sweeper.run(_minutes_from_now(16))

        assert result.reservations.released == []
        assert saga.get_order(str(order.id)).status == OrderStatus.CONFIRMED.value
        assert stocked.get_stock("prod-001").available_quantity == 8


class TestExpireOrder:
    def test_unknown_order(self, saga):
        assert saga.expire_order("missing") is None

    def test_only_orders_awaiting_payment(self, saga, order, deliver_webhook):
        deliver_webhook(order)
        assert saga.expire_order(str(order.id)) is None
        assert saga.get_order(str(order.id)).status == OrderStatus.CONFIRMED.value


class TestReconcile:
    def test_reconcile_settles_and_expires(self, saga, order, sweeper, coordinator, stocked):
        rid = str(order.reservation_id)
        coordinator.store.transition(rid, ReservationStatus.HELD, ReservationStatus.RELEASED, release_reason="timeout")

        result = sweeper.run(reconcile=True)

        assert [r.reservation_id for r in result.reservations.settled] == [rid]
        assert stocked.get_stock("prod-001").available_quantity == 10
        assert saga.get_order(str(order.id)).status == OrderStatus.CANCELLED.value

    def test_release_without_cancel_is_repaired(self, saga, order, sweeper, coordinator):
        # Hold released, then the process stopped before cancelling the order
        coordinator.release(str(order.reservation_id), reason="timeout")

        assert sweeper.run().cancelled_orders == []
        result = sweeper.run(reconcile=True)

        assert result.cancelled_orders == [str(order.id)]
        assert saga.get_order(str(order.id)).status == OrderStatus.CANCELLED.value

    def test_provider_outage_during_sweep_is_repaired(self, saga, order, sweeper, gateway, stocked):
        cancel_intent = gateway.cancel_payment_intent
        outages = []

        def _unreachable_once(provider_payment_id):
            if not outages:
                outages.append(provider_payment_id)
                raise ConnectionError("provider unreachable")
            return cancel_intent(provider_payment_id)

        gateway.cancel_payment_intent = _unreachable_once

        first = sweeper.run(_minutes_from_now(16))

        assert first.cancelled_orders == []
        assert [r.reservation_id for r in first.reservations.released] == [str(order.reservation_id)]
        assert saga.get_order(str(order.id)).status == OrderStatus.PAYING.value

        result = sweeper.run(reconcile=True)

        assert result.cancelled_orders == [str(order.id)]
        assert saga.get_order(str(order.id)).status == OrderStatus.CANCELLED.value
        assert saga.payments.get(str(order.payment_id)).status == PaymentStatus.CANCELLED.value
        assert stocked.get_stock("prod-001").available_quantity == 10

    def test_reconcile_leaves_finished_orders_alone(self, saga, order, sweeper):
        sweeper.run(_minutes_from_now(16))
        assert sweeper.run(reconcile=True).cancelled_orders == []

    def test_one_failing_order_does_not_stop_the_sweep(self, saga, stocked, sweeper, monkeypatch):
        first = saga.place_order("user-001", "key-001", items=[{"product_id": "prod-001", "quantity": 1}])
        second = saga.place_order("user-001", "key-002", items=[{"product_id": "prod-002", "quantity": 1}])
        expire_order = saga.expire_order

        def _failing_for_first(order_id):
            if order_id == str(first.id):
                raise RuntimeError("storage unavailable")
            return expire_order(order_id)

        monkeypatch.setattr(saga, "expire_order", _failing_for_first)

        result = sweeper.run(_minutes_from_now(16))

        assert result.cancelled_orders == [str(second.id)]
        assert saga.get_order(str(first.id)).status == OrderStatus.PAYING.value
