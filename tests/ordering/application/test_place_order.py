"""Tests for PlaceOrder: the CREATED → RESERVING → RESERVED → PAYING leg."""

import pytest
from inventory.reservation.reservation import ReservationStatus
from ordering.order.order import OrderStatus
from protean.exceptions import ValidationError
from shared.errors import (
    CartNotFoundError,
    InsufficientStockError,
    OrderNotFoundError,
    PaymentGatewayError,
)


def _place(saga, key="key-001", items=None, **kwargs):
    return saga.place_order(
        "user-001",
        key,
        items=items or [{"product_id": "prod-001", "quantity": 2}, {"product_id": "prod-002", "quantity": 1}],
        **kwargs,
    )


class TestPlaceOrder:
    def test_order_ends_up_paying(self, saga, stocked):
        order = _place(saga)
        assert order.status == OrderStatus.PAYING.value
        assert order.reservation_id
        assert order.payment_id

    def test_prices_snapshotted_from_catalogue(self, saga, stocked):
        order = _place(saga)
        assert order.total_amount == 45.0
        assert {i.product_id: (i.name, i.unit_price) for i in order.items} == {
            "prod-001": ("Widget", 10.0),
            "prod-002": ("Gadget", 25.0),
        }

    def test_later_price_change_does_not_touch_order(self, saga, stocked, catalogue):
        order = _place(saga)
        catalogue.set_price("prod-001", 99.0)
        assert saga.get_order(str(order.id)).total_amount == 45.0

    def test_stock_is_held(self, saga, stocked, coordinator):
        order = _place(saga)
        reservation = coordinator.get(str(order.reservation_id))
        assert reservation.status == ReservationStatus.HELD
        assert reservation.order_id == str(order.id)
        record = stocked.get_stock("prod-001")
        assert (record.available_quantity, record.reserved_quantity) == (8, 2)

    def test_payment_initiated_for_total(self, saga, stocked, gateway):
        order = _place(saga)
        [call] = gateway.calls_to("create_payment_intent")
        assert call["amount"] == 45.0
        assert call["order_id"] == str(order.id)
        assert call["idempotency_key"] == f"payment:{order.id}"

    def test_history_records_each_step(self, saga, stocked):
        order = _place(saga)
        assert [h["to_status"] for h in saga.get_history(str(order.id))] == [
            "CREATED",
            "RESERVING",
            "RESERVED",
            "PAYING",
        ]

    def test_duplicate_lines_merge(self, saga, stocked):
        order = _place(
            saga,
            items=[{"product_id": "prod-001", "quantity": 1}, {"product_id": "prod-001", "quantity": 2}],
        )
        [item] = order.items
        assert item.quantity == 3


class TestPlaceOrderValidation:
    def test_requires_user(self, saga):
        with pytest.raises(ValidationError):
            saga.place_order("", "key-001", items=[{"product_id": "prod-001", "quantity": 1}])

    def test_requires_idempotency_key(self, saga):
        with pytest.raises(ValidationError):
            saga.place_order("user-001", "", items=[{"product_id": "prod-001", "quantity": 1}])

    def test_requires_items_or_cart(self, saga):
        with pytest.raises(ValidationError):
            saga.place_order("user-001", "key-001")

    def test_unknown_product_creates_no_order(self, saga, stocked, gateway):
        with pytest.raises(ValidationError):
            _place(saga, items=[{"product_id": "nope", "quantity": 1}])
        assert gateway.calls == []

    def test_validation_failure_does_not_burn_key(self, saga, stocked):
        with pytest.raises(ValidationError):
            _place(saga, items=[{"product_id": "nope", "quantity": 1}])
        order = _place(saga)
        assert order.status == OrderStatus.PAYING.value


class TestInsufficientStock:
    def test_order_cancelled_and_error_raised(self, saga, stocked, gateway):
        with pytest.raises(InsufficientStockError) as exc_info:
            _place(saga, items=[{"product_id": "prod-003", "quantity": 3}])

        exc = exc_info.value
        assert exc.product_id == "prod-003"
        assert exc.available == 2
        order = saga.get_order(exc.details["order_id"])
        assert order.status == OrderStatus.CANCELLED.value
        assert order.cancellation_reason == "insufficient_stock"
        assert order.cancelled_by == "System"
        assert gateway.calls_to("create_payment_intent") == []

    def test_nothing_stays_reserved(self, saga, stocked):
        with pytest.raises(InsufficientStockError):
            _place(saga, items=[{"product_id": "prod-001", "quantity": 1}, {"product_id": "prod-003", "quantity": 3}])
        assert stocked.get_stock("prod-001").reserved_quantity == 0
        assert stocked.get_stock("prod-003").reserved_quantity == 0

    def test_product_never_stocked(self, saga, ledger, catalogue):
        with pytest.raises(InsufficientStockError) as exc_info:
            saga.place_order("user-001", "key-001", items=[{"product_id": "prod-001", "quantity": 1}])
        assert exc_info.value.available == 0

    def test_unstocked_line_cancels_multi_line_order(self, saga, ledger, coordinator):
        ledger.load_stock("prod-001", 10)

        with pytest.raises(InsufficientStockError) as exc_info:
            saga.place_order(
                "user-001",
                "key-001",
                items=[{"product_id": "prod-001", "quantity": 2}, {"product_id": "prod-003", "quantity": 1}],
            )

        assert exc_info.value.product_id == "prod-003"
        order_id = exc_info.value.details["order_id"]
        order = saga.get_order(order_id)
        assert order.status == OrderStatus.CANCELLED.value
        assert order.cancellation_reason == "insufficient_stock"
        record = ledger.get_stock("prod-001")
        assert (record.available_quantity, record.reserved_quantity) == (10, 0)
        assert coordinator.list_unsettled() == []

    def test_retry_after_unstocked_line_replays_the_outcome(self, saga, ledger):
        ledger.load_stock("prod-001", 10)
        items = [{"product_id": "prod-001", "quantity": 2}, {"product_id": "prod-003", "quantity": 1}]

        with pytest.raises(InsufficientStockError) as first:
            saga.place_order("user-001", "key-001", items=items)
        with pytest.raises(InsufficientStockError) as second:
            saga.place_order("user-001", "key-001", items=items)

        assert second.value.details["order_id"] == first.value.details["order_id"]


class TestPaymentInitiationFailure:
    def test_order_cancelled_and_stock_released(self, saga, stocked, gateway, coordinator):
        gateway.configure(should_succeed=False, failure_reason="Provider down")

        with pytest.raises(PaymentGatewayError) as exc_info:
            _place(saga)

        order_id = exc_info.value.details["order_id"]
        order = saga.get_order(order_id)
        assert order.status == OrderStatus.CANCELLED.value
        assert order.cancellation_reason == "payment_initiation_failed"
        [reservation] = coordinator.for_order(order_id)
        assert reservation.status == ReservationStatus.RELEASED
        assert stocked.get_stock("prod-001").available_quantity == 10


class TestIdempotentPlaceOrder:
    def test_replay_returns_same_order(self, saga, stocked, gateway):
        first = _place(saga)
        second = _place(saga)

        assert second.id == first.id
        assert len(gateway.calls_to("create_payment_intent")) == 1
        assert stocked.get_stock("prod-001").reserved_quantity == 2

    def test_replay_of_stock_failure(self, saga, stocked):
        items = [{"product_id": "prod-003", "quantity": 3}]
        with pytest.raises(InsufficientStockError) as first:
            _place(saga, items=items)

        stocked.restock("prod-003", 10)
        with pytest.raises(InsufficientStockError) as second:
            _place(saga, items=items)

        assert second.value.details["order_id"] == first.value.details["order_id"]
        assert second.value.available == 2

    def test_replay_of_payment_failure(self, saga, stocked, gateway):
        gateway.configure(should_succeed=False, failure_reason="Provider down")
        with pytest.raises(PaymentGatewayError) as first:
            _place(saga)

        gateway.configure(should_succeed=True)
        with pytest.raises(PaymentGatewayError) as second:
            _place(saga)

        assert second.value.details["order_id"] == first.value.details["order_id"]

    def test_different_keys_make_different_orders(self, saga, stocked):
        first = _place(saga, key="key-001")
        second = _place(saga, key="key-002")
        assert first.id != second.id


class TestCartCheckout:
    def test_items_read_from_cart(self, saga, stocked, cart):
        cart.put("cart-001", "user-001", [{"product_id": "prod-002", "quantity": 2}])

        order = saga.place_order("user-001", "key-001", cart_id="cart-001")

        [item] = order.items
        assert (item.product_id, item.quantity, item.unit_price) == ("prod-002", 2, 25.0)
        assert order.total_amount == 50.0

    def test_cart_of_another_user(self, saga, stocked, cart):
        cart.put("cart-001", "user-002", [{"product_id": "prod-002", "quantity": 2}])
        with pytest.raises(CartNotFoundError):
            saga.place_order("user-001", "key-001", cart_id="cart-001")

    def test_unknown_cart(self, saga, stocked):
        with pytest.raises(CartNotFoundError):
            saga.place_order("user-001", "key-001", cart_id="missing")


class TestQueries:
    def test_unknown_order(self, saga):
        with pytest.raises(OrderNotFoundError):
            saga.get_order("missing")

    def test_history_of_unknown_order(self, saga):
        with pytest.raises(OrderNotFoundError):
            saga.get_history("missing")
