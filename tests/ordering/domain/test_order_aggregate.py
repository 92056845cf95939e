"""Tests for Order creation: snapshotted items, totals and the opening history entry."""

import pytest
from ordering.order.events import OrderCreated
from ordering.order.order import Order, OrderStatus
from protean.exceptions import ValidationError


def _items():
    return [
        {"product_id": "prod-001", "name": "Widget", "quantity": 2, "unit_price": 10.0},
        {"product_id": "prod-002", "name": "Gadget", "quantity": 1, "unit_price": 25.0},
    ]


class TestCreateOrder:
    def test_starts_created(self):
        order = Order.create("user-001", _items())
        assert order.status == OrderStatus.CREATED.value
        assert order.user_id == "user-001"
        assert order.currency == "USD"

    def test_total_is_sum_of_lines(self):
        order = Order.create("user-001", _items())
        assert order.total_amount == 45.0

    def test_total_is_rounded_to_cents(self):
        order = Order.create("user-001", [{"product_id": "p", "name": "P", "quantity": 3, "unit_price": 0.1}])
        assert order.total_amount == 0.3

    def test_items_are_snapshotted(self):
        order = Order.create("user-001", _items())
        widget = next(i for i in order.items if i.product_id == "prod-001")
        assert widget.name == "Widget"
        assert widget.unit_price == 10.0
        assert widget.line_total == 20.0

    def test_raises_created_event(self):
        order = Order.create("user-001", _items(), currency="EUR", idempotency_key="key-001")
        assert len(order._events) == 1
        event = order._events[0]
        assert isinstance(event, OrderCreated)
        assert event.total_amount == 45.0
        assert event.currency == "EUR"
        assert event.idempotency_key == "key-001"

    def test_history_opens_with_created(self):
        order = Order.create("user-001", _items())
        [entry] = order.history
        assert entry.from_status is None
        assert entry.to_status == "CREATED"


class TestCreateOrderValidation:
    def test_needs_items(self):
        with pytest.raises(ValidationError):
            Order.create("user-001", [])

    def test_quantity_at_least_one(self):
        with pytest.raises(ValidationError):
            Order.create("user-001", [{"product_id": "p", "name": "P", "quantity": 0, "unit_price": 1.0}])

    def test_price_required(self):
        with pytest.raises(ValidationError):
            Order.create("user-001", [{"product_id": "p", "name": "P", "quantity": 1}])

    def test_price_not_negative(self):
        with pytest.raises(ValidationError):
            Order.create("user-001", [{"product_id": "p", "name": "P", "quantity": 1, "unit_price": -1.0}])
