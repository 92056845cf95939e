"""Order aggregate (Event Sourced) — the core of the ordering domain.

The Order aggregate uses event sourcing: all state changes are captured as
domain events, and the current state is rebuilt by replaying events via
@apply decorators. Every @apply that changes the status also appends a
``StatusChange`` to the order's history, so the audit log is replayed
together with the state it describes.

State Machine:
    CREATED → RESERVING → RESERVED → PAYING → PAID → CONFIRMED → SHIPPED → DELIVERED
    CREATED / RESERVING / RESERVED / PAYING / CONFIRMED / SHIPPED → CANCELLED
    PAID → REFUNDED
    DELIVERED, CANCELLED and REFUNDED are terminal.

Items and prices are snapshotted at creation; nothing afterwards changes
them or the total.
"""

import json
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

import structlog
from protean import apply
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String
from shared.errors import InvalidTransitionError

from ordering.domain import ordering
from ordering.order.events import (
    OrderCancelled,
    OrderConfirmed,
    OrderCreated,
    OrderDelivered,
    OrderRefunded,
    OrderShipped,
    PaymentReceived,
    PaymentStarted,
    ReservationStarted,
    StockReserved,
)

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    CREATED = "CREATED"
    RESERVING = "RESERVING"
    RESERVED = "RESERVED"
    PAYING = "PAYING"
    PAID = "PAID"
    CONFIRMED = "CONFIRMED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class CancellationActor(Enum):
    CUSTOMER = "Customer"
    SYSTEM = "System"
    ADMIN = "Admin"


# State machine transition map
_VALID_TRANSITIONS = {
    OrderStatus.CREATED: {OrderStatus.RESERVING, OrderStatus.CANCELLED},
    OrderStatus.RESERVING: {OrderStatus.RESERVED, OrderStatus.CANCELLED},
    OrderStatus.RESERVED: {OrderStatus.PAYING, OrderStatus.CANCELLED},
    OrderStatus.PAYING: {OrderStatus.PAID, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.CONFIRMED, OrderStatus.REFUNDED},
    OrderStatus.CONFIRMED: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.REFUNDED: set(),  # Terminal
}

TERMINAL_STATES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderItem:
    """A line item with the name and unit price captured at order time."""

    product_id = Identifier(required=True)
    name = String(max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)

    @property
    def line_total(self) -> float:
        return round(self.unit_price * self.quantity, 2)


@ordering.entity(part_of="Order")
class StatusChange:
    """One entry of the order's append-only status history."""

    from_status = String(max_length=20)  # Empty for the initial CREATED entry
    to_status = String(required=True, max_length=20)
    changed_at = DateTime(required=True)
    reason = String(max_length=500)


# ---------------------------------------------------------------------------
# Aggregate Root (Event Sourced)
# ---------------------------------------------------------------------------
@ordering.aggregate(is_event_sourced=True)
class Order:
    user_id = Identifier(required=True)
    status = String(
        choices=OrderStatus,
        default=OrderStatus.CREATED.value,
    )
    items = HasMany(OrderItem)
    total_amount = Float(default=0.0)
    currency = String(max_length=3, default="USD")
    reservation_id = Identifier()
    payment_id = Identifier()
    provider_transaction_id = String(max_length=255)
    cancellation_reason = String(max_length=500)
    cancelled_by = String(max_length=50)
    refund_reason = String(max_length=500)
    idempotency_key = String(max_length=255)
    history = HasMany(StatusChange)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, user_id, items_data, currency="USD", idempotency_key=None):
        """Create a new order from snapshotted line items.

        Uses _create_new() to get a blank aggregate with auto-generated
        identity. All state is established by the OrderCreated event's
        @apply handler — the single source of truth.

        Args:
            user_id: The (pre-authenticated) user placing the order.
            items_data: List of dicts with product_id, name, quantity and
                        unit_price, as read from the catalogue.
        """
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})
        for item in items_data:
            if int(item.get("quantity") or 0) < 1:
                raise ValidationError({"quantity": [f"Quantity for {item.get('product_id')} must be at least 1"]})
            if item.get("unit_price") is None or float(item["unit_price"]) < 0:
                raise ValidationError({"unit_price": [f"Price for {item.get('product_id')} is missing or negative"]})

        # Pre-generate item IDs for deterministic replay
        items_with_ids = [{**item, "id": str(uuid4())} for item in items_data]
        total = round(sum(float(item["unit_price"]) * int(item["quantity"]) for item in items_data), 2)

        order = cls._create_new()
        order.raise_(
            OrderCreated(
                order_id=str(order.id),
                user_id=str(user_id),
                items=json.dumps(items_with_ids),
                total_amount=total,
                currency=currency or "USD",
                idempotency_key=idempotency_key,
                created_at=datetime.now(UTC),
            )
        )
        return order

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    def can_transition(self, target_status: OrderStatus) -> bool:
        return target_status in _VALID_TRANSITIONS.get(OrderStatus(self.status), set())

    def _assert_can_transition(self, target_status: OrderStatus) -> None:
        """Reject transitions outside the table. The order is left unchanged."""
        if not self.can_transition(target_status):
            logger.error(
                "Rejected order transition",
                order_id=str(self.id),
                from_status=self.status,
                to_status=target_status.value,
            )
            raise InvalidTransitionError(str(self.id), self.status, target_status.value)

    @property
    def is_terminal(self) -> bool:
        return OrderStatus(self.status) in TERMINAL_STATES

    def _record_transition(self, to_status: OrderStatus, at: datetime, reason: str | None = None) -> None:
        self.add_history(
            StatusChange(
                from_status=self.status,
                to_status=to_status.value,
                changed_at=at,
                reason=reason,
            )
        )
        self.status = to_status.value
        self.updated_at = at

    # -------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------
    def start_reservation(self) -> None:
        self._assert_can_transition(OrderStatus.RESERVING)
        self.raise_(ReservationStarted(order_id=str(self.id), started_at=datetime.now(UTC)))

    def record_reservation(self, reservation_id: str) -> None:
        self._assert_can_transition(OrderStatus.RESERVED)
        self.raise_(
            StockReserved(
                order_id=str(self.id),
                reservation_id=reservation_id,
                reserved_at=datetime.now(UTC),
            )
        )

    def start_payment(self, payment_id: str) -> None:
        self._assert_can_transition(OrderStatus.PAYING)
        self.raise_(
            PaymentStarted(
                order_id=str(self.id),
                payment_id=payment_id,
                started_at=datetime.now(UTC),
            )
        )

    def record_payment(self, payment_id: str, provider_transaction_id: str, amount: float) -> None:
        self._assert_can_transition(OrderStatus.PAID)
        self.raise_(
            PaymentReceived(
                order_id=str(self.id),
                payment_id=payment_id,
                provider_transaction_id=provider_transaction_id,
                amount=amount,
                paid_at=datetime.now(UTC),
            )
        )

    def confirm(self) -> None:
        self._assert_can_transition(OrderStatus.CONFIRMED)
        self.raise_(OrderConfirmed(order_id=str(self.id), confirmed_at=datetime.now(UTC)))

    # -------------------------------------------------------------------
    # Fulfillment
    # -------------------------------------------------------------------
    def ship(self) -> None:
        self._assert_can_transition(OrderStatus.SHIPPED)
        self.raise_(OrderShipped(order_id=str(self.id), shipped_at=datetime.now(UTC)))

    def deliver(self) -> None:
        self._assert_can_transition(OrderStatus.DELIVERED)
        self.raise_(OrderDelivered(order_id=str(self.id), delivered_at=datetime.now(UTC)))

    # -------------------------------------------------------------------
    # Cancellation & Refund
    # -------------------------------------------------------------------
    def cancel(self, reason, cancelled_by, refunded=False, restocked=False) -> None:
        self._assert_can_transition(OrderStatus.CANCELLED)
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                reason=reason,
                cancelled_by=cancelled_by,
                refunded=refunded,
                restocked=restocked,
                cancelled_at=datetime.now(UTC),
            )
        )

    def refund(self, reason) -> None:
        self._assert_can_transition(OrderStatus.REFUNDED)
        self.raise_(
            OrderRefunded(
                order_id=str(self.id),
                amount=self.total_amount,
                reason=reason,
                refunded_at=datetime.now(UTC),
            )
        )

    # -------------------------------------------------------------------
    # @apply methods — rebuild state during event replay
    # -------------------------------------------------------------------
    @apply
    def _on_order_created(self, event: OrderCreated):
        self.id = event.order_id
        self.user_id = event.user_id
        self.status = OrderStatus.CREATED.value
        self.total_amount = event.total_amount
        self.currency = event.currency or "USD"
        self.idempotency_key = event.idempotency_key
        self.created_at = event.created_at
        self.updated_at = event.created_at

        # Reconstruct items from JSON (includes IDs for deterministic replay)
        items_data = json.loads(event.items) if isinstance(event.items, str) else []
        self.items = [OrderItem(**item_data) for item_data in items_data]

        self.history = [
            StatusChange(
                from_status=None,
                to_status=OrderStatus.CREATED.value,
                changed_at=event.created_at,
            )
        ]

    @apply
    def _on_reservation_started(self, event: ReservationStarted):
        self._record_transition(OrderStatus.RESERVING, event.started_at)

    @apply
    def _on_stock_reserved(self, event: StockReserved):
        self.reservation_id = event.reservation_id
        self._record_transition(OrderStatus.RESERVED, event.reserved_at)

    @apply
    def _on_payment_started(self, event: PaymentStarted):
        self.payment_id = event.payment_id
        self._record_transition(OrderStatus.PAYING, event.started_at)

    @apply
    def _on_payment_received(self, event: PaymentReceived):
        self.provider_transaction_id = event.provider_transaction_id
        self._record_transition(OrderStatus.PAID, event.paid_at)

    @apply
    def _on_order_confirmed(self, event: OrderConfirmed):
        self._record_transition(OrderStatus.CONFIRMED, event.confirmed_at)

    @apply
    def _on_order_shipped(self, event: OrderShipped):
        self._record_transition(OrderStatus.SHIPPED, event.shipped_at)

    @apply
    def _on_order_delivered(self, event: OrderDelivered):
        self._record_transition(OrderStatus.DELIVERED, event.delivered_at)

    @apply
    def _on_order_cancelled(self, event: OrderCancelled):
        self.cancellation_reason = event.reason
        self.cancelled_by = event.cancelled_by
        self._record_transition(OrderStatus.CANCELLED, event.cancelled_at, reason=event.reason)

    @apply
    def _on_order_refunded(self, event: OrderRefunded):
        self.refund_reason = event.reason
        self._record_transition(OrderStatus.REFUNDED, event.refunded_at, reason=event.reason)
