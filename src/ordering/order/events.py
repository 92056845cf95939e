"""Domain events for the Order aggregate.

All events are versioned, immutable facts representing state changes.
Events are persisted to the event store and used for rebuilding aggregate
state via @apply (event sourcing). Replaying them also rebuilds the order's
status history.
"""

from protean.fields import Boolean, DateTime, Float, Identifier, String, Text

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderCreated:
    """An order was accepted with its items and prices snapshotted."""

    __version__ = 1

    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of item dicts
    total_amount = Float(required=True)
    currency = String(default="USD")
    idempotency_key = String()
    created_at = DateTime(required=True)


@ordering.event(part_of="Order")
class ReservationStarted:
    """The saga began reserving inventory for the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    started_at = DateTime(required=True)


@ordering.event(part_of="Order")
class StockReserved:
    """Inventory for every item is held under one reservation."""

    __version__ = 1

    order_id = Identifier(required=True)
    reservation_id = Identifier(required=True)
    reserved_at = DateTime(required=True)


@ordering.event(part_of="Order")
class PaymentStarted:
    """A payment was initiated with the provider; awaiting its webhook."""

    __version__ = 1

    order_id = Identifier(required=True)
    payment_id = Identifier(required=True)
    started_at = DateTime(required=True)


@ordering.event(part_of="Order")
class PaymentReceived:
    """The provider reported the payment captured."""

    __version__ = 1

    order_id = Identifier(required=True)
    payment_id = Identifier(required=True)
    provider_transaction_id = String(required=True)
    amount = Float(required=True)
    paid_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderConfirmed:
    """The reservation was committed: the sale is final."""

    __version__ = 1

    order_id = Identifier(required=True)
    confirmed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderShipped:
    __version__ = 1

    order_id = Identifier(required=True)
    shipped_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderDelivered:
    __version__ = 1

    order_id = Identifier(required=True)
    delivered_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderCancelled:
    """The order was cancelled, with or without compensation."""

    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(required=True)
    cancelled_by = String(required=True)
    refunded = Boolean(default=False)
    restocked = Boolean(default=False)
    cancelled_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderRefunded:
    """A paid order was refunded before it was confirmed."""

    __version__ = 1

    order_id = Identifier(required=True)
    amount = Float(required=True)
    reason = String(required=True)
    refunded_at = DateTime(required=True)
