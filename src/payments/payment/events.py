"""Domain events for the Payment aggregate.

All events are versioned, immutable facts representing payment state changes.
Events are persisted to the event store and used for:
- Rebuilding aggregate state via @apply (event sourcing)
- Updating the payment status projection
"""

from protean.fields import Boolean, DateTime, Float, Identifier, String

from payments.domain import payments


@payments.event(part_of="Payment")
class PaymentInitiated:
    """A payment intent was created with the provider for an order."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Float(required=True)
    currency = String(required=True)
    provider = String(required=True)
    provider_payment_id = String()
    idempotency_key = String(required=True)
    initiated_at = DateTime(required=True)


@payments.event(part_of="Payment")
class PaymentSucceeded:
    """The provider reported the payment captured."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Float(required=True)
    provider_transaction_id = String(required=True)
    late_capture = Boolean(default=False)  # captured after we cancelled
    succeeded_at = DateTime(required=True)


@payments.event(part_of="Payment")
class PaymentFailed:
    """The provider reported the payment failed."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    provider_transaction_id = String(required=True)
    reason = String(required=True)
    failed_at = DateTime(required=True)


@payments.event(part_of="Payment")
class PaymentCancelled:
    """The payment was cancelled, by us or by the provider."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    provider_transaction_id = String()
    reason = String(required=True)
    cancelled_at = DateTime(required=True)


@payments.event(part_of="Payment")
class PaymentRefunded:
    """A captured payment was refunded in full."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Float(required=True)
    reason = String(required=True)
    provider_refund_id = String()
    refunded_at = DateTime(required=True)
