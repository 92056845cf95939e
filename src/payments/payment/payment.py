"""Payment aggregate (Event Sourced) — the core of the payments domain.

All state changes are captured as domain events and the current state is
rebuilt by replaying them via @apply decorators, which gives a complete
audit trail of every provider interaction.

State Machine:
    PENDING → SUCCESS → REFUNDED
    PENDING → FAILED
    PENDING → CANCELLED → SUCCESS (late capture, always refunded afterwards)

There is at most one payment per order. Every provider transaction the
payment has processed is kept as a ``WebhookReceipt`` so redelivered
webhooks can be recognized.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import apply
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, String

from payments.domain import payments
from payments.payment.events import (
    PaymentCancelled,
    PaymentFailed,
    PaymentInitiated,
    PaymentRefunded,
    PaymentSucceeded,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class PaymentStatus(Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    CANCELLED = "CANCELLED"


_VALID_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.SUCCESS, PaymentStatus.FAILED, PaymentStatus.CANCELLED},
    PaymentStatus.SUCCESS: {PaymentStatus.REFUNDED},
    PaymentStatus.CANCELLED: {PaymentStatus.SUCCESS},  # late capture
    PaymentStatus.FAILED: set(),  # Terminal
    PaymentStatus.REFUNDED: set(),  # Terminal
}


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@payments.entity(part_of="Payment")
class WebhookReceipt:
    """A provider transaction this payment has already processed."""

    provider_transaction_id = String(required=True, max_length=255)
    status = String(required=True, max_length=50)
    received_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root (Event Sourced)
# ---------------------------------------------------------------------------
@payments.aggregate(is_event_sourced=True)
class Payment:
    order_id = Identifier(required=True)
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="USD")
    status = String(
        choices=PaymentStatus,
        default=PaymentStatus.PENDING.value,
    )
    provider = String(required=True, max_length=50)
    provider_payment_id = String(max_length=255)
    provider_transaction_id = String(max_length=255)
    failure_reason = String(max_length=500)
    cancellation_reason = String(max_length=500)
    refund_reason = String(max_length=500)
    provider_refund_id = String(max_length=255)
    idempotency_key = String(required=True, max_length=255)
    receipts = HasMany(WebhookReceipt)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        order_id: str,
        amount: float,
        currency: str,
        provider: str,
        provider_payment_id: str | None,
        idempotency_key: str,
    ):
        """Create a PENDING payment for an order.

        Uses _create_new() for event-sourced aggregates. All state is set
        via the PaymentInitiated event's @apply handler.
        """
        if amount is None or amount <= 0:
            raise ValidationError({"amount": ["Payment amount must be positive"]})

        payment = cls._create_new()
        payment.raise_(
            PaymentInitiated(
                payment_id=str(payment.id),
                order_id=order_id,
                amount=amount,
                currency=currency,
                provider=provider,
                provider_payment_id=provider_payment_id or "",
                idempotency_key=idempotency_key,
                initiated_at=datetime.now(UTC),
            )
        )
        return payment

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status: PaymentStatus) -> None:
        current = PaymentStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def can_transition(self, target_status: PaymentStatus) -> bool:
        return target_status in _VALID_TRANSITIONS.get(PaymentStatus(self.status), set())

    def has_processed(self, provider_transaction_id: str) -> bool:
        return any(r.provider_transaction_id == provider_transaction_id for r in (self.receipts or []))

    # -------------------------------------------------------------------
    # Provider outcomes
    # -------------------------------------------------------------------
    def record_success(self, provider_transaction_id: str) -> None:
        """Record capture reported by the provider."""
        self._assert_can_transition(PaymentStatus.SUCCESS)
        self.raise_(
            PaymentSucceeded(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                amount=self.amount,
                provider_transaction_id=provider_transaction_id,
                late_capture=PaymentStatus(self.status) == PaymentStatus.CANCELLED,
                succeeded_at=datetime.now(UTC),
            )
        )

    def record_failure(self, provider_transaction_id: str, reason: str) -> None:
        self._assert_can_transition(PaymentStatus.FAILED)
        self.raise_(
            PaymentFailed(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                provider_transaction_id=provider_transaction_id,
                reason=reason or "Unknown failure",
                failed_at=datetime.now(UTC),
            )
        )

    def cancel(self, reason: str, provider_transaction_id: str | None = None) -> None:
        self._assert_can_transition(PaymentStatus.CANCELLED)
        self.raise_(
            PaymentCancelled(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                provider_transaction_id=provider_transaction_id or "",
                reason=reason,
                cancelled_at=datetime.now(UTC),
            )
        )

    def refund(self, reason: str, provider_refund_id: str | None) -> None:
        self._assert_can_transition(PaymentStatus.REFUNDED)
        self.raise_(
            PaymentRefunded(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                amount=self.amount,
                reason=reason,
                provider_refund_id=provider_refund_id or "",
                refunded_at=datetime.now(UTC),
            )
        )

    def _add_receipt(self, provider_transaction_id: str | None, status: PaymentStatus, at: datetime) -> None:
        if provider_transaction_id:
            self.add_receipts(
                WebhookReceipt(
                    provider_transaction_id=provider_transaction_id,
                    status=status.value,
                    received_at=at,
                )
            )

    # -------------------------------------------------------------------
    # @apply methods — rebuild state during event replay
    # -------------------------------------------------------------------
    @apply
    def _on_payment_initiated(self, event: PaymentInitiated):
        self.id = event.payment_id
        self.order_id = event.order_id
        self.amount = event.amount
        self.currency = event.currency
        self.status = PaymentStatus.PENDING.value
        self.provider = event.provider
        self.provider_payment_id = event.provider_payment_id or None
        self.idempotency_key = event.idempotency_key
        self.created_at = event.initiated_at
        self.updated_at = event.initiated_at

    @apply
    def _on_payment_succeeded(self, event: PaymentSucceeded):
        self.status = PaymentStatus.SUCCESS.value
        self.provider_transaction_id = event.provider_transaction_id
        self.updated_at = event.succeeded_at
        self._add_receipt(event.provider_transaction_id, PaymentStatus.SUCCESS, event.succeeded_at)

    @apply
    def _on_payment_failed(self, event: PaymentFailed):
        self.status = PaymentStatus.FAILED.value
        self.provider_transaction_id = event.provider_transaction_id
        self.failure_reason = event.reason
        self.updated_at = event.failed_at
        self._add_receipt(event.provider_transaction_id, PaymentStatus.FAILED, event.failed_at)

    @apply
    def _on_payment_cancelled(self, event: PaymentCancelled):
        self.status = PaymentStatus.CANCELLED.value
        self.cancellation_reason = event.reason
        self.updated_at = event.cancelled_at
        self._add_receipt(event.provider_transaction_id, PaymentStatus.CANCELLED, event.cancelled_at)

    @apply
    def _on_payment_refunded(self, event: PaymentRefunded):
        self.status = PaymentStatus.REFUNDED.value
        self.refund_reason = event.reason
        self.provider_refund_id = event.provider_refund_id or None
        self.updated_at = event.refunded_at
