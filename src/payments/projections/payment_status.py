"""Payment status — real-time payment state view, queried by order."""

from protean.core.projector import on
from protean.fields import DateTime, Float, Identifier, String
from protean.utils.globals import current_domain

from payments.domain import payments
from payments.payment.events import (
    PaymentCancelled,
    PaymentFailed,
    PaymentInitiated,
    PaymentRefunded,
    PaymentSucceeded,
)
from payments.payment.payment import Payment


@payments.projection
class PaymentStatusView:
    payment_id = Identifier(identifier=True, required=True)
    order_id = Identifier(required=True)
    amount = Float()
    currency = String(default="USD")
    status = String(required=True)
    provider = String()
    provider_transaction_id = String()
    failure_reason = String()
    created_at = DateTime()
    updated_at = DateTime()


@payments.projector(projector_for=PaymentStatusView, aggregates=[Payment])
class PaymentStatusProjector:
    def _update(self, payment_id, **changes):
        repo = current_domain.repository_for(PaymentStatusView)
        view = repo.get(payment_id)
        for name, value in changes.items():
            setattr(view, name, value)
        repo.add(view)

    @on(PaymentInitiated)
    def on_payment_initiated(self, event):
        current_domain.repository_for(PaymentStatusView).add(
            PaymentStatusView(
                payment_id=event.payment_id,
                order_id=event.order_id,
                amount=event.amount,
                currency=event.currency,
                status="PENDING",
                provider=event.provider,
                created_at=event.initiated_at,
                updated_at=event.initiated_at,
            )
        )

    @on(PaymentSucceeded)
    def on_payment_succeeded(self, event):
        self._update(
            event.payment_id,
            status="SUCCESS",
            provider_transaction_id=event.provider_transaction_id,
            updated_at=event.succeeded_at,
        )

    @on(PaymentFailed)
    def on_payment_failed(self, event):
        self._update(
            event.payment_id,
            status="FAILED",
            provider_transaction_id=event.provider_transaction_id,
            failure_reason=event.reason,
            updated_at=event.failed_at,
        )

    @on(PaymentCancelled)
    def on_payment_cancelled(self, event):
        self._update(event.payment_id, status="CANCELLED", updated_at=event.cancelled_at)

    @on(PaymentRefunded)
    def on_payment_refunded(self, event):
        self._update(event.payment_id, status="REFUNDED", updated_at=event.refunded_at)
