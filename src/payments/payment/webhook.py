"""Payment webhook processing — command and handler.

Applies a provider outcome that the adapter has already authenticated and
normalized. Returns the outcome as seen by the payment: ``applied`` when the
status changed, ``duplicate`` when this provider transaction was already
processed, ``ignored`` when the payment cannot take that status any more.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from payments.domain import payments
from payments.payment.payment import Payment, PaymentStatus

logger = structlog.get_logger(__name__)


@payments.command(part_of="Payment")
class ProcessPaymentWebhook:
    """Process a provider webhook callback."""

    payment_id = Identifier(required=True)
    provider_transaction_id = String(required=True, max_length=255)
    status = String(required=True, choices=PaymentStatus)
    failure_reason = String(max_length=500)


@payments.command_handler(part_of=Payment)
class ProcessWebhookHandler:
    @handle(ProcessPaymentWebhook)
    def process_webhook(self, command):
        repo = current_domain.repository_for(Payment)
        payment = repo.get(command.payment_id)

        if payment.has_processed(command.provider_transaction_id):
            return "duplicate"

        target = PaymentStatus(command.status)
        if not payment.can_transition(target):
            logger.warning(
                "Webhook status not applicable",
                payment_id=str(payment.id),
                current_status=payment.status,
                reported_status=target.value,
                provider_transaction_id=command.provider_transaction_id,
            )
            return "ignored"

        if target == PaymentStatus.SUCCESS:
            payment.record_success(provider_transaction_id=command.provider_transaction_id)
        elif target == PaymentStatus.FAILED:
            payment.record_failure(
                provider_transaction_id=command.provider_transaction_id,
                reason=command.failure_reason or "Unknown failure",
            )
        else:
            payment.cancel(
                reason=command.failure_reason or "Cancelled by provider",
                provider_transaction_id=command.provider_transaction_id,
            )

        repo.add(payment)
        return "applied"
