"""Payment refund — command and handler."""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain
from shared.errors import PaymentGatewayError

from payments.domain import payments
from payments.gateway import get_gateway
from payments.payment.payment import Payment, PaymentStatus

logger = structlog.get_logger(__name__)


@payments.command(part_of="Payment")
class RefundPayment:
    """Refund a captured payment in full."""

    payment_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@payments.command_handler(part_of=Payment)
class RefundHandler:
    @handle(RefundPayment)
    def refund_payment(self, command):
        repo = current_domain.repository_for(Payment)
        payment = repo.get(command.payment_id)

        if payment.status == PaymentStatus.REFUNDED.value:
            return payment.provider_refund_id

        if not payment.can_transition(PaymentStatus.REFUNDED):
            raise ValidationError({"status": [f"Cannot refund a payment in {payment.status} state"]})

        result = get_gateway(payment.provider).create_refund(
            provider_transaction_id=payment.provider_transaction_id,
            amount=payment.amount,
            reason=command.reason,
        )
        if not result.success:
            logger.error(
                "Refund rejected by provider",
                payment_id=str(payment.id),
                reason=result.failure_reason,
            )
            raise PaymentGatewayError(result.failure_reason or "Refund rejected", payment_id=str(payment.id))

        payment.refund(reason=command.reason, provider_refund_id=result.provider_refund_id)
        repo.add(payment)
        return result.provider_refund_id
