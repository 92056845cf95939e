"""Payment initiation — command and handler.

Creates a payment intent with the provider and records a PENDING Payment.
"""

import structlog
from protean import handle
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain
from shared.errors import PaymentGatewayError

from payments.domain import payments
from payments.gateway import get_gateway
from payments.payment.payment import Payment

logger = structlog.get_logger(__name__)


@payments.command(part_of="Payment")
class InitiatePayment:
    """Initiate the payment for an order."""

    order_id = Identifier(required=True)
    amount = Float(required=True)
    currency = String(max_length=3, default="USD")
    provider = String(max_length=50)
    idempotency_key = String(required=True, max_length=255)


@payments.command_handler(part_of=Payment)
class InitiatePaymentHandler:
    @handle(InitiatePayment)
    def initiate_payment(self, command):
        gateway = get_gateway(command.provider)

        intent = gateway.create_payment_intent(
            order_id=str(command.order_id),
            amount=command.amount,
            currency=command.currency or "USD",
            idempotency_key=command.idempotency_key,
        )
        if not intent.success:
            logger.warning(
                "Payment intent rejected",
                order_id=str(command.order_id),
                provider=gateway.name,
                reason=intent.failure_reason,
            )
            raise PaymentGatewayError(intent.failure_reason or "Payment intent rejected", provider=gateway.name)

        payment = Payment.create(
            order_id=str(command.order_id),
            amount=command.amount,
            currency=command.currency or "USD",
            provider=gateway.name,
            provider_payment_id=intent.provider_payment_id,
            idempotency_key=command.idempotency_key,
        )
        current_domain.repository_for(Payment).add(payment)
        return str(payment.id)
