"""Payment cancellation — command and handler.

Cancels a payment that has not been captured. A capture reported after this
point arrives as a late-capture webhook and is refunded by the saga.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from payments.domain import payments
from payments.gateway import get_gateway
from payments.payment.payment import Payment, PaymentStatus


@payments.command(part_of="Payment")
class CancelPayment:
    payment_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@payments.command_handler(part_of=Payment)
class CancelPaymentHandler:
    @handle(CancelPayment)
    def cancel_payment(self, command):
        repo = current_domain.repository_for(Payment)
        payment = repo.get(command.payment_id)

        if payment.status != PaymentStatus.PENDING.value:
            return payment.status

        if payment.provider_payment_id:
            get_gateway(payment.provider).cancel_payment_intent(payment.provider_payment_id)
        payment.cancel(reason=command.reason)
        repo.add(payment)
        return payment.status
