"""Order payment tracking and confirmation — commands and handler.

The order never talks to the provider; it only records what the payments
context reported. Confirmation follows a recorded payment once the saga
has committed the reservation.
"""

from protean import handle
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order


@ordering.command(part_of="Order")
class StartPayment:
    order_id = Identifier(required=True)
    payment_id = Identifier(required=True)


@ordering.command(part_of="Order")
class RecordPayment:
    order_id = Identifier(required=True)
    payment_id = Identifier(required=True)
    provider_transaction_id = String(required=True, max_length=255)
    amount = Float(required=True)


@ordering.command(part_of="Order")
class ConfirmOrder:
    order_id = Identifier(required=True)


@ordering.command_handler(part_of=Order)
class OrderPaymentHandler:
    @handle(StartPayment)
    def start_payment(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.start_payment(str(command.payment_id))
        repo.add(order)

    @handle(RecordPayment)
    def record_payment(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.record_payment(
            payment_id=str(command.payment_id),
            provider_transaction_id=command.provider_transaction_id,
            amount=command.amount,
        )
        repo.add(order)

    @handle(ConfirmOrder)
    def confirm_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.confirm()
        repo.add(order)
