"""Order creation — command and handler."""

import json

from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order


@ordering.command(part_of="Order")
class CreateOrder:
    user_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of {product_id, name, quantity, unit_price}
    currency = String(max_length=3, default="USD")
    idempotency_key = String(max_length=255)


@ordering.command_handler(part_of=Order)
class CreateOrderHandler:
    @handle(CreateOrder)
    def create_order(self, command):
        items_data = json.loads(command.items) if isinstance(command.items, str) else command.items

        order = Order.create(
            user_id=command.user_id,
            items_data=items_data,
            currency=command.currency or "USD",
            idempotency_key=command.idempotency_key,
        )
        current_domain.repository_for(Order).add(order)
        return str(order.id)
