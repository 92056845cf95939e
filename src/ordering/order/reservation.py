"""Inventory hold tracking on the order — commands and handler."""

from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order


@ordering.command(part_of="Order")
class StartReservation:
    order_id = Identifier(required=True)


@ordering.command(part_of="Order")
class RecordReservation:
    order_id = Identifier(required=True)
    reservation_id = Identifier(required=True)


@ordering.command_handler(part_of=Order)
class ReservationHandler:
    @handle(StartReservation)
    def start_reservation(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.start_reservation()
        repo.add(order)

    @handle(RecordReservation)
    def record_reservation(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.record_reservation(str(command.reservation_id))
        repo.add(order)
