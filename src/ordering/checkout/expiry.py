"""Checkout expiry — hold timeout for abandoned checkouts.

Releases expired reservations through the inventory sweep, then cancels
the orders that were still waiting for their payment. Whichever of this
sweep and a late payment webhook finalizes a reservation first wins; the
other finds it in a terminal state.

A run can stop between releasing a hold and cancelling its order. The
reconcile run picks those orders up again from every timed-out
reservation, so an order is never left waiting on stock it no longer has.
"""

from dataclasses import dataclass, field
from datetime import datetime

import structlog
from shared.errors import CheckoutError

from inventory.reservation.expiry import TIMEOUT_REASON, ReservationSweeper, SweepResult
from inventory.reservation.reservation import Reservation
from ordering.checkout.saga import OrderSaga

logger = structlog.get_logger(__name__)


@dataclass
class CheckoutSweepResult:
    reservations: SweepResult
    cancelled_orders: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {**self.reservations.to_dict(), "cancelled_orders": self.cancelled_orders}


class CheckoutSweeper:
    def __init__(self, saga: OrderSaga) -> None:
        self.saga = saga
        self.sweeper = ReservationSweeper(saga.coordinator)

    def run(self, as_of: datetime | None = None, reconcile: bool = False) -> CheckoutSweepResult:
        reservations = self.sweeper.reconcile(as_of) if reconcile else self.sweeper.expire(as_of)
        result = CheckoutSweepResult(reservations=reservations)

        timed_out = list(reservations.released)
        if reconcile:
            timed_out += self.saga.coordinator.list_released(TIMEOUT_REASON)

        seen = set()
        for reservation in timed_out:
            if reservation.order_id in seen:
                continue
            seen.add(reservation.order_id)
            order = self._expire_order(reservation)
            if order is not None:
                result.cancelled_orders.append(str(order.id))

        logger.info(
            "Checkout sweep complete",
            released=len(reservations.released),
            settled=len(reservations.settled),
            cancelled_orders=len(result.cancelled_orders),
        )
        return result

    def _expire_order(self, reservation: Reservation):
        try:
            return self.saga.expire_order(reservation.order_id)
        except CheckoutError as exc:
            logger.warning(
                "Failed to cancel order for expired reservation",
                order_id=reservation.order_id,
                reservation_id=reservation.reservation_id,
                error=exc.code,
            )
        except Exception:
            logger.exception(
                "Failed to cancel order for expired reservation",
                order_id=reservation.order_id,
                reservation_id=reservation.reservation_id,
            )
        return None
