"""Reservation: a hold on inventory tied to one order.

A reservation moves quantity from available to reserved without finalizing
a sale. It is created HELD and moves to exactly one terminal state,
COMMITTED or RELEASED, which it never leaves.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ReservationStatus(Enum):
    HELD = "HELD"
    COMMITTED = "COMMITTED"
    RELEASED = "RELEASED"


@dataclass(frozen=True)
class ReservationLine:
    product_id: str
    quantity: int


@dataclass(frozen=True)
class Reservation:
    reservation_id: str
    order_id: str
    idempotency_key: str
    lines: tuple[ReservationLine, ...]
    status: ReservationStatus
    created_at: datetime
    expires_at: datetime
    updated_at: datetime
    # True once the ledger reflects the current status in full
    settled: bool = False
    release_reason: str | None = None

    @property
    def items(self) -> dict[str, int]:
        return {line.product_id: line.quantity for line in self.lines}

    @property
    def is_terminal(self) -> bool:
        return self.status != ReservationStatus.HELD

    def is_expired(self, as_of: datetime) -> bool:
        return self.status == ReservationStatus.HELD and self.expires_at <= as_of

    def to_dict(self) -> dict:
        return {
            "reservation_id": self.reservation_id,
            "order_id": self.order_id,
            "status": self.status.value,
            "items": [{"product_id": line.product_id, "quantity": line.quantity} for line in self.lines],
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "settled": self.settled,
            "release_reason": self.release_reason,
        }
