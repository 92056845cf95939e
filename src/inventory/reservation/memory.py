"""In-memory reservation store for development and testing."""

import threading
from dataclasses import replace
from datetime import UTC, datetime

from inventory.reservation.reservation import Reservation, ReservationStatus
from inventory.reservation.store import ReservationStore


class MemoryReservationStore(ReservationStore):
    def __init__(self) -> None:
        self._reservations: dict[str, Reservation] = {}
        self._lock = threading.Lock()

    def add(self, reservation: Reservation) -> None:
        with self._lock:
            if reservation.reservation_id in self._reservations:
                raise KeyError(f"Reservation {reservation.reservation_id} already exists")
            self._reservations[reservation.reservation_id] = reservation

    def get(self, reservation_id: str) -> Reservation | None:
        with self._lock:
            return self._reservations.get(reservation_id)

    def for_order(self, order_id: str) -> list[Reservation]:
        with self._lock:
            matches = [r for r in self._reservations.values() if r.order_id == order_id]
        return sorted(matches, key=lambda r: r.created_at)

    def transition(self, reservation_id, from_status, to_status, release_reason=None) -> Reservation | None:
        with self._lock:
            current = self._reservations.get(reservation_id)
            if current is None or current.status != from_status:
                return None
            updated = replace(
                current,
                status=to_status,
                settled=False,
                release_reason=release_reason,
                updated_at=datetime.now(UTC),
            )
            self._reservations[reservation_id] = updated
            return updated

    def mark_settled(self, reservation_id: str, status: ReservationStatus) -> None:
        with self._lock:
            current = self._reservations.get(reservation_id)
            if current is not None and current.status == status:
                self._reservations[reservation_id] = replace(current, settled=True)

    def list_expired(self, as_of: datetime) -> list[Reservation]:
        with self._lock:
            return [r for r in self._reservations.values() if r.is_expired(as_of)]

    def list_unsettled(self) -> list[Reservation]:
        with self._lock:
            return [r for r in self._reservations.values() if r.is_terminal and not r.settled]

    def list_released(self, reason: str) -> list[Reservation]:
        with self._lock:
            return [
                r
                for r in self._reservations.values()
                if r.status == ReservationStatus.RELEASED and r.release_reason == reason
            ]
