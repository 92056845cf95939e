"""Reservation store port (abstract interface)."""

from abc import ABC, abstractmethod
from datetime import datetime

from inventory.reservation.reservation import Reservation, ReservationStatus


class ReservationStore(ABC):
    """Abstract reservation store.

    ``transition`` is the only way to change a reservation's status. It is a
    compare-and-swap on the status, so of two racing finalizers (a webhook
    commit and a timeout release, say) exactly one wins.
    """

    @abstractmethod
    def add(self, reservation: Reservation) -> None:
        ...

    @abstractmethod
    def get(self, reservation_id: str) -> Reservation | None:
        ...

    @abstractmethod
    def for_order(self, order_id: str) -> list[Reservation]:
        """All reservations of an order, oldest first."""
        ...

    @abstractmethod
    def transition(
        self,
        reservation_id: str,
        from_status: ReservationStatus,
        to_status: ReservationStatus,
        release_reason: str | None = None,
    ) -> Reservation | None:
        """Move ``from_status`` to ``to_status`` atomically.

        Returns the updated reservation, or None if it was not in
        ``from_status`` any more. A status change always clears ``settled``.
        """
        ...

    @abstractmethod
    def mark_settled(self, reservation_id: str, status: ReservationStatus) -> None:
        """Flag the reservation settled if it is still in ``status``."""
        ...

    @abstractmethod
    def list_expired(self, as_of: datetime) -> list[Reservation]:
        """HELD reservations whose hold ran out at or before ``as_of``."""
        ...

    @abstractmethod
    def list_unsettled(self) -> list[Reservation]:
        """Terminal reservations whose ledger effect is not complete."""
        ...

    @abstractmethod
    def list_released(self, reason: str) -> list[Reservation]:
        """RELEASED reservations with the given release reason."""
        ...
