"""Reservation coordinator factory.

Provides get_coordinator() / set_coordinator() to swap implementations.
The coordinator shares the process-wide ledger and keeps its own
reservation and idempotency stores (in memory unless
CHECKOUT_DATABASE_URL is configured).
"""

from shared import config
from shared.db import get_engine
from shared.idempotency import MemoryIdempotencyStore, SqlAlchemyIdempotencyStore, reservation_keys

from inventory.ledger import get_ledger
from inventory.reservation.coordinator import ReservationCoordinator
from inventory.reservation.memory import MemoryReservationStore
from inventory.reservation.sqlalchemy_store import SqlAlchemyReservationStore

_current_coordinator: ReservationCoordinator | None = None


def get_coordinator() -> ReservationCoordinator:
    """Return the current reservation coordinator."""
    global _current_coordinator
    if _current_coordinator is None:
        if config.CHECKOUT_DATABASE_URL:
            engine = get_engine()
            store = SqlAlchemyReservationStore(engine)
            idempotency = SqlAlchemyIdempotencyStore(engine, reservation_keys)
        else:
            store = MemoryReservationStore()
            idempotency = MemoryIdempotencyStore()
        _current_coordinator = ReservationCoordinator(get_ledger(), store, idempotency)
    return _current_coordinator


def set_coordinator(coordinator: ReservationCoordinator) -> None:
    """Override the active coordinator (useful for tests)."""
    global _current_coordinator
    _current_coordinator = coordinator


def reset_coordinator() -> None:
    """Reset to the default coordinator."""
    global _current_coordinator
    _current_coordinator = None
