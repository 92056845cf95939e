"""Inventory ledger store port (abstract interface).

Defines the contract every ledger store must implement. The in-memory store
serves development and tests; the SQLAlchemy store serves SQLite and
PostgreSQL. Both must apply ``apply_delta`` as a single atomic
compare-and-swap together with its transaction row.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager

from shared.errors import InsufficientStockError

from inventory.ledger.records import InventoryRecord, InventoryTransaction, TransactionType


def check_non_negative(record: InventoryRecord, available_delta: int, reserved_delta: int) -> None:
    """Raise ``InsufficientStockError`` if the deltas would drive a counter below zero."""
    if record.available_quantity + available_delta < 0:
        raise InsufficientStockError(record.product_id, -available_delta, record.available_quantity)
    if record.reserved_quantity + reserved_delta < 0:
        raise InsufficientStockError(record.product_id, -reserved_delta, record.reserved_quantity)


class LockedStock(ABC):
    """Handle on a product held under the strict (exclusive) lock.

    Mutations through the handle skip the version check: the holder is the
    only writer for as long as the lock is held.
    """

    @property
    @abstractmethod
    def record(self) -> InventoryRecord:
        ...

    @abstractmethod
    def apply(
        self,
        available_delta: int,
        reserved_delta: int,
        type: TransactionType,
        reference_id: str | None = None,
        reason: str | None = None,
    ) -> InventoryRecord:
        ...


class LedgerStore(ABC):
    """Abstract inventory ledger store."""

    @abstractmethod
    def get(self, product_id: str) -> InventoryRecord | None:
        """Return the current record, or None if the product was never loaded."""
        ...

    @abstractmethod
    def create(self, product_id: str, quantity: int, reference_id: str | None = None) -> InventoryRecord | None:
        """Create a record at version 1 with ``quantity`` available.

        Returns None if a record already exists. A positive initial quantity
        is logged as a RESTOCK transaction.
        """
        ...

    @abstractmethod
    def apply_delta(
        self,
        product_id: str,
        available_delta: int,
        reserved_delta: int,
        expected_version: int,
        type: TransactionType,
        reference_id: str | None = None,
        reason: str | None = None,
    ) -> InventoryRecord:
        """Apply both deltas iff the stored version equals ``expected_version``.

        Raises ``InventoryRecordNotFoundError``, ``ConflictError`` or
        ``InsufficientStockError``. On success exactly one transaction row is
        written in the same atomic unit and the new record is returned.
        """
        ...

    @abstractmethod
    def transactions(
        self,
        product_id: str | None = None,
        reference_id: str | None = None,
    ) -> list[InventoryTransaction]:
        """Return transactions in write order, optionally filtered."""
        ...

    @abstractmethod
    def lock(self, product_id: str, nowait: bool = True) -> AbstractContextManager[LockedStock]:
        """Hold the product's exclusive lock for a short, local operation.

        With ``nowait`` a held lock raises ``LockUnavailableError`` at once.
        """
        ...
