"""In-memory ledger store for development and testing.

Thread-safe: one mutex makes each compare-and-swap plus its transaction row
atomic, and per-product locks stand in for row locks in strict mode.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import UTC, datetime

from shared.errors import ConflictError, InventoryRecordNotFoundError, LockUnavailableError

from inventory.ledger.port import LedgerStore, LockedStock, check_non_negative
from inventory.ledger.records import InventoryRecord, InventoryTransaction, TransactionType


class _MemoryLockedStock(LockedStock):
    def __init__(self, store: "MemoryLedgerStore", product_id: str) -> None:
        self._store = store
        self._product_id = product_id

    @property
    def record(self) -> InventoryRecord:
        return self._store.get(self._product_id)

    def apply(self, available_delta, reserved_delta, type, reference_id=None, reason=None) -> InventoryRecord:
        with self._store._mutex:
            current = self._store._records[self._product_id]
            return self._store._write(current, available_delta, reserved_delta, type, reference_id, reason)


class MemoryLedgerStore(LedgerStore):
    def __init__(self) -> None:
        self._records: dict[str, InventoryRecord] = {}
        self._transactions: list[InventoryTransaction] = []
        self._mutex = threading.Lock()
        self._product_locks: dict[str, threading.Lock] = {}

    def _product_lock(self, product_id: str) -> threading.Lock:
        with self._mutex:
            return self._product_locks.setdefault(product_id, threading.Lock())

    def _write(
        self,
        current: InventoryRecord,
        available_delta: int,
        reserved_delta: int,
        type: TransactionType,
        reference_id: str | None,
        reason: str | None,
    ) -> InventoryRecord:
        # Caller holds the mutex
        check_non_negative(current, available_delta, reserved_delta)
        updated = replace(
            current,
            available_quantity=current.available_quantity + available_delta,
            reserved_quantity=current.reserved_quantity + reserved_delta,
            version=current.version + 1,
            updated_at=datetime.now(UTC),
        )
        self._records[current.product_id] = updated
        self._transactions.append(
            InventoryTransaction(
                product_id=current.product_id,
                type=type,
                available_delta=available_delta,
                reserved_delta=reserved_delta,
                version=updated.version,
                reference_id=reference_id,
                reason=reason,
                created_at=updated.updated_at,
            )
        )
        return updated

    def get(self, product_id: str) -> InventoryRecord | None:
        with self._mutex:
            return self._records.get(product_id)

    def create(self, product_id: str, quantity: int, reference_id: str | None = None) -> InventoryRecord | None:
        with self._mutex:
            if product_id in self._records:
                return None
            now = datetime.now(UTC)
            record = InventoryRecord(
                product_id=product_id,
                available_quantity=quantity,
                reserved_quantity=0,
                version=1,
                updated_at=now,
            )
            self._records[product_id] = record
            if quantity > 0:
                self._transactions.append(
                    InventoryTransaction(
                        product_id=product_id,
                        type=TransactionType.RESTOCK,
                        available_delta=quantity,
                        reserved_delta=0,
                        version=1,
                        reference_id=reference_id,
                        reason="initial stock load",
                        created_at=now,
                    )
                )
            return record

    def apply_delta(
        self,
        product_id,
        available_delta,
        reserved_delta,
        expected_version,
        type,
        reference_id=None,
        reason=None,
    ) -> InventoryRecord:
        # Writers queue behind a strict-mode holder, as they would on a row lock
        with self._product_lock(product_id), self._mutex:
            current = self._records.get(product_id)
            if current is None:
                raise InventoryRecordNotFoundError(product_id)
            if current.version != expected_version:
                raise ConflictError(product_id, expected_version, current.version)
            return self._write(current, available_delta, reserved_delta, type, reference_id, reason)

    def transactions(self, product_id=None, reference_id=None) -> list[InventoryTransaction]:
        with self._mutex:
            return [
                txn
                for txn in self._transactions
                if (product_id is None or txn.product_id == product_id)
                and (reference_id is None or txn.reference_id == reference_id)
            ]

    @contextmanager
    def lock(self, product_id: str, nowait: bool = True) -> Iterator[LockedStock]:
        if self.get(product_id) is None:
            raise InventoryRecordNotFoundError(product_id)
        product_lock = self._product_lock(product_id)
        if not product_lock.acquire(blocking=not nowait):
            raise LockUnavailableError(product_id)
        try:
            yield _MemoryLockedStock(self, product_id)
        finally:
            product_lock.release()
