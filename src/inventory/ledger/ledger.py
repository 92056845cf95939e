"""Inventory Ledger — the only component that mutates stock counters.

``apply_delta`` is the single low-level mutation primitive: an optimistic
compare-and-swap on the record's version that writes exactly one
``InventoryTransaction`` per successful call. ``restock`` and ``adjust`` are
conveniences built on it; ``lock`` exposes the strict mode for short,
single-statement work under heavy contention on one hot product.
"""

import random
import time
from collections.abc import Callable
from contextlib import AbstractContextManager
from typing import TypeVar

import structlog
from protean.exceptions import ValidationError
from shared import config
from shared.errors import ConflictError, InventoryRecordNotFoundError, RetryExhaustedError

from inventory.ledger.port import LedgerStore, LockedStock
from inventory.ledger.records import (
    InventoryRecord,
    InventoryTransaction,
    TransactionType,
    infer_transaction_type,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def retry_on_conflict(
    product_id: str,
    operation: Callable[[], T],
    max_attempts: int,
    backoff_seconds: float,
) -> T:
    """Run ``operation`` until it stops raising ``ConflictError``.

    ``operation`` must re-read the version on every call. Backoff doubles per
    attempt with jitter. Any other exception propagates immediately.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except ConflictError as exc:
            if attempt == max_attempts:
                break
            delay = backoff_seconds * (2 ** (attempt - 1))
            logger.info(
                "Stock version conflict, retrying",
                product_id=product_id,
                attempt=attempt,
                expected_version=exc.expected_version,
                actual_version=exc.actual_version,
            )
            time.sleep(delay + random.uniform(0, delay))

    logger.warning("Retry budget exhausted", product_id=product_id, attempts=max_attempts)
    raise RetryExhaustedError(product_id, max_attempts)


class InventoryLedger:
    def __init__(
        self,
        store: LedgerStore,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
    ) -> None:
        self.store = store
        self.max_attempts = max_attempts or config.RESERVATION_MAX_ATTEMPTS
        self.backoff_seconds = config.RESERVATION_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get_stock(self, product_id: str) -> InventoryRecord:
        """Return (available, reserved, version) for a product. No locking."""
        record = self.store.get(product_id)
        if record is None:
            raise InventoryRecordNotFoundError(product_id)
        return record

    def find_stock(self, product_id: str) -> InventoryRecord | None:
        return self.store.get(product_id)

    def transactions(
        self,
        product_id: str | None = None,
        reference_id: str | None = None,
    ) -> list[InventoryTransaction]:
        return self.store.transactions(product_id=product_id, reference_id=reference_id)

    # -------------------------------------------------------------------
    # The compare-and-swap primitive
    # -------------------------------------------------------------------
    def apply_delta(
        self,
        product_id: str,
        available_delta: int,
        reserved_delta: int,
        expected_version: int,
        type: TransactionType | None = None,
        reference_id: str | None = None,
        reason: str | None = None,
    ) -> int:
        """Atomically apply both deltas iff the version still matches.

        Returns the new version. Raises ``ConflictError`` on a version
        mismatch and ``InsufficientStockError`` when a counter would go
        negative.
        """
        if available_delta == 0 and reserved_delta == 0:
            raise ValidationError({"delta": ["At least one of the deltas must be non-zero"]})

        txn_type = type or infer_transaction_type(available_delta, reserved_delta)
        record = self.store.apply_delta(
            product_id,
            available_delta,
            reserved_delta,
            expected_version,
            txn_type,
            reference_id=reference_id,
            reason=reason,
        )
        logger.debug(
            "Stock delta applied",
            product_id=product_id,
            type=txn_type.value,
            available_delta=available_delta,
            reserved_delta=reserved_delta,
            version=record.version,
            reference_id=reference_id,
        )
        return record.version

    # -------------------------------------------------------------------
    # Stock management
    # -------------------------------------------------------------------
    def load_stock(self, product_id: str, quantity: int, reference_id: str | None = None) -> InventoryRecord:
        """Create the record on first load; loading again is a restock."""
        if quantity < 0:
            raise ValidationError({"quantity": ["Quantity cannot be negative"]})

        record = self.store.create(product_id, quantity, reference_id=reference_id)
        if record is not None:
            logger.info("Stock loaded", product_id=product_id, quantity=quantity)
            return record
        if quantity == 0:
            return self.get_stock(product_id)
        return self.restock(product_id, quantity, reference_id=reference_id)

    def restock(self, product_id: str, quantity: int, reference_id: str | None = None) -> InventoryRecord:
        if quantity <= 0:
            raise ValidationError({"quantity": ["Restock quantity must be positive"]})

        def _restock() -> int:
            current = self.get_stock(product_id)
            return self.apply_delta(
                product_id,
                quantity,
                0,
                current.version,
                type=TransactionType.RESTOCK,
                reference_id=reference_id,
            )

        retry_on_conflict(product_id, _restock, self.max_attempts, self.backoff_seconds)
        logger.info("Stock restocked", product_id=product_id, quantity=quantity, reference_id=reference_id)
        return self.get_stock(product_id)

    def adjust(self, product_id: str, delta: int, reason: str) -> InventoryRecord:
        """Manual correction of available stock. Never drives it negative."""
        if delta == 0:
            raise ValidationError({"delta": ["Adjustment cannot be zero"]})
        if not reason:
            raise ValidationError({"reason": ["Adjustment reason is required"]})

        def _adjust() -> int:
            current = self.get_stock(product_id)
            return self.apply_delta(
                product_id,
                delta,
                0,
                current.version,
                type=TransactionType.ADJUSTMENT,
                reason=reason,
            )

        retry_on_conflict(product_id, _adjust, self.max_attempts, self.backoff_seconds)
        logger.info("Stock adjusted", product_id=product_id, delta=delta, reason=reason)
        return self.get_stock(product_id)

    def lock(self, product_id: str, nowait: bool = True) -> AbstractContextManager[LockedStock]:
        """Strict mode. Never hold this across a network call."""
        return self.store.lock(product_id, nowait=nowait)
