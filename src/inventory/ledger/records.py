"""Ledger value types.

``InventoryRecord`` and ``InventoryTransaction`` are immutable snapshots
handed out by the ledger stores. Stores never give callers a live reference
to their counters; every change goes through ``apply_delta``.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4


class TransactionType(Enum):
    RESERVE = "RESERVE"
    RELEASE = "RELEASE"
    CONFIRM = "CONFIRM"
    RESTOCK = "RESTOCK"
    ADJUSTMENT = "ADJUSTMENT"


def infer_transaction_type(available_delta: int, reserved_delta: int) -> TransactionType:
    """Classify a delta pair when the caller does not name the movement."""
    if available_delta < 0 and reserved_delta > 0:
        return TransactionType.RESERVE
    if available_delta > 0 and reserved_delta < 0:
        return TransactionType.RELEASE
    if available_delta == 0 and reserved_delta < 0:
        return TransactionType.CONFIRM
    if available_delta > 0 and reserved_delta == 0:
        return TransactionType.RESTOCK
    return TransactionType.ADJUSTMENT


@dataclass(frozen=True)
class InventoryRecord:
    product_id: str
    available_quantity: int
    reserved_quantity: int
    version: int
    updated_at: datetime

    @property
    def on_hand(self) -> int:
        return self.available_quantity + self.reserved_quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "available_quantity": self.available_quantity,
            "reserved_quantity": self.reserved_quantity,
            "version": self.version,
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class InventoryTransaction:
    product_id: str
    type: TransactionType
    available_delta: int
    reserved_delta: int
    version: int
    reference_id: str | None = None
    reason: str | None = None
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def quantity_change(self) -> int:
        """Signed change of the counter the movement is about.

        Reserve/release/confirm move the reserved pool; restock and
        adjustment move the available pool.
        """
        if self.type in (TransactionType.RESERVE, TransactionType.RELEASE, TransactionType.CONFIRM):
            return self.reserved_delta
        return self.available_delta

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "type": self.type.value,
            "quantity_change": self.quantity_change,
            "available_delta": self.available_delta,
            "reserved_delta": self.reserved_delta,
            "version": self.version,
            "reference_id": self.reference_id,
            "reason": self.reason,
            "created_at": self.created_at.isoformat(),
        }
