"""SQLAlchemy ledger store (SQLite or PostgreSQL).

The compare-and-swap is one conditional ``UPDATE``: it matches only when the
version is the expected one and both counters stay non-negative. The
transaction row is inserted in the same database transaction. When the
``UPDATE`` matches nothing, the row is re-read to report why.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from shared.db import as_utc, metadata
from shared.errors import ConflictError, InventoryRecordNotFoundError, LockUnavailableError
from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    String,
    Table,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, OperationalError

from inventory.ledger.port import LedgerStore, LockedStock, check_non_negative
from inventory.ledger.records import InventoryRecord, InventoryTransaction, TransactionType

inventory_records = Table(
    "inventory_records",
    metadata,
    Column("product_id", String(100), primary_key=True),
    Column("available_quantity", Integer, nullable=False),
    Column("reserved_quantity", Integer, nullable=False, default=0),
    Column("version", Integer, nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    CheckConstraint("available_quantity >= 0", name="ck_inventory_available_non_negative"),
    CheckConstraint("reserved_quantity >= 0", name="ck_inventory_reserved_non_negative"),
)

inventory_transactions = Table(
    "inventory_transactions",
    metadata,
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("id", String(36), nullable=False, unique=True),
    Column("product_id", String(100), nullable=False, index=True),
    Column("type", String(20), nullable=False),
    Column("available_delta", Integer, nullable=False),
    Column("reserved_delta", Integer, nullable=False),
    Column("version", Integer, nullable=False),
    Column("reference_id", String(100), index=True),
    Column("reason", String(255)),
    Column("created_at", DateTime(timezone=True), nullable=False),
)


def _to_record(row) -> InventoryRecord:
    return InventoryRecord(
        product_id=row.product_id,
        available_quantity=row.available_quantity,
        reserved_quantity=row.reserved_quantity,
        version=row.version,
        updated_at=as_utc(row.updated_at),
    )


def _to_transaction(row) -> InventoryTransaction:
    return InventoryTransaction(
        id=row.id,
        product_id=row.product_id,
        type=TransactionType(row.type),
        available_delta=row.available_delta,
        reserved_delta=row.reserved_delta,
        version=row.version,
        reference_id=row.reference_id,
        reason=row.reason,
        created_at=as_utc(row.created_at),
    )


def _select_record(conn: Connection, product_id: str) -> InventoryRecord | None:
    row = conn.execute(select(inventory_records).where(inventory_records.c.product_id == product_id)).first()
    return _to_record(row) if row else None


def _insert_transaction(conn: Connection, txn: InventoryTransaction) -> None:
    conn.execute(
        insert(inventory_transactions).values(
            id=txn.id,
            product_id=txn.product_id,
            type=txn.type.value,
            available_delta=txn.available_delta,
            reserved_delta=txn.reserved_delta,
            version=txn.version,
            reference_id=txn.reference_id,
            reason=txn.reason,
            created_at=txn.created_at,
        )
    )


class _SqlLockedStock(LockedStock):
    def __init__(self, conn: Connection, product_id: str) -> None:
        self._conn = conn
        self._product_id = product_id

    @property
    def record(self) -> InventoryRecord:
        return _select_record(self._conn, self._product_id)

    def apply(self, available_delta, reserved_delta, type, reference_id=None, reason=None) -> InventoryRecord:
        current = self.record
        check_non_negative(current, available_delta, reserved_delta)
        now = datetime.now(UTC)
        self._conn.execute(
            update(inventory_records)
            .where(inventory_records.c.product_id == self._product_id)
            .values(
                available_quantity=inventory_records.c.available_quantity + available_delta,
                reserved_quantity=inventory_records.c.reserved_quantity + reserved_delta,
                version=inventory_records.c.version + 1,
                updated_at=now,
            )
        )
        _insert_transaction(
            self._conn,
            InventoryTransaction(
                product_id=self._product_id,
                type=type,
                available_delta=available_delta,
                reserved_delta=reserved_delta,
                version=current.version + 1,
                reference_id=reference_id,
                reason=reason,
                created_at=now,
            ),
        )
        return self.record


class SqlAlchemyLedgerStore(LedgerStore):
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def get(self, product_id: str) -> InventoryRecord | None:
        with self.engine.connect() as conn:
            return _select_record(conn, product_id)

    def create(self, product_id: str, quantity: int, reference_id: str | None = None) -> InventoryRecord | None:
        now = datetime.now(UTC)
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    insert(inventory_records).values(
                        product_id=product_id,
                        available_quantity=quantity,
                        reserved_quantity=0,
                        version=1,
                        updated_at=now,
                    )
                )
                if quantity > 0:
                    _insert_transaction(
                        conn,
                        InventoryTransaction(
                            product_id=product_id,
                            type=TransactionType.RESTOCK,
                            available_delta=quantity,
                            reserved_delta=0,
                            version=1,
                            reference_id=reference_id,
                            reason="initial stock load",
                            created_at=now,
                        ),
                    )
                return _select_record(conn, product_id)
        except IntegrityError:
            return None

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
        now = datetime.now(UTC)
        with self.engine.begin() as conn:
            result = conn.execute(
                update(inventory_records)
                .where(
                    inventory_records.c.product_id == product_id,
                    inventory_records.c.version == expected_version,
                    inventory_records.c.available_quantity + available_delta >= 0,
                    inventory_records.c.reserved_quantity + reserved_delta >= 0,
                )
                .values(
                    available_quantity=inventory_records.c.available_quantity + available_delta,
                    reserved_quantity=inventory_records.c.reserved_quantity + reserved_delta,
                    version=inventory_records.c.version + 1,
                    updated_at=now,
                )
            )
            if result.rowcount == 1:
                _insert_transaction(
                    conn,
                    InventoryTransaction(
                        product_id=product_id,
                        type=type,
                        available_delta=available_delta,
                        reserved_delta=reserved_delta,
                        version=expected_version + 1,
                        reference_id=reference_id,
                        reason=reason,
                        created_at=now,
                    ),
                )
                return _select_record(conn, product_id)

        current = self.get(product_id)
        if current is None:
            raise InventoryRecordNotFoundError(product_id)
        if current.version != expected_version:
            raise ConflictError(product_id, expected_version, current.version)
        check_non_negative(current, available_delta, reserved_delta)
        # Matched neither way: the row moved and moved back between statements
        raise ConflictError(product_id, expected_version, current.version)

    def transactions(self, product_id=None, reference_id=None) -> list[InventoryTransaction]:
        query = select(inventory_transactions).order_by(inventory_transactions.c.seq)
        if product_id is not None:
            query = query.where(inventory_transactions.c.product_id == product_id)
        if reference_id is not None:
            query = query.where(inventory_transactions.c.reference_id == reference_id)
        with self.engine.connect() as conn:
            return [_to_transaction(row) for row in conn.execute(query)]

    @contextmanager
    def lock(self, product_id: str, nowait: bool = True) -> Iterator[LockedStock]:
        # SELECT ... FOR UPDATE [NOWAIT]; SQLite ignores the clause and
        # serializes writers on its database lock instead.
        with self.engine.begin() as conn:
            try:
                row = conn.execute(
                    select(inventory_records)
                    .where(inventory_records.c.product_id == product_id)
                    .with_for_update(nowait=nowait)
                ).first()
            except OperationalError as exc:
                raise LockUnavailableError(product_id) from exc
            if row is None:
                raise InventoryRecordNotFoundError(product_id)
            yield _SqlLockedStock(conn, product_id)
