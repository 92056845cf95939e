"""Idempotency store: a durable log keyed by idempotency key.

Both the Reservation Coordinator and the Order Saga keep one of these, each
in its own storage (its own table when SQL-backed). A request first *claims*
its key; a second request with the same key either gets the recorded result
back or, while the first is still running, a ``RequestInProgressError``.

Claims left behind by a crashed process become reclaimable once their lease
runs out.
"""

import json
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from enum import Enum

import structlog
from sqlalchemy import Column, DateTime, String, Table, Text, insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from shared.db import as_utc, metadata
from shared.errors import RequestInProgressError

logger = structlog.get_logger(__name__)

DEFAULT_LEASE_SECONDS = 300


class IdempotencyStatus(Enum):
    IN_PROGRESS = "In_Progress"
    COMPLETED = "Completed"
    FAILED = "Failed"


@dataclass(frozen=True)
class IdempotencyRecord:
    key: str
    scope: str
    status: str
    result: dict | None
    created_at: datetime
    updated_at: datetime

    @property
    def is_finished(self) -> bool:
        return self.status != IdempotencyStatus.IN_PROGRESS.value

    @property
    def failed(self) -> bool:
        return self.status == IdempotencyStatus.FAILED.value


class IdempotencyStore(ABC):
    """Abstract idempotency log."""

    def __init__(self, lease_seconds: int = DEFAULT_LEASE_SECONDS) -> None:
        self.lease = timedelta(seconds=lease_seconds)

    @abstractmethod
    def get(self, key: str) -> IdempotencyRecord | None:
        """Return the record for ``key``, if any."""
        ...

    @abstractmethod
    def _insert_claim(self, key: str, scope: str, now: datetime) -> bool:
        """Atomically create an in-progress claim. False if the key exists."""
        ...

    @abstractmethod
    def _take_over(self, record: IdempotencyRecord, now: datetime) -> bool:
        """Atomically refresh a stale claim. False if someone else did first."""
        ...

    @abstractmethod
    def _finish(self, key: str, status: IdempotencyStatus, result: dict, now: datetime) -> IdempotencyRecord:
        ...

    @abstractmethod
    def release(self, key: str) -> None:
        """Drop an in-progress claim so the request can be retried."""
        ...

    def claim(self, key: str, scope: str) -> IdempotencyRecord | None:
        """Claim ``key`` for a new request.

        Returns None when the caller now owns the key and must do the work.
        Returns the finished record when the work was already done.
        Raises ``RequestInProgressError`` while another caller owns it.
        """
        now = datetime.now(UTC)
        if self._insert_claim(key, scope, now):
            return None

        existing = self.get(key)
        if existing is None:
            # Released between our insert and read; try once more
            if self._insert_claim(key, scope, now):
                return None
            existing = self.get(key)
            if existing is None:
                raise RequestInProgressError(key)

        if existing.is_finished:
            return existing

        if existing.updated_at + self.lease <= now and self._take_over(existing, now):
            logger.warning("Reclaimed stale idempotency claim", key=key, scope=scope)
            return None

        raise RequestInProgressError(key)

    def complete(self, key: str, result: dict) -> IdempotencyRecord:
        return self._finish(key, IdempotencyStatus.COMPLETED, result, datetime.now(UTC))

    def fail(self, key: str, result: dict) -> IdempotencyRecord:
        """Record a definitive (non-transient) failure so replays see it too."""
        return self._finish(key, IdempotencyStatus.FAILED, result, datetime.now(UTC))


# ---------------------------------------------------------------------------
# In-memory adapter
# ---------------------------------------------------------------------------
class MemoryIdempotencyStore(IdempotencyStore):
    def __init__(self, lease_seconds: int = DEFAULT_LEASE_SECONDS) -> None:
        super().__init__(lease_seconds)
        self._records: dict[str, IdempotencyRecord] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> IdempotencyRecord | None:
        with self._lock:
            return self._records.get(key)

    def _insert_claim(self, key: str, scope: str, now: datetime) -> bool:
        with self._lock:
            if key in self._records:
                return False
            self._records[key] = IdempotencyRecord(
                key=key,
                scope=scope,
                status=IdempotencyStatus.IN_PROGRESS.value,
                result=None,
                created_at=now,
                updated_at=now,
            )
            return True

    def _take_over(self, record: IdempotencyRecord, now: datetime) -> bool:
        with self._lock:
            if self._records.get(record.key) != record:
                return False
            self._records[record.key] = replace(record, updated_at=now)
            return True

    def _finish(self, key: str, status: IdempotencyStatus, result: dict, now: datetime) -> IdempotencyRecord:
        with self._lock:
            current = self._records.get(key)
            if current is None:
                current = IdempotencyRecord(key, "", status.value, None, now, now)
            finished = replace(current, status=status.value, result=result, updated_at=now)
            self._records[key] = finished
            return finished

    def release(self, key: str) -> None:
        with self._lock:
            current = self._records.get(key)
            if current is not None and not current.is_finished:
                del self._records[key]


# ---------------------------------------------------------------------------
# SQLAlchemy adapter
# ---------------------------------------------------------------------------
def idempotency_table(name: str) -> Table:
    return Table(
        name,
        metadata,
        Column("key", String(255), primary_key=True),
        Column("scope", String(50), nullable=False),
        Column("status", String(20), nullable=False),
        Column("result", Text),
        Column("created_at", DateTime(timezone=True), nullable=False),
        Column("updated_at", DateTime(timezone=True), nullable=False),
    )


reservation_keys = idempotency_table("reservation_idempotency_keys")
order_keys = idempotency_table("order_idempotency_keys")


class SqlAlchemyIdempotencyStore(IdempotencyStore):
    def __init__(self, engine: Engine, table: Table, lease_seconds: int = DEFAULT_LEASE_SECONDS) -> None:
        super().__init__(lease_seconds)
        self.engine = engine
        self.table = table

    def _to_record(self, row) -> IdempotencyRecord:
        return IdempotencyRecord(
            key=row.key,
            scope=row.scope,
            status=row.status,
            result=json.loads(row.result) if row.result else None,
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at),
        )

    def get(self, key: str) -> IdempotencyRecord | None:
        with self.engine.connect() as conn:
            row = conn.execute(select(self.table).where(self.table.c.key == key)).first()
        return self._to_record(row) if row else None

    def _insert_claim(self, key: str, scope: str, now: datetime) -> bool:
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    insert(self.table).values(
                        key=key,
                        scope=scope,
                        status=IdempotencyStatus.IN_PROGRESS.value,
                        result=None,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError:
            return False
        return True

    def _take_over(self, record: IdempotencyRecord, now: datetime) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                update(self.table)
                .where(
                    self.table.c.key == record.key,
                    self.table.c.status == IdempotencyStatus.IN_PROGRESS.value,
                    self.table.c.updated_at == record.updated_at,
                )
                .values(updated_at=now)
            )
        return result.rowcount == 1

    def _finish(self, key: str, status: IdempotencyStatus, result: dict, now: datetime) -> IdempotencyRecord:
        with self.engine.begin() as conn:
            conn.execute(
                update(self.table)
                .where(self.table.c.key == key)
                .values(status=status.value, result=json.dumps(result), updated_at=now)
            )
        return self.get(key)

    def release(self, key: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                self.table.delete().where(
                    self.table.c.key == key,
                    self.table.c.status == IdempotencyStatus.IN_PROGRESS.value,
                )
            )
