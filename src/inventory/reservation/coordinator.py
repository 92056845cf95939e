"""Reservation Coordinator — reserve / commit / release over the ledger.

Every stock movement goes through the ledger's compare-and-swap with a
bounded retry on version conflicts. A reservation's ledger effect is never
tracked separately: the transaction log, keyed by ``reference_id =
reservation_id``, *is* the record of what has been applied. Settling a
reservation therefore means "apply whatever the log shows is still
outstanding", which is safe to repeat after a crash or a lost race.

Finalizing is two steps:
    1. claim the terminal state with a status compare-and-swap
       (HELD → COMMITTED or HELD → RELEASED); exactly one caller wins
    2. settle the ledger from the log, then flag the reservation settled
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import structlog
from protean.exceptions import ValidationError
from shared import config
from shared.errors import (
    InsufficientStockError,
    InventoryRecordNotFoundError,
    ReservationNotFoundError,
    ReservationStateError,
    RetryExhaustedError,
)
from shared.idempotency import IdempotencyRecord, IdempotencyStore

from inventory.ledger.ledger import InventoryLedger, retry_on_conflict
from inventory.ledger.records import TransactionType
from inventory.reservation.reservation import Reservation, ReservationLine, ReservationStatus
from inventory.reservation.store import ReservationStore

logger = structlog.get_logger(__name__)


def normalize_items(items) -> tuple[ReservationLine, ...]:
    """Merge duplicate product lines and validate quantities.

    Accepts dicts with ``product_id``/``quantity`` or ``ReservationLine``s.
    """
    if not items:
        raise ValidationError({"items": ["At least one item is required"]})

    merged: dict[str, int] = {}
    for item in items:
        if isinstance(item, ReservationLine):
            product_id, quantity = item.product_id, item.quantity
        else:
            product_id, quantity = item.get("product_id"), item.get("quantity")
        if not product_id:
            raise ValidationError({"product_id": ["Product id is required"]})
        if not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError({"quantity": [f"Quantity for {product_id} must be a positive integer"]})
        merged[str(product_id)] = merged.get(str(product_id), 0) + quantity

    # Sorted so concurrent multi-product reservations touch rows in one order
    return tuple(ReservationLine(pid, qty) for pid, qty in sorted(merged.items()))


class ReservationCoordinator:
    def __init__(
        self,
        ledger: InventoryLedger,
        store: ReservationStore,
        idempotency: IdempotencyStore,
        hold_minutes: int | None = None,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
    ) -> None:
        self.ledger = ledger
        self.store = store
        self.idempotency = idempotency
        self.hold = timedelta(minutes=hold_minutes or config.RESERVATION_HOLD_MINUTES)
        self.max_attempts = max_attempts or config.RESERVATION_MAX_ATTEMPTS
        self.backoff_seconds = config.RESERVATION_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def get(self, reservation_id: str) -> Reservation:
        reservation = self.store.get(reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(reservation_id)
        return reservation

    def for_order(self, order_id: str) -> list[Reservation]:
        return self.store.for_order(order_id)

    def list_expired(self, as_of: datetime | None = None) -> list[Reservation]:
        return self.store.list_expired(as_of or datetime.now(UTC))

    def list_unsettled(self) -> list[Reservation]:
        return self.store.list_unsettled()

    def list_released(self, reason: str) -> list[Reservation]:
        return self.store.list_released(reason)

    # -------------------------------------------------------------------
    # Reserve
    # -------------------------------------------------------------------
    def reserve(self, order_id: str, idempotency_key: str, items) -> Reservation:
        """Hold stock for every line or for none of them.

        Replays of ``idempotency_key`` return the first call's reservation,
        or raise its ``InsufficientStockError`` again, without touching the
        ledger.
        """
        if not idempotency_key:
            raise ValidationError({"idempotency_key": ["Idempotency key is required"]})
        lines = normalize_items(items)

        previous = self.idempotency.claim(idempotency_key, scope="reserve")
        if previous is not None:
            return self._replay(idempotency_key, previous)

        try:
            reservation = self._reserve(order_id, idempotency_key, lines)
        except InsufficientStockError as exc:
            self.idempotency.fail(idempotency_key, exc.to_dict())
            raise
        except Exception:
            # Transient (retry budget, storage): let the caller retry the key
            self.idempotency.release(idempotency_key)
            raise

        self.idempotency.complete(
            idempotency_key,
            {"reservation_id": reservation.reservation_id, "order_id": order_id},
        )
        return reservation

    def _replay(self, idempotency_key: str, previous: IdempotencyRecord) -> Reservation:
        result = previous.result or {}
        logger.info("Replaying reservation request", idempotency_key=idempotency_key, failed=previous.failed)
        if previous.failed:
            raise InsufficientStockError(result["product_id"], result["requested"], result["available"])
        return self.get(result["reservation_id"])

    def _reserve(self, order_id: str, idempotency_key: str, lines: tuple[ReservationLine, ...]) -> Reservation:
        now = datetime.now(UTC)
        reservation = Reservation(
            reservation_id=str(uuid4()),
            order_id=order_id,
            idempotency_key=idempotency_key,
            lines=lines,
            status=ReservationStatus.HELD,
            created_at=now,
            expires_at=now + self.hold,
            updated_at=now,
        )
        # Persisted before any delta so a crash leaves a row to reconcile
        self.store.add(reservation)
        rid = reservation.reservation_id

        try:
            for line in lines:
                self._hold_line(rid, line)
        except (InsufficientStockError, RetryExhaustedError) as exc:
            logger.warning(
                "Reservation rolled back",
                reservation_id=rid,
                order_id=order_id,
                product_id=exc.product_id,
                reason=exc.code,
            )
            self._finalize(rid, ReservationStatus.RELEASED, release_reason=exc.code)
            raise

        self.store.mark_settled(rid, ReservationStatus.HELD)
        current = self.get(rid)
        if current.is_terminal:
            # Finalized by someone else while lines were still being applied
            self._settle(current)
            current = self.get(rid)

        logger.info(
            "Reservation held",
            reservation_id=rid,
            order_id=order_id,
            items=current.items,
            expires_at=current.expires_at.isoformat(),
        )
        return current

    def _hold_line(self, reservation_id: str, line: ReservationLine) -> None:
        def _attempt() -> int:
            try:
                current = self.ledger.get_stock(line.product_id)
            except InventoryRecordNotFoundError as exc:
                # Never stocked: same business outcome as none left
                raise InsufficientStockError(line.product_id, line.quantity, 0) from exc
            if current.available_quantity < line.quantity:
                raise InsufficientStockError(line.product_id, line.quantity, current.available_quantity)
            return self.ledger.apply_delta(
                line.product_id,
                -line.quantity,
                line.quantity,
                current.version,
                type=TransactionType.RESERVE,
                reference_id=reservation_id,
            )

        retry_on_conflict(line.product_id, _attempt, self.max_attempts, self.backoff_seconds)

    # -------------------------------------------------------------------
    # Commit / Release
    # -------------------------------------------------------------------
    def commit(self, reservation_id: str) -> Reservation:
        """Convert held stock into a sale. Repeating a commit is a no-op."""
        reservation = self.get(reservation_id)
        if reservation.status == ReservationStatus.RELEASED:
            raise ReservationStateError(reservation_id, reservation.status.value, "commit")
        if reservation.status == ReservationStatus.COMMITTED:
            logger.info("Reservation already committed", reservation_id=reservation_id)
            return self._ensure_settled(reservation)

        if not self._finalize(reservation_id, ReservationStatus.COMMITTED):
            # Lost the race to another finalizer; decide on what it did
            return self.commit(reservation_id)

        logger.info("Reservation committed", reservation_id=reservation_id, order_id=reservation.order_id)
        return self.get(reservation_id)

    def release(self, reservation_id: str, reason: str = "released") -> Reservation:
        """Return held stock to available.

        A no-op on a RELEASED reservation. A COMMITTED one is rejected: sold
        stock cannot be un-sold through this path.
        """
        reservation = self.get(reservation_id)
        if reservation.status == ReservationStatus.COMMITTED:
            raise ReservationStateError(reservation_id, reservation.status.value, "release")
        if reservation.status == ReservationStatus.RELEASED:
            logger.info("Reservation already released", reservation_id=reservation_id)
            return self._ensure_settled(reservation)

        if not self._finalize(reservation_id, ReservationStatus.RELEASED, release_reason=reason):
            return self.release(reservation_id, reason)

        logger.info(
            "Reservation released",
            reservation_id=reservation_id,
            order_id=reservation.order_id,
            reason=reason,
        )
        return self.get(reservation_id)

    def settle(self, reservation_id: str) -> Reservation:
        """Bring the ledger in line with a terminal reservation's status."""
        return self._ensure_settled(self.get(reservation_id))

    def _finalize(
        self,
        reservation_id: str,
        status: ReservationStatus,
        release_reason: str | None = None,
    ) -> bool:
        claimed = self.store.transition(reservation_id, ReservationStatus.HELD, status, release_reason=release_reason)
        if claimed is None:
            return False
        self._settle(claimed)
        return True

    def _ensure_settled(self, reservation: Reservation) -> Reservation:
        if reservation.settled:
            return reservation
        self._settle(reservation)
        return self.get(reservation.reservation_id)

    def _settle(self, reservation: Reservation) -> None:
        if reservation.status == ReservationStatus.COMMITTED:
            txn_type = TransactionType.CONFIRM
        elif reservation.status == ReservationStatus.RELEASED:
            txn_type = TransactionType.RELEASE
        else:
            return

        rid = reservation.reservation_id
        for line in reservation.lines:
            self._settle_line(rid, line.product_id, txn_type)
        self.store.mark_settled(rid, reservation.status)

    def _settle_line(self, reservation_id: str, product_id: str, txn_type: TransactionType) -> None:
        def _attempt() -> int | None:
            # Version is read before the log: a settler that applies in
            # between bumps the version and this attempt then conflicts.
            current = self.ledger.find_stock(product_id)
            if current is None:
                # Never stocked, so nothing of it was ever held
                return None
            outstanding = self._held_quantity(reservation_id, product_id)
            if outstanding <= 0:
                return None
            available_delta = outstanding if txn_type == TransactionType.RELEASE else 0
            return self.ledger.apply_delta(
                product_id,
                available_delta,
                -outstanding,
                current.version,
                type=txn_type,
                reference_id=reservation_id,
            )

        retry_on_conflict(product_id, _attempt, self.max_attempts, self.backoff_seconds)

    def _held_quantity(self, reservation_id: str, product_id: str) -> int:
        """Quantity the log still shows in the reserved pool for this reservation."""
        return sum(
            txn.reserved_delta for txn in self.ledger.transactions(product_id=product_id, reference_id=reservation_id)
        )
