"""SQLAlchemy reservation store (SQLite or PostgreSQL)."""

from datetime import UTC, datetime

from shared.db import as_utc, metadata
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Table, insert, select, update
from sqlalchemy.engine import Engine

from inventory.reservation.reservation import Reservation, ReservationLine, ReservationStatus
from inventory.reservation.store import ReservationStore

reservations = Table(
    "reservations",
    metadata,
    Column("reservation_id", String(36), primary_key=True),
    Column("order_id", String(100), nullable=False, index=True),
    Column("idempotency_key", String(255), nullable=False),
    Column("status", String(20), nullable=False, index=True),
    Column("settled", Boolean, nullable=False, default=False),
    Column("release_reason", String(100)),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("expires_at", DateTime(timezone=True), nullable=False, index=True),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

reservation_lines = Table(
    "reservation_lines",
    metadata,
    Column("reservation_id", String(36), ForeignKey("reservations.reservation_id"), primary_key=True),
    Column("product_id", String(100), primary_key=True),
    Column("quantity", Integer, nullable=False),
)


class SqlAlchemyReservationStore(ReservationStore):
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def _load(self, conn, rows) -> list[Reservation]:
        rows = list(rows)
        if not rows:
            return []
        ids = [row.reservation_id for row in rows]
        lines: dict[str, list[ReservationLine]] = {rid: [] for rid in ids}
        for line in conn.execute(
            select(reservation_lines)
            .where(reservation_lines.c.reservation_id.in_(ids))
            .order_by(reservation_lines.c.product_id)
        ):
            lines[line.reservation_id].append(ReservationLine(line.product_id, line.quantity))

        return [
            Reservation(
                reservation_id=row.reservation_id,
                order_id=row.order_id,
                idempotency_key=row.idempotency_key,
                lines=tuple(lines[row.reservation_id]),
                status=ReservationStatus(row.status),
                created_at=as_utc(row.created_at),
                expires_at=as_utc(row.expires_at),
                updated_at=as_utc(row.updated_at),
                settled=row.settled,
                release_reason=row.release_reason,
            )
            for row in rows
        ]

    def add(self, reservation: Reservation) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                insert(reservations).values(
                    reservation_id=reservation.reservation_id,
                    order_id=reservation.order_id,
                    idempotency_key=reservation.idempotency_key,
                    status=reservation.status.value,
                    settled=reservation.settled,
                    release_reason=reservation.release_reason,
                    created_at=reservation.created_at,
                    expires_at=reservation.expires_at,
                    updated_at=reservation.updated_at,
                )
            )
            conn.execute(
                insert(reservation_lines),
                [
                    {
                        "reservation_id": reservation.reservation_id,
                        "product_id": line.product_id,
                        "quantity": line.quantity,
                    }
                    for line in reservation.lines
                ],
            )

    def get(self, reservation_id: str) -> Reservation | None:
        with self.engine.connect() as conn:
            found = self._load(
                conn,
                conn.execute(select(reservations).where(reservations.c.reservation_id == reservation_id)),
            )
        return found[0] if found else None

    def for_order(self, order_id: str) -> list[Reservation]:
        with self.engine.connect() as conn:
            return self._load(
                conn,
                conn.execute(
                    select(reservations)
                    .where(reservations.c.order_id == order_id)
                    .order_by(reservations.c.created_at)
                ),
            )

    def transition(self, reservation_id, from_status, to_status, release_reason=None) -> Reservation | None:
        with self.engine.begin() as conn:
            result = conn.execute(
                update(reservations)
                .where(
                    reservations.c.reservation_id == reservation_id,
                    reservations.c.status == from_status.value,
                )
                .values(
                    status=to_status.value,
                    settled=False,
                    release_reason=release_reason,
                    updated_at=datetime.now(UTC),
                )
            )
        if result.rowcount != 1:
            return None
        return self.get(reservation_id)

    def mark_settled(self, reservation_id: str, status: ReservationStatus) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                update(reservations)
                .where(
                    reservations.c.reservation_id == reservation_id,
                    reservations.c.status == status.value,
                )
                .values(settled=True)
            )

    def list_expired(self, as_of: datetime) -> list[Reservation]:
        with self.engine.connect() as conn:
            return self._load(
                conn,
                conn.execute(
                    select(reservations).where(
                        reservations.c.status == ReservationStatus.HELD.value,
                        reservations.c.expires_at <= as_of,
                    )
                ),
            )

    def list_unsettled(self) -> list[Reservation]:
        with self.engine.connect() as conn:
            return self._load(
                conn,
                conn.execute(
                    select(reservations).where(
                        reservations.c.status != ReservationStatus.HELD.value,
                        reservations.c.settled.is_(False),
                    )
                ),
            )

    def list_released(self, reason: str) -> list[Reservation]:
        with self.engine.connect() as conn:
            return self._load(
                conn,
                conn.execute(
                    select(reservations).where(
                        reservations.c.status == ReservationStatus.RELEASED.value,
                        reservations.c.release_reason == reason,
                    )
                ),
            )
