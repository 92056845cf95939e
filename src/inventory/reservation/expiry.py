"""Reservation expiry — the hold-timeout sweep and crash reconciliation.

Runs outside any request's control flow: ``src/server.py`` calls it on a
timer and ``POST /maintenance/expire-reservations`` triggers it on demand.
Each release goes through the coordinator's status compare-and-swap, so a
webhook committing the same reservation at the same moment makes one of
the two a no-op.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog
from shared.errors import CheckoutError

from inventory.reservation.coordinator import ReservationCoordinator
from inventory.reservation.reservation import Reservation, ReservationStatus

logger = structlog.get_logger(__name__)

TIMEOUT_REASON = "timeout"


@dataclass
class SweepResult:
    released: list[Reservation] = field(default_factory=list)
    settled: list[Reservation] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "released": [r.reservation_id for r in self.released],
            "settled": [r.reservation_id for r in self.settled],
            "skipped": self.skipped,
        }


class ReservationSweeper:
    def __init__(self, coordinator: ReservationCoordinator) -> None:
        self.coordinator = coordinator

    def expire(self, as_of: datetime | None = None) -> SweepResult:
        """Release every HELD reservation whose hold ran out."""
        as_of = as_of or datetime.now(UTC)
        result = SweepResult()

        expired = self.coordinator.list_expired(as_of)
        if not expired:
            logger.info("No expired reservations found", as_of=as_of.isoformat())
            return result

        for reservation in expired:
            try:
                released = self.coordinator.release(reservation.reservation_id, reason=TIMEOUT_REASON)
            except CheckoutError as exc:
                # Typically committed by a webhook since the listing
                logger.warning(
                    "Failed to release expired reservation",
                    reservation_id=reservation.reservation_id,
                    error=exc.code,
                )
                result.skipped.append(reservation.reservation_id)
                continue
            except Exception:
                logger.exception("Failed to release expired reservation", reservation_id=reservation.reservation_id)
                result.skipped.append(reservation.reservation_id)
                continue

            if released.status == ReservationStatus.RELEASED and released.release_reason == TIMEOUT_REASON:
                result.released.append(released)
                logger.info(
                    "Released expired reservation",
                    reservation_id=released.reservation_id,
                    order_id=released.order_id,
                    expired_at=reservation.expires_at.isoformat(),
                )
            else:
                result.skipped.append(reservation.reservation_id)

        logger.info("Reservation expiry sweep complete", released=len(result.released), skipped=len(result.skipped))
        return result

    def reconcile(self, as_of: datetime | None = None) -> SweepResult:
        """Finish interrupted settlements, then expire stale holds."""
        settled = []
        for reservation in self.coordinator.list_unsettled():
            try:
                settled.append(self.coordinator.settle(reservation.reservation_id))
            except CheckoutError as exc:
                logger.warning(
                    "Failed to settle reservation",
                    reservation_id=reservation.reservation_id,
                    error=exc.code,
                )
            except Exception:
                logger.exception("Failed to settle reservation", reservation_id=reservation.reservation_id)

        result = self.expire(as_of)
        result.settled = settled
        logger.info("Reservation reconciliation complete", settled=len(settled))
        return result
