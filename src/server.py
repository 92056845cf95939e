"""Background runner for the checkout hold-timeout sweep.

Releases reservations whose hold ran out and cancels the orders still
waiting for their payment, every SWEEP_INTERVAL_SECONDS. Each run is
idempotent, so several runners may share a database.

Usage:
    python src/server.py                  # Sweep forever
    python src/server.py --once           # Single sweep, then exit
    python src/server.py --reconcile      # Also finish interrupted settlements
"""

import argparse
import asyncio

import structlog
from shared import config
from shared.errors import CheckoutError
from shared.logging import configure_logging

logger = structlog.get_logger(__name__)


def _get_sweeper():
    """Initialize the domains and build a sweeper over the default saga."""
    from ordering.checkout import get_saga
    from ordering.checkout.expiry import CheckoutSweeper
    from ordering.domain import ordering
    from payments.domain import payments

    payments.init()
    ordering.init()
    return CheckoutSweeper(get_saga())


async def run(interval: float, once: bool = False, reconcile: bool = False) -> None:
    sweeper = _get_sweeper()
    logger.info("Sweep runner started", interval=interval, reconcile=reconcile)

    while True:
        try:
            # The sweep blocks on storage and the provider; keep the loop free
            await asyncio.to_thread(sweeper.run, None, reconcile)
        except CheckoutError as exc:
            logger.error("Sweep run failed", error=exc.code, message=exc.message)
        except Exception:
            # Retried on the next run
            logger.exception("Sweep run failed")
        if once:
            return
        await asyncio.sleep(interval)


def main():
    parser = argparse.ArgumentParser(description="Checkout hold-timeout sweep runner")
    parser.add_argument("--interval", type=float, default=config.SWEEP_INTERVAL_SECONDS)
    parser.add_argument("--once", action="store_true", help="Run a single sweep and exit")
    parser.add_argument("--reconcile", action="store_true", help="Settle interrupted reservations first")
    args = parser.parse_args()

    configure_logging()
    asyncio.run(run(args.interval, once=args.once, reconcile=args.reconcile))


if __name__ == "__main__":
    main()
