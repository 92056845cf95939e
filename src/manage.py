"""Checkout database management CLI.

Provides commands to create and drop the checkout tables (ledger,
reservations, idempotency logs) and the protean domains' SQL tables, and to
run the expiry sweep by hand.

Usage:
    python src/manage.py setup-db    # Create all tables
    python src/manage.py drop-db     # Drop all tables
    python src/manage.py sweep       # Release expired reservations once
    python src/manage.py reconcile   # Settle interrupted reservations, then sweep
"""

import argparse
import json
import sys


def _domains():
    from ordering.domain import ordering
    from payments.domain import payments

    payments.init()
    ordering.init()
    return {"payments": payments, "ordering": ordering}


def setup_databases():
    """Create the checkout tables and the domains' SQL tables."""
    from shared.db import get_engine, setup_db, setup_domain_db

    print("Creating checkout store tables...")
    setup_db(get_engine())
    for name, domain in _domains().items():
        print(f"Creating {name} database schema...")
        setup_domain_db(domain)
        print(f"  {name} schema ready.")

    print("Done.")


def drop_databases():
    """Drop the checkout tables and the domains' SQL tables."""
    from shared.db import drop_db, drop_domain_db, get_engine

    for name, domain in _domains().items():
        print(f"Dropping {name} database schema...")
        drop_domain_db(domain)
        print(f"  {name} schema dropped.")
    print("Dropping checkout store tables...")
    drop_db(get_engine())

    print("Done.")


def sweep(reconcile=False):
    from ordering.checkout import get_saga
    from ordering.checkout.expiry import CheckoutSweeper

    _domains()
    result = CheckoutSweeper(get_saga()).run(reconcile=reconcile)
    print(json.dumps(result.to_dict(), indent=2))


def main():
    from shared.logging import configure_logging

    parser = argparse.ArgumentParser(description="Checkout database management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    subparsers.add_parser("sweep", help="Release expired reservations once")
    subparsers.add_parser("reconcile", help="Settle interrupted reservations, then sweep")

    args = parser.parse_args()
    configure_logging()

    if args.command == "setup-db":
        setup_databases()
    elif args.command == "drop-db":
        drop_databases()
    elif args.command == "sweep":
        sweep()
    elif args.command == "reconcile":
        sweep(reconcile=True)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
