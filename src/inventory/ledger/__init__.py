"""Inventory ledger factory.

Provides get_ledger() / set_ledger() to swap store implementations:
- MemoryLedgerStore for development and testing (default)
- SqlAlchemyLedgerStore when CHECKOUT_DATABASE_URL is configured
"""

from shared import config
from shared.db import get_engine

from inventory.ledger.ledger import InventoryLedger
from inventory.ledger.memory import MemoryLedgerStore
from inventory.ledger.sqlalchemy_store import SqlAlchemyLedgerStore

_current_ledger: InventoryLedger | None = None


def get_ledger() -> InventoryLedger:
    """Return the current inventory ledger."""
    global _current_ledger
    if _current_ledger is None:
        if config.CHECKOUT_DATABASE_URL:
            store = SqlAlchemyLedgerStore(get_engine())
        else:
            store = MemoryLedgerStore()
        _current_ledger = InventoryLedger(store)
    return _current_ledger


def set_ledger(ledger: InventoryLedger) -> None:
    """Override the active ledger (useful for tests)."""
    global _current_ledger
    _current_ledger = ledger


def reset_ledger() -> None:
    """Reset to the default ledger."""
    global _current_ledger
    _current_ledger = None
