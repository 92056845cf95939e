"""Shared BDD fixtures and step definitions for checkout."""

import pytest
from pytest_bdd import given, parsers, then


@pytest.fixture()
def checkout():
    """What the scenario has done so far: orders, webhook results, errors."""
    return {"orders": [], "webhooks": [], "exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('product "{product_id}" has {quantity:d} units in stock'))
def stock_loaded(ledger, product_id, quantity):
    ledger.load_stock(product_id, quantity)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order is "{status}"'))
def order_status(saga, checkout, status):
    order_id = checkout["orders"][-1]
    assert saga.get_order(order_id).status == status


@then(parsers.cfparse('"{product_id}" has {available:d} available and {reserved:d} reserved'))
def stock_levels(ledger, product_id, available, reserved):
    stock = ledger.get_stock(product_id)
    assert (stock.available_quantity, stock.reserved_quantity) == (available, reserved)
