"""BDD tests for the checkout saga: reserve, pay, confirm or compensate."""

import json
from datetime import UTC, datetime, timedelta

from ordering.checkout.expiry import CheckoutSweeper
from pytest_bdd import parsers, scenarios, then, when
from shared.errors import CheckoutError

scenarios("features/checkout.feature")


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('the customer orders {quantity:d} of "{product_id}" with key "{key}"'))
def place_order(saga, checkout, quantity, product_id, key):
    try:
        order = saga.place_order("user-001", key, items=[{"product_id": product_id, "quantity": quantity}])
    except CheckoutError as exc:
        checkout["exc"] = exc
        checkout["orders"].append(exc.details["order_id"])
    else:
        checkout["orders"].append(str(order.id))


@when(parsers.cfparse('the payment provider reports "{status}" with transaction "{txn}"'))
def payment_webhook(saga, gateway, checkout, status, txn):
    order = saga.get_order(checkout["orders"][-1])
    body = json.dumps({"payment_id": str(order.payment_id), "status": status, "provider_transaction_id": txn})
    checkout["webhooks"].append(saga.handle_payment_webhook(body, gateway.sign(body)))


@when(parsers.cfparse("the hold sweep runs {minutes:d} minutes later"))
def hold_sweep(saga, minutes):
    CheckoutSweeper(saga).run(datetime.now(UTC) + timedelta(minutes=minutes))


@when("the customer cancels the order")
def cancel_order(saga, checkout):
    saga.cancel_order(checkout["orders"][-1], reason="Changed my mind")


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then("the webhook is reported as a duplicate")
def webhook_duplicate(checkout):
    assert checkout["webhooks"][-1]["duplicate"] is True


@then(parsers.cfparse('the checkout fails with "{code}"'))
def checkout_fails(checkout, code):
    assert checkout["exc"] is not None
    assert checkout["exc"].code == code


@then("only one order was placed")
def one_order(checkout):
    assert len(set(checkout["orders"])) == 1


@then("the pending payment was cancelled")
def payment_cancelled(saga, checkout):
    order = saga.get_order(checkout["orders"][-1])
    payment = saga.payments.get(str(order.payment_id))
    assert payment.status == "CANCELLED"
