import json

import pytest


@pytest.fixture()
def stocked(ledger):
    ledger.load_stock("prod-001", 10)
    ledger.load_stock("prod-002", 5)
    ledger.load_stock("prod-003", 2)
    return ledger


@pytest.fixture()
def deliver_webhook(saga, gateway):
    """Sign and deliver a provider webhook for an order's payment."""

    def _deliver(order, status="SUCCESS", txn="txn-001", **extra):
        body = json.dumps(
            {"payment_id": str(order.payment_id), "status": status, "provider_transaction_id": txn, **extra}
        )
        return saga.handle_payment_webhook(body, gateway.sign(body))

    return _deliver
