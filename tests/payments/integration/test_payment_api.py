"""Integration tests for the Payments API via TestClient."""

import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from payments.adapter import PaymentGatewayAdapter
from payments.api.routes import payment_router
from shared.api import register_error_handlers
from shared.errors import PaymentGatewayError


@pytest.fixture()
def client(gateway):
    app = FastAPI()
    register_error_handlers(app)
    app.include_router(payment_router)
    return TestClient(app)


class TestPaymentEndpoints:
    def test_health_check(self, client):
        assert client.get("/payments/health-check").json() == {"status": "ok"}

    def test_get_payment(self, client, gateway):
        adapter = PaymentGatewayAdapter(default_provider="fake")
        payment = adapter.initiate("ord-001", 45.0)
        body = json.dumps({"payment_id": payment.id, "status": "SUCCESS", "provider_transaction_id": "txn-001"})
        adapter.handle_webhook(body, gateway.sign(body))

        response = client.get(f"/payments/{payment.id}")

        assert response.status_code == 200
        data = response.json()
        assert data["order_id"] == "ord-001"
        assert data["status"] == "SUCCESS"
        assert data["amount"] == 45.0
        assert data["provider_transaction_id"] == "txn-001"

    def test_unknown_payment_is_404(self, client):
        response = client.get("/payments/missing")
        assert response.status_code == 404
        assert response.json()["error"] == "payment_not_found"


class TestGatewayConfiguration:
    def test_configure_failure(self, client, gateway):
        response = client.post(
            "/payments/gateway/configure",
            json={"should_succeed": False, "failure_reason": "Insufficient funds"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "gateway": "fake",
            "should_succeed": False,
            "failure_reason": "Insufficient funds",
        }
        assert gateway.should_succeed is False

    def test_configured_failure_rejects_initiation(self, client, gateway):
        client.post("/payments/gateway/configure", json={"should_succeed": False})
        with pytest.raises(PaymentGatewayError):
            PaymentGatewayAdapter(default_provider="fake").initiate("ord-001", 45.0)

    def test_configure_blocked_in_production(self, client, monkeypatch):
        from shared import config

        monkeypatch.setattr(config, "PROTEAN_ENV", "production")
        response = client.post("/payments/gateway/configure", json={"should_succeed": True})
        assert response.status_code == 403
        assert "not available in production" in response.json()["detail"]
