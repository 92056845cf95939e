"""Configurable fake payment gateway for development and testing.

This adapter simulates a real payment provider without any external calls.
It can be configured at runtime to succeed or fail, making it useful for:
- Manual API testing via /payments/gateway/configure
- Automated tests with predictable outcomes
- Development without real provider credentials

Webhooks are signed like most providers sign them: a hex HMAC-SHA256 of the
raw request body under a shared secret. ``sign()`` produces the header value
for tests and local tooling.
"""

import hashlib
import hmac
import json
from uuid import uuid4

from shared import config

from payments.gateway.port import IntentResult, PaymentGateway, RefundResult


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    name = "fake"

    def __init__(self, secret: str | None = None) -> None:
        self.secret = secret or config.PAYMENT_WEBHOOK_SECRET
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.calls: list[dict] = []

    def configure(self, should_succeed: bool, failure_reason: str = "Card declined") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def calls_to(self, method: str) -> list[dict]:
        return [call for call in self.calls if call["method"] == method]

    # -------------------------------------------------------------------
    # Provider API
    # -------------------------------------------------------------------
    def create_payment_intent(
        self,
        order_id: str,
        amount: float,
        currency: str,
        idempotency_key: str,
    ) -> IntentResult:
        self.calls.append(
            {
                "method": "create_payment_intent",
                "order_id": order_id,
                "amount": amount,
                "currency": currency,
                "idempotency_key": idempotency_key,
            }
        )

        if self.should_succeed:
            return IntentResult(
                success=True,
                provider_payment_id=f"fake_pi_{uuid4().hex[:12]}",
                provider_status="requires_capture",
            )
        return IntentResult(
            success=False,
            provider_status="failed",
            failure_reason=self.failure_reason,
        )

    def cancel_payment_intent(self, provider_payment_id: str) -> IntentResult:
        self.calls.append({"method": "cancel_payment_intent", "provider_payment_id": provider_payment_id})
        return IntentResult(
            success=True,
            provider_payment_id=provider_payment_id,
            provider_status="canceled",
        )

    def create_refund(
        self,
        provider_transaction_id: str,
        amount: float,
        reason: str,
    ) -> RefundResult:
        self.calls.append(
            {
                "method": "create_refund",
                "provider_transaction_id": provider_transaction_id,
                "amount": amount,
                "reason": reason,
            }
        )

        if self.should_succeed:
            return RefundResult(
                success=True,
                provider_refund_id=f"fake_ref_{uuid4().hex[:12]}",
                provider_status="succeeded",
            )
        return RefundResult(
            success=False,
            provider_status="failed",
            failure_reason=self.failure_reason,
        )

    # -------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------
    def sign(self, payload: bytes | str | dict) -> str:
        """Return the signature header value for ``payload``."""
        if isinstance(payload, dict):
            payload = json.dumps(payload)
        if isinstance(payload, str):
            payload = payload.encode()
        return hmac.new(self.secret.encode(), payload, hashlib.sha256).hexdigest()

    def verify_webhook_signature(self, payload: bytes, signature: str | None) -> bool:
        if not signature:
            return False
        return hmac.compare_digest(self.sign(payload), signature)
