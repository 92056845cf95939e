"""Payment gateway port (abstract interface).

Defines the contract that all payment gateway adapters must implement, so
providers can be swapped without changing any domain or application code.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class IntentResult:
    """Result of creating or cancelling a payment intent."""

    success: bool
    provider_payment_id: str | None = None
    provider_status: str | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    success: bool
    provider_refund_id: str | None = None
    provider_status: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    name: str = "abstract"

    @abstractmethod
    def create_payment_intent(
        self,
        order_id: str,
        amount: float,
        currency: str,
        idempotency_key: str,
    ) -> IntentResult:
        """Ask the provider to start collecting ``amount``.

        The outcome arrives later through a webhook.
        """
        ...

    @abstractmethod
    def cancel_payment_intent(self, provider_payment_id: str) -> IntentResult:
        """Cancel an intent that has not been captured yet."""
        ...

    @abstractmethod
    def create_refund(
        self,
        provider_transaction_id: str,
        amount: float,
        reason: str,
    ) -> RefundResult:
        """Refund a captured payment."""
        ...

    @abstractmethod
    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: str | None,
    ) -> bool:
        """Verify that a webhook payload is authentically from the provider."""
        ...
