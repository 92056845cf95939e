"""Payment Gateway Adapter — the payments context's public face.

The order saga talks to payments only through this class. Each call runs in
the payments domain context, so callers from other contexts need not push
it themselves.

``handle_webhook`` authenticates the raw request body, normalizes the
provider's vocabulary and applies the outcome to the Payment. It returns a
``WebhookEvent`` for the saga, or None when the payment is unknown: such a
webhook is logged and dropped, never turned into new state.
"""

import functools
import json
from dataclasses import dataclass

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain
from shared.errors import PaymentNotFoundError, SignatureVerificationError

from payments.domain import payments
from payments.gateway import get_gateway
from payments.payment.cancellation import CancelPayment
from payments.payment.initiation import InitiatePayment
from payments.payment.payment import Payment, PaymentStatus
from payments.payment.refund import RefundPayment
from payments.payment.webhook import ProcessPaymentWebhook
from payments.projections.payment_status import PaymentStatusView

logger = structlog.get_logger(__name__)

# Provider vocabulary → internal status
STATUS_ALIASES = {
    "SUCCESS": PaymentStatus.SUCCESS,
    "SUCCEEDED": PaymentStatus.SUCCESS,
    "FAILED": PaymentStatus.FAILED,
    "CANCELLED": PaymentStatus.CANCELLED,
    "CANCELED": PaymentStatus.CANCELLED,
}


@dataclass(frozen=True)
class WebhookEvent:
    """A provider webhook, authenticated and normalized."""

    payment_id: str
    order_id: str
    status: PaymentStatus
    provider_transaction_id: str
    amount: float
    outcome: str  # applied | duplicate | ignored
    failure_reason: str | None = None

    @property
    def duplicate(self) -> bool:
        return self.outcome == "duplicate"

    def to_dict(self) -> dict:
        return {
            "payment_id": self.payment_id,
            "order_id": self.order_id,
            "status": self.status.value,
            "provider_transaction_id": self.provider_transaction_id,
            "amount": self.amount,
            "outcome": self.outcome,
            "failure_reason": self.failure_reason,
        }


def in_payments_context(method):
    @functools.wraps(method)
    def wrapper(*args, **kwargs):
        with payments.domain_context():
            return method(*args, **kwargs)

    return wrapper


def parse_webhook_payload(raw_payload: bytes) -> dict:
    """Decode and validate a webhook body. Raises ``ValidationError``."""
    try:
        data = json.loads(raw_payload)
    except ValueError as exc:
        raise ValidationError({"payload": ["Webhook payload is not valid JSON"]}) from exc
    if not isinstance(data, dict):
        raise ValidationError({"payload": ["Webhook payload must be a JSON object"]})

    errors = {
        name: [f"{name} is required"]
        for name in ("payment_id", "status", "provider_transaction_id")
        if not data.get(name)
    }
    if errors:
        raise ValidationError(errors)

    status = STATUS_ALIASES.get(str(data["status"]).upper())
    if status is None:
        raise ValidationError({"status": [f"Unknown payment status '{data['status']}'"]})

    return {
        "payment_id": str(data["payment_id"]),
        "status": status,
        "provider_transaction_id": str(data["provider_transaction_id"]),
        "failure_reason": data.get("failure_reason"),
        "provider": data.get("provider"),
    }


class PaymentGatewayAdapter:
    def __init__(self, default_provider: str | None = None) -> None:
        self.default_provider = default_provider

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @in_payments_context
    def get(self, payment_id: str) -> Payment:
        try:
            return current_domain.repository_for(Payment).get(payment_id)
        except ObjectNotFoundError as exc:
            raise PaymentNotFoundError(payment_id) from exc

    @in_payments_context
    def for_order(self, order_id: str) -> Payment | None:
        views = (
            current_domain.repository_for(PaymentStatusView)._dao.query.filter(order_id=order_id).all().items
        )
        if not views:
            return None
        view = min(views, key=lambda v: v.created_at)
        return current_domain.repository_for(Payment).get(view.payment_id)

    # -------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------
    @in_payments_context
    def initiate(
        self,
        order_id: str,
        amount: float,
        provider: str | None = None,
        currency: str = "USD",
        idempotency_key: str | None = None,
    ) -> Payment:
        """Start a payment for an order. At most one payment per order."""
        existing = self.for_order(order_id)
        if existing is not None:
            logger.info("Payment already exists for order", order_id=order_id, payment_id=str(existing.id))
            return existing

        payment_id = current_domain.process(
            InitiatePayment(
                order_id=order_id,
                amount=amount,
                currency=currency,
                provider=provider or self.default_provider,
                idempotency_key=idempotency_key or f"payment:{order_id}",
            ),
            asynchronous=False,
        )
        payment = current_domain.repository_for(Payment).get(payment_id)
        logger.info(
            "Payment initiated",
            payment_id=payment_id,
            order_id=order_id,
            amount=amount,
            provider=payment.provider,
        )
        return payment

    @in_payments_context
    def handle_webhook(
        self,
        raw_payload: bytes | str,
        signature: str | None,
        provider: str | None = None,
    ) -> WebhookEvent | None:
        if isinstance(raw_payload, str):
            raw_payload = raw_payload.encode()

        gateway = get_gateway(provider or self.default_provider)
        if not gateway.verify_webhook_signature(raw_payload, signature):
            logger.warning("Webhook signature verification failed", provider=gateway.name)
            raise SignatureVerificationError("Webhook signature verification failed", provider=gateway.name)

        data = parse_webhook_payload(raw_payload)
        if data["provider"] and data["provider"] != gateway.name:
            logger.warning("Webhook provider mismatch", expected=gateway.name, reported=data["provider"])
            raise SignatureVerificationError("Webhook provider does not match its signature", provider=gateway.name)

        repo = current_domain.repository_for(Payment)
        try:
            repo.get(data["payment_id"])
        except ObjectNotFoundError:
            logger.warning(
                "Webhook for unknown payment dropped",
                payment_id=data["payment_id"],
                provider_transaction_id=data["provider_transaction_id"],
            )
            return None

        outcome = current_domain.process(
            ProcessPaymentWebhook(
                payment_id=data["payment_id"],
                provider_transaction_id=data["provider_transaction_id"],
                status=data["status"].value,
                failure_reason=data["failure_reason"],
            ),
            asynchronous=False,
        )
        payment = repo.get(data["payment_id"])

        log = logger.warning if outcome == "ignored" else logger.info
        log(
            "Payment webhook processed",
            payment_id=data["payment_id"],
            order_id=str(payment.order_id),
            status=data["status"].value,
            provider_transaction_id=data["provider_transaction_id"],
            outcome=outcome,
        )
        return WebhookEvent(
            payment_id=str(payment.id),
            order_id=str(payment.order_id),
            status=data["status"],
            provider_transaction_id=data["provider_transaction_id"],
            amount=payment.amount,
            outcome=outcome,
            failure_reason=data["failure_reason"],
        )

    @in_payments_context
    def refund(self, payment_id: str, reason: str) -> Payment:
        self.get(payment_id)
        current_domain.process(RefundPayment(payment_id=payment_id, reason=reason), asynchronous=False)
        payment = current_domain.repository_for(Payment).get(payment_id)
        logger.info("Payment refunded", payment_id=payment_id, order_id=str(payment.order_id), reason=reason)
        return payment

    @in_payments_context
    def cancel(self, payment_id: str, reason: str = "Order cancelled") -> Payment:
        """Cancel a pending payment. A no-op for any other status."""
        self.get(payment_id)
        current_domain.process(CancelPayment(payment_id=payment_id, reason=reason), asynchronous=False)
        payment = current_domain.repository_for(Payment).get(payment_id)
        logger.info("Payment cancel requested", payment_id=payment_id, status=payment.status)
        return payment
