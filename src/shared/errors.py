"""Checkout error taxonomy.

Every failure the checkout core surfaces to a caller is one of these typed
outcomes, so clients can tell "out of stock" apart from "system error".
Each class carries a stable ``code`` and the HTTP status the API layer maps
it to (see ``shared.api.register_error_handlers``).

Field-level input validation inside aggregates still uses protean's
``ValidationError``.
"""


class CheckoutError(Exception):
    """Base class for all typed checkout outcomes."""

    code = "checkout_error"
    http_status = 500

    def __init__(self, message: str = "", **details) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, **self.details}


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------
class InsufficientStockError(CheckoutError):
    """Business outcome: not enough available stock. Never retried."""

    code = "insufficient_stock"
    http_status = 409

    def __init__(self, product_id: str, requested: int, available: int) -> None:
        super().__init__(
            f"Insufficient stock for {product_id}: {available} available, {requested} requested",
            product_id=product_id,
            requested=requested,
            available=available,
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class ConflictError(CheckoutError):
    """Optimistic concurrency conflict: the stored version moved on."""

    code = "version_conflict"
    http_status = 409

    def __init__(self, product_id: str, expected_version: int, actual_version: int) -> None:
        super().__init__(
            f"Version conflict on {product_id}: expected {expected_version}, found {actual_version}",
            product_id=product_id,
            expected_version=expected_version,
            actual_version=actual_version,
        )
        self.product_id = product_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class RetryExhaustedError(CheckoutError):
    """Conflicts persisted past the retry budget."""

    code = "retry_exhausted"
    http_status = 503

    def __init__(self, product_id: str, attempts: int) -> None:
        super().__init__(
            f"Gave up on {product_id} after {attempts} conflicting attempts",
            product_id=product_id,
            attempts=attempts,
        )
        self.product_id = product_id
        self.attempts = attempts


class InventoryRecordNotFoundError(CheckoutError):
    code = "inventory_record_not_found"
    http_status = 404

    def __init__(self, product_id: str) -> None:
        super().__init__(f"No inventory record for {product_id}", product_id=product_id)
        self.product_id = product_id


class LockUnavailableError(CheckoutError):
    """Strict lock mode: the product lock is held by someone else."""

    code = "lock_unavailable"
    http_status = 409

    def __init__(self, product_id: str) -> None:
        super().__init__(f"Stock lock for {product_id} is held elsewhere", product_id=product_id)
        self.product_id = product_id


class ReservationNotFoundError(CheckoutError):
    code = "reservation_not_found"
    http_status = 404

    def __init__(self, reservation_id: str) -> None:
        super().__init__(f"Reservation {reservation_id} not found", reservation_id=reservation_id)
        self.reservation_id = reservation_id


class ReservationStateError(CheckoutError):
    """A terminal reservation was asked to do something it cannot."""

    code = "reservation_state"
    http_status = 409

    def __init__(self, reservation_id: str, status: str, action: str) -> None:
        super().__init__(
            f"Cannot {action} reservation {reservation_id} in {status} state",
            reservation_id=reservation_id,
            status=status,
            action=action,
        )
        self.reservation_id = reservation_id
        self.status = status
        self.action = action


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class OrderNotFoundError(CheckoutError):
    code = "order_not_found"
    http_status = 404

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order {order_id} not found", order_id=order_id)
        self.order_id = order_id


class InvalidTransitionError(CheckoutError):
    """A transition outside the order state table was attempted."""

    code = "invalid_transition"
    http_status = 409

    def __init__(self, order_id: str, from_status: str, to_status: str) -> None:
        super().__init__(
            f"Order {order_id} cannot move from {from_status} to {to_status}",
            order_id=order_id,
            from_status=from_status,
            to_status=to_status,
        )
        self.order_id = order_id
        self.from_status = from_status
        self.to_status = to_status


class RefundRequiredError(CheckoutError):
    """Plain cancellation was requested after money moved."""

    code = "refund_required"
    http_status = 409

    def __init__(self, order_id: str, status: str) -> None:
        super().__init__(
            f"Order {order_id} is {status}; use the refund path instead of cancellation",
            order_id=order_id,
            status=status,
        )
        self.order_id = order_id
        self.status = status


class RequestInProgressError(CheckoutError):
    """Another request currently holds the same idempotency key."""

    code = "request_in_progress"
    http_status = 409

    def __init__(self, key: str) -> None:
        super().__init__(f"Request {key} is still being processed", idempotency_key=key)
        self.key = key


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------
class PaymentNotFoundError(CheckoutError):
    code = "payment_not_found"
    http_status = 404

    def __init__(self, payment_id: str) -> None:
        super().__init__(f"Payment {payment_id} not found", payment_id=payment_id)
        self.payment_id = payment_id


class PaymentGatewayError(CheckoutError):
    code = "payment_gateway_error"
    http_status = 502


class SignatureVerificationError(CheckoutError):
    """Webhook rejected; the provider is expected to redeliver."""

    code = "invalid_signature"
    http_status = 401


class DuplicateWebhookError(CheckoutError):
    """A webhook whose effect was already recorded. Absorbed, never surfaced."""

    code = "duplicate_webhook"
    http_status = 200

    def __init__(self, provider_transaction_id: str) -> None:
        super().__init__(
            f"Webhook {provider_transaction_id} already processed",
            provider_transaction_id=provider_transaction_id,
        )
        self.provider_transaction_id = provider_transaction_id


# ---------------------------------------------------------------------------
# External collaborators
# ---------------------------------------------------------------------------
class CartNotFoundError(CheckoutError):
    code = "cart_not_found"
    http_status = 404

    def __init__(self, cart_id: str) -> None:
        super().__init__(f"Cart {cart_id} not found", cart_id=cart_id)
        self.cart_id = cart_id


class CollaboratorUnavailableError(CheckoutError):
    """An outbound call to the catalogue or cart service failed."""

    code = "collaborator_unavailable"
    http_status = 503

    def __init__(self, service: str, message: str) -> None:
        super().__init__(f"{service} service unavailable: {message}", service=service)
        self.service = service
