"""Order Saga — coordinates the Order → Inventory → Payment flow.

The saga is the single owner of order state. It drives an order through its
state machine with direct, synchronous calls into the Reservation
Coordinator and the Payment Gateway Adapter, and records every step on the
Order aggregate through ordering commands.

Flow:
    1. PlaceOrder → CREATED → RESERVING
    2a. Reserve succeeds → RESERVED → payment initiated → PAYING
    2b. Reserve fails (insufficient stock / retries exhausted) → CANCELLED
    3a. Webhook SUCCESS → PAID → Commit → CONFIRMED
        (Commit refused because the hold expired → refund → REFUNDED)
    3b. Webhook FAILED / CANCELLED → Release → CANCELLED
    4. Late SUCCESS for a CANCELLED order → payment refunded, order untouched

Calls for one order are strictly sequential: every operation holds that
order's lock for its whole duration. No inventory lock is ever held while
waiting for the payment provider.
"""

import functools
import json
import threading

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain
from shared.errors import (
    CheckoutError,
    DuplicateWebhookError,
    InsufficientStockError,
    InvalidTransitionError,
    OrderNotFoundError,
    PaymentGatewayError,
    RefundRequiredError,
    ReservationStateError,
    RetryExhaustedError,
)
from shared.idempotency import IdempotencyRecord, IdempotencyStore

from inventory.ledger.records import TransactionType
from inventory.reservation.coordinator import ReservationCoordinator, normalize_items
from inventory.reservation.reservation import ReservationStatus
from ordering.domain import ordering
from ordering.external import Cart, Catalogue
from ordering.order.cancellation import CancelOrder, RefundOrder
from ordering.order.creation import CreateOrder
from ordering.order.fulfillment import DeliverOrder, ShipOrder
from ordering.order.order import CancellationActor, Order, OrderStatus
from ordering.order.payment import ConfirmOrder, RecordPayment, StartPayment
from ordering.order.reservation import RecordReservation, StartReservation
from payments.adapter import PaymentGatewayAdapter, WebhookEvent
from payments.payment.payment import PaymentStatus

logger = structlog.get_logger(__name__)

# Plain cancellation releases the hold; no money has moved yet
_PRE_PAYMENT_STATES = {
    OrderStatus.CREATED,
    OrderStatus.RESERVING,
    OrderStatus.RESERVED,
    OrderStatus.PAYING,
}

# Orders the hold-timeout sweep may cancel
_AWAITING_PAYMENT_STATES = {OrderStatus.RESERVED, OrderStatus.PAYING}


def in_ordering_context(method):
    @functools.wraps(method)
    def wrapper(*args, **kwargs):
        with ordering.domain_context():
            return method(*args, **kwargs)

    return wrapper


class OrderLocks:
    """One re-entrant lock per order id."""

    def __init__(self) -> None:
        self._mutex = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def __call__(self, order_id: str) -> threading.RLock:
        with self._mutex:
            return self._locks.setdefault(str(order_id), threading.RLock())


class OrderSaga:
    def __init__(
        self,
        coordinator: ReservationCoordinator,
        payments: PaymentGatewayAdapter,
        idempotency: IdempotencyStore,
        catalogue: Catalogue,
        cart: Cart,
        provider: str | None = None,
    ) -> None:
        self.coordinator = coordinator
        self.payments = payments
        self.idempotency = idempotency
        self.catalogue = catalogue
        self.cart = cart
        self.provider = provider
        self._locks = OrderLocks()

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @in_ordering_context
    def get_order(self, order_id: str) -> Order:
        try:
            return current_domain.repository_for(Order).get(order_id)
        except ObjectNotFoundError as exc:
            raise OrderNotFoundError(order_id) from exc

    @in_ordering_context
    def get_history(self, order_id: str) -> list[dict]:
        order = self.get_order(order_id)
        return [
            {
                "from_status": change.from_status,
                "to_status": change.to_status,
                "changed_at": change.changed_at,
                "reason": change.reason,
            }
            for change in sorted(order.history or [], key=lambda c: c.changed_at)
        ]

    # -------------------------------------------------------------------
    # Place order
    # -------------------------------------------------------------------
    @in_ordering_context
    def place_order(
        self,
        user_id: str,
        idempotency_key: str,
        items: list[dict] | None = None,
        cart_id: str | None = None,
        currency: str = "USD",
    ) -> Order:
        """Create an order and drive it to PAYING, or to CANCELLED.

        Stock and payment failures cancel the order and are raised to the
        caller with the order id attached. Replays of ``idempotency_key``
        return the first call's order, or raise its failure again.
        """
        if not user_id:
            raise ValidationError({"user_id": ["User id is required"]})
        if not idempotency_key:
            raise ValidationError({"idempotency_key": ["Idempotency key is required"]})
        if not items and not cart_id:
            raise ValidationError({"items": ["Either items or a cart id is required"]})

        key = f"order:{idempotency_key}"
        previous = self.idempotency.claim(key, scope="place_order")
        if previous is not None:
            return self._replay_order(key, previous)

        try:
            order = self._place_order(user_id, idempotency_key, items, cart_id, currency)
        except CheckoutError as exc:
            if "order_id" in exc.details:
                # The order exists and was cancelled: the outcome is final
                self.idempotency.fail(key, exc.to_dict())
            else:
                self.idempotency.release(key)
            raise
        except Exception:
            self.idempotency.release(key)
            raise

        self.idempotency.complete(key, {"order_id": str(order.id)})
        return order

    def _replay_order(self, key: str, previous: IdempotencyRecord) -> Order:
        result = previous.result or {}
        logger.info("Replaying order request", idempotency_key=key, order_id=result.get("order_id"))
        if not previous.failed:
            return self.get_order(result["order_id"])

        if result.get("error") == InsufficientStockError.code:
            exc = InsufficientStockError(result["product_id"], result["requested"], result["available"])
        elif result.get("error") == RetryExhaustedError.code:
            exc = RetryExhaustedError(result["product_id"], result["attempts"])
        else:
            exc = PaymentGatewayError(result.get("message") or "Payment could not be started")
        exc.details["order_id"] = result["order_id"]
        raise exc

    def _place_order(self, user_id, idempotency_key, items, cart_id, currency) -> Order:
        if cart_id:
            items = self.cart.items(cart_id, user_id)
        lines = normalize_items(items)

        # The only catalogue read for this order
        products = self.catalogue.snapshot(line.product_id for line in lines)
        items_data = [
            {
                "product_id": line.product_id,
                "name": products[line.product_id].name,
                "quantity": line.quantity,
                "unit_price": products[line.product_id].unit_price,
            }
            for line in lines
        ]

        order_id = current_domain.process(
            CreateOrder(
                user_id=user_id,
                items=json.dumps(items_data),
                currency=currency or "USD",
                idempotency_key=idempotency_key,
            ),
            asynchronous=False,
        )
        logger.info("Order created", order_id=order_id, user_id=user_id, items=len(items_data))

        with self._locks(order_id):
            self._transition(StartReservation(order_id=order_id))
            try:
                reservation = self.coordinator.reserve(
                    order_id,
                    f"reserve:{order_id}",
                    [{"product_id": line.product_id, "quantity": line.quantity} for line in lines],
                )
            except (InsufficientStockError, RetryExhaustedError) as exc:
                self._transition(
                    CancelOrder(order_id=order_id, reason=exc.code, cancelled_by=CancellationActor.SYSTEM.value)
                )
                exc.details["order_id"] = order_id
                raise

            order = self._transition(RecordReservation(order_id=order_id, reservation_id=reservation.reservation_id))

            try:
                payment = self.payments.initiate(
                    order_id,
                    order.total_amount,
                    provider=self.provider,
                    currency=order.currency,
                    idempotency_key=f"payment:{order_id}",
                )
            except PaymentGatewayError as exc:
                self.coordinator.release(reservation.reservation_id, reason="payment_initiation_failed")
                self._transition(
                    CancelOrder(
                        order_id=order_id,
                        reason="payment_initiation_failed",
                        cancelled_by=CancellationActor.SYSTEM.value,
                    )
                )
                exc.details["order_id"] = order_id
                raise

            return self._transition(StartPayment(order_id=order_id, payment_id=str(payment.id)))

    # -------------------------------------------------------------------
    # Payment webhook
    # -------------------------------------------------------------------
    @in_ordering_context
    def handle_payment_webhook(self, raw_payload: bytes | str, signature: str | None, provider: str | None = None) -> dict:
        """Apply a provider webhook to its order, once per provider transaction.

        A redelivered transaction returns the outcome recorded the first
        time, with no order transition and no inventory call.
        """
        event = self.payments.handle_webhook(raw_payload, signature, provider=provider or self.provider)
        if event is None:
            return {"action": "dropped", "duplicate": False}

        key = f"webhook:{event.provider_transaction_id}"
        try:
            self._claim_webhook(key, event)
        except DuplicateWebhookError:
            logger.info(
                "Duplicate payment webhook absorbed",
                order_id=event.order_id,
                provider_transaction_id=event.provider_transaction_id,
            )
            return {**(self.idempotency.get(key).result or {}), "duplicate": True}

        try:
            with self._locks(event.order_id):
                result = self._apply_payment_outcome(event)
        except Exception:
            self.idempotency.release(key)
            raise

        self.idempotency.complete(key, result)
        return {**result, "duplicate": False}

    def _claim_webhook(self, key: str, event: WebhookEvent) -> None:
        if self.idempotency.claim(key, scope="payment_webhook") is not None:
            raise DuplicateWebhookError(event.provider_transaction_id)

    def _apply_payment_outcome(self, event: WebhookEvent) -> dict:
        order = self.get_order(event.order_id)
        status = OrderStatus(order.status)

        if str(order.payment_id) != event.payment_id:
            action = "ignored"
        elif event.outcome == "ignored":
            action = "ignored"
        elif event.status == PaymentStatus.SUCCESS:
            action = self._on_payment_success(order, status, event)
        elif status == OrderStatus.PAYING:
            self._release_held(order, reason="payment_failed")
            order = self._transition(
                CancelOrder(
                    order_id=str(order.id),
                    reason=f"payment_{event.status.value.lower()}",
                    cancelled_by=CancellationActor.SYSTEM.value,
                )
            )
            action = "cancelled"
        else:
            action = "ignored"

        if action == "ignored":
            logger.info(
                "Payment webhook needs no order change",
                order_id=str(order.id),
                order_status=order.status,
                payment_status=event.status.value,
            )
        order = self.get_order(str(order.id))
        return {
            "order_id": str(order.id),
            "payment_id": event.payment_id,
            "provider_transaction_id": event.provider_transaction_id,
            "payment_status": event.status.value,
            "order_status": order.status,
            "action": action,
        }

    def _on_payment_success(self, order: Order, status: OrderStatus, event: WebhookEvent) -> str:
        order_id = str(order.id)

        if status == OrderStatus.CANCELLED:
            # Captured after the order was given up: give the money back
            self.payments.refund(event.payment_id, reason="order_cancelled")
            logger.warning("Refunded payment captured for cancelled order", order_id=order_id)
            return "refunded_late_capture"

        if status != OrderStatus.PAYING:
            return "ignored"

        self._transition(
            RecordPayment(
                order_id=order_id,
                payment_id=event.payment_id,
                provider_transaction_id=event.provider_transaction_id,
                amount=event.amount,
            )
        )
        try:
            self.coordinator.commit(order.reservation_id)
        except ReservationStateError:
            # The hold expired before the money arrived
            logger.warning(
                "Reservation released before payment, refunding",
                order_id=order_id,
                reservation_id=order.reservation_id,
            )
            self.payments.refund(event.payment_id, reason="reservation_expired")
            self._transition(RefundOrder(order_id=order_id, reason="reservation_expired"))
            return "refunded"

        self._transition(ConfirmOrder(order_id=order_id))
        return "confirmed"

    # -------------------------------------------------------------------
    # Cancel / Refund
    # -------------------------------------------------------------------
    @in_ordering_context
    def cancel_order(self, order_id: str, reason: str, cancelled_by: str = CancellationActor.CUSTOMER.value) -> Order:
        with self._locks(order_id):
            order = self.get_order(order_id)
            status = OrderStatus(order.status)

            if status in _PRE_PAYMENT_STATES:
                self._release_held(order, reason="order_cancelled")
                if order.payment_id:
                    self.payments.cancel(str(order.payment_id), reason=reason)
                return self._transition(CancelOrder(order_id=order_id, reason=reason, cancelled_by=cancelled_by))

            if status == OrderStatus.PAID:
                raise RefundRequiredError(order_id, status.value)

            if status == OrderStatus.CONFIRMED:
                # Sold but never shipped: the goods go back on the shelf
                self.payments.refund(str(order.payment_id), reason=reason)
                self._restock(order)
                return self._transition(
                    CancelOrder(
                        order_id=order_id,
                        reason=reason,
                        cancelled_by=cancelled_by,
                        refunded=True,
                        restocked=True,
                    )
                )

            if status == OrderStatus.SHIPPED:
                # A return: stock comes back only when the goods are received
                self.payments.refund(str(order.payment_id), reason=reason)
                return self._transition(
                    CancelOrder(order_id=order_id, reason=reason, cancelled_by=cancelled_by, refunded=True)
                )

            logger.error(
                "Rejected order transition",
                order_id=order_id,
                from_status=status.value,
                to_status=OrderStatus.CANCELLED.value,
            )
            raise InvalidTransitionError(order_id, status.value, OrderStatus.CANCELLED.value)

    @in_ordering_context
    def refund_order(self, order_id: str, reason: str) -> Order:
        with self._locks(order_id):
            order = self.get_order(order_id)
            if not order.can_transition(OrderStatus.REFUNDED):
                logger.error(
                    "Rejected order transition",
                    order_id=order_id,
                    from_status=order.status,
                    to_status=OrderStatus.REFUNDED.value,
                )
                raise InvalidTransitionError(order_id, order.status, OrderStatus.REFUNDED.value)

            self._release_held(order, reason="order_refunded")
            self.payments.refund(str(order.payment_id), reason=reason)
            return self._transition(RefundOrder(order_id=order_id, reason=reason))

    # -------------------------------------------------------------------
    # Fulfillment
    # -------------------------------------------------------------------
    @in_ordering_context
    def ship_order(self, order_id: str) -> Order:
        with self._locks(order_id):
            self.get_order(order_id)
            return self._transition(ShipOrder(order_id=order_id))

    @in_ordering_context
    def deliver_order(self, order_id: str) -> Order:
        with self._locks(order_id):
            self.get_order(order_id)
            return self._transition(DeliverOrder(order_id=order_id))

    # -------------------------------------------------------------------
    # Hold timeout
    # -------------------------------------------------------------------
    @in_ordering_context
    def expire_order(self, order_id: str) -> Order | None:
        """Cancel an order whose reservation the sweep released.

        Only orders still waiting for payment are cancelled. A PAID order
        is left to the webhook path, which finds the hold gone and refunds.
        """
        with self._locks(order_id):
            try:
                order = self.get_order(order_id)
            except OrderNotFoundError:
                logger.warning("Expired reservation has no order", order_id=order_id)
                return None

            if OrderStatus(order.status) not in _AWAITING_PAYMENT_STATES:
                return None

            if order.payment_id:
                self.payments.cancel(str(order.payment_id), reason="reservation_expired")
            return self._transition(
                CancelOrder(
                    order_id=order_id,
                    reason="reservation_expired",
                    cancelled_by=CancellationActor.SYSTEM.value,
                )
            )

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _transition(self, command) -> Order:
        previous = self.get_order(str(command.order_id)).status
        current_domain.process(command, asynchronous=False)
        order = self.get_order(str(command.order_id))
        logger.info(
            "Order transitioned",
            order_id=str(order.id),
            from_status=previous,
            to_status=order.status,
            command=command.__class__.__name__,
        )
        return order

    def _release_held(self, order: Order, reason: str) -> None:
        """Release every hold the order still has, recorded on it or not."""
        for reservation in self.coordinator.for_order(str(order.id)):
            if reservation.status == ReservationStatus.HELD:
                self.coordinator.release(reservation.reservation_id, reason=reason)

    def _restock(self, order: Order) -> None:
        """Put a cancelled sale's quantities back, once per product."""
        order_id = str(order.id)
        ledger = self.coordinator.ledger
        for item in order.items:
            already = any(
                txn.type == TransactionType.RESTOCK
                for txn in ledger.transactions(product_id=item.product_id, reference_id=order_id)
            )
            if not already:
                ledger.restock(item.product_id, item.quantity, reference_id=order_id)
