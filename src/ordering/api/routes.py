"""FastAPI routes for the Ordering context — orders, the payment webhook
and maintenance triggers.

All of them go through the order saga, which pushes the ordering domain
context itself.
"""

from uuid import uuid4

from fastapi import APIRouter, Request
from shared.db import as_utc
from starlette.concurrency import run_in_threadpool

from ordering.api.schemas import (
    CancelOrderRequest,
    ExpireReservationsRequest,
    OrderItemSchema,
    OrderResponse,
    PlaceOrderRequest,
    PlaceOrderResponse,
    RefundOrderRequest,
    StatusChangeResponse,
    StatusResponse,
    SweepResponse,
    WebhookResponse,
)
from ordering.checkout import get_saga
from ordering.checkout.expiry import CheckoutSweeper

SIGNATURE_HEADER = "X-Payment-Signature"


def _order_response(order) -> OrderResponse:
    return OrderResponse(
        order_id=str(order.id),
        user_id=str(order.user_id),
        status=order.status,
        items=[
            OrderItemSchema(
                product_id=str(item.product_id),
                name=item.name,
                quantity=item.quantity,
                unit_price=item.unit_price,
            )
            for item in order.items
        ],
        total_amount=order.total_amount,
        currency=order.currency,
        reservation_id=order.reservation_id,
        payment_id=order.payment_id,
        cancellation_reason=order.cancellation_reason,
        refund_reason=order.refund_reason,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.get("/health-check", response_model=StatusResponse)
def health_check() -> StatusResponse:
    return StatusResponse()


@order_router.post("", status_code=201, response_model=PlaceOrderResponse)
def place_order(body: PlaceOrderRequest) -> PlaceOrderResponse:
    order = get_saga().place_order(
        user_id=body.user_id,
        idempotency_key=body.idempotency_key or str(uuid4()),
        items=[item.model_dump() for item in body.items] if body.items else None,
        cart_id=body.cart_id,
        currency=body.currency,
    )
    return PlaceOrderResponse(
        order_id=str(order.id),
        status=order.status,
        total_amount=order.total_amount,
        reservation_id=order.reservation_id,
        payment_id=order.payment_id,
    )


@order_router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: str) -> OrderResponse:
    return _order_response(get_saga().get_order(order_id))


@order_router.get("/{order_id}/history", response_model=list[StatusChangeResponse])
def get_order_history(order_id: str) -> list[StatusChangeResponse]:
    return [StatusChangeResponse(**change) for change in get_saga().get_history(order_id)]


@order_router.post("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(order_id: str, body: CancelOrderRequest | None = None) -> OrderResponse:
    body = body or CancelOrderRequest()
    return _order_response(get_saga().cancel_order(order_id, reason=body.reason, cancelled_by=body.cancelled_by))


@order_router.post("/{order_id}/refund", response_model=OrderResponse)
def refund_order(order_id: str, body: RefundOrderRequest | None = None) -> OrderResponse:
    body = body or RefundOrderRequest()
    return _order_response(get_saga().refund_order(order_id, reason=body.reason))


@order_router.post("/{order_id}/ship", response_model=OrderResponse)
def ship_order(order_id: str) -> OrderResponse:
    return _order_response(get_saga().ship_order(order_id))


@order_router.post("/{order_id}/deliver", response_model=OrderResponse)
def deliver_order(order_id: str) -> OrderResponse:
    return _order_response(get_saga().deliver_order(order_id))


# ---------------------------------------------------------------------------
# Payment Webhook Router
# ---------------------------------------------------------------------------
webhook_router = APIRouter(prefix="/payments", tags=["payments"])


@webhook_router.post("/webhook", response_model=WebhookResponse)
async def payment_webhook(request: Request) -> WebhookResponse:
    """Receive a provider webhook. The signature covers the raw body."""
    raw_payload = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)
    result = await run_in_threadpool(get_saga().handle_payment_webhook, raw_payload, signature)
    return WebhookResponse(**result)


# ---------------------------------------------------------------------------
# Maintenance Router
# ---------------------------------------------------------------------------
maintenance_router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@maintenance_router.post("/expire-reservations", response_model=SweepResponse)
def expire_reservations(body: ExpireReservationsRequest | None = None) -> SweepResponse:
    as_of = as_utc(body.as_of) if body else None
    return SweepResponse(**CheckoutSweeper(get_saga()).run(as_of).to_dict())


@maintenance_router.post("/reconcile", response_model=SweepResponse)
def reconcile(body: ExpireReservationsRequest | None = None) -> SweepResponse:
    as_of = as_utc(body.as_of) if body else None
    return SweepResponse(**CheckoutSweeper(get_saga()).run(as_of, reconcile=True).to_dict())
