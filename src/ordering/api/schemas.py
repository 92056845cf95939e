"""Pydantic request/response schemas for the Ordering API.

These are external contracts (anti-corruption layer) — separate from
internal Protean commands.
"""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class LineItemSchema(BaseModel):
    product_id: str = Field(min_length=1)
    quantity: int = Field(ge=1)


class OrderItemSchema(BaseModel):
    product_id: str
    name: str | None = None
    quantity: int
    unit_price: float


# ---------------------------------------------------------------------------
# Order Request Schemas
# ---------------------------------------------------------------------------
class PlaceOrderRequest(BaseModel):
    user_id: str = Field(min_length=1)
    items: list[LineItemSchema] | None = None
    cart_id: str | None = None
    currency: str = Field(default="USD", min_length=3, max_length=3)
    idempotency_key: str | None = Field(default=None, max_length=200)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "user_id": "user-001",
                    "items": [{"product_id": "prod-001", "quantity": 2}],
                    "idempotency_key": "checkout-7f3a",
                }
            ]
        }
    }

    @model_validator(mode="after")
    def _items_or_cart(self):
        if not self.items and not self.cart_id:
            raise ValueError("Either items or cart_id is required")
        return self


class CancelOrderRequest(BaseModel):
    reason: str = Field(default="Cancelled by customer", min_length=1, max_length=500)
    cancelled_by: str = Field(default="Customer", max_length=50)


class RefundOrderRequest(BaseModel):
    reason: str = Field(default="Refund requested", min_length=1, max_length=500)


class ExpireReservationsRequest(BaseModel):
    as_of: datetime | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class PlaceOrderResponse(BaseModel):
    order_id: str
    status: str
    total_amount: float
    reservation_id: str | None = None
    payment_id: str | None = None


class OrderResponse(BaseModel):
    order_id: str
    user_id: str
    status: str
    items: list[OrderItemSchema]
    total_amount: float
    currency: str
    reservation_id: str | None = None
    payment_id: str | None = None
    cancellation_reason: str | None = None
    refund_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class StatusChangeResponse(BaseModel):
    from_status: str | None = None
    to_status: str
    changed_at: datetime
    reason: str | None = None


class WebhookResponse(BaseModel):
    action: str
    duplicate: bool = False
    order_id: str | None = None
    payment_id: str | None = None
    provider_transaction_id: str | None = None
    payment_status: str | None = None
    order_status: str | None = None


class SweepResponse(BaseModel):
    released: list[str]
    settled: list[str]
    skipped: list[str]
    cancelled_orders: list[str]


class StatusResponse(BaseModel):
    status: str = "ok"
