"""Pydantic request/response schemas for the Inventory API.

These are external contracts (anti-corruption layer) — separate from the
ledger's internal records.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class LoadStockRequest(BaseModel):
    product_id: str = Field(min_length=1, max_length=100)
    quantity: int = Field(ge=0)
    reference_id: str | None = None


class RestockRequest(BaseModel):
    quantity: int = Field(ge=1)
    reference_id: str | None = None


class AdjustStockRequest(BaseModel):
    delta: int
    reason: str = Field(min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class StockResponse(BaseModel):
    product_id: str
    available_quantity: int
    reserved_quantity: int
    version: int
    updated_at: datetime


class TransactionResponse(BaseModel):
    id: str
    product_id: str
    type: str
    quantity_change: int
    available_delta: int
    reserved_delta: int
    version: int
    reference_id: str | None = None
    reason: str | None = None
    created_at: datetime


class ReservationItemResponse(BaseModel):
    product_id: str
    quantity: int


class ReservationResponse(BaseModel):
    reservation_id: str
    order_id: str
    status: str
    items: list[ReservationItemResponse]
    created_at: datetime
    expires_at: datetime
    updated_at: datetime
    settled: bool
    release_reason: str | None = None


class StatusResponse(BaseModel):
    status: str = "ok"
