"""FastAPI routes for the Inventory context — stock levels and reservations.

Reserve / commit / release are internal operations driven by the order
saga and are not exposed here.
"""

from fastapi import APIRouter

from inventory.api.schemas import (
    AdjustStockRequest,
    LoadStockRequest,
    ReservationResponse,
    RestockRequest,
    StatusResponse,
    StockResponse,
    TransactionResponse,
)
from inventory.ledger import get_ledger
from inventory.reservation import get_coordinator

# ---------------------------------------------------------------------------
# Inventory Router
# ---------------------------------------------------------------------------
inventory_router = APIRouter(prefix="/inventory", tags=["inventory"])


@inventory_router.get("/health-check", response_model=StatusResponse)
def health_check() -> StatusResponse:
    return StatusResponse()


@inventory_router.post("", status_code=201, response_model=StockResponse)
def load_stock(body: LoadStockRequest) -> StockResponse:
    record = get_ledger().load_stock(body.product_id, body.quantity, reference_id=body.reference_id)
    return StockResponse(**record.to_dict())


@inventory_router.get("/{product_id}", response_model=StockResponse)
def get_stock(product_id: str) -> StockResponse:
    return StockResponse(**get_ledger().get_stock(product_id).to_dict())


@inventory_router.post("/{product_id}/restock", response_model=StockResponse)
def restock(product_id: str, body: RestockRequest) -> StockResponse:
    record = get_ledger().restock(product_id, body.quantity, reference_id=body.reference_id)
    return StockResponse(**record.to_dict())


@inventory_router.post("/{product_id}/adjust", response_model=StockResponse)
def adjust_stock(product_id: str, body: AdjustStockRequest) -> StockResponse:
    record = get_ledger().adjust(product_id, body.delta, body.reason)
    return StockResponse(**record.to_dict())


@inventory_router.get("/{product_id}/transactions", response_model=list[TransactionResponse])
def list_transactions(product_id: str, reference_id: str | None = None) -> list[TransactionResponse]:
    ledger = get_ledger()
    ledger.get_stock(product_id)  # 404 for unknown products
    return [
        TransactionResponse(**txn.to_dict())
        for txn in ledger.transactions(product_id=product_id, reference_id=reference_id)
    ]


# ---------------------------------------------------------------------------
# Reservation Router
# ---------------------------------------------------------------------------
reservation_router = APIRouter(prefix="/reservations", tags=["inventory"])


@reservation_router.get("/{reservation_id}", response_model=ReservationResponse)
def get_reservation(reservation_id: str) -> ReservationResponse:
    return ReservationResponse(**get_coordinator().get(reservation_id).to_dict())
