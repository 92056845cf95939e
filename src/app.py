"""Checkout FastAPI application.

Serves the order saga, the payments adapter and the inventory ledger over
HTTP. Each request is wrapped in the correct domain context based on URL
prefix; the inventory routes need none.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# Domains are initialized at module level so uvicorn workers share them.
# PROTEAN_ENV controls which config overlay is applied.
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from ordering.domain import ordering  # noqa: E402
from payments.domain import payments  # noqa: E402
from shared import config
from shared.api import register_error_handlers
from shared.logging import configure_logging

configure_logging()

payments.init()
ordering.init()

# ---------------------------------------------------------------------------
# Route-to-domain mapping
# ---------------------------------------------------------------------------
_ROUTE_DOMAIN_MAP = {
    "/orders": ordering,
    "/maintenance": ordering,
    "/payments": payments,
}


def _resolve_domain(path: str):
    """Return the domain for the given request path, or None."""
    for prefix, domain in _ROUTE_DOMAIN_MAP.items():
        if path.startswith(prefix):
            return domain
    return None


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Checkout API",
    description="Order fulfillment saga — orders, payments and inventory",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the correct Protean domain context for each request."""
    domain = _resolve_domain(request.url.path)
    if domain is not None:
        with domain.domain_context():
            response = await call_next(request)
        return response
    # No domain match — pass through (inventory, health check, docs)
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from inventory.api import inventory_router, reservation_router  # noqa: E402
from ordering.api import maintenance_router, order_router, webhook_router  # noqa: E402
from payments.api import payment_router  # noqa: E402

app.include_router(order_router)
app.include_router(webhook_router)
app.include_router(payment_router)
app.include_router(inventory_router)
app.include_router(reservation_router)
app.include_router(maintenance_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "environment": config.PROTEAN_ENV,
            "storage": "sql" if config.CHECKOUT_DATABASE_URL else "memory",
            "domains": {
                "ordering": {"name": ordering.name},
                "payments": {"name": payments.name},
            },
        }
    )
