"""Checkout configuration.

Reads environment variables once at import. Every component also accepts
explicit constructor arguments, so these values are only defaults.

Protean's own settings (providers, event store, processing mode) live in
each domain's ``domain.toml``; ``PROTEAN_ENV`` selects the overlay.
"""

import os

# --- Environment -------------------------------------------------------------
PROTEAN_ENV: str = os.environ.get("PROTEAN_ENV", "development")

# --- Persistence -------------------------------------------------------------
# When set, the ledger, reservation and idempotency stores use SQLAlchemy
# against this URL (e.g. "postgresql+psycopg2://..." or "sqlite:///checkout.db").
# Otherwise they are kept in memory.
CHECKOUT_DATABASE_URL: str | None = os.environ.get("CHECKOUT_DATABASE_URL") or None

# --- Reservations ------------------------------------------------------------
RESERVATION_HOLD_MINUTES: int = int(os.environ.get("RESERVATION_HOLD_MINUTES", "15"))

# Bounded retry on version conflicts; backoff doubles per attempt.
RESERVATION_MAX_ATTEMPTS: int = int(os.environ.get("RESERVATION_MAX_ATTEMPTS", "5"))
RESERVATION_BACKOFF_SECONDS: float = float(os.environ.get("RESERVATION_BACKOFF_SECONDS", "0.01"))

SWEEP_INTERVAL_SECONDS: float = float(os.environ.get("SWEEP_INTERVAL_SECONDS", "60"))

# --- Payments ----------------------------------------------------------------
PAYMENT_WEBHOOK_SECRET: str = os.environ.get("PAYMENT_WEBHOOK_SECRET", "dev-webhook-secret")
DEFAULT_PAYMENT_PROVIDER: str = os.environ.get("DEFAULT_PAYMENT_PROVIDER", "fake")

# --- External collaborators --------------------------------------------------
CATALOGUE_SERVICE_URL: str | None = os.environ.get("CATALOGUE_SERVICE_URL") or None
CART_SERVICE_URL: str | None = os.environ.get("CART_SERVICE_URL") or None
HTTP_TIMEOUT_SECONDS: float = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "5"))

# --- Logging -----------------------------------------------------------------
LOG_FORMAT: str = os.environ.get("LOG_FORMAT", "json" if PROTEAN_ENV == "production" else "console")
LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")


def is_production() -> bool:
    return PROTEAN_ENV == "production"
