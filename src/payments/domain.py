"""Payments bounded context — the Payment Gateway Adapter.

Initiates payment attempts with an external provider and normalizes the
provider's signed webhooks into idempotent internal events. Payments are
event-sourced; a status projection serves lookups by order.
"""

import structlog
from protean.domain import Domain

payments = Domain(name="payments")

logger = structlog.get_logger(__name__)
