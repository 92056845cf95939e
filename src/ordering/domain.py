"""Ordering bounded context — the Order Saga.

Owns the order lifecycle (event-sourced) and the checkout saga that drives
an order through inventory reservation and payment, compensating when a
step fails.
"""

import structlog
from protean.domain import Domain

ordering = Domain(name="ordering")

logger = structlog.get_logger(__name__)
