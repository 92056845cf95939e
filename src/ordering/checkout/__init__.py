"""Order saga factory.

Provides get_saga() / set_saga() / reset_saga(). The default saga is wired
to the process-wide reservation coordinator, the payments adapter, the
configured collaborators and its own idempotency log (the
``order_idempotency_keys`` table when CHECKOUT_DATABASE_URL is set).
"""

from shared import config
from shared.db import get_engine
from shared.idempotency import MemoryIdempotencyStore, SqlAlchemyIdempotencyStore, order_keys

from inventory.reservation import get_coordinator
from ordering.checkout.saga import OrderSaga
from ordering.external import get_cart, get_catalogue
from payments.adapter import PaymentGatewayAdapter

_current_saga: OrderSaga | None = None


def get_saga() -> OrderSaga:
    """Return the current order saga."""
    global _current_saga
    if _current_saga is None:
        if config.CHECKOUT_DATABASE_URL:
            idempotency = SqlAlchemyIdempotencyStore(get_engine(), order_keys)
        else:
            idempotency = MemoryIdempotencyStore()
        _current_saga = OrderSaga(
            coordinator=get_coordinator(),
            payments=PaymentGatewayAdapter(default_provider=config.DEFAULT_PAYMENT_PROVIDER),
            idempotency=idempotency,
            catalogue=get_catalogue(),
            cart=get_cart(),
        )
    return _current_saga


def set_saga(saga: OrderSaga) -> None:
    """Override the active saga (useful for tests)."""
    global _current_saga
    _current_saga = saga


def reset_saga() -> None:
    """Reset to the default saga."""
    global _current_saga
    _current_saga = None
