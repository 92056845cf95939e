"""Payment gateway registry.

Providers register under a name; the adapter looks them up by the provider
named on the payment. ``fake`` is always available and is the default
unless DEFAULT_PAYMENT_PROVIDER says otherwise.
"""

from shared import config
from shared.errors import PaymentGatewayError

from payments.gateway.fake_adapter import FakeGateway
from payments.gateway.port import PaymentGateway

_gateways: dict[str, PaymentGateway] = {}


def register_gateway(name: str, gateway: PaymentGateway) -> None:
    """Register (or replace) the gateway for a provider name."""
    _gateways[name] = gateway


def get_gateway(name: str | None = None) -> PaymentGateway:
    """Return the gateway for ``name``, defaulting to the configured provider."""
    name = name or config.DEFAULT_PAYMENT_PROVIDER
    if name not in _gateways:
        if name != FakeGateway.name:
            raise PaymentGatewayError(f"No payment gateway registered for provider '{name}'")
        _gateways[name] = FakeGateway()
    return _gateways[name]


def reset_gateways() -> None:
    """Forget every registered gateway (useful for tests)."""
    _gateways.clear()
