"""Outbound collaborators of the ordering context.

Provides get_catalogue() / get_cart() and their setters to swap
implementations. HTTP clients are used when CATALOGUE_SERVICE_URL /
CART_SERVICE_URL are configured; otherwise in-memory fakes.
"""

from shared import config

from ordering.external.cart import Cart, HttpCart, MemoryCart
from ordering.external.catalogue import Catalogue, HttpCatalogue, MemoryCatalogue, ProductSnapshot

_current_catalogue: Catalogue | None = None
_current_cart: Cart | None = None


def get_catalogue() -> Catalogue:
    global _current_catalogue
    if _current_catalogue is None:
        if config.CATALOGUE_SERVICE_URL:
            _current_catalogue = HttpCatalogue(config.CATALOGUE_SERVICE_URL)
        else:
            _current_catalogue = MemoryCatalogue()
    return _current_catalogue


def set_catalogue(catalogue: Catalogue) -> None:
    global _current_catalogue
    _current_catalogue = catalogue


def get_cart() -> Cart:
    global _current_cart
    if _current_cart is None:
        _current_cart = HttpCart(config.CART_SERVICE_URL) if config.CART_SERVICE_URL else MemoryCart()
    return _current_cart


def set_cart(cart: Cart) -> None:
    global _current_cart
    _current_cart = cart


def reset_collaborators() -> None:
    """Reset both collaborators to their defaults."""
    global _current_catalogue, _current_cart
    _current_catalogue = None
    _current_cart = None


__all__ = [
    "Cart",
    "Catalogue",
    "HttpCart",
    "HttpCatalogue",
    "MemoryCart",
    "MemoryCatalogue",
    "ProductSnapshot",
    "get_cart",
    "get_catalogue",
    "reset_collaborators",
    "set_cart",
    "set_catalogue",
]
