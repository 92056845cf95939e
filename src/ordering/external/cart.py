"""Cart collaborator — read-only checkout line items, read once per order."""

import threading
from abc import ABC, abstractmethod

import requests
import structlog
from protean.exceptions import ValidationError
from shared import config
from shared.errors import CartNotFoundError, CollaboratorUnavailableError

logger = structlog.get_logger(__name__)


class Cart(ABC):
    @abstractmethod
    def items(self, cart_id: str, user_id: str) -> list[dict]:
        """Return ``[{product_id, quantity}]`` for the user's cart.

        Raises ``CartNotFoundError`` for an unknown cart or one that belongs
        to someone else, and ``ValidationError`` for an empty cart.
        """


class MemoryCart(Cart):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._carts: dict[str, tuple[str, list[dict]]] = {}

    def put(self, cart_id: str, user_id: str, items: list[dict]) -> None:
        with self._lock:
            self._carts[cart_id] = (user_id, [dict(item) for item in items])

    def items(self, cart_id: str, user_id: str) -> list[dict]:
        with self._lock:
            entry = self._carts.get(cart_id)
        if entry is None or entry[0] != user_id:
            raise CartNotFoundError(cart_id)
        if not entry[1]:
            raise ValidationError({"cart_id": [f"Cart {cart_id} is empty"]})
        return [dict(item) for item in entry[1]]


class HttpCart(Cart):
    """Cart service client: ``GET {base_url}/carts/{cart_id}``."""

    def __init__(self, base_url: str, timeout: float | None = None, session: requests.Session | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or config.HTTP_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def items(self, cart_id: str, user_id: str) -> list[dict]:
        try:
            resp = self.session.get(
                f"{self.base_url}/carts/{cart_id}",
                params={"user_id": user_id},
                timeout=self.timeout,
            )
            if resp.status_code == 404:
                raise CartNotFoundError(cart_id)
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as exc:
            logger.warning("Cart read failed", cart_id=cart_id, error=str(exc))
            raise CollaboratorUnavailableError("cart", str(exc)) from exc

        owner = data.get("user_id") or data.get("customer_id")
        if owner and str(owner) != str(user_id):
            raise CartNotFoundError(cart_id)

        items = [
            {"product_id": str(item["product_id"]), "quantity": int(item["quantity"])}
            for item in data.get("items") or []
        ]
        if not items:
            raise ValidationError({"cart_id": [f"Cart {cart_id} is empty"]})
        return items
