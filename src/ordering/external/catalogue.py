"""Catalogue collaborator — read-only product name and price lookup.

Called once per order, at creation time. The order keeps the returned
snapshot; prices are never read again afterwards.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass

import requests
import structlog
from protean.exceptions import ValidationError
from shared import config
from shared.errors import CollaboratorUnavailableError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ProductSnapshot:
    product_id: str
    name: str
    unit_price: float


class Catalogue(ABC):
    @abstractmethod
    def lookup(self, product_id: str) -> ProductSnapshot | None:
        """Return the product's current name and price, or None if unknown."""

    def snapshot(self, product_ids) -> dict[str, ProductSnapshot]:
        """Look up every product; unknown products fail the whole request."""
        snapshots = {}
        for product_id in dict.fromkeys(product_ids):
            product = self.lookup(product_id)
            if product is None:
                raise ValidationError({"product_id": [f"Product {product_id} is not in the catalogue"]})
            snapshots[product_id] = product
        return snapshots


class MemoryCatalogue(Catalogue):
    """In-process catalogue for development and tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._products: dict[str, ProductSnapshot] = {}

    def add_product(self, product_id: str, name: str, unit_price: float) -> ProductSnapshot:
        product = ProductSnapshot(product_id=product_id, name=name, unit_price=float(unit_price))
        with self._lock:
            self._products[product_id] = product
        return product

    def set_price(self, product_id: str, unit_price: float) -> None:
        with self._lock:
            current = self._products[product_id]
            self._products[product_id] = ProductSnapshot(current.product_id, current.name, float(unit_price))

    def lookup(self, product_id: str) -> ProductSnapshot | None:
        with self._lock:
            return self._products.get(product_id)


class HttpCatalogue(Catalogue):
    """Catalogue service client: ``GET {base_url}/products/{product_id}``."""

    def __init__(self, base_url: str, timeout: float | None = None, session: requests.Session | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or config.HTTP_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def lookup(self, product_id: str) -> ProductSnapshot | None:
        try:
            resp = self.session.get(f"{self.base_url}/products/{product_id}", timeout=self.timeout)
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as exc:
            logger.warning("Catalogue lookup failed", product_id=product_id, error=str(exc))
            raise CollaboratorUnavailableError("catalogue", str(exc)) from exc

        return ProductSnapshot(
            product_id=str(data.get("product_id") or data.get("id") or product_id),
            name=data.get("name") or data.get("title") or "",
            unit_price=float(data["price"]),
        )
