"""Guest and authenticated cart stores.

Both variants expose the same operations. The guest store keeps a JSON
snapshot in a client-held mapping (the Flask session cookie in HTTP use);
the server store writes through ``cart_ops`` and re-reads its view from the
database after every mutation.
"""
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, MutableMapping, Optional, Tuple

from storefront.services import cart_ops
from storefront.services.catalog import ProductCatalog
from storefront.services.errors import ValidationError
from storefront.services.pricing import CartTotals, price_lines
from storefront.utils.db import transactional

logger = logging.getLogger(__name__)

GUEST_CART_KEY = "guest_cart"


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int

    def to_dict(self):
        return {"product_id": self.product_id, "quantity": self.quantity}


def _coerce_product_id(product_id) -> int:
    if product_id is None or isinstance(product_id, bool):
        raise ValidationError("Product ID is required", missing_fields=["product_id"])
    try:
        return int(product_id)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid product id {product_id!r}")


def _coerce_quantity(quantity) -> int:
    if isinstance(quantity, bool):
        raise ValidationError("Quantity must be an integer")
    try:
        return int(quantity)
    except (TypeError, ValueError):
        raise ValidationError("Quantity must be an integer")


class CartStore(ABC):
    """Operations shared by the guest and server carts.

    ``lines`` is the minimal view used for pricing and merging; ``items``
    is the display view enriched with product data.
    """

    def __init__(self, catalog: Optional[ProductCatalog] = None):
        self.catalog = catalog or ProductCatalog()

    def _resolve_for_add(self, product_id, quantity) -> Tuple[int, int]:
        pid = _coerce_product_id(product_id)
        qty = _coerce_quantity(quantity)
        if qty < 1:
            raise ValidationError("Quantity must be at least 1")
        if self.catalog.get_product(pid) is None:
            raise ValidationError(f"Product {pid} not found")
        return pid, qty

    @abstractmethod
    def lines(self) -> List[CartLine]:
        ...

    @abstractmethod
    def items(self) -> List[Dict]:
        ...

    @abstractmethod
    def add_item(self, product_id, quantity=1):
        ...

    @abstractmethod
    def update_quantity(self, product_id, quantity):
        ...

    @abstractmethod
    def remove_item(self, product_id):
        ...

    @abstractmethod
    def clear(self):
        ...

    def priced(self) -> Tuple[CartTotals, List[int]]:
        """Price the current lines from live products.

        Returns the totals and the ids of lines whose product is no longer
        available; those lines are left out of the totals.
        """
        lines = self.lines()
        products = self.catalog.get_products(line.product_id for line in lines)
        pairs = []
        unavailable = []
        for line in lines:
            product = products.get(line.product_id)
            if product is None:
                unavailable.append(line.product_id)
                continue
            pairs.append((product, line.quantity))
        return price_lines(pairs), unavailable

    def totals(self) -> CartTotals:
        return self.priced()[0]

    def is_empty(self) -> bool:
        return not self.lines()


class GuestCartStore(CartStore):
    def __init__(self, storage: MutableMapping, catalog: Optional[ProductCatalog] = None, key: str = GUEST_CART_KEY):
        super().__init__(catalog)
        self.storage = storage
        self.key = key

    def lines(self) -> List[CartLine]:
        raw = self.storage.get(self.key)
        if not raw:
            return []
        try:
            entries = json.loads(raw)
            return [
                CartLine(int(e["product_id"]), int(e["quantity"]))
                for e in entries
                if int(e["quantity"]) > 0
            ]
        except (TypeError, ValueError, KeyError) as e:
            logger.warning("Discarding malformed guest cart snapshot: %s", e)
            return []

    def _persist(self, lines: List[CartLine]) -> None:
        self.storage[self.key] = json.dumps([line.to_dict() for line in lines])

    def add_item(self, product_id, quantity=1) -> List[CartLine]:
        pid, qty = self._resolve_for_add(product_id, quantity)
        lines = self.lines()
        for idx, line in enumerate(lines):
            if line.product_id == pid:
                lines[idx] = CartLine(pid, line.quantity + qty)
                break
        else:
            lines.append(CartLine(pid, qty))
        self._persist(lines)
        return lines

    def update_quantity(self, product_id, quantity) -> List[CartLine]:
        pid = _coerce_product_id(product_id)
        qty = _coerce_quantity(quantity)
        if qty <= 0:
            return self.remove_item(pid)
        lines = [
            CartLine(pid, qty) if line.product_id == pid else line
            for line in self.lines()
        ]
        self._persist(lines)
        return lines

    def remove_item(self, product_id) -> List[CartLine]:
        pid = _coerce_product_id(product_id)
        lines = [line for line in self.lines() if line.product_id != pid]
        self._persist(lines)
        return lines

    def clear(self) -> None:
        self._persist([])

    def discard(self) -> None:
        """Drop the snapshot key entirely."""
        self.storage.pop(self.key, None)

    def items(self) -> List[dict]:
        lines = self.lines()
        products = self.catalog.get_products(line.product_id for line in lines)
        result = []
        for line in lines:
            product = products.get(line.product_id)
            entry = line.to_dict()
            entry["available"] = product is not None
            if product is not None:
                entry.update(
                    name=product.name,
                    price=float(product.price),
                    sell_price=float(product.sell_price),
                    images=list(product.images or []),
                    stock_quantity=product.quantity,
                )
            result.append(entry)
        return result


class ServerCartStore(CartStore):
    def __init__(
        self,
        user_id: int,
        catalog: Optional[ProductCatalog] = None,
        debounce_seconds: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(catalog)
        self.user_id = user_id
        self.debounce_seconds = debounce_seconds
        self._clock = clock
        self._items: List[Dict] = []
        self._last_fetch: Optional[float] = None

    def items(self) -> List[Dict]:
        if self._last_fetch is None:
            self.refresh(force=True)
        return self._items

    def refresh(self, force: bool = False) -> List[Dict]:
        """Re-read the authoritative cart; non-forced reads are debounced.

        The debounce window belongs to this instance. HTTP handlers build a
        fresh store per request, so the first read of a request always hits
        the database.
        """
        now = self._clock()
        if (
            not force
            and self._last_fetch is not None
            and now - self._last_fetch < self.debounce_seconds
        ):
            logger.debug("Skipping cart refresh for user %s - too recent", self.user_id)
            return self._items
        self._items = cart_ops.list_items(self.user_id)
        self._last_fetch = now
        return self._items

    def lines(self) -> List[CartLine]:
        return [CartLine(i["product_id"], i["quantity"]) for i in self.refresh(force=True)]

    def add_item(self, product_id, quantity=1) -> List[Dict]:
        pid, qty = self._resolve_for_add(product_id, quantity)
        with transactional("Failed to add to cart"):
            cart_ops.add_item(self.user_id, pid, qty)
        return self.refresh(force=True)

    def update_quantity(self, product_id, quantity) -> List[Dict]:
        pid = _coerce_product_id(product_id)
        qty = _coerce_quantity(quantity)
        if qty <= 0:
            return self.remove_item(pid)
        with transactional("Failed to update cart quantity"):
            cart_ops.set_quantity(self.user_id, pid, qty)
        return self.refresh(force=True)

    def remove_item(self, product_id) -> List[Dict]:
        pid = _coerce_product_id(product_id)
        with transactional("Failed to remove cart item"):
            cart_ops.remove_item(self.user_id, pid)
        return self.refresh(force=True)

    def clear(self) -> List[Dict]:
        with transactional("Failed to clear cart"):
            cart_ops.clear(self.user_id)
        return self.refresh(force=True)

    def count(self) -> int:
        return cart_ops.count(self.user_id)
