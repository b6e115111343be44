"""Cart store: local product -> size -> quantity mapping mirrored to the server."""

import logging
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from .api import StorefrontApi
from .catalog import CatalogStore
from .errors import AuthenticationRequired, InputError, StorefrontError
from .models import CartLine
from .session import SessionStore

logger = logging.getLogger(__name__)

CartItems = dict[str, dict[str, int]]


class CartSyncStatus(str, Enum):
    LOCAL = "local"  # not known to mirror the server
    SYNCING = "syncing"
    SYNCED = "synced"


def set_quantity(items: CartItems, product_id: str, size: str, quantity: int) -> None:
    """
    Set one entry in place, pruning on zero.

    Every stored quantity stays positive and no product keeps an empty size
    mapping.
    """
    if quantity < 0:
        raise InputError("Quantity cannot be negative")
    if quantity == 0:
        sizes = items.get(product_id)
        if sizes is None:
            return
        sizes.pop(size, None)
        if not sizes:
            del items[product_id]
        return
    items.setdefault(product_id, {})[size] = quantity


def lines_to_items(raw_items: list[Any]) -> tuple[CartItems, int]:
    """
    Convert the server's line-item list into the nested mapping.

    Lines without a product reference or size, or with a non-positive
    quantity, are dropped.

    Returns:
        (items, number of dropped lines)
    """
    items: CartItems = {}
    invalid = 0
    for line in raw_items:
        if not isinstance(line, dict):
            invalid += 1
            continue
        product = line.get("productId")
        # populated references arrive as objects, bare ones as ids
        product_id = product.get("_id") if isinstance(product, dict) else product
        size = line.get("size")
        quantity = line.get("quantity")
        if (
            not product_id
            or not size
            or not isinstance(quantity, int)
            or isinstance(quantity, bool)
            or quantity <= 0
        ):
            invalid += 1
            continue
        items.setdefault(str(product_id), {})[str(size)] = quantity
    return items, invalid


class CartStore:
    """Holds the local cart and mirrors mutations to the server when logged in."""

    def __init__(self, api: StorefrontApi, session: SessionStore) -> None:
        self.api = api
        self.session = session
        self.items: CartItems = {}
        self.status = CartSyncStatus.LOCAL
        # token the mapping was last synced under
        self.synced_token: Optional[str] = None
        self.loading = False

    def _require_auth(self, message: str) -> None:
        if not self.session.authenticated:
            raise AuthenticationRequired(message)

    def is_synced_with(self, token: Optional[str]) -> bool:
        return self.status == CartSyncStatus.SYNCED and self.synced_token == token

    async def fetch(self) -> CartItems:
        """
        Replace the local cart with the server's.

        A read path: anonymous sessions get an empty cart and server errors
        degrade to an empty cart. Never raises.
        """
        logger.info("=== GET CART ===")
        if not self.session.authenticated:
            self._reset()
            return self.items

        token = self.session.token
        self.loading = True
        self.status = CartSyncStatus.SYNCING
        try:
            response = await self.api.get_cart()
            data = response.get("data")
            raw_items = data.get("items") if isinstance(data, dict) else None
            items, invalid = lines_to_items(raw_items or [])
        except StorefrontError as e:
            logger.warning(f"Cart fetch failed, using empty cart: {e.message}")
            self._reset()
            return self.items
        finally:
            self.loading = False

        if invalid:
            logger.warning(f"Found {invalid} invalid cart items")

        # the session may have changed while the request was in flight
        if self.session.token != token:
            logger.warning("Session changed during cart fetch; discarding result")
            self.status = CartSyncStatus.LOCAL
            return self.items

        self.items = items
        self.status = CartSyncStatus.SYNCED
        self.synced_token = token
        logger.info(f"Cart: item_count={self.count()}")
        return self.items

    async def add(self, product_id: str, size: str, quantity: int = 1) -> CartItems:
        """
        Add a quantity of one product size.

        Raises:
            AuthenticationRequired: If not logged in
            InputError: If size is missing or quantity is not positive
            ApiError: If the server rejects the change (local cart untouched)
        """
        logger.info(f"=== ADD TO CART: product_id={product_id}, size={size}, quantity={quantity} ===")
        self._require_auth("Please login to add items to cart")
        if not size:
            raise InputError("Select Product Size")
        if quantity <= 0:
            raise InputError("Quantity must be at least 1")

        await self.api.add_to_cart(product_id, size, quantity)

        current = self.items.get(product_id, {}).get(size, 0)
        set_quantity(self.items, product_id, size, current + quantity)
        logger.info("ADD TO CART SUCCESS")
        return self.items

    async def update(self, product_id: str, size: str, quantity: int) -> CartItems:
        """
        Set the quantity of one product size; zero removes it.

        The local mapping changes only after the server acknowledges.

        Raises:
            AuthenticationRequired: If not logged in
            InputError: If quantity is negative
            ApiError: If the server rejects the change (local cart untouched)
        """
        logger.info(f"=== UPDATE CART: product_id={product_id}, size={size}, new_quantity={quantity} ===")
        self._require_auth("Please login to update cart")
        if quantity < 0:
            raise InputError("Quantity cannot be negative")

        await self.api.update_cart_item(product_id, size, quantity)

        set_quantity(self.items, product_id, size, quantity)
        logger.info("UPDATE CART SUCCESS")
        return self.items

    async def remove(self, product_id: str, size: str) -> CartItems:
        """Remove one product size from the cart."""
        logger.info(f"=== REMOVE FROM CART: product_id={product_id}, size={size} ===")
        self._require_auth("Please login to update cart")

        await self.api.remove_from_cart(product_id, size)

        set_quantity(self.items, product_id, size, 0)
        logger.info("REMOVE FROM CART SUCCESS")
        return self.items

    def clear_local(self) -> None:
        """Empty the mapping without contacting the server."""
        self._reset()

    def _reset(self) -> None:
        self.items = {}
        self.status = CartSyncStatus.LOCAL
        self.synced_token = None

    async def clear_on_server(self) -> bool:
        """
        Best-effort server-side clear. Failures are logged, never raised.

        Returns:
            True if the server acknowledged the clear
        """
        if not self.session.authenticated:
            return False
        try:
            await self.api.clear_cart()
            logger.info("Server cart cleared")
            return True
        except StorefrontError as e:
            logger.warning(f"Failed to clear cart on server: {e.message}")
            return False

    def count(self) -> int:
        """Total number of units in the cart."""
        return sum(q for sizes in self.items.values() for q in sizes.values() if q > 0)

    def amount(self, catalog: CatalogStore) -> Decimal:
        """Sum of quantity x unit price; products missing from the catalogue are skipped."""
        total = Decimal("0")
        for product_id, sizes in self.items.items():
            product = catalog.find(product_id)
            if product is None:
                continue
            for quantity in sizes.values():
                if quantity > 0:
                    total += product.price * quantity
        return total

    def lines(self, catalog: Optional[CatalogStore] = None) -> list[CartLine]:
        """
        Flatten the mapping into order lines.

        With a catalogue, lines whose product is not in it are dropped.
        """
        result = []
        for product_id, sizes in self.items.items():
            if catalog is not None and catalog.find(product_id) is None:
                continue
            for size, quantity in sizes.items():
                if quantity > 0:
                    result.append(CartLine(product_id=product_id, size=size, quantity=quantity))
        return result
