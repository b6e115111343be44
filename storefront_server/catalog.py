"""Product catalogue."""

import asyncio
import logging
from typing import Any, Optional

from pydantic import ValidationError

from .api import StorefrontApi
from .errors import StorefrontError
from .models import Product

logger = logging.getLogger(__name__)


class CatalogStore:
    """Holds the product list used to price carts and validate checkout lines."""

    MAX_ATTEMPTS = 3

    def __init__(self, api: StorefrontApi, retry_delay: float = 1.0) -> None:
        """
        Initialize the catalogue.

        Args:
            api: Storefront API client
            retry_delay: Base backoff in seconds; attempt N waits N * retry_delay
        """
        self.api = api
        self.retry_delay = retry_delay
        self.products: list[Product] = []
        self.error: Optional[str] = None
        self._by_id: dict[str, Product] = {}

    def set_products(self, products: list[Product]) -> None:
        self.products = list(products)
        self._by_id = {p.id: p for p in self.products}

    async def load(self, params: Optional[dict[str, Any]] = None) -> list[Product]:
        """
        Fetch the catalogue, retrying with a linear backoff.

        A read path: after the last failed attempt the catalogue is left
        empty and the error recorded, nothing is raised.
        """
        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            try:
                logger.info(f"Fetching products (attempt {attempt}/{self.MAX_ATTEMPTS})...")
                response = await self.api.get_products(params)
                data = response.get("data")
                raw = data.get("products") if isinstance(data, dict) else None
                if not isinstance(raw, list):
                    raise StorefrontError("Invalid response structure")
                products = self._parse_products(raw)
                self.set_products(products)
                self.error = None
                logger.info(f"Loaded {len(products)} products")
                return self.products
            except StorefrontError as e:
                logger.warning(f"Attempt {attempt} failed: {e.message}")
                if attempt == self.MAX_ATTEMPTS:
                    self.error = "Unable to load products. Please check your connection."
                    self.set_products([])
                    return self.products
                await asyncio.sleep(self.retry_delay * attempt)
        return self.products

    @staticmethod
    def _parse_products(raw: list[Any]) -> list[Product]:
        products = []
        for item in raw:
            try:
                products.append(Product.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Failed to parse product: {e.error_count()} error(s)")
        return products

    def find(self, product_id: str) -> Optional[Product]:
        return self._by_id.get(product_id)

    def search(self, query: str) -> list[Product]:
        """Case-insensitive name search."""
        needle = query.strip().lower()
        if not needle:
            return list(self.products)
        return [p for p in self.products if needle in p.name.lower()]
