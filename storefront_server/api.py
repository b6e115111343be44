"""Storefront REST API client."""

import json
import logging
from decimal import Decimal
from typing import Any, Optional

import httpx

from .auth import SessionStorage
from .errors import ApiError
from .models import AuthCredentials, OrderRequest, RegistrationProfile

logger = logging.getLogger(__name__)


class StorefrontApi:
    """
    Thin async client for the storefront backend.

    Every call reads the bearer token from the persisted session storage, so
    a logout takes effect on the very next request. Responses use the
    ``{success, data, message}`` envelope; methods return the decoded body.
    """

    def __init__(
        self,
        storage: SessionStorage,
        base_url: str = "http://localhost:5000/api",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize the API client.

        Args:
            storage: Session storage holding the bearer token
            base_url: Backend base URL, including the ``/api`` prefix
            transport: Optional httpx transport (used by tests)
            timeout: Per-request timeout in seconds
        """
        self.storage = storage
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
        )

    def _auth_headers(self) -> dict[str, str]:
        token = self.storage.get_token()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _request(
        self,
        method: str,
        url: str,
        body: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """
        Issue a request and decode the JSON envelope.

        Raises:
            ApiError: On transport failure, unparsable body or non-2xx status
        """
        headers = self._auth_headers()
        logger.debug(f"API request: {method} {url} has_token={'Authorization' in headers}")

        try:
            response = await self.client.request(
                method,
                url,
                content=json.dumps(body, default=str) if body is not None else None,
                params=params,
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.error(f"API transport error: {method} {url}: {e}")
            raise ApiError(f"Network error: {e}") from e

        logger.debug(f"API response: {method} {url} status={response.status_code}")

        try:
            data = response.json() if response.content else {}
        except ValueError as e:
            raise ApiError("Invalid response format from server", response.status_code) from e

        if not response.is_success:
            message = data.get("message") if isinstance(data, dict) else None
            raise ApiError(message or f"HTTP Error: {response.status_code}", response.status_code)

        if not isinstance(data, dict):
            raise ApiError("Invalid response format from server", response.status_code)

        return data

    # Auth

    async def login(self, credentials: AuthCredentials) -> dict[str, Any]:
        """POST /auth/login."""
        return await self._request("POST", "/auth/login", credentials.model_dump())

    async def register(self, profile: RegistrationProfile) -> dict[str, Any]:
        """POST /auth/register."""
        return await self._request("POST", "/auth/register", profile.model_dump())

    async def get_profile(self) -> dict[str, Any]:
        """GET /auth/profile for the current token."""
        return await self._request("GET", "/auth/profile")

    # Catalogue

    async def get_products(self, params: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """GET /products, dropping empty filter values."""
        clean = {k: v for k, v in (params or {}).items() if v not in (None, "")}
        return await self._request("GET", "/products", params=clean or None)

    # Cart

    async def get_cart(self) -> dict[str, Any]:
        return await self._request("GET", "/cart")

    async def add_to_cart(self, product_id: str, size: str, quantity: int = 1) -> dict[str, Any]:
        return await self._request(
            "POST", "/cart/add", {"productId": product_id, "size": size, "quantity": quantity}
        )

    async def update_cart_item(self, product_id: str, size: str, quantity: int) -> dict[str, Any]:
        return await self._request(
            "PUT", "/cart/update", {"productId": product_id, "size": size, "quantity": quantity}
        )

    async def remove_from_cart(self, product_id: str, size: str) -> dict[str, Any]:
        return await self._request("DELETE", "/cart/remove", {"productId": product_id, "size": size})

    async def clear_cart(self) -> dict[str, Any]:
        return await self._request("DELETE", "/cart/clear")

    # Orders

    async def create_order(self, order: OrderRequest) -> dict[str, Any]:
        """POST /orders."""
        return await self._request("POST", "/orders", order.model_dump(by_alias=True, mode="json"))

    async def get_orders(self) -> dict[str, Any]:
        return await self._request("GET", "/orders")

    async def get_order(self, order_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/orders/{order_id}")

    # Payments

    async def process_cod_order(self, order_id: str) -> dict[str, Any]:
        """Settle an order as cash on delivery."""
        return await self._request("POST", "/payments/cod/process", {"orderId": order_id})

    async def create_payhere_payment(
        self, order_id: str, amount: Decimal, currency: str = "LKR"
    ) -> dict[str, Any]:
        """Request the signed form fields for the hosted payment page."""
        return await self._request(
            "POST",
            "/payments/payhere/create-payment",
            {"orderId": order_id, "amount": float(amount), "currency": currency},
        )

    async def health(self) -> dict[str, Any]:
        return await self._request("GET", "/health")

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
