"""Shared fixtures: an in-memory API double and a fake REST backend."""
from __future__ import annotations

import asyncio
import json
from decimal import Decimal

import httpx
import pytest

from storefront_server.auth import SessionStorage
from storefront_server.cart import CartStore
from storefront_server.catalog import CatalogStore
from storefront_server.checkout import CheckoutOrchestrator
from storefront_server.errors import ApiError
from storefront_server.models import AuthCredentials, Product, ShippingAddress
from storefront_server.session import SessionStore
from storefront_server.sync import CartSynchronizer

USER = {"id": "u1", "name": "Alice", "email": "alice@example.com", "role": "customer"}
TOKEN = "tok-1"
CREDENTIALS = AuthCredentials(email="alice@example.com", password="secret")

PRODUCTS = [
    {"_id": "P1", "name": "Cotton Shirt", "price": 1000, "sizes": ["S", "M", "L"]},
    {"_id": "P2", "name": "Denim Jacket", "price": 2500, "sizes": ["M", "L"]},
]

PAYHERE_RESPONSE = {
    "success": True,
    "paymentUrl": "https://sandbox.payhere.lk/pay/checkout",
    "paymentData": {"merchant_id": "1221149", "order_id": "order-1", "amount": "2010.00"},
}


class FakeApi:
    """Records calls; methods listed in ``fail`` raise, those in ``hang`` wait on ``gate``."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.fail: set[str] = set()
        self.hang: set[str] = set()
        self.gate = asyncio.Event()
        self.auth_response = {"success": True, "data": {"token": TOKEN, "user": dict(USER)}}
        self.cart_response = {"success": True, "data": {"items": []}}
        self.products = [dict(p) for p in PRODUCTS]
        self.order_id = "order-1"
        self.payhere_response = dict(PAYHERE_RESPONSE)

    def names(self) -> list[str]:
        return [call[0] for call in self.calls]

    async def _call(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.hang:
            await self.gate.wait()
        if name in self.fail:
            raise ApiError(f"{name} failed", 500)

    async def login(self, credentials):
        await self._call("login", credentials)
        return self.auth_response

    async def register(self, profile):
        await self._call("register", profile)
        return self.auth_response

    async def get_profile(self):
        await self._call("get_profile")
        return {"success": True, "data": dict(USER)}

    async def get_products(self, params=None):
        await self._call("get_products", params)
        return {"success": True, "data": {"products": self.products}}

    async def get_cart(self):
        await self._call("get_cart")
        return self.cart_response

    async def add_to_cart(self, product_id, size, quantity=1):
        await self._call("add_to_cart", product_id, size, quantity)
        return {"success": True}

    async def update_cart_item(self, product_id, size, quantity):
        await self._call("update_cart_item", product_id, size, quantity)
        return {"success": True}

    async def remove_from_cart(self, product_id, size):
        await self._call("remove_from_cart", product_id, size)
        return {"success": True}

    async def clear_cart(self):
        await self._call("clear_cart")
        return {"success": True}

    async def create_order(self, order):
        await self._call("create_order", order)
        return {"success": True, "data": {"_id": self.order_id}}

    async def process_cod_order(self, order_id):
        await self._call("process_cod_order", order_id)
        return {"success": True}

    async def create_payhere_payment(self, order_id, amount, currency="LKR"):
        await self._call("create_payhere_payment", order_id, amount, currency)
        return self.payhere_response


@pytest.fixture
def storage(tmp_path) -> SessionStorage:
    return SessionStorage(str(tmp_path / "session.json"))


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def session(storage, api) -> SessionStore:
    return SessionStore(storage, api)


@pytest.fixture
def catalog(api) -> CatalogStore:
    store = CatalogStore(api, retry_delay=0)
    store.set_products([Product.model_validate(p) for p in PRODUCTS])
    return store


@pytest.fixture
def cart(api, session) -> CartStore:
    return CartStore(api, session)


@pytest.fixture
def synchronizer(session, cart) -> CartSynchronizer:
    return CartSynchronizer(session, cart)


@pytest.fixture
def orchestrator(api, session, cart, catalog) -> CheckoutOrchestrator:
    return CheckoutOrchestrator(api, session, cart, catalog, delivery_fee=Decimal("10"))


@pytest.fixture
def address() -> ShippingAddress:
    return ShippingAddress(
        first_name="Alice",
        last_name="Perera",
        email="alice@example.com",
        street="12 Galle Road",
        city="Colombo",
        zipcode="00300",
        phone="0771234567",
    )


class FakeBackend:
    """Minimal in-memory storefront REST backend for httpx.MockTransport."""

    def __init__(self) -> None:
        self.requests: list[tuple[str, str, dict]] = []
        self.cart: dict[tuple[str, str], int] = {}
        self.orders: list[dict] = []
        self.cod_processed: list[str] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def paths(self) -> list[str]:
        return [f"{method} {path}" for method, path, _ in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        path = request.url.path.removeprefix("/api")
        method = request.method
        self.requests.append((method, path, body))

        if method == "GET" and path == "/health":
            return httpx.Response(200, json={"status": "ok"})
        if method == "POST" and path == "/auth/login":
            if body.get("password") != "secret":
                return httpx.Response(401, json={"success": False, "message": "Invalid credentials"})
            return httpx.Response(200, json={"success": True, "data": {"token": TOKEN, "user": USER}})
        if method == "POST" and path == "/auth/register":
            user = {"id": "u2", "name": body["name"], "email": body["email"], "role": "customer"}
            return httpx.Response(201, json={"success": True, "data": {"token": "tok-2", "user": user}})
        if method == "GET" and path == "/products":
            return httpx.Response(200, json={"success": True, "data": {"products": PRODUCTS}})

        if request.headers.get("Authorization") not in (f"Bearer {TOKEN}", "Bearer tok-2"):
            return httpx.Response(401, json={"success": False, "message": "Not authorized"})

        if method == "GET" and path == "/cart":
            items = [
                {"productId": {"_id": pid}, "size": size, "quantity": qty}
                for (pid, size), qty in self.cart.items()
            ]
            return httpx.Response(200, json={"success": True, "data": {"items": items}})
        if method == "POST" and path == "/cart/add":
            key = (body["productId"], body["size"])
            self.cart[key] = self.cart.get(key, 0) + body["quantity"]
            return httpx.Response(200, json={"success": True})
        if method == "PUT" and path == "/cart/update":
            key = (body["productId"], body["size"])
            if body["quantity"] == 0:
                self.cart.pop(key, None)
            else:
                self.cart[key] = body["quantity"]
            return httpx.Response(200, json={"success": True})
        if method == "DELETE" and path == "/cart/remove":
            self.cart.pop((body["productId"], body["size"]), None)
            return httpx.Response(200, json={"success": True})
        if method == "DELETE" and path == "/cart/clear":
            self.cart.clear()
            return httpx.Response(200, json={"success": True})
        if method == "POST" and path == "/orders":
            order = {"_id": f"order-{len(self.orders) + 1}", "status": "pending", **body}
            self.orders.append(order)
            return httpx.Response(201, json={"success": True, "data": order})
        if method == "GET" and path == "/orders":
            return httpx.Response(200, json={"success": True, "data": {"orders": self.orders}})
        if method == "POST" and path == "/payments/cod/process":
            self.cod_processed.append(body["orderId"])
            return httpx.Response(200, json={"success": True})
        if method == "POST" and path == "/payments/payhere/create-payment":
            return httpx.Response(200, json=PAYHERE_RESPONSE)

        return httpx.Response(404, json={"success": False, "message": "Not found"})


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()
