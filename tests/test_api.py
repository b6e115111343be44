"""Tests for the REST client against a mock transport."""
from __future__ import annotations

import json
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio

from storefront_server.api import StorefrontApi
from storefront_server.errors import ApiError
from storefront_server.models import CartLine, OrderRequest, PaymentMethod

from .conftest import CREDENTIALS, TOKEN


def make_api(storage, handler) -> StorefrontApi:
    return StorefrontApi(storage, base_url="http://testserver/api", transport=httpx.MockTransport(handler))


@pytest_asyncio.fixture
async def client(storage, backend):
    api = make_api(storage, backend.handler)
    yield api
    await api.close()


@pytest.mark.asyncio
async def test_login_posts_credentials(client, backend):
    response = await client.login(CREDENTIALS)

    assert response["data"]["token"] == TOKEN
    method, path, body = backend.requests[0]
    assert (method, path) == ("POST", "/auth/login")
    assert body == {"email": "alice@example.com", "password": "secret"}


@pytest.mark.asyncio
async def test_bearer_token_read_from_storage_on_each_call(storage, client, backend):
    with pytest.raises(ApiError) as exc_info:
        await client.get_cart()
    assert exc_info.value.status_code == 401
    assert exc_info.value.message == "Not authorized"

    storage.set_item("token", TOKEN)
    response = await client.get_cart()

    assert response["data"]["items"] == []


@pytest.mark.asyncio
async def test_cart_mutations_send_camel_case_bodies(storage, client, backend):
    storage.set_item("token", TOKEN)

    await client.add_to_cart("P1", "M", 2)
    await client.update_cart_item("P1", "M", 3)
    await client.remove_from_cart("P1", "M")
    await client.clear_cart()

    assert backend.paths() == [
        "POST /cart/add",
        "PUT /cart/update",
        "DELETE /cart/remove",
        "DELETE /cart/clear",
    ]
    assert backend.requests[0][2] == {"productId": "P1", "size": "M", "quantity": 2}
    assert backend.requests[2][2] == {"productId": "P1", "size": "M"}


@pytest.mark.asyncio
async def test_create_order_serializes_by_alias(storage, client, backend, address):
    storage.set_item("token", TOKEN)
    order = OrderRequest(
        items=[CartLine(product_id="P1", size="M", quantity=2)],
        shipping_address=address,
        payment_method=PaymentMethod.CASH_ON_DELIVERY,
    )

    response = await client.create_order(order)

    assert response["data"]["_id"] == "order-1"
    body = backend.requests[0][2]
    assert body["paymentMethod"] == "cod"
    assert body["items"] == [{"productId": "P1", "size": "M", "quantity": 2}]
    assert body["shippingAddress"]["firstName"] == "Alice"


@pytest.mark.asyncio
async def test_payhere_amount_sent_as_number(storage, client, backend):
    storage.set_item("token", TOKEN)

    await client.create_payhere_payment("order-1", Decimal("2010"), "LKR")

    assert backend.requests[0][2] == {"orderId": "order-1", "amount": 2010.0, "currency": "LKR"}


@pytest.mark.asyncio
async def test_get_products_drops_empty_filters(storage):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(dict(request.url.params))
        return httpx.Response(200, json={"success": True, "data": {"products": []}})

    api = make_api(storage, handler)
    await api.get_products({"category": "Men", "search": "", "subCategory": None})
    await api.close()

    assert seen == [{"category": "Men"}]


@pytest.mark.asyncio
async def test_error_message_from_body(storage):
    def handler(request):
        return httpx.Response(400, json={"success": False, "message": "Size not available"})

    api = make_api(storage, handler)
    with pytest.raises(ApiError) as exc_info:
        await api.add_to_cart("P1", "XXL", 1)
    await api.close()

    assert exc_info.value.message == "Size not available"
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_error_without_message_uses_status(storage):
    def handler(request):
        return httpx.Response(503)

    api = make_api(storage, handler)
    with pytest.raises(ApiError, match="HTTP Error: 503"):
        await api.health()
    await api.close()


@pytest.mark.asyncio
async def test_non_json_body(storage):
    def handler(request):
        return httpx.Response(200, text="<html>oops</html>")

    api = make_api(storage, handler)
    with pytest.raises(ApiError, match="Invalid response format from server"):
        await api.get_cart()
    await api.close()


@pytest.mark.asyncio
async def test_transport_error(storage):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    api = make_api(storage, handler)
    with pytest.raises(ApiError, match="Network error"):
        await api.get_cart()
    await api.close()


@pytest.mark.asyncio
async def test_request_body_is_json(storage):
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        assert request.headers["Content-Type"] == "application/json"
        return httpx.Response(200, json={"success": True})

    api = make_api(storage, handler)
    await api.process_cod_order("order-7")
    await api.close()

    assert bodies == [{"orderId": "order-7"}]
