"""HTTP server for the storefront."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from .checkout import CheckoutStatus
from .config import Settings
from .errors import (
    ApiError,
    AuthenticationFailed,
    AuthenticationRequired,
    CheckoutError,
    InputError,
    StorefrontError,
)
from .models import AuthCredentials, CardDetails, PaymentMethod, RegistrationProfile, ShippingAddress
from .storefront import Storefront

logger = logging.getLogger("storefront-http-server")

# Global state; set before startup to inject a preconfigured instance
storefront: Optional[Storefront] = None

ERROR_STATUS = {
    InputError: 400,
    AuthenticationRequired: 401,
    AuthenticationFailed: 401,
    CheckoutError: 409,
    ApiError: 502,
}


def to_http_error(error: StorefrontError) -> HTTPException:
    """Map a storefront error to an HTTP error with its user-facing message."""
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=error.message)
    return HTTPException(status_code=500, detail=error.message)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    global storefront

    # Startup
    logger.info("Starting Storefront HTTP Server...")
    if storefront is None:
        storefront = Storefront(Settings.from_env())
    await storefront.start()

    yield

    # Shutdown
    logger.info("Shutting down Storefront HTTP Server...")
    await storefront.close()
    storefront = None


app = FastAPI(
    title="Storefront MCP Server",
    description="HTTP API for the storefront cart, session and checkout",
    version="0.1.0",
    lifespan=lifespan,
)


# Request Models
class AddToCartRequest(BaseModel):
    product_id: str
    size: str
    quantity: int = 1


class UpdateCartRequest(BaseModel):
    product_id: str
    size: str
    quantity: int


class RemoveFromCartRequest(BaseModel):
    product_id: str
    size: str


class CheckoutRequest(BaseModel):
    address: ShippingAddress
    payment_method: PaymentMethod = PaymentMethod.CASH_ON_DELIVERY
    card: Optional[CardDetails] = None


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Storefront MCP Server",
        "version": "0.1.0",
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "auth": {
                "login": "POST /auth/login",
                "register": "POST /auth/register",
                "logout": "POST /auth/logout",
                "status": "GET /auth/status",
            },
            "products": {"list": "GET /products"},
            "cart": {
                "get": "GET /cart",
                "add": "POST /cart/add",
                "update": "PUT /cart/update",
                "remove": "DELETE /cart/remove",
            },
            "checkout": "POST /checkout",
            "payment_return": "POST /payments/return/success",
            "orders": {"list": "GET /orders", "detail": "GET /orders/{order_id}"},
        },
        "authenticated": storefront.session.authenticated if storefront else False,
    }


@app.get("/health")
async def health_check():
    """Health check endpoint, including backend reachability."""
    try:
        backend = await storefront.health()
        backend_ok = True
    except StorefrontError as e:
        logger.warning(f"Backend health check failed: {e.message}")
        backend, backend_ok = None, False
    return {
        "status": "healthy" if backend_ok else "degraded",
        "backend": backend,
        "initialized": storefront.session.initialized,
        "authenticated": storefront.session.authenticated,
    }


# Authentication endpoints
@app.post("/auth/login")
async def login(request: AuthCredentials):
    try:
        user = await storefront.login(request)
        return {"success": True, "message": f"Successfully logged in as {user.email}", "user": user}
    except StorefrontError as e:
        raise to_http_error(e)


@app.post("/auth/register")
async def register(request: RegistrationProfile):
    try:
        user = await storefront.register(request)
        return {"success": True, "message": f"Account created for {user.email}", "user": user}
    except StorefrontError as e:
        raise to_http_error(e)


@app.post("/auth/logout")
async def logout():
    await storefront.logout()
    return {"success": True, "message": "Successfully logged out"}


@app.get("/auth/status")
async def auth_status():
    return storefront.session.snapshot()


# Product endpoints
@app.get("/products")
async def list_products(q: str = ""):
    products = await storefront.search_products(q)
    return {
        "count": len(products),
        "products": [product.model_dump() for product in products],
        "error": storefront.catalog.error,
    }


# Cart endpoints
@app.get("/cart")
async def get_cart():
    if not storefront.session.authenticated:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return await storefront.get_cart()


@app.post("/cart/add")
async def add_to_cart(request: AddToCartRequest):
    try:
        items = await storefront.add_to_cart(request.product_id, request.size, request.quantity)
        return {"success": True, "message": "Item added to cart", "items": items}
    except StorefrontError as e:
        raise to_http_error(e)


@app.put("/cart/update")
async def update_cart(request: UpdateCartRequest):
    try:
        items = await storefront.update_cart(request.product_id, request.size, request.quantity)
        return {"success": True, "items": items}
    except StorefrontError as e:
        raise to_http_error(e)


@app.delete("/cart/remove")
async def remove_from_cart(request: RemoveFromCartRequest):
    try:
        items = await storefront.remove_from_cart(request.product_id, request.size)
        return {"success": True, "items": items}
    except StorefrontError as e:
        raise to_http_error(e)


# Checkout endpoints
@app.post("/checkout")
async def checkout(request: CheckoutRequest):
    try:
        result = await storefront.checkout(request.address, request.payment_method, request.card)
    except StorefrontError as e:
        raise to_http_error(e)

    if result.status == CheckoutStatus.REDIRECT and result.redirect:
        return HTMLResponse(content=result.redirect.to_html())
    return result.model_dump(exclude={"redirect"})


@app.post("/payments/return/success")
async def payment_return_success():
    """Landing endpoint for the hosted payment page's success redirect."""
    await storefront.complete_external_payment()
    return {"success": True, "message": "Payment completed successfully!"}


# Order endpoints
@app.get("/orders")
async def get_orders():
    try:
        orders = await storefront.get_orders()
        return {"count": len(orders), "orders": [order.model_dump() for order in orders]}
    except StorefrontError as e:
        raise to_http_error(e)


@app.get("/orders/{order_id}")
async def get_order(order_id: str):
    try:
        return (await storefront.get_order(order_id)).model_dump()
    except ApiError as e:
        if e.status_code == 404:
            raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
        raise to_http_error(e)
    except StorefrontError as e:
        raise to_http_error(e)


def run_http_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """Run the HTTP server."""
    import uvicorn

    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level)
    if reload:
        uvicorn.run("storefront_server.http_server:app", host=host, port=port, reload=True, log_level="info")
    else:
        uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    run_http_server()
