"""Composition root wiring the session, cart, catalogue and checkout together."""

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from .api import StorefrontApi
from .auth import SessionStorage
from .cart import CartItems, CartStore
from .catalog import CatalogStore
from .checkout import CheckoutOrchestrator, CheckoutResult
from .config import Settings
from .errors import ApiError, AuthenticationFailed, AuthenticationRequired
from .models import (
    AuthCredentials,
    CardDetails,
    Order,
    PaymentMethod,
    Product,
    RegistrationProfile,
    ShippingAddress,
    User,
)
from .payments import MockCardProcessor, validate_card
from .session import SessionBootstrapper, SessionState, SessionStore
from .sync import CartSynchronizer

logger = logging.getLogger(__name__)


class Storefront:
    """
    Application facade used by the MCP and HTTP servers.

    Every operation that can change the session ends with a synchronizer
    pass, so the cart always follows the session.
    """

    def __init__(
        self,
        settings: Settings,
        storage: Optional[SessionStorage] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        card_processor: Optional[MockCardProcessor] = None,
        catalog_retry_delay: float = 1.0,
    ) -> None:
        self.settings = settings
        self.storage = storage or SessionStorage(settings.session_file)
        self.api = StorefrontApi(self.storage, base_url=settings.api_url, transport=transport)
        self.session = SessionStore(self.storage, self.api, verify_on_restore=settings.verify_session)
        self.bootstrapper = SessionBootstrapper(self.session, timeout=settings.restore_timeout)
        self.catalog = CatalogStore(self.api, retry_delay=catalog_retry_delay)
        self.cart = CartStore(self.api, self.session)
        self.synchronizer = CartSynchronizer(self.session, self.cart)
        self.checkout_orchestrator = CheckoutOrchestrator(
            self.api,
            self.session,
            self.cart,
            self.catalog,
            delivery_fee=settings.delivery_fee,
            currency=settings.currency,
            clear_cart_on_redirect=settings.clear_cart_on_redirect,
        )
        self.card_processor = card_processor or MockCardProcessor()

    async def start(self) -> SessionState:
        """Restore the session, sync the cart, then load the catalogue."""
        logger.info("Starting storefront initialization...")
        state = await self.bootstrapper.run()
        await self.synchronizer.reconcile()
        await self.catalog.load()
        logger.info(f"Storefront initialization complete (session={state.value})")
        return state

    async def close(self) -> None:
        await self.bootstrapper.shutdown()
        await self.api.close()

    # Session

    async def login(self, credentials: AuthCredentials) -> User:
        try:
            return await self.session.login(credentials)
        finally:
            await self.synchronizer.reconcile()

    async def register(self, profile: RegistrationProfile) -> User:
        try:
            return await self.session.register(profile)
        finally:
            await self.synchronizer.reconcile()

    async def logout(self) -> None:
        """Clear the server cart while the token is still valid, then drop the session."""
        await self.cart.clear_on_server()
        self.cart.clear_local()
        self.session.logout()
        await self.synchronizer.reconcile()

    async def ensure_authenticated(self) -> bool:
        """Ensure a session exists, auto-login if credentials are configured."""
        if self.session.authenticated:
            return True

        credentials = self.settings.credentials
        if credentials:
            try:
                logger.info("Auto-logging in with configured credentials...")
                await self.login(credentials)
                logger.info("Auto-login successful")
                return True
            except AuthenticationFailed as e:
                logger.warning(f"Auto-login failed: {e.message}")

        return False

    # Catalogue

    async def search_products(self, query: str = "") -> list[Product]:
        if not self.catalog.products:
            await self.catalog.load()
        return self.catalog.search(query)

    # Cart

    def cart_summary(self) -> dict[str, Any]:
        """Cart contents priced against the catalogue."""
        lines = []
        for product_id, sizes in self.cart.items.items():
            product = self.catalog.find(product_id)
            for size, quantity in sizes.items():
                lines.append(
                    {
                        "product_id": product_id,
                        "name": product.name if product else None,
                        "size": size,
                        "quantity": quantity,
                        "price": product.price if product else None,
                        "subtotal": product.price * quantity if product else None,
                    }
                )
        amount = self.cart.amount(self.catalog)
        return {
            "items": lines,
            "count": self.cart.count(),
            "amount": amount,
            "delivery_fee": self.settings.delivery_fee,
            "total": amount + self.settings.delivery_fee if lines else amount,
            "status": self.cart.status.value,
        }

    async def get_cart(self) -> dict[str, Any]:
        await self.synchronizer.reconcile()
        return self.cart_summary()

    async def add_to_cart(self, product_id: str, size: str, quantity: int = 1) -> CartItems:
        return await self.cart.add(product_id, size, quantity)

    async def update_cart(self, product_id: str, size: str, quantity: int) -> CartItems:
        return await self.cart.update(product_id, size, quantity)

    async def remove_from_cart(self, product_id: str, size: str) -> CartItems:
        return await self.cart.remove(product_id, size)

    # Checkout

    async def checkout(
        self,
        address: ShippingAddress,
        method: PaymentMethod,
        card: Optional[CardDetails] = None,
    ) -> CheckoutResult:
        """
        Place an order; card payments are validated before the order is created.

        A declined card leaves the order pending and the cart untouched.
        """
        collector = None
        if method == PaymentMethod.MOCK_CARD and card is not None:
            validate_card(card)

            async def collector(order_id, amount):
                return await self.card_processor.submit(order_id, amount, card)

        return await self.checkout_orchestrator.place_order(address, method, collector)

    async def complete_external_payment(self) -> None:
        """Return from the hosted payment page: empty the cart everywhere."""
        logger.info("=== EXTERNAL PAYMENT RETURN ===")
        await self.checkout_orchestrator.settle()

    # Orders

    async def get_orders(self) -> list[Order]:
        if not self.session.authenticated:
            raise AuthenticationRequired("Please login to view orders")
        response = await self.api.get_orders()
        data = response.get("data")
        raw = data.get("orders", []) if isinstance(data, dict) else data
        if not isinstance(raw, list):
            raise ApiError("Invalid response structure")
        orders = []
        for item in raw:
            try:
                orders.append(Order.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Failed to parse order: {e.error_count()} error(s)")
        return orders

    async def get_order(self, order_id: str) -> Order:
        if not self.session.authenticated:
            raise AuthenticationRequired("Please login to view orders")
        response = await self.api.get_order(order_id)
        try:
            return Order.model_validate(response.get("data"))
        except ValidationError as e:
            raise ApiError("Invalid response structure") from e

    async def health(self) -> dict[str, Any]:
        return await self.api.health()
