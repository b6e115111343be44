"""Checkout: turn the cart into a server order and settle the cart."""

import logging
from decimal import Decimal
from enum import Enum
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel, ValidationError

from .api import StorefrontApi
from .cart import CartStore
from .catalog import CatalogStore
from .errors import ApiError, AuthenticationRequired, CheckoutError, InputError, StorefrontError
from .models import OrderRequest, PaymentMethod, PaymentResult, RedirectPayment, ShippingAddress
from .session import SessionStore

logger = logging.getLogger(__name__)

# (order_id, amount) -> result, or None when the customer cancels
PaymentCollector = Callable[[str, Decimal], Awaitable[Optional[PaymentResult]]]


class CheckoutStatus(str, Enum):
    COMPLETED = "completed"
    PAYMENT_CANCELLED = "payment_cancelled"
    REDIRECT = "redirect"


class CheckoutResult(BaseModel):
    """Outcome of a checkout that created an order."""

    order_id: str
    total: Decimal
    payment_method: PaymentMethod
    status: CheckoutStatus
    message: str
    next_view: str = "orders"
    redirect: Optional[RedirectPayment] = None


class CheckoutOrchestrator:
    """Creates the order, drives payment by method, and empties the cart on settlement."""

    def __init__(
        self,
        api: StorefrontApi,
        session: SessionStore,
        cart: CartStore,
        catalog: CatalogStore,
        delivery_fee: Decimal = Decimal("10"),
        currency: str = "LKR",
        clear_cart_on_redirect: bool = True,
    ) -> None:
        self.api = api
        self.session = session
        self.cart = cart
        self.catalog = catalog
        self.delivery_fee = delivery_fee
        self.currency = currency
        self.clear_cart_on_redirect = clear_cart_on_redirect

    def total(self) -> Decimal:
        """Cart amount plus the delivery fee."""
        return self.cart.amount(self.catalog) + self.delivery_fee

    def build_order(self, address: ShippingAddress, method: PaymentMethod) -> OrderRequest:
        """
        Validate preconditions and build the order request. No network calls.

        Raises:
            AuthenticationRequired: If not logged in
            InputError: On missing address fields or an empty cart
        """
        if not self.session.authenticated:
            raise AuthenticationRequired("Please login to place order")

        missing = address.missing_fields()
        if missing:
            raise InputError(f"Missing required address fields: {', '.join(missing)}")

        if not self.cart.items:
            raise InputError("Your cart is empty")

        lines = self.cart.lines(self.catalog)
        if not lines:
            raise InputError("No valid items in cart")

        return OrderRequest(items=lines, shipping_address=address, payment_method=method)

    async def place_order(
        self,
        address: ShippingAddress,
        method: PaymentMethod,
        collect_payment: Optional[PaymentCollector] = None,
    ) -> CheckoutResult:
        """
        Create the order and run the payment branch for ``method``.

        Failures before the order exists raise with no side effects. Failures
        after it exists raise ``CheckoutError`` carrying the order id; the
        order is left on the server for the user to resolve.

        Args:
            address: Shipping address
            method: Payment method
            collect_payment: Card payment flow, required for the mock-card method
        """
        logger.info(f"=== CHECKOUT: method={method.value}, lines={self.cart.count()} ===")
        order = self.build_order(address, method)
        if method == PaymentMethod.MOCK_CARD and collect_payment is None:
            raise InputError("Card payment details are required")

        total = self.total()
        response = await self.api.create_order(order)
        data = response.get("data")
        order_id = (data.get("_id") or data.get("id")) if isinstance(data, dict) else None
        if not order_id:
            raise ApiError("Invalid response: missing order id")
        order_id = str(order_id)
        logger.info(f"Order {order_id} created, total={total}")

        if method == PaymentMethod.CASH_ON_DELIVERY:
            return await self._settle_cod(order_id, total)
        if method == PaymentMethod.MOCK_CARD:
            return await self._collect_card(order_id, total, collect_payment)
        return await self._redirect(order_id, total)

    async def _settle_cod(self, order_id: str, total: Decimal) -> CheckoutResult:
        try:
            await self.api.process_cod_order(order_id)
        except StorefrontError as e:
            logger.error(f"COD processing failed for order {order_id}: {e.message}")
            raise CheckoutError(
                f"Order {order_id} was created but could not be confirmed: {e.message}", order_id
            ) from e

        await self.settle()
        return CheckoutResult(
            order_id=order_id,
            total=total,
            payment_method=PaymentMethod.CASH_ON_DELIVERY,
            status=CheckoutStatus.COMPLETED,
            message="Order confirmed! You can pay on delivery.",
        )

    async def _collect_card(
        self, order_id: str, total: Decimal, collect_payment: PaymentCollector
    ) -> CheckoutResult:
        try:
            result = await collect_payment(order_id, total)
        except StorefrontError as e:
            raise CheckoutError(
                f"Payment for order {order_id} could not be processed: {e.message}", order_id
            ) from e

        if result is not None and result.success:
            await self.settle()
            return CheckoutResult(
                order_id=order_id,
                total=total,
                payment_method=PaymentMethod.MOCK_CARD,
                status=CheckoutStatus.COMPLETED,
                message="Payment successful! Order confirmed.",
            )

        reason = result.reason if result is not None and result.reason else "Payment cancelled"
        logger.info(f"Card payment not completed for order {order_id}: {reason}")
        return CheckoutResult(
            order_id=order_id,
            total=total,
            payment_method=PaymentMethod.MOCK_CARD,
            status=CheckoutStatus.PAYMENT_CANCELLED,
            message=f"{reason}. You can try again from your orders page.",
        )

    async def _redirect(self, order_id: str, total: Decimal) -> CheckoutResult:
        try:
            response = await self.api.create_payhere_payment(order_id, total, self.currency)
            payload = RedirectPayment.model_validate(response)
        except (StorefrontError, ValidationError) as e:
            message = e.message if isinstance(e, StorefrontError) else "Invalid payment response"
            logger.error(f"Payment payload request failed for order {order_id}: {message}")
            raise CheckoutError(
                f"Order {order_id} was created but payment could not be started: {message}",
                order_id,
            ) from e

        if self.clear_cart_on_redirect:
            # settlement is only confirmed later by the hosted page
            logger.info(f"Clearing cart before redirect for order {order_id} (policy)")
            await self.settle()

        return CheckoutResult(
            order_id=order_id,
            total=total,
            payment_method=PaymentMethod.EXTERNAL_REDIRECT,
            status=CheckoutStatus.REDIRECT,
            message="Redirecting to payment page",
            next_view="payment",
            redirect=payload,
        )

    async def settle(self) -> None:
        """Empty the cart after settlement: best-effort on the server, always locally."""
        await self.cart.clear_on_server()
        self.cart.clear_local()
