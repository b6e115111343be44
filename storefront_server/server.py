"""MCP Server for the storefront."""

import asyncio
import json
import logging
from typing import Any, Optional

from mcp.server import Server
from mcp.types import Resource, TextContent, Tool
from pydantic import AnyUrl, ValidationError

from .checkout import CheckoutStatus
from .config import Settings
from .errors import StorefrontError
from .models import AuthCredentials, CardDetails, PaymentMethod, RegistrationProfile, ShippingAddress
from .payments import TEST_CARDS
from .storefront import Storefront

logger = logging.getLogger("storefront-mcp-server")

# Initialize server
app = Server("storefront-mcp-server")

# Global state
storefront: Storefront

NOT_AUTHENTICATED = (
    "Error: Not authenticated. Use storefront_login or configure "
    "STOREFRONT_EMAIL and STOREFRONT_PASSWORD in the MCP settings."
)


def text(message: str) -> list[TextContent]:
    return [TextContent(type="text", text=message)]


def format_cart(summary: dict[str, Any]) -> str:
    if not summary["items"]:
        return "Your cart is empty"

    result_lines = [f"Shopping Cart ({summary['count']} items):\n"]
    for i, line in enumerate(summary["items"], 1):
        result_lines.append(f"\n{i}. {line['name'] or '(product no longer available)'}")
        result_lines.append(f"   Product ID: {line['product_id']}")
        result_lines.append(f"   Size: {line['size']}")
        result_lines.append(f"   Quantity: {line['quantity']}")
        if line["price"] is not None:
            result_lines.append(f"   Price: {line['price']}")
            result_lines.append(f"   Subtotal: {line['subtotal']}")

    result_lines.append(f"\n{'=' * 50}")
    result_lines.append(f"Subtotal: {summary['amount']}")
    result_lines.append(f"Delivery: {summary['delivery_fee']}")
    result_lines.append(f"Total: {summary['total']}")
    return "\n".join(result_lines)


@app.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    resources = []

    # If authenticated, provide cart and orders as resources
    if storefront.session.authenticated:
        resources.extend(
            [
                Resource(
                    uri=AnyUrl("storefront://cart"),
                    name="Shopping Cart",
                    mimeType="application/json",
                    description="Current shopping cart contents",
                ),
                Resource(
                    uri=AnyUrl("storefront://orders"),
                    name="Orders",
                    mimeType="application/json",
                    description="User's orders",
                ),
            ]
        )

    return resources


@app.read_resource()
async def read_resource(uri: AnyUrl) -> str:
    """Read a resource by URI."""
    uri_str = str(uri)

    if uri_str == "storefront://cart":
        if not storefront.session.authenticated:
            return "Error: Not authenticated. Please login first."
        summary = await storefront.get_cart()
        return json.dumps(summary, indent=2, default=str)

    elif uri_str == "storefront://orders":
        if not storefront.session.authenticated:
            return "Error: Not authenticated. Please login first."
        orders = await storefront.get_orders()
        return json.dumps([order.model_dump() for order in orders], indent=2, default=str)

    raise ValueError(f"Unknown resource: {uri}")


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    test_cards = ", ".join(f"{number} ({label})" for number, label in TEST_CARDS)
    return [
        Tool(
            name="storefront_login",
            description="Log in to the store. Uses credentials from environment (STOREFRONT_EMAIL, STOREFRONT_PASSWORD) if not provided.",
            inputSchema={
                "type": "object",
                "properties": {
                    "email": {"type": "string", "description": "User email address"},
                    "password": {"type": "string", "description": "User password"},
                },
            },
        ),
        Tool(
            name="storefront_register",
            description="Create a new customer account and log in",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Full name"},
                    "email": {"type": "string", "description": "Email address"},
                    "password": {"type": "string", "description": "Password"},
                },
                "required": ["name", "email", "password"],
            },
        ),
        Tool(
            name="storefront_logout",
            description="Log out, clearing the cart and the stored session",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_session_status",
            description="Show whether a user is logged in",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_search_products",
            description="Search the product catalogue by name",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Product name or search term"},
                },
                "required": ["query"],
            },
        ),
        Tool(
            name="storefront_get_cart",
            description="Get current shopping cart contents with totals",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_add_to_cart",
            description="Add a product size to the shopping cart",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID"},
                    "size": {"type": "string", "description": "Size label, e.g. M"},
                    "quantity": {
                        "type": "integer",
                        "description": "Quantity to add (default: 1)",
                        "default": 1,
                    },
                },
                "required": ["product_id", "size"],
            },
        ),
        Tool(
            name="storefront_update_cart_quantity",
            description="Set the quantity of a product size in the cart (0 removes it)",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID"},
                    "size": {"type": "string", "description": "Size label"},
                    "quantity": {"type": "integer", "description": "New quantity"},
                },
                "required": ["product_id", "size", "quantity"],
            },
        ),
        Tool(
            name="storefront_remove_from_cart",
            description="Remove a product size from the cart",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID"},
                    "size": {"type": "string", "description": "Size label"},
                },
                "required": ["product_id", "size"],
            },
        ),
        Tool(
            name="storefront_checkout",
            description=(
                "Place an order for the current cart. payment_method is cod, stripe (mock card) "
                f"or payhere (hosted page). Test cards: {test_cards}"
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "payment_method": {
                        "type": "string",
                        "enum": [m.value for m in PaymentMethod],
                        "default": "cod",
                    },
                    "address": {
                        "type": "object",
                        "description": "firstName, lastName, email, street, city, state, zipcode, country, phone",
                    },
                    "card": {
                        "type": "object",
                        "description": "number, expiry (MM/YY), cvc; required for stripe",
                    },
                },
                "required": ["address"],
            },
        ),
        Tool(
            name="storefront_get_orders",
            description="Get the user's orders",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_get_order_details",
            description="Get detailed information for a specific order",
            inputSchema={
                "type": "object",
                "properties": {
                    "order_id": {"type": "string", "description": "Order ID"},
                },
                "required": ["order_id"],
            },
        ),
    ]


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle tool calls."""
    arguments = arguments or {}
    try:
        if name == "storefront_login":
            email = arguments.get("email")
            password = arguments.get("password")

            # If credentials not provided, use environment credentials
            if not email or not password:
                configured = storefront.settings.credentials
                if not configured:
                    return text(
                        "Error: No credentials provided and STOREFRONT_EMAIL/STOREFRONT_PASSWORD not configured."
                    )
                email = email or configured.email
                password = password or configured.password

            user = await storefront.login(AuthCredentials(email=email, password=password))
            return text(f"Successfully logged in as {user.name} ({user.email})")

        elif name == "storefront_register":
            user = await storefront.register(RegistrationProfile(**arguments))
            return text(f"Account created. Logged in as {user.name} ({user.email})")

        elif name == "storefront_logout":
            await storefront.logout()
            return text("Successfully logged out")

        elif name == "storefront_session_status":
            return text(json.dumps(storefront.session.snapshot(), indent=2))

        elif name == "storefront_search_products":
            query = arguments["query"]
            products = await storefront.search_products(query)

            if not products:
                if storefront.catalog.error:
                    return text(f"Error: {storefront.catalog.error}")
                return text(f"No products found for: {query}")

            result_lines = [f"Found {len(products)} product(s):\n"]
            for i, product in enumerate(products, 1):
                result_lines.append(f"\n{i}. {product.name}")
                result_lines.append(f"   ID: {product.id}")
                result_lines.append(f"   Price: {product.price}")
                if product.sizes:
                    result_lines.append(f"   Sizes: {', '.join(product.sizes)}")
            return text("\n".join(result_lines))

        # Everything below needs a session
        if not await storefront.ensure_authenticated():
            return text(NOT_AUTHENTICATED)

        if name == "storefront_get_cart":
            return text(format_cart(await storefront.get_cart()))

        elif name == "storefront_add_to_cart":
            product_id = arguments["product_id"]
            size = arguments.get("size", "")
            quantity = arguments.get("quantity", 1)
            await storefront.add_to_cart(product_id, size, quantity)
            return text(f"Added product {product_id} (size {size}, quantity {quantity}) to cart")

        elif name == "storefront_update_cart_quantity":
            product_id = arguments["product_id"]
            size = arguments["size"]
            quantity = arguments["quantity"]
            await storefront.update_cart(product_id, size, quantity)
            return text(f"Updated product {product_id} (size {size}) to quantity {quantity}")

        elif name == "storefront_remove_from_cart":
            product_id = arguments["product_id"]
            size = arguments["size"]
            await storefront.remove_from_cart(product_id, size)
            return text(f"Removed product {product_id} (size {size}) from cart")

        elif name == "storefront_checkout":
            method = PaymentMethod(arguments.get("payment_method", PaymentMethod.CASH_ON_DELIVERY.value))
            address = ShippingAddress.model_validate(arguments.get("address") or {})
            card = CardDetails.model_validate(arguments["card"]) if arguments.get("card") else None

            result = await storefront.checkout(address, method, card)
            result_lines = [result.message, f"Order ID: {result.order_id}", f"Total: {result.total}"]
            if result.status == CheckoutStatus.REDIRECT and result.redirect:
                result_lines.append(f"Complete payment at: {result.redirect.payment_url}")
                result_lines.append(json.dumps(result.redirect.payment_data, indent=2, default=str))
            return text("\n".join(result_lines))

        elif name == "storefront_get_orders":
            orders = await storefront.get_orders()
            if not orders:
                return text("No orders found")

            result_lines = [f"Found {len(orders)} order(s):\n"]
            for i, order in enumerate(orders, 1):
                result_lines.append(f"\n{i}. Order #{order.id}")
                result_lines.append(f"   Status: {order.status}")
                if order.created_at:
                    result_lines.append(f"   Date: {order.created_at.strftime('%Y-%m-%d %H:%M')}")
                result_lines.append(f"   Total: {order.amount}")
                if order.payment_method:
                    result_lines.append(f"   Payment: {order.payment_method}")
            return text("\n".join(result_lines))

        elif name == "storefront_get_order_details":
            order = await storefront.get_order(arguments["order_id"])

            result_lines = ["Order Details:\n", f"Order #{order.id}", f"Status: {order.status}"]
            if order.created_at:
                result_lines.append(f"Date: {order.created_at.strftime('%Y-%m-%d %H:%M')}")
            result_lines.append(f"Total: {order.amount}")
            if order.items:
                result_lines.append(f"\nItems ({len(order.items)}):")
                for i, item in enumerate(order.items, 1):
                    result_lines.append(
                        f"{i}. {item.name or item.product_id} [{item.size}] x{item.quantity}"
                    )
            else:
                result_lines.append("\nNo items found for this order")
            return text("\n".join(result_lines))

        return text(f"Unknown tool: {name}")

    except StorefrontError as e:
        logger.warning(f"Tool {name} failed: {e.message}")
        return text(f"Error: {e.message}")
    except (ValidationError, ValueError, KeyError) as e:
        return text(f"Error: Invalid arguments for {name}: {e}")
    except Exception as e:
        logger.error(f"Error executing tool {name}: {e}", exc_info=True)
        return text(f"Error: {str(e)}")


async def main(settings: Optional[Settings] = None) -> None:
    """Main entry point for the MCP server."""
    global storefront

    settings = settings or Settings.from_env()
    logging.basicConfig(level=settings.log_level)

    storefront = Storefront(settings)
    if settings.credentials:
        logger.info(f"Credentials loaded from environment for: {settings.email}")
    else:
        logger.warning("No credentials found in environment variables (STOREFRONT_EMAIL, STOREFRONT_PASSWORD)")
        logger.warning("Cart and order operations will require manual login via storefront_login tool")

    await storefront.start()
    logger.info("Starting Storefront MCP Server...")

    # Import and run the server
    from mcp.server.stdio import stdio_server

    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(
                read_stream,
                write_stream,
                app.create_initialization_options(),
            )
    finally:
        await storefront.close()


if __name__ == "__main__":
    asyncio.run(main())
