"""Data models for storefront entities."""

import html
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class User(BaseModel):
    """Identity record returned by the auth endpoints."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(description="User ID")
    name: str = Field(min_length=1, description="Display name")
    email: str = Field(min_length=1, description="Email address")
    role: Literal["customer", "admin"] = Field(default="customer", description="User role")

    @field_validator("role", mode="before")
    @classmethod
    def default_role(cls, v: Any) -> str:
        """Unknown or missing roles are treated as customer."""
        return v if v in ("customer", "admin") else "customer"


class AuthCredentials(BaseModel):
    """Authentication credentials."""

    email: str
    password: str


class RegistrationProfile(BaseModel):
    """Profile submitted to the registration endpoint."""

    name: str
    email: str
    password: str


class Product(BaseModel):
    """Represents a catalogue product."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(alias="_id", description="Product ID")
    name: str = Field(description="Product name")
    price: Decimal = Field(description="Unit price")
    description: Optional[str] = Field(None, description="Product description")
    sizes: list[str] = Field(default_factory=list, description="Available sizes")
    category: Optional[str] = Field(None, description="Category")
    sub_category: Optional[str] = Field(None, alias="subCategory", description="Sub category")
    bestseller: bool = Field(default=False, description="Bestseller flag")
    image: list[str] = Field(default_factory=list, description="Image URLs")


class CartLine(BaseModel):
    """One (product, size, quantity) line as exchanged with the server."""

    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias="productId")
    size: str
    quantity: int = Field(gt=0)


class ShippingAddress(BaseModel):
    """Delivery information collected at checkout."""

    model_config = ConfigDict(populate_by_name=True)

    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    email: str
    street: str
    city: str
    state: str = ""
    zipcode: str
    country: str = "Sri Lanka"
    phone: str

    # state and country are optional on the form
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = (
        "first_name", "last_name", "email", "street", "city", "zipcode", "phone",
    )

    def missing_fields(self) -> list[str]:
        """Return the required fields left blank."""
        return [name for name in self.REQUIRED_FIELDS if not getattr(self, name).strip()]


class PaymentMethod(str, Enum):
    """Payment methods accepted at checkout (values are the wire names)."""

    CASH_ON_DELIVERY = "cod"
    MOCK_CARD = "stripe"
    EXTERNAL_REDIRECT = "payhere"


class OrderRequest(BaseModel):
    """Body of POST /orders."""

    model_config = ConfigDict(populate_by_name=True)

    items: list[CartLine]
    shipping_address: ShippingAddress = Field(alias="shippingAddress")
    payment_method: PaymentMethod = Field(alias="paymentMethod")


class OrderItem(BaseModel):
    """Represents an item in an order."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    product_id: Optional[str] = Field(None, alias="productId")
    name: Optional[str] = None
    size: Optional[str] = None
    quantity: int = 0
    price: Decimal = Decimal("0")


class Order(BaseModel):
    """Represents an order. Status transitions are owned by the server."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(alias="_id", description="Order ID")
    items: list[OrderItem] = Field(default_factory=list)
    amount: Decimal = Field(default=Decimal("0"), description="Order total")
    status: str = Field(default="pending", description="Order status")
    payment_method: Optional[str] = Field(None, alias="paymentMethod")
    payment_status: Optional[str] = Field(None, alias="paymentStatus")
    created_at: Optional[datetime] = Field(None, alias="createdAt")


class CardDetails(BaseModel):
    """Card fields typed into the mock payment form."""

    number: str
    expiry: str = Field(description="MM/YY")
    cvc: str
    zip: Optional[str] = None


class PaymentResult(BaseModel):
    """Outcome reported by a payment collection flow."""

    success: bool
    reason: Optional[str] = None
    card_last4: Optional[str] = None


class RedirectPayment(BaseModel):
    """Signed payload for a hosted payment page."""

    model_config = ConfigDict(populate_by_name=True)

    payment_url: str = Field(alias="paymentUrl")
    payment_data: dict[str, Any] = Field(default_factory=dict, alias="paymentData")

    def to_html(self) -> str:
        """Render a hidden-field form that POSTs itself to the payment page on load."""
        inputs = "\n".join(
            f'    <input type="hidden" name="{html.escape(str(key), quote=True)}" '
            f'value="{html.escape(str(value), quote=True)}">'
            for key, value in self.payment_data.items()
        )
        return (
            "<!DOCTYPE html>\n<html>\n<body onload=\"document.forms[0].submit()\">\n"
            f'  <form method="POST" action="{html.escape(self.payment_url, quote=True)}">\n'
            f"{inputs}\n"
            "  </form>\n</body>\n</html>\n"
        )
