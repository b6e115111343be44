"""Exceptions raised by the storefront client."""

from typing import Optional


class StorefrontError(Exception):
    """Base exception; ``message`` is safe to show to the user."""

    def __init__(self, message: str, *args: object) -> None:
        super().__init__(message, *args)
        self.message = message


class InputError(StorefrontError):
    """Invalid user input, detected before any network call."""

    pass


class AuthenticationRequired(StorefrontError):
    """The operation needs a logged-in session."""

    def __init__(self, message: str = "Please login to continue") -> None:
        super().__init__(message)


class AuthenticationFailed(StorefrontError):
    """Login or registration was rejected."""

    pass


class ApiError(StorefrontError):
    """Transport failure or non-success response from the REST backend."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CheckoutError(StorefrontError):
    """Checkout failed after the order was already created on the server."""

    def __init__(self, message: str, order_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.order_id = order_id


class ConfigurationError(StorefrontError):
    """Invalid configuration value."""

    pass
