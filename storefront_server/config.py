"""Runtime configuration loaded from environment variables."""

import os
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field

from .errors import ConfigurationError
from .models import AuthCredentials

DEFAULT_API_URL = "http://localhost:5000/api"
DEFAULT_RESTORE_TIMEOUT = 3.0
DEFAULT_DELIVERY_FEE = Decimal("10")

_TRUE_VALUES = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Storefront client settings."""

    api_url: str = DEFAULT_API_URL
    session_file: str = Field(default_factory=lambda: str(Path.home() / ".storefront_session.json"))
    email: Optional[str] = None
    password: Optional[str] = None
    restore_timeout: float = DEFAULT_RESTORE_TIMEOUT
    delivery_fee: Decimal = DEFAULT_DELIVERY_FEE
    currency: str = "LKR"
    verify_session: bool = False
    clear_cart_on_redirect: bool = True
    log_level: str = "INFO"

    @property
    def credentials(self) -> Optional[AuthCredentials]:
        """Auto-login credentials, if both halves are configured."""
        if self.email and self.password:
            return AuthCredentials(email=self.email, password=self.password)
        return None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from ``STOREFRONT_*`` environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``

        Raises:
            ConfigurationError: If a numeric variable cannot be parsed
        """
        env = os.environ if environ is None else environ
        values: dict = {}

        if env.get("STOREFRONT_API_URL"):
            values["api_url"] = env["STOREFRONT_API_URL"].rstrip("/")
        if env.get("STOREFRONT_SESSION_FILE"):
            values["session_file"] = os.path.expanduser(env["STOREFRONT_SESSION_FILE"])

        values["email"] = env.get("STOREFRONT_EMAIL") or None
        values["password"] = env.get("STOREFRONT_PASSWORD") or None

        timeout = env.get("STOREFRONT_RESTORE_TIMEOUT")
        if timeout:
            try:
                values["restore_timeout"] = float(timeout)
            except ValueError:
                raise ConfigurationError(f"Invalid STOREFRONT_RESTORE_TIMEOUT: {timeout}")
            if values["restore_timeout"] <= 0:
                raise ConfigurationError("STOREFRONT_RESTORE_TIMEOUT must be positive")

        fee = env.get("STOREFRONT_DELIVERY_FEE")
        if fee:
            try:
                values["delivery_fee"] = Decimal(fee)
            except InvalidOperation:
                raise ConfigurationError(f"Invalid STOREFRONT_DELIVERY_FEE: {fee}")

        if env.get("STOREFRONT_CURRENCY"):
            values["currency"] = env["STOREFRONT_CURRENCY"]
        if "STOREFRONT_VERIFY_SESSION" in env:
            values["verify_session"] = env["STOREFRONT_VERIFY_SESSION"].lower() in _TRUE_VALUES
        if "STOREFRONT_CLEAR_CART_ON_REDIRECT" in env:
            values["clear_cart_on_redirect"] = (
                env["STOREFRONT_CLEAR_CART_ON_REDIRECT"].lower() in _TRUE_VALUES
            )
        if env.get("STOREFRONT_LOG_LEVEL"):
            values["log_level"] = env["STOREFRONT_LOG_LEVEL"].upper()

        return cls(**values)
