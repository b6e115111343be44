"""Storefront client: session, cart and checkout over the store's REST API."""

from .config import Settings
from .storefront import Storefront

__version__ = "0.1.0"

__all__ = ["Settings", "Storefront", "__version__"]
