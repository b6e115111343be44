"""Keeps the cart consistent with session transitions."""

import logging
from enum import Enum

from .cart import CartStore
from .session import SessionStore

logger = logging.getLogger(__name__)


class SyncAction(str, Enum):
    NONE = "none"
    FETCHED = "fetched"
    CLEARED = "cleared"


class CartSynchronizer:
    """
    Level-triggered reaction to the current session state.

    Call ``reconcile()`` after any session transition (or at any other time);
    it looks only at current state, so repeated calls are harmless.
    """

    def __init__(self, session: SessionStore, cart: CartStore) -> None:
        self.session = session
        self.cart = cart

    async def reconcile(self) -> SyncAction:
        """
        Fetch the cart for an authenticated session, clear it for an anonymous one.

        Does nothing before the session is initialized, or when the cart
        already matches the session.
        """
        if not self.session.initialized:
            logger.debug("Session not initialized yet, skipping cart sync")
            return SyncAction.NONE

        if self.session.authenticated:
            if self.cart.is_synced_with(self.session.token):
                return SyncAction.NONE
            logger.info("Authenticated session, fetching cart")
            await self.cart.fetch()
            return SyncAction.FETCHED

        if self.cart.items or self.cart.synced_token is not None:
            logger.info("Anonymous session, clearing local cart")
            self.cart.clear_local()
            return SyncAction.CLEARED
        return SyncAction.NONE
