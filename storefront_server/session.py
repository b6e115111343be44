"""Session store and startup session restoration."""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Optional

from pydantic import ValidationError

from .api import StorefrontApi
from .auth import SessionStorage
from .errors import AuthenticationFailed, StorefrontError
from .models import AuthCredentials, RegistrationProfile, User

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    RESTORING = "restoring"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


class SessionStore:
    """
    Single source of truth for who is logged in.

    ``initialized`` flips to True the first time the store reaches a decided
    state (authenticated or anonymous) and never goes back. Callers must gate
    authenticated decisions on ``initialized``, not on ``loading``: a forced
    bootstrap timeout can decide the session while a restore is still in
    flight.
    """

    def __init__(
        self,
        storage: SessionStorage,
        api: StorefrontApi,
        verify_on_restore: bool = False,
    ) -> None:
        self.storage = storage
        self.api = api
        self.verify_on_restore = verify_on_restore

        self.state = SessionState.UNINITIALIZED
        self.token: Optional[str] = None
        self.user: Optional[User] = None
        self.initialized = False
        self.loading = False
        self.error: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.token is not None and self.user is not None

    def snapshot(self) -> dict[str, Any]:
        """Session status suitable for display."""
        return {
            "state": self.state.value,
            "initialized": self.initialized,
            "authenticated": self.authenticated,
            "user": self.user.model_dump() if self.user else None,
            "error": self.error,
        }

    def _become_authenticated(self, token: str, user: User) -> None:
        self.token = token
        self.user = user
        self.error = None
        self.state = SessionState.AUTHENTICATED
        self.initialized = True

    def _become_anonymous(self) -> None:
        self.token = None
        self.user = None
        self.state = SessionState.ANONYMOUS
        self.initialized = True

    async def restore(self) -> bool:
        """
        Restore the session persisted by a previous run.

        Never raises. Any missing, malformed or rejected pair is erased and
        the session is decided as anonymous. If the session was already
        decided while this call was in flight (forced timeout), the result
        is discarded.

        Returns:
            True if an authenticated session was restored
        """
        if self.state != SessionState.UNINITIALIZED:
            logger.debug(f"Restore skipped, session already {self.state.value}")
            return self.authenticated

        logger.info("=== RESTORE SESSION ===")
        self.state = SessionState.RESTORING
        self.loading = True
        try:
            token, user, rejected = await self._read_persisted()
        except Exception as e:
            logger.warning(f"Session restore failed: {e}")
            token, user, rejected = None, None, None
        finally:
            self.loading = False

        # storage may hold a newer login by now; leave it alone
        if self.state != SessionState.RESTORING:
            logger.warning("Session restore finished after the session was decided; ignoring result")
            return self.authenticated

        if rejected:
            logger.warning(f"{rejected}, clearing storage")
            self.storage.clear_session()

        if token and user:
            self._become_authenticated(token, user)
            logger.info(f"Session restored for {user.name} (role={user.role})")
            return True

        self._become_anonymous()
        logger.info("No stored session, continuing anonymously")
        return False

    async def _read_persisted(self) -> tuple[Optional[str], Optional[User], Optional[str]]:
        """
        Read and validate the persisted pair without modifying storage.

        Returns:
            (token, user, rejection reason); the reason is set when the stored
            pair exists but is unusable
        """
        try:
            token, raw_user = self.storage.load_session()
        except ValueError as e:
            return None, None, f"Could not parse stored user: {e}"

        if not token or raw_user is None:
            if token or raw_user is not None:
                return None, None, "Incomplete stored session"
            return None, None, None

        try:
            user = User.model_validate(raw_user)
        except ValidationError:
            return None, None, "Invalid stored user data"

        if self.verify_on_restore:
            try:
                await self.api.get_profile()
            except StorefrontError as e:
                return None, None, f"Stored token rejected: {e.message}"

        return token, user, None

    def mark_initialized(self) -> None:
        """
        Force a decision without waiting for a pending restore.

        Idempotent; a session that is already decided is left untouched.
        """
        if self.initialized:
            return
        logger.warning("Forcing session to anonymous")
        self._become_anonymous()

    async def login(self, credentials: AuthCredentials) -> User:
        """
        Log in and persist the session.

        Raises:
            AuthenticationFailed: With the server's message on any failure
        """
        logger.info(f"=== LOGIN: email={credentials.email} ===")
        return await self._authenticate(self.api.login(credentials), "Login failed")

    async def register(self, profile: RegistrationProfile) -> User:
        """
        Register a new account and persist the session.

        Raises:
            AuthenticationFailed: With the server's message on any failure
        """
        logger.info(f"=== REGISTER: email={profile.email} ===")
        return await self._authenticate(self.api.register(profile), "Registration failed")

    async def _authenticate(self, call: Awaitable[dict[str, Any]], default_message: str) -> User:
        self.loading = True
        self.error = None
        try:
            response = await call
            token, user = self._parse_auth_response(response, default_message)
        except (StorefrontError, ValidationError) as e:
            message = e.message if isinstance(e, StorefrontError) else default_message
            logger.error(f"{default_message}: {message}")
            self._become_anonymous()
            self.error = message
            raise AuthenticationFailed(message) from e
        finally:
            self.loading = False

        self.storage.save_session(token, user)
        self._become_authenticated(token, user)
        logger.info(f"Authenticated as {user.email}")
        return user

    @staticmethod
    def _parse_auth_response(response: dict[str, Any], default_message: str) -> tuple[str, User]:
        data = response.get("data")
        if not response.get("success") or not isinstance(data, dict):
            raise AuthenticationFailed(response.get("message") or default_message)
        token = data.get("token")
        user = data.get("user")
        if not token or not user:
            raise AuthenticationFailed("Invalid response: missing token or user data")
        return token, User.model_validate(user)

    def logout(self) -> None:
        """Clear the session and its persisted copy. ``initialized`` stays True."""
        self._become_anonymous()
        self.error = None
        self.storage.clear_session()
        logger.info("Logged out successfully")


class SessionBootstrapper:
    """Runs ``restore()`` once at startup with a bounded wait."""

    def __init__(self, session: SessionStore, timeout: float = 3.0) -> None:
        self.session = session
        self.timeout = timeout
        self._started = False
        self._restore_task: Optional[asyncio.Task] = None

    async def run(self) -> SessionState:
        """
        Race the restore against the timeout.

        If the timeout wins, the session is forced to anonymous and the
        restore keeps running in the background; its late result is a
        no-op. Only the first call does anything.

        Returns:
            The session state after the race
        """
        if self._started:
            return self.session.state
        self._started = True

        self._restore_task = asyncio.create_task(self.session.restore())
        self._restore_task.add_done_callback(self._log_late_result)
        done, _ = await asyncio.wait({self._restore_task}, timeout=self.timeout)

        if not done:
            logger.warning(
                f"Session restore timed out after {self.timeout}s, proceeding without auth"
            )
            self.session.mark_initialized()

        return self.session.state

    @staticmethod
    def _log_late_result(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        if task.exception() is not None:
            logger.error(f"Session restore task failed: {task.exception()}")

    async def shutdown(self) -> None:
        """Cancel a restore still pending after a forced timeout."""
        if self._restore_task and not self._restore_task.done():
            self._restore_task.cancel()
            try:
                await self._restore_task
            except asyncio.CancelledError:
                pass
