"""Persisted session storage."""

import json
import os
from pathlib import Path
from typing import Any, Optional
import logging

from .models import User

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
USER_KEY = "user"


class SessionStorage:
    """
    Durable key/value store for the session pair.

    The token and the serialized user live under fixed keys in a JSON file.
    Values are kept as raw strings exactly as written so that a corrupted
    user record is detected on restore, not on write.
    """

    def __init__(self, session_file: Optional[str] = None) -> None:
        """
        Initialize the session storage.

        Args:
            session_file: Path to store session data. Defaults to ~/.storefront_session.json
        """
        if session_file is None:
            session_file = str(Path.home() / ".storefront_session.json")
        self.session_file = session_file
        self._data: dict[str, str] = self._load()

    def _load(self) -> dict[str, str]:
        """Load stored keys from file if it exists."""
        if os.path.exists(self.session_file):
            try:
                with open(self.session_file, "r") as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    return {k: v for k, v in data.items() if isinstance(v, str)}
                logger.warning(f"Ignoring malformed session file {self.session_file}")
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Could not load session file: {e}")
        return {}

    def _save(self) -> None:
        """Write stored keys to file."""
        with open(self.session_file, "w") as f:
            json.dump(self._data, f)
        # Set restrictive permissions on session file
        os.chmod(self.session_file, 0o600)

    def get_item(self, key: str) -> Optional[str]:
        """Get a stored value."""
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        """Store a value and persist it."""
        self._data[key] = value
        self._save()

    def get_token(self) -> Optional[str]:
        """Get the persisted bearer token."""
        return self.get_item(TOKEN_KEY)

    def save_session(self, token: str, user: User) -> None:
        """
        Persist an authenticated session.

        Args:
            token: Bearer token from a successful login
            user: The logged-in user
        """
        self._data[TOKEN_KEY] = token
        self._data[USER_KEY] = user.model_dump_json()
        self._save()
        logger.info(f"Session saved to {self.session_file}")

    def load_session(self) -> tuple[Optional[str], Optional[Any]]:
        """
        Read the persisted pair.

        Returns:
            (token, user) where user is the decoded JSON value, or None if absent

        Raises:
            json.JSONDecodeError: If the stored user record is not valid JSON
        """
        token = self.get_item(TOKEN_KEY)
        user_string = self.get_item(USER_KEY)
        if user_string is None:
            return token, None
        return token, json.loads(user_string)

    def clear_session(self) -> None:
        """Erase the persisted pair."""
        self._data.pop(TOKEN_KEY, None)
        self._data.pop(USER_KEY, None)
        if self._data:
            self._save()
        elif os.path.exists(self.session_file):
            try:
                os.remove(self.session_file)
                logger.info("Session cleared")
            except OSError as e:
                logger.warning(f"Could not delete session file: {e}")
