"""
Client-side token storage.

Persists the access token, refresh token, cached user profile and the
per-flow guest token. Values are plain strings (the user is stored as JSON),
mirroring browser storage keys.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional

import pydantic
from loguru import logger

from .models import Session, TokenPair, UserProfile


ACCESS_TOKEN_KEY = "accessToken"
REFRESH_TOKEN_KEY = "refreshToken"
USER_KEY = "user"
GUEST_TOKEN_KEY = "guestToken"

SESSION_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, USER_KEY)


class MemoryStorage:
    """Key/value backend kept in process memory."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def read(self) -> Dict[str, str]:
        return dict(self._data)

    def write(self, data: Dict[str, str]) -> None:
        self._data = dict(data)


class FileStorage:
    """
    Key/value backend stored as one JSON object in a file.

    Every write replaces the file atomically, so a reader never sees a
    half-written session.
    """

    def __init__(self, path: Path):
        """
        Args:
            path: JSON file to use (created on first write, mode 600)
        """
        self.path = Path(path)

    def read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read session file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed session file {self.path}")
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=str(self.path.parent), prefix=".hms_session.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.chmod(tmp_name, 0o600)  # rw-------
            os.replace(tmp_name, self.path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


class TokenStore:
    """
    Durable session storage.

    One instance per running client; every component reads and writes the
    session through it.
    """

    def __init__(self, backend=None):
        """
        Args:
            backend: Object with read() -> dict and write(dict); defaults to MemoryStorage
        """
        self.backend = backend if backend is not None else MemoryStorage()

    def set(self, tokens: TokenPair, user: UserProfile) -> bool:
        """
        Store a full session in a single backend write.

        Returns:
            True if saved successfully
        """
        data = self.backend.read()
        data[ACCESS_TOKEN_KEY] = tokens.access_token
        data[REFRESH_TOKEN_KEY] = tokens.refresh_token
        data[USER_KEY] = user.model_dump_json(by_alias=True)
        try:
            self.backend.write(data)
        except OSError as e:
            logger.error(f"Failed to save session: {e}")
            return False
        return True

    def get(self) -> Optional[Session]:
        """
        Load the session.

        Returns:
            Session, or None if any key is missing or the cached user does not parse
        """
        data = self.backend.read()
        access_token = data.get(ACCESS_TOKEN_KEY)
        refresh_token = data.get(REFRESH_TOKEN_KEY)
        raw_user = data.get(USER_KEY)
        if not access_token or not refresh_token or not raw_user:
            return None

        try:
            user = UserProfile.model_validate_json(raw_user)
        except pydantic.ValidationError as e:
            logger.warning(f"Discarding unreadable cached user: {e.error_count()} error(s)")
            return None

        return Session(access_token=access_token, refresh_token=refresh_token, user=user)

    def update_tokens(self, access_token: str, refresh_token: Optional[str] = None) -> bool:
        """
        Replace the access token after a refresh.

        The refresh token is only replaced when a non-empty one is given; a
        refresh response without one keeps the stored value.

        Returns:
            True if saved successfully
        """
        data = self.backend.read()
        data[ACCESS_TOKEN_KEY] = access_token
        if refresh_token:
            data[REFRESH_TOKEN_KEY] = refresh_token
        try:
            self.backend.write(data)
        except OSError as e:
            logger.error(f"Failed to save refreshed tokens: {e}")
            return False
        return True

    def get_access_token(self) -> Optional[str]:
        return self.backend.read().get(ACCESS_TOKEN_KEY) or None

    def get_refresh_token(self) -> Optional[str]:
        return self.backend.read().get(REFRESH_TOKEN_KEY) or None

    def clear(self) -> None:
        """Remove every session key and the guest token."""
        data = self.backend.read()
        for key in SESSION_KEYS + (GUEST_TOKEN_KEY,):
            data.pop(key, None)
        try:
            self.backend.write(data)
        except OSError as e:
            logger.error(f"Failed to clear session: {e}")

    # Guest token of the resource flow currently on screen

    def set_guest_token(self, token: str) -> bool:
        data = self.backend.read()
        data[GUEST_TOKEN_KEY] = token
        try:
            self.backend.write(data)
        except OSError as e:
            logger.error(f"Failed to save guest token: {e}")
            return False
        return True

    def get_guest_token(self) -> Optional[str]:
        return self.backend.read().get(GUEST_TOKEN_KEY) or None

    def clear_guest_token(self) -> None:
        data = self.backend.read()
        if data.pop(GUEST_TOKEN_KEY, None) is None:
            return
        try:
            self.backend.write(data)
        except OSError as e:
            logger.error(f"Failed to clear guest token: {e}")
