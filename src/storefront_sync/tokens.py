"""Credential storage.

``TokenStore`` is the only owner of the access/refresh token pair. Its
persistence goes through a small key/value ``TokenStorage`` backend so the
same store works in memory (tests, short-lived scripts) or on disk
(durable across restarts).
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, Optional, Union

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"

DEFAULT_REFRESH_HORIZON = timedelta(minutes=5)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def decode_token_expiry(token: Optional[str]) -> Optional[datetime]:
    """Read the ``exp`` claim from a JWT-shaped token without verifying it.

    Returns None for anything that is not a three-part token with a
    base64url JSON payload carrying a numeric ``exp``. Never raises.
    """
    if not token or not isinstance(token, str):
        return None
    parts = token.split(".")
    if len(parts) != 3:
        return None
    payload_segment = parts[1]
    padded = payload_segment + "=" * (-len(payload_segment) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (binascii.Error, ValueError, UnicodeError, RecursionError):
        return None
    if not isinstance(payload, dict):
        return None
    exp = payload.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(exp, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


class TokenStorage(ABC):
    """Abstract key/value backend for credentials."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Get a value, or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Set a value."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete a key. Missing keys are ignored."""


class InMemoryTokenStorage(TokenStorage):
    """Process-local storage; forgotten when the process exits."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._store: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._store.get(key)

    def set(self, key: str, value: str) -> None:
        self._store[key] = value

    def delete(self, key: str) -> None:
        self._store.pop(key, None)


class FileTokenStorage(TokenStorage):
    """JSON file storage that survives restarts.

    Writes go to a temporary file that replaces the target, so a crash
    mid-write never leaves a truncated credential file behind.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> Dict[str, str]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring unreadable token file %s", self._path)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items() if v is not None}

    def _write(self, data: Dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, prefix=".tokens-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self._path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


class TokenStore:
    """Owns the access/refresh token pair.

    Presence of an access token is all ``is_authenticated`` reports; it is
    not a validity claim. Expiry is read from the token itself when it is
    a JWT, and treated as unknown otherwise.

    Args:
        storage: Persistence backend (default: in memory)
        clock: Returns the current aware UTC time; injectable for tests
    """

    def __init__(self, storage: Optional[TokenStorage] = None, clock: Clock = utcnow):
        self._storage = storage or InMemoryTokenStorage()
        self._clock = clock

    @property
    def access_token(self) -> Optional[str]:
        return self._storage.get(ACCESS_TOKEN_KEY)

    @property
    def refresh_token(self) -> Optional[str]:
        return self._storage.get(REFRESH_TOKEN_KEY)

    def set_tokens(self, access: Optional[str] = None, refresh: Optional[str] = None) -> None:
        """Overwrite the given tokens; a missing argument keeps the stored value."""
        if access:
            self._storage.set(ACCESS_TOKEN_KEY, access)
        if refresh:
            self._storage.set(REFRESH_TOKEN_KEY, refresh)

    def clear(self) -> None:
        self._storage.delete(ACCESS_TOKEN_KEY)
        self._storage.delete(REFRESH_TOKEN_KEY)

    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    def get_expiry(self) -> Optional[datetime]:
        return decode_token_expiry(self.access_token)

    def is_expired(self) -> bool:
        expiry = self.get_expiry()
        if expiry is None:
            return False
        return self._clock() >= expiry

    def needs_refresh(self, horizon: timedelta = DEFAULT_REFRESH_HORIZON) -> bool:
        """True when the access token expires within ``horizon``.

        Undecodable tokens never need a proactive refresh; a 401 will
        tell us when they stop working.
        """
        expiry = self.get_expiry()
        if expiry is None:
            return False
        return expiry <= self._clock() + horizon
