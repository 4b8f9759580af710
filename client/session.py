"""
Client-side session: the tokens a signed-in client holds, kept in durable
key/value storage under the same keys the web frontend uses.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

TOKEN_KEY = "jwt_token"
REFRESH_TOKEN_KEY = "refresh_token"
TOKEN_EXPIRES_KEY = "token_expires"
USER_EMAIL_KEY = "user_email"
SESSION_KEYS = (TOKEN_KEY, REFRESH_TOKEN_KEY, TOKEN_EXPIRES_KEY, USER_EMAIL_KEY)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class ClientSession:
    access_token: str
    refresh_token: Optional[str]
    expires_at: datetime
    email: Optional[str] = None

    @classmethod
    def from_response(cls, body: dict) -> "ClientSession":
        """Build a session from a {token, refreshToken, email, expiresAt} body."""
        token = body.get("token")
        if not token:
            raise ValueError("response carries no access token")
        return cls(
            access_token=token,
            refresh_token=body.get("refreshToken") or None,
            expires_at=parse_timestamp(body["expiresAt"]),
            email=body.get("email"),
        )


class MemoryStorage:
    """Process-local storage, mostly for tests and short-lived scripts."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_many(self, values: Dict[str, str]) -> None:
        self._data.update(values)

    def remove_many(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)


class FileStorage:
    """
    JSON file storage. Every write replaces the whole file through a temp file
    and os.replace(), so a batch of keys lands (or disappears) together.
    """

    def __init__(self, path) -> None:
        self.path = Path(path)

    def _read(self) -> Dict[str, str]:
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError):
            logger.warning("Session file %s is unreadable, treating it as empty", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), prefix=".session-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set_many(self, values: Dict[str, str]) -> None:
        data = self._read()
        data.update(values)
        self._write(data)

    def remove_many(self, keys: Iterable[str]) -> None:
        data = self._read()
        for key in keys:
            data.pop(key, None)
        self._write(data)


SessionListener = Callable[[Optional[ClientSession]], None]


class SessionStore:
    """
    Holds the current session. Listeners are told about every save() (with the
    new session) and clear() (with None).
    """

    def __init__(self, storage=None, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.storage = storage if storage is not None else MemoryStorage()
        self.clock = clock or utcnow
        self._listeners: List[SessionListener] = []

    def subscribe(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: SessionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, session: Optional[ClientSession]) -> None:
        for listener in list(self._listeners):
            listener(session)

    def save(self, session: ClientSession) -> None:
        values = {
            TOKEN_KEY: session.access_token,
            TOKEN_EXPIRES_KEY: session.expires_at.isoformat(),
        }
        if session.refresh_token:
            values[REFRESH_TOKEN_KEY] = session.refresh_token
        if session.email:
            values[USER_EMAIL_KEY] = session.email
        self.storage.set_many(values)
        self._notify(self.get())

    def clear(self) -> None:
        self.storage.remove_many(SESSION_KEYS)
        self._notify(None)

    def get(self) -> Optional[ClientSession]:
        token = self.storage.get(TOKEN_KEY)
        expires_at = self.expires_at
        if not token or expires_at is None:
            return None
        return ClientSession(
            access_token=token,
            refresh_token=self.storage.get(REFRESH_TOKEN_KEY),
            expires_at=expires_at,
            email=self.storage.get(USER_EMAIL_KEY),
        )

    @property
    def access_token(self) -> Optional[str]:
        return self.storage.get(TOKEN_KEY)

    @property
    def refresh_token(self) -> Optional[str]:
        return self.storage.get(REFRESH_TOKEN_KEY)

    @property
    def email(self) -> Optional[str]:
        return self.storage.get(USER_EMAIL_KEY)

    @property
    def expires_at(self) -> Optional[datetime]:
        raw = self.storage.get(TOKEN_EXPIRES_KEY)
        if not raw:
            return None
        try:
            return parse_timestamp(raw)
        except ValueError:
            logger.warning("Ignoring malformed token expiry %r", raw)
            return None

    def time_until_expiry(self, now: Optional[datetime] = None) -> Optional[timedelta]:
        expires_at = self.expires_at
        if expires_at is None:
            return None
        return expires_at - (now or self.clock())

    def is_access_token_valid(self, now: Optional[datetime] = None) -> bool:
        remaining = self.time_until_expiry(now)
        return bool(self.access_token) and remaining is not None and remaining > timedelta(0)
