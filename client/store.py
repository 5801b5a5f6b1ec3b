"""
client/store.py -- Token stores behind the client session cache.

Three tiers, queried in this order by SessionCache:
  MemoryTokenStore      -- the token for the life of the process
  PersistentTokenStore  -- SQLite key/value file with a TTL; survives restarts
  StatusCookieStore     -- the auth-status marker in the HTTP cookie jar; an
                           indicator that a session probably exists, never a
                           credential (get_token() always returns None)

Usage:
    cache = SessionCache([MemoryTokenStore(), PersistentTokenStore(path), StatusCookieStore(jar)])
    cache.set_token(token)
    token = cache.get_token()   # first hit wins; higher tiers are back-filled
    cache.clear()
"""

import logging
import sqlite3
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from requests.cookies import RequestsCookieJar

from core.constants import SESSION_COOKIE, STATUS_COOKIE, STATUS_COOKIE_VALUE

logger = logging.getLogger("proptrack.client")

_DEFAULT_TTL = 60 * 60 * 24  # matches the server's default token lifetime
_TOKEN_KEY = "session_token"

_DDL = """
CREATE TABLE IF NOT EXISTS kv_store (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    stored_at   REAL NOT NULL
);
"""


class TokenStore(ABC):
    """A place a session token (or a hint of one) can live."""

    name = "base"

    @abstractmethod
    def get_token(self) -> Optional[str]: ...

    @abstractmethod
    def set_token(self, token: str) -> None: ...

    @abstractmethod
    def clear(self) -> None: ...

    def has_indicator(self) -> bool:
        return self.get_token() is not None


class MemoryTokenStore(TokenStore):
    name = "memory"

    def __init__(self) -> None:
        self._token: Optional[str] = None

    def get_token(self) -> Optional[str]:
        return self._token

    def set_token(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


class PersistentTokenStore(TokenStore):
    """SQLite-backed key/value store with a TTL on every entry."""

    name = "persistent"

    def __init__(self, db_path: Path, ttl: int = _DEFAULT_TTL) -> None:
        self.ttl = ttl
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(_DDL)
        self._conn.commit()

    def get(self, key: str) -> Optional[str]:
        """Return the value for key if it exists and hasn't expired."""
        row = self._conn.execute("SELECT value, stored_at FROM kv_store WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        value, stored_at = row
        if time.time() - stored_at > self.ttl:
            self.delete(key)
            return None
        return value

    def set(self, key: str, value: str) -> None:
        self._conn.execute(
            "INSERT OR REPLACE INTO kv_store (key, value, stored_at) VALUES (?, ?, ?)",
            (key, value, time.time()),
        )
        self._conn.commit()

    def delete(self, key: str) -> None:
        self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        self._conn.commit()

    def get_token(self) -> Optional[str]:
        return self.get(_TOKEN_KEY)

    def set_token(self, token: str) -> None:
        self.set(_TOKEN_KEY, token)

    def clear(self) -> None:
        self.delete(_TOKEN_KEY)

    def close(self) -> None:
        self._conn.close()


def clear_auth_cookies(jar: RequestsCookieJar) -> None:
    """Remove the session and status cookies from jar, for every domain/path."""
    for cookie in list(jar):
        if cookie.name in (SESSION_COOKIE, STATUS_COOKIE):
            jar.clear(cookie.domain, cookie.path, cookie.name)


class StatusCookieStore(TokenStore):
    """The auth-status cookie as a presence signal.

    It never yields a token. set_token() writes the marker so a process that
    logged in with a bearer token still advertises the session to page-style
    checks; has_indicator() also accepts the session cookie itself.
    """

    name = "status-cookie"

    def __init__(self, jar: RequestsCookieJar) -> None:
        self.jar = jar

    def get_token(self) -> Optional[str]:
        return None

    def set_token(self, token: str) -> None:
        self.jar.set(STATUS_COOKIE, STATUS_COOKIE_VALUE, path="/")

    def clear(self) -> None:
        clear_auth_cookies(self.jar)

    def has_indicator(self) -> bool:
        return any(c.name in (SESSION_COOKIE, STATUS_COOKIE) and c.value for c in self.jar)


class SessionCache:
    """Ordered list of token stores with read-through back-fill."""

    def __init__(self, stores: list[TokenStore]) -> None:
        self.stores = list(stores)

    def get_token(self) -> Optional[str]:
        """Return the first token found, copying it into the stores above it."""
        for i, store in enumerate(self.stores):
            token = store.get_token()
            if token:
                for higher in self.stores[:i]:
                    higher.set_token(token)
                if i:
                    logger.debug("Token recovered from %s store", store.name)
                return token
        return None

    def set_token(self, token: str) -> None:
        for store in self.stores:
            store.set_token(token)

    def clear(self) -> None:
        for store in self.stores:
            store.clear()

    def has_indicator(self) -> bool:
        return any(store.has_indicator() for store in self.stores)
