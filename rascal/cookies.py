"""rascal cookies - persist response cookies and read them back by host/path.

Cookies live in a single SQLite file. Rows are only ever inserted, never
updated, so repeated runs accumulate rows for the same cookie name.
"""

import datetime
import http.cookiejar
import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from requests.cookies import create_cookie

from rascal.errors import CookiePersistError

logger = logging.getLogger(__name__)

# expiry is NOT NULL; session cookies are stored with this value
NO_EXPIRY = -1

CREATE_COOKIES_TABLE = """
CREATE TABLE IF NOT EXISTS cookies (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    value TEXT NOT NULL,
    domain TEXT NOT NULL,
    path TEXT NOT NULL,
    secure BOOLEAN NOT NULL,
    http_only BOOLEAN NOT NULL,
    expiry INTEGER NOT NULL
)"""

INSERT_COOKIE = """
INSERT INTO cookies (name, value, domain, path, secure, http_only, expiry)
VALUES (?, ?, ?, ?, ?, ?, ?)"""

# Stored path acts as a prefix pattern: "/api" matches "/api/users".
SELECT_COOKIES = """
SELECT name, value, domain, path, secure, http_only, expiry
FROM cookies
WHERE domain = ? AND substr(?, 1, length(path)) = path
ORDER BY id"""


@dataclass(frozen=True)
class StoredCookie:
    name: str
    value: str
    domain: str
    path: str
    secure: bool = False
    http_only: bool = False
    expiry: int | None = None  # unix seconds

    @property
    def expires_at(self) -> datetime.datetime | None:
        if self.expiry is None:
            return None
        return datetime.datetime.fromtimestamp(self.expiry, tz=datetime.timezone.utc)

    @classmethod
    def from_http_cookie(cls, cookie: http.cookiejar.Cookie) -> "StoredCookie":
        return cls(
            name=cookie.name,
            value=cookie.value or "",
            domain=(cookie.domain or "").lstrip("."),
            path=cookie.path or "",
            secure=bool(cookie.secure),
            http_only=_is_http_only(cookie),
            expiry=int(cookie.expires) if cookie.expires is not None else None,
        )

    def to_http_cookie(self) -> http.cookiejar.Cookie:
        return create_cookie(
            self.name,
            self.value,
            domain=self.domain,
            path=self.path or "/",
            secure=self.secure,
            expires=self.expiry,
            rest={"HttpOnly": None} if self.http_only else {},
        )


def _is_http_only(cookie: http.cookiejar.Cookie) -> bool:
    # attribute names outside the RFC 2965 set keep their original case
    return any(name.lower() == "httponly" for name in cookie._rest)


def _valid_expiry(raw: Any) -> int | None:
    """Return raw as epoch seconds, or None if it is not a usable timestamp."""
    if raw is None or raw == NO_EXPIRY:
        return None
    try:
        seconds = int(raw)
        datetime.datetime.fromtimestamp(seconds, tz=datetime.timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None
    return seconds


def _decode_row(row: tuple) -> StoredCookie:
    name, value, domain, path, secure, http_only, expiry = row
    for field, text in (("name", name), ("value", value), ("domain", domain), ("path", path)):
        if not isinstance(text, str):
            raise ValueError(f"column {field} is not text: {text!r}")
    if secure not in (0, 1) or http_only not in (0, 1):
        raise ValueError(f"boolean columns hold {secure!r}, {http_only!r}")
    return StoredCookie(
        name=name,
        value=value,
        domain=domain,
        path=path,
        secure=bool(secure),
        http_only=bool(http_only),
        expiry=_valid_expiry(expiry),
    )


class CookieStore:
    """Single-file SQLite cookie store. The table is created on open."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        try:
            self._conn = sqlite3.connect(str(self.path))
            self._conn.execute(CREATE_COOKIES_TABLE)
            self._conn.commit()
        except sqlite3.Error as e:
            raise CookiePersistError(f"failed to open cookie store at {self.path}: {e}") from e

    def insert(self, cookie: StoredCookie) -> None:
        expiry = cookie.expiry if cookie.expiry is not None else NO_EXPIRY
        try:
            with self._conn:
                self._conn.execute(
                    INSERT_COOKIE,
                    (
                        cookie.name,
                        cookie.value,
                        cookie.domain,
                        cookie.path,
                        cookie.secure,
                        cookie.http_only,
                        expiry,
                    ),
                )
        except sqlite3.Error as e:
            raise CookiePersistError(f"failed to insert cookie {cookie.name}: {e}") from e

    def find(self, host: str, path: str) -> list[StoredCookie]:
        """Return cookies for host whose stored path is a prefix of path.

        Rows that cannot be decoded are logged and skipped.
        """
        rows = self._conn.execute(SELECT_COOKIES, (host, path)).fetchall()
        cookies: list[StoredCookie] = []
        for row in rows:
            try:
                cookies.append(_decode_row(row))
            except ValueError as e:
                logger.error("skipping undecodable cookie row, error=%s", e)
        return cookies

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "CookieStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def persist_cookies(response, store: CookieStore) -> int:
    """Insert one row per cookie set by response. Returns rows inserted.

    A failed insert is logged and the remaining cookies are still stored.
    """
    inserted = 0
    for c in response.cookies:
        cookie = StoredCookie.from_http_cookie(c)
        logger.debug("cookie: %s %s", cookie.name, cookie.value)
        try:
            store.insert(cookie)
        except CookiePersistError as e:
            logger.error("failed to insert cookie into db, error=%s", e)
            continue
        inserted += 1
    return inserted


def fetch_cookies(store: CookieStore, host: str, path: str) -> list[StoredCookie]:
    return store.find(host, path)


def cookies_for_url(store: CookieStore, url: str) -> list[StoredCookie]:
    """Stored cookies matching the host and path of url."""
    parts = urlsplit(url)
    if not parts.hostname:
        return []
    return fetch_cookies(store, parts.hostname, parts.path or "/")
