"""Tests for the cookie store and the response/store bridge."""

import http.client
import logging
import sqlite3

import pytest
import requests
from requests.cookies import MockRequest, MockResponse, RequestsCookieJar, create_cookie

from rascal.cookies import (
    NO_EXPIRY,
    CookieStore,
    StoredCookie,
    cookies_for_url,
    fetch_cookies,
    persist_cookies,
)
from rascal.errors import CookiePersistError


@pytest.fixture
def store(tmp_path):
    with CookieStore(tmp_path / "cookies.sqlite3") as s:
        yield s


def _raw_rows(store):
    return store._conn.execute(
        "SELECT name, value, domain, path, secure, http_only, expiry FROM cookies ORDER BY id",
    ).fetchall()


# ── CookieStore ──────────────────────────────────────────────────────────


class TestCookieStore:
    def test_table_created_idempotently(self, tmp_path):
        path = tmp_path / "cookies.sqlite3"
        CookieStore(path).close()
        with CookieStore(path) as s:
            s.insert(StoredCookie(name="a", value="1", domain="example.com", path="/"))
            assert len(_raw_rows(s)) == 1

    def test_rows_survive_reopen(self, tmp_path):
        path = tmp_path / "cookies.sqlite3"
        with CookieStore(path) as s:
            s.insert(StoredCookie(name="a", value="1", domain="example.com", path="/"))
        with CookieStore(path) as s:
            assert [c.name for c in s.find("example.com", "/")] == ["a"]

    def test_open_failure(self, tmp_path):
        with pytest.raises(CookiePersistError):
            CookieStore(tmp_path / "missing-dir" / "cookies.sqlite3")

    def test_missing_expiry_stored_as_sentinel(self, store):
        store.insert(StoredCookie(name="a", value="1", domain="example.com", path="/"))
        assert _raw_rows(store)[0][-1] == NO_EXPIRY

    def test_inserts_are_append_only(self, store):
        cookie = StoredCookie(name="a", value="1", domain="example.com", path="/")
        store.insert(cookie)
        store.insert(cookie)
        assert len(_raw_rows(store)) == 2
        assert len(store.find("example.com", "/")) == 2

    def test_insert_failure_raises(self, store):
        store._conn.execute("DROP TABLE cookies")
        with pytest.raises(CookiePersistError, match="failed to insert cookie a"):
            store.insert(StoredCookie(name="a", value="1", domain="example.com", path="/"))


class TestFetchCookies:
    def test_path_prefix_match(self, store):
        stored = StoredCookie(
            name="sid",
            value="xyz",
            domain="example.com",
            path="/api",
            secure=True,
            http_only=False,
            expiry=1700000000,
        )
        store.insert(stored)
        assert fetch_cookies(store, "example.com", "/api/users") == [stored]

    def test_exact_path(self, store):
        store.insert(StoredCookie(name="a", value="1", domain="example.com", path="/api"))
        assert len(fetch_cookies(store, "example.com", "/api")) == 1

    def test_other_path_excluded(self, store):
        store.insert(StoredCookie(name="a", value="1", domain="example.com", path="/api"))
        assert fetch_cookies(store, "example.com", "/admin") == []

    def test_domain_must_match_exactly(self, store):
        store.insert(StoredCookie(name="a", value="1", domain="example.com", path="/"))
        assert fetch_cookies(store, "www.example.com", "/") == []
        assert fetch_cookies(store, "other.com", "/") == []

    def test_path_with_like_wildcards_is_literal(self, store):
        store.insert(StoredCookie(name="a", value="1", domain="example.com", path="/a_c"))
        assert fetch_cookies(store, "example.com", "/abc") == []
        assert len(fetch_cookies(store, "example.com", "/a_c/d")) == 1

    def test_sentinel_expiry_read_back_as_none(self, store):
        store.insert(StoredCookie(name="a", value="1", domain="example.com", path="/"))
        assert fetch_cookies(store, "example.com", "/")[0].expiry is None

    def test_invalid_expiry_dropped_but_cookie_kept(self, store):
        store._conn.execute(
            "INSERT INTO cookies (name, value, domain, path, secure, http_only, expiry) "
            "VALUES ('a', '1', 'example.com', '/', 1, 0, ?)",
            (10**15,),
        )
        [cookie] = fetch_cookies(store, "example.com", "/")
        assert cookie.name == "a"
        assert cookie.secure is True
        assert cookie.expiry is None

    def test_undecodable_row_skipped(self, store, caplog):
        store._conn.execute(
            "INSERT INTO cookies (name, value, domain, path, secure, http_only, expiry) "
            "VALUES ('bad', 'x', 'example.com', '/', 'maybe', 0, 0)",
        )
        store.insert(StoredCookie(name="good", value="1", domain="example.com", path="/"))
        with caplog.at_level(logging.ERROR, logger="rascal.cookies"):
            found = fetch_cookies(store, "example.com", "/")
        assert [c.name for c in found] == ["good"]
        assert "undecodable cookie row" in caplog.text

    def test_cookies_for_url(self, store):
        store.insert(StoredCookie(name="a", value="1", domain="example.com", path="/api"))
        assert [c.name for c in cookies_for_url(store, "https://example.com/api/x?y=1")] == ["a"]
        assert cookies_for_url(store, "https://example.com") == []

    def test_cookies_for_url_without_host(self, store):
        assert cookies_for_url(store, "not a url") == []


# ── persist_cookies ──────────────────────────────────────────────────────


class TestPersistCookies:
    def test_each_cookie_inserted(self, store, make_response):
        resp = make_response(
            cookies=[
                create_cookie(
                    "sid",
                    "xyz",
                    domain=".example.com",
                    path="/api",
                    secure=True,
                    expires=1700000000,
                    rest={"HttpOnly": None},
                ),
                create_cookie("theme", "dark", domain="example.com", path="/", rest={}),
            ],
        )
        assert persist_cookies(resp, store) == 2
        rows = sorted(_raw_rows(store))
        assert rows == [
            ("sid", "xyz", "example.com", "/api", 1, 1, 1700000000),
            ("theme", "dark", "example.com", "/", 0, 0, NO_EXPIRY),
        ]

    def test_cookies_parsed_from_set_cookie_headers(self, store, make_response):
        msg = http.client.HTTPMessage()
        msg["Set-Cookie"] = "sid=xyz; Path=/api; Secure; HTTPONLY"
        msg["Set-Cookie"] = "theme=dark; Path=/"
        jar = RequestsCookieJar()
        request = requests.Request("GET", "https://example.com/").prepare()
        jar.extract_cookies(MockResponse(msg), MockRequest(request))

        assert persist_cookies(make_response(cookies=list(jar)), store) == 2
        assert sorted(_raw_rows(store)) == [
            ("sid", "xyz", "example.com", "/api", 1, 1, NO_EXPIRY),
            ("theme", "dark", "example.com", "/", 0, 0, NO_EXPIRY),
        ]

    def test_no_cookies(self, store, make_response):
        assert persist_cookies(make_response(), store) == 0
        assert _raw_rows(store) == []

    def test_insert_failure_does_not_stop_others(self, store, make_response, caplog):
        resp = make_response(
            cookies=[
                create_cookie("a", "1", domain="example.com", path="/"),
                create_cookie("b", "2", domain="example.com", path="/x"),
            ],
        )
        real_insert = store.insert
        calls = []

        def flaky_insert(cookie):
            calls.append(cookie.name)
            if len(calls) == 1:
                raise CookiePersistError(f"failed to insert cookie {cookie.name}: disk I/O error")
            real_insert(cookie)

        store.insert = flaky_insert
        with caplog.at_level(logging.ERROR, logger="rascal.cookies"):
            assert persist_cookies(resp, store) == 1
        assert len(calls) == 2
        assert len(_raw_rows(store)) == 1
        assert "failed to insert cookie into db" in caplog.text


class TestStoredCookie:
    def test_http_cookie_round_trip(self):
        stored = StoredCookie(
            name="sid",
            value="xyz",
            domain="example.com",
            path="/api",
            secure=True,
            http_only=True,
            expiry=1700000000,
        )
        assert StoredCookie.from_http_cookie(stored.to_http_cookie()) == stored

    @pytest.mark.parametrize("attr", ["HttpOnly", "httponly", "HTTPONLY"])
    def test_http_only_attribute_any_case(self, attr):
        cookie = create_cookie("a", "1", domain="example.com", path="/", rest={attr: None})
        assert StoredCookie.from_http_cookie(cookie).http_only is True

    def test_no_http_only_attribute(self):
        cookie = create_cookie("a", "1", domain="example.com", path="/", rest={})
        assert StoredCookie.from_http_cookie(cookie).http_only is False

    def test_expires_at(self):
        c = StoredCookie(name="a", value="1", domain="d", path="/", expiry=0)
        assert c.expires_at.year == 1970
        assert StoredCookie(name="a", value="1", domain="d", path="/").expires_at is None


def test_store_is_plain_sqlite(tmp_path):
    path = tmp_path / "cookies.sqlite3"
    with CookieStore(path) as s:
        s.insert(StoredCookie(name="a", value="1", domain="example.com", path="/"))
    conn = sqlite3.connect(path)
    try:
        columns = [row[1] for row in conn.execute("PRAGMA table_info(cookies)")]
    finally:
        conn.close()
    assert columns == ["id", "name", "value", "domain", "path", "secure", "http_only", "expiry"]
