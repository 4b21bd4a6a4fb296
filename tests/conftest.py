"""Shared fixtures for rascal tests."""

import pytest
import requests
from click.testing import CliRunner
from requests.structures import CaseInsensitiveDict

from rascal import core


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def isolate_globals(tmp_path, monkeypatch):
    """Keep tests away from ~/.rascal and the shared temp cookie store."""
    fake_global = tmp_path / "fake_home" / ".rascal"
    fake_global.mkdir(parents=True)
    monkeypatch.setattr(core, "GLOBAL_DIR", fake_global)
    monkeypatch.setattr(core, "GLOBAL_CONFIG", fake_global / "config.yaml")
    monkeypatch.setattr(core, "default_cookie_db", lambda: tmp_path / "default.sqlite3")
    return fake_global


@pytest.fixture
def make_response():
    """Factory for real requests.Response objects without a network call."""

    def _make(status_code=200, body="", headers=None, reason="OK", cookies=None):
        resp = requests.Response()
        resp.status_code = status_code
        resp.reason = reason
        resp._content = body.encode("utf-8") if isinstance(body, str) else body
        resp.encoding = "utf-8"
        resp.headers = CaseInsensitiveDict(headers or {})
        for c in cookies or []:
            resp.cookies.set_cookie(c)
        return resp

    return _make
