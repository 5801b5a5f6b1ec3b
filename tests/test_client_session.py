"""
tests/test_client_session.py -- Client token stores, session cache and the
TrackerClient session state machine.

The HTTP session is a MagicMock with a real RequestsCookieJar, so no network
is involved. PersistentTokenStore writes to pytest's tmp_path.
"""

from __future__ import annotations

import time
from unittest.mock import MagicMock

import pytest
from requests.cookies import RequestsCookieJar

from client.session import AuthError, SessionState, TrackerClient
from client.store import (
    MemoryTokenStore,
    PersistentTokenStore,
    SessionCache,
    StatusCookieStore,
    TokenStore,
    clear_auth_cookies,
)


def _response(status_code: int, payload=None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload if payload is not None else {}
    resp.content = b"date,price\r\n"
    return resp


def _http(*responses) -> MagicMock:
    http = MagicMock()
    http.cookies = RequestsCookieJar()
    http.request.side_effect = list(responses)
    return http


@pytest.fixture
def persistent(tmp_path) -> PersistentTokenStore:
    store = PersistentTokenStore(tmp_path / "nested" / "session.db")
    yield store
    store.close()


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class TestTokenStoreInterface:
    def test_incomplete_store_cannot_be_built(self) -> None:
        class ReadOnlyStore(TokenStore):
            def get_token(self):
                return None

        with pytest.raises(TypeError):
            ReadOnlyStore()

    def test_base_is_abstract(self) -> None:
        with pytest.raises(TypeError):
            TokenStore()


class TestPersistentTokenStore:
    def test_creates_parent_dir_and_round_trips(self, tmp_path, persistent) -> None:
        assert (tmp_path / "nested").is_dir()
        persistent.set_token("tok")
        assert persistent.get_token() == "tok"
        persistent.clear()
        assert persistent.get_token() is None

    def test_survives_reopen(self, tmp_path) -> None:
        path = tmp_path / "session.db"
        first = PersistentTokenStore(path)
        first.set_token("kept")
        first.close()
        second = PersistentTokenStore(path)
        try:
            assert second.get_token() == "kept"
        finally:
            second.close()

    def test_expired_entry_is_dropped(self, persistent, monkeypatch) -> None:
        persistent.set("k", "v")
        later = time.time() + persistent.ttl + 5
        monkeypatch.setattr("client.store.time.time", lambda: later)
        assert persistent.get("k") is None


class TestStatusCookieStore:
    def test_never_yields_a_token(self) -> None:
        jar = RequestsCookieJar()
        store = StatusCookieStore(jar)
        store.set_token("secret")
        assert store.get_token() is None
        assert jar.get("auth-status") == "logged-in"
        assert store.has_indicator()

    def test_session_cookie_counts_as_indicator(self) -> None:
        jar = RequestsCookieJar()
        jar.set("token", "abc", domain="localhost.local", path="/")
        assert StatusCookieStore(jar).has_indicator()

    def test_clear_auth_cookies_leaves_others(self) -> None:
        jar = RequestsCookieJar()
        jar.set("token", "abc", domain="example.com", path="/")
        jar.set("auth-status", "logged-in", path="/")
        jar.set("theme", "dark", path="/")
        clear_auth_cookies(jar)
        assert [c.name for c in jar] == ["theme"]


class TestSessionCache:
    def test_first_hit_back_fills_higher_tiers(self, persistent) -> None:
        memory = MemoryTokenStore()
        cache = SessionCache([memory, persistent])
        persistent.set_token("from-disk")

        assert cache.get_token() == "from-disk"
        assert memory.get_token() == "from-disk"

    def test_set_and_clear_every_tier(self, persistent) -> None:
        memory = MemoryTokenStore()
        jar = RequestsCookieJar()
        cache = SessionCache([memory, persistent, StatusCookieStore(jar)])
        cache.set_token("t")
        assert memory.get_token() == persistent.get_token() == "t"
        assert jar.get("auth-status") == "logged-in"

        cache.clear()
        assert cache.get_token() is None
        assert not cache.has_indicator()

    def test_empty(self) -> None:
        cache = SessionCache([MemoryTokenStore()])
        assert cache.get_token() is None
        assert not cache.has_indicator()


# ---------------------------------------------------------------------------
# TrackerClient
# ---------------------------------------------------------------------------


class TestCheckAuth:
    def test_no_indicator_skips_network(self) -> None:
        http = _http()
        client = TrackerClient("http://api", http=http)
        assert client.check_auth() is None
        assert client.state == SessionState.ANONYMOUS
        http.request.assert_not_called()

    def test_authenticated(self) -> None:
        user = {"user_id": 1, "email": "a@x.com", "role": "operator"}
        http = _http(_response(200, {"authenticated": True, "user": user}))
        client = TrackerClient("http://api/", http=http)
        client.cache.set_token("tok")

        assert client.check_auth() == user
        assert client.state == SessionState.AUTHENTICATED
        method, url = http.request.call_args.args
        assert (method, url) == ("GET", "http://api/api/auth/me")
        assert http.request.call_args.kwargs["headers"]["Authorization"] == "Bearer tok"

    def test_me_401_means_anonymous_without_clearing(self) -> None:
        redirect = MagicMock()
        http = _http(_response(401, {"authenticated": False}))
        client = TrackerClient("http://api", http=http, on_redirect=redirect, current_path="/dashboard")
        client.cache.set_token("tok")

        assert client.check_auth() is None
        assert client.state == SessionState.ANONYMOUS
        assert client.cache.get_token() == "tok"
        redirect.assert_not_called()


class TestUnauthorizedPolicy:
    def test_protected_401_clears_and_redirects(self) -> None:
        redirect = MagicMock()
        http = _http(_response(401, {"message": "Unauthorized"}))
        http.cookies.set("auth-status", "logged-in", path="/")
        client = TrackerClient("http://api", http=http, on_redirect=redirect, current_path="/dashboard/reports")
        client.cache.set_token("stale")

        resp = client.request("GET", "/api/submissions")
        assert resp.status_code == 401
        assert client.state == SessionState.ANONYMOUS
        assert client.cache.get_token() is None
        assert http.cookies.get("auth-status") is None
        redirect.assert_called_once_with("/auth/login?returnUrl=%2Fdashboard%2Freports")

    def test_no_redirect_from_public_page(self) -> None:
        redirect = MagicMock()
        http = _http(_response(401))
        client = TrackerClient("http://api", http=http, on_redirect=redirect, current_path="/auth/login")
        client.cache.set_token("stale")

        client.request("GET", "/api/submissions")
        assert client.cache.get_token() is None
        redirect.assert_not_called()

    def test_get_json_raises_auth_error(self) -> None:
        http = _http(_response(403, {"message": "Insufficient permissions."}))
        client = TrackerClient("http://api", http=http)
        with pytest.raises(AuthError) as exc_info:
            client.get_json("/api/submissions")
        assert exc_info.value.status_code == 403
        assert str(exc_info.value) == "Insufficient permissions."


class TestLoginLogout:
    def test_login_caches_token(self) -> None:
        http = _http()
        http.post.return_value = _response(
            200, {"token": "fresh", "user": {"id": 1, "email": "a@x.com", "role": "operator"}}
        )
        client = TrackerClient("http://api", http=http)

        user = client.login("a@x.com", "pw")
        assert user["email"] == "a@x.com"
        assert client.state == SessionState.AUTHENTICATED
        assert client.cache.get_token() == "fresh"
        assert client.attach()["Authorization"] == "Bearer fresh"

    def test_bad_credentials(self) -> None:
        http = _http()
        http.post.return_value = _response(401, {"message": "Invalid email or password."})
        client = TrackerClient("http://api", http=http)
        with pytest.raises(AuthError, match="Invalid email or password."):
            client.login("a@x.com", "nope")
        assert client.cache.get_token() is None

    def test_logout_forgets_even_if_server_fails(self) -> None:
        http = _http()
        http.post.side_effect = ConnectionError("down")
        client = TrackerClient("http://api", http=http)
        client.cache.set_token("tok")
        client.state = SessionState.AUTHENTICATED

        with pytest.raises(ConnectionError):
            client.logout()
        assert client.state == SessionState.ANONYMOUS
        assert client.cache.get_token() is None


class TestExport:
    def test_params(self) -> None:
        http = _http(_response(200))
        client = TrackerClient("http://api", http=http)
        body = client.export("csv", fields=["date", "price"], status="won", search=None)
        assert body == b"date,price\r\n"
        params = http.request.call_args.kwargs["params"]
        assert params == {"format": "csv", "status": "won", "fields": "date,price"}
