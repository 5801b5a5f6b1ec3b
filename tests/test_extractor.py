"""
tests/test_extractor.py -- Credential extraction, session resolution and the
authorization gate dependencies.

These are unit tests over plain dicts and MagicMock requests: the functions
only read request.headers, request.cookies, request.method and request.url.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException

from auth.dependencies import (
    INVALID_TOKEN,
    NO_TOKEN,
    extract_token,
    get_session,
    require_operator,
    resolve_session,
)
from auth.tokens import create_access_token


def _mock_request(headers: dict | None = None, cookies: dict | None = None) -> MagicMock:
    request = MagicMock()
    request.headers = headers or {}
    request.cookies = cookies or {}
    request.method = "GET"
    request.url.path = "/api/submissions"
    return request


class TestExtractToken:
    def test_none_when_nothing_present(self) -> None:
        assert extract_token({}, {}) is None

    def test_bearer_header(self) -> None:
        assert extract_token({"authorization": "Bearer abc"}, {}) == "abc"

    def test_header_preferred_over_cookie(self) -> None:
        assert extract_token({"authorization": "Bearer from-header"}, {"token": "from-cookie"}) == "from-header"

    def test_header_preferred_over_raw_cookie_header(self) -> None:
        headers = {"authorization": "Bearer from-header", "cookie": "token=from-raw"}
        assert extract_token(headers, {}) == "from-header"

    def test_cookie_mapping(self) -> None:
        assert extract_token({}, {"token": "from-cookie"}) == "from-cookie"

    def test_cookie_mapping_preferred_over_raw_header(self) -> None:
        assert extract_token({"cookie": "token=from-raw"}, {"token": "from-cookie"}) == "from-cookie"

    def test_raw_cookie_header_fallback(self) -> None:
        headers = {"cookie": "theme=dark; token=from-raw; auth-status=logged-in"}
        assert extract_token(headers, {}) == "from-raw"

    def test_raw_cookie_value_keeps_equals_signs(self) -> None:
        assert extract_token({"cookie": "token=abc==; x=1"}, {}) == "abc=="

    def test_non_bearer_scheme_ignored(self) -> None:
        assert extract_token({"authorization": "Basic dXNlcjpwYXNz"}, {}) is None

    def test_empty_bearer_falls_through_to_cookie(self) -> None:
        assert extract_token({"authorization": "Bearer "}, {"token": "from-cookie"}) == "from-cookie"

    def test_status_cookie_is_not_a_token(self) -> None:
        assert extract_token({}, {"auth-status": "logged-in"}) is None


class TestResolveSession:
    def test_no_token(self) -> None:
        resolution = resolve_session(_mock_request())
        assert not resolution.ok
        assert resolution.reason == NO_TOKEN

    def test_invalid_token(self) -> None:
        resolution = resolve_session(_mock_request(headers={"authorization": "Bearer junk"}))
        assert not resolution.ok
        assert resolution.reason == INVALID_TOKEN

    def test_valid_cookie_token(self) -> None:
        token = create_access_token(3, "c@x.com", "observer")
        resolution = resolve_session(_mock_request(cookies={"token": token}))
        assert resolution.ok
        assert resolution.reason is None
        assert resolution.identity.subject_id == 3
        assert resolution.identity.role == "observer"


class TestGates:
    def test_get_session_401_body(self) -> None:
        with pytest.raises(HTTPException) as exc_info:
            get_session(_mock_request())
        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == {"message": "Unauthorized", "error": "no-token"}

    def test_get_session_invalid_reason(self) -> None:
        with pytest.raises(HTTPException) as exc_info:
            get_session(_mock_request(headers={"authorization": "Bearer junk"}))
        assert exc_info.value.detail["error"] == "invalid-token"

    def test_require_operator_rejects_observer(self) -> None:
        token = create_access_token(3, "c@x.com", "observer")
        with pytest.raises(HTTPException) as exc_info:
            require_operator(_mock_request(headers={"authorization": f"Bearer {token}"}))
        assert exc_info.value.status_code == 403
        assert exc_info.value.detail["error"] == "forbidden"

    def test_require_operator_accepts_operator(self) -> None:
        token = create_access_token(5, "op@x.com", "operator")
        session = require_operator(_mock_request(headers={"authorization": f"Bearer {token}"}))
        assert session.subject_id == 5
