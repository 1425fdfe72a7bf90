from __future__ import annotations

from typing import Any

import pytest
import requests

from invoicing.auth import (
    HttpAuthProvider,
    StaticAuthProvider,
    User,
    build_auth_provider,
    require_user,
)
from invoicing.config import Settings
from invoicing.errors import AuthenticationRequiredError, ExternalServiceError


class _FakeResponse:
    def __init__(self, status_code: int, payload: Any = None) -> None:
        self.status_code = status_code
        self._payload = payload

    def json(self) -> Any:
        return self._payload


class _FakeSession:
    def __init__(self, response: _FakeResponse | None = None, error: Exception | None = None) -> None:
        self._response = response
        self._error = error
        self.calls: list[dict[str, Any]] = []

    def get(self, url: str, **kwargs: Any) -> _FakeResponse:
        self.calls.append({"url": url, **kwargs})
        if self._error is not None:
            raise self._error
        assert self._response is not None
        return self._response


def test_http_provider_returns_user_for_valid_session() -> None:
    session = _FakeSession(_FakeResponse(200, {"id": "user-1", "email": "a@b.co"}))
    provider = HttpAuthProvider("https://auth.example.com/", "token-123", session=session, timeout_seconds=5)

    assert provider.current_user() == User(id="user-1", email="a@b.co")
    call = session.calls[0]
    assert call["url"] == "https://auth.example.com/auth/v1/user"
    assert call["headers"] == {"Authorization": "Bearer token-123"}
    assert call["timeout"] == 5


def test_http_provider_treats_unauthorized_as_no_session() -> None:
    provider = HttpAuthProvider("https://auth.example.com", "expired", session=_FakeSession(_FakeResponse(401)))
    assert provider.current_user() is None
    assert provider.session_valid() is False


def test_http_provider_surfaces_server_and_network_failures() -> None:
    failing = HttpAuthProvider("https://auth.example.com", "t", session=_FakeSession(_FakeResponse(502)))
    with pytest.raises(ExternalServiceError, match="HTTP 502"):
        failing.current_user()

    unreachable = HttpAuthProvider(
        "https://auth.example.com",
        "t",
        session=_FakeSession(error=requests.ConnectionError("refused")),
    )
    with pytest.raises(ExternalServiceError, match="unreachable"):
        unreachable.current_user()


def test_require_user_raises_when_signed_out() -> None:
    with pytest.raises(AuthenticationRequiredError) as exc_info:
        require_user(StaticAuthProvider(None))
    assert exc_info.value.code == "not_authenticated"
    assert require_user(StaticAuthProvider(User(id="u"))).id == "u"


def test_build_auth_provider_follows_settings() -> None:
    static = build_auth_provider(Settings(auth_static_user_id="local"))
    assert isinstance(static, StaticAuthProvider)
    assert static.current_user() == User(id="local")

    http = build_auth_provider(
        Settings(auth_backend="http", auth_base_url="https://auth.example.com", auth_access_token="t")
    )
    assert isinstance(http, HttpAuthProvider)


def test_build_auth_provider_rejects_incomplete_http_settings() -> None:
    with pytest.raises(ValueError, match="AUTH_ACCESS_TOKEN"):
        build_auth_provider(Settings(auth_backend="http", auth_base_url="https://auth.example.com"))
