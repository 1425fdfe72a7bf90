from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import requests

from invoicing.config import Settings
from invoicing.errors import AuthenticationRequiredError, ExternalServiceError


@dataclass(frozen=True)
class User:
    id: str
    email: str | None = None


class AuthProvider(Protocol):
    def current_user(self) -> User | None:
        """Return the signed-in user, or None when there is no session."""

    def session_valid(self) -> bool:
        """Return True when a usable session exists."""


class StaticAuthProvider:
    def __init__(self, user: User | None) -> None:
        self._user = user

    def current_user(self) -> User | None:
        return self._user

    def session_valid(self) -> bool:
        return self._user is not None


class HttpAuthProvider:
    """Resolves the session against a hosted auth service's user endpoint."""

    def __init__(
        self,
        base_url: str,
        access_token: str,
        *,
        session: Any | None = None,
        timeout_seconds: int = 10,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._access_token = access_token
        self._session = session or requests.Session()
        self._timeout = timeout_seconds

    def current_user(self) -> User | None:
        try:
            response = self._session.get(
                f"{self._base_url}/auth/v1/user",
                headers={"Authorization": f"Bearer {self._access_token}"},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise ExternalServiceError(f"Auth service unreachable: {exc}") from exc

        if response.status_code in (401, 403):
            return None
        if response.status_code >= 400:
            raise ExternalServiceError(f"Auth service returned HTTP {response.status_code}")

        payload = response.json()
        user_id = payload.get("id") if isinstance(payload, dict) else None
        if not user_id:
            return None
        return User(id=str(user_id), email=payload.get("email"))

    def session_valid(self) -> bool:
        return self.current_user() is not None


def build_auth_provider(settings: Settings) -> AuthProvider:
    if settings.auth_backend == "http":
        if not settings.auth_base_url or not settings.auth_access_token:
            raise ValueError("AUTH_BASE_URL and AUTH_ACCESS_TOKEN are required for AUTH_BACKEND=http")
        return HttpAuthProvider(
            settings.auth_base_url,
            settings.auth_access_token,
            timeout_seconds=settings.auth_timeout_seconds,
        )
    return StaticAuthProvider(User(id=settings.auth_static_user_id))


def require_user(auth: AuthProvider) -> User:
    user = auth.current_user()
    if user is None:
        raise AuthenticationRequiredError("User not authenticated")
    return user
