from __future__ import annotations

import base64
import os
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

from .errors import AuthExpiredError, AuthRequiredError


@runtime_checkable
class AuthProvider(Protocol):
    """Adds credentials to outgoing requests and reports whether it holds any."""

    async def add_auth_headers(self, headers: Mapping[str, str]) -> dict[str, str]: ...

    async def add_ws_connection_params(self, params: Mapping[str, Any]) -> dict[str, Any]: ...

    async def is_authorized(self) -> bool: ...


# ---------------------------------------------------------------------------
# Stub
# ---------------------------------------------------------------------------

class StubAuthProvider:
    """Sends requests unchanged and is never authorized. The default provider."""

    async def add_auth_headers(self, headers: Mapping[str, str]) -> dict[str, str]:
        return dict(headers)

    async def add_ws_connection_params(self, params: Mapping[str, Any]) -> dict[str, Any]:
        return dict(params)

    async def is_authorized(self) -> bool:
        return False


# ---------------------------------------------------------------------------
# Account API token (HTTP Basic)
# ---------------------------------------------------------------------------

class AccountTokenAuthProvider:
    """Server-side auth with an API token's client id and secret."""

    def __init__(self, client_id: str, client_secret: str) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._basic = base64.b64encode(f"{client_id}:{client_secret}".encode()).decode()

    @classmethod
    def from_env(cls) -> AccountTokenAuthProvider:
        """Build from ``SPARKWALLET_CLIENT_ID`` and ``SPARKWALLET_CLIENT_SECRET``."""
        client_id = os.environ.get("SPARKWALLET_CLIENT_ID")
        client_secret = os.environ.get("SPARKWALLET_CLIENT_SECRET")
        if not client_id or not client_secret:
            raise AuthRequiredError("SPARKWALLET_CLIENT_ID and SPARKWALLET_CLIENT_SECRET must both be set")
        return cls(client_id, client_secret)

    async def add_auth_headers(self, headers: Mapping[str, str]) -> dict[str, str]:
        return {**headers, "Authorization": f"Basic {self._basic}"}

    async def add_ws_connection_params(self, params: Mapping[str, Any]) -> dict[str, Any]:
        return {**params, "client_id": self._client_id, "client_secret": self._client_secret}

    async def is_authorized(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Custom JWT session
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class JwtTokenInfo:
    access_token: str
    valid_until: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.now(timezone.utc)) >= self.valid_until


class JwtStorage(Protocol):
    """Where a :class:`CustomJwtAuthProvider` keeps its session token."""

    def get(self) -> JwtTokenInfo | None: ...

    def set(self, token_info: JwtTokenInfo) -> None: ...

    def clear(self) -> None: ...


class InMemoryJwtStorage:
    """Process-lifetime token storage."""

    def __init__(self) -> None:
        self._token_info: JwtTokenInfo | None = None

    def get(self) -> JwtTokenInfo | None:
        return self._token_info

    def set(self, token_info: JwtTokenInfo) -> None:
        self._token_info = token_info

    def clear(self) -> None:
        self._token_info = None


class CustomJwtAuthProvider:
    """Bearer-token auth for a session obtained via ``WalletClient.login_with_jwt``.

    The token is not refreshed in place. Once it expires, requests raise
    :class:`AuthExpiredError` and the caller has to log in again.
    """

    def __init__(self, storage: JwtStorage | None = None) -> None:
        self._storage = storage if storage is not None else InMemoryJwtStorage()

    def set_token_info(self, token_info: JwtTokenInfo) -> None:
        if token_info.valid_until.tzinfo is None:
            raise ValueError("valid_until must be timezone-aware")
        self._storage.set(token_info)

    def log_out(self) -> None:
        self._storage.clear()

    def _live_token(self) -> str | None:
        token_info = self._storage.get()
        if token_info is None:
            return None
        if token_info.is_expired():
            raise AuthExpiredError("Session token expired. Log in again.")
        return token_info.access_token

    async def add_auth_headers(self, headers: Mapping[str, str]) -> dict[str, str]:
        token = self._live_token()
        if token is None:
            return dict(headers)
        return {**headers, "Authorization": f"Bearer {token}"}

    async def add_ws_connection_params(self, params: Mapping[str, Any]) -> dict[str, Any]:
        token = self._live_token()
        if token is None:
            return dict(params)
        return {**params, "access_token": token}

    async def is_authorized(self) -> bool:
        token_info = self._storage.get()
        return token_info is not None and not token_info.is_expired()


# ---------------------------------------------------------------------------
# OAuth (delegated)
# ---------------------------------------------------------------------------

class OAuthHelper(Protocol):
    """Platform-specific authorization-code / PKCE flow."""

    async def get_fresh_access_token(self) -> str | None: ...

    async def is_authorized(self) -> bool: ...


class OAuthProvider:
    """Bearer-token auth backed by an external OAuth flow."""

    def __init__(self, helper: OAuthHelper) -> None:
        self._helper = helper

    async def add_auth_headers(self, headers: Mapping[str, str]) -> dict[str, str]:
        token = await self._helper.get_fresh_access_token()
        if not token:
            return dict(headers)
        return {**headers, "Authorization": f"Bearer {token}"}

    async def add_ws_connection_params(self, params: Mapping[str, Any]) -> dict[str, Any]:
        token = await self._helper.get_fresh_access_token()
        if not token:
            return dict(params)
        return {**params, "access_token": token}

    async def is_authorized(self) -> bool:
        return await self._helper.is_authorized()
