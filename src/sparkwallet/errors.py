from __future__ import annotations

import json
from collections.abc import Collection
from typing import Any


class SparkWalletError(Exception):
    """Base exception for all SDK errors."""


class AuthRequiredError(SparkWalletError):
    """Raised when an operation needs credentials (or an unlocked wallet) that are missing."""


class AuthExpiredError(AuthRequiredError):
    """Raised when the stored session token is past its expiry. Log in again."""


class KeyNotFoundError(SparkWalletError):
    """Raised when no signing key is cached for a node."""

    def __init__(self, node_id: str) -> None:
        super().__init__(f"No signing key loaded for node {node_id!r}")
        self.node_id = node_id


class KeyDecodeError(SparkWalletError):
    """Raised when cached key material cannot be parsed into a signing key."""


class DecryptionError(SparkWalletError):
    """Raised when an encrypted signing key cannot be decrypted, usually a wrong password."""


class InvalidQueryError(SparkWalletError):
    """Raised for GraphQL documents the requester cannot execute."""


class NetworkError(SparkWalletError):
    """Raised for transport failures and non-2xx HTTP responses."""

    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body

    @classmethod
    def from_response(cls, operation: str, status: int, reason: str, body: str) -> NetworkError:
        msg = _extract_message(body, reason or "Error")
        return cls(f"Request {operation} failed. {msg}", status, body)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status={self.status}, body={self.body!r})"


class GraphQLError(SparkWalletError):
    """Raised when the server answers with a GraphQL error payload."""

    def __init__(self, operation: str, errors: list[Any] | None) -> None:
        self.errors = list(errors or [])
        messages = [e.get("message", str(e)) if isinstance(e, dict) else str(e) for e in self.errors]
        self.messages = messages
        super().__init__(f"Request {operation} failed. {'; '.join(messages) or 'No data returned'}")


class AwaitError(SparkWalletError):
    """Raised when a status stream ends without reaching a terminal state."""


class AwaitTimeoutError(SparkWalletError, TimeoutError):
    """Raised when no terminal state arrives before the timeout."""

    def __init__(self, label: str, expected: Collection[Any], timeout: float) -> None:
        self.expected = tuple(expected)
        self.timeout = timeout
        names = ", ".join(str(getattr(s, "value", s)) for s in self.expected)
        super().__init__(f"Timed out after {timeout}s waiting for {label} to be one of {names}.")


def _extract_message(body: str, fallback: str) -> str:
    """Try to pull a human-readable message from a JSON error body."""
    try:
        data = json.loads(body)
        return data.get("message") or data.get("error") or fallback
    except (json.JSONDecodeError, TypeError, AttributeError):
        return fallback
