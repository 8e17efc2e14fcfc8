"""Shared test helpers for the sparkwallet test suite."""

from __future__ import annotations

import asyncio
import base64
import json
import os
from collections.abc import Callable
from typing import Any

import httpx
import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives import padding as sym_padding
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from sparkwallet import AccountTokenAuthProvider, NodeKeyCache, Requester, WalletClient
from sparkwallet.auth import AuthProvider
from sparkwallet.crypto import DefaultCrypto

BASE_URL = "api.lightspark.com"
ENDPOINT = "graphql/wallet/2023-05-05"


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def pem_key(rsa_key) -> str:
    return rsa_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()


@pytest.fixture(scope="session")
def der_key(rsa_key) -> bytes:
    return rsa_key.private_bytes(
        serialization.Encoding.DER,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


def verify_signature(private_key: rsa.RSAPrivateKey, signature: bytes, data: bytes) -> None:
    """Raises ``InvalidSignature`` unless *signature* is RSA-PSS/SHA-256 over *data*."""
    private_key.public_key().verify(
        signature,
        data,
        padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=32),
        hashes.SHA256(),
    )


def _derive(password: str, salt: bytes, iterations: int, key_len: int) -> bytes:
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=key_len * 2, salt=salt, iterations=iterations)
    return kdf.derive(password.encode())


def encrypt_legacy(plaintext: bytes, password: str) -> str:
    """OpenSSL-style ``Salted__`` AES-256-CBC blob, 5000 PBKDF2 rounds."""
    salt = os.urandom(8)
    derived = _derive(password, salt, 5000, 32)
    padder = sym_padding.PKCS7(128).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(algorithms.AES(derived[:32]), modes.CBC(derived[32:48])).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return base64.b64encode(b"Salted__" + salt + ciphertext).decode()


def encrypt_gcm(plaintext: bytes, password: str, version: int, iterations: int = 1000) -> tuple[str, str]:
    """Returns ``(cipher, encrypted_value)`` for a JSON-header AES-GCM secret."""
    cipher = json.dumps({"v": version, "i": iterations})
    if version == 3:
        salt, nonce = os.urandom(8), os.urandom(12)
        key = _derive(password, salt, iterations, 32)[:32]
        blob = nonce + AESGCM(key).encrypt(nonce, plaintext, None) + salt
        return cipher, base64.b64encode(blob).decode()
    key_len = 32 if version < 4 else 16
    salt = os.urandom(8 if version < 4 else 16)
    derived = _derive(password, salt, iterations, key_len)
    key, nonce = derived[:key_len], derived[key_len:key_len + 12]
    blob = salt + AESGCM(key).encrypt(nonce, plaintext, None)
    return cipher, base64.b64encode(blob).decode()


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

class CapturedRequest:
    """Stores details about the HTTP request that was made."""

    def __init__(self) -> None:
        self.method: str = ""
        self.url: httpx.URL = httpx.URL("")
        self.headers: httpx.Headers = httpx.Headers()
        self.content: bytes = b""

    @property
    def json_body(self) -> Any:
        if self.content:
            return json.loads(self.content)
        return None

    @property
    def operation(self) -> str:
        return self.json_body["operationName"]


def _capture(request: httpx.Request) -> CapturedRequest:
    captured = CapturedRequest()
    captured.method = request.method
    captured.url = request.url
    captured.headers = request.headers
    captured.content = request.content
    return captured


def create_requester(
    status: int = 200,
    json_body: Any = None,
    *,
    raw_body: bytes | None = None,
    auth_provider: AuthProvider | None = None,
    key_cache: NodeKeyCache | None = None,
    base_url: str = BASE_URL,
    ws_connect: Callable[..., Any] | None = None,
) -> tuple[Requester, list[CapturedRequest]]:
    """Create a Requester backed by a mock transport that always answers the same."""
    captured: list[CapturedRequest] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(_capture(request))
        body = raw_body if raw_body is not None else json.dumps(json_body).encode()
        return httpx.Response(status, content=body, headers={"content-type": "application/json"})

    requester = Requester(
        key_cache or NodeKeyCache(DefaultCrypto(key_size=2048)),
        ENDPOINT,
        "sparkwallet-python/test",
        base_url,
        auth_provider if auth_provider is not None else AccountTokenAuthProvider("client_id", "client_secret"),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        ws_connect=ws_connect,
    )
    return requester, captured


def create_client(
    responses: dict[str, Any],
    *,
    auth_provider: AuthProvider | None = None,
    ws_connect: Callable[..., Any] | None = None,
) -> tuple[WalletClient, list[CapturedRequest]]:
    """Create a WalletClient whose mock transport answers by operation name.

    ``responses`` maps an operationName to the ``data`` object returned for it.
    """
    captured: list[CapturedRequest] = []

    def handler(request: httpx.Request) -> httpx.Response:
        req = _capture(request)
        captured.append(req)
        if req.operation not in responses:
            return httpx.Response(400, json={"message": f"unexpected {req.operation}"})
        return httpx.Response(200, json={"data": responses[req.operation]})

    client = WalletClient(
        auth_provider if auth_provider is not None else AccountTokenAuthProvider("client_id", "client_secret"),
        crypto=DefaultCrypto(key_size=2048),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        ws_connect=ws_connect,
    )
    return client, captured


# ---------------------------------------------------------------------------
# WebSocket
# ---------------------------------------------------------------------------

class FakeWebSocket:
    """Minimal stand-in for a ``websockets`` client connection.

    Acknowledges ``connection_init`` automatically unless *ack_type* is None,
    and hands every ``subscribe`` frame to *responder*, pushing back whatever
    frames it returns.
    """

    _CLOSED = object()

    def __init__(self, responder: Callable[[dict[str, Any]], list[Any]], ack_type: str | None) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self._responder = responder
        self._ack_type = ack_type
        self._incoming: asyncio.Queue[Any] = asyncio.Queue()

    def push(self, frame: Any) -> None:
        self._incoming.put_nowait(json.dumps(frame))

    def drop(self) -> None:
        """Simulate the server going away."""
        self._incoming.put_nowait(self._CLOSED)

    def frames(self, kind: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m.get("type") == kind]

    async def send(self, message: str) -> None:
        frame = json.loads(message)
        self.sent.append(frame)
        if frame["type"] == "connection_init":
            if self._ack_type is not None:
                self.push({"type": self._ack_type})
        elif frame["type"] == "subscribe":
            for reply in self._responder(frame):
                self.push(reply)

    async def recv(self) -> str:
        return await self._incoming.get()

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            item = await self._incoming.get()
            if item is self._CLOSED:
                return
            yield item

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.drop()


class FakeConnector:
    """Replacement for ``websockets.asyncio.client.connect`` that records each call."""

    def __init__(
        self,
        responder: Callable[[dict[str, Any]], list[Any]] | None = None,
        *,
        ack_type: str | None = "connection_ack",
    ) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.sockets: list[FakeWebSocket] = []
        self._responder = responder or (lambda frame: [])
        self._ack_type = ack_type

    async def __call__(self, url: str, **kwargs: Any) -> FakeWebSocket:
        self.calls.append((url, kwargs))
        ws = FakeWebSocket(self._responder, self._ack_type)
        self.sockets.append(ws)
        return ws

    @property
    def ws(self) -> FakeWebSocket:
        return self.sockets[-1]


def next_frames(sub_id: str, *payloads: dict[str, Any], complete: bool = False) -> list[dict[str, Any]]:
    frames = [{"id": sub_id, "type": "next", "payload": {"data": p}} for p in payloads]
    if complete:
        frames.append({"id": sub_id, "type": "complete"})
    return frames


async def wait_until(predicate: Callable[[], bool], attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")
