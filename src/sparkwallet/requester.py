from __future__ import annotations

import asyncio
import base64
import contextlib
import itertools
import json
import logging
import re
import secrets
from collections.abc import AsyncGenerator, Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Generic, TypeVar

import httpx
from websockets.asyncio.client import connect as _ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from .auth import AuthProvider, StubAuthProvider
from .errors import AuthRequiredError, GraphQLError, InvalidQueryError, NetworkError
from .keys import NodeKeyCache

logger = logging.getLogger(__name__)

T = TypeVar("T")

_OPERATION = re.compile(r"^\s*(query|mutation|subscription)\s+(\w+)", re.IGNORECASE)
_SDK_HEADER = "X-Lightspark-SDK"
_SIGNING_HEADER = "X-Lightspark-Signing"
_SIGNATURE_TTL = timedelta(hours=1)
_WS_SUBPROTOCOL = "graphql-transport-ws"


@dataclass(frozen=True)
class Query(Generic[T]):
    """A GraphQL document plus what is needed to execute and map it."""

    query_payload: str
    construct_object: Callable[[dict[str, Any]], T | None]
    variables: dict[str, Any] | None = None
    signing_node_id: str | None = None
    """When set, the request is signed with this node's cached key."""
    requires_auth: bool = True


def _operation(document: str) -> tuple[str, str]:
    match = _OPERATION.match(document)
    if not match:
        raise InvalidQueryError("Invalid query payload: missing operation type or name")
    return match.group(1).lower(), match.group(2)


def _with_protocol(base_url: str) -> str:
    base_url = base_url.rstrip("/")
    if base_url.startswith(("http://", "https://")):
        return base_url
    return f"https://{base_url}"


def _ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url[len("https://"):]
    return "ws://" + http_url[len("http://"):]


# ---------------------------------------------------------------------------
# Subscription transport
# ---------------------------------------------------------------------------

class _SubscriptionSocket:
    """One ``graphql-transport-ws`` connection shared by all subscriptions.

    Opened lazily on the first subscription. If the socket drops, every active
    subscription fails with :class:`NetworkError` and the next subscription
    opens a fresh connection.
    """

    def __init__(
        self,
        url: str,
        connection_params: Callable[[], Awaitable[dict[str, Any]]],
        connect: Callable[..., Awaitable[Any]],
        user_agent: str,
        ack_timeout: float,
    ) -> None:
        self._url = url
        self._connection_params = connection_params
        self._connect = connect
        self._user_agent = user_agent
        self._ack_timeout = ack_timeout
        self._ws: Any = None
        self._reader: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()
        self._queues: dict[str, asyncio.Queue[tuple[str, Any]]] = {}
        self._ids = itertools.count(1)

    @property
    def connected(self) -> bool:
        return self._ws is not None

    @property
    def active_subscriptions(self) -> int:
        return len(self._queues)

    async def _ensure_connected(self) -> Any:
        async with self._lock:
            if self._ws is not None:
                return self._ws
            params = await self._connection_params()
            try:
                ws = await self._connect(self._url, subprotocols=[_WS_SUBPROTOCOL], user_agent_header=self._user_agent)
            except (OSError, WebSocketException) as exc:
                raise NetworkError(f"Could not open subscription connection: {exc}") from exc
            try:
                await ws.send(json.dumps({"type": "connection_init", "payload": params}))
                ack = json.loads(await asyncio.wait_for(ws.recv(), self._ack_timeout))
                if not isinstance(ack, dict) or ack.get("type") != "connection_ack":
                    raise NetworkError(f"Subscription connection rejected: {ack}")
            except (OSError, WebSocketException, TimeoutError, json.JSONDecodeError) as exc:
                await ws.close()
                raise NetworkError(f"Subscription handshake failed: {exc}") from exc
            except BaseException:
                # Includes cancellation: the socket is not reachable from close() yet.
                await ws.close()
                raise
            logger.debug("Subscription connection open to %s", self._url)
            self._ws = ws
            self._reader = asyncio.create_task(self._read_loop(ws))
            return ws

    async def _read_loop(self, ws: Any) -> None:
        error = NetworkError("Subscription connection closed")
        try:
            async for raw in ws:
                message = json.loads(raw)
                if not isinstance(message, dict):
                    error = NetworkError(f"Malformed subscription frame: {raw!r}")
                    await ws.close()
                    break
                await self._dispatch(ws, message)
        except ConnectionClosed as exc:
            error = NetworkError(f"Subscription connection closed: {exc}")
        except json.JSONDecodeError as exc:
            error = NetworkError(f"Malformed subscription frame: {exc}")
            await ws.close()
        finally:
            if self._ws is ws:
                self._ws = None
            if self._queues:
                logger.warning("Subscription connection lost with %d active subscriptions", len(self._queues))
            for queue in self._queues.values():
                queue.put_nowait(("closed", str(error)))
            self._queues.clear()

    async def _dispatch(self, ws: Any, message: dict[str, Any]) -> None:
        kind = message.get("type")
        if kind == "ping":
            await ws.send(json.dumps({"type": "pong"}))
            return
        sub_id = message.get("id")
        queue = self._queues.get(sub_id) if isinstance(sub_id, str) else None
        if queue is None:
            logger.debug("Dropping %s frame for unknown subscription %s", kind, message.get("id"))
            return
        if kind in ("next", "error", "complete"):
            queue.put_nowait((kind, message.get("payload")))

    async def stream(self, document: str, variables: dict[str, Any] | None, operation: str) -> AsyncGenerator[dict[str, Any], None]:
        ws = await self._ensure_connected()
        sub_id = str(next(self._ids))
        queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()
        self._queues[sub_id] = queue
        finished = False
        try:
            try:
                await ws.send(json.dumps({
                    "id": sub_id,
                    "type": "subscribe",
                    "payload": {"query": document, "variables": variables or {}, "operationName": operation},
                }))
            except ConnectionClosed as exc:
                finished = True
                raise NetworkError(f"Subscription connection closed: {exc}") from exc
            logger.debug("Subscribed %s as %s", operation, sub_id)
            while True:
                kind, payload = await queue.get()
                if kind == "next":
                    payload = payload or {}
                    if not isinstance(payload, dict):
                        finished = True
                        raise NetworkError(f"Malformed {operation} payload: {payload!r}")
                    if payload.get("errors") and payload.get("data") is None:
                        finished = True
                        raise GraphQLError(operation, payload["errors"])
                    yield payload
                elif kind == "error":
                    finished = True
                    raise GraphQLError(operation, payload if isinstance(payload, list) else [payload])
                elif kind == "complete":
                    finished = True
                    return
                else:
                    finished = True
                    raise NetworkError(payload)
        finally:
            self._queues.pop(sub_id, None)
            if not finished and self._ws is ws:
                with contextlib.suppress(ConnectionClosed):
                    await ws.send(json.dumps({"id": sub_id, "type": "complete"}))
                logger.debug("Unsubscribed %s", sub_id)

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        if self._reader is not None:
            self._reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader
            self._reader = None
        if ws is not None:
            await ws.close()


# ---------------------------------------------------------------------------
# Requester
# ---------------------------------------------------------------------------

class Requester:
    """Executes GraphQL operations with auth headers and request signing.

    Queries and mutations go over HTTPS; subscriptions share one WebSocket.
    Nothing is retried here: fund-moving mutations are not idempotent.
    """

    def __init__(
        self,
        node_key_cache: NodeKeyCache,
        schema_endpoint: str,
        sdk_user_agent: str,
        base_url: str,
        auth_provider: AuthProvider | None = None,
        *,
        timeout: float | httpx.Timeout = 30.0,
        http_client: httpx.AsyncClient | None = None,
        ws_connect: Callable[..., Awaitable[Any]] | None = None,
    ) -> None:
        self._node_key_cache = node_key_cache
        self._sdk_user_agent = sdk_user_agent
        self._auth_provider = auth_provider or StubAuthProvider()
        self._url = f"{_with_protocol(base_url)}/{schema_endpoint.strip('/')}"
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        ack_timeout = timeout if isinstance(timeout, (int, float)) else 30.0
        self._socket = _SubscriptionSocket(
            _ws_url(self._url),
            self._ws_connection_params,
            ws_connect or _ws_connect,
            sdk_user_agent,
            ack_timeout,
        )

    @property
    def auth_provider(self) -> AuthProvider:
        return self._auth_provider

    @auth_provider.setter
    def auth_provider(self, provider: AuthProvider) -> None:
        self._auth_provider = provider

    async def _ws_connection_params(self) -> dict[str, Any]:
        return await self._auth_provider.add_ws_connection_params({})

    async def execute_query(self, query: Query[T]) -> T | None:
        """Run *query* and map its ``data`` with ``query.construct_object``."""
        data = await self.make_raw_request(
            query.query_payload,
            query.variables,
            signing_node_id=query.signing_node_id,
            requires_auth=query.requires_auth,
        )
        return query.construct_object(data)

    async def make_raw_request(
        self,
        document: str,
        variables: dict[str, Any] | None = None,
        *,
        signing_node_id: str | None = None,
        requires_auth: bool = True,
    ) -> dict[str, Any]:
        """POST *document* and return the response's ``data`` object."""
        headers = await self._auth_provider.add_auth_headers({
            "Content-Type": "application/json",
            "Accept": "application/json",
            _SDK_HEADER: self._sdk_user_agent,
            "User-Agent": self._sdk_user_agent,
        })
        if requires_auth and not await self._auth_provider.is_authorized():
            raise AuthRequiredError("You must be logged in to perform this action.")
        if signing_node_id is not None and not self._node_key_cache.has_key(signing_node_id):
            raise AuthRequiredError("You must unlock the wallet before performing this action.")

        kind, operation = _operation(document)
        if kind == "subscription":
            raise InvalidQueryError("Subscription queries should call subscribe instead")

        body: dict[str, Any] = {"query": document, "variables": variables or {}, "operationName": operation}
        if signing_node_id is not None:
            body["nonce"] = secrets.randbits(32)
            body["expires_at"] = (datetime.now(timezone.utc) + _SIGNATURE_TTL).strftime("%Y-%m-%dT%H:%M:%SZ")
        content = json.dumps(body, separators=(",", ":")).encode()
        if signing_node_id is not None:
            signature = self._node_key_cache.sign(signing_node_id, content)
            headers[_SIGNING_HEADER] = json.dumps({"v": "1", "signature": base64.b64encode(signature).decode()})

        logger.debug("Executing %s (signed=%s)", operation, signing_node_id is not None)
        try:
            resp = await self._http.post(self._url, content=content, headers=headers)
        except httpx.HTTPError as exc:
            raise NetworkError(f"Request {operation} failed. {exc}") from exc
        if not resp.is_success:
            raise NetworkError.from_response(operation, resp.status_code, resp.reason_phrase, resp.text)
        try:
            payload = resp.json()
        except ValueError as exc:
            raise NetworkError(f"Request {operation} returned invalid JSON", resp.status_code, resp.text) from exc

        data = payload.get("data") if isinstance(payload, dict) else None
        errors = payload.get("errors") if isinstance(payload, dict) else None
        if errors or data is None:
            raise GraphQLError(operation, errors)
        return data

    def subscribe(self, document: str, variables: dict[str, Any] | None = None) -> AsyncGenerator[dict[str, Any], None]:
        """Stream raw payloads for a ``subscription`` document.

        The connection opens on first iteration. Stop early with ``aclose()``;
        that unsubscribes on the server.
        """
        kind, operation = _operation(document)
        if kind != "subscription":
            raise InvalidQueryError(f"{operation} is a {kind}; use execute_query instead")
        return self._socket.stream(document, variables, operation)

    async def close(self) -> None:
        await self._socket.close()
        await self._http.aclose()
