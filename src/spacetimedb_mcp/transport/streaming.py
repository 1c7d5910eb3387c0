"""Streaming transport: the long-lived WebSocket channel to a module.

The channel speaks the server's JSON client protocol (``v1.json.spacetimedb``):

- server -> ``IdentityToken``: identity and session token, sent once after the
  upgrade
- client -> ``SubscribeSingle`` / ``Unsubscribe``: register or drop one query
- server -> ``SubscribeApplied`` / ``UnsubscribeApplied`` / ``SubscriptionError``
- server -> ``TransactionUpdate``: row changes for applied subscriptions

Handshake results and subscription outcomes arrive asynchronously, so the
channel runs a reader task and resolves waiters as messages come in. Row-level
push updates are only counted here; nothing outside the channel consumes them.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from spacetimedb_mcp.core.config import BridgeConfig
from spacetimedb_mcp.data.decoder import decode
from spacetimedb_mcp.exceptions import ConnectionError, SubscriptionError
from spacetimedb_mcp.schema.algebraic import AlgebraicType, TypeKind, option_value

logger = logging.getLogger(__name__)

PROTOCOL = "v1.json.spacetimedb"

_IDENTITY = AlgebraicType(TypeKind.IDENTITY)

DisconnectCallback = Callable[[str], None]
IdentityCallback = Callable[[str | None, str | None], None]
Connector = Callable[..., Awaitable[Any]]


@dataclass
class Subscription:
    """A standing query registered on the streaming channel."""

    table: str
    query: str
    query_id: int
    filter: dict[str, Any] | None = None
    active: bool = False
    error: str | None = None
    updates: int = 0
    _applied: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def applied(self) -> bool:
        return self._applied.is_set() and self.error is None

    async def wait_applied(self, timeout: float | None = None) -> bool:
        """Wait until the server applies (or rejects) the subscription.

        Returns:
            True if applied, False if the timeout passed first

        Raises:
            SubscriptionError: If the server rejected the query or the channel closed
        """
        try:
            await asyncio.wait_for(self._applied.wait(), timeout)
        except TimeoutError:
            return False
        if self.error is not None:
            raise SubscriptionError(
                f"Subscription to '{self.table}' failed", query=self.query, reason=self.error
            )
        return True

    def _resolve(self, error: str | None = None) -> None:
        self.error = error
        self.active = error is None
        self._applied.set()

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "query": self.query,
            "filter": self.filter,
            "active": self.active,
            "updates": self.updates,
        }


class StreamingChannel:
    """An open WebSocket channel with its handshake state and subscriptions."""

    def __init__(
        self,
        websocket: Any,
        on_disconnect: DisconnectCallback | None = None,
        on_identity: IdentityCallback | None = None,
    ) -> None:
        self._ws = websocket
        self._on_disconnect = on_disconnect
        self._on_identity = on_identity
        self._reader: asyncio.Task[None] | None = None
        self._identity_event = asyncio.Event()
        self._closing = False
        self._closed = False
        self._ids = itertools.count(1)
        self._pending: dict[int, Subscription] = {}
        self._unsubscribing: dict[int, asyncio.Event] = {}
        self._subscriptions: dict[int, Subscription] = {}
        self.identity: str | None = None
        self.token: str | None = None
        self.connection_id: str | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Start the reader task."""
        if self._reader is None:
            self._reader = asyncio.create_task(self._read_loop())

    async def wait_identity(self, timeout: float | None = None) -> bool:
        """Wait for the ``IdentityToken`` handshake message."""
        try:
            await asyncio.wait_for(self._identity_event.wait(), timeout)
        except TimeoutError:
            return False
        return self.identity is not None

    async def _send(self, message: dict[str, Any]) -> None:
        if self._closed:
            raise SubscriptionError("Streaming channel is closed")
        try:
            await self._ws.send(json.dumps(message))
        except (ConnectionClosed, WebSocketException, OSError) as e:
            raise SubscriptionError("Failed to send on streaming channel", reason=str(e)) from e

    async def subscribe(
        self, query: str, table: str, filter: dict[str, Any] | None = None
    ) -> Subscription:
        """Register a query. The returned subscription is applied asynchronously."""
        request_id = next(self._ids)
        subscription = Subscription(table=table, query=query, query_id=request_id, filter=filter)
        self._pending[request_id] = subscription
        try:
            await self._send(
                {
                    "SubscribeSingle": {
                        "query": query,
                        "request_id": request_id,
                        "query_id": {"id": request_id},
                    }
                }
            )
        except SubscriptionError as e:
            self._pending.pop(request_id, None)
            raise SubscriptionError(
                f"Subscription to '{table}' failed", query=query, reason=e.reason
            ) from e
        self._subscriptions[request_id] = subscription
        logger.debug(f"Sent subscription {request_id}: {query}")
        return subscription

    async def unsubscribe(self, subscription: Subscription, timeout: float | None = None) -> None:
        """Drop a subscription; waits up to ``timeout`` for the server to confirm."""
        self._subscriptions.pop(subscription.query_id, None)
        self._pending.pop(subscription.query_id, None)
        subscription.active = False
        if self._closed:
            return
        request_id = next(self._ids)
        done = asyncio.Event()
        self._unsubscribing[request_id] = done
        try:
            await self._send(
                {
                    "Unsubscribe": {
                        "request_id": request_id,
                        "query_id": {"id": subscription.query_id},
                    }
                }
            )
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(done.wait(), timeout)
        finally:
            self._unsubscribing.pop(request_id, None)

    async def close(self) -> None:
        """Close the channel. Safe to call more than once."""
        self._closing = True
        if not self._closed:
            try:
                await self._ws.close()
            except (WebSocketException, OSError) as e:
                logger.debug(f"Ignoring error while closing streaming channel: {e}")
        if self._reader is not None and not self._reader.done():
            self._reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader
        self._mark_closed("closed by client")

    async def _read_loop(self) -> None:
        reason = "server closed the connection"
        try:
            async for message in self._ws:
                self.handle_message(message)
        except ConnectionClosed as e:
            reason = f"connection lost: {e}"
        except (WebSocketException, OSError) as e:
            reason = f"streaming error: {e}"
        finally:
            if not self._closing:
                logger.warning(f"Streaming channel dropped ({reason})")
                self._mark_closed(reason)
                if self._on_disconnect is not None:
                    self._on_disconnect(reason)

    def _mark_closed(self, reason: str) -> None:
        if self._closed:
            return
        self._closed = True
        self._identity_event.set()
        for subscription in [*self._pending.values(), *self._subscriptions.values()]:
            if not subscription._applied.is_set():
                subscription._resolve(error=f"channel {reason}")
            subscription.active = False
        self._pending.clear()
        self._subscriptions.clear()
        for event in self._unsubscribing.values():
            event.set()

    def handle_message(self, raw: str | bytes) -> None:
        """Dispatch one server message."""
        if isinstance(raw, bytes):
            logger.debug("Ignoring binary message on JSON channel")
            return
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring malformed message on streaming channel: {raw[:200]!r}")
            return
        if not isinstance(message, dict) or len(message) != 1:
            logger.debug(f"Ignoring unexpected message: {raw[:200]!r}")
            return
        ((tag, body),) = message.items()
        body = body if isinstance(body, dict) else {}

        if tag == "IdentityToken":
            self.identity = decode(body.get("identity"), _IDENTITY)
            self.token = body.get("token")
            self.connection_id = decode(body.get("connection_id"), _IDENTITY)
            self._identity_event.set()
            logger.info(f"Streaming handshake complete, identity {self.identity}")
            if self._on_identity is not None:
                self._on_identity(self.identity, self.token)
        elif tag in ("SubscribeApplied", "InitialSubscription", "SubscribeMultiApplied"):
            self._resolve_pending(option_value(body.get("request_id")), None)
        elif tag == "SubscriptionError":
            request_id = option_value(body.get("request_id"))
            error = str(body.get("error") or "unknown subscription error")
            if request_id is None:
                # Errors without a request id invalidate every subscription
                for subscription in list(self._subscriptions.values()):
                    subscription._resolve(error=error)
                logger.error(f"Subscriptions dropped by server: {error}")
            else:
                self._resolve_pending(request_id, error)
        elif tag == "UnsubscribeApplied":
            event = self._unsubscribing.get(option_value(body.get("request_id")))
            if event is not None:
                event.set()
        elif tag in ("TransactionUpdate", "TransactionUpdateLight"):
            for subscription in self._subscriptions.values():
                if subscription.active:
                    subscription.updates += 1
        else:
            logger.debug(f"Ignoring server message {tag}")

    def _resolve_pending(self, request_id: Any, error: str | None) -> None:
        subscription = self._pending.pop(request_id, None) if isinstance(request_id, int) else None
        if subscription is None:
            logger.debug(f"No pending subscription for request {request_id}")
            return
        subscription._resolve(error)
        if error is None:
            logger.info(f"Subscription applied: {subscription.query}")
        else:
            self._subscriptions.pop(request_id, None)
            logger.warning(f"Subscription rejected: {subscription.query}: {error}")


class StreamingTransport:
    """Opens streaming channels to a module's subscribe endpoint."""

    def __init__(self, config: BridgeConfig | None = None, connector: Connector | None = None):
        """Initialize the transport.

        Args:
            config: Handshake timeout settings
            connector: Coroutine function opening a websocket; defaults to
                ``websockets.asyncio.client.connect``
        """
        self._config = config or BridgeConfig()
        self._connect = connector or ws_connect

    async def open(
        self,
        stream_uri: str,
        module_name: str,
        token: str | None = None,
        on_disconnect: DisconnectCallback | None = None,
        on_identity: IdentityCallback | None = None,
    ) -> StreamingChannel:
        """Open a channel and wait briefly for the identity handshake.

        If the handshake message has not arrived within ``identity_timeout``,
        the channel is still returned; the identity is filled in (and
        ``on_identity`` called) when it arrives.

        Raises:
            ConnectionError: If the WebSocket upgrade fails
        """
        url = f"{stream_uri.rstrip('/')}/v1/database/{module_name}/subscribe"
        headers = {"Authorization": f"Bearer {token}"} if token else None
        try:
            websocket = await self._connect(
                url,
                additional_headers=headers,
                subprotocols=[PROTOCOL],
                max_size=None,
            )
        except (WebSocketException, OSError, TimeoutError) as e:
            raise ConnectionError(
                f"Failed to open streaming channel to {url}: {e}", {"endpoint": url}
            ) from e

        channel = StreamingChannel(websocket, on_disconnect=on_disconnect, on_identity=on_identity)
        channel.start()
        if not await channel.wait_identity(self._config.identity_timeout):
            if channel.closed:
                raise ConnectionError(
                    f"Streaming channel to {url} closed during handshake", {"endpoint": url}
                )
            logger.warning(
                f"No identity from {url} after {self._config.identity_timeout}s; continuing"
            )
        return channel
