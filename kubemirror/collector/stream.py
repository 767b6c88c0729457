"""Websocket watch transport with bounded reconnect and polling fallback.

State machine
-------------
DISCONNECTED -> CONNECTING -> OPEN -> RETRY_PENDING -> CONNECTING ...
                                   -> POLLING_FALLBACK
DESTROYED is reachable from every state and is final.

Connect
-------
:meth:`StreamTransport.start` fetches the full collection to seed the cache,
then opens the watch.  An unresolvable collection URL is retried every
``resolve_retry_delay`` seconds, indefinitely.  A failed initial fetch is
retried every ``fetch_retry_delay`` seconds, indefinitely, except for 403,
which clears the cache and stops.

Close
-----
A watch that had been open for at least ``min_uptime`` seconds is reopened
after ``retry_delay`` seconds, up to ``max_retries`` consecutive times.  Any
other close abandons streaming for good and hands the cache to a
:class:`~kubemirror.collector.poller.PollTransport` seeded with the last
known snapshot.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import StrEnum
from typing import Any, Protocol

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosedError, WebSocketException

from kubemirror.cache.resource_cache import ResourceCache
from kubemirror.collector.base import Transport
from kubemirror.collector.poller import PollTransport
from kubemirror.collector.rest import RestClient
from kubemirror.errors import AuthorizationError, KubeMirrorError, ProtocolError
from kubemirror.kinds import ResourcePaths
from kubemirror.models.config import TimingConfig
from kubemirror.models.events import ChangeEvent
from kubemirror.models.resources import Snapshot
from kubemirror.observability.logging import get_logger
from kubemirror.observability.metrics import (
    stream_fallbacks_total,
    stream_messages_dropped_total,
    stream_reconnects_total,
)

_OPEN_TIMEOUT_S: float = 10.0


class StreamState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    RETRY_PENDING = "retry_pending"
    POLLING_FALLBACK = "polling_fallback"
    DESTROYED = "destroyed"


class StreamEvent(StrEnum):
    OPEN = "open"
    MESSAGE = "message"
    CLOSE = "close"
    ERROR = "error"


class StreamConnection(Protocol):
    """What the transport needs from an open watch connection."""

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...

    async def close(self) -> None: ...


Connector = Callable[[str, dict[str, str]], Awaitable[StreamConnection]]
PollerFactory = Callable[[Snapshot], PollTransport]


async def open_websocket(url: str, headers: dict[str, str]) -> StreamConnection:
    """Default connector: a ``websockets`` client connection."""
    return await ws_connect(url, additional_headers=headers, open_timeout=_OPEN_TIMEOUT_S)


class StreamTransport(Transport):
    """Owns the watch connection for one collection and feeds its cache.

    Args:
        cache:          Cache to feed.  Not owned.
        paths:          URL source for the collection.
        rest:           REST client for the initial fetch and auth headers.
        poller_factory: Builds the fallback poller from the last snapshot.
        timing:         Retry, backoff and uptime settings.
        connector:      Opens a watch connection; defaults to websockets.
    """

    def __init__(
        self,
        cache: ResourceCache,
        paths: ResourcePaths,
        rest: RestClient,
        poller_factory: PollerFactory,
        timing: TimingConfig | None = None,
        connector: Connector | None = None,
    ) -> None:
        super().__init__()
        self._cache = cache
        self._paths = paths
        self._rest = rest
        self._poller_factory = poller_factory
        self._timing = timing or TimingConfig()
        self._connector: Connector = connector or open_websocket

        self._state = StreamState.DISCONNECTED
        self._connection: StreamConnection | None = None
        self._poller: PollTransport | None = None
        self._retries = 0
        self._connect_time: float | None = None
        self._resolve_pending = False

        self._handlers: dict[StreamEvent, Callable[[Any], None]] = {
            StreamEvent.OPEN: self._on_open,
            StreamEvent.MESSAGE: self._on_message,
            StreamEvent.CLOSE: self._on_close,
            StreamEvent.ERROR: self._on_error,
        }

        self._log = get_logger("collector.stream").bind(key=cache.key)
        self._message_log = get_logger("collector.stream.messages").bind(key=cache.key)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def retries(self) -> int:
        return self._retries

    @property
    def poller(self) -> PollTransport | None:
        return self._poller

    @property
    def connected(self) -> bool:
        if self._state == StreamState.OPEN:
            return True
        return self._poller is not None and self._poller.connected

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self.connect()

    def connect(self) -> None:
        """Seed the cache and open the watch.  No-op unless DISCONNECTED."""
        if self._state != StreamState.DISCONNECTED or self._resolve_pending:
            return
        url = self._paths.rest_url
        if url is None:
            self._log.debug("stream_url_unresolved", retry_in=self._timing.resolve_retry_delay)
            self._resolve_pending = True
            self.call_later(self._timing.resolve_retry_delay, self._retry_resolve)
            return
        self._state = StreamState.CONNECTING
        self.spawn(self._initial_fetch(url))

    def destroy(self) -> None:
        if self._state == StreamState.DESTROYED:
            return
        self._state = StreamState.DESTROYED
        self._log.debug("stream_destroyed")
        self.cancel_pending()
        if self._connection is not None:
            self._force_close()
        if self._poller is not None:
            self._poller.destroy()

    def _retry_resolve(self) -> None:
        self._resolve_pending = False
        self.connect()

    # ------------------------------------------------------------------
    # Initial fetch
    # ------------------------------------------------------------------

    async def _initial_fetch(self, url: str) -> None:
        try:
            items = await self._rest.list_items(url)
        except AuthorizationError:
            if self._state == StreamState.DESTROYED:
                return
            self._log.info("stream_initial_fetch_not_authorized", url=url)
            self._state = StreamState.DISCONNECTED
            self._cache.replace([])
            return
        except KubeMirrorError as exc:
            if self._state == StreamState.DESTROYED:
                return
            self._log.info("stream_initial_fetch_failed", url=url, error=str(exc))
            self.call_later(self._timing.fetch_retry_delay, lambda: self._refetch(url))
            return

        if self._state == StreamState.DESTROYED:
            return
        self._cache.replace(items)
        # INIT listeners may have released the last reference.
        if self._state != StreamState.DESTROYED:
            self.spawn(self._run_connection())

    def _refetch(self, url: str) -> None:
        if self._state != StreamState.DESTROYED:
            self.spawn(self._initial_fetch(url))

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def _run_connection(self) -> None:
        url = self._paths.watch_url
        if url is None:
            self._log.info("stream_no_watch_url")
            self._state = StreamState.DISCONNECTED
            return

        self._log.debug("stream_connecting", retry=self._retries)
        try:
            connection = await self._connector(url, self._rest.auth_headers())
        except (OSError, WebSocketException) as exc:
            self._dispatch(StreamEvent.ERROR, exc)
            self._dispatch(StreamEvent.CLOSE, False)
            return

        self._connection = connection
        self._dispatch(StreamEvent.OPEN, None)

        clean = True
        try:
            async for message in connection:
                self._dispatch(StreamEvent.MESSAGE, message)
        except ConnectionClosedError as exc:
            clean = False
            self._dispatch(StreamEvent.ERROR, exc)
        except (OSError, WebSocketException) as exc:
            clean = False
            self._dispatch(StreamEvent.ERROR, exc)

        if self._connection is connection:
            self._connection = None
        self._dispatch(StreamEvent.CLOSE, clean)

    def _dispatch(self, event: StreamEvent, payload: Any) -> None:
        self._message_log.debug("stream_event", stream_event=event.value)
        self._handlers[event](payload)

    def _force_close(self) -> None:
        """Close the connection without waiting; its pump will see the close."""
        connection = self._connection
        self._connection = None
        if connection is None:
            return
        self._log.debug("stream_closing")
        closing = connection.close()
        try:
            self.spawn(closing)
        except RuntimeError:
            # No running loop: nothing left to close on.
            closing.close()

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _on_open(self, _payload: Any) -> None:
        if self._state == StreamState.DESTROYED:
            self._force_close()
            return
        self._state = StreamState.OPEN
        self._retries = 0
        self._connect_time = asyncio.get_running_loop().time()
        self._log.debug("stream_open")

    def _on_message(self, raw: str | bytes) -> None:
        if self._state == StreamState.DESTROYED:
            self._log.debug("stream_message_after_destroy")
            self._force_close()
            return
        try:
            event = _decode(raw)
        except ProtocolError as exc:
            stream_messages_dropped_total.labels(kind=self._cache.kind).inc()
            self._log.warning("stream_message_dropped", error=str(exc))
            return
        self._cache.apply(event.action, event.object)

    def _on_close(self, clean: bool) -> None:
        if self._state == StreamState.DESTROYED:
            self._log.debug("stream_released")
            return

        uptime = None
        if self._connect_time is not None:
            uptime = asyncio.get_running_loop().time() - self._connect_time

        if (
            self._retries < self._timing.stream_max_retries
            and uptime is not None
            and uptime >= self._timing.stream_min_uptime
        ):
            self._state = StreamState.RETRY_PENDING
            stream_reconnects_total.labels(kind=self._cache.kind).inc()
            self._log.info(
                "stream_closed_retrying",
                clean=clean,
                retry=self._retries + 1,
                retry_in=self._timing.stream_retry_delay,
            )
            self.call_later(self._timing.stream_retry_delay, self._reconnect)
            return

        self._fall_back(clean)

    def _on_error(self, exc: Any) -> None:
        if self._state == StreamState.DESTROYED:
            return
        self._log.warning("stream_error", error=str(exc))

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def _reconnect(self) -> None:
        if self._state != StreamState.RETRY_PENDING:
            return
        self._retries += 1
        self._state = StreamState.CONNECTING
        self.spawn(self._run_connection())

    def _fall_back(self, clean: bool) -> None:
        self._state = StreamState.POLLING_FALLBACK
        stream_fallbacks_total.labels(kind=self._cache.kind).inc()
        self._log.info("stream_fallback_to_polling", clean=clean, retries=self._retries)
        self._poller = self._poller_factory(list(self._cache.objects))
        self._poller.start()


def _decode(raw: str | bytes) -> ChangeEvent:
    """Decode one ``{"type": ..., "object": ...}`` watch message."""
    try:
        data = json.loads(raw)
        return ChangeEvent.from_envelope(data)
    except (ValueError, TypeError) as exc:
        raise ProtocolError(f"malformed watch event: {exc}") from exc
