"""Collection client: one cache plus its active transport.

Reads (``get``/``watch``) are served from the cache.  Writes go straight to
the API server and never touch the cache; the transport brings the result
back.  ``delete`` is the exception: it removes the object optimistically and
restores it if the server refuses.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Callable
from typing import Any

from kubemirror.cache.resource_cache import ResourceCache
from kubemirror.client.options import CollectionOptions, ResultCallback, SnapshotCallback
from kubemirror.collector.base import Transport
from kubemirror.collector.poller import PollTransport
from kubemirror.collector.rest import RestClient
from kubemirror.collector.stream import Connector, StreamTransport
from kubemirror.errors import ApiError
from kubemirror.kinds import ResourcePaths, is_namespaced, is_polling_only, to_collection_name
from kubemirror.models.config import MirrorConfig
from kubemirror.models.events import WatchAction
from kubemirror.models.resources import (
    ResourceObject,
    Snapshot,
    filter_by_labels,
    get_name,
    get_namespace,
    get_resource_version,
)
from kubemirror.observability.logging import get_logger

_log = get_logger("client.collection")

WatchHandle = Callable[[Snapshot], None]


def _drop_empty_cluster_ip(obj: ResourceObject) -> None:
    spec = obj.get("spec")
    if isinstance(spec, dict) and spec.get("clusterIP") == "":
        del spec["clusterIP"]


# Per-collection payload fixes applied before create/update.
_SANITIZERS: dict[str, Callable[[ResourceObject], None]] = {
    "services": _drop_empty_cluster_ip,
}


def _guarded(callback: Callable[..., Any], *args: Any) -> None:
    """Invoke a caller-supplied callback, logging anything it raises."""
    try:
        callback(*args)
    except Exception as exc:
        _log.error("callback_failed", error=str(exc), exc_info=True)


class CollectionClient:
    """Shared view of one ``(kind, namespace)`` collection.

    Args:
        options:   Which collection, plus URL/token overrides.
        config:    Global configuration (API server, timing).
        rest:      REST client; built from *config* when omitted.
        connector: Watch connector for the stream transport (tests).

    Raises:
        ConfigurationError: if no URL can be derived for the kind.
    """

    def __init__(
        self,
        options: CollectionOptions,
        config: MirrorConfig | None = None,
        rest: RestClient | None = None,
        connector: Connector | None = None,
    ) -> None:
        self._options = options
        self._config = config or MirrorConfig()
        self._kind = options.kind
        self._namespace = options.namespace or None

        url_function = options.url_function
        self._paths = ResourcePaths(
            kind=self._kind,
            namespace=self._namespace,
            api_server=self._config.api_server,
            api_version=options.api_version,
            url_function=(lambda: url_function(options)) if url_function is not None else None,
        )
        self._rest = rest or RestClient(
            timeout=self._config.request_timeout,
            verify=self._config.verify_tls,
            token_provider=options.token_provider,
        )
        self._connector = connector
        self._cache = ResourceCache(
            self._kind,
            self._namespace,
            debounce_seconds=self._config.timing.debounce_seconds,
        )
        self._transport: Transport | None = None
        self._pending: set[asyncio.Task[Any]] = set()
        self._destroyed = False
        _log.debug("collection_created", key=self.key)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def kind(self) -> str:
        return self._kind

    @property
    def namespace(self) -> str | None:
        return self._namespace

    @property
    def key(self) -> str:
        return self._cache.key

    @property
    def options(self) -> CollectionOptions:
        return self._options

    @property
    def cache(self) -> ResourceCache:
        return self._cache

    @property
    def transport(self) -> Transport | None:
        return self._transport

    @property
    def connected(self) -> bool:
        return self._transport is not None and self._transport.connected

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """Start synchronizing.  No-op while connected or after destroy."""
        if self._destroyed or self.connected:
            return
        if self._transport is None:
            self._transport = self._build_transport()
        self._transport.start()

    def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        if self._transport is not None:
            self._transport.destroy()
        self._cache.clear()
        _log.debug("collection_destroyed", key=self.key)

    def _build_transport(self) -> Transport:
        if is_polling_only(self._kind, self._config.polling_only_kinds):
            _log.info("collection_using_polling", key=self.key)
            return self._make_poller(None)
        return StreamTransport(
            cache=self._cache,
            paths=self._paths,
            rest=self._rest,
            poller_factory=self._make_poller,
            timing=self._config.timing,
            connector=self._connector,
        )

    def _make_poller(self, baseline: Snapshot | None) -> PollTransport:
        return PollTransport(
            cache=self._cache,
            rest=self._rest,
            url_source=lambda: self._paths.rest_url,
            interval=self._config.timing.poll_interval,
            max_retries=self._config.timing.poll_max_retries,
            on_failure=self._options.on_error,
            baseline=baseline,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, callback: SnapshotCallback, label_selector: dict[str, str] | None = None) -> None:
        """Deliver the snapshot once, as soon as the cache is initialized."""
        listener = _subscriber(callback, label_selector)
        if not self._cache.initialized:
            self._cache.events.once(WatchAction.INIT, listener)
        else:
            asyncio.get_running_loop().call_soon(self._deliver, listener)

    def watch(self, callback: SnapshotCallback, label_selector: dict[str, str] | None = None) -> WatchHandle:
        """Deliver the snapshot now (if initialized) and after every change.

        Returns:
            Handle to pass to :meth:`unwatch`.
        """
        listener = _subscriber(callback, label_selector)
        if self._cache.initialized:
            asyncio.get_running_loop().call_soon(self._deliver, listener)
        self._cache.events.on(WatchAction.ANY, listener)
        return listener

    def unwatch(self, handle: WatchHandle) -> None:
        self._cache.events.off(WatchAction.ANY, handle)

    def _deliver(self, listener: WatchHandle) -> None:
        _guarded(listener, self._cache.objects)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put(self, obj: ResourceObject, on_success: ResultCallback, on_error: ResultCallback) -> None:
        """Create *obj* if it is not cached, otherwise update it.

        Updates carry the cached ``resourceVersion`` when *obj* has none.
        The caller's object is not modified.
        """
        item = self._prepare(obj)
        current = self._cache.find(item)
        if current is None:
            method = "POST"
            url = self._paths.url_for(item, use_name=False)
        else:
            method = "PUT"
            url = self._paths.url_for(item)
            if not get_resource_version(item) and get_resource_version(current):
                item.setdefault("metadata", {})["resourceVersion"] = get_resource_version(current)
        if url is None:
            _guarded(on_error, ApiError(0, "Invalid", f"no URL for {self._kind} {get_name(item)!r}"))
            return

        sanitize = _SANITIZERS.get(to_collection_name(self._kind))
        if sanitize is not None:
            sanitize(item)

        self._spawn(self._send_put(method, url, item, on_success, on_error))

    async def _send_put(
        self,
        method: str,
        url: str,
        item: ResourceObject,
        on_success: ResultCallback,
        on_error: ResultCallback,
    ) -> None:
        try:
            if method == "POST":
                response = await self._rest.create(url, item)
            else:
                response = await self._rest.replace(url, item)
        except ApiError as err:
            _log.debug("collection_put_failed", key=self.key, name=get_name(item), error=err.to_dict())
            _guarded(on_error, err)
            return
        _guarded(on_success, response)

    def delete(self, obj: ResourceObject, on_success: ResultCallback, on_error: ResultCallback) -> None:
        """Remove *obj* from the cache now, then delete it on the server.

        If the server refuses, the removed object is restored and the
        change is announced again before ``on_error`` runs.
        """
        item = self._prepare(obj)
        url = self._paths.url_for(item)
        if url is None:
            _guarded(on_error, ApiError(0, "Invalid", f"no URL for {self._kind} {get_name(item)!r}"))
            return

        removed = self._cache.find(item)
        if removed is not None:
            self._cache.delete(item)
            self._cache.notify_changed()
        self._spawn(self._send_delete(url, item, removed, on_success, on_error))

    async def _send_delete(
        self,
        url: str,
        item: ResourceObject,
        removed: ResourceObject | None,
        on_success: ResultCallback,
        on_error: ResultCallback,
    ) -> None:
        try:
            response = await self._rest.remove(url)
        except ApiError as err:
            _log.debug("collection_delete_failed", key=self.key, name=get_name(item), error=err.to_dict())
            if removed is not None and not self._destroyed:
                self._cache.add(removed)
                self._cache.notify_changed()
            _guarded(on_error, err)
            return
        _guarded(on_success, response)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _prepare(self, obj: ResourceObject) -> ResourceObject:
        """Copy *obj*, filling in the Kind and this collection's namespace."""
        item = copy.deepcopy(obj)
        self._cache.normalize(item)
        if self._namespace and is_namespaced(self._kind) and not get_namespace(item):
            item.setdefault("metadata", {})["namespace"] = self._namespace
        return item

    def _spawn(self, coro: Any) -> None:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


def _subscriber(callback: SnapshotCallback, label_selector: dict[str, str] | None) -> WatchHandle:
    """Wrap *callback* so it receives a filtered copy of the snapshot."""

    def listener(objects: Snapshot) -> None:
        callback(filter_by_labels(objects, label_selector))

    return listener
