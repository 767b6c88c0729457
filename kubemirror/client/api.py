"""Public consumer API: ``get``, ``watch``, ``put`` and ``delete``.

Each call borrows a shared CollectionClient from the registry and gives the
reference back once the operation completes (or, for ``watch``, when the
returned session is disconnected).  Exceptions raised by caller callbacks
are logged and never prevent that release.

``put`` and ``delete`` accept a ``List`` object (``{"kind": "List",
"objects": [...]}``); the operation then runs once per member, in order,
and ``on_success`` receives a ``full_name -> result`` map.
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from kubemirror.client.collection import CollectionClient, WatchHandle
from kubemirror.client.options import RequestOptions, ResultCallback
from kubemirror.client.registry import ClientRegistry, default_registry
from kubemirror.errors import ApiError
from kubemirror.kinds import LIST_KIND, is_namespaced, to_collection_name, to_kind_name
from kubemirror.models.resources import (
    ResourceObject,
    full_name,
    get_api_version,
    get_kind,
    get_namespace,
)
from kubemirror.observability.logging import get_logger

_log = get_logger("client.api")

NO_KIND = "No kind in supplied options"
NO_OBJECT = "No object in supplied options"
NO_OBJECTS = "No objects in list object"
NO_CALLBACK = "No on_success callback in supplied options"

ListAction = Callable[[ResourceObject, ResultCallback, ResultCallback], None]


class WatchSession:
    """Handle returned by :func:`watch`; ``disconnect()`` releases the watch."""

    def __init__(self, client: CollectionClient, handle: WatchHandle, registry: ClientRegistry) -> None:
        self.client = client
        self.handle = handle
        self._registry = registry
        self._disconnected = False

    def disconnect(self) -> None:
        if self._disconnected:
            return
        self._disconnected = True
        self._registry.destroy(self.client, self.handle)


def get(options: RequestOptions, registry: ClientRegistry | None = None) -> None:
    """Deliver the collection once to ``options.on_success``."""
    if not options.kind:
        raise ValueError(NO_KIND)
    if registry is None:
        registry = default_registry()
    client = registry.create(options.collection_options(options.kind, options.namespace, options.api_version))

    def success(objects: list[ResourceObject]) -> None:
        try:
            _invoke(options.on_success, objects)
        finally:
            registry.destroy(client)

    client.get(success, options.label_selector)
    client.connect()


def watch(options: RequestOptions, registry: ClientRegistry | None = None) -> WatchSession:
    """Deliver the collection to ``options.on_success`` now and on every change."""
    if not options.kind:
        raise ValueError(NO_KIND)
    if options.on_success is None:
        raise ValueError(NO_CALLBACK)
    if registry is None:
        registry = default_registry()
    client = registry.create(options.collection_options(options.kind, options.namespace, options.api_version))
    handle = client.watch(options.on_success, options.label_selector)
    session = WatchSession(client, handle, registry)
    client.connect()
    return session


def put(options: RequestOptions | ResourceObject, registry: ClientRegistry | None = None) -> None:
    """Create or update an object (or every member of a List)."""
    options, obj = _resolve_object(options)
    if registry is None:
        registry = default_registry()

    if get_kind(obj) == LIST_KIND:
        _handle_list_action(
            options,
            obj,
            lambda member, ok, err: put(RequestOptions(object=member, on_success=ok, on_error=err), registry),
        )
        return

    client = _client_for(options, obj, registry)
    success, error = _completion(options, client, registry)

    # Wait for the cache so the create-or-update decision sees current state.
    client.get(lambda _objects: client.put(obj, success, error))
    client.connect()


def delete(options: RequestOptions | ResourceObject, registry: ClientRegistry | None = None) -> None:
    """Delete an object (or every member of a List)."""
    options, obj = _resolve_object(options)
    if registry is None:
        registry = default_registry()

    if get_kind(obj) == LIST_KIND:
        _handle_list_action(
            options,
            obj,
            lambda member, ok, err: delete(RequestOptions(object=member, on_success=ok, on_error=err), registry),
        )
        return

    client = _client_for(options, obj, registry)
    success, error = _completion(options, client, registry)
    client.delete(obj, success, error)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_options(options: RequestOptions | ResourceObject) -> RequestOptions:
    """Accept a bare object as options and make sure the object has a kind.

    Raises:
        ValueError: if there is no object, or no kind for it.
    """
    return _resolve_object(options)[0]


def _resolve_object(options: RequestOptions | ResourceObject) -> tuple[RequestOptions, ResourceObject]:
    if isinstance(options, dict):
        options = RequestOptions(object=options)
    obj = options.object
    if obj is None:
        raise ValueError(NO_OBJECT)
    if not get_kind(obj):
        if not options.kind:
            raise ValueError(NO_KIND)
        obj = {**obj, "kind": to_kind_name(options.kind)}
    return replace(options, object=obj), obj


def _client_for(options: RequestOptions, obj: ResourceObject, registry: ClientRegistry) -> CollectionClient:
    kind = options.kind or to_collection_name(obj)
    namespace = (options.namespace or get_namespace(obj) or None) if is_namespaced(kind) else None
    api_version = options.api_version or get_api_version(obj) or None
    return registry.create(options.collection_options(kind, namespace, api_version))


def _completion(
    options: RequestOptions,
    client: CollectionClient,
    registry: ClientRegistry,
) -> tuple[ResultCallback, ResultCallback]:
    """Success/error callbacks that report to the caller, then release *client*."""

    def success(data: Any) -> None:
        try:
            _invoke(options.on_success, data)
        finally:
            registry.destroy(client)

    def error(err: Any) -> None:
        try:
            if options.on_error is None:
                _log.warning("mutation_failed", key=client.key, error=_describe(err))
            else:
                _invoke(options.on_error, err)
        finally:
            registry.destroy(client)

    return success, error


def _handle_list_action(options: RequestOptions, bundle: ResourceObject, action: ListAction) -> None:
    members = bundle.get("objects") or bundle.get("items")
    if not isinstance(members, list):
        raise ValueError(NO_OBJECTS)

    answer: dict[str, Any] = {}
    pending = copy.deepcopy(members)

    def next_member() -> None:
        if not pending:
            _log.debug("list_action_complete", count=len(answer))
            _invoke(options.on_success, answer)
            return
        obj = pending.pop(0)

        def record(data: Any) -> None:
            answer[full_name(obj)] = data
            next_member()

        action(obj, record, record)

    next_member()


def _invoke(callback: ResultCallback | None, data: Any) -> None:
    if callback is None:
        return
    try:
        callback(data)
    except Exception as exc:
        _log.error("callback_failed", error=str(exc), exc_info=True)


def _describe(err: Any) -> Any:
    return err.to_dict() if isinstance(err, ApiError) else str(err)
