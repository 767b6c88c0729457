"""In-memory mirror of one resource collection.

Holds the current snapshot for a single ``(kind, namespace)`` and announces
every mutation on an :class:`EventEmitter`:

ADDED / MODIFIED / DELETED
    Fired synchronously with the mutated object.
INIT
    Fired once, the first time the cache is initialized, with the snapshot.
ANY
    The coalesced "changed" notification.  Mutations inside the debounce
    window (75 ms by default) collapse into one delivery of the snapshot.

Identity is ``(kind, namespace, name)``; no two resident objects share one.
``add`` of a resident identity behaves as ``modify`` and ``modify`` of an
absent identity behaves as ``add``.  The first ANY delivery initializes a
cache that was fed deltas before any full snapshot.
"""

from __future__ import annotations

from collections.abc import Iterable

from kubemirror.cache.debounce import TrailingDebouncer
from kubemirror.cache.emitter import EventEmitter
from kubemirror.kinds import to_kind_name
from kubemirror.models.events import WatchAction
from kubemirror.models.resources import (
    ResourceObject,
    Snapshot,
    collection_key,
    get_kind,
    get_name,
    get_namespace,
    same_identity,
)
from kubemirror.observability.logging import get_logger
from kubemirror.observability.metrics import cache_objects

_DEFAULT_DEBOUNCE_S: float = 0.075


class ResourceCache:
    """Snapshot, initialized flag and change events for one collection.

    Example::

        cache = ResourceCache("pods", namespace="default")
        cache.events.on(WatchAction.ANY, lambda objects: print(len(objects)))
        cache.replace(items)
    """

    def __init__(
        self,
        kind: str,
        namespace: str | None = None,
        debounce_seconds: float = _DEFAULT_DEBOUNCE_S,
    ) -> None:
        self._kind = kind
        self._namespace = namespace or None
        self._key = collection_key(kind, self._namespace)
        self._log = get_logger("cache.resource").bind(key=self._key)
        self._objects: Snapshot = []
        self._initialized = False
        self._events = EventEmitter(name=self._key)
        self._changed = TrailingDebouncer(debounce_seconds, self._emit_changed)

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
        return self._key

    @property
    def objects(self) -> Snapshot:
        """The live snapshot.  Callers must treat it as read-only."""
        return self._objects

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def events(self) -> EventEmitter:
        return self._events

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def replace(self, objects: Iterable[ResourceObject]) -> None:
        """Overwrite the snapshot with *objects* and initialize the cache."""
        self._objects.clear()
        for obj in objects:
            self._objects.append(self.normalize(obj))
        self._log.debug("cache_replaced", count=len(self._objects))
        self._publish_size()
        self.initialize()
        self.trigger_changed()

    def add(self, obj: ResourceObject) -> None:
        if not self._belongs(obj):
            return
        self.normalize(obj)
        if self.find(obj) is not None:
            self.modify(obj)
            return
        self._objects.append(obj)
        self._log.debug("cache_object_added", name=get_name(obj))
        self._publish_size()
        self._events.emit(WatchAction.ADDED, obj)
        self.trigger_changed()

    def modify(self, obj: ResourceObject) -> None:
        if not self._belongs(obj):
            return
        self.normalize(obj)
        resident = self.find(obj)
        if resident is None:
            self.add(obj)
            return
        if resident is not obj:
            # Overwrite in place so references held by consumers see the update.
            resident.clear()
            resident.update(obj)
        self._log.debug("cache_object_modified", name=get_name(obj))
        self._events.emit(WatchAction.MODIFIED, resident)
        self.trigger_changed()

    def delete(self, obj: ResourceObject) -> None:
        if not self._belongs(obj):
            return
        self.normalize(obj)
        for index, resident in enumerate(self._objects):
            if same_identity(resident, obj):
                del self._objects[index]
                self._log.debug("cache_object_deleted", name=get_name(obj))
                self._publish_size()
                self._events.emit(WatchAction.DELETED, resident)
                self.trigger_changed()
                return

    def apply(self, action: WatchAction, obj: ResourceObject) -> None:
        """Dispatch a watch action to :meth:`add`, :meth:`modify` or :meth:`delete`."""
        handlers = {
            WatchAction.ADDED: self.add,
            WatchAction.MODIFIED: self.modify,
            WatchAction.DELETED: self.delete,
        }
        handler = handlers.get(action)
        if handler is None:
            raise ValueError(f"cannot apply {action!r} to a cache")
        handler(obj)

    def normalize(self, obj: ResourceObject) -> ResourceObject:
        """Assign the collection's Kind to *obj* when it has none."""
        if not get_kind(obj):
            obj["kind"] = to_kind_name(self._kind)
        return obj

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def lookup(self, name: str) -> ResourceObject | None:
        for obj in self._objects:
            if get_name(obj) == name:
                return obj
        return None

    def find(self, obj: ResourceObject) -> ResourceObject | None:
        """Return the resident object with the same identity as *obj*."""
        for resident in self._objects:
            if same_identity(resident, obj):
                return resident
        return None

    def contains(self, item: ResourceObject | str) -> bool:
        if isinstance(item, str):
            return self.lookup(item) is not None
        return self.find(item) is not None

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Mark the cache initialized (once) and announce INIT."""
        if self._initialized:
            return
        self._mark_initialized()
        self.trigger_changed()

    def trigger_changed(self) -> None:
        """Schedule a coalesced ANY notification."""
        self._changed.trigger()

    def notify_changed(self) -> None:
        """Deliver the ANY notification now, absorbing any pending one."""
        self._changed.flush()

    def clear(self) -> None:
        """Release the cache: drop pending notifications and all listeners."""
        self._changed.cancel()
        self._events.clear()
        self._objects.clear()
        if self._key in _published_keys:
            cache_objects.remove(self._key)
            _published_keys.discard(self._key)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _mark_initialized(self) -> None:
        self._initialized = True
        self._log.debug("cache_initialized", count=len(self._objects))
        self._events.emit(WatchAction.INIT, self._objects)

    def _emit_changed(self) -> None:
        # A transport may deliver deltas before any full snapshot.
        if not self._initialized:
            self._mark_initialized()
        self._events.emit(WatchAction.ANY, self._objects)

    def _belongs(self, obj: ResourceObject) -> bool:
        """Objects from other namespaces never enter a namespace-scoped cache."""
        return not self._namespace or get_namespace(obj) == self._namespace

    def _publish_size(self) -> None:
        cache_objects.labels(key=self._key).set(len(self._objects))
        _published_keys.add(self._key)


_published_keys: set[str] = set()
