"""Reference-counted directory of collection clients.

Every observer of ``(kind, namespace)`` shares one CollectionClient, so one
cache and one connection serve them all.  The client is destroyed when the
last observer releases it.  Single event loop only: no locking.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace

from kubemirror.client.collection import CollectionClient, WatchHandle
from kubemirror.client.options import CollectionOptions
from kubemirror.config import load_config
from kubemirror.models.config import MirrorConfig
from kubemirror.observability.logging import get_logger
from kubemirror.observability.metrics import collections_active

ClientFactory = Callable[[CollectionOptions], CollectionClient]


@dataclass
class _RegistryEntry:
    client: CollectionClient
    ref_count: int = 0


class ClientRegistry:
    """Hands out shared CollectionClients keyed by ``<namespace>-<kind>``.

    Args:
        config:         Configuration passed to clients built by the default factory.
        client_factory: Builds a client for new keys (tests inject fakes here).
    """

    def __init__(
        self,
        config: MirrorConfig | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._config = config or MirrorConfig()
        self._factory: ClientFactory = client_factory or self._default_factory
        self._entries: dict[str, _RegistryEntry] = {}
        self._log = get_logger("client.registry")

    def _default_factory(self, options: CollectionOptions) -> CollectionClient:
        return CollectionClient(options, config=self._config)

    def create(self, options: CollectionOptions | str, namespace: str | None = None) -> CollectionClient:
        """Return the shared client for a collection, creating it on first use.

        Raises:
            ConfigurationError: if a new client cannot be built for the kind.
        """
        if isinstance(options, str):
            options = CollectionOptions(kind=options, namespace=namespace)
        elif namespace and not options.namespace:
            options = replace(options, namespace=namespace)

        key = options.key
        entry = self._entries.get(key)
        if entry is not None:
            entry.ref_count += 1
            self._log.debug("registry_client_reused", key=key, ref_count=entry.ref_count)
            return entry.client

        client = self._factory(options)
        self._entries[key] = _RegistryEntry(client=client, ref_count=1)
        collections_active.set(len(self._entries))
        self._log.debug("registry_client_created", key=key, ref_count=1)
        return client

    def destroy(self, client: CollectionClient, *handles: WatchHandle) -> None:
        """Drop one reference to *client*, unwatching *handles* first.

        The client is destroyed when its last reference goes.  Releasing a
        client the registry no longer holds is a no-op.
        """
        for handle in handles:
            client.unwatch(handle)
        key = client.key
        entry = self._entries.get(key)
        if entry is None or entry.client is not client:
            return
        entry.ref_count -= 1
        self._log.debug("registry_reference_released", key=key, ref_count=entry.ref_count)
        if entry.ref_count <= 0:
            del self._entries[key]
            collections_active.set(len(self._entries))
            client.destroy()
            self._log.debug("registry_client_destroyed", key=key)

    def ref_count(self, key: str) -> int:
        entry = self._entries.get(key)
        return entry.ref_count if entry is not None else 0

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


_default_registry: ClientRegistry | None = None


def default_registry() -> ClientRegistry:
    """Process-wide registry, configured from the environment on first use."""
    global _default_registry
    if _default_registry is None:
        _default_registry = ClientRegistry(load_config())
    return _default_registry
