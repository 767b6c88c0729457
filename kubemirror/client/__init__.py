"""Collection clients, the shared registry and the public get/watch/put/delete API."""

from kubemirror.client.api import WatchSession, delete, get, normalize_options, put, watch
from kubemirror.client.collection import CollectionClient
from kubemirror.client.options import CollectionOptions, RequestOptions
from kubemirror.client.registry import ClientRegistry, default_registry

__all__ = [
    "ClientRegistry",
    "CollectionClient",
    "CollectionOptions",
    "RequestOptions",
    "WatchSession",
    "default_registry",
    "delete",
    "get",
    "normalize_options",
    "put",
    "watch",
]
