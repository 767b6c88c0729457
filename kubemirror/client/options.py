"""Option objects accepted by the collection client and the public API."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from kubemirror.collector.rest import TokenProvider
from kubemirror.errors import KubeMirrorError
from kubemirror.models.resources import ResourceObject, Snapshot, collection_key

SnapshotCallback = Callable[[Snapshot], None]
ResultCallback = Callable[[Any], None]


@dataclass
class CollectionOptions:
    """Identifies one collection and how to reach it.

    ``url_function`` overrides URL derivation; returning None means the URL
    is not resolvable yet.  ``on_error`` is told when polling gives up.
    """

    kind: str
    namespace: str | None = None
    api_version: str | None = None
    url_function: Callable[[CollectionOptions], str | None] | None = None
    token_provider: TokenProvider | None = None
    on_error: Callable[[KubeMirrorError], None] | None = None

    @property
    def key(self) -> str:
        return collection_key(self.kind, self.namespace)


@dataclass
class RequestOptions:
    """Options for :func:`kubemirror.client.api.get` and friends."""

    kind: str | None = None
    namespace: str | None = None
    api_version: str | None = None
    object: ResourceObject | None = None
    label_selector: dict[str, str] | None = None
    on_success: ResultCallback | None = None
    on_error: ResultCallback | None = None
    url_function: Callable[[CollectionOptions], str | None] | None = None
    token_provider: TokenProvider | None = None

    def collection_options(self, kind: str, namespace: str | None, api_version: str | None) -> CollectionOptions:
        return CollectionOptions(
            kind=kind,
            namespace=namespace,
            api_version=api_version,
            url_function=self.url_function,
            token_provider=self.token_provider,
        )
