"""Core data structures for kubemirror."""

from kubemirror.models.config import LogConfig, MirrorConfig, TimingConfig
from kubemirror.models.events import ChangeEvent, Diff, WatchAction
from kubemirror.models.resources import (
    Identity,
    ResourceObject,
    Snapshot,
    collection_key,
    filter_by_labels,
    full_name,
    get_api_version,
    get_kind,
    get_labels,
    get_name,
    get_namespace,
    get_resource_version,
    identity,
    same_identity,
)

__all__ = [
    "ChangeEvent",
    "Diff",
    "Identity",
    "LogConfig",
    "MirrorConfig",
    "ResourceObject",
    "Snapshot",
    "TimingConfig",
    "WatchAction",
    "collection_key",
    "filter_by_labels",
    "full_name",
    "get_api_version",
    "get_kind",
    "get_labels",
    "get_name",
    "get_namespace",
    "get_resource_version",
    "identity",
    "same_identity",
]
