"""Accessors for Kubernetes-shaped resource dicts.

Resource objects are treated as opaque structured values; kubemirror only
reads ``kind``, ``apiVersion`` and a handful of ``metadata`` fields.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

ResourceObject = dict[str, Any]
Snapshot = list[ResourceObject]
Identity = tuple[str, str, str]


def _metadata(obj: ResourceObject) -> dict[str, Any]:
    metadata = obj.get("metadata")
    return metadata if isinstance(metadata, dict) else {}


def get_name(obj: ResourceObject) -> str:
    return str(_metadata(obj).get("name") or "")


def get_namespace(obj: ResourceObject) -> str:
    return str(_metadata(obj).get("namespace") or "")


def get_kind(obj: ResourceObject) -> str:
    return str(obj.get("kind") or "")


def get_api_version(obj: ResourceObject) -> str:
    return str(obj.get("apiVersion") or "")


def get_resource_version(obj: ResourceObject) -> str:
    return str(_metadata(obj).get("resourceVersion") or "")


def get_labels(obj: ResourceObject) -> dict[str, str]:
    labels = _metadata(obj).get("labels")
    if not isinstance(labels, dict):
        return {}
    return {str(k): str(v) for k, v in labels.items()}


def identity(obj: ResourceObject) -> Identity:
    """Return the ``(kind, namespace, name)`` identity of *obj*."""
    return (get_kind(obj), get_namespace(obj), get_name(obj))


def same_identity(a: ResourceObject, b: ResourceObject) -> bool:
    """True when *a* and *b* name the same resource.

    An object that has not been assigned a kind yet matches on
    namespace and name alone.
    """
    if get_name(a) != get_name(b) or get_namespace(a) != get_namespace(b):
        return False
    kind_a, kind_b = get_kind(a), get_kind(b)
    return not kind_a or not kind_b or kind_a == kind_b


def full_name(obj: ResourceObject) -> str:
    """``<namespace>-<kind>-<name>``, skipping empty parts."""
    parts = [get_namespace(obj), get_kind(obj), get_name(obj)]
    return "-".join(p for p in parts if p)


def filter_by_labels(objects: Iterable[ResourceObject], selector: dict[str, str] | None) -> Snapshot:
    """Return the objects whose labels are a superset of *selector*."""
    if not selector:
        return list(objects)
    wanted = {str(k): str(v) for k, v in selector.items()}
    return [obj for obj in objects if wanted.items() <= get_labels(obj).items()]


def collection_key(kind: str, namespace: str | None = None) -> str:
    """Registry key for a collection: ``<namespace>-<kind>`` or ``<kind>``."""
    return f"{namespace}-{kind}" if namespace else kind
