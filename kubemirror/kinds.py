"""Known resource collections and REST/watch URL derivation.

Collections are addressed by their lowercase plural name (``pods``,
``deployments``); objects carry the singular ``Kind`` (``Pod``).  A collection
missing from :data:`KNOWN_KINDS` can still be used when its ``apiVersion``
names an API group, in which case it is served from ``/apis/<apiVersion>``.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode, urlsplit, urlunsplit

from kubemirror.errors import ConfigurationError
from kubemirror.models.resources import ResourceObject, get_kind, get_name, get_namespace


@dataclass(frozen=True)
class KindInfo:
    """Static facts about one collection."""

    collection: str
    kind: str
    prefix: str
    namespaced: bool = True


_CORE = "api/v1"
_APPS = "apis/apps/v1"
_BATCH = "apis/batch/v1"
_NETWORKING = "apis/networking.k8s.io/v1"
_RBAC = "apis/rbac.authorization.k8s.io/v1"
_AUTOSCALING = "apis/autoscaling/v2"
_STORAGE = "apis/storage.k8s.io/v1"
_OPENSHIFT_PROJECT = "apis/project.openshift.io/v1"
_OPENSHIFT_IMAGE = "apis/image.openshift.io/v1"
_OPENSHIFT_BUILD = "apis/build.openshift.io/v1"
_OPENSHIFT_ROUTE = "apis/route.openshift.io/v1"

LIST_KIND = "List"

KNOWN_KINDS: dict[str, KindInfo] = {
    info.collection: info
    for info in (
        KindInfo("pods", "Pod", _CORE),
        KindInfo("services", "Service", _CORE),
        KindInfo("endpoints", "Endpoints", _CORE),
        KindInfo("events", "Event", _CORE),
        KindInfo("configmaps", "ConfigMap", _CORE),
        KindInfo("secrets", "Secret", _CORE),
        KindInfo("serviceaccounts", "ServiceAccount", _CORE),
        KindInfo("persistentvolumeclaims", "PersistentVolumeClaim", _CORE),
        KindInfo("replicationcontrollers", "ReplicationController", _CORE),
        KindInfo("resourcequotas", "ResourceQuota", _CORE),
        KindInfo("limitranges", "LimitRange", _CORE),
        KindInfo("namespaces", "Namespace", _CORE, namespaced=False),
        KindInfo("nodes", "Node", _CORE, namespaced=False),
        KindInfo("persistentvolumes", "PersistentVolume", _CORE, namespaced=False),
        KindInfo("deployments", "Deployment", _APPS),
        KindInfo("replicasets", "ReplicaSet", _APPS),
        KindInfo("statefulsets", "StatefulSet", _APPS),
        KindInfo("daemonsets", "DaemonSet", _APPS),
        KindInfo("jobs", "Job", _BATCH),
        KindInfo("cronjobs", "CronJob", _BATCH),
        KindInfo("ingresses", "Ingress", _NETWORKING),
        KindInfo("networkpolicies", "NetworkPolicy", _NETWORKING),
        KindInfo("roles", "Role", _RBAC),
        KindInfo("rolebindings", "RoleBinding", _RBAC),
        KindInfo("clusterroles", "ClusterRole", _RBAC, namespaced=False),
        KindInfo("clusterrolebindings", "ClusterRoleBinding", _RBAC, namespaced=False),
        KindInfo("horizontalpodautoscalers", "HorizontalPodAutoscaler", _AUTOSCALING),
        KindInfo("storageclasses", "StorageClass", _STORAGE, namespaced=False),
        KindInfo("projects", "Project", _OPENSHIFT_PROJECT, namespaced=False),
        KindInfo("imagestreams", "ImageStream", _OPENSHIFT_IMAGE),
        KindInfo("imagestreamtags", "ImageStreamTag", _OPENSHIFT_IMAGE),
        KindInfo("buildconfigs", "BuildConfig", _OPENSHIFT_BUILD),
        KindInfo("builds", "Build", _OPENSHIFT_BUILD),
        KindInfo("routes", "Route", _OPENSHIFT_ROUTE),
    )
}

_BY_KIND_NAME: dict[str, KindInfo] = {info.kind.lower(): info for info in KNOWN_KINDS.values()}

# Collections whose API servers do not support watch over websocket.
# Callers may append to this list; configuration adds to it per registry.
POLLING_ONLY_KINDS: list[str] = ["projects", "imagestreamtags"]


def _lookup(kind: str) -> KindInfo | None:
    if not kind:
        return None
    return KNOWN_KINDS.get(kind.lower()) or _BY_KIND_NAME.get(kind.lower())


def to_kind_name(kind: str) -> str:
    """``pods`` -> ``Pod``.  Unknown names are capitalized and de-pluralized."""
    info = _lookup(kind)
    if info is not None:
        return info.kind
    if kind == LIST_KIND or kind.lower() == "lists":
        return LIST_KIND
    singular = kind[:-1] if kind.endswith("s") and not kind.endswith("ss") else kind
    return singular[:1].upper() + singular[1:]


def to_collection_name(kind_or_obj: str | ResourceObject) -> str:
    """``Pod`` (or a Pod object) -> ``pods``."""
    kind = get_kind(kind_or_obj) if isinstance(kind_or_obj, dict) else kind_or_obj
    info = _lookup(kind)
    if info is not None:
        return info.collection
    lowered = kind.lower()
    return lowered if lowered.endswith("s") else f"{lowered}s"


def is_namespaced(kind: str) -> bool:
    info = _lookup(kind)
    return info.namespaced if info is not None else True


def prefix_for_kind(kind: str) -> str | None:
    info = _lookup(kind)
    return info.prefix if info is not None else None


def is_polling_only(kind: str, extra: list[str] | None = None) -> bool:
    collection = to_collection_name(kind)
    candidates = set(POLLING_ONLY_KINDS) | set(extra or [])
    return collection in {to_collection_name(k) for k in candidates}


def _join(*parts: str) -> str:
    cleaned = [p.strip("/") for p in parts if p and p.strip("/")]
    head = parts[0].rstrip("/") if parts and "://" in parts[0] else ""
    if head:
        return "/".join([head, *cleaned[1:]])
    return "/" + "/".join(cleaned)


def _to_ws(url: str) -> str:
    scheme, netloc, path, query, fragment = urlsplit(url)
    ws_scheme = {"https": "wss", "http": "ws"}.get(scheme, scheme)
    return urlunsplit((ws_scheme, netloc, path, query, fragment))


def _with_query(url: str, params: dict[str, Any]) -> str:
    scheme, netloc, path, query, fragment = urlsplit(url)
    extra = urlencode(params)
    return urlunsplit((scheme, netloc, path, f"{query}&{extra}" if query else extra, fragment))


class ResourcePaths:
    """Collection and object URLs for one ``(kind, namespace)``.

    Raises:
        ConfigurationError: if *kind* is unknown and *api_version* does not
            name an API group to derive a path from.
    """

    def __init__(
        self,
        kind: str,
        namespace: str | None,
        api_server: str,
        api_version: str | None = None,
        url_function: Callable[[], str | None] | None = None,
    ) -> None:
        self.kind = kind
        self.namespace = namespace or None
        self._api_server = api_server.rstrip("/")
        self._url_function = url_function
        self.prefix = self._resolve_prefix(kind, api_version)
        if self.namespace and is_namespaced(kind):
            self.path = _join(self.prefix, "namespaces", self.namespace, to_collection_name(kind))
        else:
            self.path = _join(self.prefix, to_collection_name(kind))

    @staticmethod
    def _resolve_prefix(kind: str, api_version: str | None) -> str:
        prefix = prefix_for_kind(kind)
        if prefix is not None:
            return prefix
        if api_version and "/" in api_version:
            return _join("apis", api_version).lstrip("/")
        raise ConfigurationError(f"Unknown kind: {kind}")

    @property
    def custom(self) -> bool:
        return self._url_function is not None

    @property
    def rest_url(self) -> str | None:
        """Collection URL, or None while a custom URL cannot be resolved yet."""
        if self._url_function is not None:
            return self._url_function() or None
        return _join(self._api_server, self.path)

    @property
    def watch_url(self) -> str | None:
        rest = self.rest_url
        if rest is None:
            return None
        return _with_query(_to_ws(rest), {"watch": "true"})

    def url_for(self, obj: ResourceObject, use_name: bool = True) -> str | None:
        """URL for creating (``use_name=False``) or addressing *obj*.

        Returns None when the object has no name but one is required, or
        when the collection URL is not resolvable.
        """
        name = get_name(obj)
        if use_name and not name:
            return None
        url = self.rest_url
        if url is None:
            return None
        if not self.custom and is_namespaced(self.kind):
            namespace = get_namespace(obj) or self.namespace
            if namespace:
                url = _join(self._api_server, self.prefix, "namespaces", namespace, to_collection_name(self.kind))
        if use_name:
            url = _join(url, name)
        return url
