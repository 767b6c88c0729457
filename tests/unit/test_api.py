"""Tests for the public get/watch/put/delete functions."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from kubemirror.client import api
from kubemirror.client.collection import CollectionClient
from kubemirror.client.options import RequestOptions
from kubemirror.client.registry import ClientRegistry
from kubemirror.errors import ApiError
from kubemirror.models.config import MirrorConfig

Factory = Callable[..., dict[str, Any]]
Waiter = Callable[..., Awaitable[None]]

_PODS = "https://k8s.test/api/v1/namespaces/default/pods"


@pytest.fixture
def registry(config: MirrorConfig, fake_rest: MagicMock, connector: Any) -> ClientRegistry:
    return ClientRegistry(
        config=config,
        client_factory=lambda options: CollectionClient(options, config, fake_rest, connector),
    )


# ---------------------------------------------------------------------------
# Options normalization
# ---------------------------------------------------------------------------


class TestNormalizeOptions:
    def test_bare_object_becomes_options(self, obj: Factory) -> None:
        pod = obj("a")
        options = api.normalize_options(pod)
        assert options.object == pod

    def test_missing_object_kind_comes_from_options(self) -> None:
        options = api.normalize_options(RequestOptions(kind="deployments", object={"metadata": {"name": "a"}}))
        assert options.object is not None
        assert options.object["kind"] == "Deployment"

    def test_no_kind_anywhere_is_rejected(self) -> None:
        with pytest.raises(ValueError, match="No kind"):
            api.normalize_options({"metadata": {"name": "a"}})

    def test_no_object_is_rejected(self) -> None:
        with pytest.raises(ValueError, match="No object"):
            api.normalize_options(RequestOptions(kind="pods"))


# ---------------------------------------------------------------------------
# get / watch
# ---------------------------------------------------------------------------


class TestGet:
    async def test_get_delivers_once_and_releases_client(
        self, registry: ClientRegistry, fake_rest: MagicMock, obj: Factory, wait_until: Waiter
    ) -> None:
        fake_rest.list_items.return_value = [obj("a", labels={"tier": "web"}), obj("b")]
        received: list[Any] = []

        api.get(
            RequestOptions(kind="pods", namespace="default", label_selector={"tier": "web"}, on_success=received.append),
            registry,
        )
        await wait_until(lambda: bool(received))

        assert [o["metadata"]["name"] for o in received[0]] == ["a"]
        assert "default-pods" not in registry

    async def test_raising_callback_still_releases_client(
        self, registry: ClientRegistry, wait_until: Waiter
    ) -> None:
        on_success = MagicMock(side_effect=RuntimeError("consumer bug"))

        api.get(RequestOptions(kind="pods", namespace="default", on_success=on_success), registry)
        await wait_until(lambda: on_success.called)

        assert "default-pods" not in registry

    def test_get_requires_kind(self, registry: ClientRegistry) -> None:
        with pytest.raises(ValueError):
            api.get(RequestOptions(on_success=MagicMock()), registry)


class TestRegistrySelection:
    async def test_empty_caller_registry_is_used(
        self, registry: ClientRegistry, fake_rest: MagicMock, wait_until: Waiter
    ) -> None:
        assert len(registry) == 0
        with patch("kubemirror.client.api.default_registry") as default:
            session = api.watch(RequestOptions(kind="pods", namespace="default", on_success=MagicMock()), registry)

            default.assert_not_called()
            assert registry.ref_count("default-pods") == 1
            await wait_until(lambda: fake_rest.list_items.await_count == 1)
            session.disconnect()

    async def test_default_registry_when_none_given(self, registry: ClientRegistry) -> None:
        with patch("kubemirror.client.api.default_registry", return_value=registry) as default:
            api.delete(RequestOptions(object={"kind": "Pod", "metadata": {"name": "a", "namespace": "default"}}))

        default.assert_called_once_with()
        assert registry.ref_count("default-pods") == 1
        await asyncio.sleep(0.01)
        assert "default-pods" not in registry


class TestWatch:
    async def test_watch_streams_changes_until_disconnected(
        self, registry: ClientRegistry, connector: Any, obj: Factory, wait_until: Waiter
    ) -> None:
        received: list[Any] = []
        session = api.watch(RequestOptions(kind="pods", namespace="default", on_success=received.append), registry)
        await wait_until(lambda: bool(received))

        connector.last.send("ADDED", obj("a"))
        await wait_until(lambda: any(len(snapshot) == 1 for snapshot in received))

        session.disconnect()
        session.disconnect()
        assert "default-pods" not in registry
        await wait_until(lambda: connector.last.closed)

    async def test_watchers_share_the_collection(
        self, registry: ClientRegistry, connector: Any, wait_until: Waiter
    ) -> None:
        first = api.watch(RequestOptions(kind="pods", namespace="default", on_success=MagicMock()), registry)
        second = api.watch(RequestOptions(kind="pods", namespace="default", on_success=MagicMock()), registry)
        await wait_until(lambda: first.client.connected)

        assert first.client is second.client
        assert connector.attempts == 1

        first.disconnect()
        assert registry.ref_count("default-pods") == 1
        second.disconnect()
        assert "default-pods" not in registry

    def test_watch_requires_callback(self, registry: ClientRegistry) -> None:
        with pytest.raises(ValueError):
            api.watch(RequestOptions(kind="pods"), registry)


# ---------------------------------------------------------------------------
# put / delete
# ---------------------------------------------------------------------------


class TestPut:
    async def test_put_waits_for_cache_then_updates(
        self, registry: ClientRegistry, fake_rest: MagicMock, obj: Factory, wait_until: Waiter
    ) -> None:
        fake_rest.list_items.return_value = [obj("a", resource_version="4")]
        on_success = MagicMock()

        api.put(RequestOptions(object={"kind": "Pod", "metadata": {"name": "a", "namespace": "default"}},
                               on_success=on_success), registry)
        await wait_until(lambda: on_success.called)

        url, body = fake_rest.replace.await_args.args
        assert url == f"{_PODS}/a"
        assert body["metadata"]["resourceVersion"] == "4"
        assert "default-pods" not in registry

    async def test_put_of_bare_object(
        self, registry: ClientRegistry, fake_rest: MagicMock, obj: Factory, wait_until: Waiter
    ) -> None:
        api.put(obj("fresh"), registry)
        await wait_until(lambda: fake_rest.create.await_count == 1)

        assert fake_rest.create.await_args.args[0] == _PODS

    async def test_cluster_scoped_kind_drops_namespace(
        self, registry: ClientRegistry, fake_rest: MagicMock, obj: Factory, wait_until: Waiter
    ) -> None:
        on_success = MagicMock()

        api.put(RequestOptions(object=obj("node-1", kind="Node", namespace="default"), on_success=on_success), registry)
        await wait_until(lambda: on_success.called)

        assert fake_rest.create.await_args.args[0] == "https://k8s.test/api/v1/nodes"

    async def test_failure_without_error_callback_is_logged_and_released(
        self, registry: ClientRegistry, fake_rest: MagicMock, obj: Factory, wait_until: Waiter
    ) -> None:
        fake_rest.create.side_effect = ApiError(500, "InternalError")

        api.put(obj("a"), registry)
        await wait_until(lambda: fake_rest.create.await_count == 1)
        await asyncio.sleep(0.01)

        assert "default-pods" not in registry

    async def test_list_fans_out_sequentially(
        self, registry: ClientRegistry, fake_rest: MagicMock, obj: Factory, wait_until: Waiter
    ) -> None:
        on_success = MagicMock()
        order: list[str] = []

        async def create(url: str, body: dict[str, Any]) -> dict[str, Any]:
            order.append(body["metadata"]["name"])
            if body["metadata"]["name"] == "b":
                raise ApiError(409, "AlreadyExists")
            return {"created": body["metadata"]["name"]}

        fake_rest.create.side_effect = create
        bundle = {"kind": "List", "objects": [obj("a"), obj("b"), obj("svc", kind="Service")]}

        api.put(RequestOptions(object=bundle, on_success=on_success), registry)
        await wait_until(lambda: on_success.called)

        assert order == ["a", "b", "svc"]
        results = on_success.call_args.args[0]
        assert results["default-Pod-a"] == {"created": "a"}
        assert isinstance(results["default-Pod-b"], ApiError)
        assert results["default-Service-svc"] == {"created": "svc"}
        on_success.assert_called_once()
        assert len(registry) == 0

    def test_list_without_members_is_rejected(self, registry: ClientRegistry) -> None:
        with pytest.raises(ValueError, match="No objects"):
            api.put({"kind": "List"}, registry)


class TestDelete:
    async def test_delete_reports_success_and_releases(
        self, registry: ClientRegistry, fake_rest: MagicMock, obj: Factory, wait_until: Waiter
    ) -> None:
        on_success = MagicMock()

        api.delete(RequestOptions(object=obj("a"), on_success=on_success), registry)
        await wait_until(lambda: on_success.called)

        assert fake_rest.remove.await_args.args[0] == f"{_PODS}/a"
        assert "default-pods" not in registry

    async def test_delete_error_reaches_caller(
        self, registry: ClientRegistry, fake_rest: MagicMock, obj: Factory, wait_until: Waiter
    ) -> None:
        fake_rest.remove.side_effect = ApiError(404, "NotFound")
        on_error = MagicMock(side_effect=RuntimeError("consumer bug"))

        api.delete(RequestOptions(object=obj("a"), on_error=on_error), registry)
        await wait_until(lambda: on_error.called)

        assert on_error.call_args.args[0].status == 404
        assert "default-pods" not in registry

    async def test_delete_list_collects_results(
        self, registry: ClientRegistry, fake_rest: MagicMock, obj: Factory, wait_until: Waiter
    ) -> None:
        on_success = MagicMock()

        api.delete(
            RequestOptions(object={"kind": "List", "items": [obj("a"), obj("b")]}, on_success=on_success),
            registry,
        )
        await wait_until(lambda: on_success.called)

        assert set(on_success.call_args.args[0]) == {"default-Pod-a", "default-Pod-b"}
        assert fake_rest.remove.await_count == 2
