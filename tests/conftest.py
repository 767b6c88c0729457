"""Shared fixtures for kubemirror tests.

Provides a fake REST client, an in-memory watch connection and fast timing
so transport and client tests run against the real event loop in
milliseconds.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from websockets.exceptions import ConnectionClosedError

from kubemirror.collector.rest import RestClient
from kubemirror.models.config import MirrorConfig, TimingConfig

_CLEAN_CLOSE = object()


# ---------------------------------------------------------------------------
# Watch connection double
# ---------------------------------------------------------------------------


class FakeConnection:
    """Watch connection fed from a queue.

    ``send`` delivers a watch envelope, ``drop`` ends the connection with an
    error, and ``close`` ends it cleanly.
    """

    def __init__(self, url: str, headers: dict[str, str]) -> None:
        self.url = url
        self.headers = headers
        self.closed = False
        self._queue: asyncio.Queue[Any] = asyncio.Queue()

    def __aiter__(self) -> Any:
        return self._messages()

    async def _messages(self) -> Any:
        while True:
            item = await self._queue.get()
            if item is _CLEAN_CLOSE:
                return
            if isinstance(item, BaseException):
                raise item
            yield item

    def send(self, action: str, obj: dict[str, Any]) -> None:
        self._queue.put_nowait(json.dumps({"type": action, "object": obj}))

    def send_raw(self, raw: str) -> None:
        self._queue.put_nowait(raw)

    def drop(self) -> None:
        self._queue.put_nowait(ConnectionClosedError(None, None))

    async def close(self) -> None:
        self.closed = True
        self._queue.put_nowait(_CLEAN_CLOSE)


class FakeConnector:
    """Connector that records every attempt; ``fail_after`` makes later attempts raise."""

    def __init__(self) -> None:
        self.connections: list[FakeConnection] = []
        self.attempts = 0
        self.fail_after: int | None = None

    async def __call__(self, url: str, headers: dict[str, str]) -> FakeConnection:
        self.attempts += 1
        if self.fail_after is not None and self.attempts > self.fail_after:
            raise OSError("connection refused")
        connection = FakeConnection(url, headers)
        self.connections.append(connection)
        return connection

    @property
    def last(self) -> FakeConnection:
        return self.connections[-1]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def make_object(
    name: str,
    namespace: str | None = "default",
    kind: str | None = "Pod",
    resource_version: str | None = "1",
    labels: dict[str, str] | None = None,
    **fields: Any,
) -> dict[str, Any]:
    metadata: dict[str, Any] = {"name": name}
    if namespace:
        metadata["namespace"] = namespace
    if resource_version:
        metadata["resourceVersion"] = resource_version
    if labels:
        metadata["labels"] = labels
    obj: dict[str, Any] = {"apiVersion": "v1", "metadata": metadata, **fields}
    if kind:
        obj["kind"] = kind
    return obj


@pytest.fixture
def obj() -> Callable[..., dict[str, Any]]:
    """Factory for Kubernetes-shaped test objects."""
    return make_object


@pytest.fixture
def fake_rest() -> MagicMock:
    """RestClient double: empty collection, echoing mutations."""
    rest = MagicMock(spec=RestClient)
    rest.list_items = AsyncMock(return_value=[])
    rest.create = AsyncMock(side_effect=lambda url, body: body)
    rest.replace = AsyncMock(side_effect=lambda url, body: body)
    rest.remove = AsyncMock(return_value={"kind": "Status", "status": "Success"})
    rest.auth_headers = MagicMock(return_value={"Authorization": "Bearer test-token"})
    return rest


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def fast_timing() -> TimingConfig:
    return TimingConfig(
        debounce_seconds=0.005,
        stream_retry_delay=0.01,
        stream_max_retries=3,
        stream_min_uptime=0.0,
        poll_interval=0.01,
        poll_max_retries=3,
        fetch_retry_delay=0.005,
        resolve_retry_delay=0.01,
    )


@pytest.fixture
def config(fast_timing: TimingConfig) -> MirrorConfig:
    return MirrorConfig(api_server="https://k8s.test", timing=fast_timing)


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    """Poll a predicate on the running loop until it holds or the timeout expires."""

    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.002)

    return _wait
