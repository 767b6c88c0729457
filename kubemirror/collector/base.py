"""Shared timer and task bookkeeping for the transports.

A transport only ever runs on one event loop.  Everything it schedules goes
through :meth:`Transport.call_later` or :meth:`Transport.spawn` so that
:meth:`Transport.cancel_pending` can guarantee nothing fires after destroy.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine
from typing import Any

from kubemirror.observability.logging import get_logger

_log = get_logger("collector.transport")


class Transport(ABC):
    """Feeds one ResourceCache from the API server."""

    def __init__(self) -> None:
        self._timers: set[asyncio.TimerHandle] = set()
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    @abstractmethod
    def connected(self) -> bool:
        """True while the transport is delivering updates."""

    @abstractmethod
    def start(self) -> None:
        """Begin synchronizing.  Idempotent."""

    @abstractmethod
    def destroy(self) -> None:
        """Stop permanently and release every resource.  Idempotent."""

    # ------------------------------------------------------------------
    # Scheduling helpers
    # ------------------------------------------------------------------

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle

        def _run() -> None:
            self._timers.discard(handle)
            callback()

        handle = loop.call_later(delay, _run)
        self._timers.add(handle)
        return handle

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._reap)
        return task

    def _reap(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _log.warning("transport_task_failed", transport=type(self).__name__, error=str(exc), exc_info=exc)

    def cancel_pending(self) -> None:
        """Cancel every timer and task, except the task currently running."""
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
