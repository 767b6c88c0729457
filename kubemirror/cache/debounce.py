"""Trailing-edge debouncing on the running asyncio loop."""

from __future__ import annotations

import asyncio
from collections.abc import Callable


class TrailingDebouncer:
    """Deliver *callback* no earlier than *delay* after the latest trigger.

    Any number of :meth:`trigger` calls inside the quiet window collapse
    into a single delivery.  Must be used from within a running event loop.
    """

    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self._delay = delay
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self._delay, self._fire)

    def flush(self) -> None:
        """Cancel any pending delivery and deliver now."""
        self.cancel()
        self._callback()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._callback()
