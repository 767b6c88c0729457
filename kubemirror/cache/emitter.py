"""Per-cache publish/subscribe.

Listeners are called synchronously, in registration order, with the
arguments passed to :meth:`EventEmitter.emit`.  A listener that raises is
logged and skipped; the remaining listeners still run.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from kubemirror.observability.logging import get_logger

Listener = Callable[..., Any]


@dataclass
class _Registration:
    listener: Listener
    once: bool


class EventEmitter:
    """Minimal typed event emitter: ``on``, ``once``, ``off``, ``emit``."""

    def __init__(self, name: str = "") -> None:
        self._name = name
        self._log = get_logger("cache.emitter")
        self._registrations: dict[str, list[_Registration]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> Listener:
        self._registrations[event].append(_Registration(listener, once=False))
        return listener

    def once(self, event: str, listener: Listener) -> Listener:
        self._registrations[event].append(_Registration(listener, once=True))
        return listener

    def off(self, event: str, listener: Listener | None = None) -> None:
        """Remove *listener* from *event*, or every listener when None."""
        if listener is None:
            self._registrations.pop(event, None)
            return
        remaining = [r for r in self._registrations.get(event, []) if r.listener != listener]
        if remaining:
            self._registrations[event] = remaining
        else:
            self._registrations.pop(event, None)

    def emit(self, event: str, *args: Any) -> int:
        """Deliver *args* to every listener of *event*.

        Returns:
            Number of listeners invoked.
        """
        registrations = list(self._registrations.get(event, []))
        if not registrations:
            return 0
        if any(r.once for r in registrations):
            kept = [r for r in self._registrations[event] if not r.once]
            if kept:
                self._registrations[event] = kept
            else:
                self._registrations.pop(event, None)

        for registration in registrations:
            try:
                registration.listener(*args)
            except Exception as exc:
                self._log.error(
                    "listener_failed",
                    emitter=self._name,
                    event_name=event,
                    error=str(exc),
                    exc_info=True,
                )
        return len(registrations)

    def listener_count(self, event: str) -> int:
        return len(self._registrations.get(event, []))

    def clear(self) -> None:
        self._registrations.clear()
