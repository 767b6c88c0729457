"""Polling transport for collections that cannot (or can no longer) stream.

Each cycle fetches the whole collection, diffs it against the previous fetch
and replays the difference into the cache as ADDED/MODIFIED/DELETED calls, so
downstream consumers cannot tell polled updates from streamed ones.

Failure handling
----------------
403            -- polling stops for good, silently.
other failures -- retried at the poll interval; after ``max_retries``
                  consecutive failures polling stops for good and
                  ``on_failure`` is called once.

A poller that stopped for good ignores later :meth:`PollTransport.start` calls.
"""

from __future__ import annotations

import copy
from collections.abc import Callable

from kubemirror.cache.diff import diff
from kubemirror.cache.resource_cache import ResourceCache
from kubemirror.collector.base import Transport
from kubemirror.collector.rest import RestClient
from kubemirror.errors import AuthorizationError, KubeMirrorError
from kubemirror.models.resources import Snapshot
from kubemirror.observability.logging import get_logger
from kubemirror.observability.metrics import poll_failures_total

_FIRST_CYCLE_DELAY_S: float = 0.001


class PollTransport(Transport):
    """Periodic fetch, diff and replay loop, active only while connected.

    Args:
        cache:       Cache to replay differences into.  Not owned.
        rest:        REST client used for the collection GET.
        url_source:  Returns the collection URL, or None while unresolvable.
        interval:    Seconds between cycles (and between retries).
        max_retries: Consecutive failures tolerated before giving up.
        on_failure:  Called once with the last error when retries run out.
        baseline:    Snapshot the first fetch is compared against.  Defaults
                     to the cache's current contents.
    """

    def __init__(
        self,
        cache: ResourceCache,
        rest: RestClient,
        url_source: Callable[[], str | None],
        interval: float = 5.0,
        max_retries: int = 3,
        on_failure: Callable[[KubeMirrorError], None] | None = None,
        baseline: Snapshot | None = None,
    ) -> None:
        super().__init__()
        self._cache = cache
        self._rest = rest
        self._url_source = url_source
        self._interval = interval
        self._max_retries = max_retries
        self._on_failure = on_failure
        self._last_fetch: Snapshot = copy.deepcopy(baseline if baseline is not None else cache.objects)
        self._connected = False
        self._destroyed = False
        self._halted = False
        self._retries = 0
        self._log = get_logger("collector.poller").bind(key=cache.key)

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def retries(self) -> int:
        return self._retries

    @property
    def halted(self) -> bool:
        """True once a 403 or exhausted retries ended polling."""
        return self._halted

    def start(self) -> None:
        if self._connected or self._destroyed or self._halted:
            return
        self._connected = True
        self._log.debug("poll_started", interval=self._interval)
        self.call_later(_FIRST_CYCLE_DELAY_S, self._next_cycle)

    def stop(self) -> None:
        was_connected = self._connected
        self._connected = False
        self.cancel_pending()
        if was_connected:
            self._log.debug("poll_stopped")

    def destroy(self) -> None:
        self._destroyed = True
        self.stop()

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def _next_cycle(self) -> None:
        if self._connected:
            self.spawn(self._poll_once())

    async def _poll_once(self) -> None:
        url = self._url_source()
        if url is None:
            self._log.debug("poll_url_unresolved")
            self.call_later(self._interval, self._next_cycle)
            return

        try:
            items = await self._rest.list_items(url)
        except AuthorizationError:
            if self._connected:
                self._log.info("poll_not_authorized", url=url)
                self._halted = True
                self.stop()
            return
        except KubeMirrorError as exc:
            if self._connected:
                self._handle_failure(exc)
            return

        if not self._connected:
            return
        self._retries = 0
        self._replay(items)
        self.call_later(self._interval, self._next_cycle)

    def _replay(self, items: Snapshot) -> None:
        fetched = [self._cache.normalize(item) for item in items]
        result = diff(self._last_fetch, fetched)
        self._last_fetch = fetched
        if not result.is_empty():
            self._log.debug(
                "poll_diff",
                added=len(result.added),
                modified=len(result.modified),
                deleted=len(result.deleted),
            )
        # Replayed objects are copies so later in-place updates of cache
        # residents never alias the baseline.
        for obj in result.added:
            self._cache.add(copy.deepcopy(obj))
        for obj in result.modified:
            self._cache.modify(copy.deepcopy(obj))
        for obj in result.deleted:
            self._cache.delete(copy.deepcopy(obj))
        self._cache.initialize()

    def _handle_failure(self, exc: KubeMirrorError) -> None:
        poll_failures_total.labels(kind=self._cache.kind).inc()
        if self._retries >= self._max_retries:
            self._log.warning("poll_retries_exhausted", retries=self._retries, error=str(exc))
            self._halted = True
            self.stop()
            if self._on_failure is not None:
                try:
                    self._on_failure(exc)
                except Exception as cb_exc:
                    self._log.error("poll_failure_callback_failed", error=str(cb_exc), exc_info=True)
            return
        self._retries += 1
        self._log.debug("poll_failed", retry=self._retries, error=str(exc))
        self.call_later(self._interval, self._next_cycle)
