"""Prometheus metrics for caches, transports and the client registry."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

cache_objects = Gauge(
    "kubemirror_cache_objects",
    "Objects resident in a collection cache",
    ["key"],
)

stream_reconnects_total = Counter(
    "kubemirror_stream_reconnects_total",
    "Watch reconnects scheduled after an established stream closed",
    ["kind"],
)

stream_fallbacks_total = Counter(
    "kubemirror_stream_fallbacks_total",
    "Collections that abandoned streaming and switched to polling",
    ["kind"],
)

stream_messages_dropped_total = Counter(
    "kubemirror_stream_messages_dropped_total",
    "Watch messages dropped because they could not be decoded",
    ["kind"],
)

poll_failures_total = Counter(
    "kubemirror_poll_failures_total",
    "Failed poll cycles",
    ["kind"],
)

collections_active = Gauge(
    "kubemirror_collections_active",
    "Collections currently held by the client registry",
)
