"""Collector package for kubemirror.

Transports that keep a ResourceCache in sync with the API server.

Submodules
----------
base    -- Transport: timer/task bookkeeping shared by both transports.
rest    -- RestClient: collection GET and object POST/PUT/DELETE over httpx.
stream  -- StreamTransport: websocket watch, bounded reconnect, polling fallback.
poller  -- PollTransport: fetch, diff and replay loop.
"""

from kubemirror.collector.poller import PollTransport
from kubemirror.collector.rest import RestClient
from kubemirror.collector.stream import StreamState, StreamTransport

__all__ = ["PollTransport", "RestClient", "StreamState", "StreamTransport"]
