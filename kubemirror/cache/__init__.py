"""Cache layer for kubemirror.

Provides the per-collection in-memory mirror that the transports feed and
the collection client reads.

Submodules:
    debounce        -- Trailing-edge debouncer for the coalesced "changed" event.
    diff            -- Snapshot comparison used by the poll transport.
    emitter         -- Synchronous, registration-ordered event emitter.
    resource_cache  -- Snapshot store with ADDED/MODIFIED/DELETED/INIT/ANY events.
"""

from kubemirror.cache.diff import diff
from kubemirror.cache.resource_cache import ResourceCache

__all__ = ["ResourceCache", "diff"]
