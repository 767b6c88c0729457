"""kubemirror: shared local mirrors of Kubernetes resource collections.

A collection (one kind, optionally one namespace) is fetched once, kept in
sync over a websocket watch, and falls back to polling when the watch is not
available.  Any number of observers share one cache and one connection.
"""

__version__ = "0.1.0"
