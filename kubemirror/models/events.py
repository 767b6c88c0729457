"""Watch actions and change events emitted by a ResourceCache."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class WatchAction(StrEnum):
    """Event names on a cache's emitter.

    ``ADDED``/``MODIFIED``/``DELETED`` double as the ``type`` values of a
    watch envelope.  ``ANY`` is the coalesced "changed" notification.
    """

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    INIT = "INIT"
    ANY = "ANY"


@dataclass(frozen=True)
class ChangeEvent:
    """One decoded watch envelope: ``{"type": ..., "object": {...}}``."""

    action: WatchAction
    object: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_envelope(cls, data: Any) -> ChangeEvent:
        """Build a ChangeEvent from a decoded envelope.

        Raises:
            ValueError: if the envelope is not a dict, has an unknown type,
                or carries a non-dict object.
        """
        if not isinstance(data, dict):
            raise ValueError(f"watch envelope must be an object, got {type(data).__name__}")
        raw_type = str(data.get("type", "")).upper()
        if raw_type not in (WatchAction.ADDED, WatchAction.MODIFIED, WatchAction.DELETED):
            raise ValueError(f"unsupported watch event type: {raw_type!r}")
        obj = data.get("object")
        if not isinstance(obj, dict):
            raise ValueError("watch envelope has no object")
        return cls(action=WatchAction(raw_type), object=obj)


@dataclass(frozen=True)
class Diff:
    """Result of comparing two snapshots."""

    added: list[dict[str, Any]] = field(default_factory=list)
    modified: list[dict[str, Any]] = field(default_factory=list)
    deleted: list[dict[str, Any]] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.deleted)
