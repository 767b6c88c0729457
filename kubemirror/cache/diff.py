"""Snapshot comparison used by the poll transport."""

from __future__ import annotations

import json
from collections.abc import Callable, Hashable, Sequence
from typing import Any

from kubemirror.models.events import Diff
from kubemirror.models.resources import ResourceObject, identity


def _serialize(obj: ResourceObject) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)


def diff(
    old: Sequence[ResourceObject],
    new: Sequence[ResourceObject],
    key: Callable[[ResourceObject], Hashable] = identity,
) -> Diff:
    """Compare two snapshots by identity.

    ``added`` are objects of *new* whose identity is absent from *old*,
    ``deleted`` are objects of *old* absent from *new*, and ``modified`` are
    objects of *new* whose serialized value differs from the *old* object of
    the same identity.  Each list keeps the order of its source snapshot.
    """
    old_by_key: dict[Hashable, Any] = {key(obj): obj for obj in old}
    new_keys = set()
    result = Diff()

    for obj in new:
        k = key(obj)
        new_keys.add(k)
        previous = old_by_key.get(k)
        if previous is None:
            result.added.append(obj)
        elif _serialize(previous) != _serialize(obj):
            result.modified.append(obj)

    for obj in old:
        if key(obj) not in new_keys:
            result.deleted.append(obj)

    return result
