"""Tests for snapshot diffing."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from hypothesis import given, settings
from hypothesis import strategies as st

from kubemirror.cache.diff import diff
from kubemirror.models.resources import identity

Factory = Callable[..., dict[str, Any]]


class TestDiff:
    def test_added_modified_deleted(self, obj: Factory) -> None:
        old = [obj("keep"), obj("change", resource_version="1"), obj("gone")]
        new = [obj("keep"), obj("change", resource_version="2"), obj("fresh")]

        result = diff(old, new)

        assert [o["metadata"]["name"] for o in result.added] == ["fresh"]
        assert [o["metadata"]["name"] for o in result.modified] == ["change"]
        assert [o["metadata"]["name"] for o in result.deleted] == ["gone"]

    def test_modified_carries_the_new_object(self, obj: Factory) -> None:
        result = diff([obj("a", resource_version="1")], [obj("a", resource_version="2")])
        assert result.modified[0]["metadata"]["resourceVersion"] == "2"

    def test_key_order_does_not_count_as_modification(self) -> None:
        left = {"kind": "Pod", "metadata": {"name": "a", "namespace": "ns"}, "spec": {"x": 1, "y": 2}}
        right = {"spec": {"y": 2, "x": 1}, "metadata": {"namespace": "ns", "name": "a"}, "kind": "Pod"}
        assert diff([left], [right]).is_empty()

    def test_identity_includes_namespace_and_kind(self, obj: Factory) -> None:
        old = [obj("a", namespace="one")]
        new = [obj("a", namespace="two"), obj("a", namespace="one", kind="Service")]

        result = diff(old, new)

        assert len(result.added) == 2
        assert len(result.deleted) == 1

    def test_empty_inputs(self, obj: Factory) -> None:
        assert diff([], []).is_empty()
        assert len(diff([], [obj("a")]).added) == 1
        assert len(diff([obj("a")], []).deleted) == 1


def _snapshot(names: list[str], version: int) -> list[dict[str, Any]]:
    return [
        {"kind": "Pod", "metadata": {"name": n, "namespace": "default", "resourceVersion": str(version)}}
        for n in names
    ]


_name_sets = st.lists(st.sampled_from(["a", "b", "c", "d", "e", "f"]), unique=True, max_size=6)


class TestDiffProperties:
    @settings(max_examples=100)
    @given(names=_name_sets, version=st.integers(0, 5))
    def test_diff_of_snapshot_with_itself_is_empty(self, names: list[str], version: int) -> None:
        snapshot = _snapshot(names, version)
        assert diff(snapshot, snapshot).is_empty()

    @settings(max_examples=100)
    @given(old_names=_name_sets, new_names=_name_sets, old_v=st.integers(0, 2), new_v=st.integers(0, 2))
    def test_result_partitions_the_identities(
        self, old_names: list[str], new_names: list[str], old_v: int, new_v: int
    ) -> None:
        old = _snapshot(old_names, old_v)
        new = _snapshot(new_names, new_v)

        result = diff(old, new)
        added = {identity(o) for o in result.added}
        modified = {identity(o) for o in result.modified}
        deleted = {identity(o) for o in result.deleted}
        old_ids = {identity(o) for o in old}
        new_ids = {identity(o) for o in new}

        assert added == new_ids - old_ids
        assert deleted == old_ids - new_ids
        assert modified <= old_ids & new_ids
        assert not (added & modified) and not (added & deleted) and not (modified & deleted)
        if old_v == new_v:
            assert not modified
        else:
            assert modified == old_ids & new_ids
