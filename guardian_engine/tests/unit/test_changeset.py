"""Tests for changelist computation."""

from __future__ import annotations

from guardian_engine.diff import compare_with_store, compute_changelist, read_all
from guardian_engine.storage import InMemoryConfigStore


class TestComputeChangelist:
    def test_create_update_delete(self) -> None:
        source = {"a": {"v": 1}, "b": {"v": 2}, "d": {"v": 4}}
        target = {"a": {"v": 1}, "b": {"v": 9}, "c": {"v": 3}}

        changes = compute_changelist(source, target)

        assert changes.create == ["d"]
        assert changes.update == ["b"]
        assert changes.delete == ["c"]
        assert changes.rename == []
        assert changes.total == 3
        assert changes.has_changes()

    def test_identical_collections(self) -> None:
        docs = {"a": {"v": 1}}
        changes = compute_changelist(docs, {"a": {"v": 1}})
        assert not changes.has_changes()
        assert changes.counts() == {"create": 0, "update": 0, "delete": 0, "rename": 0}

    def test_key_order_is_not_a_change(self) -> None:
        source = {"a": {"x": 1, "y": {"p": 1, "q": 2}}}
        target = {"a": {"y": {"q": 2, "p": 1}, "x": 1}}
        assert not compute_changelist(source, target).has_changes()

    def test_list_order_is_a_change(self) -> None:
        assert compute_changelist({"a": {"l": [1, 2]}}, {"a": {"l": [2, 1]}}).update == ["a"]

    def test_rename_is_delete_plus_create(self) -> None:
        changes = compute_changelist({"new.name": {"v": 1}}, {"old.name": {"v": 1}})
        assert changes.create == ["new.name"]
        assert changes.delete == ["old.name"]
        assert changes.rename == []

    def test_buckets_follow_dependencies(self) -> None:
        source = {
            "a.child": {"dependencies": {"config": ["z.parent"]}},
            "z.parent": {},
        }
        target = {
            "b.child": {"dependencies": {"config": ["y.parent"]}},
            "y.parent": {},
        }
        changes = compute_changelist(source, target)
        assert changes.create == ["z.parent", "a.child"]
        # dependents are deleted before what they depend on
        assert changes.delete == ["b.child", "y.parent"]


class TestStoreHelpers:
    def test_read_all(self) -> None:
        store = InMemoryConfigStore({"b": {"v": 2}, "a": {"v": 1}})
        assert read_all(store) == {"a": {"v": 1}, "b": {"v": 2}}

    def test_compare_with_store(self) -> None:
        store = InMemoryConfigStore({"a": {"v": 1}, "extra": {}})
        changes = compare_with_store({"a": {"v": 2}}, store)
        assert changes.update == ["a"]
        assert changes.delete == ["extra"]
