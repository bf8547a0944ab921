"""Tests for dependency lookups and dependency-aware ordering."""

from __future__ import annotations

import logging

from guardian_engine.graph import DependencyIndex, order_by_dependencies
from guardian_engine.storage import InMemoryConfigStore


def _doc(*config: str, module: list[str] | None = None) -> dict:
    deps: dict[str, list[str]] = {"config": list(config)}
    if module:
        deps["module"] = module
    return {"dependencies": deps}


def _store() -> InMemoryConfigStore:
    return InMemoryConfigStore(
        {
            "field.storage.node.body": {"type": "text_long"},
            "field.field.node.article.body": _doc("field.storage.node.body", "node.type.article"),
            "field.field.node.page.body": _doc("field.storage.node.body", "node.type.page"),
            "node.type.article": {"name": "Article"},
            "node.type.page": {"name": "Page"},
            "views.view.content": _doc("node.type.article", module=["views"]),
        }
    )


# ---------------------------------------------------------------------------
# dependencies_of
# ---------------------------------------------------------------------------


class TestDependenciesOf:
    def test_reads_declared_dependencies(self) -> None:
        deps = DependencyIndex(_store()).dependencies_of("views.view.content")
        assert deps.config == ["node.type.article"]
        assert deps.module == ["views"]
        assert deps.theme == []
        assert deps.content == []

    def test_missing_name_yields_empty_categories(self) -> None:
        deps = DependencyIndex(_store()).dependencies_of("does.not.exist")
        assert deps.is_empty()

    def test_document_without_dependencies_block(self) -> None:
        assert DependencyIndex(_store()).dependencies_of("node.type.page").is_empty()

    def test_malformed_dependencies_are_ignored(self) -> None:
        store = InMemoryConfigStore({"a": {"dependencies": "nope"}, "b": {"dependencies": {"config": "x"}}})
        index = DependencyIndex(store)
        assert index.dependencies_of("a").is_empty()
        assert index.dependencies_of("b").config == []


# ---------------------------------------------------------------------------
# dependents_of
# ---------------------------------------------------------------------------


class TestDependentsOf:
    def test_scans_whole_store(self) -> None:
        dependents = DependencyIndex(_store()).dependents_of("field.storage.node.body")
        assert dependents == ["field.field.node.article.body", "field.field.node.page.body"]

    def test_no_dependents(self) -> None:
        assert DependencyIndex(_store()).dependents_of("views.view.content") == []

    def test_memoized_matches_scan(self) -> None:
        store = _store()
        plain = DependencyIndex(store)
        memo = plain.memoized()
        for name in store.list_all():
            assert memo.dependents_of(name) == plain.dependents_of(name)

    def test_memoized_index_ignores_later_writes(self) -> None:
        store = _store()
        memo = DependencyIndex(store, memoize=True)
        assert memo.dependents_of("node.type.page") == ["field.field.node.page.body"]

        store.write("views.view.pages", _doc("node.type.page"))

        assert memo.dependents_of("node.type.page") == ["field.field.node.page.body"]
        assert DependencyIndex(store).dependents_of("node.type.page") == [
            "field.field.node.page.body",
            "views.view.pages",
        ]

    def test_only_config_category_counts(self) -> None:
        store = InMemoryConfigStore({"a": {"dependencies": {"module": ["b"]}}, "b": {}})
        assert DependencyIndex(store).dependents_of("b") == []


# ---------------------------------------------------------------------------
# order_by_dependencies
# ---------------------------------------------------------------------------


class TestOrderByDependencies:
    def test_dependencies_come_first(self) -> None:
        documents = {
            "a.child": _doc("z.parent"),
            "z.parent": {},
            "m.other": {},
        }
        assert order_by_dependencies(documents, documents) == ["m.other", "z.parent", "a.child"]

    def test_dependencies_outside_the_set_do_not_constrain(self) -> None:
        documents = {"b": _doc("outside"), "a": {}}
        assert order_by_dependencies(["b", "a"], documents) == ["a", "b"]

    def test_chain(self) -> None:
        documents = {"a": _doc("b"), "b": _doc("c"), "c": {}}
        assert order_by_dependencies(["a", "b", "c"], documents) == ["c", "b", "a"]

    def test_cycle_falls_back_to_alphabetical(self, caplog) -> None:
        documents = {"b": _doc("a"), "a": _doc("b"), "c": {}}
        with caplog.at_level(logging.WARNING):
            assert order_by_dependencies(["c", "b", "a"], documents) == ["a", "b", "c"]
        assert "Cyclic config dependencies" in caplog.text

    def test_self_dependency_is_ignored(self) -> None:
        documents = {"a": _doc("a"), "b": {}}
        assert order_by_dependencies(["b", "a"], documents) == ["a", "b"]

    def test_small_inputs(self) -> None:
        assert order_by_dependencies([], {}) == []
        assert order_by_dependencies(["x", "x"], {}) == ["x"]
