"""Tests for advisory conflict detection."""

from __future__ import annotations

from guardian_engine.analysis import find_conflicts
from guardian_engine.models import ConflictSeverity, ConflictType
from guardian_engine.storage import InMemoryConfigStore, StaticModuleRegistry


def _doc(config: list[str] | None = None, module: list[str] | None = None) -> dict:
    return {"dependencies": {"config": config or [], "module": module or []}}


class TestFindConflicts:
    def test_missing_module_is_an_error(self) -> None:
        active = InMemoryConfigStore({"views.view.content": {}})
        target = InMemoryConfigStore({"views.view.content": _doc(module=["views", "webform"])})

        conflicts = find_conflicts(["views.view.content"], active, target, StaticModuleRegistry({"views"}))

        assert len(conflicts) == 1
        conflict = conflicts[0]
        assert conflict.config == "views.view.content"
        assert conflict.type == ConflictType.MISSING_MODULE
        assert conflict.severity == ConflictSeverity.ERROR
        assert conflict.details == "Requires module 'webform' which is not installed"

    def test_missing_config_dependency_is_a_warning(self) -> None:
        active = InMemoryConfigStore({"field.field.node.page.body": {}})
        target = InMemoryConfigStore({"field.field.node.page.body": _doc(config=["field.storage.node.body"])})

        conflicts = find_conflicts(["field.field.node.page.body"], active, target, StaticModuleRegistry())

        assert [(c.type, c.severity) for c in conflicts] == [
            (ConflictType.MISSING_DEPENDENCY, ConflictSeverity.WARNING)
        ]
        assert conflicts[0].details == "Depends on 'field.storage.node.body' which does not exist"

    def test_dependency_in_candidate_set_is_satisfied(self) -> None:
        active = InMemoryConfigStore({"a": {}, "b": {}})
        target = InMemoryConfigStore({"a": _doc(config=["c"]), "b": _doc(config=["a"])})
        assert find_conflicts(["a", "b", "c"], active, target, StaticModuleRegistry()) == []

    def test_dependency_in_active_store_is_satisfied(self) -> None:
        active = InMemoryConfigStore({"a": {}, "dep": {}})
        target = InMemoryConfigStore({"a": _doc(config=["dep"])})
        assert find_conflicts(["a"], active, target, StaticModuleRegistry()) == []

    def test_names_absent_from_active_are_skipped(self) -> None:
        active = InMemoryConfigStore()
        target = InMemoryConfigStore({"new.config": _doc(config=["missing"], module=["missing"])})
        assert find_conflicts(["new.config"], active, target, StaticModuleRegistry()) == []

    def test_names_absent_from_target_are_skipped(self) -> None:
        active = InMemoryConfigStore({"a": _doc(module=["missing"])})
        assert find_conflicts(["a"], active, InMemoryConfigStore(), StaticModuleRegistry()) == []

    def test_module_and_config_conflicts_together(self) -> None:
        active = InMemoryConfigStore({"a": {}})
        target = InMemoryConfigStore({"a": _doc(config=["gone"], module=["nope"])})
        conflicts = find_conflicts(["a"], active, target, StaticModuleRegistry())
        assert [c.severity for c in conflicts] == [ConflictSeverity.ERROR, ConflictSeverity.WARNING]
