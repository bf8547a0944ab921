"""Changelist and snapshot comparison models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class Changelist(BaseModel):
    """Difference between a source and a target collection of named documents.

    Applying the changelist to the target makes it equal to the source.
    ``rename`` is always empty: renames surface as a delete plus a create.
    """

    create: list[str] = Field(default_factory=list, description="Names in source absent from target.")
    update: list[str] = Field(default_factory=list, description="Names in both whose documents differ.")
    delete: list[str] = Field(default_factory=list, description="Names in target absent from source.")
    rename: list[tuple[str, str]] = Field(default_factory=list, description="(from, to) pairs.")

    def has_changes(self) -> bool:
        return bool(self.create or self.update or self.delete or self.rename)

    @property
    def total(self) -> int:
        return len(self.create) + len(self.update) + len(self.delete) + len(self.rename)

    def counts(self) -> dict[str, int]:
        return {
            "create": len(self.create),
            "update": len(self.update),
            "delete": len(self.delete),
            "rename": len(self.rename),
        }


class ModifiedDocument(BaseModel):
    """Before/after values of a document that changed between two snapshots."""

    before: Any
    after: Any


class SnapshotDiff(BaseModel):
    """Comparison of the active data of two snapshots."""

    added: dict[str, Any] = Field(default_factory=dict, description="Present only in the second snapshot.")
    removed: dict[str, Any] = Field(default_factory=dict, description="Present only in the first snapshot.")
    modified: dict[str, ModifiedDocument] = Field(default_factory=dict)

    def has_differences(self) -> bool:
        return bool(self.added or self.removed or self.modified)

    @property
    def total_changes(self) -> int:
        return len(self.added) + len(self.removed) + len(self.modified)
