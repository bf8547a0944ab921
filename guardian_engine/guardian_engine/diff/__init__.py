"""Changelist computation between named-document collections."""

from guardian_engine.diff.changeset import compare_with_store, compute_changelist, read_all

__all__ = ["compare_with_store", "compute_changelist", "read_all"]
