"""Changelist computation between two collections of named documents.

The comparison is structural: documents are equal when their canonical
JSON serialisations match, so key order never produces an update.
Renames are not detected; a renamed document appears as a delete of the
old name plus a create of the new one.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from guardian_engine.canonical import documents_equal
from guardian_engine.graph.dependency_index import order_by_dependencies
from guardian_engine.models.diff import Changelist
from guardian_engine.storage.base import ConfigStore
from guardian_engine.telemetry.profiling import profile_operation

logger = logging.getLogger(__name__)


def read_all(store: ConfigStore) -> dict[str, Any]:
    """Read every document in *store*, skipping names that vanish mid-read."""
    documents: dict[str, Any] = {}
    for name in store.list_all():
        document = store.read(name)
        if document is not None:
            documents[name] = document
    return documents


@profile_operation("changeset.compute")
def compute_changelist(source: Mapping[str, Any], target: Mapping[str, Any]) -> Changelist:
    """Compute what must change in *target* so that it equals *source*.

    Parameters
    ----------
    source:
        Desired state, ``{name: document}``.
    target:
        Current state, ``{name: document}``.

    Returns
    -------
    Changelist
        ``create`` and ``update`` are ordered so that config dependencies
        inside the bucket come first; ``delete`` uses the reverse order so
        dependents are removed before what they depend on.  Names never
        move between buckets.
    """
    create = [name for name in source if name not in target]
    delete = [name for name in target if name not in source]
    update = [name for name in source if name in target and not documents_equal(source[name], target[name])]

    changelist = Changelist(
        create=order_by_dependencies(create, source),
        update=order_by_dependencies(update, source),
        delete=list(reversed(order_by_dependencies(delete, target))),
    )
    logger.debug(
        "Changelist: %d create, %d update, %d delete",
        len(changelist.create),
        len(changelist.update),
        len(changelist.delete),
    )
    return changelist


def compare_with_store(source: Mapping[str, Any], store: ConfigStore) -> Changelist:
    """Changelist that would bring *store* to the state described by *source*."""
    return compute_changelist(source, read_all(store))
