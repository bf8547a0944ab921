"""Advisory conflict detection for configuration being brought into active storage."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from guardian_engine.models.analysis import Conflict, ConflictSeverity, ConflictType, DependencySet
from guardian_engine.storage.base import ConfigStore, ModuleRegistry

logger = logging.getLogger(__name__)


def find_conflicts(
    names: Sequence[str],
    active_store: ConfigStore,
    target_store: ConfigStore,
    modules: ModuleRegistry,
) -> list[Conflict]:
    """Report dependencies that the incoming documents cannot satisfy.

    Only names that already exist in *active_store* and have a document in
    *target_store* (the store being imported from) are inspected.  Missing
    modules are ``error`` severity; config dependencies that are neither in
    *names* nor in *active_store* are ``warning`` severity.

    Conflicts never stop scoring.  Callers decide whether ``error``
    conflicts block a destructive operation.
    """
    candidates = set(names)
    conflicts: list[Conflict] = []

    for name in names:
        if not active_store.exists(name):
            continue
        document = target_store.read(name)
        if not document:
            continue

        deps = DependencySet.from_document(document)
        for module in deps.module:
            if not modules.module_exists(module):
                conflicts.append(
                    Conflict(
                        config=name,
                        type=ConflictType.MISSING_MODULE,
                        severity=ConflictSeverity.ERROR,
                        details=f"Requires module '{module}' which is not installed",
                    )
                )
        for dependency in deps.config:
            if dependency not in candidates and not active_store.exists(dependency):
                conflicts.append(
                    Conflict(
                        config=name,
                        type=ConflictType.MISSING_DEPENDENCY,
                        severity=ConflictSeverity.WARNING,
                        details=f"Depends on '{dependency}' which does not exist",
                    )
                )

    if conflicts:
        logger.info("Found %d conflict(s) across %d name(s)", len(conflicts), len(candidates))
    return conflicts
