"""Comparison, export and import between the active and sync storages."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from guardian_engine.analysis.conflicts import find_conflicts
from guardian_engine.analysis.risk_scorer import RiskScorer
from guardian_engine.diff.changeset import compute_changelist, read_all
from guardian_engine.exceptions import ConflictDetectedError
from guardian_engine.graph.dependency_index import DependencyIndex
from guardian_engine.models.activity import ActivityAction, ActivityStatus
from guardian_engine.models.analysis import ConflictSeverity
from guardian_engine.models.diff import Changelist
from guardian_engine.models.snapshot import SnapshotType
from guardian_engine.models.sync import (
    EnvironmentStatus,
    ExportPreview,
    ImportPreview,
    PreviewItem,
    Recommendation,
    StatusWarning,
    SyncStatus,
    TransferResult,
)
from guardian_engine.rollback.engine import apply_changes, signal_refresh
from guardian_engine.snapshot.manager import SnapshotManager
from guardian_engine.storage.base import (
    CacheInvalidator,
    ConfigStore,
    ExtensionModuleRegistry,
    ModuleRegistry,
    NullCacheInvalidator,
)

logger = logging.getLogger(__name__)

# Deleting more documents than this in one direction earns a "danger" warning.
DESTRUCTIVE_DELETE_THRESHOLD = 10


def _warning(kind: str, message: str) -> StatusWarning:
    return StatusWarning(type=kind, message=message)


@dataclass
class ImportContext:
    """State scoped to one import operation.

    The host may fire its validation hook several times per import; the
    context remembers whether the safety snapshot has already been taken
    so it is taken at most once.
    """

    backup_attempted: bool = False
    backup_snapshot_id: int | None = None
    warnings: list[str] = field(default_factory=list)


class ConfigSyncService:
    """Status, previews, export and import between active and sync storage.

    Parameters
    ----------
    snapshots:
        Supplies both stores, settings and the activity log.
    modules:
        Installed-module lookup for conflict detection and owner modules.
    invalidator:
        Told to refresh configuration after an import.
    """

    def __init__(
        self,
        snapshots: SnapshotManager,
        *,
        modules: ModuleRegistry | None = None,
        invalidator: CacheInvalidator | None = None,
    ) -> None:
        self._snapshots = snapshots
        self._active = snapshots.active_store
        self._sync = snapshots.sync_store
        self._modules = modules or ExtensionModuleRegistry(self._active)
        self._invalidator = invalidator or NullCacheInvalidator()

    def _scorer(self) -> RiskScorer:
        return RiskScorer(DependencyIndex(self._active, memoize=True), self._modules)

    # -- comparison ----------------------------------------------------------

    def pending_changes(self) -> Changelist:
        """Changes an import would make to the active store (sync → active)."""
        return compute_changelist(read_all(self._sync), read_all(self._active))

    def environment_status(self) -> EnvironmentStatus:
        active_docs = read_all(self._active)
        sync_docs = read_all(self._sync)
        import_changes = compute_changelist(sync_docs, active_docs)
        export_changes = compute_changelist(active_docs, sync_docs)

        only_active = export_changes.create
        only_sync = import_changes.create
        modified = import_changes.update
        warnings: list[StatusWarning] = []

        if not import_changes.has_changes() and not export_changes.has_changes():
            status, recommendation = SyncStatus.SYNCED, Recommendation.NONE
        elif not sync_docs and active_docs:
            status, recommendation = SyncStatus.NEEDS_EXPORT, Recommendation.EXPORT
            warnings.append(_warning("info", "The sync directory is empty. Export the active configuration."))
        elif not active_docs and sync_docs:
            status, recommendation = SyncStatus.NEEDS_IMPORT, Recommendation.IMPORT
            warnings.append(_warning("info", "There is no active configuration. Import from sync to set it up."))
        elif only_active and not only_sync and not modified:
            status, recommendation = SyncStatus.NEEDS_EXPORT, Recommendation.EXPORT
            warnings.append(_warning("info", f"{len(only_active)} new configuration(s) in active are not in sync."))
        elif only_sync and not only_active and not modified:
            status, recommendation = SyncStatus.NEEDS_IMPORT, Recommendation.IMPORT
            warnings.append(_warning("info", f"{len(only_sync)} configuration(s) in sync are waiting to be imported."))
        elif modified and not only_active and not only_sync:
            status, recommendation = SyncStatus.DIVERGED, Recommendation.REVIEW
            warnings.append(
                _warning("warning", f"{len(modified)} configuration(s) differ. Review them before syncing.")
            )
        else:
            status, recommendation = SyncStatus.DIVERGED, Recommendation.REVIEW
            warnings.append(_warning("warning", "The environment has diverged: there are changes in both directions."))
            if len(import_changes.delete) > DESTRUCTIVE_DELETE_THRESHOLD:
                warnings.append(
                    _warning("danger", f"Importing would delete {len(import_changes.delete)} active configuration(s).")
                )
            if len(export_changes.delete) > DESTRUCTIVE_DELETE_THRESHOLD:
                warnings.append(
                    _warning("danger", f"Exporting would delete {len(export_changes.delete)} file(s) from sync.")
                )

        return EnvironmentStatus(
            status=status,
            recommendation=recommendation,
            active_count=len(active_docs),
            sync_count=len(sync_docs),
            import_changes=import_changes,
            export_changes=export_changes,
            modified=sorted(modified),
            warnings=warnings,
        )

    def export_preview(self) -> ExportPreview:
        active_docs = read_all(self._active)
        changes = compute_changelist(active_docs, read_all(self._sync))
        changed = set(changes.create) | set(changes.update)

        grouped: dict[str, list[str]] = {}
        for name in sorted(active_docs):
            grouped.setdefault(name.split(".", 1)[0] or "other", []).append(name)

        return ExportPreview(
            total=len(active_docs),
            new=sorted(changes.create),
            modified=sorted(changes.update),
            unchanged=[name for name in sorted(active_docs) if name not in changed],
            to_delete=sorted(changes.delete),
            grouped=dict(sorted(grouped.items())),
        )

    def import_preview(self) -> ImportPreview:
        """Per-item risk, aggregate risk and conflicts for importing sync into active."""
        changes = self.pending_changes()
        scorer = self._scorer()
        preview = ImportPreview()

        for action in ("create", "update", "delete"):
            items: list[PreviewItem] = getattr(preview, action)
            for name in getattr(changes, action):
                analysis = scorer.analyze_config(name)
                items.append(
                    PreviewItem(
                        name=name,
                        type=analysis.config_type,
                        risk=analysis.risk_level,
                        dependents_count=len(analysis.dependents),
                    )
                )

        all_changed = [*changes.create, *changes.update, *changes.delete]
        if all_changed:
            preview.risk_assessment = scorer.calculate_risk_score(all_changed)
        preview.conflicts = find_conflicts(
            [*changes.create, *changes.update], self._active, self._sync, self._modules
        )
        return preview

    # -- export --------------------------------------------------------------

    def export_config(self, name: str) -> bool:
        """Copy one active document to sync; ``False`` if it is not in active."""
        document = self._active.read(name)
        if document is None:
            return False
        self._sync.write(name, document)
        return True

    async def export_all(self) -> TransferResult:
        """Make the sync store mirror the active store."""
        start = time.perf_counter()
        changes = compute_changelist(read_all(self._active), read_all(self._sync))
        result = self._transfer(self._sync, changes, read_all(self._active), "sync")
        result.duration_ms = round((time.perf_counter() - start) * 1000, 3)

        await self._snapshots.activity.record(
            ActivityAction.CONFIG_EXPORTED,
            details={"written": len(result.written), "deleted": len(result.deleted), "errors": result.errors},
            config_names=result.written,
            status=ActivityStatus.SUCCESS if result.success else ActivityStatus.WARNING,
        )
        return result

    # -- import --------------------------------------------------------------

    async def before_import(self, context: ImportContext) -> int | None:
        """Take the pre-import safety snapshot once per *context*.

        Does nothing when the setting is off.  A failure is recorded on the
        context and logged, never raised.
        """
        if context.backup_attempted or not self._snapshots.settings.auto_snapshot_before_import:
            return context.backup_snapshot_id
        context.backup_attempted = True

        stamp = datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S")
        try:
            record = await self._snapshots.create_snapshot(
                f"Pre-import snapshot - {stamp}",
                SnapshotType.PRE_IMPORT,
                description="Automatic snapshot taken before configuration import",
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not create pre-import snapshot: %s", exc)
            context.warnings.append(f"Could not create pre-import snapshot: {exc}")
            return None

        context.backup_snapshot_id = record.id
        return record.id

    async def import_all(self, context: ImportContext | None = None, *, force: bool = False) -> TransferResult:
        """Make the active store mirror the sync store.

        Raises
        ------
        ConflictDetectedError
            When ``error`` conflicts exist and *force* is not set.  Nothing
            is written in that case.
        """
        context = context or ImportContext()
        pending = self.pending_changes()
        preview_conflicts = find_conflicts(
            [*pending.create, *pending.update],
            self._active,
            self._sync,
            self._modules,
        )
        blocking = [c for c in preview_conflicts if c.severity == ConflictSeverity.ERROR]
        if blocking and not force:
            raise ConflictDetectedError(blocking)

        await self.before_import(context)

        start = time.perf_counter()
        sync_docs = read_all(self._sync)
        changes = compute_changelist(sync_docs, read_all(self._active))
        result = self._transfer(self._active, changes, sync_docs, "active")
        result.backup_snapshot_id = context.backup_snapshot_id
        result.duration_ms = round((time.perf_counter() - start) * 1000, 3)

        refresh_warning = signal_refresh(self._invalidator)
        if refresh_warning:
            result.warnings.append(refresh_warning)

        await self._snapshots.activity.record(
            ActivityAction.CONFIG_IMPORTED,
            details={
                "written": len(result.written),
                "deleted": len(result.deleted),
                "errors": result.errors,
                "backup_snapshot_id": result.backup_snapshot_id,
                "forced": bool(blocking),
            },
            config_names=[*result.written, *result.deleted],
            snapshot_id=result.backup_snapshot_id,
            status=ActivityStatus.SUCCESS if result.success else ActivityStatus.WARNING,
        )
        return result

    @staticmethod
    def _transfer(store: ConfigStore, changes: Changelist, documents: dict[str, Any], label: str) -> TransferResult:
        applied, _failed, errors = apply_changes(store, changes, documents, label)
        logger.info(
            "Transferred to %s: %d written, %d deleted, %d error(s)",
            label,
            len(applied.create) + len(applied.update),
            len(applied.delete),
            len(errors),
        )
        return TransferResult(
            written=[*applied.create, *applied.update],
            deleted=list(applied.delete),
            errors=errors,
        )
