"""Rollback orchestration: simulate, apply, restore selected names, or plan a batch.

A rollback moves through ``IDLE → (BACKING_UP) → COMPARING → APPLYING →
SUCCEEDED | FAILED``.  Changes are applied to the active store (create,
update, delete) before the sync store (create, update, delete), so an
interrupted run leaves the live configuration consistent while the sync
mirror lags behind.

Writes are not transactional across documents.  Per-name failures are
collected instead of aborting, and the result lists exactly which names
were applied and which failed.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from guardian_engine.analysis.conflicts import find_conflicts
from guardian_engine.analysis.risk_scorer import RiskScorer
from guardian_engine.diff.changeset import compare_with_store
from guardian_engine.exceptions import IntegrityCheckFailedError, SnapshotNotFoundError
from guardian_engine.graph.dependency_index import DependencyIndex
from guardian_engine.models.activity import ActivityAction, ActivityStatus
from guardian_engine.models.diff import Changelist
from guardian_engine.models.rollback import (
    RollbackBatchPlan,
    RollbackResult,
    RollbackSimulation,
    RollbackState,
    SelectiveRestoreResult,
)
from guardian_engine.models.snapshot import SnapshotPayload, SnapshotType
from guardian_engine.patterns import filter_excluded
from guardian_engine.snapshot.manager import SnapshotManager
from guardian_engine.storage.base import (
    CacheInvalidator,
    ConfigStore,
    ExtensionModuleRegistry,
    ModuleRegistry,
    NullCacheInvalidator,
)
from guardian_engine.storage.memory import InMemoryConfigStore
from guardian_engine.telemetry.profiling import profile_operation

logger = logging.getLogger(__name__)

CONFIG_TAG = "guardian:config"

NO_CHANGES_MESSAGE = "No changes needed - already at snapshot state"
SUCCESS_MESSAGE = "Rollback completed successfully"
PARTIAL_MESSAGE = "Rollback finished with errors"


def signal_refresh(invalidator: CacheInvalidator) -> str | None:
    """Invalidate configuration caches and request a rebuild.

    Runs after changes are already applied, so a failure is returned as a
    warning message instead of raised.
    """
    try:
        invalidator.invalidate([CONFIG_TAG])
        invalidator.refresh()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Cache refresh after applying changes failed: %s", exc)
        return f"Cache refresh failed: {exc}"
    return None


def apply_changes(
    store: ConfigStore,
    changelist: Changelist,
    documents: Mapping[str, Any],
    label: str,
) -> tuple[Changelist, list[str], list[str]]:
    """Apply *changelist* to *store* with best-effort semantics.

    Creates and updates write the document from *documents*; deletes remove
    the name.  Every failure is recorded and the loop carries on.

    Returns
    -------
    tuple
        ``(applied, failed_names, error_messages)`` where *applied* lists
        only the names that succeeded, bucket by bucket.
    """
    applied = Changelist()
    failed: list[str] = []
    errors: list[str] = []

    for action in ("create", "update", "delete"):
        done: list[str] = getattr(applied, action)
        for name in getattr(changelist, action):
            try:
                if action == "delete":
                    store.delete(name)
                else:
                    document = documents.get(name)
                    if document is None:
                        raise LookupError(f"'{name}' not found in snapshot")
                    store.write(name, document)
            except Exception as exc:  # noqa: BLE001
                failed.append(name)
                errors.append(f"Failed to {action} {label} '{name}': {exc}")
                logger.warning("Failed to %s %s '%s': %s", action, label, name, exc)
            else:
                done.append(name)

    return applied, failed, errors


class RollbackEngine:
    """Restores configuration storages to the state captured in a snapshot.

    Parameters
    ----------
    snapshots:
        Snapshot manager; also supplies the active and sync stores and
        the exclusion settings.
    scorer:
        Risk scorer for simulations.  Built over the active store when omitted.
    modules:
        Installed-module lookup used for conflict detection.
    invalidator:
        Told to drop cached configuration after changes are applied.
    """

    def __init__(
        self,
        snapshots: SnapshotManager,
        scorer: RiskScorer | None = None,
        *,
        modules: ModuleRegistry | None = None,
        invalidator: CacheInvalidator | None = None,
    ) -> None:
        self._snapshots = snapshots
        self._active = snapshots.active_store
        self._sync = snapshots.sync_store
        self._modules = modules or ExtensionModuleRegistry(self._active)
        self._scorer = scorer or RiskScorer(DependencyIndex(self._active), self._modules)
        self._invalidator = invalidator or NullCacheInvalidator()
        self._state = RollbackState.IDLE

    @property
    def state(self) -> RollbackState:
        """State of the most recent (or current) rollback."""
        return self._state

    @property
    def snapshots(self) -> SnapshotManager:
        return self._snapshots

    # -- helpers -------------------------------------------------------------

    async def _require_payload(self, snapshot_id: int) -> SnapshotPayload:
        payload = await self._snapshots.get_snapshot_payload(snapshot_id)
        if payload is None:
            raise SnapshotNotFoundError(snapshot_id)
        return payload

    def _without_excluded(self, names: Sequence[str]) -> list[str]:
        return filter_excluded(names, self._snapshots.settings.exclude_patterns)

    def _compute_changelists(self, payload: SnapshotPayload) -> tuple[Changelist, Changelist]:
        """Active and sync changelists with excluded names removed from deletes."""
        active = compare_with_store(payload.active, self._active)
        sync = compare_with_store(payload.sync, self._sync)
        active.delete = self._without_excluded(active.delete)
        sync.delete = self._without_excluded(sync.delete)
        return active, sync

    async def _create_backup(self, name: str) -> tuple[int | None, str | None]:
        """Best-effort pre-rollback snapshot; returns ``(id, warning)``."""
        try:
            record = await self._snapshots.create_snapshot(name, SnapshotType.PRE_ROLLBACK)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not create pre-rollback snapshot: %s", exc)
            return None, f"Could not create pre-rollback snapshot: {exc}"
        return record.id, None

    # -- simulation ----------------------------------------------------------

    @profile_operation("rollback.simulate")
    async def simulate_rollback(self, snapshot_id: int) -> RollbackSimulation:
        """Compute what a rollback would change without touching any store.

        The risk figure covers active updates and deletes only; sync-only
        changes are left out of it.

        Raises
        ------
        SnapshotNotFoundError
            If the snapshot does not exist.
        """
        self._state = RollbackState.SIMULATING
        try:
            payload = await self._require_payload(snapshot_id)
            self._state = RollbackState.COMPARING
            active, sync = self._compute_changelists(payload)

            risk_names = list(dict.fromkeys([*active.update, *active.delete]))
            scorer = self._scorer.for_analysis_pass()
            risk = scorer.calculate_risk_score(risk_names)

            conflicts = find_conflicts(
                [*active.create, *active.update],
                self._active,
                InMemoryConfigStore(payload.active),
                self._modules,
            )
        finally:
            self._state = RollbackState.IDLE

        return RollbackSimulation(
            snapshot_id=snapshot_id,
            active=active,
            sync=sync,
            risk_assessment=risk,
            conflicts=conflicts,
        )

    # -- full rollback -------------------------------------------------------

    async def _prepare(
        self,
        snapshot_id: int,
        *,
        create_backup: bool,
        delete_new_configs: bool,
        backup_name: str,
    ) -> tuple[RollbackBatchPlan, SnapshotPayload]:
        if await self._snapshots.load_snapshot(snapshot_id) is None:
            raise SnapshotNotFoundError(snapshot_id)

        plan = RollbackBatchPlan(snapshot_id=snapshot_id)
        if create_backup:
            self._state = RollbackState.BACKING_UP
            backup_id, warning = await self._create_backup(backup_name)
            plan.pre_rollback_snapshot_id = backup_id
            plan.backup_created = backup_id is not None
            if warning:
                plan.warnings.append(warning)

        self._state = RollbackState.COMPARING
        if not await self._snapshots.verify_snapshot_integrity(snapshot_id):
            raise IntegrityCheckFailedError(snapshot_id)

        payload = await self._require_payload(snapshot_id)
        active, sync = self._compute_changelists(payload)
        if not delete_new_configs:
            active.delete = []

        plan.active = active
        plan.sync = sync
        plan.active_documents = {n: payload.active[n] for n in (*active.create, *active.update)}
        plan.sync_documents = {n: payload.sync[n] for n in (*sync.create, *sync.update)}
        return plan, payload

    @profile_operation("rollback.execute")
    async def rollback_to_snapshot(
        self,
        snapshot_id: int,
        *,
        create_backup: bool = True,
        delete_new_configs: bool = False,
    ) -> RollbackResult:
        """Restore both storages to *snapshot_id*.

        Parameters
        ----------
        snapshot_id:
            Snapshot to restore.
        create_backup:
            Take a ``pre_rollback`` snapshot first.  Failure to do so is
            reported on the result but does not stop the rollback.
        delete_new_configs:
            Also delete active configuration created after the snapshot.
            Sync deletions are always applied.

        Raises
        ------
        SnapshotNotFoundError
            If the snapshot does not exist.
        IntegrityCheckFailedError
            If the stored payload no longer matches its hash.
        """
        started_at = datetime.now(UTC)
        start = time.perf_counter()
        result = RollbackResult(snapshot_id=snapshot_id, started_at=started_at)

        try:
            plan, _ = await self._prepare(
                snapshot_id,
                create_backup=create_backup,
                delete_new_configs=delete_new_configs,
                backup_name=f"Pre-rollback snapshot #{snapshot_id}",
            )
        except Exception:
            self._state = RollbackState.FAILED
            raise

        result.backup_created = plan.backup_created
        result.pre_rollback_snapshot_id = plan.pre_rollback_snapshot_id
        result.warnings = list(plan.warnings)

        if not plan.has_changes():
            self._state = RollbackState.SUCCEEDED
            result.state = self._state
            result.success = True
            result.message = NO_CHANGES_MESSAGE
            result.finished_at = datetime.now(UTC)
            result.duration_ms = round((time.perf_counter() - start) * 1000, 3)
            logger.info("Rollback to snapshot %d: %s", snapshot_id, NO_CHANGES_MESSAGE)
            return result

        self._state = RollbackState.APPLYING
        active_applied, active_failed, active_errors = apply_changes(
            self._active, plan.active, plan.active_documents, "active"
        )
        sync_applied, sync_failed, sync_errors = apply_changes(self._sync, plan.sync, plan.sync_documents, "sync")
        refresh_warning = signal_refresh(self._invalidator)
        if refresh_warning:
            result.warnings.append(refresh_warning)

        result.changes_applied = {"active": active_applied, "sync": sync_applied}
        result.failed = active_failed + sync_failed
        result.errors = active_errors + sync_errors
        result.success = not result.errors
        self._state = RollbackState.SUCCEEDED if result.success else RollbackState.FAILED
        result.state = self._state
        result.message = SUCCESS_MESSAGE if result.success else PARTIAL_MESSAGE
        if result.errors:
            result.error = result.errors[0]
        result.finished_at = datetime.now(UTC)
        result.duration_ms = round((time.perf_counter() - start) * 1000, 3)

        counts = {
            "active": active_applied.counts(),
            "sync": sync_applied.counts(),
            "failed": len(result.failed),
            "duration_ms": result.duration_ms,
            "pre_rollback_snapshot_id": result.pre_rollback_snapshot_id,
        }
        if result.success:
            logger.info(
                "Rollback to snapshot %d completed. Active: %d created, %d updated, %d deleted. "
                "Sync: %d created, %d updated, %d deleted.",
                snapshot_id,
                len(active_applied.create),
                len(active_applied.update),
                len(active_applied.delete),
                len(sync_applied.create),
                len(sync_applied.update),
                len(sync_applied.delete),
            )
        else:
            logger.error("Rollback to snapshot %d failed for %d name(s)", snapshot_id, len(result.failed))

        await self._snapshots.activity.record(
            ActivityAction.ROLLBACK_COMPLETED if result.success else ActivityAction.ROLLBACK_FAILED,
            details=counts if result.success else {**counts, "errors": result.errors},
            config_names=[*active_applied.create, *active_applied.update, *active_applied.delete],
            snapshot_id=snapshot_id,
            status=ActivityStatus.SUCCESS if result.success else ActivityStatus.ERROR,
        )
        return result

    # -- selective restore ---------------------------------------------------

    async def rollback_configs(self, names: Sequence[str], snapshot_id: int) -> SelectiveRestoreResult:
        """Write the snapshot's active version of each requested name.

        Names missing from the snapshot are reported per name; they never
        stop the others from being restored.

        Raises
        ------
        SnapshotNotFoundError
            If the snapshot does not exist.
        """
        payload = await self._require_payload(snapshot_id)
        result = SelectiveRestoreResult(snapshot_id=snapshot_id)

        for name in names:
            if name not in payload.active:
                result.errors.append(f"Config '{name}' not found in snapshot")
                continue
            try:
                self._active.write(name, payload.active[name])
            except Exception as exc:  # noqa: BLE001
                result.errors.append(f"Failed to restore '{name}': {exc}")
            else:
                result.restored.append(name)

        refresh_warning = signal_refresh(self._invalidator)
        if refresh_warning:
            result.warnings.append(refresh_warning)
        result.success = not result.errors

        if result.success:
            logger.info("Selective rollback completed. Restored %d configurations.", len(result.restored))
        else:
            logger.warning("Selective rollback completed with errors: %s", ", ".join(result.errors))

        await self._snapshots.activity.record(
            ActivityAction.SELECTIVE_ROLLBACK,
            details={"restored": len(result.restored), "errors": result.errors},
            config_names=result.restored,
            snapshot_id=snapshot_id,
            status=ActivityStatus.SUCCESS if result.success else ActivityStatus.WARNING,
        )
        return result

    # -- batch preparation ---------------------------------------------------

    async def prepare_rollback_batch(
        self,
        snapshot_id: int,
        *,
        create_backup: bool = True,
        delete_new_configs: bool = False,
    ) -> RollbackBatchPlan:
        """Run the rollback up to the comparison step and return the plan.

        The plan carries the changelists, the documents to write and the
        backup snapshot id, for :class:`~guardian_engine.rollback.batch.RollbackBatchExecutor`.

        Raises
        ------
        SnapshotNotFoundError
            If the snapshot does not exist.
        IntegrityCheckFailedError
            If the stored payload no longer matches its hash.
        """
        stamp = datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S")
        try:
            plan, _ = await self._prepare(
                snapshot_id,
                create_backup=create_backup,
                delete_new_configs=delete_new_configs,
                backup_name=f"Pre-rollback backup - {stamp}",
            )
        finally:
            self._state = RollbackState.IDLE
        logger.info(
            "Prepared rollback batch for snapshot %d: %d active and %d sync change(s)",
            snapshot_id,
            plan.active.total,
            plan.sync.total,
        )
        return plan
