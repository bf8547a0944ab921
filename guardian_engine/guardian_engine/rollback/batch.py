"""Incremental execution of a prepared rollback plan.

Large rollbacks are applied a chunk at a time so that a caller (a CLI
progress bar, a queue worker) can spread the work over several turns and
report progress in between.  Chunks follow the same order as an inline
rollback and never reorder names inside a bucket; chunking only bounds how
much work happens per call.

Stopping between chunks is allowed: storage is left in a defined
intermediate state and a fresh plan can be computed from it later.
"""

from __future__ import annotations

import logging
from collections import deque
from datetime import UTC, datetime

from guardian_engine.models.activity import ActivityAction, ActivityStatus
from guardian_engine.models.diff import Changelist
from guardian_engine.models.rollback import (
    BatchProgress,
    RollbackBatchPlan,
    RollbackChunk,
    RollbackResult,
    RollbackState,
)
from guardian_engine.rollback.engine import PARTIAL_MESSAGE, SUCCESS_MESSAGE, apply_changes, signal_refresh
from guardian_engine.snapshot.manager import SnapshotManager
from guardian_engine.storage.base import CacheInvalidator, NullCacheInvalidator

logger = logging.getLogger(__name__)

_ACTIONS = ("create", "update", "delete")


def plan_chunks(plan: RollbackBatchPlan, chunk_size: int) -> list[RollbackChunk]:
    """Split *plan* into ordered chunks of at most *chunk_size* names."""
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")
    chunks: list[RollbackChunk] = []
    for storage, changelist in (("active", plan.active), ("sync", plan.sync)):
        for action in _ACTIONS:
            names: list[str] = getattr(changelist, action)
            for start in range(0, len(names), chunk_size):
                chunks.append(RollbackChunk(storage=storage, action=action, names=names[start : start + chunk_size]))
    return chunks


class RollbackBatchExecutor:
    """Applies a :class:`RollbackBatchPlan` chunk by chunk.

    Parameters
    ----------
    plan:
        Output of :meth:`RollbackEngine.prepare_rollback_batch`.
    snapshots:
        Supplies the stores, the activity log and the default chunk size.
    chunk_size:
        Names per chunk; defaults to ``settings.rollback_chunk_size``.
    invalidator:
        Told to drop cached configuration in :meth:`finish`.
    """

    def __init__(
        self,
        plan: RollbackBatchPlan,
        snapshots: SnapshotManager,
        *,
        chunk_size: int | None = None,
        invalidator: CacheInvalidator | None = None,
    ) -> None:
        self._plan = plan
        self._snapshots = snapshots
        self._invalidator = invalidator or NullCacheInvalidator()
        self._pending: deque[RollbackChunk] = deque(
            plan_chunks(plan, chunk_size or snapshots.settings.rollback_chunk_size)
        )
        self._progress = BatchProgress(total=plan.active.total + plan.sync.total)
        self._started_at = datetime.now(UTC)
        self._state = RollbackState.APPLYING

    @property
    def progress(self) -> BatchProgress:
        return self._progress

    @property
    def state(self) -> RollbackState:
        return self._state

    def has_pending(self) -> bool:
        return bool(self._pending)

    def pending_chunks(self) -> list[RollbackChunk]:
        return list(self._pending)

    def process_chunk(self, chunk: RollbackChunk) -> BatchProgress:
        """Apply one chunk and fold its outcome into :attr:`progress`."""
        if chunk.storage == "active":
            store, documents = self._snapshots.active_store, self._plan.active_documents
        else:
            store, documents = self._snapshots.sync_store, self._plan.sync_documents

        applied, failed, errors = apply_changes(
            store, Changelist(**{chunk.action: chunk.names}), documents, chunk.storage
        )
        getattr(self._progress.applied[chunk.storage], chunk.action).extend(getattr(applied, chunk.action))
        self._progress.failed.extend(failed)
        self._progress.errors.extend(errors)
        self._progress.processed += len(chunk.names)
        logger.debug(
            "Rollback chunk %s/%s: %d name(s), %d failed (%.1f%%)",
            chunk.storage,
            chunk.action,
            len(chunk.names),
            len(failed),
            self._progress.percent,
        )
        return self._progress

    def process_next(self) -> RollbackChunk | None:
        """Apply the next pending chunk; returns it, or ``None`` when done."""
        if not self._pending:
            return None
        chunk = self._pending.popleft()
        self.process_chunk(chunk)
        return chunk

    async def finish(self) -> RollbackResult:
        """Signal a refresh, record the activity and summarise the run."""
        refresh_warning = signal_refresh(self._invalidator)

        progress = self._progress
        success = not progress.errors and not self._pending
        self._state = RollbackState.SUCCEEDED if success else RollbackState.FAILED
        finished_at = datetime.now(UTC)
        result = RollbackResult(
            snapshot_id=self._plan.snapshot_id,
            success=success,
            state=self._state,
            message=SUCCESS_MESSAGE if success else PARTIAL_MESSAGE,
            error=progress.errors[0] if progress.errors else "",
            errors=list(progress.errors),
            failed=list(progress.failed),
            changes_applied={k: v.model_copy(deep=True) for k, v in progress.applied.items()},
            backup_created=self._plan.backup_created,
            pre_rollback_snapshot_id=self._plan.pre_rollback_snapshot_id,
            warnings=list(self._plan.warnings),
            started_at=self._started_at,
            finished_at=finished_at,
            duration_ms=round((finished_at - self._started_at).total_seconds() * 1000, 3),
        )
        if self._pending:
            result.warnings.append(f"{len(self._pending)} chunk(s) were not processed")
        if refresh_warning:
            result.warnings.append(refresh_warning)

        await self._snapshots.activity.record(
            ActivityAction.ROLLBACK_COMPLETED if success else ActivityAction.ROLLBACK_FAILED,
            details={
                "batch": True,
                "processed": progress.processed,
                "total": progress.total,
                "active": progress.applied["active"].counts(),
                "sync": progress.applied["sync"].counts(),
                "errors": progress.errors,
            },
            snapshot_id=self._plan.snapshot_id,
            status=ActivityStatus.SUCCESS if success else ActivityStatus.ERROR,
        )
        logger.info(
            "Batch rollback to snapshot %d finished: %d/%d processed, %d failed",
            self._plan.snapshot_id,
            progress.processed,
            progress.total,
            len(progress.failed),
        )
        return result

    async def run(self) -> RollbackResult:
        while self.process_next() is not None:
            pass
        return await self.finish()
