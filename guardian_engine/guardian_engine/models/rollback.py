"""Rollback simulation, execution and batch models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from guardian_engine.exceptions import PartialApplyFailure
from guardian_engine.models.analysis import Conflict, ConflictSeverity, RiskAssessment
from guardian_engine.models.diff import Changelist

StorageName = Literal["active", "sync"]
ChangeAction = Literal["create", "update", "delete"]


class RollbackState(str, Enum):
    """Lifecycle of a single rollback execution."""

    IDLE = "idle"
    SIMULATING = "simulating"
    BACKING_UP = "backing_up"
    COMPARING = "comparing"
    APPLYING = "applying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RollbackSimulation(BaseModel):
    """Dry-run outcome: what a rollback would change, and how risky it is."""

    snapshot_id: int
    active: Changelist = Field(default_factory=Changelist)
    sync: Changelist = Field(default_factory=Changelist)
    risk_assessment: RiskAssessment = Field(default_factory=RiskAssessment)
    conflicts: list[Conflict] = Field(default_factory=list)

    @property
    def active_changes(self) -> int:
        return self.active.total

    @property
    def sync_changes(self) -> int:
        return self.sync.total

    @property
    def total_changes(self) -> int:
        return self.active_changes + self.sync_changes

    def has_changes(self) -> bool:
        return self.total_changes > 0

    def has_applicable_changes(self, *, delete_new_configs: bool = False) -> bool:
        """Whether a rollback would write anything; active deletes count only when enabled."""
        if delete_new_configs and self.active.delete:
            return True
        return bool(self.active.create or self.active.update or self.sync.has_changes())

    def has_blocking_conflicts(self) -> bool:
        return any(c.severity == ConflictSeverity.ERROR for c in self.conflicts)


class RollbackResult(BaseModel):
    """Outcome of a rollback, with per-storage lists of what was applied.

    ``changes_applied`` only lists names whose write or delete succeeded;
    names that failed are in ``failed`` with a message in ``errors``.
    """

    snapshot_id: int
    success: bool = False
    state: RollbackState = RollbackState.IDLE
    message: str = ""
    error: str = ""
    errors: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    changes_applied: dict[str, Changelist] = Field(default_factory=dict)
    backup_created: bool = False
    pre_rollback_snapshot_id: int | None = None
    warnings: list[str] = Field(default_factory=list)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration_ms: float = 0.0

    @property
    def total_changes(self) -> int:
        return sum(changelist.total for changelist in self.changes_applied.values())

    def raise_for_failures(self) -> None:
        """Raise :class:`PartialApplyFailure` when any name failed to apply."""
        if self.errors:
            applied = [
                name
                for changelist in self.changes_applied.values()
                for name in (*changelist.create, *changelist.update, *changelist.delete)
            ]
            raise PartialApplyFailure(applied, self.errors)


class SelectiveRestoreResult(BaseModel):
    """Outcome of restoring a hand-picked list of names from a snapshot."""

    snapshot_id: int
    success: bool = False
    restored: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class RollbackBatchPlan(BaseModel):
    """Everything an incremental executor needs to apply a rollback in chunks."""

    snapshot_id: int
    active: Changelist = Field(default_factory=Changelist)
    sync: Changelist = Field(default_factory=Changelist)
    active_documents: dict[str, Any] = Field(default_factory=dict)
    sync_documents: dict[str, Any] = Field(default_factory=dict)
    backup_created: bool = False
    pre_rollback_snapshot_id: int | None = None
    warnings: list[str] = Field(default_factory=list)

    def has_changes(self) -> bool:
        return self.active.has_changes() or self.sync.has_changes()


class RollbackChunk(BaseModel):
    """A contiguous slice of one storage/action bucket."""

    storage: StorageName
    action: ChangeAction
    names: list[str]


class BatchProgress(BaseModel):
    """Running tally kept by the incremental executor between chunks."""

    total: int = 0
    processed: int = 0
    applied: dict[str, Changelist] = Field(
        default_factory=lambda: {"active": Changelist(), "sync": Changelist()},
    )
    failed: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 100.0
        return round(self.processed / self.total * 100, 1)
