"""Models for comparing, exporting and importing between active and sync storage."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from guardian_engine.models.analysis import Conflict, RiskAssessment, RiskLevel
from guardian_engine.models.diff import Changelist


class SyncStatus(str, Enum):
    SYNCED = "synced"
    NEEDS_EXPORT = "needs_export"
    NEEDS_IMPORT = "needs_import"
    DIVERGED = "diverged"


class Recommendation(str, Enum):
    NONE = "none"
    EXPORT = "export"
    IMPORT = "import"
    REVIEW = "review"


class StatusWarning(BaseModel):
    type: str = Field(..., description="'info', 'warning' or 'danger'.")
    message: str


class EnvironmentStatus(BaseModel):
    """How the active and sync storages relate to each other."""

    status: SyncStatus
    recommendation: Recommendation
    active_count: int
    sync_count: int
    import_changes: Changelist = Field(..., description="Changes an import (sync → active) would make.")
    export_changes: Changelist = Field(..., description="Changes an export (active → sync) would make.")
    modified: list[str] = Field(default_factory=list)
    warnings: list[StatusWarning] = Field(default_factory=list)


class PreviewItem(BaseModel):
    name: str
    type: str
    risk: RiskLevel
    dependents_count: int = 0


class ImportPreview(BaseModel):
    """Per-item and aggregate view of what an import would change."""

    create: list[PreviewItem] = Field(default_factory=list)
    update: list[PreviewItem] = Field(default_factory=list)
    delete: list[PreviewItem] = Field(default_factory=list)
    risk_assessment: RiskAssessment | None = None
    conflicts: list[Conflict] = Field(default_factory=list)

    @property
    def total_changes(self) -> int:
        return len(self.create) + len(self.update) + len(self.delete)

    def has_changes(self) -> bool:
        return self.total_changes > 0


class ExportPreview(BaseModel):
    total: int
    new: list[str] = Field(default_factory=list)
    modified: list[str] = Field(default_factory=list)
    unchanged: list[str] = Field(default_factory=list)
    to_delete: list[str] = Field(default_factory=list)
    grouped: dict[str, list[str]] = Field(default_factory=dict)


class TransferResult(BaseModel):
    """Outcome of an export or import run."""

    written: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    backup_snapshot_id: int | None = None
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return not self.errors
