"""Domain models for the guardian engine."""

from guardian_engine.models.activity import ActivityAction, ActivityEntry, ActivityStatus
from guardian_engine.models.analysis import (
    ConfigAnalysis,
    Conflict,
    ConflictSeverity,
    ConflictType,
    DependencySet,
    RiskAssessment,
    RiskLevel,
    risk_level_for_aggregate,
    risk_level_for_impact,
)
from guardian_engine.models.diff import Changelist, ModifiedDocument, SnapshotDiff
from guardian_engine.models.rollback import (
    BatchProgress,
    RollbackBatchPlan,
    RollbackChunk,
    RollbackResult,
    RollbackSimulation,
    RollbackState,
    SelectiveRestoreResult,
)
from guardian_engine.models.snapshot import CompressionMethod, SnapshotPayload, SnapshotRecord, SnapshotType

__all__ = [
    "ActivityAction",
    "ActivityEntry",
    "ActivityStatus",
    "BatchProgress",
    "Changelist",
    "CompressionMethod",
    "ConfigAnalysis",
    "Conflict",
    "ConflictSeverity",
    "ConflictType",
    "DependencySet",
    "ModifiedDocument",
    "RiskAssessment",
    "RiskLevel",
    "RollbackBatchPlan",
    "RollbackChunk",
    "RollbackResult",
    "RollbackSimulation",
    "RollbackState",
    "SelectiveRestoreResult",
    "SnapshotDiff",
    "SnapshotPayload",
    "SnapshotRecord",
    "SnapshotType",
    "risk_level_for_aggregate",
    "risk_level_for_impact",
]
