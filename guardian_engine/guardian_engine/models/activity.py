"""Activity log models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ActivityStatus(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class ActivityAction:
    """Well-known activity action identifiers."""

    SNAPSHOT_CREATED = "snapshot_created"
    SNAPSHOT_DELETED = "snapshot_deleted"
    SNAPSHOT_IMPORTED = "snapshot_imported"
    ROLLBACK_COMPLETED = "rollback_completed"
    ROLLBACK_FAILED = "rollback_failed"
    SELECTIVE_ROLLBACK = "selective_rollback"
    CONFIG_IMPORTED = "config_imported"
    CONFIG_EXPORTED = "config_exported"
    SNAPSHOTS_CLEANED = "snapshots_cleaned"


class ActivityEntry(BaseModel):
    """One row of the append-only activity log."""

    id: int
    action: str
    details: dict[str, Any] = Field(default_factory=dict)
    config_names: list[str] = Field(default_factory=list)
    snapshot_id: int | None = None
    actor: str = "system"
    created_at: datetime
    status: ActivityStatus = ActivityStatus.SUCCESS
