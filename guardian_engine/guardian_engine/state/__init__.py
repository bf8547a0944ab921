"""State persistence for snapshots and the activity log."""

from guardian_engine.state.database import create_tables, engine_from_settings, get_engine, get_session
from guardian_engine.state.repository import ActivityLogRepository, SnapshotRepository

__all__ = [
    "ActivityLogRepository",
    "SnapshotRepository",
    "create_tables",
    "engine_from_settings",
    "get_engine",
    "get_session",
]
