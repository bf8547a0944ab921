"""Snapshot capture, encoding and retention."""

from guardian_engine.snapshot.manager import SNAPSHOT_LIST_TAG, SnapshotManager
from guardian_engine.snapshot.scheduler import MaintenanceReport, SnapshotScheduler

__all__ = ["SNAPSHOT_LIST_TAG", "MaintenanceReport", "SnapshotManager", "SnapshotScheduler"]
