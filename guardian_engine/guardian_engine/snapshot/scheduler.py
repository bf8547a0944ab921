"""Periodic snapshot maintenance, driven by an external cron trigger.

Each :meth:`SnapshotScheduler.run` call decides whether an automatic
snapshot is due (hourly, daily or weekly since the last ``auto`` snapshot)
and then applies the retention policy.  The caller owns the timing loop.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel

from guardian_engine.models.snapshot import SnapshotType
from guardian_engine.snapshot.manager import SnapshotManager

logger = logging.getLogger(__name__)


class MaintenanceReport(BaseModel):
    """What one maintenance run did."""

    auto_snapshot_id: int | None = None
    auto_snapshot_error: str | None = None
    deleted: int = 0
    next_due: datetime | None = None


class SnapshotScheduler:
    """Creates due automatic snapshots and prunes old ones."""

    def __init__(self, snapshots: SnapshotManager) -> None:
        self._snapshots = snapshots

    def _interval(self) -> timedelta:
        return timedelta(seconds=self._snapshots.settings.auto_snapshot_interval_seconds)

    async def is_due(self, now: datetime) -> bool:
        settings = self._snapshots.settings
        if not settings.auto_snapshot_enabled:
            return False
        latest = await self._snapshots.latest_snapshot(SnapshotType.AUTO)
        return latest is None or now - latest.created >= self._interval()

    async def run(self, now: datetime | None = None) -> MaintenanceReport:
        now = now or datetime.now(UTC)
        settings = self._snapshots.settings
        report = MaintenanceReport()

        if await self.is_due(now):
            try:
                record = await self._snapshots.create_snapshot(
                    f"Automatic snapshot - {now.strftime('%Y-%m-%d %H:%M')}",
                    SnapshotType.AUTO,
                    description=f"Scheduled {settings.auto_snapshot_interval.value} snapshot",
                )
            except Exception as exc:  # noqa: BLE001
                logger.error("Automatic snapshot failed: %s", exc)
                report.auto_snapshot_error = str(exc)
            else:
                report.auto_snapshot_id = record.id
                logger.info("Automatic snapshot created with id %d", record.id)

        cutoff = now - timedelta(days=settings.retention_days)
        report.deleted = await self._snapshots.cleanup_old_snapshots(cutoff, settings.max_snapshots)

        if settings.auto_snapshot_enabled:
            latest = await self._snapshots.latest_snapshot(SnapshotType.AUTO)
            report.next_due = (latest.created if latest else now) + self._interval()
        return report
