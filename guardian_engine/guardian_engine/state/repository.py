"""Repository layer wrapping async SQLAlchemy sessions.

Each repository receives an :class:`AsyncSession` and exposes the
operations the services need.  Writes call ``flush()`` so generated ids
are available immediately; committing is left to the session owner.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from guardian_engine.models.activity import ActivityEntry, ActivityStatus
from guardian_engine.models.snapshot import SnapshotRecord, SnapshotType
from guardian_engine.state.tables import ActivityLogTable, SnapshotTable

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    """SQLite drops tzinfo on round-trip, so stored values and bounds are UTC.

    Naive values are taken to be UTC already.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def snapshot_record(row: SnapshotTable) -> SnapshotRecord:
    return SnapshotRecord(
        id=row.id,
        uuid=row.uuid,
        name=row.name,
        description=row.description or "",
        type=SnapshotType(row.type),
        config_hash=row.config_hash,
        config_count=row.config_count,
        created=_as_utc(row.created),
        created_by=row.created_by,
        size_bytes=len(row.config_data or b""),
    )


def activity_entry(row: ActivityLogTable) -> ActivityEntry:
    return ActivityEntry(
        id=row.id,
        action=row.action,
        details=row.details or {},
        config_names=row.config_names or [],
        snapshot_id=row.snapshot_id,
        actor=row.actor,
        created_at=_as_utc(row.created_at),
        status=ActivityStatus(row.status),
    )


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


class SnapshotRepository:
    """CRUD operations for the ``config_snapshots`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        name: str,
        snapshot_type: SnapshotType,
        config_data: bytes,
        config_hash: str,
        config_count: int,
        created_by: str,
        description: str = "",
        created: datetime | None = None,
    ) -> SnapshotTable:
        """Insert one snapshot row with a fresh UUID."""
        row = SnapshotTable(
            uuid=str(uuid.uuid4()),
            name=name,
            description=description,
            type=SnapshotType(snapshot_type).value,
            config_data=config_data,
            config_hash=config_hash,
            config_count=config_count,
            created=_as_utc(created) if created is not None else datetime.now(UTC),
            created_by=created_by,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def get_by_id(self, snapshot_id: int) -> SnapshotTable | None:
        return await self._session.get(SnapshotTable, snapshot_id)

    async def list_snapshots(
        self,
        *,
        snapshot_type: SnapshotType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Sequence[SnapshotTable]:
        """Return snapshots newest first, optionally filtered by type."""
        stmt = select(SnapshotTable)
        if snapshot_type is not None:
            stmt = stmt.where(SnapshotTable.type == SnapshotType(snapshot_type).value)
        stmt = stmt.order_by(SnapshotTable.created.desc(), SnapshotTable.id.desc()).offset(offset).limit(limit)
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def count(self, snapshot_type: SnapshotType | None = None) -> int:
        stmt = select(func.count()).select_from(SnapshotTable)
        if snapshot_type is not None:
            stmt = stmt.where(SnapshotTable.type == SnapshotType(snapshot_type).value)
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def delete(self, snapshot_id: int) -> bool:
        """Delete one snapshot.  Returns ``True`` if a row was removed."""
        result = await self._session.execute(delete(SnapshotTable).where(SnapshotTable.id == snapshot_id))
        await self._session.flush()
        return bool(result.rowcount)

    async def delete_auto_before(self, cutoff: datetime) -> int:
        """Delete ``auto`` snapshots created before *cutoff*."""
        result = await self._session.execute(
            delete(SnapshotTable).where(
                SnapshotTable.type == SnapshotType.AUTO.value,
                SnapshotTable.created < _as_utc(cutoff),
            )
        )
        await self._session.flush()
        return int(result.rowcount or 0)

    async def oldest_auto_ids(self, limit: int) -> list[int]:
        """Ids of the *limit* oldest ``auto`` snapshots."""
        if limit <= 0:
            return []
        stmt = (
            select(SnapshotTable.id)
            .where(SnapshotTable.type == SnapshotType.AUTO.value)
            .order_by(SnapshotTable.created.asc(), SnapshotTable.id.asc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def delete_many(self, snapshot_ids: Sequence[int]) -> int:
        if not snapshot_ids:
            return 0
        result = await self._session.execute(delete(SnapshotTable).where(SnapshotTable.id.in_(list(snapshot_ids))))
        await self._session.flush()
        return int(result.rowcount or 0)

    async def latest(self, snapshot_type: SnapshotType | None = None) -> SnapshotTable | None:
        stmt = select(SnapshotTable)
        if snapshot_type is not None:
            stmt = stmt.where(SnapshotTable.type == SnapshotType(snapshot_type).value)
        stmt = stmt.order_by(SnapshotTable.created.desc(), SnapshotTable.id.desc()).limit(1)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Activity log
# ---------------------------------------------------------------------------


class ActivityLogRepository:
    """Append-only access to the ``activity_log`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def log(
        self,
        *,
        action: str,
        details: dict[str, Any] | None = None,
        config_names: Sequence[str] | None = None,
        snapshot_id: int | None = None,
        actor: str = "system",
        status: ActivityStatus = ActivityStatus.SUCCESS,
        ip_address: str | None = None,
    ) -> ActivityLogTable:
        row = ActivityLogTable(
            action=action,
            details=details or {},
            config_names=list(config_names or []),
            snapshot_id=snapshot_id,
            actor=actor,
            status=ActivityStatus(status).value,
            ip_address=ip_address,
            created_at=datetime.now(UTC),
        )
        self._session.add(row)
        await self._session.flush()
        logger.info(
            "Activity: action=%s status=%s actor=%s snapshot=%s",
            action,
            row.status,
            actor,
            snapshot_id or "-",
        )
        return row

    def _filtered(
        self,
        stmt: Any,
        *,
        action: str | None,
        status: ActivityStatus | None,
        actor: str | None,
        since: datetime | None,
        until: datetime | None,
    ) -> Any:
        if action is not None:
            stmt = stmt.where(ActivityLogTable.action == action)
        if status is not None:
            stmt = stmt.where(ActivityLogTable.status == ActivityStatus(status).value)
        if actor is not None:
            stmt = stmt.where(ActivityLogTable.actor == actor)
        if since is not None:
            stmt = stmt.where(ActivityLogTable.created_at >= _as_utc(since))
        if until is not None:
            stmt = stmt.where(ActivityLogTable.created_at <= _as_utc(until))
        return stmt

    async def query(
        self,
        *,
        action: str | None = None,
        status: ActivityStatus | None = None,
        actor: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Sequence[ActivityLogTable]:
        """Return matching entries, newest first."""
        stmt = self._filtered(
            select(ActivityLogTable), action=action, status=status, actor=actor, since=since, until=until
        )
        stmt = stmt.order_by(ActivityLogTable.created_at.desc(), ActivityLogTable.id.desc()).offset(offset).limit(limit)
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def count(
        self,
        *,
        action: str | None = None,
        status: ActivityStatus | None = None,
        actor: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> int:
        stmt = self._filtered(
            select(func.count()).select_from(ActivityLogTable),
            action=action,
            status=status,
            actor=actor,
            since=since,
            until=until,
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def delete_before(self, cutoff: datetime) -> int:
        stmt = delete(ActivityLogTable).where(ActivityLogTable.created_at < _as_utc(cutoff))
        result = await self._session.execute(stmt)
        await self._session.flush()
        return int(result.rowcount or 0)
