"""Activity log service.

Wraps :class:`ActivityLogRepository` with its own session handling so that
services can record what happened without sharing a transaction with the
operation being recorded.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from guardian_engine.models.activity import ActivityEntry, ActivityStatus
from guardian_engine.state.database import get_session
from guardian_engine.state.repository import ActivityLogRepository, activity_entry

logger = logging.getLogger(__name__)


class ActivityLogger:
    """Records and queries activity entries.

    Parameters
    ----------
    engine:
        Engine for the state database.
    actor:
        Default actor recorded on entries.
    """

    def __init__(self, engine: AsyncEngine, actor: str = "system") -> None:
        self._engine = engine
        self._actor = actor

    async def log(
        self,
        action: str,
        details: dict[str, Any] | None = None,
        config_names: Sequence[str] | None = None,
        snapshot_id: int | None = None,
        status: ActivityStatus = ActivityStatus.SUCCESS,
        actor: str | None = None,
    ) -> ActivityEntry:
        async with get_session(self._engine) as session:
            row = await ActivityLogRepository(session).log(
                action=action,
                details=details,
                config_names=config_names,
                snapshot_id=snapshot_id,
                actor=actor or self._actor,
                status=status,
            )
            return activity_entry(row)

    async def record(self, action: str, **kwargs: Any) -> ActivityEntry | None:
        """Like :meth:`log`, but a database failure is logged instead of raised.

        Used after an operation has already changed configuration: failing
        to write the log entry must not report that operation as failed.
        """
        try:
            return await self.log(action, **kwargs)
        except SQLAlchemyError as exc:
            logger.warning("Could not record activity %s: %s", action, exc)
            return None

    async def get_activities(
        self,
        *,
        action: str | None = None,
        status: ActivityStatus | None = None,
        actor: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ActivityEntry]:
        async with get_session(self._engine) as session:
            rows = await ActivityLogRepository(session).query(
                action=action,
                status=status,
                actor=actor,
                since=since,
                until=until,
                limit=limit,
                offset=offset,
            )
            return [activity_entry(row) for row in rows]

    async def count(
        self,
        *,
        action: str | None = None,
        status: ActivityStatus | None = None,
        actor: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> int:
        async with get_session(self._engine) as session:
            return await ActivityLogRepository(session).count(
                action=action, status=status, actor=actor, since=since, until=until
            )

    async def recent(self, limit: int = 10) -> list[ActivityEntry]:
        return await self.get_activities(limit=limit)

    async def cleanup(self, days: int = 90, now: datetime | None = None) -> int:
        """Delete entries older than *days*; returns the number removed."""
        cutoff = (now or datetime.now(UTC)) - timedelta(days=days)
        async with get_session(self._engine) as session:
            removed = await ActivityLogRepository(session).delete_before(cutoff)
        if removed:
            logger.info("Removed %d activity entries older than %d days", removed, days)
        return removed
