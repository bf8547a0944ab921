"""Tests for the activity log service."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from guardian_engine.activity import ActivityLogger
from guardian_engine.models import ActivityAction, ActivityStatus


@pytest.fixture
def activity(engine) -> ActivityLogger:
    return ActivityLogger(engine, actor="ops")


class TestActivityLogger:
    @pytest.mark.asyncio
    async def test_log_returns_entry(self, activity) -> None:
        entry = await activity.log(
            ActivityAction.SNAPSHOT_CREATED,
            details={"config_count": 3},
            config_names=["a", "b"],
            snapshot_id=7,
        )
        assert entry.id >= 1
        assert entry.action == "snapshot_created"
        assert entry.details == {"config_count": 3}
        assert entry.config_names == ["a", "b"]
        assert entry.snapshot_id == 7
        assert entry.actor == "ops"
        assert entry.status == ActivityStatus.SUCCESS
        assert entry.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_actor_override(self, activity) -> None:
        entry = await activity.log(ActivityAction.CONFIG_EXPORTED, actor="deploy-bot")
        assert entry.actor == "deploy-bot"

    @pytest.mark.asyncio
    async def test_newest_first_with_filters(self, activity) -> None:
        await activity.log(ActivityAction.SNAPSHOT_CREATED)
        await activity.log(ActivityAction.ROLLBACK_FAILED, status=ActivityStatus.ERROR)
        await activity.log(ActivityAction.SNAPSHOT_CREATED, actor="alice")

        entries = await activity.get_activities()
        assert [e.action for e in entries] == ["snapshot_created", "rollback_failed", "snapshot_created"]

        created = await activity.get_activities(action=ActivityAction.SNAPSHOT_CREATED)
        assert len(created) == 2
        errors = await activity.get_activities(status=ActivityStatus.ERROR)
        assert [e.action for e in errors] == ["rollback_failed"]
        by_alice = await activity.get_activities(actor="alice")
        assert len(by_alice) == 1

        assert await activity.count() == 3
        assert await activity.count(action=ActivityAction.SNAPSHOT_CREATED) == 2
        assert len(await activity.recent(limit=2)) == 2
        assert len(await activity.get_activities(limit=2, offset=2)) == 1

    @pytest.mark.asyncio
    async def test_time_window(self, activity) -> None:
        await activity.log(ActivityAction.SNAPSHOT_CREATED)
        now = datetime.now(UTC)
        assert await activity.count(since=now - timedelta(minutes=5)) == 1
        assert await activity.count(until=now - timedelta(minutes=5)) == 0

    @pytest.mark.asyncio
    async def test_cleanup(self, activity) -> None:
        await activity.log(ActivityAction.SNAPSHOT_CREATED)
        await activity.log(ActivityAction.SNAPSHOT_DELETED)

        assert await activity.cleanup(days=90) == 0
        assert await activity.cleanup(days=90, now=datetime.now(UTC) + timedelta(days=91)) == 2
        assert await activity.count() == 0

    @pytest.mark.asyncio
    async def test_record_swallows_database_errors(self, activity, engine) -> None:
        async with engine.begin() as conn:
            await conn.exec_driver_sql("DROP TABLE activity_log")

        assert await activity.record(ActivityAction.SNAPSHOT_CREATED) is None
