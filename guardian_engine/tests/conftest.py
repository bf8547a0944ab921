"""Shared fixtures for guardian engine tests.

Database-backed tests run against an in-memory SQLite engine pinned to a
single connection, so every session in a test sees the same tables.
"""

from __future__ import annotations

import pytest
import pytest_asyncio
from guardian_engine.config import Settings, load_settings
from guardian_engine.snapshot import SnapshotManager
from guardian_engine.state.database import create_tables
from guardian_engine.state.sqlite_adapter import get_local_engine
from guardian_engine.storage import InMemoryConfigStore, RecordingCacheInvalidator
from guardian_engine.telemetry import ProfileCollector


@pytest.fixture(autouse=True)
def _reset_profiles():
    """Keep profiling measurements from leaking between tests."""
    ProfileCollector.reset()
    yield
    ProfileCollector.reset()


@pytest.fixture
def settings() -> Settings:
    return load_settings(
        database_url="sqlite+aiosqlite://",
        exclude_patterns=[],
        max_snapshots=50,
        retention_days=90,
        auto_snapshot_enabled=False,
        auto_snapshot_before_import=True,
        rollback_chunk_size=25,
        actor="tester",
    )


@pytest_asyncio.fixture
async def engine():
    engine = get_local_engine(":memory:")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def active_store() -> InMemoryConfigStore:
    return InMemoryConfigStore()


@pytest.fixture
def sync_store() -> InMemoryConfigStore:
    return InMemoryConfigStore()


@pytest.fixture
def invalidator() -> RecordingCacheInvalidator:
    return RecordingCacheInvalidator()


@pytest.fixture
def manager(engine, active_store, sync_store, settings, invalidator) -> SnapshotManager:
    return SnapshotManager(engine, active_store, sync_store, settings, invalidator=invalidator)
