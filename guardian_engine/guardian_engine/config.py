"""Guardian engine configuration loaded from environment variables."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from guardian_engine.models.snapshot import CompressionMethod

logger = logging.getLogger(__name__)


class GuardianEnv(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PROD = "prod"


class SnapshotInterval(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"


# Seconds between automatic snapshots for each interval.
INTERVAL_SECONDS: dict[SnapshotInterval, int] = {
    SnapshotInterval.HOURLY: 3600,
    SnapshotInterval.DAILY: 86400,
    SnapshotInterval.WEEKLY: 604800,
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables with GUARDIAN_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="GUARDIAN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    env: GuardianEnv = GuardianEnv.DEV
    debug: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///.guardian/state.db"
    database_pool_size: int = 10
    database_max_overflow: int = 20

    # File-backed configuration stores used by the CLI
    active_dir: Path = Path(".guardian/active")
    sync_dir: Path = Path("config/sync")

    # Snapshots
    compression: CompressionMethod = CompressionMethod.GZIP
    exclude_patterns: list[str] = Field(default_factory=list)
    max_snapshots: int = Field(default=50, ge=1)
    retention_days: int = Field(default=90, ge=1)
    auto_snapshot_enabled: bool = False
    auto_snapshot_interval: SnapshotInterval = SnapshotInterval.DAILY
    auto_snapshot_before_import: bool = True

    # Rollback
    rollback_chunk_size: int = Field(default=25, ge=1)

    # Identity recorded as createdBy / activity actor
    actor: str = "system"

    # Telemetry
    structured_logging: bool = False

    @property
    def auto_snapshot_interval_seconds(self) -> int:
        return INTERVAL_SECONDS[self.auto_snapshot_interval]


def load_settings(**overrides: object) -> Settings:
    """Load settings from environment, with optional overrides for testing."""
    settings = Settings(**overrides)  # type: ignore[arg-type]

    if settings.debug:
        logger.info("Loaded settings for environment: %s", settings.env.value)

    return settings
