"""SQLAlchemy 2.0 ORM table definitions for the guardian state store.

Two tables: immutable snapshot records and the append-only activity log.
``Base`` is shared by the repositories and by :func:`create_tables`.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Cross-dialect JSON type: JSONB on PostgreSQL, plain JSON (TEXT) on SQLite.
_JsonType = JSONB().with_variant(JSON(), "sqlite")

SNAPSHOT_TYPES = ("manual", "auto", "pre_import", "pre_export", "pre_rollback")
ACTIVITY_STATUSES = ("success", "warning", "error")


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


def _in_list(column: str, values: tuple[str, ...]) -> str:
    return f"{column} IN ({', '.join(repr(v) for v in values)})"


# ---------------------------------------------------------------------------
# Declarative base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    """Shared declarative base for all guardian tables."""


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


class SnapshotTable(Base):
    """Point-in-time capture of the active and sync configuration storages.

    Rows are never updated after insert; ``config_data`` holds the
    compressed payload and ``config_hash`` its SHA-256 before compression.
    """

    __tablename__ = "config_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="manual")
    config_data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    config_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    config_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    created_by: Mapped[str] = mapped_column(String(128), nullable=False, default="system")

    __table_args__ = (
        CheckConstraint(_in_list("type", SNAPSHOT_TYPES), name="ck_config_snapshots_type"),
        Index("ix_config_snapshots_type_created", "type", "created"),
        Index("ix_config_snapshots_created", "created"),
    )


# ---------------------------------------------------------------------------
# Activity log
# ---------------------------------------------------------------------------


class ActivityLogTable(Base):
    """Append-only record of snapshot, rollback, import and export activity."""

    __tablename__ = "activity_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    details: Mapped[dict[str, Any] | None] = mapped_column(_JsonType, nullable=True)
    config_names: Mapped[list[str] | None] = mapped_column(_JsonType, nullable=True)
    snapshot_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    actor: Mapped[str] = mapped_column(String(128), nullable=False, default="system")
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="success")

    __table_args__ = (
        CheckConstraint(_in_list("status", ACTIVITY_STATUSES), name="ck_activity_log_status"),
        Index("ix_activity_log_action", "action"),
        Index("ix_activity_log_created_at", "created_at"),
        Index("ix_activity_log_snapshot", "snapshot_id"),
    )
