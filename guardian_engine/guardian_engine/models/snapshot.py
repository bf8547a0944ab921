"""Snapshot domain models.

A snapshot captures both configuration storages ("active" and "sync") at a
point in time.  The stored blob decodes to a :class:`SnapshotPayload`;
legacy version-1 payloads were a flat map of active documents only.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


class SnapshotType(str, Enum):
    MANUAL = "manual"
    AUTO = "auto"
    PRE_IMPORT = "pre_import"
    PRE_EXPORT = "pre_export"
    PRE_ROLLBACK = "pre_rollback"


class CompressionMethod(str, Enum):
    NONE = "none"
    GZIP = "gzip"
    BZIP2 = "bzip2"


class SnapshotPayload(BaseModel):
    """Decoded snapshot contents, tagged by ``version``.

    Version 2 carries both storages.  Version 1 is the legacy flat format:
    its documents are exposed as ``active`` and ``sync`` is always empty.
    """

    version: Literal[1, 2] = 2
    active: dict[str, Any] = Field(default_factory=dict)
    sync: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_v2(self) -> bool:
        return self.version == 2

    def names(self) -> set[str]:
        return set(self.active) | set(self.sync)

    def to_dict(self) -> dict[str, Any]:
        """Return the serialisable form that is hashed and compressed."""
        if self.version == 1:
            return dict(self.active)
        return {"version": 2, "active": self.active, "sync": self.sync}


class SnapshotRecord(BaseModel):
    """Stored snapshot metadata (the compressed blob is not carried)."""

    id: int
    uuid: str
    name: str
    description: str = ""
    type: SnapshotType
    config_hash: str
    config_count: int = 0
    created: datetime
    created_by: str = "system"
    size_bytes: int = Field(0, description="Length of the stored compressed blob.")
