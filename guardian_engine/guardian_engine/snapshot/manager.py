"""Snapshot storage: capture, persistence, decoding and retention.

A snapshot holds both configuration storages ("active" and "sync") in one
compressed, hashed blob.  Records are immutable after insert.  Every public
method opens its own short session; sessions are never nested.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine

from guardian_engine import __version__
from guardian_engine.activity.logger import ActivityLogger
from guardian_engine.canonical import documents_equal
from guardian_engine.config import Settings, load_settings
from guardian_engine.exceptions import IntegrityCheckFailedError, SerializationError, SnapshotNotFoundError
from guardian_engine.models.activity import ActivityAction
from guardian_engine.models.diff import ModifiedDocument, SnapshotDiff
from guardian_engine.models.snapshot import CompressionMethod, SnapshotPayload, SnapshotRecord, SnapshotType
from guardian_engine.patterns import filter_excluded
from guardian_engine.snapshot import codec
from guardian_engine.state.database import get_session
from guardian_engine.state.repository import SnapshotRepository, snapshot_record
from guardian_engine.storage.base import CacheInvalidator, ConfigStore, NullCacheInvalidator
from guardian_engine.telemetry.profiling import profile_operation

logger = logging.getLogger(__name__)

SNAPSHOT_LIST_TAG = "guardian:snapshot_list"


class SnapshotManager:
    """Creates, reads and prunes configuration snapshots.

    Parameters
    ----------
    engine:
        Engine for the state database.
    active_store:
        The live configuration store.
    sync_store:
        The export/import mirror of the configuration.
    settings:
        Compression, exclusion and retention settings.
    invalidator:
        Notified when the snapshot list changes.
    activity:
        Activity log; entries are written after each state change.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        active_store: ConfigStore,
        sync_store: ConfigStore,
        settings: Settings | None = None,
        *,
        invalidator: CacheInvalidator | None = None,
        activity: ActivityLogger | None = None,
    ) -> None:
        self._engine = engine
        self._active = active_store
        self._sync = sync_store
        self._settings = settings or load_settings()
        self._invalidator = invalidator or NullCacheInvalidator()
        self._activity = activity or ActivityLogger(engine, actor=self._settings.actor)

    @property
    def active_store(self) -> ConfigStore:
        return self._active

    @property
    def sync_store(self) -> ConfigStore:
        return self._sync

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def activity(self) -> ActivityLogger:
        return self._activity

    # -- encoding ------------------------------------------------------------

    def compress_data(self, data: Any, method: CompressionMethod | None = None) -> bytes:
        return codec.compress_payload(data, method or self._settings.compression)

    def decompress_data(self, blob: bytes | None) -> dict[str, Any]:
        return codec.decompress_payload(blob)

    # -- creation ------------------------------------------------------------

    def _capture(self, store: ConfigStore, patterns: Sequence[str]) -> dict[str, Any]:
        documents: dict[str, Any] = {}
        for name in filter_excluded(store.list_all(), patterns):
            document = store.read(name)
            # A name can disappear between list_all() and read(); skip it.
            if document is not None:
                documents[name] = document
        return documents

    @profile_operation("snapshot.create")
    async def create_snapshot(
        self,
        name: str,
        snapshot_type: SnapshotType | str = SnapshotType.MANUAL,
        *,
        description: str = "",
        exclude_patterns: Sequence[str] | None = None,
    ) -> SnapshotRecord:
        """Capture both storages and persist them as one snapshot.

        Parameters
        ----------
        name:
            Display name.
        snapshot_type:
            One of :class:`SnapshotType`.
        description:
            Free text stored with the record.
        exclude_patterns:
            Glob patterns of names to leave out; defaults to the configured
            ``exclude_patterns``.

        Raises
        ------
        SerializationError
            If the captured documents cannot be encoded.  Nothing is written.
        """
        snapshot_type = SnapshotType(snapshot_type)
        patterns = list(self._settings.exclude_patterns if exclude_patterns is None else exclude_patterns)

        payload = SnapshotPayload(
            version=2,
            active=self._capture(self._active, patterns),
            sync=self._capture(self._sync, patterns),
        )
        record = await self._persist(payload.to_dict(), name, snapshot_type, description)

        logger.info(
            "Snapshot '%s' created with id %d (active: %d, sync: %d)",
            name,
            record.id,
            len(payload.active),
            len(payload.sync),
        )
        await self._activity.record(
            ActivityAction.SNAPSHOT_CREATED,
            details={
                "name": name,
                "type": snapshot_type.value,
                "active_count": len(payload.active),
                "sync_count": len(payload.sync),
            },
            snapshot_id=record.id,
        )
        return record

    async def _persist(
        self,
        raw_payload: dict[str, Any],
        name: str,
        snapshot_type: SnapshotType,
        description: str,
    ) -> SnapshotRecord:
        # Encode and hash before opening a session so a failure writes nothing.
        blob = self.compress_data(raw_payload)
        config_hash = codec.compute_hash(raw_payload)
        config_count = len(codec.payload_from_raw(raw_payload).names())

        async with get_session(self._engine) as session:
            row = await SnapshotRepository(session).create(
                name=name,
                snapshot_type=snapshot_type,
                config_data=blob,
                config_hash=config_hash,
                config_count=config_count,
                created_by=self._settings.actor,
                description=description,
            )
            record = snapshot_record(row)

        self._invalidator.invalidate([SNAPSHOT_LIST_TAG])
        return record

    # -- reads ---------------------------------------------------------------

    async def _load(self, snapshot_id: int) -> tuple[SnapshotRecord, bytes] | None:
        async with get_session(self._engine) as session:
            row = await SnapshotRepository(session).get_by_id(snapshot_id)
            if row is None:
                return None
            return snapshot_record(row), bytes(row.config_data)

    async def load_snapshot(self, snapshot_id: int) -> SnapshotRecord | None:
        """Point lookup; ``None`` means no such snapshot (not an empty one)."""
        loaded = await self._load(snapshot_id)
        return loaded[0] if loaded is not None else None

    async def list_snapshots(
        self,
        snapshot_type: SnapshotType | str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[SnapshotRecord]:
        async with get_session(self._engine) as session:
            rows = await SnapshotRepository(session).list_snapshots(
                snapshot_type=SnapshotType(snapshot_type) if snapshot_type else None,
                limit=limit,
                offset=offset,
            )
            return [snapshot_record(row) for row in rows]

    async def count_snapshots(self, snapshot_type: SnapshotType | str | None = None) -> int:
        async with get_session(self._engine) as session:
            return await SnapshotRepository(session).count(SnapshotType(snapshot_type) if snapshot_type else None)

    async def latest_snapshot(self, snapshot_type: SnapshotType | str | None = None) -> SnapshotRecord | None:
        async with get_session(self._engine) as session:
            row = await SnapshotRepository(session).latest(SnapshotType(snapshot_type) if snapshot_type else None)
            return snapshot_record(row) if row is not None else None

    async def get_snapshot_config_data(self, snapshot_id: int) -> dict[str, Any]:
        """Raw decoded mapping of a snapshot; ``{}`` when missing or unreadable."""
        loaded = await self._load(snapshot_id)
        if loaded is None:
            return {}
        return codec.decompress_payload(loaded[1])

    async def get_snapshot_payload(self, snapshot_id: int) -> SnapshotPayload | None:
        loaded = await self._load(snapshot_id)
        if loaded is None:
            return None
        return codec.decode_payload(loaded[1])

    async def get_snapshot_active_data(self, snapshot_id: int) -> dict[str, Any]:
        payload = await self.get_snapshot_payload(snapshot_id)
        return payload.active if payload is not None else {}

    async def get_snapshot_sync_data(self, snapshot_id: int) -> dict[str, Any]:
        """Sync documents of a snapshot; always ``{}`` for legacy payloads."""
        payload = await self.get_snapshot_payload(snapshot_id)
        return payload.sync if payload is not None else {}

    async def is_snapshot_v2(self, snapshot_id: int) -> bool:
        payload = await self.get_snapshot_payload(snapshot_id)
        return payload is not None and payload.is_v2

    # -- comparison & integrity ----------------------------------------------

    async def compare_snapshots(self, first_id: int, second_id: int) -> SnapshotDiff:
        """Diff the active data of two snapshots; sync data is not compared.

        ``added`` holds names only in the second snapshot, ``removed`` names
        only in the first.

        Raises
        ------
        SnapshotNotFoundError
            If either snapshot does not exist.
        """
        first = await self.get_snapshot_payload(first_id)
        if first is None:
            raise SnapshotNotFoundError(first_id)
        second = await self.get_snapshot_payload(second_id)
        if second is None:
            raise SnapshotNotFoundError(second_id)

        before, after = first.active, second.active
        diff = SnapshotDiff()
        for name in sorted(after.keys() - before.keys()):
            diff.added[name] = after[name]
        for name in sorted(before.keys() - after.keys()):
            diff.removed[name] = before[name]
        for name in sorted(before.keys() & after.keys()):
            if not documents_equal(before[name], after[name]):
                diff.modified[name] = ModifiedDocument(before=before[name], after=after[name])
        return diff

    async def verify_snapshot_integrity(self, snapshot_id: int) -> bool:
        """Recompute the payload hash; ``False`` when missing or mismatched."""
        loaded = await self._load(snapshot_id)
        if loaded is None:
            return False
        record, blob = loaded
        valid = codec.hash_matches(codec.decompress_payload(blob), record.config_hash)
        if not valid:
            logger.warning("Integrity check failed for snapshot %d", snapshot_id)
        return valid

    # -- deletion & retention -----------------------------------------------

    async def delete_snapshot(self, snapshot_id: int) -> bool:
        async with get_session(self._engine) as session:
            deleted = await SnapshotRepository(session).delete(snapshot_id)
        if deleted:
            self._invalidator.invalidate([SNAPSHOT_LIST_TAG])
            logger.info("Deleted snapshot %d", snapshot_id)
            await self._activity.record(ActivityAction.SNAPSHOT_DELETED, snapshot_id=snapshot_id)
        return deleted

    async def cleanup_old_snapshots(self, cutoff: datetime, max_count: int) -> int:
        """Prune ``auto`` snapshots by age, then by count.

        Other snapshot types are never removed here, so the total can stay
        above *max_count* when it is made up of manual or pre-* snapshots.

        Returns
        -------
        int
            Number of snapshots deleted.
        """
        async with get_session(self._engine) as session:
            repo = SnapshotRepository(session)
            by_age = await repo.delete_auto_before(cutoff)
            excess = await repo.count() - max_count
            by_count = await repo.delete_many(await repo.oldest_auto_ids(excess)) if excess > 0 else 0

        total = by_age + by_count
        if total:
            logger.info("Snapshot retention removed %d by age and %d over the limit", by_age, by_count)
            self._invalidator.invalidate([SNAPSHOT_LIST_TAG])
            await self._activity.record(
                ActivityAction.SNAPSHOTS_CLEANED,
                details={"by_age": by_age, "by_count": by_count, "cutoff": cutoff.isoformat()},
            )
        return total

    # -- export / import -----------------------------------------------------

    async def export_snapshot(self, snapshot_id: int) -> dict[str, Any]:
        """Return the portable ``{"meta": ..., "config": ...}`` form of a snapshot."""
        loaded = await self._load(snapshot_id)
        if loaded is None:
            raise SnapshotNotFoundError(snapshot_id)
        record, blob = loaded
        return {
            "meta": {
                "name": record.name,
                "description": record.description,
                "type": record.type.value,
                "created": record.created.isoformat(),
                "hash": record.config_hash,
                "configCount": record.config_count,
                "createdBy": record.created_by,
                "guardianVersion": __version__,
            },
            "config": codec.decompress_payload(blob),
        }

    async def import_snapshot(self, data: dict[str, Any]) -> SnapshotRecord:
        """Store an exported snapshot as a new ``manual`` snapshot.

        Raises
        ------
        SerializationError
            If ``config`` is not a mapping.
        IntegrityCheckFailedError
            If ``meta.hash`` is present and matches no known hashing scheme.
        """
        meta = data.get("meta") or {}
        config = data.get("config")
        if not isinstance(config, dict):
            raise SerializationError("Snapshot file has no 'config' mapping")

        expected = meta.get("hash")
        if expected and not codec.hash_matches(config, expected):
            raise IntegrityCheckFailedError(None, "Imported snapshot does not match its recorded hash")

        name = meta.get("name") or "Imported snapshot"
        stamp = datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S")
        description = f"{meta.get('description') or ''} (Imported on {stamp})".strip()

        record = await self._persist(config, name, SnapshotType.MANUAL, description)
        logger.info("Imported snapshot '%s' as id %d", name, record.id)
        await self._activity.record(
            ActivityAction.SNAPSHOT_IMPORTED,
            details={"name": name, "original_created": meta.get("created")},
            snapshot_id=record.id,
        )
        return record
