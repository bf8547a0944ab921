"""Encoding, decoding and hashing of snapshot payloads.

All format tolerance lives here so that new formats only touch this module:

* **Compression** is probed in a fixed order on decode: gzip, zlib
  (older blobs), bzip2, then raw bytes.
* **Structured decode** tries JSON first and falls back to a restricted
  pickle loader for legacy blobs.  The loader refuses every global, so
  only plain containers and scalars can be produced.
* **Hashing** accepts the current canonical scheme or the legacy
  insertion-ordered scheme.

Decoding never raises: a blob that cannot be read yields an empty payload
and an ERROR log line, so one corrupt snapshot cannot break listings.
"""

from __future__ import annotations

import bz2
import gzip
import hashlib
import io
import json
import logging
import pickle
import zlib
from collections.abc import Callable
from typing import Any

from guardian_engine.canonical import canonical_hash, canonical_json
from guardian_engine.exceptions import SerializationError
from guardian_engine.models.snapshot import CompressionMethod, SnapshotPayload

logger = logging.getLogger(__name__)

PAYLOAD_VERSION = 2


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def serialize_payload(data: Any) -> bytes:
    """Canonical UTF-8 JSON bytes of *data*.

    Raises
    ------
    SerializationError
        If *data* contains values JSON cannot represent.
    """
    try:
        return canonical_json(data).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Failed to encode configuration data as JSON: {exc}") from exc


def compress_payload(data: Any, method: CompressionMethod | str = CompressionMethod.GZIP) -> bytes:
    """Serialise and compress *data* with *method*."""
    method = CompressionMethod(method)
    encoded = serialize_payload(data)
    if method == CompressionMethod.GZIP:
        return gzip.compress(encoded, compresslevel=9, mtime=0)
    if method == CompressionMethod.BZIP2:
        return bz2.compress(encoded)
    return encoded


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

_DECOMPRESSORS: tuple[tuple[str, Callable[[bytes], bytes]], ...] = (
    ("gzip", gzip.decompress),
    ("zlib", zlib.decompress),
    ("bzip2", bz2.decompress),
)


def _decompress_bytes(blob: bytes) -> bytes:
    for label, decompress in _DECOMPRESSORS:
        try:
            data = decompress(blob)
        except (OSError, EOFError, ValueError, zlib.error):
            continue
        logger.debug("Decompressed %d bytes as %s", len(blob), label)
        return data
    return blob


class _RestrictedUnpickler(pickle.Unpickler):
    """Unpickler that can only rebuild built-in containers and scalars."""

    def find_class(self, module: str, name: str) -> Any:
        raise pickle.UnpicklingError(f"Refusing to load global {module}.{name} from snapshot data")


def _load_json(data: bytes) -> Any:
    return json.loads(data.decode("utf-8"))


def _load_legacy_pickle(data: bytes) -> Any:
    return _RestrictedUnpickler(io.BytesIO(data)).load()


_DECODERS: tuple[tuple[str, Callable[[bytes], Any]], ...] = (
    ("json", _load_json),
    ("legacy-pickle", _load_legacy_pickle),
)


def decompress_payload(blob: bytes | None) -> dict[str, Any]:
    """Decode a stored blob into its raw mapping; ``{}`` when unreadable."""
    if not blob:
        logger.error("Failed to decompress snapshot data: empty blob")
        return {}

    data = _decompress_bytes(bytes(blob))
    for label, decode in _DECODERS:
        try:
            decoded = decode(data)
        except Exception:  # noqa: BLE001
            continue
        if isinstance(decoded, dict):
            if label != "json":
                logger.info("Decoded snapshot data with %s fallback", label)
            return decoded

    logger.error("Failed to decompress snapshot data (%d bytes)", len(blob))
    return {}


def payload_from_raw(raw: dict[str, Any]) -> SnapshotPayload:
    """Tag a decoded mapping as a version 2 or legacy version 1 payload."""
    if raw.get("version") == PAYLOAD_VERSION:
        active = raw.get("active")
        sync = raw.get("sync")
        return SnapshotPayload(
            version=2,
            active=active if isinstance(active, dict) else {},
            sync=sync if isinstance(sync, dict) else {},
        )
    return SnapshotPayload(version=1, active=dict(raw), sync={})


def decode_payload(blob: bytes | None) -> SnapshotPayload:
    """Decompress and decode *blob* into a :class:`SnapshotPayload`."""
    return payload_from_raw(decompress_payload(blob))


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------


def compute_hash(data: Any) -> str:
    """Current integrity hash: SHA-256 over the canonical JSON of *data*."""
    try:
        return canonical_hash(data)
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Failed to hash configuration data: {exc}") from exc


def legacy_hash(data: Any) -> str:
    """Hash used before canonical ordering: SHA-256 over insertion-ordered JSON."""
    return hashlib.sha256(json.dumps(data, ensure_ascii=False).encode("utf-8")).hexdigest()


_HASH_STRATEGIES: tuple[tuple[str, Callable[[Any], str]], ...] = (
    ("canonical", compute_hash),
    ("legacy", legacy_hash),
)


def hash_matches(data: Any, expected: str) -> bool:
    """Return ``True`` when any known hashing scheme reproduces *expected*."""
    for label, strategy in _HASH_STRATEGIES:
        try:
            if strategy(data) == expected:
                if label != "canonical":
                    logger.info("Snapshot hash validated with %s scheme", label)
                return True
        except (SerializationError, TypeError, ValueError):
            continue
    return False
