"""Canonical JSON serialisation shared by hashing and document comparison."""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json(data: Any) -> str:
    """Serialise *data* with sorted keys and no insignificant whitespace.

    Two structurally equal documents always produce the same string,
    regardless of key insertion order.  Raises ``TypeError`` or
    ``ValueError`` for values JSON cannot represent (including NaN).
    """
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def canonical_hash(data: Any) -> str:
    """SHA-256 hex digest of :func:`canonical_json`."""
    return hashlib.sha256(canonical_json(data).encode("utf-8")).hexdigest()


def documents_equal(left: Any, right: Any) -> bool:
    """Structural equality of two documents, ignoring key order."""
    try:
        return canonical_json(left) == canonical_json(right)
    except (TypeError, ValueError):
        return left == right
