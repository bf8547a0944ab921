"""Glob-style exclusion of configuration names."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from fnmatch import fnmatchcase


def is_excluded(name: str, patterns: Sequence[str]) -> bool:
    """Return ``True`` when *name* matches any of *patterns* (``*``, ``?``, ``[...]``)."""
    return any(fnmatchcase(name, pattern) for pattern in patterns)


def filter_excluded(names: Iterable[str], patterns: Sequence[str]) -> list[str]:
    """Drop names matching any exclusion pattern, preserving order."""
    if not patterns:
        return list(names)
    return [name for name in names if not is_excluded(name, patterns)]
