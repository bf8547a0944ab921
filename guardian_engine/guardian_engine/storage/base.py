"""Collaborator interfaces consumed by the engine.

Configuration storage, cache invalidation and module discovery belong to the
host system.  The engine only talks to them through the small protocols
defined here.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class ConfigStore(Protocol):
    """Key-value store of named configuration documents.

    Implementations raise :class:`~guardian_engine.exceptions.StorageUnavailableError`
    when the backend itself cannot be used; the engine propagates it unchanged.
    """

    def list_all(self) -> list[str]:
        """Return every stored name."""
        ...

    def read(self, name: str) -> dict[str, Any] | None:
        """Return the document for *name*, or ``None`` when absent."""
        ...

    def write(self, name: str, document: dict[str, Any]) -> None: ...

    def delete(self, name: str) -> None: ...

    def exists(self, name: str) -> bool: ...


@runtime_checkable
class CacheInvalidator(Protocol):
    """Receives the signal that cached or derived state must be rebuilt."""

    def invalidate(self, tags: Iterable[str]) -> None: ...

    def refresh(self) -> None: ...


class NullCacheInvalidator:
    """Invalidator that only logs the request."""

    def invalidate(self, tags: Iterable[str]) -> None:
        logger.debug("Cache invalidation requested for tags: %s", ", ".join(sorted(tags)))

    def refresh(self) -> None:
        logger.debug("Full configuration refresh requested")


class RecordingCacheInvalidator:
    """Invalidator that keeps every signal it receives, in order."""

    def __init__(self) -> None:
        self.invalidated: list[list[str]] = []
        self.refresh_count = 0

    def invalidate(self, tags: Iterable[str]) -> None:
        self.invalidated.append(sorted(tags))

    def refresh(self) -> None:
        self.refresh_count += 1


@runtime_checkable
class ModuleRegistry(Protocol):
    """Answers whether an extension module is installed."""

    def module_exists(self, name: str) -> bool: ...


class StaticModuleRegistry:
    """Registry backed by a fixed set of module names."""

    def __init__(self, modules: Iterable[str] = ()) -> None:
        self._modules = frozenset(modules)

    def module_exists(self, name: str) -> bool:
        return name in self._modules


class ExtensionModuleRegistry:
    """Registry derived from the ``core.extension`` document in a store.

    The document lists installed modules as keys of its ``module`` mapping.
    It is re-read on every lookup so the answer tracks the live store.
    """

    EXTENSION_CONFIG = "core.extension"

    def __init__(self, store: ConfigStore) -> None:
        self._store = store

    def installed_modules(self) -> set[str]:
        document = self._store.read(self.EXTENSION_CONFIG) or {}
        modules = document.get("module")
        if isinstance(modules, dict):
            return set(modules)
        if isinstance(modules, list):
            return {str(m) for m in modules}
        return set()

    def module_exists(self, name: str) -> bool:
        return name in self.installed_modules()
