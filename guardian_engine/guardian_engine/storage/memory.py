"""In-process configuration store."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any


class InMemoryConfigStore:
    """Dictionary-backed :class:`~guardian_engine.storage.base.ConfigStore`.

    Documents are deep-copied on the way in and out so callers can never
    mutate stored state by accident.  Also used to wrap decoded snapshot
    data when it has to be compared against a live store.
    """

    def __init__(self, documents: Mapping[str, dict[str, Any]] | None = None) -> None:
        self._documents: dict[str, dict[str, Any]] = {}
        for name, document in (documents or {}).items():
            self.write(name, document)

    def list_all(self) -> list[str]:
        return sorted(self._documents)

    def read(self, name: str) -> dict[str, Any] | None:
        document = self._documents.get(name)
        return copy.deepcopy(document) if document is not None else None

    def write(self, name: str, document: dict[str, Any]) -> None:
        self._documents[name] = copy.deepcopy(document)

    def delete(self, name: str) -> None:
        self._documents.pop(name, None)

    def exists(self, name: str) -> bool:
        return name in self._documents

    def as_dict(self) -> dict[str, dict[str, Any]]:
        return copy.deepcopy(self._documents)

    def __len__(self) -> int:
        return len(self._documents)
