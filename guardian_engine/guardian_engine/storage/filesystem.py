"""Directory-backed configuration store: one YAML file per document."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

from guardian_engine.exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)

_EXTENSION = ".yml"


class FileConfigStore:
    """Store documents as ``<name>.yml`` files inside *directory*.

    Writes go through a temporary file followed by an atomic rename so a
    crash never leaves a half-written document behind.

    Parameters
    ----------
    directory:
        Root directory.  Created on first write when missing.
    """

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, name: str) -> Path:
        if not name or "/" in name or "\\" in name or name.startswith("."):
            raise ValueError(f"Invalid configuration name: {name!r}")
        return self._directory / f"{name}{_EXTENSION}"

    def list_all(self) -> list[str]:
        if not self._directory.exists():
            return []
        try:
            return sorted(
                p.name[: -len(_EXTENSION)]
                for p in self._directory.glob(f"*{_EXTENSION}")
                if p.is_file() and not p.name.startswith(".")
            )
        except OSError as exc:
            raise StorageUnavailableError(f"Cannot list {self._directory}: {exc}") from exc

    def read(self, name: str) -> dict[str, Any] | None:
        path = self._path(name)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageUnavailableError(f"Cannot read {path}: {exc}") from exc
        try:
            document = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise StorageUnavailableError(f"Cannot parse {path}: {exc}") from exc
        if document is None:
            return {}
        if not isinstance(document, dict):
            logger.warning("Ignoring non-mapping document in %s", path)
            return None
        return document

    def write(self, name: str, document: dict[str, Any]) -> None:
        path = self._path(name)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._directory, prefix=".tmp-", suffix=_EXTENSION)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    yaml.safe_dump(document, fh, sort_keys=False, allow_unicode=True, default_flow_style=False)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StorageUnavailableError(f"Cannot write {path}: {exc}") from exc

    def delete(self, name: str) -> None:
        path = self._path(name)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageUnavailableError(f"Cannot delete {path}: {exc}") from exc

    def exists(self, name: str) -> bool:
        return self._path(name).is_file()
