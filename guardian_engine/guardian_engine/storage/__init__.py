"""Configuration storage collaborators."""

from guardian_engine.storage.base import (
    CacheInvalidator,
    ConfigStore,
    ExtensionModuleRegistry,
    ModuleRegistry,
    NullCacheInvalidator,
    RecordingCacheInvalidator,
    StaticModuleRegistry,
)
from guardian_engine.storage.filesystem import FileConfigStore
from guardian_engine.storage.memory import InMemoryConfigStore

__all__ = [
    "CacheInvalidator",
    "ConfigStore",
    "ExtensionModuleRegistry",
    "FileConfigStore",
    "InMemoryConfigStore",
    "ModuleRegistry",
    "NullCacheInvalidator",
    "RecordingCacheInvalidator",
    "StaticModuleRegistry",
]
