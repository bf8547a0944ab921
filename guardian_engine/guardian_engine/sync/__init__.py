"""Active/sync comparison, export and import."""

from guardian_engine.sync.service import ConfigSyncService, ImportContext

__all__ = ["ConfigSyncService", "ImportContext"]
