"""Activity log service."""

from guardian_engine.activity.logger import ActivityLogger

__all__ = ["ActivityLogger"]
