"""Logging and profiling helpers."""

from __future__ import annotations

from guardian_engine.telemetry.json_formatter import JSONFormatter, configure_logging
from guardian_engine.telemetry.profiling import ProfileCollector, profile_operation

__all__ = [
    "JSONFormatter",
    "ProfileCollector",
    "configure_logging",
    "profile_operation",
]
