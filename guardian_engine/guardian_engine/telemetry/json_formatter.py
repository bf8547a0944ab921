"""JSON log formatter and root logger setup.

Activate by setting ``GUARDIAN_STRUCTURED_LOGGING=true`` (or passing
``--log-json`` to the CLI).  Each record becomes one JSON line::

    {
        "timestamp": "2026-05-15T12:34:56.789012+00:00",
        "level": "INFO",
        "logger": "guardian_engine.rollback.engine",
        "message": "Rollback to snapshot 4 completed",
        "context": { ... },       // present when passed via extra={"context": ...}
        "exc_info": "Traceback ..."  // present only on exceptions
    }
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from datetime import UTC, datetime
from typing import Any

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        """Render *record* as a single JSON line."""
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if context is not None:
            payload["context"] = context

        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_info"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(structured: bool = False, level: int | str = logging.WARNING) -> logging.Handler:
    """Install a single stderr handler on the root logger.

    Replaces any handlers previously installed by this function so it can
    be called more than once (the CLI callback runs per invocation).
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_guardian_handler", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if structured else logging.Formatter(_TEXT_FORMAT))
    handler._guardian_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(level)
    return handler
