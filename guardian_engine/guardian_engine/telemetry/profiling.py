"""Timing instrumentation for engine hot paths.

``@profile_operation(name)`` wraps sync or async callables, measures
wall-clock duration with ``perf_counter_ns`` and stores it in the
process-wide :class:`ProfileCollector`.  Each measurement is also logged at
DEBUG level, so timings appear in the JSON log stream when enabled::

    @profile_operation("risk.aggregate")
    def calculate_risk_score(self, names): ...
"""

from __future__ import annotations

import functools
import inspect
import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class ProfileCollector:
    """Thread-safe store of the most recent durations per operation.

    Parameters
    ----------
    max_results:
        Number of samples retained per operation name.
    """

    _instance: ProfileCollector | None = None
    _instance_lock = threading.Lock()

    def __init__(self, max_results: int = 200) -> None:
        self._max_results = max_results
        self._samples: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> ProfileCollector:
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = ProfileCollector()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        with cls._instance_lock:
            cls._instance = None

    def record(self, operation: str, duration_ms: float) -> None:
        with self._lock:
            samples = self._samples.setdefault(operation, deque(maxlen=self._max_results))
            samples.append(duration_ms)

    def get_stats(self, operation: str) -> dict[str, Any] | None:
        """Return count / mean / p95 / max for *operation*, or ``None`` if never recorded."""
        with self._lock:
            samples = sorted(self._samples.get(operation, ()))
        if not samples:
            return None
        count = len(samples)
        p95_index = min(count - 1, int(round(0.95 * (count - 1))))
        return {
            "operation": operation,
            "count": count,
            "mean_ms": round(sum(samples) / count, 3),
            "p95_ms": round(samples[p95_index], 3),
            "max_ms": round(samples[-1], 3),
        }

    def operations(self) -> list[str]:
        with self._lock:
            return sorted(self._samples)


def _finish(name: str, start_ns: int) -> None:
    duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
    ProfileCollector.get_instance().record(name, round(duration_ms, 3))
    logger.debug("PROFILE %s: %.3f ms", name, duration_ms)


def profile_operation(name: str) -> Callable[[F], F]:
    """Decorator recording the duration of every call under *name*."""

    def decorator(func: F) -> F:
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                start_ns = time.perf_counter_ns()
                try:
                    return await func(*args, **kwargs)
                finally:
                    _finish(name, start_ns)

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            start_ns = time.perf_counter_ns()
            try:
                return func(*args, **kwargs)
            finally:
                _finish(name, start_ns)

        return sync_wrapper  # type: ignore[return-value]

    return decorator
