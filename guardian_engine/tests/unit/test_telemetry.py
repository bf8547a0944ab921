"""Tests for the JSON log formatter and operation profiling."""

from __future__ import annotations

import json
import logging
import sys

import pytest
from guardian_engine.telemetry import JSONFormatter, ProfileCollector, configure_logging, profile_operation


def _record(msg: str = "hello %s", args=("world",), **extra) -> logging.LogRecord:
    record = logging.LogRecord("guardian_engine.test", logging.INFO, __file__, 10, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_basic_fields(self) -> None:
        payload = json.loads(JSONFormatter().format(_record()))
        assert payload["level"] == "INFO"
        assert payload["logger"] == "guardian_engine.test"
        assert payload["message"] == "hello world"
        assert payload["timestamp"].endswith("+00:00")
        assert "context" not in payload
        assert "exc_info" not in payload

    def test_context_and_exception(self) -> None:
        try:
            raise ValueError("boom")
        except ValueError:
            record = _record(context={"snapshot_id": 3})
            record.exc_info = sys.exc_info()

        payload = json.loads(JSONFormatter().format(record))
        assert payload["context"] == {"snapshot_id": 3}
        assert "ValueError: boom" in payload["exc_info"]


class TestConfigureLogging:
    def test_replaces_previous_handler(self) -> None:
        root = logging.getLogger()
        original_level = root.level
        try:
            first = configure_logging(structured=False)
            second = configure_logging(structured=True, level=logging.INFO)

            assert first not in root.handlers
            assert second in root.handlers
            assert isinstance(second.formatter, JSONFormatter)
            assert root.level == logging.INFO
        finally:
            for handler in list(root.handlers):
                if getattr(handler, "_guardian_handler", False):
                    root.removeHandler(handler)
            root.setLevel(original_level)


class TestProfileOperation:
    def test_sync_function(self) -> None:
        @profile_operation("test.sync")
        def add(a, b):
            return a + b

        assert add(1, 2) == 3
        assert add(2, 2) == 4
        stats = ProfileCollector.get_instance().get_stats("test.sync")
        assert stats["count"] == 2
        assert stats["max_ms"] >= stats["mean_ms"] >= 0

    @pytest.mark.asyncio
    async def test_async_function_records_on_error(self) -> None:
        @profile_operation("test.async")
        async def fail():
            raise RuntimeError("nope")

        with pytest.raises(RuntimeError):
            await fail()
        assert ProfileCollector.get_instance().get_stats("test.async")["count"] == 1
        assert ProfileCollector.get_instance().operations() == ["test.async"]

    def test_unknown_operation(self) -> None:
        assert ProfileCollector.get_instance().get_stats("never.called") is None

    def test_sample_window(self) -> None:
        collector = ProfileCollector(max_results=3)
        for value in (1.0, 2.0, 3.0, 10.0):
            collector.record("op", value)
        stats = collector.get_stats("op")
        assert stats["count"] == 3
        assert stats["max_ms"] == 10.0
        assert stats["mean_ms"] == 5.0
