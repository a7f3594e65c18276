"""Tests for the observability module.

Tests for metrics collection, operation timing, and logging configuration.
"""
import logging

import pytest

from notesync.observability import (
    OUTCOME_FAILED,
    OUTCOME_UNAVAILABLE,
    MetricsCollector,
    configure_logging,
    metrics,
    timed_operation,
)


@pytest.fixture
def metrics_collector():
    return MetricsCollector()


@pytest.fixture
def clean_notesync_logger():
    """Remove handlers added to the package logger during a test."""
    logger = logging.getLogger("notesync")
    before = list(logger.handlers)
    level = logger.level
    yield logger
    for handler in list(logger.handlers):
        if handler not in before:
            handler.close()
            logger.removeHandler(handler)
    logger.setLevel(level)


class TestMetricsCollector:
    """Tests for MetricsCollector class."""

    def test_record_ok_call(self, metrics_collector):
        metrics_collector.record_operation("fetch_all", 12.5)
        data = metrics_collector.get_metrics()["fetch_all"]
        assert data["count"] == 1
        assert data["ok_count"] == 1
        assert data["unavailable_count"] == 0
        assert data["avg_duration_ms"] == 12.5
        assert data["last_error"] is None

    def test_unavailable_and_failed_are_counted_apart(self, metrics_collector):
        metrics_collector.record_operation("update", 3.0, OUTCOME_UNAVAILABLE, "Request failed: 503")
        metrics_collector.record_operation("update", 4.0, OUTCOME_FAILED, "Invalid URL")
        data = metrics_collector.get_metrics()["update"]
        assert data["unavailable_count"] == 1
        assert data["failed_count"] == 1
        assert data["last_error"] == "Invalid URL"
        assert data["last_error_time"] is not None

    def test_durations_aggregate(self, metrics_collector):
        metrics_collector.record_operation("create", 10.0)
        metrics_collector.record_operation("create", 30.0)
        data = metrics_collector.get_metrics()["create"]
        assert data["count"] == 2
        assert data["avg_duration_ms"] == 20.0
        assert data["max_duration_ms"] == 30.0

    def test_get_summary(self, metrics_collector):
        metrics_collector.record_operation("create", 1.0)
        metrics_collector.record_operation("delete", 1.0, OUTCOME_UNAVAILABLE, "down")
        summary = metrics_collector.get_summary()
        assert summary["total_calls"] == 2
        assert summary["ok"] == 1
        assert summary["unavailable"] == 1
        assert summary["failed"] == 0
        assert summary["availability"] == 0.5
        assert summary["operations_tracked"] == ["create", "delete"]

    def test_empty_summary(self, metrics_collector):
        assert metrics_collector.get_summary()["availability"] == 1.0

    def test_reset_metrics(self, metrics_collector):
        metrics_collector.record_operation("create", 1.0)
        metrics_collector.reset()
        assert metrics_collector.get_metrics() == {}


class TestTimedOperation:
    """timed_operation records into the global collector."""

    def test_records_ok(self):
        with timed_operation("fetch_all", path="/notes") as op:
            op["result_count"] = 3
        assert metrics.get_metrics()["fetch_all"]["ok_count"] == 1

    def test_exception_is_recorded_as_failed(self):
        with pytest.raises(RuntimeError):
            with timed_operation("create"):
                raise RuntimeError("boom")
        data = metrics.get_metrics()["create"]
        assert data["failed_count"] == 1
        assert data["last_error"] == "boom"

    def test_flagged_unavailable_without_raising(self):
        with timed_operation("update") as op:
            op["outcome"] = OUTCOME_UNAVAILABLE
            op["error"] = "Request failed: 503"
        data = metrics.get_metrics()["update"]
        assert data["unavailable_count"] == 1
        assert data["last_error"] == "Request failed: 503"


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_creates_directory_and_returns_it(self, tmp_path, clean_notesync_logger):
        log_dir = tmp_path / "logs"
        result = configure_logging(log_dir=log_dir, console=False)
        assert result == log_dir
        assert log_dir.is_dir()

    def test_sets_level_and_writes_file(self, tmp_path, clean_notesync_logger):
        configure_logging(log_dir=tmp_path, level=logging.DEBUG, console=False)
        assert clean_notesync_logger.level == logging.DEBUG
        logging.getLogger("notesync.test").debug("hello from test")
        for handler in clean_notesync_logger.handlers:
            handler.flush()
        assert "hello from test" in (tmp_path / "notesync.log").read_text(encoding="utf-8")
