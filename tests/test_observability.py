"""Tests for the observability module.

Tests for metrics collection, timing, tracing and logging configuration.
"""
import logging
from logging.handlers import RotatingFileHandler

import pytest

from blocknotes.exceptions import NoteNotFoundError, StorageError
from blocknotes.observability import (
    MetricsCollector,
    configure_logging,
    metrics,
    timed_operation,
    traced,
)


class TestMetricsCollector:
    """Tests for MetricsCollector class."""

    @pytest.fixture
    def metrics_collector(self):
        return MetricsCollector()

    def test_record_successful_operation(self, metrics_collector):
        """Test recording a successful operation."""
        metrics_collector.record_operation("test_op", 100.0, True)

        snapshot = metrics_collector.get_metrics()
        assert snapshot["test_op"]["count"] == 1
        assert snapshot["test_op"]["success_count"] == 1
        assert snapshot["test_op"]["error_count"] == 0
        assert snapshot["test_op"]["avg_duration_ms"] == 100.0

    def test_record_failed_operation(self, metrics_collector):
        """Test recording a failed operation with error."""
        metrics_collector.record_operation("test_op", 50.0, False, "Test error")

        snapshot = metrics_collector.get_metrics()
        assert snapshot["test_op"]["error_count"] == 1
        assert snapshot["test_op"]["unexpected_error_count"] == 0
        assert snapshot["test_op"]["last_error"] == "Test error"
        assert snapshot["test_op"]["last_error_time"] is not None

    def test_multiple_operations_aggregated(self, metrics_collector):
        """Test that multiple operations are aggregated correctly."""
        metrics_collector.record_operation("test_op", 100.0, True)
        metrics_collector.record_operation("test_op", 200.0, True)
        metrics_collector.record_operation("test_op", 300.0, False, "Error", unexpected=True)

        snapshot = metrics_collector.get_metrics()
        assert snapshot["test_op"]["count"] == 3
        assert snapshot["test_op"]["avg_duration_ms"] == 200.0
        assert snapshot["test_op"]["min_duration_ms"] == 100.0
        assert snapshot["test_op"]["max_duration_ms"] == 300.0
        assert snapshot["test_op"]["unexpected_error_count"] == 1

    def test_get_summary(self, metrics_collector):
        """Test getting metrics summary."""
        metrics_collector.record_operation("op1", 100.0, True)
        metrics_collector.record_operation("op2", 200.0, False, "Error")

        summary = metrics_collector.get_summary()
        assert summary["total_operations"] == 2
        assert summary["total_success"] == 1
        assert summary["total_errors"] == 1
        assert set(summary["operations_tracked"]) == {"op1", "op2"}

    def test_reset_metrics(self, metrics_collector):
        """Test resetting all metrics."""
        metrics_collector.record_operation("test_op", 100.0, True)
        metrics_collector.reset()
        assert metrics_collector.get_metrics() == {}


class TestTimedOperation:
    """Tests for timed_operation context manager."""

    def test_records_success(self):
        with timed_operation("unit.success", key="value") as op:
            op["result_count"] = 3
        snapshot = metrics.get_metrics()["unit.success"]
        assert snapshot["count"] == 1
        assert snapshot["success_count"] == 1

    def test_domain_error_is_expected(self):
        with pytest.raises(NoteNotFoundError):
            with timed_operation("unit.missing"):
                raise NoteNotFoundError("n1")
        snapshot = metrics.get_metrics()["unit.missing"]
        assert snapshot["error_count"] == 1
        assert snapshot["unexpected_error_count"] == 0

    def test_storage_error_is_unexpected(self):
        with pytest.raises(StorageError):
            with timed_operation("unit.storage"):
                raise StorageError("disk full")
        assert metrics.get_metrics()["unit.storage"]["unexpected_error_count"] == 1


class TestTraced:
    """Tests for the traced decorator."""

    def test_traced_records_under_name(self):
        class Repo:
            @traced("repo.fetch")
            def fetch(self, note_id):
                return [note_id, note_id]

        assert Repo().fetch("abc") == ["abc", "abc"]
        assert metrics.get_metrics()["repo.fetch"]["success_count"] == 1

    def test_traced_defaults_to_function_name(self):
        @traced()
        def compute():
            return None

        compute()
        assert "compute" in metrics.get_metrics()

    def test_traced_repository_operation(self, note_repository):
        note_repository.create(title="traced")
        assert metrics.get_metrics()["note.create"]["count"] == 1


class TestConfigureLogging:
    """Tests for rotating file logging."""

    def test_creates_log_file(self, tmp_path):
        package_logger = logging.getLogger("blocknotes")
        before = list(package_logger.handlers)
        try:
            log_dir = configure_logging(log_dir=tmp_path / "logs", console=False)
            assert log_dir == tmp_path / "logs"
            assert (log_dir / "blocknotes.log").exists()
            added = [h for h in package_logger.handlers if h not in before]
            assert any(isinstance(h, RotatingFileHandler) for h in added)
        finally:
            for handler in list(package_logger.handlers):
                if handler not in before:
                    package_logger.removeHandler(handler)
                    handler.close()
            package_logger.setLevel(logging.NOTSET)
