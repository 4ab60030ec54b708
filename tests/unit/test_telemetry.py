"""Tests for JSON logging, batch correlation and pipeline counters."""

import json
import logging

from ingestion.service import BatchResult
from middleware.request_id import request_id_var
from telemetry import JSONFormatter, PipelineMetrics, TelemetryService, batch_context, partition_var


def format_record(message="hello", extra_data=None) -> dict:
    record = logging.LogRecord("ingestion.service", logging.INFO, __file__, 10, message, (), None)
    if extra_data is not None:
        record.extra_data = extra_data
    return json.loads(JSONFormatter().format(record))


class TestJSONFormatter:

    def test_formats_standard_fields(self):
        data = format_record()

        assert data["level"] == "INFO"
        assert data["message"] == "hello"
        assert data["logger"] == "ingestion.service"
        assert data["request_id"] == ""
        assert "partition" not in data

    def test_merges_extra_data(self):
        data = format_record(extra_data={"batch_size": 3})

        assert data["batch_size"] == 3

    def test_batch_context_binds_correlation_fields(self):
        with batch_context("0:10-19", partition="0"):
            data = format_record()
            assert request_id_var.get() == "0:10-19"

        assert data["request_id"] == "0:10-19"
        assert data["partition"] == "0"
        assert request_id_var.get() == ""
        assert partition_var.get() == ""


class TestTelemetryService:

    def test_installs_json_handler_at_configured_level(self):
        class FakeSettings:
            log_level = "WARNING"
            otel_endpoint = None

        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            TelemetryService(FakeSettings())

            assert root.level == logging.WARNING
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JSONFormatter)
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

    def test_span_is_a_no_op_without_tracing(self):
        service = TelemetryService.__new__(TelemetryService)
        service.tracer = None

        with service.create_external_service_span("cache", "get") as span:
            span.set_attribute("user.id", "abc")


class TestPipelineMetrics:

    def test_accumulates_batches(self):
        metrics = PipelineMetrics()

        metrics.record_batch(BatchResult(total=4, new=1, moved=1, unchanged=1, skipped=1))
        metrics.record_batch(BatchResult(total=1, new=1, forward_failures=1))
        metrics.record_batch_failure()

        snapshot = metrics.snapshot()
        assert snapshot["batches_processed"] == 2
        assert snapshot["batches_failed"] == 1
        assert snapshot["records_processed"] == 5
        assert snapshot["events_forwarded"] == 2
        assert snapshot["last_batch_time"] is not None

    def test_reset(self):
        metrics = PipelineMetrics()
        metrics.record_batch(BatchResult(total=1, new=1))

        metrics.reset()

        assert metrics.snapshot()["records_processed"] == 0
