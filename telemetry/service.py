"""
Telemetry service for structured logging and observability.

All pipeline logs are emitted as JSON lines carrying the correlation
id of the batch being processed and the stream partition it came from,
so the records of one batch can be followed across partition workers.
"""

import logging
import json
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional, Dict

from middleware.request_id import request_id_var

# Partition of the batch handled by the current worker task
partition_var: ContextVar[str] = ContextVar("partition", default="")


class JSONFormatter(logging.Formatter):
    """
    Log formatter that outputs one JSON object per record.

    Each entry contains timestamp, level, message, logger, request_id
    and, inside a partition worker, the partition. Additional fields
    are taken from the ``extra_data`` attribute of the record.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "request_id": request_id_var.get(""),
        }

        partition = partition_var.get("")
        if partition:
            log_data["partition"] = partition

        if record.module:
            log_data["module"] = record.module
        if record.funcName and record.funcName != "<module>":
            log_data["function"] = record.funcName
        if record.lineno:
            log_data["line"] = record.lineno

        if hasattr(record, "extra_data") and record.extra_data:
            log_data.update(record.extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_data["stack_trace"] = record.stack_info

        return json.dumps(log_data, default=str)


@contextmanager
def batch_context(batch_id: str, partition: str = "") -> Iterator[None]:
    """Bind a batch correlation id and partition to the current context."""
    request_token = request_id_var.set(batch_id)
    partition_token = partition_var.set(partition)
    try:
        yield
    finally:
        partition_var.reset(partition_token)
        request_id_var.reset(request_token)


class TelemetryService:
    """
    Centralized logging, metrics and tracing setup.

    Provides:
    - JSON logging on stdout at the configured level
    - Metric records as structured debug log lines
    - OpenTelemetry spans around cache and sink calls when an OTLP
      endpoint is configured
    """

    def __init__(self, settings: Optional[Any] = None):
        self.settings = settings
        self.tracer = None
        self._logger = logging.getLogger("telemetry")
        self._setup_logging()
        self._setup_tracing()

    def _setup_logging(self) -> None:
        log_level_str = "INFO"
        if self.settings and hasattr(self.settings, "log_level"):
            log_level_str = self.settings.log_level

        log_level = getattr(logging, log_level_str.upper(), logging.INFO)

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)

        # Replace existing handlers to avoid duplicate lines
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setLevel(log_level)
        stdout_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(stdout_handler)

        self._logger.info("Telemetry service initialized", extra={
            "extra_data": {"log_level": log_level_str}
        })

    def _setup_tracing(self) -> None:
        if not self.settings:
            return

        otel_endpoint = getattr(self.settings, "otel_endpoint", None)
        if not otel_endpoint:
            self._logger.debug("OpenTelemetry endpoint not configured, tracing disabled")
            return

        try:
            from opentelemetry import trace
            from opentelemetry.sdk.trace import TracerProvider
            from opentelemetry.sdk.trace.export import BatchSpanProcessor
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
            from opentelemetry.sdk.resources import Resource, SERVICE_NAME
        except ImportError as e:
            self._logger.warning(
                "OpenTelemetry packages not installed, tracing disabled",
                extra={"extra_data": {"error": str(e)}}
            )
            return

        service_name = getattr(self.settings, "otel_service_name", "location-movement-pipeline")
        provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: service_name}))
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otel_endpoint)))
        trace.set_tracer_provider(provider)
        self.tracer = trace.get_tracer(service_name)

        self._logger.info("OpenTelemetry tracing configured", extra={
            "extra_data": {"otel_endpoint": otel_endpoint, "service_name": service_name}
        })

    def record_metric(
        self,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None
    ) -> None:
        """Record a metric as a structured debug log line."""
        metric_data: Dict[str, Any] = {
            "metric_name": name,
            "metric_value": value,
        }
        if tags:
            metric_data["tags"] = tags

        self._logger.debug(
            f"Metric: {name}={value}",
            extra={"extra_data": metric_data}
        )

    def create_external_service_span(
        self,
        service_name: str,
        operation: str,
        attributes: Optional[Dict[str, Any]] = None
    ):
        """
        Span around a call to an external service such as the cache or sink.

        Returns a no-op context manager when tracing is not configured.
        """
        if not self.tracer:
            return _NoOpSpanContextManager()

        span_attributes: Dict[str, Any] = {
            "service.name": service_name,
            "operation.name": operation,
            "span.kind": "client",
        }
        if attributes:
            span_attributes.update(attributes)
        return self.tracer.start_as_current_span(
            f"{service_name}.{operation}", attributes=span_attributes
        )


class _NoOpSpanContextManager:
    """Stand-in span used when tracing is not configured."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def set_attribute(self, key: str, value: Any) -> None:
        pass

    def record_exception(self, exception: BaseException) -> None:
        pass


_telemetry_service: Optional[TelemetryService] = None


def get_telemetry_service() -> Optional[TelemetryService]:
    """Return the process telemetry service, or None if not initialized."""
    return _telemetry_service


def initialize_telemetry(settings: Optional[Any] = None) -> TelemetryService:
    """Initialize the process telemetry service from settings."""
    global _telemetry_service
    _telemetry_service = TelemetryService(settings)
    return _telemetry_service
