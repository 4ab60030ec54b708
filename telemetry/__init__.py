"""
Telemetry module for structured logging and observability.

This module provides:
- JSONFormatter for structured JSON log output
- batch_context for correlating the log lines of one batch
- TelemetryService for logging, metrics and optional tracing setup
- PipelineMetrics counters
"""

from telemetry.metrics import PipelineMetrics, metrics
from telemetry.service import (
    JSONFormatter,
    TelemetryService,
    batch_context,
    get_telemetry_service,
    initialize_telemetry,
    partition_var,
)

__all__ = [
    "JSONFormatter",
    "PipelineMetrics",
    "TelemetryService",
    "batch_context",
    "get_telemetry_service",
    "initialize_telemetry",
    "metrics",
    "partition_var",
]
