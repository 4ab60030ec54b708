"""
Health check module for the location movement pipeline.

Reports the liveness of the process and the readiness of the location
cache and the movement event sink.
"""

from health.service import (
    HealthCheckService,
    HealthStatus,
    DependencyHealth,
)

__all__ = [
    "HealthCheckService",
    "HealthStatus",
    "DependencyHealth",
]
