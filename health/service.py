"""
Health check service for the location movement pipeline.

This module provides the HealthCheckService class that monitors the
location cache and the movement event sink. Each dependency check is
bounded by a timeout and reports its response time.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class DependencyHealth:
    """
    Health status of a single dependency.

    Attributes:
        name: The name of the dependency (e.g., "location_cache", "event_sink")
        healthy: Whether the dependency is healthy and responding
        response_time_ms: The time taken to check the dependency in milliseconds
        error: Optional error message if the dependency check failed
    """
    name: str
    healthy: bool
    response_time_ms: float
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result = {
            "name": self.name,
            "healthy": self.healthy,
            "response_time_ms": round(self.response_time_ms, 2),
        }
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class HealthStatus:
    """
    Overall health status of the pipeline.

    Attributes:
        status: Overall status - "healthy", "degraded", or "unhealthy"
        timestamp: When the health check was performed (ISO 8601, UTC)
        dependencies: Individual dependency health statuses
        circuit_breaker: State of the sink circuit breaker, if any
    """
    status: str
    timestamp: str
    dependencies: list[DependencyHealth] = field(default_factory=list)
    circuit_breaker: Optional[dict[str, Any]] = None

    @property
    def is_ready(self) -> bool:
        return self.status != "unhealthy"

    def to_dict(self) -> dict[str, Any]:
        result = {
            "status": self.status,
            "timestamp": self.timestamp,
            "dependencies": [dep.to_dict() for dep in self.dependencies],
        }
        if self.circuit_breaker is not None:
            result["circuit_breaker"] = self.circuit_breaker
        return result


class HealthCheckService:
    """
    Service for checking the health of the pipeline's dependencies.

    Attributes:
        cache: The location cache to check
        sink: The movement event sink to check
        circuit_breaker: Optional breaker guarding the sink
        check_timeout: Timeout in seconds for each dependency check
    """

    def __init__(
        self,
        cache: Any,
        sink: Any,
        circuit_breaker: Optional[Any] = None,
        check_timeout: float = 5.0
    ):
        self.cache = cache
        self.sink = sink
        self.circuit_breaker = circuit_breaker
        self.check_timeout = check_timeout

    async def check_readiness(self) -> HealthStatus:
        """
        Check the cache and the sink concurrently.

        The pipeline is unhealthy if either is unreachable, and degraded
        while the sink circuit breaker is not closed.
        """
        dependencies = list(await asyncio.gather(
            self._check_dependency("location_cache", self.cache.health_check),
            self._check_dependency("event_sink", self.sink.health_check),
        ))

        circuit = self.circuit_breaker.to_dict() if self.circuit_breaker is not None else None
        status = self._determine_overall_status(dependencies, circuit)

        return HealthStatus(
            status=status,
            timestamp=_utc_timestamp(),
            dependencies=dependencies,
            circuit_breaker=circuit,
        )

    async def check_liveness(self) -> dict[str, Any]:
        """Process is running; no dependency is checked."""
        return {"status": "alive", "timestamp": _utc_timestamp()}

    async def check_health(self) -> dict[str, Any]:
        return {"status": "ok", "timestamp": _utc_timestamp()}

    async def _check_dependency(
        self,
        name: str,
        check: Callable[[], Awaitable[bool]]
    ) -> DependencyHealth:
        """Run ``check`` with the configured timeout and time it."""
        start_time = time.perf_counter()

        try:
            result = await asyncio.wait_for(check(), timeout=self.check_timeout)
        except asyncio.TimeoutError:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            error_msg = f"{name} health check timed out after {self.check_timeout} seconds"
            logger.warning(error_msg)
            return DependencyHealth(name=name, healthy=False, response_time_ms=elapsed_ms, error=error_msg)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            error_msg = f"{name} health check failed: {e}"
            logger.error(error_msg)
            return DependencyHealth(name=name, healthy=False, response_time_ms=elapsed_ms, error=error_msg)

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        if not result:
            logger.warning("%s health check returned False after %.2fms", name, elapsed_ms)
            return DependencyHealth(
                name=name,
                healthy=False,
                response_time_ms=elapsed_ms,
                error=f"{name} health check returned False",
            )

        logger.debug("%s health check passed in %.2fms", name, elapsed_ms)
        return DependencyHealth(name=name, healthy=True, response_time_ms=elapsed_ms)

    def _determine_overall_status(
        self,
        dependencies: list[DependencyHealth],
        circuit: Optional[dict[str, Any]]
    ) -> str:
        if not all(dep.healthy for dep in dependencies):
            return "unhealthy"
        if circuit is not None and circuit["state"] != "closed":
            return "degraded"
        return "healthy"
