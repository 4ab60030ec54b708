"""
Circuit breaker for calls to external services.

Protects the movement event sink: after a run of consecutive failures
the circuit opens and forward attempts fail immediately, instead of
every record in every partition waiting out its full retry budget.

States:
- CLOSED: Normal operation, calls pass through
- OPEN: The service is failing, calls are rejected immediately
- HALF_OPEN: A limited number of trial calls decide whether to close
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """
    Circuit breaker states.

    - CLOSED -> OPEN: after failure_threshold consecutive failures
    - OPEN -> HALF_OPEN: after recovery_timeout has elapsed
    - HALF_OPEN -> CLOSED: on a successful trial call
    - HALF_OPEN -> OPEN: on a failed trial call
    """
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """
    Configuration for a circuit breaker.

    Attributes:
        failure_threshold: Consecutive failures before the circuit opens.
        recovery_timeout: Seconds to wait before allowing trial calls.
        half_open_max_calls: Trial calls allowed while half-open.
    """
    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    half_open_max_calls: int = 1


class CircuitOpenException(Exception):
    """Raised instead of calling the service while the circuit is open."""

    def __init__(self, circuit_name: str, time_until_retry: Optional[float] = None):
        self.circuit_name = circuit_name
        self.time_until_retry = time_until_retry

        message = f"Circuit breaker '{circuit_name}' is open"
        if time_until_retry is not None:
            message += f", retry in {time_until_retry:.1f} seconds"

        super().__init__(message)


class CircuitBreaker:
    """
    Circuit breaker guarding an async callable.

    Example:
        breaker = CircuitBreaker("movement-sink", CircuitBreakerConfig(failure_threshold=5))
        ack = await breaker.execute(sink.append, event)
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        excluded_exceptions: Tuple[Type[BaseException], ...] = (),
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        # Raised by a healthy service; they neither trip nor reset the circuit
        self.excluded_exceptions = excluded_exceptions
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None
        self._half_open_calls = 0
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def _seconds_since_failure(self) -> Optional[float]:
        if self._last_failure_time is None:
            return None
        return self._clock() - self._last_failure_time

    def _should_attempt_reset(self) -> bool:
        elapsed = self._seconds_since_failure()
        return elapsed is None or elapsed >= self.config.recovery_timeout

    def _get_time_until_retry(self) -> Optional[float]:
        elapsed = self._seconds_since_failure()
        if elapsed is None:
            return None
        remaining = self.config.recovery_timeout - elapsed
        return remaining if remaining > 0 else None

    def _transition(self, new_state: CircuitState) -> None:
        if new_state is self._state:
            return
        logger.warning(
            "Circuit breaker '%s' %s -> %s",
            self.name,
            self._state.value,
            new_state.value,
            extra={"extra_data": {
                "circuit_name": self.name,
                "from_state": self._state.value,
                "to_state": new_state.value,
                "failure_count": self._failure_count,
            }}
        )
        self._state = new_state

    def _on_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.CLOSED)
            self._half_open_calls = 0
        self._failure_count = 0

    def _release_trial(self) -> None:
        if self._state == CircuitState.HALF_OPEN and self._half_open_calls > 0:
            self._half_open_calls -= 1

    def _on_failure(self) -> None:
        self._last_failure_time = self._clock()

        if self._state == CircuitState.HALF_OPEN:
            self._half_open_calls = 0
            self._transition(CircuitState.OPEN)
        elif self._state == CircuitState.CLOSED:
            self._failure_count += 1
            if self._failure_count >= self.config.failure_threshold:
                self._transition(CircuitState.OPEN)

    async def execute(
        self,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        **kwargs: Any
    ) -> Any:
        """
        Call ``func`` unless the circuit is open.

        Raises:
            CircuitOpenException: If the circuit is open, or half-open
                with its trial calls already in flight.
            Exception: Whatever the underlying call raised.
        """
        async with self._lock:
            if self._state == CircuitState.OPEN:
                if not self._should_attempt_reset():
                    raise CircuitOpenException(self.name, self._get_time_until_retry())
                self._transition(CircuitState.HALF_OPEN)
                self._half_open_calls = 0

            if self._state == CircuitState.HALF_OPEN:
                if self._half_open_calls >= self.config.half_open_max_calls:
                    raise CircuitOpenException(self.name, self._get_time_until_retry())
                self._half_open_calls += 1

        try:
            result = await func(*args, **kwargs)
        except self.excluded_exceptions:
            self._release_trial()
            raise
        except BaseException:
            # A cancelled call counts as a failure, or a half-open slot would leak
            self._on_failure()
            raise

        async with self._lock:
            self._on_success()
        return result

    def reset(self) -> None:
        """Force the circuit back to CLOSED."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = None
        self._half_open_calls = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "time_until_retry_seconds": self._get_time_until_retry(),
        }

    def __repr__(self) -> str:
        return (
            f"CircuitBreaker(name={self.name!r}, state={self._state.value}, "
            f"failure_count={self._failure_count})"
        )
