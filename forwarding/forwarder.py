"""
Event forwarder: at-least-once delivery of movement events to the sink.

Each event is appended through a circuit breaker, inside a bounded
retry loop with exponential backoff. When the budget is exhausted, the
circuit is open, or the sink rejects the event, a ForwardError is
raised. The stream consumer then applies the configured forward
failure policy; the forwarder itself never drops an event silently.
"""

import logging
from contextlib import nullcontext
from typing import Any, Optional

from errors.exceptions import sink_unavailable
from forwarding.sink import EventSink, SinkAck, SinkRejectedError
from movement.models import MovementEvent
from resilience.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitOpenException
from resilience.retry import RetryConfig, RetryExhaustedException, retry_async

logger = logging.getLogger(__name__)


class EventForwarder:
    """
    Forwards MovementEvents to an EventSink.

    Attributes:
        sink: Destination of the events
        retry_config: Backoff settings for transient sink failures
        circuit_breaker: Breaker shared by every forward through this forwarder
    """

    def __init__(
        self,
        sink: EventSink,
        retry_config: Optional[RetryConfig] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        telemetry: Any = None,
    ):
        self.sink = sink
        base = retry_config or RetryConfig()
        # Retrying an open circuit or a permanent rejection cannot succeed
        self.retry_config = RetryConfig(
            max_attempts=base.max_attempts,
            initial_delay=base.initial_delay,
            exponential_base=base.exponential_base,
            max_delay=base.max_delay,
            retryable_exceptions=base.retryable_exceptions,
            non_retryable_exceptions=tuple(base.non_retryable_exceptions)
            + (CircuitOpenException, SinkRejectedError),
        )
        self.circuit_breaker = circuit_breaker or CircuitBreaker(f"sink:{sink.name}")
        # A rejected event says nothing about the sink's availability
        if SinkRejectedError not in self.circuit_breaker.excluded_exceptions:
            self.circuit_breaker.excluded_exceptions = (
                tuple(self.circuit_breaker.excluded_exceptions) + (SinkRejectedError,)
            )
        self.telemetry = telemetry

    @classmethod
    def from_settings(cls, settings, sink: EventSink, telemetry: Any = None) -> "EventForwarder":
        return cls(
            sink=sink,
            retry_config=RetryConfig(
                max_attempts=settings.forward_max_attempts,
                initial_delay=settings.forward_initial_delay_seconds,
                max_delay=settings.forward_max_delay_seconds,
            ),
            circuit_breaker=CircuitBreaker(
                f"sink:{sink.name}",
                CircuitBreakerConfig(
                    failure_threshold=settings.sink_circuit_failure_threshold,
                    recovery_timeout=settings.sink_circuit_recovery_seconds,
                ),
            ),
            telemetry=telemetry,
        )

    def _span(self, event: MovementEvent):
        if self.telemetry is None:
            return nullcontext()
        return self.telemetry.create_external_service_span(
            "sink", "append", {"sink.name": self.sink.name, "user.id": event.user_id}
        )

    async def forward(self, event: MovementEvent) -> SinkAck:
        """
        Durably append ``event`` to the sink.

        Returns:
            The sink acknowledgement.

        Raises:
            ForwardError: If the event could not be appended.
        """
        attempts = 0

        async def _append() -> SinkAck:
            nonlocal attempts
            attempts += 1
            return await self.circuit_breaker.execute(self.sink.append, event)

        try:
            with self._span(event):
                ack = await retry_async(
                    _append,
                    config=self.retry_config,
                    operation_name=f"{self.sink.name}.append",
                )
        except CircuitOpenException as e:
            raise sink_unavailable(
                f"Sink circuit breaker '{e.circuit_name}' is open",
                event=event,
                attempts=attempts,
                details={"time_until_retry_seconds": e.time_until_retry},
            ) from e
        except SinkRejectedError as e:
            raise sink_unavailable(
                str(e),
                event=event,
                attempts=attempts,
                details={"rejected": True},
            ) from e
        except RetryExhaustedException as e:
            raise sink_unavailable(
                f"Failed to append movement event after {e.attempts} attempts: {e.last_exception}",
                event=event,
                attempts=e.attempts,
                details={"error_type": type(e.last_exception).__name__},
            ) from e

        logger.debug(
            "Forwarded %s event for user %s",
            event.classification.value,
            event.user_id,
            extra={"extra_data": {
                "user_id": event.user_id,
                "classification": event.classification.value,
                "sink": ack.sink,
                "record_id": ack.record_id,
                "attempts": attempts,
            }}
        )
        return ack

