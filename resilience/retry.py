"""
Retry with exponential backoff for calls to external services.

Used by the event forwarder: a sink append that fails with a transient
error is retried a bounded number of times before the failure is
reported to the stream consumer.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_attempts: Total number of attempts, including the first call.
        initial_delay: Delay before the first retry in seconds.
        exponential_base: Base for exponential backoff (delays: d, d*b, d*b^2...).
        max_delay: Maximum delay between retries in seconds, None for no cap.
        retryable_exceptions: Exception types that trigger a retry.
        non_retryable_exceptions: Exception types that are re-raised
            immediately even if they match retryable_exceptions.
    """
    max_attempts: int = 3
    initial_delay: float = 1.0
    exponential_base: float = 2.0
    max_delay: Optional[float] = None
    retryable_exceptions: Tuple[Type[BaseException], ...] = field(
        default_factory=lambda: (Exception,)
    )
    non_retryable_exceptions: Tuple[Type[BaseException], ...] = ()

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")


class RetryExhaustedException(Exception):
    """
    Raised when all retry attempts have been exhausted.

    Wraps the last exception that caused the final attempt to fail.
    """

    def __init__(
        self,
        message: str,
        attempts: int,
        last_exception: BaseException,
        operation_name: Optional[str] = None
    ):
        self.attempts = attempts
        self.last_exception = last_exception
        self.operation_name = operation_name
        super().__init__(message)


def calculate_delay(
    attempt: int,
    initial_delay: float,
    exponential_base: float,
    max_delay: Optional[float] = None
) -> float:
    """
    Delay before retrying after the given (0-indexed) failed attempt.

    delay = initial_delay * exponential_base ** attempt, capped at max_delay.
    """
    delay = initial_delay * (exponential_base ** attempt)

    if max_delay is not None:
        delay = min(delay, max_delay)

    return delay


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    config: Optional[RetryConfig] = None,
    operation_name: Optional[str] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **kwargs: Any
) -> T:
    """
    Await ``func(*args, **kwargs)``, retrying transient failures.

    Example:
        ack = await retry_async(
            sink.append,
            event,
            config=RetryConfig(max_attempts=5, initial_delay=0.2),
            operation_name="sink.append",
        )

    Raises:
        RetryExhaustedException: When every attempt failed with a
            retryable exception.
        Exception: Non-retryable exceptions propagate unchanged.
    """
    effective_config = config or RetryConfig()
    op_name = operation_name or getattr(func, "__name__", "operation")
    max_attempts = effective_config.max_attempts

    for attempt in range(max_attempts):
        try:
            return await func(*args, **kwargs)
        except effective_config.non_retryable_exceptions:
            raise
        except effective_config.retryable_exceptions as e:
            if attempt == max_attempts - 1:
                logger.error(
                    "Retry exhausted for operation '%s' after %d attempts. Last error: %s",
                    op_name,
                    max_attempts,
                    e,
                    extra={"extra_data": {
                        "operation": op_name,
                        "attempts": max_attempts,
                        "error_type": type(e).__name__,
                    }}
                )
                raise RetryExhaustedException(
                    f"Operation '{op_name}' failed after {max_attempts} attempts",
                    attempts=max_attempts,
                    last_exception=e,
                    operation_name=op_name
                ) from e

            delay = calculate_delay(
                attempt,
                effective_config.initial_delay,
                effective_config.exponential_base,
                effective_config.max_delay
            )

            logger.warning(
                "Retry attempt %d/%d for operation '%s' failed with %s: %s. "
                "Retrying in %.2f seconds...",
                attempt + 1,
                max_attempts,
                op_name,
                type(e).__name__,
                e,
                delay,
                extra={"extra_data": {
                    "operation": op_name,
                    "attempt": attempt + 1,
                    "max_attempts": max_attempts,
                    "delay_seconds": delay,
                    "error_type": type(e).__name__,
                }}
            )

            await sleep(delay)

    # max_attempts >= 1 guarantees the loop returns or raises
    raise AssertionError("unreachable")
