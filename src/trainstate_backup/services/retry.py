"""
Retry logic with exponential backoff for remote record store calls.

Only errors listed in ``retry_on`` are retried; anything else ends the
operation on the attempt it occurred and is returned in the result.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from ..errors import TransientRemoteError

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts (including first try)
        initial_delay_ms: Delay before the first retry in milliseconds
        max_delay_ms: Maximum delay in milliseconds
        backoff_multiplier: Multiplier for exponential backoff
        jitter: Whether to add random jitter to delay
    """

    max_attempts: int = 3
    initial_delay_ms: float = 1000.0
    max_delay_ms: float = 8000.0
    backoff_multiplier: float = 2.0
    jitter: bool = True


@dataclass
class RetryResult:
    """
    Result of a retry operation.

    Attributes:
        success: Whether the operation succeeded
        result: The result value if successful
        attempts: Number of attempts made
        error: The last error if failed
        error_history: Messages from each failed attempt
    """

    success: bool
    result: Any = None
    attempts: int = 0
    error: Exception | None = None
    error_history: list[str] = field(default_factory=list)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """
    Calculate delay for a given attempt with exponential backoff.

    Args:
        attempt: Attempt number (0-based)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    delay_ms = min(
        config.initial_delay_ms * (config.backoff_multiplier ** attempt),
        config.max_delay_ms,
    )

    # ±25% random variation
    if config.jitter:
        delay_ms *= 0.75 + (random.random() * 0.5)

    return delay_ms / 1000.0


async def retry_async(
    operation: Callable[[], Awaitable[Any]],
    config: RetryConfig,
    retry_on: tuple = (TransientRemoteError,),
    operation_name: str = "operation",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> RetryResult:
    """
    Await an operation with retry and exponential backoff.

    Args:
        operation: Coroutine factory to execute (takes no arguments)
        config: Retry configuration
        retry_on: Tuple of exception types to retry on
        operation_name: Name for logging
        sleep: Awaitable used for backoff delays

    Returns:
        RetryResult with success/failure info
    """
    error_history: list[str] = []
    last_error: Exception | None = None

    for attempt in range(config.max_attempts):
        try:
            result = await operation()
            if attempt > 0:
                logger.info("%s succeeded after %d attempts", operation_name, attempt + 1)
            return RetryResult(
                success=True,
                result=result,
                attempts=attempt + 1,
                error_history=error_history,
            )

        except retry_on as e:
            last_error = e
            error_history.append(str(e))
            logger.warning(
                "%s failed on attempt %d/%d: %s",
                operation_name, attempt + 1, config.max_attempts, e,
            )
            if attempt < config.max_attempts - 1:
                delay = calculate_delay(attempt, config)
                logger.debug("Backing off for %.3fs before retry", delay)
                await sleep(delay)

        except Exception as e:
            logger.error("%s failed with non-retryable error: %s", operation_name, e)
            error_history.append(str(e))
            return RetryResult(
                success=False,
                attempts=attempt + 1,
                error=e,
                error_history=error_history,
            )

    logger.error("%s exhausted all %d attempts", operation_name, config.max_attempts)
    return RetryResult(
        success=False,
        attempts=config.max_attempts,
        error=last_error,
        error_history=error_history,
    )
