"""
RETRY - Exponential backoff for artifact fetches

Only transient transport errors are retried. An HTTP error status is an
answer from the server and surfaces immediately.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

import httpx
from loguru import logger


@dataclass
class RetryConfig:
    """Backoff policy."""
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True
    retry_exceptions: Tuple[Type[Exception], ...] = (Exception,)
    on_retry: Optional[Callable[[Exception, int], None]] = None

    @property
    def attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (0-based)."""
        return calculate_delay(attempt, self.base_delay, self.max_delay, self.exponential_base, self.jitter)


class RetryError(Exception):
    """Every attempt failed with a retryable exception."""

    def __init__(self, message: str, last_exception: Exception, attempts: int):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


def calculate_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    exponential_base: float,
    jitter: bool
) -> float:
    """base * factor^attempt capped at max_delay, jittered to 50-150%."""
    delay = min(base_delay * (exponential_base ** attempt), max_delay)
    if jitter:
        delay *= 0.5 + random.random()
    return delay


async def retry_async_operation(
    operation: Callable[..., Awaitable[Any]],
    *args,
    config: Optional[RetryConfig] = None,
    **kwargs
) -> Any:
    """
    Await `operation(*args, **kwargs)` until it succeeds or retries run out.

    Exceptions outside `config.retry_exceptions` propagate on the first
    occurrence.

    Raises:
        RetryError: when every attempt failed with a retryable exception
    """
    config = config or RetryConfig()
    name = getattr(operation, "__name__", "operation")
    last_exception: Optional[Exception] = None

    for attempt in range(config.attempts):
        try:
            return await operation(*args, **kwargs)
        except config.retry_exceptions as e:
            last_exception = e
            if attempt == config.max_retries:
                break

            delay = config.delay_for(attempt)
            logger.warning(f"{name} failed ({e}), retry {attempt + 1}/{config.max_retries} in {delay:.1f}s")
            if config.on_retry:
                config.on_retry(e, attempt + 1)
            await asyncio.sleep(delay)

    logger.error(f"{name} gave up after {config.attempts} attempts: {last_exception}")
    raise RetryError(f"Failed after {config.attempts} attempts", last_exception, config.attempts)


FETCH_RETRY_CONFIG = RetryConfig(
    max_retries=2,
    base_delay=0.5,
    max_delay=5.0,
    retry_exceptions=(httpx.TransportError, ConnectionError, TimeoutError),
)
