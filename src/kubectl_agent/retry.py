"""Exponential backoff for operations that race a server's startup."""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from kubectl_agent.errors import KubectlAgentError
from kubectl_agent.logging import get_logger

logger = get_logger("retry")

T = TypeVar("T")


class RetryError(KubectlAgentError):
    """Raised when every attempt of a retried operation failed."""

    def __init__(self, description: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"{description} failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    multiplier: float = 2.0
    jitter: bool = False
    description: str = "operation"


def calculate_backoff_delay(attempt: int, config: RetryConfig) -> float:
    """Delay to wait after the given (1-based) failed attempt."""
    delay = min(config.base_delay * config.multiplier ** (attempt - 1), config.max_delay)
    if config.jitter:
        delay = random.uniform(0, delay)
    return delay


async def retry_operation(
    config: RetryConfig,
    operation: Callable[[], Awaitable[T]],
    retry_if: Callable[[Exception], bool] | None = None,
) -> T:
    """Await ``operation`` until it succeeds or ``config.max_retries`` attempts fail.

    The wait between attempts is an ``asyncio.sleep``, so cancelling the
    calling task aborts the retry loop immediately. Exceptions rejected by
    ``retry_if`` propagate without further attempts.
    """
    last_error: Exception | None = None

    for attempt in range(1, config.max_retries + 1):
        logger.debug(f"Attempting {config.description} ({attempt}/{config.max_retries})")
        try:
            result = await operation()
        except Exception as e:
            if retry_if is not None and not retry_if(e):
                raise
            last_error = e
        else:
            if attempt > 1:
                logger.info(f"{config.description} succeeded after {attempt} attempts")
            return result

        if attempt < config.max_retries:
            delay = calculate_backoff_delay(attempt, config)
            logger.debug(
                f"{config.description} failed on attempt {attempt}: {last_error}; "
                f"retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)

    assert last_error is not None
    raise RetryError(config.description, config.max_retries, last_error) from last_error
