"""Exponential backoff with jitter for upstream calls."""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from promptmint.errors import AppError, classify

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy. Delays are in seconds."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    jitter: float = 1.0


GENERATION_RETRY_CONFIG = RetryConfig(
    max_retries=3, base_delay=1.0, max_delay=10.0, backoff_multiplier=2.0
)

# Blockchain submissions should not be blindly resubmitted
MINTING_RETRY_CONFIG = RetryConfig(
    max_retries=1, base_delay=2.0, max_delay=10.0, backoff_multiplier=1.5
)


def compute_delay(config: RetryConfig, attempt: int) -> float:
    """Backoff delay before the retry that follows ``attempt`` (0-based)."""
    delay = min(config.base_delay * config.backoff_multiplier**attempt, config.max_delay)
    return delay + random.random() * config.jitter


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig = GENERATION_RETRY_CONFIG,
    on_retry: Optional[Callable[[int, AppError], None]] = None,
) -> T:
    """Run ``operation`` until it succeeds or a classified error is terminal.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        config: Retry policy (total attempts = max_retries + 1)
        on_retry: Observer called with (attempt_number, error) before each backoff

    Returns:
        The operation's result

    Raises:
        AppError: Classified failure that is not retryable or exhausted the budget
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = classify(e)

            if not error.retryable or attempt >= config.max_retries:
                if attempt > 0:
                    logger.warning(
                        "retry.exhausted" if error.retryable else "retry.aborted",
                        attempts=attempt + 1,
                        error_kind=error.kind.value,
                        error_message=error.message,
                    )
                if error is e:
                    raise
                raise error from e

            delay = compute_delay(config, attempt)
            logger.warning(
                "retry.scheduled",
                attempt=attempt + 1,
                max_attempts=config.max_retries + 1,
                error_kind=error.kind.value,
                error_message=error.message,
                delay_seconds=round(delay, 3),
            )

            if on_retry is not None:
                on_retry(attempt + 1, error)

            await asyncio.sleep(delay)
            attempt += 1
