"""
Retry logic for transient pipeline failures.

Downloads and transcription calls fail for boring reasons: a dropped
connection, a slow backend, a timeout. ``with_retries`` runs the operation up
to ``max_attempts`` times with a fixed delay between attempts and re-raises the
last error unchanged once the budget is spent.

Every exception is retried identically; there is no backoff, no jitter and
no error classification.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(self, max_attempts: int = 3, delay: float = 1.0):
        self.max_attempts = max(1, int(max_attempts))
        self.delay = max(0.0, float(delay))

    def __repr__(self) -> str:
        return f"RetryConfig(max_attempts={self.max_attempts}, delay={self.delay})"


async def with_retries(
    func: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
    operation: str = "operation",
) -> T:
    """
    Execute an async function with fixed-delay retries.

    Args:
        func: The async function to execute (no arguments, use a lambda/closure)
        config: Retry configuration (3 attempts, 1 second apart if not specified)
        operation: Label used in log events

    Returns:
        The result of the first successful call

    Raises:
        The last error if all attempts fail
    """
    if config is None:
        config = RetryConfig()

    last_error: Optional[Exception] = None

    for attempt in range(1, config.max_attempts + 1):
        try:
            return await func()
        except Exception as e:
            last_error = e

            logger.warning(
                "retry.attempt_failed",
                operation=operation,
                attempt=attempt,
                max_attempts=config.max_attempts,
                error_type=type(e).__name__,
                error=str(e)[:200],
            )

            if attempt >= config.max_attempts:
                logger.error(
                    "retry.exhausted",
                    operation=operation,
                    total_attempts=attempt,
                    error=str(e)[:200],
                )
                raise

            await asyncio.sleep(config.delay)

    # Unreachable: the loop either returns or raises.
    raise last_error  # type: ignore[misc]
