"""Retry with exponential backoff for transient registry failures.

Only errors whose text matches a retryable pattern are retried. Publishing is
a registry-side mutation, so the default patterns are limited to failures
that happen before the registry could have accepted the upload (connection
refused, DNS, resets, timeouts).
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import re
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

OnRetry = Callable[[int, BaseException], "Awaitable[None] | None"]
Sleep = Callable[[float], Awaitable[None]]

# Node-style error codes and their Python/httpx spellings
DEFAULT_RETRYABLE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"ECONNREFUSED|connection refused",
        r"ENOTFOUND|name or service not known|nodename nor servname|temporary failure in name resolution",
        r"ETIMEDOUT|timed out|timeout",
        r"ECONNRESET|connection reset",
        r"socket hang up",
        r"network error",
    )
)


@dataclass
class RetryOptions:
    """Backoff configuration. Delays are in seconds."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    retryable_errors: Sequence[str | re.Pattern[str]] = field(default_factory=tuple)
    on_retry: OnRetry | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays cannot be negative")

    def patterns(self) -> list[re.Pattern[str]]:
        """Default retryable patterns unioned with the caller's extra patterns."""
        extra = [
            p if isinstance(p, re.Pattern) else re.compile(p, re.IGNORECASE)
            for p in self.retryable_errors
        ]
        return [*DEFAULT_RETRYABLE_PATTERNS, *extra]


def compute_delay(attempt: int, options: RetryOptions) -> float:
    """Delay after the given (1-based) failed attempt.

    Examples:
        >>> [compute_delay(n, RetryOptions()) for n in (1, 2, 3)]
        [1.0, 2.0, 4.0]
    """
    delay = options.initial_delay * options.backoff_multiplier ** (attempt - 1)
    return min(delay, options.max_delay)


def is_retryable(error: BaseException, options: RetryOptions) -> bool:
    message = str(error)
    return any(pattern.search(message) for pattern in options.patterns())


class RetryExecutor:
    """Runs async operations with retry and exponential backoff.

    Args:
        sleep: Awaitable sleep used between attempts; injectable for tests.
    """

    def __init__(self, sleep: Sleep | None = None) -> None:
        self._sleep = sleep or asyncio.sleep

    async def retry(
        self,
        operation: Callable[[], Awaitable[T]],
        options: RetryOptions | None = None,
    ) -> T:
        """Run ``operation`` until it succeeds or retrying is no longer allowed.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            options: Backoff configuration

        Returns:
            The operation's result

        Raises:
            The original exception, unchanged, when it is not retryable or the
            attempts are exhausted. Anything raised by ``on_retry`` propagates
            and stops retrying.
        """
        opts = options or RetryOptions()
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as e:
                if attempt >= opts.max_attempts or not is_retryable(e, opts):
                    raise

                if opts.on_retry is not None:
                    outcome = opts.on_retry(attempt, e)
                    if inspect.isawaitable(outcome):
                        await outcome

                delay = compute_delay(attempt, opts)
                logger.warning(
                    "Attempt %d/%d failed (%s), retrying in %.1fs",
                    attempt,
                    opts.max_attempts,
                    str(e).splitlines()[0] if str(e) else type(e).__name__,
                    delay,
                )
                await self._sleep(delay)


async def retry(
    operation: Callable[[], Awaitable[T]],
    options: RetryOptions | None = None,
) -> T:
    """Module-level convenience wrapper around RetryExecutor().retry."""
    return await RetryExecutor().retry(operation, options)
