"""
Exponential backoff for CloudFormation calls.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import CliffError, LimitExceededError, ThrottlingError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff settings shared by every retried call."""

    initial_delay: float = 0.1
    max_attempts: int = 15
    jitter: bool = True

    def delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        base = self.initial_delay * 2 ** (attempt - 1)
        if self.jitter:
            return base + random.uniform(0, base)
        return base


def retry_throttling(error: CliffError) -> bool:
    """Retry predicate for reads: only throttled requests are retried."""
    return isinstance(error, ThrottlingError)


def retry_create(error: CliffError) -> bool:
    """Retry predicate for change set creation.

    A quota error is retried too, the previous run's change set may still be
    in the middle of being deleted.
    """
    return isinstance(error, (ThrottlingError, LimitExceededError))


class BackoffRetrier:
    """Re-run a coroutine function while a predicate allows it."""

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def retry_if(
        self,
        operation: Callable[[], Awaitable[T]],
        should_retry: Callable[[CliffError], bool],
    ) -> T:
        """Await ``operation`` until it succeeds or may no longer be retried.

        The last error is re-raised unchanged once retries are exhausted.
        """
        attempt = 1
        while True:
            try:
                return await operation()
            except CliffError as e:
                if attempt >= self.policy.max_attempts or not should_retry(e):
                    raise
                delay = self.policy.delay(attempt)
                logger.debug(
                    f"attempt {attempt}/{self.policy.max_attempts} failed ({e}), "
                    f"retrying in {delay:.3f}s"
                )
                await self._sleep(delay)
                attempt += 1
