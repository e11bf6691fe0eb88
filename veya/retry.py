"""Uniform retry-with-backoff execution for provider calls.

Responsibilities:
- Run an awaitable operation, retrying only retryable `VeyaError` kinds.
- Apply capped exponential backoff between attempts.
- Surface the last observed error unchanged once attempts are exhausted.

Key types:
- `RetryPolicy`: immutable attempt/backoff settings.
- `RetryExecutor`: async executor bound to one policy.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from loguru import logger

from .errors import VeyaError

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[object]]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Capped exponential backoff settings.

    Attributes:
        max_retries: Retries after the first attempt; total attempts are `max_retries + 1`.
        base_delay: Delay in seconds before the first retry.
        max_delay: Upper bound in seconds for any single delay.
    """

    max_retries: int = 3
    base_delay: float = 0.5
    max_delay: float = 10.0

    def __post_init__(self) -> None:
        """Validate policy bounds."""

        if self.max_retries < 0:
            raise ValueError("`max_retries` must be zero or greater.")
        if self.base_delay < 0:
            raise ValueError("`base_delay` must be zero or greater.")
        if self.base_delay > self.max_delay:
            raise ValueError("`base_delay` must not exceed `max_delay`.")

    @classmethod
    def from_millis(cls, max_retries: int, base_delay_ms: int, max_delay_ms: int) -> RetryPolicy:
        """Build a policy from millisecond settings values."""

        return cls(
            max_retries=max_retries,
            base_delay=base_delay_ms / 1000.0,
            max_delay=max_delay_ms / 1000.0,
        )

    def delay_for(self, attempt: int) -> float:
        """Return the sleep before retrying after a failed 0-indexed `attempt`."""

        return min(self.base_delay * (2**attempt), self.max_delay)


class RetryExecutor:
    """Execute awaitable operations under a `RetryPolicy`.

    The sleeper defaults to `asyncio.sleep`, so a pending backoff is aborted
    immediately when the surrounding task is cancelled.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        *,
        sleeper: Sleeper | None = None,
        label: str = "operation",
    ) -> None:
        """Bind an executor to a policy and optional sleep implementation."""

        self.policy = policy
        self.label = label
        self._sleeper: Sleeper = sleeper or asyncio.sleep
        self.retry_attempt_count = 0

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run `operation` until it succeeds, fails terminally, or attempts run out.

        Raises:
            VeyaError: The terminal error, or the last retryable error after
                `max_retries + 1` attempts.
        """

        attempt = 0
        while True:
            try:
                return await operation()
            except VeyaError as exc:
                if not exc.is_retryable or attempt >= self.policy.max_retries:
                    if exc.is_retryable:
                        logger.warning(
                            "[retry] event=exhausted label={} attempts={} kind={}",
                            self.label,
                            attempt + 1,
                            exc.kind.value,
                        )
                    raise
                delay = self.policy.delay_for(attempt)
                logger.info(
                    "[retry] event=backoff label={} attempt={} delay_s={:.3f} kind={}",
                    self.label,
                    attempt + 1,
                    delay,
                    exc.kind.value,
                )
                self.retry_attempt_count += 1
                await self._sleeper(delay)
                attempt += 1
