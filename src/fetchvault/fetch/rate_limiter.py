"""Token Bucket Rate Limiter implementation.

This module provides an asyncio token bucket rate limiter shared by every
caller of one category of remote operations. When the remote API throttles
one caller, ``penalize`` empties the bucket and pauses refilling so all
callers sharing the limiter slow down together.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Any, Callable

from fetchvault.config.models.settings import Settings
from fetchvault.fetch.deadline import Deadline, sleep_until_deadline
from fetchvault.shared.constants import NetworkConfig
from fetchvault.shared.constants.system import BASE_MINUTE
from fetchvault.shared.errors import ApplicationError, ErrorCode, ErrorContext
from fetchvault.shared.logging import log_operation_error, log_operation_success

logger = logging.getLogger(__name__)


class AsyncTokenBucketRateLimiter:
    """Asyncio token bucket rate limiter.

    The bucket holds up to ``capacity`` tokens and refills at
    ``refill_rate`` tokens per second. ``acquire`` waits for a token and
    then adds a random jitter in ``[0, jitter]`` seconds so callers released
    together do not hit the API at the same instant.

    Args:
        capacity: Maximum number of tokens the bucket can hold
        refill_rate: Number of tokens to add per second
        jitter: Maximum random extra wait after acquiring, in seconds
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        capacity: int = NetworkConfig.DEFAULT_BURST,
        refill_rate: float = NetworkConfig.DEFAULT_RATE_LIMIT_PER_MINUTE / BASE_MINUTE,
        *,
        jitter: float = NetworkConfig.DEFAULT_JITTER,
        clock: Callable[[], float] = time.monotonic,
        name: str = "default",
    ) -> None:
        context = ErrorContext(
            operation="rate_limiter_init",
            additional_data={
                "name": name,
                "capacity": capacity,
                "refill_rate": refill_rate,
                "jitter": jitter,
            },
        )

        if capacity <= 0:
            raise ApplicationError(
                code=ErrorCode.VALIDATION_ERROR,
                message=f"Capacity must be positive, got: {capacity}",
                context=context,
            )
        if refill_rate <= 0:
            raise ApplicationError(
                code=ErrorCode.VALIDATION_ERROR,
                message=f"Refill rate must be positive, got: {refill_rate}",
                context=context,
            )
        if jitter < 0:
            raise ApplicationError(
                code=ErrorCode.VALIDATION_ERROR,
                message=f"Jitter must be non-negative, got: {jitter}",
                context=context,
            )

        self.name = name
        self.capacity = capacity
        self.refill_rate = refill_rate
        self.jitter = jitter
        self._clock = clock
        self.tokens = float(capacity)
        self.last_refill = clock()
        self._paused_until = 0.0
        self._lock = asyncio.Lock()
        self._acquired_total = 0
        self._penalties_total = 0

        log_operation_success(
            logger=logger,
            operation="rate_limiter_init",
            duration_ms=0,
            context=context,
        )

    @classmethod
    def per_minute(
        cls,
        permits: float,
        burst: int | None = None,
        **kwargs: Any,
    ) -> AsyncTokenBucketRateLimiter:
        """Create a limiter granting ``permits`` per minute.

        Args:
            permits: Permits refilled per minute
            burst: Bucket capacity (default: one minute's worth of permits)
        """
        capacity = burst if burst is not None else max(1, int(permits))
        return cls(capacity=capacity, refill_rate=permits / BASE_MINUTE, **kwargs)

    def __repr__(self) -> str:
        return (
            f"AsyncTokenBucketRateLimiter(name={self.name!r}, capacity={self.capacity}, "
            f"refill_rate={self.refill_rate:.3f})"
        )

    def _refill(self) -> None:
        """Add tokens for the time elapsed since the last refill."""
        now = self._clock()
        if now < self._paused_until:
            self.last_refill = now
            return

        start = max(self.last_refill, self._paused_until)
        tokens_to_add = (now - start) * self.refill_rate
        if tokens_to_add > 0:
            self.tokens = min(float(self.capacity), self.tokens + tokens_to_add)
        self.last_refill = now

    def _validate_tokens(self, tokens: int) -> None:
        if tokens <= 0 or tokens > self.capacity:
            raise ApplicationError(
                code=ErrorCode.VALIDATION_ERROR,
                message=(
                    f"Tokens to acquire must be in 1..{self.capacity}, got: {tokens}"
                ),
                context=ErrorContext(
                    operation="rate_limiter_acquire",
                    additional_data={"name": self.name, "requested_tokens": tokens},
                ),
            )

    def _take(self, tokens: int) -> float:
        """Take tokens if available; otherwise return seconds until they are."""
        self._refill()
        if self.tokens >= tokens:
            self.tokens -= tokens
            self._acquired_total += tokens
            return 0.0

        wait = (tokens - self.tokens) / self.refill_rate
        pause = self._paused_until - self._clock()
        return max(wait + max(pause, 0.0), NetworkConfig.ACQUIRE_POLL_INTERVAL)

    def try_acquire(self, tokens: int = 1) -> bool:
        """Take tokens without waiting.

        Returns:
            True if tokens were taken, False otherwise

        Raises:
            ApplicationError: If tokens is not in 1..capacity
        """
        self._validate_tokens(tokens)
        return self._take(tokens) == 0.0

    async def acquire(self, tokens: int = 1, deadline: Deadline | None = None) -> None:
        """Wait until tokens are available, take them, then wait a jitter.

        Raises:
            ApplicationError: If tokens is not in 1..capacity
            OperationTimeoutError: If the deadline expires while waiting
        """
        self._validate_tokens(tokens)

        while True:
            async with self._lock:
                wait = self._take(tokens)
            if wait == 0.0:
                break
            logger.debug("Rate limiter '%s' waiting %.2fs for a token", self.name, wait)
            await sleep_until_deadline(wait, deadline, operation="rate_limiter_acquire")

        if self.jitter > 0:
            await sleep_until_deadline(
                random.uniform(0, self.jitter),
                deadline,
                operation="rate_limiter_jitter",
            )

    def penalize(self, delay: float) -> None:
        """Empty the bucket and stop refilling for delay seconds.

        Called when the remote API signals throttling, so every caller that
        shares this limiter backs off, not only the one that was throttled.
        """
        if delay < 0:
            delay = 0.0
        self._refill()
        self.tokens = 0.0
        self._paused_until = max(self._paused_until, self._clock() + delay)
        self._penalties_total += 1

        error = ApplicationError(
            code=ErrorCode.API_RATE_LIMIT,
            message=f"Rate limiter '{self.name}' paused for {delay:.1f}s after throttling",
            context=ErrorContext(
                operation="rate_limiter_penalize",
                additional_data={"name": self.name, "delay": delay},
            ),
        )
        log_operation_error(logger=logger, error=error, level=logging.WARNING)

    def get_tokens_available(self) -> int:
        """Get the current number of whole tokens in the bucket."""
        self._refill()
        return int(self.tokens)

    def reset(self) -> None:
        """Refill the bucket to capacity and clear any penalty."""
        self.tokens = float(self.capacity)
        self.last_refill = self._clock()
        self._paused_until = 0.0

        log_operation_success(
            logger=logger,
            operation="rate_limiter_reset",
            duration_ms=0,
            context={"name": self.name, "capacity": self.capacity},
        )

    def get_stats(self) -> dict[str, Any]:
        """Return a snapshot of the limiter state."""
        self._refill()
        return {
            "name": self.name,
            "capacity": self.capacity,
            "refill_rate": self.refill_rate,
            "tokens_available": self.tokens,
            "paused_for": max(0.0, self._paused_until - self._clock()),
            "acquired_total": self._acquired_total,
            "penalties_total": self._penalties_total,
        }


class RateLimiterRegistry:
    """One rate limiter per operation category, owned by the run.

    Categories that were not configured fall back to the ``default`` limiter.
    """

    DEFAULT_CATEGORY = "default"

    def __init__(self, limiters: dict[str, AsyncTokenBucketRateLimiter] | None = None) -> None:
        self._limiters: dict[str, AsyncTokenBucketRateLimiter] = dict(limiters or {})
        if self.DEFAULT_CATEGORY not in self._limiters:
            self._limiters[self.DEFAULT_CATEGORY] = AsyncTokenBucketRateLimiter(
                name=self.DEFAULT_CATEGORY,
            )

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> RateLimiterRegistry:
        """Build limiters from ``api.rate_limits`` and ``api.retry.jitter``."""
        if settings is None:
            from fetchvault.config.loader import get_config

            settings = get_config()

        jitter = settings.api.retry.jitter
        return cls(
            {
                category: AsyncTokenBucketRateLimiter.per_minute(
                    limit.per_minute,
                    limit.burst,
                    jitter=jitter,
                    name=category,
                )
                for category, limit in settings.api.rate_limits.items()
            }
        )

    def get(self, category: str = DEFAULT_CATEGORY) -> AsyncTokenBucketRateLimiter:
        return self._limiters.get(category, self._limiters[self.DEFAULT_CATEGORY])

    def __getitem__(self, category: str) -> AsyncTokenBucketRateLimiter:
        return self.get(category)

    def __contains__(self, category: object) -> bool:
        return category in self._limiters

    def categories(self) -> list[str]:
        return sorted(self._limiters)
