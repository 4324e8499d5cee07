"""Retry classification and execution for remote calls.

Every remote attempt goes through RetryExecutor.call, which acquires a slot
from the shared rate limiter, runs the attempt and classifies the result:

* 420/429 (throttling): penalize the shared limiter, wait (Retry-After if
  given), retry. Not counted against the transient budget.
* 500/502/503/504 (transient): fixed cooldown, retry, counted. Exhausting
  the budget yields None instead of raising.
* 404 with ``not_found_as_empty``: success with the call site's empty value.
* ``RetryOutcome.retry()`` from the attempt: short cooldown, counted.
* Anything else: raised immediately.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, TypeVar, Union

from fetchvault.config.models.settings import Settings
from fetchvault.fetch.deadline import Deadline, run_with_deadline, sleep_until_deadline
from fetchvault.fetch.rate_limiter import AsyncTokenBucketRateLimiter
from fetchvault.shared.constants import HTTPStatusCodes, RetryConfig
from fetchvault.shared.errors import (
    ErrorCode,
    ErrorContext,
    FetchVaultError,
    InfrastructureError,
    OperationTimeoutError,
    RemoteThrottledError,
)
from fetchvault.shared.logging import log_operation_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryDecision(str, Enum):
    """What to do with the result of one attempt."""

    SUCCESS = "success"
    RETRY_NOW = "retry_now"
    RETRY_AFTER_DELAY = "retry_after_delay"
    FATAL = "fatal"


@dataclass(frozen=True)
class RetryOutcome(Generic[T]):
    """Explicit result of an attempt function.

    Attempt functions may return ``RetryOutcome.retry()`` to ask for another
    attempt, or ``RetryOutcome.fatal(error)`` to stop. Plain return values
    are treated as ``RetryOutcome.success(value)``.
    """

    decision: RetryDecision
    value: T | None = None
    error: BaseException | None = None

    @classmethod
    def success(cls, value: T) -> RetryOutcome[T]:
        return cls(RetryDecision.SUCCESS, value=value)

    @classmethod
    def retry(cls) -> RetryOutcome[Any]:
        return cls(RetryDecision.RETRY_NOW)

    @classmethod
    def fatal(cls, error: BaseException) -> RetryOutcome[Any]:
        return cls(RetryDecision.FATAL, error=error)


def _status_of(error: BaseException) -> int | None:
    status = getattr(error, "status", None)
    return status if isinstance(status, int) else None


def is_throttling_error(error: BaseException) -> bool:
    status = _status_of(error)
    return status is not None and HTTPStatusCodes.is_throttling(status)


def classify_error(
    error: BaseException,
    *,
    not_found_as_empty: bool = False,
) -> RetryDecision:
    """Classify a failed attempt by the HTTP status the error carries.

    Errors without a status (network failures, malformed bodies) are fatal.
    """
    status = _status_of(error)
    if status is None:
        return RetryDecision.FATAL
    if HTTPStatusCodes.is_throttling(status):
        return RetryDecision.RETRY_AFTER_DELAY
    if HTTPStatusCodes.is_transient_server_error(status):
        return RetryDecision.RETRY_AFTER_DELAY
    if status == HTTPStatusCodes.NOT_FOUND and not_found_as_empty:
        return RetryDecision.SUCCESS
    return RetryDecision.FATAL


@dataclass(frozen=True)
class RetryPolicy:
    """Delays and bounds used by RetryExecutor (seconds)."""

    max_transient_retries: int = RetryConfig.MAX_TRANSIENT_RETRIES
    transient_cooldown: float = RetryConfig.TRANSIENT_COOLDOWN
    retry_now_delay: float = RetryConfig.RETRY_NOW_DELAY
    throttle_delay: float = RetryConfig.THROTTLE_DELAY
    max_throttle_retries: int | None = None
    max_retry_after: float = RetryConfig.MAX_RETRY_AFTER
    jitter: float = 0.0

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> RetryPolicy:
        if settings is None:
            from fetchvault.config.loader import get_config

            settings = get_config()

        retry = settings.api.retry
        return cls(
            max_transient_retries=retry.max_transient_retries,
            transient_cooldown=retry.transient_cooldown,
            retry_now_delay=retry.retry_now_delay,
            throttle_delay=retry.throttle_delay,
            max_throttle_retries=retry.max_throttle_retries,
            jitter=retry.jitter,
        )

    def throttle_wait(self, retry_after: float | None) -> float:
        """Wait after throttling: Retry-After if present, else delay plus jitter."""
        if retry_after is not None:
            return min(max(retry_after, 0.0), self.max_retry_after)
        return self.throttle_delay + random.uniform(0, self.jitter)


Attempt = Callable[[], Awaitable[Union[T, RetryOutcome[T]]]]


class RetryExecutor:
    """Runs attempt functions under a shared limiter and a retry policy.

    Args:
        limiter: Rate limiter shared by every call of this category
        policy: Retry delays and bounds
    """

    def __init__(
        self,
        limiter: AsyncTokenBucketRateLimiter,
        policy: RetryPolicy | None = None,
    ) -> None:
        self.limiter = limiter
        self.policy = policy or RetryPolicy()

    async def call(
        self,
        attempt: Attempt[T],
        *,
        not_found_as_empty: bool = False,
        empty: Callable[[], T] | None = None,
        deadline: Deadline | None = None,
        operation: str = "remote_call",
    ) -> T | None:
        """Run attempt until it succeeds, fails fatally or runs out of retries.

        Args:
            attempt: Zero-argument coroutine function performing one attempt
            not_found_as_empty: Treat a 404 as success with ``empty()``
            empty: Factory for the empty value (default: None)
            deadline: Optional deadline bounding waits and attempts
            operation: Name used in logs and errors

        Returns:
            The attempt's value, or None when transient retries ran out

        Raises:
            RemoteThrottledError: If a throttle bound is set and exhausted
            OperationTimeoutError: If the deadline expires
            Exception: Any fatal error raised by the attempt
        """
        transient_failures = 0
        throttled = 0

        while True:
            await self.limiter.acquire(deadline=deadline)
            try:
                result = await run_with_deadline(attempt(), deadline, operation)
            except OperationTimeoutError:
                raise
            except Exception as e:
                decision = classify_error(e, not_found_as_empty=not_found_as_empty)

                if decision is RetryDecision.SUCCESS:
                    logger.debug("%s: not found, using empty value", operation)
                    return empty() if empty is not None else None

                if decision is RetryDecision.FATAL:
                    raise

                if is_throttling_error(e):
                    throttled += 1
                    bound = self.policy.max_throttle_retries
                    if bound is not None and throttled > bound:
                        raise self._throttled_error(e, operation, throttled) from e

                    wait = self.policy.throttle_wait(getattr(e, "retry_after", None))
                    self.limiter.penalize(wait)
                    self._log_retry(e, operation, wait, throttled=throttled)
                    await sleep_until_deadline(wait, deadline, operation)
                    continue

                transient_failures += 1
                if transient_failures > self.policy.max_transient_retries:
                    return self._give_up(e, operation, transient_failures)

                wait = self.policy.transient_cooldown
                self._log_retry(e, operation, wait, transient=transient_failures)
                await sleep_until_deadline(wait, deadline, operation)
                continue

            if not isinstance(result, RetryOutcome):
                return result

            if result.decision is RetryDecision.SUCCESS:
                return result.value
            if result.decision is RetryDecision.FATAL:
                if result.error is None:
                    raise InfrastructureError(
                        code=ErrorCode.API_REQUEST_FAILED,
                        message=f"{operation} failed",
                        context=ErrorContext(operation=operation),
                    )
                raise result.error

            transient_failures += 1
            if transient_failures > self.policy.max_transient_retries:
                return self._give_up(None, operation, transient_failures)
            wait = self.policy.retry_now_delay
            logger.debug("%s: attempt asked for a retry (%d)", operation, transient_failures)
            await sleep_until_deadline(wait, deadline, operation)

    def _log_retry(
        self,
        error: Exception,
        operation: str,
        wait: float,
        **counters: int,
    ) -> None:
        if isinstance(error, FetchVaultError):
            log_operation_error(
                logger=logger,
                error=error,
                operation=operation,
                additional_context={"retry_in": wait, **counters},
                level=logging.WARNING,
            )
        else:
            logger.warning("%s failed (%s), retrying in %.1fs", operation, error, wait)

    def _give_up(self, error: Exception | None, operation: str, failures: int) -> None:
        logger.warning(
            "%s: giving up after %d transient failures%s",
            operation,
            failures,
            f" (last error: {error})" if error is not None else "",
        )
        return None

    def _throttled_error(
        self,
        error: Exception,
        operation: str,
        throttled: int,
    ) -> RemoteThrottledError:
        throttled_error = RemoteThrottledError(
            f"{operation} still throttled after {throttled - 1} retries",
            getattr(error, "status", None),
            retry_after=getattr(error, "retry_after", None),
            url=getattr(error, "url", None),
            code=ErrorCode.API_RATE_LIMIT,
            original_error=error,
        )
        log_operation_error(logger=logger, error=throttled_error, operation=operation)
        return throttled_error
