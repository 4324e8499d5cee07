"""Run-wide deadlines for suspension points.

A Deadline is created once per run (or per call) and handed to every
operation that may wait: limiter acquisition, retry cooldowns, network
calls and cache generators. Expiry raises OperationTimeoutError.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, TypeVar

from fetchvault.shared.errors import ErrorCode, ErrorContext, OperationTimeoutError

T = TypeVar("T")


class Deadline:
    """Point in (monotonic) time after which waiting is no longer allowed.

    Args:
        seconds: Time budget from now
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self.seconds = seconds
        self.expires_at = clock() + seconds

    def __repr__(self) -> str:
        return f"Deadline(remaining={self.remaining():.3f})"

    def remaining(self) -> float:
        """Seconds left before expiry (never negative)."""
        return max(0.0, self.expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self._clock() >= self.expires_at

    def _timeout_error(self, operation: str) -> OperationTimeoutError:
        return OperationTimeoutError(
            code=ErrorCode.OPERATION_TIMEOUT,
            message=f"Deadline of {self.seconds}s expired during {operation}",
            context=ErrorContext(
                operation=operation,
                additional_data={"budget_seconds": self.seconds},
            ),
        )

    def check(self, operation: str) -> None:
        """Raise OperationTimeoutError if the deadline has passed."""
        if self.expired:
            raise self._timeout_error(operation)

    async def sleep(self, delay: float, operation: str = "sleep") -> None:
        """Sleep for delay, raising instead if the deadline falls inside it."""
        remaining = self.remaining()
        if delay >= remaining:
            await asyncio.sleep(remaining)
            raise self._timeout_error(operation)
        await asyncio.sleep(delay)

    async def run(self, awaitable: Awaitable[T], operation: str = "operation") -> T:
        """Await awaitable, cancelling it if the deadline expires first.

        Errors raised by the awaitable itself, TimeoutError included,
        propagate unchanged; only expiry of this deadline becomes
        OperationTimeoutError.
        """
        if self.expired:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise self._timeout_error(operation)

        task = asyncio.ensure_future(awaitable)
        try:
            done, _ = await asyncio.wait({task}, timeout=self.remaining())
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise self._timeout_error(operation)


async def sleep_until_deadline(
    delay: float,
    deadline: Deadline | None,
    operation: str = "sleep",
) -> None:
    """asyncio.sleep that respects an optional deadline."""
    if deadline is None:
        await asyncio.sleep(delay)
    else:
        await deadline.sleep(delay, operation)


async def run_with_deadline(
    awaitable: Awaitable[T],
    deadline: Deadline | None,
    operation: str = "operation",
) -> T:
    """Await awaitable under an optional deadline."""
    if deadline is None:
        return await awaitable
    return await deadline.run(awaitable, operation)
