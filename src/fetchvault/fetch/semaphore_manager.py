"""Semaphore Manager for concurrency control.

This module provides an asyncio semaphore manager that limits the number of
concurrent remote calls, plus gather_bounded for fanning out over many
items without letting one failure cancel the others.
"""

from __future__ import annotations

import asyncio
import logging
import types
from typing import Awaitable, Callable, Iterable, TypeVar, Union

from typing_extensions import Self

from fetchvault.shared.constants import NetworkConfig
from fetchvault.shared.errors import ApplicationError, ErrorCode, ErrorContext
from fetchvault.shared.logging import log_operation_error

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class SemaphoreManager:
    """Limits concurrent operations; usable as an async context manager.

    Args:
        concurrency_limit: Maximum number of concurrent operations
    """

    def __init__(
        self,
        concurrency_limit: int = NetworkConfig.DEFAULT_CONCURRENT_REQUESTS,
    ) -> None:
        if concurrency_limit <= 0:
            raise ApplicationError(
                code=ErrorCode.VALIDATION_ERROR,
                message=f"Concurrency limit must be positive, got: {concurrency_limit}",
                context=ErrorContext(
                    operation="semaphore_manager_init",
                    additional_data={"concurrency_limit": concurrency_limit},
                ),
            )

        self.concurrency_limit = concurrency_limit
        self._semaphore = asyncio.Semaphore(concurrency_limit)
        self._active_count = 0
        self._peak_count = 0

    async def acquire(self, timeout: float | None = None) -> bool:
        """Acquire a slot, waiting at most timeout seconds.

        Returns:
            True if a slot was acquired, False if the timeout expired
        """
        if timeout is not None and timeout < 0:
            raise ApplicationError(
                code=ErrorCode.VALIDATION_ERROR,
                message=f"Timeout must be non-negative, got: {timeout}",
                context=ErrorContext(
                    operation="semaphore_acquire",
                    additional_data={"timeout": timeout},
                ),
            )

        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=timeout)
        except asyncio.TimeoutError:
            return False

        self._active_count += 1
        self._peak_count = max(self._peak_count, self._active_count)
        return True

    def release(self) -> None:
        if self._active_count > 0:
            self._active_count -= 1
        self._semaphore.release()

    async def __aenter__(self) -> Self:
        await self.acquire()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        self.release()

    def get_active_count(self) -> int:
        """Get the number of slots currently held."""
        return self._active_count

    def get_available_count(self) -> int:
        """Get the number of free slots."""
        return self.concurrency_limit - self._active_count

    def get_peak_count(self) -> int:
        """Get the highest number of slots held at once."""
        return self._peak_count


async def gather_bounded(
    func: Callable[[T], Awaitable[R]],
    items: Iterable[T],
    limit: int | SemaphoreManager = NetworkConfig.DEFAULT_CONCURRENT_REQUESTS,
) -> list[Union[R, BaseException]]:
    """Run func over items with at most limit calls in flight.

    A failing item does not cancel its siblings: its exception is returned
    in its slot. Results are in input order.

    Args:
        func: Coroutine function applied to each item
        items: Items to process
        limit: Concurrency limit, or a SemaphoreManager to share

    Returns:
        One result or exception per item, in input order
    """
    manager = limit if isinstance(limit, SemaphoreManager) else SemaphoreManager(limit)

    async def run(item: T) -> R:
        async with manager:
            return await func(item)

    results = await asyncio.gather(*(run(item) for item in items), return_exceptions=True)

    failures = [r for r in results if isinstance(r, Exception)]
    if failures:
        error = ApplicationError(
            code=ErrorCode.CONCURRENCY_ERROR,
            message=f"{len(failures)} of {len(results)} items failed",
            context=ErrorContext(
                operation="gather_bounded",
                additional_data={"failed": len(failures), "total": len(results)},
            ),
        )
        log_operation_error(logger=logger, error=error, level=logging.WARNING)

    return list(results)
