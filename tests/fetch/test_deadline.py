"""Tests for Deadline and the deadline helpers."""

from __future__ import annotations

import asyncio

import pytest

from fetchvault.fetch import Deadline
from fetchvault.fetch.deadline import run_with_deadline
from fetchvault.shared.errors import OperationTimeoutError


class TestDeadlineRun:
    """Awaiting work under a deadline."""

    @pytest.mark.asyncio
    async def test_result_is_returned(self) -> None:
        async def work() -> int:
            return 7

        assert await Deadline(60).run(work()) == 7

    @pytest.mark.asyncio
    async def test_expiry_raises_operation_timeout(self) -> None:
        cancelled = asyncio.Event()

        async def slow() -> None:
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        with pytest.raises(OperationTimeoutError, match="during fetch"):
            await Deadline(0.01).run(slow(), operation="fetch")

        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_timeout_raised_by_work_propagates_unchanged(self) -> None:
        # Given a generous budget and work that times out on its own
        async def work() -> None:
            raise asyncio.TimeoutError("socket read timed out")

        # When / Then
        with pytest.raises(asyncio.TimeoutError, match="socket read") as exc_info:
            await Deadline(60).run(work(), operation="fetch")

        assert not isinstance(exc_info.value, OperationTimeoutError)

    @pytest.mark.asyncio
    async def test_already_expired_closes_coroutine(self) -> None:
        started = False

        async def work() -> None:
            nonlocal started
            started = True

        with pytest.raises(OperationTimeoutError):
            await Deadline(0).run(work())

        assert not started

    @pytest.mark.asyncio
    async def test_without_deadline_awaits_directly(self) -> None:
        async def work() -> str:
            return "done"

        assert await run_with_deadline(work(), None) == "done"


class TestDeadlineSleep:
    """Sleeping under a deadline."""

    @pytest.mark.asyncio
    async def test_sleep_past_deadline_raises(self) -> None:
        with pytest.raises(OperationTimeoutError):
            await Deadline(0.01).sleep(5, operation="cooldown")

    def test_remaining_never_negative(self) -> None:
        now = [100.0]
        deadline = Deadline(5, clock=lambda: now[0])

        now[0] = 110.0

        assert deadline.remaining() == 0.0
        assert deadline.expired
