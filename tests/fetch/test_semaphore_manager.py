"""Unit tests for SemaphoreManager and gather_bounded."""

from __future__ import annotations

import asyncio

import pytest

from fetchvault.fetch import SemaphoreManager, gather_bounded
from fetchvault.shared.errors import ApplicationError


class TestSemaphoreManager:
    """Test cases for SemaphoreManager."""

    def test_initialization(self) -> None:
        manager = SemaphoreManager(concurrency_limit=3)

        assert manager.concurrency_limit == 3
        assert manager.get_active_count() == 0
        assert manager.get_available_count() == 3

    def test_invalid_limit(self) -> None:
        with pytest.raises(ApplicationError):
            SemaphoreManager(concurrency_limit=0)

    @pytest.mark.asyncio
    async def test_context_manager_tracks_active_count(self) -> None:
        manager = SemaphoreManager(concurrency_limit=2)

        async with manager:
            assert manager.get_active_count() == 1
            assert manager.get_available_count() == 1

        assert manager.get_active_count() == 0

    @pytest.mark.asyncio
    async def test_acquire_times_out_when_full(self) -> None:
        manager = SemaphoreManager(concurrency_limit=1)
        assert await manager.acquire() is True

        assert await manager.acquire(timeout=0.01) is False

        manager.release()
        assert await manager.acquire(timeout=0.01) is True

    @pytest.mark.asyncio
    async def test_negative_timeout(self) -> None:
        with pytest.raises(ApplicationError):
            await SemaphoreManager(1).acquire(timeout=-1)


class TestGatherBounded:
    """Bounded fan-out with per-item error isolation."""

    @pytest.mark.asyncio
    async def test_results_in_input_order_and_concurrency_bounded(self) -> None:
        # Given
        manager = SemaphoreManager(2)

        async def work(item: int) -> int:
            await asyncio.sleep(0.01 * (5 - item))
            return item * 10

        # When
        results = await gather_bounded(work, range(5), manager)

        # Then
        assert results == [0, 10, 20, 30, 40]
        assert manager.get_peak_count() == 2

    @pytest.mark.asyncio
    async def test_failure_does_not_cancel_siblings(self) -> None:
        finished: list[int] = []

        async def work(item: int) -> int:
            if item == 1:
                raise ValueError("bad item")
            await asyncio.sleep(0.01)
            finished.append(item)
            return item

        results = await gather_bounded(work, [0, 1, 2], limit=3)

        assert results[0] == 0
        assert isinstance(results[1], ValueError)
        assert results[2] == 2
        assert sorted(finished) == [0, 2]
