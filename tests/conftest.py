"""
Pytest configuration and shared fixtures for FetchVault tests.

This module provides common fixtures that can be used across all test
modules in the project.
"""

from __future__ import annotations

import tempfile
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from fetchvault.cache import MemoCache
from fetchvault.config import set_config
from fetchvault.fetch import AsyncTokenBucketRateLimiter, RetryExecutor, RetryPolicy
from fetchvault.storage import FileStore


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to the temporary directory.
    """
    with tempfile.TemporaryDirectory() as temp_path:
        yield Path(temp_path)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(temp_dir: Path) -> FileStore:
    return FileStore(temp_dir / "cache")


@pytest.fixture
def cache(store: FileStore, clock: FakeClock) -> MemoCache:
    return MemoCache(store, clock=clock)


@pytest.fixture
def fast_limiter() -> AsyncTokenBucketRateLimiter:
    """Limiter that practically never makes a test wait."""
    return AsyncTokenBucketRateLimiter(capacity=100, refill_rate=10_000.0, jitter=0.0)


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Retry policy with zero delays and the default bounds."""
    return RetryPolicy(
        transient_cooldown=0.0,
        retry_now_delay=0.0,
        throttle_delay=0.0,
        jitter=0.0,
    )


@pytest.fixture
def executor(fast_limiter: AsyncTokenBucketRateLimiter, fast_policy: RetryPolicy) -> RetryExecutor:
    return RetryExecutor(fast_limiter, fast_policy)


@pytest.fixture(autouse=True)
def _reset_global_config() -> Generator[None, None, None]:
    """Keep the process-wide settings singleton from leaking between tests."""
    set_config(None)
    yield
    set_config(None)
