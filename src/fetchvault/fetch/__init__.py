"""Resilient fetch layer: rate limiting, retries, pagination and fan-out."""

from __future__ import annotations

from .deadline import Deadline
from .http_client import JsonApiClient
from .paginator import collect_all
from .rate_limiter import AsyncTokenBucketRateLimiter, RateLimiterRegistry
from .retry import (
    RetryDecision,
    RetryExecutor,
    RetryOutcome,
    RetryPolicy,
    classify_error,
)
from .semaphore_manager import SemaphoreManager, gather_bounded

__all__ = [
    "AsyncTokenBucketRateLimiter",
    "Deadline",
    "JsonApiClient",
    "RateLimiterRegistry",
    "RetryDecision",
    "RetryExecutor",
    "RetryOutcome",
    "RetryPolicy",
    "SemaphoreManager",
    "classify_error",
    "collect_all",
    "gather_bounded",
]
