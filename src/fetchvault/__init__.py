"""FetchVault - persistent memoization cache and resilient fetch layer.

FetchVault fetches large, slowly-changing datasets from a rate-limited,
unreliable HTTP API and keeps them on disk, so repeated runs only re-fetch
data that went stale or whose upstream dependencies changed.
"""

from __future__ import annotations

import logging

from fetchvault.cache import CacheEntry, CacheFormat, ContainerCodec, FreshnessPolicy, MemoCache
from fetchvault.config import Settings, get_config
from fetchvault.fetch import (
    AsyncTokenBucketRateLimiter,
    Deadline,
    JsonApiClient,
    RateLimiterRegistry,
    RetryDecision,
    RetryExecutor,
    RetryOutcome,
    RetryPolicy,
    SemaphoreManager,
    classify_error,
    collect_all,
    gather_bounded,
)
from fetchvault.shared.errors import (
    CacheDecodeError,
    CacheFormatMismatchError,
    FetchVaultError,
    GeneratorError,
    OperationTimeoutError,
    RemoteError,
    RemoteThrottledError,
    StorageError,
)
from fetchvault.shared.logging import setup_structured_logger
from fetchvault.storage import FileStore

__version__ = "0.1.0"


def configure_logging(settings: Settings | None = None) -> logging.Logger:
    """Configure the ``fetchvault`` logger from the ``[logging]`` settings."""
    settings = settings or get_config()
    return setup_structured_logger(
        level=settings.logging.level,
        log_file=settings.logging.file,
        use_rich_console=settings.logging.use_rich_console,
    )


__all__ = [
    "AsyncTokenBucketRateLimiter",
    "CacheDecodeError",
    "CacheEntry",
    "CacheFormat",
    "CacheFormatMismatchError",
    "ContainerCodec",
    "Deadline",
    "FetchVaultError",
    "FileStore",
    "FreshnessPolicy",
    "GeneratorError",
    "JsonApiClient",
    "MemoCache",
    "OperationTimeoutError",
    "RateLimiterRegistry",
    "RemoteError",
    "RemoteThrottledError",
    "RetryDecision",
    "RetryExecutor",
    "RetryOutcome",
    "RetryPolicy",
    "SemaphoreManager",
    "Settings",
    "StorageError",
    "classify_error",
    "collect_all",
    "configure_logging",
    "gather_bounded",
]
