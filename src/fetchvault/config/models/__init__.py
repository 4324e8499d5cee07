"""Configuration models for FetchVault."""

from __future__ import annotations

from .api_settings import APISettings, RateLimitSettings, RetrySettings
from .cache_settings import CacheSettings
from .logging_settings import LoggingSettings
from .settings import Settings

__all__ = [
    "APISettings",
    "CacheSettings",
    "LoggingSettings",
    "RateLimitSettings",
    "RetrySettings",
    "Settings",
]
