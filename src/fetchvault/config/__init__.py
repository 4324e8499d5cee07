"""FetchVault Configuration Module

- Settings: Main configuration facade
- Loader functions: get_config, load_settings, reload_config, set_config
- Domain models: Cache, API (retry, rate limits), Logging settings
"""

from __future__ import annotations

from .models import (
    APISettings,
    CacheSettings,
    LoggingSettings,
    RateLimitSettings,
    RetrySettings,
    Settings,
)
from .loader import get_config, load_settings, reload_config, set_config

__all__ = [
    "APISettings",
    "CacheSettings",
    "LoggingSettings",
    "RateLimitSettings",
    "RetrySettings",
    "Settings",
    "get_config",
    "load_settings",
    "reload_config",
    "set_config",
]
