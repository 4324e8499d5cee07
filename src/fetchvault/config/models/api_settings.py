"""API configuration models.

This module contains configuration models for the remote API: request
settings, retry classifier tuning and per-category rate limits.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from fetchvault.shared.constants import NetworkConfig, RetryConfig


class RetrySettings(BaseModel):
    """Retry classifier configuration."""

    max_transient_retries: int = Field(
        default=RetryConfig.MAX_TRANSIENT_RETRIES,
        ge=0,
        description="Retries allowed for 5xx faults before a unit is dropped",
    )
    transient_cooldown: float = Field(
        default=RetryConfig.TRANSIENT_COOLDOWN,
        ge=0,
        description="Fixed wait after a transient server fault in seconds",
    )
    retry_now_delay: float = Field(
        default=RetryConfig.RETRY_NOW_DELAY,
        ge=0,
        description="Wait after an attempt explicitly asked to be retried",
    )
    throttle_delay: float = Field(
        default=RetryConfig.THROTTLE_DELAY,
        ge=0,
        description="Wait after a 420/429 response without Retry-After",
    )
    max_throttle_retries: int | None = Field(
        default=None,
        ge=0,
        description="Bound on throttled retries (None retries until the deadline)",
    )
    jitter: float = Field(
        default=NetworkConfig.DEFAULT_JITTER,
        ge=0,
        description="Maximum random extra wait added to delays in seconds",
    )


class RateLimitSettings(BaseModel):
    """Token bucket budget for one category of remote operations."""

    per_minute: float = Field(
        default=NetworkConfig.DEFAULT_RATE_LIMIT_PER_MINUTE,
        gt=0,
        description="Permits refilled per minute",
    )
    burst: int = Field(
        default=NetworkConfig.DEFAULT_BURST,
        gt=0,
        description="Bucket capacity",
    )


def _default_rate_limits() -> dict[str, RateLimitSettings]:
    return {
        "default": RateLimitSettings(),
        "history": RateLimitSettings(per_minute=300, burst=10),
        "orders": RateLimitSettings(per_minute=600, burst=20),
    }


class APISettings(BaseModel):
    """Remote API configuration.

    Security: access_token is hidden from repr so it never reaches logs.
    """

    base_url: str = Field(default="", description="Base URL of the remote API")
    access_token: str = Field(
        default="",
        repr=False,
        description="Static bearer token (token providers take precedence)",
    )
    timeout: float = Field(
        default=NetworkConfig.REQUEST_TIMEOUT,
        gt=0,
        description="Request timeout in seconds",
    )
    concurrent_requests: int = Field(
        default=NetworkConfig.DEFAULT_CONCURRENT_REQUESTS,
        gt=0,
        description="Maximum number of simultaneous outstanding requests",
    )
    user_agent: str = Field(default=NetworkConfig.USER_AGENT)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    rate_limits: dict[str, RateLimitSettings] = Field(
        default_factory=_default_rate_limits,
        description="Rate limit budget per operation category",
    )


__all__ = [
    "APISettings",
    "RateLimitSettings",
    "RetrySettings",
]
