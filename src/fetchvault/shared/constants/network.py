"""
Network Configuration Constants

This module contains constants related to remote API calls, rate
limiting and retry behavior.
"""

from .system import BASE_MINUTE, BASE_SECOND


class NetworkConfig:
    """Network configuration constants."""

    # Timeout settings
    REQUEST_TIMEOUT = 30 * BASE_SECOND

    # User agent
    USER_AGENT = "fetchvault/0.1.0"

    # Rate limiting
    DEFAULT_RATE_LIMIT_PER_MINUTE = 300  # requests per minute
    DEFAULT_BURST = 20  # token bucket capacity
    DEFAULT_JITTER = 0.5  # max random extra wait in seconds
    DEFAULT_CONCURRENT_REQUESTS = 8  # concurrent requests limit
    ACQUIRE_POLL_INTERVAL = 0.05 * BASE_SECOND


class RetryConfig:
    """Retry classifier constants."""

    MAX_TRANSIENT_RETRIES = 5
    # Cooldown after a 5xx, longer than the jittered rate-limit wait
    TRANSIENT_COOLDOWN = 1 * BASE_MINUTE
    # Delay between explicit retry requests from an attempt function
    RETRY_NOW_DELAY = 1 * BASE_SECOND
    # Wait after a 420/429 without Retry-After
    THROTTLE_DELAY = 30 * BASE_SECOND
    MAX_RETRY_AFTER = 5 * BASE_MINUTE
