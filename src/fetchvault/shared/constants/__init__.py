"""
FetchVault Constants Module

Centralized constants for the cache and fetch layers.
"""

from .cache import CacheConfig, CodecConfig
from .http_codes import ContentTypes, HTTPHeaders, HTTPStatusCodes
from .network import NetworkConfig, RetryConfig
from .system import BASE_MINUTE, BASE_SECOND

__all__ = [
    "BASE_MINUTE",
    "BASE_SECOND",
    "CacheConfig",
    "CodecConfig",
    "ContentTypes",
    "HTTPHeaders",
    "HTTPStatusCodes",
    "NetworkConfig",
    "RetryConfig",
]
