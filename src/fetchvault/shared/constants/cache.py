"""
Cache Configuration Constants

This module provides the on-disk layout constants of the memoization cache.
"""


class CacheConfig:
    """Memoization cache constants."""

    DEFAULT_DIR = "cache"
    TEMP_SUFFIX = ".tmp"


class CodecConfig:
    """Container codec constants."""

    COMPACT_MAGIC = b"FVC1"
    COMPRESSION_LEVEL = 6
    FIELD_DATA = "data"
    FIELD_GENERATED_AT = "generated_at"
