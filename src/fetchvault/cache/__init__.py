"""Memoization cache: entries, container codec and the cache itself."""

from __future__ import annotations

from .codec import ContainerCodec
from .memo_cache import MemoCache
from .models import CacheEntry, CacheFormat, FreshnessPolicy

__all__ = [
    "CacheEntry",
    "CacheFormat",
    "ContainerCodec",
    "FreshnessPolicy",
    "MemoCache",
]
