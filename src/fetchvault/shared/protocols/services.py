"""Service protocols for dependency inversion.

The cache depends on these interfaces only, so any byte store or
generator object can be plugged in without importing concrete classes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Awaitable, Protocol, TypeVar, Union, runtime_checkable

T = TypeVar("T")


class ByteStoreProtocol(Protocol):
    """Protocol for the key-value byte store behind the memoization cache.

    Keys are path-shaped strings. ``write`` must appear atomic per key: a
    reader never observes a half-written value.

    Example:
        >>> from fetchvault.storage import FileStore
        >>>
        >>> store: ByteStoreProtocol = FileStore("cache")
        >>> store.write("auth.json", b"{}")
        >>> store.read("auth.json")
        b'{}'
    """

    def exists(self, key: str) -> bool:
        """Return True if a value is stored under key."""

    def read(self, key: str) -> bytes:
        """Return the bytes stored under key."""

    def write(self, key: str, data: bytes) -> None:
        """Atomically replace the value stored under key."""

    def mtime(self, key: str) -> datetime | None:
        """Return the last modification time of key, or None if missing."""


@runtime_checkable
class GeneratorProtocol(Protocol[T]):
    """Object form of a cache generator.

    ``generate`` receives the previously stored value (or None) and returns
    the new value, either directly or as an awaitable.
    """

    def generate(self, previous: T | None) -> Union[T, Awaitable[T]]:
        """Produce a new value for the cache key."""
