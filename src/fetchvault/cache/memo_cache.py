"""Persistent, dependency-aware memoization cache.

This module provides MemoCache, which returns a stored value for a key
when it is still fresh and otherwise calls a generator to produce a new
one, persisting the result through a byte store.

Dependencies between keys are tracked per cache instance with a write
sequence: a dependent is stale when one of its dependencies was regenerated
or saved during this run after the dependent itself was last written or
resolved. A dependency that was not touched yet in this run is only
logged, since callers are expected to resolve dependencies before
dependents.

Concurrency: one writer per key per process. Calls for the same key on one
instance are serialized; nothing guards a cache directory shared between
processes.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Sequence, TypeVar, Union

from fetchvault.cache.codec import ContainerCodec
from fetchvault.cache.models import CacheFormat, FreshnessPolicy
from fetchvault.config.models.settings import Settings
from fetchvault.fetch.deadline import Deadline, run_with_deadline
from fetchvault.shared.errors import (
    CacheDecodeError,
    CacheFormatMismatchError,
    ErrorCode,
    ErrorContext,
    GeneratorError,
    OperationTimeoutError,
)
from fetchvault.shared.logging import log_operation_error, log_operation_success
from fetchvault.shared.protocols import ByteStoreProtocol, GeneratorProtocol
from fetchvault.storage import FileStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

GeneratorFunc = Callable[[Any], Union[Any, Awaitable[Any]]]
GeneratorLike = Union[GeneratorFunc, GeneratorProtocol[Any]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoCache:
    """Memoization cache keyed by path-shaped strings.

    Args:
        store: Byte store holding the entries (default: FileStore("cache"))
        codec: Container codec (default: ContainerCodec())
        clock: Returns the current UTC time, injectable for tests
        cascade_dependencies: Regenerate dependents of keys updated this run
        default_format: Format used when a call does not pass one

    Example:
        >>> cache = MemoCache(FileStore("cache"))
        >>> token = await cache.get_or_generate_json(
        ...     "auth.json",
        ...     refresh_token,
        ...     policy=FreshnessPolicy.max_age_of(hours=24),
        ... )
    """

    def __init__(
        self,
        store: ByteStoreProtocol | None = None,
        *,
        codec: ContainerCodec | None = None,
        clock: Callable[[], datetime] = _utcnow,
        cascade_dependencies: bool = True,
        default_format: CacheFormat = CacheFormat.COMPACT,
    ) -> None:
        self.store = store if store is not None else FileStore()
        self.codec = codec or ContainerCodec()
        self.cascade_dependencies = cascade_dependencies
        self.default_format = default_format
        self._clock = clock
        self._formats: dict[str, CacheFormat] = {}
        # Write sequence of this run: key -> seq of its last write, and
        # key -> seq at its last write or resolution.
        self._seq = 0
        self._written_at_seq: dict[str, int] = {}
        self._seen_at_seq: dict[str, int] = {}
        self._key_locks: dict[str, asyncio.Lock] = {}
        self._key_lock_users: dict[str, int] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        **kwargs: Any,
    ) -> MemoCache:
        """Build a cache from the ``[cache]`` section of the settings."""
        if settings is None:
            from fetchvault.config.loader import get_config

            settings = get_config()

        return cls(
            FileStore(settings.cache.root_dir),
            cascade_dependencies=settings.cache.cascade_dependencies,
            default_format=CacheFormat(settings.cache.default_format),
            **kwargs,
        )

    @property
    def updated_keys(self) -> frozenset[str]:
        """Keys generated or saved by this instance."""
        return frozenset(self._written_at_seq)

    def _claim_format(self, key: str, fmt: CacheFormat) -> None:
        known = self._formats.get(key)
        if known is not None and known is not fmt:
            raise CacheFormatMismatchError(
                code=ErrorCode.CACHE_FORMAT_MISMATCH,
                message=f"Key '{key}' is used as {known.value} and {fmt.value} in one run",
                context=ErrorContext(
                    key=key,
                    operation="claim_format",
                    additional_data={"known": known, "requested": fmt},
                ),
            )
        self._formats[key] = fmt

    @asynccontextmanager
    async def _key_lock(self, key: str) -> AsyncIterator[None]:
        """Hold the per-key lock; the entry is dropped once nobody uses it."""
        lock = self._key_locks.get(key)
        if lock is None:
            lock = self._key_locks[key] = asyncio.Lock()
        self._key_lock_users[key] = self._key_lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            users = self._key_lock_users[key] - 1
            if users:
                self._key_lock_users[key] = users
            else:
                del self._key_lock_users[key]
                del self._key_locks[key]

    def _read_entry(
        self,
        key: str,
        fmt: CacheFormat,
        value_type: Any | None,
    ) -> tuple[Any, datetime] | None:
        """Read and decode the stored entry, or None on miss/decode failure."""
        if not self.store.exists(key):
            return None

        raw = self.store.read(key)
        try:
            return self.codec.decode(raw, fmt, value_type, key=key)
        except CacheDecodeError as e:
            log_operation_error(
                logger=logger,
                error=e,
                operation="cache_read",
                level=logging.WARNING,
            )
            return None

    def _mark_seen(self, key: str) -> None:
        self._seen_at_seq[key] = self._seq

    def _mark_written(self, key: str) -> None:
        self._seq += 1
        self._written_at_seq[key] = self._seq
        self._seen_at_seq[key] = self._seq

    def _updated_dependency(self, key: str, depends: Sequence[str]) -> str | None:
        """Return a dependency written after key was last written or resolved."""
        for dependency in depends:
            if dependency not in self._seen_at_seq:
                logger.info(
                    "Dependency '%s' of '%s' was not resolved earlier in this run",
                    dependency,
                    key,
                )
        if not self.cascade_dependencies:
            return None
        seen = self._seen_at_seq.get(key, 0)
        return next(
            (d for d in depends if d != key and self._written_at_seq.get(d, 0) > seen),
            None,
        )

    async def _invoke(self, generator: GeneratorLike, previous: Any) -> Any:
        if callable(generator):
            result = generator(previous)
        else:
            result = generator.generate(previous)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def get_or_generate(
        self,
        key: str,
        generator: GeneratorLike,
        *,
        depends: Sequence[str] = (),
        policy: FreshnessPolicy | None = None,
        fmt: CacheFormat | None = None,
        value_type: Any | None = None,
        deadline: Deadline | None = None,
    ) -> Any:
        """Return the cached value for key, generating it when needed.

        Store reads and writes run in a worker thread so large entries do
        not stall other tasks on the loop.

        Args:
            key: Path-shaped cache key
            generator: Callable (or object with ``generate``) taking the
                previously stored value, or None, and returning the new value
            depends: Keys whose regeneration in this run invalidates key
            policy: Freshness policy (default: entries never expire)
            fmt: Container format (default: the instance default)
            value_type: Type to validate stored values into, and to
                serialize values JSON cannot hold natively
            deadline: Optional deadline bounding the generator

        Returns:
            The fresh stored value or the newly generated one

        Raises:
            CacheFormatMismatchError: If key is stored in another format
            GeneratorError: If the generator failed; the entry is unchanged
            DomainError: If the generated value cannot be serialized
            StorageError: If the store cannot be read or written
            OperationTimeoutError: If the deadline expired during generation
        """
        fmt = fmt or self.default_format
        policy = policy or FreshnessPolicy()
        self._claim_format(key, fmt)

        async with self._key_lock(key):
            stored = await asyncio.to_thread(self._read_entry, key, fmt, value_type)

            if stored is None:
                reason = "missing"
            elif policy.force_refresh:
                reason = "forced"
            else:
                dependency = self._updated_dependency(key, depends)
                if dependency is not None:
                    reason = f"dependency '{dependency}' was updated"
                elif policy.is_fresh(stored[1], self._clock()):
                    logger.info("Cache hit for '%s'", key)
                    self._mark_seen(key)
                    return stored[0]
                else:
                    reason = "stale"

            logger.info("Generating '%s' (%s)", key, reason)
            previous_value, previous_time = stored if stored is not None else (None, None)
            value = await self._generate(key, generator, previous_value, deadline)

            generated_at = self._clock()
            if previous_time is not None and previous_time > generated_at:
                generated_at = previous_time

            await asyncio.to_thread(self._store_entry, key, value, generated_at, fmt, value_type)
            self._mark_written(key)
            return value

    async def _generate(
        self,
        key: str,
        generator: GeneratorLike,
        previous: Any,
        deadline: Deadline | None,
    ) -> Any:
        start = time.perf_counter()
        try:
            value = await run_with_deadline(
                self._invoke(generator, previous),
                deadline,
                operation=f"generate {key}",
            )
        except OperationTimeoutError:
            raise
        except Exception as e:
            error = GeneratorError(key, e)
            log_operation_error(logger=logger, error=error, operation="generate")
            raise error from e

        log_operation_success(
            logger=logger,
            operation="generate",
            duration_ms=(time.perf_counter() - start) * 1000,
            context=ErrorContext(key=key, operation="generate"),
        )
        return value

    def _store_entry(
        self,
        key: str,
        value: Any,
        generated_at: datetime,
        fmt: CacheFormat,
        value_type: Any | None,
    ) -> None:
        raw = self.codec.encode(value, generated_at, fmt, value_type, key=key)
        self.store.write(key, raw)
        logger.debug("Stored '%s' (%d bytes, %s)", key, len(raw), fmt.value)

    async def get_or_generate_json(
        self,
        key: str,
        generator: GeneratorLike,
        *,
        depends: Sequence[str] = (),
        policy: FreshnessPolicy | None = None,
        value_type: Any | None = None,
        deadline: Deadline | None = None,
    ) -> Any:
        """get_or_generate with the human-readable VERBOSE format."""
        return await self.get_or_generate(
            key,
            generator,
            depends=depends,
            policy=policy,
            fmt=CacheFormat.VERBOSE,
            value_type=value_type,
            deadline=deadline,
        )

    def save(
        self,
        key: str,
        value: T,
        fmt: CacheFormat = CacheFormat.VERBOSE,
        value_type: Any | None = None,
    ) -> T:
        """Unconditionally store value under key and mark the key updated."""
        self._claim_format(key, fmt)
        self._store_entry(key, value, self._clock(), fmt, value_type)
        self._mark_written(key)
        return value

    def load(
        self,
        key: str,
        fmt: CacheFormat | None = None,
        value_type: Any | None = None,
    ) -> Any | None:
        """Return the stored value for key regardless of age, or None."""
        fmt = fmt or self.default_format
        self._claim_format(key, fmt)
        stored = self._read_entry(key, fmt, value_type)
        if stored is None:
            return None
        self._mark_seen(key)
        return stored[0]
