"""Tests for the persistent memoization cache."""

from __future__ import annotations

import asyncio
import threading
from datetime import timedelta

import pytest
from pydantic import BaseModel

from fetchvault.cache import CacheFormat, FreshnessPolicy, MemoCache
from fetchvault.config import Settings
from fetchvault.fetch import Deadline, SemaphoreManager
from fetchvault.shared.errors import (
    CacheFormatMismatchError,
    GeneratorError,
    OperationTimeoutError,
)
from fetchvault.storage import FileStore


DAY = FreshnessPolicy(max_age=timedelta(hours=24))


class Recorder:
    """Generator that records the previous values it was called with."""

    def __init__(self, *values: object) -> None:
        self.values = list(values)
        self.calls: list[object] = []

    async def __call__(self, previous: object) -> object:
        self.calls.append(previous)
        return self.values[min(len(self.calls), len(self.values)) - 1]


class TokenModel(BaseModel):
    access_token: str
    expires_in: int


def stored_entry(cache: MemoCache, key: str, fmt: CacheFormat = CacheFormat.COMPACT):
    return cache.codec.decode(cache.store.read(key), fmt)


class TestGetOrGenerate:
    """Freshness decisions of get_or_generate."""

    @pytest.mark.asyncio
    async def test_new_key_generates_once_and_persists(self, cache: MemoCache) -> None:
        # Given
        generator = Recorder({"a": 1})

        # When
        value = await cache.get_or_generate("types/all", generator)

        # Then
        assert value == {"a": 1}
        assert generator.calls == [None]
        assert cache.store.exists("types/all")
        assert stored_entry(cache, "types/all") == ({"a": 1}, cache._clock())

    @pytest.mark.asyncio
    async def test_fresh_entry_skips_generator(self, cache: MemoCache, clock) -> None:
        # Given
        await cache.get_or_generate("prices", Recorder([1, 2]), policy=DAY)
        clock.advance(hours=23)
        generator = Recorder([3])

        # When
        value = await cache.get_or_generate("prices", generator, policy=DAY)

        # Then
        assert value == [1, 2]
        assert generator.calls == []

    @pytest.mark.asyncio
    async def test_entry_without_max_age_never_expires(
        self, cache: MemoCache, clock
    ) -> None:
        await cache.get_or_generate("static", Recorder("v1"))
        clock.advance(days=365)
        generator = Recorder("v2")

        assert await cache.get_or_generate("static", generator) == "v1"
        assert generator.calls == []

    @pytest.mark.asyncio
    async def test_expired_entry_regenerates_with_previous_value(
        self, cache: MemoCache, clock
    ) -> None:
        # Given
        await cache.get_or_generate("history", Recorder([1]), policy=DAY)
        clock.advance(hours=24)
        generator = Recorder([1, 2])

        # When
        value = await cache.get_or_generate("history", generator, policy=DAY)

        # Then
        assert value == [1, 2]
        assert generator.calls == [[1]]

    @pytest.mark.asyncio
    async def test_force_refresh_always_generates(self, cache: MemoCache) -> None:
        await cache.get_or_generate("orders", Recorder("old"))

        for expected in ("new1", "new2"):
            generator = Recorder(expected)
            value = await cache.get_or_generate(
                "orders", generator, policy=FreshnessPolicy.forced()
            )
            assert value == expected
            assert len(generator.calls) == 1

    @pytest.mark.asyncio
    async def test_auth_entry_older_than_a_day_is_regenerated(
        self, store: FileStore, clock
    ) -> None:
        # Given: an "auth" entry written 25 hours ago
        first_run = MemoCache(store, clock=clock)
        first_run.save("auth", {"access_token": "old"})
        clock.advance(hours=25)
        cache = MemoCache(store, clock=clock)
        generator = Recorder({"access_token": "new"})

        # When
        value = await cache.get_or_generate_json("auth", generator, policy=DAY)

        # Then
        assert value == {"access_token": "new"}
        assert generator.calls == [{"access_token": "old"}]
        _, generated_at = stored_entry(cache, "auth", CacheFormat.VERBOSE)
        assert generated_at == clock.now

    @pytest.mark.asyncio
    async def test_generated_at_never_moves_backwards(
        self, cache: MemoCache, clock
    ) -> None:
        await cache.get_or_generate("k", Recorder(1))
        first_stamp = clock.now
        clock.advance(hours=-2)

        await cache.get_or_generate("k", Recorder(2), policy=FreshnessPolicy.forced())

        assert stored_entry(cache, "k") == (2, first_stamp)


class TestGenerators:
    """Accepted generator shapes."""

    @pytest.mark.asyncio
    async def test_sync_callable(self, cache: MemoCache) -> None:
        assert await cache.get_or_generate("sync", lambda previous: [previous]) == [None]

    @pytest.mark.asyncio
    async def test_object_with_generate_method(self, cache: MemoCache) -> None:
        class Counter:
            def generate(self, previous: int | None) -> int:
                return (previous or 0) + 1

        await cache.get_or_generate("counter", Counter())
        value = await cache.get_or_generate(
            "counter", Counter(), policy=FreshnessPolicy.forced()
        )

        assert value == 2

    @pytest.mark.asyncio
    async def test_value_type_restores_models(self, cache: MemoCache, store: FileStore) -> None:
        token = TokenModel(access_token="abc", expires_in=1200)
        await cache.get_or_generate_json("auth", lambda previous: token, value_type=TokenModel)

        reloaded = MemoCache(store).load("auth", CacheFormat.VERBOSE, value_type=TokenModel)

        assert reloaded == token


class TestFailures:
    """Generator failures, corrupt entries and deadlines."""

    @pytest.mark.asyncio
    async def test_failed_generator_leaves_entry_unchanged(self, cache: MemoCache) -> None:
        # Given
        await cache.get_or_generate("orders", Recorder([1, 2, 3]))
        before = cache.store.read("orders")

        async def failing(previous: object) -> object:
            raise ValueError("upstream exploded")

        # When
        with pytest.raises(GeneratorError) as exc_info:
            await cache.get_or_generate("orders", failing, policy=FreshnessPolicy.forced())

        # Then
        assert cache.store.read("orders") == before
        assert str(exc_info.value.message) == "generation failed for key orders: upstream exploded"
        assert isinstance(exc_info.value.original_error, ValueError)
        assert exc_info.value.__cause__ is exc_info.value.original_error

    @pytest.mark.asyncio
    async def test_failed_first_generation_writes_nothing(self, cache: MemoCache) -> None:
        def failing(previous: object) -> object:
            raise RuntimeError("boom")

        with pytest.raises(GeneratorError):
            await cache.get_or_generate("missing", failing)

        assert not cache.store.exists("missing")
        assert "missing" not in cache.updated_keys

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_treated_as_miss(self, cache: MemoCache) -> None:
        # Given
        cache.store.write("types", b"FVC1 definitely not zlib")
        generator = Recorder([7])

        # When
        value = await cache.get_or_generate("types", generator)

        # Then
        assert value == [7]
        assert generator.calls == [None]

    @pytest.mark.asyncio
    async def test_reading_other_format_fails_fast(
        self, store: FileStore, clock
    ) -> None:
        await MemoCache(store, clock=clock).get_or_generate("k", Recorder(1))
        generator = Recorder(2)

        with pytest.raises(CacheFormatMismatchError):
            await MemoCache(store, clock=clock).get_or_generate_json("k", generator)

        assert generator.calls == []

    @pytest.mark.asyncio
    async def test_two_formats_for_one_key_in_one_run(self, cache: MemoCache) -> None:
        await cache.get_or_generate("k", Recorder(1), fmt=CacheFormat.COMPACT)

        with pytest.raises(CacheFormatMismatchError):
            cache.save("k", 2, fmt=CacheFormat.VERBOSE)

    @pytest.mark.asyncio
    async def test_deadline_expiry_writes_nothing(self, cache: MemoCache) -> None:
        async def slow(previous: object) -> object:
            await asyncio.sleep(5)
            return "late"

        with pytest.raises(OperationTimeoutError):
            await cache.get_or_generate("slow", slow, deadline=Deadline(0.01))

        assert not cache.store.exists("slow")

    @pytest.mark.asyncio
    async def test_generator_timeout_inside_deadline_is_generator_error(
        self, cache: MemoCache
    ) -> None:
        # Given a generator whose own request timed out, with time left
        async def timing_out(previous: object) -> object:
            raise asyncio.TimeoutError("upstream read timed out")

        # When
        with pytest.raises(GeneratorError) as exc_info:
            await cache.get_or_generate("orders", timing_out, deadline=Deadline(60))

        # Then
        assert isinstance(exc_info.value.original_error, asyncio.TimeoutError)
        assert not isinstance(exc_info.value.original_error, OperationTimeoutError)
        assert exc_info.value.message.startswith("generation failed for key orders")
        assert not cache.store.exists("orders")


class TestDependencies:
    """Per-run dependency tracking."""

    @pytest.mark.asyncio
    async def test_dependent_regenerates_after_dependency_update(
        self, store: FileStore, clock
    ) -> None:
        # Given: both entries were produced by an earlier run
        first_run = MemoCache(store, clock=clock)
        await first_run.get_or_generate_json("auth", Recorder("token-1"))
        await first_run.get_or_generate("orders", Recorder(["o1"]), depends=["auth"])
        cache = MemoCache(store, clock=clock)

        # When: auth is refreshed in this run
        await cache.get_or_generate_json(
            "auth", Recorder("token-2"), policy=FreshnessPolicy.forced()
        )
        generator = Recorder(["o2"])
        value = await cache.get_or_generate("orders", generator, depends=["auth"])

        # Then
        assert value == ["o2"]
        assert generator.calls == [["o1"]]
        assert cache.updated_keys == frozenset({"auth", "orders"})

    @pytest.mark.asyncio
    async def test_untouched_dependency_keeps_dependent_fresh(
        self, store: FileStore, clock
    ) -> None:
        first_run = MemoCache(store, clock=clock)
        await first_run.get_or_generate_json("auth", Recorder("token-1"))
        await first_run.get_or_generate("orders", Recorder(["o1"]), depends=["auth"])
        cache = MemoCache(store, clock=clock)

        await cache.get_or_generate_json("auth", Recorder("token-2"))
        generator = Recorder(["o2"])
        value = await cache.get_or_generate("orders", generator, depends=["auth"])

        assert value == ["o1"]
        assert generator.calls == []
        assert cache.updated_keys == frozenset()

    @pytest.mark.asyncio
    async def test_regenerated_dependent_is_fresh_on_later_calls(self, cache: MemoCache) -> None:
        # Given a dependency saved in this run
        cache.save("auth", "t")
        generator = Recorder(["o1"], ["o2"], ["o3"])

        # When the dependent is requested three times
        values = [
            await cache.get_or_generate("orders", generator, depends=["auth"], policy=DAY)
            for _ in range(3)
        ]

        # Then it is generated once and served from the cache afterwards
        assert values == [["o1"], ["o1"], ["o1"]]
        assert generator.calls == [None]

    @pytest.mark.asyncio
    async def test_dependency_updated_after_dependent_hit_cascades_once(
        self, store: FileStore, clock
    ) -> None:
        # Given a fresh dependent served from the cache in this run
        await MemoCache(store, clock=clock).get_or_generate("orders", Recorder(["o1"]))
        cache = MemoCache(store, clock=clock)
        generator = Recorder(["o2"], ["o3"])
        assert await cache.get_or_generate("orders", generator, depends=["auth"]) == ["o1"]

        # When the dependency is written afterwards
        cache.save("auth", "token-2")
        second = await cache.get_or_generate("orders", generator, depends=["auth"])
        third = await cache.get_or_generate("orders", generator, depends=["auth"])

        # Then
        assert second == ["o2"]
        assert third == ["o2"]
        assert generator.calls == [["o1"]]

    @pytest.mark.asyncio
    async def test_cascade_can_be_disabled(self, store: FileStore, clock) -> None:
        await MemoCache(store, clock=clock).get_or_generate("orders", Recorder(["o1"]))
        cache = MemoCache(store, clock=clock, cascade_dependencies=False)
        cache.save("auth", "token-2")

        value = await cache.get_or_generate("orders", Recorder(["o2"]), depends=["auth"])

        assert value == ["o1"]


class TestConcurrency:
    """Independent keys generated concurrently."""

    @pytest.mark.asyncio
    async def test_two_keys_with_two_slot_limiter(self, cache: MemoCache) -> None:
        # Given
        slots = SemaphoreManager(2)
        seen: dict[str, object] = {}

        def generator_for(key: str):
            async def generate(previous: object) -> str:
                async with slots:
                    seen[key] = previous
                    await asyncio.sleep(0.01)
                    return f"value-{key}"

            return generate

        # When
        results = await asyncio.gather(
            cache.get_or_generate("a", generator_for("a")),
            cache.get_or_generate("b", generator_for("b")),
        )

        # Then
        assert results == ["value-a", "value-b"]
        assert seen == {"a": None, "b": None}
        assert stored_entry(cache, "a")[0] == "value-a"
        assert stored_entry(cache, "b")[0] == "value-b"
        assert slots.get_peak_count() == 2

    @pytest.mark.asyncio
    async def test_key_locks_are_released_after_use(self, cache: MemoCache) -> None:
        # Given
        generator = Recorder("v")

        # When
        results = await asyncio.gather(
            *(cache.get_or_generate("same", generator) for _ in range(3)),
            cache.get_or_generate("other", Recorder("w")),
        )

        # Then
        assert results == ["v", "v", "v", "w"]
        assert generator.calls == [None]
        assert cache._key_locks == {}
        assert cache._key_lock_users == {}

    @pytest.mark.asyncio
    async def test_store_io_runs_off_the_event_loop(self, temp_dir, clock) -> None:
        # Given
        threads: list[str] = []

        class RecordingStore(FileStore):
            def read(self, key: str) -> bytes:
                threads.append(threading.current_thread().name)
                return super().read(key)

            def write(self, key: str, data: bytes) -> None:
                threads.append(threading.current_thread().name)
                super().write(key, data)

        cache = MemoCache(RecordingStore(temp_dir / "cache"), clock=clock)

        # When
        await cache.get_or_generate("k", Recorder(1), policy=FreshnessPolicy.forced())
        await cache.get_or_generate("k", Recorder(2))

        # Then
        assert len(threads) == 2
        assert threading.main_thread().name not in threads


class TestSaveAndLoad:
    """Unconditional writes and reads."""

    def test_save_marks_key_updated(self, cache: MemoCache) -> None:
        assert cache.save("auth", {"t": 1}) == {"t": 1}

        assert "auth" in cache.updated_keys
        assert cache.load("auth", CacheFormat.VERBOSE) == {"t": 1}

    def test_load_missing_key_returns_none(self, cache: MemoCache) -> None:
        assert cache.load("nothing") is None

    def test_from_settings(self, temp_dir) -> None:
        settings = Settings(
            cache={
                "root_dir": str(temp_dir / "c"),
                "default_format": "verbose",
                "cascade_dependencies": False,
            }
        )

        cache = MemoCache.from_settings(settings)

        assert cache.default_format is CacheFormat.VERBOSE
        assert cache.cascade_dependencies is False
        assert cache.store.root_dir == temp_dir / "c"
