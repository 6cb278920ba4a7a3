"""
Tests for the entity cache.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from jobboard.errors import RemoteCallError
from jobboard.metrics import export_metrics
from jobboard.services import keys
from jobboard.services.cache import INVALIDATED, RESET, STORED, EntityCache
from jobboard.services.keys import KeyFamily, KeyPattern


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestEntityCacheRead:
    """Test the read path: hits, misses and shared in-flight fetches."""

    @pytest.mark.asyncio
    async def test_miss_fetches_and_stores(self):
        """A miss should fetch once and store the value."""
        cache = EntityCache()
        fetcher = AsyncMock(return_value=[1, 2, 3])

        value = await cache.read(keys.published_jobs(), fetcher, default=[])

        assert value == [1, 2, 3]
        assert cache.is_fresh(keys.published_jobs())
        fetcher.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_fresh_entry_served_without_fetch(self):
        """Fresh entries should be served without a remote call."""
        cache = EntityCache()
        fetcher = AsyncMock(return_value="profile")

        await cache.read(keys.profile("p1"), fetcher)
        value = await cache.read(keys.profile("p1"), fetcher)

        assert value == "profile"
        assert fetcher.await_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_readers_share_one_fetch(self):
        """Concurrent readers of one key should share a single fetch."""
        cache = EntityCache()
        release = asyncio.Event()
        calls = 0

        async def fetcher():
            nonlocal calls
            calls += 1
            await release.wait()
            return ["job"]

        readers = [
            asyncio.ensure_future(cache.read(keys.published_jobs(), fetcher, default=[]))
            for _ in range(5)
        ]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*readers)

        assert calls == 1
        assert results == [["job"]] * 5

    @pytest.mark.asyncio
    async def test_distinct_keys_fetch_independently(self):
        """Different keys should each get their own fetch."""
        cache = EntityCache()
        fetcher = AsyncMock(return_value=[])

        await cache.read(keys.job_applications(1), fetcher, default=[])
        await cache.read(keys.job_applications(2), fetcher, default=[])

        assert fetcher.await_count == 2
        assert len(cache) == 2

    @pytest.mark.asyncio
    async def test_remote_failure_returns_default_and_retries(self):
        """A failed fetch returns the default and the next read retries."""
        cache = EntityCache()
        fetcher = AsyncMock(side_effect=[RemoteCallError("getPublishedJobs", "boom"), ["job"]])

        first = await cache.read(keys.published_jobs(), fetcher, default=[])
        assert first == []
        assert not cache.is_fresh(keys.published_jobs())
        assert isinstance(cache.last_error(keys.published_jobs()), RemoteCallError)

        second = await cache.read(keys.published_jobs(), fetcher, default=[])
        assert second == ["job"]
        assert cache.last_error(keys.published_jobs()) is None

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_value_for_peek(self):
        """A failed refetch keeps the previous value visible to peek()."""
        cache = EntityCache()
        fetcher = AsyncMock(side_effect=[["old"], RemoteCallError("getPublishedJobs", "boom")])

        await cache.read(keys.published_jobs(), fetcher, default=[])
        cache.invalidate(keys.published_jobs())
        value = await cache.read(keys.published_jobs(), fetcher, default=[])

        assert value == []
        assert cache.peek(keys.published_jobs()) == ["old"]

    @pytest.mark.asyncio
    async def test_unexpected_error_propagates(self):
        """Non-remote errors propagate and do not wedge the key."""
        cache = EntityCache()
        fetcher = AsyncMock(side_effect=KeyError("bug"))

        with pytest.raises(KeyError):
            await cache.read(keys.job(1), fetcher)

        # Not stuck in flight
        fetcher.side_effect = None
        fetcher.return_value = "job"
        assert await cache.read(keys.job(1), fetcher) == "job"

    @pytest.mark.asyncio
    async def test_max_age_expires_entries(self):
        """Entries older than max_age should be refetched."""
        clock = FakeClock()
        cache = EntityCache(max_age=30, clock=clock)
        fetcher = AsyncMock(return_value=5)

        await cache.read(keys.member_count(), fetcher)
        clock.now += 10
        await cache.read(keys.member_count(), fetcher)
        assert fetcher.await_count == 1

        clock.now += 30
        await cache.read(keys.member_count(), fetcher)
        assert fetcher.await_count == 2


class TestEntityCacheInvalidation:
    """Test invalidate() and reset()."""

    @pytest.mark.asyncio
    async def test_invalidate_then_read_refetches(self):
        """Reading an invalidated key should fetch again."""
        cache = EntityCache()
        fetcher = AsyncMock(side_effect=[["a"], ["a", "b"]])

        await cache.read(keys.candidate_applications("c1"), fetcher, default=[])
        count = cache.invalidate(keys.candidate_applications("c1"))
        value = await cache.read(keys.candidate_applications("c1"), fetcher, default=[])

        assert count == 1
        assert value == ["a", "b"]
        assert fetcher.await_count == 2

    @pytest.mark.asyncio
    async def test_family_pattern_invalidates_every_param(self):
        """A family pattern invalidates every key of that family only."""
        cache = EntityCache()
        fetcher = AsyncMock(return_value=[])

        await cache.read(keys.search_jobs("python"), fetcher, default=[])
        await cache.read(keys.search_jobs("rust"), fetcher, default=[])
        await cache.read(keys.published_jobs(), fetcher, default=[])

        count = cache.invalidate(keys.family(KeyFamily.SEARCH_JOBS))

        assert count == 2
        assert not cache.is_fresh(keys.search_jobs("python"))
        assert not cache.is_fresh(keys.search_jobs("rust"))
        assert cache.is_fresh(keys.published_jobs())

    @pytest.mark.asyncio
    async def test_prefix_pattern(self):
        """A parameter prefix invalidates only matching keys."""
        cache = EntityCache()
        fetcher = AsyncMock(return_value=None)

        await cache.read(keys.profile("p1"), fetcher)
        await cache.read(keys.profile("p2"), fetcher)

        assert cache.invalidate(KeyPattern(KeyFamily.PROFILE, ("p1",))) == 1
        assert cache.is_fresh(keys.profile("p2"))

    @pytest.mark.asyncio
    async def test_invalidate_missing_key_is_noop(self):
        """Invalidating an absent key should report zero entries."""
        cache = EntityCache()
        assert cache.invalidate(keys.job(99)) == 0

    @pytest.mark.asyncio
    async def test_fetch_superseded_by_invalidate_is_not_stored(self):
        """A fetch overtaken by invalidate() is returned but not stored."""
        cache = EntityCache()
        release = asyncio.Event()

        async def slow_fetch():
            await release.wait()
            return ["stale"]

        reader = asyncio.ensure_future(cache.read(keys.job_applications(7), slow_fetch, default=[]))
        await asyncio.sleep(0)
        cache.invalidate(keys.job_applications(7))
        release.set()

        # The original reader still gets its answer
        assert await reader == ["stale"]
        assert keys.job_applications(7) not in cache

        fresh = await cache.read(keys.job_applications(7), AsyncMock(return_value=["fresh"]), default=[])
        assert fresh == ["fresh"]

    @pytest.mark.asyncio
    async def test_cancelled_reader_does_not_cancel_joined_readers(self):
        """Readers sharing a cancelled reader's fetch get the default and can retry."""
        cache = EntityCache()
        release = asyncio.Event()
        calls = 0

        async def slow_fetch():
            nonlocal calls
            calls += 1
            await release.wait()
            return ["job"]

        owner = asyncio.ensure_future(cache.read(keys.published_jobs(), slow_fetch, default=[]))
        await asyncio.sleep(0)
        joined = asyncio.ensure_future(cache.read(keys.published_jobs(), slow_fetch, default=[]))
        await asyncio.sleep(0)

        owner.cancel()

        assert await joined == []
        with pytest.raises(asyncio.CancelledError):
            await owner
        assert calls == 1

        release.set()
        assert await cache.read(keys.published_jobs(), slow_fetch, default=[]) == ["job"]
        assert calls == 2
        assert cache.is_fresh(keys.published_jobs())

    @pytest.mark.asyncio
    async def test_reset_drops_everything(self):
        """Reset should empty the cache."""
        cache = EntityCache()
        fetcher = AsyncMock(return_value="value")
        await cache.read(keys.profile("p1"), fetcher)
        await cache.read(keys.published_jobs(), fetcher)

        cache.reset()

        assert len(cache) == 0
        assert cache.peek(keys.profile("p1")) is None

    @pytest.mark.asyncio
    async def test_fetch_in_flight_during_reset_is_not_stored(self):
        """A fetch started before reset() must not be stored."""
        cache = EntityCache()
        release = asyncio.Event()

        async def slow_fetch():
            await release.wait()
            return "previous identity"

        reader = asyncio.ensure_future(cache.read(keys.profile("p1"), slow_fetch))
        await asyncio.sleep(0)
        cache.reset()
        release.set()
        await reader

        assert keys.profile("p1") not in cache


class TestEntityCacheSubscriptions:
    """Test change listeners."""

    @pytest.mark.asyncio
    async def test_listener_sees_store_and_invalidate(self):
        """Listeners are told about stores and invalidations."""
        cache = EntityCache()
        listener = MagicMock()
        cache.subscribe(keys.job(1), listener)

        await cache.read(keys.job(1), AsyncMock(return_value="job"))
        cache.invalidate(keys.job(1))

        listener.assert_any_call(keys.job(1), STORED)
        listener.assert_any_call(keys.job(1), INVALIDATED)

    @pytest.mark.asyncio
    async def test_listener_filtered_by_target(self):
        """Listeners only hear about their target key."""
        cache = EntityCache()
        listener = MagicMock()
        cache.subscribe(keys.job(1), listener)

        await cache.read(keys.job(2), AsyncMock(return_value="other"))

        listener.assert_not_called()

    def test_reset_reaches_every_listener(self):
        """Reset is announced to every listener."""
        cache = EntityCache()
        listener = MagicMock()
        cache.subscribe(keys.job(1), listener)

        cache.reset()

        listener.assert_called_once_with(None, RESET)

    def test_unsubscribe(self):
        """An unsubscribed listener hears nothing."""
        cache = EntityCache()
        listener = MagicMock()
        unsubscribe = cache.subscribe(None, listener)

        unsubscribe()
        cache.reset()

        listener.assert_not_called()

    def test_failing_listener_does_not_break_others(self):
        """One failing listener should not stop the others."""
        cache = EntityCache()
        cache.subscribe(None, MagicMock(side_effect=RuntimeError("view crashed")))
        healthy = MagicMock()
        cache.subscribe(None, healthy)

        cache.reset()

        healthy.assert_called_once_with(None, RESET)


class TestCacheStats:
    """Test hit/miss accounting."""

    @pytest.mark.asyncio
    async def test_stats_per_family(self):
        """Hits and misses are counted per key family."""
        cache = EntityCache()
        fetcher = AsyncMock(return_value=[])

        await cache.read(keys.published_jobs(), fetcher, default=[])
        await cache.read(keys.published_jobs(), fetcher, default=[])
        await cache.read(keys.published_jobs(), fetcher, default=[])

        stats = cache.get_stats()
        assert stats["jobs.published"]["hits"] == 2
        assert stats["jobs.published"]["misses"] == 1
        assert stats["jobs.published"]["hit_rate"] == pytest.approx(2 / 3)
        assert stats["job"]["total"] == 0
        assert stats["job"]["hit_rate"] == 0.0

    @pytest.mark.asyncio
    async def test_prometheus_export(self):
        """Cache counters appear in the Prometheus export."""
        cache = EntityCache()
        await cache.read(keys.member_count(), AsyncMock(return_value=3))

        exported = export_metrics().decode()

        assert 'jobboard_cache_misses_total{family="members.count"}' in exported
