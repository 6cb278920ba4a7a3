"""
Entity Cache - Keyed Query Results With Invalidation

Holds the most recently fetched value for each structured cache key
(see jobboard.services.keys) together with a freshness flag.

Read Path:
    - Fresh entry: returned without a remote call
    - Missing or stale entry: the fetcher runs once; concurrent readers of
      the same key await the same in-flight fetch
    - Fetch failure: the entry stays stale (retried on the next read) and
      the caller gets the default value
    - Fetching reader cancelled: readers that joined its fetch get the
      default value, and the next read fetches again

Write Path:
    Writers never patch values. A successful mutation calls invalidate()
    with the keys it affects, and identity changes call reset(). A fetch
    that was in flight when its key was invalidated or the cache was reset
    still answers its own readers but is not stored.

Usage:
    cache = EntityCache()

    jobs = await cache.read(keys.published_jobs(), backend.get_published_jobs, default=[])
    cache.invalidate(keys.family(KeyFamily.JOB_APPLICATIONS))
    cache.reset()
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from jobboard.errors import MarketplaceError
from jobboard.metrics import CACHE_HITS, CACHE_INVALIDATIONS, CACHE_MISSES
from jobboard.services.keys import CacheKey, KeyFamily, KeyOrPattern, matches

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Any]]
# callback(key, event); key is None for "reset"
Listener = Callable[[Optional[CacheKey], str], None]

STORED = "stored"
INVALIDATED = "invalidated"
RESET = "reset"


@dataclass
class CacheEntry:
    value: Any = None
    fresh: bool = False
    fetched_at: Optional[float] = None
    last_error: Optional[MarketplaceError] = None


class EntityCache:
    """
    Process-wide store of fetched collections and records.

    Attributes:
        max_age: Optional freshness horizon in seconds (None = fresh until
            invalidated)
        stats: Dict tracking hits/misses per key family
    """

    def __init__(
        self,
        max_age: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.max_age = max_age
        self._clock = clock
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._inflight: Dict[CacheKey, asyncio.Future] = {}
        self._listeners: List[Tuple[Optional[KeyOrPattern], Listener]] = []
        self.stats: Dict[str, Dict[str, int]] = {
            "hits": {family.value: 0 for family in KeyFamily},
            "misses": {family.value: 0 for family in KeyFamily},
        }

    # ==================== Read ====================

    async def read(self, key: CacheKey, fetcher: Fetcher, default: Any = None) -> Any:
        """
        Return the value for key, fetching it when missing or stale.

        Args:
            key: Structured cache key
            fetcher: Zero-argument coroutine function performing the remote read
            default: Returned when the fetch fails

        Returns:
            Cached or freshly fetched value, or default on remote failure
        """
        entry = self._entries.get(key)
        if entry is not None and self._is_fresh(entry):
            self._record_hit(key)
            return entry.value

        pending = self._inflight.get(key)
        if pending is not None:
            # Joined an in-flight fetch: no extra remote call
            self._record_hit(key)
            return await asyncio.shield(pending)

        self._record_miss(key)
        future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future

        try:
            value = await fetcher()
        except MarketplaceError as e:
            logger.warning(f"Cache fetch failed for {key}: {e}")
            if self._owns(key, future):
                stale = self._entries.setdefault(key, CacheEntry())
                stale.fresh = False
                stale.last_error = e
            result = default
        except BaseException as e:
            self._release(key, future)
            if isinstance(e, asyncio.CancelledError):
                # Only the owner was cancelled; joined readers get the default
                future.set_result(default)
            else:
                future.set_exception(e)
                # Joined readers re-raise it; mark retrieved for the no-reader case
                future.exception()
            raise
        else:
            if self._owns(key, future):
                self._entries[key] = CacheEntry(
                    value=value,
                    fresh=True,
                    fetched_at=self._clock(),
                )
                self._notify(key, STORED)
            else:
                logger.debug(f"Discarding superseded fetch for {key}")
            result = value

        self._release(key, future)
        future.set_result(result)
        return result

    def peek(self, key: CacheKey) -> Any:
        """Return the stored value (fresh or stale) without fetching."""
        entry = self._entries.get(key)
        return entry.value if entry is not None else None

    def is_fresh(self, key: CacheKey) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._is_fresh(entry)

    def last_error(self, key: CacheKey) -> Optional[MarketplaceError]:
        entry = self._entries.get(key)
        return entry.last_error if entry is not None else None

    def keys(self) -> List[CacheKey]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    # ==================== Invalidation ====================

    def invalidate(self, target: KeyOrPattern) -> int:
        """
        Mark every entry matching a key or pattern stale.

        Entries are kept until the next read re-fetches them. In-flight
        fetches for matching keys are detached so they cannot store
        pre-invalidation data.

        Args:
            target: Exact CacheKey or KeyPattern for a key family

        Returns:
            Number of entries marked stale
        """
        for key in [k for k in self._inflight if matches(target, k)]:
            del self._inflight[key]

        invalidated = []
        for key, entry in self._entries.items():
            if matches(target, key):
                entry.fresh = False
                invalidated.append(key)

        for key in invalidated:
            CACHE_INVALIDATIONS.labels(family=key.family.value).inc()
            self._notify(key, INVALIDATED)

        logger.debug(f"Invalidated {len(invalidated)} entries for {target}")
        return len(invalidated)

    def reset(self) -> None:
        """Drop every entry and in-flight fetch (identity change)."""
        count = len(self._entries)
        self._entries.clear()
        self._inflight.clear()
        logger.info(f"Cache reset, dropped {count} entries")
        self._notify(None, RESET)

    # ==================== Subscriptions ====================

    def subscribe(
        self,
        target: Optional[KeyOrPattern],
        callback: Listener
    ) -> Callable[[], None]:
        """
        Register a change listener.

        Args:
            target: Key or pattern to watch (None = every key)
            callback: Called with (key, event) on store/invalidate, and
                with (None, "reset") on reset

        Returns:
            Function removing the listener
        """
        subscription = (target, callback)
        self._listeners.append(subscription)

        def unsubscribe() -> None:
            if subscription in self._listeners:
                self._listeners.remove(subscription)

        return unsubscribe

    def _notify(self, key: Optional[CacheKey], event: str) -> None:
        for target, callback in list(self._listeners):
            if key is not None and target is not None and not matches(target, key):
                continue
            try:
                callback(key, event)
            except Exception as e:
                logger.warning(f"Cache listener failed on {event} for {key}: {e}")

    # ==================== Internals ====================

    def _is_fresh(self, entry: CacheEntry) -> bool:
        if not entry.fresh:
            return False
        if self.max_age is None or entry.fetched_at is None:
            return True
        return self._clock() - entry.fetched_at < self.max_age

    def _owns(self, key: CacheKey, future: asyncio.Future) -> bool:
        return self._inflight.get(key) is future

    def _release(self, key: CacheKey, future: asyncio.Future) -> None:
        if self._owns(key, future):
            del self._inflight[key]

    def _record_hit(self, key: CacheKey) -> None:
        self.stats["hits"][key.family.value] += 1
        CACHE_HITS.labels(family=key.family.value).inc()

    def _record_miss(self, key: CacheKey) -> None:
        self.stats["misses"][key.family.value] += 1
        CACHE_MISSES.labels(family=key.family.value).inc()

    # ==================== Stats ====================

    def get_stats(self) -> Dict[str, Dict[str, Any]]:
        """
        Get cache statistics including hit rates.

        Returns:
            Dict with stats per key family
        """
        stats = {}

        for family in KeyFamily:
            hits = self.stats["hits"][family.value]
            misses = self.stats["misses"][family.value]
            total = hits + misses

            stats[family.value] = {
                "hits": hits,
                "misses": misses,
                "total": total,
                "hit_rate": hits / total if total > 0 else 0.0,
            }

        return stats
