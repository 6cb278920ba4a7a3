import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

from jobboard.services.cache import INVALIDATED, RESET, EntityCache
from jobboard.services.keys import CacheKey

logger = logging.getLogger(__name__)


class QueryBinding:
    """
    A view's subscription to one cache key.

    While mounted, the binding re-reads its key whenever the key is
    invalidated and reports each new value to on_change. A cache reset
    (identity change) drops the value back to the default until the view
    reads again. Values that arrive after unmount() are discarded.
    """

    def __init__(
        self,
        cache: EntityCache,
        key: CacheKey,
        fetcher: Callable[[], Awaitable[Any]],
        on_change: Optional[Callable[[Any], None]] = None,
        default: Any = None,
    ):
        self.cache = cache
        self.key = key
        self.fetcher = fetcher
        self.on_change = on_change
        self.default = default
        self.value: Any = default
        self.mounted = False
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._tasks: Set[asyncio.Task] = set()
        self._generation = 0

    async def mount(self) -> Any:
        self.mounted = True
        self._unsubscribe = self.cache.subscribe(self.key, self._on_cache_event)
        return await self.refresh()

    def unmount(self) -> None:
        self.mounted = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def refresh(self) -> Any:
        generation = self._generation
        value = await self.cache.read(self.key, self.fetcher, default=self.default)
        if not self.mounted or generation != self._generation:
            logger.debug(f"Dropping superseded result for binding {self.key}")
            return value
        self.value = value
        if self.on_change is not None:
            self.on_change(value)
        return value

    async def settle(self) -> None:
        """Wait for scheduled re-reads to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def _on_cache_event(self, key: Optional[CacheKey], event: str) -> None:
        if not self.mounted:
            return
        if event == RESET:
            self._generation += 1
            self.value = self.default
            if self.on_change is not None:
                self.on_change(self.default)
            return
        if event != INVALIDATED:
            return
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
