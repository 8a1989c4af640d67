"""
Async loading cache with expiry policies and single-flight loads.
"""
import asyncio
import time
import logging
from typing import Any, Awaitable, Callable, Dict, Generic, Optional

from euris.errors import CacheClosedError
from .core import CacheEntry, EntryState, ExpiryPolicy, K, V
from .coalescer import RequestCoalescer

logger = logging.getLogger("cache.loading")


class AsyncLoadingCache(Generic[K, V]):
    """
    Key -> value cache backed by an async loader.

    - One expiry policy per instance (after write or after access)
    - Request coalescing: concurrent gets for a loading key share one load
    - Loader errors reach every waiter and are never cached
    - Invalidated keys discard the result of a load that was already running
    - Optional periodic sweep of expired entries

    The entry table is only touched from the event loop thread between
    awaits, so gets for different keys never block each other.
    """

    def __init__(
        self,
        loader: Callable[[K], Awaitable[V]],
        policy: ExpiryPolicy,
        name: str = "cache",
        sweep_interval: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the cache.

        Args:
            loader: Coroutine function producing the value for a key
            policy: Expiry policy, fixed for the lifetime of the cache
            name: Label used in logs and stats
            sweep_interval: Seconds between expiry sweeps (None disables)
            clock: Wall-clock source, injectable for tests
        """
        self._loader = loader
        self._policy = policy
        self._name = name
        self._sweep_interval = sweep_interval
        self._clock = clock

        self._entries: Dict[K, CacheEntry[K, V]] = {}
        self._coalescer = RequestCoalescer()
        self._sweeper: Optional["asyncio.Task[None]"] = None
        self._closed = False

        self._stats = {
            "hits": 0,
            "misses": 0,
            "coalesced": 0,
            "load_failures": 0,
            "discarded_loads": 0,
            "evictions": 0,
        }

    @property
    def name(self) -> str:
        return self._name

    @property
    def policy(self) -> ExpiryPolicy:
        return self._policy

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: K) -> V:
        """
        Get the value for key, loading it if needed.

        Raises:
            CacheClosedError: If end() has been called
            Exception: Any error from the loader
        """
        if self._closed:
            raise CacheClosedError(f"Cache '{self._name}' has been ended")
        self._ensure_sweeper()

        now = self._clock()
        entry = self._entries.get(key)

        if entry is not None and entry.is_present:
            if not entry.is_expired(self._policy, now):
                if self._policy.refreshes_on_access:
                    entry.touch(now)
                self._stats["hits"] += 1
                logger.debug(f"CACHE HIT ({self._name}): {key}")
                return entry.value
            logger.info(
                f"CACHE EXPIRED ({self._name}): {key} "
                f"[age={entry.age_seconds(self._policy, now):.1f}s]"
            )
            self._remove(key)
            entry = None

        if entry is not None and entry.is_loading:
            self._stats["coalesced"] += 1
            task = self._coalescer.start(key, lambda: self._load(key, entry))
        else:
            logger.info(f"CACHE MISS ({self._name}): {key}")
            self._stats["misses"] += 1
            entry = CacheEntry(key=key, state=EntryState.LOADING)
            self._entries[key] = entry
            task = self._coalescer.start(key, lambda: self._load(key, entry))

        return await asyncio.shield(task)

    async def _load(self, key: K, entry: CacheEntry[K, V]) -> V:
        """Run the loader once and settle the entry it was started for."""
        try:
            value = await self._loader(key)
        except Exception as e:
            entry.state = EntryState.FAILED
            if self._entries.get(key) is entry:
                del self._entries[key]
                self._coalescer.forget(key)
            self._stats["load_failures"] += 1
            logger.warning(f"Load failed ({self._name}): {key} - {e}")
            raise
        except asyncio.CancelledError:
            entry.state = EntryState.FAILED
            if self._entries.get(key) is entry:
                del self._entries[key]
                self._coalescer.forget(key)
            raise

        if self._entries.get(key) is entry:
            entry.mark_present(value, self._clock())
        else:
            # Invalidated while loading; waiters still get the value
            self._stats["discarded_loads"] += 1
            logger.debug(f"Discarding load result ({self._name}): {key}")
        return value

    def has(self, key: K) -> bool:
        """True if a present, unexpired value exists. Never loads."""
        entry = self._entries.get(key)
        if entry is None or not entry.is_present:
            return False
        return not entry.is_expired(self._policy, self._clock())

    def peek(self, key: K) -> Optional[V]:
        """The present, unexpired value for key without touching it."""
        if not self.has(key):
            return None
        return self._entries[key].value

    def _remove(self, key: K) -> bool:
        entry = self._entries.pop(key, None)
        self._coalescer.forget(key)
        if entry is None:
            return False
        entry.state = EntryState.EMPTY
        return True

    def invalidate(self, key: K) -> bool:
        """
        Invalidate a specific cache entry.

        Returns:
            True if an entry was found and removed
        """
        removed = self._remove(key)
        if removed:
            logger.info(f"Invalidated cache ({self._name}): {key}")
        return removed

    def invalidate_all(self) -> int:
        """
        Remove all entries.

        Returns:
            Number of entries removed
        """
        count = len(self._entries)
        for entry in self._entries.values():
            entry.state = EntryState.EMPTY
        self._entries.clear()
        self._coalescer.forget_all()
        if count:
            logger.info(f"Cleared {count} entries ({self._name})")
        return count

    def evict_expired(self) -> int:
        """
        Drop every expired entry.

        Returns:
            Number of entries evicted
        """
        now = self._clock()
        expired = [
            key for key, entry in self._entries.items()
            if entry.is_expired(self._policy, now)
        ]
        for key in expired:
            self._remove(key)
        if expired:
            self._stats["evictions"] += len(expired)
            logger.debug(f"Evicted {len(expired)} expired entries ({self._name})")
        return len(expired)

    def _ensure_sweeper(self) -> None:
        if self._sweep_interval is None or self._sweeper is not None:
            return
        self._sweeper = asyncio.ensure_future(self._sweep_loop())

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.evict_expired()

    async def end(self) -> None:
        """
        Release all entries and stop the expiry sweep.

        The cache cannot be used afterwards. Calling end() again is a no-op.
        """
        if self._closed:
            return
        self._closed = True
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        self.invalidate_all()
        logger.info(f"Cache ended ({self._name})")

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        hits = self._stats["hits"] + self._stats["coalesced"]
        total_requests = hits + self._stats["misses"]
        hit_rate = (hits / total_requests * 100) if total_requests > 0 else 0

        return {
            "name": self._name,
            "policy": self._policy.mode.value,
            "ttl_seconds": self._policy.duration_seconds,
            "entries": len(self._entries),
            "hits": self._stats["hits"],
            "misses": self._stats["misses"],
            "coalesced": self._stats["coalesced"],
            "load_failures": self._stats["load_failures"],
            "discarded_loads": self._stats["discarded_loads"],
            "evictions": self._stats["evictions"],
            "hit_rate_percent": round(hit_rate, 1),
            "coalescer": self._coalescer.get_stats(),
        }
