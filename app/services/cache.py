"""
In-Memory Cache Manager
Process-local TTL cache with in-flight request coalescing
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional, Any, Awaitable, Callable, Dict

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class CacheManager:
    """TTL cache with lazy expiry and deduplicated fetches"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._store: Dict[str, CacheEntry] = {}
        self._pending: Dict[str, "asyncio.Task[Any]"] = {}
        self._metrics: Dict[str, int] = {
            "hit": 0,
            "miss": 0,
            "coalesced": 0,
            "fetch_failed": 0,
            "evicted": 0,
        }

    def _bump(self, key: str, amount: int = 1):
        self._metrics[key] = self._metrics.get(key, 0) + amount

    def get_metrics_snapshot(self) -> Dict[str, int]:
        """Return a shallow copy of the cache counters."""
        return dict(self._metrics)

    @property
    def size(self) -> int:
        """Number of stored entries (expired ones included until swept)"""
        return len(self._store)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def set(self, key: str, value: Any, ttl: float) -> None:
        """
        Store a value, replacing any previous entry

        Args:
            key: Cache key
            value: Value to cache
            ttl: Time to live in seconds
        """
        self._store[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)

    def _lookup(self, key: str) -> Any:
        entry = self._store.get(key)
        if entry is None:
            return _MISSING
        if self._clock() > entry.expires_at:
            del self._store[key]
            return _MISSING
        return entry.value

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        """
        Get a live value from cache

        Args:
            key: Cache key
            default: Returned when the key is absent or expired

        Returns:
            Cached value or default
        """
        value = self._lookup(key)
        return default if value is _MISSING else value

    def has(self, key: str) -> bool:
        return self._lookup(key) is not _MISSING

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def clear(self) -> None:
        self._store.clear()

    def evict_expired(self) -> int:
        """
        Drop every expired entry

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [key for key, entry in self._store.items() if now > entry.expires_at]
        for key in expired:
            del self._store[key]
        if expired:
            self._bump("evicted", len(expired))
        return len(expired)

    async def get_or_fetch(
        self,
        key: str,
        ttl: float,
        producer: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Return the cached value, join an in-flight fetch, or start one.

        The producer runs in its own task so a caller giving up does not
        cancel the fetch for the other waiters. Failures are shared with
        everyone waiting and are never cached.

        Args:
            key: Cache key
            ttl: Time to live for a successful result
            producer: Coroutine function building the value

        Returns:
            The cached or freshly produced value
        """
        value = self._lookup(key)
        if value is not _MISSING:
            self._bump("hit")
            return value

        task = self._pending.get(key)
        if task is not None:
            self._bump("coalesced")
            logger.debug("Joining in-flight fetch for key=%s", key)
        else:
            self._bump("miss")
            task = asyncio.ensure_future(self._run_producer(key, ttl, producer))
            task.add_done_callback(_consume_exception)
            self._pending[key] = task

        return await asyncio.shield(task)

    async def _run_producer(
        self,
        key: str,
        ttl: float,
        producer: Callable[[], Awaitable[Any]],
    ) -> Any:
        # Pending registration is dropped before this task completes, so
        # waiters resume only after a new call would start a fresh fetch.
        try:
            value = await producer()
        except BaseException:
            self._pending.pop(key, None)
            self._bump("fetch_failed")
            raise
        self.set(key, value, ttl)
        self._pending.pop(key, None)
        return value


def _consume_exception(task: "asyncio.Task[Any]") -> None:
    # Every waiter may have been cancelled; mark the exception as retrieved.
    if not task.cancelled():
        task.exception()
