"""
Debounced two-tier writer.

`write()` updates an in-process cache immediately and (re)schedules a
delayed flush of that key to durable storage. Writing the same key again
before the delay expires cancels the pending flush and starts a new one, so
a burst of edits results in one flush of the latest value.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Set

logger = logging.getLogger(__name__)

FlushFn = Callable[[Hashable, Any], Awaitable[Any]]


class DebouncedWriter:

    def __init__(self, flush: FlushFn, delay: float = 2.0):
        self._flush = flush
        self.delay = delay
        self._cache: Dict[Hashable, Any] = {}
        self._tasks: Dict[Hashable, asyncio.Task] = {}
        self._in_flight: Set[asyncio.Task] = set()
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self.flush_count = 0

    def get(self, key: Hashable) -> Optional[Any]:
        """The cached, not yet flushed value for a key."""
        return self._cache.get(key)

    def pending(self, key: Hashable) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    def write(self, key: Hashable, value: Any) -> None:
        self._cache[key] = value
        self._cancel(key)
        self._tasks[key] = asyncio.get_running_loop().create_task(self._delayed_flush(key))

    async def flush_now(self, key: Optional[Hashable] = None) -> None:
        """Flush one key, or every cached key, without waiting for the delay."""
        keys = [key] if key is not None else list(self._cache)
        for k in keys:
            self._cancel(k)
            if k in self._cache:
                await self._flush_key(k)

    async def close(self, flush: bool = True) -> None:
        if flush:
            await self.flush_now()
        for key in list(self._tasks):
            self._cancel(key)

    def _cancel(self, key: Hashable) -> None:
        task = self._tasks.pop(key, None)
        # A flush already talking to storage is left to finish
        if task is not None and not task.done() and task not in self._in_flight:
            task.cancel()

    async def _delayed_flush(self, key: Hashable) -> None:
        await asyncio.sleep(self.delay)
        task = asyncio.current_task()
        self._in_flight.add(task)
        try:
            await self._flush_key(key)
        except Exception:
            # The draft stays cached; the next write or flush_now retries it
            logger.exception(f"Background flush failed for {key}")
        finally:
            self._in_flight.discard(task)

    async def _flush_key(self, key: Hashable) -> None:
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            value = self._cache.get(key)
            if value is None:
                return
            await self._flush(key, value)
            self.flush_count += 1
            # Only drop the cache entry if nothing newer was written meanwhile
            if self._cache.get(key) is value:
                del self._cache[key]
        logger.debug(f"Flushed {key}")
