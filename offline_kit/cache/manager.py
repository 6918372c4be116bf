"""
A storage-agnostic cache with TTLs, stale-while-revalidate and tag-based
invalidation.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import Any, TypeVar

from offline_kit.models.config import CacheOptions
from offline_kit.models.records import CacheEntry, CacheStats, FetchResult
from offline_kit.storage.base import StorageAdapter
from offline_kit.utils.duration import now_ms, parse_duration

log = logging.getLogger(__name__)

T = TypeVar("T")


class CacheManager:
    """
    Manages cache entries on top of any StorageAdapter.

    Entries keep their TTL inside the record rather than handing it to the
    adapter, so an expired entry remains readable as stale until its
    ``max_stale`` window closes. All read-modify-write sequences of one manager
    are serialised by an internal lock.
    """

    def __init__(
        self,
        storage: StorageAdapter,
        prefix: str = "cache:",
        clock: Callable[[], int] = now_ms,
    ):
        """
        Initializes the cache manager.

        Args:
            storage: The adapter holding the cache records.
            prefix: Key prefix isolating this cache from other owners of the adapter.
            clock: Returns the current time in epoch milliseconds.
        """
        self.storage = storage
        self.prefix = prefix
        self._clock = clock
        self._lock = asyncio.Lock()
        self._revalidations: dict[str, asyncio.Task] = {}
        self._cleanup_task: asyncio.Task | None = None
        self._stats = CacheStats()

    def _full_key(self, key: str) -> str:
        return self.prefix + key

    @staticmethod
    def _resolve(options: CacheOptions | None, overrides: dict[str, Any]) -> CacheOptions:
        base = options or CacheOptions()
        return base.merged(**overrides) if overrides else base

    @staticmethod
    def _past_cutoff(record: Any, now: int, max_stale: int | None) -> bool:
        """True when a record is expired beyond its allowed staleness window."""
        if not isinstance(record, dict):
            return False
        expires_at = record.get("expires_at")
        if expires_at is None:
            return False
        return now > expires_at + (max_stale or 0)

    def _classify(self, record: dict[str, Any], now: int) -> CacheEntry:
        expires_at = record.get("expires_at")
        stale = expires_at is not None and now >= expires_at
        return CacheEntry.from_record(record, stale=stale)

    async def get(
        self, key: str, options: CacheOptions | None = None, **overrides
    ) -> CacheEntry | None:
        """
        Retrieves an entry, classifying it as fresh or stale.

        An entry past ``expires_at + max_stale`` is deleted and reported as missing.
        """
        opts = self._resolve(options, overrides)
        full_key = self._full_key(key)
        record = await self.storage.get(full_key)
        if record is None:
            return None
        if not isinstance(record, dict):
            log.warning(f"Ignoring unreadable cache record '{full_key}'.")
            return None

        now = self._clock()
        if self._past_cutoff(record, now, opts.max_stale):
            async with self._lock:
                current = await self.storage.get(full_key)
                if current is not None and self._past_cutoff(
                    current, now, opts.max_stale
                ):
                    await self.storage.delete(full_key)
                    log.debug(f"Evicted expired cache entry '{key}'.")
            return None

        return self._classify(record, now)

    async def set(
        self, key: str, data: Any, options: CacheOptions | None = None, **overrides
    ) -> CacheEntry:
        """Stores a value with the given TTL and tags."""
        opts = self._resolve(options, overrides)
        now = self._clock()
        entry = CacheEntry(
            data=data,
            cached_at=now,
            expires_at=now + opts.ttl if opts.ttl else None,
            tags=list(opts.tags) if opts.tags else None,
        )
        async with self._lock:
            await self.storage.set(self._full_key(key), entry.to_record())
        return entry

    async def delete(self, key: str) -> None:
        async with self._lock:
            await self.storage.delete(self._full_key(key))

    async def has(self, key: str, options: CacheOptions | None = None, **overrides) -> bool:
        return await self.get(key, options, **overrides) is not None

    async def get_or_fetch(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        options: CacheOptions | None = None,
        **overrides,
    ) -> FetchResult[T]:
        """
        Returns cached data when possible, otherwise awaits ``fetcher`` and caches
        its result.

        With ``stale_while_revalidate`` a stale entry is returned immediately and
        refreshed by a single background task per key. Errors from ``fetcher`` on
        the synchronous path propagate to the caller unchanged.
        """
        opts = self._resolve(options, overrides)
        cached = await self.get(key, opts)

        if cached is not None and not cached.stale:
            self._stats.hits += 1
            return FetchResult(data=cached.data, from_cache=True, stale=False)

        if cached is not None and opts.stale_while_revalidate:
            self._stats.stale_hits += 1
            self._schedule_revalidation(key, fetcher, opts)
            return FetchResult(data=cached.data, from_cache=True, stale=True)

        self._stats.misses += 1
        data = await fetcher()
        await self.set(key, data, opts)
        return FetchResult(data=data, from_cache=False, stale=False)

    def _schedule_revalidation(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[Any]],
        opts: CacheOptions,
    ) -> None:
        """Starts a background refresh unless one is already in flight for the key."""
        existing = self._revalidations.get(key)
        if existing is not None and not existing.done():
            return

        task = asyncio.create_task(self._revalidate(key, fetcher, opts))
        self._revalidations[key] = task

        def _clear_marker(finished: asyncio.Task) -> None:
            if self._revalidations.get(key) is finished:
                del self._revalidations[key]

        task.add_done_callback(_clear_marker)

    async def _revalidate(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[Any]],
        opts: CacheOptions,
    ) -> None:
        try:
            data = await fetcher()
            await self.set(key, data, opts)
            log.debug(f"Revalidated cache entry '{key}'.")
        except Exception as e:
            log.warning(f"Background revalidation of '{key}' failed: {e}")

    def revalidating(self, key: str) -> bool:
        """Returns True while a background refresh for ``key`` is in flight."""
        task = self._revalidations.get(key)
        return task is not None and not task.done()

    async def wait_revalidations(self) -> None:
        """Waits for every in-flight background refresh to finish."""
        tasks = list(self._revalidations.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def invalidate(self, key_or_tag: str) -> int:
        """
        Deletes the entry stored under ``key_or_tag`` and every entry tagged with it.

        Returns:
            The number of entries removed.
        """
        count = 0
        async with self._lock:
            for full_key in await self.storage.keys(self.prefix):
                key = full_key[len(self.prefix) :]
                if key == key_or_tag:
                    await self.storage.delete(full_key)
                    count += 1
                    continue
                record = await self.storage.get(full_key)
                tags = record.get("tags") if isinstance(record, dict) else None
                if tags and key_or_tag in tags:
                    await self.storage.delete(full_key)
                    count += 1
        log.debug(f"Invalidated {count} cache entries for '{key_or_tag}'.")
        return count

    async def clear(self) -> int:
        """Removes every entry under this manager's prefix."""
        async with self._lock:
            keys = await self.storage.keys(self.prefix)
            for full_key in keys:
                await self.storage.delete(full_key)
        log.info(f"Cleared {len(keys)} cache entries.")
        return len(keys)

    async def purge_expired(self, max_stale: int | str | None = None) -> int:
        """Deletes every entry whose staleness window has closed."""
        max_stale_ms = parse_duration(max_stale)
        now = self._clock()
        cleaned_count = 0
        async with self._lock:
            for full_key in await self.storage.keys(self.prefix):
                record = await self.storage.get(full_key)
                if self._past_cutoff(record, now, max_stale_ms):
                    await self.storage.delete(full_key)
                    cleaned_count += 1
        if cleaned_count > 0:
            log.debug(f"Cache cleanup: removed {cleaned_count} expired entries.")
        return cleaned_count

    async def list_entries(self) -> list[tuple[str, CacheEntry]]:
        """Returns every entry under the prefix without evicting anything."""
        now = self._clock()
        entries = []
        for full_key in await self.storage.keys(self.prefix):
            record = await self.storage.get(full_key)
            if isinstance(record, dict):
                entries.append((full_key[len(self.prefix) :], self._classify(record, now)))
        return entries

    def stats(self) -> CacheStats:
        """Returns a snapshot of the get_or_fetch hit/miss counters."""
        return CacheStats(
            hits=self._stats.hits,
            stale_hits=self._stats.stale_hits,
            misses=self._stats.misses,
        )

    async def start_background_cleanup(
        self, interval: float = 3600, max_stale: int | str | None = None
    ) -> None:
        """Starts the periodic background cleanup task."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(
                self._cleanup_loop(interval, max_stale)
            )
            log.debug("Started cache background cleanup task.")

    async def _cleanup_loop(self, interval: float, max_stale: int | str | None) -> None:
        """Runs the cleanup logic periodically in the background."""
        while True:
            try:
                await self.purge_expired(max_stale)
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                log.debug("Cache cleanup task cancelled.")
                break
            except Exception as e:
                log.warning(f"Error in cache cleanup loop: {e}")
                await asyncio.sleep(interval)

    async def stop_background_cleanup(self) -> None:
        """Stops the background cleanup task gracefully."""
        if self._cleanup_task and not self._cleanup_task.done():
            self._cleanup_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._cleanup_task
            log.debug("Stopped cache background cleanup task.")
        self._cleanup_task = None

    async def aclose(self) -> None:
        """Cancels background refreshes and the cleanup task."""
        await self.stop_background_cleanup()
        tasks = list(self._revalidations.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._revalidations.clear()
