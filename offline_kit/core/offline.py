"""
Cache-aside wrappers that give any async producer offline capabilities.
"""

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from offline_kit.cache.manager import CacheManager
from offline_kit.models.config import CacheOptions
from offline_kit.storage.base import StorageAdapter
from offline_kit.storage.memory import MemoryStorage

log = logging.getLogger(__name__)

R = TypeVar("R")


def with_offline(
    fn: Callable[..., Awaitable[R]],
    cache_key: Callable[..., str],
    storage: StorageAdapter | None = None,
    *,
    cache: CacheManager | None = None,
    default_ttl: int | str | None = None,
    ttl: int | str | None = None,
    serve_stale: bool = True,
    max_stale: int | str | None = None,
    tags: list[str] | None = None,
) -> Callable[..., Awaitable[R]]:
    """
    Wraps ``fn`` so its results are served through a CacheManager.

    Args:
        fn: The async producer to wrap.
        cache_key: Builds the cache key from the same arguments as ``fn``.
        storage: Adapter for a private CacheManager. Ignored when ``cache`` is
            given; defaults to a MemoryStorage.
        cache: An existing CacheManager to share.
        default_ttl: TTL used when ``ttl`` is not set.
        ttl: TTL for entries written by the wrapper.
        serve_stale: Serve expired-but-within-``max_stale`` data while refreshing
            it in the background.
        max_stale: How long past expiry stale data may still be served.
        tags: Tags attached to every entry, for bulk invalidation.

    Returns:
        An async callable with the same parameters as ``fn``. It exposes the
        CacheManager it uses as ``.cache``.
    """
    manager = cache or CacheManager(storage or MemoryStorage())
    options = CacheOptions(
        ttl=ttl if ttl is not None else default_ttl,
        stale_while_revalidate=serve_stale,
        max_stale=max_stale,
        tags=tags,
    )

    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> R:
        key = cache_key(*args, **kwargs)
        result = await manager.get_or_fetch(key, lambda: fn(*args, **kwargs), options)
        if result.stale:
            log.debug(f"Served stale data for '{key}' while revalidating.")
        return result.data

    wrapper.cache = manager
    return wrapper


def offline_cached(
    cache_key: Callable[..., str],
    storage: StorageAdapter | None = None,
    **options: Any,
) -> Callable[[Callable[..., Awaitable[R]]], Callable[..., Awaitable[R]]]:
    """
    Decorator form of :func:`with_offline`.

    Usage:
        @offline_cached(lambda user_id: f"user:{user_id}", ttl="5m")
        async def fetch_user(user_id): ...
    """

    def decorator(fn: Callable[..., Awaitable[R]]) -> Callable[..., Awaitable[R]]:
        return with_offline(fn, cache_key, storage, **options)

    return decorator
