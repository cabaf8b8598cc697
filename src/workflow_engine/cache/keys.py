"""Cache key helpers and a memoising decorator."""

from __future__ import annotations

import functools
import inspect
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar

if TYPE_CHECKING:
    from workflow_engine.cache.cache import Cache

P = ParamSpec("P")
R = TypeVar("R")


def create_cache_key(*parts: str | int | None) -> str:
    """Join the non-empty parts with ':'.

    >>> create_cache_key("task", "research", None, 2)
    'task:research:2'
    """
    return ":".join(str(part) for part in parts if part)


def cached(
    cache: Cache,
    key_factory: Callable[..., str],
    ttl: float | None = None,
    tags: Iterable[str] | None = None,
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Memoise a function in `cache` under `key_factory(*args, **kwargs)`.

    Coroutine functions go through `Cache.aget_or_set`, plain functions
    through `Cache.get_or_set`.
    """
    tag_list = list(tags) if tags is not None else None

    def decorator(fn: Callable[P, R]) -> Callable[P, R]:
        if inspect.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> Any:
                key = key_factory(*args, **kwargs)
                return await cache.aget_or_set(
                    key, lambda: fn(*args, **kwargs), ttl=ttl, tags=tag_list
                )

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            key = key_factory(*args, **kwargs)
            return cache.get_or_set(key, lambda: fn(*args, **kwargs), ttl=ttl, tags=tag_list)

        return wrapper

    return decorator
