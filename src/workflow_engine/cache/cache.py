"""Two-tier cache with TTL expiry and tag-based invalidation.

Reads check the in-process tier first and fall back to the persistent tier,
promoting valid disk hits back into memory. Writes go to both tiers. Any tag
attached to an entry can later be used to invalidate every entry carrying it.

The persistent tier is best-effort: its I/O failures are logged and the
in-process tier stays authoritative.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from workflow_engine.batching import gather_bounded
from workflow_engine.cache.entry import CacheEntry, approximate_size
from workflow_engine.cache.memory import MemoryTier
from workflow_engine.cache.persistent import PersistentTier
from workflow_engine.core.config import CacheConfig
from workflow_engine.core.errors import CacheIOError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]

# optimize() logs a sizing hint below this hit rate.
LOW_HIT_RATE = 0.7


@dataclass(frozen=True, slots=True)
class CacheMetrics:
    memory_hits: int
    persistent_hits: int
    misses: int
    evictions: int
    memory_entries: int
    tag_count: int
    average_lookup_seconds: float

    @property
    def total_hits(self) -> int:
        return self.memory_hits + self.persistent_hits

    @property
    def hit_rate(self) -> float:
        lookups = self.total_hits + self.misses
        return self.total_hits / lookups if lookups else 0.0

    def to_json(self) -> dict[str, object]:
        return {
            "memory_hits": self.memory_hits,
            "persistent_hits": self.persistent_hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "memory_entries": self.memory_entries,
            "tag_count": self.tag_count,
            "hit_rate": self.hit_rate,
            "average_lookup_seconds": self.average_lookup_seconds,
        }


@dataclass(frozen=True, slots=True)
class WarmSpec:
    """A cache entry to pre-populate via `Cache.warm`."""

    key: str
    factory: Callable[[], Awaitable[Any]]
    ttl: float | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)


class Cache:
    """Process-wide cache shared by workflow runs and other callers.

    Thread-safe: bookkeeping is guarded by a re-entrant lock so the cache can
    be used from worker threads as well as from the event loop.
    """

    def __init__(self, config: CacheConfig | None = None, *, clock: Clock = time.time) -> None:
        """Initialize the cache.

        Args:
            config: Cache configuration. If None, loads from environment.
            clock: Wall-clock source used for both `stored_at` and validity checks.
        """
        self.config = config or CacheConfig()
        self._clock = clock
        self._lock = threading.RLock()

        self._memory = MemoryTier(self.config.memory_max_entries, on_evict=self._on_evict)
        self._persistent: PersistentTier | None = None
        if self.config.persistent_enabled:
            self._persistent = PersistentTier(
                self.config.directory, self.config.persistent_max_bytes
            )

        self._tag_index: dict[str, set[str]] = {}
        self._key_tags: dict[str, set[str]] = {}
        self._inflight: dict[str, asyncio.Future[Any]] = {}

        self._reset_metrics()
        self._rebuild_tag_index()

    @property
    def persistent_enabled(self) -> bool:
        return self._persistent is not None

    def get(self, key: str) -> Any | None:
        """Return the cached value for `key`, or None on a miss."""
        started = time.perf_counter()
        with self._lock:
            now = self._clock()

            entry = self._memory.get(key)
            if entry is not None:
                if entry.is_valid(now):
                    entry.hit_count += 1
                    self._memory_hits += 1
                    self._record_lookup(started)
                    return entry.data
                self._memory.pop(key)
                self._forget(key)

            if self._persistent is not None:
                entry = self._read_persistent(key)
                if entry is None:
                    self._forget(key)
                else:
                    if entry.is_valid(now):
                        entry.hit_count += 1
                        self._store_memory(entry, now)
                        self._persistent_hits += 1
                        self._record_lookup(started)
                        logger.debug("Cache entry promoted from disk", extra={"key": key})
                        return entry.data
                    self._delete_persistent(key)
                    self._forget(key)

            self._misses += 1
            self._record_lookup(started)
            return None

    def set(
        self,
        key: str,
        value: Any,
        ttl: float | None = None,
        tags: Iterable[str] | None = None,
        *,
        skip_persistent: bool = False,
    ) -> None:
        """Store `value` under `key` in memory and (unless skipped) on disk.

        Args:
            key: Cache key.
            value: Value to store. Must be JSON-compatible to reach the disk tier.
            ttl: Lifetime in seconds. Defaults to the configured TTL.
            tags: Labels for bulk invalidation via `clear_by_tags`.
            skip_persistent: Keep the entry in memory only.
        """
        with self._lock:
            now = self._clock()
            entry = CacheEntry(
                key=key,
                data=value,
                stored_at=now,
                ttl=self.config.default_ttl if ttl is None else ttl,
                tags=sorted(set(tags or ())),
                approximate_size=approximate_size(value),
            )

            self._forget(key)
            self._store_memory(entry, now)

            if self._persistent is None:
                return
            if skip_persistent:
                # An older file for this key must not outlive the newer value.
                self._delete_persistent(key)
                return
            try:
                self._persistent.write(entry)
            except CacheIOError as e:
                logger.warning(f"Failed to write to file cache: {e}", extra={"key": key})
                self._delete_persistent(key)

    def delete(self, key: str) -> None:
        """Remove `key` from both tiers and from every tag."""
        with self._lock:
            self._memory.pop(key)
            self._forget(key)
            self._delete_persistent(key)

    def clear_by_tags(self, tags: Iterable[str]) -> int:
        """Delete every entry carrying any of `tags`.

        Returns:
            Number of keys deleted.
        """
        with self._lock:
            keys: set[str] = set()
            for tag in tags:
                keys.update(self._tag_index.get(tag, ()))
            for key in keys:
                self.delete(key)

        if keys:
            logger.info("Cache entries invalidated by tag", extra={"count": len(keys)})
        return len(keys)

    def clear(self) -> None:
        """Drop every entry from both tiers and reset metrics."""
        with self._lock:
            self._memory.clear()
            self._tag_index.clear()
            self._key_tags.clear()
            if self._persistent is not None:
                try:
                    self._persistent.clear()
                except CacheIOError as e:
                    logger.warning(f"Failed to clear file cache: {e}")
            self._reset_metrics()

    def keys_for_tag(self, tag: str) -> set[str]:
        with self._lock:
            return set(self._tag_index.get(tag, ()))

    def get_or_set(
        self,
        key: str,
        factory: Callable[[], T],
        ttl: float | None = None,
        tags: Iterable[str] | None = None,
    ) -> T:
        """Cache-aside lookup with a synchronous factory.

        Concurrent misses for the same key each call their own factory; the
        last write wins.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        value = factory()
        self.set(key, value, ttl=ttl, tags=tags)
        return value

    async def aget_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[T]],
        ttl: float | None = None,
        tags: Iterable[str] | None = None,
        *,
        single_flight: bool = False,
    ) -> T:
        """Cache-aside lookup with an async factory.

        Args:
            single_flight: If true, concurrent misses for `key` on this event
                loop share one factory invocation instead of each running
                their own.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        if not single_flight:
            value = await factory()
            self.set(key, value, ttl=ttl, tags=tags)
            return value

        pending = self._inflight.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        fut: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._inflight[key] = fut
        try:
            value = await factory()
            self.set(key, value, ttl=ttl, tags=tags)
        except asyncio.CancelledError:
            fut.cancel()
            raise
        except Exception as e:
            fut.set_exception(e)
            # Followers see the error; retrieve it so an unawaited future stays quiet.
            fut.exception()
            raise
        else:
            fut.set_result(value)
            return value
        finally:
            self._inflight.pop(key, None)

    async def warm(self, entries: Iterable[WarmSpec], *, concurrency: int = 5) -> int:
        """Pre-populate the cache. Failing factories are logged and skipped.

        Returns:
            Number of entries written.
        """

        def _job(spec: WarmSpec) -> Callable[[], Awaitable[bool]]:
            async def _run() -> bool:
                try:
                    value = await spec.factory()
                except Exception:
                    logger.warning(f"Failed to warm cache for key {spec.key}", exc_info=True)
                    return False
                self.set(spec.key, value, ttl=spec.ttl, tags=spec.tags)
                return True

            return _run

        outcomes = await gather_bounded([_job(spec) for spec in entries], concurrency)
        return sum(outcomes)

    def cleanup_expired(self) -> int:
        """Remove expired entries from both tiers.

        Returns:
            Number of distinct keys removed.
        """
        removed: set[str] = set()
        with self._lock:
            now = self._clock()
            for entry in self._memory.purge_expired(now):
                removed.add(entry.key)
                self._forget(entry.key)

            if self._persistent is not None:
                try:
                    for entry in list(self._persistent.entries()):
                        if not entry.is_valid(now):
                            self._delete_persistent(entry.key)
                            self._forget(entry.key)
                            removed.add(entry.key)
                except CacheIOError as e:
                    logger.warning(f"Failed to scan file cache: {e}")
        return len(removed)

    def enforce_persistent_budget(self) -> int:
        """Trim the persistent tier to its byte budget (oldest files first)."""
        if self._persistent is None:
            return 0
        with self._lock:
            try:
                return self._persistent.enforce_budget()
            except CacheIOError as e:
                logger.warning(f"Failed to cleanup file cache: {e}")
                return 0

    def optimize(self) -> dict[str, int]:
        """Housekeeping pass: expired entries, then the disk budget."""
        expired = self.cleanup_expired()
        trimmed = self.enforce_persistent_budget()

        metrics = self.metrics()
        if metrics.total_hits + metrics.misses and metrics.hit_rate < LOW_HIT_RATE:
            logger.info(
                "Low cache hit rate detected, consider increasing cache size",
                extra={"hit_rate": metrics.hit_rate},
            )
        return {"expired": expired, "trimmed_files": trimmed}

    def persistent_usage(self) -> dict[str, int] | None:
        """File count and total bytes of the persistent tier, or None if disabled."""
        if self._persistent is None:
            return None
        try:
            return {
                "files": self._persistent.file_count(),
                "bytes": self._persistent.usage(),
                "budget_bytes": self._persistent.max_bytes,
            }
        except CacheIOError as e:
            logger.warning(f"Failed to inspect file cache: {e}")
            return None

    def metrics(self) -> CacheMetrics:
        with self._lock:
            lookups = self._memory_hits + self._persistent_hits + self._misses
            return CacheMetrics(
                memory_hits=self._memory_hits,
                persistent_hits=self._persistent_hits,
                misses=self._misses,
                evictions=self._evictions,
                memory_entries=len(self._memory),
                tag_count=len(self._tag_index),
                average_lookup_seconds=(self._lookup_seconds / lookups) if lookups else 0.0,
            )

    def _store_memory(self, entry: CacheEntry, now: float) -> None:
        if entry.key not in self._memory and self._memory.is_full():
            # Expired entries go before any live entry is evicted.
            for expired in self._memory.purge_expired(now):
                if self._persistent is None:
                    self._forget(expired.key)
        self._memory.put(entry)
        self._index(entry.key, entry.tags)

    def _on_evict(self, key: str, _entry: CacheEntry) -> None:
        self._evictions += 1
        # With a disk tier the entry is still reachable there, so its tags
        # must keep pointing at it.
        if self._persistent is None:
            self._forget(key)

    def _index(self, key: str, tags: Iterable[str]) -> None:
        for tag in tags:
            self._tag_index.setdefault(tag, set()).add(key)
            self._key_tags.setdefault(key, set()).add(tag)

    def _forget(self, key: str) -> None:
        for tag in self._key_tags.pop(key, set()):
            members = self._tag_index.get(tag)
            if members is None:
                continue
            members.discard(key)
            if not members:
                del self._tag_index[tag]

    def _read_persistent(self, key: str) -> CacheEntry | None:
        assert self._persistent is not None
        try:
            return self._persistent.read(key)
        except CacheIOError as e:
            logger.warning(f"Failed to read from file cache: {e}", extra={"key": key})
            return None

    def _delete_persistent(self, key: str) -> None:
        if self._persistent is None:
            return
        try:
            self._persistent.delete(key)
        except CacheIOError as e:
            logger.warning(f"Failed to delete from file cache: {e}", extra={"key": key})

    def _rebuild_tag_index(self) -> None:
        if self._persistent is None:
            return
        now = self._clock()
        try:
            for entry in list(self._persistent.entries()):
                if entry.is_valid(now):
                    self._index(entry.key, entry.tags)
                else:
                    self._delete_persistent(entry.key)
        except CacheIOError as e:
            logger.warning(f"Failed to index file cache: {e}")

    def _record_lookup(self, started: float) -> None:
        self._lookup_seconds += time.perf_counter() - started

    def _reset_metrics(self) -> None:
        self._memory_hits = 0
        self._persistent_hits = 0
        self._misses = 0
        self._evictions = 0
        self._lookup_seconds = 0.0
