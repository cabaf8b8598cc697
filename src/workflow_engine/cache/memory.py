"""In-process cache tier: a bounded LRU map of cache entries."""

from __future__ import annotations

from collections.abc import Callable, Iterator

from cachetools import Cache, LRUCache

from workflow_engine.cache.entry import CacheEntry

EvictionCallback = Callable[[str, CacheEntry], None]


class _NotifyingLRUCache(LRUCache):
    """LRUCache that reports capacity-driven evictions."""

    def __init__(self, maxsize: int, on_evict: EvictionCallback) -> None:
        super().__init__(maxsize=maxsize)
        self._on_evict = on_evict

    def popitem(self) -> tuple[str, CacheEntry]:
        key, entry = super().popitem()
        self._on_evict(key, entry)
        return key, entry


class MemoryTier:
    """Bounded map of key -> CacheEntry with least-recently-used eviction.

    Expiry is not enforced here: the owning cache decides validity using its
    own clock and calls `purge_expired` before inserts at capacity.
    """

    def __init__(self, max_entries: int, on_evict: EvictionCallback | None = None) -> None:
        self._external_on_evict = on_evict
        self._entries = _NotifyingLRUCache(max_entries, self._handle_evict)

    @property
    def max_entries(self) -> int:
        return int(self._entries.maxsize)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def is_full(self) -> bool:
        return len(self._entries) >= self._entries.maxsize

    def get(self, key: str) -> CacheEntry | None:
        """Return the entry and mark it most recently used."""
        return self._entries.get(key)

    def peek(self, key: str) -> CacheEntry | None:
        """Return the entry without touching its recency."""
        try:
            return Cache.__getitem__(self._entries, key)
        except KeyError:
            return None

    def put(self, entry: CacheEntry) -> None:
        self._entries[entry.key] = entry

    def pop(self, key: str) -> CacheEntry | None:
        return self._entries.pop(key, None)

    def purge_expired(self, now: float) -> list[CacheEntry]:
        expired = [
            entry
            for key in list(self._entries)
            if (entry := self.peek(key)) is not None and not entry.is_valid(now)
        ]
        for entry in expired:
            self._entries.pop(entry.key, None)
        return expired

    def clear(self) -> None:
        # MutableMapping.clear() goes through popitem(), which would report
        # every entry as an eviction.
        self._entries = _NotifyingLRUCache(self.max_entries, self._handle_evict)

    def _handle_evict(self, key: str, entry: CacheEntry) -> None:
        if self._external_on_evict is not None:
            self._external_on_evict(key, entry)
