"""Cache entry model shared by both cache tiers."""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, Field


class CacheEntry(BaseModel):
    """A cached value with its expiry and invalidation metadata.

    The same model is held in memory and serialised to the persistent tier,
    so `data` must be JSON-compatible for the entry to survive on disk.
    """

    key: str
    data: Any
    stored_at: float = Field(description="Wall-clock time (epoch seconds) of the write")
    ttl: float = Field(gt=0, description="Lifetime in seconds")
    tags: list[str] = Field(default_factory=list)
    hit_count: int = 0
    approximate_size: int = Field(
        default=0, description="Bytes of the JSON encoding of `data`; 0 if not encodable"
    )

    def is_valid(self, now: float) -> bool:
        # Strict: an entry is already expired at exactly stored_at + ttl.
        return now - self.stored_at < self.ttl

    def expires_at(self) -> float:
        return self.stored_at + self.ttl


def approximate_size(data: Any) -> int:
    try:
        return len(json.dumps(data, ensure_ascii=False).encode("utf-8"))
    except (TypeError, ValueError):
        return 0
