"""File-backed cache tier.

Each key is stored in its own file inside a single directory. File names are
the MD5 hex digest of the key with a `.cache` suffix, and the content is the
JSON form of :class:`CacheEntry`. This directory is the only on-disk state the
engine owns.
"""

from __future__ import annotations

import hashlib
import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from workflow_engine.cache.entry import CacheEntry
from workflow_engine.core.errors import CacheIOError

logger = logging.getLogger(__name__)

CACHE_FILE_SUFFIX = ".cache"

# Housekeeping trims usage down to this share of the budget.
BUDGET_TARGET_RATIO = 0.8


def cache_file_name(key: str) -> str:
    return hashlib.md5(key.encode("utf-8")).hexdigest() + CACHE_FILE_SUFFIX


@dataclass(frozen=True, slots=True)
class _FileStat:
    path: Path
    size: int
    mtime: float


class PersistentTier:
    """One JSON file per cache key, bounded by a byte budget."""

    def __init__(self, directory: Path, max_bytes: int) -> None:
        self.directory = directory
        self.max_bytes = max_bytes
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            # Reads and writes will surface the problem individually.
            logger.warning(f"Failed to create cache directory {self.directory}: {e}")

    def path_for(self, key: str) -> Path:
        return self.directory / cache_file_name(key)

    def read(self, key: str) -> CacheEntry | None:
        path = self.path_for(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CacheIOError(f"Failed to read cache file: {e}", path=str(path)) from e
        return self._decode(raw, path)

    def write(self, entry: CacheEntry) -> None:
        path = self.path_for(entry.key)
        try:
            payload = entry.model_dump_json()
        except (PydanticSerializationError, TypeError, ValueError) as e:
            raise CacheIOError(
                f"Cache value for '{entry.key}' is not JSON serialisable: {e}", path=str(path)
            ) from e

        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp.write_text(payload, encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise CacheIOError(f"Failed to write cache file: {e}", path=str(path)) from e

    def delete(self, key: str) -> bool:
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise CacheIOError(f"Failed to delete cache file: {e}", path=str(path)) from e
        return True

    def clear(self) -> int:
        removed = 0
        for stat in self._stats():
            try:
                stat.path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                raise CacheIOError(f"Failed to clear cache file: {e}", path=str(stat.path)) from e
        return removed

    def entries(self) -> Iterator[CacheEntry]:
        """Yield every decodable entry. Unreadable files are skipped."""
        for stat in self._stats():
            try:
                entry = self._decode(stat.path.read_text(encoding="utf-8"), stat.path)
            except (OSError, CacheIOError) as e:
                logger.debug(f"Skipping unreadable cache file {stat.path}: {e}")
                continue
            yield entry

    def usage(self) -> int:
        return sum(stat.size for stat in self._stats())

    def file_count(self) -> int:
        return len(self._stats())

    def enforce_budget(self) -> int:
        """Delete the oldest files until usage is within 80% of the budget.

        Nothing is removed unless usage exceeds the budget.

        Returns:
            Number of files removed.
        """
        stats = self._stats()
        total = sum(stat.size for stat in stats)
        if total <= self.max_bytes:
            return 0

        target = self.max_bytes * BUDGET_TARGET_RATIO
        removed = 0
        for stat in sorted(stats, key=lambda s: s.mtime):
            if total <= target:
                break
            try:
                stat.path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                raise CacheIOError(f"Failed to evict cache file: {e}", path=str(stat.path)) from e
            total -= stat.size
            removed += 1

        logger.info(
            "Persistent cache trimmed",
            extra={"removed_files": removed, "usage_bytes": total, "budget_bytes": self.max_bytes},
        )
        return removed

    def _stats(self) -> list[_FileStat]:
        try:
            candidates = list(self.directory.glob(f"*{CACHE_FILE_SUFFIX}"))
        except OSError as e:
            raise CacheIOError(f"Failed to list cache directory: {e}", path=str(self.directory)) from e

        stats: list[_FileStat] = []
        for path in candidates:
            try:
                st = path.stat()
            except FileNotFoundError:
                continue
            except OSError as e:
                raise CacheIOError(f"Failed to stat cache file: {e}", path=str(path)) from e
            stats.append(_FileStat(path=path, size=st.st_size, mtime=st.st_mtime))
        return stats

    @staticmethod
    def _decode(raw: str, path: Path) -> CacheEntry:
        try:
            return CacheEntry.model_validate_json(raw)
        except ValidationError as e:
            raise CacheIOError(f"Corrupt cache file: {e}", path=str(path)) from e
