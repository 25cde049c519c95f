"""
tsrag - Response Cache
=======================
Bounded in-memory memo of ``query → shaped response + sources``.

Built on ``cachetools.TTLCache``, which evicts the least-recently-used
entry once ``max_size`` is reached and drops entries whose time-to-live
has elapsed.  Expiry is *sliding*: every successful ``get`` re-inserts
the entry, restarting its TTL.  ``has`` is a pure lookup and refreshes
neither recency nor age.

Keys are normalised (lowercase, trimmed, whitespace runs collapsed), so
``"Hello World"`` and ``"  hello   world "`` hit the same entry.

The cache is single-owner: the asyncio event loop serialises access and
concurrent callers racing on the same key at worst both compute and the
last writer wins.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TypedDict

from cachetools import TTLCache

from tsrag.config.settings import settings
from tsrag.src.core.models import CacheEntry
from tsrag.src.utils.logger import get_logger
from tsrag.src.utils.text_utils import normalize_query

logger = get_logger(__name__)


class CacheStats(TypedDict):
    size: int
    max_size: int
    approximate_byte_size: int


class ResponseCache:
    """
    LRU + sliding-TTL cache for RAG responses.

    Parameters
    ----------
    max_size
        Maximum number of entries (default ``settings.CACHE_MAX_SIZE``).
    ttl_seconds
        Idle lifetime of an entry (default ``settings.CACHE_TTL_SECONDS``).
    timer
        Monotonic clock; injectable for tests.
    """

    __slots__ = ("_entries", "_sizes", "_max_size")

    def __init__(self, max_size: int | None = None, ttl_seconds: float | None = None, timer: Callable[[], float] = time.monotonic) -> None:
        self._max_size = max_size if max_size is not None else settings.CACHE_MAX_SIZE
        ttl = ttl_seconds if ttl_seconds is not None else settings.CACHE_TTL_SECONDS
        if self._max_size < 1:
            raise ValueError(f"max_size must be ≥ 1, got {self._max_size}")
        if ttl <= 0:
            raise ValueError(f"ttl_seconds must be > 0, got {ttl}")
        self._entries: TTLCache[str, CacheEntry] = TTLCache(maxsize=self._max_size, ttl=ttl, timer=timer)
        # Serialised size per key; never holds more keys than _entries after a write
        self._sizes: dict[str, int] = {}


    @staticmethod
    def key_for(query: str) -> str:
        return normalize_query(query)


    def get(self, query: str) -> CacheEntry | None:
        """Return the entry for *query* and restart its TTL, or ``None``."""
        key = self.key_for(query)
        entry = self._entries.get(key)
        if entry is None:
            logger.debug("[CACHE] Miss: '%.60s'", key)
            return None

        # Re-inserting restarts the per-item expiry (sliding TTL)
        self._entries[key] = entry
        logger.debug("[CACHE] Hit: '%.60s'", key)
        return entry


    def set(self, query: str, entry: CacheEntry) -> None:
        key = self.key_for(query)
        self._entries[key] = entry
        self._sizes[key] = self._entry_bytes(key, entry)
        self._drop_stale_sizes()
        logger.debug("[CACHE] Stored '%.60s' (%d/%d).", key, len(self._entries), self._max_size)


    def has(self, query: str) -> bool:
        return self.key_for(query) in self._entries


    def delete(self, query: str) -> bool:
        key = self.key_for(query)
        self._sizes.pop(key, None)
        return self._entries.pop(key, None) is not None


    def clear(self) -> None:
        self._entries.clear()
        self._sizes.clear()
        logger.info("[CACHE] Cleared.")


    def stats(self) -> CacheStats:
        """Current size, capacity and an estimate of the payload size in bytes."""
        self._entries.expire()
        self._drop_stale_sizes()
        byte_size = sum(self._sizes.values())
        return {"size": len(self._entries), "max_size": self._max_size, "approximate_byte_size": byte_size}


    def _drop_stale_sizes(self) -> None:
        """Forget the sizes of keys the LRU or TTL policy has already removed."""
        if len(self._sizes) <= len(self._entries):
            return
        # Membership checks leave LRU order untouched, unlike value reads
        self._sizes = {key: size for key, size in self._sizes.items() if key in self._entries}


    @staticmethod
    def _entry_bytes(key: str, entry: CacheEntry) -> int:
        return len(key.encode("utf-8")) + len(entry.model_dump_json().encode("utf-8"))


    def __len__(self) -> int:
        return len(self._entries)


    def __repr__(self) -> str:
        return f"ResponseCache(size={len(self._entries)}, max_size={self._max_size})"
