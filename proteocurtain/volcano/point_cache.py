"""
Volcano point cache with TTL and LRU eviction.

A finished VolcanoResult is an immutable snapshot for its dataset and
settings, so repeated renders with unchanged settings can reuse it. Entries
are keyed by dataset id and the settings fingerprint; invalidating a dataset
drops every settings variant cached for it.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from threading import Lock
from typing import Any, Dict, Optional, Tuple

from proteocurtain.logging_utils import get_logger
from proteocurtain.models.domain import VolcanoResult

logger = get_logger(__name__)

CacheKey = Tuple[str, str]
CacheEntry = Dict[str, Any]

DEFAULT_TTL_SECONDS = 3600
DEFAULT_MAX_SIZE = 32


class VolcanoPointCache:
    """Thread-safe in-memory cache of processed volcano results."""

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_size: int = DEFAULT_MAX_SIZE,
    ):
        self.cache: OrderedDict[CacheKey, CacheEntry] = OrderedDict()
        self.default_ttl = ttl_seconds
        self.max_size = max_size
        self._lock = Lock()

        # Stats
        self.hits = 0
        self.misses = 0
        self.evictions = 0

        logger.debug(
            "[POINT-CACHE] Initialized (default_ttl=%s, max_size=%s)",
            ttl_seconds,
            max_size,
        )

    def get(self, dataset_id: str, fingerprint: str) -> Optional[VolcanoResult]:
        """Return the cached result or None when missing/expired."""
        key = (dataset_id, fingerprint)
        with self._lock:
            entry = self.cache.get(key)
            if entry is None:
                self.misses += 1
                logger.debug("[POINT-CACHE] Miss for dataset %s", dataset_id)
                return None

            if self._is_entry_expired(entry):
                self.cache.pop(key, None)
                self.evictions += 1
                self.misses += 1
                logger.debug("[POINT-CACHE] Entry expired for dataset %s; evicted", dataset_id)
                return None

            self.cache.move_to_end(key)
            self.hits += 1
            logger.debug("[POINT-CACHE] Hit for dataset %s", dataset_id)
            return entry["result"]

    def put(
        self,
        dataset_id: str,
        fingerprint: str,
        result: VolcanoResult,
        ttl: Optional[int] = None,
    ) -> None:
        """Store a result, with an optional per-entry TTL override."""
        key = (dataset_id, fingerprint)
        effective_ttl = self.default_ttl if ttl is None else ttl

        with self._lock:
            self.cache.pop(key, None)
            self.cache[key] = {
                "result": result,
                "timestamp": time.time(),
                "ttl": effective_ttl,
            }
            self._evict_if_needed_unlocked()

            logger.debug(
                "[POINT-CACHE] Stored dataset %s (points=%d, ttl=%s)",
                dataset_id,
                len(result.points),
                effective_ttl,
            )

    def invalidate(self, dataset_id: str) -> None:
        """Remove every cached settings variant of a dataset."""
        with self._lock:
            keys = [key for key in self.cache if key[0] == dataset_id]
            for key in keys:
                self.cache.pop(key, None)
            self.evictions += len(keys)
            logger.debug("[POINT-CACHE] Invalidated dataset %s (entries=%d)", dataset_id, len(keys))

    def clear(self) -> None:
        with self._lock:
            size = len(self.cache)
            self.cache.clear()
            logger.debug("[POINT-CACHE] Cleared cache (entries=%s)", size)

    def get_stats(self) -> Dict[str, int]:
        """Return cache statistics."""
        with self._lock:
            return {
                "cached_results": len(self.cache),
                "cached_datasets": len({key[0] for key in self.cache}),
                "total_points": sum(len(entry["result"].points) for entry in self.cache.values()),
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
                "max_size": self.max_size,
            }

    def is_expired(self, dataset_id: str, fingerprint: str) -> bool:
        """Check if an entry is expired (or missing)."""
        with self._lock:
            entry = self.cache.get((dataset_id, fingerprint))
            if entry is None:
                return True
            return self._is_entry_expired(entry)

    def _evict_if_needed_unlocked(self) -> None:
        if self.max_size <= 0:
            return

        while len(self.cache) > self.max_size:
            evicted_key, _ = self.cache.popitem(last=False)
            self.evictions += 1
            logger.debug(
                "[POINT-CACHE] Evicted dataset %s due to max size (%s)",
                evicted_key[0],
                self.max_size,
            )

    def _is_entry_expired(self, entry: CacheEntry) -> bool:
        age = time.time() - float(entry.get("timestamp", 0))
        return age >= entry.get("ttl", self.default_ttl)
