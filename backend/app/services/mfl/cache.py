"""
In-Memory Cache with per-category TTL
Caches unwrapped MFL API payloads keyed by (category, identifier).
"""
import copy
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)


class CacheCategory(str, Enum):
    """Fixed classification of cached MFL data, each with its own TTL."""

    LEAGUE_INFO = "leagueInfo"
    ROSTERS = "rosters"
    LIVE_SCORES = "liveScores"
    PLAYERS = "players"
    STANDINGS = "standings"
    TRANSACTIONS = "transactions"


DEFAULT_TTLS: Dict[CacheCategory, int] = {
    CacheCategory.LEAGUE_INFO: 60 * 60,  # 1 hour
    CacheCategory.ROSTERS: 15 * 60,  # 15 minutes
    CacheCategory.LIVE_SCORES: 2 * 60,  # 2 minutes
    CacheCategory.PLAYERS: 24 * 60 * 60,  # 24 hours
    CacheCategory.STANDINGS: 30 * 60,  # 30 minutes
    CacheCategory.TRANSACTIONS: 10 * 60,  # 10 minutes
}


class CacheEntry:
    """
    Cache entry with absolute expiry timestamp.

    Attributes:
        category: Cache category the entry belongs to
        key: Identifier within the category
        data: Cached data
        expires_at: Epoch seconds after which the entry is stale
    """

    __slots__ = ("category", "key", "data", "expires_at")

    def __init__(self, category: CacheCategory, key: str, data: Any, expires_at: float):
        self.category = category
        self.key = key
        self.data = data
        self.expires_at = expires_at

    def is_expired(self, now: float) -> bool:
        """
        Check if cache entry has expired.

        Args:
            now: Current epoch seconds

        Returns:
            True if entry has expired, False otherwise
        """
        return now >= self.expires_at


class InMemoryCache:
    """
    Process-wide in-memory cache with per-category TTL.

    Expired entries are treated as absent and removed on access; a periodic
    purge bounds memory for entries that are never read again. Values are
    deep-copied on the way in and on the way out so callers can mutate what
    they get back without corrupting the cache.
    """

    def __init__(
        self,
        ttls: Optional[Dict[Any, int]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize in-memory cache.

        Args:
            ttls: Optional per-category TTL overrides in seconds, keyed by
                CacheCategory or its string value
            clock: Returns current epoch seconds (injectable for tests)
        """
        self._clock = clock
        self._ttls: Dict[CacheCategory, int] = dict(DEFAULT_TTLS)
        for category, seconds in (ttls or {}).items():
            self._ttls[CacheCategory(category)] = int(seconds)
        self._cache: Dict[Tuple[CacheCategory, str], CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    @staticmethod
    def _label(category: CacheCategory, key: str) -> str:
        return f"{category.value}:{key}"

    def ttl_for(self, category: CacheCategory) -> int:
        """Get the TTL in seconds applied to new writes in a category."""
        return self._ttls[CacheCategory(category)]

    def set_ttl(self, category: CacheCategory, seconds: int) -> None:
        """
        Change a category's TTL.

        Entries already stored keep their original expiry.
        """
        category = CacheCategory(category)
        self._ttls[category] = int(seconds)
        logger.info(f"Cache TTL for {category.value} set to {seconds}s")

    def get(self, category: CacheCategory, key: str, default: Any = None) -> Any:
        """
        Get value from cache if not expired.

        Args:
            category: Cache category
            key: Identifier within the category
            default: Returned when the entry is absent or stale (default: None)

        Returns:
            A copy of the cached value if present and fresh, default otherwise
        """
        category = CacheCategory(category)
        cache_key = (category, key)
        entry = self._cache.get(cache_key)

        if entry is not None and entry.is_expired(self._clock()):
            # Remove expired entry
            del self._cache[cache_key]
            entry = None

        if entry is None:
            self._misses += 1
            logger.debug(f"Cache MISS: {self._label(category, key)}")
            return default

        self._hits += 1
        logger.debug(f"Cache HIT: {self._label(category, key)}")
        return copy.deepcopy(entry.data)

    def set(self, category: CacheCategory, key: str, value: Any) -> bool:
        """
        Set value in cache using the category TTL.

        Overwrites any previous entry for the same key.

        Args:
            category: Cache category
            key: Identifier within the category
            value: Value to cache

        Returns:
            True once stored
        """
        category = CacheCategory(category)
        ttl = self.ttl_for(category)
        self._cache[(category, key)] = CacheEntry(
            category, key, copy.deepcopy(value), self._clock() + ttl
        )
        logger.debug(f"Cache SET: {self._label(category, key)} (TTL: {ttl}s)")
        return True

    def has(self, category: CacheCategory, key: str) -> bool:
        """Check whether a fresh entry exists without touching hit/miss counters."""
        entry = self._cache.get((CacheCategory(category), key))
        return entry is not None and not entry.is_expired(self._clock())

    def ttl_remaining(self, category: CacheCategory, key: str) -> Optional[float]:
        """
        Get remaining lifetime of an entry.

        Returns:
            Seconds until expiry, or None if the entry is absent or stale
        """
        entry = self._cache.get((CacheCategory(category), key))
        if entry is None:
            return None
        remaining = entry.expires_at - self._clock()
        return remaining if remaining > 0 else None

    def delete(self, category: CacheCategory, key: str) -> int:
        """
        Delete a specific cache entry.

        Returns:
            Number of entries removed (0 or 1)
        """
        category = CacheCategory(category)
        if self._cache.pop((category, key), None) is None:
            return 0
        logger.info(f"Cache DELETE: {self._label(category, key)}")
        return 1

    def delete_by_category(self, category: CacheCategory) -> int:
        """
        Delete all cache entries of a specific category.

        Returns:
            Number of entries removed
        """
        category = CacheCategory(category)
        doomed = [cache_key for cache_key in self._cache if cache_key[0] is category]
        for cache_key in doomed:
            del self._cache[cache_key]
        if doomed:
            logger.info(f"Cache DELETE CATEGORY: {category.value} ({len(doomed)} entries)")
        return len(doomed)

    def delete_by_prefix(self, category: CacheCategory, prefix: str) -> int:
        """
        Delete entries of a category whose identifier starts with prefix.

        Returns:
            Number of entries removed
        """
        category = CacheCategory(category)
        doomed = [
            cache_key for cache_key in self._cache
            if cache_key[0] is category and cache_key[1].startswith(prefix)
        ]
        for cache_key in doomed:
            del self._cache[cache_key]
        if doomed:
            logger.info(f"Cache DELETE PREFIX: {self._label(category, prefix)}* ({len(doomed)} entries)")
        return len(doomed)

    def flush(self) -> None:
        """Clear all cache entries. Hit/miss counters are kept."""
        self._cache.clear()
        logger.info("Cache FLUSH: All entries cleared")

    def purge_expired(self) -> int:
        """
        Remove every expired entry.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [cache_key for cache_key, entry in self._cache.items() if entry.is_expired(now)]
        for cache_key in expired:
            del self._cache[cache_key]
        if expired:
            logger.debug(f"Cache PURGE: {len(expired)} expired entries removed")
        return len(expired)

    def keys(self) -> List[str]:
        """List labels of all fresh entries."""
        now = self._clock()
        return [
            self._label(category, key)
            for (category, key), entry in self._cache.items()
            if not entry.is_expired(now)
        ]

    def stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with cumulative hits and misses, hit rate and the
            currently fresh entries
        """
        keys = self.keys()
        total = self._hits + self._misses
        hit_rate = (self._hits / total * 100) if total > 0 else 0.0

        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": f"{hit_rate:.2f}%",
            "entries": len(keys),
            "keys": keys,
        }

    def log_stats(self) -> None:
        """Log cache statistics."""
        stats = self.stats()
        logger.info(
            f"Cache statistics: hit rate {stats['hit_rate']}, "
            f"hits {stats['hits']}, misses {stats['misses']}, entries {stats['entries']}"
        )
