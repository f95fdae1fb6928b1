"""
Response Cache - memoizes scrape results per URL.

Backed by the dedicated "scrape" Django cache alias (process-local
LocMemCache). Entries expire lazily after SCRAPER_CACHE_TTL seconds. Nothing
here is needed for correctness: the catalog is the durable record, the
cache only saves a browser round-trip for URLs scraped recently.
"""

import hashlib
import logging
from typing import Any, Dict, Optional

from django.conf import settings
from django.core.cache import caches

from scraper.types import PerfumeRecord

logger = logging.getLogger(__name__)


class ResponseCache:
    """
    URL -> PerfumeRecord memoization with hit/miss accounting.

    Usage:
        cache = ResponseCache()
        record = cache.get(url)
        if record is None:
            record = ...
            cache.set(url, record)
    """

    KEY_PREFIX = "scrape:record:"
    HITS_KEY = "scrape:stats:hits"
    MISSES_KEY = "scrape:stats:misses"
    INDEX_KEY = "scrape:stats:index"

    def __init__(self, alias: Optional[str] = None, ttl: Optional[int] = None):
        """
        Args:
            alias: Django cache alias (default SCRAPER_CACHE_ALIAS)
            ttl: Entry lifetime in seconds (default SCRAPER_CACHE_TTL)
        """
        self.alias = alias or getattr(settings, "SCRAPER_CACHE_ALIAS", "scrape")
        self.ttl = ttl if ttl is not None else getattr(settings, "SCRAPER_CACHE_TTL", 86400)

    @property
    def _cache(self):
        return caches[self.alias]

    def _key(self, url: str) -> str:
        return self.KEY_PREFIX + hashlib.sha256(url.encode("utf-8")).hexdigest()

    def _increment(self, key: str) -> None:
        self._cache.add(key, 0, timeout=None)
        try:
            self._cache.incr(key)
        except ValueError:
            # Evicted between add() and incr()
            self._cache.set(key, 1, timeout=None)

    def get(self, url: str) -> Optional[PerfumeRecord]:
        record = self._cache.get(self._key(url))
        if record is None:
            self._increment(self.MISSES_KEY)
            return None

        self._increment(self.HITS_KEY)
        logger.debug(f"Cache hit: {url}")
        return record

    def set(self, url: str, record: PerfumeRecord, ttl: Optional[int] = None) -> None:
        key = self._key(url)
        self._cache.set(key, record, timeout=self.ttl if ttl is None else ttl)

        index = self._cache.get(self.INDEX_KEY) or set()
        index.add(key)
        self._cache.set(self.INDEX_KEY, index, timeout=None)

    def flush(self) -> int:
        """
        Drop every cached record and reset the counters.

        Returns:
            Number of live entries removed
        """
        removed = self._live_entries()
        self._cache.clear()
        logger.info(f"Scrape cache flushed ({removed} entries)")
        return removed

    def _live_entries(self) -> int:
        index = self._cache.get(self.INDEX_KEY) or set()
        if not index:
            return 0
        live = self._cache.get_many(list(index))
        if len(live) != len(index):
            self._cache.set(self.INDEX_KEY, set(live), timeout=None)
        return len(live)

    def stats(self) -> Dict[str, Any]:
        """
        Report cache usage.

        Returns:
            Dict with entries, hits, misses, hit_rate (0-1) and ttl_seconds
        """
        hits = self._cache.get(self.HITS_KEY, 0)
        misses = self._cache.get(self.MISSES_KEY, 0)
        lookups = hits + misses
        return {
            "entries": self._live_entries(),
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / lookups, 4) if lookups else 0.0,
            "ttl_seconds": self.ttl,
        }
