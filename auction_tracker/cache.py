# auction_tracker/cache.py
"""In-process, URL-keyed cache of parsed detail pages."""
from collections import namedtuple
from datetime import timedelta

from .utils import logger, utcnow

CachedResult = namedtuple("CachedResult", "url data cached_at expires_at")
CacheStats = namedtuple("CacheStats", "size oldest newest")


class ResultCache:
    """Fixed-TTL memo of parsed results.

    A lookup at or after `expires_at` is a miss, but the entry stays until
    `clean_expired()` runs.
    """

    def __init__(self, ttl=timedelta(hours=24), clock=utcnow):
        self.ttl = ttl
        self.clock = clock
        self._entries = {}

    def get(self, url):
        entry = self._entries.get(url)
        if entry is None:
            return None
        if self.clock() >= entry.expires_at:
            logger.debug("Cache expired for %s", url)
            return None
        logger.debug("Cache hit for %s", url)
        return entry.data

    def put(self, url, data):
        now = self.clock()
        self._entries[url] = CachedResult(url, data, now, now + self.ttl)

    def clear(self):
        self._entries.clear()

    def clean_expired(self) -> int:
        now = self.clock()
        stale = [url for url, entry in self._entries.items() if now >= entry.expires_at]
        for url in stale:
            del self._entries[url]
        if stale:
            logger.info("Removed %d expired cache entries", len(stale))
        return len(stale)

    def stats(self) -> CacheStats:
        if not self._entries:
            return CacheStats(0, None, None)
        stamps = [entry.cached_at for entry in self._entries.values()]
        return CacheStats(len(self._entries), min(stamps), max(stamps))

    def __len__(self):
        return len(self._entries)

    def __contains__(self, url):
        return self.get(url) is not None
