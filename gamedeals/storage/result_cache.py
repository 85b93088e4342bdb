# gamedeals/storage/result_cache.py

"""In-memory, freshness-bounded LRU cache of fetched deal pages."""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass

from gamedeals.config.settings import Settings
from gamedeals.models.filter import QueryFingerprint
from gamedeals.models.page import Page

logger = logging.getLogger("gamedeals.cache")


@dataclass(frozen=True)
class CacheEntry:
    """A fetched page and the wall-clock time it was stored."""

    page: Page
    fetched_at: float


class ResultCache:
    """Maps a :class:`QueryFingerprint` to its most recent page.

    Prices move, so entries are only served while younger than the
    freshness window.  When full, the least recently used entry is
    dropped.  Every operation is synchronous and guarded by a lock, so
    concurrently completing fetches cannot interleave inside it.
    """

    def __init__(
        self,
        freshness_seconds: float | None = None,
        capacity: int | None = None,
    ) -> None:
        self.freshness_seconds = (
            freshness_seconds
            if freshness_seconds is not None
            else Settings.CACHE_FRESHNESS_SECONDS
        )
        self.capacity = capacity if capacity is not None else Settings.CACHE_CAPACITY
        if self.capacity < 1:
            raise ValueError("Cache capacity must be at least 1")
        self._entries: OrderedDict[QueryFingerprint, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def lookup(self, fingerprint: QueryFingerprint) -> Page | None:
        """Return the cached page if it is still fresh, else ``None``."""
        now = time.time()
        with self._lock:
            entry = self._entries.get(fingerprint)
            if entry is None:
                logger.debug("Cache miss for %s", fingerprint)
                return None
            if now - entry.fetched_at >= self.freshness_seconds:
                del self._entries[fingerprint]
                logger.debug("Cache entry for %s went stale", fingerprint)
                return None
            self._entries.move_to_end(fingerprint)
        logger.info("Cache hit for %s", fingerprint)
        return entry.page

    def store(self, fingerprint: QueryFingerprint, page: Page) -> None:
        """Insert or overwrite the entry for *fingerprint*."""
        with self._lock:
            self._entries[fingerprint] = CacheEntry(page=page, fetched_at=time.time())
            self._entries.move_to_end(fingerprint)
            while len(self._entries) > self.capacity:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted least recently used entry %s", evicted)
        logger.info("Cached %d deals for %s", len(page), fingerprint)

    def invalidate_older_than(self, seconds: float) -> int:
        """Drop entries fetched more than *seconds* ago.

        Returns the number of entries removed.
        """
        now = time.time()
        with self._lock:
            stale = [
                fp
                for fp, entry in self._entries.items()
                if now - entry.fetched_at > seconds
            ]
            for fp in stale:
                del self._entries[fp]
        if stale:
            logger.debug("Invalidated %d cache entries older than %.0fs", len(stale), seconds)
        return len(stale)

    def clear(self) -> int:
        """Purge all cached entries.

        Returns the number of entries that were removed.
        """
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("Cache manually purged (%d entries removed)", count)
        return count
