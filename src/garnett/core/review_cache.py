"""
In-memory LRU + TTL cache for scraped RateMyProfessor data.

One instance is built at application startup and handed to the review
fetcher. Entries are keyed by the professor id taken from the review page
URL. Failed scrapes are stored too (as ReviewFetchError) so a flaky upstream
is not hit again until the entry expires.
"""

import logging
import threading
import time
from collections import OrderedDict
from typing import Callable, Dict, Generic, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")

CACHE_DURATION = 24 * 60 * 60  # 24 hours
MAX_CACHE_SIZE = 1500  # ~6MB of professor data


class ReviewCache(Generic[V]):
    """Bounded mapping of professor id -> (record, inserted_at).

    Iteration order of the underlying OrderedDict is recency order: the first
    key is the least recently used one.
    """

    def __init__(
        self,
        max_size: int = MAX_CACHE_SIZE,
        ttl: float = CACHE_DURATION,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[V, float]]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, prof_id: object) -> bool:
        return prof_id in self._entries

    def _is_expired(self, inserted_at: float, now: float) -> bool:
        return now - inserted_at > self.ttl

    def get(self, prof_id: str) -> Optional[V]:
        """Return the cached record, or None if absent or expired.

        A hit moves the entry to the most-recently-used position; an expired
        entry is deleted.
        """
        with self._lock:
            cached = self._entries.get(prof_id)
            if cached is None:
                return None

            data, inserted_at = cached
            if self._is_expired(inserted_at, self._clock()):
                logger.info(f"Cache expired for professor {prof_id}")
                del self._entries[prof_id]
                return None

            logger.debug(f"Cache hit for professor {prof_id}")
            self._entries.move_to_end(prof_id)
            return data

    def put(self, prof_id: str, data: V) -> None:
        """Insert or overwrite an entry, evicting the LRU entry when full."""
        with self._lock:
            if prof_id in self._entries:
                del self._entries[prof_id]
            elif len(self._entries) >= self.max_size:
                oldest_key, _ = self._entries.popitem(last=False)
                logger.info(
                    f"Cache evicted oldest entry: {oldest_key} (cache full at {self.max_size})"
                )

            self._entries[prof_id] = (data, self._clock())
            logger.debug(
                f"Cached data for professor {prof_id} (cache size: {len(self._entries)}/{self.max_size})"
            )

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> Dict[str, object]:
        """Cache stats for monitoring."""
        with self._lock:
            now = self._clock()
            expired = sum(
                1
                for _, inserted_at in self._entries.values()
                if self._is_expired(inserted_at, now)
            )
            size = len(self._entries)
            return {
                "size": size,
                "maxSize": self.max_size,
                "valid": size - expired,
                "expired": expired,
                "utilizationPercent": round(size / self.max_size * 100),
                # First 10 ids, least recently used first
                "entries": list(self._entries.keys())[:10],
            }
