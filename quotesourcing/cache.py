"""Time-bounded cache of winning quotes keyed by vehicle + item."""

import logging
import threading
import zlib
from collections.abc import Callable
from datetime import datetime, timedelta

from quotesourcing.models import CacheEntry, CacheStats, Quote, utcnow

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(hours=24)


class QuoteCache:
    """In-process quote cache with a fixed TTL and hit accounting.

    Construct one per process and share it. Access is guarded by key-sharded
    locks, so concurrent lookups for different keys never contend and writes
    to the same key are serialized (last write wins). Expired entries are
    removed lazily on the next lookup past expiry, or via purge_expired().
    """

    SHARDS = 16

    def __init__(
        self,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize cache.

        Args:
            ttl: Lifetime of each entry.
            clock: Time source returning aware datetimes. Defaults to UTC now.
        """
        if ttl <= timedelta(0):
            raise ValueError("Cache TTL must be positive")
        self.ttl = ttl
        self._clock = clock or utcnow
        self._shards: list[dict[str, CacheEntry]] = [{} for _ in range(self.SHARDS)]
        self._locks = [threading.Lock() for _ in range(self.SHARDS)]

    def _shard(self, key: str) -> int:
        return zlib.crc32(key.encode("utf-8")) % self.SHARDS

    def get(self, key: str) -> CacheEntry | None:
        """Return the live entry for key, or None on a miss.

        A hit increments the entry's hit count. An entry at or past its
        expiry is removed and reported as a miss.
        """
        index = self._shard(key)
        with self._locks[index]:
            entry = self._shards[index].get(key)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at:
                del self._shards[index][key]
                logger.debug(f"Cache entry expired: {key[:12]}")
                return None
            entry.hit_count += 1
            return entry

    def put(self, key: str, quote: Quote) -> CacheEntry:
        """Store quote under key, replacing any prior entry.

        Returns:
            The new CacheEntry.
        """
        now = self._clock()
        entry = CacheEntry(key=key, quote=quote, expires_at=now + self.ttl, created_at=now)
        index = self._shard(key)
        with self._locks[index]:
            self._shards[index][key] = entry
        logger.debug(f"Cached quote from {quote.source_kind.value} under {key[:12]}")
        return entry

    def stats(self) -> CacheStats:
        """Summarize live entries: count, total hits, oldest and newest."""
        entries = self._live_entries()
        created = [e.created_at for e in entries]
        return CacheStats(
            total_entries=len(entries),
            total_hits=sum(e.hit_count for e in entries),
            oldest_entry=min(created) if created else None,
            newest_entry=max(created) if created else None,
        )

    def clear(self) -> int:
        """Empty the cache.

        Returns:
            Number of entries removed.
        """
        removed = 0
        for index, lock in enumerate(self._locks):
            with lock:
                removed += len(self._shards[index])
                self._shards[index].clear()
        logger.info(f"Quote cache cleared ({removed} entries)")
        return removed

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the count removed."""
        now = self._clock()
        removed = 0
        for index, lock in enumerate(self._locks):
            with lock:
                shard = self._shards[index]
                expired = [k for k, e in shard.items() if now >= e.expires_at]
                for k in expired:
                    del shard[k]
                removed += len(expired)
        return removed

    def _live_entries(self) -> list[CacheEntry]:
        now = self._clock()
        entries: list[CacheEntry] = []
        for index, lock in enumerate(self._locks):
            with lock:
                entries.extend(e for e in self._shards[index].values() if now < e.expires_at)
        return entries

    def __len__(self) -> int:
        return len(self._live_entries())

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        index = self._shard(key)
        with self._locks[index]:
            entry = self._shards[index].get(key)
            return entry is not None and self._clock() < entry.expires_at
