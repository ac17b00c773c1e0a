"""
In-memory fixture cache with per-entry TTL.

Expired entries are not returned by get_fresh() but stay retrievable through
get_any() until the periodic sweep removes them, so the provider can fall
back to them when upstream is unavailable.
"""
import json
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Union

from .core import CacheEntry

logger = logging.getLogger("cache.fixtures")

FixtureId = Union[str, int]


def fixture_key(fixture_id: FixtureId) -> str:
    """Normalize a fixture id so 100 and "100" address the same entry."""
    return str(fixture_id).strip()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FixtureCache:
    """
    Thread-safe map of fixture id -> CacheEntry.

    A single coarse lock guards the map; entries are immutable so readers
    never need more than the lookup itself.
    """

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._stats = {
            "hits": 0,
            "misses": 0,
            "stale_reads": 0,
            "writes": 0,
            "invalidations": 0,
            "swept": 0,
        }

    def get_fresh(self, fixture_id: FixtureId, now: Optional[datetime] = None):
        """
        Return the cached fixture only if it is within its TTL.

        A stale entry is left in place (removal is the sweeper's job).
        """
        now = now or utcnow()
        key = fixture_key(fixture_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not entry.is_fresh(now):
                self._stats["misses"] += 1
                return None
            self._stats["hits"] += 1

        logger.debug(f"CACHE HIT (fresh): fixture {key} [age={entry.age(now).total_seconds():.1f}s]")
        return entry.fixture

    def get_any(self, fixture_id: FixtureId):
        """Return the cached fixture regardless of freshness."""
        entry = self.get_entry(fixture_id)
        if entry is None:
            return None
        with self._lock:
            self._stats["stale_reads"] += 1
        return entry.fixture

    def get_entry(self, fixture_id: FixtureId) -> Optional[CacheEntry]:
        """Return the whole entry (value plus bookkeeping) without counting it."""
        with self._lock:
            return self._entries.get(fixture_key(fixture_id))

    def put(
        self,
        fixture_id: FixtureId,
        fixture: Any,
        ttl: timedelta,
        now: Optional[datetime] = None,
    ) -> CacheEntry:
        """Store a fixture, replacing any existing entry."""
        if ttl is None:
            raise ValueError("A cache entry requires an explicit TTL")
        entry = CacheEntry(fixture=fixture, inserted_at=now or utcnow(), ttl=ttl)
        key = fixture_key(fixture_id)
        with self._lock:
            self._entries[key] = entry
            self._stats["writes"] += 1
        logger.debug(f"Cached fixture {key} [ttl={ttl.total_seconds():.0f}s]")
        return entry

    def replace_if_current(self, fixture_id: FixtureId, current: Any, fixture: Any) -> bool:
        """
        Swap in an enriched copy of the cached fixture, keeping the entry's
        inserted_at and ttl.

        Does nothing (returns False) if the entry was removed or rewritten
        since `current` was read from it.
        """
        key = fixture_key(fixture_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.fixture is not current:
                return False
            self._entries[key] = CacheEntry(
                fixture=fixture,
                inserted_at=entry.inserted_at,
                ttl=entry.ttl,
            )
            self._stats["writes"] += 1
        logger.debug(f"Enriched cached fixture {key}")
        return True

    def invalidate(self, fixture_id: FixtureId) -> bool:
        """
        Invalidate a specific cache entry.

        Returns:
            True if entry was found and removed
        """
        key = fixture_key(fixture_id)
        with self._lock:
            if key in self._entries:
                del self._entries[key]
                self._stats["invalidations"] += 1
                logger.info(f"Invalidated cache: fixture {key}")
                return True
            return False

    def invalidate_all(self) -> int:
        """
        Clear all cache entries.

        Returns:
            Number of entries cleared
        """
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._stats["invalidations"] += count
        logger.info(f"Cleared {count} fixture cache entries")
        return count

    def sweep(self, now: Optional[datetime] = None) -> int:
        """
        Remove every entry that is past its TTL.

        Returns:
            Number of entries removed
        """
        now = now or utcnow()
        with self._lock:
            expired = [k for k, e in self._entries.items() if not e.is_fresh(now)]
            for key in expired:
                del self._entries[key]
            self._stats["swept"] += len(expired)

        if expired:
            logger.info(f"Cleaned up {len(expired)} expired cache entries")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, fixture_id: FixtureId) -> bool:
        with self._lock:
            return fixture_key(fixture_id) in self._entries

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries.keys())

    def stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Introspection snapshot. Does not modify the cache.

        approximate_byte_size is the length of the JSON-serialized entries,
        which tracks growth well enough for monitoring.
        """
        now = now or utcnow()
        with self._lock:
            entries = list(self._entries.items())
            counters = dict(self._stats)

        serialized = [
            {
                "fixture": _serializable(entry.fixture),
                "insertedAt": entry.inserted_at.isoformat(),
                "ttl": entry.ttl.total_seconds(),
            }
            for _, entry in entries
        ]
        byte_size = len(json.dumps(serialized, default=str)) if serialized else 0
        inserted = [entry.inserted_at for _, entry in entries]
        fresh_count = sum(1 for _, entry in entries if entry.is_fresh(now))

        lookups = counters["hits"] + counters["misses"]
        hit_rate = (counters["hits"] / lookups * 100) if lookups > 0 else 0

        return {
            "size": len(entries),
            "keys": [key for key, _ in entries],
            "fresh_entries": fresh_count,
            "stale_entries": len(entries) - fresh_count,
            "approximate_byte_size": byte_size,
            "average_entry_size": (byte_size / len(entries)) if entries else 0,
            "oldest_inserted_at": min(inserted).isoformat() if inserted else None,
            "newest_inserted_at": max(inserted).isoformat() if inserted else None,
            "hit_rate_percent": round(hit_rate, 1),
            **counters,
        }


def _serializable(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return value
