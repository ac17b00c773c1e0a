"""
Core cache data structures.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from app.matches.models import Fixture


class StatusGroup(Enum):
    """Fixture lifecycle groups with different caching behaviors."""
    LIVE = "live"            # 30 seconds, score/clock changes continuously
    FINISHED = "finished"    # 15 minutes, result is permanent
    PENDING = "pending"      # 5 minutes, may flip to live at any moment
    UNKNOWN = "unknown"      # 1 minute


class CacheSource(Enum):
    """Where a served fixture came from."""
    FRESH = "fresh"       # Cache entry within TTL
    STALE = "stale"       # Expired entry served because upstream could not be used
    UPSTREAM = "upstream" # Fetched from API on this request


@dataclass(frozen=True)
class CacheEntry:
    """
    A cached fixture with the bookkeeping needed for TTL checks.

    Entries are replaced whole on every write; nothing mutates one in place.
    """
    fixture: "Fixture"
    inserted_at: datetime
    ttl: timedelta

    def age(self, now: datetime) -> timedelta:
        """Time since the entry was written."""
        return now - self.inserted_at

    def is_fresh(self, now: datetime) -> bool:
        """Check if the entry is within its TTL (inclusive)."""
        return self.age(now) <= self.ttl


@dataclass
class CacheMeta:
    """
    Metadata about a fixture access, included in API responses.
    """
    last_updated: str  # ISO timestamp of the cache write
    cache_source: str  # "fresh", "stale", or "upstream"
    ttl_seconds: Optional[int] = None
    age_seconds: Optional[float] = None
    reason: Optional[str] = None  # Why stale data was served

    @property
    def is_stale(self) -> bool:
        return self.cache_source == CacheSource.STALE.value

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON response."""
        result = {
            "lastUpdated": self.last_updated,
            "cacheSource": self.cache_source,
            "stale": self.is_stale,
            "ttl": self.ttl_seconds,
            "age": round(self.age_seconds, 1) if self.age_seconds is not None else None,
        }
        if self.reason:
            result["reason"] = self.reason
        return result
