"""
Fixture caching with status-dependent TTL and request coalescing.
"""
from .core import CacheEntry, CacheMeta, CacheSource, StatusGroup
from .ttl_policies import (
    TTL_CONFIG,
    status_group,
    is_live_status,
    is_finished_status,
    ttl_for,
)
from .coalescer import RequestCoalescer
from .fixture_cache import FixtureCache, fixture_key

__all__ = [
    # Core types
    "CacheEntry",
    "CacheMeta",
    "CacheSource",
    "StatusGroup",
    # TTL policies
    "TTL_CONFIG",
    "status_group",
    "is_live_status",
    "is_finished_status",
    "ttl_for",
    # Coalescing
    "RequestCoalescer",
    # Store
    "FixtureCache",
    "fixture_key",
]
