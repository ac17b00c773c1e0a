"""
Fixture access for bet resolution and listings.

Wraps API-Football behind a per-fixture cache whose TTL follows the match
status, a rate limiter, and stale-on-error fallback.
"""
from .models import (
    Fixture,
    FixtureResult,
    GroupedFixtures,
    LeagueGroup,
    LeagueInfo,
    MatchStats,
    Prediction,
    TeamInfo,
    Country,
)
from .provider import (
    FixtureProvider,
    get_fixture_provider,
)

__all__ = [
    # Models
    "Fixture",
    "FixtureResult",
    "GroupedFixtures",
    "LeagueGroup",
    "LeagueInfo",
    "MatchStats",
    "Prediction",
    "TeamInfo",
    "Country",
    # Provider
    "FixtureProvider",
    "get_fixture_provider",
]
