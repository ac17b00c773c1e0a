"""
Shared test fixtures: a controllable clock, an in-memory stand-in for
API-Football, and a provider wired to both.
"""
from datetime import datetime, timedelta, timezone

import pytest

from app.cache.fixture_cache import FixtureCache
from app.matches.provider import FixtureProvider
from app.utils.rate_limiter import RateLimiter

T0 = datetime(2025, 8, 16, 14, 0, tzinfo=timezone.utc)
T0_TIMESTAMP = 1755352800  # T0 as a Unix timestamp

LEAGUE_COUNTRIES = {
    39: {"name": "England", "code": "GB-ENG"},
    135: {"name": "Italy", "code": "IT"},
}


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


def api_fixture(
    fixture_id,
    status="NS",
    league_id=39,
    home_winner=None,
    away_winner=None,
    date="2025-08-16T14:00:00+00:00",
):
    """One element of an API-Football fixtures response."""
    return {
        "fixture": {
            "id": fixture_id,
            "referee": None,
            "timezone": "UTC",
            "date": date,
            "timestamp": T0_TIMESTAMP,
            "venue": {"id": 550, "name": "Anfield", "city": "Liverpool"},
            "status": {"long": "Not Started", "short": status, "elapsed": None},
        },
        "league": {
            "id": league_id,
            "name": f"League {league_id}",
            "country": "England",
            "logo": f"https://media.api-sports.io/football/leagues/{league_id}.png",
            "flag": None,
            "season": 2025,
            "round": "Regular Season - 1",
        },
        "teams": {
            "home": {"id": 40, "name": "Liverpool", "logo": "40.png", "winner": home_winner},
            "away": {"id": 35, "name": "Bournemouth", "logo": "35.png", "winner": away_winner},
        },
        "goals": {"home": None, "away": None},
    }


def api_prediction(home="50%", draw="30%", away="20%", advice="Double chance : Liverpool or draw"):
    """One element of an API-Football predictions response."""
    return {
        "predictions": {
            "advice": advice,
            "percent": {"home": home, "draw": draw, "away": away},
        },
        "comparison": {
            "h2h": {"home": "60%", "away": "40%"},
            "goals": {"home": "55%", "away": "45%"},
            "total": {"home": "58%", "away": "42%"},
        },
    }


class FakeFootballClient:
    """
    In-memory stand-in for FootballAPIClient.

    Set fail_with to make every fixtures call raise; map a league id to an
    exception in leagues to make only that league fail.
    """

    def __init__(self):
        self.fixtures = {}
        self.predictions = {}
        self.leagues = {}
        self.live = []
        self.fail_with = None
        self.prediction_error = None
        self.calls = []

    def get(self, endpoint, params=None):
        params = params or {}
        self.calls.append((endpoint, dict(params)))

        if endpoint == "predictions":
            if self.prediction_error is not None:
                raise self.prediction_error
            item = self.predictions.get(int(params["fixture"]))
            return {"errors": [], "response": [item] if item else []}

        if self.fail_with is not None:
            raise self.fail_with

        if "id" in params:
            item = self.fixtures.get(str(params["id"]))
            return {"errors": [], "response": [item] if item else []}

        if "live" in params:
            return {"errors": [], "response": list(self.live)}

        league = self.leagues.get(params.get("league"), [])
        if isinstance(league, Exception):
            raise league
        return {"errors": [], "response": list(league)}

    def fixture_calls(self):
        return [params for endpoint, params in self.calls if endpoint == "fixtures"]

    def prediction_calls(self):
        return [params for endpoint, params in self.calls if endpoint == "predictions"]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def upstream():
    return FakeFootballClient()


@pytest.fixture
def rate_limiter():
    return RateLimiter(per_minute_limit=10, per_hour_limit=100, cooldown_seconds=60)


@pytest.fixture
def provider(upstream, clock, rate_limiter):
    return FixtureProvider(
        client=upstream,
        cache=FixtureCache(),
        rate_limiter=rate_limiter,
        clock=clock,
        league_countries=LEAGUE_COUNTRIES,
        season=2025,
        single_flight=False,
        max_workers=2,
    )
