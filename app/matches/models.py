"""
Data models for fixtures served to the betting backend.

These dataclasses are the canonical shape of fixture data, independent of the
raw API-Football payload. All of them are frozen: a new fetch produces a new
value and cached values can be shared between threads without copying.
"""
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Dict, List, Optional

from app.cache.core import CacheMeta, CacheSource
from app.cache.ttl_policies import is_finished_status, is_live_status
from app.utils.helpers import format_kickoff_time, safe_int, safe_str, safe_upper
from config.settings import settings


def fixture_widget(fixture_id: int) -> str:
    """
    HTML embed of the API-Sports game widget for one fixture.

    The widget key is a separate, browser-facing key (widget_api_key); the
    server's API-Football key is never put in a response.
    """
    return (
        f'<div id="wg-api-football-game"'
        f' data-host="{settings.api_football_host}"'
        f' data-key="{settings.widget_api_key or ""}"'
        f' data-id="{fixture_id}"'
        f' data-theme=""'
        f' data-refresh="{settings.widget_refresh_seconds}"'
        f' data-show-errors="false"'
        f' data-show-logos="true"></div>'
        f'<script type="module" src="{settings.widget_script_url}"></script>'
    )


@dataclass(frozen=True)
class TeamInfo:
    """Basic team information."""
    id: int
    name: str
    logo: str


@dataclass(frozen=True)
class LeagueInfo:
    """League a fixture belongs to."""
    id: int
    name: str
    country: str
    logo: str
    flag: Optional[str]
    round: str  # "Regular Season - 1"


@dataclass(frozen=True)
class Country:
    """Country of a configured league scope."""
    id: int  # League id the country was configured for
    name: str
    code: str


@dataclass(frozen=True)
class MatchStats:
    """Outcome-relevant state used for bet resolution."""
    status: str  # "FT", "1H", "NS", ...
    is_home_winner: Optional[bool] = None
    is_away_winner: Optional[bool] = None

    @property
    def is_live(self) -> bool:
        return is_live_status(self.status)

    @property
    def is_finished(self) -> bool:
        return is_finished_status(self.status)

    @property
    def result(self) -> Optional[str]:
        """Winning side ("home"/"away") or "draw" once the match is finished."""
        if not self.is_finished:
            return None
        if self.is_home_winner:
            return "home"
        if self.is_away_winner:
            return "away"
        return "draw"


@dataclass(frozen=True)
class Prediction:
    """Provider prediction and comparison figures for a fixture."""
    home_percent: str  # "45%"
    draw_percent: str
    away_percent: str
    advice: Optional[str] = None
    h2h_home: Optional[str] = None
    h2h_away: Optional[str] = None
    h2h_goals_home: Optional[str] = None
    h2h_goals_away: Optional[str] = None
    h2h_total_home: Optional[str] = None
    h2h_total_away: Optional[str] = None

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "Prediction":
        """Build from one element of the predictions endpoint response."""
        predictions = item.get("predictions") or {}
        percent = predictions.get("percent") or {}
        comparison = item.get("comparison") or {}
        h2h = comparison.get("h2h") or {}
        goals = comparison.get("goals") or {}
        total = comparison.get("total") or {}

        return cls(
            home_percent=safe_str(percent.get("home"), "0%"),
            draw_percent=safe_str(percent.get("draw"), "0%"),
            away_percent=safe_str(percent.get("away"), "0%"),
            advice=predictions.get("advice"),
            h2h_home=h2h.get("home"),
            h2h_away=h2h.get("away"),
            h2h_goals_home=goals.get("home"),
            h2h_goals_away=goals.get("away"),
            h2h_total_home=total.get("home"),
            h2h_total_away=total.get("away"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "homePercent": self.home_percent,
            "drawPercent": self.draw_percent,
            "awayPercent": self.away_percent,
            "advice": self.advice,
            "h2hHome": self.h2h_home,
            "h2hAway": self.h2h_away,
            "h2hGoalsHome": self.h2h_goals_home,
            "h2hGoalsAway": self.h2h_goals_away,
            "h2hTotalHome": self.h2h_total_home,
            "h2hTotalAway": self.h2h_total_away,
        }


@dataclass(frozen=True)
class Fixture:
    """
    A single scheduled match and its metadata/result.

    This is the record handed to bet resolution and listing endpoints.
    """
    id: int
    date: str  # ISO datetime string
    time: str  # "HH:MM" kickoff in the fixture's timezone
    timezone: str
    venue: Optional[str]
    league: LeagueInfo
    home_team: TeamInfo
    away_team: TeamInfo
    match_stats: MatchStats
    home_goals: Optional[int] = None
    away_goals: Optional[int] = None
    country: Optional[Country] = None
    prediction: Optional[Prediction] = None

    @classmethod
    def from_api(
        cls,
        item: Dict[str, Any],
        country: Optional[Country] = None,
        prediction: Optional[Prediction] = None,
    ) -> "Fixture":
        """Build from one element of the fixtures endpoint response."""
        fixture_info = item.get("fixture") or {}
        league = item.get("league") or {}
        teams = item.get("teams") or {}
        home = teams.get("home") or {}
        away = teams.get("away") or {}
        goals = item.get("goals") or {}
        status = fixture_info.get("status") or {}
        tz_name = safe_str(fixture_info.get("timezone"), "UTC")

        return cls(
            id=safe_int(fixture_info.get("id")),
            date=safe_str(fixture_info.get("date")),
            time=format_kickoff_time(fixture_info.get("timestamp"), tz_name),
            timezone=tz_name,
            venue=(fixture_info.get("venue") or {}).get("name"),
            league=LeagueInfo(
                id=safe_int(league.get("id")),
                name=safe_str(league.get("name")),
                country=safe_str(league.get("country")),
                logo=safe_str(league.get("logo")),
                flag=league.get("flag"),
                round=safe_str(league.get("round")),
            ),
            home_team=TeamInfo(
                id=safe_int(home.get("id")),
                name=safe_str(home.get("name")),
                logo=safe_str(home.get("logo")),
            ),
            away_team=TeamInfo(
                id=safe_int(away.get("id")),
                name=safe_str(away.get("name")),
                logo=safe_str(away.get("logo")),
            ),
            match_stats=MatchStats(
                status=safe_upper(status.get("short")),
                is_home_winner=home.get("winner"),
                is_away_winner=away.get("winner"),
            ),
            home_goals=goals.get("home"),
            away_goals=goals.get("away"),
            country=country,
            prediction=prediction,
        )

    @property
    def status(self) -> str:
        return self.match_stats.status

    def with_prediction(self, prediction: Optional[Prediction]) -> "Fixture":
        """Return a copy carrying the given prediction."""
        return replace(self, prediction=prediction)

    def with_country(self, country: Optional[Country]) -> "Fixture":
        return replace(self, country=country)

    @property
    def widget(self) -> str:
        """API-Sports game widget embed for this fixture."""
        return fixture_widget(self.id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            "id": self.id,
            "date": self.date,
            "time": self.time,
            "timezone": self.timezone,
            "venue": self.venue,
            "leagueId": self.league.id,
            "leagueCountry": self.league.country,
            "leagueName": self.league.name,
            "leagueLogo": self.league.logo,
            "leagueFlag": self.league.flag,
            "matchDay": self.league.round,
            "homeTeamId": self.home_team.id,
            "homeTeam": self.home_team.name,
            "homeTeamLogo": self.home_team.logo,
            "awayTeamId": self.away_team.id,
            "awayTeam": self.away_team.name,
            "awayTeamLogo": self.away_team.logo,
            "widget": self.widget,
            "homeGoals": self.home_goals,
            "awayGoals": self.away_goals,
            "country": (
                {"id": self.country.id, "name": self.country.name, "code": self.country.code}
                if self.country else None
            ),
            "prediction": self.prediction.to_dict() if self.prediction else None,
            "matchStats": {
                "status": self.match_stats.status,
                "isHomeWinner": self.match_stats.is_home_winner,
                "isAwayWinner": self.match_stats.is_away_winner,
            },
        }


@dataclass(frozen=True)
class FixtureResult:
    """
    A fixture plus how it was obtained.

    source distinguishes fresh cache hits, upstream fetches and degraded
    stale serves; reason is set only for stale serves.
    """
    fixture: Fixture
    source: CacheSource
    inserted_at: Optional[str] = None  # ISO timestamp of the cache write
    age_seconds: Optional[float] = None
    ttl_seconds: Optional[int] = None
    reason: Optional[str] = None

    @property
    def is_stale(self) -> bool:
        return self.source is CacheSource.STALE

    @property
    def meta(self) -> CacheMeta:
        return CacheMeta(
            last_updated=self.inserted_at or "",
            cache_source=self.source.value,
            ttl_seconds=self.ttl_seconds,
            age_seconds=self.age_seconds,
            reason=self.reason,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {**self.fixture.to_dict(), "meta": self.meta.to_dict()}


@dataclass
class LeagueGroup:
    """Fixtures of one configured league."""
    league_id: int
    league_name: str
    country: Optional[Country]
    fixtures: List[Fixture] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "leagueId": self.league_id,
            "leagueName": self.league_name,
            "country": (
                {"id": self.country.id, "name": self.country.name, "code": self.country.code}
                if self.country else None
            ),
            "fixtures": [f.to_dict() for f in self.fixtures],
        }


@dataclass
class GroupedFixtures:
    """Listing result grouped by league/country."""
    from_date: date
    to_date: date
    season: int
    groups: List[LeagueGroup] = field(default_factory=list)
    failed_leagues: Dict[int, str] = field(default_factory=dict)  # league id -> error kind

    @property
    def all_fixtures(self) -> List[Fixture]:
        fixtures = [f for group in self.groups for f in group.fixtures]
        fixtures.sort(key=lambda f: f.date or "")
        return fixtures

    @property
    def total(self) -> int:
        return sum(len(group.fixtures) for group in self.groups)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_date.isoformat(),
            "to": self.to_date.isoformat(),
            "season": self.season,
            "total": self.total,
            "groups": [group.to_dict() for group in self.groups],
            "failedLeagues": {str(k): v for k, v in self.failed_leagues.items()},
        }
