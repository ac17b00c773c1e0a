"""
Fixture provider: cache, rate limiter and upstream client in one place.

Single fixtures are served from the per-fixture cache while fresh, fetched
from API-Football when not, and served stale when upstream can't be used
(rate limited, down, or misbehaving). Only when nothing was ever cached does
the failure reach the caller.
"""
import logging
import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from app.api_client import FootballAPIClient
from app.cache.coalescer import RequestCoalescer
from app.cache.core import CacheSource, StatusGroup
from app.cache.fixture_cache import FixtureCache, FixtureId, fixture_key, utcnow
from app.cache.ttl_policies import ttl_for
from app.errors import (
    CoalescedFetchTimeout,
    FixtureNotFound,
    FixtureServiceError,
    RateLimited,
    UpstreamBadStatus,
    UpstreamError,
    UpstreamMalformedResponse,
)
from app.utils.helpers import safe_int
from app.utils.periodic import PeriodicTask
from app.utils.rate_limiter import RateLimiter
from config.settings import settings

from .models import Country, Fixture, FixtureResult, GroupedFixtures, LeagueGroup, Prediction

logger = logging.getLogger("matches.provider")

LIVE_SCOPE = "live"


def _league_scope(league_id: int) -> str:
    return f"league:{league_id}"


def _prediction_scope(fixture_id: FixtureId) -> str:
    return f"prediction:{fixture_id}"


def _parse_fixture(item: Any, source: str, country: Optional[Country] = None) -> Fixture:
    """Fixture.from_api, with a wrongly shaped item reported as a malformed response."""
    try:
        return Fixture.from_api(item, country=country)
    except (AttributeError, TypeError, KeyError, ValueError) as e:
        raise UpstreamMalformedResponse(f"Unexpected fixture shape in {source}: {e}") from e


class FixtureProvider:
    """
    Orchestrates fixture access for bet resolution and listings.

    Cache, rate limiter and client are injected so tests (and multiple
    providers in one process) never share state by accident.
    """

    def __init__(
        self,
        client: Optional[FootballAPIClient] = None,
        cache: Optional[FixtureCache] = None,
        rate_limiter: Optional[RateLimiter] = None,
        clock: Optional[Callable[[], datetime]] = None,
        ttl_config: Optional[Dict[StatusGroup, int]] = None,
        league_countries: Optional[Dict[int, Dict[str, str]]] = None,
        season: Optional[int] = None,
        single_flight: Optional[bool] = None,
        max_workers: Optional[int] = None,
        coalescer: Optional[RequestCoalescer] = None,
    ):
        self._client = client or FootballAPIClient()
        self.cache = cache if cache is not None else FixtureCache()
        self.rate_limiter = rate_limiter or RateLimiter(
            per_minute_limit=settings.rate_limit_per_minute,
            per_hour_limit=settings.rate_limit_per_hour,
            cooldown_seconds=settings.rate_limit_cooldown_seconds,
            global_per_minute_limit=settings.global_rate_limit_per_minute,
            global_per_hour_limit=settings.global_rate_limit_per_hour,
        )
        self._clock = clock or utcnow
        self._ttl_config = ttl_config
        self._countries = {
            int(league_id): Country(id=int(league_id), name=c["name"], code=c["code"])
            for league_id, c in (league_countries or settings.league_countries).items()
        }
        self.season = season or settings.current_season
        if single_flight is None:
            single_flight = coalescer is not None or settings.fixture_single_flight
        if single_flight and coalescer is None:
            coalescer = RequestCoalescer(timeout=settings.request_timeout_seconds * 3)
        self._coalescer = coalescer if single_flight else None
        self._max_workers = max_workers or settings.listing_workers

        self._tasks = [
            PeriodicTask(
                "fixture-cache-sweep",
                settings.cache_sweep_interval_seconds,
                self._sweep_cache,
            ),
            PeriodicTask(
                "rate-limiter-prune",
                settings.rate_limiter_prune_interval_seconds,
                self._prune_rate_limiter,
            ),
        ]

    # ===== SINGLE FIXTURE =====

    def get_single_fixture(
        self,
        fixture_id: FixtureId,
        include_prediction: bool = False,
        force_refresh: bool = False,
    ) -> FixtureResult:
        """
        Get one fixture, preferring fresh cache, then upstream, then stale cache.

        Args:
            fixture_id: API-Football fixture id
            include_prediction: Attach the provider's prediction (best effort)
            force_refresh: Skip the fresh-cache check

        Returns:
            FixtureResult whose source tells fresh, upstream and stale apart

        Raises:
            RateLimited: Limiter refused and nothing is cached
            UpstreamError: Upstream failed (or a shared in-flight fetch
                timed out) and nothing is cached
            FixtureNotFound: Upstream has no such fixture
        """
        key = fixture_key(fixture_id)

        if not force_refresh:
            now = self._clock()
            fixture = self.cache.get_fresh(key, now)
            if fixture is not None:
                if include_prediction and fixture.prediction is None:
                    fixture = self._attach_prediction(key, fixture)
                return self._cached_result(key, fixture, CacheSource.FRESH, now)
        else:
            logger.info(f"FORCE REFRESH: fixture {key}")

        if self._coalescer is None:
            return self._refresh(key, include_prediction)
        try:
            return self._coalescer.run(
                f"{key}:{int(include_prediction)}",
                lambda: self._refresh(key, include_prediction),
            )
        except CoalescedFetchTimeout as e:
            stale = self._stale_result(key, self._clock(), reason=e.kind)
            if stale is None:
                raise
            logger.warning(f"In-flight fetch for fixture {key} too slow, serving stale data")
            return stale

    def _attach_prediction(self, key: str, fixture: Fixture) -> Fixture:
        """
        Add a prediction to a fresh cached fixture and keep it in the cache.

        The entry keeps its inserted_at and ttl, so enrichment never extends
        freshness. If no prediction can be had the fixture comes back as is
        and the next request with include_prediction tries again.
        """
        prediction = self._fetch_prediction(fixture.id)
        if prediction is None:
            return fixture
        enriched = fixture.with_prediction(prediction)
        self.cache.replace_if_current(key, fixture, enriched)
        return enriched

    def _refresh(self, key: str, include_prediction: bool) -> FixtureResult:
        now = self._clock()

        if self.rate_limiter.is_in_cooldown(now) or not self.rate_limiter.can_call(key, now):
            stale = self._stale_result(key, now, reason=RateLimited.kind)
            if stale is not None:
                logger.warning(f"Rate limited; serving stale fixture {key} [age={stale.age_seconds}s]")
                return stale
            raise RateLimited(key, retry_after=self._retry_after(now))

        self.rate_limiter.record_call(key, now)
        logger.info(f"CACHE MISS: fixture {key}")
        try:
            fixture = self._fetch_fixture(key)
        except UpstreamError as e:
            self._note_upstream_breach(e, now)
            stale = self._stale_result(key, now, reason=e.kind)
            if stale is None:
                logger.error(f"Fetching fixture {key} failed with nothing cached: {e}")
                raise
            logger.warning(f"Upstream failed for fixture {key}, serving stale data: {e}")
            return stale

        if include_prediction:
            fixture = fixture.with_prediction(self._fetch_prediction(fixture.id))

        ttl = ttl_for(fixture.status, self._ttl_config)
        entry = self.cache.put(key, fixture, ttl, self._clock())
        return FixtureResult(
            fixture=fixture,
            source=CacheSource.UPSTREAM,
            inserted_at=entry.inserted_at.isoformat(),
            age_seconds=0.0,
            ttl_seconds=int(ttl.total_seconds()),
        )

    def _fetch_fixture(self, key: str) -> Fixture:
        data = self._client.get("fixtures", {"id": key})
        response = data["response"]
        if not response:
            raise FixtureNotFound(key)
        return _parse_fixture(response[0], source=f"fixture {key}")

    def _fetch_prediction(self, fixture_id: FixtureId) -> Optional[Prediction]:
        """
        Best-effort prediction fetch.

        Any failure (including a rate limiter refusal) is logged and yields
        None; a fixture is still useful without its prediction.
        """
        scope = _prediction_scope(fixture_id)
        now = self._clock()
        if self.rate_limiter.is_in_cooldown(now) or not self.rate_limiter.can_call(scope, now):
            logger.warning(f"Skipping prediction for fixture {fixture_id}: rate limited")
            return None

        self.rate_limiter.record_call(scope, now)
        try:
            data = self._client.get("predictions", {"fixture": fixture_id})
            response = data["response"]
            if not response:
                logger.info(f"No prediction available for fixture {fixture_id}")
                return None
            return Prediction.from_api(response[0])
        except Exception as ex:
            if isinstance(ex, UpstreamError):
                self._note_upstream_breach(ex, now)
            logger.warning(f"Failed to fetch prediction for fixture {fixture_id}: {ex}")
            return None

    def _cached_result(
        self,
        key: str,
        fixture: Fixture,
        source: CacheSource,
        now: datetime,
        reason: Optional[str] = None,
    ) -> FixtureResult:
        entry = self.cache.get_entry(key)
        if entry is None:
            # Invalidated between the read and now
            return FixtureResult(fixture=fixture, source=source, reason=reason)
        return FixtureResult(
            fixture=fixture,
            source=source,
            inserted_at=entry.inserted_at.isoformat(),
            age_seconds=round(entry.age(now).total_seconds(), 1),
            ttl_seconds=int(entry.ttl.total_seconds()),
            reason=reason,
        )

    def _stale_result(self, key: str, now: datetime, reason: str) -> Optional[FixtureResult]:
        fixture = self.cache.get_any(key)
        if fixture is None:
            return None
        return self._cached_result(key, fixture, CacheSource.STALE, now, reason=reason)

    def _note_upstream_breach(self, error: UpstreamError, now: datetime) -> None:
        if isinstance(error, UpstreamBadStatus) and error.status_code == 429:
            self.rate_limiter.note_breach(now, reason="upstream HTTP 429")
        elif isinstance(error, UpstreamMalformedResponse) and error.rate_limited:
            self.rate_limiter.note_breach(now, reason="upstream quota error")

    def _retry_after(self, now: datetime) -> Optional[int]:
        remaining = self.rate_limiter.stats(now)["cooldown_remaining_seconds"]
        return math.ceil(remaining) if remaining else None

    # ===== LISTINGS =====

    def get_fixtures(
        self,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        league_ids: Optional[Iterable[int]] = None,
    ) -> GroupedFixtures:
        """
        Get upcoming fixtures of the configured leagues, with predictions.

        Leagues are fetched in parallel. A league that fails is reported in
        failed_leagues; only if every league fails is the first error raised.
        Each listed fixture is also written to the per-fixture cache.
        """
        from_date = from_date or self._clock().date()
        to_date = to_date or from_date + timedelta(days=settings.fixtures_window_days)
        if to_date < from_date:
            raise ValueError(f"to_date {to_date} is before from_date {from_date}")

        league_ids = list(league_ids) if league_ids is not None else list(self._countries)
        result = GroupedFixtures(from_date=from_date, to_date=to_date, season=self.season)
        if not league_ids:
            return result

        groups: Dict[int, LeagueGroup] = {}
        errors: List[FixtureServiceError] = []

        with ThreadPoolExecutor(max_workers=min(len(league_ids), self._max_workers)) as executor:
            future_to_league = {
                executor.submit(self._fetch_league, lid, from_date, to_date): lid
                for lid in league_ids
            }
            for future in as_completed(future_to_league):
                league_id = future_to_league[future]
                try:
                    groups[league_id] = future.result()
                except FixtureServiceError as e:
                    logger.error(f"Error fetching league {league_id}: {e}")
                    result.failed_leagues[league_id] = e.kind
                    errors.append(e)

        if not groups and errors:
            raise errors[0]

        result.groups = [groups[lid] for lid in league_ids if lid in groups]
        return result

    def _fetch_league(self, league_id: int, from_date: date, to_date: date) -> LeagueGroup:
        scope = _league_scope(league_id)
        now = self._clock()
        if self.rate_limiter.is_in_cooldown(now) or not self.rate_limiter.can_call(scope, now):
            raise RateLimited(scope, retry_after=self._retry_after(now))
        self.rate_limiter.record_call(scope, now)

        try:
            data = self._client.get(
                "fixtures",
                {
                    "league": league_id,
                    "season": self.season,
                    "from": from_date.isoformat(),
                    "to": to_date.isoformat(),
                },
            )
        except UpstreamError as e:
            self._note_upstream_breach(e, now)
            raise

        country = self._countries.get(league_id)
        # Parse the whole league before caching any of it
        parsed = [
            _parse_fixture(item, source=f"league {league_id}", country=country)
            for item in data["response"]
        ]
        predictions = self._fetch_predictions([f.id for f in parsed])

        fixtures = []
        for fixture in parsed:
            fixture = fixture.with_prediction(predictions.get(fixture.id))
            self._cache_fixture(fixture)
            fixtures.append(fixture)
        fixtures.sort(key=lambda f: f.date or "")

        league_name = fixtures[0].league.name if fixtures else ""
        logger.info(f"Fetched {len(fixtures)} fixtures for league {league_id}")
        return LeagueGroup(
            league_id=league_id,
            league_name=league_name,
            country=country,
            fixtures=fixtures,
        )

    def _fetch_predictions(self, fixture_ids: List[Any]) -> Dict[int, Optional[Prediction]]:
        """Fetch predictions in parallel; failures leave that fixture without one."""
        ids = [safe_int(fid) for fid in fixture_ids if fid is not None]
        if not ids:
            return {}
        with ThreadPoolExecutor(max_workers=min(len(ids), self._max_workers)) as executor:
            futures = {fid: executor.submit(self._fetch_prediction, fid) for fid in ids}
            return {fid: future.result() for fid, future in futures.items()}

    def get_live_fixtures(self) -> List[Fixture]:
        """
        Get in-play fixtures of the configured leagues.

        Predictions are not fetched for live fixtures. Results are written to
        the per-fixture cache with the live TTL.
        """
        now = self._clock()
        if self.rate_limiter.is_in_cooldown(now) or not self.rate_limiter.can_call(LIVE_SCOPE, now):
            raise RateLimited(LIVE_SCOPE, retry_after=self._retry_after(now))
        self.rate_limiter.record_call(LIVE_SCOPE, now)

        live_param = "-".join(str(lid) for lid in self._countries)
        try:
            data = self._client.get("fixtures", {"live": live_param})
        except UpstreamError as e:
            self._note_upstream_breach(e, now)
            raise

        parsed = [_parse_fixture(item, source="live fixtures") for item in data["response"]]

        fixtures = []
        for fixture in parsed:
            fixture = fixture.with_country(self._countries.get(fixture.league.id))
            self._cache_fixture(fixture)
            fixtures.append(fixture)
        fixtures.sort(key=lambda f: f.date or "")
        return fixtures

    def _cache_fixture(self, fixture: Fixture) -> None:
        self.cache.put(
            fixture.id,
            fixture,
            ttl_for(fixture.status, self._ttl_config),
            self._clock(),
        )

    # ===== CACHE MANAGEMENT =====

    def invalidate_fixture_cache(self, fixture_id: FixtureId) -> bool:
        """Force the next request for this fixture to go upstream."""
        return self.cache.invalidate(fixture_id)

    def clear_all_fixture_cache(self) -> int:
        """Clear all fixture cache entries. Returns number cleared."""
        return self.cache.invalidate_all()

    def get_cache_stats(self) -> Dict[str, Any]:
        return {"size": len(self.cache), "entries": self.cache.keys()}

    def get_rate_limiter_stats(self) -> Dict[str, Any]:
        return self.rate_limiter.stats(self._clock())

    def get_detailed_cache_stats(self) -> Dict[str, Any]:
        """Cache health, rate limiter state and background task status."""
        now = self._clock()
        return {
            **self.cache.stats(now),
            "rate_limiter": self.rate_limiter.stats(now),
            "coalescer": self._coalescer.get_stats() if self._coalescer else None,
            "background_tasks": {
                task.name: {
                    "running": task.is_running,
                    "interval_seconds": task.interval,
                    "runs": task.runs,
                    "failures": task.failures,
                }
                for task in self._tasks
            },
        }

    # ===== LIFECYCLE =====

    def start_background_tasks(self) -> None:
        """Start the periodic cache sweep and rate limiter prune."""
        for task in self._tasks:
            task.start()

    def shutdown(self) -> None:
        """Stop background tasks. Safe to call more than once."""
        for task in self._tasks:
            task.stop()

    def _sweep_cache(self) -> int:
        return self.cache.sweep(self._clock())

    def _prune_rate_limiter(self) -> int:
        return self.rate_limiter.prune(self._clock())


# Process-wide provider, created on first use
_provider: Optional[FixtureProvider] = None


def get_fixture_provider() -> FixtureProvider:
    """Get or create the application's fixture provider."""
    global _provider
    if _provider is None:
        _provider = FixtureProvider()
    return _provider
