"""
Fixture Service - Main FastAPI Application
Fixture data from API-Football behind a status-aware cache
"""
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query

from app.errors import (
    FixtureNotFound,
    FixtureServiceError,
    RateLimited,
    UpstreamBadStatus,
    UpstreamMalformedResponse,
    UpstreamUnavailable,
)
from app.matches.provider import FixtureProvider, get_fixture_provider

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("main")

# Version tracking
APP_VERSION = "v0.3.0"
APP_NAME = "Fixture Service"


@asynccontextmanager
async def lifespan(app: FastAPI):
    provider = get_fixture_provider()
    provider.start_background_tasks()
    logger.info("Fixture provider background tasks started")
    try:
        yield
    finally:
        provider.shutdown()
        logger.info("Fixture provider background tasks stopped")


app = FastAPI(
    title=APP_NAME,
    description="Fixture data for bet resolution and listings, from API-Football",
    version=APP_VERSION,
    lifespan=lifespan,
)


def _http_error(e: FixtureServiceError) -> HTTPException:
    """Map a service error to the HTTP status the client should see."""
    if isinstance(e, FixtureNotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, RateLimited):
        headers = {"Retry-After": str(e.retry_after)} if e.retry_after else None
        return HTTPException(status_code=429, detail=str(e), headers=headers)
    if isinstance(e, UpstreamUnavailable):
        return HTTPException(status_code=503, detail=str(e))
    if isinstance(e, (UpstreamBadStatus, UpstreamMalformedResponse)):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok", "source": "api-football"}


@app.get("/version")
def version_info():
    """Version information endpoint."""
    return {"name": APP_NAME, "version": APP_VERSION}


@app.get("/matches")
def all_fixtures(
    from_date: Optional[date] = Query(None, alias="from", description="First day (YYYY-MM-DD)"),
    to_date: Optional[date] = Query(None, alias="to", description="Last day (YYYY-MM-DD)"),
    provider: FixtureProvider = Depends(get_fixture_provider),
):
    """Upcoming fixtures of the configured leagues, grouped by league."""
    try:
        return provider.get_fixtures(from_date=from_date, to_date=to_date).to_dict()
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except FixtureServiceError as e:
        raise _http_error(e)


@app.get("/matches/live")
def live_fixtures(provider: FixtureProvider = Depends(get_fixture_provider)):
    """Fixtures currently in play."""
    try:
        fixtures = provider.get_live_fixtures()
    except FixtureServiceError as e:
        raise _http_error(e)
    return {"count": len(fixtures), "fixtures": [f.to_dict() for f in fixtures]}


@app.get("/matches/cache/status")
def cache_status(provider: FixtureProvider = Depends(get_fixture_provider)):
    """Detailed cache and rate limiter statistics."""
    return provider.get_detailed_cache_stats()


@app.delete("/matches/cache")
def clear_cache(provider: FixtureProvider = Depends(get_fixture_provider)):
    """Clear every cached fixture."""
    return {"cleared": provider.clear_all_fixture_cache()}


@app.delete("/matches/cache/{fixture_id}")
def invalidate_fixture(fixture_id: str, provider: FixtureProvider = Depends(get_fixture_provider)):
    """Drop one fixture from the cache so the next request refetches it."""
    return {"fixtureId": fixture_id, "invalidated": provider.invalidate_fixture_cache(fixture_id)}


@app.get("/matches/{fixture_id}")
def single_fixture(
    fixture_id: str,
    includePrediction: bool = Query(default=False, description="Attach the provider's prediction"),
    forceRefresh: bool = Query(default=False, description="Bypass cache and fetch fresh data"),
    provider: FixtureProvider = Depends(get_fixture_provider),
):
    """
    A single fixture with cache metadata.

    meta.cacheSource is "fresh", "upstream" or "stale"; stale data is served
    when upstream is rate limited or failing.
    """
    try:
        result = provider.get_single_fixture(
            fixture_id,
            include_prediction=includePrediction,
            force_refresh=forceRefresh,
        )
    except FixtureServiceError as e:
        raise _http_error(e)
    return result.to_dict()
