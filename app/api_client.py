"""
HTTP client for API-Football.

Performs a single authenticated GET per call and translates every transport
or decoding problem into the typed errors in app.errors. No caching and no
retries live here; the fixture provider decides what to do with failures.
"""
import os
import logging
import threading
from typing import Any, Dict, Optional

import requests
from dotenv import load_dotenv

from app.errors import (
    UpstreamBadStatus,
    UpstreamConfigurationError,
    UpstreamMalformedResponse,
    UpstreamUnavailable,
)
from config.settings import settings

load_dotenv()

logger = logging.getLogger("api_client")

# Limit concurrent API requests across all parallel operations
_api_semaphore = threading.Semaphore(10)


def _has_errors(errors: Any) -> bool:
    # API-Football sends [] when fine, and a dict of messages when not
    if isinstance(errors, dict):
        return bool(errors)
    if isinstance(errors, list):
        return len(errors) > 0
    return bool(errors)


def _is_quota_error(errors: Any) -> bool:
    if isinstance(errors, dict):
        return any(key in ("requests", "rateLimit") for key in errors)
    return False


class FootballAPIClient:
    """
    Stateless API-Football client, safe to share across threads.

    Usage:
        client = FootballAPIClient()
        payload = client.get("fixtures", {"id": 1035037})
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        host: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key or settings.api_football_key or os.getenv("API_FOOTBALL_KEY")
        self.base_url = (base_url or settings.api_football_base_url).rstrip("/")
        self.host = host or settings.api_football_host
        self.timeout = timeout if timeout is not None else settings.request_timeout_seconds
        self.session = session or requests.Session()

    def _get_headers(self) -> dict:
        """Get API authentication headers."""
        return {
            "x-rapidapi-key": self.api_key,
            "x-rapidapi-host": self.host,
        }

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        GET an endpoint and return the decoded JSON body.

        Args:
            endpoint: API endpoint path (e.g., "fixtures", "predictions")
            params: Query parameters

        Returns:
            The response object; its "response" key is always a list

        Raises:
            UpstreamConfigurationError: API key or base URL missing
            UpstreamUnavailable: Timeout, connection or other transport error
            UpstreamBadStatus: Non-2xx status
            UpstreamMalformedResponse: Body is not the expected JSON shape
        """
        if not self.api_key or not self.base_url:
            raise UpstreamConfigurationError("Football API configuration is missing")

        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        params = {k: v for k, v in (params or {}).items() if v is not None}

        try:
            with _api_semaphore:
                response = self.session.get(
                    url,
                    headers=self._get_headers(),
                    params=params,
                    timeout=self.timeout,
                )
        except requests.Timeout as e:
            logger.warning(f"Timeout calling {endpoint} {params}: {e}")
            raise UpstreamUnavailable(f"Timed out calling football API: {e}") from e
        except requests.RequestException as e:
            logger.warning(f"Transport error calling {endpoint} {params}: {e}")
            raise UpstreamUnavailable(f"Failed to call football API: {e}") from e

        if not 200 <= response.status_code < 300:
            logger.warning(f"{endpoint} {params} returned HTTP {response.status_code}")
            raise UpstreamBadStatus(response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamMalformedResponse(f"Undecodable JSON from {endpoint}: {e}") from e

        if not isinstance(data, dict):
            raise UpstreamMalformedResponse(
                f"Expected a JSON object from {endpoint}, got {type(data).__name__}"
            )

        errors = data.get("errors")
        if _has_errors(errors):
            raise UpstreamMalformedResponse(
                f"API-Football reported errors for {endpoint}: {errors}",
                rate_limited=_is_quota_error(errors),
            )

        if not isinstance(data.get("response"), list):
            raise UpstreamMalformedResponse(f"Missing response list from {endpoint}")

        return data
