"""
Error types for the fixture service.

Upstream failures are translated into these types by the API client so
callers never see a raw requests exception.
"""
from typing import Optional


class FixtureServiceError(Exception):
    """Base class for all fixture service errors."""

    kind = "error"


class UpstreamError(FixtureServiceError):
    """The upstream provider could not deliver a usable response."""

    kind = "upstream_error"


class UpstreamUnavailable(UpstreamError):
    """Transport-level failure: timeout, connection refused, DNS."""

    kind = "upstream_unavailable"


class CoalescedFetchTimeout(UpstreamUnavailable):
    """Waited on another request's in-flight fetch and it did not finish."""

    kind = "coalesce_timeout"

    def __init__(self, key: str, timeout: float):
        self.key = key
        self.timeout = timeout
        super().__init__(f"Fetch for {key} timed out after {timeout:g}s")


class UpstreamBadStatus(UpstreamError):
    """Upstream answered with a non-2xx status."""

    kind = "upstream_bad_status"

    def __init__(self, status_code: int, message: Optional[str] = None):
        self.status_code = status_code
        super().__init__(message or f"API request failed with status: {status_code}")


class UpstreamMalformedResponse(UpstreamError):
    """Upstream answered 2xx but the body was undecodable or unexpected."""

    kind = "upstream_malformed_response"

    def __init__(self, message: str, rate_limited: bool = False):
        # API-Football reports quota exhaustion as an error inside a 200 body
        self.rate_limited = rate_limited
        super().__init__(message)


class UpstreamConfigurationError(UpstreamError):
    """The client is missing its base URL or API key."""

    kind = "upstream_configuration"


class RateLimited(FixtureServiceError):
    """Local rate limiter refused the call and nothing cached can be served."""

    kind = "rate_limited"

    def __init__(self, scope: str, retry_after: Optional[int] = None):
        self.scope = scope
        self.retry_after = retry_after
        message = f"Rate limited calling upstream for {scope}"
        if retry_after:
            message += f" (retry after {retry_after}s)"
        super().__init__(message)


class FixtureNotFound(FixtureServiceError):
    """Upstream affirmatively reports no fixture for the requested id."""

    kind = "not_found"

    def __init__(self, fixture_id: str):
        self.fixture_id = fixture_id
        super().__init__(f"Fixture {fixture_id} not found")
