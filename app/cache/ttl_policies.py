"""
TTL configuration and match-status-to-group mapping.
"""
from datetime import timedelta
from typing import Dict, FrozenSet, Optional

from app.utils.helpers import safe_upper
from config.settings import settings

from .core import StatusGroup


# API-Football short status codes by lifecycle group
LIVE_STATUSES: FrozenSet[str] = frozenset(
    {"1H", "HT", "2H", "ET", "P", "BT", "LIVE"}
)
FINISHED_STATUSES: FrozenSet[str] = frozenset(
    {"FT", "AET", "PEN", "FT_PEN"}
)
PENDING_STATUSES: FrozenSet[str] = frozenset(
    {"NS", "TBD", "POSTP", "SUSP", "INT", "CANC", "ABD", "AWD", "WO"}
)


# TTL configuration by group (in seconds)
TTL_CONFIG: Dict[StatusGroup, int] = {
    StatusGroup.LIVE: settings.fixture_ttl_live,          # 30 seconds
    StatusGroup.FINISHED: settings.fixture_ttl_finished,  # 15 minutes
    StatusGroup.PENDING: settings.fixture_ttl_pending,    # 5 minutes
    StatusGroup.UNKNOWN: settings.fixture_ttl_default,    # 1 minute
}


def status_group(status: Optional[str]) -> StatusGroup:
    """
    Classify a match status code.

    Args:
        status: Short status code from the API (e.g., "1H", "FT", "NS")

    Returns:
        StatusGroup; anything unrecognized (including None) is UNKNOWN
    """
    code = safe_upper(status)
    if code in LIVE_STATUSES:
        return StatusGroup.LIVE
    if code in FINISHED_STATUSES:
        return StatusGroup.FINISHED
    if code in PENDING_STATUSES:
        return StatusGroup.PENDING
    return StatusGroup.UNKNOWN


def is_live_status(status: Optional[str]) -> bool:
    return status_group(status) is StatusGroup.LIVE


def is_finished_status(status: Optional[str]) -> bool:
    return status_group(status) is StatusGroup.FINISHED


def ttl_for(
    status: Optional[str],
    ttl_config: Optional[Dict[StatusGroup, int]] = None,
) -> timedelta:
    """
    Get the freshness duration for a fixture in the given status.

    Total over the status domain: unknown codes get the default TTL.

    Args:
        status: Short status code from the API
        ttl_config: Override of TTL_CONFIG (seconds per group)

    Returns:
        TTL as a timedelta
    """
    config = ttl_config or TTL_CONFIG
    group = status_group(status)
    seconds = config.get(group, TTL_CONFIG[StatusGroup.UNKNOWN])
    return timedelta(seconds=seconds)
