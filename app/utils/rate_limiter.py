"""Rate limiting for upstream API calls."""

import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Dict, List, Optional

logger = logging.getLogger("rate_limiter")

MINUTE = timedelta(seconds=60)
HOUR = timedelta(seconds=3600)

# Aggregate window across every scope, checked against the global limits
GLOBAL_SCOPE = "*"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RateLimiter:
    """
    Sliding window rate limiter for outbound upstream calls.

    Each scope (a fixture id, "live", "league:39", ...) has its own window of
    call timestamps checked against the per-minute and per-hour limits. Every
    call also lands in an aggregate window checked against the optional
    global limits. A limit breach starts a cooldown during which no call is
    permitted; checks made during the cooldown do not extend it.

    Thread-safe implementation.
    """

    def __init__(
        self,
        per_minute_limit: int = 10,
        per_hour_limit: int = 120,
        cooldown_seconds: int = 60,
        global_per_minute_limit: Optional[int] = None,
        global_per_hour_limit: Optional[int] = None,
    ):
        self.per_minute_limit = per_minute_limit
        self.per_hour_limit = per_hour_limit
        self.cooldown = timedelta(seconds=cooldown_seconds)
        self.global_per_minute_limit = global_per_minute_limit
        self.global_per_hour_limit = global_per_hour_limit
        self._calls: Dict[str, List[datetime]] = defaultdict(list)
        self._cooldown_until: Optional[datetime] = None
        self._last_breach_reason: Optional[str] = None
        self._breaches = 0
        self._lock = Lock()

    def record_call(self, scope: str, now: Optional[datetime] = None) -> None:
        """Record an outbound call for a scope."""
        now = now or _utcnow()
        with self._lock:
            self._calls[scope].append(now)
            if scope != GLOBAL_SCOPE:
                self._calls[GLOBAL_SCOPE].append(now)

    def can_call(self, scope: str, now: Optional[datetime] = None) -> bool:
        """
        Check if a call is allowed for the given scope.

        A denial caused by a limit starts the cooldown; a denial caused by an
        active cooldown leaves it untouched.
        """
        now = now or _utcnow()
        with self._lock:
            if self._in_cooldown(now):
                return False

            breach = self._limit_breach(scope, now)
            if breach is None:
                return True

            self._start_cooldown(now, breach)
            return False

    def is_in_cooldown(self, now: Optional[datetime] = None) -> bool:
        now = now or _utcnow()
        with self._lock:
            return self._in_cooldown(now)

    def note_breach(self, now: Optional[datetime] = None, reason: str = "upstream") -> None:
        """
        Start a cooldown because upstream reported that we are over quota.

        Does nothing if a cooldown is already running.
        """
        now = now or _utcnow()
        with self._lock:
            if not self._in_cooldown(now):
                self._start_cooldown(now, reason)

    def remaining(self, scope: str, now: Optional[datetime] = None) -> int:
        """
        Get the number of calls left for a scope in the current minute.

        Returns 0 during a cooldown.
        """
        now = now or _utcnow()
        with self._lock:
            if self._in_cooldown(now):
                return 0
            used = self._count(scope, now, MINUTE)
            return max(0, self.per_minute_limit - used)

    def reset(self, scope: str) -> None:
        """
        Reset the windows for a specific scope.

        Useful for testing or admin override.
        """
        with self._lock:
            if scope in self._calls:
                del self._calls[scope]

    def prune(self, now: Optional[datetime] = None) -> int:
        """
        Drop timestamps older than the longest window (one hour).

        Returns the number of timestamps removed.
        """
        now = now or _utcnow()
        horizon = now - HOUR
        removed = 0

        with self._lock:
            empty_scopes = []
            for scope, timestamps in self._calls.items():
                recent = [ts for ts in timestamps if ts > horizon]
                removed += len(timestamps) - len(recent)
                if recent:
                    self._calls[scope] = recent
                else:
                    empty_scopes.append(scope)

            for scope in empty_scopes:
                del self._calls[scope]

        if removed:
            logger.info(f"Pruned {removed} rate limiter timestamps")
        return removed

    def stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Snapshot of call volume and cooldown state."""
        now = now or _utcnow()
        with self._lock:
            in_cooldown = self._in_cooldown(now)
            cooldown_remaining = (
                (self._cooldown_until - now).total_seconds() if in_cooldown else 0
            )
            return {
                "calls_last_minute": self._count(GLOBAL_SCOPE, now, MINUTE),
                "calls_last_hour": self._count(GLOBAL_SCOPE, now, HOUR),
                "limits": {
                    "per_minute": self.per_minute_limit,
                    "per_hour": self.per_hour_limit,
                    "global_per_minute": self.global_per_minute_limit,
                    "global_per_hour": self.global_per_hour_limit,
                    "cooldown_seconds": self.cooldown.total_seconds(),
                },
                "in_cooldown": in_cooldown,
                "cooldown_until": (
                    self._cooldown_until.isoformat() if self._cooldown_until else None
                ),
                "cooldown_remaining_seconds": round(cooldown_remaining, 1),
                "last_breach_reason": self._last_breach_reason,
                "breaches": self._breaches,
                "tracked_scopes": len([s for s in self._calls if s != GLOBAL_SCOPE]),
            }

    # Callers hold self._lock for everything below

    def _in_cooldown(self, now: datetime) -> bool:
        return self._cooldown_until is not None and now < self._cooldown_until

    def _start_cooldown(self, now: datetime, reason: str) -> None:
        self._cooldown_until = now + self.cooldown
        self._last_breach_reason = reason
        self._breaches += 1
        logger.warning(
            f"Rate limit breached ({reason}); cooling down for "
            f"{self.cooldown.total_seconds():.0f}s"
        )

    def _count(self, scope: str, now: datetime, window: timedelta) -> int:
        start = now - window
        return sum(1 for ts in self._calls.get(scope, ()) if ts > start)

    def _limit_breach(self, scope: str, now: datetime) -> Optional[str]:
        if self._count(scope, now, MINUTE) >= self.per_minute_limit:
            return f"{scope}: per-minute limit"
        if self._count(scope, now, HOUR) >= self.per_hour_limit:
            return f"{scope}: per-hour limit"
        if (
            self.global_per_minute_limit is not None
            and self._count(GLOBAL_SCOPE, now, MINUTE) >= self.global_per_minute_limit
        ):
            return "global per-minute limit"
        if (
            self.global_per_hour_limit is not None
            and self._count(GLOBAL_SCOPE, now, HOUR) >= self.global_per_hour_limit
        ):
            return "global per-hour limit"
        return None
