"""
Tests for the upstream rate limiter.
"""
from datetime import timedelta

import pytest

from app.utils.rate_limiter import RateLimiter

from conftest import T0


def at(seconds):
    return T0 + timedelta(seconds=seconds)


@pytest.fixture
def limiter():
    return RateLimiter(per_minute_limit=3, per_hour_limit=10, cooldown_seconds=60)


def test_calls_allowed_under_limit(limiter):
    for i in range(3):
        assert limiter.can_call("100", at(i))
        limiter.record_call("100", at(i))


def test_limit_reached_denies_and_starts_cooldown(limiter):
    for i in range(3):
        limiter.record_call("100", at(i))

    assert limiter.can_call("100", at(5)) is False
    assert limiter.is_in_cooldown(at(5))
    assert limiter.stats(at(5))["breaches"] == 1


def test_extra_call_within_minute_is_denied(limiter):
    for i in range(4):
        limiter.record_call("100", at(i))

    assert limiter.can_call("100", at(10)) is False
    assert limiter.is_in_cooldown(at(10))


def test_cooldown_applies_to_every_scope(limiter):
    for i in range(3):
        limiter.record_call("100", at(i))
    limiter.can_call("100", at(5))

    assert limiter.can_call("200", at(6)) is False


def test_cooldown_is_not_extended_by_checks(limiter):
    for i in range(3):
        limiter.record_call("100", at(0))
    assert limiter.can_call("100", at(1)) is False  # breach, cooldown until 61s

    # Checks during the cooldown must not push it further out
    assert limiter.can_call("100", at(30)) is False
    assert limiter.can_call("100", at(60)) is False
    assert limiter.stats(at(60))["breaches"] == 1

    # Cooldown over and the calls at t=0 have left the minute window
    assert limiter.is_in_cooldown(at(61)) is False
    assert limiter.can_call("100", at(61)) is True


def test_limits_are_counted_per_scope(limiter):
    for i in range(3):
        limiter.record_call("100", at(i))

    assert limiter.remaining("100", at(5)) == 0
    assert limiter.can_call("200", at(5)) is True
    assert limiter.remaining("200", at(5)) == 3


def test_per_hour_limit(limiter):
    # 10 calls spread so the minute window never fills up
    for i in range(10):
        limiter.record_call("100", at(i * 120))

    assert limiter.can_call("100", at(10 * 120)) is False
    assert "per-hour" in limiter.stats(at(10 * 120))["last_breach_reason"]


def test_global_limit_spans_scopes():
    limiter = RateLimiter(
        per_minute_limit=5,
        per_hour_limit=50,
        global_per_minute_limit=3,
    )
    limiter.record_call("1", at(0))
    limiter.record_call("2", at(1))
    limiter.record_call("3", at(2))

    assert limiter.can_call("4", at(3)) is False
    assert limiter.stats(at(3))["last_breach_reason"] == "global per-minute limit"


def test_note_breach_starts_cooldown_once(limiter):
    limiter.note_breach(at(0), reason="upstream HTTP 429")
    limiter.note_breach(at(30), reason="again")

    stats = limiter.stats(at(30))
    assert stats["in_cooldown"] is True
    assert stats["breaches"] == 1
    assert stats["last_breach_reason"] == "upstream HTTP 429"
    assert stats["cooldown_remaining_seconds"] == 30.0
    assert limiter.is_in_cooldown(at(60)) is False


def test_prune_drops_timestamps_older_than_an_hour(limiter):
    limiter.record_call("old", at(0))
    limiter.record_call("recent", at(3000))

    removed = limiter.prune(at(3700))

    # "old" in its own scope plus in the aggregate window
    assert removed == 2
    stats = limiter.stats(at(3700))
    assert stats["tracked_scopes"] == 1
    assert stats["calls_last_hour"] == 1


def test_stats_counts_windows(limiter):
    limiter.record_call("100", at(0))
    limiter.record_call("200", at(100))

    stats = limiter.stats(at(120))
    assert stats["calls_last_minute"] == 1
    assert stats["calls_last_hour"] == 2
    assert stats["in_cooldown"] is False
    assert stats["cooldown_until"] is None
    assert stats["limits"]["per_minute"] == 3


def test_reset_clears_scope(limiter):
    for i in range(3):
        limiter.record_call("100", at(i))
    limiter.reset("100")
    assert limiter.remaining("100", at(5)) == 3
