"""
Tests for the background maintenance tasks.
"""
import threading

import pytest

from app.utils.periodic import PeriodicTask


def test_run_once_counts_runs():
    calls = []
    task = PeriodicTask("counter", 60, lambda: calls.append(1))

    task.run_once()
    task.run_once()

    assert calls == [1, 1]
    assert task.runs == 2
    assert task.failures == 0


def test_run_once_logs_and_counts_failures(caplog):
    def boom():
        raise RuntimeError("sweep failed")

    task = PeriodicTask("broken", 60, boom)
    task.run_once()

    assert task.failures == 1
    assert task.runs == 0
    assert "broken run failed" in caplog.text


def test_invalid_interval_rejected():
    with pytest.raises(ValueError):
        PeriodicTask("bad", 0, lambda: None)


def test_loop_runs_until_stopped():
    ran = threading.Event()
    task = PeriodicTask("fast", 0.01, ran.set)

    task.start()
    try:
        assert task.is_running
        assert ran.wait(2)
    finally:
        task.stop()

    assert not task.is_running
    assert task.runs >= 1


def test_start_twice_keeps_one_thread():
    task = PeriodicTask("idle", 60, lambda: None)
    task.start()
    try:
        first = task._thread
        task.start()
        assert task._thread is first
    finally:
        task.stop()


def test_loop_survives_failing_runs():
    attempts = []
    done = threading.Event()

    def flaky():
        attempts.append(1)
        if len(attempts) >= 3:
            done.set()
        raise RuntimeError("still broken")

    task = PeriodicTask("flaky", 0.01, flaky)
    task.start()
    try:
        assert done.wait(2)
    finally:
        task.stop()

    assert task.failures >= 3


def test_stop_without_start_is_harmless():
    task = PeriodicTask("never", 60, lambda: None)
    task.stop()
    assert not task.is_running


def test_provider_maintenance_sweeps_and_prunes(provider, upstream, clock):
    from conftest import api_fixture

    upstream.fixtures["200"] = api_fixture(200, status="1H")
    provider.get_single_fixture("200")
    clock.advance(2 * 3600)

    assert provider._sweep_cache() == 1
    assert len(provider.cache) == 0
    # One call in the fixture scope plus the aggregate window
    assert provider._prune_rate_limiter() == 2
