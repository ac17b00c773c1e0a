"""
Single-flight for concurrent fixture cache misses.

When several requests miss the cache for the same fixture at once, only the
first one calls upstream; the rest wait and share its result or its error.
"""
import logging
import threading
from typing import Any, Callable, Dict, Optional

from app.errors import CoalescedFetchTimeout

logger = logging.getLogger("cache.coalescer")


class _Flight:
    """One upstream fetch and everyone waiting on it."""

    __slots__ = ("done", "result", "error", "waiters")

    def __init__(self):
        self.done = threading.Event()
        self.result: Any = None
        self.error: Optional[BaseException] = None
        self.waiters = 0

    def outcome(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.result


class RequestCoalescer:
    """
    Ensures concurrent fetches for the same key share one upstream call.

    The first caller for a key (the leader) runs fetch_fn on its own thread.
    Later callers block until the leader finishes, for at most timeout
    seconds, then get the same value or the same exception. A caller that
    gives up raises CoalescedFetchTimeout; the leader keeps going and its
    result still lands wherever fetch_fn puts it.
    """

    def __init__(self, timeout: float = 30.0):
        self._flights: Dict[str, _Flight] = {}
        self._lock = threading.Lock()
        self.timeout = timeout
        self._fetches = 0
        self._coalesced = 0
        self._timeouts = 0

    def run(self, key: str, fetch_fn: Callable[[], Any]) -> Any:
        """
        Join an existing in-flight fetch for key, or lead a new one.

        Raises:
            CoalescedFetchTimeout: A joined fetch did not finish within timeout
            Exception: Whatever fetch_fn raised
        """
        with self._lock:
            flight = self._flights.get(key)
            leader = flight is None
            if leader:
                flight = self._flights[key] = _Flight()
                self._fetches += 1
            else:
                flight.waiters += 1
                self._coalesced += 1

        if leader:
            return self._lead(key, flight, fetch_fn)

        logger.debug(f"Joining in-flight fetch for {key} (waiters: {flight.waiters})")
        if not flight.done.wait(timeout=self.timeout):
            with self._lock:
                self._timeouts += 1
            logger.warning(f"Gave up waiting on in-flight fetch for {key} after {self.timeout:g}s")
            raise CoalescedFetchTimeout(key, self.timeout)
        return flight.outcome()

    def _lead(self, key: str, flight: _Flight, fetch_fn: Callable[[], Any]) -> Any:
        try:
            flight.result = fetch_fn()
        except Exception as e:
            flight.error = e
        finally:
            with self._lock:
                self._flights.pop(key, None)
            flight.done.set()
        return flight.outcome()

    @property
    def active_requests(self) -> int:
        """Number of currently in-flight fetches."""
        with self._lock:
            return len(self._flights)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "active_requests": len(self._flights),
                "active_keys": list(self._flights),
                "fetches": self._fetches,
                "coalesced": self._coalesced,
                "timeouts": self._timeouts,
                "timeout_seconds": self.timeout,
            }
