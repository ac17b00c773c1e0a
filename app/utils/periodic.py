"""Background threads that run a maintenance function on a fixed interval."""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger("periodic")


class PeriodicTask:
    """
    Run fn every interval seconds on a daemon thread until stopped.

    The first run happens one interval after start(). A failing run is logged
    and the loop keeps going. stop() wakes the thread immediately instead of
    waiting out the current interval.

    Usage:
        sweeper = PeriodicTask("cache-sweep", 300, cache.sweep)
        sweeper.start()
        ...
        sweeper.stop()
    """

    def __init__(self, name: str, interval: float, fn: Callable[[], object]):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self._fn = fn
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.runs = 0
        self.failures = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background thread. Does nothing if already running."""
        with self._lock:
            if self.is_running:
                return
            self._stop.clear()
            self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
            self._thread.start()
        logger.info(f"Started {self.name} (every {self.interval:g}s)")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Signal the thread to exit and wait for it."""
        with self._lock:
            thread = self._thread
            self._thread = None
            self._stop.set()
        if thread is not None:
            thread.join(timeout=timeout)
            logger.info(f"Stopped {self.name}")

    def run_once(self) -> None:
        """Run fn now on the calling thread, with the loop's error handling."""
        try:
            self._fn()
            self.runs += 1
        except Exception:
            self.failures += 1
            logger.exception(f"{self.name} run failed")

    def _loop(self) -> None:
        # wait() returns True as soon as stop() is called
        while not self._stop.wait(self.interval):
            self.run_once()
