"""Background loop that sweeps a registry at a fixed interval."""

import logging
import math
import time
from threading import Event, Lock, Thread
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .registry import MonitorRegistry

logger = logging.getLogger(__name__)


class Scheduler:
    """Runs MonitorRegistry.sweep() once per interval in a background thread.

    The first sweep happens one full interval after start(), not immediately.
    Sweeps never overlap: when a sweep overruns one or more ticks, those
    ticks are dropped and the next sweep waits for the next tick boundary.

    Example:
        scheduler = Scheduler(registry)
        scheduler.start(60)
        # ... later ...
        scheduler.stop()
    """

    def __init__(self, registry: "MonitorRegistry") -> None:
        self._registry = registry
        self._stop_event = Event()
        self._thread: Thread | None = None
        self._interval: float | None = None
        self._counter_lock = Lock()
        self._sweep_count = 0
        self._skipped_ticks = 0

    @property
    def interval(self) -> float | None:
        return self._interval

    @property
    def sweep_count(self) -> int:
        """Number of sweeps completed since construction."""
        with self._counter_lock:
            return self._sweep_count

    @property
    def skipped_ticks(self) -> int:
        """Number of ticks dropped because a sweep was still running."""
        with self._counter_lock:
            return self._skipped_ticks

    def start(self, interval: float) -> None:
        """Start sweeping every interval seconds.

        Raises:
            ValueError: If interval is not positive.
        """
        if interval <= 0:
            raise ValueError(f"Sweep interval must be positive (got {interval})")

        if self._thread is not None and self._thread.is_alive():
            logger.warning("Scheduler already running")
            return

        self._interval = interval
        self._stop_event.clear()
        self._thread = Thread(target=self._run_loop, args=(interval,), daemon=True, name="sweep-scheduler")
        self._thread.start()
        logger.info("Scheduler started with %gs interval", interval)

    def stop(self, timeout: float = 10.0) -> None:
        """Stop the loop and wait for it to exit.

        A sweep already in progress is allowed to finish its current probes.

        Args:
            timeout: Maximum seconds to wait for the loop to stop.
        """
        if self._thread is None or not self._thread.is_alive():
            return

        logger.info("Stopping scheduler...")
        self._stop_event.set()
        self._thread.join(timeout=timeout)

        if self._thread.is_alive():
            logger.warning("Scheduler thread did not stop within timeout")
        else:
            logger.info("Scheduler stopped")

    def is_running(self) -> bool:
        """Check if the scheduler loop is currently running."""
        return self._thread is not None and self._thread.is_alive()

    def _run_loop(self, interval: float) -> None:
        """Main loop - runs in background thread."""
        logger.debug("Scheduler loop started")
        next_tick = time.monotonic() + interval

        # wait() returns True once stop() is called
        while not self._stop_event.wait(timeout=max(0.0, next_tick - time.monotonic())):
            try:
                self._registry.sweep()
            except Exception as e:
                logger.error("Sweep failed: %s", e)

            with self._counter_lock:
                self._sweep_count += 1

            next_tick += interval
            now = time.monotonic()
            if now > next_tick:
                missed = math.floor((now - next_tick) / interval) + 1
                next_tick += missed * interval
                with self._counter_lock:
                    self._skipped_ticks += missed
                logger.warning("Sweep overran its interval, skipped %d tick(s)", missed)

        logger.debug("Scheduler loop exited")
