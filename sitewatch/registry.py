"""Thread-safe registry of monitored websites and the sweep that checks them."""

import builtins
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from .checker import HealthChecker
from .config import DEFAULT_MAX_WORKERS
from .models import CheckOutcome, Down, FailureReport, WebsiteState
from .notifier import NotificationSink, NullSink

if TYPE_CHECKING:
    from .scheduler import Scheduler

logger = logging.getLogger(__name__)


class MonitorRegistry:
    """Owns the URL -> WebsiteState mapping.

    One lock guards the mapping and every state mutation. It is held only for
    dictionary operations, copies and folding a single outcome into a state;
    probes and notifications run without it, so a slow server never blocks
    snapshot() or add_website().

    Example:
        registry = MonitorRegistry(HealthChecker(), sink=NullSink())
        registry.add_website("https://example.com")
        registry.sweep()
        registry.snapshot()["https://example.com"].is_up
    """

    def __init__(
        self,
        checker: HealthChecker | None = None,
        sink: NotificationSink | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        """Initialize the registry.

        Args:
            checker: Performs probes; a default HealthChecker is used if omitted.
            sink: Receives a FailureReport for every Down outcome.
            max_workers: Maximum probes run in parallel during a sweep.
        """
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1 (got {max_workers})")
        self._checker = checker or HealthChecker()
        self._sink = sink or NullSink()
        self._max_workers = max_workers
        self._websites: dict[str, WebsiteState] = {}
        self._lock = threading.Lock()

    def add_website(self, url: str) -> None:
        """Start monitoring url, discarding any state already held for it."""
        if not isinstance(url, str) or not url:
            raise ValueError("URL must be a non-empty string")

        with self._lock:
            replaced = url in self._websites
            self._websites[url] = WebsiteState(url=url)

        if replaced:
            logger.info("Re-added %s, history reset", url)
        else:
            logger.info("Monitoring %s", url)

    def snapshot(self) -> dict[str, WebsiteState]:
        """Return detached copies of every website state, keyed by URL.

        Each entry reflects a completed update. Entries may come from
        different sweeps since sweeps update URLs one at a time.
        """
        with self._lock:
            return {url: state.copy() for url, state in self._websites.items()}

    def get(self, url: str) -> WebsiteState | None:
        """Return a detached copy of one website's state, or None."""
        with self._lock:
            state = self._websites.get(url)
            return state.copy() if state is not None else None

    def urls(self) -> builtins.list[str]:
        with self._lock:
            return [*self._websites]

    def __len__(self) -> int:
        with self._lock:
            return len(self._websites)

    def __contains__(self, url: object) -> bool:
        with self._lock:
            return url in self._websites

    def sweep(self) -> dict[str, CheckOutcome]:
        """Probe every registered URL once and fold the outcomes into their state.

        URLs are probed in parallel in no particular order. A Down outcome
        produces exactly one FailureReport, handed to the sink after the
        state update. The sweep itself never raises.

        Returns:
            The outcome recorded for each URL in this sweep.
        """
        with self._lock:
            targets = list(self._websites.items())

        if not targets:
            return {}

        recorded: dict[str, CheckOutcome] = {}
        workers = min(self._max_workers, len(targets))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sweep") as executor:
            futures = {executor.submit(self._checker.probe, url): (url, state) for url, state in targets}

            for future in as_completed(futures):
                url, state = futures[future]
                try:
                    outcome = future.result()
                except Exception as e:
                    logger.error("Probe of %s raised unexpectedly: %s", url, e)
                    outcome = Down(status_code=0, error_message=str(e) or e.__class__.__name__)

                applied, report = self._apply_outcome(url, state, outcome)
                if not applied:
                    continue
                recorded[url] = outcome
                if report is not None:
                    self._deliver(report)

        up = sum(1 for outcome in recorded.values() if outcome.is_up())
        logger.debug("Sweep finished: %d checked, %d up, %d down", len(recorded), up, len(recorded) - up)
        return recorded

    def _apply_outcome(
        self, url: str, state: WebsiteState, outcome: CheckOutcome
    ) -> tuple[bool, FailureReport | None]:
        """Record outcome against state atomically.

        Returns whether the outcome was recorded, and the FailureReport to
        deliver for a Down outcome. The outcome is dropped when url was
        re-added while the probe was running.
        """
        with self._lock:
            if self._websites.get(url) is not state:
                logger.debug("%s was re-added during the sweep, discarding result", url)
                return False, None

            timestamp = datetime.now(UTC)
            state.record(outcome, timestamp)

            if isinstance(outcome, Down):
                return True, FailureReport(
                    url=url,
                    status_code=outcome.status_code,
                    error_message=outcome.error_message,
                    timestamp=timestamp,
                )
            return True, None

    def _deliver(self, report: FailureReport) -> None:
        try:
            delivered = self._sink.notify(report)
        except Exception as e:
            logger.error("Notification for %s failed: %s", report.url, e)
            return

        if not delivered:
            logger.warning("Notification for %s was not delivered", report.url)

    def start_monitoring(self, interval: float) -> "Scheduler":
        """Start a Scheduler that sweeps this registry every interval seconds."""
        from .scheduler import Scheduler

        scheduler = Scheduler(self)
        scheduler.start(interval)
        return scheduler

    def list(self) -> dict[str, WebsiteState]:
        """Alias of snapshot()."""
        return self.snapshot()
