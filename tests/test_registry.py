"""Tests for the monitor registry."""

import threading
import time
import typing
from unittest.mock import MagicMock

import pytest

from sitewatch.models import CheckOutcome, Down, FailureReport, Up, WebsiteState
from sitewatch.notifier import NotificationSink
from sitewatch.registry import MonitorRegistry


class FakeChecker:
    """Returns scripted outcomes instead of touching the network."""

    def __init__(self, outcomes: dict[str, CheckOutcome] | None = None, delay: float = 0.0) -> None:
        self.outcomes = outcomes or {}
        self.delay = delay
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def probe(self, url: str, timeout: float | None = None) -> CheckOutcome:
        with self._lock:
            self.calls.append(url)
        if self.delay:
            time.sleep(self.delay)
        return self.outcomes.get(url, Up(status_code=200))


class RecordingSink(NotificationSink):
    """Collects every report it receives."""

    def __init__(self, result: bool = True) -> None:
        self.reports: list[FailureReport] = []
        self.result = result
        self._lock = threading.Lock()

    def notify(self, report: FailureReport) -> bool:
        with self._lock:
            self.reports.append(report)
        return self.result


UP = Up(status_code=200, headers={"Server": "test"}, content_length=10)
DOWN = Down(status_code=500, error_message="internal error")
UNREACHABLE = Down(status_code=0, error_message="Connection refused")


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


class TestAddWebsite:
    """Tests for add_website and the read operations."""

    def test_added_url_appears_once_unchecked(self) -> None:
        """A new URL shows up with empty history and is_up False."""
        registry = MonitorRegistry(FakeChecker())
        registry.add_website("https://example.com")

        snapshot = registry.snapshot()

        assert list(snapshot) == ["https://example.com"]
        state = snapshot["https://example.com"]
        assert state.history == []
        assert state.is_up is False
        assert state.last_check_at is None

    def test_readd_resets_history(self) -> None:
        """Re-adding a URL discards its accumulated history."""
        registry = MonitorRegistry(FakeChecker())
        registry.add_website("https://example.com")
        registry.sweep()
        registry.sweep()
        assert registry.get("https://example.com").total_checks == 2

        registry.add_website("https://example.com")

        state = registry.get("https://example.com")
        assert state.history == []
        assert state.successful_count == 0
        assert len(registry) == 1

    @pytest.mark.parametrize("url", ["", None, 42])
    def test_invalid_url_rejected(self, url: object) -> None:
        """Empty or non-string URLs are contract violations."""
        registry = MonitorRegistry(FakeChecker())
        with pytest.raises(ValueError):
            registry.add_website(url)  # type: ignore[arg-type]

    def test_list_is_snapshot_alias(self) -> None:
        registry = MonitorRegistry(FakeChecker())
        registry.add_website("https://a.example")

        assert registry.list().keys() == registry.snapshot().keys()

    def test_list_method_does_not_shadow_builtin_annotations(self) -> None:
        """Annotations in the class still resolve to the builtin list."""
        assert typing.get_type_hints(MonitorRegistry.urls) == {"return": list[str]}
        assert typing.get_type_hints(MonitorRegistry.list) == {"return": dict[str, WebsiteState]}

    def test_snapshot_is_detached(self) -> None:
        """Mutating a snapshot does not affect the registry."""
        registry = MonitorRegistry(FakeChecker())
        registry.add_website("https://example.com")

        snapshot = registry.snapshot()
        snapshot["https://example.com"].history.append(MagicMock())
        snapshot.clear()

        assert registry.get("https://example.com").history == []
        assert "https://example.com" in registry

    def test_get_unknown_returns_none(self) -> None:
        assert MonitorRegistry(FakeChecker()).get("https://nope.example") is None

    def test_urls(self) -> None:
        registry = MonitorRegistry(FakeChecker())
        registry.add_website("https://a.example")
        registry.add_website("https://b.example")

        assert sorted(registry.urls()) == ["https://a.example", "https://b.example"]

    def test_invalid_max_workers(self) -> None:
        with pytest.raises(ValueError):
            MonitorRegistry(FakeChecker(), max_workers=0)


class TestSweep:
    """Tests for sweep()."""

    def test_empty_registry(self, sink: RecordingSink) -> None:
        assert MonitorRegistry(FakeChecker(), sink).sweep() == {}

    def test_each_sweep_adds_one_record_per_url(self, sink: RecordingSink) -> None:
        """History grows by exactly one entry per URL per sweep."""
        checker = FakeChecker({"https://up.example": UP, "https://down.example": DOWN})
        registry = MonitorRegistry(checker, sink)
        registry.add_website("https://up.example")
        registry.add_website("https://down.example")

        for expected in range(1, 4):
            before = registry.snapshot()
            registry.sweep()
            after = registry.snapshot()

            for url in after:
                assert after[url].total_checks == expected
                gained = after[url].successful_count - before[url].successful_count
                assert gained == (1 if after[url].history[-1].outcome.is_up() else 0)

        assert registry.get("https://up.example").successful_count == 3
        assert registry.get("https://down.example").successful_count == 0

    def test_is_up_mirrors_latest_record(self, sink: RecordingSink) -> None:
        """is_up always equals the Up-ness of the newest record."""
        checker = FakeChecker({"https://flaky.example": UP})
        registry = MonitorRegistry(checker, sink)
        registry.add_website("https://flaky.example")

        for outcome in (UP, DOWN, UP, UNREACHABLE):
            checker.outcomes["https://flaky.example"] = outcome
            registry.sweep()
            state = registry.get("https://flaky.example")
            assert state.is_up is outcome.is_up()
            assert state.history[-1].outcome == outcome

        assert registry.get("https://flaky.example").successful_count == 2

    def test_sweep_returns_recorded_outcomes(self, sink: RecordingSink) -> None:
        checker = FakeChecker({"https://up.example": UP, "https://down.example": DOWN})
        registry = MonitorRegistry(checker, sink)
        registry.add_website("https://up.example")
        registry.add_website("https://down.example")

        outcomes = registry.sweep()

        assert outcomes == {"https://up.example": UP, "https://down.example": DOWN}

    def test_last_check_at_matches_record(self, sink: RecordingSink) -> None:
        registry = MonitorRegistry(FakeChecker(), sink)
        registry.add_website("https://example.com")

        registry.sweep()

        state = registry.get("https://example.com")
        assert state.last_check_at is not None
        assert state.last_check_at == state.history[-1].timestamp

    def test_history_is_time_ordered(self, sink: RecordingSink) -> None:
        registry = MonitorRegistry(FakeChecker(), sink)
        registry.add_website("https://example.com")

        for _ in range(5):
            registry.sweep()

        timestamps = [entry.timestamp for entry in registry.get("https://example.com").history]
        assert timestamps == sorted(timestamps)


class TestNotifications:
    """Tests for failure report delivery during sweeps."""

    def test_one_report_per_down_outcome(self, sink: RecordingSink) -> None:
        """Exactly one report per Down outcome, repeated Downs included."""
        checker = FakeChecker(
            {
                "https://up.example": UP,
                "https://down.example": DOWN,
                "https://gone.example": UNREACHABLE,
            }
        )
        registry = MonitorRegistry(checker, sink)
        for url in checker.outcomes:
            registry.add_website(url)

        down_outcomes = 0
        for _ in range(3):
            outcomes = registry.sweep()
            down_outcomes += sum(1 for outcome in outcomes.values() if not outcome.is_up())

        assert down_outcomes == 6
        assert len(sink.reports) == down_outcomes
        assert sorted({report.url for report in sink.reports}) == ["https://down.example", "https://gone.example"]

    def test_report_carries_outcome_details(self, sink: RecordingSink) -> None:
        registry = MonitorRegistry(FakeChecker({"https://down.example": DOWN}), sink)
        registry.add_website("https://down.example")

        registry.sweep()

        [report] = sink.reports
        state = registry.get("https://down.example")
        assert report.url == "https://down.example"
        assert report.status_code == 500
        assert report.error_message == "internal error"
        assert report.timestamp == state.history[-1].timestamp

    def test_unreachable_report_has_code_zero(self, sink: RecordingSink) -> None:
        registry = MonitorRegistry(FakeChecker({"https://gone.example": UNREACHABLE}), sink)
        registry.add_website("https://gone.example")

        registry.sweep()

        assert sink.reports[0].status_code == 0

    def test_no_report_for_up(self, sink: RecordingSink) -> None:
        registry = MonitorRegistry(FakeChecker(), sink)
        registry.add_website("https://up.example")

        registry.sweep()

        assert sink.reports == []

    def test_failed_delivery_does_not_affect_state(self) -> None:
        """A sink reporting failure leaves the recorded outcome untouched."""
        sink = RecordingSink(result=False)
        registry = MonitorRegistry(FakeChecker({"https://down.example": DOWN}), sink)
        registry.add_website("https://down.example")

        registry.sweep()

        assert len(sink.reports) == 1
        assert registry.get("https://down.example").history[-1].outcome == DOWN

    def test_raising_sink_does_not_abort_sweep(self) -> None:
        """An exception from the sink is logged and the sweep finishes."""
        sink = MagicMock(spec=NotificationSink)
        sink.notify.side_effect = RuntimeError("smtp on fire")
        checker = FakeChecker({"https://a.example": DOWN, "https://b.example": DOWN})
        registry = MonitorRegistry(checker, sink)
        registry.add_website("https://a.example")
        registry.add_website("https://b.example")

        outcomes = registry.sweep()

        assert len(outcomes) == 2
        assert sink.notify.call_count == 2
        assert all(state.total_checks == 1 for state in registry.snapshot().values())

    def test_raising_probe_becomes_down(self, sink: RecordingSink) -> None:
        """An unexpected probe exception is recorded as Down with code 0."""
        checker = MagicMock()
        checker.probe.side_effect = RuntimeError("checker bug")
        registry = MonitorRegistry(checker, sink)
        registry.add_website("https://example.com")

        outcomes = registry.sweep()

        assert outcomes["https://example.com"] == Down(status_code=0, error_message="checker bug")
        assert len(sink.reports) == 1


class TestConcurrency:
    """Tests for parallel probes and concurrent readers."""

    def test_probes_run_in_parallel(self, sink: RecordingSink) -> None:
        """A sweep over slow URLs takes about one probe, not the sum."""
        checker = FakeChecker(delay=0.3)
        registry = MonitorRegistry(checker, sink, max_workers=4)
        for i in range(4):
            registry.add_website(f"https://site{i}.example")

        start = time.monotonic()
        registry.sweep()
        elapsed = time.monotonic() - start

        assert elapsed < 1.0
        assert len(checker.calls) == 4

    def test_snapshot_not_blocked_by_slow_probe(self, sink: RecordingSink) -> None:
        """Readers are served while a probe is in flight."""
        release = threading.Event()
        started = threading.Event()

        class BlockingChecker:
            def probe(self, url: str, timeout: float | None = None) -> CheckOutcome:
                started.set()
                release.wait(5)
                return UP

        registry = MonitorRegistry(BlockingChecker(), sink)
        registry.add_website("https://slow.example")

        sweeper = threading.Thread(target=registry.sweep)
        sweeper.start()
        try:
            assert started.wait(2)
            start = time.monotonic()
            snapshot = registry.snapshot()
            registry.add_website("https://other.example")
            assert time.monotonic() - start < 0.5
            assert snapshot["https://slow.example"].total_checks == 0
        finally:
            release.set()
            sweeper.join(5)

        assert registry.get("https://slow.example").total_checks == 1
        # Added after the sweep started, so it was not probed
        assert registry.get("https://other.example").total_checks == 0

    def test_readd_during_sweep_discards_result(self, sink: RecordingSink) -> None:
        """A URL re-added mid-probe keeps its fresh, empty history."""
        release = threading.Event()
        started = threading.Event()

        class BlockingChecker:
            def probe(self, url: str, timeout: float | None = None) -> CheckOutcome:
                started.set()
                release.wait(5)
                return DOWN

        registry = MonitorRegistry(BlockingChecker(), sink)
        registry.add_website("https://example.com")

        sweeper = threading.Thread(target=registry.sweep)
        sweeper.start()
        assert started.wait(2)
        registry.add_website("https://example.com")
        release.set()
        sweeper.join(5)

        assert registry.get("https://example.com").history == []
        assert sink.reports == []

    def test_concurrent_snapshots_are_consistent(self, sink: RecordingSink) -> None:
        """Snapshots taken during sweeps never show half-applied updates."""
        checker = FakeChecker(delay=0.001)
        registry = MonitorRegistry(checker, sink, max_workers=8)
        urls = [f"https://site{i}.example" for i in range(20)]
        for url in urls:
            registry.add_website(url)

        stop = threading.Event()
        violations: list[str] = []

        def flip_outcomes() -> None:
            flip = False
            while not stop.is_set():
                for url in urls:
                    checker.outcomes[url] = DOWN if flip else UP
                flip = not flip
                time.sleep(0.0005)

        def sweep_loop() -> None:
            while not stop.is_set():
                registry.sweep()

        def read_loop() -> None:
            while not stop.is_set():
                for state in registry.snapshot().values():
                    ups = sum(1 for entry in state.history if entry.outcome.is_up())
                    if state.successful_count != ups:
                        violations.append(f"{state.url}: count {state.successful_count} != {ups}")
                    if state.history:
                        if state.is_up != state.history[-1].outcome.is_up():
                            violations.append(f"{state.url}: is_up does not match latest record")
                        if state.last_check_at != state.history[-1].timestamp:
                            violations.append(f"{state.url}: last_check_at does not match latest record")

        threads = [
            threading.Thread(target=flip_outcomes),
            threading.Thread(target=sweep_loop),
            threading.Thread(target=read_loop),
            threading.Thread(target=read_loop),
        ]
        for thread in threads:
            thread.start()
        time.sleep(0.5)
        stop.set()
        for thread in threads:
            thread.join(5)

        assert violations == []
        assert all(state.total_checks > 0 for state in registry.snapshot().values())


def test_start_monitoring_returns_running_scheduler(sink: RecordingSink) -> None:
    """start_monitoring wires a Scheduler to the registry."""
    registry = MonitorRegistry(FakeChecker(), sink)
    registry.add_website("https://example.com")

    scheduler = registry.start_monitoring(0.05)
    try:
        assert scheduler.is_running()
        time.sleep(0.2)
    finally:
        scheduler.stop()

    assert not scheduler.is_running()
    assert registry.get("https://example.com").total_checks >= 1
