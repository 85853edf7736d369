"""sitewatch - Lightweight uptime monitoring for HTTP(S) endpoints."""

import argparse
import json
import logging
import signal
import sys
from datetime import UTC, datetime
from threading import Event
from typing import Optional

__version__ = "0.1.0"

# Global shutdown event for signal handlers
_shutdown_event: Optional[Event] = None

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


def _handle_shutdown(signum: int, frame: object) -> None:
    """Signal handler for graceful shutdown."""
    sig_name = signal.Signals(signum).name
    logger.info("Received %s, initiating shutdown...", sig_name)
    if _shutdown_event is not None:
        _shutdown_event.set()


def _cmd_run(args: argparse.Namespace) -> None:
    """Execute the run command - start the monitoring service."""
    global _shutdown_event

    _setup_logging(args.verbose)

    logger.info("sitewatch %s starting...", __version__)

    # Import here to avoid circular imports and allow logging setup first
    from .api import ApiError, ApiServer
    from .checker import HealthChecker
    from .config import ConfigError, load_config
    from .notifier import build_sink
    from .registry import MonitorRegistry

    # 1. Load configuration
    try:
        config = load_config(args.config)
        logger.info("Configuration loaded from %s", args.config)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(1)

    # 2. Build the registry
    checker = HealthChecker(timeout=config.monitor.timeout, user_agent=config.monitor.user_agent)
    sink = build_sink(config.notifications)
    registry = MonitorRegistry(checker, sink, max_workers=config.monitor.max_workers)
    for url in config.urls:
        registry.add_website(url)
    logger.info("Monitoring %d URLs at %gs interval", len(config.urls), config.monitor.interval)

    # 3. Setup shutdown handler
    _shutdown_event = Event()
    signal.signal(signal.SIGTERM, _handle_shutdown)
    signal.signal(signal.SIGINT, _handle_shutdown)

    # 4. Start components
    scheduler = None
    api_server: Optional[ApiServer] = None

    try:
        scheduler = registry.start_monitoring(config.monitor.interval)

        if config.api.enabled:
            try:
                api_server = ApiServer(config.api, registry)
                api_server.start()
            except ApiError as e:
                logger.error("Failed to start API server: %s", e)
                logger.warning("Continuing without API server")
                api_server = None

        logger.info("All components started, waiting for shutdown signal...")

        # 5. Wait for shutdown signal
        _shutdown_event.wait()

    except KeyboardInterrupt:
        # Backup handler if signal doesn't work
        logger.info("Keyboard interrupt received")
    finally:
        # 6. Cleanup - stop all components
        logger.info("Shutting down components...")

        if scheduler is not None:
            scheduler.stop()

        if api_server is not None:
            api_server.stop()

        checker.close()
        logger.info("Shutdown complete")


def _cmd_check(args: argparse.Namespace) -> None:
    """Execute the check command - probe a single URL once."""
    _setup_logging(args.verbose)

    from .checker import HealthChecker

    checker = HealthChecker(timeout=args.timeout)
    try:
        outcome = checker.probe(args.url)
    finally:
        checker.close()

    print(json.dumps({"url": args.url, **outcome.to_dict()}, indent=2))

    if not outcome.is_up():
        sys.exit(1)


def _cmd_test_alert(args: argparse.Namespace) -> None:
    """Execute the test-alert command - send a sample failure report."""
    from .config import ConfigError, load_config
    from .models import FailureReport
    from .notifier import NullSink, build_sink

    # 1. Load configuration
    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)

    # 2. Check if any sink is configured
    sink = build_sink(config.notifications)
    if isinstance(sink, NullSink):
        print("Error: No notification channels configured")
        sys.exit(1)

    # 3. Send a sample report
    report = FailureReport(
        url="https://example.com",
        status_code=0,
        error_message="sitewatch test alert",
        timestamp=datetime.now(UTC),
    )
    print(f"Sending test alert via {type(sink).__name__}...\n")

    if sink.notify(report):
        print("✓ SUCCESS: test alert delivered")
    else:
        print("✗ FAILED: test alert was not delivered (see log output)")
        sys.exit(1)


def main() -> None:
    """Main entry point for the sitewatch package."""
    parser = argparse.ArgumentParser(
        description="sitewatch - Lightweight uptime monitoring for HTTP(S) endpoints"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"sitewatch {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command")

    # Run subcommand (default behavior)
    run_parser = subparsers.add_parser(
        "run",
        help="Start the monitoring service (default)",
    )
    run_parser.add_argument(
        "-c", "--config",
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )
    run_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    run_parser.set_defaults(func=_cmd_run)

    # Check subcommand
    check_parser = subparsers.add_parser(
        "check",
        help="Probe a single URL once and print the outcome",
    )
    check_parser.add_argument("url", help="HTTP(S) URL to probe")
    check_parser.add_argument(
        "--timeout",
        type=float,
        default=15.0,
        help="Probe timeout in seconds (default: 15)",
    )
    check_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    check_parser.set_defaults(func=_cmd_check)

    # Test-alert subcommand
    test_alert_parser = subparsers.add_parser(
        "test-alert",
        help="Send a sample failure report through the configured sinks",
    )
    test_alert_parser.add_argument(
        "-c", "--config",
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )
    test_alert_parser.set_defaults(func=_cmd_test_alert)

    args = parser.parse_args()

    # Default to 'run' if no command specified
    if args.command is None:
        args.config = "config.yaml"
        args.verbose = False
        args.func = _cmd_run

    args.func(args)
