"""CPE manager -- entry point.

Usage::

    python -m cpe_manager [--config PATH] [--log-level LEVEL] [--run-once {signal,liveness}]

Startup sequence:
    1. Parse CLI arguments
    2. Load configuration from YAML (or defaults) and environment
    3. Build the ACS client
    4. Build the notification dispatcher and subscriber lookup
    5. Build the fleet scanner and monitor scheduler
    6. Start the scheduler and wait for SIGINT/SIGTERM
    7. On shutdown: stop the scheduler, close HTTP clients
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any

from cpe_manager import __version__
from cpe_manager.config import Settings

logger = logging.getLogger("cpe_manager")

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


# ---------------------------------------------------------------------------
# Integration seams -- thin wrappers around real subsystem constructors.
# These are module-level names so tests can patch them individually.
# ---------------------------------------------------------------------------


def load_config(config_path: str | None) -> Settings:
    """Load settings from a YAML file (or defaults) plus env overrides."""
    from cpe_manager.config import load_settings

    path = Path(config_path) if config_path else None
    return load_settings(config_path=path)


def create_acs_client(settings: Settings) -> Any:
    """Create the GenieACS NBI client."""
    from cpe_manager.acs.client import GenieAcsClient

    acs = settings.acs
    return GenieAcsClient(
        url=acs.url,
        username=acs.username,
        password=acs.password,
        timeout=acs.request_timeout,
    )


def create_notifier(settings: Settings) -> Any:
    """Create the notification dispatcher from the enabled methods."""
    from cpe_manager.alerts.dispatcher import (
        NotificationDispatcher,
        create_log_handler,
        create_webhook_handler,
    )

    cfg = settings.notifications
    methods: list[dict[str, Any]] = []
    if cfg.log.enabled:
        methods.append({
            "name": "log",
            "handler": create_log_handler(),
            "min_priority": cfg.log.min_priority,
        })
    if cfg.webhook.enabled and cfg.webhook.url:
        methods.append({
            "name": "webhook",
            "handler": create_webhook_handler(cfg.webhook.url),
            "min_priority": cfg.webhook.min_priority,
        })
        logger.info("Webhook notifications enabled")
    if not methods:
        logger.warning("No notification methods enabled; alerts will be dropped")
    return NotificationDispatcher(methods)


def create_subscriber_lookup(settings: Settings) -> Any:
    """Create the subscriber directory, or a null one when disabled."""
    from cpe_manager.integrations.subscribers import (
        HttpSubscriberDirectory,
        NullSubscriberDirectory,
    )

    cfg = settings.subscribers
    if cfg.enabled and cfg.url:
        logger.info("Subscriber directory enabled: %s", cfg.url)
        return HttpSubscriberDirectory(url=cfg.url, token=cfg.token)
    return NullSubscriberDirectory()


def create_scheduler(
    settings: Settings, client: Any, notifier: Any, subscribers: Any,
) -> Any:
    """Create the fleet scanner and wrap it in the monitor scheduler."""
    from cpe_manager.monitor.scans import FleetScanner
    from cpe_manager.monitor.scheduler import FleetMonitorScheduler

    monitor = settings.monitor
    scanner = FleetScanner(
        client=client,
        sink=notifier,
        subscribers=subscribers,
        signal_threshold_dbm=monitor.signal.threshold_dbm,
        liveness_threshold_hours=monitor.liveness.threshold_hours,
    )
    return FleetMonitorScheduler.from_config(scanner, monitor)


async def wait_for_shutdown() -> None:
    """Block until SIGINT or SIGTERM is received."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # Signal handlers are unavailable on this platform/loop.
            pass
    await stop.wait()


# ---------------------------------------------------------------------------
# CLI argument parsing
# ---------------------------------------------------------------------------


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="cpe_manager",
        description="CPE manager -- vendor-aware configuration and fleet monitoring",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML config file",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override the configured log level",
    )
    parser.add_argument(
        "--run-once",
        choices=["signal", "liveness"],
        default=None,
        help="Run a single fleet scan and exit",
    )
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Main run coroutine
# ---------------------------------------------------------------------------


async def run_service(
    config_path: str | None = None,
    log_level: str | None = None,
    run_once: str | None = None,
) -> int:
    """Start the manager and run until cancelled (or one scan with *run_once*).

    Returns the process exit code.
    """
    # 1. Load config
    settings = load_config(config_path)
    logging.getLogger().setLevel(log_level or settings.logging.level.upper())

    # 2. ACS client
    client = create_acs_client(settings)

    # 3. Alerting collaborators
    notifier = create_notifier(settings)
    subscribers = create_subscriber_lookup(settings)

    # 4. Monitor
    scheduler = create_scheduler(settings, client, notifier, subscribers)

    try:
        if run_once is not None:
            if run_once == "signal":
                report = await scheduler.run_signal_scan_now()
            else:
                report = await scheduler.run_liveness_scan_now()
            if report is None:
                logger.error("%s scan could not fetch the device list", run_once)
                return 1
            logger.info(
                "%s scan: %d scanned, %d flagged, %d errors",
                run_once, report.scanned, len(report.group), len(report.errors),
            )
            return 0

        await scheduler.start()
        logger.info("CPE manager running against %s", settings.acs.url)
        try:
            await wait_for_shutdown()
        except asyncio.CancelledError:
            pass
        logger.info("Shutdown signal received -- stopping CPE manager")
        return 0
    finally:
        logger.info("Stopping fleet monitor...")
        await scheduler.stop()

        logger.info("Closing ACS client...")
        await client.aclose()

        logger.info("CPE manager shutdown complete")


# ---------------------------------------------------------------------------
# Script entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Parse CLI args and run the manager."""
    args = parse_args()
    logging.basicConfig(
        level=args.log_level or logging.INFO,
        format=_LOG_FORMAT,
    )

    try:
        code = asyncio.run(
            run_service(
                config_path=args.config,
                log_level=args.log_level,
                run_once=args.run_once,
            )
        )
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    main()
