"""Fleet monitor scheduler -- runs the signal and liveness scans on timers.

Each scan has its own background task and interval. Both are held back by
a shared startup delay so they do not compete with process boot, then run
once and repeat every interval until ``stop()`` is called.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable

from cpe_manager.config import MonitorConfig
from cpe_manager.models import ScanReport, ThresholdKind
from cpe_manager.monitor.scans import FleetScanner

logger = logging.getLogger("cpe_manager.monitor")

DEFAULT_STARTUP_DELAY_SECONDS = 300.0


@dataclass(frozen=True)
class JobSchedule:
    """Timer settings for one recurring scan."""

    enabled: bool
    interval_seconds: float


class FleetMonitorScheduler:
    """Owns the two recurring fleet scans.

    Parameters
    ----------
    scanner:
        The FleetScanner that performs the actual scans.
    signal:
        Schedule of the optical signal scan.
    liveness:
        Schedule of the liveness scan.
    startup_delay_seconds:
        Seconds to wait after ``start()`` before the first scan of each job.
    """

    def __init__(
        self,
        scanner: FleetScanner,
        signal: JobSchedule,
        liveness: JobSchedule,
        startup_delay_seconds: float = DEFAULT_STARTUP_DELAY_SECONDS,
    ) -> None:
        self._scanner = scanner
        self._schedules = {
            ThresholdKind.SIGNAL: signal,
            ThresholdKind.LIVENESS: liveness,
        }
        self._startup_delay = startup_delay_seconds
        self._tasks: dict[ThresholdKind, asyncio.Task[None]] = {}
        self._shutdown = asyncio.Event()
        self._last_reports: dict[ThresholdKind, ScanReport] = {}
        self._last_run_at: dict[ThresholdKind, datetime] = {}

    @classmethod
    def from_config(cls, scanner: FleetScanner, config: MonitorConfig) -> FleetMonitorScheduler:
        return cls(
            scanner,
            signal=JobSchedule(config.signal.enabled, config.signal.interval_seconds),
            liveness=JobSchedule(config.liveness.enabled, config.liveness.interval_seconds),
            startup_delay_seconds=config.startup_delay_seconds,
        )

    @property
    def is_running(self) -> bool:
        """Whether any scan job is currently scheduled."""
        return any(not task.done() for task in self._tasks.values())

    @property
    def running_jobs(self) -> list[ThresholdKind]:
        return [kind for kind, task in self._tasks.items() if not task.done()]

    def last_report(self, kind: ThresholdKind) -> ScanReport | None:
        """Report of the most recent completed scan of *kind*."""
        return self._last_reports.get(kind)

    def last_run_at(self, kind: ThresholdKind) -> datetime | None:
        return self._last_run_at.get(kind)

    async def start(self) -> None:
        """Start every enabled job as a background asyncio task."""
        if self.is_running:
            logger.warning("Fleet monitor already running")
            return

        self._shutdown.clear()
        for kind, schedule in self._schedules.items():
            if not schedule.enabled or schedule.interval_seconds <= 0:
                logger.info("%s monitoring disabled", kind.value.capitalize())
                continue
            self._tasks[kind] = asyncio.create_task(
                self._run_loop(kind, schedule.interval_seconds),
                name=f"fleet-monitor-{kind.value}",
            )
            logger.info(
                "%s monitoring scheduled (interval=%.0fs, startup_delay=%.0fs)",
                kind.value.capitalize(),
                schedule.interval_seconds,
                self._startup_delay,
            )

    async def stop(self) -> None:
        """Stop all jobs, waiting briefly for an in-flight scan to finish."""
        self._shutdown.set()
        for task in list(self._tasks.values()):
            try:
                await asyncio.wait_for(task, timeout=10)
            except (asyncio.TimeoutError, asyncio.CancelledError):
                pass
        self._tasks.clear()
        logger.info("Fleet monitor stopped")

    async def run_signal_scan_now(self) -> ScanReport | None:
        """Run one signal scan immediately, outside the timer."""
        return await self._run_scan(ThresholdKind.SIGNAL)

    async def run_liveness_scan_now(self) -> ScanReport | None:
        """Run one liveness scan immediately, outside the timer."""
        return await self._run_scan(ThresholdKind.LIVENESS)

    def _scan_fn(self, kind: ThresholdKind) -> Callable[[], Awaitable[ScanReport | None]]:
        if kind is ThresholdKind.SIGNAL:
            return self._scanner.scan_signal
        return self._scanner.scan_liveness

    async def _run_scan(self, kind: ThresholdKind) -> ScanReport | None:
        report = await self._scan_fn(kind)()
        self._last_run_at[kind] = datetime.now(timezone.utc)
        if report is not None:
            self._last_reports[kind] = report
        return report

    async def _sleep(self, seconds: float) -> bool:
        """Wait *seconds* or until shutdown. Returns True on shutdown."""
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def _run_loop(self, kind: ThresholdKind, interval_seconds: float) -> None:
        if await self._sleep(self._startup_delay):
            return

        while not self._shutdown.is_set():
            try:
                await self._run_scan(kind)
            except Exception:
                logger.exception("%s scan failed", kind.value.capitalize())

            if await self._sleep(interval_seconds):
                break

        logger.info("%s monitoring loop ended", kind.value.capitalize())
