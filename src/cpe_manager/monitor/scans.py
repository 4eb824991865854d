"""Fleet scans for degraded optical signal and stale devices.

Each scan fetches the whole fleet once, evaluates every device
independently (one bad record never aborts the scan), collects violators
into an ``AlertGroup`` and sends a single aggregated notification when the
group is non-empty.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from cpe_manager.acs.client import AcsProtocolClient
from cpe_manager.alerts.dispatcher import NotificationSink
from cpe_manager.alerts.types import Priority
from cpe_manager.devices import record as rec
from cpe_manager.integrations.subscribers import (
    NullSubscriberDirectory,
    SubscriberLookup,
    SubscriberRecord,
)
from cpe_manager.models import (
    AlertGroup,
    DeviceAlertInfo,
    DeviceRecord,
    ScanReport,
    ThresholdKind,
)

logger = logging.getLogger(__name__)

DEFAULT_SIGNAL_THRESHOLD_DBM = -27.0
DEFAULT_LIVENESS_THRESHOLD_HOURS = 24.0

UNKNOWN_SUBSCRIBER = "Unknown"

# Virtual (computed) parameters first, then raw protocol paths.
RX_POWER_PATHS = (
    "VirtualParameters.RXPower",
    "VirtualParameters.redaman",
    "InternetGatewayDevice.WANDevice.1.WANPONInterfaceConfig.RXPower",
    "Device.XPON.Interface.1.Stats.RXPower",
)

PPP_USERNAME_PATHS = (
    "InternetGatewayDevice.WANDevice.1.WANConnectionDevice.1.WANPPPConnection.1.Username",
    "VirtualParameters.pppoeUsername",
)

PPPOE_TAG_PREFIX = "pppoe:"

Now = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def extract_rx_power(record: DeviceRecord) -> float | None:
    """Return the first reported optical RX power in dBm, or None.

    Blank values (uncomputed virtual parameters) are skipped. Raises
    ``ValueError`` when the first non-blank value is not numeric.
    """
    for path in RX_POWER_PATHS:
        value, present = rec.get_leaf_value(record, path)
        if not present or not str(value).strip():
            continue
        return float(value)
    return None


# ---------------------------------------------------------------------------
# Subscriber resolution
# ---------------------------------------------------------------------------


class SubscriberResolver:
    """Best-effort subscriber id for a device, scoped to one scan.

    Order: WAN PPP username parameters, then a ``pppoe:<name>`` tag, then
    the external directory (a record whose comment mentions the device's
    serial number or short id). The directory is queried at most once per
    resolver, and only when a device needs it.
    """

    def __init__(self, lookup: SubscriberLookup) -> None:
        self._lookup = lookup
        self._records: list[SubscriberRecord] | None = None

    async def _directory(self) -> list[SubscriberRecord]:
        if self._records is None:
            try:
                self._records = await self._lookup.list_subscriber_records()
            except Exception as exc:
                logger.warning("Subscriber directory lookup failed: %s", exc)
                self._records = []
        return self._records

    async def resolve(self, record: DeviceRecord) -> str:
        value, present = rec.first_present(record, PPP_USERNAME_PATHS)
        if present and str(value):
            return str(value)

        for tag in rec.tags(record):
            if tag.startswith(PPPOE_TAG_PREFIX) and len(tag) > len(PPPOE_TAG_PREFIX):
                return tag[len(PPPOE_TAG_PREFIX) :]

        # Without a serial or an id there is nothing to match a comment against.
        serial, has_serial = rec.first_present(record, rec.SERIAL_NUMBER_PATHS)
        keys = [k for k in (str(serial) if has_serial else "", rec.short_device_id(record)) if k]
        if not keys:
            return UNKNOWN_SUBSCRIBER

        for entry in await self._directory():
            if entry.comment and any(key in entry.comment for key in keys):
                return entry.name

        return UNKNOWN_SUBSCRIBER


# ---------------------------------------------------------------------------
# Message formatting
# ---------------------------------------------------------------------------


def _format_time(value: datetime | None) -> str:
    if value is None:
        return "never"
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def format_signal_alert(group: AlertGroup, threshold_dbm: float) -> str:
    lines = [
        "⚠️ *WARNING: HIGH OPTICAL ATTENUATION* ⚠️",
        "",
        f"{len(group)} device(s) report RX power below {threshold_dbm} dBm:",
        "",
    ]
    for index, info in enumerate(group.devices, start=1):
        lines.extend([
            f"{index}. ID: {rec.short_device_id(info.device_id)}",
            f"   S/N: {info.serial_number}",
            f"   PPPoE: {info.subscriber_id}",
            f"   RXPower: {info.rx_power} dBm",
            f"   Last Inform: {_format_time(info.last_inform)}",
            "",
        ])
    lines.append("Please check these lines before the connections drop.")
    return "\n".join(lines)


def format_liveness_alert(group: AlertGroup, threshold_hours: float) -> str:
    lines = [
        "⚠️ *WARNING: DEVICES OFFLINE* ⚠️",
        "",
        f"{len(group)} device(s) offline for more than {threshold_hours:g} hours:",
        "",
    ]
    for index, info in enumerate(group.devices, start=1):
        offline = f"{info.offline_hours} hours" if info.offline_hours is not None else "unknown"
        lines.extend([
            f"{index}. ID: {rec.short_device_id(info.device_id)}",
            f"   S/N: {info.serial_number}",
            f"   PPPoE: {info.subscriber_id}",
            f"   Offline for: {offline}",
            f"   Last Inform: {_format_time(info.last_inform)}",
            "",
        ])
    lines.append("Please follow up.")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------


class FleetScanner:
    """Runs signal and liveness scans over the whole fleet.

    Parameters
    ----------
    client:
        ACS client providing ``fetch_all_devices``.
    sink:
        Notification sink receiving one aggregated message per scan.
    subscribers:
        Subscriber directory used as the last resolution step.
    now:
        Returns the current aware datetime (injected in tests).
    """

    def __init__(
        self,
        client: AcsProtocolClient,
        sink: NotificationSink,
        subscribers: SubscriberLookup | None = None,
        signal_threshold_dbm: float = DEFAULT_SIGNAL_THRESHOLD_DBM,
        liveness_threshold_hours: float = DEFAULT_LIVENESS_THRESHOLD_HOURS,
        now: Now = _utcnow,
    ) -> None:
        self._client = client
        self._sink = sink
        self._subscribers = subscribers or NullSubscriberDirectory()
        self._signal_threshold = signal_threshold_dbm
        self._liveness_threshold = liveness_threshold_hours
        self._now = now

    async def _fetch_fleet(self, kind: ThresholdKind) -> list[DeviceRecord] | None:
        try:
            return await self._client.fetch_all_devices()
        except Exception:
            logger.exception("%s scan aborted: could not fetch device list", kind.value.capitalize())
            return None

    async def _send(self, message: str, priority: Priority, kind: ThresholdKind) -> bool:
        try:
            await self._sink.notify(message, priority)
        except Exception:
            logger.exception("Failed to send %s alert", kind.value)
            return False
        return True

    async def scan_signal(self, threshold_dbm: float | None = None) -> ScanReport | None:
        """Alert on devices whose optical RX power is below the threshold.

        Returns None when the device list could not be fetched.
        """
        threshold = self._signal_threshold if threshold_dbm is None else threshold_dbm
        logger.info("Starting RX power scan (threshold %s dBm)", threshold)

        devices = await self._fetch_fleet(ThresholdKind.SIGNAL)
        if devices is None:
            return None

        resolver = SubscriberResolver(self._subscribers)
        report = ScanReport(
            kind=ThresholdKind.SIGNAL,
            scanned=len(devices),
            group=AlertGroup(threshold_kind=ThresholdKind.SIGNAL),
        )

        for device in devices:
            ident = rec.device_id(device)
            try:
                rx_power = extract_rx_power(device)
                if rx_power is None or rx_power >= threshold:
                    continue
                info = DeviceAlertInfo(
                    device_id=ident,
                    serial_number=rec.serial_number(device),
                    subscriber_id=await resolver.resolve(device),
                    last_inform=rec.last_inform(device),
                    rx_power=rx_power,
                )
                report.group.devices.append(info)
                logger.info(
                    "Low RX power on %s: %s dBm (subscriber %s)",
                    ident, rx_power, info.subscriber_id,
                )
            except Exception:
                logger.exception("Error checking RX power for %s", ident or "<no id>")
                report.errors.append(ident)

        if report.group.devices:
            report.notified = await self._send(
                format_signal_alert(report.group, threshold), Priority.HIGH, ThresholdKind.SIGNAL,
            )
        logger.info(
            "RX power scan complete: %d/%d devices below threshold",
            len(report.group), report.scanned,
        )
        return report

    async def scan_liveness(self, threshold_hours: float | None = None) -> ScanReport | None:
        """Alert on devices that have not contacted the ACS within the threshold.

        Devices with no recorded last contact are reported too. Returns None
        when the device list could not be fetched.
        """
        threshold = self._liveness_threshold if threshold_hours is None else threshold_hours
        logger.info("Starting liveness scan (threshold %s hours)", threshold)

        devices = await self._fetch_fleet(ThresholdKind.LIVENESS)
        if devices is None:
            return None

        resolver = SubscriberResolver(self._subscribers)
        report = ScanReport(
            kind=ThresholdKind.LIVENESS,
            scanned=len(devices),
            group=AlertGroup(threshold_kind=ThresholdKind.LIVENESS),
        )
        now = self._now()
        threshold_seconds = threshold * 3600

        for device in devices:
            ident = rec.device_id(device)
            try:
                seen = rec.last_inform(device)
                offline_hours: float | None = None
                if seen is not None:
                    age = (now - seen).total_seconds()
                    if age <= threshold_seconds:
                        continue
                    offline_hours = round(age / 3600, 1)
                info = DeviceAlertInfo(
                    device_id=ident,
                    serial_number=rec.serial_number(device),
                    subscriber_id=await resolver.resolve(device),
                    last_inform=seen,
                    offline_hours=offline_hours,
                )
                report.group.devices.append(info)
                logger.info("Device %s offline for %s hours", ident, offline_hours)
            except Exception:
                logger.exception("Error checking liveness for %s", ident or "<no id>")
                report.errors.append(ident)

        if report.group.devices:
            report.notified = await self._send(
                format_liveness_alert(report.group, threshold),
                Priority.MEDIUM,
                ThresholdKind.LIVENESS,
            )
        logger.info(
            "Liveness scan complete: %d/%d devices offline",
            len(report.group), report.scanned,
        )
        return report
