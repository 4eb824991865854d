"""Domain types shared across the CPE manager.

Vendor tags, logical configuration fields, task operations and the result
objects returned by dispatch and monitoring. Device records themselves stay
as the raw nested dicts the ACS server returns (see ``devices.record``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

# Type tag written with every parameter value this engine sets.
XSD_STRING = "xsd:string"

DeviceRecord = dict[str, Any]


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class VendorTag(str, Enum):
    ZTE = "zte"
    HUAWEI = "huawei"
    FIBERHOME = "fiberhome"
    NOKIA = "nokia"
    TECHNICOLOR = "technicolor"
    GENERIC = "generic"


class LogicalField(str, Enum):
    SSID_2_4G = "ssid_2_4g"
    SSID_5G = "ssid_5g"
    PASSWORD_2_4G = "password_2_4g"
    PASSWORD_5G = "password_5g"


class DispatchStrategy(str, Enum):
    FAST = "fast"
    STANDARD = "standard"


class ThresholdKind(str, Enum):
    SIGNAL = "signal"
    LIVENESS = "liveness"


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TaskOperation:
    """One "set parameter value" instruction."""

    path: str
    value: str
    value_type: str = XSD_STRING

    def to_wire(self) -> list[str]:
        """Return the ``[path, value, typeTag]`` triple the ACS expects."""
        return [self.path, self.value, self.value_type]


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of a successful dispatch call.

    Parameters
    ----------
    success:
        Always True; failures raise ``DispatchError`` instead.
    vendor:
        Vendor tag used to resolve paths, or None for tasks that do not
        classify the device (reboot, factory reset).
    task_id:
        Task id reported by the ACS for the primary (first) submission.
    operations_count:
        Number of parameter operations sent.
    elapsed_ms:
        Wall time of the whole call including any refresh.
    strategy:
        Which dispatch strategy was used.
    refresh_skipped:
        True when no follow-up refresh task was sent.
    """

    success: bool
    vendor: VendorTag | None
    task_id: str | None
    operations_count: int
    elapsed_ms: int
    strategy: DispatchStrategy
    refresh_skipped: bool = True
    message: str = ""


@dataclass
class BatchResult:
    """Aggregate outcome of configuring many devices at once."""

    total: int
    successful: list[DispatchResult] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    elapsed_ms: int = 0
    vendor_stats: dict[str, int] = field(default_factory=dict)
    strategy_stats: dict[str, int] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Monitoring
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DeviceAlertInfo:
    """One device that violated a monitoring threshold."""

    device_id: str
    serial_number: str
    subscriber_id: str
    last_inform: datetime | None
    rx_power: float | None = None
    offline_hours: float | None = None


@dataclass
class AlertGroup:
    """Devices violating one threshold during a single scan."""

    threshold_kind: ThresholdKind
    devices: list[DeviceAlertInfo] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.devices)


@dataclass
class ScanReport:
    """Summary of one completed fleet scan."""

    kind: ThresholdKind
    scanned: int
    group: AlertGroup
    errors: list[str] = field(default_factory=list)
    notified: bool = False
