"""Tests for domain types and errors."""

from __future__ import annotations

import dataclasses

import pytest

from cpe_manager.errors import (
    AcsError,
    CpeManagerError,
    DeviceNotFoundError,
    DispatchError,
    NotificationError,
)
from cpe_manager.models import (
    AlertGroup,
    DeviceAlertInfo,
    DispatchResult,
    DispatchStrategy,
    TaskOperation,
    ThresholdKind,
    VendorTag,
)


class TestTaskOperation:
    def test_default_type_tag(self) -> None:
        assert TaskOperation("A.B", "x").value_type == "xsd:string"

    def test_frozen(self) -> None:
        op = TaskOperation("A.B", "x")
        with pytest.raises(dataclasses.FrozenInstanceError):
            op.value = "y"  # type: ignore[misc]


class TestResults:
    def test_dispatch_result_defaults(self) -> None:
        result = DispatchResult(
            success=True,
            vendor=VendorTag.HUAWEI,
            task_id="t",
            operations_count=2,
            elapsed_ms=12,
            strategy=DispatchStrategy.FAST,
        )
        assert result.refresh_skipped is True
        assert result.message == ""

    def test_alert_group_len(self) -> None:
        group = AlertGroup(threshold_kind=ThresholdKind.SIGNAL)
        assert len(group) == 0
        group.devices.append(DeviceAlertInfo("id", "sn", "Unknown", None, rx_power=-30.0))
        assert len(group) == 1

    def test_vendor_tag_values(self) -> None:
        assert VendorTag("fiberhome") is VendorTag.FIBERHOME
        assert VendorTag.GENERIC.value == "generic"


class TestErrors:
    def test_hierarchy(self) -> None:
        assert issubclass(DeviceNotFoundError, AcsError)
        assert issubclass(AcsError, CpeManagerError)
        assert issubclass(DispatchError, CpeManagerError)
        assert issubclass(NotificationError, CpeManagerError)

    def test_acs_error_status(self) -> None:
        assert AcsError("x", status_code=502).status_code == 502
        assert AcsError("x").status_code is None

    def test_dispatch_error_context(self) -> None:
        err = DispatchError(
            "timed out", device_id="d", vendor="zte", operations_count=3, elapsed_ms=4100,
        )
        assert str(err) == "timed out"
        assert (err.device_id, err.vendor, err.operations_count, err.elapsed_ms) == (
            "d", "zte", 3, 4100,
        )
