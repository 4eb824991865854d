"""Defensive accessors over raw ACS device records.

Device records are deeply nested JSON trees. Leaf parameters are objects
carrying ``_value`` (and ``_type``); a few identity fields such as
``DeviceID.ProductClass`` may be plain strings depending on how the
record was projected. Every accessor here tolerates missing branches and
unexpected shapes and reports absence explicitly rather than raising.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from cpe_manager.models import DeviceRecord

_MISSING = object()

SERIAL_NUMBER_PATHS = (
    "DeviceID.SerialNumber",
    "_deviceId._SerialNumber",
    "InternetGatewayDevice.DeviceInfo.SerialNumber",
    "Device.DeviceInfo.SerialNumber",
)

MANUFACTURER_PATHS = (
    "DeviceID.Manufacturer",
    "_deviceId._Manufacturer",
    "InternetGatewayDevice.DeviceInfo.Manufacturer",
    "Device.DeviceInfo.Manufacturer",
)

PRODUCT_CLASS_PATHS = (
    "DeviceID.ProductClass",
    "_deviceId._ProductClass",
    "InternetGatewayDevice.DeviceInfo.ProductClass",
    "Device.DeviceInfo.ProductClass",
)

MODEL_NAME_PATHS = (
    "InternetGatewayDevice.DeviceInfo.ModelName",
    "Device.DeviceInfo.ModelName",
)


def get_leaf_value(record: Any, path: str) -> tuple[Any, bool]:
    """Walk a dot-separated *path* through *record*.

    Returns ``(value, True)`` when the path ends at a parameter object with
    a ``_value`` or at a scalar, and ``(None, False)`` otherwise.
    """
    current: Any = record
    for part in path.split("."):
        if not isinstance(current, dict):
            return None, False
        current = current.get(part, _MISSING)
        if current is _MISSING:
            return None, False

    if isinstance(current, dict):
        if "_value" in current and current["_value"] is not None:
            return current["_value"], True
        return None, False
    if current is None or isinstance(current, list):
        return None, False
    return current, True


def first_present(record: Any, paths: tuple[str, ...] | list[str]) -> tuple[Any, bool]:
    """Return the first present leaf among *paths*, in order."""
    for path in paths:
        value, present = get_leaf_value(record, path)
        if present:
            return value, True
    return None, False


def device_id(record: DeviceRecord) -> str:
    value = record.get("_id") if isinstance(record, dict) else None
    return value if isinstance(value, str) else ""


def short_device_id(record_or_id: DeviceRecord | str) -> str:
    """Return the serial segment of an ``OUI-ProductClass-Serial`` device id."""
    ident = record_or_id if isinstance(record_or_id, str) else device_id(record_or_id)
    parts = ident.split("-")
    if len(parts) >= 3 and parts[2]:
        return parts[2]
    return ident


def serial_number(record: DeviceRecord) -> str:
    """Return the device serial number, falling back to the short device id."""
    value, present = first_present(record, SERIAL_NUMBER_PATHS)
    if present and str(value):
        return str(value)
    ident = device_id(record)
    if ident:
        return short_device_id(ident)
    return "Unknown"


def tags(record: DeviceRecord) -> list[str]:
    raw = record.get("_tags") if isinstance(record, dict) else None
    if isinstance(raw, str):
        return [raw]
    if isinstance(raw, list):
        return [t for t in raw if isinstance(t, str)]
    return []


def last_inform(record: DeviceRecord) -> datetime | None:
    """Return the last-contact time as an aware datetime, or None."""
    raw = record.get("_lastInform") if isinstance(record, dict) else None
    if isinstance(raw, datetime):
        parsed = raw
    elif isinstance(raw, str) and raw:
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def identity_text(record: DeviceRecord) -> str:
    """Lowercased ``manufacturer product-class model-name`` description."""
    parts = []
    for paths in (MANUFACTURER_PATHS, PRODUCT_CLASS_PATHS, MODEL_NAME_PATHS):
        value, present = first_present(record, paths)
        parts.append(str(value) if present else "")
    return " ".join(parts).lower()


def flatten_parameters(subtree: Any, prefix: str = "") -> dict[str, Any]:
    """Flatten a parameter subtree into ``{"Name.Sub": value}`` pairs."""
    flat: dict[str, Any] = {}
    if not isinstance(subtree, dict):
        return flat
    for key, node in subtree.items():
        if key.startswith("_"):
            continue
        name = f"{prefix}.{key}" if prefix else key
        if isinstance(node, dict):
            if "_value" in node:
                flat[name] = node["_value"]
            else:
                flat.update(flatten_parameters(node, name))
    return flat
