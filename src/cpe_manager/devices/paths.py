"""Static parameter path table: (vendor, logical field) -> ordered PathSet.

Every path in a PathSet receives the same value, in listed order; some
firmwares mirror one logical setting under both the TR-098
(``InternetGatewayDevice.``) and TR-181 (``Device.``) data models.
Vendors without a dedicated entry use the generic table, which is the
superset of the common locations.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from cpe_manager.models import LogicalField, VendorTag

PathSet = tuple[str, ...]

_WLAN = "InternetGatewayDevice.LANDevice.1.WLANConfiguration"

# Subtree refreshed after a configuration change to hint the ACS to re-read it.
WIFI_REFRESH_OBJECT = _WLAN

_PASSWORD_2_4G = (f"{_WLAN}.1.PreSharedKey.1.KeyPassphrase",)
_PASSWORD_5G = (f"{_WLAN}.5.PreSharedKey.1.KeyPassphrase",)

_TABLE: dict[VendorTag, dict[LogicalField, PathSet]] = {
    VendorTag.HUAWEI: {
        LogicalField.SSID_2_4G: (f"{_WLAN}.1.SSID", "Device.WiFi.SSID.1.SSID"),
        LogicalField.SSID_5G: (f"{_WLAN}.5.SSID", "Device.WiFi.SSID.5.SSID"),
        LogicalField.PASSWORD_2_4G: _PASSWORD_2_4G,
        LogicalField.PASSWORD_5G: _PASSWORD_5G,
    },
    VendorTag.ZTE: {
        LogicalField.SSID_2_4G: (f"{_WLAN}.1.SSID", "Device.WiFi.SSID.1.SSID"),
        LogicalField.SSID_5G: (f"{_WLAN}.5.SSID", "Device.WiFi.SSID.2.SSID"),
        LogicalField.PASSWORD_2_4G: _PASSWORD_2_4G,
        LogicalField.PASSWORD_5G: _PASSWORD_5G,
    },
    VendorTag.FIBERHOME: {
        LogicalField.SSID_2_4G: (f"{_WLAN}.1.SSID", "Device.WiFi.Radio.1.SSID.1.SSID"),
        LogicalField.SSID_5G: (f"{_WLAN}.5.SSID", "Device.WiFi.Radio.2.SSID.1.SSID"),
        LogicalField.PASSWORD_2_4G: (
            f"{_WLAN}.1.KeyPassphrase",
            "Device.WiFi.SSID.1.KeyPassphrase",
        ),
        LogicalField.PASSWORD_5G: _PASSWORD_5G,
    },
    VendorTag.GENERIC: {
        LogicalField.SSID_2_4G: (
            f"{_WLAN}.1.SSID",
            "Device.WiFi.SSID.1.SSID",
            "InternetGatewayDevice.WANDevice.1.X_Config.WiFi.SSID.1.SSID",
            "Device.WiFi.Radio.1.SSID.1.SSID",
        ),
        LogicalField.SSID_5G: (
            f"{_WLAN}.5.SSID",
            f"{_WLAN}.6.SSID",
            f"{_WLAN}.7.SSID",
            f"{_WLAN}.8.SSID",
            "Device.WiFi.SSID.2.SSID",
            "Device.WiFi.Radio.2.SSID.1.SSID",
        ),
        LogicalField.PASSWORD_2_4G: _PASSWORD_2_4G,
        LogicalField.PASSWORD_5G: _PASSWORD_5G,
    },
}

PARAMETER_PATHS: Mapping[VendorTag, Mapping[LogicalField, PathSet]] = MappingProxyType(
    {vendor: MappingProxyType(fields) for vendor, fields in _TABLE.items()}
)


def paths_for_vendor(vendor: VendorTag) -> Mapping[LogicalField, PathSet]:
    """Return the full field table for *vendor*, or the generic one."""
    return PARAMETER_PATHS.get(vendor, PARAMETER_PATHS[VendorTag.GENERIC])


def resolve(vendor: VendorTag, field: LogicalField) -> PathSet:
    """Return the ordered PathSet for *field* on *vendor*'s firmware."""
    return paths_for_vendor(vendor)[field]
