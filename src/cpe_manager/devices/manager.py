"""Device facade used by the admin and customer surfaces.

Composes the ACS client, classification cache and task dispatcher behind
one object so callers never touch parameter paths or task bodies.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from cpe_manager.acs.client import GenieAcsClient
from cpe_manager.devices import record as rec
from cpe_manager.dispatch.dispatcher import TaskDispatcher
from cpe_manager.models import (
    BatchResult,
    DeviceRecord,
    DispatchResult,
    LogicalField,
    VendorTag,
)

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

_SSID_FIELDS = {
    "2.4": LogicalField.SSID_2_4G,
    "5": LogicalField.SSID_5G,
}
_PASSWORD_FIELDS = {
    "2.4": LogicalField.PASSWORD_2_4G,
    "5": LogicalField.PASSWORD_5G,
}


def _band_key(band: str | float) -> str:
    key = str(band).lower().removesuffix("ghz").removesuffix("g").strip()
    if key not in _SSID_FIELDS:
        raise ValueError(f"Unknown Wi-Fi band {band!r}; expected '2.4' or '5'")
    return key


class DeviceManager:
    """High-level device operations.

    Parameters
    ----------
    client:
        GenieACS client used for reads and tag changes.
    dispatcher:
        Task dispatcher sharing the same client and classification cache.
    """

    def __init__(self, client: GenieAcsClient, dispatcher: TaskDispatcher) -> None:
        self._client = client
        self._dispatcher = dispatcher

    # -- Configuration -------------------------------------------------

    async def classify(self, device_id: str) -> VendorTag:
        return await self._dispatcher.resolve_vendor(device_id)

    async def set_fields(
        self, device_id: str, fields: Mapping[Any, Any],
    ) -> DispatchResult:
        return await self._dispatcher.set_fields(device_id, fields)

    async def set_ssid(self, device_id: str, band: str | float, ssid: str) -> DispatchResult:
        """Change the SSID of one band ("2.4" or "5")."""
        if not ssid:
            raise ValueError("SSID must not be empty")
        field = _SSID_FIELDS[_band_key(band)]
        return await self._dispatcher.set_fields(device_id, {field: ssid})

    async def set_password(
        self, device_id: str, band: str | float, password: str,
    ) -> DispatchResult:
        """Change the Wi-Fi passphrase of one band ("2.4" or "5")."""
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValueError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )
        field = _PASSWORD_FIELDS[_band_key(band)]
        return await self._dispatcher.set_fields(device_id, {field: password})

    async def reboot(self, device_id: str) -> DispatchResult:
        return await self._dispatcher.reboot(device_id)

    async def factory_reset(self, device_id: str) -> DispatchResult:
        return await self._dispatcher.factory_reset(device_id)

    async def batch_set_fields(
        self, device_ids: list[str], fields: Mapping[Any, Any],
    ) -> BatchResult:
        return await self._dispatcher.batch_set_fields(device_ids, fields)

    # -- Reads ---------------------------------------------------------

    async def list_devices(self) -> list[DeviceRecord]:
        return await self._client.fetch_all_devices()

    async def get_device(self, device_id: str) -> DeviceRecord:
        return await self._client.fetch_device(device_id)

    async def get_virtual_parameters(self, device_id: str) -> dict[str, Any]:
        """Return the device's virtual parameters as a flat name -> value map."""
        device = await self._client.fetch_device(device_id)
        return rec.flatten_parameters(device.get("VirtualParameters"))

    async def find_device_by_tag(self, tag: str) -> DeviceRecord:
        return await self._client.find_device_by_tag(tag)

    # -- Tags ----------------------------------------------------------

    async def replace_tag(self, device_id: str, tag: str) -> list[str]:
        """Make *tag* the device's only tag.

        Existing tags are removed best-effort; a failed removal is logged
        and does not stop the new tag from being added. Returns the tags
        that were removed.
        """
        tag = tag.strip()
        if not tag:
            raise ValueError("Tag must not be empty")

        device = await self._client.fetch_device(device_id)
        removed: list[str] = []
        for old in rec.tags(device):
            if old == tag:
                continue
            try:
                await self._client.remove_tag(device_id, old)
            except Exception as exc:
                logger.warning("Could not remove tag %r from %s: %s", old, device_id, exc)
                continue
            removed.append(old)

        await self._client.add_tag(device_id, tag)
        logger.info("Tag of %s set to %r (removed %d)", device_id, tag, len(removed))
        return removed
