"""Task dispatcher -- turns logical field changes into ACS tasks.

Dispatch pipeline for ``set_fields``:
1. Resolve the device's vendor through the classification cache.
2. Expand logical fields into concrete parameter operations using the
   vendor's PathSets; literal keys pass through (legacy Wi-Fi keys are
   mapped to a band first, see ``expand_fields``).
3. Pick a strategy. Known vendors with at most ``FAST_MODE_MAX_OPERATIONS``
   operations use fast mode: two contiguous chunks submitted concurrently.
   Everything else uses standard mode: one task.
4. Every submission tries a connection-request hint first and retries
   once without it.
5. Standard-mode dispatches, and fast ones that took longer than
   ``REFRESH_THRESHOLD_MS``, are followed by a best-effort refresh task.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
import time
from collections import Counter
from typing import Any, Callable, Mapping

from cpe_manager.acs.client import AcsProtocolClient
from cpe_manager.devices.cache import ClassificationCache
from cpe_manager.devices.classifier import VendorClassifier
from cpe_manager.devices.paths import WIFI_REFRESH_OBJECT, paths_for_vendor
from cpe_manager.errors import AcsError, DispatchError
from cpe_manager.models import (
    BatchResult,
    DispatchResult,
    DispatchStrategy,
    LogicalField,
    TaskOperation,
    VendorTag,
)

logger = logging.getLogger(__name__)

FAST_MODE_MAX_OPERATIONS = 10
FAST_MODE_CHUNKS = 2
FAST_TIMEOUT_MS = 3000
STANDARD_TIMEOUT_MS = 5000
REFRESH_TIMEOUT_MS = 2000
REFRESH_THRESHOLD_MS = 2000

# Appended to the 5GHz SSID when a legacy key does not say which band it is for.
AMBIGUOUS_5G_SUFFIX = "-5G"

_LEGACY_WLAN_PREFIX = "InternetGatewayDevice.LANDevice.1.WLANConfiguration."
_LEGACY_SSID_LEAVES = frozenset({"SSID"})
_LEGACY_PASSWORD_LEAVES = frozenset({"Password", "KeyPassphrase"})
_WLAN_INSTANCE_RE = re.compile(r"WLANConfiguration\.(\d+)\.")

Clock = Callable[[], float]


# ---------------------------------------------------------------------------
# Field expansion
# ---------------------------------------------------------------------------

def _as_logical_field(key: Any) -> LogicalField | None:
    if isinstance(key, LogicalField):
        return key
    try:
        return LogicalField(key)
    except ValueError:
        return None


def _legacy_kind(key: str) -> str | None:
    """Classify a literal key as a legacy "ssid"/"password" key, or None."""
    if "." in key and not key.startswith(_LEGACY_WLAN_PREFIX):
        return None
    leaf = key.rsplit(".", 1)[-1]
    if leaf in _LEGACY_SSID_LEAVES:
        return "ssid"
    if leaf in _LEGACY_PASSWORD_LEAVES:
        return "password"
    return None


def _wlan_instance(key: str) -> int | None:
    match = _WLAN_INSTANCE_RE.search(key)
    return int(match.group(1)) if match else None


def expand_fields(
    vendor: VendorTag, fields: Mapping[Any, Any],
) -> list[TaskOperation]:
    """Expand *fields* into parameter operations for *vendor*'s firmware.

    LogicalField keys write their value to every path of the vendor's
    PathSet. Legacy literal Wi-Fi keys are mapped to a band by their
    WLANConfiguration instance (1 = 2.4GHz, 5 = 5GHz); when the instance
    does not say, both bands are written and the 5GHz SSID gets the
    ``-5G`` suffix. Any other key is written verbatim.
    """
    table = paths_for_vendor(vendor)
    operations: list[TaskOperation] = []

    def _write(field: LogicalField, value: str) -> None:
        operations.extend(TaskOperation(path, value) for path in table[field])

    for key, raw_value in fields.items():
        value = str(raw_value)
        field = _as_logical_field(key)
        if field is not None:
            _write(field, value)
            continue

        key = str(key)
        kind = _legacy_kind(key)
        if kind is None:
            operations.append(TaskOperation(key, value))
            continue

        instance = _wlan_instance(key)
        if kind == "ssid":
            if instance == 1:
                _write(LogicalField.SSID_2_4G, value)
            elif instance == 5:
                _write(LogicalField.SSID_5G, value)
            else:
                logger.warning("Ambiguous SSID key %r, writing both bands", key)
                _write(LogicalField.SSID_2_4G, value)
                _write(LogicalField.SSID_5G, f"{value}{AMBIGUOUS_5G_SUFFIX}")
        else:
            if instance == 1:
                _write(LogicalField.PASSWORD_2_4G, value)
            elif instance == 5:
                _write(LogicalField.PASSWORD_5G, value)
            else:
                logger.warning("Ambiguous password key %r, writing both bands", key)
                _write(LogicalField.PASSWORD_2_4G, value)
                _write(LogicalField.PASSWORD_5G, value)

    return operations


def choose_strategy(vendor: VendorTag, operations_count: int) -> DispatchStrategy:
    if vendor is not VendorTag.GENERIC and operations_count <= FAST_MODE_MAX_OPERATIONS:
        return DispatchStrategy.FAST
    return DispatchStrategy.STANDARD


def split_chunks(
    operations: list[TaskOperation], chunks: int = FAST_MODE_CHUNKS,
) -> list[list[TaskOperation]]:
    """Split into contiguous chunks of ``ceil(n / chunks)``, dropping empty ones."""
    if not operations:
        return []
    size = math.ceil(len(operations) / chunks)
    return [operations[i : i + size] for i in range(0, len(operations), size)]


def _set_values_task(operations: list[TaskOperation]) -> dict[str, Any]:
    return {
        "name": "setParameterValues",
        "parameterValues": [op.to_wire() for op in operations],
    }


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

class TaskDispatcher:
    """Submits configuration tasks with vendor-adaptive parallelism.

    Parameters
    ----------
    client:
        ACS protocol client used for fetches and task submission.
    cache:
        Classification cache shared with other callers.
    classifier:
        Vendor classifier applied on cache misses.
    clock:
        Returns seconds; used for elapsed-time measurement.
    """

    def __init__(
        self,
        client: AcsProtocolClient,
        cache: ClassificationCache,
        classifier: VendorClassifier | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._client = client
        self._cache = cache
        self._classifier = classifier or VendorClassifier()
        self._clock = clock

    def _elapsed_ms(self, start: float) -> int:
        return int((self._clock() - start) * 1000)

    async def resolve_vendor(self, device_id: str) -> VendorTag:
        return await self._cache.get_or_classify(
            device_id, self._client.fetch_device, self._classifier.classify,
        )

    async def _submit_with_fallback(
        self,
        device_id: str,
        task: dict[str, Any],
        timeout_ms: int,
        label: str,
    ) -> dict[str, Any]:
        """Submit with a connection-request hint, then once without it."""
        try:
            return await self._client.submit_task(
                device_id, task, connection_request=True, timeout_ms=timeout_ms,
            )
        except AcsError as exc:
            logger.warning(
                "%s for %s failed with connection request, retrying without: %s",
                label, device_id, exc,
            )
        return await self._client.submit_task(device_id, task)

    async def _dispatch_fast(
        self, device_id: str, operations: list[TaskOperation],
    ) -> dict[str, Any]:
        chunks = split_chunks(operations)
        results = await asyncio.gather(
            *(
                self._submit_with_fallback(
                    device_id,
                    _set_values_task(chunk),
                    FAST_TIMEOUT_MS,
                    f"Chunk {index + 1}/{len(chunks)}",
                )
                for index, chunk in enumerate(chunks)
            ),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return results[0]

    async def _refresh(self, device_id: str) -> bool:
        task = {"name": "refreshObject", "objectName": WIFI_REFRESH_OBJECT}
        try:
            await self._client.submit_task(
                device_id, task, connection_request=True, timeout_ms=REFRESH_TIMEOUT_MS,
            )
        except AcsError as exc:
            logger.warning("Refresh task for %s failed: %s", device_id, exc)
            return False
        return True

    async def set_fields(
        self, device_id: str, fields: Mapping[Any, Any],
    ) -> DispatchResult:
        """Write *fields* to *device_id*.

        Keys are ``LogicalField`` members (or their string values) or
        literal parameter paths. Raises ``DispatchError`` when a submission
        fails even after its fallback.
        """
        if not fields:
            raise ValueError("set_fields requires at least one field")

        start = self._clock()
        vendor = await self.resolve_vendor(device_id)
        operations = expand_fields(vendor, fields)
        strategy = choose_strategy(vendor, len(operations))
        logger.info(
            "Dispatching %d parameters to %s (%s) in %s mode",
            len(operations), device_id, vendor.value, strategy.value,
        )

        primary_start = self._clock()
        try:
            if strategy is DispatchStrategy.FAST:
                response = await self._dispatch_fast(device_id, operations)
            else:
                response = await self._submit_with_fallback(
                    device_id, _set_values_task(operations), STANDARD_TIMEOUT_MS, "Task",
                )
        except AcsError as exc:
            elapsed = self._elapsed_ms(start)
            logger.error(
                "Dispatch to %s (%s) failed after %dms: %s",
                device_id, vendor.value, elapsed, exc,
            )
            raise DispatchError(
                str(exc),
                device_id=device_id,
                vendor=vendor.value,
                operations_count=len(operations),
                elapsed_ms=elapsed,
            ) from exc
        primary_ms = self._elapsed_ms(primary_start)

        refresh_skipped = True
        if strategy is DispatchStrategy.STANDARD or primary_ms > REFRESH_THRESHOLD_MS:
            logger.debug("Refreshing Wi-Fi subtree for %s (primary %dms)", device_id, primary_ms)
            await self._refresh(device_id)
            refresh_skipped = False

        elapsed = self._elapsed_ms(start)
        return DispatchResult(
            success=True,
            vendor=vendor,
            task_id=response.get("_id"),
            operations_count=len(operations),
            elapsed_ms=elapsed,
            strategy=strategy,
            refresh_skipped=refresh_skipped,
            message=(
                f"Parameter update completed for {vendor.value} device in {elapsed}ms"
            ),
        )

    async def reboot(self, device_id: str) -> DispatchResult:
        """Queue a reboot, hinted first and retried once without the hint."""
        start = self._clock()
        try:
            response = await self._submit_with_fallback(
                device_id, {"name": "reboot"}, STANDARD_TIMEOUT_MS, "Reboot",
            )
        except AcsError as exc:
            raise DispatchError(
                f"Failed to reboot device: {exc}",
                device_id=device_id,
                vendor=None,
                operations_count=1,
                elapsed_ms=self._elapsed_ms(start),
            ) from exc
        elapsed = self._elapsed_ms(start)
        logger.info("Reboot task queued for %s in %dms", device_id, elapsed)
        return DispatchResult(
            success=True,
            vendor=None,
            task_id=response.get("_id"),
            operations_count=1,
            elapsed_ms=elapsed,
            strategy=DispatchStrategy.STANDARD,
            message=f"Reboot task completed in {elapsed}ms",
        )

    async def factory_reset(self, device_id: str) -> DispatchResult:
        """Queue a factory reset without requesting an immediate connection."""
        start = self._clock()
        try:
            response = await self._client.submit_task(device_id, {"name": "factoryReset"})
        except AcsError as exc:
            raise DispatchError(
                f"Failed to factory reset device: {exc}",
                device_id=device_id,
                vendor=None,
                operations_count=1,
                elapsed_ms=self._elapsed_ms(start),
            ) from exc
        elapsed = self._elapsed_ms(start)
        logger.info("Factory reset task queued for %s", device_id)
        return DispatchResult(
            success=True,
            vendor=None,
            task_id=response.get("_id"),
            operations_count=1,
            elapsed_ms=elapsed,
            strategy=DispatchStrategy.STANDARD,
            message=f"Factory reset task queued in {elapsed}ms",
        )

    async def batch_set_fields(
        self, device_ids: list[str], fields: Mapping[Any, Any],
    ) -> BatchResult:
        """Run ``set_fields`` on every device concurrently.

        Per-device failures are collected in ``BatchResult.failed``.
        """
        start = self._clock()
        results = await asyncio.gather(
            *(self.set_fields(device_id, fields) for device_id in device_ids),
            return_exceptions=True,
        )

        batch = BatchResult(total=len(device_ids))
        for device_id, result in zip(device_ids, results):
            if isinstance(result, DispatchResult):
                batch.successful.append(result)
            elif isinstance(result, Exception):
                batch.failed[device_id] = str(result)
            else:
                raise result

        batch.vendor_stats = dict(
            Counter(r.vendor.value for r in batch.successful if r.vendor is not None)
        )
        batch.strategy_stats = dict(Counter(r.strategy.value for r in batch.successful))
        batch.elapsed_ms = self._elapsed_ms(start)
        logger.info(
            "Batch update: %d/%d devices succeeded in %dms",
            len(batch.successful), batch.total, batch.elapsed_ms,
        )
        return batch
