"""Time-bounded memo of device id -> vendor tag.

Avoids fetching the full device record on every configuration request.
Entries expire lazily: an entry older than the TTL is ignored at read time
and overwritten by the next classification.

The cache is a plain dict owned by one event loop. Concurrent lookups for
the same uncached id may each fetch and classify; the last write wins,
which is harmless because classification of the same record is
deterministic.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from cpe_manager.models import DeviceRecord, VendorTag

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 30 * 60

FetchFn = Callable[[str], Awaitable[DeviceRecord]]
ClassifyFn = Callable[[DeviceRecord], VendorTag]
Clock = Callable[[], float]


@dataclass(frozen=True)
class ClassificationCacheEntry:
    device_id: str
    vendor: VendorTag
    classified_at: float


class ClassificationCache:
    """Vendor classification cache with lazy TTL expiry.

    Parameters
    ----------
    clock:
        Returns the current time in seconds. Defaults to ``time.monotonic``;
        tests inject a controllable clock.
    ttl_seconds:
        Entry lifetime. Defaults to 30 minutes.
    """

    def __init__(
        self,
        clock: Clock = time.monotonic,
        ttl_seconds: float = CACHE_TTL_SECONDS,
    ) -> None:
        self._clock = clock
        self._ttl = ttl_seconds
        self._entries: dict[str, ClassificationCacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, device_id: str) -> ClassificationCacheEntry | None:
        """Return the entry for *device_id* if present and not expired."""
        entry = self._entries.get(device_id)
        if entry is None:
            return None
        if self._clock() - entry.classified_at >= self._ttl:
            return None
        return entry

    def put(self, device_id: str, vendor: VendorTag) -> ClassificationCacheEntry:
        entry = ClassificationCacheEntry(
            device_id=device_id,
            vendor=vendor,
            classified_at=self._clock(),
        )
        self._entries[device_id] = entry
        return entry

    async def get_or_classify(
        self,
        device_id: str,
        fetch_fn: FetchFn,
        classify_fn: ClassifyFn,
    ) -> VendorTag:
        """Return the cached vendor, classifying the device on a miss.

        A failed fetch caches ``generic`` for the full TTL so an unreachable
        device does not trigger a fetch on every request.
        """
        entry = self.get(device_id)
        if entry is not None:
            logger.debug(
                "Using cached vendor %s for %s (%.0fs old)",
                entry.vendor.value,
                device_id,
                self._clock() - entry.classified_at,
            )
            return entry.vendor

        try:
            record = await fetch_fn(device_id)
        except Exception as exc:
            logger.warning(
                "Cannot classify %s, using generic paths: %s", device_id, exc,
            )
            self.put(device_id, VendorTag.GENERIC)
            return VendorTag.GENERIC

        vendor = classify_fn(record)
        self.put(device_id, vendor)
        logger.info("Classified and cached %s as %s", device_id, vendor.value)
        return vendor
