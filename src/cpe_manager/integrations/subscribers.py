"""Subscriber directory used to name the customer behind a device.

The access-management system keeps one record per subscriber account
(``name``) with a free-form ``comment`` that operators usually fill with
the CPE serial number. The directory is exposed over HTTP as a JSON list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from cpe_manager.errors import SubscriberLookupError

logger = logging.getLogger(__name__)

_TIMEOUT = 5.0  # seconds


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SubscriberRecord:
    """One subscriber account."""

    name: str
    comment: str = ""


class SubscriberLookup(Protocol):
    async def list_subscriber_records(self) -> list[SubscriberRecord]: ...


# ---------------------------------------------------------------------------
# Parse helpers
# ---------------------------------------------------------------------------


def parse_subscriber_records(raw: list[dict]) -> list[SubscriberRecord]:
    """Parse the directory response, skipping entries without a name."""
    records: list[SubscriberRecord] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        name = entry.get("name")
        if not name:
            continue
        records.append(SubscriberRecord(name=str(name), comment=str(entry.get("comment") or "")))
    return records


# ---------------------------------------------------------------------------
# Directories
# ---------------------------------------------------------------------------


class HttpSubscriberDirectory:
    """Reads subscriber records from an HTTP JSON endpoint."""

    def __init__(self, url: str, token: str = "") -> None:
        self._url = url
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}

    async def list_subscriber_records(self) -> list[SubscriberRecord]:
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.get(self._url, headers=self._headers, timeout=_TIMEOUT)
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise SubscriberLookupError(f"Subscriber directory unavailable: {exc}") from exc
        if not isinstance(data, list):
            raise SubscriberLookupError("Subscriber directory returned a non-list body")
        return parse_subscriber_records(data)


class NullSubscriberDirectory:
    """Directory used when no subscriber source is configured."""

    async def list_subscriber_records(self) -> list[SubscriberRecord]:
        return []
