"""Async client for the GenieACS northbound (NBI) HTTP API.

Only the calls the engine needs: device queries, task submission and tag
management. Every transport failure or non-2xx response is raised as
``AcsError`` so callers deal with one exception family.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from cpe_manager.errors import AcsError, DeviceNotFoundError
from cpe_manager.models import DeviceRecord

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 10.0  # seconds

# Added to hinted calls so the ACS can answer after its own connection-request wait.
_HINT_TIMEOUT_GRACE = 1.0


class AcsProtocolClient(Protocol):
    """What the dispatcher and monitor need from an ACS client."""

    async def fetch_all_devices(self) -> list[DeviceRecord]: ...

    async def fetch_device(self, device_id: str) -> DeviceRecord: ...

    async def submit_task(
        self,
        device_id: str,
        task: dict[str, Any],
        *,
        connection_request: bool = False,
        timeout_ms: int | None = None,
    ) -> dict[str, Any]: ...


def _quote(segment: str) -> str:
    return quote(segment, safe="")


class GenieAcsClient:
    """GenieACS NBI client over httpx.

    Parameters
    ----------
    url:
        Base URL of the NBI (e.g. "http://localhost:7557").
    username, password:
        Basic-auth credentials. Empty username disables auth.
    timeout:
        Timeout in seconds for calls without a connection-request hint.
    transport:
        Optional httpx transport (for testing).
    """

    def __init__(
        self,
        url: str,
        username: str = "",
        password: str = "",
        timeout: float = _DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = url.rstrip("/")
        self._timeout = timeout
        auth = httpx.BasicAuth(username, password) if username else None
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            auth=auth,
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(
                method,
                path,
                params=params,
                json=json_body,
                timeout=timeout if timeout is not None else self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise AcsError(f"{method} {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise AcsError(f"{method} {path} failed: {exc}") from exc

        if response.status_code == 404:
            raise DeviceNotFoundError(f"{method} {path}: not found", status_code=404)
        if response.is_error:
            raise AcsError(
                f"{method} {path} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    async def _query(
        self, query: dict[str, Any], projection: list[str] | None = None,
    ) -> list[DeviceRecord]:
        params: dict[str, Any] = {"query": json.dumps(query)}
        if projection:
            params["projection"] = ",".join(projection)
        response = await self._request("GET", "/devices/", params=params)
        data = response.json()
        return data if isinstance(data, list) else []

    # -- Device reads --------------------------------------------------

    async def fetch_all_devices(self) -> list[DeviceRecord]:
        """Return every device record known to the ACS."""
        response = await self._request("GET", "/devices/")
        data = response.json()
        devices = data if isinstance(data, list) else []
        logger.debug("Fetched %d devices from ACS", len(devices))
        return devices

    async def fetch_device(self, device_id: str) -> DeviceRecord:
        """Return the full record for *device_id*."""
        devices = await self._query({"_id": device_id})
        if not devices:
            raise DeviceNotFoundError(f"No device with id {device_id}", status_code=404)
        return devices[0]

    async def find_device_by_tag(self, tag: str) -> DeviceRecord:
        """Return the first device carrying *tag* (e.g. a customer phone number)."""
        devices = await self._query({"_tags": tag})
        if not devices:
            raise DeviceNotFoundError(f"No device tagged {tag}", status_code=404)
        return devices[0]

    async def get_device_parameters(
        self, device_id: str, parameter_names: list[str],
    ) -> DeviceRecord:
        """Return *device_id*'s record restricted to *parameter_names*."""
        devices = await self._query({"_id": device_id}, projection=parameter_names)
        if not devices:
            raise DeviceNotFoundError(f"No device with id {device_id}", status_code=404)
        return devices[0]

    # -- Tasks ---------------------------------------------------------

    async def submit_task(
        self,
        device_id: str,
        task: dict[str, Any],
        *,
        connection_request: bool = False,
        timeout_ms: int | None = None,
    ) -> dict[str, Any]:
        """Queue *task* for *device_id* and return the created task.

        With ``connection_request`` the ACS is asked to contact the device
        immediately and wait up to ``timeout_ms`` for it to run the task.
        """
        params: dict[str, Any] | None = None
        timeout: float | None = None
        if connection_request:
            params = {"connection_request": ""}
            if timeout_ms is not None:
                params["timeout"] = str(timeout_ms)
                timeout = timeout_ms / 1000 + _HINT_TIMEOUT_GRACE
        elif timeout_ms is not None:
            timeout = timeout_ms / 1000

        response = await self._request(
            "POST",
            f"/devices/{_quote(device_id)}/tasks",
            params=params,
            json_body=task,
            timeout=timeout,
        )
        try:
            body = response.json()
        except ValueError:
            body = {}
        return body if isinstance(body, dict) else {}

    # -- Tags ----------------------------------------------------------

    async def add_tag(self, device_id: str, tag: str) -> None:
        await self._request("POST", f"/devices/{_quote(device_id)}/tags/{_quote(tag)}")

    async def remove_tag(self, device_id: str, tag: str) -> None:
        await self._request("DELETE", f"/devices/{_quote(device_id)}/tags/{_quote(tag)}")
