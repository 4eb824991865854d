"""End-to-end fleet scans against a mocked ACS and subscriber directory."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock

import pytest
from pytest_httpx import HTTPXMock

from cpe_manager.acs.client import GenieAcsClient
from cpe_manager.alerts.dispatcher import NotificationDispatcher
from cpe_manager.integrations.subscribers import HttpSubscriberDirectory
from cpe_manager.monitor.scans import FleetScanner

ACS_URL = "http://acs.test:7557"
DIRECTORY_URL = "http://radius.test/subscribers"
NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
async def client():
    acs = GenieAcsClient(url=ACS_URL)
    yield acs
    await acs.aclose()


@pytest.fixture
def webhook() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def scanner(client: GenieAcsClient, webhook: AsyncMock) -> FleetScanner:
    notifier = NotificationDispatcher([
        {"name": "webhook", "handler": webhook, "min_priority": "medium"},
    ])
    return FleetScanner(
        client,
        notifier,
        HttpSubscriberDirectory(DIRECTORY_URL),
        now=lambda: NOW,
    )


class TestSignalMonitoring:
    async def test_low_signal_alert_names_subscriber_from_directory(
        self,
        scanner: FleetScanner,
        webhook: AsyncMock,
        httpx_mock: HTTPXMock,
        device_factory: Any,
    ) -> None:
        httpx_mock.add_response(
            url=f"{ACS_URL}/devices/",
            json=[
                device_factory("000C-ZXHN-AAA111", rx_power=-29.8, serial="ZTEGAAA111"),
                device_factory("000C-ZXHN-BBB222", rx_power=-19.0),
            ],
        )
        httpx_mock.add_response(
            url=DIRECTORY_URL,
            json=[{"name": "dewi05", "comment": "ZTEGAAA111 blok C"}],
        )

        report = await scanner.scan_signal()

        assert report is not None
        assert report.notified is True
        webhook.assert_awaited_once()
        payload = webhook.await_args.args[0]
        assert payload["priority"] == "high"
        assert "PPPoE: dewi05" in payload["text"]
        assert "-29.8 dBm" in payload["text"]

    async def test_directory_outage_still_alerts(
        self,
        scanner: FleetScanner,
        webhook: AsyncMock,
        httpx_mock: HTTPXMock,
        device_factory: Any,
    ) -> None:
        httpx_mock.add_response(
            url=f"{ACS_URL}/devices/",
            json=[device_factory("000C-ZXHN-AAA111", rx_power=-30.0)],
        )
        httpx_mock.add_response(url=DIRECTORY_URL, status_code=503)

        report = await scanner.scan_signal()

        assert report is not None
        assert report.group.devices[0].subscriber_id == "Unknown"
        webhook.assert_awaited_once()


class TestLivenessMonitoring:
    async def test_offline_devices_alert_at_medium(
        self,
        scanner: FleetScanner,
        webhook: AsyncMock,
        httpx_mock: HTTPXMock,
        device_factory: Any,
    ) -> None:
        httpx_mock.add_response(
            url=f"{ACS_URL}/devices/",
            json=[
                device_factory(
                    "000C-ZXHN-D3",
                    last_inform="2026-10-17T06:00:00.000Z",
                    tags=["pppoe:joko88"],
                ),
                device_factory("000C-ZXHN-D4", last_inform="2026-10-18T10:00:00.000Z"),
            ],
        )

        report = await scanner.scan_liveness()

        assert report is not None
        assert [d.subscriber_id for d in report.group.devices] == ["joko88"]
        payload = webhook.await_args.args[0]
        assert payload["priority"] == "medium"
        assert "Offline for: 30.0 hours" in payload["text"]

    async def test_acs_outage_abandons_scan(
        self, scanner: FleetScanner, webhook: AsyncMock, httpx_mock: HTTPXMock,
    ) -> None:
        httpx_mock.add_response(url=f"{ACS_URL}/devices/", status_code=502)

        assert await scanner.scan_liveness() is None
        webhook.assert_not_awaited()

    async def test_failed_webhook_marks_report_not_notified(
        self,
        scanner: FleetScanner,
        webhook: AsyncMock,
        httpx_mock: HTTPXMock,
        device_factory: Any,
    ) -> None:
        httpx_mock.add_response(
            url=f"{ACS_URL}/devices/",
            json=[device_factory("000C-ZXHN-D3", last_inform=None, tags=["pppoe:joko88"])],
        )
        webhook.side_effect = RuntimeError("chat is down")

        report = await scanner.scan_liveness()

        assert report is not None
        assert len(report.group) == 1
        assert report.notified is False
        webhook.assert_awaited_once()
