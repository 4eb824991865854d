"""Shared test fixtures for CPE manager tests."""

from __future__ import annotations

import pathlib
from typing import Any

import pytest

REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]


def leaf(value: Any, value_type: str = "xsd:string") -> dict[str, Any]:
    """Build an ACS parameter leaf."""
    return {"_value": value, "_type": value_type}


def make_device(
    device_id: str = "00259E-HG8245H-48575443A1B2C3D4",
    *,
    manufacturer: str | None = None,
    product_class: str | None = None,
    model_name: str | None = None,
    serial: str | None = None,
    rx_power: float | None = None,
    last_inform: str | None = "2026-10-18T11:00:00.000Z",
    tags: list[str] | None = None,
    pppoe_username: str | None = None,
) -> dict[str, Any]:
    """Build a device record shaped like a GenieACS NBI response."""
    device: dict[str, Any] = {"_id": device_id}
    device_id_node: dict[str, Any] = {}
    if manufacturer is not None:
        device_id_node["Manufacturer"] = leaf(manufacturer)
    if product_class is not None:
        device_id_node["ProductClass"] = leaf(product_class)
    if serial is not None:
        device_id_node["SerialNumber"] = leaf(serial)
    if device_id_node:
        device["DeviceID"] = device_id_node
    if model_name is not None:
        device["InternetGatewayDevice"] = {
            "DeviceInfo": {"ModelName": leaf(model_name)},
        }
    virtual: dict[str, Any] = {}
    if rx_power is not None:
        virtual["RXPower"] = leaf(rx_power, "xsd:double")
    if pppoe_username is not None:
        virtual["pppoeUsername"] = leaf(pppoe_username)
    if virtual:
        device["VirtualParameters"] = virtual
    if last_inform is not None:
        device["_lastInform"] = last_inform
    if tags is not None:
        device["_tags"] = tags
    return device


@pytest.fixture
def repo_root() -> pathlib.Path:
    return REPO_ROOT


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def device_factory():
    """Return the device record builder."""
    return make_device
