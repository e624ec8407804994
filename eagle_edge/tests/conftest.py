"""
Shared test fixtures for Eagle edge daemon tests.

Provides environment variable fixtures for EagleSettings configuration tests
and canned gateway responses for both hardware models. All Eagle env vars are
cleaned before each test to ensure isolation.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

# All EagleSettings environment variable names, used for cleanup.
_ALL_EAGLE_ENV_VARS = (
    "EAGLE_HOST",
    "EAGLE_MODEL",
    "DEVICE_MAC_ID",
    "CLOUD_ID",
    "DEVICE_INSTALL_CODE",
    "METERING_TYPE",
    "PULSE_S",
    "MAX_PULSE_S",
    "STARTUP_DELAY_S",
    "HTTP_TIMEOUT_S",
    "SEASON",
    "RATES",
    "STORE_PATH",
    "DEVICE_ID",
)


@pytest.fixture(autouse=True)
def _clean_eagle_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Remove all Eagle env vars and isolate from .env files before each test.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_EAGLE_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def env_vars_full(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set all required and optional environment variables for EagleSettings."""
    env = {
        "EAGLE_HOST": "192.168.1.50",
        "EAGLE_MODEL": "200",
        "DEVICE_MAC_ID": "d8d5b9000000abcd",
        "CLOUD_ID": "00ab12",
        "DEVICE_INSTALL_CODE": "f00dfeedcafe0001",
        "METERING_TYPE": "2",
        "PULSE_S": "60",
        "MAX_PULSE_S": "1800",
        "STARTUP_DELAY_S": "5",
        "HTTP_TIMEOUT_S": "4",
        "SEASON": "Winter",
        "RATES": "0.45,0.25,0.40,0.22",
        "STORE_PATH": "/tmp/test-eagle.db",
        "DEVICE_ID": "eagle-test",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def env_vars_required_only(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set only the required environment variables (no optional ones)."""
    env = {"EAGLE_HOST": "10.0.0.20"}
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


# ---------------------------------------------------------------------------
# Canned gateway responses
# ---------------------------------------------------------------------------


def usage_json(**overrides: object) -> str:
    """Return an Eagle 100 ``get_usage_data`` JSON body."""
    payload: dict[str, object] = {
        "demand": "1.105",
        "demand_units": "kW",
        "demand_timestamp": "0x5a11b1cb",
        "summation_received": "12.500",
        "summation_delivered": "143313.000",
        "summation_units": "kWh",
        "meter_status": "Connected",
        "price": "0.1500",
        "message_text": "Gas & Electric notice",
    }
    payload.update(overrides)
    return json.dumps(payload)


def settings_json(strength: str = "0x64") -> str:
    """Return an Eagle 100 ``get_setting_data`` JSON body."""
    return json.dumps({"network_link_strength": strength, "network_status": "Connected"})


DEVICE_LIST_XML = """<DeviceList>
  <Device>
    <HardwareAddress>0x00078100006a18d7</HardwareAddress>
    <Manufacturer>Generic</Manufacturer>
    <ModelId>electric_meter</ModelId>
    <Protocol>Zigbee</Protocol>
    <LastContact>0x5a11b1cb</LastContact>
    <ConnectionStatus>Connected</ConnectionStatus>
    <NetworkAddress>0x0000</NetworkAddress>
  </Device>
</DeviceList>"""


def device_query_xml(
    *,
    status: str = "Connected",
    demand: str = "1.105000 kW",
    delivered: str = "143.313000 kWh",
    received: str = "0.012500 kWh",
    price: str = "0.1500",
) -> str:
    """Return an Eagle 200 ``device_query`` XML body."""
    return f"""<Device>
  <DeviceDetails>
    <HardwareAddress>0x00078100006a18d7</HardwareAddress>
    <Name>Power Meter</Name>
    <Manufacturer>Gas & Electric</Manufacturer>
    <ConnectionStatus>{status}</ConnectionStatus>
    <LastContact>0x5a11b1cb</LastContact>
  </DeviceDetails>
  <Components>
    <Component>
      <HardwareId>all</HardwareId>
      <Name>Main</Name>
      <Variables>
        <Variable>
          <Name>zigbee:InstantaneousDemand</Name>
          <Value>{demand}</Value>
        </Variable>
        <Variable>
          <Name>zigbee:CurrentSummationDelivered</Name>
          <Value>{delivered}</Value>
        </Variable>
        <Variable>
          <Name>zigbee:CurrentSummationReceived</Name>
          <Value>{received}</Value>
        </Variable>
        <Variable>
          <Name>zigbee:Price</Name>
          <Value>{price}</Value>
        </Variable>
      </Variables>
    </Component>
  </Components>
</Device>"""
