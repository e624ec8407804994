"""
Pydantic models for device configuration, readings and persisted state.

- DeviceConfig: immutable per-session description of the gateway.
- RawReading: adapter output, one per successful round trip (never stored).
- CanonicalReading: normalized reading consumed by publishing and billing.
- PeriodState: billing-period counters persisted across polls.
- CommFailureState: healthy/failing communication state.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-005)

TODO:
- None
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class EagleModel(str, Enum):
    """Supported gateway hardware variants."""

    EAGLE_100 = "100"
    EAGLE_200 = "200"


class MeteringType(str, Enum):
    """How the derived ``KWH`` metric is computed."""

    DELIVERED_ONLY = "0"
    RECEIVED_ONLY = "1"
    NET = "2"


class PeakPeriod(str, Enum):
    """Active time-of-use billing window."""

    PEAK = "ON"
    OFF_PEAK = "OFF"


CONNECTED_STATUS = "Connected"
"""Literal status token reported by the gateway for a joined meter."""


class DeviceConfig(BaseModel):
    """Gateway identity and access settings for one polling session.

    Attributes:
        model: Hardware variant (selects the protocol adapter).
        address: Gateway IP address or hostname on the local LAN.
        cloud_id: Optional basic-auth user (printed on the gateway).
        install_code: Optional basic-auth secret (printed on the gateway).
        mac_id: Meter MAC identifier, hex, required by the Eagle 100.
        metering_type: Which counters feed the ``KWH`` metric.
    """

    model_config = {"frozen": True}

    model: EagleModel = EagleModel.EAGLE_100
    address: str
    cloud_id: str = ""
    install_code: str = ""
    mac_id: str = ""
    metering_type: MeteringType = MeteringType.DELIVERED_ONLY

    @property
    def credentials(self) -> tuple[str, str] | None:
        """``(cloud_id, install_code)`` when login is configured, else None."""
        if not self.cloud_id:
            return None
        return (self.cloud_id, self.install_code)


class RawReading(BaseModel):
    """Decoded but not yet normalized gateway reading.

    Numeric fields are already converted to engineering units by the
    adapter (watts, kWh); any of them may be absent when the meter does
    not report it or is not connected.
    """

    demand_w: float | None = None
    summation_delivered: float | None = None
    summation_received: float | None = None
    price: float | None = None
    timestamp: int | None = None
    link_status: str | None = None
    link_strength: int | None = None


class CanonicalReading(BaseModel):
    """Normalized reading shared by both hardware variants.

    ``net_kwh`` always equals ``delivered_kwh - received_kwh``.
    """

    delivered_kwh: float = 0.0
    received_kwh: float = 0.0
    net_kwh: float = 0.0
    demand_watts: float = 0.0
    price: float | None = None
    timestamp_utc: int | None = None
    connected: bool = False
    link_status: str | None = None
    link_strength: int | None = None


class PeriodState(BaseModel):
    """Billing-period counters.

    Marks are ``None`` until first recorded; accumulators only grow between
    resets.
    """

    base_delivered: float = 0.0
    base_received: float = 0.0
    peak_accum: float = 0.0
    off_peak_accum: float = 0.0
    period_flag: PeakPeriod = PeakPeriod.OFF_PEAK
    start_peak_mark: float | None = None
    start_off_peak_mark: float | None = None
    delivered_prior: float = 0.0
    prior_peak: float = 0.0
    prior_off_peak: float = 0.0
    peak_rate: float = 0.0
    off_peak_rate: float = 0.0
    period_start: int | None = None


class CommFailureState(BaseModel):
    """Communication health as seen by the poll loop."""

    failing: bool = False
    failure_start_time: int | None = None
