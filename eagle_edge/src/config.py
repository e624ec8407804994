"""
Edge daemon configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
All configuration values come from environment variables or .env files;
no hardcoded IPs or credentials.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-001)

TODO:
- None
"""

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings

from eagle_edge.src.billing import parse_rates
from eagle_edge.src.models import DeviceConfig, EagleModel, MeteringType


class EagleSettings(BaseSettings):
    """Edge daemon configuration for the Eagle HAN meter bridge.

    All values are loaded from environment variables. Only the gateway
    host is strictly required here; model-specific requirements (the MAC
    id for the Eagle 100) are checked when the device session is built.

    Attributes:
        eagle_host: Gateway IP address / hostname on the local LAN.
        eagle_model: ``"100"`` (JSON protocol) or ``"200"`` (XML protocol).
        device_mac_id: Meter MAC id (hex) used in Eagle 100 commands.
        cloud_id: Basic-auth user when local API security is enabled.
        device_install_code: Basic-auth secret paired with cloud_id.
        metering_type: 0 delivered only, 1 received only, 2 net metering.
        pulse_s: Initial poll interval in seconds (0 disables polling).
        max_pulse_s: Upper bound for the poll interval.
        startup_delay_s: Seconds to wait before the first poll.
        http_timeout_s: Timeout for each HTTP request to the gateway.
        season: Initial billing season (``"Winter"`` or ``"Summer"``).
        rates: ``"peakSummer,offPeakSummer,peakWinter,offPeakWinter"``.
        store_path: SQLite file backing the variable store.
        device_id: Identifier scoping stored variables. Defaults to
            eagle_host if not set.
    """

    eagle_host: str
    eagle_model: EagleModel = EagleModel.EAGLE_100
    device_mac_id: str = ""
    cloud_id: str = ""
    device_install_code: str = ""
    metering_type: MeteringType = MeteringType.DELIVERED_ONLY
    pulse_s: int = 300
    max_pulse_s: int = 3600
    startup_delay_s: float = 10.0
    http_timeout_s: float = 10.0
    season: str = "Summer"
    rates: str = "0,0,0,0"
    store_path: str = "/data/eagle.db"
    device_id: str = ""

    @model_validator(mode="after")
    def _default_device_id(self) -> "EagleSettings":
        """Default device_id to eagle_host when not explicitly set."""
        if not self.device_id:
            self.device_id = self.eagle_host
        return self

    @field_validator("eagle_host")
    @classmethod
    def eagle_host_must_not_be_blank(cls, v: str) -> str:
        """Strip the host and reject an empty value."""
        v = v.strip()
        if not v:
            raise ValueError("EAGLE_HOST must be the IP address of the Eagle gateway")
        return v

    @field_validator("max_pulse_s")
    @classmethod
    def max_pulse_must_be_positive(cls, v: int) -> int:
        """Validate the maximum poll interval is at least one second."""
        if v < 1:
            raise ValueError("MAX_PULSE_S must be >= 1")
        return v

    @field_validator("pulse_s")
    @classmethod
    def pulse_must_be_non_negative(cls, v: int) -> int:
        """Validate the poll interval is non-negative (0 disables polling)."""
        if v < 0:
            raise ValueError("PULSE_S must be >= 0")
        return v

    @field_validator("http_timeout_s")
    @classmethod
    def http_timeout_must_be_positive(cls, v: float) -> float:
        """Validate the HTTP timeout is positive."""
        if v <= 0:
            raise ValueError("HTTP_TIMEOUT_S must be > 0")
        return v

    @field_validator("startup_delay_s")
    @classmethod
    def startup_delay_must_be_non_negative(cls, v: float) -> float:
        """Validate the startup delay is non-negative."""
        if v < 0:
            raise ValueError("STARTUP_DELAY_S must be >= 0")
        return v

    @field_validator("rates")
    @classmethod
    def rates_must_have_four_values(cls, v: str) -> str:
        """Validate RATES holds the four season/period rates."""
        parse_rates(v)
        return v

    def device_config(self) -> DeviceConfig:
        """Build the immutable :class:`DeviceConfig` for this session."""
        return DeviceConfig(
            model=self.eagle_model,
            address=self.eagle_host,
            cloud_id=self.cloud_id,
            install_code=self.device_install_code,
            mac_id=self.device_mac_id.strip(),
            metering_type=self.metering_type,
        )

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
