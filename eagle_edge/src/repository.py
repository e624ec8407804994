"""
Typed repository over the raw :class:`VariableStore`.

Core logic never touches variable names directly: it loads and saves typed
objects (:class:`PeriodState`, :class:`CommFailureState`) and publishes
:class:`CanonicalReading` values through this class. Variable names and
namespaces follow the gateway plugin conventions so existing dashboards keep
working:

- ``device``: CommFailure, CommFailureTime, CommFailureAlert, LastUpdate.
- ``energy``: Watts, KWH, KWHReading, Price, Pulse.
- ``han``:    everything else (summations, billing counters, rates, season).

CHANGELOG:
- 2026-10-19: Initial creation (STORY-011)

TODO:
- None
"""

from __future__ import annotations

import logging
from datetime import datetime

from eagle_edge.src.models import (
    CanonicalReading,
    CommFailureState,
    PeakPeriod,
    PeriodState,
)
from eagle_edge.src.store import VariableStore
from eagle_edge.src.units import format_kwh

logger = logging.getLogger(__name__)

DEVICE_NS = "device"
ENERGY_NS = "energy"
HAN_NS = "han"

# PeriodState field -> variable name (all in HAN_NS).
_PERIOD_FIELDS: dict[str, str] = {
    "base_delivered": "KWHBaseDelivered",
    "base_received": "KWHBaseReceived",
    "peak_accum": "KWHPeak",
    "off_peak_accum": "KWHOffPeak",
    "start_peak_mark": "KWHStartPeak",
    "start_off_peak_mark": "KWHStartOffPeak",
    "delivered_prior": "KWHDeliveredPrior",
    "prior_peak": "KWHNetPeak",
    "prior_off_peak": "KWHNetOffPeak",
    "peak_rate": "PeakRate",
    "off_peak_rate": "OffPeakRate",
}

_OPTIONAL_FIELDS = frozenset({"start_peak_mark", "start_off_peak_mark"})

# Tariffs keep full precision; energy values are rounded to Wh.
_RATE_FIELDS = frozenset({"peak_rate", "off_peak_rate"})


def _energy(value: float) -> str:
    return f"{value:.3f}"


def _to_float(name: str, text: str | None, default: float | None) -> float | None:
    if text is None or text == "":
        return default
    try:
        return float(text)
    except ValueError:
        logger.warning("Variable '%s' holds non-numeric value %r, using %r", name, text, default)
        return default


class MeterRepository:
    """Strongly typed access to the device variables.

    Args:
        store: An opened :class:`VariableStore`.
    """

    def __init__(self, store: VariableStore) -> None:
        self._store = store

    async def _float(self, namespace: str, name: str, default: float = 0.0) -> float:
        value = _to_float(name, await self._store.get(namespace, name), default)
        return default if value is None else value

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    async def define_defaults(self, *, pulse_s: int, season: str) -> None:
        """Create every variable the daemon relies on if it does not exist."""
        await self._store.define(ENERGY_NS, "Pulse", pulse_s)
        await self._store.define(ENERGY_NS, "Watts", 0)
        await self._store.define(ENERGY_NS, "KWH", 0)
        await self._store.define(HAN_NS, "LinkStrength", 0)
        await self._store.define(HAN_NS, "LinkStatus", 0)
        await self._store.define(HAN_NS, "KWHDelivered", 0)
        await self._store.define(HAN_NS, "KWHReceived", 0)
        await self._store.define(HAN_NS, "KWHBaseDelivered", 0)
        await self._store.define(HAN_NS, "KWHBaseReceived", 0)
        await self._store.define(HAN_NS, "KWHPeak", 0)
        await self._store.define(HAN_NS, "KWHOffPeak", 0)
        await self._store.define(HAN_NS, "PeakPeriod", PeakPeriod.OFF_PEAK.value)
        await self._store.define(HAN_NS, "Season", season)
        await self._store.define(DEVICE_NS, "CommFailure", 0)

    # ------------------------------------------------------------------
    # Readings
    # ------------------------------------------------------------------

    async def current_kwh(self) -> float:
        """Latest published ``KWH`` metric (energy since the last reset)."""
        return await self._float(ENERGY_NS, "KWH")

    async def current_delivered(self) -> float:
        """Latest published delivered summation."""
        return await self._float(HAN_NS, "KWHDelivered")

    async def current_received(self) -> float:
        """Latest published received summation."""
        return await self._float(HAN_NS, "KWHReceived")

    async def set_kwh(self, value: float) -> None:
        await self._store.set(ENERGY_NS, "KWH", format_kwh(value))

    async def publish_reading(
        self,
        reading: CanonicalReading,
        *,
        kwh: float,
        delivered_per_period: float | None = None,
    ) -> None:
        """Publish a connected reading and its derived metrics."""
        await self._store.set(HAN_NS, "LinkStatus", reading.link_status)

        if reading.timestamp_utc is not None:
            await self._store.set(DEVICE_NS, "LastUpdate", reading.timestamp_utc)
            await self._store.set(
                HAN_NS,
                "LastUpdateFormatted",
                datetime.fromtimestamp(reading.timestamp_utc).strftime("%a %I:%M:%S %p"),
            )
            await self._store.set(ENERGY_NS, "KWHReading", reading.timestamp_utc)

        await self._store.set(HAN_NS, "KWHDelivered", format_kwh(reading.delivered_kwh))
        await self._store.set(HAN_NS, "KWHReceived", format_kwh(reading.received_kwh))
        await self._store.set(HAN_NS, "KWHNet", format_kwh(reading.net_kwh))
        await self.set_kwh(kwh)
        if delivered_per_period is not None:
            await self._store.set(HAN_NS, "KWHDeliveredPerPeriod", _energy(delivered_per_period))

        await self._store.set(ENERGY_NS, "Watts", f"{reading.demand_watts:.0f}")

        await self._store.set(ENERGY_NS, "Price", reading.price)
        if reading.price is not None and reading.price != -1.0:
            # -1 is the gateway's "no price" marker.
            await self._store.set(HAN_NS, "DisplayPrice", f"{reading.price * 100:.1f}")
        else:
            await self._store.set(HAN_NS, "DisplayPrice", "")

        await self._store.set(HAN_NS, "LinkStrength", reading.link_strength)

    # ------------------------------------------------------------------
    # Billing period
    # ------------------------------------------------------------------

    async def load_period_state(self) -> PeriodState:
        values: dict[str, object] = {}
        for field_name, var_name in _PERIOD_FIELDS.items():
            default = None if field_name in _OPTIONAL_FIELDS else 0.0
            values[field_name] = _to_float(
                var_name, await self._store.get(HAN_NS, var_name), default
            )

        flag = await self._store.get(HAN_NS, "PeakPeriod")
        values["period_flag"] = (
            PeakPeriod.PEAK if flag == PeakPeriod.PEAK.value else PeakPeriod.OFF_PEAK
        )
        start = _to_float("PeriodStart", await self._store.get(HAN_NS, "PeriodStart"), None)
        values["period_start"] = None if start is None else int(start)
        return PeriodState(**values)

    async def save_period_state(self, state: PeriodState) -> None:
        for field_name, var_name in _PERIOD_FIELDS.items():
            value = getattr(state, field_name)
            if value is None:
                continue
            text = repr(value) if field_name in _RATE_FIELDS else _energy(value)
            await self._store.set(HAN_NS, var_name, text)
        await self._store.set(HAN_NS, "PeakPeriod", state.period_flag.value)
        await self._store.set(HAN_NS, "PeriodStart", state.period_start)

    # ------------------------------------------------------------------
    # Configuration variables
    # ------------------------------------------------------------------

    async def get_pulse(self) -> int | None:
        """Stored poll interval, or ``None`` if absent or not an integer."""
        text = await self._store.get(ENERGY_NS, "Pulse")
        try:
            return int(text) if text is not None else None
        except ValueError:
            return None

    async def set_pulse(self, pulse_s: int) -> None:
        await self._store.set(ENERGY_NS, "Pulse", pulse_s)

    async def get_season(self, default: str = "Summer") -> str:
        return await self._store.get(HAN_NS, "Season") or default

    async def set_season(self, season: str) -> None:
        await self._store.set(HAN_NS, "Season", season)

    # ------------------------------------------------------------------
    # Comm failure
    # ------------------------------------------------------------------

    async def load_comm_failure(self) -> CommFailureState:
        failing = await self._store.get(DEVICE_NS, "CommFailure") == "1"
        start = _to_float(
            "CommFailureTime", await self._store.get(DEVICE_NS, "CommFailureTime"), None
        )
        return CommFailureState(
            failing=failing,
            failure_start_time=int(start) if failing and start is not None else None,
        )

    async def save_comm_failure(self, state: CommFailureState, *, alert: str = "") -> None:
        await self._store.set(DEVICE_NS, "CommFailure", 1 if state.failing else 0)
        await self._store.set(DEVICE_NS, "CommFailureAlert", alert)
        if state.failure_start_time is not None:
            await self._store.set(DEVICE_NS, "CommFailureTime", state.failure_start_time)
