"""
Billing-period accounting: base offsets, peak/off-peak tracking, resets.

Time-of-use tariffs are tracked with explicit StartPeak / EndPeak actions.
Each transition closes the interval that was running and adds the energy
used during it (``KWH`` now minus ``KWH`` at the interval's start mark) to
that interval's accumulator. ResetPeriod rolls the billing cycle over: it
finalizes the running interval, records the finished period's totals, snaps
new base offsets and selects the rates for the current season.

Every function here is pure: it takes a :class:`PeriodState` and returns a
new one. Loading and saving state is the repository's job.

CHANGELOG:
- 2026-10-19: Guard repeated StartPeak/EndPeak against double counting
- 2026-10-19: Initial creation (STORY-009)

TODO:
- None
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from eagle_edge.src.errors import ParseError
from eagle_edge.src.models import MeteringType, PeakPeriod, PeriodState

logger = logging.getLogger(__name__)

WINTER = "Winter"
"""Season name selecting winter rates; any other name means summer."""

_RATES_RE = re.compile(
    r"^\s*([0-9.]+)[,\s]+([0-9.]+)[,\s]+([0-9.]+)[,\s]+([0-9.]+)\s*$"
)


# ---------------------------------------------------------------------------
# Rates
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RateSchedule:
    """Peak and off-peak energy rates for both seasons (currency per kWh)."""

    peak_summer: float
    off_peak_summer: float
    peak_winter: float
    off_peak_winter: float

    def for_season(self, season: str) -> tuple[float, float]:
        """Return ``(peak_rate, off_peak_rate)`` for *season*."""
        if season == WINTER:
            return self.peak_winter, self.off_peak_winter
        return self.peak_summer, self.off_peak_summer


def parse_rates(text: str) -> RateSchedule:
    """Parse ``"peakSummer,offPeakSummer,peakWinter,offPeakWinter"``.

    Commas and/or whitespace separate the four values.

    Raises:
        ParseError: If the text does not hold four non-negative numbers.
    """
    match = _RATES_RE.match(text or "")
    if match is None:
        raise ParseError(
            "RATES must be 'peakSummer,offPeakSummer,peakWinter,offPeakWinter' "
            f"(got: {text!r})"
        )
    try:
        values = [float(group) for group in match.groups()]
    except ValueError as exc:
        raise ParseError(f"invalid rate value in {text!r}") from exc
    return RateSchedule(*values)


# ---------------------------------------------------------------------------
# Derived metrics
# ---------------------------------------------------------------------------


def kwh_since_reset(
    metering_type: MeteringType,
    *,
    delivered: float,
    received: float,
    state: PeriodState,
) -> float:
    """Return usable energy since the last reset for the metering mode."""
    if metering_type is MeteringType.DELIVERED_ONLY:
        return delivered - state.base_delivered
    if metering_type is MeteringType.RECEIVED_ONLY:
        return received - state.base_received
    return (delivered - received) - (state.base_delivered - state.base_received)


def delivered_per_period(delivered: float, state: PeriodState) -> float:
    """Energy delivered (ignoring generation) since the last reset."""
    return delivered - state.base_delivered


def _elapsed(current_kwh: float, mark: float | None) -> float:
    # A missing mark means the interval was never opened: seed it to now.
    if mark is None:
        return 0.0
    return current_kwh - mark


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def start_peak(state: PeriodState, current_kwh: float) -> PeriodState:
    """Close the off-peak interval and open a peak interval at *current_kwh*."""
    if state.period_flag is PeakPeriod.PEAK:
        logger.info("StartPeak ignored: peak period already active")
        return state
    return state.model_copy(
        update={
            "off_peak_accum": state.off_peak_accum
            + _elapsed(current_kwh, state.start_off_peak_mark),
            "start_peak_mark": current_kwh,
            "period_flag": PeakPeriod.PEAK,
        }
    )


def end_peak(state: PeriodState, current_kwh: float) -> PeriodState:
    """Close the peak interval and open an off-peak interval at *current_kwh*."""
    if state.period_flag is PeakPeriod.OFF_PEAK:
        logger.info("EndPeak ignored: off-peak period already active")
        return state
    return state.model_copy(
        update={
            "peak_accum": state.peak_accum
            + _elapsed(current_kwh, state.start_peak_mark),
            "start_off_peak_mark": current_kwh,
            "period_flag": PeakPeriod.OFF_PEAK,
        }
    )


def reset_period(
    state: PeriodState,
    *,
    current_delivered: float,
    current_received: float,
    current_kwh: float,
    season: str,
    rates: RateSchedule,
    now: int,
) -> PeriodState:
    """Roll the billing period over.

    The running interval is finalized into ``prior_peak`` /
    ``prior_off_peak`` (the partial interval is not lost), marks and
    accumulators are zeroed, the base offsets snap to the current counters
    and the season's rates are selected. The active period flag is kept.

    Args:
        state: Current period state.
        current_delivered: Latest published delivered summation (kWh).
        current_received: Latest published received summation (kWh).
        current_kwh: Latest published ``KWH`` metric.
        season: Current season name.
        rates: Configured rate schedule.
        now: Unix timestamp stamped as the new period start.
    """
    prior_peak = state.peak_accum
    prior_off_peak = state.off_peak_accum
    if state.period_flag is PeakPeriod.PEAK:
        prior_peak += _elapsed(current_kwh, state.start_peak_mark)
    else:
        prior_off_peak += _elapsed(current_kwh, state.start_off_peak_mark)

    peak_rate, off_peak_rate = rates.for_season(season)
    logger.info(
        "Billing period reset: season=%s peak_rate=%s off_peak_rate=%s",
        season,
        peak_rate,
        off_peak_rate,
    )

    return state.model_copy(
        update={
            "delivered_prior": current_delivered - state.base_delivered,
            "prior_peak": prior_peak,
            "prior_off_peak": prior_off_peak,
            "start_peak_mark": 0.0,
            "start_off_peak_mark": 0.0,
            "peak_accum": 0.0,
            "off_peak_accum": 0.0,
            "base_delivered": current_delivered,
            "base_received": current_received,
            "peak_rate": peak_rate,
            "off_peak_rate": off_peak_rate,
            "period_start": now,
        }
    )
