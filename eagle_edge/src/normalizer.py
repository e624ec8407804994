"""
Pure normalizer that converts an adapter RawReading into a CanonicalReading.

Both adapters already deliver engineering units (W, kWh); the normalizer
reconciles what is left between them:

- Connection health: only the literal ``"Connected"`` status counts; any
  other status returns a not-connected reading with nothing else derived.
- Timestamp: the Eagle 100 reports local wall-clock time as if it were UTC.
  The skew (UTC wall clock minus local wall clock) is recomputed for every
  reading because it changes with daylight saving.
- Energy: ``net_kwh = delivered_kwh - received_kwh``. Meters that only
  measure delivery do not report a received summation; it counts as 0.

This is a pure function: no side effects, no I/O, no clock. The current
time is passed in by the caller.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-010)

TODO:
- None
"""

from __future__ import annotations

from datetime import datetime

from eagle_edge.src.errors import FieldParseError
from eagle_edge.src.models import CONNECTED_STATUS, CanonicalReading, EagleModel, RawReading


def local_clock_skew(now: datetime) -> int:
    """Return UTC wall clock minus local wall clock at *now*, in seconds.

    Args:
        now: Timezone-aware current time in the local zone.
    """
    offset = now.utcoffset()
    if offset is None:
        raise ValueError("now must be timezone-aware")
    return -int(offset.total_seconds())


def fix_timestamp(timestamp: int, *, now: datetime) -> int:
    """Correct an Eagle 100 timestamp that was built from local time."""
    return timestamp + local_clock_skew(now)


def normalize(
    raw: RawReading,
    *,
    model: EagleModel,
    now: datetime,
) -> CanonicalReading:
    """Convert a :class:`RawReading` into a :class:`CanonicalReading`.

    Args:
        raw: Adapter output.
        model: Hardware variant that produced *raw*.
        now: Timezone-aware current local time, used for the timestamp fix.

    Returns:
        A connected reading with all energy fields derived, or a reading
        with ``connected=False`` when the meter status is not
        ``"Connected"``.

    Raises:
        FieldParseError: If a connected reading lacks the delivered
            summation or the demand.
    """
    if raw.link_status != CONNECTED_STATUS:
        return CanonicalReading(connected=False, link_status=raw.link_status)

    if raw.summation_delivered is None:
        raise FieldParseError("summation delivered missing from connected reading")
    if raw.demand_w is None:
        raise FieldParseError("demand missing from connected reading")

    delivered = raw.summation_delivered
    received = raw.summation_received if raw.summation_received is not None else 0.0

    timestamp = raw.timestamp
    if timestamp is not None and model is EagleModel.EAGLE_100:
        timestamp = fix_timestamp(timestamp, now=now)

    return CanonicalReading(
        delivered_kwh=delivered,
        received_kwh=received,
        net_kwh=delivered - received,
        demand_watts=raw.demand_w,
        price=raw.price,
        timestamp_utc=timestamp,
        connected=True,
        link_status=raw.link_status,
        link_strength=raw.link_strength,
    )
