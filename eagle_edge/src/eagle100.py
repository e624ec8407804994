"""
Protocol adapter for the Eagle 100 (pseudo-XML request, JSON response).

Each poll posts two ``<LocalCommand>`` envelopes to ``/cgi-bin/cgi_manager``:

1. ``get_usage_data`` -- demand, summations, price, meter status, timestamp.
2. ``get_setting_data`` -- network link strength (best effort).

The request body is XML-like text even though the gateway answers with JSON.
A failed usage request (transport error, non-200, bad JSON, malformed field)
yields no reading; a failed settings request only leaves the link strength
unset.

CHANGELOG:
- 2026-10-19: Treat the "nan" demand sentinel as a malformed field
- 2026-10-19: Initial creation (STORY-007)

TODO:
- None
"""

from __future__ import annotations

import json
import logging
from typing import Any

from eagle_edge.src.errors import DecodeError, EagleError, FieldParseError, ParseError
from eagle_edge.src.models import CONNECTED_STATUS, RawReading
from eagle_edge.src.session import DeviceSession, post_command
from eagle_edge.src.units import parse_unit_value, parse_unsigned

logger = logging.getLogger(__name__)

CGI_PATH = "/cgi-bin/cgi_manager"
CONTENT_TYPE = "text/xml"

USAGE_REQUEST = "get_usage_data"
SETTINGS_REQUEST = "get_setting_data"


# ---------------------------------------------------------------------------
# Request / response helpers
# ---------------------------------------------------------------------------


def format_mac(mac_id: str) -> str:
    """Return the MAC id as ``0x``-prefixed hex, as the gateway expects."""
    mac = mac_id.strip()
    if mac[:2].lower() == "0x":
        mac = mac[2:]
    return f"0x{mac}"


def build_command(request_name: str, mac_id: str) -> str:
    """Build the ``<LocalCommand>`` envelope for *request_name*."""
    return (
        "<LocalCommand>\n"
        f"<Name>{request_name}</Name>\n"
        f"<MacId>{format_mac(mac_id)}</MacId>\n"
        "</LocalCommand>\n"
    )


def _number(payload: dict[str, Any], key: str) -> float | None:
    """Parse an optional numeric field; absent or empty gives ``None``."""
    value = payload.get(key)
    if value is None or value == "":
        return None
    try:
        return parse_unit_value(str(value))
    except ParseError as exc:
        raise FieldParseError(f"{key}: {exc}") from exc


def decode_usage(payload: dict[str, Any]) -> RawReading:
    """Convert a ``get_usage_data`` JSON object into a :class:`RawReading`.

    When the meter is not connected only the status is kept; the other
    fields are not trusted.

    Raises:
        FieldParseError: If a numeric field of a connected meter is
            malformed, including the ``"nan"`` demand some meters report.
    """
    status = payload.get("meter_status")
    if status != CONNECTED_STATUS:
        return RawReading(link_status=status)

    demand_kw = _number(payload, "demand")
    if demand_kw is None:
        raise FieldParseError("demand: missing from usage data")

    try:
        raw_timestamp = payload.get("demand_timestamp")
        timestamp = parse_unsigned(None if raw_timestamp is None else str(raw_timestamp))
    except ParseError as exc:
        raise FieldParseError(f"demand_timestamp: {exc}") from exc

    return RawReading(
        demand_w=demand_kw * 1000,
        summation_delivered=_number(payload, "summation_delivered"),
        summation_received=_number(payload, "summation_received"),
        price=_number(payload, "price"),
        timestamp=timestamp or None,
        link_status=status,
    )


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class Eagle100Adapter:
    """Reads the Eagle 100 over its JSON ``cgi_manager`` interface.

    Args:
        session: Device session with the gateway address and MAC id.
    """

    def __init__(self, session: DeviceSession) -> None:
        self._session = session

    async def _request(self, request_name: str) -> dict[str, Any]:
        """Post one command and decode the JSON object it returns.

        Raises:
            TransportError: On network failure or non-200 status.
            DecodeError: If the body is not a JSON object.
        """
        body = await post_command(
            self._session,
            CGI_PATH,
            build_command(request_name, self._session.config.mac_id),
            content_type=CONTENT_TYPE,
        )
        try:
            obj = json.loads(body)
        except json.JSONDecodeError as exc:
            raise DecodeError(f"{request_name}: invalid JSON: {exc}") from exc
        if not isinstance(obj, dict):
            raise DecodeError(f"{request_name}: expected a JSON object")
        return obj

    async def _link_strength(self) -> int | None:
        """Fetch link strength; any failure is logged and yields ``None``."""
        try:
            settings = await self._request(SETTINGS_REQUEST)
            strength = settings.get("network_link_strength")
            return parse_unsigned(None if strength is None else str(strength))
        except EagleError as exc:
            logger.info("Link strength unavailable: %s", exc)
            return None

    async def read(self) -> RawReading | None:
        """Execute one poll.

        Returns:
            A :class:`RawReading`, or ``None`` if the usage request failed.
        """
        try:
            usage = await self._request(USAGE_REQUEST)
            reading = decode_usage(usage)
        except EagleError as exc:
            logger.warning("Eagle 100 poll to %s failed: %s", self._session.config.address, exc)
            return None

        if reading.link_status == CONNECTED_STATUS:
            reading = reading.model_copy(
                update={"link_strength": await self._link_strength()}
            )
        return reading
