"""
Protocol adapter for the Eagle 200 (pseudo-XML request, XML response).

The Eagle 200 is addressed through ``/cgi-bin/post_manager`` with two
commands:

- ``device_list`` -- sent once at startup to learn the meter's hardware
  address (``<HardwareAddress>``) and connection status.
- ``device_query`` -- embeds the hardware address and asks for all
  component variables in one round trip.

Meter values live in ``<Name>``/``<Value>`` pairs and come in two shapes
depending on firmware: a bare number or ``"<number> <unit>"``. Values with a
unit suffix are in kW / kWh-thousands and are scaled x1000 to the bare-number
units (W for demand). A demand above 2**31 W is a negative (exporting)
reading that the firmware wrapped as an unsigned 32-bit integer.

Malformed numbers abort the poll: the adapter never reports a partial
reading built from data it could not parse.

CHANGELOG:
- 2026-10-19: Unwrap negative demand reported as unsigned 32-bit
- 2026-10-19: Initial creation (STORY-008)

TODO:
- None
"""

from __future__ import annotations

import logging

from eagle_edge.src.errors import (
    DecodeError,
    EagleError,
    FieldParseError,
    MissingConfigurationError,
    ParseError,
    TransportError,
)
from eagle_edge.src.models import CONNECTED_STATUS, RawReading
from eagle_edge.src.session import DeviceSession, post_command
from eagle_edge.src.units import parse_unit_value, parse_unsigned, split_unit
from eagle_edge.src.xmltree import XmlNode, find_value, find_value_for, parse_document

logger = logging.getLogger(__name__)

CGI_PATH = "/cgi-bin/post_manager"
CONTENT_TYPE = "text/html"

DEVICE_LIST_COMMAND = "<Command>\n<Name>device_list</Name>\n</Command>\n"

DEMAND_NAME = "zigbee:InstantaneousDemand"
DELIVERED_NAME = "zigbee:CurrentSummationDelivered"
RECEIVED_NAME = "zigbee:CurrentSummationReceived"
PRICE_NAME = "zigbee:Price"

UNIT_SCALE = 1000
"""Multiplier applied to values that carry a unit suffix."""

_WRAP_THRESHOLD = 2**31
_WRAP_MODULUS = 2**32


def build_query_command(hardware_address: str) -> str:
    """Build the ``device_query`` envelope requesting all variables."""
    return (
        "<Command><Name>device_query</Name><DeviceDetails><HardwareAddress>"
        f"{hardware_address}"
        "</HardwareAddress></DeviceDetails><Components><All>Y</All></Components>"
        "</Command>"
    )


# ---------------------------------------------------------------------------
# Field decoding
# ---------------------------------------------------------------------------


def _scaled(name: str, text: str | None) -> float | None:
    """Parse a value that may carry a unit; ``None``/``""`` means absent."""
    if not text:
        return None
    try:
        value, unit = split_unit(text)
    except ParseError as exc:
        raise FieldParseError(f"{name}: {exc}") from exc
    if unit is not None:
        value *= UNIT_SCALE
    return value


def unwrap_demand(watts: float) -> float:
    """Undo the unsigned 32-bit wraparound of a negative demand."""
    if watts > _WRAP_THRESHOLD:
        return watts - _WRAP_MODULUS
    return watts


def decode_device_query(tree: XmlNode) -> RawReading:
    """Convert a parsed ``device_query`` response into a :class:`RawReading`.

    Only the status is kept when the meter is not connected; an unjoined
    meter reports variable names without values.

    Raises:
        FieldParseError: If a numeric field of a connected meter is malformed
            or the demand is missing.
    """
    status = find_value("ConnectionStatus", tree)
    if status != CONNECTED_STATUS:
        return RawReading(link_status=status)

    demand = _scaled(DEMAND_NAME, find_value_for(DEMAND_NAME, tree))
    if demand is None:
        raise FieldParseError(f"{DEMAND_NAME}: missing from device query")

    price_text = find_value_for(PRICE_NAME, tree)
    try:
        price = parse_unit_value(price_text) if price_text else None
        timestamp = parse_unsigned(find_value("LastContact", tree))
    except ParseError as exc:
        raise FieldParseError(str(exc)) from exc

    return RawReading(
        demand_w=unwrap_demand(demand),
        summation_delivered=_scaled(DELIVERED_NAME, find_value_for(DELIVERED_NAME, tree)),
        summation_received=_scaled(RECEIVED_NAME, find_value_for(RECEIVED_NAME, tree)),
        price=price,
        timestamp=timestamp or None,
        link_status=status,
    )


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class Eagle200Adapter:
    """Reads the Eagle 200 over its XML ``post_manager`` interface.

    The hardware address is resolved by :meth:`resolve_hardware_address`
    at startup and cached on the session.

    Args:
        session: Device session with the gateway address.
    """

    def __init__(self, session: DeviceSession) -> None:
        self._session = session

    async def _request(self, command: str) -> XmlNode:
        """Post *command* and parse the XML answer.

        Raises:
            TransportError: On network failure or non-200 status.
            DecodeError: If the body is not parsable XML after sanitizing.
        """
        body = await post_command(
            self._session,
            CGI_PATH,
            command,
            content_type=CONTENT_TYPE,
        )
        if not body:
            raise DecodeError("empty response body")
        return parse_document(body)

    async def resolve_hardware_address(self) -> str:
        """Query ``device_list`` and cache the meter hardware address.

        Raises:
            MissingConfigurationError: If the gateway cannot be queried or
                reports no hardware address.
        """
        try:
            tree = await self._request(DEVICE_LIST_COMMAND)
        except (TransportError, DecodeError) as exc:
            raise MissingConfigurationError(
                f"Cannot find hardware address of Eagle: {exc}"
            ) from exc

        address = find_value("HardwareAddress", tree)
        if not address:
            raise MissingConfigurationError("Cannot find hardware address")

        logger.info(
            "Found hardware address %s (connection status: %s)",
            address,
            find_value("ConnectionStatus", tree),
        )
        self._session.hardware_address = address
        return address

    async def read(self) -> RawReading | None:
        """Execute one poll.

        Returns:
            A :class:`RawReading`, or ``None`` on transport, XML or field
            errors, or when the hardware address was never resolved.
        """
        address = self._session.hardware_address
        if address is None:
            logger.warning("Eagle 200 hardware address not resolved, skipping poll")
            return None

        try:
            tree = await self._request(build_query_command(address))
            return decode_device_query(tree)
        except EagleError as exc:
            logger.warning("Eagle 200 poll to %s failed: %s", self._session.config.address, exc)
            return None
