"""
Tests for the Eagle 200 (XML) protocol adapter.

CHANGELOG:
- 2026-10-19: Add negative demand wraparound cases
- 2026-10-19: Initial creation -- TDD tests written first (STORY-008)

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest
from conftest import DEVICE_LIST_XML, device_query_xml
from eagle_edge.src.eagle200 import (
    CGI_PATH,
    DEVICE_LIST_COMMAND,
    Eagle200Adapter,
    build_query_command,
    decode_device_query,
    unwrap_demand,
)
from eagle_edge.src.errors import FieldParseError, MissingConfigurationError
from eagle_edge.src.models import DeviceConfig, EagleModel
from eagle_edge.src.session import DeviceSession
from eagle_edge.src.xmltree import parse_document

HW_ADDRESS = "0x00078100006a18d7"

Handler = Callable[[httpx.Request], httpx.Response]


def _session(handler: Handler, *, hardware_address: str | None = HW_ADDRESS) -> DeviceSession:
    return DeviceSession(
        config=DeviceConfig(model=EagleModel.EAGLE_200, address="192.168.1.60"),
        hardware_address=hardware_address,
        transport=httpx.MockTransport(handler),
    )


def _respond(text: str, status: int = 200, seen: list[httpx.Request] | None = None) -> Handler:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status, text=text)

    return handler


# ===========================================================================
# Commands and decoding
# ===========================================================================


class TestCommands:
    def test_query_embeds_hardware_address(self) -> None:
        body = build_query_command(HW_ADDRESS)

        assert "<Name>device_query</Name>" in body
        assert f"<HardwareAddress>{HW_ADDRESS}</HardwareAddress>" in body
        assert "<All>Y</All>" in body

    def test_device_list_command(self) -> None:
        assert "<Name>device_list</Name>" in DEVICE_LIST_COMMAND


class TestUnwrapDemand:
    @pytest.mark.parametrize(
        ("watts", "expected"),
        [
            (4_294_000_000.0, -967_296.0),
            (2**32 - 1.0, -1.0),
            (2.0**31, 2.0**31),
            (1105.0, 1105.0),
            (0.0, 0.0),
        ],
    )
    def test_unwrap(self, watts: float, expected: float) -> None:
        assert unwrap_demand(watts) == expected


class TestDecodeDeviceQuery:
    """Parsed device_query tree -> RawReading."""

    def test_unit_suffixed_values_are_scaled(self) -> None:
        reading = decode_device_query(parse_document(device_query_xml()))

        assert reading.link_status == "Connected"
        assert reading.demand_w == pytest.approx(1105.0)
        assert reading.summation_delivered == pytest.approx(143313.0)
        assert reading.summation_received == pytest.approx(12.5)
        assert reading.price == 0.15
        assert reading.timestamp == 0x5A11B1CB

    def test_bare_numbers_are_not_scaled(self) -> None:
        xml = device_query_xml(demand="1105", delivered="143313.0", received="12.5")

        reading = decode_device_query(parse_document(xml))

        assert reading.demand_w == 1105.0
        assert reading.summation_delivered == 143313.0
        assert reading.summation_received == 12.5

    def test_wrapped_negative_demand(self) -> None:
        reading = decode_device_query(parse_document(device_query_xml(demand="4294000000")))

        assert reading.demand_w == -967_296.0

    def test_not_connected_keeps_only_status(self) -> None:
        xml = device_query_xml(status="Not joined", demand="", delivered="", received="")

        reading = decode_device_query(parse_document(xml))

        assert reading.link_status == "Not joined"
        assert reading.demand_w is None

    def test_empty_received_is_absent(self) -> None:
        reading = decode_device_query(parse_document(device_query_xml(received="")))

        assert reading.summation_received is None

    def test_empty_price_is_absent(self) -> None:
        reading = decode_device_query(parse_document(device_query_xml(price="")))

        assert reading.price is None

    @pytest.mark.parametrize("demand", ["", "nan", "kW", "0x1A", "12a3"])
    def test_bad_demand_raises(self, demand: str) -> None:
        with pytest.raises(FieldParseError):
            decode_device_query(parse_document(device_query_xml(demand=demand)))

    def test_bad_summation_raises(self) -> None:
        with pytest.raises(FieldParseError):
            decode_device_query(parse_document(device_query_xml(delivered="lots kWh")))


# ===========================================================================
# Hardware address resolution
# ===========================================================================


class TestResolveHardwareAddress:
    @pytest.mark.asyncio
    async def test_caches_address_on_session(self) -> None:
        seen: list[httpx.Request] = []
        session = _session(_respond(DEVICE_LIST_XML, seen=seen), hardware_address=None)

        address = await Eagle200Adapter(session).resolve_hardware_address()

        assert address == HW_ADDRESS
        assert session.hardware_address == HW_ADDRESS
        assert seen[0].url == httpx.URL(f"http://192.168.1.60{CGI_PATH}")
        assert seen[0].headers["Content-Type"] == "text/html"
        assert b"device_list" in seen[0].content

    @pytest.mark.asyncio
    async def test_missing_address_raises(self) -> None:
        session = _session(_respond("<DeviceList></DeviceList>"), hardware_address=None)

        with pytest.raises(MissingConfigurationError):
            await Eagle200Adapter(session).resolve_hardware_address()
        assert session.hardware_address is None

    @pytest.mark.asyncio
    async def test_unreachable_gateway_raises(self) -> None:
        session = _session(_respond("", status=503), hardware_address=None)

        with pytest.raises(MissingConfigurationError):
            await Eagle200Adapter(session).resolve_hardware_address()

    @pytest.mark.asyncio
    async def test_malformed_list_raises(self) -> None:
        session = _session(_respond("<DeviceList><Device>"), hardware_address=None)

        with pytest.raises(MissingConfigurationError):
            await Eagle200Adapter(session).resolve_hardware_address()


# ===========================================================================
# Polling
# ===========================================================================


class TestEagle200Read:
    @pytest.mark.asyncio
    async def test_connected_poll(self) -> None:
        seen: list[httpx.Request] = []
        session = _session(_respond(device_query_xml(), seen=seen))

        reading = await Eagle200Adapter(session).read()

        assert reading is not None
        assert reading.demand_w == pytest.approx(1105.0)
        assert HW_ADDRESS.encode() in seen[0].content

    @pytest.mark.asyncio
    async def test_unresolved_address_skips_request(self) -> None:
        seen: list[httpx.Request] = []
        session = _session(_respond(device_query_xml(), seen=seen), hardware_address=None)

        assert await Eagle200Adapter(session).read() is None
        assert seen == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("text", "status"),
        [
            ("", 500),
            ("", 200),
            ("<Device><Unclosed>", 200),
            (device_query_xml(demand="nan"), 200),
        ],
    )
    async def test_failures_return_none(self, text: str, status: int) -> None:
        session = _session(_respond(text, status=status))

        assert await Eagle200Adapter(session).read() is None

    @pytest.mark.asyncio
    async def test_unjoined_meter_returns_status_only(self) -> None:
        xml = device_query_xml(status="Not joined", demand="", delivered="", received="")
        session = _session(_respond(xml))

        reading = await Eagle200Adapter(session).read()

        assert reading is not None
        assert reading.link_status == "Not joined"
