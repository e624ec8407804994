"""
Tests for the Eagle 100 (JSON) protocol adapter.

The gateway is simulated with ``httpx.MockTransport``; each test routes the
``get_usage_data`` and ``get_setting_data`` commands to canned responses.

CHANGELOG:
- 2026-10-19: Initial creation -- TDD tests written first (STORY-007)

TODO:
- None
"""

from __future__ import annotations

import base64
import json
from collections.abc import Callable

import httpx
import pytest
from conftest import settings_json, usage_json
from eagle_edge.src.eagle100 import (
    CGI_PATH,
    Eagle100Adapter,
    build_command,
    decode_usage,
    format_mac,
)
from eagle_edge.src.errors import FieldParseError
from eagle_edge.src.models import DeviceConfig, EagleModel
from eagle_edge.src.session import DeviceSession

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

Handler = Callable[[httpx.Request], httpx.Response]


def _session(handler: Handler, **config: object) -> DeviceSession:
    values: dict[str, object] = {
        "model": EagleModel.EAGLE_100,
        "address": "192.168.1.50",
        "mac_id": "d8d5b9000000abcd",
    }
    values.update(config)
    return DeviceSession(
        config=DeviceConfig(**values),  # type: ignore[arg-type]
        transport=httpx.MockTransport(handler),
    )


def _router(
    usage: httpx.Response,
    settings: httpx.Response | None = None,
    seen: list[httpx.Request] | None = None,
) -> Handler:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if b"get_usage_data" in request.content:
            return usage
        if b"get_setting_data" in request.content and settings is not None:
            return settings
        return httpx.Response(404)

    return handler


# ===========================================================================
# Request envelope
# ===========================================================================


class TestBuildCommand:
    """Pseudo-XML LocalCommand body."""

    def test_envelope_layout(self) -> None:
        body = build_command("get_usage_data", "d8d5b9000000abcd")

        assert body == (
            "<LocalCommand>\n"
            "<Name>get_usage_data</Name>\n"
            "<MacId>0xd8d5b9000000abcd</MacId>\n"
            "</LocalCommand>\n"
        )

    @pytest.mark.parametrize("mac", ["abcd", "0xabcd", "0Xabcd", " abcd "])
    def test_mac_always_has_single_prefix(self, mac: str) -> None:
        assert format_mac(mac) == "0xabcd"


# ===========================================================================
# decode_usage
# ===========================================================================


class TestDecodeUsage:
    """JSON object -> RawReading."""

    def test_connected_payload(self) -> None:
        reading = decode_usage(json.loads(usage_json()))

        assert reading.link_status == "Connected"
        assert reading.demand_w == pytest.approx(1105.0)
        assert reading.summation_delivered == 143313.0
        assert reading.summation_received == 12.5
        assert reading.price == 0.15
        assert reading.timestamp == 0x5A11B1CB

    def test_not_connected_keeps_only_status(self) -> None:
        reading = decode_usage({"meter_status": "Not joined", "demand": "nan"})

        assert reading.link_status == "Not joined"
        assert reading.demand_w is None
        assert reading.summation_delivered is None

    @pytest.mark.parametrize("demand", ["nan", "", None, "garbage", "0x1A", "12a3"])
    def test_bad_demand_raises(self, demand: str | None) -> None:
        with pytest.raises(FieldParseError):
            decode_usage({"meter_status": "Connected", "demand": demand})

    def test_numeric_json_values_accepted(self) -> None:
        reading = decode_usage(
            {
                "meter_status": "Connected",
                "demand": 0.5,
                "summation_delivered": 10,
                "demand_timestamp": 1511109067,
            }
        )

        assert reading.demand_w == 500.0
        assert reading.summation_delivered == 10.0
        assert reading.timestamp == 1511109067

    def test_bad_summation_raises(self) -> None:
        with pytest.raises(FieldParseError):
            decode_usage(
                {"meter_status": "Connected", "demand": "1", "summation_delivered": "x"}
            )

    def test_bad_timestamp_raises(self) -> None:
        with pytest.raises(FieldParseError):
            decode_usage(
                {"meter_status": "Connected", "demand": "1", "demand_timestamp": "0xzz"}
            )


# ===========================================================================
# Adapter round trips
# ===========================================================================


class TestEagle100Read:
    """Eagle100Adapter.read() against a mocked gateway."""

    @pytest.mark.asyncio
    async def test_merges_usage_and_link_strength(self) -> None:
        session = _session(
            _router(
                httpx.Response(200, text=usage_json()),
                httpx.Response(200, text=settings_json()),
            )
        )

        reading = await Eagle100Adapter(session).read()

        assert reading is not None
        assert reading.demand_w == pytest.approx(1105.0)
        assert reading.link_strength == 100

    @pytest.mark.asyncio
    async def test_numeric_link_strength(self) -> None:
        session = _session(
            _router(
                httpx.Response(200, text=usage_json()),
                httpx.Response(200, json={"network_link_strength": 80}),
            )
        )

        reading = await Eagle100Adapter(session).read()

        assert reading is not None
        assert reading.link_strength == 80

    @pytest.mark.asyncio
    async def test_posts_to_cgi_manager_with_text_body(self) -> None:
        seen: list[httpx.Request] = []
        session = _session(
            _router(
                httpx.Response(200, text=usage_json()),
                httpx.Response(200, text=settings_json()),
                seen,
            )
        )

        await Eagle100Adapter(session).read()

        assert [r.method for r in seen] == ["POST", "POST"]
        assert seen[0].url == httpx.URL(f"http://192.168.1.50{CGI_PATH}")
        assert seen[0].headers["Content-Type"] == "text/xml"
        assert b"<MacId>0xd8d5b9000000abcd</MacId>" in seen[0].content
        assert "Authorization" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_sends_basic_auth_when_cloud_id_set(self) -> None:
        seen: list[httpx.Request] = []
        session = _session(
            _router(httpx.Response(200, text=usage_json()), None, seen),
            cloud_id="00ab12",
            install_code="f00dfeed",
        )

        await Eagle100Adapter(session).read()

        expected = base64.b64encode(b"00ab12:f00dfeed").decode()
        assert seen[0].headers["Authorization"] == f"Basic {expected}"

    @pytest.mark.asyncio
    async def test_failed_settings_call_is_best_effort(self) -> None:
        session = _session(
            _router(httpx.Response(200, text=usage_json()), httpx.Response(500))
        )

        reading = await Eagle100Adapter(session).read()

        assert reading is not None
        assert reading.link_strength is None
        assert reading.summation_delivered == 143313.0

    @pytest.mark.asyncio
    async def test_not_connected_skips_settings_call(self) -> None:
        seen: list[httpx.Request] = []
        session = _session(
            _router(
                httpx.Response(200, text=usage_json(meter_status="Not joined")),
                httpx.Response(200, text=settings_json()),
                seen,
            )
        )

        reading = await Eagle100Adapter(session).read()

        assert reading is not None
        assert reading.link_status == "Not joined"
        assert len(seen) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500),
            httpx.Response(401),
            httpx.Response(200, text="{not json"),
            httpx.Response(200, text="[1, 2]"),
            httpx.Response(200, text=usage_json(demand="nan")),
        ],
    )
    async def test_failures_return_none(self, response: httpx.Response) -> None:
        session = _session(_router(response))

        assert await Eagle100Adapter(session).read() is None

    @pytest.mark.asyncio
    async def test_connection_error_returns_none(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        assert await Eagle100Adapter(_session(handler)).read() is None

    @pytest.mark.asyncio
    async def test_timeout_returns_none(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        assert await Eagle100Adapter(_session(handler)).read() is None

    @pytest.mark.asyncio
    async def test_socket_error_returns_none(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise OSError(113, "No route to host")

        assert await Eagle100Adapter(_session(handler)).read() is None

    @pytest.mark.asyncio
    async def test_invalid_url_returns_none(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.InvalidURL("Invalid port: '99999'")

        assert await Eagle100Adapter(_session(handler)).read() is None
