"""
Per-device session context and the HTTP POST transport used by both adapters.

A :class:`DeviceSession` carries everything an adapter needs to talk to one
gateway: the immutable :class:`DeviceConfig`, the request timeout, the
hardware address resolved at startup (Eagle 200 only) and, for tests, an
optional ``httpx`` transport. It replaces any module-level device state.

:func:`post_command` sends one command envelope and returns the response
body text. Connection errors, timeouts and non-200 statuses are raised as
:class:`TransportError` so the adapters can turn them into a failed poll.

CHANGELOG:
- 2026-10-19: Add explicit request timeout
- 2026-10-19: Initial creation (STORY-006)

TODO:
- None
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from eagle_edge.src.errors import MissingConfigurationError, TransportError
from eagle_edge.src.models import DeviceConfig, EagleModel

if TYPE_CHECKING:
    from eagle_edge.src.config import EagleSettings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S: float = 10.0
"""Per-request timeout in seconds."""

_ADDRESS_RE = re.compile(
    r"^(?P<host>[A-Za-z0-9](?:[A-Za-z0-9.-]*[A-Za-z0-9])?|\[[0-9A-Fa-f:.]+\])"
    r"(?::(?P<port>\d{1,5}))?$"
)
"""Hostname, IPv4 or bracketed IPv6 address with an optional port."""


def validate_address(address: str) -> str:
    """Return *address* if it is a usable ``host[:port]``.

    Raises:
        MissingConfigurationError: If the host is malformed or the port is
            outside 1-65535.
    """
    match = _ADDRESS_RE.match(address)
    if match is None:
        raise MissingConfigurationError(
            f"EAGLE_HOST must be host or host:port of the Eagle gateway (got: {address!r})"
        )
    port = match.group("port")
    if port is not None and not 1 <= int(port) <= 65535:
        raise MissingConfigurationError(f"EAGLE_HOST port out of range: {address!r}")
    return address


@dataclass(slots=True)
class DeviceSession:
    """Connection context for one Eagle gateway.

    Attributes:
        config: Gateway identity and access settings.
        timeout_s: Per-request HTTP timeout.
        hardware_address: Eagle 200 meter address, resolved once at startup.
        transport: Optional ``httpx`` transport override (tests).
    """

    config: DeviceConfig
    timeout_s: float = DEFAULT_TIMEOUT_S
    hardware_address: str | None = None
    transport: httpx.AsyncBaseTransport | None = None

    def url(self, path: str) -> str:
        """Return the gateway URL for *path* (e.g. ``/cgi-bin/cgi_manager``)."""
        return f"http://{self.config.address}{path}"

    def client(self) -> httpx.AsyncClient:
        """Create an HTTP client with the session's auth, timeout and transport."""
        credentials = self.config.credentials
        return httpx.AsyncClient(
            auth=httpx.BasicAuth(*credentials) if credentials else None,
            timeout=self.timeout_s,
            transport=self.transport,
        )


def build_session(
    settings: EagleSettings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> DeviceSession:
    """Build a :class:`DeviceSession` from settings.

    Raises:
        MissingConfigurationError: If the gateway address is malformed or
            the Eagle 100 MAC id is not set.
    """
    config = settings.device_config()
    validate_address(config.address)
    if config.model is EagleModel.EAGLE_100 and not config.mac_id:
        raise MissingConfigurationError(
            "Please enter the DEVICE_MAC_ID of your Eagle 100 (printed on the device)"
        )
    return DeviceSession(
        config=config,
        timeout_s=settings.http_timeout_s,
        transport=transport,
    )


async def post_command(
    session: DeviceSession,
    path: str,
    body: str,
    *,
    content_type: str,
) -> str:
    """POST a command envelope to the gateway and return the response text.

    Args:
        session: Device session (address, credentials, timeout).
        path: CGI path on the gateway.
        body: Pseudo-XML command envelope.
        content_type: ``Content-Type`` header value for the body.

    Raises:
        TransportError: On connection errors, timeouts, an unusable
            address or non-200 status.
    """
    url = session.url(path)
    try:
        async with session.client() as client:
            response = await client.post(
                url,
                content=body.encode("utf-8"),
                headers={"Content-Type": content_type},
            )
    except httpx.TimeoutException as exc:
        raise TransportError(f"timeout posting to {url}: {exc}") from exc
    except httpx.HTTPError as exc:
        raise TransportError(f"error posting to {url}: {exc}") from exc
    except (httpx.InvalidURL, OSError, OverflowError, ExceptionGroup) as exc:
        # Malformed address or socket-level failure below httpx.
        raise TransportError(f"cannot reach {url}: {exc!r}") from exc

    if response.status_code != 200:
        raise TransportError(f"HTTP {response.status_code} from {url}")
    return response.text
