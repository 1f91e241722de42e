"""Multicast search and manual probing of Yeelight fixtures."""

from __future__ import annotations

import asyncio
import logging
import socket
import struct
import time

from .connection import YeelightConnection
from .const import (
    DEFAULT_PORT,
    DISCOVERY_BUFFER_SIZE,
    MULTICAST_ADDRESS,
    MULTICAST_PORT,
    MULTICAST_TTL,
    PROBE_PROPERTIES,
    SEARCH_MESSAGE,
    TIMEOUT_DISCOVERY,
    TIMEOUT_QUICK_SCAN,
)
from .exceptions import YeelightDiscoveryError, YeelightError
from .models import Fixture
from .protocol import get_prop

_LOGGER = logging.getLogger(__name__)


def _create_socket() -> socket.socket:
    return socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)


def _membership_request() -> bytes:
    return struct.pack("=4sl", socket.inet_aton(MULTICAST_ADDRESS), socket.INADDR_ANY)


def search(timeout: float = TIMEOUT_DISCOVERY) -> list[Fixture]:
    """Search the LAN for fixtures, blocking for up to timeout seconds.

    Advertisements are deduplicated by fixture id; the last one received
    wins. The socket leaves the multicast group and is closed on every
    exit path.

    Raises:
        YeelightDiscoveryError: The socket could not be created, bound,
            joined to the group, or used to send the search.
    """
    try:
        sock = _create_socket()
    except OSError as err:
        raise YeelightDiscoveryError(f"Socket creation failed: {err}") from err

    mreq = _membership_request()
    joined = False
    found: dict[str, Fixture] = {}

    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if hasattr(socket, "SO_REUSEPORT"):
            try:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            except OSError:
                _LOGGER.debug("SO_REUSEPORT not supported")

        try:
            sock.bind(("", MULTICAST_PORT))
        except OSError as err:
            raise YeelightDiscoveryError(f"Failed to bind to port {MULTICAST_PORT}: {err}") from err

        try:
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
        except OSError as err:
            raise YeelightDiscoveryError(f"Failed to join {MULTICAST_ADDRESS}: {err}") from err
        joined = True

        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, MULTICAST_TTL)

        try:
            sock.sendto(SEARCH_MESSAGE.encode("utf-8"), (MULTICAST_ADDRESS, MULTICAST_PORT))
        except OSError as err:
            raise YeelightDiscoveryError(f"Failed to send search: {err}") from err
        _LOGGER.debug("Sent search to %s:%d", MULTICAST_ADDRESS, MULTICAST_PORT)

        end_time = time.monotonic() + timeout
        while (remaining := end_time - time.monotonic()) > 0:
            sock.settimeout(remaining)
            try:
                data, _ = sock.recvfrom(DISCOVERY_BUFFER_SIZE)
            except TimeoutError:
                break
            except OSError as err:
                _LOGGER.debug("Socket error during discovery: %s", err)
                break

            fixture = Fixture.from_discovery_response(data.decode("utf-8", errors="replace"))
            if fixture is None:
                # Our own search echoed back, or an unrelated SSDP packet
                continue
            if fixture.id not in found:
                _LOGGER.info(
                    "Discovered Yeelight %s (%s) at %s",
                    fixture.model or "unknown",
                    fixture.id,
                    fixture.endpoint,
                )
            found[fixture.id] = fixture
    finally:
        if joined:
            try:
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_DROP_MEMBERSHIP, mreq)
            except OSError as err:
                _LOGGER.debug("Failed to leave multicast group: %s", err)
        sock.close()

    return list(found.values())


async def async_search(timeout: float = TIMEOUT_DISCOVERY) -> list[Fixture]:
    """Run search() in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, search, timeout)


async def async_quick_scan() -> list[Fixture]:
    """Short background search that never raises."""
    try:
        return await async_search(TIMEOUT_QUICK_SCAN)
    except YeelightDiscoveryError as err:
        _LOGGER.debug("Quick scan failed: %s", err)
        return []


async def async_probe(ip_address: str, port: int = DEFAULT_PORT) -> Fixture:
    """Connect to an address directly and build a Fixture from its properties.

    The probe session is always closed before returning.

    Raises:
        YeelightError: The connection or the property query failed.
    """
    placeholder = Fixture(
        id=f"manual_{ip_address}",
        model="unknown",
        ip_address=ip_address,
        port=port,
        name="Manual Device",
    )
    connection = YeelightConnection()
    try:
        await connection.connect(placeholder)
        result = await connection.send_command(get_prop(PROBE_PROPERTIES))
    finally:
        connection.disconnect()

    props = result.as_properties(PROBE_PROPERTIES)
    if not props:
        raise YeelightError(f"No properties returned by {ip_address}")

    return Fixture(
        id=f"yeelight_{ip_address.replace('.', '_')}",
        model=str(props.get("model") or "unknown"),
        ip_address=ip_address,
        port=port,
        name=str(props.get("name") or f"Yeelight ({ip_address})"),
        firmware_version=str(props.get("fw_ver") or ""),
    )

