"""Tests for multicast search and manual probing."""

from __future__ import annotations

import socket
from unittest.mock import patch

import pytest

from custom_components.yeelight_lan import discovery
from custom_components.yeelight_lan.exceptions import YeelightDiscoveryError, YeelightError
from custom_components.yeelight_lan.models import Fixture

from .conftest import ok


def advertisement(fixture_id: str, location: str, name: str = "", model: str = "lamp15") -> bytes:
    return (
        "HTTP/1.1 200 OK\r\n"
        "Cache-Control: max-age=3600\r\n"
        f"Location: {location}\r\n"
        f"id: {fixture_id}\r\n"
        f"model: {model}\r\n"
        "fw_ver: 26\r\n"
        "support: get_prop set_power toggle set_bright bg_set_rgb\r\n"
        f"name: {name}\r\n"
        "\r\n"
    ).encode()


class FakeSocket:
    """Stand-in for the discovery UDP socket."""

    def __init__(self, packets: list[bytes] | None = None, fail_on: str | None = None) -> None:
        self.packets = list(packets or [])
        self.fail_on = fail_on
        self.options: list[tuple[int, int, object]] = []
        self.sent: list[tuple[bytes, tuple[str, int]]] = []
        self.bound: tuple[str, int] | None = None
        self.closed = False

    def _maybe_fail(self, step: str) -> None:
        if self.fail_on == step:
            raise OSError(f"{step} failed")

    def setsockopt(self, level, option, value) -> None:
        if option == socket.IP_ADD_MEMBERSHIP:
            self._maybe_fail("join")
        self.options.append((level, option, value))

    def bind(self, address) -> None:
        self._maybe_fail("bind")
        self.bound = address

    def sendto(self, data, address) -> None:
        self._maybe_fail("send")
        self.sent.append((data, address))

    def settimeout(self, timeout) -> None:
        pass

    def recvfrom(self, size):
        if not self.packets:
            raise TimeoutError
        return self.packets.pop(0), ("192.168.1.50", 1982)

    def close(self) -> None:
        self.closed = True

    def has_option(self, option: int) -> bool:
        return any(opt == option for _, opt, _ in self.options)


class TestAdvertisementParsing:
    """Tests for parsing advertisement headers."""

    def test_parse(self):
        """Test the fields of a full advertisement."""
        fixture = Fixture.from_discovery_response(
            advertisement("0x000000000015243f", "yeelight://192.168.1.50:55443", name="Desk").decode()
        )
        assert fixture.id == "0x000000000015243f"
        assert fixture.ip_address == "192.168.1.50"
        assert fixture.port == 55443
        assert fixture.model == "lamp15"
        assert fixture.name == "Desk"
        assert fixture.firmware_version == "26"
        assert fixture.supports("bg_set_rgb")
        assert not fixture.supports("set_hsv")

    def test_default_name_and_port(self):
        """Test missing name and port fall back to defaults."""
        fixture = Fixture.from_discovery_response(
            advertisement("0x1", "yeelight://10.0.0.7").decode()
        )
        assert fixture.port == 55443
        assert fixture.name == "Yeelight"

    def test_header_case_ignored(self):
        """Test header names are matched case-insensitively."""
        text = "LOCATION: yeelight://10.0.0.8:55443\r\nID: 0x2\r\n"
        fixture = Fixture.from_discovery_response(text)
        assert fixture.id == "0x2"
        assert fixture.ip_address == "10.0.0.8"

    def test_missing_id(self):
        """Test an advertisement without an id is rejected."""
        text = "HTTP/1.1 200 OK\r\nLocation: yeelight://192.168.1.50:55443\r\n\r\n"
        assert Fixture.from_discovery_response(text) is None

    def test_bad_location(self):
        """Test an unparsable location is rejected."""
        assert Fixture.from_discovery_response("id: 0x1\r\nLocation: not a url\r\n") is None
        assert (
            Fixture.from_discovery_response("id: 0x1\r\nLocation: yeelight://1.2.3.4:notaport\r\n")
            is None
        )

    def test_search_echo_ignored(self):
        """Test our own M-SEARCH is not mistaken for a fixture."""
        assert Fixture.from_discovery_response(discovery.SEARCH_MESSAGE) is None


class TestSearch:
    """Tests for the multicast search."""

    def test_search_deduplicates_by_id(self):
        """Test repeated advertisements collapse to one fixture, last wins."""
        sock = FakeSocket(
            [
                advertisement("0x1", "yeelight://192.168.1.50:55443", name="Old"),
                advertisement("0x2", "yeelight://192.168.1.51:55443"),
                b"garbage",
                advertisement("0x1", "yeelight://192.168.1.60:55443", name="New"),
            ]
        )
        with patch.object(discovery, "_create_socket", return_value=sock):
            fixtures = discovery.search(timeout=1.0)

        by_id = {fixture.id: fixture for fixture in fixtures}
        assert set(by_id) == {"0x1", "0x2"}
        assert by_id["0x1"].ip_address == "192.168.1.60"
        assert by_id["0x1"].name == "New"

    def test_search_sends_query_and_cleans_up(self):
        """Test the search message, membership and socket lifecycle."""
        sock = FakeSocket()
        with patch.object(discovery, "_create_socket", return_value=sock):
            assert discovery.search(timeout=0.5) == []

        assert sock.bound == ("", 1982)
        data, address = sock.sent[0]
        assert address == ("239.255.255.250", 1982)
        assert b"M-SEARCH * HTTP/1.1\r\n" in data
        assert b"ST: wifi_bulb\r\n" in data
        assert sock.has_option(socket.IP_ADD_MEMBERSHIP)
        assert sock.has_option(socket.IP_DROP_MEMBERSHIP)
        assert sock.closed

    def test_bind_failure(self):
        """Test a bind error raises and closes the socket without leaving the group."""
        sock = FakeSocket(fail_on="bind")
        with patch.object(discovery, "_create_socket", return_value=sock):
            with pytest.raises(YeelightDiscoveryError):
                discovery.search(timeout=0.5)

        assert sock.closed
        assert not sock.has_option(socket.IP_DROP_MEMBERSHIP)

    def test_send_failure_leaves_group(self):
        """Test a send error after joining still drops membership."""
        sock = FakeSocket(fail_on="send")
        with patch.object(discovery, "_create_socket", return_value=sock):
            with pytest.raises(YeelightDiscoveryError):
                discovery.search(timeout=0.5)

        assert sock.has_option(socket.IP_DROP_MEMBERSHIP)
        assert sock.closed

    def test_join_failure(self):
        """Test failing to join the group raises a discovery error."""
        sock = FakeSocket(fail_on="join")
        with patch.object(discovery, "_create_socket", return_value=sock):
            with pytest.raises(YeelightDiscoveryError):
                discovery.search(timeout=0.5)
        assert sock.closed

    def test_socket_creation_failure(self):
        """Test a socket that cannot be created raises a discovery error."""
        with patch.object(discovery, "_create_socket", side_effect=OSError("no sockets")):
            with pytest.raises(YeelightDiscoveryError):
                discovery.search(timeout=0.5)

    @pytest.mark.asyncio
    async def test_quick_scan_swallows_errors(self):
        """Test the background scan returns nothing on failure."""
        with patch.object(discovery, "_create_socket", side_effect=OSError("no sockets")):
            assert await discovery.async_quick_scan() == []

    @pytest.mark.asyncio
    async def test_async_search(self):
        """Test the executor wrapper returns the parsed fixtures."""
        sock = FakeSocket([advertisement("0x9", "yeelight://192.168.1.9:55443")])
        with patch.object(discovery, "_create_socket", return_value=sock):
            fixtures = await discovery.async_search(timeout=0.5)
        assert [fixture.id for fixture in fixtures] == ["0x9"]


class TestProbe:
    """Tests for probing a manually entered address."""

    @pytest.mark.asyncio
    async def test_probe(self, fake_server):
        """Test a probe builds a fixture from the reported properties."""
        fake_server.responder = lambda request: [ok(request, "ceiling4", "Office", "45")]

        fixture = await discovery.async_probe("127.0.0.1", fake_server.port)

        assert fake_server.requests[0]["method"] == "get_prop"
        assert fake_server.requests[0]["params"] == ["model", "name", "fw_ver"]
        assert fixture.id == "yeelight_127_0_0_1"
        assert fixture.model == "ceiling4"
        assert fixture.name == "Office"
        assert fixture.firmware_version == "45"
        assert fixture.port == fake_server.port

    @pytest.mark.asyncio
    async def test_probe_empty_name(self, fake_server):
        """Test an unnamed fixture gets a name from its address."""
        fake_server.responder = lambda request: [ok(request, "lamp15", "", "26")]

        fixture = await discovery.async_probe("127.0.0.1", fake_server.port)

        assert fixture.name == "Yeelight (127.0.0.1)"

    @pytest.mark.asyncio
    async def test_probe_error_result(self, fake_server):
        """Test a rejected query fails the probe."""
        fake_server.responder = lambda request: [
            {"id": request["id"], "error": {"code": -1, "message": "unsupported"}}
        ]
        with pytest.raises(YeelightError):
            await discovery.async_probe("127.0.0.1", fake_server.port)
