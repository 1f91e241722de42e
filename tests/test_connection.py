"""Tests for the TCP session: correlation, timeouts, teardown and notifications."""

from __future__ import annotations

import asyncio
import socket

import pytest

from custom_components.yeelight_lan.connection import ConnectionState, YeelightConnection
from custom_components.yeelight_lan.exceptions import (
    YeelightCommandError,
    YeelightConnectionError,
    YeelightConnectionLostError,
    YeelightNotConnectedError,
    YeelightTimeoutError,
)
from custom_components.yeelight_lan.models import Fixture
from custom_components.yeelight_lan.protocol import Notification
from custom_components.yeelight_lan.rate_limiter import RateLimiter

from .conftest import ok


def _unused_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class TestConnect:
    """Tests for opening and closing sessions."""

    @pytest.mark.asyncio
    async def test_connect_and_disconnect(self, fake_server):
        """Test the state machine on a normal session."""
        connection = YeelightConnection()
        assert connection.state is ConnectionState.DISCONNECTED

        await connection.connect(fake_server.fixture)
        assert connection.connected
        assert connection.fixture == fake_server.fixture

        connection.disconnect()
        assert connection.state is ConnectionState.DISCONNECTED
        assert connection.fixture is None

    @pytest.mark.asyncio
    async def test_connect_refused(self):
        """Test a refused connection fails with a connection error."""
        connection = YeelightConnection(connect_timeout=1.0)
        fixture = Fixture(id="x", ip_address="127.0.0.1", port=_unused_port())

        with pytest.raises(YeelightConnectionError):
            await connection.connect(fixture)

        assert connection.state is ConnectionState.FAILED
        assert isinstance(connection.last_error, YeelightConnectionError)

    @pytest.mark.asyncio
    async def test_send_when_disconnected(self):
        """Test sending without a session fails immediately."""
        connection = YeelightConnection()
        with pytest.raises(YeelightNotConnectedError):
            await connection.send("toggle")

    @pytest.mark.asyncio
    async def test_reconnect_is_clean(self, fake_server):
        """Test connecting again replaces the previous session."""
        connection = YeelightConnection()
        await connection.connect(fake_server.fixture)
        await connection.connect(fake_server.fixture)

        result = await connection.send("toggle")
        assert result.result == ["ok"]
        assert fake_server.connections == 2
        assert connection.pending_count == 0
        connection.disconnect()

    @pytest.mark.asyncio
    async def test_overlapping_connects(self, fake_server):
        """Test the earlier of two concurrent connects to one fixture gives way."""
        connection = YeelightConnection()

        results = await asyncio.gather(
            connection.connect(fake_server.fixture),
            connection.connect(fake_server.fixture),
            return_exceptions=True,
        )

        assert isinstance(results[0], YeelightConnectionLostError)
        assert results[1] is None
        assert connection.connected
        result = await connection.send("toggle")
        assert result.result == ["ok"]
        connection.disconnect()

    @pytest.mark.asyncio
    async def test_rate_limit_survives_reconnect(self, fake_server):
        """Test a reconnect does not hand out a fresh request budget."""
        limiter = RateLimiter(max_requests=2, window=60.0)
        connection = YeelightConnection(rate_limiter=limiter)
        await connection.connect(fake_server.fixture)
        await connection.send("toggle")
        await connection.send("toggle")

        await connection.connect(fake_server.fixture)

        with pytest.raises(TimeoutError):
            await asyncio.wait_for(connection.send("toggle"), 0.2)
        assert len(fake_server.requests) == 2
        assert limiter.in_window == 2
        connection.disconnect()


class TestRequests:
    """Tests for request and result correlation."""

    @pytest.mark.asyncio
    async def test_send_returns_result(self, fake_server):
        """Test a simple request round trip."""
        fake_server.responder = lambda request: [ok(request, "on", "80")]
        connection = YeelightConnection()
        await connection.connect(fake_server.fixture)

        result = await connection.send("get_prop", ["power", "bright"])

        assert result.result == ["on", "80"]
        assert fake_server.requests == [
            {"id": 1, "method": "get_prop", "params": ["power", "bright"]}
        ]
        assert connection.pending_count == 0
        connection.disconnect()

    @pytest.mark.asyncio
    async def test_out_of_order_results(self, fake_server):
        """Test results are matched by id, not by arrival order."""
        held: list[dict] = []

        def hold_then_reverse(request):
            held.append(request)
            if len(held) < 3:
                return None
            return [ok(r, r["method"]) for r in reversed(held)]

        fake_server.responder = hold_then_reverse
        connection = YeelightConnection()
        await connection.connect(fake_server.fixture)

        results = await asyncio.gather(
            connection.send("first"),
            connection.send("second"),
            connection.send("third"),
        )

        assert [result.result for result in results] == [["first"], ["second"], ["third"]]
        connection.disconnect()

    @pytest.mark.asyncio
    async def test_error_result(self, fake_server):
        """Test an error object raises a command error."""
        fake_server.responder = lambda request: [
            {"id": request["id"], "error": {"code": -1, "message": "method not supported"}}
        ]
        connection = YeelightConnection()
        await connection.connect(fake_server.fixture)

        with pytest.raises(YeelightCommandError) as err:
            await connection.send("bg_toggle")

        assert err.value.code == -1
        assert err.value.message == "method not supported"
        assert connection.connected
        connection.disconnect()

    @pytest.mark.asyncio
    async def test_timeout(self, fake_server):
        """Test a request without a reply times out and is forgotten."""
        fake_server.responder = lambda request: None
        connection = YeelightConnection(request_timeout=0.1)
        await connection.connect(fake_server.fixture)

        with pytest.raises(YeelightTimeoutError):
            await connection.send("toggle")

        assert connection.pending_count == 0
        assert connection.connected
        connection.disconnect()

    @pytest.mark.asyncio
    async def test_cancelled_during_write_is_forgotten(self, fake_server):
        """Test a caller cancelled while the write buffer drains leaves nothing pending."""
        connection = YeelightConnection(request_timeout=0.1)
        await connection.connect(fake_server.fixture)

        async def slow_drain() -> None:
            await asyncio.sleep(10)

        connection._writer.drain = slow_drain
        task = asyncio.create_task(connection.send("toggle"))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(0.2)

        assert connection.pending_count == 0
        assert connection.connected
        connection.disconnect()

    @pytest.mark.asyncio
    async def test_late_result_is_dropped(self, fake_server):
        """Test a reply after the timeout does not disturb later requests."""
        fake_server.responder = lambda request: None
        connection = YeelightConnection(request_timeout=0.1)
        await connection.connect(fake_server.fixture)

        with pytest.raises(YeelightTimeoutError):
            await connection.send("toggle")

        fake_server.responder = lambda request: [ok(request)]
        fake_server.write({"id": 1, "result": ["late"]})

        result = await connection.send("toggle")
        assert result.id == 2
        assert result.result == ["ok"]
        connection.disconnect()

    @pytest.mark.asyncio
    async def test_disconnect_fails_all_pending(self, fake_server):
        """Test teardown fails every pending request exactly once."""
        fake_server.responder = lambda request: None
        connection = YeelightConnection()
        await connection.connect(fake_server.fixture)

        tasks = [asyncio.create_task(connection.send("toggle")) for _ in range(3)]
        await fake_server.wait_for_requests(3)
        assert connection.pending_count == 3

        connection.disconnect()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert all(isinstance(result, YeelightConnectionLostError) for result in results)
        assert connection.pending_count == 0

    @pytest.mark.asyncio
    async def test_remote_close_fails_pending(self, fake_server):
        """Test the fixture closing the socket fails pending requests."""
        fake_server.responder = lambda request: None
        disconnects: list[bool] = []
        connection = YeelightConnection()
        connection.set_disconnect_handler(lambda: disconnects.append(True))
        await connection.connect(fake_server.fixture)

        task = asyncio.create_task(connection.send("toggle"))
        await fake_server.wait_for_requests(1)
        fake_server.drop_clients()

        with pytest.raises(YeelightConnectionLostError):
            await task
        assert connection.state is ConnectionState.DISCONNECTED
        assert disconnects == [True]


class TestReceive:
    """Tests for line framing and notification routing."""

    @pytest.mark.asyncio
    async def test_notification_routed(self, fake_server):
        """Test notifications reach the handler."""
        received: asyncio.Queue[Notification] = asyncio.Queue()
        connection = YeelightConnection()
        connection.set_notification_handler(received.put_nowait)
        await connection.connect(fake_server.fixture)

        fake_server.notify(power="off", bright="10")
        notification = await asyncio.wait_for(received.get(), 1.0)

        assert notification == Notification("props", {"power": "off", "bright": "10"})
        connection.disconnect()

    @pytest.mark.asyncio
    async def test_malformed_line_ignored(self, fake_server):
        """Test garbage on the wire is skipped and the session stays open."""

        def garbage_first(request):
            return [b"this is not json\r\n", b"\r\n", ok(request)]

        fake_server.responder = garbage_first
        connection = YeelightConnection()
        await connection.connect(fake_server.fixture)

        result = await connection.send("toggle")
        assert result.result == ["ok"]
        assert connection.connected
        connection.disconnect()

    @pytest.mark.asyncio
    async def test_split_and_coalesced_lines(self, fake_server):
        """Test lines split over reads or sharing one read are framed."""

        def split(request):
            first = f'{{"id":{request["id"]},"res'.encode()
            rest = b'ult":["ok"]}\r\n{"method":"props","params":{"ct":"3000"}}\r\n'
            return [first, rest]

        received: list[Notification] = []
        fake_server.responder = split
        connection = YeelightConnection()
        connection.set_notification_handler(received.append)
        await connection.connect(fake_server.fixture)

        result = await connection.send("toggle")
        await asyncio.sleep(0.05)

        assert result.result == ["ok"]
        assert received == [Notification("props", {"ct": "3000"})]
        connection.disconnect()

    @pytest.mark.asyncio
    async def test_handler_error_does_not_close_session(self, fake_server):
        """Test a failing notification handler is contained."""

        def broken(notification):
            raise RuntimeError("boom")

        connection = YeelightConnection()
        connection.set_notification_handler(broken)
        await connection.connect(fake_server.fixture)

        fake_server.notify(power="on")
        result = await connection.send("toggle")

        assert result.result == ["ok"]
        assert connection.connected
        connection.disconnect()
