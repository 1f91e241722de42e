"""Shared fixtures: an in-process TCP emulator of a Yeelight fixture."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

import pytest
import pytest_asyncio

from custom_components.yeelight_lan.models import Fixture

Responder = Callable[[dict[str, Any]], "list[dict[str, Any] | bytes] | None"]


def ok(request: dict[str, Any], *values: Any) -> dict[str, Any]:
    """Build a success reply for request."""
    return {"id": request["id"], "result": list(values) or ["ok"]}


class FakeFixtureServer:
    """Speaks the line protocol on 127.0.0.1.

    By default every request is answered with ["ok"]. Tests replace
    `responder` to return custom replies, or None to stay silent.
    """

    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []
        self.responder: Responder = lambda request: [ok(request)]
        self.connections = 0
        self._server: asyncio.Server | None = None
        self._writers: list[asyncio.StreamWriter] = []
        self.port = 0

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        self.drop_clients()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    @property
    def fixture(self) -> Fixture:
        return Fixture(id="0x0000000012345678", model="lamp15", ip_address="127.0.0.1", port=self.port)

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.connections += 1
        self._writers.append(writer)
        try:
            while line := await reader.readline():
                request = json.loads(line)
                self.requests.append(request)
                for reply in self.responder(request) or []:
                    self.write(reply, writer)
                await writer.drain()
        except (ConnectionError, asyncio.IncompleteReadError):
            pass
        finally:
            writer.close()

    def write(self, message: dict[str, Any] | bytes, writer: asyncio.StreamWriter | None = None) -> None:
        """Write a message (or raw bytes) to a client, the latest by default."""
        writer = writer or self._writers[-1]
        if isinstance(message, bytes):
            writer.write(message)
        else:
            writer.write(json.dumps(message).encode() + b"\r\n")

    def notify(self, **params: Any) -> None:
        """Push a props notification to the latest client."""
        self.write({"method": "props", "params": params})

    def drop_clients(self) -> None:
        """Close every client socket from the fixture side."""
        for writer in self._writers:
            writer.close()
        self._writers.clear()

    async def wait_for_requests(self, count: int, timeout: float = 2.0) -> None:
        async def _wait() -> None:
            while len(self.requests) < count:
                await asyncio.sleep(0.01)

        await asyncio.wait_for(_wait(), timeout)


@pytest_asyncio.fixture
async def fake_server():
    """Running fixture emulator."""
    server = FakeFixtureServer()
    await server.start()
    yield server
    await server.stop()


@pytest.fixture
def fixture_record() -> Fixture:
    """Fixture pointing at an address nothing listens on."""
    return Fixture(id="0x00000000abcdef01", model="lamp15", ip_address="192.168.1.50", port=55443)
