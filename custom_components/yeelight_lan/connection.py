"""Persistent TCP session to a single Yeelight fixture."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from .const import LINE_TERMINATOR, RECV_BUFFER_SIZE, TIMEOUT_CONNECT, TIMEOUT_REQUEST
from .exceptions import (
    YeelightCommandError,
    YeelightConnectionError,
    YeelightConnectionLostError,
    YeelightError,
    YeelightNotConnectedError,
    YeelightTimeoutError,
)
from .models import Fixture
from .protocol import Command, CommandCodec, Notification, Result, decode
from .rate_limiter import RateLimiter

_LOGGER = logging.getLogger(__name__)

NotificationHandler = Callable[[Notification], None]
DisconnectHandler = Callable[[], None]


class ConnectionState(StrEnum):
    """Lifecycle of a session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class YeelightConnection:
    """One TCP session to one fixture.

    All state is owned by the instance and only touched from the event
    loop it runs on. Each outstanding request is a future in the pending
    table; whichever of result, teardown or timeout pops the entry first
    resolves it, and the others find nothing to do.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter | None = None,
        request_timeout: float = TIMEOUT_REQUEST,
        connect_timeout: float = TIMEOUT_CONNECT,
    ) -> None:
        """Initialize the connection.

        Args:
            rate_limiter: Limiter shared by all requests to the fixture.
            request_timeout: Seconds to wait for a result.
            connect_timeout: Seconds to wait for the TCP handshake.
        """
        self._codec = CommandCodec()
        self._rate_limiter = rate_limiter or RateLimiter()
        self._request_timeout = request_timeout
        self._connect_timeout = connect_timeout

        self._fixture: Fixture | None = None
        self._session: object | None = None
        self._state = ConnectionState.DISCONNECTED
        self._error: Exception | None = None
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._receive_task: asyncio.Task[None] | None = None
        self._buffer = bytearray()
        self._pending: dict[int, asyncio.Future[Result]] = {}

        self._notification_handler: NotificationHandler | None = None
        self._disconnect_handler: DisconnectHandler | None = None

    @property
    def state(self) -> ConnectionState:
        """Return the session state."""
        return self._state

    @property
    def connected(self) -> bool:
        """Return True if requests can be sent."""
        return self._state is ConnectionState.CONNECTED

    @property
    def fixture(self) -> Fixture | None:
        """Return the fixture of the current session."""
        return self._fixture

    @property
    def last_error(self) -> Exception | None:
        """Return the error that put the session in the failed state."""
        return self._error

    @property
    def pending_count(self) -> int:
        """Return the number of unresolved requests."""
        return len(self._pending)

    def set_notification_handler(self, handler: NotificationHandler | None) -> None:
        """Route unsolicited notifications to handler."""
        self._notification_handler = handler

    def set_disconnect_handler(self, handler: DisconnectHandler | None) -> None:
        """Call handler when the fixture closes the session."""
        self._disconnect_handler = handler

    async def connect(self, fixture: Fixture) -> None:
        """Open a fresh session, tearing down any previous one first.

        The rate limiter and its admission window are kept across sessions.
        """
        self.disconnect()

        session = object()
        self._session = session
        self._fixture = fixture
        self._state = ConnectionState.CONNECTING
        self._error = None
        _LOGGER.debug("Connecting to %s", fixture.endpoint)

        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(fixture.ip_address, fixture.port),
                timeout=self._connect_timeout,
            )
        except (OSError, TimeoutError) as err:
            if self._session is not session:
                raise YeelightConnectionLostError(
                    f"Connection to {fixture.endpoint} superseded"
                ) from err
            self._state = ConnectionState.FAILED
            self._error = YeelightConnectionError(
                f"Connection failed to {fixture.endpoint}: {str(err) or type(err).__name__}"
            )
            _LOGGER.debug("%s", self._error)
            raise self._error from err

        if self._session is not session:
            # A newer connect() or disconnect() ran while we were waiting
            writer.close()
            raise YeelightConnectionLostError(f"Connection to {fixture.endpoint} superseded")

        self._reader = reader
        self._writer = writer
        self._state = ConnectionState.CONNECTED
        self._receive_task = asyncio.create_task(
            self._receive_loop(reader), name=f"yeelight_receive_{fixture.id}"
        )
        _LOGGER.debug("Connected to %s", fixture.endpoint)

    def disconnect(self) -> None:
        """Close the session and fail every pending request."""
        self._teardown(YeelightConnectionLostError("Connection lost"))

    def _teardown(self, error: YeelightError) -> None:
        task = self._receive_task
        self._receive_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

        if self._writer is not None:
            self._writer.close()
        self._reader = None
        self._writer = None
        self._buffer.clear()
        self._session = None
        self._fixture = None
        self._state = ConnectionState.DISCONNECTED

        pending = self._pending
        self._pending = {}
        for future in pending.values():
            if not future.done():
                future.set_exception(error)
        if pending:
            _LOGGER.debug("Failed %d pending request(s): %s", len(pending), error)

    async def send(self, method: str, params: list[Any] | None = None) -> Result:
        """Send a request and wait for its result.

        Raises:
            YeelightNotConnectedError: No open session.
            YeelightConnectionError: Writing to the socket failed.
            YeelightConnectionLostError: Session torn down while waiting.
            YeelightTimeoutError: No result within the request timeout.
            YeelightCommandError: The fixture returned an error object.
        """
        if not self.connected:
            raise YeelightNotConnectedError("Not connected to device")

        await self._rate_limiter.admit()

        writer = self._writer
        if not self.connected or writer is None:
            raise YeelightNotConnectedError("Not connected to device")

        loop = asyncio.get_running_loop()
        request = self._codec.encode(method, params)
        future: asyncio.Future[Result] = loop.create_future()
        self._pending[request.id] = future
        timeout_handle = loop.call_later(self._request_timeout, self._expire, request.id)

        _LOGGER.debug("TX %s: %s", self._fixture and self._fixture.endpoint, request.line)
        try:
            try:
                writer.write(request.line)
                await writer.drain()
            except (OSError, RuntimeError) as err:
                self._resolve(request.id, exception=YeelightConnectionError(f"Send failed: {err}"))
            result = await future
        finally:
            timeout_handle.cancel()
            if self._pending.get(request.id) is future:
                del self._pending[request.id]

        if result.is_error:
            raise YeelightCommandError(result.error_code or -1, result.error_message or "Unknown error")
        return result

    async def send_command(self, command: Command) -> Result:
        """Send a (method, params) pair built by the protocol helpers."""
        method, params = command
        return await self.send(method, params)

    def _resolve(
        self,
        request_id: int,
        result: Result | None = None,
        exception: Exception | None = None,
    ) -> bool:
        future = self._pending.pop(request_id, None)
        if future is None or future.done():
            return False
        if exception is not None:
            future.set_exception(exception)
        else:
            future.set_result(result)
        return True

    def _expire(self, request_id: int) -> None:
        if self._resolve(
            request_id,
            exception=YeelightTimeoutError(f"Request {request_id} timed out after {self._request_timeout}s"),
        ):
            _LOGGER.debug("Request %d timed out", request_id)

    async def _receive_loop(self, reader: asyncio.StreamReader) -> None:
        error: Exception | None = None
        try:
            while True:
                data = await reader.read(RECV_BUFFER_SIZE)
                if not data:
                    break
                self._handle_received_data(data)
        except OSError as err:
            error = err

        if self._reader is not reader:
            return

        _LOGGER.debug(
            "Connection to %s closed%s",
            self._fixture and self._fixture.endpoint,
            f": {error}" if error else "",
        )
        self._teardown(YeelightConnectionLostError("Connection lost"))
        if self._disconnect_handler is not None:
            self._disconnect_handler()

    def _handle_received_data(self, data: bytes) -> None:
        self._buffer.extend(data)
        while (index := self._buffer.find(LINE_TERMINATOR)) != -1:
            line = bytes(self._buffer[:index])
            del self._buffer[: index + len(LINE_TERMINATOR)]
            if not line.strip():
                continue
            _LOGGER.debug("RX %s: %s", self._fixture and self._fixture.endpoint, line)
            message = decode(line)
            if message is not None:
                self._dispatch(message)

    def _dispatch(self, message: Result | Notification) -> None:
        if isinstance(message, Notification):
            if self._notification_handler is not None:
                try:
                    self._notification_handler(message)
                except Exception:
                    _LOGGER.exception("Error handling notification %s", message.method)
            return

        if not self._resolve(message.id, result=message):
            _LOGGER.debug("Dropping result for unknown request %d", message.id)
