"""Device-level API for a Yeelight LAN fixture."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from . import protocol
from .connection import YeelightConnection
from .const import COMMAND_COOLDOWN, STATE_PROPERTIES
from .models import DeviceState, Fixture, Profile, rgb_to_int
from .protocol import Command, Notification, Result

_LOGGER = logging.getLogger(__name__)

StateListener = Callable[[DeviceState], None]


class YeelightLanApi:
    """API for controlling one Yeelight fixture over LAN.

    Successful commands are applied to the local state right away.
    Notifications echoing a property that a local command changed less
    than COMMAND_COOLDOWN seconds ago are ignored so the optimistic value
    does not flicker back.
    """

    def __init__(
        self,
        fixture: Fixture,
        connection: YeelightConnection | None = None,
        cooldown: float = COMMAND_COOLDOWN,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the API.

        Args:
            fixture: The fixture to control.
            connection: Session to use; a new one is created if omitted.
            cooldown: Seconds during which echoes of local commands are ignored.
            clock: Monotonic time source.
        """
        self._fixture = fixture
        self._connection = connection or YeelightConnection()
        self._cooldown = cooldown
        self._clock = clock
        self._state: DeviceState | None = None
        self._last_command: dict[str, float] = {}
        self._listeners: list[StateListener] = []

        self._connection.set_notification_handler(self.handle_notification)

    @property
    def fixture(self) -> Fixture:
        """Return the controlled fixture."""
        return self._fixture

    @property
    def host(self) -> str:
        """Return the fixture IP address."""
        return self._fixture.ip_address

    @property
    def connection(self) -> YeelightConnection:
        """Return the underlying session."""
        return self._connection

    @property
    def connected(self) -> bool:
        """Return True if the session is open."""
        return self._connection.connected

    @property
    def state(self) -> DeviceState | None:
        """Return the last known state, None before the first refresh."""
        return self._state

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Subscribe to state changes caused by notifications."""
        self._listeners.append(listener)

        def remove_listener() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove_listener

    async def async_connect(self, fixture: Fixture | None = None) -> None:
        """Open the session, optionally to a new address of the fixture."""
        if fixture is not None:
            self._fixture = fixture
        self._last_command.clear()
        await self._connection.connect(self._fixture)
        if self._state is None:
            self._state = DeviceState()

    def disconnect(self) -> None:
        """Close the session and forget the state."""
        self._connection.disconnect()
        self._state = None
        self._last_command.clear()

    def _in_cooldown(self, prop: str | None = None) -> bool:
        now = self._clock()
        if prop is None:
            return any(now - sent < self._cooldown for sent in self._last_command.values())
        sent = self._last_command.get(prop)
        return sent is not None and now - sent < self._cooldown

    async def _send(self, command: Command, *touched: str) -> Result:
        now = self._clock()
        for prop in touched:
            self._last_command[prop] = now
        return await self._connection.send_command(command)

    def _update(self, **changes: Any) -> None:
        if self._state is None:
            self._state = DeviceState()
        for key, value in changes.items():
            setattr(self._state, key, value)

    # Main light

    async def set_main_power(self, on: bool) -> None:
        """Turn the main light on or off."""
        await self._send(protocol.set_power(on), "power")
        self._update(main_power=on)

    async def toggle_main(self) -> None:
        """Toggle the main light."""
        await self._send(protocol.toggle(), "power")
        self._update(main_power=not (self._state and self._state.main_power))

    async def set_main_brightness(self, value: int) -> None:
        """Set the main light brightness (1-100)."""
        method, params = protocol.set_bright(value)
        await self._send((method, params), "bright")
        self._update(main_brightness=params[0])

    async def set_color_temperature(self, kelvin: int) -> None:
        """Set the main light colour temperature (2700-6500K)."""
        method, params = protocol.set_ct_abx(kelvin)
        await self._send((method, params), "ct")
        self._update(color_temperature=params[0])

    # Ambient light

    async def set_bg_power(self, on: bool) -> None:
        """Turn the ambient light on or off."""
        await self._send(protocol.bg_set_power(on), "bg_power")
        self._update(bg_power=on)

    async def toggle_bg(self) -> None:
        """Toggle the ambient light."""
        await self._send(protocol.bg_toggle(), "bg_power")
        self._update(bg_power=not (self._state and self._state.bg_power))

    async def set_bg_brightness(self, value: int) -> None:
        """Set the ambient light brightness (1-100)."""
        method, params = protocol.bg_set_bright(value)
        await self._send((method, params), "bg_bright")
        self._update(bg_brightness=params[0])

    async def set_bg_rgb(self, rgb: int) -> None:
        """Set the ambient light colour as a packed integer."""
        method, params = protocol.bg_set_rgb(rgb)
        await self._send((method, params), "bg_rgb")
        self._update(bg_rgb=params[0])

    async def set_bg_color(self, red: int, green: int, blue: int) -> None:
        """Set the ambient light colour from 8-bit channels."""
        await self.set_bg_rgb(rgb_to_int(red, green, blue))

    # Timer

    async def set_sleep_timer(self, minutes: int) -> None:
        """Turn the fixture off after minutes."""
        await self._send(protocol.cron_add(minutes))
        self._update(timer_minutes_remaining=minutes)

    async def cancel_sleep_timer(self) -> None:
        """Remove the power-off timer."""
        await self._send(protocol.cron_del())
        self._update(timer_minutes_remaining=None)

    async def get_sleep_timer(self) -> int | None:
        """Return minutes left on the power-off timer, None if unset."""
        result = await self._send(protocol.cron_get())
        minutes = None
        for entry in result.result or []:
            if isinstance(entry, dict) and entry.get("type") == 0:
                minutes = protocol.coerce_int(entry.get("delay"))
                break
        self._update(timer_minutes_remaining=minutes)
        return minutes

    # Utilities

    async def refresh_state(self) -> DeviceState | None:
        """Query the fixture for its state.

        Skipped while a local command is inside its cooldown, since the
        fixture may still report the value from before the command.
        """
        if self._in_cooldown():
            _LOGGER.debug("Skipping refresh of %s during command cooldown", self.host)
            return self._state

        result = await self._send(protocol.get_prop(STATE_PROPERTIES))
        props = result.as_properties(STATE_PROPERTIES)
        if self._state is None:
            self._state = DeviceState.from_properties(props)
        else:
            self._state.apply_properties(props)
        return self._state

    async def save_as_default(self) -> None:
        """Store the current state as the power-on default."""
        await self._send(protocol.set_default())

    async def set_name(self, name: str) -> None:
        """Rename the fixture."""
        await self._send(protocol.set_name(name))
        self._fixture = self._fixture.with_address(self._fixture.ip_address, name=name)

    async def apply_profile(self, profile: Profile) -> None:
        """Apply both channels of a profile."""
        _LOGGER.debug("Applying profile %s to %s", profile.name, self.host)
        await self.set_main_power(profile.main_power)
        if profile.main_power:
            await self.set_main_brightness(profile.main_brightness)
            await self.set_color_temperature(profile.color_temperature)

        await self.set_bg_power(profile.bg_power)
        if profile.bg_power:
            await self.set_bg_brightness(profile.bg_brightness)
            await self.set_bg_rgb(profile.bg_rgb)

    async def turn_off_all(self) -> None:
        """Turn off both channels."""
        await self.set_main_power(False)
        await self.set_bg_power(False)

    def handle_notification(self, notification: Notification) -> None:
        """Merge a property notification into the local state."""
        if notification.method != "props" or self._state is None:
            return

        props = {
            key: value
            for key, value in notification.params.items()
            if not self._in_cooldown(key)
        }
        if len(props) < len(notification.params):
            _LOGGER.debug(
                "Ignoring echoed properties from %s: %s",
                self.host,
                sorted(set(notification.params) - set(props)),
            )
        if not props or not self._state.apply_properties(props):
            return

        for listener in list(self._listeners):
            listener(self._state)
