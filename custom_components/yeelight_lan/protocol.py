"""Line-delimited JSON command protocol for Yeelight LAN control."""

from __future__ import annotations

import itertools
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from .const import (
    CRON_POWER_OFF,
    DEFAULT_DURATION,
    EFFECT_SMOOTH,
    LINE_TERMINATOR,
    MAX_BRIGHTNESS,
    MAX_COLOR_TEMP_KELVIN,
    MAX_RGB,
    MIN_BRIGHTNESS,
    MIN_COLOR_TEMP_KELVIN,
    MIN_RGB,
    STATE_PROPERTIES,
)

_LOGGER = logging.getLogger(__name__)

Command = tuple[str, list[Any]]


@dataclass(frozen=True)
class Request:
    """A request ready to be written to the wire."""

    id: int
    method: str
    params: list[Any] = field(default_factory=list)

    @property
    def line(self) -> bytes:
        """Return the encoded request including the line terminator."""
        payload = {"id": self.id, "method": self.method, "params": self.params}
        return json.dumps(payload, separators=(",", ":")).encode("utf-8") + LINE_TERMINATOR


@dataclass(frozen=True)
class Result:
    """Reply to a request, correlated by id."""

    id: int
    result: list[Any] | None = None
    error_code: int | None = None
    error_message: str | None = None

    @property
    def is_error(self) -> bool:
        """Return True if the fixture rejected the request."""
        return self.error_code is not None or self.error_message is not None

    def as_properties(self, names: list[str]) -> dict[str, Any]:
        """Zip a get_prop result with the requested property names."""
        if not self.result:
            return {}
        return dict(zip(names, self.result))


@dataclass(frozen=True)
class Notification:
    """Unsolicited property change report."""

    method: str
    params: dict[str, Any] = field(default_factory=dict)


class CommandCodec:
    """Encode requests with per-instance monotonic ids."""

    def __init__(self, start: int = 1) -> None:
        """Initialize the codec."""
        self._ids = itertools.count(start)

    def encode(self, method: str, params: list[Any] | None = None) -> Request:
        """Assign the next id and build a request."""
        return Request(next(self._ids), method, list(params or []))


def decode(line: bytes | str) -> Result | Notification | None:
    """Decode one protocol line.

    Returns None for anything that is not a well-formed result or
    notification; callers drop those lines and keep the session open.
    """
    try:
        if isinstance(line, bytes):
            line = line.decode("utf-8")
        message = json.loads(line)
    except (UnicodeDecodeError, json.JSONDecodeError):
        _LOGGER.debug("Dropping malformed line: %r", line)
        return None

    if not isinstance(message, dict):
        _LOGGER.debug("Dropping non-object message: %r", message)
        return None

    method = message.get("method")
    if isinstance(method, str):
        params = message.get("params", {})
        if not isinstance(params, dict):
            _LOGGER.debug("Dropping notification with bad params: %r", message)
            return None
        return Notification(method, params)

    request_id = message.get("id")
    if not isinstance(request_id, int) or isinstance(request_id, bool):
        _LOGGER.debug("Dropping message without id: %r", message)
        return None

    if "error" in message:
        error = message["error"]
        if not isinstance(error, dict):
            error = {}
        code = error.get("code", -1)
        return Result(
            request_id,
            error_code=code if isinstance(code, int) else -1,
            error_message=str(error.get("message", "Unknown error")),
        )

    result = message.get("result")
    if not isinstance(result, list):
        _LOGGER.debug("Dropping result without payload: %r", message)
        return None
    return Result(request_id, result=result)


def coerce_int(value: Any) -> int | None:
    """Accept a property value sent either as a number or a numeral string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def clamp(value: int, low: int, high: int) -> int:
    """Clamp value into [low, high]."""
    return max(low, min(high, int(value)))


def _power(on: bool) -> str:
    return "on" if on else "off"


def set_power(on: bool, effect: str = EFFECT_SMOOTH, duration: int = DEFAULT_DURATION) -> Command:
    """Build a main light power command."""
    return "set_power", [_power(on), effect, duration]


def toggle() -> Command:
    """Build a main light toggle command."""
    return "toggle", []


def set_bright(value: int, effect: str = EFFECT_SMOOTH, duration: int = DEFAULT_DURATION) -> Command:
    """Build a main light brightness command, clamped to 1-100."""
    return "set_bright", [clamp(value, MIN_BRIGHTNESS, MAX_BRIGHTNESS), effect, duration]


def set_ct_abx(kelvin: int, effect: str = EFFECT_SMOOTH, duration: int = DEFAULT_DURATION) -> Command:
    """Build a colour temperature command, clamped to 2700-6500K."""
    return "set_ct_abx", [
        clamp(kelvin, MIN_COLOR_TEMP_KELVIN, MAX_COLOR_TEMP_KELVIN),
        effect,
        duration,
    ]


def bg_set_power(on: bool, effect: str = EFFECT_SMOOTH, duration: int = DEFAULT_DURATION) -> Command:
    """Build an ambient light power command."""
    return "bg_set_power", [_power(on), effect, duration]


def bg_toggle() -> Command:
    """Build an ambient light toggle command."""
    return "bg_toggle", []


def bg_set_bright(value: int, effect: str = EFFECT_SMOOTH, duration: int = DEFAULT_DURATION) -> Command:
    """Build an ambient light brightness command, clamped to 1-100."""
    return "bg_set_bright", [clamp(value, MIN_BRIGHTNESS, MAX_BRIGHTNESS), effect, duration]


def bg_set_rgb(rgb: int, effect: str = EFFECT_SMOOTH, duration: int = DEFAULT_DURATION) -> Command:
    """Build an ambient light colour command, clamped to 0-0xFFFFFF."""
    return "bg_set_rgb", [clamp(rgb, MIN_RGB, MAX_RGB), effect, duration]


def cron_add(minutes: int) -> Command:
    """Build a power-off timer command."""
    return "cron_add", [CRON_POWER_OFF, int(minutes)]


def cron_del() -> Command:
    """Build a power-off timer removal command."""
    return "cron_del", [CRON_POWER_OFF]


def cron_get() -> Command:
    """Build a power-off timer query."""
    return "cron_get", [CRON_POWER_OFF]


def get_prop(props: list[str] | None = None) -> Command:
    """Build a property query."""
    return "get_prop", list(props or STATE_PROPERTIES)


def set_default() -> Command:
    """Build a command saving the current state as power-on default."""
    return "set_default", []


def set_name(name: str) -> Command:
    """Build a rename command."""
    return "set_name", [name]
