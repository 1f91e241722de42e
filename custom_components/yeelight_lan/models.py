"""Data models for Yeelight LAN fixtures, state, profiles and schedules."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, time, timedelta
from enum import IntEnum
from typing import Any
from urllib.parse import urlsplit

import voluptuous as vol

from .const import (
    DEFAULT_PORT,
    MAX_BRIGHTNESS,
    MAX_COLOR_TEMP_KELVIN,
    MAX_RGB,
    MIN_COLOR_TEMP_KELVIN,
    MIN_RGB,
)
from .protocol import coerce_int


@dataclass(frozen=True)
class Fixture:
    """A controllable light on the LAN.

    Equality and hashing use the identifier only, so a fixture that
    reappears at a new address is still the same fixture.
    """

    id: str
    model: str = field(default="", compare=False)
    ip_address: str = field(default="", compare=False)
    port: int = field(default=DEFAULT_PORT, compare=False)
    name: str = field(default="Yeelight", compare=False)
    firmware_version: str = field(default="", compare=False)
    supported_methods: tuple[str, ...] = field(default=(), compare=False)

    @property
    def endpoint(self) -> str:
        """Return host:port."""
        return f"{self.ip_address}:{self.port}"

    def supports(self, method: str) -> bool:
        """Return True if the fixture advertised method (or advertised nothing)."""
        return not self.supported_methods or method in self.supported_methods

    def with_address(self, ip_address: str, port: int | None = None, name: str | None = None) -> Fixture:
        """Return a copy at a new address."""
        return replace(
            self,
            ip_address=ip_address,
            port=self.port if port is None else port,
            name=name or self.name,
        )

    @classmethod
    def from_discovery_response(cls, response: str) -> Fixture | None:
        """Parse a multicast advertisement; None if id or address is missing."""
        values: dict[str, str] = {}
        for line in response.split("\r\n"):
            key, sep, value = line.partition(":")
            if not sep:
                continue
            values[key.strip().lower()] = value.strip()

        fixture_id = values.get("id", "")
        location = values.get("location", "")
        try:
            parsed = urlsplit(location)
            host = parsed.hostname or ""
            port = parsed.port or DEFAULT_PORT
        except ValueError:
            return None

        if not fixture_id or not host:
            return None

        support = values.get("support", "")
        return cls(
            id=fixture_id,
            model=values.get("model", ""),
            ip_address=host,
            port=port,
            name=values.get("name") or "Yeelight",
            firmware_version=values.get("fw_ver", ""),
            supported_methods=tuple(support.split()),
        )

    def as_dict(self) -> dict[str, Any]:
        """Return a plain record."""
        record = asdict(self)
        record["supported_methods"] = list(self.supported_methods)
        return record

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Fixture:
        """Build from a plain record."""
        return cls(
            id=data["id"],
            model=data.get("model", ""),
            ip_address=data.get("ip_address", ""),
            port=data.get("port", DEFAULT_PORT),
            name=data.get("name", "Yeelight"),
            firmware_version=data.get("firmware_version", ""),
            supported_methods=tuple(data.get("supported_methods", ())),
        )


def rgb_to_int(red: int, green: int, blue: int) -> int:
    """Pack 8-bit channels into a single integer."""
    return ((red & 0xFF) << 16) | ((green & 0xFF) << 8) | (blue & 0xFF)


def int_to_rgb(value: int) -> tuple[int, int, int]:
    """Unpack a single integer into 8-bit channels."""
    return (value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF


@dataclass
class DeviceState:
    """Current state of both channels of a fixture."""

    main_power: bool = False
    main_brightness: int = 80
    color_temperature: int = 4500
    bg_power: bool = False
    bg_brightness: int = 50
    bg_rgb: int = 0xFF6B00
    timer_minutes_remaining: int | None = None

    @property
    def bg_color(self) -> tuple[int, int, int]:
        """Return the ambient colour as (r, g, b)."""
        return int_to_rgb(self.bg_rgb)

    def apply_properties(self, props: dict[str, Any]) -> set[str]:
        """Merge protocol properties; unknown or unparsable values are ignored.

        Returns the names of the properties that were applied.
        """
        applied: set[str] = set()

        for key, attr in (("power", "main_power"), ("bg_power", "bg_power")):
            value = props.get(key)
            if value in ("on", "off"):
                setattr(self, attr, value == "on")
                applied.add(key)

        for key, attr in (
            ("bright", "main_brightness"),
            ("ct", "color_temperature"),
            ("bg_bright", "bg_brightness"),
            ("bg_rgb", "bg_rgb"),
        ):
            if key not in props:
                continue
            value = coerce_int(props[key])
            if value is not None:
                setattr(self, attr, value)
                applied.add(key)

        return applied

    @classmethod
    def from_properties(cls, props: dict[str, Any]) -> DeviceState:
        """Build a state from a get_prop result."""
        state = cls()
        state.apply_properties(props)
        return state


@dataclass(frozen=True)
class Profile:
    """A named bundle of settings for both channels (a "mode")."""

    id: str
    name: str
    icon: str = "mdi:lightbulb"
    description: str = ""
    main_power: bool = True
    main_brightness: int = 80
    color_temperature: int = 4500
    bg_power: bool = False
    bg_brightness: int = 50
    bg_rgb: int = 0xFFFFFF
    is_favorite: bool = False
    is_built_in: bool = False

    @classmethod
    def from_state(cls, state: DeviceState, name: str, icon: str = "mdi:lightbulb", description: str = "") -> Profile:
        """Capture the current state as a new profile."""
        return cls(
            id=str(uuid.uuid4()),
            name=name,
            icon=icon,
            description=description,
            main_power=state.main_power,
            main_brightness=state.main_brightness,
            color_temperature=state.color_temperature,
            bg_power=state.bg_power,
            bg_brightness=state.bg_brightness,
            bg_rgb=state.bg_rgb,
        )

    def as_dict(self) -> dict[str, Any]:
        """Return a plain record."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Profile:
        """Build from a validated plain record."""
        return cls(**PROFILE_SCHEMA(data))


class Weekday(IntEnum):
    """Day of week, numbered like datetime.weekday()."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @property
    def short_name(self) -> str:
        """Return the three-letter lowercase name used in records."""
        return self.name[:3].lower()

    @classmethod
    def from_short_name(cls, value: str) -> Weekday:
        """Parse a three-letter name."""
        for day in cls:
            if day.short_name == value.lower()[:3]:
                return day
        raise ValueError(f"Unknown weekday: {value}")


ALL_DAYS = frozenset(Weekday)
WORKDAYS = frozenset(Weekday) - {Weekday.SATURDAY, Weekday.SUNDAY}


def _minute_of_day(hour: int, minute: int) -> int:
    return hour * 60 + minute


@dataclass(frozen=True)
class ScheduleRule:
    """Time window on a set of weekdays that names a profile to apply.

    An end time earlier than the start time is an overnight window.
    Without an end time the rule stays active from its start until
    midnight.
    """

    id: str
    name: str
    profile_id: str
    start_hour: int
    start_minute: int = 0
    end_hour: int | None = None
    end_minute: int | None = None
    days: frozenset[Weekday] = ALL_DAYS
    icon: str = "mdi:clock-outline"
    enabled: bool = True

    @property
    def has_end(self) -> bool:
        """Return True if the rule has an end time."""
        return self.end_hour is not None and self.end_minute is not None

    @property
    def is_overnight(self) -> bool:
        """Return True if the window wraps past midnight."""
        return self.has_end and self._end_minutes() < self._start_minutes()

    @property
    def start_time(self) -> time:
        """Return the start as a time."""
        return time(self.start_hour, self.start_minute)

    @property
    def end_time(self) -> time | None:
        """Return the end as a time, if any."""
        if not self.has_end:
            return None
        return time(self.end_hour, self.end_minute)

    def _start_minutes(self) -> int:
        return _minute_of_day(self.start_hour, self.start_minute)

    def _end_minutes(self) -> int:
        return _minute_of_day(self.end_hour or 0, self.end_minute or 0)

    def is_active(self, now: datetime) -> bool:
        """Return True if now falls inside the window on an applicable day."""
        if not self.enabled or Weekday(now.weekday()) not in self.days:
            return False

        current = _minute_of_day(now.hour, now.minute)
        start = self._start_minutes()
        if not self.has_end:
            return current >= start

        end = self._end_minutes()
        if end > start:
            return start <= current < end
        return current >= start or current < end

    def should_trigger(self, now: datetime) -> bool:
        """Return True if now is exactly the start minute on an applicable day."""
        return (
            self.enabled
            and Weekday(now.weekday()) in self.days
            and now.hour == self.start_hour
            and now.minute == self.start_minute
        )

    def next_trigger(self, now: datetime) -> datetime | None:
        """Return the first start strictly after now within the next week."""
        if not self.enabled:
            return None

        for offset in range(8):
            candidate = now + timedelta(days=offset)
            if Weekday(candidate.weekday()) not in self.days:
                continue
            trigger = candidate.replace(
                hour=self.start_hour, minute=self.start_minute, second=0, microsecond=0
            )
            if trigger > now:
                return trigger
        return None

    def as_dict(self) -> dict[str, Any]:
        """Return a plain record."""
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "start_hour": self.start_hour,
            "start_minute": self.start_minute,
            "end_hour": self.end_hour,
            "end_minute": self.end_minute,
            "days": [day.short_name for day in sorted(self.days)],
            "profile_id": self.profile_id,
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScheduleRule:
        """Build from a plain record, validating it first."""
        record = SCHEDULE_SCHEMA(data)
        record["days"] = frozenset(Weekday.from_short_name(day) for day in record["days"])
        return cls(**record)


def _weekday_name(value: Any) -> str:
    if isinstance(value, int):
        return Weekday(value).short_name
    return Weekday.from_short_name(str(value)).short_name


_HOUR = vol.All(vol.Coerce(int), vol.Range(min=0, max=23))
_MINUTE = vol.All(vol.Coerce(int), vol.Range(min=0, max=59))
_LEVEL = vol.All(vol.Coerce(int), vol.Range(min=0, max=MAX_BRIGHTNESS))

SCHEDULE_SCHEMA = vol.Schema(
    {
        vol.Required("id"): str,
        vol.Required("name"): str,
        vol.Optional("icon", default="mdi:clock-outline"): str,
        vol.Required("start_hour"): _HOUR,
        vol.Optional("start_minute", default=0): _MINUTE,
        vol.Optional("end_hour", default=None): vol.Any(None, _HOUR),
        vol.Optional("end_minute", default=None): vol.Any(None, _MINUTE),
        vol.Optional("days", default=[day.short_name for day in Weekday]): [
            vol.All(_weekday_name)
        ],
        vol.Required("profile_id"): str,
        vol.Optional("enabled", default=True): bool,
    }
)

PROFILE_SCHEMA = vol.Schema(
    {
        vol.Required("id"): str,
        vol.Required("name"): str,
        vol.Optional("icon", default="mdi:lightbulb"): str,
        vol.Optional("description", default=""): str,
        vol.Optional("main_power", default=True): bool,
        vol.Optional("main_brightness", default=80): _LEVEL,
        vol.Optional("color_temperature", default=4500): vol.All(
            vol.Coerce(int),
            vol.Range(min=MIN_COLOR_TEMP_KELVIN, max=MAX_COLOR_TEMP_KELVIN),
        ),
        vol.Optional("bg_power", default=False): bool,
        vol.Optional("bg_brightness", default=50): _LEVEL,
        vol.Optional("bg_rgb", default=0xFFFFFF): vol.All(
            vol.Coerce(int), vol.Range(min=MIN_RGB, max=MAX_RGB)
        ),
        vol.Optional("is_favorite", default=False): bool,
        vol.Optional("is_built_in", default=False): bool,
    }
)


DEFAULT_PROFILES: list[Profile] = [
    Profile(
        id="00000001-0000-0000-0000-000000000001",
        name="Work",
        icon="mdi:briefcase",
        description="Maximum brightness with cool white light for focused work",
        main_brightness=100,
        color_temperature=5500,
        bg_brightness=0,
        is_favorite=True,
        is_built_in=True,
    ),
    Profile(
        id="00000002-0000-0000-0000-000000000002",
        name="Cinema",
        icon="mdi:filmstrip",
        description="Low warm light with blue ambient glow for watching movies",
        main_brightness=20,
        color_temperature=2700,
        bg_power=True,
        bg_brightness=30,
        bg_rgb=0x0066FF,
        is_favorite=True,
        is_built_in=True,
    ),
    Profile(
        id="00000003-0000-0000-0000-000000000003",
        name="Relax",
        icon="mdi:weather-night",
        description="Soft warm lighting with orange ambient for evening relaxation",
        main_brightness=50,
        color_temperature=3500,
        bg_power=True,
        bg_brightness=20,
        bg_rgb=0xFF8C00,
        is_favorite=True,
        is_built_in=True,
    ),
    Profile(
        id="00000004-0000-0000-0000-000000000004",
        name="Sleep",
        icon="mdi:bed",
        description="Very dim warm light to prepare your eyes for sleep",
        main_brightness=30,
        color_temperature=2700,
        bg_brightness=0,
        is_favorite=True,
        is_built_in=True,
    ),
    Profile(
        id="00000005-0000-0000-0000-000000000005",
        name="Gaming",
        icon="mdi:gamepad-variant",
        description="Balanced lighting with purple ambient for gaming sessions",
        main_brightness=60,
        color_temperature=4000,
        bg_power=True,
        bg_brightness=50,
        bg_rgb=0x9932CC,
        is_built_in=True,
    ),
    Profile(
        id="00000006-0000-0000-0000-000000000006",
        name="Reading",
        icon="mdi:book-open-variant",
        description="Bright neutral light for reading books and documents",
        main_brightness=80,
        color_temperature=4500,
        bg_brightness=0,
        is_built_in=True,
    ),
    Profile(
        id="00000007-0000-0000-0000-000000000007",
        name="Meeting",
        icon="mdi:account-multiple",
        description="High brightness daylight for video conferences and calls",
        main_brightness=90,
        color_temperature=5000,
        bg_brightness=0,
        is_built_in=True,
    ),
    Profile(
        id="00000008-0000-0000-0000-000000000008",
        name="Present",
        icon="mdi:television",
        description="Maximum cool light for screen sharing and presentations",
        main_brightness=100,
        color_temperature=6000,
        bg_brightness=0,
        is_built_in=True,
    ),
    Profile(
        id="00000009-0000-0000-0000-000000000009",
        name="Meditate",
        icon="mdi:leaf",
        description="Very dim warm light with soft orange glow for meditation",
        main_brightness=15,
        color_temperature=2700,
        bg_power=True,
        bg_brightness=10,
        bg_rgb=0xFF6B35,
        is_built_in=True,
    ),
]

DEFAULT_SCHEDULES: list[ScheduleRule] = [
    ScheduleRule(
        id="10000001-0000-0000-0000-000000000001",
        name="Morning",
        icon="mdi:weather-sunset-up",
        start_hour=8,
        end_hour=18,
        end_minute=0,
        days=WORKDAYS,
        profile_id="00000001-0000-0000-0000-000000000001",
        enabled=False,
    ),
    ScheduleRule(
        id="10000002-0000-0000-0000-000000000002",
        name="Evening",
        icon="mdi:weather-sunset-down",
        start_hour=18,
        end_hour=22,
        end_minute=0,
        profile_id="00000003-0000-0000-0000-000000000003",
        enabled=False,
    ),
    ScheduleRule(
        id="10000003-0000-0000-0000-000000000003",
        name="Night",
        icon="mdi:weather-night",
        start_hour=22,
        end_hour=8,
        end_minute=0,
        profile_id="00000004-0000-0000-0000-000000000004",
        enabled=False,
    ),
]
