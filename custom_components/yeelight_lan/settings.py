"""Persisted profiles, schedule rules and known fixtures."""

from __future__ import annotations

import logging
from typing import Any

import voluptuous as vol

from homeassistant.core import HomeAssistant
from homeassistant.helpers.storage import Store

from .const import STORAGE_KEY, STORAGE_VERSION
from .models import DEFAULT_PROFILES, DEFAULT_SCHEDULES, Fixture, Profile, ScheduleRule

_LOGGER = logging.getLogger(__name__)


class YeelightSettings:
    """Profiles, schedules and known fixtures stored for one config entry."""

    def __init__(self, hass: HomeAssistant, entry_id: str) -> None:
        """Initialize the settings store."""
        self._store: Store[dict[str, Any]] = Store(
            hass, STORAGE_VERSION, f"{STORAGE_KEY}.{entry_id}"
        )
        self.profiles: list[Profile] = list(DEFAULT_PROFILES)
        self.schedules: list[ScheduleRule] = list(DEFAULT_SCHEDULES)
        self.known_fixtures: dict[str, Fixture] = {}

    async def async_load(self) -> None:
        """Load stored records, falling back to the built-in defaults."""
        data = await self._store.async_load()
        if data is None:
            _LOGGER.debug("No stored settings, using defaults")
            await self.async_save()
            return

        self.profiles = _load_records(data.get("profiles"), Profile.from_dict, "profile") or list(
            DEFAULT_PROFILES
        )
        self.schedules = _load_records(data.get("schedules"), ScheduleRule.from_dict, "schedule")
        self.known_fixtures = {
            fixture.id: fixture
            for fixture in _load_records(data.get("known_fixtures"), Fixture.from_dict, "fixture")
        }

    async def async_save(self) -> None:
        """Write all records."""
        await self._store.async_save(
            {
                "profiles": [profile.as_dict() for profile in self.profiles],
                "schedules": [rule.as_dict() for rule in self.schedules],
                "known_fixtures": [fixture.as_dict() for fixture in self.known_fixtures.values()],
            }
        )

    def get_profile(self, profile_id: str) -> Profile | None:
        """Return the profile with profile_id."""
        return next((profile for profile in self.profiles if profile.id == profile_id), None)

    def find_profile(self, name: str) -> Profile | None:
        """Return the first profile whose name matches, ignoring case."""
        return next(
            (profile for profile in self.profiles if profile.name.lower() == name.lower()),
            None,
        )

    async def async_add_profile(self, profile: Profile) -> None:
        """Append and persist a profile."""
        self.profiles.append(profile)
        await self.async_save()

    async def async_set_schedules(self, rules: list[ScheduleRule]) -> None:
        """Replace and persist the schedule rules."""
        self.schedules = list(rules)
        await self.async_save()

    async def async_remember_fixture(self, fixture: Fixture) -> None:
        """Record a fixture, replacing an older record with the same id."""
        known = self.known_fixtures.get(fixture.id)
        if known is not None and known.endpoint == fixture.endpoint and known.name == fixture.name:
            return
        self.known_fixtures[fixture.id] = fixture
        await self.async_save()


def _load_records(records: Any, factory: Any, kind: str) -> list[Any]:
    loaded = []
    for record in records or []:
        try:
            loaded.append(factory(record))
        except (vol.Invalid, KeyError, TypeError, ValueError) as err:
            _LOGGER.warning("Skipping invalid %s record %s: %s", kind, record, err)
    return loaded
