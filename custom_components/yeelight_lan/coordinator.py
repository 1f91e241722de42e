"""DataUpdateCoordinator for Yeelight LAN."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import CONF_HOST, CONF_PORT
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.event import async_track_time_interval
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed
from homeassistant.util import dt as dt_util

from .api import YeelightLanApi
from .const import DOMAIN, SCHEDULE_INTERVAL
from .discovery import async_quick_scan
from .exceptions import YeelightCommandError, YeelightConnectionLostError, YeelightError
from .models import DeviceState, Profile, ScheduleRule
from .schedule import ScheduleEngine, ScheduleEvent
from .settings import YeelightSettings

_LOGGER = logging.getLogger(__name__)


class YeelightLanCoordinator(DataUpdateCoordinator[DeviceState]):
    """Coordinator for one Yeelight fixture.

    Polls the fixture, pushes notification updates to entities, reconnects
    when the session dropped, and runs the schedule engine.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        entry: ConfigEntry,
        api: YeelightLanApi,
        settings: YeelightSettings,
        scan_interval: int,
        schedules_enabled: bool = True,
    ) -> None:
        """Initialize the coordinator.

        Args:
            hass: Home Assistant instance.
            entry: Config entry of the fixture.
            api: YeelightLanApi instance for the fixture.
            settings: Stored profiles and schedules.
            scan_interval: Polling interval in seconds.
            schedules_enabled: Whether schedule events apply profiles.
        """
        super().__init__(
            hass,
            _LOGGER,
            config_entry=entry,
            name=f"{DOMAIN}_{api.fixture.name}",
            update_interval=timedelta(seconds=scan_interval),
        )
        self.api = api
        self.settings = settings
        self.schedules = ScheduleEngine(settings.schedules)
        self.schedules_enabled = schedules_enabled
        self._unsub_schedule: Callable[[], None] | None = None

        api.add_listener(self._handle_push)
        api.connection.set_disconnect_handler(self._handle_disconnect)
        self.schedules.add_listener(self._handle_schedule_event)

    @property
    def available(self) -> bool:
        """Return if the fixture is reachable."""
        return self.api.connected and self.last_update_success

    async def _async_update_data(self) -> DeviceState:
        """Fetch the state from the fixture, reconnecting first if needed."""
        if not self.api.connected:
            await self._async_reconnect()

        try:
            state = await self.api.refresh_state()
        except YeelightError as err:
            raise UpdateFailed(f"Error refreshing {self.api.host}: {err}") from err

        if state is None:
            raise UpdateFailed(f"No state received from {self.api.host}")

        if state.timer_minutes_remaining is not None:
            try:
                await self.api.get_sleep_timer()
            except YeelightCommandError as err:
                _LOGGER.debug("Could not read sleep timer of %s: %s", self.api.host, err)
        return state

    async def _async_reconnect(self) -> None:
        """Reconnect, following the fixture to a new address if it moved."""
        try:
            await self.api.async_connect()
            return
        except YeelightError as err:
            _LOGGER.debug("Reconnect to %s failed: %s", self.api.fixture.endpoint, err)

        fixture_id = self.api.fixture.id
        moved = next((f for f in await async_quick_scan() if f.id == fixture_id), None)
        if moved is None or moved.endpoint == self.api.fixture.endpoint:
            raise UpdateFailed(f"Cannot connect to {self.api.fixture.endpoint}")

        _LOGGER.info("Yeelight %s moved to %s", fixture_id, moved.endpoint)
        try:
            await self.api.async_connect(moved)
        except YeelightError as err:
            raise UpdateFailed(f"Cannot connect to {moved.endpoint}: {err}") from err

        self.hass.config_entries.async_update_entry(
            self.config_entry,
            data={**self.config_entry.data, CONF_HOST: moved.ip_address, CONF_PORT: moved.port},
        )
        await self.settings.async_remember_fixture(moved)

    @callback
    def _handle_push(self, state: DeviceState) -> None:
        """Forward a notification update to the entities."""
        self.async_set_updated_data(state)

    @callback
    def _handle_disconnect(self) -> None:
        """Mark entities unavailable until the next poll reconnects."""
        _LOGGER.debug("Connection to %s lost", self.api.host)
        self.async_set_update_error(YeelightConnectionLostError("Connection lost"))

    @callback
    def async_push_state(self) -> None:
        """Publish the optimistic state after a local command."""
        if self.api.state is not None:
            self.async_set_updated_data(self.api.state)

    # Profiles

    async def async_apply_profile(self, profile: Profile) -> None:
        """Apply a profile; errors propagate to the caller."""
        await self.api.apply_profile(profile)
        self.async_push_state()

    async def async_save_current_profile(self, name: str, icon: str | None = None) -> Profile | None:
        """Store the current state as a new profile, None if no state is known."""
        if self.api.state is None:
            return None
        profile = Profile.from_state(self.api.state, name)
        if icon:
            profile = replace(profile, icon=icon)
        await self.settings.async_add_profile(profile)
        _LOGGER.info("Saved profile %s from %s", profile.name, self.api.host)
        return profile

    async def _async_apply_scheduled_profile(self, profile: Profile, event: ScheduleEvent) -> None:
        try:
            await self.async_apply_profile(profile)
        except YeelightError as err:
            _LOGGER.warning(
                "Could not apply profile %s for schedule %s: %s",
                profile.name,
                event.rule.name,
                err,
            )

    # Schedules

    @callback
    def async_start_schedules(self) -> None:
        """Tick now and then once per minute."""
        self.async_stop_schedules()
        self._unsub_schedule = async_track_time_interval(
            self.hass, self._async_schedule_tick, timedelta(seconds=SCHEDULE_INTERVAL)
        )
        self._async_schedule_tick(dt_util.now())

    @callback
    def async_stop_schedules(self) -> None:
        """Stop the schedule timer."""
        if self._unsub_schedule is not None:
            self._unsub_schedule()
            self._unsub_schedule = None

    def schedule_summary(self, now: datetime | None = None) -> dict[str, object]:
        """Describe the enabled, active and next schedule rules."""
        upcoming = self.schedules.next_schedule(dt_util.as_local(now or dt_util.now()))
        active = self.schedules.active
        return {
            "schedules_enabled": self.schedules_enabled,
            "enabled_schedules": [rule.name for rule in self.schedules.enabled_rules()],
            "active_schedule": active.name if active else None,
            "next_schedule": upcoming[0].name if upcoming else None,
            "next_schedule_at": upcoming[1].isoformat() if upcoming else None,
        }

    @callback
    def _async_schedule_tick(self, now: datetime) -> None:
        if not self.schedules_enabled:
            return
        self.schedules.tick(dt_util.as_local(now))

    @callback
    def _handle_schedule_event(self, event: ScheduleEvent) -> None:
        profile = self.settings.get_profile(event.profile_id)
        if profile is None:
            _LOGGER.warning(
                "Schedule %s refers to unknown profile %s", event.rule.name, event.profile_id
            )
            return

        _LOGGER.info("Schedule %s (%s): applying %s", event.rule.name, event.reason, profile.name)
        self.hass.async_create_task(self._async_apply_scheduled_profile(profile, event))

    async def async_set_schedules(self, rules: list[ScheduleRule]) -> None:
        """Persist new rules and re-evaluate without applying a profile."""
        await self.settings.async_set_schedules(rules)
        self.schedules.set_rules(rules, dt_util.now())

    async def async_set_schedule_enabled(self, key: str, enabled: bool) -> ScheduleRule | None:
        """Enable or disable the rule matching an id or name, ignoring case."""
        rules = self.schedules.rules
        for index, rule in enumerate(rules):
            if rule.id == key or rule.name.lower() == key.lower():
                rules[index] = replace(rule, enabled=enabled)
                await self.async_set_schedules(rules)
                return rules[index]
        return None

    async def async_shutdown(self) -> None:
        """Stop timers and close the session."""
        self.async_stop_schedules()
        self.api.disconnect()
        await super().async_shutdown()
