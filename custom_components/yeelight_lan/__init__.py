"""The Yeelight LAN integration."""

from __future__ import annotations

import logging
from datetime import timedelta

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import CONF_SCAN_INTERVAL, Platform
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryNotReady

from .api import YeelightLanApi
from .config_flow import fixture_from_entry
from .const import CONF_SCHEDULES_ENABLED, DEFAULT_SCAN_INTERVAL, DOMAIN
from .coordinator import YeelightLanCoordinator
from .services import async_setup_services, async_unload_services
from .settings import YeelightSettings

_LOGGER = logging.getLogger(__name__)

PLATFORMS: list[Platform] = [Platform.LIGHT]


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up a Yeelight fixture from a config entry."""
    fixture = fixture_from_entry(entry.data)

    _LOGGER.debug("Setting up Yeelight %s at %s", fixture.id, fixture.endpoint)

    settings = YeelightSettings(hass, entry.entry_id)
    await settings.async_load()

    api = YeelightLanApi(fixture)
    coordinator = YeelightLanCoordinator(
        hass,
        entry,
        api,
        settings,
        scan_interval=entry.options.get(CONF_SCAN_INTERVAL, DEFAULT_SCAN_INTERVAL),
        schedules_enabled=entry.options.get(CONF_SCHEDULES_ENABLED, True),
    )

    # Perform initial connect and data fetch
    try:
        await coordinator.async_config_entry_first_refresh()
    except ConfigEntryNotReady:
        api.disconnect()
        raise

    hass.data.setdefault(DOMAIN, {})
    hass.data[DOMAIN][entry.entry_id] = coordinator

    await settings.async_remember_fixture(api.fixture)
    coordinator.async_start_schedules()

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    await async_setup_services(hass)

    entry.async_on_unload(entry.add_update_listener(async_update_options))

    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    if unload_ok := await hass.config_entries.async_unload_platforms(entry, PLATFORMS):
        coordinator: YeelightLanCoordinator = hass.data[DOMAIN].pop(entry.entry_id)
        await coordinator.async_shutdown()
        if not hass.data[DOMAIN]:
            await async_unload_services(hass)

    return unload_ok


async def async_update_options(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Apply changed options to the running coordinator."""
    coordinator: YeelightLanCoordinator = hass.data[DOMAIN][entry.entry_id]
    coordinator.update_interval = timedelta(
        seconds=entry.options.get(CONF_SCAN_INTERVAL, DEFAULT_SCAN_INTERVAL)
    )
    coordinator.schedules_enabled = entry.options.get(CONF_SCHEDULES_ENABLED, True)
