"""Services for Yeelight LAN."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import voluptuous as vol

from homeassistant.core import HomeAssistant, ServiceCall
from homeassistant.exceptions import HomeAssistantError, ServiceValidationError
import homeassistant.helpers.config_validation as cv

from .const import (
    ATTR_ENABLED,
    ATTR_ICON,
    ATTR_ENTRY_ID,
    ATTR_MINUTES,
    ATTR_PROFILE_ID,
    ATTR_PROFILE_NAME,
    ATTR_SCHEDULE,
    DOMAIN,
    SERVICE_APPLY_PROFILE,
    SERVICE_CANCEL_SLEEP_TIMER,
    SERVICE_SAVE_AS_DEFAULT,
    SERVICE_SAVE_PROFILE,
    SERVICE_SET_SCHEDULE_ENABLED,
    SERVICE_SET_SLEEP_TIMER,
    SERVICE_TURN_OFF_ALL,
)
from .exceptions import YeelightError

if TYPE_CHECKING:
    from .coordinator import YeelightLanCoordinator
    from .models import Profile

_LOGGER = logging.getLogger(__name__)

SERVICES = [
    SERVICE_APPLY_PROFILE,
    SERVICE_SET_SLEEP_TIMER,
    SERVICE_CANCEL_SLEEP_TIMER,
    SERVICE_SAVE_AS_DEFAULT,
    SERVICE_SAVE_PROFILE,
    SERVICE_TURN_OFF_ALL,
    SERVICE_SET_SCHEDULE_ENABLED,
]

TARGET_SCHEMA = vol.Schema({vol.Optional(ATTR_ENTRY_ID): cv.string})

APPLY_PROFILE_SCHEMA = vol.All(
    TARGET_SCHEMA.extend(
        {
            vol.Exclusive(ATTR_PROFILE_ID, "profile"): cv.string,
            vol.Exclusive(ATTR_PROFILE_NAME, "profile"): cv.string,
        }
    ),
    cv.has_at_least_one_key(ATTR_PROFILE_ID, ATTR_PROFILE_NAME),
)

SLEEP_TIMER_SCHEMA = TARGET_SCHEMA.extend(
    {vol.Required(ATTR_MINUTES): vol.All(vol.Coerce(int), vol.Range(min=1, max=1440))}
)

SCHEDULE_ENABLED_SCHEMA = TARGET_SCHEMA.extend(
    {vol.Required(ATTR_SCHEDULE): cv.string, vol.Required(ATTR_ENABLED): cv.boolean}
)

SAVE_PROFILE_SCHEMA = TARGET_SCHEMA.extend(
    {vol.Required(ATTR_PROFILE_NAME): cv.string, vol.Optional(ATTR_ICON): cv.icon}
)


def _coordinators(hass: HomeAssistant, call: ServiceCall) -> list[YeelightLanCoordinator]:
    """Return the coordinators a call targets, all fixtures when none is named."""
    coordinators: dict[str, YeelightLanCoordinator] = hass.data.get(DOMAIN, {})
    entry_id = call.data.get(ATTR_ENTRY_ID)
    if entry_id is None:
        return list(coordinators.values())
    if entry_id not in coordinators:
        raise ServiceValidationError(f"No Yeelight fixture configured with entry {entry_id}")
    return [coordinators[entry_id]]


def _resolve_profile(coordinator: YeelightLanCoordinator, call: ServiceCall) -> Profile:
    settings = coordinator.settings
    if ATTR_PROFILE_ID in call.data:
        profile = settings.get_profile(call.data[ATTR_PROFILE_ID])
    else:
        profile = settings.find_profile(call.data[ATTR_PROFILE_NAME])
    if profile is None:
        wanted = call.data.get(ATTR_PROFILE_ID) or call.data.get(ATTR_PROFILE_NAME)
        raise ServiceValidationError(f"Unknown profile: {wanted}")
    return profile


async def _run(
    coordinator: YeelightLanCoordinator,
    action: Callable[[], Awaitable[object]],
) -> None:
    try:
        await action()
    except YeelightError as err:
        raise HomeAssistantError(
            f"Error controlling {coordinator.api.fixture.name}: {err}"
        ) from err
    coordinator.async_push_state()


async def async_setup_services(hass: HomeAssistant) -> None:
    """Set up the services for Yeelight LAN."""
    if hass.services.has_service(DOMAIN, SERVICE_APPLY_PROFILE):
        return

    async def handle_apply_profile(call: ServiceCall) -> None:
        """Service to apply a stored profile."""
        for coordinator in _coordinators(hass, call):
            profile = _resolve_profile(coordinator, call)
            _LOGGER.debug("Service call: apply_profile %s on %s", profile.name, coordinator.api.host)
            await _run(coordinator, lambda c=coordinator, p=profile: c.api.apply_profile(p))

    async def handle_set_sleep_timer(call: ServiceCall) -> None:
        """Service to turn the fixture off after a delay."""
        minutes = call.data[ATTR_MINUTES]
        _LOGGER.debug("Service call: set_sleep_timer (%s min)", minutes)
        for coordinator in _coordinators(hass, call):
            await _run(coordinator, lambda c=coordinator: c.api.set_sleep_timer(minutes))

    async def handle_cancel_sleep_timer(call: ServiceCall) -> None:
        """Service to remove the sleep timer."""
        _LOGGER.debug("Service call: cancel_sleep_timer")
        for coordinator in _coordinators(hass, call):
            await _run(coordinator, coordinator.api.cancel_sleep_timer)

    async def handle_save_as_default(call: ServiceCall) -> None:
        """Service to store the current state as the power-on default."""
        _LOGGER.debug("Service call: save_as_default")
        for coordinator in _coordinators(hass, call):
            await _run(coordinator, coordinator.api.save_as_default)

    async def handle_turn_off_all(call: ServiceCall) -> None:
        """Service to turn off both channels."""
        _LOGGER.debug("Service call: turn_off_all")
        for coordinator in _coordinators(hass, call):
            await _run(coordinator, coordinator.api.turn_off_all)

    async def handle_set_schedule_enabled(call: ServiceCall) -> None:
        """Service to enable or disable a schedule rule."""
        key = call.data[ATTR_SCHEDULE]
        enabled = call.data[ATTR_ENABLED]
        _LOGGER.debug("Service call: set_schedule_enabled %s=%s", key, enabled)
        for coordinator in _coordinators(hass, call):
            if await coordinator.async_set_schedule_enabled(key, enabled) is None:
                raise ServiceValidationError(f"Unknown schedule: {key}")

    async def handle_save_profile(call: ServiceCall) -> None:
        """Service to store the current state as a new profile."""
        name = call.data[ATTR_PROFILE_NAME]
        _LOGGER.debug("Service call: save_profile %s", name)
        for coordinator in _coordinators(hass, call):
            if await coordinator.async_save_current_profile(name, call.data.get(ATTR_ICON)) is None:
                raise ServiceValidationError(
                    f"No state known yet for {coordinator.api.fixture.name}"
                )

    hass.services.async_register(
        DOMAIN, SERVICE_APPLY_PROFILE, handle_apply_profile, schema=APPLY_PROFILE_SCHEMA
    )
    hass.services.async_register(
        DOMAIN, SERVICE_SET_SLEEP_TIMER, handle_set_sleep_timer, schema=SLEEP_TIMER_SCHEMA
    )
    hass.services.async_register(
        DOMAIN, SERVICE_CANCEL_SLEEP_TIMER, handle_cancel_sleep_timer, schema=TARGET_SCHEMA
    )
    hass.services.async_register(
        DOMAIN, SERVICE_SAVE_AS_DEFAULT, handle_save_as_default, schema=TARGET_SCHEMA
    )
    hass.services.async_register(
        DOMAIN, SERVICE_TURN_OFF_ALL, handle_turn_off_all, schema=TARGET_SCHEMA
    )
    hass.services.async_register(
        DOMAIN,
        SERVICE_SET_SCHEDULE_ENABLED,
        handle_set_schedule_enabled,
        schema=SCHEDULE_ENABLED_SCHEMA,
    )
    hass.services.async_register(
        DOMAIN, SERVICE_SAVE_PROFILE, handle_save_profile, schema=SAVE_PROFILE_SCHEMA
    )


async def async_unload_services(hass: HomeAssistant) -> None:
    """Unload Yeelight LAN services."""
    for service in SERVICES:
        hass.services.async_remove(DOMAIN, service)
