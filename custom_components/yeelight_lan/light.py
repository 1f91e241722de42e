"""Light entities for the Yeelight LAN integration."""

from __future__ import annotations

import logging
from typing import Any

from homeassistant.components.light import (
    ATTR_BRIGHTNESS,
    ATTR_COLOR_TEMP_KELVIN,
    ATTR_RGB_COLOR,
    ColorMode,
    LightEntity,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, callback
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .const import (
    DOMAIN,
    MAX_BRIGHTNESS,
    MAX_COLOR_TEMP_KELVIN,
    MIN_BRIGHTNESS,
    MIN_COLOR_TEMP_KELVIN,
)
from .coordinator import YeelightLanCoordinator
from .exceptions import YeelightError

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up Yeelight LAN lights from a config entry."""
    coordinator: YeelightLanCoordinator = hass.data[DOMAIN][entry.entry_id]

    async_add_entities(
        [
            YeelightMainLight(coordinator),
            YeelightAmbientLight(coordinator),
        ]
    )


def to_ha_brightness(value: int) -> int:
    """Convert fixture brightness (1-100) to HA brightness (0-255)."""
    return round((value / MAX_BRIGHTNESS) * 255)


def to_fixture_brightness(value: int) -> int:
    """Convert HA brightness (0-255) to fixture brightness (1-100)."""
    return max(MIN_BRIGHTNESS, min(MAX_BRIGHTNESS, round((value / 255) * MAX_BRIGHTNESS)))


class YeelightLightBase(CoordinatorEntity[YeelightLanCoordinator], LightEntity):
    """Common parts of both channels."""

    _attr_has_entity_name = True

    def __init__(self, coordinator: YeelightLanCoordinator, key: str) -> None:
        """Initialize the light entity."""
        super().__init__(coordinator)
        fixture = coordinator.api.fixture
        self._attr_unique_id = f"{fixture.id}_{key}"
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, fixture.id)},
            name=fixture.name,
            manufacturer="Yeelight",
            model=fixture.model or None,
            sw_version=fixture.firmware_version or None,
        )

    @property
    def available(self) -> bool:
        """Return if entity is available."""
        return self.coordinator.available and self.coordinator.data is not None

    def _raise(self, err: YeelightError) -> None:
        raise HomeAssistantError(f"Error controlling {self.coordinator.api.host}: {err}") from err

    @callback
    def _handle_coordinator_update(self) -> None:
        """Handle updated data from the coordinator."""
        self.async_write_ha_state()


class YeelightMainLight(YeelightLightBase):
    """The primary white channel."""

    _attr_name = None
    _attr_color_mode = ColorMode.COLOR_TEMP
    _attr_supported_color_modes = {ColorMode.COLOR_TEMP}
    _attr_min_color_temp_kelvin = MIN_COLOR_TEMP_KELVIN
    _attr_max_color_temp_kelvin = MAX_COLOR_TEMP_KELVIN

    def __init__(self, coordinator: YeelightLanCoordinator) -> None:
        """Initialize the main light."""
        super().__init__(coordinator, "main")

    @property
    def is_on(self) -> bool | None:
        """Return true if light is on."""
        if self.coordinator.data is None:
            return None
        return self.coordinator.data.main_power

    @property
    def brightness(self) -> int | None:
        """Return the brightness of the light (0-255)."""
        if self.coordinator.data is None:
            return None
        return to_ha_brightness(self.coordinator.data.main_brightness)

    @property
    def color_temp_kelvin(self) -> int | None:
        """Return the color temperature in Kelvin."""
        if self.coordinator.data is None:
            return None
        return self.coordinator.data.color_temperature

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        """Return the sleep timer and schedule state."""
        attributes = self.coordinator.schedule_summary()
        if self.coordinator.data is not None:
            attributes["sleep_timer_minutes"] = self.coordinator.data.timer_minutes_remaining
        return attributes

    async def async_toggle(self, **kwargs: Any) -> None:
        """Toggle the light on the fixture."""
        if kwargs:
            await super().async_toggle(**kwargs)
            return
        try:
            await self.coordinator.api.toggle_main()
        except YeelightError as err:
            self._raise(err)
        self.coordinator.async_push_state()

    async def async_turn_on(self, **kwargs: Any) -> None:
        """Turn the light on."""
        api = self.coordinator.api
        try:
            if not self.is_on:
                await api.set_main_power(True)
            if ATTR_BRIGHTNESS in kwargs:
                await api.set_main_brightness(to_fixture_brightness(kwargs[ATTR_BRIGHTNESS]))
            if ATTR_COLOR_TEMP_KELVIN in kwargs:
                await api.set_color_temperature(kwargs[ATTR_COLOR_TEMP_KELVIN])
        except YeelightError as err:
            self._raise(err)
        self.coordinator.async_push_state()

    async def async_turn_off(self, **kwargs: Any) -> None:
        """Turn the light off."""
        try:
            await self.coordinator.api.set_main_power(False)
        except YeelightError as err:
            self._raise(err)
        self.coordinator.async_push_state()


class YeelightAmbientLight(YeelightLightBase):
    """The secondary RGB ambient channel."""

    _attr_name = "Ambient"
    _attr_color_mode = ColorMode.RGB
    _attr_supported_color_modes = {ColorMode.RGB}

    def __init__(self, coordinator: YeelightLanCoordinator) -> None:
        """Initialize the ambient light."""
        super().__init__(coordinator, "ambient")

    @property
    def is_on(self) -> bool | None:
        """Return true if light is on."""
        if self.coordinator.data is None:
            return None
        return self.coordinator.data.bg_power

    @property
    def brightness(self) -> int | None:
        """Return the brightness of the light (0-255)."""
        if self.coordinator.data is None:
            return None
        return to_ha_brightness(self.coordinator.data.bg_brightness)

    @property
    def rgb_color(self) -> tuple[int, int, int] | None:
        """Return the RGB color value."""
        if self.coordinator.data is None:
            return None
        return self.coordinator.data.bg_color

    async def async_toggle(self, **kwargs: Any) -> None:
        """Toggle the light on the fixture."""
        if kwargs:
            await super().async_toggle(**kwargs)
            return
        try:
            await self.coordinator.api.toggle_bg()
        except YeelightError as err:
            self._raise(err)
        self.coordinator.async_push_state()

    async def async_turn_on(self, **kwargs: Any) -> None:
        """Turn the light on."""
        api = self.coordinator.api
        try:
            if not self.is_on:
                await api.set_bg_power(True)
            if ATTR_BRIGHTNESS in kwargs:
                await api.set_bg_brightness(to_fixture_brightness(kwargs[ATTR_BRIGHTNESS]))
            if ATTR_RGB_COLOR in kwargs:
                await api.set_bg_color(*kwargs[ATTR_RGB_COLOR])
        except YeelightError as err:
            self._raise(err)
        self.coordinator.async_push_state()

    async def async_turn_off(self, **kwargs: Any) -> None:
        """Turn the light off."""
        try:
            await self.coordinator.api.set_bg_power(False)
        except YeelightError as err:
            self._raise(err)
        self.coordinator.async_push_state()
