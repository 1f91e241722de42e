"""Config flow for Yeelight LAN integration."""

from __future__ import annotations

import ipaddress
import logging
from typing import Any

import voluptuous as vol

from homeassistant.config_entries import ConfigEntry, ConfigFlow, ConfigFlowResult, OptionsFlow
from homeassistant.const import CONF_HOST, CONF_NAME, CONF_PORT, CONF_SCAN_INTERVAL
from homeassistant.core import HomeAssistant, callback
from homeassistant.exceptions import HomeAssistantError

from .const import (
    CONF_FIXTURE_ID,
    CONF_FW_VER,
    CONF_MODEL,
    CONF_SCHEDULES_ENABLED,
    CONF_SUPPORT,
    DEFAULT_PORT,
    DEFAULT_SCAN_INTERVAL,
    DOMAIN,
    MAX_SCAN_INTERVAL,
    MIN_SCAN_INTERVAL,
)
from .discovery import async_probe, async_search
from .exceptions import YeelightDiscoveryError, YeelightError
from .models import Fixture

_LOGGER = logging.getLogger(__name__)

STEP_MANUAL_DATA_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_HOST): str,
        vol.Optional(CONF_PORT, default=DEFAULT_PORT): vol.All(
            vol.Coerce(int), vol.Range(min=1, max=65535)
        ),
    }
)


def entry_data(fixture: Fixture) -> dict[str, Any]:
    """Return config entry data for a fixture."""
    return {
        CONF_FIXTURE_ID: fixture.id,
        CONF_HOST: fixture.ip_address,
        CONF_PORT: fixture.port,
        CONF_NAME: fixture.name,
        CONF_MODEL: fixture.model,
        CONF_FW_VER: fixture.firmware_version,
        CONF_SUPPORT: list(fixture.supported_methods),
    }


def fixture_from_entry(data: dict[str, Any]) -> Fixture:
    """Rebuild a fixture from config entry data."""
    return Fixture(
        id=data[CONF_FIXTURE_ID],
        model=data.get(CONF_MODEL, ""),
        ip_address=data[CONF_HOST],
        port=data.get(CONF_PORT, DEFAULT_PORT),
        name=data.get(CONF_NAME, "Yeelight"),
        firmware_version=data.get(CONF_FW_VER, ""),
        supported_methods=tuple(data.get(CONF_SUPPORT, ())),
    )


async def validate_input(hass: HomeAssistant, data: dict[str, Any]) -> Fixture:
    """Validate the user input by probing the address.

    Data has the keys from STEP_MANUAL_DATA_SCHEMA with values provided by the user.
    """
    host = data[CONF_HOST].strip()

    try:
        ipaddress.ip_address(host)
    except ValueError as err:
        raise InvalidHost from err

    try:
        return await async_probe(host, data.get(CONF_PORT, DEFAULT_PORT))
    except YeelightError as err:
        _LOGGER.debug("Probe of %s failed: %s", host, err)
        raise CannotConnect from err


class YeelightLanConfigFlow(ConfigFlow, domain=DOMAIN):
    """Handle a config flow for Yeelight LAN."""

    VERSION = 1

    def __init__(self) -> None:
        """Initialize the config flow."""
        self._discovered: dict[str, Fixture] = {}

    @staticmethod
    @callback
    def async_get_options_flow(config_entry: ConfigEntry) -> YeelightLanOptionsFlow:
        """Get the options flow."""
        return YeelightLanOptionsFlow()

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Handle the initial step - attempt discovery first."""
        _LOGGER.debug("Starting device discovery")
        try:
            discovered = await async_search()
        except YeelightDiscoveryError as err:
            _LOGGER.warning("Discovery failed: %s", err)
            discovered = []

        configured = self._async_current_ids()
        self._discovered = {
            fixture.id: fixture for fixture in discovered if fixture.id not in configured
        }
        if self._discovered:
            return await self.async_step_select_device()

        _LOGGER.debug("No devices discovered, showing manual entry form")
        return await self.async_step_manual()

    async def async_step_select_device(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Handle device selection from discovered devices."""
        if user_input is not None:
            selected = user_input["device"]
            if selected == "manual":
                return await self.async_step_manual()

            fixture = self._discovered[selected]
            await self.async_set_unique_id(fixture.id)
            self._abort_if_unique_id_configured(
                updates={CONF_HOST: fixture.ip_address, CONF_PORT: fixture.port}
            )
            return self.async_create_entry(title=fixture.name, data=entry_data(fixture))

        device_options = {
            fixture.id: f"{fixture.name} {fixture.model} ({fixture.ip_address})"
            for fixture in self._discovered.values()
        }
        device_options["manual"] = "Enter IP address manually"

        return self.async_show_form(
            step_id="select_device",
            data_schema=vol.Schema({vol.Required("device"): vol.In(device_options)}),
        )

    async def async_step_manual(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Handle manual IP entry."""
        if user_input is None:
            return self.async_show_form(
                step_id="manual",
                data_schema=STEP_MANUAL_DATA_SCHEMA,
            )

        errors: dict[str, str] = {}

        try:
            fixture = await validate_input(self.hass, user_input)
        except InvalidHost:
            errors[CONF_HOST] = "invalid_host"
        except CannotConnect:
            errors["base"] = "cannot_connect"
        except Exception:
            _LOGGER.exception("Unexpected exception")
            errors["base"] = "unknown"
        else:
            await self.async_set_unique_id(fixture.id)
            self._abort_if_unique_id_configured()

            return self.async_create_entry(title=fixture.name, data=entry_data(fixture))

        return self.async_show_form(
            step_id="manual",
            data_schema=STEP_MANUAL_DATA_SCHEMA,
            errors=errors,
        )


class YeelightLanOptionsFlow(OptionsFlow):
    """Handle options for Yeelight LAN."""

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Manage polling and schedule options."""
        if user_input is not None:
            return self.async_create_entry(data=user_input)

        options = self.config_entry.options
        return self.async_show_form(
            step_id="init",
            data_schema=vol.Schema(
                {
                    vol.Optional(
                        CONF_SCAN_INTERVAL,
                        default=options.get(CONF_SCAN_INTERVAL, DEFAULT_SCAN_INTERVAL),
                    ): vol.All(
                        vol.Coerce(int),
                        vol.Range(min=MIN_SCAN_INTERVAL, max=MAX_SCAN_INTERVAL),
                    ),
                    vol.Optional(
                        CONF_SCHEDULES_ENABLED,
                        default=options.get(CONF_SCHEDULES_ENABLED, True),
                    ): bool,
                }
            ),
        )


class CannotConnect(HomeAssistantError):
    """Error to indicate we cannot connect."""


class InvalidHost(HomeAssistantError):
    """Error to indicate the host is not an IP address."""
