"""Config flow for Dual Relay Blind integration."""

from __future__ import annotations

from typing import Any

import voluptuous as vol
from homeassistant.config_entries import (
    ConfigEntry,
    ConfigFlow,
    ConfigFlowResult,
    OptionsFlow,
)
from homeassistant.const import CONF_NAME
from homeassistant.core import callback
from homeassistant.data_entry_flow import section
from homeassistant.helpers.selector import (
    EntitySelector,
    EntitySelectorConfig,
    NumberSelector,
    NumberSelectorConfig,
    NumberSelectorMode,
    TextSelector,
)

from .const import (
    CONF_FULL_OVERDRIVE,
    CONF_MARGIN_DOWN,
    CONF_MARGIN_UP,
    CONF_RELAY_DOWN,
    CONF_RELAY_ENTITIES,
    CONF_RELAY_UP,
    CONF_TRAVEL_TIME_DOWN,
    CONF_TRAVEL_TIME_UP,
    DEFAULT_FULL_OVERDRIVE,
    DEFAULT_MARGIN,
    DEFAULT_RELAY_DOWN,
    DEFAULT_RELAY_UP,
    DEFAULT_TRAVEL_TIME_DOWN,
    DEFAULT_TRAVEL_TIME_UP,
    DOMAIN,
)

SECTION_ADVANCED = "advanced"

TIMING_SELECTOR = NumberSelector(
    NumberSelectorConfig(min=0, max=600, step=0.1, mode=NumberSelectorMode.BOX)
)

TRAVEL_TIME_SELECTOR = NumberSelector(
    NumberSelectorConfig(min=0.1, max=600, step=0.1, mode=NumberSelectorMode.BOX)
)

CHANNEL_SELECTOR = NumberSelector(
    NumberSelectorConfig(min=1, max=8, step=1, mode=NumberSelectorMode.BOX)
)

RELAYS_SELECTOR = EntitySelector(
    EntitySelectorConfig(domain=["switch", "input_boolean"], multiple=True)
)

_CHANNEL_KEYS = (CONF_RELAY_UP, CONF_RELAY_DOWN)


def _build_details_schema(defaults: dict[str, Any] | None = None) -> vol.Schema:
    """Build the relay and timing schema."""
    d = defaults or {}
    return vol.Schema(
        {
            vol.Required(
                CONF_RELAY_ENTITIES,
                default=d.get(CONF_RELAY_ENTITIES, vol.UNDEFINED),
            ): RELAYS_SELECTOR,
            vol.Required(
                CONF_RELAY_UP, default=d.get(CONF_RELAY_UP, DEFAULT_RELAY_UP)
            ): CHANNEL_SELECTOR,
            vol.Required(
                CONF_RELAY_DOWN, default=d.get(CONF_RELAY_DOWN, DEFAULT_RELAY_DOWN)
            ): CHANNEL_SELECTOR,
            vol.Required(
                CONF_TRAVEL_TIME_UP,
                default=d.get(CONF_TRAVEL_TIME_UP, DEFAULT_TRAVEL_TIME_UP),
            ): TRAVEL_TIME_SELECTOR,
            vol.Required(
                CONF_TRAVEL_TIME_DOWN,
                default=d.get(CONF_TRAVEL_TIME_DOWN, DEFAULT_TRAVEL_TIME_DOWN),
            ): TRAVEL_TIME_SELECTOR,
            vol.Optional(SECTION_ADVANCED): section(
                vol.Schema(
                    {
                        vol.Optional(
                            CONF_MARGIN_UP,
                            default=d.get(CONF_MARGIN_UP, DEFAULT_MARGIN),
                        ): TIMING_SELECTOR,
                        vol.Optional(
                            CONF_MARGIN_DOWN,
                            default=d.get(CONF_MARGIN_DOWN, DEFAULT_MARGIN),
                        ): TIMING_SELECTOR,
                        vol.Optional(
                            CONF_FULL_OVERDRIVE,
                            default=d.get(CONF_FULL_OVERDRIVE, DEFAULT_FULL_OVERDRIVE),
                        ): TIMING_SELECTOR,
                    }
                ),
                {"collapsed": True},
            ),
        }
    )


def _flatten_input(user_input: dict[str, Any]) -> dict[str, Any]:
    """Flatten section data into a single dict."""
    data: dict[str, Any] = {}
    for key, value in user_input.items():
        if key == SECTION_ADVANCED and isinstance(value, dict):
            data.update(value)
        else:
            data[key] = value
    for key in _CHANNEL_KEYS:
        if data.get(key) is not None:
            data[key] = int(data[key])
    return data


def _validate_relays(data: dict[str, Any]) -> dict[str, str]:
    """Validate the relay channel assignment against the selected relays."""
    relay_count = len(data.get(CONF_RELAY_ENTITIES) or [])
    if relay_count < 2:
        return {CONF_RELAY_ENTITIES: "not_enough_relays"}
    for key in _CHANNEL_KEYS:
        if not 1 <= data.get(key, 0) <= relay_count:
            return {key: "relay_channel_out_of_range"}
    if data[CONF_RELAY_UP] == data[CONF_RELAY_DOWN]:
        return {CONF_RELAY_DOWN: "relay_channels_identical"}
    return {}


def _validate_margins(data: dict[str, Any]) -> dict[str, str]:
    """Validate that each bottom margin fits inside its travel time."""
    pairs = (
        (CONF_MARGIN_UP, CONF_TRAVEL_TIME_UP, DEFAULT_TRAVEL_TIME_UP),
        (CONF_MARGIN_DOWN, CONF_TRAVEL_TIME_DOWN, DEFAULT_TRAVEL_TIME_DOWN),
    )
    for margin_key, travel_key, travel_default in pairs:
        margin = data.get(margin_key) or 0
        travel = data.get(travel_key) or travel_default
        if margin > travel:
            return {margin_key: "margin_exceeds_travel_time"}
    return {}


def _direction_relays(options: dict[str, Any]) -> set[str]:
    """Return the up/down relay entity ids an options dict drives."""
    relays = list(options.get(CONF_RELAY_ENTITIES) or [])
    result = set()
    for key, default in (
        (CONF_RELAY_UP, DEFAULT_RELAY_UP),
        (CONF_RELAY_DOWN, DEFAULT_RELAY_DOWN),
    ):
        index = int(options.get(key, default)) - 1
        if 0 <= index < len(relays):
            result.add(relays[index])
    return result


def _validate(
    data: dict[str, Any], other_entries: list[ConfigEntry]
) -> dict[str, str]:
    """Run all option checks, first error wins."""
    errors = _validate_relays(data) or _validate_margins(data)
    if errors:
        return errors
    claimed = _direction_relays(data)
    for entry in other_entries:
        if claimed & _direction_relays(dict(entry.options)):
            return {CONF_RELAY_ENTITIES: "relay_in_use"}
    return {}


class DualRelayBlindConfigFlow(ConfigFlow, domain=DOMAIN):
    """Handle a config flow for Dual Relay Blind."""

    VERSION = 1

    def __init__(self) -> None:
        """Initialize the config flow."""
        self._name: str = ""

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Step 1: Choose a name."""
        if user_input is not None:
            self._name = user_input[CONF_NAME]
            return await self.async_step_details()

        schema = vol.Schema({vol.Required(CONF_NAME): TextSelector()})
        return self.async_show_form(step_id="user", data_schema=schema)

    async def async_step_details(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Step 2: Configure relays and timing."""
        errors: dict[str, str] = {}
        if user_input is not None:
            data = _flatten_input(user_input)
            errors = _validate(data, self._async_current_entries())
            if not errors:
                return self.async_create_entry(
                    title=self._name,
                    data={},
                    options=data,
                )

        schema = _build_details_schema(
            defaults=_flatten_input(user_input) if user_input else None,
        )
        return self.async_show_form(
            step_id="details", data_schema=schema, errors=errors
        )

    @staticmethod
    @callback
    def async_get_options_flow(
        config_entry: ConfigEntry,
    ) -> DualRelayBlindOptionsFlow:
        """Get the options flow for this handler."""
        return DualRelayBlindOptionsFlow()


class DualRelayBlindOptionsFlow(OptionsFlow):
    """Handle options flow for reconfiguring a blind."""

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Configure relays and timing."""
        errors: dict[str, str] = {}
        if user_input is not None:
            data = _flatten_input(user_input)
            others = [
                entry
                for entry in self.hass.config_entries.async_entries(DOMAIN)
                if entry.entry_id != self.config_entry.entry_id
            ]
            errors = _validate(data, others)
            if not errors:
                return self.async_create_entry(title="", data=data)

        current = dict(self.config_entry.options)
        if user_input is not None:
            current.update(_flatten_input(user_input))
        return self.async_show_form(
            step_id="init",
            data_schema=_build_details_schema(defaults=current),
            errors=errors,
        )
