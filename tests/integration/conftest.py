"""Integration test fixtures for dual_relay_blind.

Uses pytest-homeassistant-custom-component for a real HA instance.
input_boolean entities simulate the channels of a dual relay device.
"""

from __future__ import annotations

import pytest
from homeassistant.core import HomeAssistant
from homeassistant.setup import async_setup_component
from pytest_homeassistant_custom_component.common import MockConfigEntry

from custom_components.dual_relay_blind.const import DOMAIN

ENTITY_ID = "cover.test_blind"


@pytest.fixture(autouse=True)
def auto_enable_custom_integrations(enable_custom_integrations):
    """Enable custom integrations for all tests in this directory."""
    return


@pytest.fixture
async def setup_input_booleans(hass: HomeAssistant):
    """Create input_boolean entities to act as relay channels.

    Also sets up the homeassistant component (turn_on/turn_off services)
    which the cover uses to switch relays.
    """
    assert await async_setup_component(hass, "homeassistant", {})
    assert await async_setup_component(
        hass,
        "input_boolean",
        {
            "input_boolean": {
                "ch1": {"name": "Channel 1"},
                "ch2": {"name": "Channel 2"},
            }
        },
    )
    await hass.async_block_till_done()


@pytest.fixture
def base_options():
    """Return config options for a blind on channel 1 (up) and 2 (down)."""
    return {
        "relay_entities": ["input_boolean.ch1", "input_boolean.ch2"],
        "relay_up": 1,
        "relay_down": 2,
        "travel_time_up": 10.0,
        "travel_time_down": 10.0,
    }


@pytest.fixture
async def setup_cover(hass: HomeAssistant, setup_input_booleans, base_options):
    """Create and load a dual_relay_blind config entry.

    Yields the entry, then unloads it on teardown to cancel the motion
    check and the relay state listeners.
    """
    entry = MockConfigEntry(
        domain=DOMAIN,
        version=1,
        title="Test Blind",
        data={},
        options=base_options,
    )
    entry.add_to_hass(hass)
    await hass.config_entries.async_setup(entry.entry_id)
    await hass.async_block_till_done()

    state = hass.states.get(ENTITY_ID)
    assert state is not None, "Cover entity was not created"

    yield entry

    await hass.config_entries.async_unload(entry.entry_id)
    await hass.async_block_till_done()
