"""Registry of the relays claimed by loaded blinds, keyed by device id."""

from __future__ import annotations

import logging

from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError

from .const import DOMAIN

_LOGGER = logging.getLogger(__name__)


class BlindRegistry:
    """Track which blind drives each relay entity.

    Each relay entity may be claimed by one blind only, so two blinds can
    never drive the same motor.
    """

    def __init__(self) -> None:
        self._relays_by_device: dict[str, list[str]] = {}
        self._relay_owners: dict[str, str] = {}

    def owner_of(self, relay_entity_id: str) -> str | None:
        """Return the device id that claimed ``relay_entity_id``."""
        return self._relay_owners.get(relay_entity_id)

    def register(self, device_id: str, relay_entity_ids) -> None:
        """Claim the relay entities of a blind."""
        if device_id in self._relays_by_device:
            raise HomeAssistantError(f"Blind {device_id} is already registered")
        for entity_id in relay_entity_ids:
            owner = self.owner_of(entity_id)
            if owner is not None:
                raise HomeAssistantError(
                    f"{entity_id} is already used by blind {owner}"
                )
        self._relays_by_device[device_id] = list(relay_entity_ids)
        for entity_id in relay_entity_ids:
            self._relay_owners[entity_id] = device_id
        _LOGGER.debug(
            "register :: %s (%d loaded)", device_id, len(self._relays_by_device)
        )

    def unregister(self, device_id: str) -> None:
        """Release the relays of a blind."""
        for entity_id in self._relays_by_device.pop(device_id, []):
            self._relay_owners.pop(entity_id, None)
        _LOGGER.debug(
            "unregister :: %s (%d loaded)", device_id, len(self._relays_by_device)
        )


def get_registry(hass: HomeAssistant) -> BlindRegistry:
    """Return the registry stored in hass.data, creating it on first use."""
    registry = hass.data.get(DOMAIN)
    if registry is None:
        registry = hass.data[DOMAIN] = BlindRegistry()
    return registry
