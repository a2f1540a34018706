"""Cover platform for blinds driven by an up/down relay pair."""

from __future__ import annotations

import logging

import voluptuous as vol
from homeassistant.components.cover import (
    ATTR_CURRENT_POSITION,
    ATTR_POSITION,
    CoverDeviceClass,
    CoverEntity,
    CoverEntityFeature,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import STATE_ON, STATE_UNAVAILABLE, STATE_UNKNOWN
from homeassistant.core import HomeAssistant, callback
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers import entity_platform
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.helpers.event import (
    async_call_later,
    async_track_state_change_event,
)
from homeassistant.helpers.restore_state import RestoreEntity

from .const import (
    ATTR_MOVEMENT_STATE,
    ATTR_TARGET_POSITION,
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
    DEFAULT_REST_POSITION,
    DEFAULT_TRAVEL_TIME_DOWN,
    DEFAULT_TRAVEL_TIME_UP,
    SERVICE_SET_KNOWN_POSITION,
)
from .motion_controller import MotionController
from .motion_state import POSITION_CLOSED, POSITION_OPEN, MotionConfig, monotonic_ms
from .registry import get_registry
from .relay_codec import (
    Direction,
    RelayPair,
    decode_pair,
    encode,
    relay_pair_from_relays,
)
from .scheduler import MotionScheduler

_LOGGER = logging.getLogger(__name__)

# Seconds after which an unanswered echo expectation is dropped
PENDING_ECHO_TIMEOUT = 5

MOVEMENT_STATES = {
    Direction.MOVING_UP: "moving_up",
    Direction.MOVING_DOWN: "moving_down",
    Direction.IDLE: "stopped",
}

POSITION_SCHEMA = {
    vol.Required(ATTR_POSITION): vol.All(
        vol.Coerce(int), vol.Range(min=POSITION_CLOSED, max=POSITION_OPEN)
    ),
}


def _create_cover_from_options(options, device_id, name):
    """Create a DualRelayBlindCover from config entry options."""
    motion_config = MotionConfig.from_seconds(
        relay_up=options.get(CONF_RELAY_UP, DEFAULT_RELAY_UP),
        relay_down=options.get(CONF_RELAY_DOWN, DEFAULT_RELAY_DOWN),
        travel_time_up=options.get(CONF_TRAVEL_TIME_UP) or DEFAULT_TRAVEL_TIME_UP,
        travel_time_down=options.get(CONF_TRAVEL_TIME_DOWN)
        or DEFAULT_TRAVEL_TIME_DOWN,
        margin_up=options.get(CONF_MARGIN_UP, DEFAULT_MARGIN),
        margin_down=options.get(CONF_MARGIN_DOWN, DEFAULT_MARGIN),
        overdrive=options.get(CONF_FULL_OVERDRIVE, DEFAULT_FULL_OVERDRIVE),
    )
    return DualRelayBlindCover(
        device_id=device_id,
        name=name,
        relay_entity_ids=options.get(CONF_RELAY_ENTITIES, []),
        motion_config=motion_config,
    )


async def async_setup_entry(
    hass: HomeAssistant,
    config_entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up the blind cover from a config entry."""
    cover = _create_cover_from_options(
        config_entry.options,
        device_id=config_entry.entry_id,
        name=config_entry.title,
    )
    async_add_entities([cover])

    platform = entity_platform.async_get_current_platform()
    platform.async_register_entity_service(
        SERVICE_SET_KNOWN_POSITION, POSITION_SCHEMA, "async_set_known_position"
    )


class DualRelayBlindCover(CoverEntity, RestoreEntity):
    """A blind whose position is estimated from relay run time."""

    _attr_should_poll = False

    def __init__(
        self, device_id, name, relay_entity_ids, motion_config, clock=monotonic_ms
    ):
        """Initialize the cover."""
        self._unique_id = device_id
        self._name = name or device_id
        self._relay_entity_ids = list(relay_entity_ids)
        self._motion_config = motion_config

        self._pending_switch = {}
        self._pending_switch_timers = {}
        self._state_listener_unsubs = []

        self._scheduler = MotionScheduler(self._name, self._motion_tick)
        self.controller = MotionController(
            self._name,
            motion_config,
            send_relays=self._send_relays,
            publish=self._publish,
            scheduler=self._scheduler,
            rest_position=DEFAULT_REST_POSITION,
            clock=clock,
        )

    def _log(self, msg, *args):
        """Log a debug message prefixed with the entity ID."""
        _LOGGER.debug("(%s) " + msg, self.entity_id, *args)

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    async def async_added_to_hass(self):
        """Restore the rest position and follow the relay entities."""
        await super().async_added_to_hass()
        self._scheduler.hass = self.hass

        old_state = await self.async_get_last_state()
        self._log("async_added_to_hass :: oldState %s", old_state)
        pos = (
            old_state.attributes.get(ATTR_CURRENT_POSITION)
            if old_state is not None
            else None
        )
        if pos is not None:
            self.controller.restore_position(int(pos))

        relays = self._direction_relays()
        if not relays:
            _LOGGER.warning(
                "(%s) relay channels %s/%s not found in %s",
                self.entity_id,
                self._motion_config.relay_up + 1,
                self._motion_config.relay_down + 1,
                self._relay_entity_ids,
            )
            return

        get_registry(self.hass).register(self._unique_id, relays)
        self._state_listener_unsubs.append(
            async_track_state_change_event(
                self.hass, relays, self._async_switch_state_changed
            )
        )

        # The device may already be moving, or both relays may be stuck on
        self._reconcile_relays()

    async def async_will_remove_from_hass(self):
        """Release the relays of a moving blind, then clean up."""
        if self.controller.halt():
            await self._async_send_relays(encode(Direction.IDLE), blocking=True)
        self._scheduler.stop()
        for unsub in self._state_listener_unsubs:
            unsub()
        self._state_listener_unsubs.clear()
        for timer in self._pending_switch_timers.values():
            timer()
        self._pending_switch_timers.clear()
        self._pending_switch.clear()
        get_registry(self.hass).unregister(self._unique_id)

    # -----------------------------------------------------------------------
    # Properties
    # -----------------------------------------------------------------------

    @property
    def name(self):
        """Return the name of the cover."""
        return self._name

    @property
    def unique_id(self):
        """Return the unique id."""
        return "dual_relay_blind_" + self._unique_id

    @property
    def device_class(self):
        """Return the device class of the cover."""
        return CoverDeviceClass.BLIND

    @property
    def assumed_state(self):
        """Return True because the position is estimated, never measured."""
        return True

    @property
    def available(self) -> bool:
        """Return True while both direction relays report a state."""
        relays = self._direction_relays()
        if not relays or self.hass is None:
            return False
        for entity_id in relays:
            state = self.hass.states.get(entity_id)
            if state is None or state.state == STATE_UNAVAILABLE:
                return False
        return True

    @property
    def supported_features(self) -> CoverEntityFeature:
        """Flag supported features."""
        return (
            CoverEntityFeature.OPEN
            | CoverEntityFeature.CLOSE
            | CoverEntityFeature.STOP
            | CoverEntityFeature.SET_POSITION
        )

    @property
    def current_cover_position(self) -> int | None:
        """Return the estimated position of the cover."""
        return self.controller.current_position()

    @property
    def is_opening(self):
        """Return if the cover is opening or not."""
        return self.controller.direction is Direction.MOVING_UP

    @property
    def is_closing(self):
        """Return if the cover is closing or not."""
        return self.controller.direction is Direction.MOVING_DOWN

    @property
    def is_closed(self):
        """Return if the cover is closed."""
        return self.controller.current_position() <= POSITION_CLOSED

    @property
    def movement_state(self) -> str:
        """Return moving_up, moving_down or stopped."""
        return MOVEMENT_STATES[self.controller.direction]

    @property
    def extra_state_attributes(self):
        """Return the device state attributes."""
        config = self._motion_config
        return {
            ATTR_TARGET_POSITION: self.controller.target_position,
            ATTR_MOVEMENT_STATE: self.movement_state,
            CONF_RELAY_UP: config.relay_up + 1,
            CONF_RELAY_DOWN: config.relay_down + 1,
            CONF_TRAVEL_TIME_UP: config.travel_time_up_ms / 1000,
            CONF_TRAVEL_TIME_DOWN: config.travel_time_down_ms / 1000,
            CONF_MARGIN_UP: config.margin_up_ms / 1000,
            CONF_MARGIN_DOWN: config.margin_down_ms / 1000,
            CONF_FULL_OVERDRIVE: config.overdrive_ms / 1000,
        }

    # -----------------------------------------------------------------------
    # Public HA service handlers
    # -----------------------------------------------------------------------

    async def async_open_cover(self, **kwargs):
        """Open the cover fully."""
        self._require_configured()
        self._log("async_open_cover")
        self.controller.set_target(POSITION_OPEN)

    async def async_close_cover(self, **kwargs):
        """Close the cover fully."""
        self._require_configured()
        self._log("async_close_cover")
        self.controller.set_target(POSITION_CLOSED)

    async def async_stop_cover(self, **kwargs):
        """Stop by targeting the current estimated position."""
        self._require_configured()
        position = self.controller.current_position()
        self._log("async_stop_cover :: at %d", position)
        self.controller.set_target(position)

    async def async_set_cover_position(self, **kwargs):
        """Move the cover to a specific position."""
        self._require_configured()
        if ATTR_POSITION in kwargs:
            position = kwargs[ATTR_POSITION]
            self._log("async_set_cover_position: %d", position)
            self.controller.set_target(position)

    async def async_set_known_position(self, **kwargs):
        """Declare the cover to be at a known position (0=closed, 100=open)."""
        self._require_configured()
        position = kwargs[ATTR_POSITION]
        self._log("async_set_known_position: %d", position)
        self.controller.set_known_position(position)

    # -----------------------------------------------------------------------
    # Configuration checks
    # -----------------------------------------------------------------------

    def _direction_relays(self) -> list[str]:
        """Return [up, down] relay entity ids, or [] if misconfigured."""
        config = self._motion_config
        try:
            up = self._relay_entity_ids[config.relay_up]
            down = self._relay_entity_ids[config.relay_down]
        except IndexError:
            return []
        if config.relay_up < 0 or config.relay_down < 0 or up == down:
            return []
        return [up, down]

    def _require_configured(self) -> None:
        """Raise if the relay channels cannot be resolved."""
        if not self._direction_relays():
            raise HomeAssistantError(
                f"{self.entity_id} has no valid up/down relay configuration"
            )

    # -----------------------------------------------------------------------
    # Controller collaborators
    # -----------------------------------------------------------------------

    @callback
    def _motion_tick(self):
        """Check for completion and refresh the estimated position."""
        if not self.controller.check_completion():
            self.async_write_ha_state()

    @callback
    def _publish(self, current, target, direction):
        """Push the controller state without feeding back into it."""
        self._log(
            "_publish :: current=%d target=%d state=%s",
            current,
            target,
            MOVEMENT_STATES[direction],
        )
        if self.hass is not None:
            self.async_write_ha_state()

    @callback
    def _send_relays(self, up, down):
        """Fire the relay command without waiting for it."""
        self.hass.async_create_task(self._async_send_relays(RelayPair(up, down)))

    async def _async_send_relays(
        self, pair: RelayPair, blocking: bool = False
    ) -> None:
        relays = self._direction_relays()
        if not relays:
            return
        up_entity, down_entity = relays
        # Release before energising so both relays are never on together
        commands = sorted(
            [(up_entity, pair.up), (down_entity, pair.down)],
            key=lambda item: item[1],
        )
        for entity_id, turn_on in commands:
            if self._switch_is_on(entity_id) != turn_on:
                self._mark_switch_pending(entity_id, 1)
        try:
            for entity_id, turn_on in commands:
                await self.hass.services.async_call(
                    "homeassistant",
                    "turn_on" if turn_on else "turn_off",
                    {"entity_id": entity_id},
                    blocking,
                )
        except HomeAssistantError as err:
            # Not retried: the model stays diverged until the next relay event
            _LOGGER.warning(
                "(%s) Relay command up=%s down=%s failed: %s",
                self.entity_id,
                pair.up,
                pair.down,
                err,
            )
            return
        self._log("_async_send_relays :: up=%s down=%s", pair.up, pair.down)

    # -----------------------------------------------------------------------
    # Switch echo filtering
    # -----------------------------------------------------------------------

    def _switch_is_on(self, entity_id) -> bool:
        """Check if a switch entity is currently on."""
        state = self.hass.states.get(entity_id)
        return state is not None and state.state == STATE_ON

    def _mark_switch_pending(self, entity_id, expected_transitions):
        """Mark a switch as having pending echo transitions to ignore."""
        self._pending_switch[entity_id] = (
            self._pending_switch.get(entity_id, 0) + expected_transitions
        )
        self._log(
            "_mark_switch_pending :: %s pending=%d",
            entity_id,
            self._pending_switch[entity_id],
        )

        if entity_id in self._pending_switch_timers:
            self._pending_switch_timers[entity_id]()

        @callback
        def _clear_pending(_now):
            if entity_id in self._pending_switch:
                self._log("_mark_switch_pending :: timeout clearing %s", entity_id)
                del self._pending_switch[entity_id]
            self._pending_switch_timers.pop(entity_id, None)

        self._pending_switch_timers[entity_id] = async_call_later(
            self.hass, PENDING_ECHO_TIMEOUT, _clear_pending
        )

    async def _async_switch_state_changed(self, event):
        """Handle state changes on the direction relays."""
        entity_id = event.data.get("entity_id")
        new_state = event.data.get("new_state")
        old_state = event.data.get("old_state")

        if new_state is None or old_state is None:
            return

        self._log(
            "_async_switch_state_changed :: %s: %s -> %s (pending=%s)",
            entity_id,
            old_state.state,
            new_state.state,
            self._pending_switch.get(entity_id, 0),
        )

        # Attribute-only updates are not relay transitions
        if old_state.state == new_state.state:
            return

        if self._pending_switch.get(entity_id, 0) > 0:
            self._pending_switch[entity_id] -= 1
            if self._pending_switch[entity_id] <= 0:
                del self._pending_switch[entity_id]
                timer = self._pending_switch_timers.pop(entity_id, None)
                if timer:
                    timer()
            self._log(
                "_async_switch_state_changed :: echo filtered, remaining=%s",
                self._pending_switch.get(entity_id, 0),
            )
            return

        if new_state.state in (STATE_UNAVAILABLE, STATE_UNKNOWN):
            self._log("_async_switch_state_changed :: %s unavailable", entity_id)
            self.async_write_ha_state()
            return

        self._reconcile_relays()

    def _read_relay_pair(self) -> RelayPair | None:
        """Read the up/down pair out of the device relay array."""
        for entity_id in self._direction_relays():
            state = self.hass.states.get(entity_id)
            if state is None or state.state in (STATE_UNAVAILABLE, STATE_UNKNOWN):
                return None
        relays = [self._switch_is_on(entity_id) for entity_id in self._relay_entity_ids]
        return relay_pair_from_relays(
            relays, self._motion_config.relay_up, self._motion_config.relay_down
        )

    @callback
    def _reconcile_relays(self):
        """Feed the reported relay pair into the controller."""
        pair = self._read_relay_pair()
        if pair is None:
            return
        observation = decode_pair(pair)
        self._log("_reconcile_relays :: %s", observation.name)
        self.controller.reconcile(observation)
        self.async_write_ha_state()
