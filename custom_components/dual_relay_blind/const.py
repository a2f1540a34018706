"""Constants for the dual_relay_blind integration."""

DOMAIN = "dual_relay_blind"

CONF_RELAY_ENTITIES = "relay_entities"
CONF_RELAY_UP = "relay_up"
CONF_RELAY_DOWN = "relay_down"
CONF_TRAVEL_TIME_UP = "travel_time_up"
CONF_TRAVEL_TIME_DOWN = "travel_time_down"
CONF_MARGIN_UP = "time_bottom_margin_up"
CONF_MARGIN_DOWN = "time_bottom_margin_down"
CONF_FULL_OVERDRIVE = "full_overdrive"

# Relay channels are numbered from 1 in the UI, like the device app does.
DEFAULT_RELAY_UP = 1
DEFAULT_RELAY_DOWN = 2
DEFAULT_TRAVEL_TIME_UP = 40.0
DEFAULT_TRAVEL_TIME_DOWN = 20.0
DEFAULT_MARGIN = 0.0
DEFAULT_FULL_OVERDRIVE = 0.0

# Assumed fully open when nothing was persisted
DEFAULT_REST_POSITION = 100

SERVICE_SET_KNOWN_POSITION = "set_known_position"

ATTR_MOVEMENT_STATE = "movement_state"
ATTR_TARGET_POSITION = "target_position"
