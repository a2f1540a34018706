"""Mapping between movement directions and the up/down relay pair.

The motor is driven by two independent relays. Exactly one energised relay
selects a direction, none stops the motor. Both energised at once is a
desynchronised hardware state and is never read as a direction.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum


class Direction(Enum):
    """Direction the controller is driving the motor in."""

    IDLE = 0
    MOVING_UP = 1
    MOVING_DOWN = 2


class RelayObservation(Enum):
    """Meaning of a relay pair reported by the device."""

    STOPPED = 0
    MOVING_DOWN = 1
    MOVING_UP = 2
    CONFLICT = 3


@dataclass(frozen=True)
class RelayPair:
    """State of the up and down relays."""

    up: bool
    down: bool


_ENCODING = {
    Direction.MOVING_UP: RelayPair(up=True, down=False),
    Direction.MOVING_DOWN: RelayPair(up=False, down=True),
    Direction.IDLE: RelayPair(up=False, down=False),
}

# Indexed by 2 * up + down
_DECODING = (
    RelayObservation.STOPPED,
    RelayObservation.MOVING_DOWN,
    RelayObservation.MOVING_UP,
    RelayObservation.CONFLICT,
)

_OBSERVED_DIRECTION = {
    RelayObservation.STOPPED: Direction.IDLE,
    RelayObservation.MOVING_DOWN: Direction.MOVING_DOWN,
    RelayObservation.MOVING_UP: Direction.MOVING_UP,
}


def encode(direction: Direction) -> RelayPair:
    """Return the relay pair that drives the motor in ``direction``."""
    return _ENCODING[direction]


def decode(up: bool, down: bool) -> RelayObservation:
    """Return what a reported relay pair means."""
    return _DECODING[2 * int(bool(up)) + int(bool(down))]


def decode_pair(pair: RelayPair) -> RelayObservation:
    """Decode a typed relay pair."""
    return decode(pair.up, pair.down)


def observed_direction(observation: RelayObservation) -> Direction:
    """Return the direction an observation stands for.

    Raises ValueError for CONFLICT, which has no direction.
    """
    try:
        return _OBSERVED_DIRECTION[observation]
    except KeyError:
        raise ValueError(f"{observation} does not map to a direction") from None


def relay_pair_from_relays(
    relays: Sequence[bool], up_index: int, down_index: int
) -> RelayPair:
    """Pick the up/down relays out of a device relay array.

    Indices are zero-based.
    """
    for index in (up_index, down_index):
        if not 0 <= index < len(relays):
            raise ValueError(
                f"Relay index {index} out of range for {len(relays)} relays"
            )
    return RelayPair(up=bool(relays[up_index]), down=bool(relays[down_index]))
