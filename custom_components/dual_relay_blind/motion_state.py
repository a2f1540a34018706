"""Motion model for a blind driven by an up/down relay pair.

There is no position sensor. The position is estimated from the time the
motor has been running in a direction since the last point of known
position (the rest position). Convention: 0 = fully closed, 100 = fully open.

All timestamps are monotonic milliseconds, see monotonic_ms().
"""

from __future__ import annotations

from dataclasses import dataclass
import math
from time import monotonic

from .relay_codec import Direction

POSITION_CLOSED = 0
POSITION_OPEN = 100


def monotonic_ms() -> float:
    """Return the current monotonic time in milliseconds."""
    return monotonic() * 1000


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves towards +infinity."""
    return math.floor(value + 0.5)


@dataclass(frozen=True)
class MotionConfig:
    """Timing and relay assignment for one blind.

    relay_up/relay_down are zero-based indices into the device relay array.
    margin_*_ms is the dwell near the bottom limit switch that is excluded
    from proportional travel. overdrive_ms is added to moves that end at
    0 or 100 so the blind reaches the mechanical limit despite drift.
    """

    relay_up: int
    relay_down: int
    travel_time_up_ms: float
    travel_time_down_ms: float
    margin_up_ms: float = 0.0
    margin_down_ms: float = 0.0
    overdrive_ms: float = 0.0

    @property
    def ms_per_percent_up(self) -> float:
        return self.travel_time_up_ms / 100

    @property
    def ms_per_percent_down(self) -> float:
        return self.travel_time_down_ms / 100

    @classmethod
    def from_seconds(
        cls,
        relay_up: int,
        relay_down: int,
        travel_time_up: float,
        travel_time_down: float,
        margin_up: float = 0.0,
        margin_down: float = 0.0,
        overdrive: float = 0.0,
    ) -> MotionConfig:
        """Build a config from option values.

        Args:
            relay_up: One-based relay channel driving the blind up.
            relay_down: One-based relay channel driving the blind down.
            travel_time_up: Seconds for a full 0 -> 100 travel.
            travel_time_down: Seconds for a full 100 -> 0 travel.
            margin_up: Bottom margin in seconds at the start of an up move.
            margin_down: Bottom margin in seconds at the end of a down move.
            overdrive: Extra seconds for moves ending at 0 or 100.
        """
        return cls(
            relay_up=int(relay_up) - 1,
            relay_down=int(relay_down) - 1,
            travel_time_up_ms=float(travel_time_up) * 1000,
            travel_time_down_ms=float(travel_time_down) * 1000,
            margin_up_ms=float(margin_up or 0) * 1000,
            margin_down_ms=float(margin_down or 0) * 1000,
            overdrive_ms=float(overdrive or 0) * 1000,
        )


class MotionState:
    """Mutable motion state of one blind.

    While IDLE, rest_position is authoritative and equals target_position.
    While moving, movement_started_at is the instant the motor left
    rest_position and target_reach_at the estimated arrival at
    target_position.
    """

    __slots__ = (
        "direction",
        "movement_started_at",
        "rest_position",
        "target_position",
        "target_reach_at",
    )

    def __init__(self, rest_position: int = POSITION_OPEN) -> None:
        """Initialize an idle state resting at rest_position."""
        self.direction = Direction.IDLE
        self.rest_position = rest_position
        self.target_position = rest_position
        self.movement_started_at: float = 0.0
        self.target_reach_at: float = 0.0

    @property
    def is_moving(self) -> bool:
        return self.direction is not Direction.IDLE

    def __repr__(self) -> str:
        return (
            f"MotionState(direction={self.direction.name}, "
            f"rest={self.rest_position}, target={self.target_position}, "
            f"started_at={self.movement_started_at}, "
            f"reach_at={self.target_reach_at})"
        )


def estimate_position(state: MotionState, config: MotionConfig, now: float) -> int:
    """Return the interpolated position at ``now``.

    The result is not clamped: a move with overdrive keeps counting past
    0 or 100 until it is finalized.
    """
    if state.direction is Direction.MOVING_UP:
        elapsed = now - state.movement_started_at
        return round_half_up(state.rest_position + elapsed / config.ms_per_percent_up)
    if state.direction is Direction.MOVING_DOWN:
        elapsed = now - state.movement_started_at
        return round_half_up(
            state.rest_position - elapsed / config.ms_per_percent_down
        )
    return state.rest_position
