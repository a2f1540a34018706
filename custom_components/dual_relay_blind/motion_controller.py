"""Open-loop motion controller for a blind on an up/down relay pair.

The controller owns the MotionState of one blind and is the only thing
that mutates it. Three triggers drive it: target requests
(set_target), the periodic completion check (check_completion) and relay
states reported by the device that this controller did not cause
(reconcile). All methods are synchronous and must be called from the
same thread (the Home Assistant event loop), which serializes them.

Collaborators:
    send_relays(up, down): fire-and-forget relay command.
    publish(current, target, direction): assignment-style state push. It
        must never feed back into set_target.
    scheduler: object with start() and stop(); while started it calls
        check_completion() periodically.
"""

from __future__ import annotations

from collections.abc import Callable
import logging

from .motion_state import (
    POSITION_CLOSED,
    POSITION_OPEN,
    MotionConfig,
    MotionState,
    estimate_position,
    monotonic_ms,
    round_half_up,
)
from .relay_codec import (
    Direction,
    RelayObservation,
    encode,
    observed_direction,
)

_LOGGER = logging.getLogger(__name__)

_OPPOSITE = {
    Direction.MOVING_UP: Direction.MOVING_DOWN,
    Direction.MOVING_DOWN: Direction.MOVING_UP,
}


class MotionController:
    """Plan, track and settle the movements of one blind."""

    def __init__(
        self,
        name: str,
        config: MotionConfig,
        send_relays: Callable[[bool, bool], None],
        publish: Callable[[int, int, Direction], None],
        scheduler,
        rest_position: int = POSITION_OPEN,
        clock: Callable[[], float] = monotonic_ms,
    ) -> None:
        self._name = name
        self._config = config
        self._send_relays = send_relays
        self._publish = publish
        self._scheduler = scheduler
        self._clock = clock
        self._state = MotionState(rest_position)

    def _log(self, msg, *args):
        """Log a debug message prefixed with the blind name."""
        _LOGGER.debug("(%s) " + msg, self._name, *args)

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    @property
    def config(self) -> MotionConfig:
        return self._config

    @property
    def state(self) -> MotionState:
        return self._state

    @property
    def direction(self) -> Direction:
        return self._state.direction

    @property
    def target_position(self) -> int:
        return self._state.target_position

    def current_position(self, now: float | None = None) -> int:
        """Return the estimated position, unclamped."""
        if now is None:
            now = self._clock()
        return estimate_position(self._state, self._config, now)

    # -----------------------------------------------------------------------
    # Target planning
    # -----------------------------------------------------------------------

    def set_target(self, position: int) -> None:
        """Drive the blind towards ``position`` (0..100, validated by caller)."""
        now = self._clock()
        self._log(
            "set_target :: %s -> %d (%s)",
            self._state.target_position,
            position,
            self._state.direction.name,
        )
        if self._state.is_moving:
            self._retarget(position, now, emit=True)
        else:
            self._start(position, now, emit=True)

    def _start(self, position: int, now: float, emit: bool) -> None:
        """Plan a movement out of IDLE."""
        state = self._state
        config = self._config
        rest = state.rest_position
        if position == rest:
            self._log("_start :: already at %d, nothing to do", position)
            return

        move_up = position > rest
        if move_up:
            without_margin = config.travel_time_up_ms - config.margin_up_ms
            duration = (position - rest) / 100 * without_margin
            # The bottom dwell is only crossed when leaving fully closed
            if rest == POSITION_CLOSED:
                duration += config.margin_up_ms
        else:
            without_margin = config.travel_time_down_ms - config.margin_down_ms
            duration = (rest - position) / 100 * without_margin
            if position == POSITION_CLOSED:
                duration += config.margin_down_ms
        if position in (POSITION_CLOSED, POSITION_OPEN):
            duration += config.overdrive_ms

        state.movement_started_at = now
        state.target_reach_at = now + duration
        state.direction = Direction.MOVING_UP if move_up else Direction.MOVING_DOWN
        state.target_position = position
        self._log(
            "_start :: %s from %d to %d, duration=%.0fms",
            state.direction.name,
            rest,
            position,
            duration,
        )

        if emit:
            self._send(state.direction)
        self._publish(rest, position, state.direction)
        self._scheduler.start()

    def _retarget(self, position: int, now: float, emit: bool) -> None:
        """Adjust the movement in flight to a new target."""
        state = self._state
        config = self._config
        if position == state.target_position:
            self._log("_retarget :: target %d unchanged", position)
            return

        if state.direction is Direction.MOVING_DOWN:
            diff_position = state.target_position - position
            diff_time = round_half_up(config.ms_per_percent_down * diff_position)
        else:
            diff_position = position - state.target_position
            diff_time = round_half_up(config.ms_per_percent_up * diff_position)
        diff = (state.target_reach_at - now) + diff_time

        if diff >= 0:
            # Still ahead in the current direction, only the deadline moves
            state.target_reach_at += diff_time
            state.target_position = position
            self._log(
                "_retarget :: new target %d ahead, adjusting deadline by %dms",
                position,
                diff_time,
            )
            return

        continuity = estimate_position(state, config, now)
        state.rest_position = continuity
        state.movement_started_at = now
        state.target_reach_at = now + abs(diff)
        state.direction = _OPPOSITE[state.direction]
        state.target_position = position
        self._log(
            "_retarget :: reversing to %s at %d, new target %d, duration=%.0fms",
            state.direction.name,
            continuity,
            position,
            abs(diff),
        )

        if emit:
            self._send(state.direction)
        self._publish(continuity, position, state.direction)
        self._scheduler.start()

    # -----------------------------------------------------------------------
    # Completion
    # -----------------------------------------------------------------------

    def check_completion(self, now: float | None = None) -> bool:
        """Finalize the movement once its deadline has passed.

        Returns True if the movement was finalized by this call.
        """
        if not self._state.is_moving:
            self._scheduler.stop()
            return False
        if now is None:
            now = self._clock()
        if now < self._state.target_reach_at:
            return False
        self._log("check_completion :: target %d reached", self._state.target_position)
        self.finalize()
        return True

    def finalize(self, emit: bool = True) -> None:
        """Settle at the commanded target and switch both relays off.

        With emit=False the caller is responsible for releasing the relays.
        """
        state = self._state
        state.direction = Direction.IDLE
        state.rest_position = state.target_position
        self._scheduler.stop()
        if emit:
            self._send(Direction.IDLE)
        self._log("finalize :: resting at %d", state.rest_position)
        self._publish(state.rest_position, state.target_position, Direction.IDLE)

    def halt(self) -> bool:
        """Settle a movement in flight at the current estimate without sending.

        Returns True if a movement was settled; the relays are still on and
        must be released by the caller.
        """
        if not self._state.is_moving:
            return False
        position = self.current_position()
        self._log("halt :: settling at %d", position)
        self._state.target_position = position
        self.finalize(emit=False)
        return True

    def restore_position(self, position: int) -> None:
        """Seed the rest position from persisted state; sends nothing."""
        if self._state.is_moving:
            self._log("restore_position :: moving, ignoring %d", position)
            return
        position = max(POSITION_CLOSED, min(POSITION_OPEN, int(position)))
        self._log("restore_position :: %d", position)
        self._state.rest_position = position
        self._state.target_position = position

    def set_known_position(self, position: int) -> None:
        """Stop and declare the blind to be at ``position`` without moving it."""
        self._log("set_known_position :: %d", position)
        self._state.target_position = position
        self.finalize()

    # -----------------------------------------------------------------------
    # External observations
    # -----------------------------------------------------------------------

    def reconcile(self, observation: RelayObservation) -> None:
        """Absorb a relay state this controller did not command."""
        state = self._state
        now = self._clock()

        if observation is RelayObservation.CONFLICT:
            position = estimate_position(state, self._config, now)
            _LOGGER.warning(
                "(%s) Both relays reported on, forcing stop at %d",
                self._name,
                position,
            )
            state.target_position = position
            self.finalize()
            return

        if observation is RelayObservation.STOPPED:
            if not state.is_moving:
                self._log("reconcile :: already stopped, nothing to do")
                return
            position = estimate_position(state, self._config, now)
            self._log("reconcile :: stopped externally at %d", position)
            state.target_position = position
            self.finalize()
            return

        direction = observed_direction(observation)
        limit = POSITION_CLOSED if direction is Direction.MOVING_DOWN else POSITION_OPEN
        if state.direction is direction:
            self._log("reconcile :: already %s, nothing to do", direction.name)
            return
        if state.target_position == limit:
            self._log("reconcile :: target already %d, stopping", limit)
            self.finalize()
            return

        self._log("reconcile :: %s started externally, following to %d", direction.name, limit)
        self._follow(limit, now)

    def _follow(self, limit: int, now: float) -> None:
        """Track a movement towards ``limit`` that the device is already doing."""
        state = self._state
        if state.is_moving:
            # Settle at the current estimate, then plan from there
            state.rest_position = estimate_position(state, self._config, now)
            state.target_position = state.rest_position
            state.direction = Direction.IDLE
        if state.rest_position == limit:
            self.finalize()
            return
        self._start(limit, now, emit=False)

    def _send(self, direction: Direction) -> None:
        pair = encode(direction)
        self._log("_send :: %s -> up=%s down=%s", direction.name, pair.up, pair.down)
        self._send_relays(pair.up, pair.down)
