"""Tests for the motion model and position estimator."""

from unittest.mock import patch

from custom_components.dual_relay_blind.motion_state import (
    MotionConfig,
    MotionState,
    estimate_position,
    monotonic_ms,
    round_half_up,
)
from custom_components.dual_relay_blind.relay_codec import Direction


def _config(up=20000, down=10000):
    return MotionConfig(
        relay_up=0, relay_down=1, travel_time_up_ms=up, travel_time_down_ms=down
    )


class TestMotionConfig:
    def test_rates(self):
        config = _config(up=20000, down=10000)
        assert config.ms_per_percent_up == 200
        assert config.ms_per_percent_down == 100

    def test_from_seconds_converts_units_and_channels(self):
        config = MotionConfig.from_seconds(
            relay_up=2,
            relay_down=1,
            travel_time_up=40,
            travel_time_down=20,
            margin_up=1.5,
            margin_down=0.5,
            overdrive=2,
        )
        assert config.relay_up == 1
        assert config.relay_down == 0
        assert config.travel_time_up_ms == 40000
        assert config.travel_time_down_ms == 20000
        assert config.margin_up_ms == 1500
        assert config.margin_down_ms == 500
        assert config.overdrive_ms == 2000

    def test_from_seconds_treats_none_as_zero(self):
        config = MotionConfig.from_seconds(1, 2, 10, 10, None, None, None)
        assert config.margin_up_ms == 0
        assert config.overdrive_ms == 0


class TestMotionState:
    def test_defaults_to_open_and_idle(self):
        state = MotionState()
        assert state.rest_position == 100
        assert state.target_position == 100
        assert state.direction is Direction.IDLE
        assert not state.is_moving


class TestEstimatePosition:
    def test_idle_returns_rest(self):
        state = MotionState(42)
        assert estimate_position(state, _config(), now=99999) == 42

    def test_moving_up_interpolates(self):
        state = MotionState(0)
        state.direction = Direction.MOVING_UP
        state.movement_started_at = 1000
        assert estimate_position(state, _config(up=20000), now=6000) == 25

    def test_moving_down_uses_down_rate(self):
        state = MotionState(100)
        state.direction = Direction.MOVING_DOWN
        state.movement_started_at = 0
        assert estimate_position(state, _config(down=10000), now=2500) == 75

    def test_rounds_half_up(self):
        state = MotionState(0)
        state.direction = Direction.MOVING_UP
        state.movement_started_at = 0
        # 2.5 percent
        assert estimate_position(state, _config(up=20000), now=500) == 3

    def test_not_clamped_past_open(self):
        """Overdrive keeps the estimate counting beyond 100."""
        state = MotionState(90)
        state.direction = Direction.MOVING_UP
        state.movement_started_at = 0
        assert estimate_position(state, _config(up=20000), now=4000) == 110

    def test_not_clamped_below_closed(self):
        state = MotionState(5)
        state.direction = Direction.MOVING_DOWN
        state.movement_started_at = 0
        assert estimate_position(state, _config(down=10000), now=1000) == -5


def test_round_half_up():
    assert round_half_up(0.5) == 1
    assert round_half_up(1.5) == 2
    assert round_half_up(2.4999) == 2
    assert round_half_up(-0.5) == 0
    assert round_half_up(-1.6) == -2


def test_monotonic_ms_scales_seconds():
    with patch(
        "custom_components.dual_relay_blind.motion_state.monotonic",
        return_value=12.5,
    ):
        assert monotonic_ms() == 12500
