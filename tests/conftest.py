"""Shared fixtures for dual_relay_blind tests."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from custom_components.dual_relay_blind.cover import DualRelayBlindCover
from custom_components.dual_relay_blind.motion_controller import MotionController
from custom_components.dual_relay_blind.motion_state import MotionConfig


class FakeClock:
    """Monotonic millisecond clock moved by hand."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class FakeScheduler:
    """Records start/stop calls instead of registering a timer."""

    def __init__(self):
        self.active = False
        self.starts = 0
        self.stops = 0

    def start(self):
        if not self.active:
            self.starts += 1
        self.active = True

    def stop(self):
        if self.active:
            self.stops += 1
        self.active = False


class RecordingSinks:
    """Collects relay commands and state pushes from a controller."""

    def __init__(self):
        self.commands = []
        self.published = []

    def send_relays(self, up, down):
        self.commands.append((up, down))

    def publish(self, current, target, direction):
        self.published.append((current, target, direction))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_controller(clock):
    """Return a factory for a MotionController wired to fakes.

    The factory returns (controller, sinks, scheduler).
    """

    def _make(
        travel_time_up_ms=20000,
        travel_time_down_ms=20000,
        margin_up_ms=0,
        margin_down_ms=0,
        overdrive_ms=0,
        rest_position=100,
    ):
        config = MotionConfig(
            relay_up=0,
            relay_down=1,
            travel_time_up_ms=travel_time_up_ms,
            travel_time_down_ms=travel_time_down_ms,
            margin_up_ms=margin_up_ms,
            margin_down_ms=margin_down_ms,
            overdrive_ms=overdrive_ms,
        )
        sinks = RecordingSinks()
        scheduler = FakeScheduler()
        controller = MotionController(
            "test_blind",
            config,
            send_relays=sinks.send_relays,
            publish=sinks.publish,
            scheduler=scheduler,
            rest_position=rest_position,
            clock=clock,
        )
        return controller, sinks, scheduler

    return _make


def _state(value):
    state = MagicMock()
    state.state = value
    return state


@pytest.fixture
def make_hass():
    """Return a factory that creates a minimal mock HA instance.

    Relay states live in ``hass.relay_states`` (entity_id -> "on"/"off").
    Coroutines passed to async_create_task are queued in
    ``hass.created_tasks`` and only run when a test drains them.
    """

    def _make():
        hass = MagicMock()
        hass.data = {}
        hass.relay_states = {}
        hass.created_tasks = []
        hass.services.async_call = AsyncMock()

        def _get(entity_id):
            value = hass.relay_states.get(entity_id)
            return None if value is None else _state(value)

        def _create_task(coro):
            hass.created_tasks.append(coro)
            return MagicMock()

        hass.states.get = _get
        hass.async_create_task = _create_task
        return hass

    return _make


@pytest.fixture
def drain_tasks():
    """Return a coroutine function running every queued background job in order."""

    async def _drain(hass):
        while hass.created_tasks:
            await hass.created_tasks.pop(0)

    return _drain


@pytest.fixture
def make_cover(make_hass, clock):
    """Return a factory that creates a DualRelayBlindCover on a mock hass.

    The cover's controller runs on the shared fake clock; timers and state
    listeners are patched out.
    """
    patches = [
        patch(
            "custom_components.dual_relay_blind.cover.async_call_later",
            return_value=MagicMock(),
        ),
        patch(
            "custom_components.dual_relay_blind.scheduler.async_track_time_interval",
            return_value=MagicMock(),
        ),
    ]
    for p in patches:
        p.start()
    made = []

    def _make(
        relays=("switch.ch1", "switch.ch2"),
        relay_up=1,
        relay_down=2,
        travel_time_up=20,
        travel_time_down=20,
        margin_up=0,
        margin_down=0,
        overdrive=0,
    ):
        config = MotionConfig.from_seconds(
            relay_up=relay_up,
            relay_down=relay_down,
            travel_time_up=travel_time_up,
            travel_time_down=travel_time_down,
            margin_up=margin_up,
            margin_down=margin_down,
            overdrive=overdrive,
        )
        cover = DualRelayBlindCover(
            device_id="test_blind",
            name="Test Blind",
            relay_entity_ids=list(relays),
            motion_config=config,
            clock=clock,
        )
        cover.hass = make_hass()
        cover.async_write_ha_state = MagicMock()
        cover.entity_id = "cover.test_blind"
        cover.hass.relay_states.update({entity_id: "off" for entity_id in relays})
        cover._scheduler.hass = cover.hass
        made.append(cover)
        return cover

    yield _make

    for cover in made:
        for coro in cover.hass.created_tasks:
            coro.close()
    for p in patches:
        p.stop()
