"""Periodic completion check for a moving blind."""

from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta
import logging

from homeassistant.core import HomeAssistant, callback
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.event import async_track_time_interval

_LOGGER = logging.getLogger(__name__)

CHECK_INTERVAL = timedelta(seconds=0.1)


class MotionScheduler:
    """Call ``check`` every 100 ms between start() and stop().

    The check re-reads the movement deadline on every tick, so a retarget
    that moves the deadline needs no rescheduling. At most one interval
    listener is registered at a time.
    """

    def __init__(self, name: str, check: Callable[[], None]) -> None:
        self.hass: HomeAssistant | None = None
        self._name = name
        self._check = check
        self._unsubscribe = None

    def start(self) -> None:
        """Register the interval listener unless one is already running."""
        if self._unsubscribe is not None:
            return
        if self.hass is None:
            raise HomeAssistantError(f"{self._name} is not attached to Home Assistant")
        _LOGGER.debug("(%s) start :: checking every %s", self._name, CHECK_INTERVAL)
        self._unsubscribe = async_track_time_interval(
            self.hass, self._tick, CHECK_INTERVAL
        )

    def stop(self) -> None:
        """Unregister the interval listener."""
        if self._unsubscribe is None:
            return
        _LOGGER.debug("(%s) stop", self._name)
        self._unsubscribe()
        self._unsubscribe = None

    @callback
    def _tick(self, now) -> None:
        self._check()
