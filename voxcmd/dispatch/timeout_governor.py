"""Monotonic timers for every timing budget in the dispatch loop.

Timers are never run in the background. The engine calls ``poll()`` once
per loop iteration and feeds whatever expired into the state machine as
``TimerFired`` events, so the whole dispatcher stays single-threaded and
tests can drive time with a fake clock.
"""

import logging
import time
from collections.abc import Callable

from voxcmd.config import (
    CAPTURE_WINDOW,
    DICTATION_IDLE_TIMEOUT,
    MATCH_COOLDOWN,
    PREFIX_HOLD_WINDOW,
    SILENCE_RESET_WINDOW,
)
from voxcmd.dispatch.types import TimerFired, TimerKind

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def default_durations() -> dict[TimerKind, float]:
    """Return the configured duration of every timer, in seconds."""
    return {
        TimerKind.SILENCE_RESET: SILENCE_RESET_WINDOW,
        TimerKind.PREFIX_HOLD: PREFIX_HOLD_WINDOW,
        TimerKind.DICTATION_IDLE: DICTATION_IDLE_TIMEOUT,
        TimerKind.CAPTURE_WINDOW: CAPTURE_WINDOW,
        TimerKind.MATCH_COOLDOWN: MATCH_COOLDOWN,
    }


class TimeoutGovernor:
    """Owns one deadline per ``TimerKind``; each can be armed independently."""

    def __init__(
        self,
        clock: Clock = time.monotonic,
        durations: dict[TimerKind, float] | None = None,
    ) -> None:
        self._clock = clock
        self._durations = default_durations()
        if durations:
            self._durations.update(durations)
        self._deadlines: dict[TimerKind, float] = {}

    def now(self) -> float:
        return self._clock()

    def duration(self, timer: TimerKind) -> float:
        return self._durations[timer]

    def arm(self, timer: TimerKind) -> float:
        """Arm (or re-arm) *timer* from the current time. Returns the deadline."""
        deadline = self._clock() + self._durations[timer]
        self._deadlines[timer] = deadline
        logger.debug("Timer %s armed (deadline=%.3f)", timer.value, deadline)
        return deadline

    def disarm(self, timer: TimerKind) -> None:
        if self._deadlines.pop(timer, None) is not None:
            logger.debug("Timer %s disarmed", timer.value)

    def disarm_all(self, *timers: TimerKind) -> None:
        """Disarm the given timers, or every timer if none are given."""
        for timer in timers or tuple(self._deadlines):
            self.disarm(timer)

    def is_armed(self, timer: TimerKind) -> bool:
        return timer in self._deadlines

    def remaining(self, timer: TimerKind) -> float | None:
        """Seconds until *timer* fires, or None if it is not armed."""
        deadline = self._deadlines.get(timer)
        if deadline is None:
            return None
        return max(0.0, deadline - self._clock())

    def poll(self) -> list[TimerFired]:
        """Disarm and return every expired timer, earliest deadline first."""
        now = self._clock()
        expired = sorted(
            (deadline, timer)
            for timer, deadline in self._deadlines.items()
            if deadline <= now
        )
        fired: list[TimerFired] = []
        for _, timer in expired:
            del self._deadlines[timer]
            logger.debug("Timer %s fired", timer.value)
            fired.append(TimerFired(timer=timer, fired_at=now))
        return fired
